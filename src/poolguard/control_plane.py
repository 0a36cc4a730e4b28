"""Control plane snapshots for the preflight gate.

The gate never reads a control plane object directly. A translation step
turns whatever the cluster returns (an untyped JSON object of any control
plane provider) into a small, versioned ControlPlaneSnapshot. Snapshots are
rebuilt on every evaluation and never cached.

Production lookups shell out to kubectl, the same way cluster inventory
tooling reads arbitrary custom resources without generated clients.
"""

from __future__ import annotations

import json
import logging
import subprocess
from dataclasses import dataclass
from typing import Any, Protocol

logger = logging.getLogger(__name__)

SNAPSHOT_SCHEMA_VERSION = 1

DEFAULT_KUBECTL_TIMEOUT_SECONDS = 30
DEFAULT_CONTROL_PLANE_API_VERSION = "controlplane.cluster.x-k8s.io/v1beta1"


class ControlPlaneError(Exception):
    """Raised when a control plane cannot be read or has an unexpected shape."""

    pass


@dataclass(frozen=True)
class ControlPlaneRef:
    """Reference from a cluster to its control plane object."""

    kind: str
    name: str
    namespace: str = "default"
    api_version: str = DEFAULT_CONTROL_PLANE_API_VERSION

    @classmethod
    def parse(
        cls,
        value: str,
        namespace: str = "default",
        api_version: str = DEFAULT_CONTROL_PLANE_API_VERSION,
    ) -> ControlPlaneRef:
        """Parse a "Kind/name" reference as accepted on the command line."""
        kind, sep, name = value.partition("/")
        if not sep or not kind or not name or "/" in name:
            raise ControlPlaneError(
                f"control plane reference must be KIND/NAME, got {value!r}"
            )
        return cls(kind=kind, name=name, namespace=namespace, api_version=api_version)

    @property
    def resource(self) -> str:
        """kubectl resource argument, fully qualified to avoid short-name clashes."""
        group, _, version = self.api_version.rpartition("/")
        if not group:
            return self.kind.lower()
        return f"{self.kind.lower()}.{version}.{group}"


@dataclass(frozen=True)
class ControlPlaneSnapshot:
    """Read-only view of a control plane's declared and observed versions.

    Attributes:
        exists: False when the cluster has no control plane reference.
        declared_version: spec.version, the version the control plane should run.
        observed_version: status.version, the last version it reported running.
            Unset while the control plane is still in its first rollout.
    """

    exists: bool
    declared_version: str | None = None
    observed_version: str | None = None
    name: str | None = None
    namespace: str | None = None
    kind: str | None = None
    schema_version: int = SNAPSHOT_SCHEMA_VERSION

    @classmethod
    def absent(cls) -> ControlPlaneSnapshot:
        """Snapshot for a cluster without a control plane reference."""
        return cls(exists=False)


class ControlPlaneSource(Protocol):
    """Fetches a control plane object as untyped JSON."""

    def get(self, ref: ControlPlaneRef) -> dict[str, Any]:
        """Return the referenced object, raising ControlPlaneError on failure."""
        ...


def _nested_string(obj: dict[str, Any], *path: str) -> str | None:
    """Read an optional string field, rejecting values of the wrong type."""
    current: Any = obj
    for i, key in enumerate(path):
        if current is None:
            return None
        if not isinstance(current, dict):
            location = ".".join(path[:i])
            raise ControlPlaneError(
                f"{location} accessor error: expected object, got {type(current).__name__}"
            )
        current = current.get(key)

    if current is None:
        return None
    if not isinstance(current, str):
        raise ControlPlaneError(
            f"{'.'.join(path)} accessor error: expected string, got {type(current).__name__}"
        )
    return current


def snapshot_from_object(obj: dict[str, Any] | None) -> ControlPlaneSnapshot:
    """Translate an untyped control plane object into a snapshot.

    Args:
        obj: The control plane as returned by the API server, or None when
            the cluster does not reference one.

    Raises:
        ControlPlaneError: If spec.version or status.version is not a string.
    """
    if obj is None:
        return ControlPlaneSnapshot.absent()

    metadata = obj.get("metadata") or {}
    return ControlPlaneSnapshot(
        exists=True,
        declared_version=_nested_string(obj, "spec", "version"),
        observed_version=_nested_string(obj, "status", "version"),
        name=metadata.get("name"),
        namespace=metadata.get("namespace"),
        kind=obj.get("kind"),
    )


def load_snapshot(
    source: ControlPlaneSource, ref: ControlPlaneRef | None
) -> ControlPlaneSnapshot:
    """Fetch and translate a control plane, without fetching when there is no ref."""
    if ref is None:
        return ControlPlaneSnapshot.absent()
    return snapshot_from_object(source.get(ref))


class KubectlControlPlaneSource:
    """Reads control plane objects with kubectl."""

    def __init__(
        self,
        context: str | None = None,
        timeout_seconds: int = DEFAULT_KUBECTL_TIMEOUT_SECONDS,
    ) -> None:
        self._context = context
        self._timeout_seconds = timeout_seconds

    def _build_command(self, ref: ControlPlaneRef) -> list[str]:
        cmd = ["kubectl"]
        if self._context:
            cmd.extend(["--context", self._context])
        cmd.extend(["get", ref.resource, ref.name, "-n", ref.namespace, "-o", "json"])
        return cmd

    def get(self, ref: ControlPlaneRef) -> dict[str, Any]:
        cmd = self._build_command(ref)
        logger.debug("Fetching control plane", extra={"command": " ".join(cmd)})

        try:
            result = subprocess.run(
                cmd,
                capture_output=True,
                text=True,
                check=True,
                timeout=self._timeout_seconds,
            )
        except FileNotFoundError as e:
            raise ControlPlaneError("kubectl command not found") from e
        except subprocess.TimeoutExpired as e:
            raise ControlPlaneError(
                f"timed out after {self._timeout_seconds}s fetching control plane "
                f"{ref.namespace}/{ref.name}"
            ) from e
        except subprocess.CalledProcessError as e:
            raise ControlPlaneError(
                f"failed to get control plane {ref.kind} {ref.namespace}/{ref.name}: "
                f"{(e.stderr or '').strip()}"
            ) from e

        try:
            obj = json.loads(result.stdout)
        except json.JSONDecodeError as e:
            raise ControlPlaneError(
                f"kubectl returned invalid JSON for control plane {ref.namespace}/{ref.name}"
            ) from e

        if not isinstance(obj, dict):
            raise ControlPlaneError(
                f"kubectl returned a {type(obj).__name__} for control plane "
                f"{ref.namespace}/{ref.name}"
            )
        return obj
