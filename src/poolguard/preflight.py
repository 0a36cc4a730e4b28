"""Preflight checks gating launch template rollouts of a machine pool.

Rolling a new launch template replaces instances. Doing that while the
control plane is still provisioning or upgrading, or with a version the
control plane does not support, leaves nodes that fail to join. The gate
decides from a ControlPlaneSnapshot whether a rollout is safe right now.

Outcomes:
- True: safe to proceed
- False: not safe yet; expected to resolve as the control plane converges
- PreflightError: the inputs are malformed; retrying will not help

Checks, in evaluation order:
1. ControlPlaneIsStable: status.version is set and not behind spec.version
2. KubernetesVersionSkew: pool minor within the supported skew window
3. KubeadmVersionSkew: kubeadm pools must match the control plane major.minor

Each check can be skipped by name; "All" skips every check.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import TYPE_CHECKING

from .control_plane import ControlPlaneRef, ControlPlaneSnapshot, ControlPlaneSource, load_snapshot
from .versions import (
    SemanticVersion,
    VersionParseError,
    compare,
    is_kubeadm_skew_acceptable,
    is_skew_acceptable,
    parse_tolerant,
)

if TYPE_CHECKING:
    from .config import Config

logger = logging.getLogger(__name__)

SKIP_PREFLIGHT_CHECKS_ANNOTATION = "machineset.cluster.x-k8s.io/skip-preflight-checks"

KUBEADM_BOOTSTRAP_GROUP = "bootstrap.cluster.x-k8s.io"
KUBEADM_BOOTSTRAP_KINDS = frozenset({"KubeadmConfig", "KubeadmConfigTemplate"})


class PreflightCheck(str, Enum):
    """Named preflight checks that can be skipped individually."""

    ALL = "All"
    CONTROL_PLANE_IS_STABLE = "ControlPlaneIsStable"
    KUBERNETES_VERSION_SKEW = "KubernetesVersionSkew"
    KUBEADM_VERSION_SKEW = "KubeadmVersionSkew"


class PreflightError(Exception):
    """Raised when preflight inputs are malformed."""

    pass


class InvalidVersionError(PreflightError):
    """Raised when a control plane or machine pool version cannot be parsed."""

    pass


class BootstrapReferenceError(PreflightError):
    """Raised when the bootstrap config reference has an invalid apiVersion."""

    pass


def parse_skip_checks(value: str | None) -> frozenset[PreflightCheck]:
    """Parse a comma separated skip annotation value.

    Unknown names are ignored so that annotations written for newer
    releases do not break older controllers.
    """
    if not value:
        return frozenset()

    known = {check.value: check for check in PreflightCheck}
    checks: set[PreflightCheck] = set()
    for raw in value.split(","):
        name = raw.strip()
        if name in known:
            checks.add(known[name])
        elif name:
            logger.debug("Ignoring unknown preflight check name", extra={"check": name})
    return frozenset(checks)


@dataclass(frozen=True)
class BootstrapConfigRef:
    """apiVersion and kind of a machine pool's bootstrap config."""

    api_version: str
    kind: str

    def group(self) -> str:
        """Return the API group, parsing apiVersion like Kubernetes does.

        Raises:
            BootstrapReferenceError: If apiVersion has more than one "/".
        """
        if not self.api_version:
            return ""
        parts = self.api_version.split("/")
        if len(parts) == 1:
            return ""
        if len(parts) == 2 and parts[0] and parts[1]:
            return parts[0]
        raise BootstrapReferenceError(
            f"unexpected GroupVersion string in bootstrap config reference: {self.api_version!r}"
        )

    def is_kubeadm(self) -> bool:
        """Whether this reference points at the kubeadm bootstrap provider."""
        return self.group() == KUBEADM_BOOTSTRAP_GROUP and self.kind in KUBEADM_BOOTSTRAP_KINDS


@dataclass(frozen=True)
class MachinePoolRequest:
    """The parts of a machine pool the gate needs to decide on a rollout."""

    desired_version: str | None = None
    bootstrap_config_ref: BootstrapConfigRef | None = None
    skip_checks: frozenset[PreflightCheck] = field(default_factory=frozenset)

    def skips(self, check: PreflightCheck) -> bool:
        return PreflightCheck.ALL in self.skip_checks or check in self.skip_checks


def _parse(version: str, what: str) -> SemanticVersion:
    try:
        return parse_tolerant(version)
    except VersionParseError as e:
        raise InvalidVersionError(f"failed to parse {what}: {e}") from e


class PreflightGate:
    """Decides whether a machine pool's launch template may be rolled out.

    The gate is configured once with the feature toggle and, for check(),
    the control plane source. evaluate() is pure.
    """

    def __init__(
        self,
        config: Config | None = None,
        source: ControlPlaneSource | None = None,
    ) -> None:
        self._enabled = config.preflight_checks_enabled if config is not None else True
        self._source = source

    @property
    def enabled(self) -> bool:
        return self._enabled

    def check(self, ref: ControlPlaneRef | None, request: MachinePoolRequest) -> bool:
        """Fetch the control plane once and evaluate the gate.

        Raises:
            ControlPlaneError: If the control plane cannot be fetched.
            PreflightError: If versions or the bootstrap reference are malformed.
        """
        if not self._enabled:
            logger.debug("Machine pool preflight checks disabled")
            return True

        if self._source is None:
            raise PreflightError("no control plane source configured")

        snapshot = load_snapshot(self._source, ref)
        return self.evaluate(snapshot, request)

    def evaluate(self, snapshot: ControlPlaneSnapshot, request: MachinePoolRequest) -> bool:
        """Evaluate the preflight checks against a snapshot.

        Returns:
            True when the rollout is safe, False when it should wait.

        Raises:
            PreflightError: If a version or the bootstrap reference is malformed.
        """
        if not self._enabled:
            return True

        if not snapshot.exists:
            return True

        # Without a declared version there is nothing to check against
        if snapshot.declared_version is None:
            return True

        declared = _parse(snapshot.declared_version, "control plane spec version")

        if not request.skips(PreflightCheck.CONTROL_PLANE_IS_STABLE):
            if snapshot.observed_version is None:
                self._log_blocked(snapshot, PreflightCheck.CONTROL_PLANE_IS_STABLE, "provisioning")
                return False
            observed = _parse(snapshot.observed_version, "control plane status version")
            if compare(declared, observed, with_build_tags=True) >= 1:
                self._log_blocked(snapshot, PreflightCheck.CONTROL_PLANE_IS_STABLE, "upgrading")
                return False

        if request.desired_version is None:
            return True

        pool = _parse(request.desired_version, "machine pool version")

        if not request.skips(PreflightCheck.KUBERNETES_VERSION_SKEW):
            if not is_skew_acceptable(declared, pool):
                self._log_blocked(
                    snapshot,
                    PreflightCheck.KUBERNETES_VERSION_SKEW,
                    f"pool version {pool} not supported with control plane {declared}",
                )
                return False

        if not request.skips(PreflightCheck.KUBEADM_VERSION_SKEW):
            ref = request.bootstrap_config_ref
            if ref is not None and ref.is_kubeadm() and not is_kubeadm_skew_acceptable(
                declared, pool
            ):
                self._log_blocked(
                    snapshot,
                    PreflightCheck.KUBEADM_VERSION_SKEW,
                    f"kubeadm pool version {pool} must match control plane {declared.major}."
                    f"{declared.minor}",
                )
                return False

        return True

    def _log_blocked(
        self, snapshot: ControlPlaneSnapshot, check: PreflightCheck, detail: str
    ) -> None:
        logger.info(
            "Preflight check failed, deferring launch template rollout",
            extra={
                "check": check.value,
                "detail": detail,
                "control_plane": snapshot.name,
                "namespace": snapshot.namespace,
                "declared_version": snapshot.declared_version,
                "observed_version": snapshot.observed_version,
            },
        )
