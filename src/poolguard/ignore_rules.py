"""Ignore list for lifecycle hook reconciliation.

Some hooks on an Auto Scaling Group are managed outside the machine pool,
for example by a node termination handler. Naming them here freezes them:
the reconciler neither updates nor deletes them, even when they drift.

Names are matched exactly. An ignore list only ever protects hooks, it
never adds any.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Iterable, Iterator
from dataclasses import dataclass, field

import yaml

logger = logging.getLogger(__name__)


class IgnoreRulesError(Exception):
    """Raised when ignore list configuration is invalid."""

    pass


@dataclass(frozen=True)
class HookIgnoreList:
    """Names of lifecycle hooks excluded from reconciliation.

    Attributes:
        names: Hook names to leave untouched.
        reasons: Optional per-hook explanation for audit logging.
    """

    names: frozenset[str] = field(default_factory=frozenset)
    reasons: dict[str, str] = field(default_factory=dict, compare=False, hash=False)

    def __contains__(self, name: object) -> bool:
        return name in self.names

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self.names))

    def __len__(self) -> int:
        return len(self.names)

    def merged(self, other: Iterable[str]) -> HookIgnoreList:
        """Return a list ignoring these names and the given ones."""
        return HookIgnoreList(names=self.names | frozenset(other), reasons=dict(self.reasons))

    @classmethod
    def from_yaml(cls, yaml_content: str) -> HookIgnoreList:
        """Parse an ignore list from YAML content.

        Expected format:
        ```yaml
        ignoreLifecycleHooks:
          - name: nth-termination
            reason: "Managed by aws-node-termination-handler"
          - launch-warmup
        ```

        Raises:
            IgnoreRulesError: If YAML is invalid or malformed.
        """
        try:
            data = yaml.safe_load(yaml_content)
        except yaml.YAMLError as e:
            raise IgnoreRulesError(f"Invalid YAML in ignore list: {e}") from e

        if data is None:
            return cls()

        if not isinstance(data, dict):
            raise IgnoreRulesError("Ignore list must be a YAML object")

        raw = data.get("ignoreLifecycleHooks", [])
        if not isinstance(raw, list):
            raise IgnoreRulesError("'ignoreLifecycleHooks' must be a list")

        names: set[str] = set()
        reasons: dict[str, str] = {}
        for i, entry in enumerate(raw):
            if isinstance(entry, str):
                name, reason = entry, ""
            elif isinstance(entry, dict):
                name, reason = entry.get("name"), str(entry.get("reason", ""))
            else:
                raise IgnoreRulesError(f"Entry {i} must be a hook name or an object")

            if not isinstance(name, str) or not name:
                raise IgnoreRulesError(f"Entry {i}: 'name' must be a non-empty string")

            names.add(name)
            if reason:
                reasons[name] = reason

        return cls(names=frozenset(names), reasons=reasons)

    @classmethod
    def from_file(cls, path: str) -> HookIgnoreList:
        """Load an ignore list from a YAML file.

        Raises:
            IgnoreRulesError: If file cannot be read or parsed.
        """
        try:
            with open(path, encoding="utf-8") as f:
                content = f.read()
        except OSError as e:
            raise IgnoreRulesError(f"Cannot read ignore list file: {e}") from e

        return cls.from_yaml(content)

    @classmethod
    def from_env(cls) -> HookIgnoreList:
        """Load an ignore list from environment.

        Environment Variables:
            IGNORE_LIFECYCLE_HOOKS: Comma separated hook names
            IGNORE_LIFECYCLE_HOOKS_FILE: Path to a YAML ignore list

        Both sources are combined. An unreadable file is an error: silently
        dropping it would let the reconciler delete hooks it must keep.

        Raises:
            IgnoreRulesError: If the file cannot be read or parsed.
        """
        names = {
            name.strip()
            for name in os.environ.get("IGNORE_LIFECYCLE_HOOKS", "").split(",")
            if name.strip()
        }
        config = cls(names=frozenset(names))

        rules_file = os.environ.get("IGNORE_LIFECYCLE_HOOKS_FILE")
        if rules_file:
            file_config = cls.from_file(rules_file)
            config = HookIgnoreList(
                names=config.names | file_config.names,
                reasons=dict(file_config.reasons),
            )

        if config.names:
            logger.info(
                "Lifecycle hook ignore list loaded",
                extra={"hooks": sorted(config.names)},
            )
        return config
