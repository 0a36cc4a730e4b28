"""Lifecycle hook reconciliation for Auto Scaling Groups.

This module converges the lifecycle hooks of one Auto Scaling Group toward
the hooks declared on the machine pool:
1. Describe the hooks that exist on the group
2. Plan: create missing, update drifted, delete extraneous hooks
3. Apply the plan one call at a time, stopping at the first failure
4. Report each outcome on the LifecycleHookReady condition

IGNORE LIST:
Hooks named in the ignore list are owned by someone else (a node
termination handler, a cluster autoscaler addon). They are neither created,
updated nor deleted, whatever their state.

The Auto Scaling API has no transactions. Calls are issued strictly in
order so that a failure can be attributed to exactly one hook, and nothing
is cached between calls: a retry recomputes the plan from the remote state.
"""

from __future__ import annotations

import logging
from collections.abc import Collection, Iterable
from dataclasses import dataclass, field
from enum import Enum
from typing import Protocol

from .conditions import (
    LIFECYCLE_HOOK_CREATION_FAILED,
    LIFECYCLE_HOOK_DELETION_FAILED,
    LIFECYCLE_HOOK_READY,
    LIFECYCLE_HOOK_UPDATE_FAILED,
    ConditionReporter,
    ConditionSeverity,
)
from .models import DEFAULT_HEARTBEAT_TIMEOUT_SECONDS, DefaultResult, LifecycleHook

logger = logging.getLogger(__name__)


class HookStoreError(Exception):
    """Raised when a lifecycle hook call to the cloud API fails."""

    pass


class HookStore(Protocol):
    """Lifecycle hook operations on one cloud account."""

    def describe(self, group_name: str) -> list[LifecycleHook]:
        """List the hooks on a group."""
        ...

    def put(self, group_name: str, hook: LifecycleHook) -> None:
        """Create or replace a hook."""
        ...

    def delete(self, group_name: str, hook_name: str) -> None:
        """Delete a hook by name."""
        ...


class HookAction(str, Enum):
    """What the reconciler does with a hook."""

    CREATE = "Create"
    UPDATE = "Update"
    DELETE = "Delete"
    NO_CHANGE = "NoChange"
    IGNORE = "Ignore"


@dataclass(frozen=True)
class PlannedChange:
    """One step of a reconcile plan."""

    action: HookAction
    hook_name: str
    hook: LifecycleHook | None = None


@dataclass
class HookReconcileResult:
    """Outcome of reconciling the hooks of one group."""

    group_name: str
    created: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    deleted: list[str] = field(default_factory=list)
    unchanged: list[str] = field(default_factory=list)
    ignored: list[str] = field(default_factory=list)

    @property
    def changes_applied(self) -> int:
        return len(self.created) + len(self.updated) + len(self.deleted)


def needs_update(existing: LifecycleHook, desired: LifecycleHook) -> bool:
    """Report whether an existing hook drifted from the desired one.

    Unset default results and heartbeat timeouts compare equal to the values
    the Auto Scaling API fills in (ABANDON and 3600 seconds). The role ARN
    is not compared.
    """
    return (
        (existing.default_result or DefaultResult.ABANDON)
        != (desired.default_result or DefaultResult.ABANDON)
        or _heartbeat(existing) != _heartbeat(desired)
        or existing.lifecycle_transition != desired.lifecycle_transition
        or existing.notification_target_arn != desired.notification_target_arn
        or existing.notification_metadata != desired.notification_metadata
    )


def _heartbeat(hook: LifecycleHook) -> int:
    if hook.heartbeat_timeout is None:
        return DEFAULT_HEARTBEAT_TIMEOUT_SECONDS
    return hook.heartbeat_timeout


def _unique_names(hooks: Iterable[LifecycleHook]) -> set[str]:
    names: set[str] = set()
    for hook in hooks:
        if hook.name in names:
            raise ValueError(f"duplicate lifecycle hook name in desired hooks: {hook.name!r}")
        names.add(hook.name)
    return names


def plan_changes(
    existing: Iterable[LifecycleHook],
    desired: Iterable[LifecycleHook],
    ignore: Collection[str] = (),
) -> list[PlannedChange]:
    """Compute the ordered changes that converge existing toward desired.

    Desired hooks come first, in declaration order, followed by deletions
    of extraneous hooks in the order the API listed them.

    Raises:
        ValueError: If desired contains two hooks with the same name.
    """
    existing_by_name = {hook.name: hook for hook in existing}
    desired_list = list(desired)
    desired_names = _unique_names(desired_list)

    changes: list[PlannedChange] = []

    for hook in desired_list:
        if hook.name in ignore:
            changes.append(PlannedChange(HookAction.IGNORE, hook.name, hook))
            continue

        current = existing_by_name.get(hook.name)
        if current is None:
            changes.append(PlannedChange(HookAction.CREATE, hook.name, hook))
        elif needs_update(current, hook):
            changes.append(PlannedChange(HookAction.UPDATE, hook.name, hook))
        else:
            changes.append(PlannedChange(HookAction.NO_CHANGE, hook.name, hook))

    for name, hook in existing_by_name.items():
        if name in desired_names:
            continue
        if name in ignore:
            changes.append(PlannedChange(HookAction.IGNORE, name, hook))
        else:
            changes.append(PlannedChange(HookAction.DELETE, name, hook))

    return changes


class LifecycleHookReconciler:
    """Converges the lifecycle hooks of Auto Scaling Groups.

    The reconciler keeps no per-group state; one instance can serve every
    group, as long as a single group is never reconciled concurrently.
    """

    def __init__(self, store: HookStore, conditions: ConditionReporter) -> None:
        self._store = store
        self._conditions = conditions

    def plan(
        self,
        group_name: str,
        desired: Iterable[LifecycleHook],
        ignore: Collection[str] = (),
    ) -> list[PlannedChange]:
        """Describe the group and return the changes reconcile() would make.

        Raises:
            ValueError: If desired contains duplicate names. Checked before
                the group is described.
        """
        desired_list = list(desired)
        _unique_names(desired_list)
        existing = self._store.describe(group_name)
        return plan_changes(existing, desired_list, ignore)

    def reconcile(
        self,
        group_name: str,
        desired: Iterable[LifecycleHook],
        ignore: Collection[str] = (),
    ) -> HookReconcileResult:
        """Create, update and delete hooks until the group matches desired.

        Args:
            group_name: Name of the Auto Scaling Group.
            desired: Hooks declared on the machine pool.
            ignore: Names of hooks this reconciler must not touch.

        Returns:
            Summary of the changes made.

        Raises:
            HookStoreError: On the first failing API call. Later hooks are
                left for the next reconcile.
            ValueError: If desired contains duplicate names.
        """
        changes = self.plan(group_name, desired, ignore)
        result = HookReconcileResult(group_name=group_name)

        for change in changes:
            if change.action == HookAction.IGNORE:
                logger.info(
                    "Not reconciling lifecycle hook since it's on the ignore list",
                    extra={"group": group_name, "hook": change.hook_name},
                )
                result.ignored.append(change.hook_name)
            elif change.action == HookAction.NO_CHANGE:
                self._conditions.mark_true(LIFECYCLE_HOOK_READY)
                result.unchanged.append(change.hook_name)
            elif change.action == HookAction.CREATE:
                self._apply_put(group_name, change, LIFECYCLE_HOOK_CREATION_FAILED)
                result.created.append(change.hook_name)
            elif change.action == HookAction.UPDATE:
                self._apply_put(group_name, change, LIFECYCLE_HOOK_UPDATE_FAILED)
                result.updated.append(change.hook_name)
            elif change.action == HookAction.DELETE:
                self._apply_delete(group_name, change)
                result.deleted.append(change.hook_name)

        logger.info(
            "Lifecycle hooks reconciled",
            extra={
                "group": group_name,
                "created_hooks": result.created,
                "updated_hooks": result.updated,
                "deleted_hooks": result.deleted,
                "unchanged_count": len(result.unchanged),
                "ignored_count": len(result.ignored),
            },
        )
        return result

    def _apply_put(self, group_name: str, change: PlannedChange, failure_reason: str) -> None:
        assert change.hook is not None
        verb = "Creating" if change.action == HookAction.CREATE else "Updating"
        logger.info(
            f"{verb} lifecycle hook",
            extra={"group": group_name, "hook": change.hook_name},
        )
        try:
            self._store.put(group_name, change.hook)
        except HookStoreError as e:
            self._mark_failed(failure_reason, e)
            raise
        self._conditions.mark_true(LIFECYCLE_HOOK_READY)

    def _apply_delete(self, group_name: str, change: PlannedChange) -> None:
        logger.info(
            "Deleting extraneous lifecycle hook",
            extra={"group": group_name, "hook": change.hook_name},
        )
        try:
            self._store.delete(group_name, change.hook_name)
        except HookStoreError as e:
            self._mark_failed(LIFECYCLE_HOOK_DELETION_FAILED, e)
            raise

    def _mark_failed(self, reason: str, error: Exception) -> None:
        self._conditions.mark_false(
            LIFECYCLE_HOOK_READY,
            reason,
            ConditionSeverity.ERROR,
            str(error),
        )
