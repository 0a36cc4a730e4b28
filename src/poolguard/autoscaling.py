"""Auto Scaling lifecycle hook store backed by boto3.

Translates between the LifecycleHook model and the Auto Scaling API shapes,
and wraps SDK failures with the operation, hook and group involved.
PutLifecycleHook is declarative, so it serves both creation and update.
"""

from __future__ import annotations

import logging
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from .lifecycle_hooks import HookStoreError
from .models import DefaultResult, LifecycleHook, LifecycleTransition

logger = logging.getLogger(__name__)


def sdk_to_lifecycle_hook(hook: dict[str, Any]) -> LifecycleHook:
    """Convert a DescribeLifecycleHooks entry into a LifecycleHook."""
    default_result = hook.get("DefaultResult")
    return LifecycleHook(
        name=hook["LifecycleHookName"],
        lifecycle_transition=LifecycleTransition(hook["LifecycleTransition"]),
        default_result=DefaultResult(default_result) if default_result else None,
        heartbeat_timeout=hook.get("HeartbeatTimeout"),
        role_arn=hook.get("RoleARN"),
        notification_target_arn=hook.get("NotificationTargetARN"),
        notification_metadata=hook.get("NotificationMetadata"),
    )


def lifecycle_hook_to_put_input(group_name: str, hook: LifecycleHook) -> dict[str, Any]:
    """Build PutLifecycleHook arguments, omitting unset optional fields."""
    params: dict[str, Any] = {
        "AutoScalingGroupName": group_name,
        "LifecycleHookName": hook.name,
        "LifecycleTransition": hook.lifecycle_transition.value,
    }

    if hook.role_arn is not None:
        params["RoleARN"] = hook.role_arn
    if hook.notification_target_arn is not None:
        params["NotificationTargetARN"] = hook.notification_target_arn
    if hook.notification_metadata is not None:
        params["NotificationMetadata"] = hook.notification_metadata
    if hook.default_result is not None:
        params["DefaultResult"] = hook.default_result.value
    if hook.heartbeat_timeout is not None:
        params["HeartbeatTimeout"] = hook.heartbeat_timeout

    return params


class AutoScalingHookStore:
    """HookStore implementation using the Auto Scaling API."""

    def __init__(self, client: Any | None = None, region_name: str | None = None) -> None:
        """Initialize the store.

        Args:
            client: A boto3 autoscaling client. Created from the default
                credential chain when not given.
            region_name: Region for the created client.
        """
        self._client = client or boto3.client("autoscaling", region_name=region_name)

    def describe(self, group_name: str) -> list[LifecycleHook]:
        try:
            response = self._client.describe_lifecycle_hooks(AutoScalingGroupName=group_name)
        except (ClientError, BotoCoreError) as e:
            raise HookStoreError(
                f"failed to describe lifecycle hooks for AutoScalingGroup {group_name!r}: {e}"
            ) from e

        hooks = [sdk_to_lifecycle_hook(h) for h in response.get("LifecycleHooks", [])]
        logger.debug(
            "Described lifecycle hooks",
            extra={"group": group_name, "hooks": [h.name for h in hooks]},
        )
        return hooks

    def put(self, group_name: str, hook: LifecycleHook) -> None:
        try:
            self._client.put_lifecycle_hook(**lifecycle_hook_to_put_input(group_name, hook))
        except (ClientError, BotoCoreError) as e:
            raise HookStoreError(
                f"failed to put lifecycle hook {hook.name!r} for AutoScalingGroup "
                f"{group_name!r}: {e}"
            ) from e

    def delete(self, group_name: str, hook_name: str) -> None:
        try:
            self._client.delete_lifecycle_hook(
                AutoScalingGroupName=group_name,
                LifecycleHookName=hook_name,
            )
        except (ClientError, BotoCoreError) as e:
            raise HookStoreError(
                f"failed to delete lifecycle hook {hook_name!r} for AutoScalingGroup "
                f"{group_name!r}: {e}"
            ) from e
