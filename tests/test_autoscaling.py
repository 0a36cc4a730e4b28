"""Tests for the Auto Scaling hook store."""

from unittest.mock import MagicMock, patch

import pytest
from botocore.exceptions import ClientError, EndpointConnectionError

from poolguard.autoscaling import (
    AutoScalingHookStore,
    lifecycle_hook_to_put_input,
    sdk_to_lifecycle_hook,
)
from poolguard.lifecycle_hooks import HookStoreError
from poolguard.models import DefaultResult, LifecycleHook, LifecycleTransition


def client_error(code: str, operation: str) -> ClientError:
    return ClientError({"Error": {"Code": code, "Message": f"{code} message"}}, operation)


class TestTranslation:
    """Tests for converting between SDK shapes and models."""

    def test_sdk_to_lifecycle_hook(self) -> None:
        """Test converting a described hook."""
        hook = sdk_to_lifecycle_hook(
            {
                "LifecycleHookName": "drain",
                "AutoScalingGroupName": "asg-1",
                "LifecycleTransition": "autoscaling:EC2_INSTANCE_TERMINATING",
                "RoleARN": "arn:aws:iam::123456789012:role/hooks",
                "NotificationTargetARN": "arn:aws:sqs:eu-west-1:123456789012:drain",
                "NotificationMetadata": '{"cluster":"c1"}',
                "HeartbeatTimeout": 300,
                "GlobalTimeout": 30000,
                "DefaultResult": "CONTINUE",
            }
        )

        assert hook.name == "drain"
        assert hook.lifecycle_transition == LifecycleTransition.INSTANCE_TERMINATING
        assert hook.default_result == DefaultResult.CONTINUE
        assert hook.heartbeat_timeout == 300
        assert hook.role_arn == "arn:aws:iam::123456789012:role/hooks"
        assert hook.notification_metadata == '{"cluster":"c1"}'

    def test_sdk_to_lifecycle_hook_minimal(self) -> None:
        """Test that optional fields are left unset."""
        hook = sdk_to_lifecycle_hook(
            {
                "LifecycleHookName": "warmup",
                "LifecycleTransition": "autoscaling:EC2_INSTANCE_LAUNCHING",
            }
        )

        assert hook.default_result is None
        assert hook.heartbeat_timeout is None
        assert hook.notification_target_arn is None

    def test_put_input_omits_unset_fields(self) -> None:
        """Test that only set fields are sent."""
        hook = LifecycleHook(
            name="warmup", lifecycle_transition=LifecycleTransition.INSTANCE_LAUNCHING
        )

        assert lifecycle_hook_to_put_input("asg-1", hook) == {
            "AutoScalingGroupName": "asg-1",
            "LifecycleHookName": "warmup",
            "LifecycleTransition": "autoscaling:EC2_INSTANCE_LAUNCHING",
        }

    def test_put_input_full(self) -> None:
        """Test that every set field is sent."""
        hook = LifecycleHook(
            name="drain",
            lifecycle_transition=LifecycleTransition.INSTANCE_TERMINATING,
            default_result=DefaultResult.ABANDON,
            heartbeat_timeout=600,
            role_arn="arn:role",
            notification_target_arn="arn:sqs",
            notification_metadata="meta",
        )

        params = lifecycle_hook_to_put_input("asg-1", hook)

        assert params["DefaultResult"] == "ABANDON"
        assert params["HeartbeatTimeout"] == 600
        assert params["RoleARN"] == "arn:role"
        assert params["NotificationTargetARN"] == "arn:sqs"
        assert params["NotificationMetadata"] == "meta"


class TestAutoScalingHookStore:
    """Tests for AutoScalingHookStore against a mocked client."""

    @pytest.fixture
    def client(self) -> MagicMock:
        return MagicMock()

    @pytest.fixture
    def store(self, client: MagicMock) -> AutoScalingHookStore:
        return AutoScalingHookStore(client=client)

    def test_creates_default_client(self) -> None:
        """Test that a client is created for the configured region."""
        with patch("poolguard.autoscaling.boto3.client") as factory:
            AutoScalingHookStore(region_name="eu-west-1")

        factory.assert_called_once_with("autoscaling", region_name="eu-west-1")

    def test_describe(self, store: AutoScalingHookStore, client: MagicMock) -> None:
        """Test listing hooks on a group."""
        client.describe_lifecycle_hooks.return_value = {
            "LifecycleHooks": [
                {
                    "LifecycleHookName": "drain",
                    "LifecycleTransition": "autoscaling:EC2_INSTANCE_TERMINATING",
                }
            ]
        }

        hooks = store.describe("asg-1")

        assert [h.name for h in hooks] == ["drain"]
        client.describe_lifecycle_hooks.assert_called_once_with(AutoScalingGroupName="asg-1")

    def test_describe_empty(self, store: AutoScalingHookStore, client: MagicMock) -> None:
        """Test a group without hooks."""
        client.describe_lifecycle_hooks.return_value = {}
        assert store.describe("asg-1") == []

    def test_describe_error(self, store: AutoScalingHookStore, client: MagicMock) -> None:
        """Test that describe failures name the group."""
        client.describe_lifecycle_hooks.side_effect = client_error(
            "ValidationError", "DescribeLifecycleHooks"
        )

        with pytest.raises(HookStoreError, match="AutoScalingGroup 'asg-1'"):
            store.describe("asg-1")

    def test_put(self, store: AutoScalingHookStore, client: MagicMock) -> None:
        """Test that put forwards the translated input."""
        hook = LifecycleHook(
            name="drain",
            lifecycle_transition=LifecycleTransition.INSTANCE_TERMINATING,
            heartbeat_timeout=300,
        )

        store.put("asg-1", hook)

        client.put_lifecycle_hook.assert_called_once_with(
            AutoScalingGroupName="asg-1",
            LifecycleHookName="drain",
            LifecycleTransition="autoscaling:EC2_INSTANCE_TERMINATING",
            HeartbeatTimeout=300,
        )

    def test_put_error(self, store: AutoScalingHookStore, client: MagicMock) -> None:
        """Test that put failures name the hook and group."""
        client.put_lifecycle_hook.side_effect = client_error("LimitExceeded", "PutLifecycleHook")
        hook = LifecycleHook(
            name="drain", lifecycle_transition=LifecycleTransition.INSTANCE_TERMINATING
        )

        with pytest.raises(HookStoreError) as exc_info:
            store.put("asg-1", hook)

        message = str(exc_info.value)
        assert "'drain'" in message
        assert "'asg-1'" in message
        assert "LimitExceeded" in message

    def test_delete(self, store: AutoScalingHookStore, client: MagicMock) -> None:
        """Test deleting a hook by name."""
        store.delete("asg-1", "stale")

        client.delete_lifecycle_hook.assert_called_once_with(
            AutoScalingGroupName="asg-1", LifecycleHookName="stale"
        )

    def test_delete_connection_error(
        self, store: AutoScalingHookStore, client: MagicMock
    ) -> None:
        """Test that SDK transport errors are wrapped too."""
        client.delete_lifecycle_hook.side_effect = EndpointConnectionError(
            endpoint_url="https://autoscaling.eu-west-1.amazonaws.com"
        )

        with pytest.raises(HookStoreError, match="failed to delete lifecycle hook 'stale'"):
            store.delete("asg-1", "stale")
