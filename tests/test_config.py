"""Tests for configuration loading."""

import os
from unittest.mock import patch

import pytest

from poolguard.config import Config, ConfigurationError


class TestConfig:
    """Tests for Config class."""

    def test_defaults(self) -> None:
        """Test the default configuration."""
        config = Config()

        assert config.preflight_checks_enabled is True
        assert config.aws_region is None
        assert config.kubectl_context is None
        assert config.kubectl_timeout_seconds == 30
        assert config.log_level == "INFO"

    def test_valid_config(self) -> None:
        """Test creating a fully specified configuration."""
        config = Config(
            preflight_checks_enabled=False,
            aws_region="eu-west-1",
            kubectl_context="arn:aws:eks:eu-west-1:123456789012:cluster/mgmt",
            kubectl_timeout_seconds=60,
            log_level="DEBUG",
        )

        assert config.aws_region == "eu-west-1"
        assert config.kubectl_timeout_seconds == 60

    @pytest.mark.parametrize("region", ["us-gov-west-1", "ap-southeast-2", "us-isob-east-1"])
    def test_valid_regions(self, region: str) -> None:
        """Test that partition-specific regions are accepted."""
        assert Config(aws_region=region).aws_region == region

    def test_invalid_region(self) -> None:
        """Test that malformed regions are rejected."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config(aws_region="westeurope")

        assert "AWS_REGION" in str(exc_info.value)

    def test_invalid_context(self) -> None:
        """Test that kubectl contexts with shell characters are rejected."""
        with pytest.raises(ConfigurationError, match="KUBECTL_CONTEXT"):
            Config(kubectl_context="mgmt; rm -rf /")

    @pytest.mark.parametrize("timeout", [0, 301])
    def test_timeout_bounds(self, timeout: int) -> None:
        """Test that kubectl timeouts outside 1..300 are rejected."""
        with pytest.raises(ConfigurationError, match="KUBECTL_TIMEOUT"):
            Config(kubectl_timeout_seconds=timeout)

    def test_invalid_log_level(self) -> None:
        """Test that unknown log levels are rejected."""
        with pytest.raises(ConfigurationError, match="LOG_LEVEL"):
            Config(log_level="TRACE")

    def test_errors_are_aggregated(self) -> None:
        """Test that all validation errors are reported together."""
        with pytest.raises(ConfigurationError) as exc_info:
            Config(aws_region="nowhere", kubectl_timeout_seconds=0)

        message = str(exc_info.value)
        assert "AWS_REGION" in message
        assert "KUBECTL_TIMEOUT" in message

    def test_config_is_frozen(self) -> None:
        """Test that configuration cannot be changed after loading."""
        config = Config()
        with pytest.raises(AttributeError):
            config.preflight_checks_enabled = False  # type: ignore[misc]


class TestConfigFromEnv:
    """Tests for Config.from_env()."""

    def test_empty_environment(self) -> None:
        """Test loading with no variables set."""
        with patch.dict(os.environ, {}, clear=True):
            config = Config.from_env()

        assert config == Config()

    def test_from_env(self) -> None:
        """Test loading every variable."""
        env = {
            "MACHINE_POOL_PREFLIGHT_CHECKS": "false",
            "AWS_REGION": "eu-central-1",
            "KUBECTL_CONTEXT": "mgmt",
            "KUBECTL_TIMEOUT": "45",
            "LOG_LEVEL": "debug",
        }
        with patch.dict(os.environ, env, clear=True):
            config = Config.from_env()

        assert config.preflight_checks_enabled is False
        assert config.aws_region == "eu-central-1"
        assert config.kubectl_context == "mgmt"
        assert config.kubectl_timeout_seconds == 45
        assert config.log_level == "DEBUG"

    @pytest.mark.parametrize(("value", "expected"), [("true", True), ("1", True), ("no", False)])
    def test_preflight_toggle(self, value: str, expected: bool) -> None:
        """Test parsing the preflight feature toggle."""
        with patch.dict(os.environ, {"MACHINE_POOL_PREFLIGHT_CHECKS": value}, clear=True):
            assert Config.from_env().preflight_checks_enabled is expected

    def test_empty_region_is_unset(self) -> None:
        """Test that an empty AWS_REGION falls back to SDK resolution."""
        with patch.dict(os.environ, {"AWS_REGION": ""}, clear=True):
            assert Config.from_env().aws_region is None

    def test_invalid_integer(self) -> None:
        """Test that a non-numeric timeout is rejected."""
        with patch.dict(os.environ, {"KUBECTL_TIMEOUT": "soon"}, clear=True):
            with pytest.raises(ConfigurationError, match="KUBECTL_TIMEOUT must be an integer"):
                Config.from_env()
