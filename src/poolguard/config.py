"""Configuration management with validation.

Configuration is loaded once from the environment and passed explicitly into
the components that need it. Nothing reads process state after startup, which
keeps the preflight gate a pure function of its inputs.
"""

from __future__ import annotations

import os
import re
from dataclasses import dataclass


class ConfigurationError(Exception):
    """Raised when configuration validation fails."""

    pass


# Configuration constants with documented bounds
DEFAULT_KUBECTL_TIMEOUT_SECONDS = 30
MIN_KUBECTL_TIMEOUT_SECONDS = 1
MAX_KUBECTL_TIMEOUT_SECONDS = 300

DEFAULT_LOG_LEVEL = "INFO"
VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR")

# Input validation patterns
VALID_REGION_PATTERN = r"^[a-z]{2}(-gov|-iso[a-z]*)?-[a-z]+-[0-9]$"
VALID_CONTEXT_PATTERN = r"^[A-Za-z0-9@:/._-]{1,253}$"


@dataclass(frozen=True)
class Config:
    """Operator configuration loaded from environment variables.

    All fields are validated at construction time. Invalid configurations
    raise ConfigurationError immediately rather than failing at runtime.
    """

    # Kill switch for the machine pool preflight gate
    preflight_checks_enabled: bool = True

    # Cloud and cluster access
    aws_region: str | None = None
    kubectl_context: str | None = None
    kubectl_timeout_seconds: int = DEFAULT_KUBECTL_TIMEOUT_SECONDS

    log_level: str = DEFAULT_LOG_LEVEL

    def __post_init__(self) -> None:
        """Validate configuration after initialization."""
        errors: list[str] = []

        if self.aws_region is not None and not re.match(VALID_REGION_PATTERN, self.aws_region):
            errors.append(f"AWS_REGION must be a valid AWS region: {self.aws_region}")

        if self.kubectl_context is not None and not re.match(
            VALID_CONTEXT_PATTERN, self.kubectl_context
        ):
            errors.append(f"KUBECTL_CONTEXT contains invalid characters: {self.kubectl_context}")

        if not (
            MIN_KUBECTL_TIMEOUT_SECONDS
            <= self.kubectl_timeout_seconds
            <= MAX_KUBECTL_TIMEOUT_SECONDS
        ):
            errors.append(
                f"KUBECTL_TIMEOUT must be between {MIN_KUBECTL_TIMEOUT_SECONDS} "
                f"and {MAX_KUBECTL_TIMEOUT_SECONDS} seconds"
            )

        if self.log_level not in VALID_LOG_LEVELS:
            errors.append(f"LOG_LEVEL must be one of {list(VALID_LOG_LEVELS)}: {self.log_level}")

        if errors:
            error_msg = "Configuration validation failed:\n  - " + "\n  - ".join(errors)
            raise ConfigurationError(error_msg)

    @classmethod
    def from_env(cls) -> Config:
        """Load configuration from environment variables.

        Environment Variables:
            MACHINE_POOL_PREFLIGHT_CHECKS: If "false", the preflight gate always
                reports safe (default: true)
            AWS_REGION: Region for the Auto Scaling API (default: SDK resolution)
            KUBECTL_CONTEXT: kubeconfig context for control plane lookups
            KUBECTL_TIMEOUT: Timeout for kubectl calls in seconds (default: 30)
            LOG_LEVEL: One of DEBUG, INFO, WARNING, ERROR (default: INFO)
        """

        def get_int(key: str, default: int) -> int:
            value = os.environ.get(key)
            if value is None:
                return default
            try:
                return int(value)
            except ValueError as e:
                raise ConfigurationError(f"{key} must be an integer: {value}") from e

        def get_bool(key: str, default: bool) -> bool:
            value = os.environ.get(key, "").lower()
            if not value:
                return default
            return value in ("true", "1", "yes")

        return cls(
            preflight_checks_enabled=get_bool("MACHINE_POOL_PREFLIGHT_CHECKS", True),
            aws_region=os.environ.get("AWS_REGION") or None,
            kubectl_context=os.environ.get("KUBECTL_CONTEXT") or None,
            kubectl_timeout_seconds=get_int("KUBECTL_TIMEOUT", DEFAULT_KUBECTL_TIMEOUT_SECONDS),
            log_level=os.environ.get("LOG_LEVEL", DEFAULT_LOG_LEVEL).upper(),
        )
