"""Pydantic models for machine pool specifications with admission validation.

These models provide:
1. Type-safe YAML parsing of the machine pool resource
2. Validation at the boundary (fail fast, fail loudly)
3. Translation into the inputs of the preflight gate and hook reconciler

Admission rules are enforced once, when a spec is created or updated. Hooks
read back from the Auto Scaling API are built from the same LifecycleHook
model but are never re-validated against admission rules.
"""

from __future__ import annotations

import re
from decimal import Decimal
from enum import Enum
from typing import Annotated, Any

from pydantic import (
    BaseModel,
    Field,
    ValidationError,
    ValidationInfo,
    field_validator,
    model_validator,
)

from .preflight import BootstrapConfigRef, MachinePoolRequest, parse_skip_checks

# Admission bounds
MAX_TAG_KEY_LENGTH = 128
MAX_TAG_VALUE_LENGTH = 256
MIN_HEARTBEAT_TIMEOUT_SECONDS = 30
MAX_HEARTBEAT_TIMEOUT_SECONDS = 172800
MAX_HEALTHY_PERCENTAGE_SPREAD = 100

# Values the Auto Scaling API applies when a hook leaves them unset
DEFAULT_HEARTBEAT_TIMEOUT_SECONDS = 3600

# Validation context key that defers admission errors to the caller
_COLLECT_ADMISSION_ERRORS = "collect_admission_errors"

# Go duration syntax: a sequence of decimal numbers, each with a unit
_DURATION_PATTERN = re.compile(r"^(?:(?:[0-9]+(?:\.[0-9]*)?|\.[0-9]+)(?:ns|us|µs|μs|ms|s|m|h))+$")
_DURATION_PART = re.compile(r"([0-9]*\.?[0-9]*)(ns|us|µs|μs|ms|s|m|h)")
_DURATION_UNITS = {
    "ns": Decimal("0.000000001"),
    "us": Decimal("0.000001"),
    "µs": Decimal("0.000001"),
    "μs": Decimal("0.000001"),
    "ms": Decimal("0.001"),
    "s": Decimal(1),
    "m": Decimal(60),
    "h": Decimal(3600),
}


class AdmissionError(Exception):
    """Raised when a machine pool spec violates admission rules."""

    pass


class LifecycleTransition(str, Enum):
    """Scaling transitions a lifecycle hook can pause."""

    INSTANCE_LAUNCHING = "autoscaling:EC2_INSTANCE_LAUNCHING"
    INSTANCE_TERMINATING = "autoscaling:EC2_INSTANCE_TERMINATING"


class DefaultResult(str, Enum):
    """Action taken when a lifecycle hook times out."""

    CONTINUE = "CONTINUE"
    ABANDON = "ABANDON"


def parse_duration_seconds(value: Any) -> Any:
    """Accept heartbeat timeouts as seconds or duration strings.

    Strings follow Go duration syntax ("90s", "1h30m", "1.5h", "90000ms").
    Fractions of a second are truncated, so "1500ms" is 1 second.
    """
    if value is None or isinstance(value, int):
        return value
    if isinstance(value, str):
        text = value.strip()
        if text.isdigit():
            return int(text)
        if not _DURATION_PATTERN.match(text):
            raise ValueError(f"heartbeatTimeout is not a valid duration: {value!r}")
        total = sum(
            Decimal(number) * _DURATION_UNITS[unit]
            for number, unit in _DURATION_PART.findall(text)
        )
        return int(total)
    return value


# =============================================================================
# Lifecycle Hooks
# =============================================================================


class LifecycleHook(BaseModel):
    """An Auto Scaling lifecycle hook, identified by name within one group."""

    model_config = {"extra": "ignore", "populate_by_name": True, "frozen": True}

    name: Annotated[str, Field(min_length=1, max_length=255)]
    lifecycle_transition: LifecycleTransition = Field(alias="lifecycleTransition")
    default_result: DefaultResult | None = Field(None, alias="defaultResult")
    heartbeat_timeout: int | None = Field(None, alias="heartbeatTimeout")
    role_arn: str | None = Field(None, alias="roleARN")
    notification_target_arn: str | None = Field(None, alias="notificationTargetARN")
    notification_metadata: str | None = Field(None, alias="notificationMetadata")

    @field_validator("heartbeat_timeout", mode="before")
    @classmethod
    def coerce_heartbeat_timeout(cls, v: Any) -> Any:
        return parse_duration_seconds(v)

    def admission_errors(self) -> list[str]:
        """Return admission rule violations for this hook."""
        errors: list[str] = []
        prefix = f"lifecycleHooks[{self.name}]"

        if self.role_arn and not self.notification_target_arn:
            errors.append(f"{prefix}: notificationTargetARN must be set when roleARN is set")
        if self.notification_target_arn and not self.role_arn:
            errors.append(f"{prefix}: roleARN must be set when notificationTargetARN is set")

        if self.heartbeat_timeout is not None and not (
            MIN_HEARTBEAT_TIMEOUT_SECONDS
            <= self.heartbeat_timeout
            <= MAX_HEARTBEAT_TIMEOUT_SECONDS
        ):
            errors.append(
                f"{prefix}: heartbeatTimeout must be between "
                f"{MIN_HEARTBEAT_TIMEOUT_SECONDS} and {MAX_HEARTBEAT_TIMEOUT_SECONDS} seconds, "
                f"got {self.heartbeat_timeout}"
            )

        return errors


# =============================================================================
# Machine Pool
# =============================================================================


class Filter(BaseModel):
    """EC2 describe filter used to look up a resource."""

    model_config = {"extra": "ignore"}

    name: Annotated[str, Field(min_length=1)]
    values: list[str] = Field(default_factory=list)


class ResourceReference(BaseModel):
    """Reference to an AWS resource by ID or by filters."""

    model_config = {"extra": "ignore"}

    id: str | None = None
    filters: list[Filter] = Field(default_factory=list)


class ObjectReference(BaseModel):
    """Reference to a Kubernetes object, such as a bootstrap config template."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    api_version: str = Field("", alias="apiVersion")
    kind: str = ""
    name: str | None = None
    namespace: str | None = None


class SpotMarketOptions(BaseModel):
    """Spot instance request options."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    max_price: str | None = Field(None, alias="maxPrice")


class LaunchTemplateConfig(BaseModel):
    """Launch template configuration for the pool's instances."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    name: str | None = None
    instance_type: str | None = Field(None, alias="instanceType")
    ami_id: str | None = Field(None, alias="amiId")
    additional_security_groups: list[ResourceReference] = Field(
        default_factory=list, alias="additionalSecurityGroups"
    )
    spot_market_options: SpotMarketOptions | None = Field(None, alias="spotMarketOptions")


class InstanceOverride(BaseModel):
    """Instance type override in a mixed instances policy."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    instance_type: Annotated[str, Field(min_length=1, alias="instanceType")]


class MixedInstancesPolicy(BaseModel):
    """Mixed instances policy for the Auto Scaling Group."""

    model_config = {"extra": "ignore"}

    overrides: list[InstanceOverride] = Field(default_factory=list)


class RefreshPreferences(BaseModel):
    """Instance refresh preferences."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    disable: bool = False
    strategy: str | None = None
    min_healthy_percentage: int | None = Field(None, alias="minHealthyPercentage")
    max_healthy_percentage: int | None = Field(None, alias="maxHealthyPercentage")


class MachinePoolSpec(BaseModel):
    """Desired state of a machine pool backed by an Auto Scaling Group."""

    model_config = {"extra": "ignore", "populate_by_name": True}

    name: str | None = None
    version: str | None = None
    bootstrap_config_ref: ObjectReference | None = Field(None, alias="bootstrapConfigRef")

    # Comma separated preflight check names, same format as the
    # machineset.cluster.x-k8s.io/skip-preflight-checks annotation
    skip_preflight_checks: str | None = Field(None, alias="skipPreflightChecks")

    min_size: int = Field(1, ge=0, alias="minSize")
    max_size: int = Field(1, ge=1, alias="maxSize")
    additional_tags: dict[str, str] = Field(default_factory=dict, alias="additionalTags")
    subnets: list[ResourceReference] = Field(default_factory=list)
    launch_template: LaunchTemplateConfig = Field(
        default_factory=LaunchTemplateConfig, alias="awsLaunchTemplate"
    )
    mixed_instances_policy: MixedInstancesPolicy | None = Field(
        None, alias="mixedInstancesPolicy"
    )
    refresh_preferences: RefreshPreferences | None = Field(None, alias="refreshPreferences")
    lifecycle_hooks: list[LifecycleHook] = Field(default_factory=list, alias="lifecycleHooks")

    @model_validator(mode="after")
    def check_admission_rules(self, info: ValidationInfo) -> MachinePoolSpec:
        if info.context and info.context.get(_COLLECT_ADMISSION_ERRORS):
            return self
        errors = self.admission_errors()
        if errors:
            raise ValueError("; ".join(errors))
        return self

    def admission_errors(self) -> list[str]:
        """Collect every admission rule violation in this spec."""
        errors: list[str] = []

        for key, value in self.additional_tags.items():
            if not key:
                errors.append("additionalTags: tag keys must not be empty")
            elif len(key) > MAX_TAG_KEY_LENGTH:
                errors.append(
                    f"additionalTags: key {key[:16]!r}... exceeds {MAX_TAG_KEY_LENGTH} characters"
                )
            if len(value) > MAX_TAG_VALUE_LENGTH:
                errors.append(
                    f"additionalTags: value for key {key!r} exceeds "
                    f"{MAX_TAG_VALUE_LENGTH} characters"
                )

        reference_lists = [
            ("subnets", self.subnets),
            (
                "awsLaunchTemplate.additionalSecurityGroups",
                self.launch_template.additional_security_groups,
            ),
        ]
        for field_name, refs in reference_lists:
            for index, ref in enumerate(refs):
                if ref.id and ref.filters:
                    errors.append(
                        f"{field_name}[{index}]: only one of id or filters may be specified"
                    )

        if self.launch_template.spot_market_options and self.mixed_instances_policy:
            errors.append(
                "awsLaunchTemplate.spotMarketOptions: cannot be set together with "
                "mixedInstancesPolicy"
            )

        if self.refresh_preferences is not None:
            prefs = self.refresh_preferences
            if prefs.max_healthy_percentage is not None:
                if prefs.min_healthy_percentage is None:
                    errors.append(
                        "refreshPreferences.minHealthyPercentage: must be set when "
                        "maxHealthyPercentage is set"
                    )
                elif (
                    prefs.max_healthy_percentage - prefs.min_healthy_percentage
                    > MAX_HEALTHY_PERCENTAGE_SPREAD
                ):
                    errors.append(
                        "refreshPreferences.minHealthyPercentage: difference to "
                        f"maxHealthyPercentage cannot exceed {MAX_HEALTHY_PERCENTAGE_SPREAD}"
                    )

        seen: set[str] = set()
        for hook in self.lifecycle_hooks:
            if hook.name in seen:
                errors.append(f"lifecycleHooks: duplicate hook name {hook.name!r}")
            seen.add(hook.name)
            errors.extend(hook.admission_errors())

        if self.max_size < self.min_size:
            errors.append("maxSize: must be greater than or equal to minSize")

        return errors

    def to_preflight_request(self) -> MachinePoolRequest:
        """Build the preflight gate input for this pool."""
        return MachinePoolRequest(
            desired_version=self.version,
            bootstrap_config_ref=(
                BootstrapConfigRef(
                    api_version=self.bootstrap_config_ref.api_version,
                    kind=self.bootstrap_config_ref.kind,
                )
                if self.bootstrap_config_ref is not None
                else None
            ),
            skip_checks=parse_skip_checks(self.skip_preflight_checks),
        )


def _validation_messages(error: ValidationError) -> list[str]:
    messages: list[str] = []
    for item in error.errors():
        location = ".".join(str(p) for p in item.get("loc", ()))
        message = item.get("msg", "")
        if message.startswith("Value error, "):
            message = message[len("Value error, "):]
        messages.append(f"{location}: {message}" if location else message)
    return messages


def _format_validation_error(error: ValidationError) -> str:
    return "; ".join(_validation_messages(error))


def _violations(data: dict[str, Any]) -> list[str]:
    """Return every violation in data, one entry per field problem."""
    try:
        spec = MachinePoolSpec.model_validate(data, context={_COLLECT_ADMISSION_ERRORS: True})
    except ValidationError as e:
        return _validation_messages(e)
    return spec.admission_errors()


def validate_create(data: dict[str, Any]) -> MachinePoolSpec:
    """Validate a new machine pool spec.

    Raises:
        AdmissionError: With every violation, each naming the offending field.
    """
    try:
        return MachinePoolSpec.model_validate(data)
    except ValidationError as e:
        raise AdmissionError(f"Machine pool spec rejected: {_format_validation_error(e)}") from e


def validate_update(old: dict[str, Any], new: dict[str, Any]) -> MachinePoolSpec:
    """Validate an update to a machine pool spec.

    The new object must pass every rule, including rules the old object
    already broke. Violations carried over from old are marked as such so
    that the update is not blamed for them.

    Raises:
        AdmissionError: With every violation of the new object.
    """
    errors = _violations(new)
    if not errors:
        return MachinePoolSpec.model_validate(new)

    previous = set(_violations(old))
    marked = [
        f"{message} (already present before this update)" if message in previous else message
        for message in errors
    ]
    raise AdmissionError(f"Machine pool spec update rejected: {'; '.join(marked)}")
