"""Semantic version parsing and Kubernetes version skew policy.

This module holds the pure comparison logic used by the preflight gate:
1. Tolerant parsing of loosely formatted versions ("v1.26", " 1.26.2 ")
2. Ordering that treats build metadata drift as "newer"
3. Minor-version skew policy between a machine pool and its control plane
4. Kubeadm bootstrap policy (major.minor must match exactly)

DESIGN PHILOSOPHY:
- Parse failures are errors, never a "skewed" verdict
- No I/O, no logging of decisions: callers own the context
"""

from __future__ import annotations

import re
from dataclasses import dataclass

# Control-plane minor release where the allowed pool skew widens from 3 to 4
WIDENED_SKEW_MINOR = 28
MAX_MINOR_SKEW = 3
MAX_MINOR_SKEW_WIDENED = 4

_VERSION_PATTERN = re.compile(
    r"^(?P<numbers>[0-9]+(?:\.[0-9]+){0,2})"
    r"(?:-(?P<pre>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+(?P<build>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?$"
)


class VersionParseError(ValueError):
    """Raised when a version string is not a tolerable semantic version."""

    pass


@dataclass(frozen=True)
class SemanticVersion:
    """A parsed major.minor.patch version with optional pre-release and build tags."""

    major: int
    minor: int
    patch: int
    pre: tuple[str, ...] = ()
    build: tuple[str, ...] = ()

    def __str__(self) -> str:
        text = f"{self.major}.{self.minor}.{self.patch}"
        if self.pre:
            text += "-" + ".".join(self.pre)
        if self.build:
            text += "+" + ".".join(self.build)
        return text

    @property
    def core(self) -> tuple[int, int, int]:
        """The numeric (major, minor, patch) triple."""
        return (self.major, self.minor, self.patch)


def parse_tolerant(text: str) -> SemanticVersion:
    """Parse a version, accepting a leading "v" and missing minor/patch parts.

    Args:
        text: Version string such as "v1.26.2", "1.28" or "v1.27.1+build.3".

    Returns:
        The parsed SemanticVersion.

    Raises:
        VersionParseError: If the string is empty or malformed, e.g. "v1.25.6.0".
    """
    if not isinstance(text, str):
        raise VersionParseError(f"version must be a string, got {type(text).__name__}")

    candidate = text.strip()
    if candidate[:1] in ("v", "V"):
        candidate = candidate[1:]

    match = _VERSION_PATTERN.match(candidate)
    if match is None:
        raise VersionParseError(f"invalid semantic version: {text!r}")

    numbers = [int(part) for part in match.group("numbers").split(".")]
    while len(numbers) < 3:
        numbers.append(0)

    pre = tuple(match.group("pre").split(".")) if match.group("pre") else ()
    build = tuple(match.group("build").split(".")) if match.group("build") else ()

    for identifier in pre:
        if identifier.isdigit() and len(identifier) > 1 and identifier.startswith("0"):
            raise VersionParseError(
                f"invalid semantic version: {text!r} (numeric pre-release with leading zero)"
            )

    return SemanticVersion(numbers[0], numbers[1], numbers[2], pre=pre, build=build)


def _compare_pre_release(a: tuple[str, ...], b: tuple[str, ...]) -> int:
    """Order pre-release identifiers per SemVer 2.0 precedence rules."""
    # A version without pre-release has higher precedence
    if not a and not b:
        return 0
    if not a:
        return 1
    if not b:
        return -1

    for left, right in zip(a, b):
        if left == right:
            continue
        left_numeric, right_numeric = left.isdigit(), right.isdigit()
        if left_numeric and right_numeric:
            return 1 if int(left) > int(right) else -1
        if left_numeric:
            return -1
        if right_numeric:
            return 1
        return 1 if left > right else -1

    if len(a) == len(b):
        return 0
    return 1 if len(a) > len(b) else -1


def compare(a: SemanticVersion, b: SemanticVersion, with_build_tags: bool = True) -> int:
    """Compare two versions.

    When the numeric triple and pre-release are equal but the build metadata
    differs, ``a`` is reported as greater. A control plane rolling out a
    build-tagged release therefore counts as upgrading until its build tags
    match as well.

    Returns:
        1 if a > b, -1 if a < b, 0 if equal.
    """
    if a.core != b.core:
        return 1 if a.core > b.core else -1

    pre = _compare_pre_release(a.pre, b.pre)
    if pre != 0:
        return pre

    if with_build_tags and a.build != b.build:
        return 1

    return 0


def is_skew_acceptable(control_plane: SemanticVersion, pool: SemanticVersion) -> bool:
    """Check the Kubernetes minor-version skew policy for a machine pool.

    The pool may not be newer than the control plane, and may trail it by at
    most 3 minors (4 minors from control plane v1.28 onwards).
    """
    if pool.minor > control_plane.minor:
        return False

    max_skew = (
        MAX_MINOR_SKEW_WIDENED
        if control_plane.minor >= WIDENED_SKEW_MINOR
        else MAX_MINOR_SKEW
    )
    return control_plane.minor - pool.minor <= max_skew


def is_kubeadm_skew_acceptable(control_plane: SemanticVersion, pool: SemanticVersion) -> bool:
    """Kubeadm joins require the pool to run the control plane's major.minor."""
    return (control_plane.major, control_plane.minor) == (pool.major, pool.minor)
