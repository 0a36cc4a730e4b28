"""Machine pool spec file loading with validation.

SECURITY: All file operations enforce size limits to prevent DoS attacks
via large files. Input validation is performed at the boundary.
"""

from __future__ import annotations

import logging
from pathlib import Path

import yaml

from .models import AdmissionError, MachinePoolSpec, validate_create

logger = logging.getLogger(__name__)

MAX_SPEC_FILE_SIZE_BYTES = 1024 * 1024  # 1MB max spec file


class SpecLoadError(Exception):
    """Raised when spec loading or validation fails."""

    pass


def load_machine_pool_spec(spec_path: Path) -> MachinePoolSpec:
    """Load and admission-validate a machine pool spec from YAML.

    Args:
        spec_path: Path to the YAML file.

    Returns:
        Validated spec instance.

    Raises:
        SpecLoadError: If the spec cannot be loaded or fails validation.
    """
    if not spec_path.exists():
        raise SpecLoadError(f"Spec file not found: {spec_path}")

    # SECURITY: Check file size before reading to prevent DoS
    try:
        file_size = spec_path.stat().st_size
    except OSError as e:
        raise SpecLoadError(f"Cannot stat spec file {spec_path}: {e}") from e

    if file_size > MAX_SPEC_FILE_SIZE_BYTES:
        raise SpecLoadError(
            f"Spec file {spec_path} exceeds maximum size of {MAX_SPEC_FILE_SIZE_BYTES} bytes"
        )

    try:
        with open(spec_path, encoding="utf-8") as f:
            raw = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise SpecLoadError(f"Invalid YAML in {spec_path}: {e}") from e
    except OSError as e:
        raise SpecLoadError(f"Cannot read spec file {spec_path}: {e}") from e

    if not isinstance(raw, dict):
        raise SpecLoadError(f"Spec file {spec_path} must contain a YAML mapping")

    # Accept both a bare spec and a full resource with a spec section
    data = raw["spec"] if isinstance(raw.get("spec"), dict) else raw

    try:
        spec = validate_create(data)
    except AdmissionError as e:
        raise SpecLoadError(str(e)) from e

    logger.debug(
        "Loaded machine pool spec",
        extra={"path": str(spec_path), "hooks": len(spec.lifecycle_hooks)},
    )
    return spec
