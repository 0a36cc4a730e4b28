"""Tests for machine pool spec loading."""

from pathlib import Path

import pytest

from poolguard.spec_loader import MAX_SPEC_FILE_SIZE_BYTES, SpecLoadError, load_machine_pool_spec

BARE_SPEC = """
version: v1.26.2
minSize: 1
maxSize: 5
lifecycleHooks:
  - name: drain
    lifecycleTransition: autoscaling:EC2_INSTANCE_TERMINATING
    heartbeatTimeout: 5m
"""

RESOURCE_SPEC = """
apiVersion: infrastructure.cluster.x-k8s.io/v1beta2
kind: AWSMachinePool
metadata:
  name: pool-0
spec:
  minSize: 0
  maxSize: 2
  lifecycleHooks:
    - name: warmup
      lifecycleTransition: autoscaling:EC2_INSTANCE_LAUNCHING
"""


class TestLoadMachinePoolSpec:
    """Tests for load_machine_pool_spec."""

    def test_bare_spec(self, tmp_path: Path) -> None:
        """Test loading a bare spec."""
        path = tmp_path / "pool.yaml"
        path.write_text(BARE_SPEC)

        spec = load_machine_pool_spec(path)

        assert spec.version == "v1.26.2"
        assert spec.lifecycle_hooks[0].heartbeat_timeout == 300

    def test_full_resource(self, tmp_path: Path) -> None:
        """Test loading a full resource with a spec section."""
        path = tmp_path / "pool.yaml"
        path.write_text(RESOURCE_SPEC)

        spec = load_machine_pool_spec(path)

        assert spec.max_size == 2
        assert [h.name for h in spec.lifecycle_hooks] == ["warmup"]

    def test_missing_file(self, tmp_path: Path) -> None:
        """Test that a missing file is reported."""
        with pytest.raises(SpecLoadError, match="not found"):
            load_machine_pool_spec(tmp_path / "missing.yaml")

    def test_file_too_large(self, tmp_path: Path) -> None:
        """Test that oversized files are rejected before parsing."""
        path = tmp_path / "pool.yaml"
        path.write_text("#" * (MAX_SPEC_FILE_SIZE_BYTES + 1))

        with pytest.raises(SpecLoadError, match="exceeds maximum size"):
            load_machine_pool_spec(path)

    def test_invalid_yaml(self, tmp_path: Path) -> None:
        """Test that invalid YAML is reported."""
        path = tmp_path / "pool.yaml"
        path.write_text("lifecycleHooks: [\n")

        with pytest.raises(SpecLoadError, match="Invalid YAML"):
            load_machine_pool_spec(path)

    def test_not_a_mapping(self, tmp_path: Path) -> None:
        """Test that a YAML list is rejected."""
        path = tmp_path / "pool.yaml"
        path.write_text("- a\n")

        with pytest.raises(SpecLoadError, match="must contain a YAML mapping"):
            load_machine_pool_spec(path)

    def test_admission_failure(self, tmp_path: Path) -> None:
        """Test that admission errors are reported as load errors."""
        path = tmp_path / "pool.yaml"
        path.write_text(BARE_SPEC.replace("5m", "29"))

        with pytest.raises(SpecLoadError, match="heartbeatTimeout"):
            load_machine_pool_spec(path)
