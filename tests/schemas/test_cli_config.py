"""Tests for CLIConfig overrides."""

import pytest
from pydantic import ValidationError

from qnflow.schemas import CLIConfig

pytestmark = pytest.mark.unit


class TestCLIConfig:
    """Test CLIConfig validation and conversion."""

    def test_empty_cli_has_no_overrides(self):
        assert CLIConfig().to_internal_overrides() == {}

    def test_overrides_are_nested(self):
        cli = CLIConfig(base_dir="/tmp/qn", run_name="r1", n_events=10, n_passes=2,
                        seed=3, calibration_input="prev.nc", log_level="DEBUG")
        assert cli.to_internal_overrides() == {
            "base_dir": "/tmp/qn",
            "calibration": {"run_name": "r1", "n_passes": 2, "input_file": "prev.nc"},
            "simulation": {"n_events": 10, "seed": 3},
            "logging": {"level": "DEBUG"},
        }

    def test_non_positive_counts_rejected(self):
        with pytest.raises(ValidationError):
            CLIConfig(n_passes=0)
        with pytest.raises(ValidationError):
            CLIConfig(n_events=0)

    def test_unknown_fields_rejected(self):
        with pytest.raises(ValidationError):
            CLIConfig(harmonics=[1])
