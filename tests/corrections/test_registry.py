"""Tests for building stages from configuration."""

import pytest

pytestmark = pytest.mark.unit

from qnflow.contracts import ConfigurationError
from qnflow.corrections import GainEqualization, Recentering, TwistAndRescale, build_stage
from qnflow.corrections.registry import STAGE_REGISTRY
from qnflow.schemas import (
    DetectorConfig,
    GainEqualizationConfig,
    RecenteringConfig,
    TwistAndRescaleConfig,
)


class TestBuildStage:
    """Test build_stage() for each kind."""

    def test_registry_is_closed(self):
        assert set(STAGE_REGISTRY) == {"gain_equalization", "recentering", "twist_and_rescale"}

    def test_build_recentering(self):
        det = DetectorConfig(name="tracks", harmonics=[2, 1])
        stage = build_stage(RecenteringConfig(width_equalization=True, min_entries=5), det, 10)

        assert isinstance(stage, Recentering)
        assert stage.harmonics == (1, 2)
        assert stage.width_equalization
        assert stage.min_entries == 5
        assert stage.n_bins == 10

    def test_build_gain_equalization_with_groups(self):
        det = DetectorConfig(name="fwd", n_channels=4, channel_groups=[0, 0, 1, 1])
        stage = build_stage(GainEqualizationConfig(method="AVERAGE"), det, 3, fill_qa=True)

        assert isinstance(stage, GainEqualization)
        assert stage.method == "average"
        assert stage.table.slots[-2:] == ["grp0", "grp1"]
        assert set(stage.qa) == {"before", "after"}

    def test_build_twist_correlations(self):
        det = DetectorConfig(name="a")
        cfg = TwistAndRescaleConfig(method="correlations", reference_b="b", reference_c="c")
        stage = build_stage(cfg, det, 1)

        assert isinstance(stage, TwistAndRescale)
        assert stage.reference_b == "b"

    def test_stage_name_overrides_key(self):
        det = DetectorConfig(name="tracks")
        stage = build_stage(RecenteringConfig(name="recentering_2"), det, 1)
        assert stage.key == "recentering_2"
        assert stage.table.name == "recentering_2"

    def test_gain_equalization_needs_channels(self):
        det = DetectorConfig(name="tracks")
        with pytest.raises(ConfigurationError, match="no channels"):
            build_stage(GainEqualizationConfig(), det, 1)
