"""Tests for detector and stage configuration models."""

import pytest
from pydantic import ValidationError

from qnflow.schemas import DetectorConfig, TwistAndRescaleConfig, GainEqualizationConfig

pytestmark = pytest.mark.unit


class TestDetectorConfig:
    """Field-level detector validation."""

    def test_defaults(self):
        det = DetectorConfig(name="tracks")
        assert det.harmonics == [1, 2]
        assert det.normalization == "m"
        assert det.n_channels == 0
        assert det.stages == []

    def test_harmonics_sorted(self):
        assert DetectorConfig(name="t", harmonics=[3, 1]).harmonics == [1, 3]

    @pytest.mark.parametrize("harmonics", [[], [0], [2, 2]])
    def test_bad_harmonics(self, harmonics):
        with pytest.raises(ValidationError):
            DetectorConfig(name="t", harmonics=harmonics)

    def test_channel_layout_must_match(self):
        with pytest.raises(ValidationError, match="channel_groups"):
            DetectorConfig(name="fwd", n_channels=4, channel_groups=[0, 1])

    def test_stage_discriminated_by_kind(self):
        det = DetectorConfig(name="t", stages=[{"kind": "twist_and_rescale", "apply_rescale": False}])
        assert isinstance(det.stages[0], TwistAndRescaleConfig)
        assert det.stages[0].apply_twist

    def test_unknown_stage_kind(self):
        with pytest.raises(ValidationError):
            DetectorConfig(name="t", stages=[{"kind": "flattening"}])

    def test_unknown_stage_field(self):
        with pytest.raises(ValidationError):
            DetectorConfig(name="t", stages=[{"kind": "recentering", "width": True}])


class TestStageConfigs:
    """Stage-specific validation."""

    def test_correlations_need_two_references(self):
        with pytest.raises(ValidationError, match="reference_b and reference_c"):
            TwistAndRescaleConfig(method="correlations", reference_b="b")

    def test_correlations_references_differ(self):
        with pytest.raises(ValidationError, match="different"):
            TwistAndRescaleConfig(method="correlations", reference_b="b", reference_c="b")

    def test_gain_method_normalized(self):
        assert GainEqualizationConfig(method=" Width ").method == "width"

    def test_gain_defaults(self):
        cfg = GainEqualizationConfig()
        assert (cfg.method, cfg.shift, cfg.scale, cfg.min_entries) == ("none", 0.0, 1.0, 2)
