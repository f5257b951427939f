"""Closed registry of correction stages.

Maps a stage ``kind`` from the configuration to its class and builds stage
instances for one detector. The stage set is fixed; unknown kinds are a
configuration error.
"""

from qnflow.contracts import ConfigurationError
from qnflow.corrections.base import CorrectionStage
from qnflow.corrections.gain_equalization import GainEqualization
from qnflow.corrections.recentering import Recentering
from qnflow.corrections.twist_rescale import TwistAndRescale

__all__ = ['STAGE_REGISTRY', 'build_stage']

STAGE_REGISTRY = {
    "gain_equalization": GainEqualization,
    "recentering": Recentering,
    "twist_and_rescale": TwistAndRescale,
}


def build_stage(stage_cfg, detector_cfg, n_bins: int, fill_qa: bool = False) -> CorrectionStage:
    """Instantiate one stage from its validated config.

    Parameters
    ----------
    stage_cfg : GainEqualizationConfig, RecenteringConfig or TwistAndRescaleConfig
        Stage section of a DetectorConfig.
    detector_cfg : DetectorConfig
        Owning detector (name, harmonics, channel layout).
    n_bins : int
        Number of event-class bins.
    fill_qa : bool, optional
        Create before/after QA tables.

    Raises
    ------
    ConfigurationError
        If the kind is unknown or the stage does not fit the detector.
    """
    if stage_cfg.kind not in STAGE_REGISTRY:
        raise ConfigurationError(f"Unknown correction stage kind: {stage_cfg.kind}")

    harmonics = tuple(detector_cfg.harmonics)
    common = dict(min_entries=stage_cfg.min_entries, fill_qa=fill_qa, key=stage_cfg.name)

    if stage_cfg.kind == "gain_equalization":
        if detector_cfg.n_channels == 0:
            raise ConfigurationError(
                f"Detector '{detector_cfg.name}' has no channels: gain equalization not applicable"
            )
        return GainEqualization(
            detector_cfg.name, harmonics, n_bins, detector_cfg.n_channels,
            method=stage_cfg.method,
            shift=stage_cfg.shift,
            scale=stage_cfg.scale,
            channel_groups=detector_cfg.channel_groups,
            group_weights=detector_cfg.group_weights,
            use_group_weights=stage_cfg.use_group_weights,
            **common,
        )

    if stage_cfg.kind == "recentering":
        return Recentering(
            detector_cfg.name, harmonics, n_bins,
            width_equalization=stage_cfg.width_equalization,
            **common,
        )

    return TwistAndRescale(
        detector_cfg.name, harmonics, n_bins,
        method=stage_cfg.method,
        apply_twist=stage_cfg.apply_twist,
        apply_rescale=stage_cfg.apply_rescale,
        reference_b=stage_cfg.reference_b,
        reference_c=stage_cfg.reference_c,
        **common,
    )
