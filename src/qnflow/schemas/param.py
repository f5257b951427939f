"""ParamConfig: Expert defaults for the qnflow correction pipeline.

This module defines the complete default configuration. ALL pipeline
parameters must have defaults here. No runtime code should define fallback
values - this is the single source of truth for defaults.

The detector and stage models defined here are also the runtime models:
InternalConfig reuses them unchanged.

Runtime code NEVER reads from ParamConfig directly - it only receives InternalConfig.
"""

from typing import Annotated, Literal, Optional, Union
from pydantic import Field, field_validator, model_validator
from qnflow.schemas.base import QnBaseModel


# =============================================================================
# Correction Stage Models
# =============================================================================

class GainEqualizationConfig(QnBaseModel):
    """Channel gain equalization stage."""
    kind: Literal["gain_equalization"] = "gain_equalization"
    name: Optional[str] = Field(None, description="Storage key override (needed when stacking stages)")
    method: Literal["none", "average", "width"] = "none"
    shift: float = 0.0
    scale: float = 1.0
    use_group_weights: bool = False
    min_entries: int = Field(2, ge=1)

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method_name(cls, v):
        """Normalize method names to lowercase."""
        if isinstance(v, str):
            return v.lower().strip()
        return v


class RecenteringConfig(QnBaseModel):
    """Recentering stage."""
    kind: Literal["recentering"] = "recentering"
    name: Optional[str] = None
    width_equalization: bool = False
    min_entries: int = Field(2, ge=1)


class TwistAndRescaleConfig(QnBaseModel):
    """Twist and rescale stage."""
    kind: Literal["twist_and_rescale"] = "twist_and_rescale"
    name: Optional[str] = None
    method: Literal["double_harmonic", "correlations"] = "double_harmonic"
    apply_twist: bool = True
    apply_rescale: bool = True
    reference_b: Optional[str] = None
    reference_c: Optional[str] = None
    min_entries: int = Field(2, ge=1)

    @field_validator("method", mode="before")
    @classmethod
    def normalize_method_name(cls, v):
        """Normalize method names to lowercase."""
        if isinstance(v, str):
            return v.lower().strip()
        return v

    @model_validator(mode="after")
    def check_references(self):
        """Correlations need both reference detectors, and they must differ."""
        if self.method == "correlations":
            if not self.reference_b or not self.reference_c:
                raise ValueError("correlations method requires reference_b and reference_c")
            if self.reference_b == self.reference_c:
                raise ValueError("reference_b and reference_c must be different detectors")
        return self


StageConfig = Annotated[
    Union[GainEqualizationConfig, RecenteringConfig, TwistAndRescaleConfig],
    Field(discriminator="kind"),
]


# =============================================================================
# Detector / Binning Models
# =============================================================================

class DetectorConfig(QnBaseModel):
    """One detector sub-event and its correction chain.

    ``n_channels = 0`` declares a track-like detector: contributions carry
    no channel index and gain equalization is not available.
    """
    name: str = Field(..., min_length=1)
    harmonics: list[int] = Field(default_factory=lambda: [1, 2])
    normalization: Literal["none", "m", "sqrt_m", "magnitude"] = "m"
    n_channels: int = Field(0, ge=0)
    used_channels: Optional[list[int]] = None
    channel_groups: Optional[list[int]] = None
    group_weights: Optional[list[float]] = None
    stages: list[StageConfig] = Field(default_factory=list)

    @field_validator("harmonics")
    @classmethod
    def check_harmonics(cls, v):
        """Harmonics must be positive and unique; stored sorted."""
        if not v:
            raise ValueError("at least one harmonic is required")
        if any(h < 1 for h in v):
            raise ValueError(f"harmonics must be positive, got {v}")
        if len(set(v)) != len(v):
            raise ValueError(f"duplicated harmonics in {v}")
        return sorted(v)

    @model_validator(mode="after")
    def check_channel_layout(self):
        """Per-channel lists must match n_channels."""
        for field in ("channel_groups", "group_weights"):
            values = getattr(self, field)
            if values is not None and len(values) != self.n_channels:
                raise ValueError(
                    f"{field} has {len(values)} entries, detector '{self.name}' "
                    f"has {self.n_channels} channels"
                )
        return self


class AxisConfig(QnBaseModel):
    """One event-class axis."""
    variable: str
    edges: list[float] = Field(..., min_length=2)

    @field_validator("edges")
    @classmethod
    def check_increasing(cls, v):
        """Bin edges must increase strictly."""
        if any(b <= a for a, b in zip(v, v[1:])):
            raise ValueError(f"bin edges must be strictly increasing, got {v}")
        return v


class BinningConfig(QnBaseModel):
    """Event-class binning shared by every calibration table."""
    axes: list[AxisConfig] = Field(
        default_factory=lambda: [
            AxisConfig(variable="centrality", edges=[float(e) for e in range(0, 101, 10)])
        ]
    )


# =============================================================================
# Run / Simulation Models
# =============================================================================

class CalibrationConfig(QnBaseModel):
    """Calibration input/output and pass control."""
    input_file: Optional[str] = None
    output_file: str = "qn_calibration.nc"
    run_name: str = "run0"
    n_passes: int = Field(1, ge=1)
    freeze_attached: bool = Field(False, description="Apply attached calibration without re-collecting")
    fill_qa: bool = False


class SimulationConfig(QnBaseModel):
    """Synthetic event generation."""
    n_events: int = Field(1000, ge=1)
    seed: Optional[int] = 42
    multiplicity: int = Field(200, ge=1)
    v2: float = Field(0.0, ge=0.0, lt=0.5)
    acceptance_hole: Optional[tuple[float, float]] = None
    hole_efficiency: float = Field(0.5, ge=0.0, le=1.0)
    channel_gains: Optional[list[float]] = None


class LoggingConfig(QnBaseModel):
    """Logging configuration."""
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = "INFO"


def default_detectors() -> list[DetectorConfig]:
    return [
        DetectorConfig(
            name="tracks",
            harmonics=[1, 2],
            normalization="m",
            stages=[RecenteringConfig(), TwistAndRescaleConfig()],
        )
    ]


# =============================================================================
# Main ParamConfig
# =============================================================================

class ParamConfig(QnBaseModel):
    """Complete expert configuration with all defaults.

    This is the single source of truth for all pipeline parameters.
    Every tunable parameter MUST have a default here.

    Usage
    -----
    This config is NOT used directly by runtime code. It serves as the
    base layer in config resolution:

        internal_cfg = resolve_config(param_cfg, user_cfg, cli_cfg)

    Runtime code only sees InternalConfig.
    """

    base_dir: str = "./qn_output"
    binning: BinningConfig = Field(default_factory=BinningConfig)
    detectors: list[DetectorConfig] = Field(default_factory=default_detectors)
    calibration: CalibrationConfig = Field(default_factory=CalibrationConfig)
    simulation: SimulationConfig = Field(default_factory=SimulationConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)
