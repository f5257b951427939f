"""InternalConfig: Authoritative runtime configuration.

This is the ONLY config schema that runtime code sees. It is fully validated,
normalized, and contains NO optional fields that processing code depends on.

All .get() calls, fallback defaults, and validation logic are FORBIDDEN in
runtime code - everything is explicit here.
"""

from typing import Literal, Optional
from pydantic import Field, ConfigDict, model_validator
from qnflow.schemas.base import QnBaseModel
from qnflow.schemas.param import AxisConfig, DetectorConfig


# =============================================================================
# Nested Configuration Models (Runtime)
# =============================================================================

class InternalBinningConfig(QnBaseModel):
    """Runtime event-class binning."""
    axes: list[AxisConfig]


class InternalCalibrationConfig(QnBaseModel):
    """Runtime calibration configuration."""
    input_file: Optional[str]
    output_file: str
    run_name: str = Field(..., min_length=1)
    n_passes: int = Field(ge=1)
    freeze_attached: bool
    fill_qa: bool


class InternalSimulationConfig(QnBaseModel):
    """Runtime simulation configuration."""
    n_events: int = Field(ge=1)
    seed: Optional[int]
    multiplicity: int = Field(ge=1)
    v2: float = Field(ge=0.0, lt=0.5)
    acceptance_hole: Optional[tuple[float, float]]
    hole_efficiency: float = Field(ge=0.0, le=1.0)
    channel_gains: Optional[list[float]]


class InternalLoggingConfig(QnBaseModel):
    """Runtime logging configuration."""
    level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]


# =============================================================================
# Main InternalConfig
# =============================================================================

class InternalConfig(QnBaseModel):
    """Authoritative runtime configuration.

    This is the ONLY configuration schema that processing code sees.
    It is fully validated, immutable, and contains explicit values for
    all parameters (no None for fields that runtime depends on).

    Usage
    -----
    Runtime modules receive InternalConfig and access fields directly:

        def __init__(self, config: InternalConfig):
            self.run_name = config.calibration.run_name  # NOT .get()
            self.detectors = config.detectors

    Rules
    -----
    - NO .get() calls
    - NO fallback defaults
    - NO type checking
    - NO validation

    All of that happens during config resolution, not in runtime code.
    Cross-detector wiring (reference detectors, stage ordering) is checked
    by the PipelineOrchestrator, which raises ConfigurationError.
    """

    base_dir: str
    binning: InternalBinningConfig
    detectors: list[DetectorConfig] = Field(..., min_length=1)
    calibration: InternalCalibrationConfig
    simulation: InternalSimulationConfig
    logging: InternalLoggingConfig

    model_config = ConfigDict(
        extra='forbid',
        validate_assignment=True,
        use_enum_values=True,
        str_strip_whitespace=True,
        frozen=True,  # Immutable after construction
    )

    @model_validator(mode="after")
    def check_channel_gains(self):
        """Simulated channel gains must fit every channelized detector."""
        gains = self.simulation.channel_gains
        if gains is None:
            return self
        for det in self.detectors:
            if det.n_channels and len(gains) != det.n_channels:
                raise ValueError(
                    f"simulation.channel_gains has {len(gains)} entries, detector "
                    f"'{det.name}' has {det.n_channels} channels"
                )
        return self
