"""UserConfig: Forgiving, minimal user-facing configuration.

This schema accepts user inputs with aliases for common naming patterns
(e.g., N_EVENTS -> simulation.n_events, RUN_NAME -> calibration.run_name).

UserConfig is intentionally minimal - users only specify what they want
to override from the expert defaults. Detector definitions are passed
through as plain dicts and validated when the InternalConfig is built.
"""

from typing import Any, Literal, Optional
from pydantic import Field, field_validator
from qnflow.schemas.base import QnBaseModel


class UserCalibrationConfig(QnBaseModel):
    """User-facing calibration config."""
    input_file: Optional[str] = None
    output_file: Optional[str] = None
    run_name: Optional[str] = None
    n_passes: Optional[int] = None
    freeze_attached: Optional[bool] = None
    fill_qa: Optional[bool] = None


class UserSimulationConfig(QnBaseModel):
    """User-facing simulation config."""
    n_events: Optional[int] = None
    seed: Optional[int] = None
    multiplicity: Optional[int] = None
    v2: Optional[float] = None
    acceptance_hole: Optional[tuple[float, float]] = None
    hole_efficiency: Optional[float] = None
    channel_gains: Optional[list[float]] = None

    @field_validator("v2", "hole_efficiency", mode="before")
    @classmethod
    def coerce_float(cls, v):
        """Accept int or float."""
        if v is not None:
            return float(v)
        return v


class UserConfig(QnBaseModel):
    """User-facing configuration schema.

    Minimal, forgiving, and uses common aliases. Users only specify
    what they want to override from ParamConfig defaults.

    Usage
    -----
        user_cfg = UserConfig(
            N_EVENTS=5000,
            RUN_NAME="run137",
            DETECTORS=[{"name": "tracks", "stages": [{"kind": "recentering"}]}],
        )

        internal = resolve_config(param_cfg, user_cfg, cli_cfg)
    """

    # Top-level operational settings
    base_dir: Optional[str] = Field(None, alias="BASE_DIR")
    log_level: Optional[Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]] = Field(None, alias="LOG_LEVEL")

    # Calibration settings (flat aliases)
    run_name: Optional[str] = Field(None, alias="RUN_NAME")
    n_passes: Optional[int] = Field(None, alias="N_PASSES")
    calibration_input: Optional[str] = Field(None, alias="CALIBRATION_INPUT")
    calibration_output: Optional[str] = Field(None, alias="CALIBRATION_OUTPUT")
    freeze_calibration: Optional[bool] = Field(None, alias="FREEZE_CALIBRATION")
    fill_qa: Optional[bool] = Field(None, alias="FILL_QA")

    # Simulation settings (flat aliases)
    n_events: Optional[int] = Field(None, alias="N_EVENTS")
    seed: Optional[int] = Field(None, alias="SEED")
    multiplicity: Optional[int] = Field(None, alias="MULTIPLICITY")
    v2: Optional[float] = Field(None, alias="V2")
    acceptance_hole: Optional[tuple[float, float]] = Field(None, alias="ACCEPTANCE_HOLE")

    # Event classes (flat alias for the common single-axis case)
    centrality_edges: Optional[list[float]] = Field(None, alias="CENTRALITY_EDGES")

    # Detectors are validated against DetectorConfig during resolution
    detectors: Optional[list[dict[str, Any]]] = Field(None, alias="DETECTORS")

    # Nested overrides (advanced users)
    binning: Optional[dict[str, Any]] = None
    calibration: Optional[UserCalibrationConfig] = None
    simulation: Optional[UserSimulationConfig] = None

    model_config = QnBaseModel.model_config.copy()
    # Allow forgiving input dictionaries (ignore unknown legacy keys)
    model_config.update({"populate_by_name": True, "extra": "ignore"})

    @field_validator("v2", mode="before")
    @classmethod
    def coerce_numeric_fields(cls, v):
        """Accept int or float for numeric fields."""
        if v is not None:
            return float(v)
        return v

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v):
        """Accept lowercase level names."""
        if isinstance(v, str):
            return v.upper().strip()
        return v

    def to_internal_overrides(self) -> dict:
        """Convert flat UserConfig to nested InternalConfig structure.

        Returns
        -------
        dict
            Nested dictionary matching InternalConfig structure
        """
        overrides = {}

        if self.base_dir is not None:
            overrides["base_dir"] = str(self.base_dir)

        if self.log_level is not None:
            overrides["logging"] = {"level": self.log_level}

        # Calibration section
        calibration = {}
        if self.run_name is not None:
            calibration["run_name"] = self.run_name
        if self.n_passes is not None:
            calibration["n_passes"] = self.n_passes
        if self.calibration_input is not None:
            calibration["input_file"] = self.calibration_input
        if self.calibration_output is not None:
            calibration["output_file"] = self.calibration_output
        if self.freeze_calibration is not None:
            calibration["freeze_attached"] = self.freeze_calibration
        if self.fill_qa is not None:
            calibration["fill_qa"] = self.fill_qa

        # Merge with explicit calibration config
        if self.calibration is not None:
            calibration.update(self.calibration.model_dump(exclude_none=True))

        if calibration:
            overrides["calibration"] = calibration

        # Simulation section
        simulation = {}
        if self.n_events is not None:
            simulation["n_events"] = self.n_events
        if self.seed is not None:
            simulation["seed"] = self.seed
        if self.multiplicity is not None:
            simulation["multiplicity"] = self.multiplicity
        if self.v2 is not None:
            simulation["v2"] = self.v2
        if self.acceptance_hole is not None:
            simulation["acceptance_hole"] = self.acceptance_hole

        # Merge with explicit simulation config
        if self.simulation is not None:
            simulation.update(self.simulation.model_dump(exclude_none=True))

        if simulation:
            overrides["simulation"] = simulation

        # Binning section
        if self.centrality_edges is not None:
            overrides["binning"] = {
                "axes": [{"variable": "centrality", "edges": list(self.centrality_edges)}]
            }
        if self.binning is not None:
            overrides["binning"] = dict(self.binning)

        if self.detectors is not None:
            overrides["detectors"] = [dict(d) for d in self.detectors]

        return overrides
