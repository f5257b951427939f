"""CLIConfig: Command-line operational overrides.

Minimal configuration for operational parameters that commonly change
between runs: output directory, run name, event count, passes, verbosity.

This schema handles command-line arguments parsed by argparse.
"""

from typing import Literal, Optional
from pydantic import Field
from qnflow.schemas.base import QnBaseModel


class CLIConfig(QnBaseModel):
    """Command-line configuration overrides.

    Operational-only settings that override user and param configs.
    Highest priority in config resolution.

    Usage
    -----
        cli_cfg = CLIConfig(
            base_dir="/scratch/qn_output",
            run_name="run138",
            n_passes=3,
        )

        internal = resolve_config(param_cfg, user_cfg, cli_cfg)
    """

    base_dir: Optional[str] = None
    run_name: Optional[str] = None
    n_events: Optional[int] = Field(None, ge=1)
    n_passes: Optional[int] = Field(None, ge=1)
    seed: Optional[int] = None
    calibration_input: Optional[str] = None
    log_level: Optional[Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]] = None

    def to_internal_overrides(self) -> dict:
        """Convert CLI config to internal config structure.

        Returns
        -------
        dict
            Nested dictionary matching InternalConfig structure
        """
        overrides = {}

        if self.base_dir is not None:
            overrides["base_dir"] = str(self.base_dir)

        calibration = {}
        if self.run_name is not None:
            calibration["run_name"] = self.run_name
        if self.n_passes is not None:
            calibration["n_passes"] = self.n_passes
        if self.calibration_input is not None:
            calibration["input_file"] = self.calibration_input
        if calibration:
            overrides["calibration"] = calibration

        simulation = {}
        if self.n_events is not None:
            simulation["n_events"] = self.n_events
        if self.seed is not None:
            simulation["seed"] = self.seed
        if simulation:
            overrides["simulation"] = simulation

        if self.log_level is not None:
            overrides["logging"] = {"level": self.log_level}

        return overrides
