"""Core multi-pass correction run logic.

This module contains the actual runner, separated from argument parsing.
Scripts are thin wrappers; this is the real implementation.
"""

import json
import logging
import importlib.util
from pathlib import Path
from typing import Optional, Dict, Any

from qnflow.setup_directories import (
    setup_output_directories,
    get_pass_calibration_path,
    get_report_path,
)
from qnflow.pipeline.orchestrator import PipelineOrchestrator
from qnflow.pipeline.calibration_store import CalibrationStore
from qnflow.simulation import EventGenerator
from qnflow.schemas import resolve_config, ParamConfig, UserConfig, CLIConfig


logger = logging.getLogger(__name__)


def load_user_config_dict(config_path: str) -> dict:
    """Load user config dict from Python file.

    Returns the raw dict before Pydantic validation.

    Parameters
    ----------
    config_path : str
        Path to user config Python file containing CONFIG dict.

    Returns
    -------
    dict
        Raw user configuration dictionary.

    Raises
    ------
    FileNotFoundError
        If config file does not exist.
    ValueError
        If no CONFIG dict found in file.
    """
    path = Path(config_path)
    if not path.exists():
        raise FileNotFoundError(f"Config not found: {path}")

    spec = importlib.util.spec_from_file_location("config_module", path)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)

    # Find CONFIG dict
    for name in dir(module):
        if name.startswith('CONFIG'):
            obj = getattr(module, name)
            if isinstance(obj, dict):
                return obj

    raise ValueError(f"No CONFIG dict found in {path}")


def run_passes(config, output_dirs: dict) -> list[dict]:
    """Run ``config.calibration.n_passes`` passes over generated events.

    Each pass builds fresh pipelines, attaches the calibration file of the
    previous pass (or ``config.calibration.input_file`` for the first one),
    processes ``config.simulation.n_events`` events and writes its own
    calibration file and stage report.

    Returns
    -------
    list of dict
        Per pass: ``{"pass", "calibration", "report"}`` with the written
        calibration path and the report DataFrame.
    """
    run_name = config.calibration.run_name
    previous = config.calibration.input_file
    results = []

    for pass_index in range(config.calibration.n_passes):
        orchestrator = PipelineOrchestrator(config, output_dirs)
        source = CalibrationStore(previous).load(run_name) if previous else {}
        generator = EventGenerator.from_config(config, seed_offset=pass_index)

        output_path = get_pass_calibration_path(
            output_dirs, config.calibration.output_file, pass_index
        )
        orchestrator.run(
            generator.events(config.simulation.n_events),
            run_name=run_name,
            source=source,
            output_path=output_path,
        )

        report = orchestrator.report()
        report.insert(0, "pass", pass_index)
        report.to_csv(get_report_path(output_dirs, run_name, pass_index), index=False)
        logger.info("Pass %d done: %s", pass_index, output_path)

        results.append({"pass": pass_index, "calibration": output_path, "report": report})
        previous = output_path

    return results


def run_corrections(
    user_config_path: str,
    cli_args: Optional[Dict[str, Any]] = None,
    rerun: bool = False,
    verbose: bool = False
) -> list[dict]:
    """Execute a multi-pass calibration and correction run.

    This is the core execution function. It:
    1. Loads and resolves configuration (Param < User < CLI)
    2. Sets up output directories
    3. Optionally cleans directories if rerun=True
    4. Runs the configured number of passes

    Parameters
    ----------
    user_config_path : str
        Path to user config file (Python file with CONFIG dict).

    cli_args : dict, optional
        CLI argument overrides. Keys: base_dir, run_name, n_events,
        n_passes, seed, calibration_input, log_level. All optional.

    rerun : bool, optional
        If True, delete the output directory before running.

    verbose : bool, optional
        If True, enable DEBUG logging and print full resolved config.

    Returns
    -------
    list of dict
        Per-pass results, see ``run_passes``.

    Raises
    ------
    FileNotFoundError
        If user_config_path does not exist.
    ValueError
        If configuration validation or detector wiring fails.

    Examples
    --------
    Run with user config only::

        run_corrections("config/my_config.py")

    Run three passes into a scratch directory::

        run_corrections(
            "config/my_config.py",
            cli_args={"n_passes": 3, "base_dir": "/scratch/qn"},
        )
    """
    # Load configurations
    param_cfg = ParamConfig()  # Expert defaults

    # Load user config from file
    user_cfg_dict = load_user_config_dict(user_config_path)
    user_cfg = UserConfig.model_validate(user_cfg_dict)

    # Create CLI config from arguments
    cli_args = dict(cli_args or {})
    if verbose and "log_level" not in cli_args:
        cli_args["log_level"] = "DEBUG"

    # Filter None values
    cli_dict = {k: v for k, v in cli_args.items() if v is not None}
    cli_cfg = CLIConfig.model_validate(cli_dict) if cli_dict else CLIConfig()

    # Resolve to internal config (Param < User < CLI)
    config = resolve_config(param_cfg, user_cfg, cli_cfg)

    # Clean output directories if --rerun specified
    if rerun:
        import shutil
        base_dir_path = Path(config.base_dir)
        if base_dir_path.exists():
            print(f"Cleaning output directory: {base_dir_path}")
            shutil.rmtree(base_dir_path)
            print("Output directory cleaned")

    # Setup output directories
    output_dirs = setup_output_directories(config.base_dir)

    # Print summary
    print(f"\n{'='*60}")
    print("qnflow Correction Run")
    print('='*60)
    print(f"Config:    {user_config_path}")
    print(f"Run:       {config.calibration.run_name}")
    print(f"Detectors: {', '.join(d.name for d in config.detectors)}")
    print(f"Events:    {config.simulation.n_events} x {config.calibration.n_passes} passes")
    print(f"Output:    {config.base_dir}")
    print('='*60)

    if verbose:
        print("\nFull Internal Configuration:")
        print(json.dumps(config.model_dump(), indent=2))
        print('='*60)

    return run_passes(config, output_dirs)
