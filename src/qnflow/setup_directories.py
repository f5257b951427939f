"""
Directory setup for the correction runs.

Layout under the base directory:
- calibration/: one calibration file per pass (and its QA companion)
- reports/: per-pass stage reports (CSV)
- logs/: run logs
"""

from pathlib import Path


def setup_output_directories(base_output_dir=None):
    """
    Set up the output directory structure.

    Parameters
    ----------
    base_output_dir : str or Path, optional
        Base output directory. If None, ``./qn_output`` is used.

    Returns
    -------
    dict
        Dictionary with paths: 'base', 'calibration', 'reports', 'logs'
    """
    if base_output_dir is None:
        base_output_dir = Path.cwd() / "qn_output"

    base_output_dir = Path(base_output_dir).expanduser().resolve()

    directories = {
        "base": base_output_dir,
        "calibration": base_output_dir / "calibration",
        "reports": base_output_dir / "reports",
        "logs": base_output_dir / "logs",
    }

    for path in directories.values():
        path.mkdir(parents=True, exist_ok=True)

    print("\nOutput directories:")
    for key, path in directories.items():
        print(f"  {key:12s}: {path}")

    return directories


def get_pass_calibration_path(output_dirs, filename, pass_index):
    """
    Calibration file of one pass.

    Parameters
    ----------
    output_dirs : dict
        Output directories from setup_output_directories()
    filename : str
        Configured calibration file name, e.g. 'qn_calibration.nc'
    pass_index : int
        Zero-based pass number.

    Returns
    -------
    Path
        calibration/<stem>_pass<NN>.nc

    Example
    -------
    >>> get_pass_calibration_path(dirs, 'qn_calibration.nc', 1)
    Path('qn_output/calibration/qn_calibration_pass01.nc')
    """
    name = Path(filename)
    suffix = name.suffix or ".nc"
    return Path(output_dirs["calibration"]) / f"{name.stem}_pass{pass_index:02d}{suffix}"


def get_report_path(output_dirs, run_name, pass_index):
    """
    Stage report CSV of one pass: reports/<run>_pass<NN>.csv
    """
    return Path(output_dirs["reports"]) / f"{run_name}_pass{pass_index:02d}.csv"
