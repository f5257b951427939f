from pathlib import Path
from qnflow.setup_directories import (
    setup_output_directories,
    get_pass_calibration_path,
    get_report_path,
)


def test_setup_output_directories_creates_all(tmp_path):
    dirs = setup_output_directories(tmp_path)

    expected = {"base", "calibration", "reports", "logs"}

    assert set(dirs.keys()) == expected

    for path in dirs.values():
        assert isinstance(path, Path)
        assert path.exists()
        assert path.is_dir()


def test_setup_output_directories_is_idempotent(tmp_path):
    dirs1 = setup_output_directories(tmp_path)
    dirs2 = setup_output_directories(tmp_path)

    assert dirs1 == dirs2


def test_pass_calibration_path(tmp_path):
    dirs = setup_output_directories(tmp_path)

    path = get_pass_calibration_path(dirs, "qn_calibration.nc", 1)
    assert path == dirs["calibration"] / "qn_calibration_pass01.nc"

    assert get_pass_calibration_path(dirs, "calib", 0).name == "calib_pass00.nc"


def test_report_path(tmp_path):
    dirs = setup_output_directories(tmp_path)
    assert get_report_path(dirs, "run0", 2) == dirs["reports"] / "run0_pass02.csv"
