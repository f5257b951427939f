"""Tests for NetCDF/DataTree persistence of calibration containers."""

import numpy as np
import pytest

from qnflow.core.calibration import CalibrationTable
from qnflow.pipeline.calibration_store import CalibrationStore, merge_containers, merge_files

pytestmark = pytest.mark.unit


def _table(name, values, n_bins=2, bin_index=0, slots=("x1", "y1")):
    table = CalibrationTable(name, n_bins, list(slots))
    for row in values:
        table.fill(bin_index, row)
    return table


class TestCalibrationStore:
    """Test save/load round trips."""

    def test_round_trip(self, tmp_path):
        rec = _table("recentering", [[0.1, 0.2], [0.3, 0.4]])
        gain = _table("gain_equalization", [[1.0, 2.0, 3.0]], slots=("ch0", "ch1", "ch2"))
        container = {"run0": {"tracks": {"recentering": rec}, "fwd": {"gain_equalization": gain}}}

        path = CalibrationStore(tmp_path / "calib" / "qn.nc").save(container)
        assert path.exists()

        loaded = CalibrationStore(path).load("run0")
        assert set(loaded) == {"tracks", "fwd"}
        back = loaded["tracks"]["recentering"]
        assert back.slots == ["x1", "y1"]
        assert back.min_entries == rec.min_entries
        np.testing.assert_allclose(back.sum, rec.sum)
        np.testing.assert_allclose(back.sum2, rec.sum2)
        np.testing.assert_array_equal(back.entries, rec.entries)
        np.testing.assert_allclose(back.mean(0), rec.mean(0))

    def test_missing_file_gives_empty_container(self, tmp_path):
        store = CalibrationStore(tmp_path / "absent.nc")
        assert not store.exists()
        assert store.load_all() == {}
        assert store.load("run0") == {}

    def test_unknown_run_gives_empty_container(self, tmp_path):
        path = tmp_path / "qn.nc"
        CalibrationStore(path).save({"run0": {"tracks": {"recentering": _table("recentering", [])}}})
        assert CalibrationStore(path).load("run9") == {}

    def test_load_single_run_without_name(self, tmp_path):
        path = tmp_path / "qn.nc"
        CalibrationStore(path).save({"run0": {"tracks": {"recentering": _table("recentering", [])}}})
        assert set(CalibrationStore(path).load()) == {"tracks"}

    def test_load_without_name_requires_single_run(self, tmp_path):
        path = tmp_path / "qn.nc"
        table = _table("recentering", [])
        CalibrationStore(path).save({"run0": {"tracks": {"recentering": table}},
                                     "run1": {"tracks": {"recentering": table}}})
        with pytest.raises(ValueError, match="pass run_name"):
            CalibrationStore(path).load()

    def test_save_replaces_existing_file(self, tmp_path):
        path = tmp_path / "qn.nc"
        CalibrationStore(path).save({"old": {"tracks": {"recentering": _table("recentering", [])}}})
        CalibrationStore(path).save({"new": {"tracks": {"recentering": _table("recentering", [])}}})
        assert set(CalibrationStore(path).load_all()) == {"new"}


class TestMerge:
    """Sharded outputs merge into the statistics of the union."""

    def test_merge_containers(self):
        a = {"run0": {"tracks": {"recentering": _table("recentering", [[1.0, 1.0]])}}}
        b = {"run0": {"tracks": {"recentering": _table("recentering", [[3.0, -1.0]])},
                      "fwd": {"recentering": _table("recentering", [[2.0, 2.0]])}}}
        merged = merge_containers(a, b)

        rec = merged["run0"]["tracks"]["recentering"]
        np.testing.assert_allclose(rec.mean(0), [2.0, 0.0])
        np.testing.assert_array_equal(rec.entries[0], [2, 2])
        assert "fwd" in merged["run0"]

    def test_merge_files_equals_union(self, tmp_path):
        rng = np.random.default_rng(3)
        rows = rng.normal(size=(30, 2))
        union = _table("recentering", rows)
        paths = []
        for i, chunk in enumerate((rows[:10], rows[10:])):
            path = tmp_path / f"shard{i}.nc"
            CalibrationStore(path).save({"run0": {"tracks": {"recentering": _table("recentering", chunk)}}})
            paths.append(path)

        output = tmp_path / "merged.nc"
        merged = merge_files(paths, output)

        rec = merged["run0"]["tracks"]["recentering"]
        np.testing.assert_array_equal(rec.entries, union.entries)
        np.testing.assert_allclose(rec.mean(0), union.mean(0))
        np.testing.assert_allclose(rec.spread(0), union.spread(0))
        reloaded = CalibrationStore(output).load("run0")["tracks"]["recentering"]
        np.testing.assert_allclose(reloaded.sum, rec.sum)
