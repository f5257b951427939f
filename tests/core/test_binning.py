"""Tests for event-class binning."""

import pytest

pytestmark = pytest.mark.unit

from qnflow.core.binning import EventClassBinning, OUT_OF_RANGE


class TestEventClassBinning:
    """Test bin lookup on one and two axes."""

    def test_single_axis_lookup(self):
        binning = EventClassBinning([("centrality", [0, 10, 20, 40])])

        assert binning.n_bins == 3
        assert binning.locate({"centrality": 0.0}) == 0
        assert binning.locate({"centrality": 15.0}) == 1
        assert binning.locate({"centrality": 20.0}) == 2

    def test_last_edge_is_inclusive(self):
        binning = EventClassBinning([("centrality", [0, 50, 100])])
        assert binning.locate({"centrality": 100.0}) == 1

    @pytest.mark.parametrize("variables", [
        {"centrality": -1.0},
        {"centrality": 100.5},
        {"centrality": float("nan")},
        {},
    ])
    def test_out_of_range(self, variables):
        """Values outside the edges, NaN or missing give OUT_OF_RANGE."""
        binning = EventClassBinning([("centrality", [0, 50, 100])])
        assert binning.locate(variables) == OUT_OF_RANGE

    def test_two_axes_row_major(self):
        binning = EventClassBinning([("centrality", [0, 50, 100]), ("vz", [-10, 0, 10])])

        assert binning.shape == (2, 2)
        assert binning.n_bins == 4
        assert binning.locate({"centrality": 60.0, "vz": -5.0}) == 2
        assert binning.locate({"centrality": 60.0, "vz": 5.0}) == 3
        assert binning.locate({"centrality": 60.0}) == OUT_OF_RANGE

    def test_no_axes_single_bin(self):
        binning = EventClassBinning()
        assert binning.n_bins == 1
        assert binning.locate({}) == 0

    def test_bad_edges_rejected(self):
        with pytest.raises(ValueError, match="increasing"):
            EventClassBinning([("centrality", [0, 0, 10])])

    def test_describe(self):
        binning = EventClassBinning([("centrality", [0, 10])])
        assert binning.describe() == {"centrality": [0.0, 10.0]}
