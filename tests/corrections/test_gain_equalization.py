"""Tests for channel gain equalization."""

import numpy as np
import pytest

pytestmark = pytest.mark.unit

from qnflow.corrections import GainEqualization, StageState
from qnflow.pipeline.subevent import SubEventPipeline

CHANNELS = np.arange(4)
PHI = (CHANNELS + 0.5) * np.pi / 2
WEIGHTS = np.array([2.0, 4.0, 6.0, 8.0])


def _stage(method="average", key=None, **kwargs):
    return GainEqualization("fwd", (1, 2), n_bins=1, n_channels=4, method=method, key=key, **kwargs)


def _pipeline(*stages, source=None):
    pipeline = SubEventPipeline("fwd", (1, 2), list(stages), n_channels=4)
    if source is not None:
        pipeline.attach_inputs({"fwd": source})
    return pipeline


def _correct(pipeline, event, weights=WEIGHTS):
    pipeline.clear()
    pipeline.fill(PHI, weights, CHANNELS)
    pipeline.process_corrections(event)
    return pipeline.bank


def _calibrated_table(event, stage_kwargs=None, weights=WEIGHTS, n_events=3):
    """Run a calibrating stage over identical events and return its table."""
    stage = _stage(**(stage_kwargs or {}))
    pipeline = _pipeline(stage)
    for _ in range(n_events):
        _correct(pipeline, event, weights)
    return stage.table


class TestAverageMethod:
    """Test w' = w / <w> x group weight."""

    def test_weight_equal_to_average_gives_unit_group_weight(self, event):
        table = _calibrated_table(event)
        np.testing.assert_allclose(table.mean(0), WEIGHTS)

        stage = _stage()
        pipeline = _pipeline(stage, source={"gain_equalization": table})
        bank = _correct(pipeline, event)

        assert stage.state == StageState.APPLYING_AND_COLLECTING
        np.testing.assert_allclose(bank.equalized_weight, 1.0)
        np.testing.assert_array_equal(bank.weight, WEIGHTS)
        assert stage.not_validated.sum() == 0

    def test_raw_and_plain_vectors_use_different_weights(self, event):
        table = _calibrated_table(event)
        pipeline = _pipeline(_stage(), source={"gain_equalization": table})
        _correct(pipeline, event)

        assert pipeline.raw.sum_weights == pytest.approx(WEIGHTS.sum())
        assert pipeline.plain.sum_weights == pytest.approx(4.0)

    def test_hard_coded_group_weights(self, event):
        groups = dict(channel_groups=[0, 0, 1, 1], group_weights=[1.0, 1.0, 2.0, 2.0])
        table = _calibrated_table(event, groups)
        stage = _stage(**groups)
        bank = _correct(_pipeline(stage, source={"gain_equalization": table}), event)

        np.testing.assert_allclose(bank.equalized_weight, [1.0, 1.0, 2.0, 2.0])

    def test_group_weights_from_table(self, event):
        """Group 0 averages 3, group 1 averages 7, overall 5."""
        groups = dict(channel_groups=[0, 0, 1, 1], use_group_weights=True)
        table = _calibrated_table(event, groups)
        assert table.slots[-2:] == ["grp0", "grp1"]
        np.testing.assert_allclose(table.mean(0)[-2:], [3.0, 7.0])

        stage = _stage(**groups)
        bank = _correct(_pipeline(stage, source={"gain_equalization": table}), event)

        np.testing.assert_allclose(bank.equalized_weight, [0.6, 0.6, 1.4, 1.4])

    def test_single_group_is_ignored(self, event):
        stage = _stage(channel_groups=[0, 0, 0, 0], group_weights=[3.0] * 4)
        assert stage.table.slots == ["ch0", "ch1", "ch2", "ch3"]

    def test_insignificant_average_zeroes_weight(self, event):
        table = _calibrated_table(event, weights=np.array([2.0, 4.0, 6.0, 0.0]))
        stage = _stage()
        bank = _correct(_pipeline(stage, source={"gain_equalization": table}), event)

        np.testing.assert_allclose(bank.equalized_weight, [1.0, 1.0, 1.0, 0.0])
        assert stage.not_validated[0] == 1


class TestWidthAndNoneMethods:
    """Test the width and none methods."""

    def test_width_method(self, event, make_table):
        table = make_table("gain_equalization", ["ch0", "ch1", "ch2", "ch3"],
                           [[1.0, 3.0, 5.0, 7.0], [3.0, 5.0, 7.0, 9.0]])
        stage = _stage("width", shift=1.0, scale=0.5)
        bank = _correct(_pipeline(stage, source={"gain_equalization": table}), event,
                        weights=np.array([3.0, 4.0, 6.0, 10.0]))

        # averages 2, 4, 6, 8 and spread 1
        np.testing.assert_allclose(bank.equalized_weight, [1.5, 1.0, 1.0, 2.0])

    def test_none_method_keeps_weights_and_collects(self, event):
        table = _calibrated_table(event)
        stage = _stage("none")
        bank = _correct(_pipeline(stage, source={"gain_equalization": table}), event)

        np.testing.assert_array_equal(bank.equalized_weight, WEIGHTS)
        np.testing.assert_array_equal(stage.table.entries[0], [1, 1, 1, 1])

    def test_qa_holds_weights_before_and_after(self, event):
        """QA is filled once per event around the weight update."""
        table = _calibrated_table(event)
        stage = _stage(fill_qa=True)
        pipeline = _pipeline(stage, source={"gain_equalization": table})
        pipeline.clear()
        pipeline.fill(PHI, WEIGHTS, CHANNELS)
        pipeline.process_event(event)

        assert set(stage.qa) == {"before", "after"}
        np.testing.assert_array_equal(stage.qa["before"].entries[0], [1, 1, 1, 1])
        np.testing.assert_array_equal(stage.qa["after"].entries[0], [1, 1, 1, 1])
        np.testing.assert_allclose(stage.qa["before"].mean(0), WEIGHTS)
        np.testing.assert_allclose(stage.qa["after"].mean(0), 1.0)

    def test_unknown_method(self):
        with pytest.raises(ValueError, match="Unknown gain equalization"):
            _stage("median")


class TestValidationAndChannels:
    """Test unvalidated bins and channel selection."""

    def test_unvalidated_bin_leaves_weights_and_counts_once(self, event):
        table = _calibrated_table(event, n_events=1)
        stage = _stage()
        pipeline = _pipeline(stage, source={"gain_equalization": table})

        bank = _correct(pipeline, event)
        np.testing.assert_array_equal(bank.equalized_weight, WEIGHTS)
        assert stage.not_validated[0] == 1

        _correct(pipeline, event)
        assert stage.not_validated[0] == 2

    def test_unused_channels_do_not_contribute(self, event):
        stage = _stage()
        pipeline = SubEventPipeline("fwd", (1, 2), [stage], n_channels=4, used_channels=[0, 2])
        _correct(pipeline, event)

        np.testing.assert_array_equal(stage.table.entries[0], [1, 0, 1, 0])
        assert len(pipeline.bank) == 2


class TestChaining:
    """Stacked stages learn from the weights the previous stage produced."""

    def test_second_stage_collects_first_stage_output(self, event):
        table = _calibrated_table(event)
        first = _stage(key="gain_eq_1")
        second = _stage(key="gain_eq_2")
        pipeline = _pipeline(first, second, source={"gain_eq_1": table})

        assert first.state == StageState.APPLYING_AND_COLLECTING
        assert second.state == StageState.CALIBRATING

        for _ in range(2):
            _correct(pipeline, event)

        # the first stage re-collects the weights it received (raw here)
        np.testing.assert_allclose(first.table.mean(0), WEIGHTS)
        # the second stage collects the first stage's equalized weights
        np.testing.assert_allclose(second.table.mean(0), 1.0)
        np.testing.assert_array_equal(second.table.entries[0], [2, 2, 2, 2])

    def test_chained_pass_equalizes_already_equalized_weights(self, event):
        """Attaching both tables applies both equalizations in sequence."""
        table_1 = _calibrated_table(event)
        table_2 = table_1.copy(name="gain_eq_2")
        table_2.sum[:] = table_2.entries * 2.0  # average 2 per channel

        first = _stage(key="gain_eq_1")
        second = _stage(key="gain_eq_2")
        pipeline = _pipeline(first, second,
                             source={"gain_eq_1": table_1, "gain_eq_2": table_2})
        bank = _correct(pipeline, event)

        np.testing.assert_allclose(bank.equalized_weight, 0.5)
        np.testing.assert_allclose(second.table.mean(0), 1.0)
