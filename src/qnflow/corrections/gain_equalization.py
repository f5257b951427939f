"""Gain equalization of detector channels.

Runs on the contribution bank before any flow vector is built. Each
channel's weight is rescaled using its average multiplicity in the event
class, so that channels with different gains contribute comparably.

The stage collects the equalized weight each channel carries when the stage
starts, then equalizes. Stacked equalization stages therefore learn from
the previous stage's output, which allows iterative re-equalization across
calibration passes. Collection and correction cannot be separated for this
stage.
"""

import logging
from typing import TYPE_CHECKING, Optional, Sequence

import numpy as np

from qnflow.core.calibration import CalibrationTable, channel_slots
from qnflow.core.event import EventContext
from qnflow.corrections.base import CorrectionStage

if TYPE_CHECKING:
    from qnflow.pipeline.subevent import SubEventPipeline

__all__ = ['GainEqualization', 'EQUALIZATION_METHODS', 'MIN_SIGNIFICANT_AVERAGE']

logger = logging.getLogger(__name__)

EQUALIZATION_METHODS = ("none", "average", "width")

MIN_SIGNIFICANT_AVERAGE = 1e-6


class GainEqualization(CorrectionStage):
    """Per-channel weight equalization.

    Parameters
    ----------
    detector, harmonics, n_bins, min_entries, fill_qa, key
        See CorrectionStage.
    n_channels : int
        Number of detector channels.
    method : {"none", "average", "width"}
        ``average``: w' = w / avg x g. ``width``: w' = (shift + scale x
        (w - avg) / spread) x g. ``none`` leaves the weights untouched but
        still collects.
    shift, scale : float
        Parameters of the ``width`` method.
    channel_groups : sequence of int, optional
        Group id of each channel. Group weights are only used when more
        than one distinct group is declared.
    group_weights : sequence of float, optional
        Hard-coded weight per channel, used when groups are in play and
        ``use_group_weights`` is False.
    use_group_weights : bool
        Take group weights from the collected per-group averages instead.

    Notes
    -----
    With ``fill_qa`` the QA tables hold the per-channel weights just before
    (``before``) and just after (``after``) equalization, filled in
    ``_apply``.
    """

    key = "gain_equalization"
    priority = 0
    input_data = True

    def __init__(self, detector: str, harmonics: tuple, n_bins: int, n_channels: int,
                 method: str = "none", shift: float = 0.0, scale: float = 1.0,
                 channel_groups: Optional[Sequence[int]] = None,
                 group_weights: Optional[Sequence[float]] = None,
                 use_group_weights: bool = False, min_entries: int = 2,
                 fill_qa: bool = False, key: Optional[str] = None):
        if method not in EQUALIZATION_METHODS:
            raise ValueError(f"Unknown gain equalization method: {method}")
        self.n_channels = n_channels
        self.method = method
        self.shift = shift
        self.scale = scale

        self._groups = None
        self._group_ids: list[int] = []
        if channel_groups is not None and len(set(channel_groups)) > 1:
            self._group_ids = sorted(set(int(g) for g in channel_groups))
            position = {g: i for i, g in enumerate(self._group_ids)}
            self._groups = np.array([position[int(g)] for g in channel_groups], dtype=np.int64)

        self._hard_coded = None
        if self._groups is not None and group_weights is not None:
            self._hard_coded = np.asarray(group_weights, dtype=float)
        self.use_group_weights = use_group_weights and self._groups is not None

        super().__init__(detector, harmonics, n_bins, min_entries, fill_qa, key)
        logger.debug("GainEqualization created for %s: method=%s, channels=%d, groups=%d",
                     detector, method, n_channels, len(self._group_ids))

    def _make_table(self) -> CalibrationTable:
        slots = channel_slots(self.n_channels)
        slots += [f"grp{g}" for g in self._group_ids]
        return CalibrationTable(self.key, self.n_bins, slots, self.min_entries)

    def _qa_slots(self) -> list[str]:
        return channel_slots(self.n_channels)

    # ------------------------------------------------------------------

    def _collect(self, pipeline: "SubEventPipeline", event: EventContext) -> None:
        bank = pipeline.bank
        if len(bank) == 0:
            return
        self._table.fill(event.bin, bank.equalized_weight, bank.channel)
        if self._groups is not None:
            group_slots = self.n_channels + self._groups[bank.channel]
            self._table.fill(event.bin, bank.equalized_weight, group_slots)

    def _group_weight(self, bin_index: int, channels: np.ndarray) -> np.ndarray:
        if self.use_group_weights:
            table = self._input_table
            group_means = table.mean(bin_index)[self.n_channels:]
            overall = group_means.mean()
            if overall <= MIN_SIGNIFICANT_AVERAGE:
                return np.ones(channels.size)
            return group_means[self._groups[channels]] / overall
        if self._hard_coded is not None:
            return self._hard_coded[channels]
        return np.ones(channels.size)

    def _apply(self, pipeline: "SubEventPipeline", event: EventContext) -> bool:
        bank = pipeline.bank
        if len(bank) == 0:
            return True
        weights = bank.equalized_weight
        channels = bank.channel

        if self.qa:
            self.qa["before"].fill(event.bin, weights, channels)

        if self.method != "none":
            self._equalize(event, weights, channels)

        if self.qa:
            self.qa["after"].fill(event.bin, weights, channels)
        return True

    def _equalize(self, event: EventContext, weights: np.ndarray, channels: np.ndarray) -> None:
        table = self._input_table
        if not 0 <= event.bin < self.n_bins:
            return

        valid = table.validated_slots(event.bin)[channels]
        if not valid.any():
            self.not_validated[event.bin] += 1
            return

        average = table.mean(event.bin)[channels]
        group_weight = self._group_weight(event.bin, channels)
        significant = average > MIN_SIGNIFICANT_AVERAGE

        if self.method == "average":
            with np.errstate(divide="ignore", invalid="ignore"):
                equalized = np.where(significant, weights / average * group_weight, 0.0)
        else:
            width = table.spread(event.bin)[channels]
            usable = significant & (width > 0)
            with np.errstate(divide="ignore", invalid="ignore"):
                equalized = np.where(
                    usable,
                    (self.shift + self.scale * (weights - average) / width) * group_weight,
                    0.0,
                )
            significant = usable

        # one count per event, whether channels were skipped or zeroed
        if not valid.all() or not significant[valid].all():
            self.not_validated[event.bin] += 1
        weights[valid] = equalized[valid]

    def diagnostics(self) -> dict:
        out = super().diagnostics()
        out["method"] = self.method
        return out
