"""Recentering of flow vectors.

Removes the event-class average of the flow vector, the dominant effect of
a non-uniform acceptance, and optionally divides by the per-bin spread
(width equalization).
"""

import logging
from typing import TYPE_CHECKING, Optional

from qnflow.core.calibration import CalibrationTable, component_slots
from qnflow.core.event import EventContext
from qnflow.core.qvector import FlowVector
from qnflow.corrections.base import CorrectionStage

if TYPE_CHECKING:
    from qnflow.pipeline.subevent import SubEventPipeline

__all__ = ['Recentering']

logger = logging.getLogger(__name__)


class Recentering(CorrectionStage):
    """Subtract the per-bin mean vector, optionally equalize widths.

    For every harmonic h of a validated bin::

        Qx'(h) = (Qx(h) - <Qx(h)>) / wx(h)
        Qy'(h) = (Qy(h) - <Qy(h)>) / wy(h)

    with w = 1, or the per-bin spread when ``width_equalization`` is set.

    Parameters
    ----------
    detector, harmonics, n_bins, min_entries, fill_qa, key
        See CorrectionStage.
    width_equalization : bool
        Divide by the per-bin spread. Harmonics whose spread is zero are
        only recentered and counted as degenerate.
    """

    key = "recentering"
    priority = 1

    def __init__(self, detector: str, harmonics: tuple, n_bins: int,
                 width_equalization: bool = False, min_entries: int = 2,
                 fill_qa: bool = False, key: Optional[str] = None):
        self.width_equalization = width_equalization
        self._output = FlowVector("recentered", harmonics)
        super().__init__(detector, harmonics, n_bins, min_entries, fill_qa, key)
        logger.debug("Recentering created for %s: width_equalization=%s, min_entries=%d",
                     detector, width_equalization, min_entries)

    def _make_table(self) -> CalibrationTable:
        return CalibrationTable(self.key, self.n_bins, component_slots(self.harmonics),
                                self.min_entries)

    @property
    def outputs(self) -> dict[str, FlowVector]:
        return {self._output.name: self._output}

    @property
    def current_output(self) -> FlowVector:
        return self._output

    def _collect(self, pipeline: "SubEventPipeline", event: EventContext) -> None:
        vector = pipeline.input_vector(self)
        if vector.good:
            self._table.fill(event.bin, vector.components())

    def _apply(self, pipeline: "SubEventPipeline", event: EventContext) -> bool:
        source = pipeline.input_vector(self)
        output = self._output
        if not source.good:
            output.reset()
            output.n = source.n
            output.sum_weights = source.sum_weights
            return True

        output.copy_from(source)
        if not self._bin_validated(event):
            return True

        table = self._input_table
        mean = table.mean(event.bin)
        mean_x, mean_y = mean[0::2], mean[1::2]
        output.qx -= mean_x
        output.qy -= mean_y

        if self.width_equalization:
            spread = table.spread(event.bin)
            width_x, width_y = spread[0::2], spread[1::2]
            usable = (width_x > 0) & (width_y > 0)
            if not usable.all():
                self.degenerate[event.bin] += 1
            output.qx[usable] /= width_x[usable]
            output.qy[usable] /= width_y[usable]
        return True

    def diagnostics(self) -> dict:
        out = super().diagnostics()
        out["width_equalization"] = self.width_equalization
        return out
