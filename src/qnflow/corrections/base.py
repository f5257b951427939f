"""Correction stage state machine.

Every correction stage, whatever its algorithm, shares the same lifecycle:

    CALIBRATING --(attach succeeds)--> APPLYING_AND_COLLECTING --(freeze)--> APPLYING
    CALIBRATING --(never attaches)--> stays CALIBRATING for the whole run
    any state --(prerequisite check fails)--> PASSIVE

The base class owns the state, the attached (input) table, the table being
built, the diagnostic counters and the QA tables. Concrete stages implement
``_collect`` and ``_apply``; the state dispatch below calls them explicitly
from each state that needs them.
"""

import logging
from enum import Enum
from typing import TYPE_CHECKING, Mapping, Optional

import numpy as np

from qnflow.core.calibration import CalibrationTable, component_slots
from qnflow.core.event import EventContext
from qnflow.core.qvector import FlowVector
from qnflow.contracts import assert_calibration_table

if TYPE_CHECKING:
    from qnflow.pipeline.subevent import SubEventPipeline

__all__ = ['StageState', 'CorrectionStage']

logger = logging.getLogger(__name__)


class StageState(str, Enum):
    """Lifecycle state of a correction stage within a run."""
    CALIBRATING = "calibrating"
    APPLYING = "applying"
    APPLYING_AND_COLLECTING = "applying_and_collecting"
    PASSIVE = "passive"


APPLYING_STATES = (StageState.APPLYING, StageState.APPLYING_AND_COLLECTING)
COLLECTING_STATES = (StageState.CALIBRATING, StageState.APPLYING_AND_COLLECTING)


class CorrectionStage:
    """Base class for the closed set of correction stages.

    Parameters
    ----------
    detector : str
        Name of the owning detector; part of the calibration storage key.
    harmonics : tuple of int
        Harmonics of the owning detector.
    n_bins : int
        Number of event-class bins.
    min_entries : int
        Entries a calibration bin needs to be used.
    fill_qa : bool, optional
        Fill before/after average-vector tables while applying.
    key : str, optional
        Overrides the class storage key, needed when the same stage kind
        appears twice on one detector.

    Attributes
    ----------
    key : str
        Storage key of the stage's calibration table (class attribute).
    priority : int
        Position in the chain; lower runs first (class attribute).
    input_data : bool
        True for stages that act on the contribution bank rather than on
        a flow vector (class attribute).
    """

    key = "stage"
    priority = 0
    input_data = False

    def __init__(self, detector: str, harmonics: tuple, n_bins: int,
                 min_entries: int, fill_qa: bool = False, key: Optional[str] = None):
        if key is not None:
            self.key = key
        self.detector = detector
        self.harmonics = tuple(harmonics)
        self.n_bins = n_bins
        self.min_entries = min_entries
        self.state = StageState.CALIBRATING
        self.freeze_on_attach = False

        self._table = self._make_table()
        self._input_table: Optional[CalibrationTable] = None

        self.not_validated = np.zeros(n_bins, dtype=np.int64)
        self.degenerate = np.zeros(n_bins, dtype=np.int64)

        self.qa: dict[str, CalibrationTable] = {}
        if fill_qa:
            slots = self._qa_slots()
            self.qa = {
                label: CalibrationTable(f"{self.key}_qa_{label}", n_bins, slots, min_entries)
                for label in ("before", "after")
            }

    def __repr__(self):
        return f"{type(self).__name__}(detector={self.detector!r}, state={self.state.value})"

    def __lt__(self, other: "CorrectionStage"):
        return self.priority < other.priority

    # ------------------------------------------------------------------
    # Hooks for concrete stages
    # ------------------------------------------------------------------

    def _make_table(self) -> CalibrationTable:
        raise NotImplementedError

    def _qa_slots(self) -> list[str]:
        return component_slots(self.harmonics)

    def _collect(self, pipeline: "SubEventPipeline", event: EventContext) -> None:
        raise NotImplementedError

    def _apply(self, pipeline: "SubEventPipeline", event: EventContext) -> bool:
        raise NotImplementedError

    def _pass_through(self, pipeline: "SubEventPipeline", event: EventContext) -> None:
        """Identity transform used while calibrating or passive."""

    @property
    def outputs(self) -> dict[str, FlowVector]:
        """Named vectors owned by this stage."""
        return {}

    @property
    def current_output(self) -> Optional[FlowVector]:
        """Vector that becomes the pipeline's current vector when applied."""
        return None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    @property
    def is_applying(self) -> bool:
        return self.state in APPLYING_STATES

    @property
    def is_collecting(self) -> bool:
        return self.state in COLLECTING_STATES

    @property
    def input_table(self) -> Optional[CalibrationTable]:
        return self._input_table

    @property
    def table(self) -> CalibrationTable:
        return self._table

    def attach_input(self, source: Mapping[str, Mapping[str, CalibrationTable]]) -> bool:
        """Look up this stage's table in a calibration container.

        Parameters
        ----------
        source : mapping
            ``{detector: {stage_key: CalibrationTable}}`` for the run.

        Returns
        -------
        bool
            True when the stage is applying after the call. Calling again
            after a successful attach changes nothing.
        """
        if self.state != StageState.CALIBRATING:
            return self.is_applying

        table = source.get(self.detector, {}).get(self.key)
        if table is None:
            logger.info("%s/%s: no calibration input, collecting only", self.detector, self.key)
            return False

        assert_calibration_table(table, self.n_bins, self._table.slots)
        self._input_table = table.copy()
        self._input_table.min_entries = self.min_entries
        self.state = (StageState.APPLYING if self.freeze_on_attach
                      else StageState.APPLYING_AND_COLLECTING)
        logger.info("%s/%s: calibration attached (%d entries), state=%s",
                    self.detector, self.key, int(table.entries.sum()), self.state.value)
        return True

    def after_inputs_attach(self, pipelines: Mapping[str, "SubEventPipeline"]) -> None:
        """Dependency check run once after every stage has attached."""

    def freeze(self) -> None:
        """Stop collecting: APPLYING_AND_COLLECTING becomes APPLYING."""
        if self.state == StageState.APPLYING_AND_COLLECTING:
            self.state = StageState.APPLYING
            logger.debug("%s/%s: calibration frozen", self.detector, self.key)

    def set_passive(self, reason: str) -> None:
        logger.warning("%s/%s: switching to passive: %s", self.detector, self.key, reason)
        self.state = StageState.PASSIVE

    def report_usage(self) -> tuple[bool, bool]:
        """(contributes to calibration output, contributes to apply output)."""
        return self.is_collecting, self.is_applying

    def calibration_tables(self) -> dict[str, CalibrationTable]:
        """Tables to persist at the end of the run."""
        if self.is_collecting:
            return {self.key: self._table}
        if self._input_table is not None:
            return {self.key: self._input_table}
        return {}

    def clear(self) -> None:
        for vector in self.outputs.values():
            vector.reset()

    # ------------------------------------------------------------------
    # Per-event dispatch
    # ------------------------------------------------------------------

    def process_data_collection(self, pipeline: "SubEventPipeline", event: EventContext) -> bool:
        """Accumulate calibration statistics for this event.

        Returns
        -------
        bool
            Whether collection may continue with the next stage. A stage
            still calibrating stops it, since later stages need its output.
        """
        if self.state == StageState.CALIBRATING:
            self._collect(pipeline, event)
            return False
        if self.state == StageState.APPLYING_AND_COLLECTING:
            self._collect(pipeline, event)
            self._fill_qa(pipeline, event)
            return True
        if self.state == StageState.APPLYING:
            self._fill_qa(pipeline, event)
            return True
        return False

    def process_corrections(self, pipeline: "SubEventPipeline", event: EventContext) -> bool:
        """Correct this event.

        Returns
        -------
        bool
            True when the stage applied its transform ("applied").
        """
        if self.is_applying:
            return self._apply(pipeline, event)
        self._pass_through(pipeline, event)
        return False

    # ------------------------------------------------------------------
    # Shared helpers
    # ------------------------------------------------------------------

    def _bin_validated(self, event: EventContext) -> bool:
        """Validation gate; counts the event when the bin cannot be used."""
        if self._input_table is not None and self._input_table.validated(event.bin):
            return True
        if 0 <= event.bin < self.n_bins:
            self.not_validated[event.bin] += 1
        return False

    def _fill_qa(self, pipeline: "SubEventPipeline", event: EventContext) -> None:
        """Average input and output vectors per bin.

        Input-data stages have no vectors of their own and fill their QA
        around the weight update in ``_apply`` instead.
        """
        if not self.qa or self.input_data:
            return
        before = pipeline.input_vector(self)
        after = self.current_output
        for label, vector in (("before", before), ("after", after)):
            if vector is not None and vector.good:
                self.qa[label].fill(event.bin, vector.components())

    def diagnostics(self) -> dict:
        collecting, applying = self.report_usage()
        return {
            "detector": self.detector,
            "stage": self.key,
            "priority": self.priority,
            "state": self.state.value,
            "collecting": collecting,
            "applying": applying,
            "not_validated": int(self.not_validated.sum()),
            "degenerate": int(self.degenerate.sum()),
        }
