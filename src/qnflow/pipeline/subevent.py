"""Per-detector correction pipeline.

A SubEventPipeline owns one detector's contribution bank, its raw, plain and
plain-Q2n flow vectors and its ordered correction stages. Every event it:

1. runs the input-data stages (gain equalization) on the bank,
2. builds the raw vector from raw weights and the plain and plain-Q2n
   vectors from equalized weights, normalizing the latter two,
3. runs the flow vector stages in priority order, each stage reading the
   previous stage's output; the chain stops at the first stage that does
   not apply its correction,
4. on request (after every detector has been corrected), runs calibration
   data collection along the same chain.

All vectors and the bank are allocated once and reused every event.
"""

import logging
from typing import Mapping, Optional, Sequence

import numpy as np

from qnflow.core.datavector import ContributionBank
from qnflow.core.event import EventContext
from qnflow.core.qvector import FlowVector, NORMALIZATIONS
from qnflow.contracts import ConfigurationError, assert_flow_vector
from qnflow.corrections.base import CorrectionStage
from qnflow.corrections.twist_rescale import TwistAndRescale

__all__ = ['SubEventPipeline']

logger = logging.getLogger(__name__)


class SubEventPipeline:
    """Ordered correction chain for one detector sub-event.

    Parameters
    ----------
    name : str
        Detector name.
    harmonics : sequence of int
        Harmonics of every flow vector of this detector.
    stages : sequence of CorrectionStage
        Stages of this detector, in any order; they run by ascending
        priority, ties kept in the given order.
    normalization : {"none", "m", "sqrt_m", "magnitude"}
        Normalization of the plain and plain-Q2n vectors.
    n_channels : int, optional
        Number of channels; 0 for a track-like detector.
    used_channels : sequence of int, optional
        Channels that contribute. Contributions of other channels are
        dropped when the bank is filled. Default: all channels.
    freeze_attached : bool, optional
        Stages that attach a calibration go straight to APPLYING.
    """

    def __init__(self, name: str, harmonics: Sequence[int], stages: Sequence[CorrectionStage] = (),
                 normalization: str = "m", n_channels: int = 0,
                 used_channels: Optional[Sequence[int]] = None,
                 freeze_attached: bool = False, capacity: int = 256):
        if normalization not in NORMALIZATIONS:
            raise ConfigurationError(f"Detector '{name}': unknown normalization '{normalization}'")
        self.name = name
        self.harmonics = tuple(harmonics)
        self.normalization = normalization
        self.n_channels = n_channels

        self._used = None
        if n_channels:
            self._used = np.ones(n_channels, dtype=bool)
            if used_channels is not None:
                used = np.asarray(used_channels, dtype=np.int64)
                if used.size and (used.min() < 0 or used.max() >= n_channels):
                    raise ConfigurationError(
                        f"Detector '{name}': used_channels outside [0, {n_channels})"
                    )
                self._used[:] = False
                self._used[used] = True

        keys = [s.key for s in stages]
        if len(set(keys)) != len(keys):
            raise ConfigurationError(
                f"Detector '{name}': duplicated stage keys {keys}; name stacked stages explicitly"
            )
        for stage in stages:
            if stage.harmonics != self.harmonics:
                raise ConfigurationError(
                    f"Detector '{name}': stage '{stage.key}' built for harmonics {stage.harmonics}"
                )
            stage.freeze_on_attach = freeze_attached

        ordered = sorted(stages, key=lambda s: s.priority)
        self.input_stages = [s for s in ordered if s.input_data]
        self.qvector_stages = [s for s in ordered if not s.input_data]

        self.bank = ContributionBank(capacity)
        self.raw = FlowVector("raw", self.harmonics)
        self.plain = FlowVector("plain", self.harmonics)
        self.plain_q2n = FlowVector("plain_q2n", [2 * h for h in self.harmonics])
        self.current = self.plain
        self._inputs: dict[str, FlowVector] = {}

        logger.info("SubEventPipeline '%s': harmonics=%s, normalization=%s, stages=%s",
                    name, self.harmonics, normalization, [s.key for s in ordered])

    def __repr__(self):
        return f"SubEventPipeline({self.name!r}, stages={[s.key for s in self.stages]})"

    @property
    def stages(self) -> list[CorrectionStage]:
        return self.input_stages + self.qvector_stages

    def stage(self, key: str) -> CorrectionStage:
        for stage in self.stages:
            if stage.key == key:
                return stage
        raise KeyError(f"Detector '{self.name}' has no stage '{key}'")

    # ------------------------------------------------------------------
    # Run boundary
    # ------------------------------------------------------------------

    def attach_inputs(self, source: Mapping) -> int:
        """Offer a calibration container to every stage.

        Returns
        -------
        int
            Number of stages now applying.
        """
        return sum(bool(stage.attach_input(source)) for stage in self.stages)

    def after_inputs_attach(self, pipelines: Mapping[str, "SubEventPipeline"]) -> None:
        for stage in self.stages:
            stage.after_inputs_attach(pipelines)

    def freeze(self) -> None:
        for stage in self.stages:
            stage.freeze()

    def is_stage_applied(self, key: str) -> bool:
        return any(s.key == key and s.is_applying for s in self.stages)

    def twist_applied(self) -> bool:
        """True when a twist sub-step of this detector is being applied."""
        return any(isinstance(s, TwistAndRescale) and s.twist_applied for s in self.qvector_stages)

    def calibration_output(self) -> dict:
        """``{stage_key: CalibrationTable}`` to persist for this detector."""
        out = {}
        for stage in self.stages:
            out.update(stage.calibration_tables())
        return out

    def qa_output(self) -> dict:
        return {stage.key: stage.qa for stage in self.stages if stage.qa}

    def report_usage(self) -> dict[str, tuple[bool, bool]]:
        return {stage.key: stage.report_usage() for stage in self.stages}

    def diagnostics(self) -> list[dict]:
        return [stage.diagnostics() for stage in self.stages]

    # ------------------------------------------------------------------
    # Per event
    # ------------------------------------------------------------------

    def fill(self, phi, weight=None, channel=None) -> None:
        """Add the event's raw contributions to the bank.

        For channelized detectors ``channel`` is required and contributions
        from unused channels are dropped. Track-like detectors ignore it.
        """
        if not self.n_channels:
            self.bank.extend(phi, weight)
            return
        if channel is None:
            raise ValueError(f"Detector '{self.name}' is channelized: channel indices required")

        channel = np.asarray(channel, dtype=np.int64).ravel()
        if channel.size and (channel.min() < 0 or channel.max() >= self.n_channels):
            raise ValueError(f"Detector '{self.name}': channel index outside [0, {self.n_channels})")
        keep = self._used[channel]
        phi = np.asarray(phi, dtype=float).ravel()
        weight = np.ones(phi.size) if weight is None else np.asarray(weight, dtype=float).ravel()
        if keep.all():
            self.bank.extend(phi, weight, channel)
        else:
            self.bank.extend(phi[keep], weight[keep], channel[keep])

    def input_vector(self, stage: CorrectionStage) -> FlowVector:
        """Vector the stage received in this event's correction chain."""
        return self._inputs.get(stage.key, self.plain)

    def build_vectors(self) -> None:
        bank = self.bank
        self.raw.build(bank.phi, bank.weight)
        self.plain.build(bank.phi, bank.equalized_weight)
        self.plain_q2n.build(bank.phi, bank.equalized_weight)
        self.plain.normalize(self.normalization)
        self.plain_q2n.normalize(self.normalization)
        assert_flow_vector(self.plain, self.harmonics)

    def process_corrections(self, event: EventContext) -> bool:
        """Correct the event; returns whether any flow vector stage applied."""
        for stage in self.input_stages:
            stage.process_data_collection(self, event)
            stage.process_corrections(self, event)

        self.build_vectors()
        self.current = self.plain
        applied = False
        for stage in self.qvector_stages:
            self._inputs[stage.key] = self.current
            if not stage.process_corrections(self, event):
                break
            self.current = stage.current_output
            applied = True
        return applied

    def process_data_collection(self, event: EventContext) -> None:
        for stage in self.qvector_stages:
            if not stage.process_data_collection(self, event):
                break

    def process_event(self, event: EventContext) -> FlowVector:
        """Correct and collect a single-detector event; returns the current vector."""
        self.process_corrections(event)
        self.process_data_collection(event)
        return self.current

    def vectors(self) -> dict[str, FlowVector]:
        """Named vectors of the event: raw, plain, plain_q2n, stage outputs, corrected."""
        out = {"raw": self.raw, "plain": self.plain, "plain_q2n": self.plain_q2n}
        for stage in self.qvector_stages:
            for name, vector in stage.outputs.items():
                out[name if name not in out else f"{stage.key}:{name}"] = vector
        out["corrected"] = self.current
        return out

    def clear(self) -> None:
        """Empty the bank and reset every vector for the next event."""
        self.bank.clear()
        self.raw.reset()
        self.plain.reset()
        self.plain_q2n.reset()
        for stage in self.stages:
            stage.clear()
        self.current = self.plain
        self._inputs.clear()
