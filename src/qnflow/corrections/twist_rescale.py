"""Twist and rescale corrections.

After recentering, the flow vector distribution can still be elliptic and
tilted: the X and Y components are correlated and have different widths.
The twist sub-step removes the correlation, the rescale sub-step restores
equal unit widths. Both sub-steps use four parameters per harmonic and
event-class bin, A+, A-, L+ and L-:

    twist:    Qx' = (Qx - L- Qy) / (1 - L- L+)
              Qy' = (Qy - L+ Qx) / (1 - L- L+)
    rescale:  Qx'' = Qx' / A+
              Qy'' = Qy' / A-

Two estimation methods for the parameters are available.

``double_harmonic`` uses the bin averages X2n, Y2n of the same detector's
plain vector at twice the harmonic::

    A+ = 1 + X2n,  A- = 1 - X2n,  L+ = Y2n / A+,  L- = Y2n / A-

``correlations`` uses averaged products of this detector (A) with two
reference detectors (B, C), which must themselves be twist corrected::

    A+ = sqrt(|2 XAXC|) XAXB / sqrt(|XAXB XBXC + XAYB XBYC|)
    A- = sqrt(|2 XAXC|) YAYB / sqrt(|XAXB XBXC + XAYB XBYC|)
    L+ = XAYB / XAXB,  L- = XAYB / YAYB
"""

import logging
from typing import TYPE_CHECKING, Mapping, Optional

import numpy as np

from qnflow.core.calibration import CalibrationTable, component_slots
from qnflow.core.event import EventContext
from qnflow.core.qvector import FlowVector
from qnflow.contracts import ConfigurationError
from qnflow.corrections.base import CorrectionStage

if TYPE_CHECKING:
    from qnflow.pipeline.subevent import SubEventPipeline

__all__ = ['TwistAndRescale', 'TWIST_METHODS', 'MAX_THRESHOLD', 'CORRELATION_TERMS']

logger = logging.getLogger(__name__)

TWIST_METHODS = ("double_harmonic", "correlations")

# Parameters beyond this magnitude are treated as degenerate.
MAX_THRESHOLD = 99999999.0

CORRELATION_TERMS = ("xaxc", "yayb", "xaxb", "xbxc", "xayb", "xbyc")


def correlation_slots(harmonics) -> list[str]:
    return [f"{term}{h}" for h in harmonics for term in CORRELATION_TERMS]


class TwistAndRescale(CorrectionStage):
    """Twist and rescale stage with two toggle-able sub-steps.

    Parameters
    ----------
    detector, harmonics, n_bins, min_entries, fill_qa, key
        See CorrectionStage.
    method : {"double_harmonic", "correlations"}
        Parameter estimation method.
    apply_twist, apply_rescale : bool
        Enable the sub-steps. The pipeline's current vector becomes the
        ``rescaled`` output when rescale is enabled, ``twisted`` otherwise.
        With twist disabled the ``twisted`` output mirrors the input, but
        rescale still divides the twisted components.
    reference_b, reference_c : str, optional
        Reference detectors for the correlations method.
    """

    key = "twist_and_rescale"
    priority = 2

    def __init__(self, detector: str, harmonics: tuple, n_bins: int,
                 method: str = "double_harmonic", apply_twist: bool = True,
                 apply_rescale: bool = True, reference_b: Optional[str] = None,
                 reference_c: Optional[str] = None, min_entries: int = 2,
                 fill_qa: bool = False, key: Optional[str] = None):
        if method not in TWIST_METHODS:
            raise ValueError(f"Unknown twist and rescale method: {method}")
        if method == "correlations" and (reference_b is None or reference_c is None):
            raise ConfigurationError(
                f"Twist and rescale on '{detector}': correlations method needs "
                f"reference_b and reference_c"
            )
        self.method = method
        self.apply_twist = apply_twist
        self.apply_rescale = apply_rescale
        self.reference_b = reference_b
        self.reference_c = reference_c
        self._pipeline_b: Optional["SubEventPipeline"] = None
        self._pipeline_c: Optional["SubEventPipeline"] = None

        self._twisted = FlowVector("twisted", harmonics)
        self._rescaled = FlowVector("rescaled", harmonics)
        super().__init__(detector, harmonics, n_bins, min_entries, fill_qa, key)
        logger.debug("TwistAndRescale created for %s: method=%s, twist=%s, rescale=%s",
                     detector, method, apply_twist, apply_rescale)

    def _make_table(self) -> CalibrationTable:
        if self.method == "double_harmonic":
            slots = component_slots([2 * h for h in self.harmonics])
        else:
            slots = correlation_slots(self.harmonics)
        return CalibrationTable(self.key, self.n_bins, slots, self.min_entries)

    @property
    def outputs(self) -> dict[str, FlowVector]:
        return {"twisted": self._twisted, "rescaled": self._rescaled}

    @property
    def current_output(self) -> FlowVector:
        return self._rescaled if self.apply_rescale else self._twisted

    @property
    def twist_applied(self) -> bool:
        return self.is_applying and self.apply_twist

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def after_inputs_attach(self, pipelines: Mapping[str, "SubEventPipeline"]) -> None:
        if self.method != "correlations":
            return
        for ref in (self.reference_b, self.reference_c):
            if ref not in pipelines:
                raise ConfigurationError(
                    f"Twist and rescale on '{self.detector}': reference detector '{ref}' not configured"
                )
        self._pipeline_b = pipelines[self.reference_b]
        self._pipeline_c = pipelines[self.reference_c]
        if not self._pipeline_b.twist_applied():
            self.set_passive(f"reference detector '{self.reference_b}' is not twist corrected")

    # ------------------------------------------------------------------
    # Collection
    # ------------------------------------------------------------------

    def _collect(self, pipeline: "SubEventPipeline", event: EventContext) -> None:
        if self.method == "double_harmonic":
            q2n = pipeline.plain_q2n
            if q2n.good:
                self._table.fill(event.bin, q2n.components())
            return

        vec_a = pipeline.input_vector(self)
        vec_b = self._pipeline_b.current
        vec_c = self._pipeline_c.current
        if not (vec_a.good and vec_b.good and vec_c.good):
            return
        terms = np.column_stack([
            vec_a.qx * vec_c.qx,
            vec_a.qy * vec_b.qy,
            vec_a.qx * vec_b.qx,
            vec_b.qx * vec_c.qx,
            vec_a.qx * vec_b.qy,
            vec_b.qx * vec_c.qy,
        ])
        self._table.fill(event.bin, terms.ravel())

    # ------------------------------------------------------------------
    # Correction
    # ------------------------------------------------------------------

    def parameters(self, bin_index: int) -> tuple[np.ndarray, np.ndarray, np.ndarray, np.ndarray]:
        """A+, A-, L+, L- per harmonic from the attached table."""
        mean = self._input_table.mean(bin_index)
        with np.errstate(divide="ignore", invalid="ignore"):
            if self.method == "double_harmonic":
                x2n, y2n = mean[0::2], mean[1::2]
                a_plus = 1.0 + x2n
                a_minus = 1.0 - x2n
                l_plus = y2n / a_plus
                l_minus = y2n / a_minus
            else:
                corr = mean.reshape(len(self.harmonics), len(CORRELATION_TERMS))
                xaxc, yayb, xaxb, xbxc, xayb, xbyc = corr.T
                scale = np.sqrt(np.abs(2.0 * xaxc)) / np.sqrt(np.abs(xaxb * xbxc + xayb * xbyc))
                a_plus = scale * xaxb
                a_minus = scale * yayb
                l_plus = xayb / xaxb
                l_minus = xayb / yayb
        return a_plus, a_minus, l_plus, l_minus

    def _pass_through(self, pipeline: "SubEventPipeline", event: EventContext) -> None:
        self._twisted.reset()
        self._rescaled.reset()

    def _apply(self, pipeline: "SubEventPipeline", event: EventContext) -> bool:
        source = pipeline.input_vector(self)
        if not source.good:
            for vector in (self._twisted, self._rescaled):
                vector.reset()
                vector.n = source.n
                vector.sum_weights = source.sum_weights
            return True

        self._twisted.copy_from(source)
        self._rescaled.copy_from(source)
        if not self._bin_validated(event):
            return True

        a_plus, a_minus, l_plus, l_minus = self.parameters(event.bin)
        determinant = 1.0 - l_minus * l_plus
        params = np.vstack([a_plus, a_minus, l_plus, l_minus])
        stable = (np.all(np.isfinite(params), axis=0)
                  & np.all(np.abs(params) <= MAX_THRESHOLD, axis=0)
                  & (determinant != 0.0))
        rescalable = stable & (a_plus != 0.0) & (a_minus != 0.0)

        n_skipped = int(np.count_nonzero(~rescalable if self.apply_rescale else ~stable))
        if n_skipped:
            self.degenerate[event.bin] += n_skipped

        # rescale always acts on the twisted components, even when the
        # twisted vector itself is not published
        qx, qy = source.qx, source.qy
        with np.errstate(divide="ignore", invalid="ignore"):
            twisted_x = (qx - l_minus * qy) / determinant
            twisted_y = (qy - l_plus * qx) / determinant
        if self.apply_twist:
            self._twisted.qx[stable] = twisted_x[stable]
            self._twisted.qy[stable] = twisted_y[stable]
            np.copyto(self._rescaled.qx, self._twisted.qx)
            np.copyto(self._rescaled.qy, self._twisted.qy)

        if self.apply_rescale:
            with np.errstate(divide="ignore", invalid="ignore"):
                rescaled_x = twisted_x / a_plus
                rescaled_y = twisted_y / a_minus
            self._rescaled.qx[rescalable] = rescaled_x[rescalable]
            self._rescaled.qy[rescalable] = rescaled_y[rescalable]
        return True

    def diagnostics(self) -> dict:
        out = super().diagnostics()
        out["method"] = self.method
        out["apply_twist"] = self.apply_twist
        out["apply_rescale"] = self.apply_rescale
        return out
