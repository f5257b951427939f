"""Synthetic event generation for calibration studies.

Produces events with a known azimuthal distribution so that acceptance
effects, channel gains and their corrections can be checked end to end.
Track-like detectors receive one contribution per particle; channelized
detectors receive one contribution per fired channel, at the channel
centre, weighted by the channel's signal.
"""

import logging
from typing import Iterator, Optional, Sequence

import numpy as np

from qnflow.core.event import Contributions

__all__ = ['EventGenerator']

logger = logging.getLogger(__name__)

TWO_PI = 2.0 * np.pi


class EventGenerator:
    """Random events with optional elliptic flow and acceptance defects.

    Parameters
    ----------
    detectors : sequence of DetectorConfig
        Detectors to generate contributions for.
    multiplicity : int
        Mean number of particles per detector (Poisson distributed).
    v2 : float
        Elliptic flow amplitude, dN/dphi ~ 1 + 2 v2 cos(2 (phi - psi)).
    acceptance_hole : (float, float), optional
        Azimuthal range (radians) with reduced efficiency.
    hole_efficiency : float
        Fraction of particles kept inside the hole.
    channel_gains : sequence of float, optional
        Multiplicative gain per channel for channelized detectors.
    seed : int, optional
        Seed of the numpy random generator.
    """

    def __init__(self, detectors: Sequence, multiplicity: int = 200, v2: float = 0.0,
                 acceptance_hole: Optional[tuple] = None, hole_efficiency: float = 0.5,
                 channel_gains: Optional[Sequence[float]] = None, seed: Optional[int] = None):
        self.detectors = list(detectors)
        self.multiplicity = multiplicity
        self.v2 = v2
        self.acceptance_hole = acceptance_hole
        self.hole_efficiency = hole_efficiency
        self.channel_gains = None if channel_gains is None else np.asarray(channel_gains, dtype=float)
        self.rng = np.random.default_rng(seed)

    @classmethod
    def from_config(cls, config, seed_offset: int = 0) -> "EventGenerator":
        """Build from an InternalConfig; ``seed_offset`` decorrelates passes."""
        sim = config.simulation
        seed = None if sim.seed is None else sim.seed + seed_offset
        return cls(
            config.detectors,
            multiplicity=sim.multiplicity,
            v2=sim.v2,
            acceptance_hole=sim.acceptance_hole,
            hole_efficiency=sim.hole_efficiency,
            channel_gains=sim.channel_gains,
            seed=seed,
        )

    def _sample_phi(self, n: int, psi: float) -> np.ndarray:
        if self.v2 == 0.0:
            phi = self.rng.uniform(0.0, TWO_PI, n)
        else:
            # accept-reject against the flat envelope 1 + 2 v2
            accepted = []
            remaining = n
            while remaining > 0:
                trial = self.rng.uniform(0.0, TWO_PI, 2 * remaining)
                density = 1.0 + 2.0 * self.v2 * np.cos(2.0 * (trial - psi))
                keep = self.rng.uniform(0.0, 1.0 + 2.0 * self.v2, trial.size) < density
                accepted.append(trial[keep][:remaining])
                remaining -= accepted[-1].size
            phi = np.concatenate(accepted) if accepted else np.empty(0)

        if self.acceptance_hole is not None:
            lo, hi = self.acceptance_hole
            inside = (phi >= lo) & (phi < hi)
            drop = inside & (self.rng.uniform(size=phi.size) >= self.hole_efficiency)
            phi = phi[~drop]
        return phi

    def _contributions(self, det, psi: float) -> Contributions:
        n = int(self.rng.poisson(self.multiplicity))
        phi = self._sample_phi(n, psi)
        if not det.n_channels:
            return Contributions(phi, np.ones(phi.size))

        width = TWO_PI / det.n_channels
        hits = np.minimum((phi / width).astype(np.int64), det.n_channels - 1)
        signal = np.bincount(hits, minlength=det.n_channels).astype(float)
        if self.channel_gains is not None:
            signal *= self.channel_gains
        fired = np.flatnonzero(signal > 0)
        centres = (fired + 0.5) * width
        return Contributions(centres, signal[fired], fired)

    def generate(self) -> tuple[dict, dict]:
        """One event: (variables, {detector: Contributions})."""
        variables = {
            "centrality": float(self.rng.uniform(0.0, 100.0)),
            "psi": float(self.rng.uniform(0.0, TWO_PI)),
        }
        contributions = {
            det.name: self._contributions(det, variables["psi"]) for det in self.detectors
        }
        return variables, contributions

    def events(self, n_events: int) -> Iterator[tuple[dict, dict]]:
        for _ in range(n_events):
            yield self.generate()
