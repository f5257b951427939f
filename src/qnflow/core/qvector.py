"""Harmonic flow vectors.

A FlowVector holds one (Qx, Qy) pair per configured harmonic, a quality
flag, the number of contributions and the weight sum. Vectors are created
once per pipeline and reused every event: ``reset()`` zeroes them in place
and ``build()`` fills them from the contribution bank.
"""

import logging
from typing import Iterable

import numpy as np

__all__ = ['FlowVector', 'NORMALIZATIONS', 'MIN_WEIGHT_SUM']

logger = logging.getLogger(__name__)

NORMALIZATIONS = ("none", "m", "sqrt_m", "magnitude")

# Below this weight sum a vector carries no usable information.
MIN_WEIGHT_SUM = 1e-6


class FlowVector:
    """Harmonic-indexed (Qx, Qy) accumulator with a quality flag.

    Parameters
    ----------
    name : str
        Position of the vector in the correction chain, e.g. "plain" or
        "recentered". Read-only after construction.
    harmonics : iterable of int
        Harmonic numbers carried by the vector (positive, unique).

    Notes
    -----
    Components are stored in two float arrays ordered like ``harmonics``.
    Use ``x(h)`` / ``y(h)`` for single values and ``qx`` / ``qy`` for the
    whole array.
    """

    def __init__(self, name: str, harmonics: Iterable[int]):
        harmonics = tuple(int(h) for h in harmonics)
        if not harmonics:
            raise ValueError(f"FlowVector '{name}' needs at least one harmonic")
        if len(set(harmonics)) != len(harmonics) or min(harmonics) < 1:
            raise ValueError(f"Invalid harmonics for FlowVector '{name}': {harmonics}")

        self._name = name
        self.harmonics = harmonics
        self._index = {h: i for i, h in enumerate(harmonics)}
        self._orders = np.asarray(harmonics, dtype=float)
        self.qx = np.zeros(len(harmonics))
        self.qy = np.zeros(len(harmonics))
        self.good = False
        self.n = 0
        self.sum_weights = 0.0

    @property
    def name(self) -> str:
        return self._name

    def __repr__(self):
        comps = ", ".join(
            f"{h}:({x:.4g},{y:.4g})" for h, x, y in zip(self.harmonics, self.qx, self.qy)
        )
        return f"FlowVector({self._name!r}, good={self.good}, n={self.n}, {comps})"

    def index(self, harmonic: int) -> int:
        return self._index[harmonic]

    def x(self, harmonic: int) -> float:
        return float(self.qx[self._index[harmonic]])

    def y(self, harmonic: int) -> float:
        return float(self.qy[self._index[harmonic]])

    def set_xy(self, harmonic: int, x: float, y: float) -> None:
        i = self._index[harmonic]
        self.qx[i] = x
        self.qy[i] = y

    def reset(self) -> None:
        """Zero the components and mark the vector not-good."""
        self.qx.fill(0.0)
        self.qy.fill(0.0)
        self.good = False
        self.n = 0
        self.sum_weights = 0.0

    def copy_from(self, other: "FlowVector") -> None:
        """Take components, quality and multiplicity from ``other``.

        The name is kept. Both vectors must carry the same harmonics.
        """
        if other.harmonics != self.harmonics:
            raise ValueError(
                f"Cannot copy '{other.name}' into '{self._name}': harmonics "
                f"{other.harmonics} != {self.harmonics}"
            )
        np.copyto(self.qx, other.qx)
        np.copyto(self.qy, other.qy)
        self.good = other.good
        self.n = other.n
        self.sum_weights = other.sum_weights

    def build(self, phi: np.ndarray, weight: np.ndarray) -> None:
        """Fill the raw harmonic sums from angles and weights.

        Qx(h) = sum(w cos(h phi)), Qy(h) = sum(w sin(h phi)). The vector is
        good when there is at least one contribution and the weight sum is
        significant; otherwise it stays zero and not-good. A non-finite
        angle or weight also leaves it zero and not-good.
        """
        self.reset()
        self.n = int(phi.size)
        self.sum_weights = float(weight.sum()) if self.n else 0.0
        if self.n == 0 or not abs(self.sum_weights) > MIN_WEIGHT_SUM:
            return

        angles = np.outer(self._orders, phi)
        self.qx[:] = np.cos(angles) @ weight
        self.qy[:] = np.sin(angles) @ weight
        if not (np.all(np.isfinite(self.qx)) and np.all(np.isfinite(self.qy))):
            logger.debug("FlowVector '%s': non-finite contributions, marked not-good", self._name)
            self.qx.fill(0.0)
            self.qy.fill(0.0)
            return
        self.good = True

    def normalize(self, method: str) -> None:
        """Normalize a good vector in place.

        ``none`` keeps the raw sums, ``m`` divides by the weight sum,
        ``sqrt_m`` by its square root and ``magnitude`` divides each harmonic
        by its own length (harmonics of zero length are left at zero).
        """
        if method not in NORMALIZATIONS:
            raise ValueError(f"Unknown normalization: {method}")
        if not self.good or method == "none":
            return

        if method == "m":
            self.qx /= self.sum_weights
            self.qy /= self.sum_weights
        elif method == "sqrt_m":
            norm = np.sqrt(abs(self.sum_weights))
            self.qx /= norm
            self.qy /= norm
        else:
            length = np.hypot(self.qx, self.qy)
            nonzero = length > 0
            self.qx[nonzero] /= length[nonzero]
            self.qy[nonzero] /= length[nonzero]

    def components(self) -> np.ndarray:
        """Components in ``x1, y1, x2, y2, ...`` order (calibration slot order)."""
        out = np.empty(2 * len(self.harmonics))
        out[0::2] = self.qx
        out[1::2] = self.qy
        return out

    def as_dict(self) -> dict:
        """Flat dict of the vector state, handy for DataFrames."""
        out = {"name": self._name, "good": self.good, "n": self.n,
               "sum_weights": self.sum_weights}
        for h, x, y in zip(self.harmonics, self.qx, self.qy):
            out[f"x{h}"] = float(x)
            out[f"y{h}"] = float(y)
        return out
