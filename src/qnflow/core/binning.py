"""Event-class binning.

Maps event-level observables (centrality, vertex position, ...) to a single
flat bin index used as the row key of every calibration table.
"""

from typing import Mapping, Sequence

import numpy as np

__all__ = ['EventClassBinning', 'OUT_OF_RANGE']

OUT_OF_RANGE = -1


class EventClassBinning:
    """Flat row-major index over one or more variable axes.

    Parameters
    ----------
    axes : sequence of (str, sequence of float)
        Variable name and monotonically increasing bin edges for each axis.
        An empty sequence gives a single bin that every event falls in.

    Examples
    --------
    >>> binning = EventClassBinning([("centrality", [0, 10, 20, 40])])
    >>> binning.n_bins
    3
    >>> binning.locate({"centrality": 15.0})
    1
    >>> binning.locate({"centrality": 55.0})
    -1
    """

    def __init__(self, axes: Sequence[tuple[str, Sequence[float]]] = ()):
        self.names = []
        self.edges = []
        for name, edges in axes:
            edges = np.asarray(edges, dtype=float)
            if edges.ndim != 1 or edges.size < 2 or np.any(np.diff(edges) <= 0):
                raise ValueError(f"Axis '{name}' needs at least two increasing edges")
            self.names.append(name)
            self.edges.append(edges)

        self.shape = tuple(e.size - 1 for e in self.edges)
        self.n_bins = int(np.prod(self.shape)) if self.shape else 1

    def __repr__(self):
        return f"EventClassBinning({dict(zip(self.names, self.shape))})"

    def locate(self, variables: Mapping[str, float]) -> int:
        """Bin index of an event, or OUT_OF_RANGE.

        The upper edge of the last bin is inclusive. A missing or
        non-finite variable puts the event out of range.
        """
        flat = 0
        for name, edges, size in zip(self.names, self.edges, self.shape):
            value = variables.get(name)
            if value is None or not np.isfinite(value):
                return OUT_OF_RANGE
            if value < edges[0] or value > edges[-1]:
                return OUT_OF_RANGE
            idx = int(np.searchsorted(edges, value, side="right")) - 1
            idx = min(idx, size - 1)
            flat = flat * size + idx
        return flat

    def describe(self) -> dict:
        """Axis description suitable for netCDF attributes."""
        return {name: edges.tolist() for name, edges in zip(self.names, self.edges)}
