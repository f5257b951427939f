"""Per-event raw contribution bank.

Each detector owns one bank. It holds the event's (phi, weight, channel)
contributions plus the equalized weight written by gain equalization.
Storage is preallocated and only grows, so clearing between events does
not reallocate.
"""

import numpy as np

__all__ = ['ContributionBank']


class ContributionBank:
    """Growable, reusable storage for one event's contributions.

    Parameters
    ----------
    capacity : int, optional
        Initial number of slots (default: 256). Doubled when exceeded.

    Notes
    -----
    ``equalized_weight`` starts equal to ``weight`` for every contribution
    and is rewritten in place by input-data correction stages.
    """

    def __init__(self, capacity: int = 256):
        capacity = max(int(capacity), 1)
        self._phi = np.empty(capacity)
        self._weight = np.empty(capacity)
        self._equalized = np.empty(capacity)
        self._channel = np.empty(capacity, dtype=np.int64)
        self._size = 0

    def __len__(self):
        return self._size

    @property
    def capacity(self) -> int:
        return self._phi.size

    @property
    def phi(self) -> np.ndarray:
        return self._phi[:self._size]

    @property
    def weight(self) -> np.ndarray:
        return self._weight[:self._size]

    @property
    def equalized_weight(self) -> np.ndarray:
        return self._equalized[:self._size]

    @property
    def channel(self) -> np.ndarray:
        return self._channel[:self._size]

    def _reserve(self, n: int) -> None:
        if n <= self.capacity:
            return
        new_capacity = self.capacity
        while new_capacity < n:
            new_capacity *= 2
        for attr in ("_phi", "_weight", "_equalized", "_channel"):
            old = getattr(self, attr)
            grown = np.empty(new_capacity, dtype=old.dtype)
            grown[:self._size] = old[:self._size]
            setattr(self, attr, grown)

    def extend(self, phi, weight=None, channel=None) -> None:
        """Append a batch of contributions.

        Parameters
        ----------
        phi : array-like
            Azimuthal angles in radians.
        weight : array-like, optional
            Raw weights. Defaults to 1 for every contribution.
        channel : array-like of int, optional
            Channel indices. Defaults to -1 (no channel).
        """
        phi = np.asarray(phi, dtype=float).ravel()
        n = phi.size
        weight = np.ones(n) if weight is None else np.asarray(weight, dtype=float).ravel()
        channel = (np.full(n, -1, dtype=np.int64) if channel is None
                   else np.asarray(channel, dtype=np.int64).ravel())
        if weight.size != n or channel.size != n:
            raise ValueError(
                f"Contribution arrays differ in length: phi={n}, "
                f"weight={weight.size}, channel={channel.size}"
            )

        start = self._size
        self._reserve(start + n)
        stop = start + n
        self._phi[start:stop] = phi
        self._weight[start:stop] = weight
        self._equalized[start:stop] = weight
        self._channel[start:stop] = channel
        self._size = stop

    def clear(self) -> None:
        self._size = 0
