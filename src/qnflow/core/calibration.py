"""Binned running statistics used as correction lookup tables.

A CalibrationTable is a profile: for every (event-class bin, slot) it keeps
the sum of the filled values, the sum of their squares and the number of
entries. Slots are labelled, e.g. ``x1``/``y1`` for the harmonic components
of a flow vector or ``ch0``, ``ch1``... for detector channels.

Tables built on independent event samples combine with ``merge``, which
adds the three accumulators. The merge is associative and commutative and
gives exactly the table of the union of the samples.
"""

import logging
from typing import Optional, Sequence

import numpy as np
import xarray as xr

from qnflow.contracts.base import require

__all__ = ['CalibrationTable', 'DEFAULT_MIN_ENTRIES', 'component_slots', 'channel_slots']

logger = logging.getLogger(__name__)

DEFAULT_MIN_ENTRIES = 2


def component_slots(harmonics: Sequence[int]) -> list[str]:
    """Slot labels ``x1, y1, x2, y2, ...`` for a harmonic set."""
    slots = []
    for h in harmonics:
        slots.extend([f"x{h}", f"y{h}"])
    return slots


def channel_slots(n_channels: int) -> list[str]:
    return [f"ch{c}" for c in range(n_channels)]


class CalibrationTable:
    """Per-bin, per-slot running mean and spread.

    Parameters
    ----------
    name : str
        Table name, used as the storage key.
    n_bins : int
        Number of event-class bins.
    slots : sequence of str
        Slot labels (columns).
    min_entries : int, optional
        Entries a (bin, slot) cell needs before it may be used to correct
        data (default: 2).
    """

    def __init__(self, name: str, n_bins: int, slots: Sequence[str],
                 min_entries: int = DEFAULT_MIN_ENTRIES):
        require(n_bins >= 1, f"CalibrationTable '{name}': n_bins must be >= 1, got {n_bins}")
        require(len(slots) >= 1, f"CalibrationTable '{name}': at least one slot required")
        self.name = name
        self.n_bins = int(n_bins)
        self.slots = list(slots)
        self._slot_index = {s: i for i, s in enumerate(self.slots)}
        self.min_entries = int(min_entries)
        shape = (self.n_bins, len(self.slots))
        self.sum = np.zeros(shape)
        self.sum2 = np.zeros(shape)
        self.entries = np.zeros(shape, dtype=np.int64)

    def __repr__(self):
        return (f"CalibrationTable({self.name!r}, n_bins={self.n_bins}, "
                f"slots={len(self.slots)}, entries={int(self.entries.sum())})")

    @property
    def shape(self) -> tuple[int, int]:
        return self.sum.shape

    def slot(self, label: str) -> int:
        return self._slot_index[label]

    # ------------------------------------------------------------------
    # Filling
    # ------------------------------------------------------------------

    def fill(self, bin_index: int, values, slots: Optional[np.ndarray] = None) -> None:
        """Add one entry per value.

        Parameters
        ----------
        bin_index : int
            Event-class bin. Negative bins are ignored.
        values : array-like
            Values to accumulate.
        slots : array of int, optional
            Slot index of each value. Defaults to all slots in order.
            Repeated slot indices each add an entry.
        """
        if bin_index < 0:
            return
        values = np.asarray(values, dtype=float)
        if slots is None:
            self.sum[bin_index] += values
            self.sum2[bin_index] += values * values
            self.entries[bin_index] += 1
        else:
            np.add.at(self.sum[bin_index], slots, values)
            np.add.at(self.sum2[bin_index], slots, values * values)
            np.add.at(self.entries[bin_index], slots, 1)

    def reset(self) -> None:
        self.sum.fill(0.0)
        self.sum2.fill(0.0)
        self.entries.fill(0)

    # ------------------------------------------------------------------
    # Reading
    # ------------------------------------------------------------------

    def mean(self, bin_index: int) -> np.ndarray:
        """Per-slot mean of a bin (0 where the slot is empty)."""
        n = self.entries[bin_index]
        return np.divide(self.sum[bin_index], n, out=np.zeros(n.shape), where=n > 0)

    def spread(self, bin_index: int) -> np.ndarray:
        """Per-slot standard deviation of the filled values."""
        n = self.entries[bin_index]
        mean = self.mean(bin_index)
        mean2 = np.divide(self.sum2[bin_index], n, out=np.zeros(n.shape), where=n > 0)
        return np.sqrt(np.abs(mean2 - mean * mean))

    def error(self, bin_index: int) -> np.ndarray:
        """Standard error of the per-slot mean."""
        n = self.entries[bin_index]
        return np.divide(self.spread(bin_index), np.sqrt(n), out=np.zeros(n.shape), where=n > 0)

    def validated_slots(self, bin_index: int) -> np.ndarray:
        """Boolean mask of slots with enough entries in ``bin_index``."""
        if bin_index < 0 or bin_index >= self.n_bins:
            return np.zeros(len(self.slots), dtype=bool)
        return self.entries[bin_index] >= self.min_entries

    def validated(self, bin_index: int) -> bool:
        """True when every slot of the bin may be read."""
        return bool(self.validated_slots(bin_index).all())

    # ------------------------------------------------------------------
    # Combination and conversion
    # ------------------------------------------------------------------

    def compatible(self, other: "CalibrationTable") -> bool:
        return self.slots == other.slots and self.n_bins == other.n_bins

    def merge(self, other: "CalibrationTable") -> "CalibrationTable":
        """New table holding the statistics of both inputs."""
        require(
            self.compatible(other),
            f"Cannot merge table '{other.name}' into '{self.name}': "
            f"shape {other.shape} vs {self.shape} or different slots",
        )
        merged = self.copy()
        merged.sum += other.sum
        merged.sum2 += other.sum2
        merged.entries += other.entries
        return merged

    def copy(self, name: Optional[str] = None) -> "CalibrationTable":
        new = CalibrationTable(name or self.name, self.n_bins, self.slots, self.min_entries)
        np.copyto(new.sum, self.sum)
        np.copyto(new.sum2, self.sum2)
        np.copyto(new.entries, self.entries)
        return new

    def to_dataset(self) -> xr.Dataset:
        """Convert to an xarray Dataset with ``bin`` and ``slot`` dims."""
        dims = ("bin", "slot")
        return xr.Dataset(
            {
                "sum": (dims, self.sum),
                "sum2": (dims, self.sum2),
                "entries": (dims, self.entries),
            },
            coords={"bin": np.arange(self.n_bins), "slot": self.slots},
            attrs={"name": self.name, "min_entries": self.min_entries},
        )

    @classmethod
    def from_dataset(cls, ds: xr.Dataset) -> "CalibrationTable":
        for var in ("sum", "sum2", "entries"):
            require(var in ds.data_vars, f"Calibration dataset missing '{var}'")
        table = cls(
            str(ds.attrs.get("name", "table")),
            ds.sizes["bin"],
            [str(s) for s in ds["slot"].values],
            int(ds.attrs.get("min_entries", DEFAULT_MIN_ENTRIES)),
        )
        table.sum[:] = ds["sum"].values
        table.sum2[:] = ds["sum2"].values
        table.entries[:] = ds["entries"].values.astype(np.int64)
        return table
