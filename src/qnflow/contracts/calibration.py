"""Calibration table contract.

Enforces that a table offered to a stage at attach time has the layout the
stage builds itself: same number of event-class bins, same slot labels.
"""

from qnflow.contracts.base import require


def assert_calibration_table(table, n_bins: int, slots: list) -> None:
    """Enforce the calibration table contract.

    Parameters
    ----------
    table : CalibrationTable
        Table loaded from a calibration source.
    n_bins : int
        Number of event-class bins the stage expects.
    slots : list of str
        Slot labels the stage expects.

    Raises
    ------
    ContractViolation
        If any invariant is violated.
    """
    require(
        table.n_bins == n_bins,
        f"Calibration contract violated: table '{table.name}' has {table.n_bins} bins, "
        f"expected {n_bins}"
    )
    require(
        list(table.slots) == list(slots),
        f"Calibration contract violated: table '{table.name}' slots {list(table.slots)} "
        f"do not match {list(slots)}"
    )
    require(
        (table.entries >= 0).all(),
        f"Calibration contract violated: table '{table.name}' has negative entry counts"
    )
