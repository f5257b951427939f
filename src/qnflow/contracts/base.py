"""Base contract enforcement utilities.

The require() function is the single enforcement mechanism for all contracts.
"""

from qnflow.contracts.failure import ContractViolation


def require(condition: bool, message: str) -> None:
    """Enforce a pipeline contract.

    Parameters
    ----------
    condition : bool
        The invariant that must be true. If False, ContractViolation is raised.

    message : str
        Error message explaining the contract violation (for debugging).

    Raises
    ------
    ContractViolation
        If condition is False. This indicates a bug in pipeline logic.

    Examples
    --------
    >>> require(vec.harmonics == (1, 2), "FlowVector contract: unexpected harmonics")
    >>> require(table.n_bins > 0, "Calibration contract: empty table")
    """
    if not condition:
        raise ContractViolation(message)
