"""Flow vector contract.

Enforces that a vector handed between pipeline stages carries exactly the
owning detector's harmonics and, when marked good, finite components.
"""

import numpy as np
from qnflow.contracts.base import require


def assert_flow_vector(vector, harmonics: tuple) -> None:
    """Enforce the flow vector contract.

    Parameters
    ----------
    vector : FlowVector
        Vector produced by a stage or by the raw-data reduction.
    harmonics : tuple of int
        Harmonics configured for the owning detector.

    Raises
    ------
    ContractViolation
        If the harmonic set differs or a good vector has non-finite values.
    """
    require(
        tuple(vector.harmonics) == tuple(harmonics),
        f"FlowVector contract violated: '{vector.name}' carries harmonics "
        f"{tuple(vector.harmonics)}, expected {tuple(harmonics)}"
    )
    require(
        vector.qx.shape == vector.qy.shape == (len(harmonics),),
        f"FlowVector contract violated: '{vector.name}' component arrays have wrong shape"
    )
    if vector.good:
        require(
            bool(np.all(np.isfinite(vector.qx)) and np.all(np.isfinite(vector.qy))),
            f"FlowVector contract violated: good vector '{vector.name}' has non-finite components"
        )
