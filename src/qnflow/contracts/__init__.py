"""Pipeline contracts: fail-fast enforcement of stage invariants.

Contracts fail immediately and loudly when a stage receives or produces
data that breaks its promised layout.

Key principle:
- Pydantic validates config correctness
- The orchestrator validates detector wiring (ConfigurationError)
- Contracts validate pipeline correctness (ContractViolation)
- Stages absorb per-event edge cases into counters
"""

from qnflow.contracts.failure import ContractViolation, ConfigurationError, FailurePolicy
from qnflow.contracts.base import require
from qnflow.contracts.qvector import assert_flow_vector
from qnflow.contracts.calibration import assert_calibration_table

__all__ = [
    "ContractViolation",
    "ConfigurationError",
    "FailurePolicy",
    "require",
    "assert_flow_vector",
    "assert_calibration_table",
]
