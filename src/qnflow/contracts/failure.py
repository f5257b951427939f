"""Centralized failure policy for contract violations and wiring errors.

Contracts fail fast, loud, and once. Pipeline bugs raise ContractViolation;
configurations that validate field by field but cannot be wired into a
working set of pipelines raise ConfigurationError.
"""

from enum import Enum


class FailurePolicy(str, Enum):
    """Failure policy for contract violations.

    FAIL_FAST (default): Raise immediately on contract violation.

    Per-event numerical problems (unvalidated bins, degenerate twist
    parameters, bad-quality vectors) are never contract violations; they
    are counted by the stages and the event continues uncorrected.
    """
    FAIL_FAST = "fail_fast"


class ContractViolation(RuntimeError):
    """Raised when a pipeline contract is violated.

    This indicates a bug in pipeline logic, not bad user input or a
    recoverable per-event condition.

    Key distinction:
    - ValueError: User/config error (handled by Pydantic)
    - ConfigurationError: config is valid per field but cannot be wired
    - ContractViolation: Pipeline bug (programmer error)
    """
    pass


class ConfigurationError(ValueError):
    """Raised at setup time when detectors or stages cannot be wired.

    Examples: a correlations stage naming a reference detector that does
    not exist, a gain equalization stage on a detector without channels,
    two detectors with the same name.
    """
    pass
