"""`qnflow` - multi-stage acceptance corrections for flow vectors.

Subpackages:
- core: flow vectors, contribution bank, event binning, calibration tables
- corrections: gain equalization, recentering, twist and rescale stages
- pipeline: per-detector chains, run orchestrator, calibration persistence
- schemas: layered pydantic configuration
- contracts: fail-fast invariant checks
- cli: multi-pass runner
"""

__version__ = "0.1.0"
