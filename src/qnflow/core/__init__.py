"""Core data structures for the qnflow correction pipeline.

- qvector: FlowVector, the harmonic (Qx, Qy) accumulator
- datavector: ContributionBank, the per-event raw input storage
- binning: EventClassBinning, event variables to calibration bin
- calibration: CalibrationTable, binned running statistics
- event: EventContext, the per-event context passed to stages
"""

from qnflow.core.qvector import FlowVector
from qnflow.core.datavector import ContributionBank
from qnflow.core.binning import EventClassBinning, OUT_OF_RANGE
from qnflow.core.calibration import CalibrationTable
from qnflow.core.event import EventContext, Contributions

__all__ = [
    'FlowVector',
    'ContributionBank',
    'EventClassBinning',
    'OUT_OF_RANGE',
    'CalibrationTable',
    'EventContext',
    'Contributions',
]
