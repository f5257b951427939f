"""Pipeline modules.

- subevent: per-detector correction chain
- orchestrator: run-level controller owning every detector pipeline
- calibration_store: NetCDF/DataTree persistence of calibration tables
"""

from qnflow.pipeline.subevent import SubEventPipeline
from qnflow.pipeline.orchestrator import PipelineOrchestrator
from qnflow.pipeline.calibration_store import CalibrationStore, merge_containers, merge_files

__all__ = [
    "SubEventPipeline",
    "PipelineOrchestrator",
    "CalibrationStore",
    "merge_containers",
    "merge_files",
]
