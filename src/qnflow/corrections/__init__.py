"""Correction stages.

- base: StageState and the shared CorrectionStage state machine
- gain_equalization: per-channel weight equalization (input data)
- recentering: per-bin mean subtraction and width equalization
- twist_rescale: twist and rescale, double harmonic or correlations
- registry: closed kind -> class mapping used by the orchestrator
"""

from qnflow.corrections.base import CorrectionStage, StageState
from qnflow.corrections.gain_equalization import GainEqualization
from qnflow.corrections.recentering import Recentering
from qnflow.corrections.twist_rescale import TwistAndRescale
from qnflow.corrections.registry import STAGE_REGISTRY, build_stage

__all__ = [
    "CorrectionStage",
    "StageState",
    "GainEqualization",
    "Recentering",
    "TwistAndRescale",
    "STAGE_REGISTRY",
    "build_stage",
]
