"""Pydantic configuration schemas for the qnflow pipeline.

This module provides strictly typed configuration models for the flow
vector correction pipeline. All configuration validation, coercion, and
normalization happens at schema validation time via Pydantic.

Exports
-------
resolve_config : function
    Single entrypoint for configuration resolution
InternalConfig : class
    Fully validated, authoritative runtime configuration
ParamConfig : class
    Expert defaults (complete)
UserConfig : class
    User-facing configuration (forgiving, minimal)
CLIConfig : class
    Command-line operational overrides
DetectorConfig : class
    One detector and its correction stages
"""

from qnflow.schemas.resolve import resolve_config
from qnflow.schemas.internal import InternalConfig
from qnflow.schemas.param import (
    ParamConfig,
    DetectorConfig,
    GainEqualizationConfig,
    RecenteringConfig,
    TwistAndRescaleConfig,
)
from qnflow.schemas.user import UserConfig
from qnflow.schemas.cli import CLIConfig

__all__ = [
    'resolve_config',
    'InternalConfig',
    'ParamConfig',
    'UserConfig',
    'CLIConfig',
    'DetectorConfig',
    'GainEqualizationConfig',
    'RecenteringConfig',
    'TwistAndRescaleConfig',
]
