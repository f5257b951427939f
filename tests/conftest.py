"""Root-level pytest fixtures for the qnflow test suite.

Provides shared configuration fixtures following the Pydantic-based
architecture, plus small factories for calibration tables and events.
All tests must use these fixtures instead of creating raw dict configs.
"""

import pytest
from pathlib import Path
import tempfile
import shutil

import numpy as np

from qnflow.core.calibration import CalibrationTable
from qnflow.core.event import EventContext
from qnflow.schemas import ParamConfig, UserConfig, CLIConfig, InternalConfig, resolve_config


# =============================================================================
# Configuration Fixtures (Pydantic-based)
# =============================================================================

@pytest.fixture
def param_config():
    """Expert configuration with all defaults.

    Use this as the base for all test configs. Override specific values
    using make_config or by creating custom UserConfig instances.
    """
    return ParamConfig()


@pytest.fixture
def internal_config(param_config):
    """Fully validated runtime configuration (no overrides).

    Use this when tests don't care about specific config values and just
    need a valid InternalConfig to pass to constructors.

    Examples
    --------
    >>> def test_orchestrator_init(internal_config):
    ...     orch = PipelineOrchestrator(internal_config)
    ...     assert "tracks" in orch.pipelines
    """
    return resolve_config(param_config, None, None)


@pytest.fixture
def make_config(param_config):
    """Factory fixture for creating custom test configs.

    Use this when you need to override specific values for a test.
    Returns a callable that accepts UserConfig-compatible kwargs.

    Examples
    --------
    >>> def test_single_bin(make_config):
    ...     config = make_config(CENTRALITY_EDGES=[0, 100])
    ...     assert config.binning.axes[0].edges == [0.0, 100.0]
    """
    def _make(**user_overrides):
        """Create InternalConfig with user overrides."""
        if user_overrides:
            user = UserConfig(**user_overrides)
            return resolve_config(param_config, user, None)
        else:
            return resolve_config(param_config, None, None)

    return _make


# =============================================================================
# Directory Fixtures
# =============================================================================

@pytest.fixture
def temp_dir():
    """Temporary directory that is cleaned up after test."""
    d = tempfile.mkdtemp()
    yield Path(d)
    shutil.rmtree(d, ignore_errors=True)


@pytest.fixture
def output_dirs(temp_dir):
    """Standard qnflow output directory structure.

    Returns dict with keys: base, calibration, reports, logs
    All directories are created and cleaned up automatically.
    """
    dirs = {
        "base": temp_dir,
        "calibration": temp_dir / "calibration",
        "reports": temp_dir / "reports",
        "logs": temp_dir / "logs",
    }

    for d in dirs.values():
        d.mkdir(parents=True, exist_ok=True)

    return dirs


# =============================================================================
# Calibration / Event Factories
# =============================================================================

@pytest.fixture
def make_table():
    """Factory for calibration tables filled row by row in one bin.

    Examples
    --------
    >>> table = make_table("recentering", ["x1", "y1"], [[1.0, 1.0], [-1.0, -1.0]])
    >>> table.mean(0)
    array([0., 0.])
    """
    def _make(name, slots, rows, n_bins=1, bin_index=0, min_entries=2):
        table = CalibrationTable(name, n_bins, slots, min_entries)
        for row in rows:
            table.fill(bin_index, np.asarray(row, dtype=float))
        return table

    return _make


@pytest.fixture
def event():
    """Event context in bin 0."""
    return EventContext({"centrality": 5.0}, 0)
