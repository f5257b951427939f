import pytest

import numpy as np

from qnflow.core.event import Contributions
from qnflow.schemas import InternalConfig
from qnflow.setup_directories import setup_output_directories


@pytest.fixture
def pipeline_config(make_config, temp_dir) -> InternalConfig:
    """InternalConfig for pipeline tests: one track detector, two centrality bins."""
    return make_config(
        BASE_DIR=str(temp_dir),
        CENTRALITY_EDGES=[0, 50, 100],
        DETECTORS=[
            {
                "name": "tracks",
                "harmonics": [1, 2],
                "stages": [{"kind": "recentering"}, {"kind": "twist_and_rescale"}],
            }
        ],
    )


@pytest.fixture
def pipeline_output_dirs(temp_dir):
    """Output directories for pipeline tests."""
    return setup_output_directories(temp_dir)


@pytest.fixture
def make_events():
    """Factory for isotropic track events with an optional fixed bias contribution.

    Each event has ``multiplicity`` unit-free tracks of weight ``track_weight``;
    with ``bias`` set, one extra contribution at phi = 0 carrying that weight
    is appended, shifting the unnormalized Qx of every harmonic by ``bias``.
    """
    def _make(n_events, seed=1, multiplicity=200, track_weight=1.0, bias=None,
              detector="tracks", centrality=(0.0, 100.0)):
        rng = np.random.default_rng(seed)
        events = []
        for _ in range(n_events):
            phi = rng.uniform(0.0, 2.0 * np.pi, multiplicity)
            weight = np.full(multiplicity, track_weight)
            if bias is not None:
                phi = np.append(phi, 0.0)
                weight = np.append(weight, bias)
            variables = {"centrality": float(rng.uniform(*centrality))}
            events.append((variables, {detector: Contributions(phi, weight)}))
        return events

    return _make
