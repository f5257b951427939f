"""qnflow User Configuration.

This is the user-facing configuration file. Modify settings here to customize
the correction runs. Advanced settings are in src/qnflow/schemas/param.py

Usage:
    python scripts/run_qn_corrections.py scripts/user_config.py
    python scripts/run_qn_corrections.py scripts/user_config.py --n-passes 3
"""

CONFIG = {
    # ========================================================================
    # RUN
    # ========================================================================
    "RUN_NAME": "run0",
    "BASE_DIR": "./qn_output",    # All outputs go here
    "N_PASSES": 3,                # gain eq -> recentering -> twist/rescale
    "CALIBRATION_INPUT": None,    # Calibration file attached to the first pass
    "FREEZE_CALIBRATION": False,  # True: apply attached tables without re-collecting

    # ========================================================================
    # EVENT CLASSES
    # ========================================================================
    "CENTRALITY_EDGES": [0, 10, 20, 30, 40, 50, 60, 70, 80, 90, 100],

    # ========================================================================
    # SYNTHETIC EVENTS
    # ========================================================================
    "N_EVENTS": 5000,
    "SEED": 42,
    "MULTIPLICITY": 300,
    "V2": 0.05,
    "ACCEPTANCE_HOLE": (0.0, 0.8),  # radians, reduced efficiency region

    # ========================================================================
    # DETECTORS
    # ========================================================================
    "DETECTORS": [
        {
            "name": "tpc",
            "harmonics": [1, 2, 3],
            "normalization": "m",
            "stages": [
                {"kind": "recentering", "width_equalization": False},
                {"kind": "twist_and_rescale", "method": "double_harmonic"},
            ],
        },
        {
            "name": "v0a",
            "harmonics": [1, 2, 3],
            "n_channels": 8,
            "normalization": "m",
            "stages": [
                {"kind": "gain_equalization", "method": "average"},
                {"kind": "recentering"},
            ],
        },
        {
            "name": "v0c",
            "harmonics": [1, 2, 3],
            "n_channels": 8,
            "normalization": "m",
            "stages": [
                {"kind": "gain_equalization", "method": "average"},
                {"kind": "recentering"},
            ],
        },
    ],
}
