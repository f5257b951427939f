#!/usr/bin/env python3
"""``qnflow`` multi-pass correction runner.

Usage:
    python scripts/run_qn_corrections.py scripts/user_config.py
    python scripts/run_qn_corrections.py scripts/user_config.py --n-passes 3
    python scripts/run_qn_corrections.py scripts/user_config.py --calibration-input prev.nc

Note: User config in scripts/user_config.py, expert defaults in src/qnflow/schemas/param.py
"""

import sys
import argparse
from pathlib import Path

# Add src to path
project_root = Path(__file__).resolve().parents[1]
sys.path.insert(0, str(project_root / "src"))

from qnflow.cli.run_corrections import run_corrections


def main():
    parser = argparse.ArgumentParser(description="Run the qnflow Q-vector correction passes")
    parser.add_argument("config", help="Path to user config file")
    parser.add_argument("--base-dir", help="Output directory")
    parser.add_argument("--run-name", help="Run identifier used in the calibration file")
    parser.add_argument("--n-events", type=int, help="Events per pass")
    parser.add_argument("--n-passes", type=int, help="Number of calibration passes")
    parser.add_argument("--seed", type=int, help="Random seed of the event generator")
    parser.add_argument("--calibration-input", help="Calibration file attached to the first pass")
    parser.add_argument("--rerun", action="store_true", help="Delete output directories before running")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    args = parser.parse_args()

    cli_args = {
        "base_dir": args.base_dir,
        "run_name": args.run_name,
        "n_events": args.n_events,
        "n_passes": args.n_passes,
        "seed": args.seed,
        "calibration_input": args.calibration_input,
    }

    results = run_corrections(args.config, cli_args=cli_args, rerun=args.rerun, verbose=args.verbose)

    print(f"\n{'='*60}")
    for result in results:
        print(f"Pass {result['pass']}: {result['calibration']}")
        print(result["report"][["detector", "stage", "state", "not_validated", "degenerate"]]
              .to_string(index=False))
    print('='*60)


if __name__ == "__main__":
    main()
