"""Command-line interface modules for qnflow runs.

This package contains core execution logic, making scripts/ optional and deletable.
"""

from qnflow.cli.run_corrections import run_corrections, run_passes

__all__ = ['run_corrections', 'run_passes']
