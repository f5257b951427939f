"""Persistence of calibration tables between runs.

Calibration containers are nested mappings::

    {run_name: {detector_name: {stage_key: CalibrationTable}}}

They are stored as a NetCDF file holding an xarray DataTree with one group
per table at ``/run_name/detector_name/stage_key``. Sharded outputs of the
same run are combined with ``merge_files``, which sums the tables.
"""

import logging
from pathlib import Path
from typing import Iterable, Optional, Union

import xarray as xr

from qnflow.core.calibration import CalibrationTable

__all__ = ['CalibrationStore', 'merge_containers', 'merge_files']

logger = logging.getLogger(__name__)


def merge_containers(*containers: dict) -> dict:
    """Merge calibration containers table by table.

    Tables present in several containers under the same path are merged
    with ``CalibrationTable.merge``; the others are copied.
    """
    merged: dict = {}
    for container in containers:
        for run, detectors in container.items():
            run_out = merged.setdefault(run, {})
            for det, tables in detectors.items():
                det_out = run_out.setdefault(det, {})
                for key, table in tables.items():
                    if key in det_out:
                        det_out[key] = det_out[key].merge(table)
                    else:
                        det_out[key] = table.copy()
    return merged


class CalibrationStore:
    """NetCDF/DataTree backed calibration file.

    Parameters
    ----------
    path : str or Path
        Calibration file location.

    Examples
    --------
    >>> store = CalibrationStore("calib/qn_calibration.nc")
    >>> store.save({"run0": {"tracks": {"recentering": table}}})
    >>> store.load("run0")["tracks"]["recentering"]
    CalibrationTable('recentering', ...)
    """

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def __repr__(self):
        return f"CalibrationStore({str(self.path)!r})"

    def exists(self) -> bool:
        return self.path.exists()

    def save(self, container: dict) -> Path:
        """Write a calibration container, replacing any existing file."""
        nodes = {}
        n_tables = 0
        for run, detectors in container.items():
            for det, tables in detectors.items():
                for key, table in tables.items():
                    nodes[f"/{run}/{det}/{key}"] = table.to_dataset()
                    n_tables += 1

        self.path.parent.mkdir(parents=True, exist_ok=True)
        tree = xr.DataTree.from_dict(nodes)
        tree.to_netcdf(self.path, mode="w", engine="netcdf4")
        logger.info("Saved %d calibration tables to %s", n_tables, self.path)
        return self.path

    def load_all(self) -> dict:
        """Read every run of the file. A missing file gives an empty container."""
        if not self.path.exists():
            logger.info("No calibration file at %s", self.path)
            return {}

        container: dict = {}
        tree = xr.open_datatree(self.path, engine="netcdf4")
        try:
            for run, run_node in tree.children.items():
                for det, det_node in run_node.children.items():
                    for key, node in det_node.children.items():
                        ds = node.to_dataset().load()
                        table = CalibrationTable.from_dataset(ds)
                        container.setdefault(run, {}).setdefault(det, {})[key] = table
        finally:
            tree.close()

        logger.info("Loaded calibration for runs %s from %s", list(container), self.path)
        return container

    def load(self, run_name: Optional[str] = None) -> dict:
        """Container of one run: ``{detector: {stage_key: CalibrationTable}}``.

        Parameters
        ----------
        run_name : str, optional
            Run to read. When omitted and the file holds a single run, that
            run is returned.
        """
        container = self.load_all()
        if run_name is None:
            if len(container) > 1:
                raise ValueError(
                    f"{self.path} holds runs {sorted(container)}; pass run_name"
                )
            return next(iter(container.values()), {})
        if run_name not in container:
            logger.warning("Run '%s' not found in %s", run_name, self.path)
        return container.get(run_name, {})


def merge_files(paths: Iterable[Union[str, Path]], output: Optional[Union[str, Path]] = None) -> dict:
    """Merge sharded calibration files into one container.

    Parameters
    ----------
    paths : iterable of str or Path
        Calibration files produced by independent shards.
    output : str or Path, optional
        Where to write the merged container.
    """
    containers = [CalibrationStore(p).load_all() for p in paths]
    merged = merge_containers(*containers)
    if output is not None:
        CalibrationStore(output).save(merged)
    return merged
