"""Run-level orchestration of the detector correction pipelines.

Builds one SubEventPipeline per configured detector, checks the
cross-detector wiring, and drives the run protocol:

1. ``start_run``: attach the calibration of a previous pass, then let every
   stage check its prerequisites;
2. ``process_event``: locate the event class, correct every detector, then
   collect calibration data for every detector;
3. ``freeze_calibration`` (optional): stop collecting;
4. ``finish_run``: gather (and persist) the calibration container.
"""

import logging
from pathlib import Path
from typing import Iterable, Mapping, Optional

import pandas as pd

from qnflow.core.binning import EventClassBinning, OUT_OF_RANGE
from qnflow.core.event import Contributions, EventContext
from qnflow.core.qvector import FlowVector
from qnflow.contracts import ConfigurationError
from qnflow.corrections.registry import build_stage
from qnflow.pipeline.calibration_store import CalibrationStore
from qnflow.pipeline.subevent import SubEventPipeline
from qnflow.schemas.internal import InternalConfig

__all__ = ['PipelineOrchestrator']

logger = logging.getLogger(__name__)


class PipelineOrchestrator:
    """Owns the per-detector pipelines for one run.

    This is the main entry point for running ``qnflow`` on an event
    sample. Events are processed strictly one at a time; calibration tables
    are read at run start and written at run end only.

    **Passes:**

    A first pass over the sample, with no calibration attached, leaves every
    stage CALIBRATING and produces the first stage's tables. Each following
    pass attaches the previous pass's file: stages found in it apply their
    correction while collecting again, and the next stage in the chain
    starts collecting on the corrected vectors.

    **Logging:**

    When ``output_dirs`` holds a ``logs`` entry, ``start_run`` configures the
    root logger with file and console handlers. Level from
    ``config.logging.level``.

    Example usage::

        from qnflow.pipeline.orchestrator import PipelineOrchestrator

        orch = PipelineOrchestrator(config, output_dirs)
        orch.start_run()
        for variables, contributions in events:
            orch.process_event(variables, contributions)
        container = orch.finish_run()
    """

    def __init__(self, config: InternalConfig, output_dirs: Optional[dict] = None):
        """Build the pipelines and check their wiring.

        Parameters
        ----------
        config : InternalConfig
            Resolved runtime configuration.
        output_dirs : dict, optional
            Directories from ``setup_output_directories()``. Keys used:
            ``calibration`` (calibration and QA files) and ``logs``.
            Without it nothing is written to disk.

        Raises
        ------
        ConfigurationError
            If detectors reference each other inconsistently.
        """
        self.config = config
        self.output_dirs = output_dirs or {}
        self.binning = EventClassBinning([(a.variable, a.edges) for a in config.binning.axes])

        self._check_wiring()
        self.pipelines: dict[str, SubEventPipeline] = {
            det.name: self._build_pipeline(det) for det in config.detectors
        }

        self.run_name: Optional[str] = None
        self.n_events = 0
        self.n_rejected = 0
        self._started = False

    def __repr__(self):
        return f"PipelineOrchestrator(detectors={list(self.pipelines)}, run={self.run_name!r})"

    # ------------------------------------------------------------------
    # Setup
    # ------------------------------------------------------------------

    def _check_wiring(self) -> None:
        detectors = {}
        for det in self.config.detectors:
            if det.name in detectors:
                raise ConfigurationError(f"Duplicated detector name: '{det.name}'")
            detectors[det.name] = det

        for det in self.config.detectors:
            kinds = [s.name or s.kind for s in det.stages]
            if len(set(kinds)) != len(kinds):
                raise ConfigurationError(
                    f"Detector '{det.name}' lists a stage twice: {kinds}. "
                    f"Give stacked stages distinct names."
                )
            for stage in det.stages:
                if stage.kind != "twist_and_rescale" or stage.method != "correlations":
                    continue
                for ref in (stage.reference_b, stage.reference_c):
                    if ref == det.name:
                        raise ConfigurationError(
                            f"Detector '{det.name}': correlations stage cannot reference itself"
                        )
                    if ref not in detectors:
                        raise ConfigurationError(
                            f"Detector '{det.name}': reference detector '{ref}' is not configured"
                        )
                    if list(detectors[ref].harmonics) != list(det.harmonics):
                        raise ConfigurationError(
                            f"Detector '{det.name}': reference '{ref}' has harmonics "
                            f"{detectors[ref].harmonics}, expected {det.harmonics}"
                        )

    def _build_pipeline(self, det) -> SubEventPipeline:
        stages = [
            build_stage(stage_cfg, det, self.binning.n_bins, self.config.calibration.fill_qa)
            for stage_cfg in det.stages
        ]
        return SubEventPipeline(
            det.name,
            det.harmonics,
            stages,
            normalization=det.normalization,
            n_channels=det.n_channels,
            used_channels=det.used_channels,
            freeze_attached=self.config.calibration.freeze_attached,
        )

    def _setup_logging(self):
        """Configure the root logger with file and console handlers.

        Log level and paths derived from config.
        """
        log_level = getattr(logging, self.config.logging.level, logging.INFO)

        log_dir = Path(self.output_dirs["logs"])
        log_dir.mkdir(parents=True, exist_ok=True)
        log_path = log_dir / f"qnflow_{self.run_name}.log"

        formatter = logging.Formatter(
            fmt='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            datefmt='%Y-%m-%d %H:%M:%S'
        )

        # Clear existing handlers and add new ones
        root = logging.getLogger()
        root.setLevel(log_level)
        for handler in root.handlers[:]:
            root.removeHandler(handler)

        # File handler
        fh = logging.FileHandler(log_path)
        fh.setLevel(log_level)
        fh.setFormatter(formatter)
        root.addHandler(fh)

        # Console handler
        ch = logging.StreamHandler()
        ch.setLevel(log_level)
        ch.setFormatter(formatter)
        root.addHandler(ch)

        logger.info("Logging: level=%s, file=%s", self.config.logging.level, log_path)

    # ------------------------------------------------------------------
    # Run protocol
    # ------------------------------------------------------------------

    def start_run(self, run_name: Optional[str] = None, source: Optional[Mapping] = None) -> None:
        """Attach calibration inputs and check stage prerequisites.

        Parameters
        ----------
        run_name : str, optional
            Run identifier; defaults to ``config.calibration.run_name``.
        source : mapping, optional
            ``{detector: {stage_key: CalibrationTable}}``. When omitted and
            ``config.calibration.input_file`` is set, it is loaded from
            that file.
        """
        self.run_name = run_name or self.config.calibration.run_name
        if "logs" in self.output_dirs:
            self._setup_logging()

        logger.info("=" * 60)
        logger.info("Starting run '%s' with detectors %s", self.run_name, list(self.pipelines))
        logger.info("=" * 60)

        if source is None:
            source = {}
            input_file = self.config.calibration.input_file
            if input_file:
                source = CalibrationStore(input_file).load(self.run_name)

        for name, pipeline in self.pipelines.items():
            n_applying = pipeline.attach_inputs(source)
            logger.info("Detector '%s': %d/%d stages applying",
                        name, n_applying, len(pipeline.stages))
        for pipeline in self.pipelines.values():
            pipeline.after_inputs_attach(self.pipelines)

        self.n_events = 0
        self.n_rejected = 0
        self._started = True

    def process_event(self, variables: Mapping[str, float],
                      contributions: Mapping[str, object]) -> Optional[dict[str, FlowVector]]:
        """Correct one event.

        Parameters
        ----------
        variables : mapping
            Event-level variables; the event class is taken from them.
        contributions : mapping
            Per detector, a ``Contributions`` tuple or a dict with ``phi``
            and optional ``weight`` and ``channel``. Detectors without an
            entry get an empty bank.

        Returns
        -------
        dict or None
            Corrected vector per detector, or None when the event is outside
            every event class. Vectors stay valid until the next event.
        """
        if not self._started:
            raise RuntimeError("start_run() must be called before process_event()")

        self.n_events += 1
        bin_index = self.binning.locate(variables)
        if bin_index == OUT_OF_RANGE:
            self.n_rejected += 1
            logger.debug("Event %d outside event classes: %s", self.n_events, dict(variables))
            return None

        event = EventContext(variables, bin_index)
        for name, pipeline in self.pipelines.items():
            pipeline.clear()
            data = contributions.get(name)
            if data is None:
                continue
            if isinstance(data, Mapping):
                data = Contributions(**data)
            pipeline.fill(*data)

        for pipeline in self.pipelines.values():
            pipeline.process_corrections(event)
        for pipeline in self.pipelines.values():
            pipeline.process_data_collection(event)

        return {name: pipeline.current for name, pipeline in self.pipelines.items()}

    def run(self, events: Iterable, run_name: Optional[str] = None,
            source: Optional[Mapping] = None, output_path: Optional[Path] = None) -> dict:
        """Convenience: full run over an iterable of (variables, contributions)."""
        self.start_run(run_name, source)
        for variables, contributions in events:
            self.process_event(variables, contributions)
        return self.finish_run(output_path)

    def freeze_calibration(self) -> None:
        """Stop collecting in every applying stage."""
        for pipeline in self.pipelines.values():
            pipeline.freeze()
        logger.info("Calibration frozen for run '%s'", self.run_name)

    def calibration_output(self) -> dict:
        """``{run: {detector: {stage_key: CalibrationTable}}}`` of the run."""
        return {
            self.run_name: {
                name: pipeline.calibration_output()
                for name, pipeline in self.pipelines.items()
            }
        }

    def qa_output(self) -> dict:
        qa = {}
        for name, pipeline in self.pipelines.items():
            tables = {}
            for key, labels in pipeline.qa_output().items():
                for label, table in labels.items():
                    tables[f"{key}_qa_{label}"] = table
            if tables:
                qa[name] = tables
        return {self.run_name: qa} if qa else {}

    def finish_run(self, output_path: Optional[Path] = None) -> dict:
        """End the run, persist calibration (and QA) tables, return the container.

        Parameters
        ----------
        output_path : Path, optional
            Calibration file to write. Defaults to
            ``output_dirs["calibration"] / config.calibration.output_file``
            when output directories were given; otherwise nothing is written.
        """
        container = self.calibration_output()

        if output_path is None and "calibration" in self.output_dirs:
            output_path = Path(self.output_dirs["calibration"]) / self.config.calibration.output_file
        if output_path is not None:
            output_path = Path(output_path)
            CalibrationStore(output_path).save(container)
            qa = self.qa_output()
            if qa:
                CalibrationStore(output_path.with_name(output_path.stem + "_qa.nc")).save(qa)

        logger.info("Run '%s' finished: %d events, %d outside event classes",
                    self.run_name, self.n_events, self.n_rejected)
        for row in self.report().itertuples(index=False):
            logger.info("  %s/%s: state=%s, not_validated=%d, degenerate=%d",
                        row.detector, row.stage, row.state, row.not_validated, row.degenerate)
        self._started = False
        return container

    # ------------------------------------------------------------------
    # Reporting
    # ------------------------------------------------------------------

    def report(self) -> pd.DataFrame:
        """One row per stage: state, usage and diagnostic counters."""
        rows = []
        for pipeline in self.pipelines.values():
            for row in pipeline.diagnostics():
                rows.append({"run": self.run_name, **row})
        columns = ["run", "detector", "stage", "priority", "state", "collecting",
                   "applying", "not_validated", "degenerate"]
        df = pd.DataFrame(rows)
        if df.empty:
            return pd.DataFrame(columns=columns)
        extra = [c for c in df.columns if c not in columns]
        return df[columns + extra]

    def vectors(self, detector: str) -> dict[str, FlowVector]:
        """Named vectors of the last processed event for one detector."""
        return self.pipelines[detector].vectors()
