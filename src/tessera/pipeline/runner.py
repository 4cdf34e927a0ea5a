"""Run driver for streamed pipelines.

Configures logging, drives one update of a pipeline node, times every
pass boundary, and returns a RunReport summarizing the run.
"""

import logging
import time
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional, Union

import pandas as pd

from tessera.contracts.failure import StreamingFailure, TesseraError
from tessera.pipeline.process_object import ProcessObject
from tessera.pipeline.streaming import ProgressCallback, StreamingProcessObject
from tessera.schemas import InternalConfig, UserConfig, resolve_config

__all__ = ['PipelineRunner', 'RunReport', 'PassRecord']

logger = logging.getLogger(__name__)

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'


@dataclass
class PassRecord:
    """Timing of one completed pass."""
    pass_index: int
    number_of_passes: int
    elapsed_seconds: float
    cumulative_seconds: float

    @property
    def progress(self) -> float:
        return (self.pass_index + 1) / self.number_of_passes


@dataclass
class RunReport:
    """Outcome of one PipelineRunner.run() call.

    ``regenerated`` is False, and ``number_of_passes`` 0, when the node was
    already up to date. A node that does not stream counts as one pass.
    """
    node_name: str
    number_of_passes: int = 0
    regenerated: bool = False
    elapsed_seconds: float = 0.0
    success: bool = False
    error: Optional[str] = None
    failed_pass: Optional[int] = None
    passes: List[PassRecord] = field(default_factory=list)

    def to_dataframe(self) -> pd.DataFrame:
        """One row per completed pass."""
        columns = ["pass_index", "number_of_passes", "elapsed_seconds",
                   "cumulative_seconds", "progress"]
        rows = [
            {
                "pass_index": p.pass_index,
                "number_of_passes": p.number_of_passes,
                "elapsed_seconds": p.elapsed_seconds,
                "cumulative_seconds": p.cumulative_seconds,
                "progress": p.progress,
            }
            for p in self.passes
        ]
        return pd.DataFrame(rows, columns=columns)


class PipelineRunner:
    """Entry point for running a pipeline from a script.

    Parameters
    ----------
    config : InternalConfig, UserConfig or dict, optional
        Runtime configuration. Anything other than an InternalConfig is
        resolved against the expert defaults first.
    setup_logging : bool
        Install console (and, with ``config.logging.log_dir``, file)
        handlers on the root logger.

    Examples
    --------
    >>> runner = PipelineRunner({"LOG_LEVEL": "DEBUG"})
    >>> sink = StreamingImageFilter(input=source, config=runner.config)
    >>> report = runner.run(sink)
    >>> report.to_dataframe()
    """

    def __init__(self, config: Optional[Union[InternalConfig, UserConfig, dict]] = None,
                 setup_logging: bool = True):
        if isinstance(config, InternalConfig):
            self.config = config
        else:
            self.config = resolve_config(None, config)
        self.last_report: Optional[RunReport] = None
        if setup_logging:
            self._setup_logging()

    def _setup_logging(self):
        """Configure the root logger from ``config.logging``."""
        log_level = getattr(logging, self.config.logging.level, logging.INFO)

        formatter = logging.Formatter(fmt=LOG_FORMAT, datefmt=LOG_DATEFMT)

        root = logging.getLogger()
        root.setLevel(log_level)
        for handler in root.handlers[:]:
            root.removeHandler(handler)

        log_path = None
        if self.config.logging.log_dir:
            log_dir = Path(self.config.logging.log_dir)
            log_dir.mkdir(parents=True, exist_ok=True)
            log_path = log_dir / "tessera.log"
            fh = logging.FileHandler(log_path)
            fh.setLevel(log_level)
            fh.setFormatter(formatter)
            root.addHandler(fh)

        ch = logging.StreamHandler()
        ch.setLevel(log_level)
        ch.setFormatter(formatter)
        root.addHandler(ch)

        logger.info("Logging: level=%s, file=%s", self.config.logging.level, log_path)

    def run(self, node: ProcessObject, progress: Optional[ProgressCallback] = None) -> RunReport:
        """Update ``node`` once and report on the run.

        Parameters
        ----------
        node : ProcessObject
            Node whose primary output is brought up to date.
        progress : callable, optional
            Forwarded ``progress(pass_index, number_of_passes)`` callback.

        Returns
        -------
        RunReport

        Raises
        ------
        TesseraError
            Whatever the update raised, after it was logged.
        """
        report = RunReport(node_name=node.name)
        generated_at = node.output.update_mtime
        self.last_report = report
        start = time.perf_counter()
        last = start

        def on_pass(pass_index: int, number_of_passes: int):
            nonlocal last
            now = time.perf_counter()
            report.passes.append(PassRecord(
                pass_index, number_of_passes, now - last, now - start
            ))
            report.number_of_passes = number_of_passes
            last = now
            logger.debug("%s: pass %d/%d done (%.0f%%)", node.name, pass_index + 1,
                         number_of_passes, 100.0 * (pass_index + 1) / number_of_passes)
            if progress is not None:
                progress(pass_index, number_of_passes)

        logger.info("=" * 60)
        logger.info("Starting run: %s", node.name)
        logger.info("=" * 60)

        try:
            if isinstance(node, StreamingProcessObject):
                node.update(progress=on_pass)
            else:
                node.update()
        except TesseraError as exc:
            report.elapsed_seconds = time.perf_counter() - start
            report.error = str(exc)
            if isinstance(exc, StreamingFailure):
                report.failed_pass = exc.pass_index
                if exc.number_of_passes is not None:
                    report.number_of_passes = exc.number_of_passes
            logger.error("Run of %s failed after %.2fs (pass %s): %s", node.name,
                         report.elapsed_seconds, report.failed_pass, exc)
            raise

        report.elapsed_seconds = time.perf_counter() - start
        report.success = True
        report.regenerated = node.output.update_mtime != generated_at
        if report.regenerated and not report.passes:
            report.passes.append(PassRecord(0, 1, report.elapsed_seconds,
                                            report.elapsed_seconds))
            report.number_of_passes = 1
        if not report.regenerated:
            logger.info("%s was up to date, no passes run", node.name)
        logger.info("✓ Run complete: %s, %d passes in %.2fs", node.name,
                    report.number_of_passes, report.elapsed_seconds)
        return report
