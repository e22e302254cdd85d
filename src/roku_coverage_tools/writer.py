"""Persist captured coverage lines as an lcov tracefile."""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Optional, Sequence, Union

from typeguard import typechecked

from . import EXIT_FAILURE, EXIT_SUCCESS
from .exceptions import CoverageReportError
from .fileio import atomic_write_bytes

logger = logging.getLogger("roku_coverage_tools.writer")


@dataclasses.dataclass(frozen=True)
class FlushResult:
    """Outcome of the one and only flush of a run.

    Attributes:
        lines_written: Number of lcov lines written (0 when nothing was captured).
        path: Report path, or ``None`` when nothing was written.
        exit_code: 0 if coverage was written, 1 otherwise.
    """
    lines_written: int
    path: Optional[Path]
    exit_code: int

    @property
    def written(self) -> bool:
        return self.path is not None


@typechecked
class CoverageWriter:
    """Writes the coverage buffer once and remembers the outcome."""

    def __init__(self, report_path: Union[str, Path], encoding: str = "utf-8") -> None:
        self.report_path = Path(report_path)
        self.encoding = encoding
        self.result: Optional[FlushResult] = None

    @property
    def flushed(self) -> bool:
        return self.result is not None

    def flush(self, lines: Sequence[str]) -> FlushResult:
        """Write *lines* to the report, newline-joined with a trailing newline.

        An empty buffer writes nothing.  A second call returns the first
        result without touching the file again.

        Raises:
            CoverageReportError: If the report cannot be written.
        """
        if self.result is not None:
            logger.debug("[WRITE] Coverage already flushed — skipping")
            return self.result

        if not lines:
            logger.warning("[WRITE] No coverage data found between markers")
            self.result = FlushResult(lines_written=0, path=None, exit_code=EXIT_FAILURE)
            return self.result

        content = "\n".join(lines) + "\n"
        try:
            size = atomic_write_bytes(self.report_path, content.encode(self.encoding))
        except OSError as exc:
            self.result = FlushResult(lines_written=0, path=None, exit_code=EXIT_FAILURE)
            msg = f"[write coverage] Cannot write {self.report_path}: {exc}"
            logger.error("[WRITE] ERROR — %s", msg)
            raise CoverageReportError(msg) from exc

        logger.info(
            "[WRITE] Coverage data written to %s — %d lines, %d bytes",
            self.report_path, len(lines), size,
        )
        self.result = FlushResult(
            lines_written=len(lines), path=self.report_path, exit_code=EXIT_SUCCESS,
        )
        return self.result
