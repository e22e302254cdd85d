"""Coverage extraction from the debug console line stream.

The test runner prints its lcov report between two marker lines, mixed in
with ordinary BrightScript log output::

    [12:00:01.123] some log line
    [12:00:01.456] +-=-coverage:start
    SF:pkg:/source/main.brs
    DA:1,1
    end_of_record
    [12:00:01.789] +-=-coverage:end

``CoverageExtractor`` is a two-state machine (IDLE / CAPTURING) fed one line
at a time, strictly in arrival order.  Markers are matched by substring so a
timestamp prefix does not hide them.

Lines arrive from ``console.LineSplitter`` with the LF terminator and any
trailing CR already removed, so buffered payload lines never end in ``\\r``.
Everything else on a kept line is stored as received.
"""

from __future__ import annotations

import enum
import logging
from typing import Sequence, Tuple

from typeguard import typechecked

from . import (
    COVERAGE_END_MARKER,
    COVERAGE_MARKER_PREFIX,
    COVERAGE_START_MARKER,
    REPORT_BANNER,
)
from .types import CoverageLines

logger = logging.getLogger("roku_coverage_tools.extraction")

# Lines inside the report section that are runner chatter, not lcov data.
DEFAULT_DENYLIST: Tuple[str, ...] = (REPORT_BANNER, COVERAGE_MARKER_PREFIX)


class CaptureState(enum.Enum):
    IDLE = "idle"
    CAPTURING = "capturing"


@typechecked
class CoverageExtractor:
    """Feeds console lines through the IDLE / CAPTURING state machine.

    Accepted payload lines are appended, verbatim and in order, to
    ``self.buffer``.
    """

    def __init__(
        self,
        start_marker: str = COVERAGE_START_MARKER,
        end_marker: str = COVERAGE_END_MARKER,
        denylist: Sequence[str] = DEFAULT_DENYLIST,
    ) -> None:
        self.start_marker = start_marker
        self.end_marker = end_marker
        self.denylist = tuple(denylist)
        self.state = CaptureState.IDLE
        self.buffer: CoverageLines = []
        self.end_seen = False

    @property
    def is_capturing(self) -> bool:
        return self.state is CaptureState.CAPTURING

    def _is_noise(self, line: str) -> bool:
        return any(entry in line for entry in self.denylist)

    def feed(self, line: str) -> bool:
        """Process one console line.

        Returns:
            ``True`` when *line* carries the end marker, i.e. the report is
            complete and the buffer is ready to flush.
        """
        # End is checked first so a line carrying both markers closes the section.
        if self.end_marker in line:
            if self.state is CaptureState.CAPTURING:
                logger.info(
                    "[CAPTURE] Coverage section ended — %d lines buffered",
                    len(self.buffer),
                )
            else:
                logger.warning("[CAPTURE] End marker seen without a start marker")
            self.state = CaptureState.IDLE
            self.end_seen = True
            return True

        if self.start_marker in line:
            if self.state is CaptureState.CAPTURING:
                logger.debug("[CAPTURE] Repeated start marker ignored")
            else:
                logger.info("[CAPTURE] Coverage section started")
            self.state = CaptureState.CAPTURING
            return False

        if self.state is not CaptureState.CAPTURING:
            return False

        if not line.strip():
            return False

        if self._is_noise(line):
            logger.debug("[CAPTURE] Skipping runner line: %s", line)
            return False

        self.buffer.append(line)
        return False
