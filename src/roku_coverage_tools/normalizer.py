"""Map a device-side lcov report back onto the BrighterScript sources.

The device only ever sees compiled ``.brs`` files, some of which the compiler
generated on its own (component glue, source maps).  This pass runs over the
persisted report, drops every record that belongs to a generated file and
renames the ``SF:`` path of every other record from ``.brs`` to ``.bs``.
"""

from __future__ import annotations

import dataclasses
import logging
from pathlib import Path
from typing import Iterable, List, Union

from tqdm import tqdm
from typeguard import typechecked

from . import (
    COMPILED_EXTENSION,
    END_OF_RECORD,
    GENERATED_PATH_SEGMENT,
    SOURCE_EXTENSION,
    SOURCE_FILE_PREFIX,
)
from .exceptions import CoverageReportError
from .fileio import atomic_write_bytes
from .types import CoverageRecord

logger = logging.getLogger("roku_coverage_tools.normalizer")


@dataclasses.dataclass(frozen=True)
class NormalizeResult:
    """Counts reported by one normalization pass."""
    path: Path
    processed: int
    skipped: int


def split_records(lines: Iterable[str]) -> List[CoverageRecord]:
    """Group lines into records, each ending with its ``end_of_record`` line.

    Carriage returns are removed first.  Lines after the last terminator
    belong to no complete record and are dropped.
    """
    records: List[CoverageRecord] = []
    current: CoverageRecord = []
    for raw in lines:
        line = raw.replace("\r", "")
        current.append(line)
        if line.strip() == END_OF_RECORD:
            records.append(current)
            current = []
    if any(line.strip() for line in current):
        logger.warning(
            "[NORMALIZE] Dropping %d trailing lines without %s",
            len(current), END_OF_RECORD,
        )
    return records


def is_generated(record: CoverageRecord) -> bool:
    # Substring match on the directory segment anywhere in the record.
    return any(GENERATED_PATH_SEGMENT in line for line in record)


def rewrite_source_paths(record: CoverageRecord) -> CoverageRecord:
    """Swap a trailing ``.brs`` for ``.bs`` on every ``SF:`` line."""
    rewritten = []
    for line in record:
        if line.startswith(SOURCE_FILE_PREFIX) and line.endswith(COMPILED_EXTENSION):
            line = line[: -len(COMPILED_EXTENSION)] + SOURCE_EXTENSION
        rewritten.append(line)
    return rewritten


@typechecked
class PathNormalizer:
    """Rewrites a persisted lcov report in place."""

    def __init__(self, report_path: Union[str, Path], encoding: str = "utf-8") -> None:
        self.report_path = Path(report_path)
        self.encoding = encoding

    def normalize(self, context: str, show_progress: bool = False) -> NormalizeResult:
        """Filter generated records and rename source paths.

        Args:
            context: Description of the purpose, embedded into error messages.
            show_progress: Show a tqdm progress bar over the records.

        Returns:
            A `NormalizeResult` with processed/skipped record counts.

        Raises:
            CoverageReportError: If the report is missing or cannot be
                read or written.
        """
        if not self.report_path.is_file():
            msg = f"[{context}] Coverage report not found: {self.report_path}"
            logger.error("[NORMALIZE] %s", msg)
            raise CoverageReportError(msg)

        logger.info("[NORMALIZE] [%s] Reading coverage file %s", context, self.report_path)
        try:
            text = self.report_path.read_bytes().decode(self.encoding)
        except (OSError, UnicodeDecodeError) as exc:
            msg = f"[{context}] Cannot read {self.report_path}: {exc}"
            logger.error("[NORMALIZE] READ ERROR — %s", msg)
            raise CoverageReportError(msg) from exc

        lines = text.split("\n")
        logger.info("[NORMALIZE] [%s] Total lines: %d", context, len(lines))

        records = split_records(lines)
        kept: List[str] = []
        skipped = 0
        processed = 0

        for record in tqdm(
            records,
            desc=f"Normalizing {self.report_path.name}",
            unit="record",
            disable=not show_progress,
        ):
            if is_generated(record):
                skipped += 1
                continue
            kept.extend(rewrite_source_paths(record))
            processed += 1

        output = "\n".join(kept) + "\n" if kept else ""
        try:
            atomic_write_bytes(self.report_path, output.encode(self.encoding))
        except OSError as exc:
            msg = f"[{context}] Cannot write {self.report_path}: {exc}"
            logger.error("[NORMALIZE] WRITE ERROR — %s", msg)
            raise CoverageReportError(msg) from exc

        logger.info(
            "[NORMALIZE] [%s] Skipped %d generated file records, processed %d records",
            context, skipped, processed,
        )
        return NormalizeResult(path=self.report_path, processed=processed, skipped=skipped)
