"""Converging shutdown for a coverage run.

Every way a run can end (end marker, remote close, timeout, socket error,
failed deploy, operator interrupt) calls ``ShutdownController.finalize``.
The first call performs the shutdown; any later or concurrent call waits for
it and gets the same result.  Each step is latched on its own as well:

1. close the console stream,
2. restore the manifest,
3. flush the coverage buffer,
4. press Home on the device (best effort),
5. pick the exit code.
"""

from __future__ import annotations

import asyncio
import dataclasses
import enum
import logging
from typing import Awaitable, Callable, Optional

from . import EXIT_FAILURE, EXIT_SUCCESS
from .device import send_home_keypress
from .exceptions import CoverageReportError, ManifestError
from .session import CollectionSession
from .writer import FlushResult

logger = logging.getLogger("roku_coverage_tools.shutdown")

KeypressFn = Callable[[str, int], Awaitable[bool]]


class ShutdownCause(enum.Enum):
    END_MARKER = "end_marker"
    REMOTE_CLOSED = "remote_closed"
    TIMEOUT = "timeout"
    STREAM_ERROR = "stream_error"
    DEPLOY_FAILED = "deploy_failed"
    INTERRUPTED = "interrupted"
    ERROR = "error"


@dataclasses.dataclass(frozen=True)
class ShutdownResult:
    """What the shutdown did and how the process should exit."""
    cause: ShutdownCause
    exit_code: int
    flush: Optional[FlushResult]
    manifest_restored: bool
    device_signalled: bool


class ShutdownController:
    """Single idempotent finalize routine for one `CollectionSession`."""

    def __init__(
        self,
        session: CollectionSession,
        send_keypress: KeypressFn = send_home_keypress,
    ) -> None:
        self.session = session
        self.send_keypress = send_keypress
        self._task: Optional[asyncio.Future] = None
        self._stream_closed = False
        self._manifest_restored = False
        self._device_signalled = False
        self._failed = False

    @property
    def started(self) -> bool:
        return self._task is not None

    async def finalize(
        self,
        cause: ShutdownCause,
        exit_code: Optional[int] = None,
    ) -> ShutdownResult:
        """Run the shutdown sequence once and return its result.

        Args:
            cause: Why the run is ending.
            exit_code: The deploy's own exit code for ``DEPLOY_FAILED``.
        """
        if self._task is None:
            logger.info("[SHUTDOWN] Shutting down (%s)", cause.value)
            self._task = asyncio.ensure_future(self._shutdown(cause, exit_code))
        else:
            logger.debug(
                "[SHUTDOWN] finalize(%s) joined shutdown already in progress", cause.value,
            )
        return await asyncio.shield(self._task)

    async def close_stream(self) -> None:
        if self._stream_closed:
            return
        self._stream_closed = True
        stream = self.session.stream
        if stream is not None and stream.is_open():
            await stream.close()

    def restore_manifest(self) -> bool:
        if self._manifest_restored:
            return False
        self._manifest_restored = True
        try:
            return self.session.manifest.restore()
        except ManifestError as exc:
            logger.error("[SHUTDOWN] Manifest restore failed: %s", exc)
            self._failed = True
            return False

    def flush_coverage(self) -> Optional[FlushResult]:
        writer = self.session.writer
        if writer.flushed:
            return writer.result
        try:
            return writer.flush(self.session.extractor.buffer)
        except CoverageReportError as exc:
            logger.error("[SHUTDOWN] Coverage flush failed: %s", exc)
            self._failed = True
            return writer.result

    async def signal_device(self) -> bool:
        if self._device_signalled:
            return False
        self._device_signalled = True
        host = self.session.credentials.host
        try:
            return await self.send_keypress(host, self.session.settings.ecp_port)
        except Exception as exc:
            logger.warning("[SHUTDOWN] Exit signal to %s failed: %s", host, exc)
            return False

    def _choose_exit_code(
        self,
        cause: ShutdownCause,
        deploy_code: Optional[int],
        flush: Optional[FlushResult],
    ) -> int:
        if cause is ShutdownCause.DEPLOY_FAILED:
            return deploy_code if deploy_code else EXIT_FAILURE
        if self._failed:
            return EXIT_FAILURE
        if cause is ShutdownCause.INTERRUPTED:
            return EXIT_SUCCESS
        if cause in (ShutdownCause.STREAM_ERROR, ShutdownCause.ERROR):
            return EXIT_FAILURE
        return flush.exit_code if flush is not None else EXIT_FAILURE

    async def _shutdown(
        self,
        cause: ShutdownCause,
        deploy_code: Optional[int],
    ) -> ShutdownResult:
        await self.close_stream()
        restored = self.restore_manifest()
        flush = self.flush_coverage()
        signalled = await self.signal_device()
        code = self._choose_exit_code(cause, deploy_code, flush)
        logger.info(
            "[SHUTDOWN] Done (%s) — lines=%d, manifest_restored=%s, exit=%d",
            cause.value, flush.lines_written if flush else 0, restored, code,
        )
        return ShutdownResult(
            cause=cause,
            exit_code=code,
            flush=flush,
            manifest_restored=restored,
            device_signalled=signalled,
        )
