"""End-to-end coverage run on one asyncio event loop.

    manifest → deploy → debug console → extraction → shutdown

Everything (child process output, console reads, the capture timeout and
SIGINT/SIGTERM) is interleaved on a single loop.  Whatever ends the run, the
result comes from `ShutdownController.finalize`.
"""

from __future__ import annotations

import asyncio
import logging
import signal
from typing import Any, Dict, List, Optional, Sequence, TextIO

from .config import CollectorSettings, TargetCredentials
from .console import ConsoleStreamReader, StreamEnd, echo_stdout
from .deploy import DeploySupervisor, build_deploy_command
from .device import send_home_keypress
from .exceptions import ConsoleStreamError, DeployError, RokuCoverageToolsError
from .manifest import ManifestHook, ManifestMutator
from .session import CollectionSession
from .shutdown import KeypressFn, ShutdownCause, ShutdownController, ShutdownResult
from .types import EchoFn

logger = logging.getLogger("roku_coverage_tools.collector")

_STREAM_END_CAUSES = {
    StreamEnd.END_MARKER: ShutdownCause.END_MARKER,
    StreamEnd.REMOTE_CLOSED: ShutdownCause.REMOTE_CLOSED,
}


class CoverageCollector:
    """Runs one coverage collection against one device."""

    def __init__(
        self,
        settings: CollectorSettings,
        credentials: TargetCredentials,
        command: Optional[Sequence[str]] = None,
        send_keypress: KeypressFn = send_home_keypress,
        echo: Optional[EchoFn] = echo_stdout,
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
    ) -> None:
        """Initialize the collector.

        Args:
            settings: Project paths, ports and timeouts.
            credentials: Device host and developer password.
            command: Build/deploy command; defaults to ``npx bsc --deploy``.
            send_keypress: Coroutine pressing Home on the device.
            echo: Operator echo for console lines.
            stdout: Operator stream for the build's stdout.
            stderr: Operator stream for the build's stderr.
        """
        self.settings = settings
        self.session = CollectionSession.create(settings, credentials)
        self.shutdown = ShutdownController(self.session, send_keypress=send_keypress)
        self.echo = echo

        if command is None:
            command = build_deploy_command(credentials, settings.bsconfig)
        hook = self.session.manifest if isinstance(self.session.manifest, ManifestHook) else None
        self.supervisor = DeploySupervisor(
            command,
            cwd=settings.project_root,
            hook=hook,
            hook_root=settings.manifest_path.parent,
            secrets=[credentials.password],
            stdout=stdout,
            stderr=stderr,
        )
        self._pipeline_task: Optional[asyncio.Future] = None
        self._interrupted = False
        self._signals: List[int] = []
        self._previous_handlers: Dict[int, Any] = {}

    @property
    def context(self) -> str:
        return f"coverage run on {self.session.credentials.host}"

    # ------------------------------------------------------------------
    #  Signals
    # ------------------------------------------------------------------

    def _on_signal(self, sig: int) -> None:
        if self._interrupted:
            logger.debug("[COLLECT] Signal %d ignored — already terminating", sig)
            return
        self._interrupted = True
        logger.warning("[COLLECT] Terminating (signal %d) ...", sig)
        self.supervisor.terminate(sig)
        if self._pipeline_task is not None:
            self._pipeline_task.cancel()

    def interrupt(self, sig: int = signal.SIGINT) -> None:
        """Operator interrupt: stop the build, then shut down with exit 0."""
        self._on_signal(sig)

    def _install_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in (signal.SIGINT, signal.SIGTERM):
            try:
                loop.add_signal_handler(sig, self._on_signal, sig)
            except NotImplementedError:
                # Proactor loop (Windows): plain handler, forwarded to the loop
                self._install_fallback_handler(loop, sig)
            except RuntimeError:
                logger.debug("[COLLECT] Signal handlers unavailable outside the main thread")
                return
            else:
                self._signals.append(sig)

    def _install_fallback_handler(self, loop: asyncio.AbstractEventLoop, sig: int) -> None:
        def handler(signum, frame):
            loop.call_soon_threadsafe(self._on_signal, signum)

        try:
            self._previous_handlers[sig] = signal.signal(sig, handler)
        except (ValueError, OSError) as exc:
            logger.debug("[COLLECT] Cannot handle signal %d: %s", sig, exc)

    def _remove_signal_handlers(self, loop: asyncio.AbstractEventLoop) -> None:
        for sig in self._signals:
            loop.remove_signal_handler(sig)
        self._signals = []
        for sig, previous in self._previous_handlers.items():
            signal.signal(sig, previous if previous is not None else signal.SIG_DFL)
        self._previous_handlers = {}

    # ------------------------------------------------------------------
    #  Run
    # ------------------------------------------------------------------

    async def run(self) -> ShutdownResult:
        """Run the whole collection and return the shutdown result.

        Once the manifest is switched on, every way out of this method goes
        through `ShutdownController.finalize`.  A cancellation from outside
        (``asyncio.run`` handling Ctrl-C on a loop without signal support)
        counts as an operator interrupt.  Any other unexpected exception
        finalizes with ``ShutdownCause.ERROR`` and is re-raised.

        Raises:
            ConfigurationError: If the manifest is missing (nothing has been
                touched yet).
            ManifestError: If the manifest cannot be switched on.
        """
        manifest = self.session.manifest
        if isinstance(manifest, ManifestMutator):
            manifest.mutate()

        loop = asyncio.get_running_loop()
        self._install_signal_handlers(loop)
        try:
            self._pipeline_task = asyncio.ensure_future(self._pipeline())
            try:
                return await self._pipeline_task
            except (asyncio.CancelledError, KeyboardInterrupt):
                if not self._interrupted:
                    self._on_signal(signal.SIGINT)
                await self._settle_pipeline()
                await self.supervisor.reap()
                return await self.shutdown.finalize(ShutdownCause.INTERRUPTED)
            except BaseException as exc:
                logger.error(
                    "[COLLECT] [%s] Unexpected failure (%s: %s) — shutting down",
                    self.context, type(exc).__name__, exc,
                )
                if not self.shutdown.started:
                    await self.shutdown.finalize(ShutdownCause.ERROR)
                raise
        finally:
            self._remove_signal_handlers(loop)

    async def _settle_pipeline(self) -> None:
        task = self._pipeline_task
        if task is not None and not task.done():
            await asyncio.wait([task])

    async def _pipeline(self) -> ShutdownResult:
        context = self.context
        try:
            outcome = await self.supervisor.run(context)
        except DeployError as exc:
            return await self.shutdown.finalize(ShutdownCause.DEPLOY_FAILED, exc.return_code)
        except RokuCoverageToolsError as exc:
            logger.error("[COLLECT] [%s] Build step failed: %s", context, exc)
            return await self.shutdown.finalize(ShutdownCause.ERROR)

        if not outcome.succeeded:
            return await self.shutdown.finalize(ShutdownCause.DEPLOY_FAILED, outcome.exit_code)

        return await self._collect(context)

    async def _collect(self, context: str) -> ShutdownResult:
        host = self.session.credentials.host
        reader = ConsoleStreamReader(
            host,
            consumer=self.session.extractor.feed,
            port=self.settings.console_port,
            echo=self.echo,
        )
        self.session.stream = reader

        try:
            await reader.open(context)
            end = await asyncio.wait_for(
                reader.run(context), timeout=self.settings.capture_timeout,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "[COLLECT] [%s] Timeout reached after %.0fs — closing connection",
                context, self.settings.capture_timeout,
            )
            cause = ShutdownCause.TIMEOUT
        except ConsoleStreamError as exc:
            logger.error("[COLLECT] [%s] Debug console failed: %s", context, exc)
            cause = ShutdownCause.STREAM_ERROR
        else:
            cause = _STREAM_END_CAUSES[end]

        return await self.shutdown.finalize(cause)


def run_collection(
    settings: CollectorSettings,
    credentials: TargetCredentials,
    command: Optional[Sequence[str]] = None,
) -> ShutdownResult:
    """Blocking wrapper: run one collection on a fresh event loop."""
    collector = CoverageCollector(settings, credentials, command=command)
    return asyncio.run(collector.run())
