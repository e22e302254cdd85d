"""Build & deploy supervision for the BrighterScript compiler.

Runs ``bsc --deploy`` (or any command standing in for it) as one child
process, forwards its output to the operator as it arrives and reports the
exit code.  A non-zero exit ends the run; the deploy is never retried.
"""

from __future__ import annotations

import asyncio
import codecs
import dataclasses
import logging
import shutil
import signal
import sys
import time
from pathlib import Path
from typing import List, Optional, Sequence, TextIO

from . import DEFAULT_BSCONFIG, EXIT_FAILURE
from .config import TargetCredentials
from .exceptions import DeployError
from .manifest import ManifestHook

logger = logging.getLogger("roku_coverage_tools.deploy")

READ_CHUNK_SIZE = 4096
REAP_TIMEOUT = 5.0


@dataclasses.dataclass(frozen=True)
class DeployOutcome:
    """Exit status of the build/deploy process."""
    exit_code: int

    @property
    def succeeded(self) -> bool:
        return self.exit_code == 0


def build_deploy_command(
    credentials: TargetCredentials,
    bsconfig: str = DEFAULT_BSCONFIG,
) -> List[str]:
    """Return the ``npx bsc`` command line that builds and sideloads the channel."""
    npx = shutil.which("npx") or "npx"
    return [
        npx, "bsc",
        "--project", bsconfig,
        "--deploy",
        "--host", credentials.host,
        "--password", credentials.password,
    ]


class DeploySupervisor:
    """Starts and supervises exactly one build/deploy process."""

    def __init__(
        self,
        command: Sequence[str],
        cwd: Path,
        hook: Optional[ManifestHook] = None,
        hook_root: Optional[Path] = None,
        secrets: Sequence[str] = (),
        stdout: Optional[TextIO] = None,
        stderr: Optional[TextIO] = None,
    ) -> None:
        """Initialize the supervisor.

        Args:
            command: Program and arguments to run.
            cwd: Working directory (the project root).
            hook: Manifest hook called around the build, if the run toggles
                the manifest from inside the build lifecycle.
            hook_root: Source root handed to the hook (holds ``manifest``).
            secrets: Strings to redact from logged command lines.
            stdout: Operator stream for the child's stdout (default: ``sys.stdout``).
            stderr: Operator stream for the child's stderr (default: ``sys.stderr``).
        """
        self.command = list(command)
        self.cwd = Path(cwd)
        self.hook = hook
        self.hook_root = hook_root
        self.secrets = [s for s in secrets if s]
        self.stdout = stdout
        self.stderr = stderr
        self.outcome: Optional[DeployOutcome] = None
        self._process: Optional[asyncio.subprocess.Process] = None
        self._started = False

    @property
    def display_command(self) -> str:
        text = " ".join(self.command)
        for secret in self.secrets:
            text = text.replace(secret, "***")
        return text

    def is_running(self) -> bool:
        return self._process is not None and self._process.returncode is None

    async def _pump(self, stream: asyncio.StreamReader, sink: Optional[TextIO], default: TextIO) -> None:
        out = sink if sink is not None else default
        decoder = codecs.getincrementaldecoder("utf-8")("replace")
        while True:
            chunk = await stream.read(READ_CHUNK_SIZE)
            if not chunk:
                break
            text = decoder.decode(chunk, False)
            if text:
                out.write(text)
                out.flush()
        tail = decoder.decode(b"", True)
        if tail:
            out.write(tail)
            out.flush()

    async def run(self, context: str) -> DeployOutcome:
        """Run the build/deploy process to completion.

        Returns:
            The `DeployOutcome`; callers stop the run unless it succeeded.

        Raises:
            DeployError: If the process cannot be started, or ``run()`` is
                called a second time.
        """
        if self._started:
            raise DeployError(
                f"[{context}] Deploy already started for this run",
                command=self.display_command,
            )
        self._started = True

        if self.hook is not None:
            self.hook.after_program_create(self.hook_root or self.cwd)

        logger.info("[DEPLOY] [%s] Starting build and deploy: %s", context, self.display_command)
        start_time = time.monotonic()

        try:
            try:
                process = await asyncio.create_subprocess_exec(
                    *self.command,
                    cwd=str(self.cwd),
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as exc:
                msg = f"[{context}] Failed to start {self.display_command!r}: {exc}"
                logger.error("[DEPLOY] START FAILED — %s", msg)
                raise DeployError(
                    msg, command=self.display_command, return_code=EXIT_FAILURE,
                ) from exc

            self._process = process
            # Both streams are PIPEs, so neither is None
            await asyncio.gather(
                self._pump(process.stdout, self.stdout, sys.stdout),
                self._pump(process.stderr, self.stderr, sys.stderr),
            )
            exit_code = await process.wait()
        finally:
            if self.hook is not None:
                self.hook.after_serialize_program()

        self.outcome = DeployOutcome(exit_code=exit_code)
        elapsed = time.monotonic() - start_time
        if self.outcome.succeeded:
            logger.info("[DEPLOY] [%s] Deploy successful in %.1fs", context, elapsed)
        else:
            logger.error(
                "[DEPLOY] [%s] Build/Deploy failed with code %d after %.1fs",
                context, exit_code, elapsed,
            )
        return self.outcome

    def terminate(self, sig: int = signal.SIGTERM) -> bool:
        """Send *sig* to the running process, best effort.

        Returns:
            ``True`` if a signal was delivered.
        """
        process = self._process
        if process is None or process.returncode is not None:
            return False
        try:
            if sys.platform == "win32":
                # Windows only delivers SIGTERM (TerminateProcess)
                process.terminate()
            else:
                process.send_signal(sig)
        except ProcessLookupError:
            return False
        logger.info("[DEPLOY] Sent signal %d to pid %d", sig, process.pid)
        return True

    async def reap(self, timeout: float = REAP_TIMEOUT) -> Optional[int]:
        """Wait for a signalled process to exit, killing it after *timeout*."""
        if self._process is None:
            return None
        try:
            return await asyncio.wait_for(self._process.wait(), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "[DEPLOY] pid %d still running after %.0fs — killing",
                self._process.pid, timeout,
            )
            try:
                self._process.kill()
            except ProcessLookupError:
                pass
            return await self._process.wait()
