"""Debug console stream reader.

Connects to the device's BrightScript debug console (plain text over TCP,
port 8085) and turns the byte stream into lines.  Each complete line is handed
to a consumer callback before it is echoed to the operator, strictly in
arrival order.  The consumer returns ``True`` once it has seen the end of the
coverage section, which stops the read loop.

Chunk boundaries carry no meaning on this socket: a line may be split over
several reads and a multi-byte character over two.  ``LineSplitter`` keeps the
undelimited remainder between reads so the produced line sequence only depends
on the concatenated bytes.
"""

from __future__ import annotations

import asyncio
import codecs
import enum
import logging
import sys
import time
from typing import List, Optional

from . import CONNECT_TIMEOUT, CONSOLE_PORT
from .exceptions import ConsoleStreamError
from .types import EchoFn, LineConsumer

logger = logging.getLogger("roku_coverage_tools.console")

READ_CHUNK_SIZE = 4096


class StreamEnd(enum.Enum):
    """Why the console read loop stopped on its own."""
    END_MARKER = "end_marker"
    REMOTE_CLOSED = "remote_closed"


def _strip_cr(line: str) -> str:
    return line[:-1] if line.endswith("\r") else line


class LineSplitter:
    """Incremental LF line segmentation over a byte stream."""

    def __init__(self, encoding: str = "utf-8") -> None:
        self._decoder = codecs.getincrementaldecoder(encoding)("replace")
        self.remainder = ""

    def feed(self, chunk: bytes) -> List[str]:
        """Add *chunk* and return the lines it completed (terminators removed)."""
        self.remainder += self._decoder.decode(chunk, False)
        if "\n" not in self.remainder:
            return []
        *complete, self.remainder = self.remainder.split("\n")
        return [_strip_cr(line) for line in complete]

    def finish(self) -> List[str]:
        """Flush the unterminated tail at end of stream."""
        tail = _strip_cr(self.remainder + self._decoder.decode(b"", True))
        self.remainder = ""
        return [tail] if tail else []


def echo_stdout(line: str) -> None:
    sys.stdout.write(line + "\n")
    sys.stdout.flush()


class ConsoleStreamReader:
    """Owns the socket to the debug console for one run.

    Example::

        reader = ConsoleStreamReader("192.168.1.50", consumer=extractor.feed)
        await reader.open(context="collect coverage")
        try:
            end = await reader.run(context="collect coverage")
        finally:
            await reader.close()
    """

    def __init__(
        self,
        host: str,
        consumer: LineConsumer,
        port: int = CONSOLE_PORT,
        echo: Optional[EchoFn] = echo_stdout,
        connect_timeout: float = CONNECT_TIMEOUT,
        encoding: str = "utf-8",
    ) -> None:
        """Initialize the reader.  No connection is made yet.

        Args:
            host: Device IP address or hostname.
            consumer: Receives every complete line; returns ``True`` to stop.
            port: Debug console port (default: 8085).
            echo: Operator echo for each line, or ``None`` to stay quiet.
            connect_timeout: Seconds allowed for the TCP connect.
            encoding: Console text encoding.
        """
        self.host = host
        self.port = port
        self.consumer = consumer
        self.echo = echo
        self.connect_timeout = connect_timeout
        self.splitter = LineSplitter(encoding)
        self.lines_received = 0
        self._reader: Optional[asyncio.StreamReader] = None
        self._writer: Optional[asyncio.StreamWriter] = None
        self._closed = False

    def is_open(self) -> bool:
        return self._writer is not None and not self._closed

    async def open(self, context: str) -> None:
        """Connect to the debug console.

        Raises:
            ConsoleStreamError: If the connection fails or times out.
        """
        logger.info(
            "[CONSOLE] [%s] Connecting to debug console %s:%d ...",
            context, self.host, self.port,
        )
        start_time = time.monotonic()
        try:
            self._reader, self._writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.connect_timeout,
            )
        except asyncio.TimeoutError as exc:
            msg = (
                f"[{context}] Connection to debug console {self.host}:{self.port} "
                f"timed out after {self.connect_timeout:.0f}s"
            )
            logger.error("[CONSOLE] TIMEOUT — %s", msg)
            raise ConsoleStreamError(msg) from exc
        except OSError as exc:
            msg = f"[{context}] Cannot connect to debug console {self.host}:{self.port}: {exc}"
            logger.error("[CONSOLE] OS ERROR — %s", msg)
            raise ConsoleStreamError(msg) from exc

        logger.info(
            "[CONSOLE] [%s] Connected to %s:%d in %.2fs — waiting for test output",
            context, self.host, self.port, time.monotonic() - start_time,
        )

    def _dispatch(self, lines: List[str]) -> bool:
        for line in lines:
            self.lines_received += 1
            done = self.consumer(line)
            if self.echo is not None:
                self.echo(line)
            if done:
                return True
        return False

    async def run(self, context: str) -> StreamEnd:
        """Read until the consumer signals the end or the device hangs up.

        Raises:
            ConsoleStreamError: On a socket error, or if ``open()`` was not
                called.
        """
        if self._reader is None or self._closed:
            msg = f"[{context}] Cannot read debug console {self.host}:{self.port}: not connected"
            logger.error("[CONSOLE] %s", msg)
            raise ConsoleStreamError(msg)

        while True:
            try:
                chunk = await self._reader.read(READ_CHUNK_SIZE)
            except OSError as exc:
                msg = f"[{context}] Debug console read error on {self.host}:{self.port}: {exc}"
                logger.error("[CONSOLE] READ ERROR — %s", msg)
                raise ConsoleStreamError(msg) from exc

            if not chunk:
                logger.info(
                    "[CONSOLE] [%s] Connection closed by device after %d lines",
                    context, self.lines_received,
                )
                if self._dispatch(self.splitter.finish()):
                    return StreamEnd.END_MARKER
                return StreamEnd.REMOTE_CLOSED

            logger.debug("[CONSOLE] +%d bytes from %s", len(chunk), self.host)
            if self._dispatch(self.splitter.feed(chunk)):
                return StreamEnd.END_MARKER

    async def close(self) -> None:
        """Close the connection if open.  Safe to call more than once."""
        if self._writer is None or self._closed:
            logger.debug("[CONSOLE] close() called on already-closed console %s", self.host)
            return

        self._closed = True
        writer = self._writer
        try:
            writer.close()
            await writer.wait_closed()
        except Exception as exc:
            logger.warning("[CONSOLE] Error closing console %s:%d: %s", self.host, self.port, exc)
        logger.info("[CONSOLE] Closed debug console %s:%d", self.host, self.port)
