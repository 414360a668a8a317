"""Detect agent readiness from its unstructured log output.

The agent prints human-readable log lines and has no status channel, so the
scanner pattern-matches its stdout. Bytes are buffered across reads so that a
marker split over two chunks is still seen; only the unterminated last line
is kept between reads.
"""

import codecs
import re
import threading
from collections.abc import Callable
from concurrent.futures import Future
from dataclasses import dataclass
from typing import IO

from .common.exceptions import ReadinessFatal
from .common.logging import AGENT_OUTPUT_LOGGER, get_logger

logger = get_logger(__name__)
agent_logger = get_logger(AGENT_OUTPUT_LOGGER)

READY_PATTERN = re.compile(r"starting web service.*addr=(\d+\.\d+\.\d+\.\d+:\d+)")
IN_USE_PATTERN = re.compile(r"address already in use")
SESSION_LIMIT_PATTERN = re.compile(
    r"is limited to (\d+) simultaneous .*client session"
)
ADDRESS_PATTERN = re.compile(r"\d+\.\d+\.\d+\.\d+:\d+")

DEFAULT_CHUNK_SIZE = 256
DEFAULT_MAX_BUFFER = 64 * 1024


@dataclass(frozen=True)
class Ready:
    """The control API is listening on ``address`` (host:port)."""

    address: str


@dataclass(frozen=True)
class Fatal:
    """The agent reported a condition that ends the session."""

    reason: str
    message: str

    def to_exception(self) -> ReadinessFatal:
        return ReadinessFatal(self.reason, self.message)


ScanEvent = Ready | Fatal


class ReadinessScanner:
    """Incremental scanner over the agent's output stream."""

    def __init__(
        self,
        log_output: bool = False,
        on_fatal: Callable[[Fatal], None] | None = None,
        max_buffer: int = DEFAULT_MAX_BUFFER,
    ):
        self.log_output = log_output
        self.on_fatal = on_fatal
        self.max_buffer = max_buffer
        self.address: str | None = None
        self.fatal: Fatal | None = None
        self._buffer = ""
        self._decoder = codecs.getincrementaldecoder("utf-8")(errors="replace")

    @property
    def is_ready(self) -> bool:
        return self.address is not None

    def feed(self, chunk: bytes, final: bool = False) -> ScanEvent | None:
        """Feed one chunk of output and return the event it completes, if any.

        Fatal markers take precedence over the ready marker within one feed.
        ``Ready`` is returned at most once per scanner.

        Args:
            chunk: Raw bytes read from the agent
            final: True when the stream has ended; the unterminated tail is
                then matched as a complete line
        """
        text = self._decoder.decode(chunk, final=final)
        if self.log_output and text:
            agent_logger.info("Agent output", output=text)

        self._buffer += text
        event = self._match(final)

        # Complete lines have been matched; keep only the open tail.
        newline = self._buffer.rfind("\n")
        if newline != -1:
            self._buffer = self._buffer[newline + 1 :]
        if len(self._buffer) > self.max_buffer:
            self._buffer = self._buffer[-self.max_buffer :]
        return event

    def _match(self, final: bool) -> ScanEvent | None:
        if IN_USE_PATTERN.search(self._buffer):
            return self._set_fatal(
                ReadinessFatal.ADDRESS_IN_USE, "Address already in use"
            )

        limit = SESSION_LIMIT_PATTERN.search(self._buffer)
        if limit:
            return self._set_fatal(
                ReadinessFatal.SESSION_LIMIT,
                f"Limit of {limit.group(1)} sessions reached for this account",
            )

        if self.address is not None:
            return None

        ready = READY_PATTERN.search(self._buffer)
        # An address touching the end of the buffer may still be growing.
        if ready is None or (ready.end() == len(self._buffer) and not final):
            return None

        address = ADDRESS_PATTERN.search(self._buffer, ready.start(1))
        if address is None:
            return None
        self.address = address.group(0)
        logger.info("Agent control API ready", address=self.address)
        return Ready(self.address)

    def _set_fatal(self, reason: str, message: str) -> Fatal:
        self.fatal = Fatal(reason, message)
        logger.error("Agent reported fatal condition", reason=reason, message=message)
        return self.fatal

    def scan(
        self,
        stream: IO[bytes],
        future: "Future[str] | None" = None,
        chunk_size: int = DEFAULT_CHUNK_SIZE,
    ) -> "Future[str]":
        """Read ``stream`` until it ends or a fatal marker appears.

        The future resolves with the control address once it is seen. A fatal
        marker, a read error or end of stream before readiness sets a
        ``ReadinessFatal`` on it instead. Reading continues after readiness so
        later fatal markers still stop the session.
        """
        if future is None:
            future = Future()
        read = getattr(stream, "read1", None) or stream.read

        while True:
            try:
                chunk = read(chunk_size)
            except (OSError, ValueError) as e:
                if self.address is not None:
                    logger.warning("Stopped reading agent output", error=str(e))
                    return future
                self._finish(
                    future,
                    Fatal(ReadinessFatal.STREAM_CLOSED, f"Failed reading agent output: {e}"),
                )
                return future

            event = self.feed(chunk or b"", final=not chunk)

            if isinstance(event, Fatal):
                self._finish(future, event)
                return future
            if isinstance(event, Ready) and not future.done():
                future.set_result(event.address)

            if not chunk:
                break

        if self.address is None:
            self._finish(
                future,
                Fatal(
                    ReadinessFatal.STREAM_CLOSED,
                    "Agent output closed before the control API was ready",
                ),
            )
        else:
            logger.info("Agent output stream closed")
        return future

    def start(
        self, stream: IO[bytes], chunk_size: int = DEFAULT_CHUNK_SIZE
    ) -> "Future[str]":
        """Run :meth:`scan` on a daemon thread and return its future."""
        future: Future[str] = Future()
        thread = threading.Thread(
            target=self.scan,
            args=(stream, future, chunk_size),
            name="ngrok-readiness",
            daemon=True,
        )
        thread.start()
        return future

    def _finish(self, future: "Future[str]", fatal: Fatal) -> None:
        self.fatal = fatal
        if fatal.reason == ReadinessFatal.STREAM_CLOSED:
            logger.error("Agent output ended", reason=fatal.reason, message=fatal.message)
        if self.on_fatal is not None:
            self.on_fatal(fatal)
        if not future.done():
            future.set_exception(fatal.to_exception())
