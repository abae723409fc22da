"""
Output Capture - Drains the worker's merged stdout/stderr into a buffer.

The worker writes into a pipe; a background thread reads whatever bytes are
available and appends them to an in-memory log. The monitor loop reads stable
snapshots of that log while the thread keeps draining, so the worker is never
blocked on a full pipe.

Usage:
    capture = OutputCapture(process.stdout, echo=sys.stdout.buffer)
    capture.start()
    ...
    data = capture.snapshot()   # any time, from any thread
    ...
    capture.close()             # after the process has exited
"""

from __future__ import annotations

import threading
from typing import BinaryIO, Optional

from smoke_runner.core.logging import get_logger

logger = get_logger("capture")

READ_CHUNK = 65536


class OutputCapture:
    """Append-only byte log fed by a draining reader thread."""

    def __init__(
        self,
        stream: BinaryIO,
        echo: Optional[BinaryIO] = None,
        drain_timeout: float = 5.0,
    ):
        self._stream = stream
        self._echo = echo
        self._drain_timeout = drain_timeout
        self._buffer = bytearray()
        self._lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None
        self._closed = False

    def __enter__(self) -> "OutputCapture":
        self.start()
        return self

    def __exit__(self, *exc_info) -> None:
        self.close()

    @property
    def size(self) -> int:
        with self._lock:
            return len(self._buffer)

    @property
    def is_draining(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        """Start the background reader."""
        if self._thread is not None:
            return
        self._thread = threading.Thread(
            target=self._drain, name="output-capture", daemon=True
        )
        self._thread.start()

    def append(self, data: bytes) -> None:
        """Append bytes to the log and echo them."""
        if not data:
            return
        with self._lock:
            self._buffer.extend(data)
        if self._echo is not None:
            try:
                self._echo.write(data)
                self._echo.flush()
            except (OSError, ValueError):
                # Echo is cosmetic; the capture itself must keep draining
                self._echo = None

    def snapshot(self) -> bytes:
        """Return an immutable copy of everything captured so far."""
        with self._lock:
            return bytes(self._buffer)

    def text(self) -> str:
        return self.snapshot().decode("utf-8", errors="replace")

    def tail(self, lines: int) -> list[str]:
        """Last non-empty lines of the captured output."""
        if lines <= 0:
            return []
        text_lines = [ln for ln in self.text().splitlines() if ln.strip()]
        return text_lines[-lines:]

    def close(self) -> None:
        """Wait for the reader to reach EOF, then close the stream."""
        if self._closed:
            return
        self._closed = True

        if self._thread is not None:
            self._thread.join(timeout=self._drain_timeout)
            if self._thread.is_alive():
                # A grandchild may still hold the write end of the pipe
                # Closing now would block on the reader's buffer lock
                logger.warning(
                    "Output reader still running %.1fs after exit, detaching",
                    self._drain_timeout,
                )
                return
        try:
            self._stream.close()
        except OSError:
            pass

    def _drain(self) -> None:
        read = getattr(self._stream, "read1", self._stream.read)
        try:
            while True:
                chunk = read(READ_CHUNK)
                if not chunk:
                    break
                self.append(chunk)
        except (OSError, ValueError):
            # Stream closed underneath us during shutdown
            logger.debug("Output stream closed while draining")
