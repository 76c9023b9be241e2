"""Fake serial port that simulates a scale streaming one reading per line.

The fake emits a scripted list of lines (CRLF-terminated) at a fixed period
from a background thread, optionally cycling forever, and can simulate the
cable being pulled after a number of lines.
"""

import itertools
import logging
import queue
import threading
from typing import Iterable, Optional

import serial

logger = logging.getLogger(__name__)


class FakeScaleSerial:
    """Deterministic stand-in for serial.Serial attached to a scale.

    Streaming starts on the first readline() so that a reset_input_buffer()
    issued right after opening does not discard scripted lines.
    """

    def __init__(
        self,
        lines: Iterable[str] = (),
        period_s: float = 0.01,
        repeat: bool = False,
        timeout: float = 0.05,
        fail_after: Optional[int] = None,
    ) -> None:
        """Initialize fake scale.

        Args:
            lines: Text lines to emit, without terminators
            period_s: Delay between emitted lines
            repeat: If True, cycle through lines until closed
            timeout: Readline timeout (stands in for the port read timeout)
            fail_after: If set, readline raises SerialException after this
                       many lines have been read (simulates unplugging)
        """
        self.lines = list(lines)
        self.period_s = period_s
        self.repeat = repeat
        self.timeout = timeout
        self.fail_after = fail_after

        self.is_open = True
        self.lines_read = 0
        self.close_count = 0

        self._output_queue: "queue.Queue[bytes]" = queue.Queue()
        self._stream_thread: Optional[threading.Thread] = None
        self._stop_streaming = threading.Event()

    def close(self) -> None:
        """Close the fake serial port."""
        self.is_open = False
        self.close_count += 1
        self._stop_streaming_thread()
        logger.debug("FakeScaleSerial closed")

    def readline(self) -> bytes:
        """Read one line of scale output.

        Returns:
            Line as bytes with CRLF terminator, or b"" on timeout
        """
        if not self.is_open:
            raise serial.SerialException("Port is closed")

        if self.fail_after is not None and self.lines_read >= self.fail_after:
            raise serial.SerialException("Device disconnected")

        self._ensure_streaming()

        try:
            line = self._output_queue.get(timeout=self.timeout)
        except queue.Empty:
            return b""

        self.lines_read += 1
        logger.debug(f"FakeScaleSerial sending line: {line!r}")
        return line

    def reset_input_buffer(self) -> None:
        """Discard anything already queued for the host."""
        while True:
            try:
                self._output_queue.get_nowait()
            except queue.Empty:
                break
        logger.debug("FakeScaleSerial input buffer flushed")

    def send_line(self, text: str) -> None:
        """Queue one raw line for the host (CRLF appended)."""
        self._output_queue.put(text.encode("ascii") + b"\r\n")

    # ========================================================================
    # Internal: Threading
    # ========================================================================

    def _ensure_streaming(self) -> None:
        if self._stream_thread is None and self.lines:
            self._stop_streaming.clear()
            self._stream_thread = threading.Thread(
                target=self._streaming_loop,
                name="FakeScaleStream",
                daemon=True,
            )
            self._stream_thread.start()

    def _stop_streaming_thread(self) -> None:
        if self._stream_thread and self._stream_thread.is_alive():
            self._stop_streaming.set()
            self._stream_thread.join(timeout=2.0)

    def _streaming_loop(self) -> None:
        """Background loop emitting scripted lines at period_s."""
        source = itertools.cycle(self.lines) if self.repeat else iter(self.lines)

        for text in source:
            if self._stop_streaming.is_set():
                break
            self.send_line(text)
            if self._stop_streaming.wait(timeout=self.period_s):
                break

        logger.debug("FakeScaleSerial streaming loop stopped")
