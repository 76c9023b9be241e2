"""Port session: one open scale connection for the duration of an attempt."""

import logging
import queue
import re
import threading
from typing import Callable, Optional

from scale_lib import parsing, protocol
from scale_lib.errors import InvalidDataFormat, SerialIOError
from scale_lib.models import Sample
from scale_lib.transport import Transport

logger = logging.getLogger(__name__)

TransportFactory = Callable[[str, int], Transport]


class PortSession:
    """Owns an open Transport and the background ingestion thread feeding it.

    The ingestion thread reads lines, parses them, and puts accepted samples
    on ``samples`` in arrival order. Malformed lines and read timeouts are
    logged and dropped. A transport failure stops the thread and is kept in
    ``error`` for the supervisor to report.
    """

    def __init__(
        self,
        port_name: str,
        baud_rate: int,
        pattern: "re.Pattern[str]",
        transport_factory: Optional[TransportFactory] = None,
    ) -> None:
        """Initialize an unopened session.

        Args:
            port_name: Physical port (e.g., "/dev/ttyUSB0", "COM3")
            baud_rate: Baud rate for the port
            pattern: Compiled data pattern shared from the settings
            transport_factory: Callable(port, baud) -> Transport. Defaults to
                              Transport.open (resolved at open time).
        """
        self.port_name = port_name
        self.baud_rate = baud_rate
        self._pattern = pattern
        self._transport_factory = transport_factory

        self._transport: Optional[Transport] = None
        self._reader_thread: Optional[threading.Thread] = None
        self._stop_event = threading.Event()
        self._error: Optional[SerialIOError] = None

        self.samples: "queue.Queue[Sample]" = queue.Queue()

    # ========================================================================
    # Lifecycle
    # ========================================================================

    def open(self) -> None:
        """Open the port and start the ingestion thread.

        Raises:
            SerialIOError: If the port cannot be opened
        """
        if self._transport is not None:
            raise SerialIOError(f"Session for {self.port_name} is already open")

        factory = self._transport_factory or Transport.open
        self._transport = factory(self.port_name, self.baud_rate)
        self._transport.flush_input()

        self._stop_event.clear()
        self._reader_thread = threading.Thread(
            target=self._reader_loop,
            name=f"ScaleReader-{self.port_name}",
            daemon=True,
        )
        self._reader_thread.start()
        logger.info(f"Serial port {self.port_name} opened")

    def close(self) -> None:
        """Stop the ingestion thread and close the port.

        Safe to call on an unopened or already-closed session.
        """
        self._stop_event.set()

        if self._reader_thread is not None:
            if self._reader_thread.is_alive():
                self._reader_thread.join(timeout=protocol.READ_TIMEOUT_S * 2)
                if self._reader_thread.is_alive():
                    logger.warning(f"Reader thread for {self.port_name} did not stop cleanly")
            self._reader_thread = None

        if self._transport is not None:
            try:
                self._transport.close()
            finally:
                self._transport = None
            logger.info(f"Serial port {self.port_name} closed")

    def __enter__(self) -> "PortSession":
        self.open()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @property
    def is_open(self) -> bool:
        return self._transport is not None and self._transport.is_open

    @property
    def error(self) -> Optional[SerialIOError]:
        """Transport failure that stopped ingestion, if any."""
        return self._error

    def raise_if_failed(self) -> None:
        """Re-raise the transport failure recorded by the ingestion thread."""
        if self._error is not None:
            raise self._error

    # ========================================================================
    # Ingestion
    # ========================================================================

    def _reader_loop(self) -> None:
        """Background thread loop: read lines until stopped or the port fails."""
        logger.debug(f"Reader loop started for {self.port_name} (thread {threading.get_ident()})")
        assert self._transport is not None
        transport = self._transport

        while not self._stop_event.is_set():
            try:
                line = transport.readline()
            except SerialIOError as e:
                if self._stop_event.is_set():
                    break  # port closed under us during close()
                logger.error(f"Error reading from serial port {self.port_name}: {e}")
                self._error = e
                break

            if line is None:
                logger.debug("Read timeout occurred")
                continue

            self.handle_line(line)

        logger.debug(f"Reader loop stopped for {self.port_name}")

    def handle_line(self, line: str) -> Optional[Sample]:
        """Parse one received line and queue the sample if it is valid.

        Args:
            line: Raw line text

        Returns:
            The accepted Sample, or None if the line was dropped
        """
        logger.debug(f"Data received: {line!r}")
        try:
            sample = parsing.parse_sample(line, self._pattern)
        except InvalidDataFormat as e:
            logger.warning(f"Dropping line: {e}")
            return None

        self.samples.put(sample)
        return sample
