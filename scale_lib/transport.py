"""Serial transport layer for scale communication."""

import logging
from typing import Optional, Protocol

import serial

from scale_lib import protocol
from scale_lib.errors import SerialIOError

logger = logging.getLogger(__name__)


class SerialLike(Protocol):
    """Protocol for serial port interface (allows test doubles)."""

    def readline(self) -> bytes:
        """Read a line from serial port."""
        ...

    def reset_input_buffer(self) -> None:
        """Flush input buffer."""
        ...

    def close(self) -> None:
        """Close serial port."""
        ...

    @property
    def is_open(self) -> bool:
        """Check if port is open."""
        ...


class Transport:
    """Wrapper around pyserial for line-oriented scale output.

    Reads and writes are bounded by the port timeouts set at open time; a
    read that times out yields no line rather than an error.
    """

    def __init__(self, serial_port: SerialLike, port_name: str = "<injected>") -> None:
        """Initialize transport with a serial port instance.

        Args:
            serial_port: Object implementing SerialLike protocol
                        (e.g., serial.Serial or FakeScaleSerial for testing)
            port_name: Port name used in log and error messages
        """
        self._port = serial_port
        self.port_name = port_name
        self._partial = b""

    @classmethod
    def open(cls, port: str, baud: int) -> "Transport":
        """Open a real serial port with fixed 8N1 framing and no flow control.

        Args:
            port: Serial port device name (e.g., "/dev/ttyUSB0", "COM3")
            baud: Baud rate

        Returns:
            Transport instance wrapping opened serial port

        Raises:
            SerialIOError: If port cannot be opened
        """
        try:
            ser = serial.Serial(
                port=port,
                baudrate=baud,
                bytesize=serial.EIGHTBITS,
                parity=serial.PARITY_NONE,
                stopbits=serial.STOPBITS_ONE,
                timeout=protocol.READ_TIMEOUT_S,
                write_timeout=protocol.WRITE_TIMEOUT_S,
                rtscts=False,
                dsrdtr=False,
                xonxoff=False,
            )
        except (serial.SerialException, ValueError) as e:
            raise SerialIOError(f"Failed to open {port} at {baud} baud: {e}") from e

        logger.info(f"Opened serial port {port} at {baud} baud, timeout={protocol.READ_TIMEOUT_S}s")
        return cls(ser, port_name=port)

    def close(self) -> None:
        """Close the serial port (no-op if already closed)."""
        if self._port.is_open:
            self._port.close()
            logger.info(f"Closed serial port {self.port_name}")

    @property
    def is_open(self) -> bool:
        """Check if port is currently open."""
        return self._port.is_open

    def readline(self) -> Optional[str]:
        """Read one line from the scale.

        Returns:
            Line as string with whitespace stripped, or None on timeout/no data

        Raises:
            SerialIOError: If port is closed or the read fails
        """
        if not self._port.is_open:
            raise SerialIOError(f"Serial port {self.port_name} is not open")

        try:
            line_bytes = self._port.readline()
        except (serial.SerialException, OSError) as e:
            raise SerialIOError(f"Failed to read line from {self.port_name}: {e}") from e

        if not line_bytes:
            return None

        if not line_bytes.endswith(b"\n"):
            # Read bound expired mid-line; keep the head for the next read
            self._partial += line_bytes
            if len(self._partial) > protocol.MAX_PARTIAL_LINE_BYTES:
                logger.warning(
                    f"Discarding {len(self._partial)} unterminated bytes from {self.port_name}"
                )
                self._partial = b""
                return None
            logger.debug(f"Read timeout with partial line: {self._partial!r}")
            return None

        line_bytes, self._partial = self._partial + line_bytes, b""

        line = line_bytes.decode(protocol.LINE_ENCODING, errors="replace").strip()
        logger.debug(f"Received line: {line!r}")
        return line

    def flush_input(self) -> None:
        """Discard all pending input from the scale.

        Raises:
            SerialIOError: If port is closed or the flush fails
        """
        if not self._port.is_open:
            raise SerialIOError(f"Serial port {self.port_name} is not open")

        try:
            self._port.reset_input_buffer()
            self._partial = b""
            logger.debug("Flushed input buffer")
        except (serial.SerialException, OSError) as e:
            raise SerialIOError(f"Failed to flush input on {self.port_name}: {e}") from e
