"""Acquisition supervisor: turns a scale id into one validated weight reading."""

import logging
import queue
import threading
import time
from types import MappingProxyType
from typing import Callable, Mapping, Optional

from scale_lib import consistency, protocol
from scale_lib.errors import SerialIOError, UnknownScaleId
from scale_lib.models import AcquisitionResult, AcquisitionSettings, AcquisitionState
from scale_lib.sample_buffer import SampleBuffer
from scale_lib.session import PortSession, TransportFactory

logger = logging.getLogger(__name__)


class AcquisitionSupervisor:
    """Orchestrates acquisition attempts for a set of mapped scales.

    Each attempt gets its own PortSession and SampleBuffer. Attempts on one
    supervisor are serialized, so at most one port is open at a time.

    State flow per attempt:
        IDLE -> OPENING -> COLLECTING -> EVALUATING [-> EXTENDING] -> CLOSED
    """

    def __init__(
        self,
        settings: AcquisitionSettings,
        port_mapping: Mapping[str, str],
        transport_factory: Optional[TransportFactory] = None,
        settle_delay_s: float = protocol.SETTLE_DELAY_S,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        """Initialize supervisor.

        Args:
            settings: Acquisition settings (read-only)
            port_mapping: Scale id -> port name. Copied and frozen.
            transport_factory: Optional Callable(port, baud) -> Transport for
                              sessions. Defaults to Transport.open.
            settle_delay_s: Wait after opening before the deadline starts.
            sleep: Sleep function used for the settle delay.
        """
        self._settings = settings
        self._port_mapping: Mapping[str, str] = MappingProxyType(dict(port_mapping))
        self._transport_factory = transport_factory
        self._settle_delay_s = settle_delay_s
        self._sleep = sleep

        # Serializes attempts; guards _session and _state
        self._attempt_lock = threading.Lock()
        self._session: Optional[PortSession] = None
        self._state = AcquisitionState.IDLE

    @property
    def settings(self) -> AcquisitionSettings:
        return self._settings

    @property
    def port_mapping(self) -> Mapping[str, str]:
        """Read-only scale id -> port name mapping."""
        return self._port_mapping

    @property
    def state(self) -> AcquisitionState:
        """State of the current (or last) attempt."""
        return self._state

    def resolve_port(self, scale_id: str) -> str:
        """Look up the port for a scale id.

        Raises:
            UnknownScaleId: If scale_id is not mapped
        """
        try:
            return self._port_mapping[scale_id]
        except KeyError:
            raise UnknownScaleId(scale_id) from None

    # ========================================================================
    # Acquisition
    # ========================================================================

    def acquire(self, scale_id: str, baud_rate: Optional[int] = None) -> AcquisitionResult:
        """Acquire one consistent reading from a scale.

        Opens the scale's port, waits for sample_size samples within the
        timeout, evaluates them, and extends the target once by
        EXTENSION_INCREMENT samples (same deadline) if the full buffer has
        no clear peak. The port is closed on every path.

        Args:
            scale_id: Identifier from the port mapping
            baud_rate: Baud rate override. Default: settings.default_baud_rate

        Returns:
            AcquisitionResult (timeouts and I/O failures are failure results)

        Raises:
            UnknownScaleId: If scale_id is not mapped (no port is opened)
        """
        port_name = self.resolve_port(scale_id)
        baud = baud_rate or self._settings.default_baud_rate

        with self._attempt_lock:
            self._close_session()

            self._state = AcquisitionState.OPENING
            session = PortSession(
                port_name, baud, self._settings.pattern, self._transport_factory
            )
            self._session = session
            buffer = SampleBuffer()

            try:
                session.open()
                self._sleep(self._settle_delay_s)
                return self._run_attempt(session, buffer)
            except SerialIOError as e:
                logger.error(f"Error handling serial port {port_name}: {e}")
                return AcquisitionResult.failed(f"Error handling serial port {port_name}: {e}")
            finally:
                self._close_session()
                self._state = AcquisitionState.CLOSED

    def close(self) -> None:
        """Close any session left open (e.g., on shutdown)."""
        with self._attempt_lock:
            self._close_session()

    def _run_attempt(self, session: PortSession, buffer: SampleBuffer) -> AcquisitionResult:
        settings = self._settings

        self._state = AcquisitionState.COLLECTING
        deadline = time.monotonic() + settings.timeout_s
        reached = self._collect(session, buffer, settings.sample_size, deadline)
        logger.info(f"Final samples collected: {buffer.values()}")

        if not reached:
            logger.warning(protocol.MSG_TIMEOUT)
            return AcquisitionResult.failed(protocol.MSG_TIMEOUT)

        self._state = AcquisitionState.EVALUATING
        result = self._evaluate(buffer)
        if result is not None:
            return result

        self._state = AcquisitionState.EXTENDING
        extended_size = settings.sample_size + protocol.EXTENSION_INCREMENT
        logger.warning(
            f"Collected samples are not consistent. Extending sample size to {extended_size}."
        )
        reached = self._collect(session, buffer, extended_size, deadline)
        logger.info(f"Extended samples collected: {buffer.values()}")

        if reached:
            self._state = AcquisitionState.EVALUATING
            result = self._evaluate(buffer)
            if result is not None:
                return result

        # One extension only; anything short of a peak by now is a timeout
        logger.warning(protocol.MSG_TIMEOUT)
        return AcquisitionResult.failed(protocol.MSG_TIMEOUT)

    def _collect(
        self, session: PortSession, buffer: SampleBuffer, target: int, deadline: float
    ) -> bool:
        """Move queued samples into the buffer until target count or deadline.

        Returns:
            True if the buffer reached target before the deadline

        Raises:
            SerialIOError: If the ingestion thread hit a transport failure
        """
        while len(buffer) < target:
            session.raise_if_failed()

            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return False

            try:
                sample = session.samples.get(timeout=min(protocol.POLL_INTERVAL_S, remaining))
            except queue.Empty:
                continue
            buffer.append(sample)

        return True

    def _evaluate(self, buffer: SampleBuffer) -> Optional[AcquisitionResult]:
        """Render the peak and warning for the buffer, or None if no peak."""
        settings = self._settings
        samples = buffer.snapshot()

        peak = consistency.peak_sample(samples, settings.error_tolerance, settings.sample_size)
        if peak is None:
            return None

        warning = consistency.distribution_warning(
            samples, peak, settings.error_tolerance, settings.sample_size
        )
        if warning is not None:
            logger.warning(f"{warning.message}: {list(warning.sample)}")

        logger.info(f"Peak sample: {peak.value} {peak.unit}")
        return AcquisitionResult.ok(peak, warning)

    def _close_session(self) -> None:
        if self._session is not None:
            session, self._session = self._session, None
            session.close()
