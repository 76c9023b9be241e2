"""Tests for the port session and its ingestion thread."""

import queue
import re
import time
from typing import List

import pytest

from fakes.fake_serial import FakeScaleSerial
from scale_lib import protocol
from scale_lib.errors import SerialIOError
from scale_lib.models import Sample
from scale_lib.session import PortSession
from scale_lib.transport import Transport

PATTERN = re.compile(protocol.DEFAULT_DATA_PATTERN)


def make_session(fake: FakeScaleSerial) -> PortSession:
    return PortSession(
        "/dev/fake", 9600, PATTERN, transport_factory=lambda port, baud: Transport(fake, port)
    )


def drain(session: PortSession, count: int, timeout: float = 2.0) -> List[Sample]:
    samples = []
    deadline = time.monotonic() + timeout
    while len(samples) < count and time.monotonic() < deadline:
        try:
            samples.append(session.samples.get(timeout=0.05))
        except queue.Empty:
            continue
    return samples


def test_samples_arrive_in_order() -> None:
    """Test accepted samples are queued in the order lines were received."""
    fake = FakeScaleSerial(lines=["1.0 kg", "2.0 kg", "3.0 kg"])
    session = make_session(fake)

    session.open()
    samples = drain(session, 3)
    session.close()

    assert [s.value for s in samples] == [1.0, 2.0, 3.0]


def test_malformed_lines_are_dropped() -> None:
    """Test garbage lines are skipped without stopping ingestion."""
    fake = FakeScaleSerial(lines=["1.0 kg", "garbage", "", "ST,US", "2.0 kg"])
    session = make_session(fake)

    session.open()
    samples = drain(session, 2)
    session.close()

    assert [s.value for s in samples] == [1.0, 2.0]
    assert session.error is None


def test_handle_line_returns_sample_or_none() -> None:
    """Test the ingestion callback directly."""
    session = PortSession("/dev/fake", 9600, PATTERN)

    assert session.handle_line("4.25 kg") == Sample(4.2, "kg")
    assert session.handle_line("bad line") is None
    assert session.samples.qsize() == 1


def test_close_is_idempotent() -> None:
    """Test close() on unopened, open and closed sessions."""
    fake = FakeScaleSerial(lines=["1.0 kg"])
    session = make_session(fake)

    session.close()  # never opened
    session.open()
    assert session.is_open
    session.close()
    session.close()

    assert not session.is_open
    assert fake.close_count == 1


def test_context_manager_closes_port() -> None:
    """Test the session closes its port when used as a context manager."""
    fake = FakeScaleSerial(lines=["1.0 kg"])

    with make_session(fake) as session:
        assert session.is_open

    assert not fake.is_open


def test_open_twice_fails() -> None:
    """Test a session cannot be opened twice."""
    fake = FakeScaleSerial()
    session = make_session(fake)
    session.open()

    with pytest.raises(SerialIOError):
        session.open()

    session.close()


def test_transport_failure_is_recorded() -> None:
    """Test a vanished port stops ingestion and is re-raised on request."""
    fake = FakeScaleSerial(lines=["1.0 kg", "2.0 kg", "3.0 kg"], repeat=True, fail_after=2)
    session = make_session(fake)

    session.open()
    samples = drain(session, 2)
    deadline = time.monotonic() + 2.0
    while session.error is None and time.monotonic() < deadline:
        time.sleep(0.01)

    assert len(samples) == 2
    assert isinstance(session.error, SerialIOError)
    with pytest.raises(SerialIOError, match="Device disconnected"):
        session.raise_if_failed()

    session.close()
    assert not fake.is_open


def test_open_failure_propagates() -> None:
    """Test an open failure from the transport factory is raised."""
    def fail(port: str, baud: int) -> Transport:
        raise SerialIOError(f"Failed to open {port} at {baud} baud: busy")

    session = PortSession("COM7", 4800, PATTERN, transport_factory=fail)

    with pytest.raises(SerialIOError, match="COM7"):
        session.open()

    session.close()
