"""Tests for FastAPI REST endpoints using FakeScaleSerial (no hardware).

Tests verify:
- Service health check
- Successful reading and health payloads (including warnings)
- Failure mapping (timeout → 400 with message)
- Error mapping (UnknownScaleId → 404, other ScaleError → 400)
- baudRate query parameter pass-through
- Lazy service creation under concurrent first requests
"""

import threading
import time
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

# Import API app and reset singletons for testing
from api import main as api_module
from fakes.fake_serial import FakeScaleSerial
from scale_lib import AcquisitionSupervisor
from scale_lib.models import AcquisitionSettings
from scale_lib.transport import Transport

PORT_MAPPING = {"scale-1": "/dev/fake0"}


@pytest.fixture(autouse=True)
def reset_singletons():
    """Reset the service singleton before and after each test."""
    api_module._service = None
    yield
    if api_module._service is not None:
        api_module._service.close()
    api_module._service = None


@pytest.fixture
def client():
    """FastAPI test client."""
    return TestClient(api_module.app)


@pytest.fixture
def fake_serial():
    """FakeScaleSerial streaming a steady 12.0 kg."""
    return FakeScaleSerial(lines=["12.0 kg"], repeat=True)


@pytest.fixture
def opened_ports():
    """Records (port, baud) for every Transport.open call."""
    return []


@pytest.fixture
def monkeypatch_transport(monkeypatch, fake_serial, opened_ports):
    """Monkeypatch Transport.open to use FakeScaleSerial."""
    def mock_open(port: str, baud: int):
        """Return Transport wrapping FakeScaleSerial."""
        opened_ports.append((port, baud))
        return Transport(fake_serial, port)

    monkeypatch.setattr(Transport, "open", mock_open)


@pytest.fixture
def service(monkeypatch_transport):
    """Install a fast-settling service singleton."""
    settings = AcquisitionSettings(
        sample_size=3,
        timeout_ms=500,
        default_baud_rate=9600,
        error_tolerance=0.2,
    )
    api_module._service = AcquisitionSupervisor(settings, PORT_MAPPING, settle_delay_s=0.0)
    return api_module._service


# =============================================================================
# Health Check
# =============================================================================

def test_root_health_check(client):
    """Test GET / reports the service healthy without touching a scale."""
    response = client.get("/")
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["status"] == "Healthy"
    assert "timestamp" in data


# =============================================================================
# Scale Readings
# =============================================================================

def test_get_scale_data_success(client, service, opened_ports):
    """Test GET /scale/{id} returns the weight payload."""
    response = client.get("/scale/scale-1")
    assert response.status_code == 200
    data = response.json()
    assert data == {
        "success": True,
        "scaleId": "scale-1",
        "data": {"weight": 12.0, "unit": "kg"},
        "warning": None,
    }
    assert opened_ports == [("/dev/fake0", 9600)]


def test_get_scale_data_baud_rate_override(client, service, opened_ports):
    """Test the baudRate query parameter is passed to the port."""
    response = client.get("/scale/scale-1?baudRate=19200")
    assert response.status_code == 200
    assert opened_ports == [("/dev/fake0", 19200)]


def test_get_scale_data_invalid_baud_rate(client, service):
    """Test a non-positive baudRate is rejected by validation."""
    response = client.get("/scale/scale-1?baudRate=0")
    assert response.status_code == 422


def test_get_scale_data_with_warning(client, service, fake_serial):
    """Test a distribution warning is copied through unchanged."""
    fake_serial.lines = ["5.0 kg", "5.0 kg", "9.0 kg"]
    fake_serial.repeat = False

    response = client.get("/scale/scale-1")
    assert response.status_code == 200
    data = response.json()
    assert data["data"] == {"weight": 5.0, "unit": "kg"}
    assert data["warning"] == {
        "message": "Inconsistent data distribution",
        "sample": [5.0, 5.0, 9.0],
    }


def test_get_scale_data_timeout(client, service, fake_serial):
    """Test a scale that stops sending yields 400 with the timeout message."""
    fake_serial.lines = ["5.0 kg"]
    fake_serial.repeat = False

    response = client.get("/scale/scale-1")
    assert response.status_code == 400
    assert response.json() == {"success": False, "message": "Data collection timed out"}
    assert not fake_serial.is_open


def test_get_scale_data_unknown_id(client, service, opened_ports):
    """Test an unknown scale id maps to 404 without opening a port."""
    response = client.get("/scale/xyz")
    assert response.status_code == 404
    assert response.json() == {"success": False, "error": "Invalid scale id."}
    assert opened_ports == []


def test_get_scale_health_success(client, service):
    """Test GET /scale/{id}/health returns the health payload."""
    response = client.get("/scale/scale-1/health")
    assert response.status_code == 200
    data = response.json()
    assert data["success"] is True
    assert data["uuid"] == "scale-1"
    assert data["status"] == "Healthy"
    assert data["value"] == 12.0
    assert data["unit"] == "kg"
    assert data["warning"] is None
    assert "timestamp" in data


def test_get_scale_health_unknown_id(client, service):
    """Test health of an unknown scale maps to 404."""
    response = client.get("/scale/nope/health")
    assert response.status_code == 404


# =============================================================================
# Configuration Errors
# =============================================================================

def test_missing_config_is_bad_request(client, monkeypatch, tmp_path: Path):
    """Test a request without a loadable config maps to 400."""
    monkeypatch.setattr(api_module, "CONFIG_PATH", str(tmp_path / "missing.txt"))

    response = client.get("/scale/scale-1")
    assert response.status_code == 400
    assert response.json() == {"success": False, "error": "Bad request."}


def test_service_built_from_config_file(client, monkeypatch, monkeypatch_transport, tmp_path: Path):
    """Test the service singleton is created lazily from the config file."""
    config = tmp_path / "config.txt"
    config.write_text(
        "PortMapping=scale-9:/dev/fake9\n"
        "SampleSize=2\n"
        "TimeoutMilliseconds=2000\n"
        "DefaultBaudRate=4800\n"
        "ErrorTolerance=0.1\n"
        "HttpUrl=http://127.0.0.1:5000\n"
        "StandardDataPattern=^(\\d+\\.?\\d*)\\s*(\\w+)$\n"
    )
    monkeypatch.setattr(api_module, "CONFIG_PATH", str(config))

    response = client.get("/scale/scale-9")
    assert response.status_code == 200
    assert response.json()["data"] == {"weight": 12.0, "unit": "kg"}
    assert api_module._service.port_mapping == {"scale-9": "/dev/fake9"}


def test_concurrent_first_requests_share_one_service(monkeypatch, tmp_path: Path):
    """Test racing first calls build exactly one service instance."""
    config = tmp_path / "config.txt"
    config.write_text(
        "PortMapping=scale-1:/dev/fake0\n"
        "SampleSize=2\n"
        "TimeoutMilliseconds=2000\n"
        "DefaultBaudRate=9600\n"
        "ErrorTolerance=0.1\n"
        "HttpUrl=http://127.0.0.1:5000\n"
        "StandardDataPattern=^(\\d+\\.?\\d*)\\s*(\\w+)$\n"
    )
    monkeypatch.setattr(api_module, "CONFIG_PATH", str(config))

    built = []
    real_supervisor = api_module.AcquisitionSupervisor

    def slow_supervisor(*args, **kwargs):
        time.sleep(0.05)
        supervisor = real_supervisor(*args, **kwargs)
        built.append(supervisor)
        return supervisor

    monkeypatch.setattr(api_module, "AcquisitionSupervisor", slow_supervisor)

    barrier = threading.Barrier(8)
    services = []

    def first_request():
        barrier.wait()
        services.append(api_module._get_service())

    threads = [threading.Thread(target=first_request) for _ in range(8)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=5.0)

    assert len(built) == 1
    assert len(services) == 8
    assert all(s is built[0] for s in services)
