"""FastAPI REST interface for scale weight acquisition.

Single-process service with one AcquisitionSupervisor shared by all requests.
Attempts are serialized inside the supervisor, and each runs in a worker
thread so the event loop stays responsive.

Error mapping:
- UnknownScaleId → 404
- Other ScaleError → 400
- Failed acquisition (timeout, I/O) → 400 with message
"""

import asyncio
import logging
import os
import threading
from datetime import datetime, timezone
from typing import Any, Dict, Optional

from fastapi import FastAPI, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from scale_lib import AcquisitionSupervisor, load_config
from scale_lib.errors import ConfigError, ScaleError, UnknownScaleId
from scale_lib.models import AcquisitionResult

# =============================================================================
# Environment Configuration
# =============================================================================

CONFIG_PATH = os.getenv("SCALE_API_CONFIG", "config.txt")

API_VERSION = "0.1.0"

# Configure logging
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
logging.basicConfig(
    level=getattr(logging, LOG_LEVEL.upper(), logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger(__name__)

# =============================================================================
# Global Singletons
# =============================================================================

_service: Optional[AcquisitionSupervisor] = None
_service_lock = threading.Lock()

# =============================================================================
# FastAPI App
# =============================================================================

app = FastAPI(
    title="Scale API",
    description="REST interface for consistent weight readings from serial scales",
    version=API_VERSION
)

# =============================================================================
# Response Models
# =============================================================================

class WeightData(BaseModel):
    """Weight payload of a successful reading."""
    weight: float
    unit: str


class ScaleReadingResponse(BaseModel):
    """Response for GET /scale/{scale_id}."""
    success: bool
    scaleId: str
    data: WeightData
    warning: Optional[Dict[str, Any]]


class ScaleHealthResponse(BaseModel):
    """Response for GET /scale/{scale_id}/health."""
    success: bool
    uuid: str
    status: str
    value: float
    unit: str
    warning: Optional[Dict[str, Any]]
    timestamp: datetime


class FailureResponse(BaseModel):
    """Body of a 400 response for a failed acquisition."""
    success: bool
    message: str


class HealthResponse(BaseModel):
    """Response for GET /."""
    success: bool
    status: str
    timestamp: datetime


# =============================================================================
# Exception Handlers
# =============================================================================

@app.exception_handler(UnknownScaleId)
async def unknown_scale_handler(request: Request, exc: UnknownScaleId):
    """Map UnknownScaleId to 404 Not Found."""
    logger.error(f"UnknownScaleId: {exc}")
    return JSONResponse(status_code=404, content={"success": False, "error": "Invalid scale id."})


@app.exception_handler(ScaleError)
async def scale_error_handler(request: Request, exc: ScaleError):
    """Map any other ScaleError to 400 Bad Request."""
    logger.error(f"{type(exc).__name__}: {exc}")
    return JSONResponse(status_code=400, content={"success": False, "error": "Bad request."})


# =============================================================================
# Helpers
# =============================================================================

def _get_service() -> AcquisitionSupervisor:
    """Return the service singleton, creating it from the config file if needed."""
    global _service

    if _service is None:
        with _service_lock:
            if _service is None:
                config = load_config(CONFIG_PATH)
                _service = AcquisitionSupervisor(config.settings, config.port_mapping)
    return _service


async def _acquire(scale_id: str, baud_rate: Optional[int]) -> AcquisitionResult:
    service = _get_service()
    return await asyncio.to_thread(service.acquire, scale_id, baud_rate)


def _failure(result: AcquisitionResult) -> JSONResponse:
    return JSONResponse(
        status_code=400,
        content=FailureResponse(success=False, message=result.message).model_dump()
    )


# =============================================================================
# Endpoints
# =============================================================================

@app.get("/", response_model=HealthResponse)
async def get_health_status():
    """Service liveness check (does not touch any scale)."""
    return HealthResponse(success=True, status="Healthy", timestamp=datetime.now(timezone.utc))


@app.get(
    "/scale/{scale_id}",
    response_model=ScaleReadingResponse,
    responses={400: {"model": FailureResponse}, 404: {"description": "Unknown scale id"}}
)
async def get_scale_data(
    scale_id: str,
    baud_rate: Optional[int] = Query(None, alias="baudRate", gt=0, description="Baud rate override")
):
    """Acquire one consistent weight reading from a scale.

    Args:
        scale_id: Scale identifier from PortMapping
        baud_rate: Optional baud rate (defaults to DefaultBaudRate)

    Returns:
        {"success": true, "scaleId": ..., "data": {"weight": ..., "unit": ...}, "warning": ...}

    Raises:
        404: If scale_id is unknown (UnknownScaleId)
        400: If acquisition times out or fails
    """
    logger.info(f"Reading scale {scale_id} (baudRate={baud_rate})")
    result = await _acquire(scale_id, baud_rate)

    if not result.success:
        return _failure(result)

    return ScaleReadingResponse(
        success=True,
        scaleId=scale_id,
        data=WeightData(weight=result.value, unit=result.unit),
        warning=result.warning_dict()
    )


@app.get(
    "/scale/{scale_id}/health",
    response_model=ScaleHealthResponse,
    responses={400: {"model": FailureResponse}, 404: {"description": "Unknown scale id"}}
)
async def get_scale_health(scale_id: str):
    """Check a scale by taking a reading at the default baud rate."""
    result = await _acquire(scale_id, None)

    if not result.success:
        return _failure(result)

    return ScaleHealthResponse(
        success=True,
        uuid=scale_id,
        status="Healthy",
        value=result.value,
        unit=result.unit,
        warning=result.warning_dict(),
        timestamp=datetime.now(timezone.utc)
    )


# =============================================================================
# Startup/Shutdown Events
# =============================================================================

@app.on_event("startup")
async def startup_event():
    """Load configuration and log it. Refuses to start on a bad config."""
    try:
        service = _get_service()
    except ConfigError as e:
        logger.error(f"Application terminated due to configuration error: {e}")
        raise

    settings = service.settings
    logger.info("=" * 60)
    logger.info("Scale API started")
    logger.info(f"Version: {API_VERSION}")
    logger.info(f"Config: {CONFIG_PATH}")
    logger.info(f"Scales: {dict(service.port_mapping)}")
    logger.info(f"Sample Size: {settings.sample_size}")
    logger.info(f"Timeout: {settings.timeout_ms} ms")
    logger.info(f"Default Baud Rate: {settings.default_baud_rate}")
    logger.info(f"Error Tolerance: {settings.error_tolerance}")
    logger.info(f"Data Pattern: {settings.data_pattern}")
    logger.info(f"Log Level: {LOG_LEVEL}")
    logger.info("=" * 60)


@app.on_event("shutdown")
async def shutdown_event():
    """Close any open scale port."""
    logger.info("Shutting down Scale API...")
    if _service is not None:
        _service.close()
    logger.info("Shutdown complete")


def main() -> None:
    """Run the API with uvicorn on the host/port from HttpUrl."""
    import uvicorn

    try:
        config = load_config(CONFIG_PATH)
    except ConfigError as e:
        logger.error(f"Application terminated due to configuration error: {e}")
        raise SystemExit(1)

    uvicorn.run(app, host=config.http_host, port=config.http_port, log_level=LOG_LEVEL.lower())


if __name__ == "__main__":
    main()
