"""
scale_lib - Consistent weight acquisition from line-oriented serial scales.

Reads a burst of samples from a scale's serial port and reports the dominant
value only when enough samples agree within tolerance.
"""

from scale_lib.config import ServiceConfig, load_config
from scale_lib.errors import (
    ConfigError,
    InvalidDataFormat,
    ScaleError,
    SerialIOError,
    UnknownScaleId,
)
from scale_lib.models import (
    AcquisitionResult,
    AcquisitionSettings,
    AcquisitionState,
    DistributionWarning,
    Sample,
)
from scale_lib.supervisor import AcquisitionSupervisor

__version__ = "0.1.0"

__all__ = [
    "AcquisitionSupervisor",
    "AcquisitionSettings",
    "AcquisitionResult",
    "AcquisitionState",
    "DistributionWarning",
    "Sample",
    "ServiceConfig",
    "load_config",
    "ScaleError",
    "UnknownScaleId",
    "InvalidDataFormat",
    "SerialIOError",
    "ConfigError",
]
