"""Startup configuration reader for the scale service.

Configuration is a plain ``key=value`` text file, for example::

    PortMapping=a1b2:/dev/ttyUSB0,c3d4:COM3
    SampleSize=5
    TimeoutMilliseconds=10000
    DefaultBaudRate=9600
    ErrorTolerance=0.2
    HttpUrl=http://0.0.0.0:5000
    StandardDataPattern=^(\\d+\\.?\\d*)\\s*(\\w+)$
"""

import logging
from dataclasses import dataclass
from pathlib import Path
from types import MappingProxyType
from typing import Dict, Mapping, Union
from urllib.parse import urlsplit

from scale_lib.errors import ConfigError
from scale_lib.models import AcquisitionSettings

logger = logging.getLogger(__name__)

REQUIRED_KEYS = (
    "PortMapping",
    "SampleSize",
    "TimeoutMilliseconds",
    "DefaultBaudRate",
    "ErrorTolerance",
    "HttpUrl",
    "StandardDataPattern",
)


@dataclass(frozen=True)
class ServiceConfig:
    """Everything the service needs at startup."""

    settings: AcquisitionSettings
    port_mapping: Mapping[str, str]
    http_url: str

    @property
    def http_host(self) -> str:
        return urlsplit(self.http_url).hostname or "0.0.0.0"

    @property
    def http_port(self) -> int:
        parts = urlsplit(self.http_url)
        if parts.port is not None:
            return parts.port
        return 443 if parts.scheme == "https" else 80


def read_config(path: Union[str, Path]) -> Dict[str, str]:
    """Read raw key/value pairs from a config file.

    Each line is split on its first '='. Keys and values are trimmed; lines
    without '=' are ignored.

    Raises:
        ConfigError: If the file cannot be read or a required key is missing
    """
    try:
        text = Path(path).read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read configuration file {path}: {e}") from e

    config: Dict[str, str] = {}
    for line in text.splitlines():
        key, sep, value = line.partition("=")
        if sep:
            config[key.strip()] = value.strip()

    for key in REQUIRED_KEYS:
        if key not in config:
            logger.error(f"Missing required configuration key: {key}")
            raise ConfigError(f"Missing required configuration key: {key}")

    return config


def parse_port_mapping(mapping_string: str) -> Mapping[str, str]:
    """Parse 'id1:PORT1,id2:PORT2' into a read-only id -> port mapping.

    Each entry is split on its first ':' so device paths are kept whole.

    Raises:
        ConfigError: If an entry has no ':' or an empty id/port
    """
    mapping: Dict[str, str] = {}
    for entry in mapping_string.split(","):
        entry = entry.strip()
        if not entry:
            continue
        scale_id, sep, port = entry.partition(":")
        scale_id, port = scale_id.strip(), port.strip()
        if not sep or not scale_id or not port:
            raise ConfigError(f"Invalid PortMapping entry: {entry!r}")
        mapping[scale_id] = port

    if not mapping:
        raise ConfigError("PortMapping is empty")
    return MappingProxyType(mapping)


def _number(config: Dict[str, str], key: str, kind: type):
    try:
        return kind(config[key])
    except ValueError as e:
        raise ConfigError(f"Invalid value for {key}: {config[key]!r}") from e


def load_config(path: Union[str, Path]) -> ServiceConfig:
    """Read and validate the service configuration file.

    Raises:
        ConfigError: On any missing or invalid setting
    """
    config = read_config(path)

    try:
        settings = AcquisitionSettings(
            sample_size=_number(config, "SampleSize", int),
            timeout_ms=_number(config, "TimeoutMilliseconds", int),
            default_baud_rate=_number(config, "DefaultBaudRate", int),
            error_tolerance=_number(config, "ErrorTolerance", float),
            data_pattern=config["StandardDataPattern"],
        )
    except ValueError as e:
        raise ConfigError(f"Invalid acquisition settings: {e}") from e

    return ServiceConfig(
        settings=settings,
        port_mapping=parse_port_mapping(config["PortMapping"]),
        http_url=config["HttpUrl"],
    )
