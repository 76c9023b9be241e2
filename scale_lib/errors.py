"""Custom exceptions for the scale acquisition library."""


class ScaleError(Exception):
    """Base exception for all scale library errors."""

    pass


class UnknownScaleId(ScaleError):
    """Raised when a scale identifier is not present in the port mapping."""

    def __init__(self, scale_id: str) -> None:
        super().__init__(f"Invalid scale id: {scale_id!r}")
        self.scale_id = scale_id


class InvalidDataFormat(ScaleError):
    """Raised when a data line does not match the configured pattern."""

    pass


class SerialIOError(ScaleError):
    """Raised when serial communication fails (open, read, port vanished)."""

    pass


class ConfigError(ScaleError):
    """Raised when startup configuration is missing or malformed."""

    pass
