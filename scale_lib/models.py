"""Data models for the scale acquisition library."""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from scale_lib import protocol


class AcquisitionState(Enum):
    """Acquisition supervisor states for one attempt."""

    IDLE = "idle"
    OPENING = "opening"
    COLLECTING = "collecting"
    EVALUATING = "evaluating"
    EXTENDING = "extending"
    CLOSED = "closed"


@dataclass(frozen=True)
class Sample:
    """A single parsed scale reading.

    Attributes:
        value: Weight rounded to one decimal place.
        unit: Unit text exactly as sent by the scale (e.g. "kg").
    """

    value: float
    unit: str


@dataclass(frozen=True)
class AcquisitionSettings:
    """Acquisition parameters shared read-only across attempts.

    Attributes:
        sample_size: Samples required before evaluating, and the minimum
            tolerance-based agreement count for a valid distribution.
        timeout_ms: Overall collection deadline per attempt in milliseconds.
        default_baud_rate: Baud rate used when the caller does not give one.
        error_tolerance: Max absolute difference for a sample to agree with a peak.
        data_pattern: Regex with two capture groups (numeric value, unit).
    """

    sample_size: int
    timeout_ms: int
    default_baud_rate: int = protocol.DEFAULT_BAUD_RATE
    error_tolerance: float = 0.0
    data_pattern: str = protocol.DEFAULT_DATA_PATTERN
    pattern: "re.Pattern[str]" = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        """Validate values and compile the data pattern once."""
        if self.sample_size <= 0:
            raise ValueError(f"sample_size must be positive, got {self.sample_size}")
        if self.timeout_ms <= 0:
            raise ValueError(f"timeout_ms must be positive, got {self.timeout_ms}")
        if self.default_baud_rate <= 0:
            raise ValueError(
                f"default_baud_rate must be positive, got {self.default_baud_rate}"
            )
        if self.error_tolerance < 0:
            raise ValueError(
                f"error_tolerance must be non-negative, got {self.error_tolerance}"
            )

        try:
            compiled = re.compile(self.data_pattern)
        except re.error as e:
            raise ValueError(f"data_pattern is not a valid regex: {e}") from e

        if compiled.groups < 2:
            raise ValueError(
                f"data_pattern needs two capture groups (value, unit), "
                f"got {compiled.groups}: {self.data_pattern!r}"
            )

        object.__setattr__(self, "pattern", compiled)

    @property
    def timeout_s(self) -> float:
        """Collection deadline in seconds."""
        return self.timeout_ms / 1000.0


@dataclass(frozen=True)
class DistributionWarning:
    """Data-quality note attached to a successful but loosely agreeing reading."""

    message: str
    sample: Tuple[float, ...]

    def to_dict(self) -> Dict[str, Any]:
        return {"message": self.message, "sample": list(self.sample)}


@dataclass(frozen=True)
class AcquisitionResult:
    """Outcome of one acquisition attempt.

    Attributes:
        success: True if a peak value was established.
        message: "Success" or a human-readable failure reason.
        value: Peak weight (None on failure).
        unit: Peak unit (None on failure).
        warning: Optional distribution warning on success.
    """

    success: bool
    message: str
    value: Optional[float] = None
    unit: Optional[str] = None
    warning: Optional[DistributionWarning] = None

    @classmethod
    def ok(
        cls, sample: Sample, warning: Optional[DistributionWarning] = None
    ) -> "AcquisitionResult":
        return cls(True, protocol.MSG_SUCCESS, sample.value, sample.unit, warning)

    @classmethod
    def failed(cls, message: str) -> "AcquisitionResult":
        return cls(False, message)

    def warning_dict(self) -> Optional[Dict[str, Any]]:
        """Warning as a JSON-ready dict, or None."""
        return self.warning.to_dict() if self.warning else None
