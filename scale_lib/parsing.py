"""Pure functions for parsing scale data lines."""

import logging
import math
import re

from scale_lib import protocol
from scale_lib.errors import InvalidDataFormat
from scale_lib.models import Sample

logger = logging.getLogger(__name__)


def parse_sample(line: str, pattern: "re.Pattern[str]") -> Sample:
    """Parse one scale output line into a Sample.

    The pattern is searched in the trimmed line. Group 1 is the numeric
    weight, group 2 the unit.
    Example: "12.04 kg" with the default pattern -> Sample(12.0, "kg")

    Args:
        line: Raw line from the scale (line terminator may still be present)
        pattern: Compiled data pattern with two capture groups

    Returns:
        Sample with value rounded to one decimal place and unit verbatim

    Raises:
        InvalidDataFormat: If the line doesn't match or the value isn't numeric
    """
    line = line.strip()
    if not line:
        raise InvalidDataFormat("Empty data line")

    match = pattern.search(line)
    if not match:
        raise InvalidDataFormat(f"Invalid data format: {line!r}")

    raw_value = match.group(1)
    unit = match.group(2)

    try:
        value = float(raw_value)
    except (TypeError, ValueError) as e:
        raise InvalidDataFormat(f"Failed to parse value {raw_value!r} in line: {line!r}") from e

    if not math.isfinite(value):
        raise InvalidDataFormat(f"Non-finite value {raw_value!r} in line: {line!r}")

    return Sample(value=round(value, protocol.VALUE_DECIMALS), unit=unit or "")
