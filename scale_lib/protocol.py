"""Fixed framing and timing constants for the scale line protocol.

Scales stream one reading per line, e.g. ``"12.0 kg\\r\\n"``. The line format
is configurable (see ``StandardDataPattern``); the values below are not.
"""

from typing import Final

# ============================================================================
# Serial I/O (port is always 8N1, no flow control)
# ============================================================================

# Bound on any single read/write before it is abandoned
READ_TIMEOUT_S: Final[float] = 0.5
WRITE_TIMEOUT_S: Final[float] = 0.5

LINE_ENCODING: Final[str] = "ascii"

# Unterminated input kept across reads; longer heads are discarded
MAX_PARTIAL_LINE_BYTES: Final[int] = 256

# ============================================================================
# Acquisition Timing
# ============================================================================

# Let the device output stream stabilize after opening the port
SETTLE_DELAY_S: Final[float] = 0.5

# Supervisor poll tick while waiting for samples
POLL_INTERVAL_S: Final[float] = 0.05

# Extra samples requested when a full buffer has no clear peak
EXTENSION_INCREMENT: Final[int] = 5

# Digits kept after rounding a parsed value
VALUE_DECIMALS: Final[int] = 1

# ============================================================================
# Defaults
# ============================================================================

DEFAULT_DATA_PATTERN: Final[str] = r"^(\d+\.?\d*)\s*(\w+)$"
DEFAULT_BAUD_RATE: Final[int] = 9600

# ============================================================================
# Result Messages
# ============================================================================

MSG_SUCCESS: Final[str] = "Success"
MSG_TIMEOUT: Final[str] = "Data collection timed out"
MSG_DISTRIBUTION_WARNING: Final[str] = "Inconsistent data distribution"
