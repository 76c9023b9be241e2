"""Thread-safe append-only buffer for the samples of one acquisition attempt."""

import logging
import threading
from typing import List

from scale_lib.models import Sample

logger = logging.getLogger(__name__)


class SampleBuffer:
    """Ordered, append-only collection of accepted samples.

    One buffer belongs to exactly one attempt. Samples are never removed or
    reordered; readers get copies via snapshot().
    """

    def __init__(self) -> None:
        self._samples: List[Sample] = []
        self._lock = threading.Lock()

    def append(self, sample: Sample) -> None:
        """Append a sample to the end of the buffer (thread-safe).

        Args:
            sample: Sample instance to append
        """
        with self._lock:
            self._samples.append(sample)
            logger.debug(f"Appended {sample.value} {sample.unit}, buffer size: {len(self._samples)}")

    def snapshot(self) -> List[Sample]:
        """Get a copy of all samples in arrival order (thread-safe)."""
        with self._lock:
            return list(self._samples)

    def values(self) -> List[float]:
        """Get the raw sample values in arrival order."""
        with self._lock:
            return [s.value for s in self._samples]

    def __len__(self) -> int:
        with self._lock:
            return len(self._samples)
