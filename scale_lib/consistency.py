"""Consistency evaluation for buffered scale samples.

Decides whether a dominant value exists among the samples of one attempt:

- Samples are grouped by exact value in first-occurrence order.
- The groups tied at the highest occurrence count form the mode set.
- A single mode is accepted as the peak outright. The tolerance-based
  agreement count then only decides whether a data-quality warning is attached.
- With a tied mode set, each candidate is checked in first-occurrence order
  and the first one whose tolerance-based agreement count reaches
  ``sample_size`` is the peak. If none qualifies there is no peak.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Optional, Sequence

from scale_lib import protocol
from scale_lib.models import DistributionWarning, Sample

logger = logging.getLogger(__name__)


@dataclass
class ValueGroup:
    """Occurrences of one exact value in the buffer."""

    value: float
    unit: str
    count: int = 0


def group_samples(samples: Sequence[Sample]) -> List[ValueGroup]:
    """Group samples by exact value, keeping first-occurrence order and unit."""
    groups: Dict[float, ValueGroup] = {}
    for sample in samples:
        group = groups.get(sample.value)
        if group is None:
            group = groups[sample.value] = ValueGroup(sample.value, sample.unit)
        group.count += 1
    return list(groups.values())


def mode_set(samples: Sequence[Sample]) -> List[ValueGroup]:
    """Return all groups tied at the highest occurrence count.

    Returns:
        Groups in first-occurrence order, or [] for an empty buffer
    """
    groups = group_samples(samples)
    if not groups:
        return []
    max_count = max(g.count for g in groups)
    return [g for g in groups if g.count == max_count]


def agreement_count(samples: Sequence[Sample], candidate: float, tolerance: float) -> int:
    """Count samples whose value is within tolerance of candidate."""
    return sum(1 for s in samples if abs(s.value - candidate) <= tolerance)


def validate_distribution(
    samples: Sequence[Sample], candidate: float, tolerance: float, sample_size: int
) -> bool:
    """Check that at least sample_size samples agree with candidate.

    Args:
        samples: Buffered samples for the attempt
        candidate: Value being validated as the peak
        tolerance: Max absolute difference counted as agreement
        sample_size: Required agreement count

    Returns:
        True if the tolerance-based agreement count reaches sample_size
    """
    return agreement_count(samples, candidate, tolerance) >= sample_size


def peak_sample(
    samples: Sequence[Sample], tolerance: float, sample_size: int
) -> Optional[Sample]:
    """Find the peak sample of the buffer.

    Args:
        samples: Buffered samples in arrival order
        tolerance: Error tolerance for validating tied candidates
        sample_size: Required agreement count for tied candidates

    Returns:
        Sample(value, unit) of the peak, or None if the buffer is empty or
        the mode set is tied and no candidate validates
    """
    modes = mode_set(samples)
    if not modes:
        return None

    if len(modes) == 1:
        return Sample(modes[0].value, modes[0].unit)

    for group in modes:
        if validate_distribution(samples, group.value, tolerance, sample_size):
            logger.debug(f"Tie among {len(modes)} modes broken by {group.value}")
            return Sample(group.value, group.unit)

    logger.debug(
        f"No tied mode validates: {[g.value for g in modes]} (count {modes[0].count} each)"
    )
    return None


def distribution_warning(
    samples: Sequence[Sample], peak: Sample, tolerance: float, sample_size: int
) -> Optional[DistributionWarning]:
    """Build the data-quality warning for an accepted peak, if one applies.

    Returns:
        DistributionWarning carrying all raw sample values when fewer than
        sample_size samples agree with the peak, else None
    """
    if validate_distribution(samples, peak.value, tolerance, sample_size):
        return None
    return DistributionWarning(
        message=protocol.MSG_DISTRIBUTION_WARNING,
        sample=tuple(s.value for s in samples),
    )
