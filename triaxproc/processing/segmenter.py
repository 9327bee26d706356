"""
Flow Segmenter
==============
Splits the accumulated flow-mass series wherever the scale was emptied.

A reset shows up as a negative step in the weight reading. The clamped
first difference (never negative) is the mass that flowed in each interval.
"""

import logging
from dataclasses import dataclass
from typing import Iterator, List, Optional, Union

import numpy as np

from triaxproc.config import get_config
from triaxproc.processing.recording import Recording


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class Segment:
    """Half-open index range [start, end)."""
    start: int
    end: int

    def __len__(self) -> int:
        return self.end - self.start

    def as_slice(self) -> slice:
        return slice(self.start, self.end)


@dataclass
class FlowSegmentation:
    """Result of segmenting a flow-mass series."""
    segments: List[Segment]
    flow_mass_diff: np.ndarray
    signed_diff: np.ndarray
    reset_indices: np.ndarray

    def __iter__(self) -> Iterator[Segment]:
        return iter(self.segments)

    def __len__(self) -> int:
        return len(self.segments)

    def labels(self) -> np.ndarray:
        """Segment number of every sample."""
        labels = np.zeros(len(self.flow_mass_diff), dtype=int)
        for number, segment in enumerate(self.segments):
            labels[segment.as_slice()] = number
        return labels


class FlowSegmenter:
    """
    Detects scale resets in a flow-mass series.

    signed[i] = flowMass[i] - flowMass[i-1], signed[0] = 0
    flowMassDiff = max(0, signed), missing differences count as 0
    reset at i where signed[i] < threshold
    """

    def __init__(self, threshold: Optional[float] = None):
        """
        Args:
            threshold: Reset threshold in kg (negative). Defaults to the
                configured TRIAX_RESET_THRESHOLD (-0.01).
        """
        if threshold is None:
            threshold = get_config().pipeline.reset_threshold
        self.threshold = float(threshold)

    def segment(self, flow_mass: Union[np.ndarray, Recording]) -> FlowSegmentation:
        """
        Segment a flow-mass series.

        Args:
            flow_mass: flowMass values or a Recording carrying flowMass

        Returns:
            FlowSegmentation whose segments partition [0, N)
        """
        if isinstance(flow_mass, Recording):
            flow_mass = flow_mass.values("flowMass")
        values = np.asarray(flow_mass, dtype=float)
        n = len(values)

        signed = np.zeros(n)
        if n > 1:
            signed[1:] = np.diff(values)
        flow_mass_diff = np.fmax(0.0, signed)
        flow_mass_diff[np.isnan(flow_mass_diff)] = 0.0

        with np.errstate(invalid='ignore'):
            reset_indices = np.flatnonzero(signed < self.threshold)

        bounds = [0] + [int(i) for i in reset_indices] + [n]
        segments = [
            Segment(start, end)
            for start, end in zip(bounds[:-1], bounds[1:])
            if end > start
        ]

        if len(reset_indices):
            logger.info("Detected %d flow resets", len(reset_indices))

        return FlowSegmentation(
            segments=segments,
            flow_mass_diff=flow_mass_diff,
            signed_diff=signed,
            reset_indices=reset_indices,
        )


def segment_flow(flow_mass: Union[np.ndarray, Recording], threshold: Optional[float] = None) -> FlowSegmentation:
    """Convenience function to segment a flow-mass series."""
    return FlowSegmenter(threshold=threshold).segment(flow_mass)
