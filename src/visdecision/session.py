"""Session dataclasses for visdecision

This module contains small dataclasses representing a Trial and a Session
of the visual decision task, plus the feedback normalization shared by the
loaders and the feature extractor.
"""
from dataclasses import dataclass, field
from datetime import date
from typing import List, Optional, Any
import numpy as np


def normalize_feedback(value: Any) -> int:
    """Map a recorded feedback value to +1 (success) or -1 (failure).

    A missing feedback (None or NaN, i.e. a miss) counts as a failure.
    """
    if value is None:
        return -1
    try:
        if np.isnan(value):
            return -1
    except TypeError:
        raise ValueError(f"Unrecognized feedback value: {value!r}")
    if value == 1:
        return 1
    if value == -1:
        return -1
    raise ValueError(f"Unrecognized feedback value: {value!r}")


def feedback_label(value: Any) -> float:
    """Binary label (1.0 success, 0.0 failure or miss) for a feedback value."""
    return (normalize_feedback(value) + 1) / 2.0


@dataclass
class Trial:
    contrast_left: float
    contrast_right: float
    feedback: Optional[int]
    time_bins: np.ndarray
    spike_matrix: np.ndarray

    @property
    def n_neurons(self) -> int:
        return int(np.shape(self.spike_matrix)[0])

    @property
    def n_time_bins(self) -> int:
        return int(np.size(self.time_bins))

    @property
    def label(self) -> float:
        return feedback_label(self.feedback)


@dataclass
class Session:
    subject: str
    date: Optional[date]
    trials: List[Trial] = field(default_factory=list)
    session_name: Optional[str] = None
    brain_area: Optional[List[str]] = None
