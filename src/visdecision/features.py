"""Per-trial feature extraction and feature-table assembly.

Two summaries of a trial's neurons x time-bins spike matrix are provided:

- scalar: the five-number summary and mean of the neuron-normalized
  activity-change rate between consecutive time bins, plus the neuron count.
- time_series: the across-neuron mean and max at every time bin.

`build_feature_table` applies one of them to every trial of every session
and returns a table in session-then-trial order with a parallel label vector.
Downstream train/test splitting is positional (`positional_split`), so the
row order is part of the contract.
"""
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Sequence, Tuple, Union
import logging
import numpy as np
import pandas as pd

from .errors import DomainError, InsufficientDataError, SchemaMismatchError
from .session import Session, Trial

ID_COLUMNS = ["session", "trial", "contrast_left", "contrast_right"]
SCALAR_FEATURE_COLUMNS = [
    "num_neurons",
    "min_response",
    "lower_quartile_response",
    "median_response",
    "upper_quartile_response",
    "max_response",
    "mean_response",
]
LABEL_COLUMN = "feedback"


class FeatureStrategy(str, Enum):
    SCALAR = "scalar"
    TIME_SERIES = "time_series"


@dataclass(frozen=True)
class ScalarFeatures:
    num_neurons: int
    min: float
    q25: float
    median: float
    q75: float
    max: float
    mean: float

    def as_vector(self) -> np.ndarray:
        return np.array(
            [self.num_neurons, self.min, self.q25, self.median, self.q75, self.max, self.mean],
            dtype=float,
        )


@dataclass(frozen=True)
class TimeSeriesFeatures:
    mean_at: np.ndarray
    max_at: np.ndarray

    @property
    def n_time_bins(self) -> int:
        return int(self.mean_at.size)

    def as_vector(self) -> np.ndarray:
        return np.concatenate([self.mean_at, self.max_at]).astype(float)


def _checked_arrays(trial: Trial, min_bins: int) -> Tuple[np.ndarray, np.ndarray]:
    """Return (spike_matrix, time_bins) as float arrays after shape checks."""
    spikes = np.asarray(trial.spike_matrix, dtype=float)
    times = np.asarray(trial.time_bins, dtype=float).ravel()
    if spikes.ndim != 2:
        raise SchemaMismatchError(f"Spike matrix must be 2-D, got shape {spikes.shape}")
    n_neurons, n_bins = spikes.shape
    if n_neurons < 1:
        raise InsufficientDataError("Spike matrix has no neurons")
    if n_bins != times.size:
        raise SchemaMismatchError(
            f"Spike matrix has {n_bins} time bins but time_bins has {times.size} entries"
        )
    if n_bins < min_bins:
        raise InsufficientDataError(f"Need at least {min_bins} time bins, got {n_bins}")
    return spikes, times


def activity_change_rate(trial: Trial) -> np.ndarray:
    """Neuron-normalized rate of change of summed activity, one value per step.

    For each step k the absolute spike-count changes of all neurons are
    summed, divided by the bin spacing, and the whole sequence is divided
    by the neuron count. Returns a length T-1 array.
    """
    spikes, times = _checked_arrays(trial, min_bins=2)
    dt = np.diff(times)
    # NaN deltas fail the comparison too
    bad = np.flatnonzero(~(dt > 0))
    if bad.size:
        k = int(bad[0])
        raise DomainError(
            f"time_bins must be strictly increasing; bins {k} and {k + 1} are "
            f"{times[k]!r} and {times[k + 1]!r}"
        )
    d = np.abs(np.diff(spikes, axis=1)).sum(axis=0)
    return (d / dt) / spikes.shape[0]


def extract_scalar_summary(trial: Trial) -> ScalarFeatures:
    """Five-number summary and mean of `activity_change_rate(trial)`."""
    rate = activity_change_rate(trial)
    q25, median, q75 = np.percentile(rate, [25, 50, 75])
    return ScalarFeatures(
        num_neurons=trial.n_neurons,
        min=float(rate.min()),
        q25=float(q25),
        median=float(median),
        q75=float(q75),
        max=float(rate.max()),
        mean=float(rate.mean()),
    )


def extract_time_series_summary(
    trial: Trial, n_time_bins: Optional[int] = None
) -> TimeSeriesFeatures:
    """Across-neuron mean and max of the spike matrix at every time bin.

    If `n_time_bins` is given the trial must have exactly that many bins.
    """
    spikes, _ = _checked_arrays(trial, min_bins=1)
    if n_time_bins is not None and spikes.shape[1] != n_time_bins:
        raise SchemaMismatchError(
            f"Trial has {spikes.shape[1]} time bins, table expects {n_time_bins}"
        )
    return TimeSeriesFeatures(mean_at=spikes.mean(axis=0), max_at=spikes.max(axis=0))


def _as_strategy(strategy: Union[str, FeatureStrategy]) -> FeatureStrategy:
    try:
        return FeatureStrategy(strategy)
    except ValueError:
        valid = [s.value for s in FeatureStrategy]
        raise ValueError(f"Unknown feature strategy {strategy!r}; expected one of {valid}")


def feature_columns(
    strategy: Union[str, FeatureStrategy], n_time_bins: Optional[int] = None
) -> List[str]:
    """Column names of the feature table for a strategy."""
    strategy = _as_strategy(strategy)
    if strategy is FeatureStrategy.SCALAR:
        return ID_COLUMNS + SCALAR_FEATURE_COLUMNS + [LABEL_COLUMN]
    if n_time_bins is None:
        raise ValueError("n_time_bins is required for the time_series columns")
    means = [f"mean_at_{i}" for i in range(1, n_time_bins + 1)]
    maxes = [f"max_at_{i}" for i in range(1, n_time_bins + 1)]
    return ID_COLUMNS + means + maxes + [LABEL_COLUMN]


def _first_trial(sessions: Sequence[Session]) -> Optional[Trial]:
    for s in sessions:
        if s.trials:
            return s.trials[0]
    return None


def build_feature_table(
    sessions: Sequence[Session],
    strategy: Union[str, FeatureStrategy] = FeatureStrategy.SCALAR,
    n_time_bins: Optional[int] = None,
) -> Tuple[pd.DataFrame, pd.Series]:
    """Build the feature table for all trials of all sessions.

    Rows follow session order, then trial order; `session` and `trial` are
    1-based. Any trial that fails extraction aborts the build, with the
    session and trial named in the error message.

    Returns (table, labels). The table's last column is the binary label;
    `labels` is the same values as a Series sharing the table's index.
    """
    strategy = _as_strategy(strategy)

    if strategy is FeatureStrategy.TIME_SERIES and n_time_bins is None:
        first = _first_trial(sessions)
        if first is None:
            raise InsufficientDataError(
                "No trials to establish the time-series width; pass n_time_bins"
            )
        n_time_bins = first.n_time_bins
        logging.info('Time-series width taken from first trial: %d time bins', n_time_bins)

    columns = feature_columns(strategy, n_time_bins)
    n_rows = sum(len(s.trials) for s in sessions)
    values = np.empty((n_rows, len(columns)), dtype=float)

    row = 0
    for si, session in enumerate(sessions, start=1):
        logging.debug('Extracting %s features for session %d (%s, %d trials)',
                      strategy.value, si, session.subject, len(session.trials))
        for ti, trial in enumerate(session.trials, start=1):
            try:
                if strategy is FeatureStrategy.SCALAR:
                    features = extract_scalar_summary(trial).as_vector()
                else:
                    features = extract_time_series_summary(trial, n_time_bins).as_vector()
            except (DomainError, InsufficientDataError, SchemaMismatchError) as e:
                raise type(e)(f"session {si}, trial {ti}: {e}") from e
            try:
                contrast_left = float(trial.contrast_left)
                contrast_right = float(trial.contrast_right)
                label = trial.label
            except (TypeError, ValueError) as e:
                raise ValueError(f"session {si}, trial {ti}: invalid trial metadata: {e}") from e
            values[row, 0] = si
            values[row, 1] = ti
            values[row, 2] = contrast_left
            values[row, 3] = contrast_right
            values[row, 4:-1] = features
            values[row, -1] = label
            row += 1

    table = pd.DataFrame(values, columns=columns)
    table = table.astype({"session": int, "trial": int})
    if strategy is FeatureStrategy.SCALAR:
        table = table.astype({"num_neurons": int})
    labels = table[LABEL_COLUMN].copy()
    logging.info('Built %s feature table: %d rows x %d columns',
                 strategy.value, table.shape[0], table.shape[1])
    return table, labels


def positional_split(
    table: pd.DataFrame, labels: pd.Series, n_test: int
) -> Tuple[pd.DataFrame, pd.Series, pd.DataFrame, pd.Series]:
    """Split off the first `n_test` rows as the test set.

    Returns (train_X, train_y, test_X, test_y); the feature frames exclude
    the label column.
    """
    if not 0 <= n_test <= len(table):
        raise ValueError(f"n_test must be between 0 and {len(table)}, got {n_test}")
    X = table.drop(columns=[LABEL_COLUMN])
    return X.iloc[n_test:], labels.iloc[n_test:], X.iloc[:n_test], labels.iloc[:n_test]
