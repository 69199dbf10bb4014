"""visdecision package

Session dataclasses, record loaders and per-trial feature extraction for
the visual decision task recordings.
"""

from .session import Session, Trial, normalize_feedback, feedback_label
from .errors import DomainError, InsufficientDataError, SchemaMismatchError
from .io import load_session, load_sessions, load_sessions_npy, session_summary, summarize_sessions
from .features import (
    FeatureStrategy,
    extract_scalar_summary,
    extract_time_series_summary,
    build_feature_table,
    feature_columns,
    positional_split,
)

__all__ = [
    "Session",
    "Trial",
    "normalize_feedback",
    "feedback_label",
    "DomainError",
    "InsufficientDataError",
    "SchemaMismatchError",
    "load_session",
    "load_sessions",
    "load_sessions_npy",
    "session_summary",
    "summarize_sessions",
    "FeatureStrategy",
    "extract_scalar_summary",
    "extract_time_series_summary",
    "build_feature_table",
    "feature_columns",
    "positional_split",
]
