"""I/O helpers for loading session records and normalizing fields.

A session record exposes `mouse_name`, `date_exp` and parallel per-trial
sequences `feedback_type`, `contrast_left`, `contrast_right`, `spks`
(neurons x time bins per trial) and `time` (bin centers per trial).
Records can be pickles, MATLAB files (read with scipy.io.loadmat) or the
NumPy `dat` bundles of the Steinmetz dataset, where `spks` is stored as a
single neurons x trials x bins array.

Functions
- mat_struct_to_dict(obj)
- session_from_record(record, session_name=None)
- session_from_steinmetz(record, session_name=None, bin_size=0.01)
- load_session(path), load_sessions(paths), load_sessions_npy(path)
- save_session(session, path)
- session_summary(session), summarize_sessions(sessions)
"""
from collections.abc import Mapping
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence
import logging
import pickle
import numpy as np
import pandas as pd
import scipy.io
from .session import Session, Trial, feedback_label

RECORD_FIELDS = [
    "mouse_name",
    "date_exp",
    "feedback_type",
    "contrast_left",
    "contrast_right",
    "spks",
    "time",
    "brain_area",
]


def mat_struct_to_dict(obj: Any):
    """Turn scipy mat_struct objects and cell arrays into dicts and lists.

    Numeric arrays pass through untouched, so a `spks` cell array comes back
    as a list of per-trial matrices. Mappings (the dict returned by loadmat)
    are walked too, which is how a record saved as a struct variable is found.
    """
    if hasattr(obj, "_fieldnames"):
        return {name: mat_struct_to_dict(getattr(obj, name)) for name in obj._fieldnames}
    if isinstance(obj, Mapping):
        return {key: mat_struct_to_dict(value) for key, value in obj.items()}
    if isinstance(obj, np.ndarray) and obj.dtype == object:
        return [mat_struct_to_dict(item) for item in obj.ravel()]
    return obj


def _record_to_dict(record: Any) -> Dict[str, Any]:
    if isinstance(record, Mapping):
        return dict(record)
    data = {}
    for name in RECORD_FIELDS:
        if hasattr(record, name):
            data[name] = getattr(record, name)
    return data


def _per_trial_arrays(values: Any, trial_ndim: int) -> List[np.ndarray]:
    """Split a per-trial field into a list of float arrays.

    Numeric arrays whose rank equals `trial_ndim` hold a single trial
    (MATLAB squeezes one-element cell arrays away).
    """
    if isinstance(values, np.ndarray) and values.dtype != object:
        if values.ndim == trial_ndim:
            return [values.astype(float)]
        return [np.asarray(v, dtype=float) for v in values]
    return [np.asarray(v, dtype=float) for v in values]


def _per_trial_scalars(values: Any) -> np.ndarray:
    return np.atleast_1d(np.asarray(values, dtype=float)).ravel()


def _parse_date(value: Any):
    if value is None:
        return None
    if isinstance(value, np.ndarray):
        if value.size == 0:
            return None
        value = value.ravel()[0]
    if isinstance(value, bytes):
        value = value.decode()
    if isinstance(value, str) and value.strip() == '':
        return None
    return pd.Timestamp(value).date()


def _subject(value: Any) -> str:
    if isinstance(value, np.ndarray):
        value = value.ravel()[0] if value.size else ''
    if isinstance(value, bytes):
        value = value.decode()
    return str(value).strip()


def _build_trials(feedback, contrast_left, contrast_right, spks, time) -> List[Trial]:
    lengths = {
        "feedback_type": len(feedback),
        "contrast_left": len(contrast_left),
        "contrast_right": len(contrast_right),
        "spks": len(spks),
        "time": len(time),
    }
    if len(set(lengths.values())) != 1:
        raise ValueError(f"Per-trial fields have different lengths: {lengths}")

    trials = []
    for fb, cl, cr, sp, tb in zip(feedback, contrast_left, contrast_right, spks, time):
        trials.append(
            Trial(
                contrast_left=float(cl),
                contrast_right=float(cr),
                feedback=None if np.isnan(fb) else int(fb),
                time_bins=tb.ravel(),
                spike_matrix=np.atleast_2d(sp),
            )
        )
    return trials


def _brain_area(value: Any) -> Optional[List[str]]:
    if value is None:
        return None
    return [str(a) for a in np.atleast_1d(np.asarray(value)).ravel()]


def session_from_record(record: Any, session_name: Optional[str] = None) -> Session:
    """Convert a per-trial session record (mapping or object) into a `Session`.

    `spks` and `time` are sequences with one entry per trial. Raises
    ValueError if a required field is missing or the per-trial sequences
    have different lengths.
    """
    data = _record_to_dict(record)
    missing = [
        k for k in ("feedback_type", "contrast_left", "contrast_right", "spks", "time")
        if k not in data
    ]
    if missing:
        raise ValueError(f"Session record is missing fields: {missing}")

    trials = _build_trials(
        _per_trial_scalars(data["feedback_type"]),
        _per_trial_scalars(data["contrast_left"]),
        _per_trial_scalars(data["contrast_right"]),
        _per_trial_arrays(data["spks"], trial_ndim=2),
        _per_trial_arrays(data["time"], trial_ndim=1),
    )
    return Session(
        subject=_subject(data.get("mouse_name", "unknown")),
        date=_parse_date(data.get("date_exp")),
        trials=trials,
        session_name=session_name,
        brain_area=_brain_area(data.get("brain_area")),
    )


def session_from_steinmetz(
    record: Any, session_name: Optional[str] = None, bin_size: float = 0.01
) -> Session:
    """Convert a Steinmetz `dat` record into a `Session`.

    In that layout `spks` is one neurons x trials x bins array and no
    per-trial time vector is stored; bin centers are derived from
    `bin_size` (seconds).
    """
    data = _record_to_dict(record)
    spks = np.asarray(data["spks"], dtype=float)
    if spks.ndim != 3:
        raise ValueError(f"Expected a neurons x trials x bins array, got shape {spks.shape}")
    n_trials, n_bins = spks.shape[1], spks.shape[2]
    bin_size = float(data.get("bin_size", bin_size))
    centers = (np.arange(n_bins) + 0.5) * bin_size
    converted = dict(data)
    converted["spks"] = [spks[:, i, :] for i in range(n_trials)]
    converted["time"] = [centers.copy() for _ in range(n_trials)]
    return session_from_record(converted, session_name=session_name)


def _load_mat(p: Path):
    data = scipy.io.loadmat(str(p), struct_as_record=False, squeeze_me=True)
    data = {k: v for k, v in data.items() if not k.startswith('__')}
    data = mat_struct_to_dict(data)
    if 'spks' in data:
        return data
    # A single struct variable holding the record
    for value in data.values():
        if isinstance(value, dict) and 'spks' in value:
            return value
    raise ValueError(f"No session record with a 'spks' field found in {p}")


def load_session(path: str) -> Session:
    """Load one session file (.pkl/.pickle or .mat) into a `Session`.

    Pickles may hold a `Session` directly or a record mapping/object.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Session file not found: {path}")

    suffix = p.suffix.lower()
    if suffix in ('.pkl', '.pickle'):
        with p.open('rb') as f:
            obj = pickle.load(f)
        if isinstance(obj, Session):
            return obj
    elif suffix == '.mat':
        obj = _load_mat(p)
    else:
        raise ValueError(f"Unsupported session file type: {p.suffix}")

    session = session_from_record(obj, session_name=p.stem)
    logging.debug('Loaded %s: subject=%s, %d trials', p, session.subject, len(session.trials))
    return session


def load_sessions(paths: Sequence[str]) -> List[Session]:
    """Load session files in the given order."""
    sessions = []
    for path in paths:
        logging.info('Loading session from %s', path)
        sessions.append(load_session(str(path)))
    return sessions


def load_sessions_npy(path: str, bin_size: float = 0.01) -> List[Session]:
    """Load a Steinmetz-style .npy/.npz bundle holding several session records."""
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Session bundle not found: {path}")
    loaded = np.load(str(p), allow_pickle=True)
    if isinstance(loaded, np.lib.npyio.NpzFile):
        records = loaded['dat']
    else:
        records = loaded
    sessions = []
    for i, record in enumerate(np.atleast_1d(records), start=1):
        sessions.append(
            session_from_steinmetz(record, session_name=f"{p.stem}_{i}", bin_size=bin_size)
        )
    logging.info('Loaded %d sessions from %s', len(sessions), p)
    return sessions


def save_session(session: Session, path: str):
    p = Path(path)
    p.parent.mkdir(parents=True, exist_ok=True)
    with p.open("wb") as f:
        pickle.dump(session, f)


def session_summary(session: Session) -> Dict[str, Any]:
    """Return a JSON-serializable summary dict for a session."""
    n_neurons = [t.n_neurons for t in session.trials]
    n_bins = {t.n_time_bins for t in session.trials}
    labels = [feedback_label(t.feedback) for t in session.trials]
    return {
        "subject": session.subject,
        "date": session.date.isoformat() if session.date else None,
        "session_name": session.session_name,
        "n_trials": len(session.trials),
        "min_neurons": min(n_neurons) if n_neurons else None,
        "max_neurons": max(n_neurons) if n_neurons else None,
        "n_time_bins": n_bins.pop() if len(n_bins) == 1 else None,
        "success_rate": float(np.mean(labels)) if labels else None,
        "n_misses": sum(1 for t in session.trials if t.feedback is None),
    }


def summarize_sessions(sessions: Sequence[Session]) -> pd.DataFrame:
    """One summary row per session, indexed by 1-based session number."""
    rows = []
    for i, s in enumerate(sessions, start=1):
        r = session_summary(s)
        r["session"] = i
        rows.append(r)
    df = pd.DataFrame(rows)
    if "session" in df.columns:
        df = df.set_index("session")
    return df
