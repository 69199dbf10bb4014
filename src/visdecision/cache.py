"""HDF5 cache for built feature tables.

Layout: group `meta` (attrs strategy, columns as JSON, n_rows) and group
`data` with datasets `features` (rows x columns, label column included)
and `labels`.
"""
from pathlib import Path
from typing import Tuple
import json
import logging
import h5py
import numpy as np
import pandas as pd

from .features import LABEL_COLUMN


def save_feature_table(table: pd.DataFrame, labels: pd.Series, out_h5_path: str, strategy: str) -> str:
    """Write a feature table and its labels to HDF5. Returns the path written."""
    if len(table) != len(labels):
        raise ValueError(f"table has {len(table)} rows but labels has {len(labels)}")
    path = Path(out_h5_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with h5py.File(str(path), "w") as h5:
        meta = h5.create_group("meta")
        meta.attrs["strategy"] = str(getattr(strategy, "value", strategy))
        meta.attrs["columns"] = json.dumps([str(c) for c in table.columns])
        meta.attrs["n_rows"] = int(len(table))
        data_grp = h5.create_group("data")
        data_grp.create_dataset("features", data=table.to_numpy(dtype=float))
        data_grp.create_dataset("labels", data=np.asarray(labels, dtype=float))
    logging.info('Wrote feature cache %s (%d rows)', path, len(table))
    return str(path)


def load_feature_table(h5_path: str) -> Tuple[pd.DataFrame, pd.Series]:
    """Read a table written by `save_feature_table`."""
    path = Path(h5_path)
    if not path.exists():
        raise FileNotFoundError(f"Feature cache not found: {h5_path}")
    with h5py.File(str(path), "r") as h5:
        columns = json.loads(h5["meta"].attrs["columns"])
        features = h5["data"]["features"][()]
        labels = h5["data"]["labels"][()]
    table = pd.DataFrame(features, columns=columns)
    int_cols = [c for c in ("session", "trial", "num_neurons") if c in table.columns]
    table = table.astype({c: int for c in int_cols})
    return table, pd.Series(labels, name=LABEL_COLUMN)
