"""Run configuration loaded from YAML (see config/features.yml)."""
from dataclasses import dataclass, field
from pathlib import Path
from typing import List, Optional
import yaml

from .features import FeatureStrategy


@dataclass
class FeatureConfig:
    sessions: List[Path] = field(default_factory=list)
    strategy: FeatureStrategy = FeatureStrategy.SCALAR
    n_time_bins: Optional[int] = None
    out_dir: Path = Path("outputs")
    n_test: Optional[int] = None


def load_config(path: str) -> FeatureConfig:
    """Load a YAML run config.

    Relative session and output paths resolve against the config file's
    directory.
    """
    p = Path(path)
    if not p.exists():
        raise FileNotFoundError(f"Config file not found: {path}")
    cfg = yaml.safe_load(p.read_text()) or {}
    base = p.resolve().parent

    sessions = cfg.get("sessions") or []
    if not sessions:
        raise ValueError(f"No sessions listed in {path}")

    def resolve(x):
        x = Path(x)
        return x if x.is_absolute() else base / x

    try:
        strategy = FeatureStrategy(cfg.get("strategy", "scalar"))
    except ValueError:
        raise ValueError(f"Unknown strategy {cfg.get('strategy')!r} in {path}")

    n_time_bins = cfg.get("n_time_bins")
    n_test = cfg.get("n_test")
    return FeatureConfig(
        sessions=[resolve(s) for s in sessions],
        strategy=strategy,
        n_time_bins=int(n_time_bins) if n_time_bins is not None else None,
        out_dir=resolve(cfg.get("out_dir", "outputs")),
        n_test=int(n_test) if n_test is not None else None,
    )
