"""Build the per-trial feature table for all configured sessions.

Usage: python scripts/build_features.py --config config/features.yml [--strategy time_series] [--h5]

Writes features_<strategy>.csv and session_summary.csv to the output
directory, plus features_<strategy>.h5 with --h5.
"""
from pathlib import Path
import argparse
import logging
from typing import Optional

from visdecision.config import load_config
from visdecision.io import load_sessions, summarize_sessions
from visdecision.features import FeatureStrategy, build_feature_table, positional_split
from visdecision.cache import save_feature_table

repo_root = Path(__file__).resolve().parents[1]


def parse_args(argv: Optional[list] = None):
    p = argparse.ArgumentParser(description='Build per-trial feature tables (scalar or time-series summaries)')
    p.add_argument('--config', type=Path, default=repo_root / 'config' / 'features.yml',
                   help='Path to YAML run config (default: config/features.yml)')
    p.add_argument('--strategy', choices=[s.value for s in FeatureStrategy], default=None,
                   help='Override the feature strategy from the config')
    p.add_argument('--out-dir', type=Path, default=None, help='Override the output directory from the config')
    p.add_argument('--h5', action='store_true', help='Also write an HDF5 cache of the table')
    p.add_argument('--overwrite', action='store_true', help='Overwrite output files if they exist')
    p.add_argument('--verbose', action='store_true', help='Enable verbose logging')
    return p.parse_args(argv)


def configure_logging(verbose: bool):
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(level=level, format='[%(levelname)s] %(message)s')


def safe_save(path: Path, save_fn, overwrite: bool):
    """Save only if the file is absent or overwrite is set."""
    if path.exists() and not overwrite:
        logging.info('File exists and --overwrite not set, skipping save: %s', path)
        return False
    save_fn(path)
    logging.info('Wrote %s', path)
    return True


def main(argv: Optional[list] = None):
    args = parse_args(argv)
    configure_logging(args.verbose)

    cfg = load_config(str(args.config))
    strategy = FeatureStrategy(args.strategy) if args.strategy else cfg.strategy
    out_dir = args.out_dir or cfg.out_dir
    out_dir.mkdir(parents=True, exist_ok=True)

    sessions = load_sessions([str(p) for p in cfg.sessions])
    summary = summarize_sessions(sessions)
    for i, row in summary.iterrows():
        logging.info('Session %d: %s %s, %s trials, success rate %s',
                     i, row['subject'], row['date'], row['n_trials'], row['success_rate'])
    safe_save(out_dir / 'session_summary.csv', lambda p: summary.to_csv(p), overwrite=args.overwrite)

    n_time_bins = cfg.n_time_bins if strategy is FeatureStrategy.TIME_SERIES else None
    table, labels = build_feature_table(sessions, strategy, n_time_bins=n_time_bins)

    stem = f'features_{strategy.value}'
    safe_save(out_dir / f'{stem}.csv', lambda p: table.to_csv(p, index=False), overwrite=args.overwrite)
    if args.h5:
        safe_save(out_dir / f'{stem}.h5',
                  lambda p: save_feature_table(table, labels, str(p), strategy.value),
                  overwrite=args.overwrite)

    if cfg.n_test is not None:
        train_X, train_y, test_X, test_y = positional_split(table, labels, cfg.n_test)
        logging.info('Positional split: %d train rows (success %.3f), %d test rows (success %.3f)',
                     len(train_X), float(train_y.mean()) if len(train_y) else float('nan'),
                     len(test_X), float(test_y.mean()) if len(test_y) else float('nan'))
    return 0


if __name__ == '__main__':
    raise SystemExit(main())
