"""Simple CLI to inspect a session file and write a JSON summary.

Usage: python scripts/inspect_session.py path/to/session.pkl outputs/
"""

import sys
from pathlib import Path
import json

from visdecision.io import load_session, session_summary


def main(argv):
    if len(argv) < 3:
        print("Usage: inspect_session.py path/to/session.pkl output_dir")
        return 2
    path = Path(argv[1])
    outdir = Path(argv[2])
    outdir.mkdir(parents=True, exist_ok=True)

    session = load_session(str(path))
    summary = session_summary(session)
    with (outdir / "session_summary.json").open("w") as f:
        json.dump(summary, f, indent=2)
    print(json.dumps(summary, indent=2))
    print("Wrote", outdir / "session_summary.json")
    return 0


if __name__ == "__main__":
    raise SystemExit(main(sys.argv))
