"""Generate JSON fixtures by running the test suite with ``--output``.

Usage:
    python tools/fill.py                    # all tests -> fixtures/
    python tools/fill.py --out /tmp/fx -k dispute
"""

from __future__ import annotations

import argparse
import os
import subprocess
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parent.parent


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(description="Fill escrow fixtures from tests")
    parser.add_argument("--out", default=str(ROOT / "fixtures"), help="fixture output directory")
    parser.add_argument("-k", dest="keyword", default=None, help="pytest -k expression")
    args = parser.parse_args(argv)

    env = {**os.environ, "PYTHONPATH": str(ROOT / "src")}
    cmd = [sys.executable, "-m", "pytest", str(ROOT / "tests"), "-q", "--output", args.out]
    if args.keyword:
        cmd += ["-k", args.keyword]

    print("Running:", " ".join(cmd))
    return subprocess.call(cmd, env=env, cwd=str(ROOT))


if __name__ == "__main__":
    raise SystemExit(main())
