#!/usr/bin/env python3
"""Convert generated fixtures into client-consumable YAML vectors.

Each fixture file ``fixtures/<group>/<name>.json`` becomes
``vectors/<group>/<name>.yaml`` with a ``test_vectors`` list the conformance
runner understands.
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT / "src"))

from escrow_spec.state_digest import compute_state_digest  # noqa: E402
from escrow_spec.yaml_dump import write_yaml  # noqa: E402


def case_to_vector(case: dict[str, Any]) -> dict[str, Any]:
    expected = case["expected"]
    digest = expected.get("state_digest") or compute_state_digest(expected["post_state"])
    return {
        "name": case["name"],
        "pre_state": case["pre_state"],
        "calls": case.get("calls", []),
        "expected": {
            "results": expected["results"],
            "state_digest": digest,
        },
    }


def convert(src: Path, dst: Path) -> int:
    count = 0
    for path in sorted(src.rglob("*.json")):
        data = json.loads(path.read_text())
        cases = data.get("cases", [])
        if not cases:
            continue
        target = dst / path.relative_to(src).with_suffix(".yaml")
        write_yaml(target, {"test_vectors": [case_to_vector(c) for c in cases]})
        count += len(cases)
    return count


def main() -> None:
    parser = argparse.ArgumentParser(description="Convert fixtures to YAML vectors")
    parser.add_argument("--fixtures", default=str(ROOT / "fixtures"))
    parser.add_argument("--vectors", default=str(ROOT / "vectors"))
    args = parser.parse_args()

    src = Path(args.fixtures)
    if not src.exists():
        raise SystemExit(f"Missing fixtures directory: {src} (run tools/fill.py first)")

    count = convert(src, Path(args.vectors))
    print(f"Wrote {count} vectors to {args.vectors}")


if __name__ == "__main__":
    main()
