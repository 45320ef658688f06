"""Replay generated fixtures against the Python reference implementation."""

from __future__ import annotations

import json
from pathlib import Path
import sys

ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(ROOT / "src"))

from escrow_spec.fixtures_io import (  # noqa: E402
    call_from_json,
    result_to_json,
    state_from_json,
    state_to_json,
)
from escrow_spec.state_digest import compute_state_digest  # noqa: E402
from escrow_spec.state_transition import apply_call  # noqa: E402


def check_cases(path: Path) -> list[str]:
    failures: list[str] = []
    data = json.loads(path.read_text())

    for case in data.get("cases", []):
        registry = state_from_json(case["pre_state"])
        expected = case["expected"]

        results = [
            result_to_json(apply_call(registry, call_from_json(c)))
            for c in case.get("calls", [])
        ]
        if len(results) != len(expected["results"]):
            failures.append(f"{case['name']}: result_count_mismatch")
            continue

        mismatch = False
        for i, (got, want) in enumerate(zip(results, expected["results"])):
            if got["ok"] != want["ok"]:
                failures.append(f"{case['name']}: ok_mismatch at call {i}")
                mismatch = True
                break
            if got["error"] != want["error"]:
                failures.append(f"{case['name']}: error_mismatch at call {i}")
                mismatch = True
                break
        if mismatch:
            continue

        digest = compute_state_digest(state_to_json(registry))
        if digest != expected["state_digest"]:
            failures.append(f"{case['name']}: state_digest_mismatch")

    return failures


def main() -> None:
    fixtures = ROOT / "fixtures"

    failures: list[str] = []
    for path in sorted(fixtures.rglob("*.json")):
        failures.extend(check_cases(path))

    if failures:
        for f in failures:
            print("FAIL", f)
        raise SystemExit(1)

    print("All fixtures passed")


if __name__ == "__main__":
    main()
