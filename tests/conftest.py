"""Pytest hooks and shared fixtures; also generates fixtures (EEST-style)."""

from __future__ import annotations

import json
from pathlib import Path
from typing import Any, Callable

import pytest

from escrow_spec.account_model import InMemoryLedger
from escrow_spec.config import DEFAULT_FEE_RATE_BPS
from escrow_spec.fixtures_io import (
    call_to_json,
    result_to_json,
    state_from_json,
    state_to_json,
)
from escrow_spec.registry import EscrowRegistry
from escrow_spec.state_digest import compute_state_digest
from escrow_spec.state_transition import TransitionResult, apply_block
from escrow_spec.test_accounts import ALICE, ARBITER, BOB, CAROL, OWNER
from escrow_spec.types import AccountState, Call, PlatformConfig

_STATE_CASES: dict[str, list[dict[str, Any]]] = {}

GENESIS_BALANCES = {
    ALICE: 10_000_000,
    BOB: 5_000_000,
    CAROL: 1_000_000,
}


def pytest_addoption(parser: pytest.Parser) -> None:
    parser.addoption(
        "--output",
        action="store",
        default=None,
        help="Output directory for generated fixtures",
    )


def build_registry(
    fee_rate: int = DEFAULT_FEE_RATE_BPS,
    arbiter: bytes = ARBITER,
    balances: dict[bytes, int] | None = None,
    ledger: InMemoryLedger | None = None,
) -> EscrowRegistry:
    if ledger is None:
        ledger = InMemoryLedger()
    for addr, amount in (GENESIS_BALANCES if balances is None else balances).items():
        ledger.credit(addr, amount)
    config = PlatformConfig(owner=OWNER, arbiter=arbiter, fee_rate=fee_rate)
    return EscrowRegistry(config, ledger)


@pytest.fixture
def make_registry() -> Callable[..., EscrowRegistry]:
    """Factory for a fresh registry over a funded in-memory ledger."""
    return build_registry


@pytest.fixture
def registry() -> EscrowRegistry:
    return build_registry()


@pytest.fixture
def scenario_test() -> Callable[
    [str, str, EscrowRegistry, list[Call]], tuple[EscrowRegistry, list[TransitionResult]]
]:
    """Run calls from a pre-state, collect the case and return the outcome."""

    def _scenario_test(
        rel_path: str, name: str, pre: EscrowRegistry, calls: list[Call]
    ) -> tuple[EscrowRegistry, list[TransitionResult]]:
        pre_state = state_to_json(pre)
        post = state_from_json(pre_state)
        results = apply_block(post, calls)
        post_state = state_to_json(post)
        _STATE_CASES.setdefault(rel_path, []).append(
            {
                "name": name,
                "pre_state": pre_state,
                "calls": [call_to_json(c) for c in calls],
                "expected": {
                    "results": [result_to_json(r) for r in results],
                    "post_state": post_state,
                    "state_digest": compute_state_digest(post_state),
                },
            }
        )
        return post, results

    return _scenario_test


def pytest_sessionfinish(session: pytest.Session, exitstatus: int) -> None:
    output_dir = session.config.getoption("--output")
    if not output_dir:
        return

    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    for rel_path, cases in _STATE_CASES.items():
        if not cases:
            continue
        target = out / rel_path
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(json.dumps({"cases": cases}, indent=2))
