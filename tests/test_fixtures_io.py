"""State export, import and digest."""

from __future__ import annotations

import pytest

from escrow_spec.account_model import CUSTODY_ADDRESS
from escrow_spec.errors import ErrorCode, SpecError
from escrow_spec.fixtures_io import (
    call_from_json,
    call_to_json,
    state_from_json,
    state_to_json,
)
from escrow_spec.state_digest import compute_state_digest
from escrow_spec.test_accounts import ALICE, ARBITER, BOB, CAROL, OWNER, resolve_name
from escrow_spec.types import Call, CallType, Settlement


def _digest(registry) -> str:
    return compute_state_digest(state_to_json(registry))


def _busy(registry):
    registry.create_escrow(ALICE, BOB, 1_000_000, "logo", 1)
    registry.fund_escrow(ALICE, 0, 2)
    registry.initiate_dispute(BOB, 0, "late", 3)
    registry.create_escrow(BOB, ALICE, 50, "", 4)
    return registry


def test_export_shape(registry) -> None:
    data = state_to_json(_busy(registry))
    assert data["config"] == {
        "owner": OWNER.hex(),
        "arbiter": ARBITER.hex(),
        "fee_rate": 250,
        "next_escrow_id": 2,
    }
    assert data["custody"] == CUSTODY_ADDRESS.hex()
    assert [e["status"] for e in data["escrows"]] == ["disputed", "pending"]
    assert data["disputes"][0]["initiated_by"] == BOB.hex()
    assert "settlements" not in data
    balances = {a["address"]: a["balance"] for a in data["accounts"]}
    assert balances[CUSTODY_ADDRESS.hex()] == 1_000_000


def test_import_reproduces_state(registry) -> None:
    original = _busy(registry)
    restored = state_from_json(state_to_json(original))
    assert state_to_json(restored) == state_to_json(original)
    assert _digest(restored) == _digest(original)

    # The restored registry is live: the arbiter can finish the dispute.
    restored.resolve_dispute(ARBITER, 0, BOB, 5)
    assert restored.ledger.balance_of(BOB) == 5_000_000 + 975_000
    assert original.get_escrow(0).completed_at is None


def test_settlement_survives_export(registry) -> None:
    registry.create_escrow(ALICE, BOB, 1_000_000, "logo", 1)
    registry.fund_escrow(ALICE, 0, 2)
    data = state_to_json(registry)
    data["settlements"] = [
        {
            "escrow_id": 0,
            "payee": BOB.hex(),
            "payout": 975_000,
            "fee": 25_000,
            "payout_sent": True,
            "fee_sent": False,
        }
    ]
    restored = state_from_json(data)
    assert restored.pending_settlement(0) == Settlement(0, BOB, 975_000, 25_000, True, False)


def test_digest_is_sensitive_to_every_section(registry) -> None:
    base = state_to_json(_busy(registry))
    digest = compute_state_digest(base)

    def _changed(mutate) -> str:
        data = state_from_json(base)
        data = state_to_json(data)
        mutate(data)
        return compute_state_digest(data)

    assert _changed(lambda d: d["config"].update(fee_rate=251)) != digest
    assert _changed(lambda d: d["escrows"][1].update(description="x")) != digest
    assert _changed(lambda d: d["escrows"][0].update(status="funded")) != digest
    assert _changed(lambda d: d["disputes"][0].update(resolved=True)) != digest
    assert _changed(lambda d: d["accounts"][0].update(balance=1)) != digest
    assert _changed(lambda d: None) == digest


def test_digest_ignores_list_order(registry) -> None:
    data = state_to_json(_busy(registry))
    shuffled = dict(data)
    shuffled["escrows"] = list(reversed(data["escrows"]))
    shuffled["accounts"] = list(reversed(data["accounts"]))
    assert compute_state_digest(shuffled) == compute_state_digest(data)


def test_call_json_uses_hex_addresses() -> None:
    call = Call(ARBITER, CallType.RESOLVE_DISPUTE, {"escrow_id": 3, "winner": BOB}, 9)
    data = call_to_json(call)
    assert data == {
        "caller": ARBITER.hex(),
        "type": "resolve_dispute",
        "height": 9,
        "payload": {"escrow_id": 3, "winner": BOB.hex()},
    }
    assert call_from_json(data) == call


def test_resolve_name() -> None:
    assert resolve_name("alice") == ALICE
    assert resolve_name(BOB.hex()) == BOB


def _import_error(data) -> ErrorCode:
    with pytest.raises(SpecError) as info:
        state_from_json(data)
    return info.value.code


def test_missing_counter_resumes_after_highest_id(registry) -> None:
    registry.create_escrow(ALICE, BOB, 500, "first", 1)
    data = state_to_json(registry)
    del data["config"]["next_escrow_id"]

    restored = state_from_json(data)
    assert restored.get_next_id() == 1
    new_id = restored.create_escrow(CAROL, BOB, 7, "second", 2)
    assert new_id == 1
    assert restored.get_escrow(0).amount == 500
    assert restored.get_escrow(0).description == "first"


def test_counter_behind_restored_ids_rejected(registry) -> None:
    registry.create_escrow(ALICE, BOB, 500, "first", 1)
    registry.create_escrow(ALICE, BOB, 600, "second", 1)
    data = state_to_json(registry)
    data["config"]["next_escrow_id"] = 1
    assert _import_error(data) == ErrorCode.INVALID_CONFIG


def test_dispute_on_pending_escrow_rejected(registry) -> None:
    data = state_to_json(_busy(registry))
    data["disputes"][0]["escrow_id"] = 1
    assert _import_error(data) == ErrorCode.INVALID_STATE


def test_resolved_dispute_needs_party_winner(registry) -> None:
    busy = _busy(registry)
    busy.resolve_dispute(ARBITER, 0, BOB, 5)
    data = state_to_json(busy)
    assert state_from_json(data).get_dispute(0).winner == BOB

    data["disputes"][0]["winner"] = CAROL.hex()
    assert _import_error(data) == ErrorCode.INVALID_STATE


def test_disputed_escrow_without_dispute_rejected(registry) -> None:
    data = state_to_json(_busy(registry))
    data["disputes"] = []
    assert _import_error(data) == ErrorCode.INVALID_STATE


def test_settlement_for_closed_escrow_rejected(registry) -> None:
    registry.create_escrow(ALICE, BOB, 1_000, "x", 1)
    data = state_to_json(registry)
    data["settlements"] = [
        {"escrow_id": 0, "payee": BOB.hex(), "payout": 975, "fee": 25, "payout_sent": True}
    ]
    assert _import_error(data) == ErrorCode.INVALID_STATE
