"""Call-level fixtures: host calls applied through apply_block."""

from __future__ import annotations

import pytest

from escrow_spec.account_model import CUSTODY_ADDRESS
from escrow_spec.errors import ErrorCode, SpecError
from escrow_spec.state_transition import apply_call, verify_call
from escrow_spec.test_accounts import ALICE, ARBITER, BOB, CAROL, OWNER
from escrow_spec.types import Call, CallType, EscrowStatus

AMOUNT = 1_000_000


def _create(caller: bytes, seller: bytes, amount: int = AMOUNT, height: int = 1, **extra) -> Call:
    payload = {"seller": seller, "amount": amount, "description": "logo design", **extra}
    return Call(caller, CallType.CREATE_ESCROW, payload, height)


def _on(caller: bytes, call_type: CallType, escrow_id: int, height: int, **payload) -> Call:
    return Call(caller, call_type, {"escrow_id": escrow_id, **payload}, height)


def _codes(results) -> list:
    return [r.error.code if r.error else None for r in results]


def test_release_flow(registry, scenario_test) -> None:
    post, results = scenario_test(
        "escrow/release.json",
        "create_fund_release",
        registry,
        [
            _create(ALICE, BOB),
            _on(ALICE, CallType.FUND_ESCROW, 0, 2),
            _on(ALICE, CallType.RELEASE_FUNDS, 0, 3),
        ],
    )
    assert all(r.ok for r in results)
    assert results[0].value == 0
    assert post.get_escrow(0).status == EscrowStatus.COMPLETED
    assert post.ledger.balance_of(BOB) == 5_000_000 + 975_000
    assert post.ledger.balance_of(OWNER) == 25_000
    # The fixture's pre-state is untouched.
    assert registry.get_escrow(0) is None


def test_dispute_flow(registry, scenario_test) -> None:
    post, results = scenario_test(
        "escrow/dispute.json",
        "dispute_resolved_for_seller",
        registry,
        [
            _create(ALICE, BOB),
            _on(ALICE, CallType.FUND_ESCROW, 0, 2),
            _on(BOB, CallType.INITIATE_DISPUTE, 0, 3, reason="reason"),
            _on(ARBITER, CallType.RESOLVE_DISPUTE, 0, 4, winner=BOB),
            _on(ARBITER, CallType.RESOLVE_DISPUTE, 0, 5, winner=BOB),
        ],
    )
    assert _codes(results) == [None, None, None, None, ErrorCode.INVALID_STATE]
    dispute = post.get_dispute(0)
    assert dispute.resolved and dispute.winner == BOB and dispute.resolved_at == 4
    assert post.ledger.balance_of(CUSTODY_ADDRESS) == 0


def test_cancel_then_fund(registry, scenario_test) -> None:
    post, results = scenario_test(
        "escrow/cancel.json",
        "cancel_then_fund",
        registry,
        [
            _create(ALICE, BOB),
            _on(ALICE, CallType.CANCEL_ESCROW, 0, 2),
            _on(ALICE, CallType.FUND_ESCROW, 0, 3),
        ],
    )
    assert _codes(results) == [None, None, ErrorCode.INVALID_STATE]
    assert post.get_escrow(0).status == EscrowStatus.CANCELLED
    assert post.ledger.balance_of(ALICE) == 10_000_000


def test_failed_call_does_not_stop_block(registry, scenario_test) -> None:
    post, results = scenario_test(
        "escrow/block.json",
        "independent_calls",
        registry,
        [
            _create(ALICE, BOB),
            _on(CAROL, CallType.FUND_ESCROW, 0, 2),
            _on(ALICE, CallType.FUND_ESCROW, 0, 2),
            _on(ALICE, CallType.RELEASE_FUNDS, 7, 3),
        ],
    )
    assert _codes(results) == [None, ErrorCode.UNAUTHORIZED, None, ErrorCode.NOT_FOUND]
    assert post.get_escrow(0).status == EscrowStatus.FUNDED


def test_config_calls(registry, scenario_test) -> None:
    post, results = scenario_test(
        "config/owner.json",
        "owner_updates_config",
        registry,
        [
            Call(OWNER, CallType.SET_FEE_RATE, {"fee_rate": 1_000}, 1),
            Call(OWNER, CallType.SET_FEE_RATE, {"fee_rate": 1_001}, 1),
            Call(ALICE, CallType.SET_ARBITER, {"arbiter": ALICE}, 1),
            Call(OWNER, CallType.SET_ARBITER, {"arbiter": CAROL}, 1),
        ],
    )
    assert _codes(results) == [
        None, ErrorCode.INVALID_CONFIG, ErrorCode.UNAUTHORIZED, None,
    ]
    assert post.get_fee_rate() == 1_000
    assert post.get_arbiter() == CAROL


def test_create_validation(registry, scenario_test) -> None:
    _, results = scenario_test(
        "escrow/create.json",
        "create_validation",
        registry,
        [
            _create(ALICE, BOB, amount=0),
            _create(ALICE, ALICE),
            _create(ALICE, BOB, description="d" * 257),
            _create(ALICE, BOB, amount=5),
        ],
    )
    assert _codes(results) == [
        ErrorCode.INVALID_AMOUNT,
        ErrorCode.UNAUTHORIZED,
        ErrorCode.INVALID_PAYLOAD,
        None,
    ]
    assert results[3].value == 0


@pytest.mark.parametrize(
    "call",
    [
        Call(ALICE, CallType.FUND_ESCROW, {}, 1),
        Call(ALICE, CallType.FUND_ESCROW, {"escrow_id": "0"}, 1),
        Call(ALICE, CallType.FUND_ESCROW, {"escrow_id": True}, 1),
        Call(ALICE, CallType.FUND_ESCROW, {"escrow_id": 0}, -1),
        Call(ALICE, CallType.CREATE_ESCROW, {"amount": 5}, 1),
        Call(ALICE, CallType.CREATE_ESCROW, {"seller": "zz", "amount": 5}, 1),
        Call(ALICE, CallType.CREATE_ESCROW, {"seller": ["zz"], "amount": 5}, 1),
        Call(ARBITER, CallType.RESOLVE_DISPUTE, {"escrow_id": 0, "winner": 7}, 1),
        Call(ALICE, CallType.CREATE_ESCROW, {"seller": BOB, "amount": "5"}, 1),
        Call(ALICE, CallType.CREATE_ESCROW, {"seller": BOB, "amount": 5, "description": 3}, 1),
        Call(ALICE, CallType.INITIATE_DISPUTE, {"escrow_id": 0}, 1),
        Call(ARBITER, CallType.RESOLVE_DISPUTE, {"escrow_id": 0}, 1),
        Call(OWNER, CallType.SET_ARBITER, {}, 1),
        Call(OWNER, CallType.SET_FEE_RATE, {"fee_rate": 2.5}, 1),
        Call(ALICE, CallType.FUND_ESCROW, ["escrow_id", 0], 1),
    ],
)
def test_malformed_payload(registry, call) -> None:
    with pytest.raises(SpecError) as info:
        verify_call(call)
    assert info.value.code == ErrorCode.INVALID_PAYLOAD

    result = apply_call(registry, call)
    assert not result.ok
    assert result.error.code == ErrorCode.INVALID_PAYLOAD
    assert registry.get_next_id() == 0


def test_hex_addresses_accepted(registry) -> None:
    result = apply_call(registry, _create(ALICE, BOB.hex()))
    assert result.ok
    assert registry.get_escrow(0).seller == BOB


def test_unknown_escrow_not_found(registry) -> None:
    result = apply_call(registry, _on(ALICE, CallType.CANCEL_ESCROW, -1, 1))
    assert result.error.code == ErrorCode.NOT_FOUND
