"""Helpers to serialize/deserialize escrow state and calls for fixtures."""

from __future__ import annotations

from typing import Any, Optional

from .account_model import CUSTODY_ADDRESS, InMemoryLedger
from .config import DEFAULT_FEE_RATE_BPS
from .registry import EscrowRegistry
from .state_transition import TransitionResult
from .types import (
    AccountState,
    Call,
    CallType,
    Dispute,
    Escrow,
    EscrowStatus,
    PlatformConfig,
    Settlement,
)

# Payload keys that carry addresses.
_ADDRESS_KEYS = ("seller", "winner", "arbiter")


def _hex_to_bytes(v: str) -> bytes:
    return bytes.fromhex(v)


def _bytes_to_hex(v: bytes) -> str:
    return v.hex()


def _opt_hex(v: Optional[bytes]) -> Optional[str]:
    return _bytes_to_hex(v) if v is not None else None


def _opt_bytes(v: Optional[str]) -> Optional[bytes]:
    return _hex_to_bytes(v) if v is not None else None


def escrow_to_json(e: Escrow) -> dict[str, Any]:
    return {
        "id": e.id,
        "buyer": _bytes_to_hex(e.buyer),
        "seller": _bytes_to_hex(e.seller),
        "amount": e.amount,
        "status": e.status.value,
        "description": e.description,
        "created_at": e.created_at,
        "funded_at": e.funded_at,
        "completed_at": e.completed_at,
        "cancelled_at": e.cancelled_at,
    }


def escrow_from_json(d: dict[str, Any]) -> Escrow:
    return Escrow(
        id=int(d["id"]),
        buyer=_hex_to_bytes(d["buyer"]),
        seller=_hex_to_bytes(d["seller"]),
        amount=int(d["amount"]),
        status=EscrowStatus(d["status"]),
        description=d.get("description", ""),
        created_at=int(d.get("created_at", 0)),
        funded_at=d.get("funded_at"),
        completed_at=d.get("completed_at"),
        cancelled_at=d.get("cancelled_at"),
    )


def dispute_to_json(d: Dispute) -> dict[str, Any]:
    return {
        "escrow_id": d.escrow_id,
        "initiated_by": _bytes_to_hex(d.initiated_by),
        "reason": d.reason,
        "initiated_at": d.initiated_at,
        "resolved": d.resolved,
        "winner": _opt_hex(d.winner),
        "resolved_at": d.resolved_at,
    }


def dispute_from_json(d: dict[str, Any]) -> Dispute:
    return Dispute(
        escrow_id=int(d["escrow_id"]),
        initiated_by=_hex_to_bytes(d["initiated_by"]),
        reason=d.get("reason", ""),
        initiated_at=int(d.get("initiated_at", 0)),
        resolved=bool(d.get("resolved", False)),
        winner=_opt_bytes(d.get("winner")),
        resolved_at=d.get("resolved_at"),
    )


def settlement_to_json(s: Settlement) -> dict[str, Any]:
    return {
        "escrow_id": s.escrow_id,
        "payee": _bytes_to_hex(s.payee),
        "payout": s.payout,
        "fee": s.fee,
        "payout_sent": s.payout_sent,
        "fee_sent": s.fee_sent,
    }


def settlement_from_json(d: dict[str, Any]) -> Settlement:
    return Settlement(
        escrow_id=int(d["escrow_id"]),
        payee=_hex_to_bytes(d["payee"]),
        payout=int(d["payout"]),
        fee=int(d["fee"]),
        payout_sent=bool(d.get("payout_sent", False)),
        fee_sent=bool(d.get("fee_sent", False)),
    )


def state_to_json(registry: EscrowRegistry) -> dict[str, Any]:
    """Export the registry, its config and (when in-memory) the host ledger."""
    result: dict[str, Any] = {
        "config": {
            "owner": _bytes_to_hex(registry.get_owner()),
            "arbiter": _bytes_to_hex(registry.get_arbiter()),
            "fee_rate": registry.get_fee_rate(),
            "next_escrow_id": registry.get_next_id(),
        },
        "custody": _bytes_to_hex(registry.custody),
        "escrows": [escrow_to_json(e) for e in registry.all_escrows()],
        "disputes": [dispute_to_json(d) for d in registry.disputes.all()],
    }

    settlements = registry.all_settlements()
    if settlements:
        result["settlements"] = [settlement_to_json(s) for s in settlements]

    ledger = registry.ledger
    if isinstance(ledger, InMemoryLedger):
        result["accounts"] = [
            {"address": _bytes_to_hex(a.address), "balance": a.balance}
            for a in sorted(ledger.accounts.values(), key=lambda a: a.address)
        ]

    return result


def state_from_json(data: dict[str, Any]) -> EscrowRegistry:
    """Build a registry over a fresh InMemoryLedger from exported state."""
    cfg = data.get("config", {})
    escrows = [escrow_from_json(e) for e in data.get("escrows", [])]
    # Without a recorded counter, resume after the highest restored id.
    default_next_id = max((e.id for e in escrows), default=-1) + 1
    config = PlatformConfig(
        owner=_hex_to_bytes(cfg["owner"]),
        arbiter=_opt_bytes(cfg.get("arbiter")),
        fee_rate=int(cfg.get("fee_rate", DEFAULT_FEE_RATE_BPS)),
        next_escrow_id=int(cfg.get("next_escrow_id", default_next_id)),
    )
    ledger = InMemoryLedger(
        AccountState(address=_hex_to_bytes(a["address"]), balance=int(a.get("balance", 0)))
        for a in data.get("accounts", [])
    )
    custody = data.get("custody")
    return EscrowRegistry(
        config,
        ledger,
        custody=_hex_to_bytes(custody) if custody else CUSTODY_ADDRESS,
        escrows=escrows,
        disputes=[dispute_from_json(d) for d in data.get("disputes", [])],
        settlements=[settlement_from_json(s) for s in data.get("settlements", [])],
    )


def call_to_json(call: Call) -> dict[str, Any]:
    payload: dict[str, Any] = {}
    for k, v in call.payload.items():
        payload[k] = _bytes_to_hex(v) if isinstance(v, bytes) else v
    return {
        "caller": _bytes_to_hex(call.caller),
        "type": call.call_type.value,
        "height": call.height,
        "payload": payload,
    }


def call_from_json(d: dict[str, Any]) -> Call:
    payload = dict(d.get("payload", {}))
    for k in _ADDRESS_KEYS:
        if isinstance(payload.get(k), str):
            payload[k] = _hex_to_bytes(payload[k])
    return Call(
        caller=_hex_to_bytes(d["caller"]),
        call_type=CallType(d["type"]),
        payload=payload,
        height=int(d.get("height", 0)),
    )


def result_to_json(result: TransitionResult) -> dict[str, Any]:
    return {
        "ok": result.ok,
        "error": result.error.code.name if result.error else None,
        "value": result.value,
    }
