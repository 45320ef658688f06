"""Canonical state digest implementation (v1)."""
from __future__ import annotations

from typing import Any, Optional

from blake3 import blake3

_STATUS_TAGS = {
    "pending": 0,
    "funded": 1,
    "completed": 2,
    "disputed": 3,
    "cancelled": 4,
}


def _hex_to_bytes(value: str | None) -> bytes:
    if value is None:
        return b""
    if not isinstance(value, str):
        raise TypeError("hex value must be string")
    v = value[2:] if value.startswith(("0x", "0X")) else value
    if v == "":
        return b""
    return bytes.fromhex(v)


def _u64_be(value: int) -> bytes:
    if value < 0:
        raise ValueError("u64 must be non-negative")
    return int(value).to_bytes(8, "big", signed=False)


def _u128_be(value: int) -> bytes:
    if value < 0:
        raise ValueError("u128 must be non-negative")
    return int(value).to_bytes(16, "big", signed=False)


def _var_bytes(data: bytes) -> bytes:
    return _u64_be(len(data)) + data


def _address(value: str | None) -> bytes:
    return _var_bytes(_hex_to_bytes(value))


def _text(value: str) -> bytes:
    return _var_bytes(value.encode("utf-8"))


def _opt_u64(value: Optional[int]) -> bytes:
    if value is None:
        return b"\x00"
    return b"\x01" + _u64_be(int(value))


def _opt_address(value: str | None) -> bytes:
    if value is None:
        return b"\x00"
    return b"\x01" + _address(value)


def _flag(value: bool) -> bytes:
    return b"\x01" if value else b"\x00"


def compute_state_digest(post_state: dict[str, Any]) -> str:
    """Compute state digest v1 from an exported state.

    Fields are encoded in canonical order and hashed with BLAKE3-256.
    """
    cfg = post_state.get("config", {}) if isinstance(post_state, dict) else {}
    buf = bytearray()
    buf += _address(cfg.get("owner"))
    buf += _address(cfg.get("arbiter"))
    buf += _u64_be(int(cfg.get("fee_rate", 0)))
    buf += _u64_be(int(cfg.get("next_escrow_id", 0)))
    buf += _address(post_state.get("custody"))

    escrows = sorted(post_state.get("escrows", []), key=lambda e: int(e["id"]))
    buf += _u64_be(len(escrows))
    for e in escrows:
        status = e.get("status", "")
        if status not in _STATUS_TAGS:
            raise ValueError(f"unknown escrow status: {status!r}")
        buf += _u64_be(int(e["id"]))
        buf += _address(e.get("buyer"))
        buf += _address(e.get("seller"))
        buf += _u128_be(int(e.get("amount", 0)))
        buf += bytes([_STATUS_TAGS[status]])
        buf += _text(e.get("description", ""))
        buf += _u64_be(int(e.get("created_at", 0)))
        for field in ("funded_at", "completed_at", "cancelled_at"):
            buf += _opt_u64(e.get(field))

    disputes = sorted(post_state.get("disputes", []), key=lambda d: int(d["escrow_id"]))
    buf += _u64_be(len(disputes))
    for d in disputes:
        buf += _u64_be(int(d["escrow_id"]))
        buf += _address(d.get("initiated_by"))
        buf += _text(d.get("reason", ""))
        buf += _u64_be(int(d.get("initiated_at", 0)))
        buf += _flag(bool(d.get("resolved", False)))
        buf += _opt_address(d.get("winner"))
        buf += _opt_u64(d.get("resolved_at"))

    settlements = sorted(post_state.get("settlements", []), key=lambda s: int(s["escrow_id"]))
    buf += _u64_be(len(settlements))
    for s in settlements:
        buf += _u64_be(int(s["escrow_id"]))
        buf += _address(s.get("payee"))
        buf += _u128_be(int(s.get("payout", 0)))
        buf += _u128_be(int(s.get("fee", 0)))
        buf += _flag(bool(s.get("payout_sent", False)))
        buf += _flag(bool(s.get("fee_sent", False)))

    accounts = []
    for acc in post_state.get("accounts", []):
        accounts.append((_hex_to_bytes(acc.get("address", "")), acc))
    accounts.sort(key=lambda x: x[0])
    buf += _u64_be(len(accounts))
    for addr, acc in accounts:
        buf += _var_bytes(addr)
        buf += _u128_be(int(acc.get("balance", 0)))

    return blake3(buf).hexdigest()
