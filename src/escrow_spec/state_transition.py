"""Host call entrypoints for the escrow spec.

The host delivers one verified ``Call`` at a time (caller identity, logical
height, operation payload). ``apply_call`` runs it to completion against an
``EscrowRegistry`` and reports the outcome without raising.
"""

from __future__ import annotations

import logging
from typing import Any, Callable, Optional

from .errors import ErrorCode, SpecError
from .registry import EscrowRegistry
from .types import Address, Call, CallType

logger = logging.getLogger(__name__)

_ESCROW_ID_TYPES = frozenset({
    CallType.FUND_ESCROW,
    CallType.RELEASE_FUNDS,
    CallType.INITIATE_DISPUTE,
    CallType.RESOLVE_DISPUTE,
    CallType.CANCEL_ESCROW,
})


class TransitionResult:
    """Thin wrapper for call results."""

    def __init__(
        self, ok: bool, error: Optional[SpecError] = None, value: Any = None
    ):
        self.ok = ok
        self.error = error
        self.value = value

    @classmethod
    def success(cls, value: Any = None) -> "TransitionResult":
        return cls(True, None, value)

    @classmethod
    def failure(cls, error: SpecError) -> "TransitionResult":
        return cls(False, error)

    def __repr__(self) -> str:
        if self.ok:
            return f"TransitionResult(ok, value={self.value!r})"
        return f"TransitionResult(failed, {self.error})"


def _to_bytes(v: object) -> bytes:
    if isinstance(v, bytes):
        return v
    if isinstance(v, (list, tuple)):
        return bytes(v)
    if isinstance(v, str):
        return bytes.fromhex(v)
    raise SpecError(ErrorCode.INVALID_PAYLOAD, "address must be bytes or hex")


def _require_address(p: dict, key: str) -> Address:
    if key not in p:
        raise SpecError(ErrorCode.INVALID_PAYLOAD, f"missing {key}")
    try:
        return _to_bytes(p[key])
    except (ValueError, TypeError) as exc:
        raise SpecError(ErrorCode.INVALID_PAYLOAD, f"invalid {key}: {exc}") from exc


def _require_int(p: dict, key: str) -> int:
    v = p.get(key)
    if isinstance(v, bool) or not isinstance(v, int):
        raise SpecError(ErrorCode.INVALID_PAYLOAD, f"{key} must be an integer")
    return v


def _require_str(p: dict, key: str, default: Optional[str] = None) -> str:
    v = p.get(key, default)
    if not isinstance(v, str):
        raise SpecError(ErrorCode.INVALID_PAYLOAD, f"{key} must be a string")
    return v


def verify_call(call: Call) -> None:
    """Stateless payload checks for a single call."""
    p = call.payload
    if not isinstance(p, dict):
        raise SpecError(ErrorCode.INVALID_PAYLOAD, "call payload must be dict")
    if call.height < 0:
        raise SpecError(ErrorCode.INVALID_PAYLOAD, "height must be >= 0")

    ct = call.call_type
    if ct in _ESCROW_ID_TYPES:
        _require_int(p, "escrow_id")
    if ct == CallType.CREATE_ESCROW:
        _require_address(p, "seller")
        _require_int(p, "amount")
        _require_str(p, "description", "")
    elif ct == CallType.INITIATE_DISPUTE:
        _require_str(p, "reason")
    elif ct == CallType.RESOLVE_DISPUTE:
        _require_address(p, "winner")
    elif ct == CallType.SET_ARBITER:
        _require_address(p, "arbiter")
    elif ct == CallType.SET_FEE_RATE:
        _require_int(p, "fee_rate")


def _create(reg: EscrowRegistry, call: Call) -> int:
    p = call.payload
    return reg.create_escrow(
        call.caller,
        _require_address(p, "seller"),
        p["amount"],
        p.get("description", ""),
        call.height,
    )


def _fund(reg: EscrowRegistry, call: Call) -> None:
    reg.fund_escrow(call.caller, call.payload["escrow_id"], call.height)


def _release(reg: EscrowRegistry, call: Call) -> None:
    reg.release_funds(call.caller, call.payload["escrow_id"], call.height)


def _dispute(reg: EscrowRegistry, call: Call) -> None:
    p = call.payload
    reg.initiate_dispute(call.caller, p["escrow_id"], p["reason"], call.height)


def _resolve(reg: EscrowRegistry, call: Call) -> None:
    p = call.payload
    reg.resolve_dispute(
        call.caller, p["escrow_id"], _require_address(p, "winner"), call.height
    )


def _cancel(reg: EscrowRegistry, call: Call) -> None:
    reg.cancel_escrow(call.caller, call.payload["escrow_id"], call.height)


def _set_arbiter(reg: EscrowRegistry, call: Call) -> None:
    reg.set_arbiter(call.caller, _require_address(call.payload, "arbiter"))


def _set_fee_rate(reg: EscrowRegistry, call: Call) -> None:
    reg.set_fee_rate(call.caller, call.payload["fee_rate"])


_HANDLERS: dict[CallType, Callable[[EscrowRegistry, Call], Any]] = {
    CallType.CREATE_ESCROW: _create,
    CallType.FUND_ESCROW: _fund,
    CallType.RELEASE_FUNDS: _release,
    CallType.INITIATE_DISPUTE: _dispute,
    CallType.RESOLVE_DISPUTE: _resolve,
    CallType.CANCEL_ESCROW: _cancel,
    CallType.SET_ARBITER: _set_arbiter,
    CallType.SET_FEE_RATE: _set_fee_rate,
}


def apply_call(registry: EscrowRegistry, call: Call) -> TransitionResult:
    """Run a single call.

    Failed-call semantics: the registry validates every guard before writing,
    so a failure leaves escrow, dispute and config state unchanged.
    """
    handler = _HANDLERS.get(call.call_type)
    if handler is None:
        return TransitionResult.failure(
            SpecError(ErrorCode.INVALID_PAYLOAD, f"unsupported call type: {call.call_type}")
        )
    try:
        verify_call(call)
        value = handler(registry, call)
    except SpecError as exc:
        logger.debug(f"{call.call_type.value} at height {call.height} failed: {exc}")
        return TransitionResult.failure(exc)
    return TransitionResult.success(value)


def apply_block(registry: EscrowRegistry, calls: list[Call]) -> list[TransitionResult]:
    """Apply calls in order.

    Calls are independent: a failed call is reported and the block continues.
    """
    return [apply_call(registry, call) for call in calls]
