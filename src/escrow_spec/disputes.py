"""Dispute ledger.

One dispute per escrow id. A dispute is opened when its escrow moves
FUNDED -> DISPUTED and resolved exactly once by the arbiter. After resolution
the record never changes again.
"""

from __future__ import annotations

from copy import deepcopy
from typing import Dict, Iterable, Optional

from .config import MAX_REASON_LEN
from .errors import ErrorCode, SpecError
from .types import Address, Dispute, Height


class DisputeLedger:
    def __init__(self, disputes: Iterable[Dispute] = ()) -> None:
        self._disputes: Dict[int, Dispute] = {d.escrow_id: d for d in disputes}

    def __contains__(self, escrow_id: int) -> bool:
        return escrow_id in self._disputes

    def __len__(self) -> int:
        return len(self._disputes)

    def get(self, escrow_id: int) -> Optional[Dispute]:
        dispute = self._disputes.get(escrow_id)
        return deepcopy(dispute) if dispute is not None else None

    def all(self) -> list[Dispute]:
        return [deepcopy(self._disputes[k]) for k in sorted(self._disputes)]

    # --- OPEN ---

    def check_openable(self, escrow_id: int, reason: str) -> None:
        if len(reason) > MAX_REASON_LEN:
            raise SpecError(ErrorCode.INVALID_PAYLOAD, "dispute reason too long")
        if escrow_id in self._disputes:
            raise SpecError(ErrorCode.INVALID_STATE, "dispute already open for escrow")

    def open(self, escrow_id: int, initiator: Address, reason: str, now: Height) -> Dispute:
        self.check_openable(escrow_id, reason)
        dispute = Dispute(
            escrow_id=escrow_id,
            initiated_by=initiator,
            reason=reason,
            initiated_at=now,
        )
        self._disputes[escrow_id] = dispute
        return deepcopy(dispute)

    # --- RESOLVE ---

    def check_resolvable(
        self, escrow_id: int, winner: Address, parties: tuple[Address, Address]
    ) -> None:
        dispute = self._disputes.get(escrow_id)
        if dispute is None:
            raise SpecError(ErrorCode.NOT_FOUND, "dispute not found")
        if dispute.resolved:
            raise SpecError(ErrorCode.INVALID_STATE, "dispute already resolved")
        if winner not in parties:
            raise SpecError(ErrorCode.UNAUTHORIZED, "winner must be buyer or seller")

    def resolve(
        self,
        escrow_id: int,
        winner: Address,
        parties: tuple[Address, Address],
        now: Height,
    ) -> Dispute:
        self.check_resolvable(escrow_id, winner, parties)
        dispute = self._disputes[escrow_id]
        dispute.resolved = True
        dispute.winner = winner
        dispute.resolved_at = now
        return deepcopy(dispute)
