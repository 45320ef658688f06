"""Escrow registry.

Owns escrow records and drives their lifecycle:

    PENDING  --fund-->     FUNDED     (buyer; amount moves buyer -> custody)
    PENDING  --cancel-->   CANCELLED  (buyer)
    FUNDED   --release-->  COMPLETED  (buyer; amount - fee -> seller, fee -> owner)
    FUNDED   --dispute-->  DISPUTED   (buyer or seller; opens a dispute)
    DISPUTED --resolve-->  COMPLETED  (arbiter; amount - fee -> winner, fee -> owner)

Every operation validates in the same order: unknown escrow (NOT_FOUND),
caller role (UNAUTHORIZED), lifecycle (INVALID_STATE), then operation guards.
Nothing is written until every check and every transfer has succeeded.
"""

from __future__ import annotations

import logging
import threading
from copy import deepcopy
from typing import Dict, Iterable, Optional

from .access import AccessControl
from .account_model import CUSTODY_ADDRESS, Ledger
from .config import MAX_DESCRIPTION_LEN, U128_MAX
from .disputes import DisputeLedger
from .errors import ErrorCode, SpecError
from .types import (
    TRANSITIONS,
    Address,
    Dispute,
    Escrow,
    EscrowEvent,
    EscrowStatus,
    Height,
    PlatformConfig,
    Settlement,
)

logger = logging.getLogger(__name__)


def _next_status(escrow: Escrow, event: EscrowEvent) -> EscrowStatus:
    target = TRANSITIONS.get((escrow.status, event))
    if target is None:
        raise SpecError(
            ErrorCode.INVALID_STATE,
            f"cannot {event.value} escrow {escrow.id} in status {escrow.status.value}",
        )
    return target


class EscrowRegistry:
    """Escrow state machine over an injected config and host ledger.

    Usage:
        registry = EscrowRegistry(PlatformConfig(owner=OWNER), ledger)
        eid = registry.create_escrow(BUYER, SELLER, 1_000_000, "logo design", now=1)
        registry.fund_escrow(BUYER, eid, now=2)
        registry.release_funds(BUYER, eid, now=3)
    """

    def __init__(
        self,
        config: PlatformConfig,
        ledger: Ledger,
        custody: Address = CUSTODY_ADDRESS,
        escrows: Iterable[Escrow] = (),
        disputes: Iterable[Dispute] = (),
        settlements: Iterable[Settlement] = (),
    ) -> None:
        self.access = AccessControl(config)
        self.disputes = DisputeLedger(disputes)
        self.ledger = ledger
        self.custody = custody
        self._escrows: Dict[int, Escrow] = {e.id: e for e in escrows}
        self._settlements: Dict[int, Settlement] = {s.escrow_id: s for s in settlements}
        self._locks: Dict[int, threading.Lock] = {}
        self._locks_guard = threading.Lock()
        self._check_loaded()

    # --- CREATE ---

    def create_escrow(
        self,
        caller: Address,
        seller: Address,
        amount: int,
        description: str,
        now: Height,
    ) -> int:
        if isinstance(amount, bool) or not isinstance(amount, int):
            raise SpecError(ErrorCode.INVALID_AMOUNT, "escrow amount must be an integer")
        if amount <= 0:
            raise SpecError(ErrorCode.INVALID_AMOUNT, "escrow amount must be > 0")
        if amount > U128_MAX:
            raise SpecError(ErrorCode.INVALID_AMOUNT, "escrow amount exceeds u128 max")
        if caller == seller:
            raise SpecError(ErrorCode.UNAUTHORIZED, "buyer cannot be seller")
        if len(description) > MAX_DESCRIPTION_LEN:
            raise SpecError(ErrorCode.INVALID_PAYLOAD, "description too long")

        escrow_id = self.access.allocate_id()
        self._escrows[escrow_id] = Escrow(
            id=escrow_id,
            buyer=caller,
            seller=seller,
            amount=amount,
            status=EscrowStatus.PENDING,
            description=description,
            created_at=now,
        )
        logger.info(f"escrow {escrow_id} created: amount={amount}")
        return escrow_id

    # --- FUND ---

    def fund_escrow(self, caller: Address, escrow_id: int, now: Height) -> None:
        with self._lock_for(escrow_id):
            escrow = self._get(escrow_id)
            if caller != escrow.buyer:
                raise SpecError(ErrorCode.UNAUTHORIZED, "only the buyer can fund")
            target = _next_status(escrow, EscrowEvent.FUND)

            try:
                self.ledger.transfer(escrow.buyer, self.custody, escrow.amount)
            except SpecError as exc:
                logger.warning(f"escrow {escrow_id} funding transfer failed: {exc}")
                raise

            escrow.status = target
            escrow.funded_at = now
            logger.info(f"escrow {escrow_id} funded")

    # --- CANCEL ---

    def cancel_escrow(self, caller: Address, escrow_id: int, now: Height) -> None:
        with self._lock_for(escrow_id):
            escrow = self._get(escrow_id)
            if caller != escrow.buyer:
                raise SpecError(ErrorCode.UNAUTHORIZED, "only the buyer can cancel")
            escrow.status = _next_status(escrow, EscrowEvent.CANCEL)
            escrow.cancelled_at = now
            logger.info(f"escrow {escrow_id} cancelled")

    # --- RELEASE ---

    def release_funds(self, caller: Address, escrow_id: int, now: Height) -> None:
        with self._lock_for(escrow_id):
            escrow = self._get(escrow_id)
            if caller != escrow.buyer:
                raise SpecError(ErrorCode.UNAUTHORIZED, "only the buyer can release")
            target = _next_status(escrow, EscrowEvent.RELEASE)

            settlement = self._settle(escrow, escrow.seller)

            escrow.status = target
            escrow.completed_at = now
            logger.info(
                f"escrow {escrow_id} released: payout={settlement.payout} fee={settlement.fee}"
            )

    # --- DISPUTE ---

    def initiate_dispute(
        self, caller: Address, escrow_id: int, reason: str, now: Height
    ) -> None:
        with self._lock_for(escrow_id):
            escrow = self._get(escrow_id)
            if not escrow.is_party(caller):
                raise SpecError(ErrorCode.UNAUTHORIZED, "only buyer or seller can dispute")
            target = _next_status(escrow, EscrowEvent.DISPUTE)
            if escrow_id in self._settlements:
                raise SpecError(ErrorCode.INVALID_STATE, "payout already in progress")

            self.disputes.open(escrow_id, caller, reason, now)

            escrow.status = target
            logger.info(f"escrow {escrow_id} disputed by {caller.hex()}")

    # --- RESOLVE ---

    def resolve_dispute(
        self, caller: Address, escrow_id: int, winner: Address, now: Height
    ) -> None:
        with self._lock_for(escrow_id):
            escrow = self._get(escrow_id)
            self.access.require_arbiter(caller)
            target = _next_status(escrow, EscrowEvent.RESOLVE)
            self.disputes.check_resolvable(escrow_id, winner, escrow.parties())

            settlement = self._settle(escrow, winner)

            self.disputes.resolve(escrow_id, winner, escrow.parties(), now)
            escrow.status = target
            escrow.completed_at = now
            logger.info(
                f"escrow {escrow_id} resolved for {winner.hex()}: "
                f"payout={settlement.payout} fee={settlement.fee}"
            )

    # --- CONFIG ---

    def set_arbiter(self, caller: Address, new_arbiter: Address) -> None:
        self.access.set_arbiter(caller, new_arbiter)

    def set_fee_rate(self, caller: Address, new_rate: int) -> None:
        self.access.set_fee_rate(caller, new_rate)

    # --- READS ---

    def get_escrow(self, escrow_id: int) -> Optional[Escrow]:
        escrow = self._escrows.get(escrow_id)
        return deepcopy(escrow) if escrow is not None else None

    def get_dispute(self, escrow_id: int) -> Optional[Dispute]:
        return self.disputes.get(escrow_id)

    def get_next_id(self) -> int:
        return self.access.get_next_id()

    def get_arbiter(self) -> Address:
        return self.access.get_arbiter()

    def get_owner(self) -> Address:
        return self.access.get_owner()

    def get_fee_rate(self) -> int:
        return self.access.get_fee_rate()

    def calculate_fee(self, amount: int) -> int:
        return self.access.calculate_fee(amount)

    def escrows_for(self, address: Address) -> list[Escrow]:
        """Escrows where ``address`` is buyer or seller, oldest first."""
        return [
            deepcopy(self._escrows[k])
            for k in sorted(self._escrows)
            if self._escrows[k].is_party(address)
        ]

    def all_escrows(self) -> list[Escrow]:
        return [deepcopy(self._escrows[k]) for k in sorted(self._escrows)]

    def pending_settlement(self, escrow_id: int) -> Optional[Settlement]:
        settlement = self._settlements.get(escrow_id)
        return deepcopy(settlement) if settlement is not None else None

    def all_settlements(self) -> list[Settlement]:
        return [deepcopy(self._settlements[k]) for k in sorted(self._settlements)]

    # --- internals ---

    def _check_loaded(self) -> None:
        """Reject restored records that contradict each other or the id counter."""
        next_id = self.access.get_next_id()
        for escrow_id, escrow in self._escrows.items():
            if not 0 <= escrow_id < next_id:
                raise SpecError(
                    ErrorCode.INVALID_CONFIG,
                    f"escrow {escrow_id} not below next_escrow_id {next_id}",
                )
            if escrow.status == EscrowStatus.DISPUTED and escrow_id not in self.disputes:
                raise SpecError(ErrorCode.INVALID_STATE, f"escrow {escrow_id} disputed without a dispute")

        for dispute in self.disputes.all():
            escrow = self._escrows.get(dispute.escrow_id)
            if escrow is None:
                raise SpecError(ErrorCode.NOT_FOUND, f"dispute for unknown escrow {dispute.escrow_id}")
            expected = EscrowStatus.COMPLETED if dispute.resolved else EscrowStatus.DISPUTED
            if escrow.status != expected:
                raise SpecError(
                    ErrorCode.INVALID_STATE,
                    f"dispute on escrow {escrow.id} does not match status {escrow.status.value}",
                )
            if not escrow.is_party(dispute.initiated_by):
                raise SpecError(ErrorCode.INVALID_STATE, f"dispute on escrow {escrow.id} opened by a non-party")
            if dispute.resolved and (dispute.winner is None or not escrow.is_party(dispute.winner)):
                raise SpecError(ErrorCode.INVALID_STATE, f"dispute on escrow {escrow.id} won by a non-party")

        for settlement in self._settlements.values():
            escrow = self._escrows.get(settlement.escrow_id)
            if escrow is None or escrow.status not in (EscrowStatus.FUNDED, EscrowStatus.DISPUTED):
                raise SpecError(
                    ErrorCode.INVALID_STATE,
                    f"settlement for escrow {settlement.escrow_id} has no open escrow",
                )

    def _get(self, escrow_id: int) -> Escrow:
        escrow = self._escrows.get(escrow_id)
        if escrow is None:
            raise SpecError(ErrorCode.NOT_FOUND, f"escrow {escrow_id} not found")
        return escrow

    def _lock_for(self, escrow_id: int) -> threading.Lock:
        if escrow_id not in self._escrows:
            raise SpecError(ErrorCode.NOT_FOUND, f"escrow {escrow_id} not found")
        with self._locks_guard:
            lock = self._locks.get(escrow_id)
            if lock is None:
                lock = threading.Lock()
                self._locks[escrow_id] = lock
            return lock

    def _settle(self, escrow: Escrow, payee: Address) -> Settlement:
        """Send the payout and fee legs for ``escrow``.

        Legs already committed by an earlier attempt are skipped. If a leg
        fails after another has committed, the settlement is journalled so a
        resubmission finishes it with the same payee, payout and fee.
        """
        settlement = self._settlements.get(escrow.id)
        if settlement is None:
            payout, fee = self.access.split_payout(escrow.amount)
            settlement = Settlement(
                escrow_id=escrow.id,
                payee=payee,
                payout=payout,
                fee=fee,
                payout_sent=payout == 0,
                fee_sent=fee == 0,
            )
        elif settlement.payee != payee:
            raise SpecError(
                ErrorCode.INVALID_STATE,
                f"escrow {escrow.id} payout already started for another payee",
            )

        try:
            if not settlement.payout_sent:
                self.ledger.transfer(self.custody, settlement.payee, settlement.payout)
                settlement.payout_sent = True
            if not settlement.fee_sent:
                self.ledger.transfer(self.custody, self.access.get_owner(), settlement.fee)
                settlement.fee_sent = True
        except SpecError as exc:
            logger.warning(f"escrow {escrow.id} payout transfer failed: {exc}")
            raise
        finally:
            if settlement.done:
                self._settlements.pop(escrow.id, None)
            elif _any_leg_sent(settlement):
                self._settlements[escrow.id] = settlement

        return settlement


def _any_leg_sent(settlement: Settlement) -> bool:
    return (settlement.payout_sent and settlement.payout > 0) or (
        settlement.fee_sent and settlement.fee > 0
    )
