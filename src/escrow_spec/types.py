"""Core types for the escrow spec.

Addresses are opaque ``bytes`` (32-byte account ids on the host chain).
Heights are logical timestamps supplied by the host for every call.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional

from .config import DEFAULT_FEE_RATE_BPS, FIRST_ESCROW_ID

Address = bytes
Height = int


class EscrowStatus(Enum):
    PENDING = "pending"
    FUNDED = "funded"
    COMPLETED = "completed"
    DISPUTED = "disputed"
    CANCELLED = "cancelled"


class EscrowEvent(Enum):
    FUND = "fund"
    CANCEL = "cancel"
    RELEASE = "release"
    DISPUTE = "dispute"
    RESOLVE = "resolve"


# Forward-only lifecycle; any (status, event) pair missing here is illegal.
TRANSITIONS: dict[tuple[EscrowStatus, EscrowEvent], EscrowStatus] = {
    (EscrowStatus.PENDING, EscrowEvent.FUND): EscrowStatus.FUNDED,
    (EscrowStatus.PENDING, EscrowEvent.CANCEL): EscrowStatus.CANCELLED,
    (EscrowStatus.FUNDED, EscrowEvent.RELEASE): EscrowStatus.COMPLETED,
    (EscrowStatus.FUNDED, EscrowEvent.DISPUTE): EscrowStatus.DISPUTED,
    (EscrowStatus.DISPUTED, EscrowEvent.RESOLVE): EscrowStatus.COMPLETED,
}


@dataclass
class Escrow:
    id: int
    buyer: Address
    seller: Address
    amount: int
    status: EscrowStatus
    description: str
    created_at: Height
    funded_at: Optional[Height] = None
    completed_at: Optional[Height] = None
    cancelled_at: Optional[Height] = None

    def parties(self) -> tuple[Address, Address]:
        return (self.buyer, self.seller)

    def is_party(self, address: Address) -> bool:
        return address == self.buyer or address == self.seller


@dataclass
class Dispute:
    escrow_id: int
    initiated_by: Address
    reason: str
    initiated_at: Height
    resolved: bool = False
    winner: Optional[Address] = None
    resolved_at: Optional[Height] = None


@dataclass
class PlatformConfig:
    owner: Address
    arbiter: Optional[Address] = None
    fee_rate: int = DEFAULT_FEE_RATE_BPS
    next_escrow_id: int = FIRST_ESCROW_ID

    def __post_init__(self) -> None:
        if self.arbiter is None:
            self.arbiter = self.owner


@dataclass
class Settlement:
    """Payout in progress for an escrow whose legs have not all committed."""

    escrow_id: int
    payee: Address
    payout: int
    fee: int
    payout_sent: bool = False
    fee_sent: bool = False

    @property
    def done(self) -> bool:
        return self.payout_sent and self.fee_sent


@dataclass
class AccountState:
    address: Address
    balance: int = 0


# --- Host calls ---


class CallType(Enum):
    CREATE_ESCROW = "create_escrow"
    FUND_ESCROW = "fund_escrow"
    RELEASE_FUNDS = "release_funds"
    INITIATE_DISPUTE = "initiate_dispute"
    RESOLVE_DISPUTE = "resolve_dispute"
    CANCEL_ESCROW = "cancel_escrow"
    SET_ARBITER = "set_arbiter"
    SET_FEE_RATE = "set_fee_rate"


@dataclass
class Call:
    caller: Address
    call_type: CallType
    payload: dict = field(default_factory=dict)
    height: Height = 0
