"""Host ledger model.

The escrow core never holds value itself. It asks the host ledger to move
value between accounts, one transfer at a time. Each transfer is atomic on its
own; nothing is promised across two transfers.
"""

from __future__ import annotations

import threading
from typing import Dict, Iterable, Protocol, runtime_checkable

from blake3 import blake3

from .config import U128_MAX
from .errors import ErrorCode, SpecError
from .types import AccountState, Address

# Account that holds funded escrows until payout.
CUSTODY_ADDRESS: Address = blake3(b"escrow-spec/custody").digest()


@runtime_checkable
class Ledger(Protocol):
    def transfer(self, sender: Address, recipient: Address, amount: int) -> None:
        """Move ``amount`` from ``sender`` to ``recipient``.

        Raises SpecError(TRANSFER_FAILED) when the host declines the transfer.
        """
        ...

    def balance_of(self, address: Address) -> int:
        ...


def apply_balance_change(balance: int, delta: int) -> int:
    """Apply +/- balance with u128 bounds."""
    new_balance = balance + delta
    if new_balance < 0:
        raise SpecError(ErrorCode.TRANSFER_FAILED, "insufficient balance")
    if new_balance > U128_MAX:
        raise SpecError(ErrorCode.TRANSFER_FAILED, "balance overflow")
    return new_balance


class InMemoryLedger:
    """Reference host ledger backed by a dict of AccountState."""

    def __init__(self, accounts: Iterable[AccountState] = ()) -> None:
        self.accounts: Dict[Address, AccountState] = {}
        self._lock = threading.Lock()
        for account in accounts:
            self.accounts[account.address] = AccountState(
                address=account.address, balance=account.balance
            )

    def credit(self, address: Address, amount: int) -> None:
        """Mint ``amount`` into ``address`` (genesis allocation)."""
        with self._lock:
            account = self._account(address)
            account.balance = apply_balance_change(account.balance, amount)

    def balance_of(self, address: Address) -> int:
        account = self.accounts.get(address)
        return account.balance if account is not None else 0

    def transfer(self, sender: Address, recipient: Address, amount: int) -> None:
        if amount <= 0:
            raise SpecError(ErrorCode.TRANSFER_FAILED, "transfer amount must be > 0")
        if sender == recipient:
            raise SpecError(ErrorCode.TRANSFER_FAILED, "sender cannot be recipient")

        with self._lock:
            src = self.accounts.get(sender)
            if src is None:
                raise SpecError(ErrorCode.TRANSFER_FAILED, "sender not found")
            dst = self.accounts.get(recipient)
            dst_balance = dst.balance if dst is not None else 0

            # Compute both sides before writing either.
            new_src = apply_balance_change(src.balance, -amount)
            new_dst = apply_balance_change(dst_balance, amount)

            src.balance = new_src
            self._account(recipient).balance = new_dst

    def total_supply(self) -> int:
        return sum(a.balance for a in self.accounts.values())

    def _account(self, address: Address) -> AccountState:
        account = self.accounts.get(address)
        if account is None:
            account = AccountState(address=address, balance=0)
            self.accounts[address] = account
        return account
