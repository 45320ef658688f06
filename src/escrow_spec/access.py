"""Access control and fee policy.

Holds the platform configuration: the immutable owner, the owner-controlled
arbiter and fee rate, and the escrow id counter. Everything here is guarded by
one lock so a payout always sees a single, consistent fee rate.
"""

from __future__ import annotations

import logging
import threading

from .config import BPS_DENOMINATOR, MAX_FEE_RATE_BPS
from .errors import ErrorCode, SpecError
from .types import Address, PlatformConfig

logger = logging.getLogger(__name__)


def calculate_fee(amount: int, fee_rate: int) -> int:
    """Fee in value units: floor(amount * fee_rate / 10000)."""
    return amount * fee_rate // BPS_DENOMINATOR


def split_payout(amount: int, fee_rate: int) -> tuple[int, int]:
    """Return (payout, fee) with payout + fee == amount."""
    fee = calculate_fee(amount, fee_rate)
    return amount - fee, fee


class AccessControl:
    def __init__(self, config: PlatformConfig) -> None:
        if not (0 <= config.fee_rate <= MAX_FEE_RATE_BPS):
            raise SpecError(ErrorCode.INVALID_CONFIG, "fee rate out of range")
        self._config = config
        self._lock = threading.Lock()

    @property
    def config(self) -> PlatformConfig:
        return self._config

    # --- role checks ---

    def is_owner(self, caller: Address) -> bool:
        return caller == self._config.owner

    def is_arbiter(self, caller: Address) -> bool:
        with self._lock:
            return caller == self._config.arbiter

    def require_owner(self, caller: Address) -> None:
        if not self.is_owner(caller):
            raise SpecError(ErrorCode.UNAUTHORIZED, "caller is not the owner")

    def require_arbiter(self, caller: Address) -> None:
        if not self.is_arbiter(caller):
            raise SpecError(ErrorCode.UNAUTHORIZED, "caller is not the arbiter")

    # --- owner operations ---

    def set_arbiter(self, caller: Address, new_arbiter: Address) -> None:
        self.require_owner(caller)
        with self._lock:
            self._config.arbiter = new_arbiter
        logger.info(f"arbiter set to {new_arbiter.hex()}")

    def set_fee_rate(self, caller: Address, new_rate: int) -> None:
        self.require_owner(caller)
        if new_rate < 0 or new_rate > MAX_FEE_RATE_BPS:
            raise SpecError(
                ErrorCode.INVALID_CONFIG,
                f"fee rate {new_rate} outside 0..{MAX_FEE_RATE_BPS} bps",
            )
        with self._lock:
            self._config.fee_rate = new_rate
        logger.info(f"fee rate set to {new_rate} bps")

    # --- reads ---

    def get_owner(self) -> Address:
        return self._config.owner

    def get_arbiter(self) -> Address:
        with self._lock:
            return self._config.arbiter

    def get_fee_rate(self) -> int:
        with self._lock:
            return self._config.fee_rate

    def calculate_fee(self, amount: int) -> int:
        return calculate_fee(amount, self.get_fee_rate())

    def split_payout(self, amount: int) -> tuple[int, int]:
        return split_payout(amount, self.get_fee_rate())

    # --- id allocation ---

    def get_next_id(self) -> int:
        with self._lock:
            return self._config.next_escrow_id

    def allocate_id(self) -> int:
        with self._lock:
            escrow_id = self._config.next_escrow_id
            self._config.next_escrow_id += 1
            return escrow_id
