"""Deterministic named addresses for tests and vectors."""

from __future__ import annotations

from blake3 import blake3

from .types import Address


def address_for(name: str) -> Address:
    """32-byte address derived from a human-readable account name."""
    return blake3(f"escrow-spec/account/{name}".encode()).digest()


# Named constants
OWNER = address_for("owner")
ARBITER = address_for("arbiter")
ALICE = address_for("alice")
BOB = address_for("bob")
CAROL = address_for("carol")
DAVE = address_for("dave")
EVE = address_for("eve")

NAMES: dict[Address, str] = {
    OWNER: "owner",
    ARBITER: "arbiter",
    ALICE: "alice",
    BOB: "bob",
    CAROL: "carol",
    DAVE: "dave",
    EVE: "eve",
}


def resolve_name(value: str) -> Address:
    """Accept either a known account name or a hex address."""
    for addr, name in NAMES.items():
        if name == value:
            return addr
    return bytes.fromhex(value)
