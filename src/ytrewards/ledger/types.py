# src/ytrewards/ledger/types.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Optional, Union

from eth_utils import is_address, to_checksum_address

Address = str

ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"


class SystemSupply:
    """Tagged value for supply creation (as `from`) and destruction (as `to`).

    There is exactly one instance, `SYSTEM_SUPPLY`. It never holds a balance
    and never accrues a score.
    """

    _instance: Optional["SystemSupply"] = None

    def __new__(cls) -> "SystemSupply":
        if cls._instance is None:
            cls._instance = super().__new__(cls)
        return cls._instance

    def __repr__(self) -> str:
        return "SYSTEM_SUPPLY"

    def __reduce__(self):
        return (SystemSupply, ())


SYSTEM_SUPPLY = SystemSupply()

Party = Union[Address, SystemSupply]


def normalize_address(value: str) -> Address:
    """Return the EIP-55 checksum form of `value`.

    Raises:
        ValueError: if `value` is not a 20-byte hex address
    """
    s = str(value or "").strip()
    if not is_address(s.lower()):
        raise ValueError(f"invalid address: {value!r}")
    return to_checksum_address(s)


def to_party(value: str) -> Party:
    """Map an input address to a party; the zero address becomes SYSTEM_SUPPLY."""
    addr = normalize_address(value)
    if addr == ZERO_ADDRESS:
        return SYSTEM_SUPPLY
    return addr


@dataclass(frozen=True)
class TransferEvent:
    sender: Party
    recipient: Party
    amount: int
    block: int
    instrument: Optional[Address] = None

    def __post_init__(self) -> None:
        # Holder identity is the checksum form; the zero address is SYSTEM_SUPPLY.
        for name in ("sender", "recipient"):
            party = getattr(self, name)
            if party is not SYSTEM_SUPPLY:
                if not isinstance(party, str):
                    raise ValueError(f"{name} must be an address or SYSTEM_SUPPLY; got: {party!r}")
                object.__setattr__(self, name, to_party(party))
        if self.instrument is not None:
            object.__setattr__(self, "instrument", normalize_address(self.instrument))
        if isinstance(self.amount, bool) or not isinstance(self.amount, int) or self.amount < 0:
            raise ValueError(f"amount must be a non-negative int; got: {self.amount!r}")
        if isinstance(self.block, bool) or not isinstance(self.block, int) or self.block < 0:
            raise ValueError(f"block must be a non-negative int; got: {self.block!r}")

    @property
    def is_mint(self) -> bool:
        return self.sender is SYSTEM_SUPPLY

    @property
    def is_burn(self) -> bool:
        return self.recipient is SYSTEM_SUPPLY


@dataclass
class HolderCheckpoint:
    """Running state for one holder.

    `balance` is the true instrument balance as of `last_block`.
    `score` only ever grows.
    """

    balance: int
    last_block: int
    score: int = 0


@dataclass(frozen=True)
class AccrualWindow:
    start_block: int = 0
    end_block: Optional[int] = None  # None = unbounded

    def effective_end(self, latest_block: int) -> int:
        if self.end_block is None:
            return int(latest_block)
        return min(int(self.end_block), int(latest_block))
