# src/ytrewards/ledger/window.py
from __future__ import annotations

from ytrewards.ledger.types import AccrualWindow


def accrual_increment(balance: int, last_block: int, block: int, window: AccrualWindow) -> int:
    """Score earned by holding `balance` from `last_block` up to `block`.

    Only the part of the interval at or after `window.start_block` counts:

      - last_block >= start: balance * (block - last_block)
      - last_block <  start < block: balance * (block - start)
      - otherwise: 0

    The caller never passes a `block` past the effective end of the window,
    so the end bound is not checked here. The same rule is used for transfers
    and for the final accrual.
    """
    start = int(window.start_block)
    if last_block >= start:
        return int(balance) * (int(block) - int(last_block))
    if block > start:
        return int(balance) * (int(block) - start)
    return 0


__all__ = ["accrual_increment"]
