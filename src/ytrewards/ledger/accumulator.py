# src/ytrewards/ledger/accumulator.py
from __future__ import annotations

"""Time-weighted holding scores.

A single pass over the transfer log keeps one checkpoint per holder:

  - the recipient accrues on its old balance, then the amount is credited
  - the sender accrues on its old balance, then the amount is debited

Mints and burns are transfers from/to SYSTEM_SUPPLY, which has no checkpoint.
After the last event every holder accrues up to the effective end block.

The checkpoint table is owned by one ScoreAccumulator; nothing here is global.
"""

from typing import Dict, Iterable, List, Optional

from ytrewards.errors import ConsistencyError
from ytrewards.ledger.types import SYSTEM_SUPPLY, AccrualWindow, Address, HolderCheckpoint, TransferEvent
from ytrewards.ledger.window import accrual_increment


def order_events(events: Iterable[TransferEvent]) -> List[TransferEvent]:
    """Sort by block ascending; same-block events keep their input order."""
    return sorted(events, key=lambda ev: int(ev.block))


class ScoreAccumulator:
    def __init__(self, *, window: AccrualWindow, latest_block: int) -> None:
        self.window = window
        self.latest_block = int(latest_block)
        self.end_block = window.effective_end(self.latest_block)
        self.checkpoints: Dict[Address, HolderCheckpoint] = {}
        self.minted = 0
        self.burned = 0
        self.events_applied = 0
        self._last_event_block: Optional[int] = None
        self._finalized = False

    def _accrue(self, cp: HolderCheckpoint, block: int) -> None:
        upto = min(int(block), self.end_block)
        if upto > cp.last_block:
            cp.score += accrual_increment(cp.balance, cp.last_block, upto, self.window)
        if block > cp.last_block:
            cp.last_block = int(block)

    def _check_sender(self, ev: TransferEvent) -> None:
        if ev.sender is SYSTEM_SUPPLY:
            return
        cp = self.checkpoints.get(ev.sender)  # type: ignore[arg-type]
        if cp is None:
            raise ConsistencyError(
                "spend_before_receipt",
                "sender_has_no_checkpoint",
                {"address": ev.sender, "block": ev.block, "amount": ev.amount, "instrument": ev.instrument},
            )
        if cp.balance < ev.amount:
            raise ConsistencyError(
                "negative_balance",
                "sender_balance_below_amount",
                {
                    "address": ev.sender,
                    "block": ev.block,
                    "amount": ev.amount,
                    "balance": cp.balance,
                    "instrument": ev.instrument,
                },
            )

    def apply(self, ev: TransferEvent) -> None:
        """Apply one event. Events must arrive in non-decreasing block order.

        The sender is checked against its balance before the recipient is
        credited, so a self-transfer (sender == recipient) of more than the
        current balance is rejected as `negative_balance`.
        """
        if self._finalized:
            raise RuntimeError("accumulator already finalized")

        if ev.block > self.latest_block:
            raise ConsistencyError(
                "event_after_latest_block",
                "event_newer_than_ledger_clock",
                {"block": ev.block, "latest_block": self.latest_block, "instrument": ev.instrument},
            )
        if self._last_event_block is not None and ev.block < self._last_event_block:
            raise ValueError(f"events out of order: block {ev.block} after {self._last_event_block}")

        # Validate before mutating so a rejected event leaves no partial state.
        self._check_sender(ev)

        if ev.recipient is not SYSTEM_SUPPLY:
            cp = self.checkpoints.get(ev.recipient)  # type: ignore[arg-type]
            if cp is None:
                cp = HolderCheckpoint(balance=0, last_block=int(ev.block))
                self.checkpoints[ev.recipient] = cp  # type: ignore[index]
            self._accrue(cp, ev.block)
            cp.balance += ev.amount
        else:
            self.burned += ev.amount

        if ev.sender is not SYSTEM_SUPPLY:
            cp = self.checkpoints[ev.sender]  # type: ignore[index]
            self._accrue(cp, ev.block)
            cp.balance -= ev.amount
        else:
            self.minted += ev.amount

        self._last_event_block = int(ev.block)
        self.events_applied += 1

    def apply_all(self, events: Iterable[TransferEvent]) -> None:
        for ev in order_events(events):
            self.apply(ev)

    def finalize(self) -> Dict[Address, int]:
        """Accrue every holder up to the effective end block and return scores."""
        if not self._finalized:
            for cp in self.checkpoints.values():
                self._accrue(cp, self.end_block)
            self._finalized = True
        return self.scores()

    def scores(self) -> Dict[Address, int]:
        return {addr: int(cp.score) for addr, cp in self.checkpoints.items()}

    def balances(self) -> Dict[Address, int]:
        return {addr: int(cp.balance) for addr, cp in self.checkpoints.items()}

    def circulating_supply(self) -> int:
        return int(self.minted) - int(self.burned)


def accumulate_scores(
    events: Iterable[TransferEvent],
    *,
    window: AccrualWindow,
    latest_block: int,
) -> Dict[Address, int]:
    """Run the full pass (sort, apply, final accrual) and return scores per holder."""
    acc = ScoreAccumulator(window=window, latest_block=latest_block)
    acc.apply_all(events)
    return acc.finalize()


__all__ = ["ScoreAccumulator", "accumulate_scores", "order_events"]
