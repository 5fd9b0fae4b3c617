# src/ytrewards/ledger/allocator.py
from __future__ import annotations

from dataclasses import dataclass, field
from fractions import Fraction
from typing import Any, Dict, List, Mapping, Union

from ytrewards.errors import ConfigurationError
from ytrewards.ledger.types import Address

DEFAULT_MIN_SHARE = "0.001"


@dataclass(frozen=True)
class RewardShare:
    share: Fraction
    amount: int


@dataclass(frozen=True)
class DistributionLeaf:
    address: Address
    amount: int


@dataclass
class Allocation:
    pool_size: int
    total_score: int
    shares: Dict[Address, RewardShare] = field(default_factory=dict)
    leaves: List[DistributionLeaf] = field(default_factory=list)

    @property
    def distributed(self) -> int:
        return sum(int(leaf.amount) for leaf in self.leaves)

    @property
    def residual(self) -> int:
        return int(self.pool_size) - self.distributed

    @property
    def is_empty(self) -> bool:
        return not self.leaves


def parse_min_share(value: Union[str, int, float, Fraction, Any]) -> Fraction:
    """Parse a threshold exactly ("0.001" -> Fraction(1, 1000)).

    Floats are routed through their repr so 0.001 does not become a binary
    approximation.
    """
    try:
        if isinstance(value, Fraction):
            frac = value
        elif isinstance(value, float):
            frac = Fraction(repr(value))
        else:
            frac = Fraction(str(value).strip())
    except (ValueError, ZeroDivisionError) as e:
        raise ConfigurationError("invalid_min_share", "not_a_number", {"min_share": str(value)}) from e

    if frac < 0 or frac >= 1:
        raise ConfigurationError("invalid_min_share", "must_be_in_[0,1)", {"min_share": str(value)})
    return frac


def _check_pool_size(pool_size: Any) -> int:
    if isinstance(pool_size, bool) or not isinstance(pool_size, int) or pool_size < 0:
        raise ConfigurationError("invalid_pool_size", "must_be_non_negative_int", {"pool_size": repr(pool_size)})
    return int(pool_size)


def allocate_rewards(
    scores: Mapping[Address, int],
    *,
    pool_size: int,
    min_share: Union[str, Fraction] = DEFAULT_MIN_SHARE,
) -> Allocation:
    """Split `pool_size` units pro rata to score.

    Holders at or below `min_share` get nothing and their part is not
    redistributed. Amounts are floored, so the total never exceeds the pool;
    every holder above the threshold gets a leaf, even one floored to 0.
    A zero total score yields an empty allocation.
    """
    pool = _check_pool_size(pool_size)
    threshold = parse_min_share(min_share)

    total = 0
    for addr, score in scores.items():
        s = int(score)
        if s < 0:
            raise ValueError(f"negative score for {addr}: {s}")
        total += s

    alloc = Allocation(pool_size=pool, total_score=total)
    if total == 0:
        return alloc

    for addr in sorted(scores.keys()):
        score = int(scores[addr])
        share = Fraction(score, total)
        if share <= threshold:
            alloc.shares[addr] = RewardShare(share=share, amount=0)
            continue
        amount = (score * pool) // total
        alloc.shares[addr] = RewardShare(share=share, amount=amount)
        alloc.leaves.append(DistributionLeaf(address=addr, amount=amount))

    return alloc


__all__ = [
    "Allocation",
    "DEFAULT_MIN_SHARE",
    "DistributionLeaf",
    "RewardShare",
    "allocate_rewards",
    "parse_min_share",
]
