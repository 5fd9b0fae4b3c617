# src/ytrewards/pipeline.py
from __future__ import annotations

"""Distribution batch: events -> scores -> allocation -> commitment.

`compute_distribution` is the pure core. `run_distribution` wires in the
collaborators (feed, clock, pool source, sink) resolved from config.
"""

import logging
from dataclasses import dataclass
from fractions import Fraction
from typing import Dict, Iterable, List, Optional, Protocol, Sequence, Union

from ytrewards import metrics
from ytrewards.config import DistributionConfig, validate_distribution_config
from ytrewards.errors import ConfigurationError
from ytrewards.feed import FileEventFeed, FixedPoolSize, PopulationRegistry, StaticLedgerClock
from ytrewards.ledger.accumulator import ScoreAccumulator
from ytrewards.ledger.allocator import DEFAULT_MIN_SHARE, Allocation, allocate_rewards, parse_min_share
from ytrewards.ledger.types import AccrualWindow, Address, TransferEvent, normalize_address
from ytrewards.merkle import Commitment, commit_distribution
from ytrewards.structured_logging import log_event

log = logging.getLogger("ytrewards.pipeline")


class EventFeed(Protocol):
    def fetch_transfers(self, population_id: Optional[str], instruments: Sequence[Address]) -> List[TransferEvent]: ...


class LedgerClock(Protocol):
    def latest_known_block(self) -> int: ...


class PoolSizeSource(Protocol):
    def current_pool_balance(self, population_id: Optional[str]) -> int: ...


class ArtifactSink(Protocol):
    def publish(self, commitment: Commitment) -> object: ...


@dataclass
class Distribution:
    window: AccrualWindow
    latest_block: int
    end_block: int
    scores: Dict[Address, int]
    allocation: Allocation
    commitment: Commitment

    @property
    def root(self) -> str:
        return self.commitment.root


def compute_distribution(
    events: Iterable[TransferEvent],
    *,
    window: AccrualWindow,
    latest_block: int,
    pool_size: int,
    min_share: Union[str, Fraction] = DEFAULT_MIN_SHARE,
) -> Distribution:
    """Pure batch computation; identical inputs give an identical root and proofs."""
    if window.start_block < 0 or (window.end_block is not None and window.start_block > window.end_block):
        raise ConfigurationError(
            "invalid_window",
            "start_block_after_end_block",
            {"start_block": window.start_block, "end_block": window.end_block},
        )
    if int(latest_block) < 0:
        raise ConfigurationError("invalid_block", "latest_block_must_be_non_negative", {"latest_block": latest_block})
    if isinstance(pool_size, bool) or not isinstance(pool_size, int) or pool_size < 0:
        raise ConfigurationError("invalid_pool_size", "must_be_non_negative_int", {"pool_size": repr(pool_size)})
    threshold = parse_min_share(min_share)

    acc = ScoreAccumulator(window=window, latest_block=latest_block)
    acc.apply_all(events)
    scores = acc.finalize()
    log_event(
        log,
        "scores_accumulated",
        events=acc.events_applied,
        holders=len(scores),
        start_block=window.start_block,
        end_block=acc.end_block,
        circulating=str(acc.circulating_supply()),
    )

    allocation = allocate_rewards(scores, pool_size=pool_size, min_share=threshold)
    log_event(
        log,
        "rewards_allocated",
        total_score=str(allocation.total_score),
        pool_size=str(allocation.pool_size),
        leaves=len(allocation.leaves),
        distributed=str(allocation.distributed),
        residual=str(allocation.residual),
    )

    commitment = commit_distribution(allocation.leaves)
    metrics.record_distribution(
        events=acc.events_applied,
        holders=len(scores),
        leaves=len(commitment.proofs),
        end_block=acc.end_block,
        pool_size=allocation.pool_size,
        distributed=allocation.distributed,
    )
    log_event(log, "distribution_committed", root=commitment.root, leaves=len(commitment.proofs))

    return Distribution(
        window=window,
        latest_block=int(latest_block),
        end_block=acc.end_block,
        scores=scores,
        allocation=allocation,
        commitment=commitment,
    )


def resolve_instruments(cfg: DistributionConfig) -> List[Address]:
    instruments = [normalize_address(i) for i in cfg.instruments]
    if cfg.registry_path:
        if not cfg.population_id:
            raise ConfigurationError("invalid_population", "population_id_required_with_registry", {})
        for inst in PopulationRegistry.from_file(cfg.registry_path).resolve_instruments(cfg.population_id):
            if inst not in instruments:
                instruments.append(inst)
        if not instruments:
            raise ConfigurationError(
                "invalid_population",
                "no_instruments_for_population",
                {"population_id": cfg.population_id, "registry_path": cfg.registry_path},
            )
    return instruments


def run_distribution(
    cfg: DistributionConfig,
    *,
    feed: Optional[EventFeed] = None,
    clock: Optional[LedgerClock] = None,
    pool_source: Optional[PoolSizeSource] = None,
    sink: Optional[ArtifactSink] = None,
) -> Distribution:
    """Run one batch from config. Collaborators default to the file-backed ones."""
    validate_distribution_config(cfg)

    instruments = resolve_instruments(cfg)
    if feed is None:
        feed = FileEventFeed(cfg.events_path or "")
    events = feed.fetch_transfers(cfg.population_id, instruments)
    log_event(log, "events_loaded", events=len(events), instruments=instruments, population_id=cfg.population_id)

    if clock is None:
        latest = cfg.latest_block
        if latest is None:
            latest = max((ev.block for ev in events), default=int(cfg.start_block))
        clock = StaticLedgerClock(latest)
    if pool_source is None:
        pool_source = FixedPoolSize(int(cfg.pool_size or 0))

    dist = compute_distribution(
        events,
        window=cfg.window,
        latest_block=clock.latest_known_block(),
        pool_size=pool_source.current_pool_balance(cfg.population_id),
        min_share=cfg.min_share,
    )

    if sink is not None:
        sink.publish(dist.commitment)
    return dist
