from __future__ import annotations

import os
import random
import subprocess
import sys
from pathlib import Path

import pytest

from ytrewards import metrics
from ytrewards.config import load_distribution_config
from ytrewards.errors import ConfigurationError, ConsistencyError
from ytrewards.ledger.types import AccrualWindow
from ytrewards.merkle import verify_proof
from ytrewards.pipeline import compute_distribution, run_distribution
from ytrewards.testing.events import (
    ADAPTER,
    ALICE,
    BOB,
    CAROL,
    YT_A,
    YT_B,
    mint,
    transfer_record,
    write_transfer_log,
    xfer,
)

SRC = Path(__file__).resolve().parents[1] / "src"


def _events():
    return [
        mint(ALICE, 600, 10),
        mint(BOB, 300, 20),
        xfer(ALICE, CAROL, 100, 40),
        mint(CAROL, 1, 90),
    ]


def test_compute_distribution_end_to_end() -> None:
    dist = compute_distribution(_events(), window=AccrualWindow(0, 100), latest_block=120, pool_size=1_000_000)
    assert dist.end_block == 100
    assert dist.scores == {
        ALICE: 600 * 30 + 500 * 60,
        BOB: 300 * 80,
        CAROL: 100 * 50 + 101 * 10,
    }
    total = sum(dist.scores.values())
    for leaf in dist.allocation.leaves:
        assert leaf.amount == dist.scores[leaf.address] * 1_000_000 // total
        claim = dist.commitment.proofs[leaf.address]
        assert verify_proof(dist.root, leaf.address, claim.amount, claim.proof)
    assert dist.allocation.distributed <= 1_000_000


def test_compute_distribution_records_metrics() -> None:
    before = metrics.snapshot()["counters"]
    dist = compute_distribution(_events(), window=AccrualWindow(0, 100), latest_block=120, pool_size=1_000_000)
    snap = metrics.snapshot()

    assert snap["counters"]["distributions_computed"] == before["distributions_computed"] + 1
    assert snap["counters"]["events_processed"] == before["events_processed"] + 4
    assert snap["counters"]["leaves_committed"] == before["leaves_committed"] + len(dist.commitment.proofs)
    assert snap["gauges"]["last_end_block"] == 100
    assert snap["gauges"]["last_pool_size"] == 1_000_000
    assert snap["gauges"]["last_residual"] == dist.allocation.residual


def test_compute_distribution_is_deterministic_under_input_permutation() -> None:
    # Distinct blocks so any permutation sorts back to the same sequence.
    events = _events()
    baseline = compute_distribution(events, window=AccrualWindow(5, None), latest_block=200, pool_size=10**18)
    for seed in range(5):
        shuffled = list(events)
        random.Random(seed).shuffle(shuffled)
        again = compute_distribution(shuffled, window=AccrualWindow(5, None), latest_block=200, pool_size=10**18)
        assert again.root == baseline.root
        assert again.commitment.proofs == baseline.commitment.proofs


def test_nothing_accrued_gives_empty_commitment() -> None:
    dist = compute_distribution([mint(ALICE, 5, 50)], window=AccrualWindow(0, 40), latest_block=60, pool_size=100)
    assert dist.allocation.is_empty
    assert dist.commitment.is_empty
    assert dist.root == "0x" + "00" * 32


def test_zero_pool_commits_zero_amount_claims() -> None:
    dist = compute_distribution(_events(), window=AccrualWindow(0, 100), latest_block=100, pool_size=0)
    assert set(dist.commitment.proofs) == {ALICE, BOB, CAROL}
    for addr, claim in dist.commitment.proofs.items():
        assert claim.amount == 0
        assert verify_proof(dist.root, addr, 0, claim.proof)
    assert dist.allocation.residual == 0


_ROOT_SCRIPT = """
from ytrewards.ledger.types import AccrualWindow
from ytrewards.pipeline import compute_distribution
from ytrewards.testing.events import ALICE, BOB, CAROL, mint, xfer

events = [mint(ALICE, 600, 10), mint(BOB, 300, 20), xfer(ALICE, CAROL, 100, 40), mint(CAROL, 1, 90)]
dist = compute_distribution(events, window=AccrualWindow(5, None), latest_block=200, pool_size=10**18)
print(dist.root)
"""


@pytest.mark.parametrize("hash_seed", ["0", "12345"])
def test_compute_distribution_root_is_stable_across_processes(hash_seed: str) -> None:
    baseline = compute_distribution(_events(), window=AccrualWindow(5, None), latest_block=200, pool_size=10**18)

    env = dict(os.environ)
    env["PYTHONHASHSEED"] = hash_seed
    env["PYTHONPATH"] = os.pathsep.join([str(SRC), env.get("PYTHONPATH", "")]).rstrip(os.pathsep)
    out = subprocess.run(
        [sys.executable, "-c", _ROOT_SCRIPT],
        env=env,
        capture_output=True,
        text=True,
        check=True,
    )
    assert out.stdout.strip().splitlines()[-1] == baseline.root


def test_invalid_window_fails_before_events_are_read() -> None:
    def _boom():
        raise AssertionError("events must not be consumed")
        yield  # pragma: no cover

    with pytest.raises(ConfigurationError) as ei:
        compute_distribution(_boom(), window=AccrualWindow(10, 5), latest_block=20, pool_size=1)
    assert ei.value.code == "invalid_window"

    with pytest.raises(ConfigurationError):
        compute_distribution(_boom(), window=AccrualWindow(0, 5), latest_block=20, pool_size=-1)


def test_consistency_error_propagates() -> None:
    with pytest.raises(ConsistencyError):
        compute_distribution([xfer(ALICE, BOB, 1, 1)], window=AccrualWindow(0, 5), latest_block=5, pool_size=1)


def _write_inputs(tmp_path):
    events = write_transfer_log(
        tmp_path / "events.json",
        [
            transfer_record(None, ALICE, 100, 10, instrument=YT_A),
            transfer_record(None, BOB, 50, 15, instrument=YT_B),
            transfer_record(ALICE, CAROL, 25, 30, instrument=YT_A),
            transfer_record(None, CAROL, 10, 12, instrument="0x9999999999999999999999999999999999999999"),
        ],
    )
    registry = tmp_path / "series.yaml"
    registry.write_text(
        "series:\n"
        f"  - {{adapter: '{ADAPTER}', instrument: '{YT_A}'}}\n"
        f"  - {{adapter: '{ADAPTER}', instrument: '{YT_B}'}}\n",
        encoding="utf-8",
    )
    return events, registry


class _RecordingSink:
    def __init__(self) -> None:
        self.published = []

    def publish(self, commitment) -> None:
        self.published.append(commitment)


def test_run_distribution_with_registry_and_sink(tmp_path) -> None:
    events, registry = _write_inputs(tmp_path)
    cfg = load_distribution_config(
        overrides={
            "population_id": ADAPTER,
            "registry_path": str(registry),
            "events_path": str(events),
            "end_block": 50,
            "pool_size": 1_000,
            "dry_run": True,
        }
    )
    sink = _RecordingSink()
    dist = run_distribution(cfg, sink=sink)

    # Unregistered instrument's transfer is not part of the population.
    assert set(dist.scores) == {ALICE, BOB, CAROL}
    assert dist.latest_block == 30
    assert dist.end_block == 30
    assert dist.scores == {ALICE: 100 * 20, BOB: 50 * 15, CAROL: 0}
    assert sink.published == [dist.commitment]


def test_run_distribution_uses_configured_latest_block(tmp_path) -> None:
    events, registry = _write_inputs(tmp_path)
    cfg = load_distribution_config(
        overrides={
            "population_id": ADAPTER,
            "registry_path": str(registry),
            "events_path": str(events),
            "latest_block": 40,
            "pool_size": 1_000,
        }
    )
    dist = run_distribution(cfg)
    assert dist.end_block == 40
    assert dist.scores[CAROL] == 25 * 10


def test_run_distribution_requires_known_population(tmp_path) -> None:
    events, registry = _write_inputs(tmp_path)
    cfg = load_distribution_config(
        overrides={
            "population_id": "0x8888888888888888888888888888888888888888",
            "registry_path": str(registry),
            "events_path": str(events),
            "pool_size": 1,
        }
    )
    with pytest.raises(ConfigurationError) as ei:
        run_distribution(cfg)
    assert ei.value.code == "invalid_population"
