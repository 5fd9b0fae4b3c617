# src/ytrewards/metrics.py
from __future__ import annotations

"""Process-local counters and gauges for distribution runs and claim lookups.

Token amounts routinely exceed 2**64, so every value is a Python int and is
written out in full decimal form.
"""

import os
import threading
import time
from typing import Dict

_lock = threading.Lock()
_counters: Dict[str, int] = {}
_gauges: Dict[str, int] = {}
_started_ms = int(time.time() * 1000)

COUNTERS = (
    "distributions_computed",
    "events_processed",
    "holders_tracked",
    "leaves_committed",
    "proof_lookups",
    "proof_misses",
)
GAUGES = (
    "last_end_block",
    "last_pool_size",
    "last_distributed",
    "last_residual",
)


def metrics_enabled() -> bool:
    v = (os.environ.get("YTR_METRICS_ENABLED") or "").strip().lower()
    return v in {"1", "true", "yes", "y", "on"}


def inc_counter(name: str, value: int = 1) -> None:
    if name not in COUNTERS:
        raise KeyError(f"unknown counter: {name}")
    with _lock:
        _counters[name] = _counters.get(name, 0) + int(value)


def record_distribution(
    *,
    events: int,
    holders: int,
    leaves: int,
    end_block: int,
    pool_size: int,
    distributed: int,
) -> None:
    """Account one finished distribution batch."""
    with _lock:
        _counters["distributions_computed"] = _counters.get("distributions_computed", 0) + 1
        _counters["events_processed"] = _counters.get("events_processed", 0) + int(events)
        _counters["holders_tracked"] = _counters.get("holders_tracked", 0) + int(holders)
        _counters["leaves_committed"] = _counters.get("leaves_committed", 0) + int(leaves)
        _gauges["last_end_block"] = int(end_block)
        _gauges["last_pool_size"] = int(pool_size)
        _gauges["last_distributed"] = int(distributed)
        _gauges["last_residual"] = int(pool_size) - int(distributed)


def record_proof_lookup(found: bool) -> None:
    inc_counter("proof_lookups" if found else "proof_misses")


def snapshot() -> dict:
    with _lock:
        now = int(time.time() * 1000)
        return {
            "uptime_ms": now - _started_ms,
            "counters": {name: _counters.get(name, 0) for name in COUNTERS},
            "gauges": {name: _gauges[name] for name in GAUGES if name in _gauges},
        }


def format_prometheus(prefix: str = "ytrewards_") -> str:
    """Prometheus text exposition (version 0.0.4)."""
    snap = snapshot()
    lines = [f"# TYPE {prefix}uptime_ms gauge", f"{prefix}uptime_ms {snap['uptime_ms']}"]
    for name, value in snap["counters"].items():
        lines.append(f"# TYPE {prefix}{name} counter")
        lines.append(f"{prefix}{name} {value}")
    for name, value in snap["gauges"].items():
        lines.append(f"# TYPE {prefix}{name} gauge")
        lines.append(f"{prefix}{name} {value}")
    return "\n".join(lines) + "\n"
