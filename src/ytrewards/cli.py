# src/ytrewards/cli.py
from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import List, Optional

from ytrewards.artifact import ConsoleSink, JsonFileSink, load_artifact
from ytrewards.config import load_distribution_config, load_dotenv_if_present
from ytrewards.errors import DistributionError
from ytrewards.ledger.types import normalize_address
from ytrewards.merkle import verify_proof
from ytrewards.pipeline import run_distribution
from ytrewards.structured_logging import configure_structured_logging, log_failure

log = logging.getLogger("ytrewards.cli")


def _build_parser() -> argparse.ArgumentParser:
    ap = argparse.ArgumentParser(prog="ytrewards", description="Time-weighted yield token reward distribution")
    sub = ap.add_subparsers(dest="command", required=True)

    c = sub.add_parser("compute", help="compute scores, allocation and Merkle proofs")
    c.add_argument("--config", dest="config_path", default=None)
    c.add_argument("--population", dest="population_id", default=None)
    c.add_argument("--instruments", dest="instruments", default=None, help="comma separated instrument addresses")
    c.add_argument("--registry", dest="registry_path", default=None)
    c.add_argument("--events", dest="events_path", default=None)
    c.add_argument("--out", dest="output_path", default=None)
    c.add_argument("--start-block", dest="start_block", type=int, default=None)
    c.add_argument("--end-block", dest="end_block", type=int, default=None)
    c.add_argument("--latest-block", dest="latest_block", type=int, default=None)
    c.add_argument("--pool-size", dest="pool_size", type=int, default=None)
    c.add_argument("--min-share", dest="min_share", default=None)
    c.add_argument("--dry-run", dest="dry_run", action="store_true", default=None)
    c.add_argument("--log-level", dest="log_level", default=None)

    p = sub.add_parser("proof", help="print the stored claim for an address")
    p.add_argument("--artifact", required=True)
    p.add_argument("--address", required=True)

    v = sub.add_parser("verify", help="check an address's stored proof against the root")
    v.add_argument("--artifact", required=True)
    v.add_argument("--address", required=True)

    return ap


def _cmd_compute(args: argparse.Namespace) -> int:
    overrides = {
        k: getattr(args, k)
        for k in (
            "population_id",
            "instruments",
            "registry_path",
            "events_path",
            "output_path",
            "start_block",
            "end_block",
            "latest_block",
            "pool_size",
            "min_share",
            "dry_run",
            "log_level",
        )
    }
    cfg = load_distribution_config(config_path=args.config_path, overrides=overrides)
    configure_structured_logging(cfg.log_level)

    sink = ConsoleSink() if cfg.dry_run else JsonFileSink(cfg.output_path)
    dist = run_distribution(cfg, sink=sink)

    summary = {
        "root": dist.root,
        "holders": len(dist.scores),
        "leaves": len(dist.commitment.proofs),
        "pool_size": str(dist.allocation.pool_size),
        "distributed": str(dist.allocation.distributed),
        "residual": str(dist.allocation.residual),
        "end_block": dist.end_block,
        "output": None if cfg.dry_run else cfg.output_path,
    }
    print(json.dumps(summary, indent=2), file=sys.stderr if cfg.dry_run else sys.stdout)
    return 0


def _cmd_proof(args: argparse.Namespace) -> int:
    art = load_artifact(args.artifact)
    addr = normalize_address(args.address)
    entry = art.get(addr)
    if entry is None:
        print(f"{addr} is not included in the distribution", file=sys.stderr)
        return 1
    print(json.dumps({"address": addr, "root": art.root, **entry.model_dump()}, indent=2))
    return 0


def _cmd_verify(args: argparse.Namespace) -> int:
    art = load_artifact(args.artifact)
    addr = normalize_address(args.address)
    entry = art.get(addr)
    if entry is None:
        print(f"{addr} is not included in the distribution", file=sys.stderr)
        return 1
    ok = verify_proof(art.root, addr, entry.amount_int, entry.proof)
    print(json.dumps({"address": addr, "amount": entry.amount, "valid": ok}))
    return 0 if ok else 1


def main(argv: Optional[List[str]] = None) -> int:
    load_dotenv_if_present()
    args = _build_parser().parse_args(argv)

    try:
        if args.command == "compute":
            return _cmd_compute(args)
        if args.command == "proof":
            return _cmd_proof(args)
        return _cmd_verify(args)
    except (DistributionError, ValueError) as e:
        log_failure(log, f"{args.command}_failed", e)
        print(f"ERROR: {e}", file=sys.stderr)
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
