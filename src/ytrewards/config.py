# src/ytrewards/config.py
from __future__ import annotations

import json
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Mapping, Optional, Tuple

import yaml
from dotenv import load_dotenv

from ytrewards.errors import ConfigurationError
from ytrewards.ledger.allocator import DEFAULT_MIN_SHARE, parse_min_share
from ytrewards.ledger.types import AccrualWindow, normalize_address

Json = Dict[str, Any]

_TRUE = {"1", "true", "yes", "y", "on"}
_FALSE = {"0", "false", "no", "n", "off"}


def _as_opt_int(name: str, v: Any) -> Optional[int]:
    if v is None:
        return None
    if isinstance(v, bool):
        raise ConfigurationError("invalid_value", f"{name}_must_be_int", {name: v})
    if isinstance(v, int):
        return v
    s = str(v).strip()
    if not s or s.lower() in {"none", "null", "inf", "infinity", "latest"}:
        return None
    try:
        return int(s)
    except ValueError as e:
        raise ConfigurationError("invalid_value", f"{name}_must_be_int", {name: v}) from e


def _as_str(v: Any, default: str) -> str:
    if v is None:
        return str(default)
    s = str(v).strip()
    return s if s else str(default)


def _as_opt_str(v: Any) -> Optional[str]:
    if v is None:
        return None
    s = str(v).strip()
    return s or None


def _as_bool(v: Any, default: bool) -> bool:
    if v is None:
        return bool(default)
    if isinstance(v, bool):
        return v
    s = str(v).strip().lower()
    if s in _TRUE:
        return True
    if s in _FALSE:
        return False
    return bool(default)


def _as_str_tuple(v: Any) -> Tuple[str, ...]:
    if v is None:
        return ()
    if isinstance(v, str):
        items = [p.strip() for p in v.split(",")]
    elif isinstance(v, (list, tuple)):
        items = [str(p).strip() for p in v]
    else:
        raise ConfigurationError("invalid_value", "instruments_must_be_list", {"instruments": repr(v)})
    return tuple(p for p in items if p)


@dataclass(frozen=True)
class DistributionConfig:
    # Product whose instruments are tracked (the adapter address).
    population_id: Optional[str]
    instruments: Tuple[str, ...]
    registry_path: Optional[str]

    events_path: Optional[str]
    output_path: str

    start_block: int
    end_block: Optional[int]
    latest_block: Optional[int]

    # Reward pool in the reward asset's smallest unit.
    pool_size: Optional[int]
    min_share: str

    dry_run: bool
    log_level: str

    @property
    def window(self) -> AccrualWindow:
        return AccrualWindow(start_block=int(self.start_block), end_block=self.end_block)


def default_distribution_config() -> DistributionConfig:
    return DistributionConfig(
        population_id=None,
        instruments=(),
        registry_path=None,
        events_path=None,
        output_path="./out/distribution.json",
        start_block=0,
        end_block=None,
        latest_block=None,
        pool_size=None,
        min_share=DEFAULT_MIN_SHARE,
        dry_run=False,
        log_level="INFO",
    )


def validate_distribution_config(cfg: DistributionConfig) -> None:
    """Fail-fast validation. Runs before any event is read."""

    for name, v in (("start_block", cfg.start_block), ("end_block", cfg.end_block), ("latest_block", cfg.latest_block)):
        if v is not None and int(v) < 0:
            raise ConfigurationError("invalid_block", f"{name}_must_be_non_negative", {name: v})

    if cfg.end_block is not None and int(cfg.start_block) > int(cfg.end_block):
        raise ConfigurationError(
            "invalid_window",
            "start_block_after_end_block",
            {"start_block": cfg.start_block, "end_block": cfg.end_block},
        )

    if cfg.pool_size is None or isinstance(cfg.pool_size, bool) or int(cfg.pool_size) < 0:
        raise ConfigurationError("invalid_pool_size", "must_be_non_negative_int", {"pool_size": cfg.pool_size})

    parse_min_share(cfg.min_share)

    if cfg.population_id is not None:
        try:
            normalize_address(cfg.population_id)
        except ValueError as e:
            raise ConfigurationError(
                "invalid_population", "population_id_not_an_address", {"population_id": cfg.population_id}
            ) from e

    for inst in cfg.instruments:
        try:
            normalize_address(inst)
        except ValueError as e:
            raise ConfigurationError("invalid_population", "instrument_not_an_address", {"instrument": inst}) from e

    if not cfg.events_path:
        raise ConfigurationError("missing_input", "events_path_required", {})

    if not cfg.dry_run and not str(cfg.output_path or "").strip():
        raise ConfigurationError("missing_input", "output_path_required", {})


def config_from_mapping(raw: Mapping[str, Any], base: Optional[DistributionConfig] = None) -> DistributionConfig:
    d = base or default_distribution_config()
    return DistributionConfig(
        population_id=_as_opt_str(raw.get("population_id", d.population_id)),
        instruments=_as_str_tuple(raw.get("instruments", d.instruments)),
        registry_path=_as_opt_str(raw.get("registry_path", d.registry_path)),
        events_path=_as_opt_str(raw.get("events_path", d.events_path)),
        output_path=_as_str(raw.get("output_path"), d.output_path),
        start_block=_as_opt_int("start_block", raw.get("start_block", d.start_block)) or 0,
        end_block=_as_opt_int("end_block", raw.get("end_block", d.end_block)),
        latest_block=_as_opt_int("latest_block", raw.get("latest_block", d.latest_block)),
        pool_size=_as_opt_int("pool_size", raw.get("pool_size", d.pool_size)),
        min_share=_as_str(raw.get("min_share"), d.min_share),
        dry_run=_as_bool(raw.get("dry_run"), d.dry_run),
        log_level=_as_str(raw.get("log_level"), d.log_level).upper(),
    )


def read_config_file(path: str) -> Json:
    p = Path(path)
    text = p.read_text(encoding="utf-8")
    if p.suffix.lower() in {".yaml", ".yml"}:
        raw = yaml.safe_load(text)
    else:
        raw = json.loads(text)
    if raw is None:
        raw = {}
    if not isinstance(raw, dict):
        raise ConfigurationError("invalid_config_file", "must_be_a_mapping", {"path": str(path)})
    return raw


_ENV_KEYS = {
    "population_id": "YTR_POPULATION_ID",
    "instruments": "YTR_INSTRUMENTS",
    "registry_path": "YTR_REGISTRY_PATH",
    "events_path": "YTR_EVENTS_PATH",
    "output_path": "YTR_OUTPUT_PATH",
    "start_block": "YTR_START_BLOCK",
    "end_block": "YTR_END_BLOCK",
    "latest_block": "YTR_LATEST_BLOCK",
    "pool_size": "YTR_POOL_SIZE",
    "min_share": "YTR_MIN_SHARE",
    "dry_run": "YTR_DRY_RUN",
    "log_level": "YTR_LOG_LEVEL",
}


_DOTENV_LOADED = False


def load_dotenv_if_present(dotenv_path: Optional[str] = None) -> bool:
    """Load YTR_* settings from a .env file, once per process.

    The file is `dotenv_path`, else YTR_DOTENV_PATH, else ./.env. Variables
    already in the environment win. Returns True only if a file was loaded.
    """
    global _DOTENV_LOADED
    if _DOTENV_LOADED:
        return False
    _DOTENV_LOADED = True

    path = Path(dotenv_path or os.getenv("YTR_DOTENV_PATH", ".env")).expanduser()
    if not path.is_file():
        return False
    load_dotenv(dotenv_path=str(path), override=False)
    return True


def env_overrides() -> Json:
    out: Json = {}
    for key, env_name in _ENV_KEYS.items():
        v = os.environ.get(env_name)
        if v is not None and v.strip():
            out[key] = v
    return out


def load_distribution_config(
    *,
    config_path: Optional[str] = None,
    overrides: Optional[Mapping[str, Any]] = None,
) -> DistributionConfig:
    """Resolve config: defaults < file (or YTR_CONFIG_PATH) < YTR_* env < overrides.

    `overrides` entries set to None are ignored, so argparse namespaces can be
    passed through directly.
    """
    raw: Json = {}
    p = config_path or os.environ.get("YTR_CONFIG_PATH")
    if p:
        raw.update(read_config_file(p))
    raw.update(env_overrides())
    for k, v in (overrides or {}).items():
        if v is not None:
            raw[k] = v

    cfg = config_from_mapping(raw)
    validate_distribution_config(cfg)
    return cfg
