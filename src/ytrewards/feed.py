# src/ytrewards/feed.py
from __future__ import annotations

"""File-backed collaborators for a distribution run.

Input record schemas are validated with pydantic at this boundary; the core
only ever sees TransferEvent values with normalized addresses and the
SYSTEM_SUPPLY sentinel already substituted for the zero address.
"""

import json
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ytrewards.errors import ConfigurationError, ConsistencyError
from ytrewards.ledger.types import Address, TransferEvent, normalize_address, to_party

Json = Dict[str, Any]


class _StrictModel(BaseModel):
    model_config = ConfigDict(extra="forbid", populate_by_name=True)


def _address_field(v: Any) -> str:
    if not isinstance(v, str):
        raise ValueError("address must be a string")
    return normalize_address(v)


class TransferRecord(_StrictModel):
    """One transfer log entry as stored on disk."""

    instrument: Optional[str] = None
    sender: str = Field(alias="from")
    recipient: str = Field(alias="to")
    amount: int = Field(ge=0)
    block: int = Field(ge=0)
    # Free-form provenance (tx hash, log index); not used by the core.
    tx: Optional[str] = None
    log_index: Optional[int] = None

    @field_validator("sender", "recipient")
    @classmethod
    def _check_address(cls, v: Any) -> str:
        return _address_field(v)

    @field_validator("instrument")
    @classmethod
    def _check_instrument(cls, v: Any) -> Optional[str]:
        if v is None:
            return None
        return _address_field(v)

    @field_validator("amount", mode="before")
    @classmethod
    def _parse_amount(cls, v: Any) -> Any:
        # Token amounts routinely exceed float precision; accept decimal strings.
        if isinstance(v, str):
            s = v.strip()
            if not s.isdigit():
                raise ValueError("amount must be a non-negative integer string")
            return int(s)
        if isinstance(v, float):
            raise ValueError("amount must be an integer, not a float")
        return v

    def to_event(self) -> TransferEvent:
        return TransferEvent(
            sender=to_party(self.sender),
            recipient=to_party(self.recipient),
            amount=int(self.amount),
            block=int(self.block),
            instrument=self.instrument,
        )


class SeriesRecord(_StrictModel):
    """An instrument registered under a population (a yield token under its adapter)."""

    adapter: str
    instrument: str
    maturity: Optional[int] = None

    @field_validator("adapter", "instrument")
    @classmethod
    def _check_address(cls, v: Any) -> str:
        return _address_field(v)


def _read_records(path: Union[str, Path]) -> List[Any]:
    """Read a JSON array, a {"transfers": [...]} object, or JSONL."""
    p = Path(path)
    if not p.is_file():
        raise ConfigurationError("missing_input", "file_not_found", {"path": str(p)})
    text = p.read_text(encoding="utf-8")
    stripped = text.lstrip()
    if stripped.startswith("[") or stripped.startswith("{"):
        try:
            data = json.loads(text)
        except json.JSONDecodeError:
            data = None
        if isinstance(data, list):
            return data
        if isinstance(data, dict) and isinstance(data.get("transfers"), list):
            return data["transfers"]
    out: List[Any] = []
    for lineno, line in enumerate(text.splitlines(), start=1):
        line = line.strip()
        if not line:
            continue
        try:
            out.append(json.loads(line))
        except json.JSONDecodeError as e:
            raise ConsistencyError("malformed_event", "invalid_json_line", {"path": str(p), "line": lineno}) from e
    return out


def parse_transfer_records(records: Iterable[Any], *, source: str = "<memory>") -> List[TransferRecord]:
    out: List[TransferRecord] = []
    for i, rec in enumerate(records):
        try:
            out.append(TransferRecord.model_validate(rec))
        except ValidationError as e:
            raise ConsistencyError(
                "malformed_event",
                "record_failed_validation",
                {"source": source, "index": i, "errors": e.errors(include_url=False, include_context=False)},
            ) from e
    return out


class FileEventFeed:
    """EventFeed over a local transfer log.

    Returns events grouped per instrument in the requested instrument order,
    each group in file order, the same shape a per-instrument log query would
    produce. The core sorts by block.
    """

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)
        self._records: Optional[List[TransferRecord]] = None

    def _load(self) -> List[TransferRecord]:
        if self._records is None:
            self._records = parse_transfer_records(_read_records(self.path), source=str(self.path))
        return self._records

    def fetch_transfers(self, population_id: Optional[str], instruments: Sequence[Address]) -> List[TransferEvent]:
        recs = self._load()
        if not instruments:
            # No instrument filter: the file is the population.
            return [r.to_event() for r in recs]

        wanted = [normalize_address(i) for i in instruments]
        by_instrument: Dict[str, List[TransferEvent]] = {i: [] for i in wanted}
        for r in recs:
            if r.instrument is not None and r.instrument in by_instrument:
                by_instrument[r.instrument].append(r.to_event())

        out: List[TransferEvent] = []
        for inst in wanted:
            out.extend(by_instrument[inst])
        return out


class PopulationRegistry:
    """Maps a population (adapter) to the instruments registered under it."""

    def __init__(self, series: Iterable[SeriesRecord]) -> None:
        self.series: List[SeriesRecord] = list(series)

    @classmethod
    def from_file(cls, path: Union[str, Path]) -> "PopulationRegistry":
        p = Path(path)
        if not p.is_file():
            raise ConfigurationError("missing_input", "registry_not_found", {"path": str(p)})
        text = p.read_text(encoding="utf-8")
        if p.suffix.lower() in {".yaml", ".yml"}:
            raw = yaml.safe_load(text)
        else:
            raw = json.loads(text)

        items = raw.get("series") if isinstance(raw, dict) else raw
        if not isinstance(items, list):
            raise ConfigurationError("invalid_registry", "expected_series_list", {"path": str(p)})
        try:
            return cls(SeriesRecord.model_validate(it) for it in items)
        except ValidationError as e:
            raise ConfigurationError(
                "invalid_registry",
                "series_failed_validation",
                {"path": str(p), "errors": e.errors(include_url=False, include_context=False)},
            ) from e

    def resolve_instruments(self, population_id: str) -> List[Address]:
        pid = normalize_address(population_id)
        out: List[Address] = []
        for s in self.series:
            if s.adapter == pid and s.instrument not in out:
                out.append(s.instrument)
        return out


class StaticLedgerClock:
    def __init__(self, latest_block: int) -> None:
        self._latest = int(latest_block)

    def latest_known_block(self) -> int:
        return self._latest


class FixedPoolSize:
    """Simulated pool balance for non-production runs."""

    def __init__(self, amount: int) -> None:
        self._amount = int(amount)

    def current_pool_balance(self, population_id: Optional[str]) -> int:
        return self._amount
