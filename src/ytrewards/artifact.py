# src/ytrewards/artifact.py
from __future__ import annotations

"""Published distribution artifact.

Layout:

  {"root": "0x<64 hex>",
   "proofs": {"0xAddr": {"amount": "<decimal>", "proof": ["0x<64 hex>", ...]}}}

Encoded as canonical JSON so identical inputs give identical bytes.
"""

import json
import logging
import os
import re
import sys
import tempfile
from pathlib import Path
from typing import Any, Dict, List, Optional, TextIO, Union

from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from ytrewards.merkle import Commitment
from ytrewards.structured_logging import log_event

Json = Dict[str, Any]

log = logging.getLogger("ytrewards.artifact")

_HASH_PATTERN = r"^0x[0-9a-fA-F]{64}$"


def _canon_json(obj: Any) -> str:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=False)


class ClaimEntry(BaseModel):
    model_config = ConfigDict(extra="forbid")

    amount: str = Field(pattern=r"^[0-9]+$")
    proof: List[str] = Field(default_factory=list)

    @field_validator("proof")
    @classmethod
    def _check_hashes(cls, v: List[str]) -> List[str]:
        for h in v:
            if not re.match(_HASH_PATTERN, h):
                raise ValueError(f"invalid proof hash: {h!r}")
        return v

    @property
    def amount_int(self) -> int:
        return int(self.amount)


class DistributionArtifact(BaseModel):
    model_config = ConfigDict(extra="forbid")

    root: str = Field(pattern=_HASH_PATTERN)
    proofs: Dict[str, ClaimEntry] = Field(default_factory=dict)

    def get(self, address: str) -> Optional[ClaimEntry]:
        return self.proofs.get(address)


def artifact_dict(commitment: Commitment) -> Json:
    return {
        "root": commitment.root,
        "proofs": {
            addr: {"amount": str(int(cp.amount)), "proof": list(cp.proof)}
            for addr, cp in sorted(commitment.proofs.items())
        },
    }


def encode_artifact(commitment: Commitment) -> str:
    return _canon_json(artifact_dict(commitment))


def load_artifact(path: Union[str, Path]) -> DistributionArtifact:
    p = Path(path)
    try:
        return DistributionArtifact.model_validate_json(p.read_text(encoding="utf-8"))
    except ValidationError as e:
        raise ValueError(f"invalid distribution artifact {p}: {e}") from e


class JsonFileSink:
    """Writes the artifact atomically (temp file in the same directory + rename)."""

    def __init__(self, path: Union[str, Path]) -> None:
        self.path = Path(path)

    def publish(self, commitment: Commitment) -> Path:
        payload = encode_artifact(commitment)
        self.path.parent.mkdir(parents=True, exist_ok=True)
        fd, tmp = tempfile.mkstemp(prefix=f".{self.path.name}.", dir=str(self.path.parent))
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                f.write(payload)
                f.flush()
                os.fsync(f.fileno())
            os.replace(tmp, self.path)
        except BaseException:
            if os.path.exists(tmp):
                os.unlink(tmp)
            raise
        log_event(log, "artifact_written", path=str(self.path), root=commitment.root, leaves=len(commitment.proofs))
        return self.path


class ConsoleSink:
    """Dry run: report the artifact instead of persisting it."""

    def __init__(self, stream: Optional[TextIO] = None) -> None:
        self.stream = stream

    def publish(self, commitment: Commitment) -> None:
        out = self.stream or sys.stdout
        log_event(log, "dry_run_report", root=commitment.root, leaves=len(commitment.proofs))
        out.write(json.dumps(artifact_dict(commitment), indent=2, sort_keys=True) + "\n")
        out.flush()
