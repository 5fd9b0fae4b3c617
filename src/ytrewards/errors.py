from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict

Json = Dict[str, Any]


@dataclass
class DistributionError(Exception):
    """Base error for a distribution batch.

    Carries a stable `code`, a short `reason` and structured `details`
    (offending address, block, amounts) for diagnosis.
    """

    code: str
    reason: str
    details: Json = field(default_factory=dict)

    def __str__(self) -> str:
        if not self.details:
            return f"{self.code}:{self.reason}"
        return f"{self.code}:{self.reason}:{self.details}"


@dataclass
class ConsistencyError(DistributionError):
    """The event log contradicts itself (spend before receipt, negative balance)."""


@dataclass
class ConfigurationError(DistributionError):
    """Invalid window, pool size or threshold. Raised before any event is processed."""
