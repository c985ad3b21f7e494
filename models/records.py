"""Domain value objects shared across services."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional


@dataclass(frozen=True, slots=True)
class NormalizedPoint:
    """A single normalized time point: local civil time and a 3-decimal value."""

    timestamp: str
    value: str


@dataclass(slots=True)
class CumulativeSeries:
    """Points derived from one delta batch entry, plus the state they imply."""

    points: List[NormalizedPoint] = field(default_factory=list)
    deltas: List[float] = field(default_factory=list)
    final_baseline: float = 0.0
    last_epoch: Optional[int] = None
