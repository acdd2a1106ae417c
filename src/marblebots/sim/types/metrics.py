from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict


@dataclass(slots=True)
class TickMetrics:
    tick: int
    population: int
    moving: int
    idle: int
    rule_counts: Dict[str, int] = field(default_factory=dict)
    mean_known: float = 0.0
    formation_radius_cv: float = 0.0
    collisions: int = 0
    tick_duration_ms: float = 0.0
