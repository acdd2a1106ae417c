from __future__ import annotations

import math
from typing import Dict, Sequence

from ..core.agent import Agent
from ..types.metrics import TickMetrics


def formation_radius_cv(agents: Sequence[Agent]) -> float:
    """Coefficient of variation of distances to the swarm centroid."""
    count = len(agents)
    if count < 2:
        return 0.0
    cx = sum(agent.position.x for agent in agents) / count
    cy = sum(agent.position.y for agent in agents) / count
    radii = [math.hypot(agent.position.x - cx, agent.position.y - cy) for agent in agents]
    mean = sum(radii) / count
    if mean <= 0.0:
        return 0.0
    variance = sum((radius - mean) ** 2 for radius in radii) / count
    return math.sqrt(variance) / mean


def create_metrics(
    tick: int,
    agents: Sequence[Agent],
    collisions: int,
    duration_ms: float,
) -> TickMetrics:
    rule_counts: Dict[str, int] = {}
    moving = 0
    idle = 0
    known_total = 0
    for agent in agents:
        if agent.is_moving:
            moving += 1
        if agent.current_rule is None:
            idle += 1
        else:
            rule_counts[agent.current_rule] = rule_counts.get(agent.current_rule, 0) + 1
        known_total += len(agent.neighbors)
    population = len(agents)
    return TickMetrics(
        tick=tick,
        population=population,
        moving=moving,
        idle=idle,
        rule_counts=rule_counts,
        mean_known=known_total / population if population else 0.0,
        formation_radius_cv=formation_radius_cv(agents),
        collisions=collisions,
        tick_duration_ms=duration_ms,
    )
