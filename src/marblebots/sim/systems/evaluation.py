from __future__ import annotations

from typing import Iterable

from ..core.agent import Agent, MotionDelta
from ..core.config import Modality, SimulationConfig
from ..utils.math2d import signed_angle_diff
from .rules import Rule, RuleContext


def evaluate_rules(agent: Agent, rules: Iterable[Rule], config: SimulationConfig) -> bool:
    """Commit the motion of the first applicable rule, in order.

    Returns True when a rule matched. When none does the previously
    committed motion is left as it is.
    """
    agent.clear_diagnostics()
    known_ids = agent.known_ids()
    swarm_length = len(known_ids)
    own_position = known_ids.index(agent.id)

    for rule in rules:
        if not rule.guard.allows(agent.id, known_ids):
            continue
        for target_id in rule.target.candidates(agent.id, known_ids, rule.include_self):
            id_offset = abs(own_position - known_ids.index(target_id))
            record = agent.neighbors.get(target_id)
            ir = record.ir if record is not None else None
            uwb = record.uwb if record is not None else None

            if rule.modality is not Modality.ANY:
                measurement = ir if rule.modality is Modality.IR else uwb
                if measurement is None:
                    continue
                if measurement.distance > config.sensors.for_modality(rule.modality).max_radius:
                    continue
                if not rule.distance_window.contains(measurement.distance):
                    continue
                bearing = signed_angle_diff(measurement.world_bearing, agent.heading)
                if not rule.angle_window.contains_angle(bearing):
                    continue

            ctx = RuleContext(
                agent_id=agent.id,
                target_id=target_id,
                id_offset=id_offset,
                heading=agent.heading,
                ir=ir,
                uwb=uwb,
                swarm_length=swarm_length,
            )
            output = rule.compute(ctx, config)
            if not output.applies:
                continue

            agent.committed = MotionDelta(rotation=output.rotation, forward=output.forward)
            agent.current_rule = rule.name
            agent.target_id = target_id
            agent.id_offset = id_offset
            return True
    return False
