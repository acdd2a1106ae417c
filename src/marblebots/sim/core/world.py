from __future__ import annotations

import logging
import math
from time import perf_counter
from typing import Dict, List, Optional, Tuple

from pygame.math import Vector2

from .agent import Agent
from .config import (
    FormationConfig,
    FormationType,
    Modality,
    ModalityConfig,
    SimulationConfig,
    parse_formation_type,
    validate_formation,
    validate_modality,
)
from .rng import DeterministicRng
from ..systems import metrics as metrics_system
from ..systems.evaluation import evaluate_rules
from ..systems.ir_curves import IrCurves
from ..systems.motion import integrate, resolve_collisions
from ..systems.rules import Rule, RuleRegistry
from ..systems.sensing import sense_neighbors
from ..types.metrics import TickMetrics
from ..types.snapshot import Snapshot, SnapshotMetadata, SnapshotWorld

logger = logging.getLogger(__name__)

_MAX_SPAWN_ATTEMPTS = 1000


class World:
    ANCHOR_ID = 0

    def __init__(self, config: SimulationConfig):
        self._config = config
        self._rng = DeterministicRng(config.seed)
        self._registry = RuleRegistry(config.sensors)
        self._curves = IrCurves()
        self._agents: List[Agent] = []
        self._index: Dict[int, Agent] = {}
        self._metrics: TickMetrics | None = None
        self._bootstrap_swarm()

    @property
    def agents(self) -> List[Agent]:
        return self._agents

    @property
    def config(self) -> SimulationConfig:
        return self._config

    @property
    def metrics(self) -> TickMetrics | None:
        return self._metrics

    @property
    def registry(self) -> RuleRegistry:
        return self._registry

    @property
    def curves(self) -> IrCurves:
        return self._curves

    def agent(self, agent_id: int) -> Agent:
        try:
            return self._index[agent_id]
        except KeyError:
            raise ValueError(f"Unknown agent id: {agent_id}") from None

    def active_rules(self) -> Tuple[Rule, ...]:
        return self._registry.active_rules(self._config.formation)

    def reset(self, seed: Optional[int] = None) -> None:
        if seed is not None:
            self._config.seed = int(seed)
        self._rng.reset(self._config.seed)
        self._agents.clear()
        self._index.clear()
        self._metrics = None
        self._bootstrap_swarm()
        logger.info("world reset with seed %d and %d agents", self._config.seed, len(self._agents))

    def step(self, tick: int) -> TickMetrics:
        start = perf_counter()
        config = self._config
        swarm = self._agents
        curves = self._curves if config.sensors.ir_field_of_view else None

        # Every agent senses the poses left by the previous tick before anyone moves.
        for agent in swarm:
            sense_neighbors(agent, swarm, config.sensors, self._rng, curves)

        rules = self.active_rules()
        for agent in swarm:
            evaluate_rules(agent, rules, config)

        for agent in swarm:
            integrate(agent, config.time_step, config.motion)

        collisions = resolve_collisions(swarm, config.motion.robot_radius)

        elapsed_ms = (perf_counter() - start) * 1000.0
        metrics = metrics_system.create_metrics(tick, swarm, collisions, elapsed_ms)
        self._metrics = metrics
        logger.debug(
            "tick %d: moving=%d idle=%d collisions=%d cv=%.4f",
            tick,
            metrics.moving,
            metrics.idle,
            metrics.collisions,
            metrics.formation_radius_cv,
        )
        return metrics

    def snapshot(self, tick: int) -> Snapshot:
        metrics = self._metrics if self._metrics is not None else metrics_system.create_metrics(tick, self._agents, 0, 0.0)
        config = self._config
        metadata = SnapshotMetadata(
            world_size=config.arena_size,
            sim_dt=config.time_step,
            tick_rate=0.0 if config.time_step <= 0 else 1.0 / config.time_step,
            seed=config.seed,
            config_version=config.config_version,
        )
        world = SnapshotWorld(
            size=config.arena_size,
            anchor_id=self.ANCHOR_ID,
            formation_type=config.formation.formation_type.value,
            polygon_sides=config.formation.polygon_sides,
            active_rules=[rule.name for rule in self.active_rules()],
        )
        return Snapshot(
            tick=tick,
            metrics=metrics,
            agents=[self._agent_snapshot(agent) for agent in self._agents],
            world=world,
            metadata=metadata,
        )

    def drive_agent(self, agent_id: int, rotation: Optional[float] = None, forward: Optional[float] = None) -> None:
        """Steer an agent by hand, replacing whatever is left of its current command."""
        agent = self.agent(agent_id)
        if rotation is None and forward is None:
            raise ValueError("drive_agent needs a rotation or a forward distance")
        agent.committed = None
        agent.remaining_rotation = float(rotation) if rotation is not None else 0.0
        agent.remaining_forward = float(forward) if forward is not None else 0.0

    def place_agent(self, agent_id: int, x: float, y: float) -> None:
        agent = self.agent(agent_id)
        agent.position = Vector2(float(x), float(y))

    def set_formation(
        self,
        formation_type: Optional[str | FormationType] = None,
        polygon_sides: Optional[int] = None,
        min_radius_threshold: Optional[float] = None,
        segment_size: Optional[float] = None,
        anchor_faces_north: Optional[bool] = None,
    ) -> None:
        formation = self._config.formation
        updated = FormationConfig(
            formation_type=formation.formation_type if formation_type is None else parse_formation_type(formation_type),
            polygon_sides=formation.polygon_sides if polygon_sides is None else int(polygon_sides),
            min_radius_threshold=(
                formation.min_radius_threshold if min_radius_threshold is None else float(min_radius_threshold)
            ),
            segment_size=formation.segment_size if segment_size is None else float(segment_size),
            anchor_faces_north=formation.anchor_faces_north if anchor_faces_north is None else bool(anchor_faces_north),
        )
        validate_formation(updated)
        self._config.formation = updated
        logger.info(
            "formation set to %s (sides=%d, threshold=%.3f, segment=%.3f)",
            updated.formation_type.value,
            updated.polygon_sides,
            updated.min_radius_threshold,
            updated.segment_size,
        )

    def set_precision(
        self,
        modality: str | Modality,
        radial: Optional[float] = None,
        angular: Optional[float] = None,
    ) -> None:
        try:
            kind = Modality(modality)
        except ValueError:
            raise ValueError(f"Unknown modality: {modality!r}") from None
        sensor = self._config.sensors.for_modality(kind)
        candidate = ModalityConfig(
            min_radius=sensor.min_radius,
            max_radius=sensor.max_radius,
            radial_precision=sensor.radial_precision if radial is None else float(radial),
            angular_precision=sensor.angular_precision if angular is None else float(angular),
        )
        validate_modality(kind, candidate)
        sensor.radial_precision = candidate.radial_precision
        sensor.angular_precision = candidate.angular_precision
        logger.info(
            "%s precision set to radial=%.4f angular=%.4f",
            kind.value,
            sensor.radial_precision,
            sensor.angular_precision,
        )

    def _bootstrap_swarm(self) -> None:
        config = self._config
        half = config.arena_size / 2.0
        clearance = config.spawn_clearance_factor * config.motion.robot_radius
        for agent_id in range(config.swarm_size):
            if agent_id == self.ANCHOR_ID:
                position = Vector2(config.anchor_position)
                heading = config.anchor_heading
            else:
                position = self._rng.next_point(half)
                heading = self._rng.next_angle()
                attempts = 0
                while self._distance_to_closest(position) < clearance and attempts < _MAX_SPAWN_ATTEMPTS:
                    position = self._rng.next_point(half)
                    attempts += 1
                if attempts >= _MAX_SPAWN_ATTEMPTS:
                    logger.warning("agent %d placed without clearance after %d attempts", agent_id, attempts)
            agent = Agent(id=agent_id, position=position, heading=heading)
            self._agents.append(agent)
            self._index[agent_id] = agent

    def _distance_to_closest(self, position: Vector2) -> float:
        closest = math.inf
        for agent in self._agents:
            closest = min(closest, agent.position.distance_to(position))
        return closest

    def _agent_snapshot(self, agent: Agent) -> Dict[str, object]:
        ir_max = self._config.sensors.ir.max_radius
        uwb_max = self._config.sensors.uwb.max_radius
        delta = agent.last_delta
        return {
            "id": agent.id,
            "x": agent.position.x,
            "y": agent.position.y,
            "heading": agent.heading,
            "is_moving": agent.is_moving,
            "rule": agent.current_rule,
            "target": agent.target_id,
            "id_offset": agent.id_offset,
            "delta_rotation": delta.rotation if delta is not None else 0.0,
            "delta_forward": delta.forward if delta is not None else 0.0,
            "ir_links": sorted(
                other for other, record in agent.neighbors.items() if record.ir is not None and record.ir.distance <= ir_max
            ),
            "uwb_links": sorted(
                other
                for other, record in agent.neighbors.items()
                if record.uwb is not None and record.uwb.distance <= uwb_max
            ),
        }
