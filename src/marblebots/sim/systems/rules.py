from __future__ import annotations

import math
from dataclasses import dataclass
from typing import Dict, Iterator, List, NamedTuple, Optional, Sequence, Tuple

from ..core.agent import Measurement
from ..core.config import FormationConfig, FormationType, Modality, SensorConfig, SimulationConfig
from ..utils.math2d import add_polar_vectors, angle_is_between, round_half_up, signed_angle_diff, wrap_angle

HALF_PI = 0.5 * math.pi


@dataclass(frozen=True)
class Window:
    start: float
    end: float

    def contains(self, value: float) -> bool:
        return self.start <= value <= self.end

    def contains_angle(self, angle: float) -> bool:
        return angle_is_between(angle, self.start, self.end)


ANY_ANGLE = Window(-2.0 * math.pi, 2.0 * math.pi)


class Guard:
    def allows(self, agent_id: int, known_ids: Sequence[int]) -> bool:
        raise NotImplementedError


@dataclass(frozen=True)
class AlwaysTrue(Guard):
    def allows(self, agent_id: int, known_ids: Sequence[int]) -> bool:
        return True


@dataclass(frozen=True)
class IsAgentIndex(Guard):
    index: int

    def allows(self, agent_id: int, known_ids: Sequence[int]) -> bool:
        return agent_id == self.index


def _occupies(agent_id: int, known_ids: Sequence[int], positions: Tuple[int, ...]) -> bool:
    count = len(known_ids)
    for position in positions:
        if -count <= position < count and known_ids[position] == agent_id:
            return True
    return False


@dataclass(frozen=True)
class MatchesRingPositions(Guard):
    """True when the agent sits at one of ``positions`` in the known-id sequence.

    The default (1, -1) picks the two ring neighbors of the lowest known id.
    """

    positions: Tuple[int, ...] = (1, -1)

    def allows(self, agent_id: int, known_ids: Sequence[int]) -> bool:
        return _occupies(agent_id, known_ids, self.positions)


@dataclass(frozen=True)
class ExcludesRingPositions(Guard):
    positions: Tuple[int, ...] = (1, -1)

    def allows(self, agent_id: int, known_ids: Sequence[int]) -> bool:
        return not _occupies(agent_id, known_ids, self.positions)


class TargetSelector:
    def candidates(self, agent_id: int, known_ids: Sequence[int], include_self: bool) -> List[int]:
        raise NotImplementedError


@dataclass(frozen=True)
class AllNeighbors(TargetSelector):
    def candidates(self, agent_id: int, known_ids: Sequence[int], include_self: bool) -> List[int]:
        return [other for other in known_ids if include_self or other != agent_id]


@dataclass(frozen=True)
class SelfTarget(TargetSelector):
    def candidates(self, agent_id: int, known_ids: Sequence[int], include_self: bool) -> List[int]:
        return [agent_id] if include_self else []


@dataclass(frozen=True)
class Predecessor(TargetSelector):
    def candidates(self, agent_id: int, known_ids: Sequence[int], include_self: bool) -> List[int]:
        lower = [other for other in known_ids if other < agent_id]
        return [lower[-1]] if lower else []


@dataclass(frozen=True)
class FixedIndex(TargetSelector):
    index: int

    def candidates(self, agent_id: int, known_ids: Sequence[int], include_self: bool) -> List[int]:
        if self.index == agent_id:
            return [agent_id] if include_self else []
        return [self.index] if self.index in known_ids else []


@dataclass(frozen=True)
class RelativeOffset(TargetSelector):
    offset: int

    def candidates(self, agent_id: int, known_ids: Sequence[int], include_self: bool) -> List[int]:
        wanted = agent_id + self.offset
        if wanted == agent_id and not include_self:
            return []
        return [wanted] if wanted in known_ids else []


@dataclass(frozen=True)
class RuleContext:
    agent_id: int
    target_id: int
    id_offset: int
    heading: float
    ir: Optional[Measurement]
    uwb: Optional[Measurement]
    swarm_length: int

    def measurement(self, modality: Modality) -> Optional[Measurement]:
        if modality is Modality.IR:
            return self.ir
        if modality is Modality.UWB:
            return self.uwb
        return None


class RuleOutput(NamedTuple):
    forward: float
    rotation: float
    applies: bool


@dataclass(frozen=True)
class Rule:
    name: str
    modality: Modality
    target: TargetSelector
    guard: Guard
    angle_window: Window
    distance_window: Window
    include_self: bool = False
    moving_rule: bool = True

    def compute(self, ctx: RuleContext, config: SimulationConfig) -> RuleOutput:
        raise NotImplementedError(f"rule {self.name!r} does not define compute()")

    def _measurement(self, ctx: RuleContext) -> Measurement:
        measurement = ctx.measurement(self.modality)
        if measurement is None:
            raise ValueError(f"rule {self.name!r} evaluated without a {self.modality.value} measurement")
        return measurement


def relative_bearing(measurement: Measurement, heading: float) -> float:
    """Bearing to the measured neighbor, re-expressed in the current heading frame."""
    return signed_angle_diff(measurement.world_bearing, heading)


def circle_target(measurement: Measurement, ctx: RuleContext, segment: float) -> Tuple[float, float]:
    interior = HALF_PI - math.pi / ctx.swarm_length
    twist = measurement.observed_heading - measurement.observer_heading
    r, phi = add_polar_vectors(
        measurement.distance, relative_bearing(measurement, ctx.heading), segment, interior + twist
    )
    for hop in range(1, ctx.id_offset):
        r, phi = add_polar_vectors(r, phi, segment, interior - 2 * hop * (HALF_PI - interior) + twist)
    return r, wrap_angle(phi)


def polygon_target(
    measurement: Measurement, ctx: RuleContext, segment: float, sides: int
) -> Tuple[float, float]:
    vertex_turn = 2.0 * math.pi / sides
    per_side = max(1, ctx.swarm_length // sides)
    hops = min(ctx.id_offset, ctx.swarm_length - 1 - ctx.swarm_length % sides)
    twist = measurement.observed_heading - measurement.observer_heading
    r, phi = add_polar_vectors(
        measurement.distance, relative_bearing(measurement, ctx.heading), segment, HALF_PI + twist
    )
    for hop in range(1, hops):
        corner = round_half_up(hop / per_side)
        r, phi = add_polar_vectors(r, phi, segment, HALF_PI - vertex_turn * corner + twist)
    return r, wrap_angle(phi)


@dataclass(frozen=True)
class FaceNorth(Rule):
    def compute(self, ctx: RuleContext, config: SimulationConfig) -> RuleOutput:
        return RuleOutput(0.0, signed_angle_diff(0.0, ctx.heading), True)


@dataclass(frozen=True)
class MoveAwayFromAnchor(Rule):
    def compute(self, ctx: RuleContext, config: SimulationConfig) -> RuleOutput:
        measurement = self._measurement(ctx)
        sensor = config.sensors.for_modality(self.modality)
        rotation = signed_angle_diff(relative_bearing(measurement, ctx.heading), math.pi)
        forward = 0.05 + sensor.max_radius - measurement.distance
        return RuleOutput(forward, rotation, True)


@dataclass(frozen=True)
class FollowPredecessor(Rule):
    def compute(self, ctx: RuleContext, config: SimulationConfig) -> RuleOutput:
        measurement = self._measurement(ctx)
        sensor = config.sensors.for_modality(self.modality)
        rotation = relative_bearing(measurement, ctx.heading)
        return RuleOutput(measurement.distance - sensor.min_radius, rotation, True)


@dataclass(frozen=True)
class ShapeCircle(Rule):
    forward_gain: float = 1.0

    def compute(self, ctx: RuleContext, config: SimulationConfig) -> RuleOutput:
        formation = config.formation
        r, phi = circle_target(self._measurement(ctx), ctx, formation.segment_size)
        return RuleOutput(r * self.forward_gain, phi, r > formation.min_radius_threshold)


@dataclass(frozen=True)
class ShapePolygon(Rule):
    forward_gain: float = 0.9

    def compute(self, ctx: RuleContext, config: SimulationConfig) -> RuleOutput:
        formation = config.formation
        r, phi = polygon_target(self._measurement(ctx), ctx, formation.segment_size, formation.polygon_sides)
        return RuleOutput(r * self.forward_gain, phi, r > formation.min_radius_threshold)


@dataclass(frozen=True)
class FaceCircleCenter(Rule):
    def compute(self, ctx: RuleContext, config: SimulationConfig) -> RuleOutput:
        measurement = self._measurement(ctx)
        n = ctx.swarm_length
        interior = 0.5 * math.pi * (n - 2) / n
        gamma = measurement.observed_heading + 2.0 * interior + math.pi
        return RuleOutput(0.0, signed_angle_diff(gamma, ctx.heading), True)


def build_rules(sensors: SensorConfig) -> List[Rule]:
    ir_window = Window(sensors.ir.min_radius, sensors.ir.max_radius)
    uwb_window = Window(sensors.uwb.min_radius, sensors.uwb.max_radius)
    return [
        FaceNorth(
            name="face_north",
            modality=Modality.ANY,
            target=FixedIndex(0),
            guard=IsAgentIndex(0),
            angle_window=ANY_ANGLE,
            distance_window=Window(0.0, 1000.0),
            include_self=True,
            moving_rule=False,
        ),
        MoveAwayFromAnchor(
            name="ir_move_away_from_anchor",
            modality=Modality.IR,
            target=FixedIndex(0),
            guard=ExcludesRingPositions(),
            angle_window=ANY_ANGLE,
            distance_window=ir_window,
        ),
        FollowPredecessor(
            name="uwb_follow_predecessor",
            modality=Modality.UWB,
            target=Predecessor(),
            guard=AlwaysTrue(),
            angle_window=ANY_ANGLE,
            distance_window=uwb_window,
        ),
        ShapeCircle(
            name="ir_shape_circle",
            modality=Modality.IR,
            target=FixedIndex(0),
            guard=MatchesRingPositions(),
            angle_window=ANY_ANGLE,
            distance_window=ir_window,
        ),
        ShapeCircle(
            name="uwb_shape_circle",
            modality=Modality.UWB,
            target=FixedIndex(0),
            guard=AlwaysTrue(),
            angle_window=ANY_ANGLE,
            distance_window=uwb_window,
            forward_gain=0.9,
        ),
        ShapePolygon(
            name="uwb_shape_polygon",
            modality=Modality.UWB,
            target=FixedIndex(0),
            guard=AlwaysTrue(),
            angle_window=ANY_ANGLE,
            distance_window=uwb_window,
        ),
        FaceCircleCenter(
            name="ir_face_circle_center",
            modality=Modality.IR,
            target=Predecessor(),
            guard=AlwaysTrue(),
            angle_window=ANY_ANGLE,
            distance_window=ir_window,
            moving_rule=False,
        ),
        FaceCircleCenter(
            name="uwb_face_circle_center",
            modality=Modality.UWB,
            target=Predecessor(),
            guard=AlwaysTrue(),
            angle_window=ANY_ANGLE,
            distance_window=uwb_window,
            moving_rule=False,
        ),
    ]


_FORMATION_RULES: Dict[FormationType, Tuple[str, ...]] = {
    FormationType.CIRCLE: ("ir_shape_circle", "uwb_shape_circle", "uwb_face_circle_center"),
    FormationType.POLYGON: ("uwb_shape_polygon", "uwb_face_circle_center"),
}


class RuleRegistry:
    def __init__(self, sensors: SensorConfig):
        self._rules: Dict[str, Rule] = {}
        for rule in build_rules(sensors):
            if rule.name in self._rules:
                raise ValueError(f"duplicate rule name {rule.name!r}")
            self._rules[rule.name] = rule

    def __getitem__(self, name: str) -> Rule:
        return self._rules[name]

    def __contains__(self, name: object) -> bool:
        return name in self._rules

    def __iter__(self) -> Iterator[Rule]:
        return iter(self._rules.values())

    def __len__(self) -> int:
        return len(self._rules)

    def active_rules(self, formation: FormationConfig) -> Tuple[Rule, ...]:
        """Rules in priority order for ``formation``; the first applicable one wins."""
        try:
            shape_rules = _FORMATION_RULES[FormationType(formation.formation_type)]
        except ValueError:
            raise ValueError(f"Unknown formation type: {formation.formation_type!r}") from None
        names: List[str] = []
        if formation.anchor_faces_north:
            names.append("face_north")
        names.append("ir_move_away_from_anchor")
        names.extend(shape_rules)
        return tuple(self._rules[name] for name in names)
