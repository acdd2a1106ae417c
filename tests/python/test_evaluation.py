import math

import pytest
from pygame.math import Vector2

from marblebots.sim.core.agent import Agent, Measurement, MotionDelta, NeighborRecord
from marblebots.sim.core.config import FormationType, Modality, SimulationConfig
from marblebots.sim.systems.evaluation import evaluate_rules
from marblebots.sim.systems.rules import ANY_ANGLE, AllNeighbors, AlwaysTrue, FollowPredecessor, Predecessor, RuleRegistry, Window


def _measurement(distance: float, angle: float) -> Measurement:
    return Measurement(distance=distance, angle=angle, observer_heading=0.0, observed_heading=0.0)


def _record(distance: float, angle: float, ir: bool = True, uwb: bool = True) -> NeighborRecord:
    return NeighborRecord(
        ir=_measurement(distance, angle) if ir else None,
        uwb=_measurement(distance, angle) if uwb else None,
    )


def _agent(agent_id: int, neighbors: dict) -> Agent:
    return Agent(id=agent_id, position=Vector2(), heading=0.0, neighbors=neighbors)


@pytest.fixture
def config() -> SimulationConfig:
    return SimulationConfig()


@pytest.fixture
def rules(config):
    return RuleRegistry(config.sensors).active_rules(config.formation)


def test_interior_agent_moves_away_from_close_anchor(config, rules):
    agent = _agent(2, {0: _record(0.1, 0.0), 1: _record(0.3, 0.5), 3: _record(0.3, -0.5)})

    assert evaluate_rules(agent, rules, config)

    assert agent.current_rule == "ir_move_away_from_anchor"
    assert agent.target_id == 0
    assert agent.id_offset == 2
    assert agent.committed.forward == pytest.approx(0.05 + config.sensors.ir.max_radius - 0.1)
    assert abs(agent.committed.rotation) == pytest.approx(math.pi)


def test_sentinel_ir_record_falls_through_to_uwb_shaping(config, rules):
    anchor = _record(0.1, 0.0)
    anchor.ir.distance = config.sensors.ir.sentinel_distance
    agent = _agent(2, {0: anchor, 1: _record(0.3, 0.5), 3: _record(0.3, -0.5)})

    assert evaluate_rules(agent, rules, config)

    assert agent.current_rule == "uwb_shape_circle"
    assert agent.committed.forward == pytest.approx(0.9 * (0.1 + 0.2 * math.sqrt(2.0)))
    assert agent.committed.rotation == pytest.approx(0.0, abs=1e-9)


def test_ring_neighbor_of_anchor_shapes_with_ir(config, rules):
    agent = _agent(1, {0: _record(0.1, 0.0), 2: _record(0.3, 0.5), 3: _record(0.3, -0.5)})

    assert evaluate_rules(agent, rules, config)

    assert agent.current_rule == "ir_shape_circle"
    assert agent.id_offset == 1


def test_agent_without_anchor_record_faces_circle_center(config, rules):
    agent = _agent(3, {1: _record(0.5, 0.0, ir=False), 2: _record(0.2, 0.0, ir=False)})

    assert evaluate_rules(agent, rules, config)

    assert agent.current_rule == "uwb_face_circle_center"
    assert agent.target_id == 2
    assert agent.committed.forward == pytest.approx(0.0)


def test_rule_that_does_not_apply_yields_to_the_next(config):
    registry = RuleRegistry(config.sensors)
    ordered = (registry["uwb_shape_circle"], registry["uwb_follow_predecessor"])
    agent = _agent(
        2,
        {
            0: _record(0.2 * math.sqrt(2.0), math.pi, ir=False),
            1: _record(0.5, 0.2, ir=False),
            3: _record(0.3, -0.5, ir=False),
        },
    )

    assert evaluate_rules(agent, ordered, config)

    assert agent.current_rule == "uwb_follow_predecessor"
    assert agent.target_id == 1
    assert agent.id_offset == 1
    assert agent.committed == MotionDelta(rotation=pytest.approx(0.2), forward=pytest.approx(0.47))


def test_no_match_keeps_previous_command(config, rules):
    agent = _agent(5, {})
    previous = MotionDelta(rotation=0.1, forward=0.2)
    agent.committed = previous
    agent.current_rule = "stale"

    assert not evaluate_rules(agent, rules, config)

    assert agent.committed is previous
    assert agent.current_rule is None
    assert agent.target_id is None
    assert agent.id_offset is None


def test_anchor_faces_north_when_enabled(config):
    config.formation.anchor_faces_north = True
    rules = RuleRegistry(config.sensors).active_rules(config.formation)
    agent = _agent(0, {})
    agent.heading = 0.5

    assert evaluate_rules(agent, rules, config)

    assert agent.current_rule == "face_north"
    assert agent.target_id == 0
    assert agent.id_offset == 0
    assert agent.committed.rotation == pytest.approx(-0.5)


def test_polygon_mode_skips_circle_rules(config):
    config.formation.formation_type = FormationType.POLYGON
    rules = RuleRegistry(config.sensors).active_rules(config.formation)
    agent = _agent(1, {0: _record(0.1, 0.0), 2: _record(0.3, 0.5), 3: _record(0.3, -0.5)})

    assert evaluate_rules(agent, rules, config)

    assert agent.current_rule == "uwb_shape_polygon"


def test_angle_window_filters_targets(config):
    narrow = FollowPredecessor(
        name="narrow_follow",
        modality=Modality.UWB,
        target=Predecessor(),
        guard=AlwaysTrue(),
        angle_window=Window(-0.1, 0.1),
        distance_window=Window(0.0, 10.0),
    )
    agent = _agent(1, {0: _record(0.5, 0.5)})
    assert not evaluate_rules(agent, (narrow,), config)

    agent.neighbors[0] = _record(0.5, 0.05)
    assert evaluate_rules(agent, (narrow,), config)


def test_all_neighbors_selector_takes_first_full_match(config):
    any_ir = FollowPredecessor(
        name="follow_any_ir",
        modality=Modality.IR,
        target=AllNeighbors(),
        guard=AlwaysTrue(),
        angle_window=ANY_ANGLE,
        distance_window=Window(config.sensors.ir.min_radius, config.sensors.ir.max_radius),
    )
    agent = _agent(2, {1: _record(0.2, 0.0, ir=False), 3: _record(0.2, 0.1)})

    assert evaluate_rules(agent, (any_ir,), config)

    assert agent.target_id == 3
    assert agent.id_offset == 1
