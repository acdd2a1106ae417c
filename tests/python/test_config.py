import math
from pathlib import Path

import pytest

from marblebots.sim.core.config import (
    FormationType,
    Modality,
    SimulationConfig,
    load_config,
    parse_formation_type,
)

REPO_ROOT = Path(__file__).resolve().parents[2]


def test_defaults():
    config = SimulationConfig()
    assert config.time_step == pytest.approx(0.033)
    assert config.swarm_size == 16
    assert config.anchor_position == (-0.4, 0.0)
    assert config.sensors.ir.min_radius == pytest.approx(0.01)
    assert config.sensors.ir.max_radius == pytest.approx(0.32)
    assert config.sensors.uwb.max_radius == pytest.approx(20.0)
    assert config.sensors.ir.angular_precision == pytest.approx(math.pi / 180.0)
    assert config.sensors.ir.sentinel_distance == pytest.approx(0.64)
    assert config.motion.max_rotational_speed == pytest.approx(2.0 * math.pi)
    assert config.formation.formation_type is FormationType.CIRCLE
    assert config.formation.segment_size == pytest.approx(0.2)


def test_partial_overrides_keep_other_defaults():
    config = load_config(
        {
            "swarm_size": 6,
            "anchor_position": [0.1, 0.2],
            "sensors": {"ir": {"max_radius": 0.5}, "ir_field_of_view": True},
            "formation": {"formation_type": "polygon", "polygon_sides": 5},
        }
    )
    assert config.swarm_size == 6
    assert config.anchor_position == (0.1, 0.2)
    assert config.sensors.ir.max_radius == pytest.approx(0.5)
    assert config.sensors.ir.min_radius == pytest.approx(0.01)
    assert config.sensors.uwb.max_radius == pytest.approx(20.0)
    assert config.sensors.ir_field_of_view is True
    assert config.formation.formation_type is FormationType.POLYGON
    assert config.formation.polygon_sides == 5


@pytest.mark.parametrize(
    "raw",
    [
        {"formation": {"formation_type": "hexagon"}},
        {"formation": {"polygon_sides": 2}},
        {"formation": {"min_radius_threshold": -0.1}},
        {"formation": {"segment_size": 0.0}},
        {"sensors": {"uwb": {"radial_precision": -0.01}}},
        {"sensors": {"ir": {"min_radius": 0.4}}},
        {"time_step": 0.0},
    ],
)
def test_invalid_configuration_is_rejected(raw):
    with pytest.raises(ValueError):
        load_config(raw)


def test_parse_formation_type():
    assert parse_formation_type("circle") is FormationType.CIRCLE
    assert parse_formation_type(FormationType.POLYGON) is FormationType.POLYGON
    with pytest.raises(ValueError, match="Unknown formation type"):
        parse_formation_type("line")


def test_any_modality_has_no_sensor():
    sensors = SimulationConfig().sensors
    assert sensors.for_modality(Modality.UWB) is sensors.uwb
    with pytest.raises(ValueError):
        sensors.for_modality(Modality.ANY)


def test_from_yaml(tmp_path):
    path = tmp_path / "swarm.yaml"
    path.write_text("seed: 11\nformation:\n  formation_type: polygon\n  polygon_sides: 6\n")
    config = SimulationConfig.from_yaml(path)
    assert config.seed == 11
    assert config.formation.formation_type is FormationType.POLYGON
    assert config.formation.polygon_sides == 6


def test_empty_yaml_gives_defaults(tmp_path):
    path = tmp_path / "empty.yaml"
    path.write_text("")
    assert SimulationConfig.from_yaml(path) == SimulationConfig()


@pytest.mark.config_change
def test_shipped_config_matches_defaults():
    config = SimulationConfig.from_yaml(REPO_ROOT / "config" / "default.yaml")
    defaults = SimulationConfig()
    assert config.swarm_size == defaults.swarm_size
    assert config.sensors.ir.max_radius == pytest.approx(defaults.sensors.ir.max_radius)
    assert config.sensors.uwb.angular_precision == pytest.approx(defaults.sensors.uwb.angular_precision, rel=1e-4)
    assert config.formation.formation_type is defaults.formation.formation_type
