from __future__ import annotations

import math
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

import yaml


class Modality(str, Enum):
    IR = "ir"
    UWB = "uwb"
    ANY = "any"


class FormationType(str, Enum):
    CIRCLE = "circle"
    POLYGON = "polygon"


@dataclass
class ModalityConfig:
    min_radius: float
    max_radius: float
    radial_precision: float = 0.01
    angular_precision: float = math.pi / 180.0

    @property
    def sentinel_distance(self) -> float:
        return 2.0 * self.max_radius


def _default_ir() -> ModalityConfig:
    return ModalityConfig(min_radius=0.01, max_radius=0.32)


def _default_uwb() -> ModalityConfig:
    return ModalityConfig(min_radius=0.03, max_radius=20.0)


@dataclass
class SensorConfig:
    ir: ModalityConfig = field(default_factory=_default_ir)
    uwb: ModalityConfig = field(default_factory=_default_uwb)
    # Gate IR links through the emission/reception gain curves
    ir_field_of_view: bool = False
    ir_min_gain: float = 0.01

    def for_modality(self, modality: Modality) -> ModalityConfig:
        if modality is Modality.IR:
            return self.ir
        if modality is Modality.UWB:
            return self.uwb
        raise ValueError(f"No sensor configured for modality {modality.value!r}")


@dataclass
class MotionConfig:
    robot_radius: float = 0.015
    max_linear_speed: float = 0.3
    min_linear_speed: float = 0.01
    max_rotational_speed: float = 2.0 * math.pi
    epsilon: float = 0.01


@dataclass
class FormationConfig:
    formation_type: FormationType = FormationType.CIRCLE
    polygon_sides: int = 4
    min_radius_threshold: float = 0.05
    segment_size: float = 0.2
    anchor_faces_north: bool = False


@dataclass
class SimulationConfig:
    time_step: float = 0.033
    swarm_size: int = 16
    arena_size: float = 1.0
    anchor_position: tuple[float, float] = (-0.4, 0.0)
    anchor_heading: float = 0.5
    spawn_clearance_factor: float = 3.0
    seed: int = 42
    config_version: str = "v1"
    sensors: SensorConfig = field(default_factory=SensorConfig)
    motion: MotionConfig = field(default_factory=MotionConfig)
    formation: FormationConfig = field(default_factory=FormationConfig)

    @staticmethod
    def from_yaml(path: Path) -> "SimulationConfig":
        data = yaml.safe_load(Path(path).read_text()) or {}
        return load_config(data)

    def validate(self) -> "SimulationConfig":
        if self.time_step <= 0.0:
            raise ValueError(f"time_step must be positive, got {self.time_step}")
        if self.swarm_size < 1:
            raise ValueError(f"swarm_size must be at least 1, got {self.swarm_size}")
        for modality in (Modality.IR, Modality.UWB):
            validate_modality(modality, self.sensors.for_modality(modality))
        validate_formation(self.formation)
        if self.motion.min_linear_speed > self.motion.max_linear_speed:
            raise ValueError("min_linear_speed must not exceed max_linear_speed")
        return self


def validate_modality(modality: Modality, sensor: ModalityConfig) -> None:
    if sensor.min_radius < 0.0 or sensor.max_radius <= sensor.min_radius:
        raise ValueError(
            f"{modality.value} sensing radii must satisfy 0 <= min < max, "
            f"got ({sensor.min_radius}, {sensor.max_radius})"
        )
    if sensor.radial_precision < 0.0 or sensor.angular_precision < 0.0:
        raise ValueError(f"{modality.value} precision must be non-negative")


def validate_formation(formation: FormationConfig) -> None:
    if not isinstance(formation.formation_type, FormationType):
        formation.formation_type = parse_formation_type(formation.formation_type)
    if formation.polygon_sides < 3:
        raise ValueError(f"polygon_sides must be at least 3, got {formation.polygon_sides}")
    if formation.min_radius_threshold < 0.0:
        raise ValueError(f"min_radius_threshold must be non-negative, got {formation.min_radius_threshold}")
    if formation.segment_size <= 0.0:
        raise ValueError(f"segment_size must be positive, got {formation.segment_size}")


def parse_formation_type(value: str | FormationType) -> FormationType:
    try:
        return FormationType(value)
    except ValueError:
        known = ", ".join(kind.value for kind in FormationType)
        raise ValueError(f"Unknown formation type: {value!r} (expected one of {known})") from None


def load_config(raw: dict) -> SimulationConfig:
    def _pair(value: tuple[float, float] | list[float] | None, default: tuple[float, float]) -> tuple[float, float]:
        if isinstance(value, (tuple, list)) and len(value) == 2:
            return (float(value[0]), float(value[1]))
        return default

    sensors_raw = raw.get("sensors", {})
    defaults = SensorConfig()
    sensors = SensorConfig(
        ir=ModalityConfig(**{**vars(defaults.ir), **sensors_raw.get("ir", {})}),
        uwb=ModalityConfig(**{**vars(defaults.uwb), **sensors_raw.get("uwb", {})}),
        **{k: v for k, v in sensors_raw.items() if k not in {"ir", "uwb"}},
    )
    motion = MotionConfig(**raw.get("motion", {}))
    formation_raw = dict(raw.get("formation", {}))
    if "formation_type" in formation_raw:
        formation_raw["formation_type"] = parse_formation_type(formation_raw["formation_type"])
    formation = FormationConfig(**formation_raw)
    sim_values = {k: v for k, v in raw.items() if k not in {"sensors", "motion", "formation"}}
    if "anchor_position" in sim_values:
        sim_values["anchor_position"] = _pair(sim_values["anchor_position"], SimulationConfig.anchor_position)
    config = SimulationConfig(sensors=sensors, motion=motion, formation=formation, **sim_values)
    return config.validate()
