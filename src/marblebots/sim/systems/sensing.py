from __future__ import annotations

import math
from typing import Iterable, Optional

from ..core.agent import Agent, Measurement, NeighborRecord
from ..core.config import Modality, ModalityConfig, SensorConfig
from ..core.rng import DeterministicRng
from ..utils.math2d import signed_angle_diff
from .ir_curves import IrCurves, ir_link_gain

SENSED_MODALITIES = (Modality.UWB, Modality.IR)


def sense_neighbors(
    agent: Agent,
    swarm: Iterable[Agent],
    sensors: SensorConfig,
    rng: DeterministicRng,
    curves: Optional[IrCurves] = None,
) -> None:
    """Re-sample every other agent into ``agent.neighbors`` for both modalities.

    Out-of-range neighbors that were seen before keep their record with the
    distance replaced by the modality's sentinel; unseen ones get no record.
    """
    pos_x = agent.position.x
    pos_y = agent.position.y
    for other in swarm:
        if other.id == agent.id:
            continue
        dx = other.position.x - pos_x
        dy = other.position.y - pos_y
        true_distance = math.sqrt(dx * dx + dy * dy)
        true_bearing = math.atan2(dy, dx)
        for modality in SENSED_MODALITIES:
            sensor = sensors.for_modality(modality)
            distance = true_distance + rng.next_symmetric(sensor.radial_precision)
            angle = signed_angle_diff(true_bearing + rng.next_symmetric(sensor.angular_precision), agent.heading)
            if _in_range(distance, sensor) and _ir_visible(modality, angle, true_bearing, other, sensors, curves):
                record = agent.neighbors.get(other.id)
                if record is None:
                    record = NeighborRecord()
                    agent.neighbors[other.id] = record
                record.store(
                    modality,
                    Measurement(
                        distance=distance,
                        angle=angle,
                        observer_heading=agent.heading,
                        observed_heading=other.heading,
                        observed_is_moving=other.is_moving,
                    ),
                )
                continue
            record = agent.neighbors.get(other.id)
            if record is None:
                continue
            stale = record.for_modality(modality)
            if stale is not None:
                stale.distance = sensor.sentinel_distance


def _in_range(distance: float, sensor: ModalityConfig) -> bool:
    return sensor.min_radius <= distance <= sensor.max_radius


def _ir_visible(
    modality: Modality,
    angle: float,
    true_bearing: float,
    other: Agent,
    sensors: SensorConfig,
    curves: Optional[IrCurves],
) -> bool:
    if modality is not Modality.IR or curves is None or not sensors.ir_field_of_view:
        return True
    emitter_bearing = signed_angle_diff(true_bearing + math.pi, other.heading)
    return ir_link_gain(angle, emitter_bearing, curves) >= sensors.ir_min_gain
