from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional

from pygame.math import Vector2

from .config import Modality


@dataclass(slots=True)
class Measurement:
    distance: float
    angle: float
    observer_heading: float
    observed_heading: float
    observed_is_moving: bool = False

    @property
    def world_bearing(self) -> float:
        return self.angle + self.observer_heading


@dataclass(slots=True)
class NeighborRecord:
    ir: Optional[Measurement] = None
    uwb: Optional[Measurement] = None

    def for_modality(self, modality: Modality) -> Optional[Measurement]:
        if modality is Modality.IR:
            return self.ir
        if modality is Modality.UWB:
            return self.uwb
        return None

    def store(self, modality: Modality, measurement: Measurement) -> None:
        if modality is Modality.IR:
            self.ir = measurement
        else:
            self.uwb = measurement


@dataclass(frozen=True, slots=True)
class MotionDelta:
    rotation: float
    forward: float


@dataclass(slots=True)
class Agent:
    id: int
    position: Vector2
    heading: float
    neighbors: Dict[int, NeighborRecord] = field(default_factory=dict)
    committed: Optional[MotionDelta] = None
    remaining_rotation: Optional[float] = None
    remaining_forward: Optional[float] = None
    is_moving: bool = False
    current_rule: Optional[str] = None
    target_id: Optional[int] = None
    id_offset: Optional[int] = None
    last_delta: Optional[MotionDelta] = None

    def known_ids(self) -> List[int]:
        """Own id plus every neighbor id ever sensed, in ascending index order."""
        ids = set(self.neighbors)
        ids.add(self.id)
        return sorted(ids)

    def clear_diagnostics(self) -> None:
        self.current_rule = None
        self.target_id = None
        self.id_offset = None
