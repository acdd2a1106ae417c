from __future__ import annotations

import math
import random

from pygame.math import Vector2


class DeterministicRng:
    def __init__(self, seed: int):
        self._seed = seed
        self._random = random.Random(seed)

    @property
    def seed(self) -> int:
        return self._seed

    def reset(self, seed: int | None = None) -> None:
        if seed is not None:
            self._seed = seed
        self._random.seed(self._seed)

    def next_symmetric(self, amplitude: float) -> float:
        if amplitude <= 0.0:
            return 0.0
        return self._random.uniform(-amplitude, amplitude)

    def next_angle(self) -> float:
        return self._random.uniform(-math.pi, math.pi)

    def next_point(self, half_extent: float) -> Vector2:
        return Vector2(
            self._random.uniform(-half_extent, half_extent),
            self._random.uniform(-half_extent, half_extent),
        )
