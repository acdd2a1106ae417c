from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Tuple

from ..utils.math2d import angle_is_between, wrap_angle


def _clamp_value(value: float, min_value: float, max_value: float) -> float:
    return max(min_value, min(max_value, value))


_EMISSION_POINTS: Tuple[Tuple[float, float], ...] = (
    (0.0, 1.0),
    (10.0, 0.98),
    (20.0, 0.94),
    (30.0, 0.85),
    (40.0, 0.72),
    (45.0, 0.63),
    (50.0, 0.53),
    (55.0, 0.42),
    (60.0, 0.3),
    (70.0, 0.1),
    (80.0, 0.01),
)

_RECEPTION_POINTS: Tuple[Tuple[float, float], ...] = (
    (0.0, 1.0),
    (10.0, 0.98),
    (20.0, 0.95),
    (30.0, 0.87),
    (40.0, 0.75),
    (45.0, 0.68),
    (50.0, 0.6),
    (55.0, 0.5),
    (60.0, 0.4),
    (70.0, 0.25),
    (80.0, 0.1),
)


@dataclass
class IntensityCurve:
    """Piecewise-linear angle -> intensity lookup over x-sorted control points.

    Control point x values are degrees off-axis, y values are intensities in
    [0, 1]. Angles beyond the last control point map to zero.
    """

    points: List[Tuple[float, float]]

    def __post_init__(self) -> None:
        if len(self.points) < 2:
            raise ValueError("an intensity curve needs at least two control points")
        self.points = [(float(x), _clamp_value(float(y), 0.0, 1.0)) for x, y in self.points]
        if any(b[0] < a[0] for a, b in zip(self.points, self.points[1:])):
            raise ValueError("control points must be sorted by x")

    @property
    def cutoff_degrees(self) -> float:
        return self.points[-1][0]

    def __call__(self, angle: float) -> float:
        degrees = abs(math.degrees(angle))
        if degrees > self.cutoff_degrees:
            return 0.0
        return self.interpolate(degrees)

    def interpolate(self, x: float) -> float:
        for (x0, y0), (x1, y1) in zip(self.points, self.points[1:]):
            if x0 <= x <= x1:
                if x1 == x0:
                    return y0
                t = (x - x0) / (x1 - x0)
                return y0 + t * (y1 - y0)
        return 0.0

    def move_point(self, index: int, x: float, y: float) -> Tuple[float, float]:
        """Drag a control point; endpoints keep their x, interior x stays between neighbors."""
        if not 0 <= index < len(self.points):
            raise IndexError(f"control point {index} out of range")
        if index == 0 or index == len(self.points) - 1:
            new_x = self.points[index][0]
        else:
            new_x = _clamp_value(float(x), self.points[index - 1][0], self.points[index + 1][0])
        point = (new_x, _clamp_value(float(y), 0.0, 1.0))
        self.points[index] = point
        return point


def default_emission_curve() -> IntensityCurve:
    return IntensityCurve(list(_EMISSION_POINTS))


def default_reception_curve() -> IntensityCurve:
    return IntensityCurve(list(_RECEPTION_POINTS))


@dataclass
class IrCurves:
    emission: IntensityCurve = field(default_factory=default_emission_curve)
    reception: IntensityCurve = field(default_factory=default_reception_curve)


def ir_link_gain(receiver_bearing: float, emitter_bearing: float, curves: IrCurves) -> float:
    """Gain of a single forward-facing IR pair.

    ``receiver_bearing`` is the emitter's direction in the receiver's frame,
    ``emitter_bearing`` the receiver's direction in the emitter's frame.
    """
    return curves.emission(wrap_angle(emitter_bearing)) * curves.reception(wrap_angle(receiver_bearing))


def ring_reception(
    target_x: float,
    target_y: float,
    target_heading: float,
    curves: IrCurves,
    led_count: int = 8,
    spacing: float = 9.5,
    cone_angle: float = math.radians(50.0),
    attenuation_scale: float = 0.01,
) -> List[float]:
    """Summed intensity received by each LED of a ring robot at ``target``.

    The emitting ring sits at the origin facing +x; both rings carry
    ``led_count`` LEDs evenly spaced on a circle of radius ``spacing``.
    """
    step = 2.0 * math.pi / led_count
    sums = [0.0] * led_count
    for j in range(led_count):
        emitter_angle = wrap_angle(j * step)
        emitter_x = spacing * math.cos(emitter_angle)
        emitter_y = spacing * math.sin(emitter_angle)
        for i in range(led_count):
            receptor_angle = wrap_angle(i * step + target_heading)
            receptor_x = target_x + spacing * math.cos(receptor_angle)
            receptor_y = target_y + spacing * math.sin(receptor_angle)

            dx = receptor_x - emitter_x
            dy = receptor_y - emitter_y
            distance = math.hypot(dx, dy)
            if distance <= 0.0:
                continue
            to_receptor = wrap_angle(math.atan2(dy, dx) - emitter_angle)
            if not angle_is_between(to_receptor, -cone_angle, cone_angle):
                continue
            to_emitter = wrap_angle(math.atan2(-dy, -dx) - receptor_angle)
            if not angle_is_between(to_emitter, -cone_angle, cone_angle):
                continue
            attenuation = 1.0 / ((distance * attenuation_scale) ** 2)
            sums[i] += curves.emission(abs(to_receptor)) * curves.reception(abs(to_emitter)) * attenuation
    return sums


def _ring_direction(highest: int, other: int, led_count: int) -> int:
    if highest == 0 and other == led_count - 1:
        return -1
    if highest == led_count - 1 and other == 0:
        return 1
    return 1 if highest <= other else -1


def estimate_bearing(
    values: Sequence[float],
    spacing: float = 9.5,
    distance_gain: float = 150.0,
) -> Optional[Tuple[float, float]]:
    """Estimate (bearing_degrees, distance) of an emitter from per-LED reception.

    The strongest LED gives the coarse bearing; the runner-up LEDs shift it by
    an amount set by how close their reading is to the peak.
    """
    led_count = len(values)
    if led_count == 0:
        return None
    ranked = sorted(range(led_count), key=lambda idx: (-values[idx], idx))
    highest = ranked[0]
    highest_value = values[highest]
    if highest_value <= 0.0:
        return None
    second = ranked[1] if led_count > 1 else highest
    third = ranked[2] if led_count > 2 else highest
    second_value = values[second] if second != highest else 0.0
    third_value = values[third] if third != highest else 0.0

    step_degrees = 360.0 / led_count
    offset = 0.0
    if second_value > 0.0 and third_value <= 0.0:
        a = _ring_direction(highest, second, led_count)
        offset += a * step_degrees * (1.5 - highest_value / second_value)
    elif second_value > 0.0 and third_value > 0.0:
        a = _ring_direction(highest, second, led_count)
        b = _ring_direction(highest, third, led_count)
        offset += a * step_degrees * (1.0 - highest_value / second_value)
        offset += b * step_degrees * (1.0 - highest_value / third_value)

    bearing = highest * step_degrees + offset
    distance = distance_gain / math.sqrt(highest_value) + spacing * math.cos(math.radians(offset))
    return bearing, distance
