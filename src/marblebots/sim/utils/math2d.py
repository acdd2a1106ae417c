from __future__ import annotations

import math

TWO_PI = 2.0 * math.pi


def mod(n: float, m: float) -> float:
    return ((n % m) + m) % m


def signed_angle_diff(a: float, b: float) -> float:
    """Shortest signed rotation taking ``b`` onto ``a``, in (-pi, pi].

    Positive is counterclockwise. A half turn is reported as +pi.
    """
    return math.pi - mod(b - a + math.pi, TWO_PI)


def unsigned_angle_diff(a: float, b: float) -> float:
    return abs(signed_angle_diff(a, b))


def wrap_angle(angle: float) -> float:
    return signed_angle_diff(angle, 0.0)


def angle_is_between(angle: float, start: float, end: float) -> bool:
    # start > end describes a window that wraps across the +/-pi seam
    if start <= end:
        return start <= angle <= end
    return angle >= start or angle <= end


def unsigned_min(a: float, b: float) -> float:
    """Pick whichever of ``a`` and ``b`` is closer to zero, keeping the sign of ``a``
    when ``b`` wins against a negative ``a``."""
    if a < 0 and b < 0:
        return max(a, b)
    if a < 0 <= b:
        return -b if abs(a) > b else a
    if a >= 0 > b:
        return b if a > abs(b) else a
    return min(a, b)


def unsigned_max(a: float, b: float) -> float:
    if a < 0 and b < 0:
        return a if abs(a) > abs(b) else b
    if a < 0 <= b:
        return b
    if a >= 0 > b:
        return a
    return max(a, b)


def clamp_magnitude(value: float, low: float, high: float) -> float:
    magnitude = max(low, min(high, abs(value)))
    return math.copysign(magnitude, value)


def add_polar_vectors(r1: float, phi1: float, r2: float, phi2: float) -> tuple[float, float]:
    delta = phi2 - phi1
    # opposite vectors of equal length can round to a tiny negative square
    r = math.sqrt(max(0.0, r1 * r1 + r2 * r2 + 2.0 * r1 * r2 * math.cos(delta)))
    phi = phi1 + math.atan2(r2 * math.sin(delta), r1 + r2 * math.cos(delta))
    return r, phi


def round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))
