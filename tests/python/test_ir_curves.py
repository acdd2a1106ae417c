import math

import pytest

from marblebots.sim.systems.ir_curves import (
    IntensityCurve,
    IrCurves,
    default_emission_curve,
    default_reception_curve,
    estimate_bearing,
    ir_link_gain,
    ring_reception,
)


def test_curves_peak_on_axis_and_vanish_past_cutoff():
    emission = default_emission_curve()
    reception = default_reception_curve()
    assert emission(0.0) == pytest.approx(1.0)
    assert reception(0.0) == pytest.approx(1.0)
    assert emission.cutoff_degrees == pytest.approx(80.0)
    assert emission(math.radians(85.0)) == 0.0
    assert reception(math.radians(-85.0)) == 0.0


def test_curve_interpolates_linearly_and_symmetrically():
    emission = default_emission_curve()
    assert emission(math.radians(42.5)) == pytest.approx((0.72 + 0.63) / 2.0)
    assert emission(math.radians(-42.5)) == pytest.approx(emission(math.radians(42.5)))


def test_curve_rejects_bad_control_points():
    with pytest.raises(ValueError):
        IntensityCurve([(0.0, 1.0)])
    with pytest.raises(ValueError):
        IntensityCurve([(10.0, 1.0), (0.0, 0.5)])


def test_move_point_keeps_endpoints_and_neighbor_bounds():
    curve = default_emission_curve()
    assert curve.move_point(0, 25.0, 0.5) == (0.0, 0.5)
    assert curve.move_point(len(curve.points) - 1, 10.0, -1.0) == (80.0, 0.0)
    assert curve.move_point(3, 99.0, 2.0) == (40.0, 1.0)
    with pytest.raises(IndexError):
        curve.move_point(len(curve.points), 0.0, 0.0)


def test_curve_intensities_are_clamped_to_unit_range():
    curve = IntensityCurve([(0.0, 1.5), (10.0, -0.2)])
    assert curve.points == [(0.0, 1.0), (10.0, 0.0)]


def test_link_gain_multiplies_both_ends():
    curves = IrCurves()
    assert ir_link_gain(0.0, 0.0, curves) == pytest.approx(1.0)
    half = ir_link_gain(math.radians(30.0), math.radians(30.0), curves)
    assert half == pytest.approx(0.85 * 0.87)
    assert ir_link_gain(0.0, math.pi, curves) == 0.0


def test_ring_reception_peaks_on_the_facing_led():
    curves = IrCurves()
    values = ring_reception(60.0, 0.0, math.pi, curves)
    assert len(values) == 8
    # the receiving ring is turned around, so its LED 0 points back at the emitter
    assert max(range(8), key=lambda idx: values[idx]) == 0
    assert values[4] == 0.0


def test_estimate_bearing_from_single_peak():
    bearing, distance = estimate_bearing([0.0, 0.0, 4.0, 0.0, 0.0, 0.0, 0.0, 0.0])
    assert bearing == pytest.approx(90.0)
    assert distance == pytest.approx(150.0 / 2.0 + 9.5)


def test_estimate_bearing_shifts_toward_runner_up():
    bearing, _ = estimate_bearing([0.0, 0.0, 4.0, 3.5, 0.0, 0.0, 0.0, 0.0])
    assert 90.0 < bearing < 135.0


def test_estimate_bearing_without_signal():
    assert estimate_bearing([0.0] * 8) is None
    assert estimate_bearing([]) is None
