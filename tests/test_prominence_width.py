import numpy as np
import pytest

from resonance_peak.prominence import higher_bounds, peak_prominence
from resonance_peak.sequence import LogicalSequence, OutOfRange
from resonance_peak.width import fwhm, half_height_crossings


def _triangle(height=10):
    up = np.arange(height + 1, dtype=float)
    return np.concatenate([up, up[-2::-1]])


def test_flat_sequence_has_zero_prominence():
    seq = LogicalSequence(np.full(50, 12.5))

    for idx in (0, 17, 49):
        assert peak_prominence(seq, idx) == 0.0


def test_prominence_stops_at_nearest_higher_sample():
    seq = LogicalSequence([0.0, 50.0, 5.0, 30.0, 20.0, 40.0, 0.0])

    assert higher_bounds(seq, 3) == (1, 5)
    # the minimum between the bounds is 5, not the global 0
    assert peak_prominence(seq, 3) == pytest.approx(25.0)


def test_highest_peak_is_bounded_by_sequence_ends():
    seq = LogicalSequence([3.0, 1.0, 8.0, 2.0, 4.0])

    assert higher_bounds(seq, 2) == (0, 4)
    assert peak_prominence(seq, 2) == pytest.approx(7.0)


def test_prominence_uses_the_lower_side_minimum():
    seq = LogicalSequence([5.0, 10.0, 2.0])

    assert peak_prominence(seq, 1) == pytest.approx(8.0)


def test_prominence_is_identical_across_segment_shapes():
    values = np.array([4.0, 1.0, 6.0, 3.0, 9.0, 2.0, 7.0, 0.5, 5.0])
    whole = LogicalSequence(values)
    split = LogicalSequence(values[:4], values[4:])

    for idx in range(values.size):
        assert peak_prominence(whole, idx) == peak_prominence(split, idx)


def test_prominence_rejects_out_of_range_index():
    seq = LogicalSequence([1.0, 2.0, 1.0])

    with pytest.raises(OutOfRange):
        peak_prominence(seq, 3)


def test_fwhm_of_triangle_uses_integer_crossings():
    seq = LogicalSequence(_triangle(10))

    assert peak_prominence(seq, 10) == pytest.approx(10.0)
    assert half_height_crossings(seq, 10, 10.0) == (5, 15)
    assert fwhm(seq, 10, 10.0) == 10


def test_fwhm_walk_stops_at_sequence_ends():
    seq = LogicalSequence([9.0, 10.0, 9.5, 9.0])

    # half height of 5 is never crossed, so both walks run to the ends
    assert half_height_crossings(seq, 1, 10.0) == (0, 3)
    assert fwhm(seq, 1, 10.0) == 3


def test_fwhm_crosses_segment_boundary():
    values = _triangle(10)
    split = LogicalSequence(values[:12], values[12:])

    assert fwhm(split, 10, 10.0) == fwhm(LogicalSequence(values), 10, 10.0)
