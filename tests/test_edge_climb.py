import numpy as np
import pytest

from resonance_peak.edge import in_edge_window, is_peak_climbing
from resonance_peak.sequence import LogicalSequence, OutOfRange


def test_boundary_peaks_are_never_climbing():
    seq = LogicalSequence(np.arange(0.0, 20.0, 2.0))

    assert not is_peak_climbing(seq, 0)
    assert not is_peak_climbing(seq, len(seq) - 1)


def test_steady_rise_is_climbing():
    seq = LogicalSequence(np.arange(0.0, 20.0, 2.0))

    assert is_peak_climbing(seq, 4)


def test_one_flat_step_is_tolerated_as_noise():
    seq = LogicalSequence([0.0, 2.0, 4.0, 4.5, 6.5, 8.5])

    assert is_peak_climbing(seq, 1)


def test_second_failure_means_not_climbing():
    seq = LogicalSequence([0.0, 2.0, 4.0, 4.5, 6.5, 6.0, 8.0])

    assert not is_peak_climbing(seq, 1)


def test_noise_tolerance_is_inclusive():
    seq = LogicalSequence([0.0, 1.0, 2.0, 3.0, 4.0])

    assert is_peak_climbing(seq, 1, noise_tolerance=0.5)
    assert not is_peak_climbing(seq, 1, noise_tolerance=1.0)


def test_invalid_peak_index_is_a_contract_violation():
    seq = LogicalSequence([0.0, 1.0, 2.0])

    with pytest.raises(OutOfRange):
        is_peak_climbing(seq, 3)


def test_edge_window_counts_from_the_end_of_the_final_segment():
    single = LogicalSequence(np.zeros(100))
    assert in_edge_window(single, 70, 30)
    assert not in_edge_window(single, 69, 30)

    split = LogicalSequence(np.zeros(90), np.zeros(10))
    # last 30 logical samples, but only those inside the final segment
    assert not in_edge_window(split, 85, 30)
    assert in_edge_window(split, 90, 30)

    long_tail = LogicalSequence(np.zeros(20), np.zeros(80))
    assert in_edge_window(long_tail, 70, 30)
    assert not in_edge_window(long_tail, 69, 30)


def test_edge_window_skips_empty_trailing_segments():
    seq = LogicalSequence(np.zeros(90), np.zeros(10), [])

    assert in_edge_window(seq, 90, 30)
    assert not in_edge_window(seq, 85, 30)
    assert not in_edge_window(LogicalSequence([]), 0, 30)
