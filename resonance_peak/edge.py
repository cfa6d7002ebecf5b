from __future__ import annotations

import numpy as np

from .sequence import LogicalSequence

__all__ = ["in_edge_window", "is_peak_climbing"]


def in_edge_window(seq: LogicalSequence, peak_index: int, edge_window: int) -> bool:
    """True when ``peak_index`` lies in the last ``edge_window`` samples of
    the final non-empty segment."""

    n = len(seq)
    lengths = seq.segment_lengths
    filled = [k for k, size in enumerate(lengths) if size > 0]
    if not filled:
        return False
    final_start = seq.segment_start(filled[-1])
    return peak_index >= max(final_start, n - edge_window)


def is_peak_climbing(
    seq: LogicalSequence, peak_index: int, noise_tolerance: float = 0.9
) -> bool:
    """Check whether the trace keeps rising from ``peak_index`` to the end.

    A forward step of ``noise_tolerance`` or less counts as a failure.  One
    failure is tolerated as noise; a second one means the peak has turned.
    A peak sitting on either sequence boundary is never climbing.
    """

    n = len(seq)
    seq.value_at(peak_index)  # range check
    if peak_index <= 0 or peak_index >= n - 1:
        return False

    steps = np.diff(seq.window(peak_index, n))
    failures = int(np.count_nonzero(steps <= noise_tolerance))
    return failures < 2
