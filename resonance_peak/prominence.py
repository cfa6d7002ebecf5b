from __future__ import annotations

import numpy as np

from .sequence import LogicalSequence

__all__ = ["higher_bounds", "peak_prominence"]


def higher_bounds(seq: LogicalSequence, peak_index: int) -> tuple[int, int]:
    """Nearest strictly higher sample on each side of ``peak_index``.

    A side without a higher sample is bounded by the sequence end.
    """

    values = seq.values
    peak_val = seq.value_at(peak_index)

    higher_left = np.flatnonzero(values[:peak_index] > peak_val)
    left = int(higher_left[-1]) if higher_left.size else 0

    higher_right = np.flatnonzero(values[peak_index + 1 :] > peak_val)
    right = peak_index + 1 + int(higher_right[0]) if higher_right.size else len(seq) - 1
    return left, right


def peak_prominence(seq: LogicalSequence, peak_index: int) -> float:
    """Height of the peak above the lowest point before a higher peak.

    The search for the base stops at the nearest higher sample on each side
    (or the sequence end), for single and multi-segment sequences alike.  The
    lower of the two side minima is used as the base.
    """

    left, right = higher_bounds(seq, peak_index)
    values = seq.values
    peak_val = float(values[peak_index])
    left_min = float(np.min(values[left : peak_index + 1]))
    right_min = float(np.min(values[peak_index : right + 1]))
    return peak_val - min(left_min, right_min)
