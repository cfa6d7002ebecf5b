"""Full width at half maximum measured on the sample grid."""

from __future__ import annotations

from .sequence import LogicalSequence

__all__ = ["half_height_crossings", "fwhm"]


def half_height_crossings(
    seq: LogicalSequence, peak_index: int, prominence: float
) -> tuple[int, int]:
    """Indices where the walk away from the peak first drops to half height.

    The half height sits ``prominence / 2`` above the contour line
    ``peak - prominence``.  Each walk stops at the first sample that is not
    above it, or at the sequence end.
    """

    values = seq.values
    n = len(seq)
    peak_height = seq.value_at(peak_index)
    contour = peak_height - prominence
    half_height = contour + prominence / 2.0

    left = peak_index
    while left > 0 and values[left] > half_height:
        left -= 1

    right = peak_index
    while right < n - 1 and values[right] > half_height:
        right += 1

    return left, right


def fwhm(seq: LogicalSequence, peak_index: int, prominence: float) -> int:
    """Integer sample span between the two half-height crossings."""

    # TODO: linear interpolation between the crossing sample and its inner
    # neighbour would give a sub-sample width.
    left, right = half_height_crossings(seq, peak_index, prominence)
    return abs(right - left)
