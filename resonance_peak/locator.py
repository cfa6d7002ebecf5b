"""Guided divide-and-conquer search for the dominant local maximum.

Every step scans its whole sub-window for the maximum and then checks the
samples either side of the window midpoint to decide whether to narrow the
search to the left or right half.  The re-scan makes each step linear in the
window size, so the total cost is linear rather than logarithmic.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable, Iterator

import numpy as np

from .sequence import LogicalSequence, OutOfRange

__all__ = ["ExclusionSet", "PeakCandidate", "locate_peak"]


class ExclusionSet:
    """Bounded set of logical indices skipped by :func:`locate_peak`.

    Once ``capacity`` indices are held, :meth:`add` drops new indices and
    returns ``False``.  A dropped index can be returned by the locator again.
    """

    def __init__(self, capacity: int = 3, indices: Iterable[int] = ()) -> None:
        if capacity < 0:
            raise ValueError("Exclusion capacity must be non-negative")
        self.capacity = int(capacity)
        self._indices: list[int] = []
        for idx in indices:
            self.add(idx)

    def add(self, index: int) -> bool:
        index = int(index)
        if index in self._indices:
            return True
        if self.is_full:
            return False
        self._indices.append(index)
        return True

    @property
    def is_full(self) -> bool:
        return len(self._indices) >= self.capacity

    def __contains__(self, index: object) -> bool:
        return index in self._indices

    def __iter__(self) -> Iterator[int]:
        return iter(self._indices)

    def __len__(self) -> int:
        return len(self._indices)

    def __repr__(self) -> str:
        return f"ExclusionSet(capacity={self.capacity}, indices={self._indices})"


@dataclass(frozen=True)
class PeakCandidate:
    """Index and value of a local maximum picked by the locator."""

    logical_index: int
    value: float
    depth: int = 0  # number of narrowing steps taken


def _window_max(
    seq: LogicalSequence,
    start: int,
    end: int,
    exclusions: ExclusionSet | None,
) -> tuple[int, float] | None:
    """Return ``(index, value)`` of the first maximum in ``[start, end]``."""

    window = np.array(seq.window(start, end + 1), dtype=float)
    if exclusions:
        for idx in exclusions:
            if start <= idx <= end:
                window[idx - start] = -np.inf
    if not np.any(np.isfinite(window)):
        return None
    # argmax returns the first occurrence, so ties keep the earliest index
    pos = int(np.argmax(window))
    return start + pos, float(window[pos])


def locate_peak(
    seq: LogicalSequence,
    start: int = 0,
    end: int | None = None,
    exclusions: ExclusionSet | None = None,
    *,
    _depth: int = 0,
) -> PeakCandidate | None:
    """Locate a local maximum of ``seq`` within ``[start, end]``.

    Parameters
    ----------
    seq:
        Logical sequence to search.
    start, end:
        Inclusive window bounds; ``end`` defaults to the last index.
    exclusions:
        Indices that must not be returned.

    Returns
    -------
    PeakCandidate | None
        ``None`` when the window is empty or every index in it is excluded.
    """

    n = len(seq)
    if end is None:
        end = n - 1
    if start > end:
        return None
    if start < 0 or end >= n:
        raise OutOfRange(f"Search window [{start}, {end}] outside [0, {n})")

    found = _window_max(seq, start, end, exclusions)
    if found is None:
        return None
    max_index, max_val = found

    mid = start + (end - start) // 2
    if mid == 0 or mid == n - 1:
        return PeakCandidate(max_index, max_val, _depth)

    if seq.value_at(mid - 1) > max_val:
        return locate_peak(seq, start, mid - 1, exclusions, _depth=_depth + 1)
    if seq.value_at(mid + 1) > max_val:
        return locate_peak(seq, mid + 1, end, exclusions, _depth=_depth + 1)
    return PeakCandidate(max_index, max_val, _depth)
