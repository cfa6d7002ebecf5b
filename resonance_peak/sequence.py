"""Logical view over one or more captured sweep chunks.

A sweep may arrive as a single array of samples or as several physically
separate chunks (for example the tail of one acquisition buffer followed by
the head of the next).  :class:`LogicalSequence` stitches those chunks into a
single index space ``[0, N)`` so the peak algorithms are written once and do
not care where a sample physically lives.
"""

from __future__ import annotations

import operator
from dataclasses import dataclass
from typing import Iterable, Sequence

import numpy as np

__all__ = [
    "ContractViolation",
    "OutOfRange",
    "Sample",
    "LogicalSequence",
    "as_sequence",
]


class ContractViolation(RuntimeError):
    """Raised when a caller breaks the input contract of the peak engine."""


class OutOfRange(ContractViolation, IndexError):
    """Raised when a logical index falls outside ``[0, N)``."""


@dataclass(frozen=True)
class Sample:
    """One measurement point of a sweep."""

    phase_angle: float
    impedance: float = 0.0


def _frozen(values: Iterable[float] | np.ndarray, label: str) -> np.ndarray:
    arr = np.array(values, dtype=float, copy=True).ravel()
    if arr.size and not np.all(np.isfinite(arr)):
        raise ContractViolation(f"{label} contains non-finite values")
    arr.flags.writeable = False
    return arr


class LogicalSequence:
    """Read-only concatenation of sample segments.

    Logical index ``i`` resolves into the first segment whose cumulative
    length exceeds ``i``; with two segments this is segment 0 for
    ``i < len(segment0)`` and segment 1 at offset ``i - len(segment0)``
    otherwise.
    """

    def __init__(
        self,
        *segments: Sequence[float] | np.ndarray,
        impedance: Sequence[Sequence[float] | np.ndarray | None] | None = None,
    ) -> None:
        if not segments:
            raise ContractViolation("LogicalSequence needs at least one segment")

        self._phase = tuple(
            _frozen(seg, f"segment {k}") for k, seg in enumerate(segments)
        )

        if impedance is None:
            impedance = [None] * len(self._phase)
        if len(impedance) != len(self._phase):
            raise ContractViolation("impedance must provide one entry per segment")

        imp: list[np.ndarray] = []
        for k, (phase, values) in enumerate(zip(self._phase, impedance)):
            if values is None:
                arr = np.zeros(phase.size, dtype=float)
                arr.flags.writeable = False
            else:
                arr = np.array(values, dtype=float, copy=True).ravel()
                if arr.size != phase.size:
                    raise ContractViolation(
                        f"segment {k}: impedance length {arr.size} does not match "
                        f"phase length {phase.size}"
                    )
                arr.flags.writeable = False
            imp.append(arr)
        self._impedance = tuple(imp)

        lengths = [seg.size for seg in self._phase]
        self._starts = tuple(int(s) for s in np.concatenate([[0], np.cumsum(lengths)[:-1]]))
        self._length = int(sum(lengths))
        self._values: np.ndarray | None = None

    # ------------------------------------------------------------------
    @classmethod
    def from_samples(cls, *chunks: Iterable[Sample]) -> "LogicalSequence":
        """Build a sequence from one or more iterables of :class:`Sample`."""

        phase: list[list[float]] = []
        imp: list[list[float]] = []
        for chunk in chunks:
            items = list(chunk)
            phase.append([s.phase_angle for s in items])
            imp.append([s.impedance for s in items])
        return cls(*phase, impedance=imp)

    @classmethod
    def concatenate(cls, *sequences: "LogicalSequence") -> "LogicalSequence":
        """Join sequences end to end, keeping every backing segment."""

        phase: list[np.ndarray] = []
        imp: list[np.ndarray] = []
        for seq in sequences:
            phase.extend(seq._phase)
            imp.extend(seq._impedance)
        return cls(*phase, impedance=imp)

    # ------------------------------------------------------------------
    def __len__(self) -> int:
        return self._length

    def length(self) -> int:
        return self._length

    def __repr__(self) -> str:
        return f"LogicalSequence(segment_lengths={list(self.segment_lengths)})"

    @property
    def segment_count(self) -> int:
        return len(self._phase)

    @property
    def segment_lengths(self) -> tuple[int, ...]:
        return tuple(seg.size for seg in self._phase)

    @property
    def segments(self) -> tuple[np.ndarray, ...]:
        return self._phase

    def segment_start(self, segment_id: int) -> int:
        """Logical index of the first sample of ``segment_id``."""

        if not 0 <= segment_id < len(self._starts):
            raise ContractViolation(f"Invalid segment id {segment_id!r}")
        return self._starts[segment_id]

    def _check_index(self, i: int) -> int:
        idx = operator.index(i)
        if not 0 <= idx < self._length:
            raise OutOfRange(f"Logical index {idx} outside [0, {self._length})")
        return idx

    def resolve(self, i: int) -> tuple[int, int]:
        """Return ``(segment_id, offset)`` for logical index ``i``."""

        idx = self._check_index(i)
        # empty segments share a start with their successor; side="right" skips them
        segment_id = int(np.searchsorted(self._starts, idx, side="right")) - 1
        return segment_id, idx - self._starts[segment_id]

    def value_at(self, i: int) -> float:
        segment_id, offset = self.resolve(i)
        return float(self._phase[segment_id][offset])

    def sample_at(self, i: int) -> Sample:
        segment_id, offset = self.resolve(i)
        return Sample(
            float(self._phase[segment_id][offset]),
            float(self._impedance[segment_id][offset]),
        )

    def window(self, start: int, stop: int) -> np.ndarray:
        """Phase angles for logical indices ``start <= i < stop``.

        The window may straddle segment boundaries.  The returned array is
        read-only.
        """

        if start < 0 or stop > self._length or start > stop:
            raise OutOfRange(
                f"Window [{start}, {stop}) outside [0, {self._length})"
            )
        if self.segment_count == 1:
            return self._phase[0][start:stop]

        parts = []
        for seg_start, seg in zip(self._starts, self._phase):
            lo = max(start, seg_start)
            hi = min(stop, seg_start + seg.size)
            if lo < hi:
                parts.append(seg[lo - seg_start : hi - seg_start])
        out = np.concatenate(parts) if parts else np.empty(0, dtype=float)
        out.flags.writeable = False
        return out

    @property
    def values(self) -> np.ndarray:
        """All phase angles in logical order (read-only, cached)."""

        if self._values is None:
            self._values = self.window(0, self._length)
        return self._values

    @property
    def impedance(self) -> np.ndarray:
        out = np.concatenate(self._impedance)
        out.flags.writeable = False
        return out


def as_sequence(data: LogicalSequence | Iterable[Sample] | Sequence[float] | np.ndarray) -> LogicalSequence:
    """Coerce ``data`` into a single-segment :class:`LogicalSequence`."""

    if isinstance(data, LogicalSequence):
        return data
    if isinstance(data, np.ndarray):
        return LogicalSequence(data)
    items = list(data)
    if items and isinstance(items[0], Sample):
        return LogicalSequence.from_samples(items)
    return LogicalSequence(items)
