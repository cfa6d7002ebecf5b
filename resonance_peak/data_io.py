from __future__ import annotations

import io
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import numpy as np
import pandas as pd

from .sequence import LogicalSequence

__all__ = ["SweepChunk", "read_sweep", "split_chunk"]


@dataclass
class SweepChunk:
    """One captured block of sweep samples."""

    phase: np.ndarray
    impedance: np.ndarray | None = None
    frequency: np.ndarray | None = None
    metadata: dict[str, Any] = field(default_factory=dict)

    def __len__(self) -> int:
        return int(self.phase.size)

    def to_sequence(self) -> LogicalSequence:
        return LogicalSequence(self.phase, impedance=[self.impedance])


# ------------------------------------------------------------------
def _numeric(series: pd.Series) -> np.ndarray:
    return pd.to_numeric(series, errors="coerce").to_numpy(dtype="float64")


def read_sweep(
    file: io.BytesIO | str | Path,
    *,
    header_row: int = 0,
    skip_rows: int = 0,
    phase_column: str | int = "phase_angle",
    impedance_column: str | int | None = "impedance",
    frequency_column: str | int | None = "frequency",
) -> SweepChunk:
    """
    Read a sweep CSV into a :class:`SweepChunk`.

    Named columns are used when the file has a header.  With
    ``header_row < 0`` (no header) or when ``phase_column`` is missing the
    columns are taken positionally: phase angle first, impedance second.
    Rows whose phase angle cannot be parsed are dropped; filtering the
    measurement itself is left to the acquisition side.
    """

    close_after = False
    if not hasattr(file, "read"):
        file = open(file, "rb")
        close_after = True

    try:
        file.seek(0)
        hdr = None if header_row < 0 else header_row
        frame = pd.read_csv(
            file,
            header=hdr,
            skiprows=skip_rows or None,
            dtype="object",
            engine="c",
        )
    finally:
        if close_after:
            file.close()

    columns = list(frame.columns)
    named = hdr is not None and phase_column in columns

    def _column(key: str | int | None, position: int) -> np.ndarray | None:
        if named:
            if key is None or key not in columns:
                return None
            return _numeric(frame[key])
        if isinstance(key, int):
            position = key
        if key is None or position >= len(columns):
            return None
        return _numeric(frame.iloc[:, position])

    phase = _column(phase_column, 0)
    if phase is None:
        raise ValueError("Sweep file does not contain a phase-angle column")
    impedance = _column(impedance_column, 1)
    frequency = _column(frequency_column, 2) if named else None

    keep = np.isfinite(phase)
    phase = phase[keep]
    if impedance is not None:
        impedance = np.nan_to_num(impedance[keep], nan=0.0)
    if frequency is not None:
        frequency = frequency[keep]
        if not np.all(np.isfinite(frequency)):
            frequency = None

    metadata = {
        "columns": [str(c) for c in columns],
        "dropped_rows": int((~keep).sum()),
    }
    return SweepChunk(phase, impedance, frequency, metadata)


def split_chunk(chunk: SweepChunk, at: int) -> tuple[SweepChunk, SweepChunk]:
    """Split ``chunk`` into ``[0, at)`` and ``[at, N)``."""

    if not 0 <= at <= len(chunk):
        raise ValueError(f"Split point {at} outside [0, {len(chunk)}]")

    def _part(arr: np.ndarray | None, sl: slice) -> np.ndarray | None:
        return None if arr is None else arr[sl]

    head, tail = slice(0, at), slice(at, None)
    return (
        SweepChunk(chunk.phase[head], _part(chunk.impedance, head),
                   _part(chunk.frequency, head), dict(chunk.metadata)),
        SweepChunk(chunk.phase[tail], _part(chunk.impedance, tail),
                   _part(chunk.frequency, tail), dict(chunk.metadata)),
    )
