"""Batch-processing utilities for resonance peak validation.

This module powers the command-line workflow: each input is either a single
sweep file or a pair of files captured back to back.  Every sweep is run
through the validator, optionally characterised with a Lorentzian fit, and
the outcomes are exported as a CSV summary and a JSON manifest.
"""

from __future__ import annotations

import json
import logging
import math
import re
from collections.abc import Mapping as MappingABC
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Iterable, Mapping, Optional, Protocol, Sequence

import numpy as np
import pandas as pd

from .data_io import SweepChunk, read_sweep
from .resonance import LorentzianFit, damping_ratio, fit_lorentzian
from .sequence import ContractViolation, LogicalSequence
from .validator import PeakConfig, PeakValidator, ValidationOutcome

logger = logging.getLogger(__name__)


@dataclass
class SweepInput:
    """Description of one sweep to analyse."""

    stem: str
    chunks: list[SweepChunk]
    metadata: dict[str, Any] = field(default_factory=dict)
    source_names: list[str] = field(default_factory=list)
    order: int = 0

    @property
    def is_overlap(self) -> bool:
        return len(self.chunks) > 1

    def to_sequence(self) -> LogicalSequence:
        return LogicalSequence.concatenate(*(c.to_sequence() for c in self.chunks))

    def frequency(self) -> np.ndarray | None:
        parts = [c.frequency for c in self.chunks]
        if any(p is None for p in parts):
            return None
        return np.concatenate(parts)


@dataclass
class SweepResult:
    """Processed information for a sweep."""

    stem: str
    outcome: ValidationOutcome
    segment_lengths: tuple[int, ...]
    config: PeakConfig
    metadata: dict[str, Any]
    source_names: list[str] = field(default_factory=list)
    resonance_frequency: Optional[float] = None
    damping: Optional[float] = None
    fit: Optional[LorentzianFit] = None

    @property
    def n_samples(self) -> int:
        return int(sum(self.segment_lengths))


@dataclass
class BatchOptions:
    """Global configuration for a batch run."""

    config: PeakConfig = field(default_factory=PeakConfig)

    header_row: int = 0
    skip_rows: int = 0
    phase_column: str = "phase_angle"
    impedance_column: str = "impedance"
    frequency_column: str = "frequency"

    fit_lorentzian: bool = False
    export_plots: bool = False
    workers: int = 1


@dataclass
class BatchResults:
    """Return value for a batch run."""

    sweeps: list[SweepResult]
    interrupted: bool = False
    failed_sweeps: list[str] = field(default_factory=list)


class BatchProgress(Protocol):
    """Callback interface for reporting batch progress."""

    def start(self, total: int) -> None:
        ...

    def advance(self, stem: str, completed: int, total: int) -> None:
        ...

    def finish(self, completed: int, total: int, interrupted: bool) -> None:
        ...


# ----------------------------------------------------------------------
def _sanitize_stem_value(value: str) -> str:
    """Return a filesystem-safe value suitable for sweep stems."""

    text = str(value).strip()
    if not text:
        return "sweep"

    clean = re.sub(r"[^0-9A-Za-z._-]+", "_", text)
    clean = re.sub(r"_{2,}", "_", clean)
    clean = clean.strip("._-")
    return clean or "sweep"


def _unique_stem(raw_value: str, *, used: set[str]) -> str:
    base = _sanitize_stem_value(raw_value)
    candidate = base
    suffix = 2
    while candidate in used:
        candidate = f"{base}_{suffix}"
        suffix += 1
    used.add(candidate)
    return candidate


def _read(path: Path, options: BatchOptions) -> SweepChunk:
    return read_sweep(
        path,
        header_row=options.header_row,
        skip_rows=options.skip_rows,
        phase_column=options.phase_column,
        impedance_column=options.impedance_column,
        frequency_column=options.frequency_column,
    )


def collect_sweep_files(
    paths: Sequence[str | Path],
    options: BatchOptions,
) -> list[SweepInput]:
    """Create one single-chunk :class:`SweepInput` per file."""

    sweeps: list[SweepInput] = []
    used_stems: set[str] = set()
    for order, path in enumerate(paths):
        path_obj = Path(path)
        chunk = _read(path_obj, options)
        sweeps.append(
            SweepInput(
                stem=_unique_stem(path_obj.stem, used=used_stems),
                chunks=[chunk],
                metadata={"source_stem": path_obj.stem, **chunk.metadata},
                source_names=[str(path_obj)],
                order=order,
            )
        )
    return sweeps


def collect_overlap_pairs(
    pairs: Sequence[tuple[str | Path, str | Path]],
    options: BatchOptions,
    *,
    start_order: int = 0,
    used_stems: set[str] | None = None,
) -> list[SweepInput]:
    """Create two-chunk inputs from ``(first, second)`` file pairs."""

    used = used_stems if used_stems is not None else set()
    sweeps: list[SweepInput] = []
    for offset, (first, second) in enumerate(pairs):
        p1, p2 = Path(first), Path(second)
        chunks = [_read(p1, options), _read(p2, options)]
        raw_stem = f"{p1.stem}+{p2.stem}"
        sweeps.append(
            SweepInput(
                stem=_unique_stem(raw_stem, used=used),
                chunks=chunks,
                metadata={"source_stem": raw_stem},
                source_names=[str(p1), str(p2)],
                order=start_order + offset,
            )
        )
    return sweeps


# ----------------------------------------------------------------------
def _resolve_config(
    sweep: SweepInput,
    options: BatchOptions,
    overrides: Mapping[str, Any] | None,
) -> PeakConfig:
    if not overrides:
        return options.config
    merged: dict[str, Any] = {}
    for key in ("*", sweep.metadata.get("source_stem"), sweep.stem):
        entry = overrides.get(key) if key else None
        if isinstance(entry, MappingABC):
            merged.update(entry)
    if not merged:
        return options.config
    return PeakConfig.from_mapping(merged, base=options.config)


def process_sweep(
    sweep: SweepInput,
    options: BatchOptions,
    overrides: Mapping[str, Any] | None = None,
) -> SweepResult:
    """Validate one sweep and attach the resonance characterisation."""

    config = _resolve_config(sweep, options, overrides)
    seq = sweep.to_sequence()
    outcome = PeakValidator(config).validate(seq)

    result = SweepResult(
        stem=sweep.stem,
        outcome=outcome,
        segment_lengths=seq.segment_lengths,
        config=config,
        metadata=dict(sweep.metadata),
        source_names=list(sweep.source_names),
    )

    freq = sweep.frequency()
    if outcome.accepted and freq is not None:
        result.resonance_frequency = float(freq[outcome.logical_index])
        step = float(np.median(np.abs(np.diff(freq)))) if freq.size > 1 else 0.0
        width = outcome.fwhm * step
        if result.resonance_frequency > 0 and width > 0:
            result.damping = damping_ratio(result.resonance_frequency, width)
        if options.fit_lorentzian:
            result.fit = fit_lorentzian(freq, seq, outcome.logical_index, outcome.fwhm)

    if outcome.accepted:
        logger.info(
            "%s: peak accepted at %d (prominence %.3f, FWHM %d)%s",
            sweep.stem,
            outcome.logical_index,
            outcome.prominence,
            outcome.fwhm,
            " - still climbing" if outcome.edge_case_climbing else "",
        )
    else:
        logger.info("%s: rejected (%s)", sweep.stem, outcome.reason.value)
    return result


def run_batch(
    sweeps: Iterable[SweepInput],
    options: BatchOptions,
    overrides: Mapping[str, Any] | None = None,
    progress: BatchProgress | None = None,
) -> BatchResults:
    """Process all sweeps, optionally on a thread pool."""

    ordered = sorted(sweeps, key=lambda s: s.order)
    order_map = {s.stem: idx for idx, s in enumerate(ordered)}
    results: list[SweepResult] = []
    failed: list[str] = []
    total = len(ordered)
    completed = 0
    interrupted = False

    if progress is not None:
        try:
            progress.start(total)
        except Exception:
            progress = None

    def _advance(stem: str) -> None:
        nonlocal completed, progress
        completed += 1
        if progress is not None:
            try:
                progress.advance(stem, completed, total)
            except Exception:
                progress = None

    def _record_failure(stem: str, exc: BaseException) -> None:
        logger.warning("%s: skipped (%s)", stem, exc)
        failed.append(stem)
        _advance(stem)

    if options.workers > 1:
        from concurrent.futures import ThreadPoolExecutor, as_completed

        with ThreadPoolExecutor(max_workers=options.workers) as pool:
            future_map = {
                pool.submit(process_sweep, sweep, options, overrides): sweep
                for sweep in ordered
            }
            try:
                for future in as_completed(future_map):
                    sweep = future_map[future]
                    try:
                        res = future.result()
                    except (ContractViolation, ValueError) as exc:
                        _record_failure(sweep.stem, exc)
                        continue
                    results.append(res)
                    _advance(res.stem)
            except KeyboardInterrupt:
                interrupted = True
                for future in future_map:
                    future.cancel()
    else:
        for sweep in ordered:
            try:
                res = process_sweep(sweep, options, overrides)
            except KeyboardInterrupt:
                interrupted = True
                break
            except (ContractViolation, ValueError) as exc:
                _record_failure(sweep.stem, exc)
                continue
            results.append(res)
            _advance(res.stem)

    results.sort(key=lambda r: order_map.get(r.stem, 0))
    failed.sort(key=lambda stem: order_map.get(stem, 0))

    if progress is not None:
        try:
            progress.finish(completed, total, interrupted)
        except Exception:
            pass

    return BatchResults(sweeps=results, interrupted=interrupted, failed_sweeps=failed)


# ----------------------------------------------------------------------
def _jsonify(value: Any) -> Any:
    """Convert numpy/enum objects into JSON-serialisable Python values."""

    if isinstance(value, np.generic):
        return value.item()
    if isinstance(value, np.ndarray):
        return [_jsonify(v) for v in value.tolist()]
    if isinstance(value, MappingABC):
        return {str(k): _jsonify(v) for k, v in value.items()}
    if isinstance(value, (list, tuple, set)):
        return [_jsonify(v) for v in value]
    if isinstance(value, Path):
        return str(value)
    if isinstance(value, Enum):
        return value.name
    if isinstance(value, float) and not math.isfinite(value):
        return None
    return value


def _outcome_dict(outcome: ValidationOutcome) -> dict[str, Any]:
    return {
        "accepted": outcome.accepted,
        "logical_index": outcome.logical_index,
        "value": outcome.value,
        "edge_case_climbing": outcome.edge_case_climbing,
        "needs_continuation": outcome.needs_continuation,
        "reason": outcome.reason.value if outcome.reason else None,
        "prominence": outcome.prominence,
        "fwhm": outcome.fwhm,
        "attempts": outcome.attempts,
        "excluded": list(outcome.excluded),
        "segment": outcome.segment,
        "segment_offset": outcome.segment_offset,
        "path": [state.name for state in outcome.path],
    }


def results_to_dict(batch: BatchResults) -> dict[str, Any]:
    """Convert results into a JSON-serialisable structure."""

    payload: dict[str, Any] = {
        "sweeps": [],
        "interrupted": bool(batch.interrupted),
        "failed_sweeps": list(batch.failed_sweeps),
    }
    for res in batch.sweeps:
        entry = {
            "stem": res.stem,
            "outcome": _outcome_dict(res.outcome),
            "segment_lengths": list(res.segment_lengths),
            "config": {
                "prominence_threshold": res.config.prominence_threshold,
                "width_threshold": res.config.width_threshold,
                "max_attempts": res.config.max_attempts,
                "max_exclusions": res.config.max_exclusions,
                "noise_tolerance": res.config.noise_tolerance,
                "edge_window": res.config.edge_window,
            },
            "resonance_frequency": res.resonance_frequency,
            "damping_ratio": res.damping,
            "metadata": res.metadata,
            "source_names": res.source_names,
        }
        if res.fit is not None:
            entry["lorentzian_fit"] = {
                "peak_height": res.fit.peak_height,
                "resonance_frequency": res.fit.resonance_frequency,
                "half_width": res.fit.half_width,
                "baseline": res.fit.baseline,
                "r2": res.fit.r2,
            }
        payload["sweeps"].append(entry)
    return _jsonify(payload)


SUMMARY_COLUMNS = [
    "stem",
    "n_samples",
    "segments",
    "accepted",
    "reason",
    "peak_index",
    "peak_value",
    "prominence",
    "fwhm",
    "attempts",
    "needs_continuation",
    "resonance_frequency",
    "damping_ratio",
]


def export_summary(batch: BatchResults) -> pd.DataFrame:
    rows: list[dict[str, Any]] = []
    for res in batch.sweeps:
        out = res.outcome
        rows.append({
            "stem": res.stem,
            "n_samples": res.n_samples,
            "segments": "+".join(str(n) for n in res.segment_lengths),
            "accepted": out.accepted,
            "reason": out.reason.value if out.reason else "",
            "peak_index": out.logical_index,
            "peak_value": out.value,
            "prominence": out.prominence,
            "fwhm": out.fwhm,
            "attempts": out.attempts,
            "needs_continuation": out.needs_continuation,
            "resonance_frequency": res.resonance_frequency,
            "damping_ratio": res.damping,
        })
    if rows:
        return pd.DataFrame(rows, columns=SUMMARY_COLUMNS)
    return pd.DataFrame(columns=SUMMARY_COLUMNS)


def save_outputs(
    batch: BatchResults,
    output_dir: str | Path,
    *,
    sweeps: Sequence[SweepInput] | None = None,
    run_metadata: Mapping[str, Any] | None = None,
    export_plots: bool = False,
) -> None:
    """Write the summary CSV, JSON manifest, failure list and plots."""

    out = Path(output_dir)
    out.mkdir(parents=True, exist_ok=True)

    export_summary(batch).to_csv(out / "summary.csv", index=False)

    with (out / "failed_sweeps.txt").open("w", encoding="utf-8") as fh:
        for stem in batch.failed_sweeps:
            fh.write(f"{stem}\n")

    manifest = results_to_dict(batch)
    if run_metadata:
        manifest["run_metadata"] = _jsonify(run_metadata)
    with open(out / "results.json", "w", encoding="utf-8") as fh:
        json.dump(manifest, fh, indent=2)

    if export_plots and sweeps:
        from .plotting import fig_to_png, plot_sweep
        import matplotlib.pyplot as plt

        plots_dir = out / "plots"
        plots_dir.mkdir(exist_ok=True)
        inputs = {s.stem: s for s in sweeps}
        for res in batch.sweeps:
            sweep = inputs.get(res.stem)
            if sweep is None:
                continue
            fig = plot_sweep(sweep.to_sequence(), res.outcome, sweep.frequency(), title=res.stem)
            png = fig_to_png(fig)
            plt.close(fig)
            if png:
                (plots_dir / f"{res.stem}.png").write_bytes(png)
