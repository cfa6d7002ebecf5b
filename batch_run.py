"""Command-line interface for resonance peak validation."""

from __future__ import annotations

import argparse
import json
import logging
import os
import sys
import threading
from pathlib import Path
from typing import Any

from resonance_peak.batch import (
    BatchOptions,
    collect_overlap_pairs,
    collect_sweep_files,
    run_batch,
    save_outputs,
)
from resonance_peak.validator import PeakConfig


class ConsoleProgress:
    """Lightweight console progress bar for batch runs."""

    def __init__(self, stream: Any | None = None) -> None:
        self._stream = stream or sys.stderr
        self._lock = threading.Lock()
        self._total = 0
        self._last_label: str | None = None
        self._active = False
        self._last_len = 0
        self._interactive = bool(getattr(self._stream, "isatty", lambda: False)())
        self._width = 28

    def start(self, total: int) -> None:
        with self._lock:
            self._total = max(int(total), 0)
            self._last_label = None
            self._active = True
            if self._interactive and self._total > 0:
                self._emit(self._format(None, 0, final=False, interrupted=False), final=False)

    def advance(self, stem: str, completed: int, total: int) -> None:
        with self._lock:
            if not self._active:
                return
            self._total = max(self._total, int(total))
            self._last_label = stem
            self._emit(self._format(stem, completed, final=False, interrupted=False), final=False)

    def finish(self, completed: int, total: int, interrupted: bool) -> None:
        with self._lock:
            if not self._active:
                return
            self._total = max(self._total, int(total))
            message = self._format(self._last_label, completed, final=True, interrupted=interrupted)
            self._emit(message, final=True)
            self._active = False
            self._last_len = 0

    def _format(self, label: str | None, completed: int, *, final: bool, interrupted: bool) -> str:
        if self._total > 0:
            ratio = min(1.0, max(0.0, completed / self._total))
            filled = min(self._width, max(0, int(round(ratio * self._width))))
            bar = "█" * filled + "░" * (self._width - filled)
            message = f"[{bar}] {completed}/{self._total}"
        else:
            message = f"Processed {completed} sweep(s)"
        if label:
            message += f" ({label})"
        if final and interrupted:
            message += " - interrupted"
        return message

    def _emit(self, message: str, *, final: bool) -> None:
        if self._interactive:
            if len(message) < self._last_len:
                message = message + " " * (self._last_len - len(message))
            end = "\n" if final else "\r"
            print(message, end=end, file=self._stream, flush=True)
            self._last_len = 0 if final else len(message)
        elif final:
            print(message, file=self._stream, flush=True)


def _load_overrides(path: str | None) -> dict[str, Any] | None:
    if not path:
        return None
    with open(path, "r", encoding="utf-8") as fh:
        data = json.load(fh)
    if not isinstance(data, dict):
        raise ValueError("Override file must contain a JSON object")
    return data


def _configure_environment() -> None:
    """Prefer a headless matplotlib backend for plot exports."""

    os.environ.setdefault("MPLBACKEND", "Agg")


def build_parser() -> argparse.ArgumentParser:
    defaults = PeakConfig()
    parser = argparse.ArgumentParser(
        description="Validate the resonance peak of phase-angle sweeps",
    )

    parser.add_argument(
        "--sweep",
        action="append",
        metavar="PATH",
        help="Path to a single-chunk sweep CSV. May be provided multiple times.",
    )
    parser.add_argument(
        "--overlap",
        action="append",
        nargs=2,
        metavar=("FIRST", "SECOND"),
        help="Two sweep CSVs captured back to back, analysed as one sweep.",
    )
    parser.add_argument(
        "--output-dir",
        required=True,
        help="Directory where outputs will be written.",
    )
    parser.add_argument("--header-row", type=int, default=0, help="Header row index (−1 = none).")
    parser.add_argument("--skip-rows", type=int, default=0, help="Number of initial rows to skip.")
    parser.add_argument("--phase-column", default="phase_angle")
    parser.add_argument("--impedance-column", default="impedance")
    parser.add_argument("--frequency-column", default="frequency")

    parser.add_argument("--prominence-threshold", type=float, default=defaults.prominence_threshold)
    parser.add_argument("--width-threshold", type=int, default=defaults.width_threshold)
    parser.add_argument("--max-attempts", type=int, default=defaults.max_attempts)
    parser.add_argument("--max-exclusions", type=int, default=defaults.max_exclusions)
    parser.add_argument("--noise-tolerance", type=float, default=defaults.noise_tolerance)
    parser.add_argument("--edge-window", type=int, default=defaults.edge_window)

    parser.add_argument(
        "--fit-lorentzian",
        action="store_true",
        help="Fit a Lorentzian to accepted peaks when a frequency column is present.",
    )
    parser.add_argument("--workers", type=int, default=1, help="Number of parallel worker threads.")
    parser.add_argument("--override-file", help="JSON file with per-sweep threshold overrides.")
    parser.add_argument(
        "--export-plots",
        action="store_true",
        help="Also write per-sweep plots into an output 'plots' folder.",
    )
    parser.add_argument("--verbose", action="store_true", help="Log every validator step.")

    return parser


def main(argv: list[str] | None = None) -> int:
    _configure_environment()

    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        config = PeakConfig(
            prominence_threshold=args.prominence_threshold,
            width_threshold=args.width_threshold,
            max_attempts=args.max_attempts,
            max_exclusions=args.max_exclusions,
            noise_tolerance=args.noise_tolerance,
            edge_window=args.edge_window,
        )
    except ValueError as exc:
        parser.error(str(exc))

    options = BatchOptions(
        config=config,
        header_row=args.header_row,
        skip_rows=args.skip_rows,
        phase_column=args.phase_column,
        impedance_column=args.impedance_column,
        frequency_column=args.frequency_column,
        fit_lorentzian=bool(args.fit_lorentzian),
        export_plots=bool(args.export_plots),
        workers=max(1, args.workers),
    )
    overrides = _load_overrides(args.override_file)

    sweep_paths = [Path(p) for p in (args.sweep or [])]
    pair_paths = [(Path(a), Path(b)) for a, b in (args.overlap or [])]
    if not sweep_paths and not pair_paths:
        parser.error("Provide at least one --sweep file or --overlap pair.")

    inputs = collect_sweep_files(sweep_paths, options)
    inputs.extend(
        collect_overlap_pairs(
            pair_paths,
            options,
            start_order=len(inputs),
            used_stems={s.stem for s in inputs},
        )
    )

    batch = run_batch(inputs, options, overrides, progress=ConsoleProgress())
    save_outputs(
        batch,
        args.output_dir,
        sweeps=inputs,
        run_metadata={"argv": sys.argv[1:] if argv is None else list(argv)},
        export_plots=options.export_plots,
    )

    accepted = sum(1 for r in batch.sweeps if r.outcome.accepted)
    continuation = sum(1 for r in batch.sweeps if r.outcome.needs_continuation)
    if batch.interrupted:
        print(
            f"[warning] Processing interrupted after {len(batch.sweeps)} of {len(inputs)} sweep(s). "
            f"Partial results saved to {args.output_dir}.",
            file=sys.stderr,
        )
        return 130

    print(
        f"Processed {len(batch.sweeps)} sweep(s): {accepted} accepted, "
        f"{continuation} need a continuation sweep, {len(batch.failed_sweeps)} failed. "
        f"Results saved to {args.output_dir}."
    )
    return 0


if __name__ == "__main__":
    sys.exit(main())
