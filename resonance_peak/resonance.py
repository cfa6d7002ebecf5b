"""Resonance characterisation helpers built on a validated peak.

These sit beside the accept/reject engine: they never influence the
decision, they only describe an accepted peak in physical terms.
"""

from __future__ import annotations

import math
import warnings
from dataclasses import dataclass

import numpy as np
from scipy.optimize import OptimizeWarning, curve_fit

from .sequence import ContractViolation, LogicalSequence

__all__ = [
    "LorentzianFit",
    "second_order_difference",
    "damping_ratio",
    "lorentzian",
    "fit_lorentzian",
]


def second_order_difference(seq: LogicalSequence) -> np.ndarray:
    """``v[i+1] - 2 v[i] + v[i-1]`` for every interior logical index.

    Returns an array of length ``N - 2`` (empty for fewer than 3 samples).
    Neighbours are taken across segment boundaries.
    """

    values = seq.values
    if values.size < 3:
        return np.empty(0, dtype=float)
    return values[2:] - 2.0 * values[1:-1] + values[:-2]


def damping_ratio(resonance_frequency: float, fwhm: float) -> float:
    """Return ``f0 / (2 * pi * FWHM)`` for a resonance at ``f0``."""

    if resonance_frequency <= 0 or fwhm <= 0:
        raise ValueError("resonance_frequency and fwhm must be positive")
    return resonance_frequency / (2.0 * math.pi * fwhm)


def lorentzian(frequency, peak_height, resonance_frequency, half_width):
    """Lorentzian line shape with area ``peak_height``."""

    return (peak_height / np.pi) * (
        half_width / ((frequency - resonance_frequency) ** 2 + half_width ** 2)
    )


def _lorentzian_with_baseline(x, height, center, half_width, baseline):
    return lorentzian(x, height, center, half_width) + baseline


@dataclass(frozen=True)
class LorentzianFit:
    """Parameters of a Lorentzian-plus-baseline fit."""

    peak_height: float
    resonance_frequency: float
    half_width: float
    baseline: float
    r2: float

    @property
    def fwhm(self) -> float:
        return 2.0 * abs(self.half_width)

    def evaluate(self, x: np.ndarray) -> np.ndarray:
        return _lorentzian_with_baseline(
            np.asarray(x, float),
            self.peak_height,
            self.resonance_frequency,
            self.half_width,
            self.baseline,
        )


def fit_lorentzian(
    x: np.ndarray,
    seq: LogicalSequence,
    peak_index: int,
    fwhm: float,
) -> LorentzianFit | None:
    """Fit a Lorentzian plus constant baseline around a detected peak.

    Parameters
    ----------
    x:
        Sweep axis (for example frequency), one value per logical sample.
    seq:
        Phase-angle sequence the peak was found in.
    peak_index:
        Logical index of the accepted peak.
    fwhm:
        Width of the peak in samples, used to seed the half width.

    Returns
    -------
    LorentzianFit | None
        ``None`` when the optimiser fails to converge.
    """

    xs = np.asarray(x, float).ravel()
    ys = seq.values
    if xs.size != ys.size:
        raise ContractViolation(
            f"Sweep axis has {xs.size} points but the sequence has {ys.size}"
        )

    center = float(xs[peak_index])
    step = float(np.median(np.abs(np.diff(xs)))) if xs.size > 1 else 1.0
    gamma = max(step, 0.5 * float(fwhm) * step)
    baseline = float(np.min(ys))
    amplitude = (float(ys[peak_index]) - baseline) * np.pi * gamma
    p0 = (amplitude, center, gamma, baseline)

    try:
        with warnings.catch_warnings():
            warnings.simplefilter("ignore", OptimizeWarning)
            coeffs, _ = curve_fit(_lorentzian_with_baseline, xs, ys, p0=p0, maxfev=5000)
    except RuntimeError as exc:
        warnings.warn(
            f"Lorentzian fit did not converge ({exc})",
            RuntimeWarning,
            stacklevel=2,
        )
        return None

    resid = ys - _lorentzian_with_baseline(xs, *coeffs)
    ss_tot = float(np.sum((ys - ys.mean()) ** 2))
    r2 = 1.0 - float(np.sum(resid ** 2)) / ss_tot if ss_tot > 0 else 0.0
    height, f0, half_width, base = (float(c) for c in coeffs)
    return LorentzianFit(height, f0, abs(half_width), base, r2)
