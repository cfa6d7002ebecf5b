"""Accept/reject decision for the resonance peak of one sweep.

The validator drives a small state machine::

    SEARCHING -> PROMINENCE_CHECK -> WIDTH_CHECK -> ACCEPT
                        |                 |
                      REJECT       EXCLUDE_AND_RETRY -> SEARCHING | REJECT

A candidate that is prominent enough but too narrow is excluded and the
search is repeated, up to ``max_attempts`` times.  A candidate that is not
prominent enough ends the run straight away.  Nothing is kept between calls;
every run starts with an empty exclusion set.
"""

from __future__ import annotations

import logging
import math
import numbers
import warnings
from dataclasses import dataclass, field, fields
from enum import Enum, auto
from typing import Any, Iterable, Mapping, Sequence, Union

import numpy as np

from .edge import in_edge_window, is_peak_climbing
from .locator import ExclusionSet, PeakCandidate, locate_peak
from .prominence import peak_prominence
from .sequence import ContractViolation, LogicalSequence, Sample, as_sequence
from .width import fwhm as compute_fwhm

__all__ = [
    "PeakConfig",
    "ValidationState",
    "RejectReason",
    "ValidationOutcome",
    "PeakValidator",
    "find_peak",
    "find_overlap_peak",
]

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class PeakConfig:
    """Thresholds for peak validation.

    Attributes
    ----------
    prominence_threshold:
        A candidate must stand strictly more than this above its base.
    width_threshold:
        A candidate's FWHM (in samples) must be strictly larger than this.
    max_attempts:
        Number of narrow candidates tolerated before giving up.
    max_exclusions:
        Capacity of the exclusion set used during retries.
    noise_tolerance:
        Forward steps at or below this value count against a climbing peak.
    edge_window:
        Trailing samples of the final segment in which a peak is checked for
        still climbing.
    """

    prominence_threshold: float = 18.0
    width_threshold: int = 15
    max_attempts: int = 3
    max_exclusions: int = 3
    noise_tolerance: float = 0.9
    edge_window: int = 30

    def __post_init__(self) -> None:
        for name in ("prominence_threshold", "noise_tolerance"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, numbers.Real):
                raise ValueError(f"{name} must be a number, got {value!r}")
            if not math.isfinite(value) or value < 0:
                raise ValueError(f"{name} must be a non-negative finite number, got {value!r}")
        for name in ("width_threshold", "max_attempts", "max_exclusions", "edge_window"):
            value = getattr(self, name)
            if isinstance(value, bool) or not isinstance(value, numbers.Integral):
                raise ValueError(f"{name} must be an integer, got {value!r}")
        if self.width_threshold < 0:
            raise ValueError(f"width_threshold must be non-negative, got {self.width_threshold!r}")
        if self.max_attempts < 1:
            raise ValueError(f"max_attempts must be at least 1, got {self.max_attempts!r}")
        if self.max_exclusions < 0:
            raise ValueError(f"max_exclusions must be non-negative, got {self.max_exclusions!r}")
        if self.edge_window < 0:
            raise ValueError(f"edge_window must be non-negative, got {self.edge_window!r}")

    @classmethod
    def from_mapping(
        cls, values: Mapping[str, Any], base: "PeakConfig | None" = None
    ) -> "PeakConfig":
        """Build a config from ``values`` layered over ``base``.

        Unknown keys are ignored so JSON override files may carry driver
        settings alongside detector thresholds.  Each value is cast to the
        type of the field's default; a fractional value for an integer field
        is a ``ValueError``.
        """

        base = base or cls()
        merged: dict[str, Any] = {}
        for f in fields(cls):
            raw = values.get(f.name, getattr(base, f.name))
            number = float(raw)
            if isinstance(f.default, int):
                if not number.is_integer():
                    raise ValueError(f"{f.name} must be an integer, got {raw!r}")
                merged[f.name] = int(number)
            else:
                merged[f.name] = number
        return cls(**merged)


class ValidationState(Enum):
    SEARCHING = auto()
    PROMINENCE_CHECK = auto()
    WIDTH_CHECK = auto()
    EXCLUDE_AND_RETRY = auto()
    ACCEPT = auto()
    REJECT = auto()


class RejectReason(Enum):
    NO_PEAK = "no_peak"
    LOW_PROMINENCE = "low_prominence"
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"


@dataclass(frozen=True)
class ValidationOutcome:
    """Result of one validation run."""

    accepted: bool
    logical_index: int | None = None
    value: float | None = None
    edge_case_climbing: bool = False
    reason: RejectReason | None = None
    prominence: float | None = None
    fwhm: int | None = None
    attempts: int = 0
    excluded: tuple[int, ...] = ()
    segment: int | None = None
    segment_offset: int | None = None
    path: tuple[ValidationState, ...] = ()

    @property
    def needs_continuation(self) -> bool:
        """An accepted peak that may continue beyond the captured data."""

        return self.accepted and self.edge_case_climbing


@dataclass
class _RunContext:
    """Mutable state of a single validation run."""

    exclusions: ExclusionSet
    attempts: int = 0
    candidate: PeakCandidate | None = None
    prominence: float | None = None
    width: int | None = None
    trace: list[ValidationState] = field(default_factory=list)


class PeakValidator:
    """Run the search/prominence/width loop over a :class:`LogicalSequence`."""

    def __init__(self, config: PeakConfig | None = None) -> None:
        self.config = config or PeakConfig()

    def validate(self, seq: LogicalSequence) -> ValidationOutcome:
        cfg = self.config
        n = len(seq)
        if n < 2:
            raise ContractViolation(
                f"Peak validation needs at least 2 samples, got {n}"
            )

        ctx = _RunContext(exclusions=ExclusionSet(cfg.max_exclusions))
        state = ValidationState.SEARCHING

        while True:
            ctx.trace.append(state)
            logger.debug("state=%s attempts=%d excluded=%s", state.name, ctx.attempts, list(ctx.exclusions))

            if state is ValidationState.SEARCHING:
                ctx.candidate = locate_peak(seq, 0, n - 1, ctx.exclusions)
                if ctx.candidate is None:
                    return self._reject(ctx, RejectReason.NO_PEAK)
                state = ValidationState.PROMINENCE_CHECK

            elif state is ValidationState.PROMINENCE_CHECK:
                ctx.prominence = peak_prominence(seq, ctx.candidate.logical_index)
                if ctx.prominence <= cfg.prominence_threshold:
                    return self._reject(ctx, RejectReason.LOW_PROMINENCE)
                state = ValidationState.WIDTH_CHECK

            elif state is ValidationState.WIDTH_CHECK:
                ctx.width = compute_fwhm(seq, ctx.candidate.logical_index, ctx.prominence)
                if ctx.width > cfg.width_threshold:
                    return self._accept(seq, ctx)
                state = ValidationState.EXCLUDE_AND_RETRY

            elif state is ValidationState.EXCLUDE_AND_RETRY:
                index = ctx.candidate.logical_index
                if not ctx.exclusions.add(index):
                    warnings.warn(
                        f"Exclusion set full ({ctx.exclusions.capacity}); index {index} "
                        "may be selected again",
                        RuntimeWarning,
                        stacklevel=2,
                    )
                ctx.attempts += 1
                if ctx.attempts >= cfg.max_attempts:
                    return self._reject(ctx, RejectReason.ATTEMPTS_EXHAUSTED)
                state = ValidationState.SEARCHING

            else:  # pragma: no cover - terminal states return above
                raise ContractViolation(f"Unexpected validator state {state!r}")

    # ------------------------------------------------------------------
    def _reject(self, ctx: _RunContext, reason: RejectReason) -> ValidationOutcome:
        ctx.trace.append(ValidationState.REJECT)
        logger.debug("state=REJECT reason=%s", reason.value)
        candidate = ctx.candidate
        return ValidationOutcome(
            accepted=False,
            logical_index=candidate.logical_index if candidate else None,
            value=candidate.value if candidate else None,
            reason=reason,
            prominence=ctx.prominence,
            fwhm=ctx.width,
            attempts=ctx.attempts,
            excluded=tuple(ctx.exclusions),
            path=tuple(ctx.trace),
        )

    def _accept(self, seq: LogicalSequence, ctx: _RunContext) -> ValidationOutcome:
        cfg = self.config
        index = ctx.candidate.logical_index
        climbing = False
        if in_edge_window(seq, index, cfg.edge_window):
            climbing = is_peak_climbing(seq, index, cfg.noise_tolerance)
        segment, offset = seq.resolve(index)
        ctx.trace.append(ValidationState.ACCEPT)
        logger.debug("state=ACCEPT index=%d climbing=%s", index, climbing)
        return ValidationOutcome(
            accepted=True,
            logical_index=index,
            value=ctx.candidate.value,
            edge_case_climbing=climbing,
            prominence=ctx.prominence,
            fwhm=ctx.width,
            attempts=ctx.attempts,
            excluded=tuple(ctx.exclusions),
            segment=segment,
            segment_offset=offset,
            path=tuple(ctx.trace),
        )


SequenceLike = Union[LogicalSequence, Iterable[Sample], Sequence[float], np.ndarray]


def find_peak(sequence: SequenceLike, config: PeakConfig | None = None) -> ValidationOutcome:
    """Validate the resonance peak of a single-chunk sweep."""

    return PeakValidator(config).validate(as_sequence(sequence))


def find_overlap_peak(
    segment_a: SequenceLike,
    segment_b: SequenceLike,
    config: PeakConfig | None = None,
) -> ValidationOutcome:
    """Validate the peak of a sweep captured as two consecutive chunks.

    The returned ``logical_index`` counts from the start of ``segment_a``.
    """

    seq = LogicalSequence.concatenate(as_sequence(segment_a), as_sequence(segment_b))
    return PeakValidator(config).validate(seq)
