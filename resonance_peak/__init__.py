"""Resonance peak location and validation for measurement sweeps."""
# re-export the high-level helpers so drivers can import them flat
from .sequence   import ContractViolation, LogicalSequence, OutOfRange, Sample
from .locator    import ExclusionSet, PeakCandidate, locate_peak
from .prominence import peak_prominence
from .width      import fwhm
from .edge       import is_peak_climbing
from .validator  import (                                   # noqa: F401
    PeakConfig,
    PeakValidator,
    RejectReason,
    ValidationOutcome,
    ValidationState,
    find_overlap_peak,
    find_peak,
)
