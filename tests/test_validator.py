from pathlib import Path

import numpy as np
import pandas as pd
import pytest

from resonance_peak import (
    ContractViolation,
    LogicalSequence,
    PeakConfig,
    PeakValidator,
    RejectReason,
    Sample,
    ValidationState,
    find_overlap_peak,
    find_peak,
)

DATA = Path(__file__).resolve().parent / "data"


def _reference() -> np.ndarray:
    return pd.read_csv(DATA / "reference_sweep.csv")["phase_angle"].to_numpy(float)


def _spike_and_hump(n=201):
    idx = np.arange(n)
    values = 10.0 + 30.0 * np.exp(-((idx - 150) ** 2) / (2 * 15.0 ** 2))
    values[50] = 60.0
    return values


def _three_spikes(n=201):
    values = np.full(n, 10.0)
    values[[30, 100, 170]] = [60.0, 55.0, 50.0]
    return values


def test_reference_sweep_is_accepted():
    values = _reference()

    outcome = find_peak(values)

    assert outcome.accepted
    assert outcome.reason is None
    assert outcome.logical_index == 151
    assert abs(outcome.logical_index - int(np.argmax(values))) <= 3
    assert outcome.value == pytest.approx(42.145386)
    assert outcome.prominence == pytest.approx(42.145386 - 10.325025, abs=1e-6)
    assert outcome.prominence > 18.0
    assert outcome.fwhm == 31
    assert outcome.attempts == 0
    assert not outcome.edge_case_climbing
    assert not outcome.needs_continuation
    assert outcome.path == (
        ValidationState.SEARCHING,
        ValidationState.PROMINENCE_CHECK,
        ValidationState.WIDTH_CHECK,
        ValidationState.ACCEPT,
    )


def test_overlap_sweep_matches_single_sweep():
    values = _reference()
    single = find_peak(values)

    overlap = find_overlap_peak(values[:120], values[120:])

    assert overlap.accepted == single.accepted
    assert overlap.logical_index == single.logical_index
    assert overlap.prominence == pytest.approx(single.prominence)
    assert overlap.fwhm == single.fwhm
    assert overlap.segment == 1
    assert overlap.segment_offset == single.logical_index - 120


@pytest.mark.parametrize("split", [1, 60, 151, 152, 300])
def test_overlap_decision_is_independent_of_split_point(split):
    values = _reference()
    single = find_peak(values)

    overlap = find_overlap_peak(values[:split], values[split:])

    assert (overlap.accepted, overlap.logical_index) == (single.accepted, single.logical_index)


def test_flat_sequence_is_always_rejected():
    values = np.full(120, 25.0)

    for width in (0, 15, 1000):
        outcome = find_peak(values, PeakConfig(width_threshold=width))
        assert not outcome.accepted
        assert outcome.reason is RejectReason.LOW_PROMINENCE
        assert outcome.prominence == 0.0


def test_low_prominence_rejects_without_retry():
    values = 0.5 * _reference()

    outcome = find_peak(values)

    assert not outcome.accepted
    assert outcome.reason is RejectReason.LOW_PROMINENCE
    assert outcome.attempts == 0
    assert outcome.fwhm is None
    assert outcome.path[-1] is ValidationState.REJECT


def test_narrow_spike_is_excluded_and_broad_peak_accepted():
    outcome = find_peak(_spike_and_hump())

    assert outcome.accepted
    assert outcome.logical_index == 150
    assert outcome.excluded == (50,)
    assert outcome.attempts == 1
    assert outcome.fwhm == 36
    assert outcome.path.count(ValidationState.EXCLUDE_AND_RETRY) == 1


def test_attempts_are_bounded():
    outcome = find_peak(_three_spikes())

    assert not outcome.accepted
    assert outcome.reason is RejectReason.ATTEMPTS_EXHAUSTED
    assert outcome.attempts == 3
    assert outcome.excluded == (30, 100, 170)


def test_full_exclusion_set_warns_and_revisits_index():
    config = PeakConfig(max_exclusions=1)

    with pytest.warns(RuntimeWarning, match="Exclusion set full"):
        outcome = find_peak(_three_spikes(), config)

    assert not outcome.accepted
    assert outcome.reason is RejectReason.ATTEMPTS_EXHAUSTED
    assert outcome.excluded == (30,)
    assert outcome.logical_index == 100


def test_validation_is_deterministic():
    values = _spike_and_hump()
    config = PeakConfig(width_threshold=20)

    assert find_peak(values, config) == find_peak(values, config)


@pytest.mark.parametrize("values", [[], [42.0]])
def test_too_short_sequences_are_contract_violations(values):
    with pytest.raises(ContractViolation):
        find_peak(values)


def test_overlap_with_empty_chunks_is_a_contract_violation():
    with pytest.raises(ContractViolation):
        find_overlap_peak([], [3.0])


def test_two_sample_sequence_has_a_defined_outcome():
    outcome = find_peak([1.0, 50.0])

    # the spike is too narrow; once excluded the remaining sample has no prominence
    assert not outcome.accepted
    assert outcome.reason is RejectReason.LOW_PROMINENCE
    assert outcome.excluded == (1,)
    assert outcome.logical_index == 0


def _ramp(n=100):
    values = np.full(n, 10.0)
    values[50:n - 1] = 10.0 + 2.0 * np.arange(1, n - 50)
    values[n - 1] = values[n - 2] - 0.5
    return values


def test_peak_still_climbing_at_trailing_edge():
    values = _ramp()

    outcome = find_peak(values)

    assert outcome.accepted
    assert outcome.logical_index == 98
    assert outcome.edge_case_climbing
    assert outcome.needs_continuation


def test_edge_check_only_applies_to_the_final_segment():
    values = _ramp()

    outcome = find_overlap_peak(values[:99], values[99:])

    assert outcome.accepted
    assert outcome.logical_index == 98
    assert outcome.segment == 0
    assert not outcome.edge_case_climbing


def test_turned_peak_near_edge_is_not_climbing():
    idx = np.arange(100)
    values = 10.0 + 30.0 * np.exp(-((idx - 85) ** 2) / (2 * 8.0 ** 2))

    outcome = find_peak(values)

    assert outcome.accepted
    assert outcome.logical_index == 85
    assert not outcome.edge_case_climbing


def test_samples_and_sequences_are_accepted_as_input():
    values = _reference()
    samples = [Sample(float(v), 1.0) for v in values]

    from_samples = find_peak(samples)
    from_sequence = PeakValidator().validate(LogicalSequence(values))

    assert from_samples == from_sequence


@pytest.mark.parametrize(
    "kwargs",
    [
        {"prominence_threshold": -1.0},
        {"width_threshold": -1},
        {"max_attempts": 0},
        {"max_exclusions": -2},
        {"noise_tolerance": float("nan")},
        {"edge_window": -5},
        {"width_threshold": 15.7},
        {"max_attempts": 2.5},
        {"max_exclusions": 1.0},
        {"edge_window": 3.2},
        {"max_attempts": True},
        {"prominence_threshold": "18"},
    ],
)
def test_invalid_configuration_is_rejected(kwargs):
    with pytest.raises(ValueError):
        PeakConfig(**kwargs)


def test_config_from_mapping_layers_over_base():
    base = PeakConfig(prominence_threshold=10.0)

    config = PeakConfig.from_mapping({"width_threshold": "20", "workers": 4}, base=base)

    assert config.prominence_threshold == 10.0
    assert config.width_threshold == 20
    assert isinstance(config.width_threshold, int)
    assert config.max_attempts == 3


def test_config_from_mapping_keeps_float_thresholds_fractional():
    base = PeakConfig(prominence_threshold=20, noise_tolerance=1)

    config = PeakConfig.from_mapping({"prominence_threshold": 18.5}, base=base)

    assert config.prominence_threshold == 18.5
    assert isinstance(config.noise_tolerance, float)


def test_config_from_mapping_rejects_fractional_integer_fields():
    with pytest.raises(ValueError):
        PeakConfig.from_mapping({"width_threshold": 15.7})

    assert PeakConfig.from_mapping({"edge_window": 20.0}).edge_window == 20


def test_empty_trailing_segment_keeps_climbing_flag():
    values = _ramp()

    single = find_peak(values)
    overlap = find_overlap_peak(values, [])

    assert overlap.logical_index == single.logical_index == 98
    assert overlap.edge_case_climbing
    assert overlap.edge_case_climbing == single.edge_case_climbing
