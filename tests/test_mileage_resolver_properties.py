"""
Property-based tests for the mileage candidate resolver.
"""

from hypothesis import given, settings, strategies as st

from vehicle_scout.mileage_resolver import resolve, source_priority
from vehicle_scout.models import FlagType, MileageCandidate, MileageConfidence, Severity


CURRENT_YEAR = 2024

sources = st.sampled_from([
    'NEXT_DATA.attributes.mileage',
    'NEXT_DATA.mileage',
    'DOM.specs.kilometrage',
    'DOM.regex',
    'TEXT_REGEX(title)',
    'JSON_LD',
    'AI',
])


@given(
    value=st.integers(min_value=1, max_value=1999),
    age=st.integers(min_value=2, max_value=30),
    source=sources
)
@settings(max_examples=100)
def test_low_single_reading_is_flagged(value, age, source):
    """
    **Feature: vehicle-scout, Property 8: Mileage monotonic sanity**

    For any single reading under 2,000 km on a vehicle aged 2 years or more,
    the resolver emits at least one high or critical mileage_inconsistent flag.
    """
    result = resolve([MileageCandidate(value, source)], year=CURRENT_YEAR - age, current_year=CURRENT_YEAR)

    assert any(
        flag.type == FlagType.MILEAGE_INCONSISTENT and flag.severity in (Severity.HIGH, Severity.CRITICAL)
        for flag in result.red_flags
    ), f"{value} km at {age} years should be flagged"


@given(values=st.lists(st.integers(min_value=-1000, max_value=5_000_000), min_size=1, max_size=6))
@settings(max_examples=100)
def test_selected_value_is_a_plausible_candidate(values):
    """
    **Feature: vehicle-scout, Property 9: Selection among candidates**

    For any set of readings, the selected mileage is one of the candidates
    and never an impossible value.
    """
    candidates = [MileageCandidate(value, 'DOM.regex') for value in values]
    result = resolve(candidates, year=2018, current_year=CURRENT_YEAR)

    if result.final is not None:
        assert result.final in values
        assert 0 < result.final <= 1_000_000


def test_example_scenario_tampered_reading():
    """A 2021 car showing 800 km in 2024 gets no mileage and a critical flag."""
    result = resolve([MileageCandidate(800, 'regex')], year=2021, current_year=CURRENT_YEAR)

    assert result.final is None
    assert result.confidence == MileageConfidence.LOW
    assert [flag.severity for flag in result.red_flags] == [Severity.CRITICAL]
    assert result.red_flags[0].type == FlagType.MILEAGE_INCONSISTENT


def test_single_coherent_reading_is_high_confidence():
    result = resolve([MileageCandidate(85000, 'NEXT_DATA.attributes.mileage')], year=2019, current_year=CURRENT_YEAR)

    assert result.final == 85000
    assert result.confidence == MileageConfidence.HIGH
    assert result.red_flags == []


def test_no_year_means_low_confidence():
    result = resolve([MileageCandidate(85000, 'DOM.regex')], current_year=CURRENT_YEAR)

    assert result.final == 85000
    assert result.confidence == MileageConfidence.LOW


def test_impossible_values_are_rejected():
    result = resolve(
        [MileageCandidate(0, 'DOM.regex'), MileageCandidate(2_000_000, 'JSON_LD')],
        year=2019,
        current_year=CURRENT_YEAR,
    )

    assert result.final is None
    assert result.confidence == MileageConfidence.LOW


def test_source_priority_wins_within_band():
    # Both readings are within the expected band for a 5-year-old car
    result = resolve(
        [MileageCandidate(70000, 'TEXT_REGEX(title)'), MileageCandidate(80000, 'NEXT_DATA.attributes.mileage')],
        year=2019,
        current_year=CURRENT_YEAR,
    )

    assert result.final == 80000
    assert result.confidence == MileageConfidence.MEDIUM
    assert result.red_flags == []


def test_out_of_band_reading_is_down_ranked():
    # 5 years -> expected 75,000 km; 400,000 km is far outside the band
    result = resolve(
        [MileageCandidate(400000, 'NEXT_DATA.attributes.mileage'), MileageCandidate(78000, 'DOM.regex')],
        year=2019,
        current_year=CURRENT_YEAR,
    )

    assert result.final == 78000
    assert any(flag.severity == Severity.HIGH for flag in result.red_flags), \
        "readings more than 2x apart should raise a discrepancy flag"


def test_low_candidates_are_excluded_among_several():
    result = resolve(
        [MileageCandidate(300, 'DOM.regex'), MileageCandidate(90000, 'NEXT_DATA.mileage')],
        year=2018,
        current_year=CURRENT_YEAR,
    )

    assert result.final == 90000
    assert any(flag.severity == Severity.CRITICAL for flag in result.red_flags)


def test_all_candidates_too_low():
    result = resolve(
        [MileageCandidate(300, 'DOM.regex'), MileageCandidate(1500, 'JSON_LD')],
        year=2018,
        current_year=CURRENT_YEAR,
    )

    assert result.final is None
    assert result.confidence == MileageConfidence.LOW
    assert any(flag.severity == Severity.CRITICAL for flag in result.red_flags)


def test_source_priority_ranking():
    assert source_priority('NEXT_DATA.attributes.mileage') > source_priority('DOM.specs.kilometrage')
    assert source_priority('DOM.specs.kilometrage') > source_priority('TEXT_REGEX(title)')
    assert source_priority('INITIAL_STATE.attributes.mileage') == source_priority('NEXT_DATA.mileage')
    assert source_priority('unknown') == 1
