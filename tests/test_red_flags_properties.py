"""
Property-based tests for red flag detection and risk scoring.
"""

from hypothesis import given, settings, strategies as st

from vehicle_scout.models import FlagType, MileageConfidence, NormalizedListing, RedFlag, Severity
from vehicle_scout.red_flags import detect, mentioned_brands, risk_level, risk_score


CURRENT_YEAR = 2024


def make_listing(**overrides) -> NormalizedListing:
    data = dict(
        id='abc',
        title='Peugeot 308 1.6 BlueHDi',
        price=12000,
        year=2019,
        mileage_final=80000,
        mileage_confidence=MileageConfidence.HIGH,
        url='https://www.leboncoin.fr/ad/1',
        image_url=None,
        source='LeBonCoin',
    )
    data.update(overrides)
    return NormalizedListing(**data)


def flag_types(flags):
    return [flag.type for flag in flags]


severities = st.sampled_from([Severity.HIGH, Severity.CRITICAL])
flag_lists = st.lists(
    st.builds(lambda severity: RedFlag(FlagType.PRICE_TOO_LOW, severity, 'x'), severities),
    max_size=5
)


@given(flags=flag_lists, base=st.integers(min_value=-50, max_value=150))
@settings(max_examples=100)
def test_risk_score_floors(flags, base):
    """
    **Feature: vehicle-scout, Property 10: Risk severity floors**

    For any set of flags and base risk, the risk score stays in [0, 100] and
    respects the floor of the most severe flag configuration.
    """
    risk = risk_score(flags, base)
    critical = sum(1 for flag in flags if flag.severity == Severity.CRITICAL)
    high = sum(1 for flag in flags if flag.severity == Severity.HIGH)

    assert 0 <= risk <= 100
    if critical:
        assert risk >= 80
    elif high >= 2:
        assert risk >= 75
    elif high == 1:
        assert risk >= 65
    else:
        assert risk == max(0, min(100, base))


@given(score=st.integers(min_value=0, max_value=100))
@settings(max_examples=100)
def test_risk_level_thresholds(score):
    """
    **Feature: vehicle-scout, Property 11: Risk level**

    For any risk score, the level is high from 70, medium from 40, low below.
    """
    level = risk_level(score)
    if score >= 70:
        assert level == 'high'
    elif score >= 40:
        assert level == 'medium'
    else:
        assert level == 'low'


def test_clean_listing_has_no_flags():
    assert detect(make_listing(description="Très bon état, CT OK"), market_min=11000, current_year=CURRENT_YEAR) == []


def test_resolver_flags_are_carried_over():
    mileage_flag = RedFlag(FlagType.MILEAGE_INCONSISTENT, Severity.CRITICAL, 'tampered')
    flags = detect(make_listing(mileage_flags=[mileage_flag]), current_year=CURRENT_YEAR)

    assert flags == [mileage_flag]


def test_high_usage_on_recent_vehicle():
    flags = detect(make_listing(year=2021, mileage_final=320000), current_year=CURRENT_YEAR)

    assert flag_types(flags) == [FlagType.MILEAGE_INCONSISTENT]
    assert flags[0].severity == Severity.HIGH


def test_high_mileage_on_old_vehicle_is_not_flagged():
    assert detect(make_listing(year=2005, mileage_final=320000), current_year=CURRENT_YEAR) == []


def test_price_too_low():
    flags = detect(make_listing(price=7000), market_min=10000, current_year=CURRENT_YEAR)
    assert flag_types(flags) == [FlagType.PRICE_TOO_LOW]

    assert detect(make_listing(price=8000), market_min=10000, current_year=CURRENT_YEAR) == []
    assert detect(make_listing(price=7000), market_min=None, current_year=CURRENT_YEAR) == []


def test_missing_inspection_requires_explicit_statement():
    for description in ("Vendu sans contrôle technique", "CT expiré depuis mars", "Pas de CT"):
        flags = detect(make_listing(description=description), current_year=CURRENT_YEAR)
        assert flag_types(flags) == [FlagType.MISSING_INSPECTION], description

    assert detect(make_listing(description="Jantes alu, clim"), current_year=CURRENT_YEAR) == []


def test_inconsistent_brands():
    flags = detect(
        make_listing(title="Peugeot 308", description="Renault Megane en bon état"),
        current_year=CURRENT_YEAR,
    )
    assert flag_types(flags) == [FlagType.INCONSISTENT_LISTING]

    same = detect(make_listing(title="VW Golf", description="Volkswagen Golf 7"), current_year=CURRENT_YEAR)
    assert same == []


def test_suspicious_seller():
    flags = detect(
        make_listing(description="Paiement par mandat cash uniquement"),
        current_year=CURRENT_YEAR,
    )
    assert flag_types(flags) == [FlagType.SUSPICIOUS_SELLER]

    one_urgency = detect(make_listing(description="Vente urgente"), current_year=CURRENT_YEAR)
    assert one_urgency == []


def test_mentioned_brands_uses_aliases():
    assert mentioned_brands("vw polo et volkswagen golf") == {'volkswagen'}
    assert mentioned_brands("aucune marque") == set()


def test_detect_does_not_mutate_listing():
    listing = make_listing(price=5000, description="sans controle technique")
    detect(listing, market_min=10000, current_year=CURRENT_YEAR)

    assert listing.red_flags == []
