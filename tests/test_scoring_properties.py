"""
Property-based tests for the scoring engine.
"""

import pytest
from hypothesis import given, settings, strategies as st

from vehicle_scout.models import FlagType, MileageConfidence, NormalizedListing, SearchQuery
from vehicle_scout.scoring import market_band, score, score_listings


CURRENT_YEAR = 2024

listing_strategy = st.builds(
    NormalizedListing,
    id=st.just(''),
    title=st.sampled_from(['Peugeot 308', 'Peugeot 308 urgent cash', 'Garage pro Peugeot 308 GT Line', 'x']),
    price=st.one_of(st.none(), st.integers(min_value=500, max_value=80000)),
    year=st.one_of(st.none(), st.integers(min_value=2000, max_value=2024)),
    mileage_final=st.one_of(st.none(), st.integers(min_value=1, max_value=400000)),
    mileage_confidence=st.sampled_from(list(MileageConfidence)),
    url=st.just('https://www.leboncoin.fr/ad/1'),
    image_url=st.one_of(st.none(), st.just('https://img.example/1.jpg')),
    source=st.just('LeBonCoin'),
    ai_score=st.one_of(st.none(), st.floats(min_value=0, max_value=100)),
)


def make_listing(**overrides) -> NormalizedListing:
    data = dict(
        id='',
        title='Peugeot 308 GT Line',
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


@given(listings=st.lists(listing_strategy, min_size=1, max_size=8))
@settings(max_examples=100)
def test_scores_are_bounded_and_sorted(listings):
    """
    **Feature: vehicle-scout, Property 15: Score boundedness**

    For any result set, every score and risk score lies in [0, 100] and the
    scored list is sorted by descending score.
    """
    scored = score_listings(listings, current_year=CURRENT_YEAR)

    assert len(scored) == len(listings)
    for item in scored:
        assert 0 <= item.score <= 100
        assert 0 <= item.risk_score <= 100
        assert item.score_reasons
    assert [item.score for item in scored] == sorted((item.score for item in scored), reverse=True)


@given(listings=st.lists(listing_strategy, min_size=1, max_size=8))
@settings(max_examples=100)
def test_scoring_does_not_mutate_input(listings):
    """
    **Feature: vehicle-scout, Property 16: Scoring purity**

    For any result set, scoring returns copies and leaves inputs untouched.
    """
    before = [(item.score, list(item.red_flags), item.risk_score) for item in listings]
    score_listings(listings, current_year=CURRENT_YEAR)
    assert [(item.score, list(item.red_flags), item.risk_score) for item in listings] == before


def test_market_band_trims_outliers():
    listings = [make_listing(price=price) for price in (10000, 10500, 11000, 11500, 12000, 100000)]
    band = market_band(listings)

    assert band.min == 10000
    assert band.max == 12000
    assert band.sample_size == 5
    assert band.average == pytest.approx(11000)


def test_market_band_needs_two_prices():
    assert market_band([make_listing()]) is None
    assert market_band([make_listing(year=2019), make_listing(year=2015)], year=2019) is None


def test_criteria_bonuses():
    listing = make_listing()
    query = SearchQuery(brand='Peugeot', model='308', max_price=15000, year_min=2018, mileage_max=100000)

    without = score(listing, [listing], current_year=CURRENT_YEAR)
    with_query = score(listing, [listing], query, current_year=CURRENT_YEAR)

    assert with_query.score - without.score == 15
    assert {'well_under_budget', 'year_matches', 'mileage_matches'} <= set(with_query.reasons)


def test_suspicious_keyword_penalty_is_capped():
    neutral = make_listing(title='Peugeot 308 GT Line', price=None, year=None, mileage_final=None)
    shouting = make_listing(
        title='Peugeot 308 urgent cash virement depart rapide',
        price=None,
        year=None,
        mileage_final=None,
    )

    neutral_score = score(neutral, [neutral], current_year=CURRENT_YEAR).score
    result = score(shouting, [shouting], current_year=CURRENT_YEAR)

    assert neutral_score - result.score == 15
    assert 'suspicious_text' in result.flags


def test_below_market_bonus():
    cheap = make_listing(price=9000)
    others = [make_listing(price=11000, mileage_final=85000), make_listing(price=11500, mileage_final=75000)]

    result = score(cheap, [cheap] + others, current_year=CURRENT_YEAR)

    assert 'below_market' in result.reasons


def test_pro_seller_is_informational():
    pro = make_listing(title='Garage Peugeot 308 GT Line')
    private = make_listing(title='Jean Peugeot 308 GT Line')

    pro_result = score(pro, [pro], current_year=CURRENT_YEAR)

    assert 'pro_seller' in pro_result.flags
    assert pro_result.score == score(private, [private], current_year=CURRENT_YEAR).score


def test_ai_score_is_blended():
    plain = make_listing()
    rated = make_listing(ai_score=100.0)

    plain_score = score(plain, [plain], current_year=CURRENT_YEAR).score
    rated_score = score(rated, [rated], current_year=CURRENT_YEAR).score

    assert rated_score == round(plain_score * 0.7 + 30)


def test_flags_raise_risk_but_not_score():
    clean = make_listing(description="Carnet d'entretien")
    flagged = make_listing(description="Vendu sans controle technique")

    scored = {item.description: item for item in score_listings([clean, flagged], current_year=CURRENT_YEAR)}

    assert scored["Carnet d'entretien"].score == scored["Vendu sans controle technique"].score
    assert [flag.type for flag in scored["Vendu sans controle technique"].red_flags] == [FlagType.MISSING_INSPECTION]
    assert scored["Vendu sans controle technique"].risk_score >= 65
    assert scored["Carnet d'entretien"].risk_score == 100 - scored["Carnet d'entretien"].score


def test_price_far_below_same_year_band_is_flagged():
    listings = [
        make_listing(price=5000, url='https://www.leboncoin.fr/ad/1'),
        make_listing(price=11000, url='https://www.leboncoin.fr/ad/2'),
        make_listing(price=12000, url='https://www.leboncoin.fr/ad/3'),
    ]

    scored = {item.url: item for item in score_listings(listings, current_year=CURRENT_YEAR)}

    assert [flag.type for flag in scored['https://www.leboncoin.fr/ad/1'].red_flags] == [FlagType.PRICE_TOO_LOW]
    assert scored['https://www.leboncoin.fr/ad/2'].red_flags == []


def test_undated_listing_is_not_compared_to_other_years():
    listings = [
        make_listing(price=3000, year=None, url='https://www.leboncoin.fr/ad/1'),
        make_listing(price=10000, year=2020, url='https://www.leboncoin.fr/ad/2'),
        make_listing(price=11000, year=2020, url='https://www.leboncoin.fr/ad/3'),
    ]

    scored = {item.url: item for item in score_listings(listings, current_year=CURRENT_YEAR)}

    undated = scored['https://www.leboncoin.fr/ad/1']
    assert FlagType.PRICE_TOO_LOW not in [flag.type for flag in undated.red_flags]
