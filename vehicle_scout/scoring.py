"""
Listing scoring engine.

Computes a bounded 0-100 trust/match score from price and mileage coherence,
comparison with the rest of the result set, completeness, lexical signals and
the search criteria. Red flags are computed next to the score but never
subtract from it; they only drive the derived risk score.
"""

import logging
import re
import statistics
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import List, Optional, Sequence

from vehicle_scout import red_flags
from vehicle_scout.dedupe import completeness
from vehicle_scout.field_parsers import normalize_text
from vehicle_scout.models import NormalizedListing, SearchQuery

logger = logging.getLogger(__name__)


BASE_SCORE = 50
AI_WEIGHT = 0.3
MARKET_MILEAGE_WINDOW = 20_000
KEYWORD_PENALTY = 5
MAX_KEYWORD_PENALTY = 15

SUSPICIOUS_KEYWORDS = [
    'urgent', 'cash', 'virement', 'etranger', 'depart', 'demenagement',
    'divorce', 'heritage', 'deces', 'rapide', 'immediat',
]
PRO_KEYWORDS = ['concession', 'garage', 'professionnel', 'pro', 'commercial']


@dataclass
class ScoreBreakdown:
    """Score of one listing with the reasons and signals behind it."""
    score: int
    reasons: List[str] = field(default_factory=list)
    flags: List[str] = field(default_factory=list)


@dataclass
class MarketBand:
    """Price range observed for comparable listings."""
    min: float
    max: float
    average: float
    sample_size: int


def market_band(listings: Sequence[NormalizedListing], year: Optional[int] = None) -> Optional[MarketBand]:
    """
    Compute the market band of priced listings, optionally restricted to a year.

    With four or more prices, values outside 1.5 IQR of the quartiles are
    dropped before computing the band.

    Args:
        listings: Candidate comparables
        year: Only listings of this registration year are considered

    Returns:
        MarketBand, or None with fewer than two prices
    """
    prices = sorted(
        listing.price for listing in listings
        if listing.price and (year is None or listing.year == year)
    )
    if len(prices) < 2:
        return None

    if len(prices) >= 4:
        q1, _, q3 = statistics.quantiles(prices, n=4)
        iqr = q3 - q1
        trimmed = [p for p in prices if q1 - 1.5 * iqr <= p <= q3 + 1.5 * iqr]
        prices = trimmed or prices

    return MarketBand(
        min=float(min(prices)),
        max=float(max(prices)),
        average=statistics.mean(prices),
        sample_size=len(prices),
    )


def _words(text: Optional[str]) -> set:
    return set(re.findall(r'[a-z0-9]+', normalize_text(text)))


def score(
    listing: NormalizedListing,
    all_listings: Sequence[NormalizedListing],
    query: Optional[SearchQuery] = None,
    current_year: Optional[int] = None,
) -> ScoreBreakdown:
    """
    Score a listing against the result set it belongs to.

    Args:
        listing: Listing to score
        all_listings: Every listing of the current result set (comparables)
        query: Original search query, for criteria bonuses
        current_year: Reference year (defaults to today)

    Returns:
        ScoreBreakdown with score clamped to [0, 100]
    """
    current_year = current_year or datetime.now().year
    points = float(BASE_SCORE)
    reasons: List[str] = []
    flags: List[str] = []

    # Price and mileage coherence with age
    if listing.price and listing.year and listing.mileage_final:
        age = current_year - listing.year
        price_per_year = listing.price / max(age, 1)
        km_per_year = listing.mileage_final / max(age, 1)

        if 5_000 < price_per_year < 15_000:
            points += 10
            reasons.append('price_per_year_normal')
        elif price_per_year < 2_000:
            points -= 15
            flags.append('price_suspect')
            reasons.append('price_per_year_low')

        if 10_000 <= km_per_year <= 20_000:
            points += 5
            reasons.append('km_per_year_normal')
        elif km_per_year > 30_000:
            points -= 10
            flags.append('km_incoherent')
            reasons.append('km_per_year_high')
        elif km_per_year < 5_000 and age > 3:
            points -= 5
            flags.append('km_suspect')
            reasons.append('km_per_year_low')

    # Comparison with same-year, similar-mileage listings
    if listing.price and listing.mileage_final:
        comparables = [
            other.price for other in all_listings
            if other is not listing
            and other.price
            and other.year == listing.year
            and other.mileage_final
            and abs(other.mileage_final - listing.mileage_final) < MARKET_MILEAGE_WINDOW
        ]
        if comparables:
            average = sum(comparables) / len(comparables)
            difference = (listing.price - average) / average * 100
            if difference < -10:
                points += 15
                reasons.append('below_market')
            elif difference > 20:
                points -= 10
                flags.append('price_high')
                reasons.append('above_market')

    filled = completeness(listing, min_title_length=10)
    if filled >= 80:
        points += 10
        reasons.append('complete_listing')
    elif filled < 50:
        points -= 10
        flags.append('incomplete_listing')
        reasons.append('incomplete_listing')

    title_words = _words(listing.title)
    hits = [keyword for keyword in SUSPICIOUS_KEYWORDS if keyword in title_words]
    if hits:
        points -= min(KEYWORD_PENALTY * len(hits), MAX_KEYWORD_PENALTY)
        flags.append('suspicious_text')
        reasons.extend(f"suspicious_keyword:{keyword}" for keyword in hits)

    if any(keyword in title_words for keyword in PRO_KEYWORDS):
        flags.append('pro_seller')
        reasons.append('pro_seller')

    if query is not None:
        if query.max_price and listing.price and listing.price <= query.max_price * 0.9:
            points += 5
            reasons.append('well_under_budget')
        if query.year_min and listing.year and listing.year >= query.year_min:
            points += 5
            reasons.append('year_matches')
        if query.mileage_max and listing.mileage_final and listing.mileage_final <= query.mileage_max:
            points += 5
            reasons.append('mileage_matches')

    if listing.ai_score is not None:
        points = points * (1 - AI_WEIGHT) + listing.ai_score * AI_WEIGHT

    final = max(0, min(100, int(round(points))))
    return ScoreBreakdown(score=final, reasons=reasons or ['standard_listing'], flags=flags)


def score_listings(
    listings: Sequence[NormalizedListing],
    query: Optional[SearchQuery] = None,
    current_year: Optional[int] = None,
) -> List[NormalizedListing]:
    """
    Score every listing and attach red flags and risk, sorted by score.

    Listings are not mutated; scored copies are returned, highest score first.
    Ties keep their input order.
    """
    scored = []

    for listing in listings:
        # Undated listings have no comparable year, so no market band
        band = None
        if listing.year is not None:
            others = [other for other in listings if other is not listing]
            band = market_band(others, listing.year)

        breakdown = score(listing, listings, query, current_year=current_year)
        flags = red_flags.detect(listing, market_min=band.min if band else None, current_year=current_year)
        scored.append(replace(
            listing,
            score=breakdown.score,
            score_reasons=breakdown.reasons,
            red_flags=flags,
            risk_score=red_flags.risk_score(flags, base=100 - breakdown.score),
        ))

    scored.sort(key=lambda item: item.score, reverse=True)
    return scored
