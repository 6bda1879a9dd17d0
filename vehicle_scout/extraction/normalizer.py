"""
Validation of raw fragments into NormalizedListing.

Nothing loosely typed leaves the extraction layer: every fragment either
becomes a NormalizedListing here or is dropped.
"""

import logging
import re
from datetime import datetime
from typing import List, Optional

from vehicle_scout import mileage_resolver
from vehicle_scout.dedupe import fingerprint
from vehicle_scout.extraction.mappers import mileage_candidate
from vehicle_scout.field_parsers import (
    MILEAGE_PATTERN,
    parse_fuel,
    parse_price,
    parse_transmission,
    parse_year,
)
from vehicle_scout.models import (
    ExtractionMethod,
    MileageCandidate,
    NormalizedListing,
    QueryPass,
    RawListingFragment,
    SearchQuery,
)
from vehicle_scout.url_normalizer import normalize_listing_url

logger = logging.getLogger(__name__)


# Source path used when a strategy reports a bare mileage value
FALLBACK_SOURCES = {
    ExtractionMethod.STRUCTURED: 'STRUCTURED.mileage',
    ExtractionMethod.EMBEDDED_STATE: 'NEXT_DATA.mileage',
    ExtractionMethod.JSON_LD: 'JSON_LD',
    ExtractionMethod.MARKUP: 'DOM',
    ExtractionMethod.AI: 'AI',
}


def _clean(text: Optional[str]) -> Optional[str]:
    if not text or not isinstance(text, str):
        return None
    return re.sub(r'\s+', ' ', text).strip() or None


def collect_candidates(fragment: RawListingFragment) -> List[MileageCandidate]:
    """
    All mileage readings for a fragment.

    Readings found by the strategy come first. Values found in the title or
    description are added when they differ from those already present.
    """
    candidates = list(fragment.mileage_candidates)
    if not candidates and fragment.mileage is not None:
        candidate = mileage_candidate(fragment.mileage, FALLBACK_SOURCES[fragment.strategy])
        if candidate:
            candidates.append(candidate)

    known = {candidate.value for candidate in candidates}
    for field_name in ('title', 'description'):
        text = getattr(fragment, field_name)
        if not isinstance(text, str):
            continue
        match = MILEAGE_PATTERN.search(text)
        if match:
            candidate = mileage_candidate(match.group(1), f"TEXT_REGEX({field_name})")
            if candidate and candidate.value not in known:
                candidates.append(candidate)
                known.add(candidate.value)

    return candidates


def within_budget(fragment: RawListingFragment, query: SearchQuery) -> bool:
    """False when the fragment's price falls outside the pass's price range."""
    price = parse_price(fragment.price)
    if price is None:
        return True
    if query.max_price is not None and price > query.max_price:
        return False
    if query.min_price is not None and price < query.min_price:
        return False
    return True


def to_listing(
    fragment: RawListingFragment,
    site_name: str,
    query_pass: QueryPass = QueryPass.STRICT,
    brand: Optional[str] = None,
    current_year: Optional[int] = None,
) -> Optional[NormalizedListing]:
    """
    Validate one fragment.

    Args:
        fragment: Raw strategy output
        site_name: Site the fragment was scraped from
        query_pass: Pass that produced it
        brand: Searched brand (fingerprint keywords)
        current_year: Reference year for year parsing and mileage checks

    Returns:
        NormalizedListing, or None when the title or URL is unusable
    """
    title = _clean(fragment.title)
    url = normalize_listing_url(fragment.url, site_name)
    if not title or not url:
        logger.debug(f"[{site_name}] Dropped fragment without usable title/url: {fragment.url}")
        return None

    current_year = current_year or datetime.now().year
    price = parse_price(fragment.price)
    year = parse_year(fragment.year, current_year=current_year)
    description = _clean(fragment.description)

    resolution = mileage_resolver.resolve(
        collect_candidates(fragment),
        year=year,
        title=title,
        description=description,
        current_year=current_year,
    )

    image_url = normalize_listing_url(fragment.image_url, site_name) if fragment.image_url else None

    return NormalizedListing(
        id=fingerprint(title, price, year, resolution.final, site_name, brand),
        title=title,
        price=price,
        year=year,
        mileage_final=resolution.final,
        mileage_confidence=resolution.confidence,
        url=url,
        image_url=image_url,
        source=site_name,
        city=_clean(fragment.city),
        description=description,
        fuel=parse_fuel(fragment.fuel) or parse_fuel(title),
        gearbox=parse_transmission(fragment.gearbox) or parse_transmission(title),
        ai_score=fragment.ai_score,
        mileage_flags=resolution.red_flags,
        mileage_notes=resolution.notes,
        query_pass=query_pass,
    )
