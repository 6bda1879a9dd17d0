"""
Cross-site, cross-pass listing deduplication.

Listings are fingerprinted on their key fields; duplicates collapse onto the
best copy, chosen by score, then completeness, then raw match score.
"""

import hashlib
import logging
from typing import Dict, List, Optional

from vehicle_scout.field_parsers import normalize_text
from vehicle_scout.models import NormalizedListing

logger = logging.getLogger(__name__)


TITLE_KEY_LENGTH = 100
MAX_KEYWORDS = 3

COMPLETENESS_WEIGHTS = {
    'title': 20,
    'price': 25,
    'year': 20,
    'mileage': 20,
    'image': 10,
    'url': 5,
}


def model_keywords(title: str, brand: Optional[str] = None) -> List[str]:
    """
    Extract up to three significant words from a title, brand removed.

    Words of two characters or less and purely numeric tokens are skipped.
    """
    normalized = normalize_text(title)
    brand_words = set(normalize_text(brand).split()) if brand else set()

    keywords = []
    for word in normalized.split():
        if word in brand_words or len(word) <= 2 or word.isdigit():
            continue
        keywords.append(word)
        if len(keywords) == MAX_KEYWORDS:
            break
    return keywords


def fingerprint(
    title: str,
    price: Optional[int],
    year: Optional[int],
    mileage: Optional[int],
    source: str,
    brand: Optional[str] = None,
) -> str:
    """
    Deterministic duplicate key for a listing.

    Args:
        title: Listing title
        price: Price in euros
        year: Registration year
        mileage: Odometer reading, rounded to the nearest 1,000 km
        source: Site name
        brand: Searched brand, stripped from the title keywords

    Returns:
        Hex md5 digest
    """
    mileage_bucket = int(mileage / 1000 + 0.5) if mileage else 0
    parts = [
        normalize_text(title)[:TITLE_KEY_LENGTH],
        str(price or 0),
        str(year or 0),
        str(mileage_bucket),
        normalize_text(source),
        '_'.join(model_keywords(title, brand)),
    ]
    return hashlib.md5('|'.join(parts).encode('utf-8')).hexdigest()


def listing_fingerprint(listing: NormalizedListing, brand: Optional[str] = None) -> str:
    return fingerprint(
        listing.title,
        listing.price,
        listing.year,
        listing.mileage_final,
        listing.source,
        brand,
    )


def completeness(listing: NormalizedListing, min_title_length: int = 0) -> int:
    """
    Weighted presence score of the key fields (0-100).

    Args:
        listing: Listing to evaluate
        min_title_length: Titles this short or shorter do not count
    """
    score = 0
    if listing.title and len(listing.title) > min_title_length:
        score += COMPLETENESS_WEIGHTS['title']
    if listing.price and listing.price > 0:
        score += COMPLETENESS_WEIGHTS['price']
    if listing.year and listing.year > 0:
        score += COMPLETENESS_WEIGHTS['year']
    if listing.mileage_final and listing.mileage_final > 0:
        score += COMPLETENESS_WEIGHTS['mileage']
    if listing.image_url:
        score += COMPLETENESS_WEIGHTS['image']
    if listing.url:
        score += COMPLETENESS_WEIGHTS['url']
    return score


def _preference(listing: NormalizedListing) -> tuple:
    return (listing.score, completeness(listing), listing.ai_score or 0)


def dedupe(listings: List[NormalizedListing], brand: Optional[str] = None) -> List[NormalizedListing]:
    """
    Collapse duplicate listings.

    The first occurrence of each fingerprint fixes the output position; the
    kept copy is the one with the highest (score, completeness, ai_score).

    Args:
        listings: Listings from any number of sites and passes
        brand: Searched brand, used for keyword extraction

    Returns:
        Deduplicated list (dedupe(dedupe(x)) == dedupe(x))
    """
    best: Dict[str, NormalizedListing] = {}
    order: List[str] = []

    for listing in listings:
        key = listing_fingerprint(listing, brand)
        current = best.get(key)
        if current is None:
            best[key] = listing
            order.append(key)
        elif _preference(listing) > _preference(current):
            best[key] = listing

    removed = len(listings) - len(order)
    if removed:
        logger.info(f"Deduplicated {len(listings)} listings to {len(order)} ({removed} duplicates)")
    return [best[key] for key in order]
