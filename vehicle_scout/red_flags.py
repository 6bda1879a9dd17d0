"""
Red flag detection for normalized listings.

Each rule is evaluated independently and carries a fixed severity. Flags are
an explainable signal kept apart from the listing score; the only numeric
transformation they drive is the derived risk score (see risk_score()).
"""

import logging
import re
from datetime import datetime
from typing import List, Optional

from vehicle_scout.field_parsers import normalize_text
from vehicle_scout.models import FlagType, NormalizedListing, RedFlag, Severity

logger = logging.getLogger(__name__)


HIGH_USAGE_KM = 300_000
HIGH_USAGE_MAX_AGE = 5
HIGH_USAGE_KM_PER_YEAR = 60_000
PRICE_TOO_LOW_RATIO = 0.75

MISSING_INSPECTION_PATTERNS = [
    re.compile(r'\bsans\s+(?:controle\s+technique|ct)\b'),
    re.compile(r'\b(?:ct|controle\s+technique)\s+(?:expire|perime|a\s+refaire|non\s+fait|refuse)\b'),
    re.compile(r'\bpas\s+de\s+(?:ct|controle\s+technique)\b'),
]

# Aliases map to a canonical brand so "vw" and "volkswagen" agree
KNOWN_BRANDS = {
    'volkswagen': 'volkswagen',
    'vw': 'volkswagen',
    'renault': 'renault',
    'peugeot': 'peugeot',
    'citroen': 'citroen',
    'bmw': 'bmw',
    'audi': 'audi',
    'mercedes': 'mercedes',
    'ford': 'ford',
    'opel': 'opel',
    'fiat': 'fiat',
    'seat': 'seat',
    'skoda': 'skoda',
    'toyota': 'toyota',
}

SUSPICIOUS_PAYMENT_PATTERNS = [
    re.compile(r'virement.*immediat'),
    re.compile(r'paiement.*avant.*livraison'),
    re.compile(r'cash.*uniquement'),
    re.compile(r'mandat\s+cash'),
    re.compile(r'western\s+union'),
]

URGENCY_PATTERNS = [
    re.compile(r'\burgent'),
    re.compile(r'\brapide'),
    re.compile(r'\bimmediat'),
    re.compile(r'\bdepart\b'),
    re.compile(r'\bdemenagement'),
    re.compile(r'derniere\s+chance'),
]


def detect(
    listing: NormalizedListing,
    market_min: Optional[float] = None,
    current_year: Optional[int] = None,
) -> List[RedFlag]:
    """
    Evaluate every red flag rule against a listing.

    Args:
        listing: Listing to inspect (its mileage_flags come from the resolver)
        market_min: Low end of the market band for comparable listings
        current_year: Reference year (defaults to today)

    Returns:
        New list of red flags; the listing itself is not modified
    """
    current_year = current_year or datetime.now().year
    flags: List[RedFlag] = list(listing.mileage_flags)

    usage_flag = _check_high_usage(listing, current_year)
    if usage_flag:
        flags.append(usage_flag)

    price_flag = _check_price_too_low(listing, market_min)
    if price_flag:
        flags.append(price_flag)

    description = normalize_text(listing.description)
    if description:
        for check in (_check_missing_inspection, _check_inconsistent_brands):
            flag = check(listing, description)
            if flag:
                flags.append(flag)

    seller_flag = _check_suspicious_seller(listing)
    if seller_flag:
        flags.append(seller_flag)

    if flags:
        logger.debug(f"{len(flags)} red flag(s) on {listing.source} listing {listing.id}")
    return flags


def _check_high_usage(listing: NormalizedListing, current_year: int) -> Optional[RedFlag]:
    if listing.mileage_final is None or listing.year is None:
        return None
    age = current_year - listing.year
    if listing.mileage_final <= HIGH_USAGE_KM or age >= HIGH_USAGE_MAX_AGE:
        return None
    km_per_year = listing.mileage_final / max(age, 1)
    if km_per_year <= HIGH_USAGE_KM_PER_YEAR:
        return None
    return RedFlag(
        type=FlagType.MILEAGE_INCONSISTENT,
        severity=Severity.HIGH,
        message=f"Usage too high: {listing.mileage_final} km in {age} year(s)",
        details={'mileage': listing.mileage_final, 'age': age, 'km_per_year': int(km_per_year)},
    )


def _check_price_too_low(listing: NormalizedListing, market_min: Optional[float]) -> Optional[RedFlag]:
    if not listing.price or not market_min:
        return None
    if listing.price >= PRICE_TOO_LOW_RATIO * market_min:
        return None
    ratio = listing.price / market_min
    return RedFlag(
        type=FlagType.PRICE_TOO_LOW,
        severity=Severity.HIGH,
        message=f"Price is {round((1 - ratio) * 100)}% below the market minimum",
        details={'price': listing.price, 'market_min': int(market_min)},
    )


def _check_missing_inspection(listing: NormalizedListing, description: str) -> Optional[RedFlag]:
    for pattern in MISSING_INSPECTION_PATTERNS:
        match = pattern.search(description)
        if match:
            return RedFlag(
                type=FlagType.MISSING_INSPECTION,
                severity=Severity.HIGH,
                message="Description states the roadworthiness inspection is missing or expired",
                details={'evidence': match.group(0)},
            )
    return None


def mentioned_brands(text: str) -> set:
    """Canonical brands named in already-normalized text."""
    words = set(re.findall(r'[a-z]+', text))
    return {canonical for alias, canonical in KNOWN_BRANDS.items() if alias in words}


def _check_inconsistent_brands(listing: NormalizedListing, description: str) -> Optional[RedFlag]:
    title_brands = mentioned_brands(normalize_text(listing.title))
    description_brands = mentioned_brands(description)
    if not title_brands or not description_brands:
        return None
    if title_brands & description_brands:
        return None
    return RedFlag(
        type=FlagType.INCONSISTENT_LISTING,
        severity=Severity.HIGH,
        message="Title and description name different vehicle brands",
        details={
            'title_brands': sorted(title_brands),
            'description_brands': sorted(description_brands),
        },
    )


def _check_suspicious_seller(listing: NormalizedListing) -> Optional[RedFlag]:
    text = normalize_text(f"{listing.title} {listing.description or ''}")
    payment = [p.pattern for p in SUSPICIOUS_PAYMENT_PATTERNS if p.search(text)]
    urgency = [p.pattern for p in URGENCY_PATTERNS if p.search(text)]
    if not payment and len(urgency) < 2:
        return None
    return RedFlag(
        type=FlagType.SUSPICIOUS_SELLER,
        severity=Severity.HIGH,
        message="Seller uses payment or urgency wording typical of scams",
        details={'payment_patterns': payment, 'urgency_patterns': urgency},
    )


def risk_score(flags: List[RedFlag], base: int = 0) -> int:
    """
    Derive a 0-100 risk score with severity floors.

    Any critical flag forces at least 80, two or more high flags at least 75,
    a single high flag at least 65.
    """
    critical = sum(1 for flag in flags if flag.severity == Severity.CRITICAL)
    high = sum(1 for flag in flags if flag.severity == Severity.HIGH)

    score = max(0, min(100, base))
    if critical:
        score = max(80, score)
    elif high >= 2:
        score = max(75, score)
    elif high == 1:
        score = max(65, score)
    return score


def risk_level(score: int) -> str:
    if score >= 70:
        return 'high'
    if score >= 40:
        return 'medium'
    return 'low'
