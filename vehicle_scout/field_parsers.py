"""
Field parsers for French-formatted listing data.

Pure functions converting the text found on listing pages ("12 500 €",
"98 000 km", "Diesel", "Boîte auto") into typed values.
"""

import math
import re
import unicodedata
from datetime import datetime
from typing import Any, Optional


MAX_PRICE = 300_000
MAX_MILEAGE = 500_000
MIN_YEAR = 1990

PRICE_PATTERN = re.compile(r'(\d{1,3}(?:[\s\u00a0\u202f]?\d{3})*)\s*€')
MILEAGE_PATTERN = re.compile(r'(\d{1,3}(?:[\s\u00a0\u202f]?\d{3})*)\s*km', re.IGNORECASE)
YEAR_PATTERN = re.compile(r'\b((?:19|20)\d{2})\b')

_UNIT_PATTERN = re.compile(r'kilom[eè]tres?|kms?|miles|mi\b|euros?|eur\b', re.IGNORECASE)
_CURRENCY_PATTERN = re.compile(r'[€$£]')
_SPACE_PATTERN = re.compile(r"[\s\u00a0\u202f\u2009]+")
_NUMBER_PATTERN = re.compile(r'-?\d[\d.,]*')

_FUEL_KEYWORDS = [
    ('hybride', ('hybride', 'hybrid', 'phev')),
    ('electrique', ('electrique', 'electric', ' ev ')),
    ('gpl', ('gpl', 'lpg', 'gnv')),
    ('diesel', ('diesel', 'gazole', 'gasoil', 'hdi', 'tdi', 'dci', 'bluehdi')),
    ('essence', ('essence', 'sp95', 'sp98', 'petrol', 'tce', 'tsi', 'puretech')),
]

_AUTO_KEYWORDS = ('automatique', 'auto', 'dsg', 's-tronic', 'stronic', 'edc', 'eat6', 'eat8', 'bva')
_MANUAL_KEYWORDS = ('manuelle', 'manuel', 'man', 'bvm')

_MAINTENANCE_KEYWORDS = (
    "carnet d'entretien",
    'carnet entretien',
    'historique',
    'factures',
    'entretien suivi',
    'entretien a jour',
    'revisions a jour',
    'revision faite',
)


def normalize_text(text: Optional[str]) -> str:
    """Lowercase, strip accents and collapse whitespace.

    Args:
        text: Text to normalize (None gives an empty string)

    Returns:
        ASCII-folded, lowercase, single-spaced text
    """
    if not text:
        return ""
    decomposed = unicodedata.normalize('NFD', str(text))
    stripped = ''.join(ch for ch in decomposed if unicodedata.category(ch) != 'Mn')
    return _SPACE_PATTERN.sub(' ', stripped.lower()).strip()


def to_number_fr(value: Any) -> Optional[float]:
    """Convert a French-formatted number to a float.

    Spaces (including non-breaking and thin spaces) are thousands separators.
    When both '.' and ',' appear the last one is the decimal separator. A lone
    ',' followed by exactly three digits is a thousands separator, otherwise a
    decimal one.

    Args:
        value: Text or number ("139 000 km", "8 000 €", "1,5", 12000)

    Returns:
        Parsed number, or None when no number can be read
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value) if math.isfinite(value) else None

    cleaned = _CURRENCY_PATTERN.sub('', str(value))
    cleaned = _UNIT_PATTERN.sub('', cleaned)
    cleaned = _SPACE_PATTERN.sub('', cleaned)

    match = _NUMBER_PATTERN.search(cleaned)
    if not match:
        return None
    number = match.group(0).rstrip('.,')

    if '.' in number and ',' in number:
        if number.rfind('.') > number.rfind(','):
            number = number.replace(',', '')
        else:
            number = number.replace('.', '').replace(',', '.')
    elif ',' in number:
        head, _, tail = number.partition(',')
        if len(tail) == 3 and tail.isdigit():
            number = head + tail
        else:
            number = number.replace(',', '.', 1).replace(',', '')

    try:
        return float(number)
    except ValueError:
        return None


def parse_price(value: Any) -> Optional[int]:
    """Parse a euro price. Non-positive or implausible prices give None."""
    number = to_number_fr(value)
    if number is None or number <= 0 or number > MAX_PRICE:
        return None
    return int(round(number))


def parse_mileage(value: Any) -> Optional[int]:
    """Parse an odometer reading in km, bounded to [0, 500 000]."""
    number = to_number_fr(value)
    if number is None or number < 0 or number > MAX_MILEAGE:
        return None
    return int(round(number))


def parse_year(value: Any, current_year: Optional[int] = None) -> Optional[int]:
    """Parse a registration year.

    Args:
        value: Text or number containing a year ("03/2018", "année 2016")
        current_year: Reference year (defaults to today)

    Returns:
        A year between 1990 and current_year + 1, or None
    """
    if value is None or isinstance(value, bool):
        return None
    current_year = current_year or datetime.now().year

    for match in YEAR_PATTERN.finditer(str(value)):
        year = int(match.group(1))
        if MIN_YEAR <= year <= current_year + 1:
            return year
    return None


def parse_fuel(text: Optional[str]) -> Optional[str]:
    """Map fuel vocabulary to one of essence/diesel/electrique/hybride/gpl."""
    normalized = f" {normalize_text(text)} "
    if not normalized.strip():
        return None
    for fuel, keywords in _FUEL_KEYWORDS:
        if any(keyword in normalized for keyword in keywords):
            return fuel
    return None


def parse_transmission(text: Optional[str]) -> Optional[str]:
    """Map gearbox vocabulary to 'automatique' or 'manuelle'."""
    words = set(re.split(r'[^a-z0-9-]+', normalize_text(text)))
    if words & set(_AUTO_KEYWORDS):
        return 'automatique'
    if words & set(_MANUAL_KEYWORDS):
        return 'manuelle'
    return None


def has_maintenance_history(text: Optional[str]) -> bool:
    """Check whether a description mentions a maintenance record."""
    normalized = normalize_text(text)
    return any(keyword in normalized for keyword in _MAINTENANCE_KEYWORDS)


def find_price(text: Optional[str]) -> Optional[int]:
    """Find the first "<amount> €" pattern in free text."""
    match = PRICE_PATTERN.search(text or "")
    return parse_price(match.group(1)) if match else None


def find_mileage(text: Optional[str]) -> Optional[int]:
    """Find the first "<amount> km" pattern in free text."""
    match = MILEAGE_PATTERN.search(text or "")
    return parse_mileage(match.group(1)) if match else None


def find_year(text: Optional[str], current_year: Optional[int] = None) -> Optional[int]:
    """Find the first plausible year in free text."""
    return parse_year(text, current_year=current_year)
