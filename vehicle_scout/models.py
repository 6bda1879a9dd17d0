"""
Data models for Vehicle Scout.

This module defines the core data structures that flow through the listing
acquisition pipeline: the immutable search query and its per-pass variants,
raw extraction fragments, validated listings, red flags and the per-site and
global result envelopes.
"""

from dataclasses import dataclass, field, asdict, replace
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple


class QueryPass(str, Enum):
    """Relaxation level of one query against a site."""
    STRICT = "strict"
    RELAXED = "relaxed"
    OPPORTUNITY = "opportunity"

    @property
    def price_factor(self) -> float:
        """Multiplier applied to the query's max price for this pass."""
        return {
            QueryPass.STRICT: 1.0,
            QueryPass.RELAXED: 1.1,
            QueryPass.OPPORTUNITY: 1.2,
        }[self]


class MileageConfidence(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class FlagType(str, Enum):
    MILEAGE_INCONSISTENT = "mileage_inconsistent"
    PRICE_TOO_LOW = "price_too_low"
    MISSING_INSPECTION = "missing_inspection"
    INCONSISTENT_LISTING = "inconsistent_listing"
    SUSPICIOUS_SELLER = "suspicious_seller"


class Severity(str, Enum):
    HIGH = "high"
    CRITICAL = "critical"


class ExtractionMethod(str, Enum):
    """Tag identifying which strategy produced a fragment."""
    STRUCTURED = "structured"
    EMBEDDED_STATE = "embedded_state"
    JSON_LD = "json_ld"
    MARKUP = "markup"
    AI = "ai"


@dataclass(frozen=True)
class SearchQuery:
    """User search parameters for a vehicle search.

    The query is immutable: each pass works on a derived copy produced by
    for_pass().

    Attributes:
        brand: Vehicle make (required)
        model: Vehicle model (optional)
        max_price: Maximum price in euros
        min_price: Minimum price in euros
        year_min: Oldest acceptable registration year
        year_max: Most recent acceptable registration year
        mileage_max: Maximum odometer reading in km
        fuel_type: Fuel filter (essence, diesel, ...)
        location: Postal code or city used by sites supporting geo filters
        radius_km: Search radius around location
        excluded_sites: Site names the caller does not want queried
    """
    brand: str
    model: Optional[str] = None
    max_price: Optional[int] = None
    min_price: Optional[int] = None
    year_min: Optional[int] = None
    year_max: Optional[int] = None
    mileage_max: Optional[int] = None
    fuel_type: Optional[str] = None
    location: Optional[str] = None
    radius_km: Optional[int] = None
    excluded_sites: Tuple[str, ...] = ()

    def __post_init__(self):
        if not self.brand or not self.brand.strip():
            raise ValueError("brand is required")
        if isinstance(self.excluded_sites, list):
            object.__setattr__(self, 'excluded_sites', tuple(self.excluded_sites))

    def for_pass(self, query_pass: QueryPass) -> 'SearchQuery':
        """Derive the query used by a given pass.

        Strict returns the query unchanged. Relaxed widens the price ceiling
        by 10% and drops the location constraint. Opportunity widens the
        ceiling by 20%, drops location and matches on brand only.

        Args:
            query_pass: The pass to derive the query for

        Returns:
            A new SearchQuery (or self for the strict pass)
        """
        if query_pass == QueryPass.STRICT:
            return self

        max_price = self.max_price
        if max_price is not None:
            max_price = int(round(max_price * query_pass.price_factor))

        changes = {'max_price': max_price, 'location': None, 'radius_km': None}
        if query_pass == QueryPass.OPPORTUNITY:
            changes['model'] = None
        return replace(self, **changes)

    @property
    def text(self) -> str:
        """Free-text form of the query (brand and model)."""
        return " ".join(part for part in (self.brand, self.model) if part)

    def to_dict(self) -> dict:
        data = asdict(self)
        data['excluded_sites'] = list(self.excluded_sites)
        return data


@dataclass
class MileageCandidate:
    """One odometer reading found in a listing.

    Attributes:
        value: Reading in km
        source: Extraction path identifier (e.g. "NEXT_DATA.attributes.mileage")
        raw: Original text the value was parsed from
    """
    value: int
    source: str
    raw: str = ""


@dataclass
class RawListingFragment:
    """Loosely-typed extraction output, prior to validation.

    Every field may be absent. Values are kept as found on the page (strings
    or numbers); the normalizer converts them with the field parsers.
    """
    strategy: ExtractionMethod
    title: Optional[str] = None
    price: Any = None
    year: Any = None
    mileage: Any = None
    url: Optional[str] = None
    image_url: Optional[str] = None
    city: Optional[str] = None
    description: Optional[str] = None
    fuel: Optional[str] = None
    gearbox: Optional[str] = None
    mileage_candidates: List[MileageCandidate] = field(default_factory=list)
    ai_score: Optional[float] = None


@dataclass
class RedFlag:
    """A named, severity-tagged anomaly attached to one listing."""
    type: FlagType
    severity: Severity
    message: str
    details: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict:
        return {
            'type': self.type.value,
            'severity': self.severity.value,
            'message': self.message,
            'details': dict(self.details),
        }


@dataclass
class NormalizedListing:
    """Validated, site-tagged listing.

    Attributes:
        id: Stable fingerprint (see dedupe.fingerprint)
        title: Normalized title
        price: Price in euros, None when unknown
        year: Registration year, None when unknown
        mileage_final: Resolved odometer reading, None when no plausible value
        mileage_confidence: Confidence of the resolved reading
        url: Absolute listing URL
        image_url: Primary image URL
        source: Site name
        score: Trust/match score in [0, 100]
        red_flags: Anomalies detected on this listing
    """
    id: str
    title: str
    price: Optional[int]
    year: Optional[int]
    mileage_final: Optional[int]
    mileage_confidence: MileageConfidence
    url: str
    image_url: Optional[str]
    source: str
    score: int = 0
    red_flags: List[RedFlag] = field(default_factory=list)
    city: Optional[str] = None
    description: Optional[str] = None
    fuel: Optional[str] = None
    gearbox: Optional[str] = None
    ai_score: Optional[float] = None
    score_reasons: List[str] = field(default_factory=list)
    mileage_flags: List[RedFlag] = field(default_factory=list)
    mileage_notes: List[str] = field(default_factory=list)
    risk_score: int = 0
    query_pass: QueryPass = QueryPass.STRICT
    scraped_at: datetime = field(default_factory=datetime.now)

    def to_dict(self) -> dict:
        """Convert listing to dictionary for JSON serialization."""
        return {
            'id': self.id,
            'title': self.title,
            'price': self.price,
            'year': self.year,
            'mileage_final': self.mileage_final,
            'mileage_confidence': self.mileage_confidence.value,
            'url': self.url,
            'image_url': self.image_url,
            'source': self.source,
            'score': self.score,
            'red_flags': [flag.to_dict() for flag in self.red_flags],
            'city': self.city,
            'fuel': self.fuel,
            'gearbox': self.gearbox,
            'score_reasons': list(self.score_reasons),
            'risk_score': self.risk_score,
            'query_pass': self.query_pass.value,
            'scraped_at': self.scraped_at.isoformat(),
        }


@dataclass
class PassAttempt:
    """Audit record of one pass against one site."""
    query_pass: QueryPass
    ok: bool
    item_count: int
    duration_ms: int
    note: str = ""

    def to_dict(self) -> dict:
        return {
            'pass': self.query_pass.value,
            'ok': self.ok,
            'item_count': self.item_count,
            'duration_ms': self.duration_ms,
            'note': self.note,
        }


@dataclass
class SiteResult:
    """Outcome of searching one site.

    ok=False is reserved for technical failures (timeout, exception,
    cancellation). A site that answered but had nothing matching is
    ok=True with an empty items list.
    """
    site: str
    ok: bool
    items: List[NormalizedListing] = field(default_factory=list)
    attempts: List[PassAttempt] = field(default_factory=list)
    error: Optional[str] = None
    cancelled: bool = False

    def to_dict(self) -> dict:
        return {
            'site': self.site,
            'ok': self.ok,
            'items': [item.to_dict() for item in self.items],
            'attempts': [attempt.to_dict() for attempt in self.attempts],
            'error': self.error,
            'cancelled': self.cancelled,
        }


@dataclass
class SearchStats:
    total_items: int
    sites_scraped: int
    total_ms: int


@dataclass
class SearchResult:
    """Final output of one orchestrated search."""
    listings: List[NormalizedListing]
    site_results: List[SiteResult]
    stats: SearchStats
    cancelled: bool = False

    def to_dict(self) -> dict:
        return {
            'listings': [listing.to_dict() for listing in self.listings],
            'site_results': [result.to_dict() for result in self.site_results],
            'stats': asdict(self.stats),
            'cancelled': self.cancelled,
        }
