"""
AI-assisted listing extraction using Claude.

Last-resort strategy: a trimmed, brand/model-relevant slice of the page is
sent with a prompt constrained to a fixed JSON schema. The reply is validated
with pydantic before any fragment is built from it.
"""

import json
import logging
from typing import List, Optional, Union

import anthropic
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from vehicle_scout.config import AIConfig
from vehicle_scout.error_handling import ExtractionError
from vehicle_scout.field_parsers import normalize_text
from vehicle_scout.models import ExtractionMethod, MileageCandidate, RawListingFragment, SearchQuery
from vehicle_scout.extraction.mappers import mileage_candidate

logger = logging.getLogger(__name__)


CONTEXT_LINES = 20

SYSTEM_PROMPT = (
    "You are an expert at extracting structured data from HTML. "
    "Return ONLY valid JSON, with no text before or after."
)


class AIListingItem(BaseModel):
    """One listing as returned by the model."""
    model_config = ConfigDict(extra='ignore')

    title: Optional[str] = None
    price: Optional[Union[float, str]] = None
    year: Optional[Union[int, str]] = None
    mileage: Optional[Union[float, str]] = None
    url: Optional[str] = None
    image_url: Optional[str] = None
    city: Optional[str] = None
    fuel: Optional[str] = None
    gearbox: Optional[str] = None


class AIListingPayload(BaseModel):
    """Expected shape of the model reply."""
    listings: List[AIListingItem] = Field(default_factory=list)


def build_relevant_snippet(html: str, brand: str, model: Optional[str], limit: int) -> str:
    """
    Keep the parts of a page that mention the searched vehicle.

    Lines mentioning the brand or model are kept with CONTEXT_LINES lines of
    context on each side. When nothing matches, the beginning of the page is
    used instead.

    Args:
        html: Full page markup
        brand: Searched brand
        model: Searched model
        limit: Maximum snippet length in characters

    Returns:
        Snippet of at most limit characters
    """
    terms = [normalize_text(term) for term in (brand, model) if term]
    lines = html.splitlines()

    keep = set()
    for index, line in enumerate(lines):
        lowered = normalize_text(line)
        if any(term in lowered for term in terms):
            keep.update(range(max(0, index - CONTEXT_LINES), min(len(lines), index + CONTEXT_LINES + 1)))

    if not keep:
        return html[:limit]
    return '\n'.join(lines[index] for index in sorted(keep))[:limit]


def _strip_code_fence(text: str) -> str:
    """Extract JSON if wrapped in markdown."""
    if '```json' in text:
        return text.split('```json')[1].split('```')[0].strip()
    if '```' in text:
        return text.split('```')[1].split('```')[0].strip()
    return text


class AIExtractor:
    """
    Extract listings from HTML with Claude.

    Without an API key the extractor is disabled and every call returns an
    empty list.
    """

    def __init__(self, config: AIConfig, client: Optional[anthropic.AsyncAnthropic] = None):
        self.config = config
        if client is not None:
            self.client = client
        else:
            self.client = anthropic.AsyncAnthropic(api_key=config.api_key) if config.api_key else None

    @property
    def enabled(self) -> bool:
        return self.client is not None

    def build_prompt(self, snippet: str, site: str, query: SearchQuery) -> str:
        criteria = [f"- Max price: {query.max_price} EUR"] if query.max_price else []
        if query.min_price:
            criteria.append(f"- Min price: {query.min_price} EUR")
        if query.year_min:
            criteria.append(f"- Min year: {query.year_min}")
        if query.year_max:
            criteria.append(f"- Max year: {query.year_max}")
        if query.mileage_max:
            criteria.append(f"- Max mileage: {query.mileage_max} km")
        criteria_text = "\n".join(criteria) or "- none"

        return f"""Extract every used-vehicle listing from this HTML page.

Site: {site}
Searched brand: {query.brand}
Searched model: {query.model or 'any model'}
Search criteria:
{criteria_text}

Each listing has:
- title (required)
- price (number in euros, or null)
- year (number, or null)
- mileage (number in km, or null)
- url (ABSOLUTE https:// URL, required)
- image_url (absolute URL, or null)
- city (or null)
- fuel (essence/diesel/hybride/electrique/gpl, or null)
- gearbox (manuelle/automatique, or null)

Return ONLY valid JSON:
{{"listings": [{{"title": "...", "price": 12500, "year": 2019, "mileage": 84000, "url": "https://...", "image_url": null, "city": "Lyon", "fuel": "diesel", "gearbox": "manuelle"}}]}}

If a field is missing use null, but title and url are REQUIRED.
If there is no listing, return {{"listings": []}}.

HTML ({len(snippet)} characters):
\"\"\"{snippet}\"\"\""""

    async def extract(self, html: str, site: str, query: SearchQuery) -> List[RawListingFragment]:
        """
        Extract listing fragments from a page.

        Args:
            html: Page markup
            site: Site name (for the prompt)
            query: Pass query (brand/model relevance and criteria)

        Returns:
            Fragments with both title and url

        Raises:
            ExtractionError: The model reply is not valid JSON of the expected shape
        """
        if not self.enabled:
            logger.debug(f"[{site}] AI extraction disabled (no API key)")
            return []

        snippet = build_relevant_snippet(html, query.brand, query.model, self.config.max_snippet_chars)
        if len(snippet) < self.config.min_snippet_chars:
            logger.debug(f"[{site}] HTML snippet too small for AI extraction ({len(snippet)} chars)")
            return []

        logger.info(f"[{site}] AI extraction on {len(snippet)} chars of HTML")
        response = await self.client.messages.create(
            model=self.config.model,
            max_tokens=self.config.max_tokens,
            temperature=self.config.temperature,
            system=SYSTEM_PROMPT,
            messages=[{"role": "user", "content": self.build_prompt(snippet, site, query)}],
        )

        text = _strip_code_fence(response.content[0].text.strip())
        try:
            payload = AIListingPayload.model_validate(json.loads(text))
        except (json.JSONDecodeError, ValidationError) as e:
            raise ExtractionError(f"invalid AI extraction payload: {e}") from e

        fragments = []
        for item in payload.listings:
            if not item.title or not item.url:
                continue
            candidates: List[MileageCandidate] = []
            if item.mileage is not None:
                candidate = mileage_candidate(item.mileage, 'AI')
                if candidate:
                    candidates.append(candidate)
            fragments.append(RawListingFragment(
                strategy=ExtractionMethod.AI,
                title=item.title,
                price=item.price,
                year=item.year,
                mileage=item.mileage,
                url=item.url,
                image_url=item.image_url,
                city=item.city,
                fuel=item.fuel,
                gearbox=item.gearbox,
                mileage_candidates=candidates,
            ))

        logger.info(f"[{site}] AI extraction returned {len(fragments)} usable listings")
        return fragments
