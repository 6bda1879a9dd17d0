"""
Extraction strategies.

Each strategy turns one search results page into raw listing fragments. They
are shared by every site and parameterized by its SiteDefinition. Strategies
that need the rendered HTML share a single fetch through PageContext.
"""

import json
import logging
import re
from typing import Any, Awaitable, Callable, Dict, List, Optional

from bs4 import BeautifulSoup, Tag

from vehicle_scout.error_handling import ExtractionError, FetchError
from vehicle_scout.extraction.ai_extractor import AIExtractor
from vehicle_scout.extraction.mappers import dig, iter_json_ld_items, map_ad, map_json_ld, mileage_candidate
from vehicle_scout.field_parsers import MILEAGE_PATTERN, PRICE_PATTERN, find_year
from vehicle_scout.fetching import FetchResponse
from vehicle_scout.models import ExtractionMethod, MileageCandidate, RawListingFragment, SearchQuery
from vehicle_scout.sites import SiteDefinition

logger = logging.getLogger(__name__)


FetchFunc = Callable[[str, Optional[Dict[str, str]]], Awaitable[FetchResponse]]

STRUCTURED_LIST_KEYS = ('listings', 'items', 'results', 'products', 'ads', 'vehicles')
INITIAL_STATE_PATTERN = re.compile(r'window\.__INITIAL_STATE__\s*=\s*(\{.*?\})\s*;?\s*</script>', re.DOTALL)
MAX_SCANNED_LINKS = 50
PARENT_LEVELS = 4


class PageContext:
    """
    One search results page as seen by the strategy chain.

    The rendered HTML is fetched at most once; a fetch error is remembered
    so later strategies do not hit the site again.

    Attributes:
        site: Site definition
        url: Search URL for the current pass
        query: Query of the current pass
        fetched: True once the page was fetched. An auto-parsed JSON fetch
            only counts while the HTML fetch has not failed
    """

    def __init__(self, site: SiteDefinition, url: str, query: SearchQuery, fetch: FetchFunc):
        self.site = site
        self.url = url
        self.query = query
        self._fetch = fetch
        self._html: Optional[str] = None
        self._error: Optional[FetchError] = None
        self._json_fetched = False

    async def html(self) -> str:
        if self._error is not None:
            raise self._error
        if self._html is None:
            try:
                response = await self._fetch(self.url, dict(self.site.fetch_params))
            except FetchError as e:
                self._error = e
                raise
            self._html = response.text
        return self._html

    async def fetch_json(self, params: Dict[str, str]) -> Any:
        """Fetch the page with extra capability parameters and decode JSON."""
        response = await self._fetch(self.url, {**self.site.fetch_params, **params})
        self._json_fetched = True
        try:
            return response.json()
        except ValueError as e:
            raise ExtractionError(f"provider returned non-JSON body: {e}") from e

    @property
    def fetched(self) -> bool:
        if self._html is not None:
            return True
        return self._json_fetched and self._error is None


class ExtractionStrategy:
    """Base class: one way of pulling fragments out of a page."""

    method: ExtractionMethod

    def applies_to(self, site: SiteDefinition) -> bool:
        return True

    async def extract(self, context: PageContext) -> List[RawListingFragment]:
        raise NotImplementedError


class StructuredStrategy(ExtractionStrategy):
    """Provider-side auto-parsing of the rendered page into JSON."""

    method = ExtractionMethod.STRUCTURED

    def applies_to(self, site: SiteDefinition) -> bool:
        return site.supports_structured

    async def extract(self, context: PageContext) -> List[RawListingFragment]:
        data = await context.fetch_json({'autoparse': 'true'})

        items = data
        if isinstance(data, dict):
            items = next((data[key] for key in STRUCTURED_LIST_KEYS if isinstance(data.get(key), list)), [])
        if not isinstance(items, list):
            return []

        fragments = []
        for item in items:
            fragment = map_ad(item, self.method, 'STRUCTURED', context.site.ad_url_template)
            if fragment:
                fragments.append(fragment)
        return fragments


class EmbeddedStateStrategy(ExtractionStrategy):
    """
    Embedded JSON state in server-rendered markup.

    Tries, in order: the __NEXT_DATA__ script, a window.__INITIAL_STATE__
    assignment, then schema.org JSON-LD blocks.
    """

    method = ExtractionMethod.EMBEDDED_STATE

    async def extract(self, context: PageContext) -> List[RawListingFragment]:
        html = await context.html()
        soup = BeautifulSoup(html, "html.parser")
        site = context.site

        script = soup.find('script', id='__NEXT_DATA__')
        if script and script.string:
            fragments = self._from_state(self._load(script.string, site.name), site, 'NEXT_DATA')
            if fragments:
                return fragments

        match = INITIAL_STATE_PATTERN.search(html)
        if match:
            fragments = self._from_state(self._load(match.group(1), site.name), site, 'INITIAL_STATE')
            if fragments:
                return fragments

        fragments = []
        for block in soup.find_all('script', type='application/ld+json'):
            data = self._load(block.string or '', site.name)
            for item in iter_json_ld_items(data):
                fragments.append(map_json_ld(item))
        return fragments

    @staticmethod
    def _load(text: str, site_name: str) -> Any:
        try:
            return json.loads(text)
        except ValueError:
            logger.debug(f"[{site_name}] Unparseable embedded JSON ({len(text)} chars)")
            return None

    def _from_state(self, data: Any, site: SiteDefinition, origin: str) -> List[RawListingFragment]:
        if data is None:
            return []
        for path in site.state_paths:
            ads = dig(data, path)
            if isinstance(ads, list) and ads:
                logger.debug(f"[{site.name}] {origin} ads found at {path} ({len(ads)})")
                fragments = [map_ad(ad, self.method, origin, site.ad_url_template) for ad in ads]
                return [fragment for fragment in fragments if fragment]
        return []


class MarkupPatternStrategy(ExtractionStrategy):
    """
    Pattern extraction over the rendered markup.

    Result cards are located with the site's card selectors; a card counts
    only if it holds exactly one listing link. When no selector yields cards,
    listing links are scanned directly and their surrounding markup is used
    as context.
    """

    method = ExtractionMethod.MARKUP

    async def extract(self, context: PageContext) -> List[RawListingFragment]:
        html = await context.html()
        soup = BeautifulSoup(html, "html.parser")
        patterns = context.site.patterns
        link_pattern = re.compile(patterns.link_pattern)

        for selector in patterns.card_selectors:
            fragments = self._from_cards(soup.select(selector), link_pattern, context)
            if fragments:
                logger.debug(f"[{context.site.name}] {len(fragments)} cards matched '{selector}'")
                return fragments

        return self._from_links(soup, link_pattern, context)

    def _from_cards(self, cards: List[Tag], link_pattern, context: PageContext) -> List[RawListingFragment]:
        fragments = []
        seen = set()
        for card in cards:
            link = self._card_link(card, link_pattern)
            if link is None or link['href'] in seen:
                continue
            seen.add(link['href'])
            fragments.append(self._parse_container(card, link, context))
        return fragments

    @staticmethod
    def _card_link(card: Tag, link_pattern) -> Optional[Tag]:
        if card.name == 'a' and card.get('href') and link_pattern.search(card['href']):
            return card
        links = card.find_all('a', href=link_pattern)
        if len({link['href'] for link in links}) != 1:
            return None
        return links[0]

    def _from_links(self, soup: BeautifulSoup, link_pattern, context: PageContext) -> List[RawListingFragment]:
        fragments = []
        seen = set()
        for link in soup.find_all('a', href=link_pattern):
            if link['href'] in seen:
                continue
            seen.add(link['href'])

            container = link
            for _ in range(PARENT_LEVELS):
                if '€' in container.get_text(' ') or container.parent is None:
                    break
                container = container.parent

            fragments.append(self._parse_container(container, link, context))
            if len(fragments) >= MAX_SCANNED_LINKS:
                break
        return fragments

    def _parse_container(self, container: Tag, link: Tag, context: PageContext) -> RawListingFragment:
        patterns = context.site.patterns
        text = container.get_text(' ', strip=True)

        title = self._select_text(container, patterns.title_selectors)
        if not title:
            title = link.get('aria-label') or link.get('title') or link.get_text(' ', strip=True)

        price_text = self._select_text(container, patterns.price_selectors)
        price_match = PRICE_PATTERN.search(price_text or text)
        price = price_match.group(1) if price_match else price_text

        year_text = MILEAGE_PATTERN.sub(' ', PRICE_PATTERN.sub(' ', text))

        image = container.find('img')
        image_url = None
        if image is not None:
            image_url = image.get('src') or image.get('data-src')

        candidates = self._mileage_candidates(container, text)
        return RawListingFragment(
            strategy=self.method,
            title=title or None,
            price=price or None,
            year=find_year(year_text),
            mileage=candidates[0].value if candidates else None,
            url=link['href'],
            image_url=image_url,
            city=self._select_text(container, patterns.city_selectors),
            mileage_candidates=candidates,
        )

    @staticmethod
    def _select_text(container: Tag, selectors) -> Optional[str]:
        for selector in selectors:
            element = container.select_one(selector)
            if element is not None:
                text = element.get_text(' ', strip=True)
                if text:
                    return text
        return None

    @staticmethod
    def _mileage_candidates(container: Tag, text: str) -> List[MileageCandidate]:
        candidates = []

        tagged = container if container.has_attr('data-mileage') else container.select_one('[data-mileage]')
        if tagged is not None:
            candidate = mileage_candidate(tagged['data-mileage'], 'DOM.data-mileage')
            if candidate:
                candidates.append(candidate)

        mileage_node = container.select_one('[class*="mileage"], [class*="kilometrage"], [data-testid*="mileage"]')
        if mileage_node is not None:
            match = MILEAGE_PATTERN.search(mileage_node.get_text(' ', strip=True))
            if match:
                candidate = mileage_candidate(match.group(1), 'DOM.specs.kilometrage')
                if candidate:
                    candidates.append(candidate)

        match = MILEAGE_PATTERN.search(text)
        if match:
            candidate = mileage_candidate(match.group(1), 'DOM.regex')
            if candidate:
                candidates.append(candidate)

        return candidates


class AIStrategy(ExtractionStrategy):
    """Last resort: language-model extraction from a trimmed page slice."""

    method = ExtractionMethod.AI

    def __init__(self, extractor: AIExtractor):
        self.extractor = extractor

    def applies_to(self, site: SiteDefinition) -> bool:
        return self.extractor.enabled

    async def extract(self, context: PageContext) -> List[RawListingFragment]:
        html = await context.html()
        return await self.extractor.extract(html, context.site.name, context.query)
