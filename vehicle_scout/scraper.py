"""
Site scraper: one site's URL builder, fetch capability and extraction chain
behind a single interface.
"""

import logging
from typing import Dict, List, Optional

from vehicle_scout.config import SiteConfig
from vehicle_scout.error_handling import ErrorHandler, FetchError
from vehicle_scout.extraction import ExtractionStrategyChain, PageContext, to_listing, within_budget
from vehicle_scout.fetching import FetchCapability, FetchResponse
from vehicle_scout.models import NormalizedListing, QueryPass, RawListingFragment, SearchQuery
from vehicle_scout.rate_limiting import RateLimiter
from vehicle_scout.sites import SiteDefinition

logger = logging.getLogger(__name__)


class SiteScraper:
    """
    Searches one site.

    Every page fetch goes through the site's own rate limiter and the retry
    policy, so retryable statuses (403/422/429) are retried with backoff
    before the strategy that asked for the page gives up.

    Attributes:
        site: Site definition
        fetcher: Fetch capability
        rate_limiter: Per-site rate limiter
        error_handler: Retry policy runner
        chain: Extraction strategy chain
    """

    def __init__(
        self,
        site: SiteDefinition,
        fetcher: FetchCapability,
        config: Optional[SiteConfig] = None,
        chain: Optional[ExtractionStrategyChain] = None,
        current_year: Optional[int] = None,
    ):
        self.site = site
        self.fetcher = fetcher
        self.config = config or SiteConfig()
        self.chain = chain or ExtractionStrategyChain()
        self.current_year = current_year

        rate = self.config.rate_limit
        self.rate_limiter = RateLimiter(
            site.name,
            min_delay_seconds=rate.min_delay_seconds,
            max_delay_seconds=rate.max_delay_seconds,
            max_pages_per_hour=rate.max_pages_per_hour,
        )
        self.error_handler = ErrorHandler(self.config.retry)

    async def _fetch_once(self, url: str, params: Optional[Dict[str, str]] = None) -> FetchResponse:
        await self.rate_limiter.acquire()
        return await self.fetcher.fetch(url, params)

    async def fetch_page(self, url: str, params: Optional[Dict[str, str]] = None) -> FetchResponse:
        return await self.error_handler.retry_with_backoff(self._fetch_once, url, params)

    async def fetch_and_extract(self, url: str, query: SearchQuery) -> List[RawListingFragment]:
        """
        Run the extraction chain on one search page.

        Args:
            url: Search URL
            query: Query of the current pass (its price range filters fragments)

        Returns:
            Fragments within the pass's budget; empty when the page was
            fetched but nothing matched

        Raises:
            FetchError: No fetch of the page succeeded
        """
        context = PageContext(self.site, url, query, self.fetch_page)
        outcome = await self.chain.run(context)

        if not outcome.fragments and not outcome.fetched and outcome.errors:
            raise FetchError(f"{self.site.name} unreachable: {'; '.join(outcome.errors)}")

        kept = [fragment for fragment in outcome.fragments if within_budget(fragment, query)]
        if len(kept) < len(outcome.fragments):
            logger.debug(f"[{self.site.name}] {len(outcome.fragments) - len(kept)} fragments outside budget")
        return kept

    async def search(self, query_pass: QueryPass, query: SearchQuery) -> List[NormalizedListing]:
        """
        Run one pass against the site.

        Args:
            query_pass: Pass to run
            query: Original (strict) query

        Returns:
            Validated listings for this pass
        """
        pass_query = query.for_pass(query_pass)
        url = self.site.build_url(pass_query)
        logger.info(f"[{self.site.name}] pass={query_pass.value} {url}")

        fragments = await self.fetch_and_extract(url, pass_query)

        listings = []
        for fragment in fragments:
            listing = to_listing(
                fragment,
                self.site.name,
                query_pass=query_pass,
                brand=query.brand,
                current_year=self.current_year,
            )
            if listing is not None:
                listings.append(listing)
        return listings
