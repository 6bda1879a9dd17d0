"""
Search orchestrator.

Fans the pass controller out over every active site with bounded
concurrency, merges the per-site results, deduplicates and scores them
across sites and reports per-site diagnostics. Site failures never make a
search fail.
"""

import asyncio
import logging
import time
from typing import Dict, List, Optional, Sequence

from vehicle_scout.config import EngineSettings, get_engine_settings
from vehicle_scout.dedupe import dedupe
from vehicle_scout.extraction import AIExtractor, ExtractionStrategyChain
from vehicle_scout.fetching import FetchCapability, ProviderFetcher
from vehicle_scout.models import SearchQuery, SearchResult, SearchStats, SiteResult
from vehicle_scout.pass_controller import PassController
from vehicle_scout.scoring import score_listings
from vehicle_scout.scraper import SiteScraper
from vehicle_scout.sites import SITES, SiteDefinition, active_sites

logger = logging.getLogger(__name__)


class CancellationToken:
    """Parent-level abort signal for a running search."""

    def __init__(self):
        self._event = asyncio.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    async def wait(self) -> None:
        await self._event.wait()


def cancelled_result(site: str) -> SiteResult:
    return SiteResult(site=site, ok=False, error="cancelled", cancelled=True)


class SearchOrchestrator:
    """
    Runs one search across all active sites.

    Attributes:
        settings: Engine settings
        fetcher: Fetch capability shared by every site scraper
        sites: Site registry to search
        chain: Extraction strategy chain shared by every site
        pass_controller: Pass escalation policy
    """

    def __init__(
        self,
        settings: Optional[EngineSettings] = None,
        fetcher: Optional[FetchCapability] = None,
        sites: Optional[Sequence[SiteDefinition]] = None,
        chain: Optional[ExtractionStrategyChain] = None,
        current_year: Optional[int] = None,
    ):
        self.settings = settings or get_engine_settings()
        self.fetcher = fetcher or ProviderFetcher(self.settings.fetch)
        self.sites = list(sites) if sites is not None else list(SITES)
        self.chain = chain or ExtractionStrategyChain(ai_extractor=AIExtractor(self.settings.ai))
        self.current_year = current_year
        self.pass_controller = PassController(self.settings.site, current_year=current_year)

    def build_scraper(self, site: SiteDefinition) -> SiteScraper:
        return SiteScraper(site, self.fetcher, self.settings.site, self.chain, current_year=self.current_year)

    async def search(self, query: SearchQuery, cancel_token: Optional[CancellationToken] = None) -> SearchResult:
        """
        Search every active site and merge the results.

        Args:
            query: Search query
            cancel_token: Optional abort signal. When it fires, in-flight
                sites are cancelled and reported as such; their listings
                are not merged.

        Returns:
            SearchResult with deduplicated, scored listings sorted by score
        """
        started = time.monotonic()
        sites = active_sites(query, self.sites)
        logger.info(f"Searching '{query.text}' on {len(sites)} sites")

        semaphore = asyncio.Semaphore(max(1, self.settings.concurrency))

        async def run(site: SiteDefinition) -> SiteResult:
            async with semaphore:
                if cancel_token is not None and cancel_token.cancelled:
                    return cancelled_result(site.name)
                return await self.pass_controller.run_site(self.build_scraper(site), query)

        tasks: Dict[asyncio.Task, SiteDefinition] = {asyncio.create_task(run(site)): site for site in sites}
        cancel_waiter = asyncio.create_task(cancel_token.wait()) if cancel_token is not None else None

        try:
            await self._join(set(tasks), cancel_waiter)
        except asyncio.CancelledError:
            for task in tasks:
                task.cancel()
            raise
        finally:
            if cancel_waiter is not None:
                cancel_waiter.cancel()

        cancelled = cancel_token is not None and cancel_token.cancelled
        pending = [task for task in tasks if not task.done()]
        if pending:
            for task in pending:
                task.cancel()
            await asyncio.gather(*pending, return_exceptions=True)

        site_results = [self._collect(task, site) for task, site in tasks.items()]

        merged = [item for result in site_results if result.ok and not result.cancelled for item in result.items]
        listings = score_listings(dedupe(merged, brand=query.brand), query, current_year=self.current_year)

        total_ms = int((time.monotonic() - started) * 1000)
        stats = SearchStats(
            total_items=len(listings),
            sites_scraped=sum(1 for result in site_results if result.ok),
            total_ms=total_ms,
        )
        logger.info(
            f"Search done: {stats.total_items} listings from {stats.sites_scraped}/{len(sites)} sites "
            f"in {total_ms}ms{' (cancelled)' if cancelled else ''}"
        )
        return SearchResult(listings=listings, site_results=site_results, stats=stats, cancelled=cancelled)

    @staticmethod
    async def _join(pending: set, cancel_waiter: Optional[asyncio.Task]) -> None:
        """Wait for every site task, or until the cancel signal fires."""
        while pending:
            waiting = pending | {cancel_waiter} if cancel_waiter is not None else pending
            done, _ = await asyncio.wait(waiting, return_when=asyncio.FIRST_COMPLETED)
            pending -= done
            if cancel_waiter is not None and cancel_waiter in done:
                return

    @staticmethod
    def _collect(task: asyncio.Task, site: SiteDefinition) -> SiteResult:
        if task.cancelled():
            return cancelled_result(site.name)
        error = task.exception()
        if error is not None:
            logger.error(f"[{site.name}] site task crashed: {type(error).__name__}: {error}")
            return SiteResult(site=site.name, ok=False, error=f"{type(error).__name__}: {error}")
        return task.result()
