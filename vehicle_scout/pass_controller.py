"""
Pass controller.

Runs the strict / relaxed / opportunity passes against one site under a
per-pass timeout and a global per-site deadline, then deduplicates, scores
and caps the site's listings.
"""

import asyncio
import logging
from typing import List, Optional

from vehicle_scout.config import SiteConfig
from vehicle_scout.dedupe import dedupe
from vehicle_scout.models import NormalizedListing, PassAttempt, QueryPass, SearchQuery, SiteResult
from vehicle_scout.scoring import score_listings
from vehicle_scout.scraper import SiteScraper

logger = logging.getLogger(__name__)


class PassController:
    """
    Escalates passes for one site.

    Strict always runs. Relaxed runs when fewer than sufficiency_threshold
    listings were collected; opportunity runs when fewer than
    opportunity_threshold were collected and the site supports it.
    """

    def __init__(self, config: Optional[SiteConfig] = None, current_year: Optional[int] = None):
        self.config = config or SiteConfig()
        self.current_year = current_year

    def next_pass(self, current: QueryPass, collected: int, supports_opportunity: bool) -> Optional[QueryPass]:
        if current == QueryPass.STRICT and collected < self.config.sufficiency_threshold:
            return QueryPass.RELAXED
        if (
            current == QueryPass.RELAXED
            and collected < self.config.opportunity_threshold
            and supports_opportunity
        ):
            return QueryPass.OPPORTUNITY
        return None

    async def run_site(self, scraper: SiteScraper, query: SearchQuery) -> SiteResult:
        """
        Run all needed passes against one site.

        Args:
            scraper: Scraper for the site
            query: Original query

        Returns:
            SiteResult. ok=False only for technical failures: the global
            deadline was exceeded, or every pass failed.
        """
        site = scraper.site
        loop = asyncio.get_running_loop()
        started = loop.time()
        deadline = started + self.config.site_deadline_s
        pass_timeout = site.pass_timeout_s or self.config.pass_timeout_s

        collected: List[NormalizedListing] = []
        attempts: List[PassAttempt] = []
        query_pass: Optional[QueryPass] = QueryPass.STRICT
        timed_out = False

        while query_pass is not None:
            remaining = deadline - loop.time()
            if remaining <= 0:
                timed_out = True
                break

            timeout = min(pass_timeout, remaining)
            pass_started = loop.time()
            try:
                items = await asyncio.wait_for(scraper.search(query_pass, query), timeout)
            except asyncio.TimeoutError:
                attempts.append(PassAttempt(
                    query_pass, False, 0, self._elapsed_ms(loop, pass_started),
                    note=f"timeout after {int(timeout * 1000)}ms",
                ))
                logger.warning(f"[{site.name}] pass={query_pass.value} timed out after {timeout:.1f}s")
                if loop.time() >= deadline:
                    timed_out = True
                    break
            except Exception as e:
                attempts.append(PassAttempt(
                    query_pass, False, 0, self._elapsed_ms(loop, pass_started),
                    note=f"{type(e).__name__}: {e}",
                ))
                logger.warning(f"[{site.name}] pass={query_pass.value} failed: {e}")
            else:
                collected.extend(items)
                attempts.append(PassAttempt(
                    query_pass, True, len(items), self._elapsed_ms(loop, pass_started),
                    note="results found" if items else "no results",
                ))
                logger.info(f"[{site.name}] pass={query_pass.value} items={len(items)}")

            query_pass = self.next_pass(query_pass, len(collected), site.supports_opportunity)

        if timed_out:
            deadline_ms = int(self.config.site_deadline_s * 1000)
            logger.error(f"[{site.name}] site deadline exceeded ({deadline_ms}ms)")
            return SiteResult(
                site=site.name,
                ok=False,
                attempts=attempts,
                error=f"Timeout after {deadline_ms}ms",
            )

        items = score_listings(dedupe(collected, brand=query.brand), query, current_year=self.current_year)
        items = items[:self.config.max_results]
        ok = bool(items) or any(attempt.ok for attempt in attempts)

        logger.info(
            f"[{site.name}] done: ok={ok} items={len(items)} "
            f"passes={len(attempts)} ms={self._elapsed_ms(loop, started)}"
        )
        return SiteResult(
            site=site.name,
            ok=ok,
            items=items,
            attempts=attempts,
            error=None if ok else (attempts[-1].note if attempts else "no pass executed"),
        )

    @staticmethod
    def _elapsed_ms(loop: asyncio.AbstractEventLoop, since: float) -> int:
        return int((loop.time() - since) * 1000)
