"""
Per-site rate limiter.

Each site scraper owns one limiter, so throttling state is never shared
between sites.
"""

import asyncio
import logging
import random
from datetime import datetime, timedelta
from typing import List

from vehicle_scout.error_handling import FetchError

logger = logging.getLogger(__name__)


class RateLimiter:
    """
    Rate limiter that enforces delays between fetches and an hourly page cap.

    Attributes:
        site: Site the limiter belongs to (for logging)
        min_delay_seconds: Minimum delay between fetches in seconds
        max_delay_seconds: Maximum delay between fetches in seconds
        max_pages_per_hour: Maximum number of pages fetched per hour
        request_timestamps: Timestamps of recent fetches
    """

    def __init__(
        self,
        site: str,
        min_delay_seconds: float = 0.0,
        max_delay_seconds: float = 0.0,
        max_pages_per_hour: int = 120
    ):
        self.site = site
        self.min_delay_seconds = min_delay_seconds
        self.max_delay_seconds = max(max_delay_seconds, min_delay_seconds)
        self.max_pages_per_hour = max_pages_per_hour
        self.request_timestamps: List[datetime] = []

    async def acquire(self) -> None:
        """
        Wait for permission to fetch one more page.

        Raises:
            FetchError: If the hourly cap for this site is reached
        """
        if not self.check_hourly_limit():
            logger.warning(f"[{self.site}] Hourly page limit ({self.max_pages_per_hour}) reached")
            raise FetchError(f"rate limit reached for {self.site}")

        if self.request_timestamps and self.max_delay_seconds > 0:
            await asyncio.sleep(self._generate_random_delay())

        self.record_request()

    def check_hourly_limit(self) -> bool:
        """
        Check if the hourly request limit has been reached.

        Returns:
            True if under the limit, False if the limit is reached
        """
        one_hour_ago = datetime.now() - timedelta(hours=1)
        self.request_timestamps = [
            ts for ts in self.request_timestamps if ts > one_hour_ago
        ]
        return len(self.request_timestamps) < self.max_pages_per_hour

    def record_request(self) -> None:
        self.request_timestamps.append(datetime.now())

    def _generate_random_delay(self) -> float:
        return random.uniform(self.min_delay_seconds, self.max_delay_seconds)
