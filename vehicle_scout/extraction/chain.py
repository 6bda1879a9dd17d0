"""Ordered extraction strategy chain shared by all sites."""

import logging
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from vehicle_scout.extraction.ai_extractor import AIExtractor
from vehicle_scout.extraction.strategies import (
    AIStrategy,
    EmbeddedStateStrategy,
    ExtractionStrategy,
    MarkupPatternStrategy,
    PageContext,
    StructuredStrategy,
)
from vehicle_scout.models import ExtractionMethod, RawListingFragment

logger = logging.getLogger(__name__)


@dataclass
class ChainOutcome:
    """
    Result of running the chain on one page.

    Attributes:
        fragments: Fragments from the first strategy that produced any
        method: That strategy, None when all came back empty
        fetched: Whether any fetch of the page succeeded
        errors: One message per failed strategy
    """
    fragments: List[RawListingFragment]
    method: Optional[ExtractionMethod] = None
    fetched: bool = False
    errors: List[str] = field(default_factory=list)


class ExtractionStrategyChain:
    """
    Runs strategies in priority order and stops at the first one that yields
    at least one fragment with a title and a URL.

    A failing strategy (exception, block signal, empty result) falls through
    to the next one.
    """

    def __init__(
        self,
        strategies: Optional[Sequence[ExtractionStrategy]] = None,
        ai_extractor: Optional[AIExtractor] = None,
    ):
        if strategies is None:
            strategies = [StructuredStrategy(), EmbeddedStateStrategy(), MarkupPatternStrategy()]
            if ai_extractor is not None:
                strategies.append(AIStrategy(ai_extractor))
        self.strategies = list(strategies)

    async def run(self, context: PageContext) -> ChainOutcome:
        site = context.site.name
        errors = []

        for strategy in self.strategies:
            if not strategy.applies_to(context.site):
                continue

            try:
                fragments = await strategy.extract(context)
            except Exception as e:
                logger.warning(f"[{site}] {strategy.method.value} extraction failed: {type(e).__name__}: {e}")
                errors.append(f"{strategy.method.value}: {e}")
                continue

            usable = [fragment for fragment in fragments if fragment.title and fragment.url]
            if usable:
                logger.info(f"[{site}] {strategy.method.value} extraction: {len(usable)} fragments")
                return ChainOutcome(usable, strategy.method, context.fetched, errors)

            logger.debug(f"[{site}] {strategy.method.value} extraction returned nothing")

        return ChainOutcome([], None, context.fetched, errors)
