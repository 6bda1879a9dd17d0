"""
Listing extraction: strategies, their chain and fragment validation.
"""

from .ai_extractor import AIExtractor, build_relevant_snippet
from .chain import ChainOutcome, ExtractionStrategyChain
from .normalizer import to_listing, within_budget
from .strategies import (
    AIStrategy,
    EmbeddedStateStrategy,
    MarkupPatternStrategy,
    PageContext,
    StructuredStrategy,
)

__all__ = [
    'AIExtractor',
    'AIStrategy',
    'ChainOutcome',
    'EmbeddedStateStrategy',
    'ExtractionStrategyChain',
    'MarkupPatternStrategy',
    'PageContext',
    'StructuredStrategy',
    'build_relevant_snippet',
    'to_listing',
    'within_budget',
]
