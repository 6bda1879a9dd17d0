"""
Error handling module for vehicle scout.

Provides the fetch error taxonomy and the bounded retry policy.
"""

from .error_handler import (
    BlockedPageError,
    ErrorHandler,
    ExtractionError,
    FetchError,
    RetryConfig,
)

__all__ = ['BlockedPageError', 'ErrorHandler', 'ExtractionError', 'FetchError', 'RetryConfig']
