"""Configuration module for the Vehicle Scout engine."""

from .engine_config import (
    ENGINE_CONFIG,
    AIConfig,
    EngineSettings,
    FetchConfig,
    RateLimitConfig,
    SiteConfig,
    get_engine_settings,
)

__all__ = [
    'ENGINE_CONFIG',
    'AIConfig',
    'EngineSettings',
    'FetchConfig',
    'RateLimitConfig',
    'SiteConfig',
    'get_engine_settings',
]
