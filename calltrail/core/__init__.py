"""Caching and logging helpers shared across calltrail."""

from calltrail.core.cache import CacheInfo, TtlCache
from calltrail.core.logging import correlation_scope, setup_logging

__all__ = [
    "CacheInfo",
    "TtlCache",
    "correlation_scope",
    "setup_logging",
]
