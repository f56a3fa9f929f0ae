"""Artifact cache backends.

This module provides:
- The CacheBackend capability
- Adapters for cache-util, a local directory and an HTTP object store
- create_cache_backend(): pick an adapter from settings
"""

from __future__ import annotations

from typing import TYPE_CHECKING

from depbuild.cache.base import CacheBackend, safe_key
from depbuild.cache.cache_util import CacheUtilBackend
from depbuild.cache.http import HttpCacheBackend
from depbuild.cache.local import LocalDirectoryCache

if TYPE_CHECKING:
    from depbuild.config import Settings


def create_cache_backend(settings: Settings) -> CacheBackend:
    """Create the cache backend selected by ``settings.cache_backend``.

    Raises:
        ValueError: If the http backend is selected without a cache_url.
    """
    if settings.cache_backend == "local":
        return LocalDirectoryCache(settings.cache_dir)
    if settings.cache_backend == "http":
        if not settings.cache_url:
            raise ValueError("cache_url must be set for the http cache backend")
        return HttpCacheBackend(settings.cache_url, timeout=settings.cache_http_timeout)
    return CacheUtilBackend(settings.cache_util_path)


__all__ = [
    "CacheBackend",
    "CacheUtilBackend",
    "HttpCacheBackend",
    "LocalDirectoryCache",
    "create_cache_backend",
    "safe_key",
]
