"""Persistent response cache."""

from clai.cache.store import CacheEntry, CacheStats, CacheStore, cache_key, open_cache

__all__ = ["CacheEntry", "CacheStats", "CacheStore", "cache_key", "open_cache"]
