"""Process-local stores shared across a build or service run."""

from .ttl_cache import CACHE_TTL, MISSING, TTLCache, cached_call

__all__ = ["CACHE_TTL", "MISSING", "TTLCache", "cached_call"]
