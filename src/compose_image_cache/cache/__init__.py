"""Cache key derivation and cache store access."""

from .keys import derive_key_set, generate_cache_key, generate_cache_key_prefix
from .store import CacheStore, CacheStoreGateway, DirectoryCacheStore

__all__ = [
    "CacheStore",
    "CacheStoreGateway",
    "DirectoryCacheStore",
    "derive_key_set",
    "generate_cache_key",
    "generate_cache_key_prefix",
]
