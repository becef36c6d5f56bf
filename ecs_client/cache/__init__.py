"""Configuration cache stores."""

from ecs_client.cache.store import (
    CacheStore,
    FileCacheStore,
    InMemoryCacheStore,
    load_bootstrap_document,
)


__all__ = [
    "CacheStore",
    "FileCacheStore",
    "InMemoryCacheStore",
    "load_bootstrap_document",
]
