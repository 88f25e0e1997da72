from datetime import timedelta

import pytest

from cfb_reconcile.config.settings import MatchingPolicy
from cfb_reconcile.storage.cache_manager import MemoryCache
from cfb_reconcile.storage.store import ReconciliationStore


@pytest.fixture
def policy() -> MatchingPolicy:
    return MatchingPolicy()


@pytest.fixture
def memory_cache() -> MemoryCache:
    return MemoryCache(default_ttl=timedelta(days=365))


@pytest.fixture
def store(memory_cache) -> ReconciliationStore:
    return ReconciliationStore(memory_cache).load()
