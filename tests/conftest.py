import pytest

from localfy.services.local_cache import BusinessCacheStore, MemoryKeyValueStorage


@pytest.fixture
def storage() -> MemoryKeyValueStorage:
    return MemoryKeyValueStorage()


@pytest.fixture
def cache_store(storage: MemoryKeyValueStorage) -> BusinessCacheStore:
    return BusinessCacheStore(storage, validity_seconds=300)
