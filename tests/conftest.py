"""Shared test fixtures."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path

import pytest

from feed_archive.storage.database import CacheDatabase
from feed_archive.stores import CacheStores


@pytest.fixture()
def database(tmp_path: Path) -> Iterator[CacheDatabase]:
    cache = CacheDatabase(tmp_path / "cache.db")
    cache.open()
    yield cache
    cache.close()


@pytest.fixture()
def stores(database: CacheDatabase) -> CacheStores:
    return CacheStores.for_database(database)
