from __future__ import annotations

from datetime import datetime, timezone

import pytest

from identity_console.cache import UserCache
from identity_console.config import BackendConfig, CacheConfig, ConsoleConfig

RELAY = "http://relay.test"
FIXED_NOW = datetime(2026, 10, 17, 12, 0, tzinfo=timezone.utc)


@pytest.fixture
def config(tmp_path) -> ConsoleConfig:
    return ConsoleConfig(
        backend=BackendConfig(candidates=[RELAY], discovery_timeout=1.0),
        cache=CacheConfig(path=str(tmp_path / "cache.db")),
    )


@pytest.fixture
def cache(config: ConsoleConfig):
    user_cache = UserCache(config.cache)
    yield user_cache
    user_cache.close()
