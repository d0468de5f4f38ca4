from __future__ import annotations

from pathlib import Path
from typing import Iterator

import pytest

from multidir.backend import NocoDBClient
from multidir.config import Settings, load_settings
from multidir.stores import TTLCache
from tests._fixtures.nocodb import API_URL, FakeNocoDB, hangup_server


@pytest.fixture
def fake_nocodb() -> FakeNocoDB:
    return FakeNocoDB()


@pytest.fixture
def cache() -> TTLCache:
    return TTLCache()


@pytest.fixture
def nocodb_client(fake_nocodb: FakeNocoDB, cache: TTLCache) -> NocoDBClient:
    return NocoDBClient(API_URL, "token-123", cache, transport=fake_nocodb)


@pytest.fixture
def make_settings(tmp_path: Path):
    def _make(config: str | None = None, **env: str) -> Settings:
        if config is not None:
            (tmp_path / ".multidir.yml").write_text(config, encoding="utf-8")
        return load_settings(tmp_path, env=env)

    return _make


@pytest.fixture
def hangup_url() -> Iterator[str]:
    with hangup_server() as url:
        yield url
