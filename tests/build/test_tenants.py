"""Tests for tenant enumeration and its fallbacks."""

from __future__ import annotations

from typing import Callable

import pytest

from multidir.backend import BackendError, NocoDBClient
from multidir.build import TenantResolver
from multidir.config import ConfigError, Settings
from multidir.stores import TTLCache
from tests._fixtures.nocodb import FakeNocoDB


def test_backend_tenants_win(
    make_settings: Callable[..., Settings], nocodb_client: NocoDBClient
) -> None:
    tenant_set = TenantResolver(make_settings(DIRECTORIES="other"), nocodb_client).resolve()

    assert tenant_set.source == "backend"
    assert tenant_set.ids == ["french-desserts", "dog-parks-warsaw"]
    assert tenant_set.get("french-desserts").theme == "elegant"  # type: ignore[union-attr]


def test_environment_list_used_when_backend_fails(
    make_settings: Callable[..., Settings],
    nocodb_client: NocoDBClient,
    fake_nocodb: FakeNocoDB,
) -> None:
    fake_nocodb.fail_with = BackendError("down")

    tenant_set = TenantResolver(
        make_settings(DIRECTORIES="french-bakeries,dog-groomers"), nocodb_client
    ).resolve()

    assert tenant_set.source == "environment"
    assert [(tenant.id, tenant.theme) for tenant in tenant_set.tenants] == [
        ("french-bakeries", "elegant"),
        ("dog-groomers", "nature"),
    ]
    assert tenant_set.tenants[0].name == "French Bakeries"


def test_content_files_used_without_backend(make_settings: Callable[..., Settings]) -> None:
    settings = make_settings()
    content = settings.build.content_dir
    content.mkdir(parents=True)
    (content / "cat-cafes.yml").write_text(
        "name: Cat Cafes\ndomain: cats.test\ntheme: cozy\n", encoding="utf-8"
    )
    (content / "broken.yml").write_text("name: [unclosed\n", encoding="utf-8")
    (content / "notes.txt").write_text("ignored", encoding="utf-8")

    tenant_set = TenantResolver(settings).resolve()

    assert tenant_set.source == "content"
    assert tenant_set.ids == ["cat-cafes"]
    assert tenant_set.tenants[0].domain == "cats.test"
    assert tenant_set.tenants[0].theme == "cozy"


def test_defaults_are_the_last_resort(make_settings: Callable[..., Settings]) -> None:
    tenant_set = TenantResolver(make_settings()).resolve()

    assert tenant_set.source == "defaults"
    assert tenant_set.ids == ["french-desserts", "dog-parks-warsaw"]


def test_get_unknown_tenant_raises(make_settings: Callable[..., Settings]) -> None:
    resolver = TenantResolver(make_settings())

    assert resolver.get("dog-parks-warsaw").id == "dog-parks-warsaw"
    with pytest.raises(ConfigError):
        resolver.get("ghost")


def test_defaults_used_when_backend_drops_the_connection(
    make_settings: Callable[..., Settings], hangup_url: str
) -> None:
    client = NocoDBClient(hangup_url, "t", TTLCache(), timeout=5)

    tenant_set = TenantResolver(make_settings(), client).resolve()

    assert tenant_set.source == "defaults"
    assert tenant_set.ids == ["french-desserts", "dog-parks-warsaw"]
