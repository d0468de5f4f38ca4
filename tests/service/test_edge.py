"""Tests for static routing of the build output."""

from __future__ import annotations

import json
from pathlib import Path

import pytest

from multidir.config import RoutingSettings
from multidir.service import SiteRouter


def _write(path: Path, text: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(text, encoding="utf-8")


@pytest.fixture
def dist(tmp_path: Path) -> Path:
    root = tmp_path / "dist"
    _write(root / "directory-selector" / "index.html", "selector")
    _write(root / "404.html", "missing")
    _write(root / "robots.txt", "User-agent: *")
    _write(root / "french-desserts" / "index.html", "desserts home")
    _write(root / "french-desserts" / "about" / "index.html", "about desserts")
    _write(root / "french-desserts" / "contact.html", "contact desserts")
    _write(root / "french-desserts" / "_astro" / "app.js", "console.log('fd')")
    _write(root / "dog-parks-warsaw" / "index.html", "dogs home")
    _write(
        root / "domain-mapping.json",
        json.dumps({"french-desserts.example.com": "french-desserts"}),
    )
    _write(tmp_path / "outside.txt", "secret")
    return root


def test_root_serves_directory_selector(dist: Path) -> None:
    resolved = SiteRouter(dist).resolve("/")

    assert resolved.status == 200
    assert resolved.path == dist / "directory-selector" / "index.html"
    assert resolved.media_type == "text/html; charset=UTF-8"


def test_tenant_paths_resolve_to_index_or_html_files(dist: Path) -> None:
    router = SiteRouter(dist)

    assert router.resolve("/french-desserts").path == dist / "french-desserts" / "index.html"
    assert router.resolve("/french-desserts/about").path == (
        dist / "french-desserts" / "about" / "index.html"
    )
    assert router.resolve("/french-desserts/contact").path == (
        dist / "french-desserts" / "contact.html"
    )


def test_unknown_tenant_gets_not_found_page(dist: Path) -> None:
    resolved = SiteRouter(dist, tenants=["dog-parks-warsaw"]).resolve("/french-desserts/")

    assert resolved.status == 404
    assert resolved.path == dist / "404.html"


def test_custom_domain_serves_tenant_at_root(dist: Path) -> None:
    router = SiteRouter(dist)

    home = router.resolve("/", host="French-Desserts.example.com:443")
    about = router.resolve("/about/", host="french-desserts.example.com")

    assert home.path == dist / "french-desserts" / "index.html"
    assert about.path == dist / "french-desserts" / "about" / "index.html"


def test_configured_domains_layer_over_mapping_file(dist: Path) -> None:
    router = SiteRouter(dist, RoutingSettings(domain_map={"dogs.test": "dog-parks-warsaw"}))

    assert router.domains() == {
        "french-desserts.example.com": "french-desserts",
        "dogs.test": "dog-parks-warsaw",
    }
    assert router.resolve("/", host="dogs.test").path == dist / "dog-parks-warsaw" / "index.html"


def test_root_assets_follow_host_or_referer(dist: Path) -> None:
    router = SiteRouter(dist)
    expected = dist / "french-desserts" / "_astro" / "app.js"

    by_referer = router.resolve(
        "/_astro/app.js", referer="https://dirs.test/french-desserts/about/"
    )
    by_host = router.resolve("/_astro/app.js", host="french-desserts.example.com")

    assert by_referer.path == expected
    assert by_referer.media_type == "application/javascript"
    assert by_host.path == expected
    assert router.resolve("/_astro/app.js").status == 404


def test_rewrite_asset_leaves_prefixed_paths_alone(dist: Path) -> None:
    router = SiteRouter(dist)

    rewritten = router.rewrite_asset("/_astro/a.css", None, "https://x.test/dogs/")
    assert rewritten == "/dogs/_astro/a.css"
    assert router.rewrite_asset("/dogs/_astro/a.css", "dogs", None) == "/dogs/_astro/a.css"
    assert router.rewrite_asset("/style.css", "dogs", None) == "/style.css"
    assert router.rewrite_asset("/_astro/a.css", None, None) == "/_astro/a.css"


def test_root_level_text_files_are_served(dist: Path) -> None:
    resolved = SiteRouter(dist).resolve("/robots.txt")

    assert resolved.path == dist / "robots.txt"
    assert resolved.media_type == "text/plain"


def test_path_traversal_is_refused(dist: Path) -> None:
    resolved = SiteRouter(dist).resolve("/french-desserts/../../outside.txt")

    assert resolved.status == 404
    assert resolved.path == dist / "404.html"


def test_missing_not_found_page_yields_no_path(tmp_path: Path) -> None:
    resolved = SiteRouter(tmp_path).resolve("/nowhere")

    assert resolved.status == 404
    assert resolved.path is None
