"""Tests for the build orchestrator."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Callable

import pytest

from multidir.backend import BackendError, NocoDBClient
from multidir.build import BuildOrchestrator, SiteGenerator
from multidir.config import ConfigError, Settings
from multidir.models import BuildStatus
from tests._fixtures.nocodb import FakeNocoDB


class _StubGenerator:
    """Writes a tiny site, nested the way the real generator sometimes does."""

    def __init__(self, failing: tuple[str, ...] = (), nested: bool = False) -> None:
        self.failing = failing
        self.nested = nested
        self.built: list[str] = []

    def build(self, tenant_id: str, out_dir: Path) -> None:
        self.built.append(tenant_id)
        if tenant_id in self.failing:
            raise subprocess.CalledProcessError(1, ["astro", "build"])
        target = out_dir / tenant_id if self.nested else out_dir
        target.mkdir(parents=True, exist_ok=True)
        (target / "index.html").write_text(f"<h1>{tenant_id}</h1>", encoding="utf-8")


@pytest.fixture
def settings(make_settings: Callable[..., Settings]) -> Settings:
    settings = make_settings(
        "url_pattern:\n  pattern: '{category}/{slug}'\n"
        "  segments:\n    category:\n      source: category\n"
    )
    settings.build.public_dir.mkdir(parents=True, exist_ok=True)
    (settings.build.public_dir / "favicon.svg").write_text("<svg/>", encoding="utf-8")
    return settings


def _orchestrator(
    settings: Settings, client: NocoDBClient | None, generator: _StubGenerator
) -> BuildOrchestrator:
    return BuildOrchestrator(settings, client=client, generator=generator)  # type: ignore[arg-type]


def test_build_all_records_failures_and_continues(
    settings: Settings, nocodb_client: NocoDBClient
) -> None:
    generator = _StubGenerator(failing=("dog-parks-warsaw",), nested=True)

    report = _orchestrator(settings, nocodb_client, generator).build_all()

    assert report.source == "backend"
    assert generator.built == ["french-desserts", "dog-parks-warsaw"]
    statuses = {result.tenant_id: result.status for result in report.results}
    assert statuses == {
        "french-desserts": BuildStatus.SUCCESS,
        "dog-parks-warsaw": BuildStatus.FAILED,
    }
    assert report.exit_code == 1
    assert "exit status 1" in (report.failed[0].error or "")

    out = settings.build.output_dir
    assert (out / "french-desserts" / "index.html").exists()
    assert not (out / "french-desserts" / "french-desserts").exists()
    assert (out / "french-desserts" / "favicon.svg").exists()
    assert (out / "french-desserts" / "CNAME").exists()
    sitemap = (out / "french-desserts" / "sitemap.xml").read_text(encoding="utf-8")
    assert "https://french-desserts.example.com/patisserie/macarons-paris" in sitemap
    assert "https://french-desserts.example.com/page/best-macarons" in sitemap
    assert (out / "directory-selector" / "index.html").exists()
    assert "[Failed]" in (out / "index.html").read_text(encoding="utf-8")


def test_build_tenant_builds_only_that_tenant(
    settings: Settings, nocodb_client: NocoDBClient
) -> None:
    generator = _StubGenerator()

    report = _orchestrator(settings, nocodb_client, generator).build_tenant("dog-parks-warsaw")

    assert generator.built == ["dog-parks-warsaw"]
    assert report.success
    assert report.results[0].domain is None


def test_build_tenant_rejects_unknown_tenant(
    settings: Settings, nocodb_client: NocoDBClient
) -> None:
    with pytest.raises(ConfigError, match="Unknown directory: ghost"):
        _orchestrator(settings, nocodb_client, _StubGenerator()).build_tenant("ghost")


def test_invalid_url_pattern_is_a_configuration_error(
    make_settings: Callable[..., Settings],
) -> None:
    settings = make_settings("url_pattern:\n  pattern: '{category}/{category}'\n")

    with pytest.raises(ConfigError, match="Invalid URL pattern"):
        _orchestrator(settings, None, _StubGenerator())


def test_selective_build_uses_theme_dependencies(
    settings: Settings, nocodb_client: NocoDBClient
) -> None:
    generator = _StubGenerator()

    report = _orchestrator(settings, nocodb_client, generator).selective_build(
        None, "src/styles/themes/nature.css"
    )

    assert generator.built == ["dog-parks-warsaw"]
    assert [result.tenant_id for result in report.results] == ["dog-parks-warsaw"]


def test_selective_build_with_explicit_tenant(
    settings: Settings, nocodb_client: NocoDBClient
) -> None:
    generator = _StubGenerator()

    _orchestrator(settings, nocodb_client, generator).selective_build(
        "french-desserts", "src/layouts/Base.astro"
    )

    assert generator.built == ["french-desserts"]


def test_build_falls_back_when_backend_is_down(
    settings: Settings, nocodb_client: NocoDBClient, fake_nocodb: FakeNocoDB
) -> None:
    fake_nocodb.fail_with = BackendError("unreachable")
    generator = _StubGenerator()

    report = _orchestrator(settings, nocodb_client, generator).build_all()

    assert report.source == "defaults"
    assert generator.built == ["french-desserts", "dog-parks-warsaw"]
    assert report.success
    robots = (settings.build.output_dir / "french-desserts" / "robots.txt").read_text(
        encoding="utf-8"
    )
    assert "Sitemap: https://example.com/french-desserts/sitemap.xml" in robots


def test_build_without_backend_uses_environment_tenants(
    make_settings: Callable[..., Settings],
) -> None:
    settings = make_settings(DIRECTORIES="cat-cafes, dog-parks-warsaw")
    generator = _StubGenerator()

    report = BuildOrchestrator.from_settings(settings, generator=generator).build_all()

    assert report.source == "environment"
    assert generator.built == ["cat-cafes", "dog-parks-warsaw"]


def test_site_generator_substitutes_placeholders(tmp_path: Path) -> None:
    calls: list[dict[str, object]] = []

    def runner(args: list[str], *, cwd: Path, env: dict[str, str]) -> None:
        calls.append({"args": args, "cwd": cwd, "env": env})

    generator = SiteGenerator(
        ["astro", "build", "--outDir", "{out_dir}", "--site", "{tenant}"],
        cwd=tmp_path,
        env={"SITE_URL": "https://dirs.test"},
        runner=runner,
    )
    generator.build("french-desserts", tmp_path / "dist" / "french-desserts")
    generator.dev("french-desserts")

    build_call, dev_call = calls
    assert build_call["args"] == [
        "astro",
        "build",
        "--outDir",
        str(tmp_path / "dist" / "french-desserts"),
        "--site",
        "french-desserts",
    ]
    build_env = build_call["env"]
    assert isinstance(build_env, dict)
    assert build_env["CURRENT_DIRECTORY"] == "french-desserts"
    assert build_env["SITE_URL"] == "https://dirs.test"
    dev_env = dev_call["env"]
    assert isinstance(dev_env, dict)
    assert dev_call["args"] == ["astro", "dev"]
    assert dev_env["NODE_ENV"] == "development"
