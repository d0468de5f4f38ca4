"""Configuration loading for multidir (.multidir.yml plus environment)."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml
from dotenv import dotenv_values

CONFIG_FILENAME = ".multidir.yml"

DEFAULT_TABLES: Dict[str, str] = {
    "directories": "Directories",
    "listings": "Listings",
    "landing_pages": "Landing Pages",
}

DEFAULT_TENANTS: List[str] = ["french-desserts", "dog-parks-warsaw"]

# Theme used for a tenant known only by id (environment or defaults).
FALLBACK_THEMES: Dict[str, str] = {"french": "elegant", "dog": "nature"}

# Changed-path prefix -> tenant ids or theme names ("all" rebuilds everything).
DEFAULT_DEPENDENCIES: Dict[str, List[str]] = {
    "src/components/core/": ["all"],
    "src/layouts/": ["all"],
    "src/lib/": ["all"],
    "src/utils/": ["all"],
    "src/styles/global.css": ["all"],
    "src/styles/themes/elegant.css": ["elegant"],
    "src/styles/themes/nature.css": ["nature"],
}


class ConfigError(RuntimeError):
    """Raised when configuration is missing or cannot be parsed."""


@dataclass
class BackendSettings:
    """NocoDB connection settings."""

    api_url: Optional[str] = None
    auth_token: Optional[str] = None
    tables: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_TABLES))
    timeout: float = 30.0

    @property
    def configured(self) -> bool:
        return bool(self.api_url and self.auth_token)

    def require(self) -> None:
        missing = []
        if not self.api_url:
            missing.append("NOCODB_API_URL")
        if not self.auth_token:
            missing.append("NOCODB_AUTH_TOKEN")
        if missing:
            raise ConfigError(f"Backend configuration is missing: {', '.join(missing)}")


@dataclass
class BuildSettings:
    """Where the generator runs and where its output lands."""

    output_dir: Path
    public_dir: Path
    content_dir: Path
    generator_command: List[str] = field(
        default_factory=lambda: ["astro", "build", "--outDir", "{out_dir}"]
    )
    dev_command: List[str] = field(default_factory=lambda: ["astro", "dev"])
    site_url: str = "https://example.com"
    current_tenant: Optional[str] = None
    tenant_ids: List[str] = field(default_factory=list)
    default_tenants: List[str] = field(default_factory=lambda: list(DEFAULT_TENANTS))
    dependencies: Dict[str, List[str]] = field(
        default_factory=lambda: {key: list(value) for key, value in DEFAULT_DEPENDENCIES.items()}
    )


@dataclass
class RoutingSettings:
    """Request-time routing options shared by the service and the build artifacts."""

    asset_prefix: str = "/_astro/"
    selector_dir: str = "directory-selector"
    not_found_page: str = "404.html"
    domain_map: Dict[str, str] = field(default_factory=dict)


@dataclass
class UrlPatternSettings:
    """Listing URL template and how each segment is resolved."""

    pattern: str = "{slug}"
    segments: Dict[str, Dict[str, Any]] = field(default_factory=dict)


@dataclass
class ServiceSettings:
    """HTTP service, webhook and rebuild-trigger settings."""

    host: str = "127.0.0.1"
    port: int = 8787
    webhook_secret: Optional[str] = None
    github_token: Optional[str] = None
    github_repo: Optional[str] = None
    dispatch_event: str = "content-update"


@dataclass
class Settings:
    """Effective multidir settings for one process."""

    root: Path
    backend: BackendSettings
    build: BuildSettings
    routing: RoutingSettings = field(default_factory=RoutingSettings)
    url: UrlPatternSettings = field(default_factory=UrlPatternSettings)
    service: ServiceSettings = field(default_factory=ServiceSettings)
    deploy: Dict[str, Dict[str, Any]] = field(default_factory=dict)
    environment: Dict[str, str] = field(default_factory=dict, repr=False)


def load_settings(root: Path | str = ".", env: Mapping[str, str] | None = None) -> Settings:
    """Load settings from ``.multidir.yml`` and the environment.

    When ``env`` is omitted the process environment is used, layered over
    ``.env`` and ``.env.local`` found at the project root (``.env.local``
    wins over ``.env``; real environment variables win over both).
    """
    root_path = Path(root).expanduser().resolve()
    if env is None:
        env = _collect_environment(root_path)

    data = _read_config(root_path / CONFIG_FILENAME)

    backend_data = _as_dict(data.get("backend"))
    tables = dict(DEFAULT_TABLES)
    tables.update({key: str(value) for key, value in _as_dict(backend_data.get("tables")).items()})
    backend = BackendSettings(
        api_url=_first(env.get("NOCODB_API_URL"), _as_str(backend_data.get("api_url"))),
        auth_token=_first(env.get("NOCODB_AUTH_TOKEN"), _as_str(backend_data.get("auth_token"))),
        tables=tables,
        timeout=_as_float(backend_data.get("timeout")) or 30.0,
    )
    if backend.api_url:
        backend.api_url = backend.api_url.rstrip("/")

    build_data = _as_dict(data.get("build"))
    build = BuildSettings(
        output_dir=root_path / (_as_str(build_data.get("output_dir")) or "dist"),
        public_dir=root_path / (_as_str(build_data.get("public_dir")) or "public"),
        content_dir=root_path
        / (_as_str(build_data.get("content_dir")) or "src/content/directories"),
    )
    generator_command = _as_str_list(build_data.get("generator_command"))
    if generator_command:
        build.generator_command = generator_command
    dev_command = _as_str_list(build_data.get("dev_command"))
    if dev_command:
        build.dev_command = dev_command
    build.site_url = (
        _first(env.get("SITE_URL"), _as_str(build_data.get("site_url"))) or build.site_url
    ).rstrip("/")
    build.current_tenant = _first(env.get("CURRENT_DIRECTORY"))
    env_tenants = _split_csv(env.get("DIRECTORIES"))
    build.tenant_ids = env_tenants or _as_str_list(build_data.get("tenants"))
    default_tenants = _as_str_list(build_data.get("default_tenants"))
    if default_tenants:
        build.default_tenants = default_tenants
    dependency_data = _as_dict(build_data.get("dependencies"))
    if dependency_data:
        build.dependencies = {
            str(key): _as_str_list(value) for key, value in dependency_data.items()
        }

    routing_data = _as_dict(data.get("routing"))
    routing = RoutingSettings()
    routing.asset_prefix = _normalise_prefix(
        _as_str(routing_data.get("asset_prefix")) or routing.asset_prefix
    )
    routing.selector_dir = _as_str(routing_data.get("selector_dir")) or routing.selector_dir
    routing.not_found_page = (
        _as_str(routing_data.get("not_found_page")) or routing.not_found_page
    )
    routing.domain_map = {
        str(key): str(value) for key, value in _as_dict(routing_data.get("domains")).items()
    }

    url_data = _as_dict(data.get("url_pattern"))
    url = UrlPatternSettings()
    url.pattern = _as_str(url_data.get("pattern")) or url.pattern
    url.segments = {
        str(key): dict(value)
        for key, value in _as_dict(url_data.get("segments")).items()
        if isinstance(value, dict)
    }

    service_data = _as_dict(data.get("service"))
    service = ServiceSettings(
        host=_as_str(service_data.get("host")) or "127.0.0.1",
        port=_as_int(service_data.get("port")) or 8787,
        webhook_secret=_first(
            env.get("WEBHOOK_SECRET"), _as_str(service_data.get("webhook_secret"))
        ),
        github_token=_first(env.get("GITHUB_TOKEN")),
        github_repo=_first(env.get("GITHUB_REPO"), _as_str(service_data.get("github_repo"))),
        dispatch_event=_as_str(service_data.get("dispatch_event")) or "content-update",
    )

    return Settings(
        root=root_path,
        backend=backend,
        build=build,
        routing=routing,
        url=url,
        service=service,
        deploy={
            str(key): dict(value)
            for key, value in _as_dict(data.get("deploy")).items()
            if isinstance(value, dict)
        },
        environment=dict(env),
    )


def _collect_environment(root: Path) -> Dict[str, str]:
    merged: Dict[str, str] = {}
    for name in (".env", ".env.local"):
        path = root / name
        if path.exists():
            merged.update({key: value for key, value in dotenv_values(path).items() if value is not None})
    merged.update(os.environ)
    return merged


def _read_config(path: Path) -> Dict[str, Any]:
    if not path.exists():
        return {}
    text = path.read_text(encoding="utf-8")
    if not text.strip():
        return {}
    try:
        loaded = yaml.safe_load(text)
    except yaml.YAMLError as exc:
        raise ConfigError(f"Failed to parse {path.name}: {exc}") from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigError(f"{path.name} must contain a mapping at the root")
    return loaded


def _normalise_prefix(prefix: str) -> str:
    cleaned = "/" + prefix.strip("/") + "/"
    return cleaned


def _first(*values: Optional[str]) -> Optional[str]:
    for value in values:
        if value is not None and str(value).strip():
            return str(value).strip()
    return None


def _split_csv(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def _as_dict(value: Any) -> Dict[str, Any]:
    return value if isinstance(value, dict) else {}


def _as_str(value: Any) -> Optional[str]:
    return str(value) if isinstance(value, (str, int, float, bool)) else None


def _as_float(value: Any) -> Optional[float]:
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return None
    return None


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, int) and not isinstance(value, bool):
        return value
    if isinstance(value, str):
        try:
            return int(value)
        except ValueError:
            return None
    return None


def _as_str_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, str):
        return [value]
    if isinstance(value, Sequence):
        return [str(item) for item in value if isinstance(item, (str, int, float, bool))]
    return []


__all__ = [
    "BackendSettings",
    "BuildSettings",
    "ConfigError",
    "DEFAULT_DEPENDENCIES",
    "DEFAULT_TABLES",
    "DEFAULT_TENANTS",
    "FALLBACK_THEMES",
    "RoutingSettings",
    "ServiceSettings",
    "Settings",
    "UrlPatternSettings",
    "load_settings",
]
