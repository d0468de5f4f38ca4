"""Tenant enumeration with fallbacks for an unreachable backend."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from ..backend import BackendError, NocoDBClient
from ..config import FALLBACK_THEMES, ConfigError, Settings
from ..logging import get_logger
from ..models import DEFAULT_PRIMARY_COLOR, DEFAULT_THEME, Directory


@dataclass
class TenantSet:
    """Resolved tenants plus where they came from."""

    tenants: List[Directory]
    source: str

    @property
    def ids(self) -> List[str]:
        return [tenant.id for tenant in self.tenants]

    def get(self, tenant_id: str) -> Optional[Directory]:
        for tenant in self.tenants:
            if tenant.id == tenant_id:
                return tenant
        return None


class TenantResolver:
    """Finds the tenants to build.

    Order of precedence: the backend, the ``DIRECTORIES`` environment
    variable, ``*.yml`` files in the content folder, then the built-in pair.
    """

    def __init__(self, settings: Settings, client: NocoDBClient | None = None) -> None:
        self.settings = settings
        self.client = client
        self.logger = get_logger("build.tenants")

    def resolve(self) -> TenantSet:
        if self.client is not None:
            try:
                tenants = self.client.list_tenants()
            except BackendError as exc:
                self.logger.warning("Falling back from backend tenant list: %s", exc)
            else:
                if tenants:
                    return TenantSet(tenants, "backend")
                self.logger.warning("Backend returned no directories")

        if self.settings.build.tenant_ids:
            return TenantSet(
                [_placeholder(tenant_id) for tenant_id in self.settings.build.tenant_ids],
                "environment",
            )

        from_content = self._from_content_dir(self.settings.build.content_dir)
        if from_content:
            return TenantSet(from_content, "content")

        return TenantSet(
            [_placeholder(tenant_id) for tenant_id in self.settings.build.default_tenants],
            "defaults",
        )

    def get(self, tenant_id: str) -> Directory:
        """Return one tenant or raise :class:`ConfigError` if it is unknown."""
        if self.client is not None:
            try:
                tenant = self.client.get_tenant(tenant_id)
            except BackendError as exc:
                self.logger.warning("Backend lookup for %s failed: %s", tenant_id, exc)
            else:
                if tenant is None:
                    raise ConfigError(f"Unknown directory: {tenant_id}")
                return tenant
        tenant = self.resolve().get(tenant_id)
        if tenant is None:
            raise ConfigError(f"Unknown directory: {tenant_id}")
        return tenant

    # ------------------------------------------------------------------
    # Internal helpers

    def _from_content_dir(self, content_dir: Path) -> List[Directory]:
        if not content_dir.is_dir():
            return []
        tenants: List[Directory] = []
        for path in sorted(content_dir.iterdir()):
            if path.suffix not in {".yml", ".yaml"} or not path.is_file():
                continue
            try:
                data = yaml.safe_load(path.read_text(encoding="utf-8")) or {}
            except (OSError, yaml.YAMLError) as exc:
                self.logger.warning("Skipping %s: %s", path.name, exc)
                continue
            tenants.append(_from_content(path.stem, data if isinstance(data, dict) else {}))
        return tenants


def _placeholder(tenant_id: str) -> Directory:
    theme = DEFAULT_THEME
    for hint, hinted_theme in FALLBACK_THEMES.items():
        if hint in tenant_id:
            theme = hinted_theme
            break
    return Directory(id=tenant_id, name=_title(tenant_id), theme=theme)


def _from_content(tenant_id: str, data: Dict[str, Any]) -> Directory:
    placeholder = _placeholder(tenant_id)
    return Directory(
        id=tenant_id,
        name=str(data.get("name") or placeholder.name),
        description=str(data.get("description") or ""),
        domain=str(data["domain"]) if data.get("domain") else None,
        theme=str(data.get("theme") or placeholder.theme),
        primary_color=str(data.get("primaryColor") or DEFAULT_PRIMARY_COLOR),
    )


def _title(tenant_id: str) -> str:
    return " ".join(word[:1].upper() + word[1:] for word in tenant_id.split("-"))


__all__ = ["TenantResolver", "TenantSet"]
