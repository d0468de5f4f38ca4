"""Shared pieces of the deployment drivers."""

from __future__ import annotations

import os
from pathlib import Path
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple

from ..logging import get_logger
from ..models import DeployResult, Directory

CONTENT_TYPES: Dict[str, str] = {
    ".html": "text/html",
    ".css": "text/css",
    ".js": "application/javascript",
    ".json": "application/json",
    ".png": "image/png",
    ".jpg": "image/jpeg",
    ".jpeg": "image/jpeg",
    ".svg": "image/svg+xml",
    ".xml": "application/xml",
    ".txt": "text/plain",
}
DEFAULT_CONTENT_TYPE = "application/octet-stream"


class DeployError(RuntimeError):
    """Raised when a tenant cannot be published."""


def content_type_for(path: Path | str) -> str:
    return CONTENT_TYPES.get(Path(path).suffix.lower(), DEFAULT_CONTENT_TYPE)


def iter_files(root: Path) -> Iterator[Tuple[Path, str]]:
    """Yield ``(path, relative posix path)`` for every file under ``root``."""
    for path in sorted(root.rglob("*")):
        if path.is_file():
            yield path, path.relative_to(root).as_posix()


def join_remote(prefix: str, relative: str) -> str:
    prefix = prefix.strip("/")
    return f"{prefix}/{relative}" if prefix else relative


class Deployer:
    """Publishes one tenant's build output.

    Subclasses set ``method`` and implement :meth:`publish`, which may
    return a short description of the output (a path or URL).
    """

    method = ""
    required_keys: Tuple[str, ...] = ()

    def __init__(
        self,
        *,
        defaults: Mapping[str, Any] | None = None,
        env: Mapping[str, str] | None = None,
    ) -> None:
        self.defaults = dict(defaults or {})
        self.env = os.environ if env is None else env
        self.logger = get_logger(f"deploy.{self.method}")

    def deploy(self, tenant: Directory, build_path: Path) -> DeployResult:
        config = self.config_for(tenant)
        self.logger.info("Deploying %s to %s via %s", tenant.id, tenant.domain or "-", self.method)
        output = self.publish(tenant, build_path, config)
        return DeployResult(
            tenant_id=tenant.id,
            method=self.method,
            success=True,
            domain=tenant.domain,
            output=output,
        )

    def config_for(self, tenant: Directory) -> Dict[str, Any]:
        """Merge the tenant's driver section over project-wide defaults."""
        config = dict(self.defaults)
        section = tenant.deployment.get(self.method)
        if isinstance(section, dict):
            config.update(section)
        if not self.required_keys:
            return config
        missing = [key for key in self.required_keys if not config.get(key)]
        if missing:
            raise DeployError(
                f"Missing {self.method.upper()} configuration for {tenant.id}: {', '.join(missing)}"
            )
        return config

    def publish(self, tenant: Directory, build_path: Path, config: Dict[str, Any]) -> Optional[str]:
        raise NotImplementedError

    def _secret(self, config: Mapping[str, Any], key: str, env_name: str) -> Optional[str]:
        value = config.get(key) or self.env.get(env_name)
        return str(value) if value else None


__all__ = [
    "CONTENT_TYPES",
    "DeployError",
    "Deployer",
    "content_type_for",
    "iter_files",
    "join_remote",
]
