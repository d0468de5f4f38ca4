"""Static serving of the build output with per-tenant routing.

Requests for ``/<tenant>/...`` are answered from that tenant's folder,
custom domains are served their tenant at the root, and root-level
``/_astro/`` asset requests are pointed at the right tenant using the
Host header or the Referer.
"""

from __future__ import annotations

import mimetypes
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, Iterable, Optional, Set, Tuple
from urllib.parse import urlsplit

from fastapi import FastAPI, Request
from fastapi.responses import FileResponse, PlainTextResponse, Response

from ..build.artifacts import load_domain_mapping
from ..build.repair import scan_tenant_dirs
from ..config import RoutingSettings
from ..logging import get_logger

CORS_HEADERS: Dict[str, str] = {
    "Access-Control-Allow-Origin": "*",
    "Access-Control-Allow-Methods": "GET, POST, OPTIONS",
    "Access-Control-Allow-Headers": "Content-Type, X-Webhook-Secret",
    "Access-Control-Max-Age": "86400",
}

FORCED_TYPES: Dict[str, str] = {
    ".js": "application/javascript",
    ".css": "text/css",
    ".svg": "image/svg+xml",
    ".json": "application/json",
    ".html": "text/html; charset=UTF-8",
}

# Root-level files served without a tenant prefix (robots.txt, sitemap.xml, ...).
ROOT_FILE_SUFFIXES = (".xml", ".txt", ".html")


@dataclass(frozen=True)
class Resolved:
    """Outcome of routing one request path onto the output directory."""

    path: Optional[Path]
    status: int = 200
    media_type: Optional[str] = None


class SiteRouter:
    """Maps request paths onto files under ``root``.

    ``tenants`` is the allowlist of servable tenant folders; when omitted
    the tenant folders present in ``root`` are used. Host names come from
    ``routing.domain_map`` layered over ``domain-mapping.json``.
    """

    def __init__(
        self,
        root: Path | str,
        routing: RoutingSettings | None = None,
        *,
        tenants: Iterable[str] | None = None,
    ) -> None:
        self.root = Path(root)
        self.routing = routing or RoutingSettings()
        self._tenants = set(tenants) if tenants is not None else None
        self.logger = get_logger("service.edge")

    def allowed_tenants(self) -> Set[str]:
        if self._tenants is not None:
            return set(self._tenants)
        return set(scan_tenant_dirs(self.root))

    def domains(self) -> Dict[str, str]:
        mapping = load_domain_mapping(self.root)
        mapping.update(self.routing.domain_map)
        return {host.lower(): tenant for host, tenant in mapping.items()}

    def is_asset(self, path: str) -> bool:
        return path.startswith(self.routing.asset_prefix) or path.endswith((".js", ".css"))

    def rewrite_asset(self, path: str, host_tenant: Optional[str], referer: Optional[str]) -> str:
        """Prefix a root-level asset path with the tenant it belongs to."""
        if not path.startswith(self.routing.asset_prefix):
            return path
        tenant = host_tenant or _referer_tenant(referer)
        if not tenant or path.startswith(f"/{tenant}{self.routing.asset_prefix}"):
            return path
        rewritten = f"/{tenant}{path}"
        self.logger.debug("Rewriting asset path from %s to %s", path, rewritten)
        return rewritten

    def resolve(
        self,
        path: str,
        *,
        host: Optional[str] = None,
        referer: Optional[str] = None,
    ) -> Resolved:
        path = "/" + path.lstrip("/")
        host_tenant = self.domains().get(_host_name(host)) if host else None

        if self.is_asset(path):
            rewritten = self.rewrite_asset(path, host_tenant, referer)
            candidates = [rewritten, path]
            if host_tenant and rewritten == path:
                candidates.insert(0, f"/{host_tenant}{path}")
            for candidate in candidates:
                found = self._file(candidate)
                if found is not None:
                    return Resolved(found, 200, _media_type(found))
            return self._not_found()

        if host_tenant:
            return self._serve(host_tenant, path)

        if path == "/":
            selector = self._file(f"/{self.routing.selector_dir}/index.html")
            return Resolved(selector, 200, _media_type(selector)) if selector else self._not_found()

        tenant, rest = _split_tenant(path)
        if tenant in self.allowed_tenants():
            return self._serve(tenant, rest)
        if not rest.strip("/") and tenant.endswith(ROOT_FILE_SUFFIXES):
            found = self._file(path)
            if found is not None:
                return Resolved(found, 200, _media_type(found))
        return self._not_found()

    # ------------------------------------------------------------------
    # Internal helpers

    def _serve(self, tenant: str, rest: str) -> Resolved:
        base = f"/{tenant}/{rest.lstrip('/')}"
        candidates = [base]
        if base.endswith("/"):
            candidates = [base + "index.html"]
        elif not Path(base).suffix:
            candidates.extend([base + "/index.html", base + ".html"])
        for candidate in candidates:
            found = self._file(candidate)
            if found is not None:
                return Resolved(found, 200, _media_type(found))
        return self._not_found()

    def _not_found(self) -> Resolved:
        page = self._file(f"/{self.routing.not_found_page}")
        return Resolved(page, 404, _media_type(page) if page else None)

    def _file(self, relative: str) -> Optional[Path]:
        root = self.root.resolve()
        target = (root / relative.lstrip("/")).resolve()
        if target != root and root not in target.parents:
            return None
        return target if target.is_file() else None


def install_edge(app: FastAPI, router: SiteRouter) -> None:
    """Register the OPTIONS/header middleware and the catch-all static route.

    Must run after the API routes are registered so ``/api/*`` wins.
    """

    @app.middleware("http")
    async def edge_headers(
        request: Request, call_next: Callable[[Request], Awaitable[Response]]
    ) -> Response:
        if request.method == "OPTIONS":
            return Response(status_code=204, headers=CORS_HEADERS)
        response = await call_next(request)
        path = request.url.path
        if path.startswith("/api/"):
            response.headers.update(CORS_HEADERS)
        forced = _forced_type(path)
        if forced and response.status_code < 400:
            response.headers["content-type"] = forced
        return response

    @app.api_route("/{full_path:path}", methods=["GET", "HEAD"], include_in_schema=False)
    async def serve_static(full_path: str, request: Request) -> Any:
        resolved = router.resolve(
            full_path,
            host=request.headers.get("host"),
            referer=request.headers.get("referer"),
        )
        if resolved.path is None:
            return PlainTextResponse("Not Found", status_code=resolved.status)
        return FileResponse(
            resolved.path, status_code=resolved.status, media_type=resolved.media_type
        )


def _forced_type(path: str) -> Optional[str]:
    if path.endswith("/"):
        return None
    return FORCED_TYPES.get(Path(path).suffix.lower())


def _media_type(path: Path) -> str:
    forced = FORCED_TYPES.get(path.suffix.lower())
    if forced:
        return forced
    guessed, _ = mimetypes.guess_type(path.name)
    return guessed or "application/octet-stream"


def _host_name(host: str) -> str:
    return host.split(":", 1)[0].strip().lower()


def _referer_tenant(referer: Optional[str]) -> Optional[str]:
    if not referer:
        return None
    segments = [part for part in urlsplit(referer).path.split("/") if part]
    return segments[0] if segments else None


def _split_tenant(path: str) -> Tuple[str, str]:
    stripped = path.lstrip("/")
    tenant, _, rest = stripped.partition("/")
    if "/" not in stripped:
        # "/tenant" and "/tenant/" both land on the tenant's index page.
        return tenant, "/"
    return tenant, "/" + rest


__all__ = ["CORS_HEADERS", "Resolved", "SiteRouter", "install_edge"]
