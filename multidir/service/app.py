"""FastAPI application for the multidir runtime API and static edge."""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Dict, Optional, TypeVar

from fastapi import FastAPI, Header, Query, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from .. import __version__
from ..backend import BackendError, NocoDBClient
from ..config import ConfigError, Settings, load_settings
from ..logging import get_logger
from ..models import VALID_LAYOUTS
from ..routing import (
    PatternError,
    build_filters_from_segments,
    determine_page_type,
    generate_breadcrumbs,
    parse_url_to_segments,
)
from ..stores import TTLCache
from .edge import CORS_HEADERS, SiteRouter, install_edge
from .webhook import (
    DispatchError,
    RebuildTrigger,
    WebhookAuthError,
    WebhookHandler,
    verify_secret,
)

T = TypeVar("T")

CONFIG_MISSING = "API configuration is missing"
LISTING_VIEWS = ("featured", "recent")


class HealthResponse(BaseModel):
    status: str
    version: str


class ApiError(Exception):
    """Error carried to the JSON error handler with its HTTP status."""

    def __init__(self, status: int, message: str, error: Optional[str] = None) -> None:
        super().__init__(message)
        self.status = status
        self.message = message
        self.error = error


def create_app(
    settings: Settings | None = None,
    *,
    client_factory: Callable[[], NocoDBClient] | None = None,
    trigger: RebuildTrigger | None = None,
    site_router: SiteRouter | None = None,
) -> FastAPI:
    """Create the FastAPI application serving the API and the build output."""

    settings = settings or load_settings()
    logger = get_logger("service")
    cache = TTLCache()
    clients: Dict[str, NocoDBClient] = {}

    def default_client() -> NocoDBClient:
        # One client per app so webhook invalidation reaches the cache the API reads from.
        if "default" not in clients:
            clients["default"] = NocoDBClient.from_settings(settings.backend, cache)
        return clients["default"]

    make_client = client_factory or default_client
    rebuild = trigger or RebuildTrigger.from_settings(settings.service)
    router = site_router or SiteRouter(settings.build.output_dir, settings.routing)

    app = FastAPI(title="multidir", version=__version__)

    def get_client() -> NocoDBClient:
        try:
            return make_client()
        except ConfigError as exc:
            raise ApiError(500, CONFIG_MISSING, str(exc)) from exc

    async def run(func: Callable[[], T]) -> T:
        loop = asyncio.get_running_loop()
        return await loop.run_in_executor(None, func)

    @app.get("/health", response_model=HealthResponse)
    async def health() -> HealthResponse:
        return HealthResponse(status="ok", version=__version__)

    @app.get("/api/directory")
    async def directory(directory_id: Optional[str] = Query(None, alias="id")) -> Dict[str, Any]:
        if not directory_id:
            raise ApiError(400, "Directory ID is required")
        client = get_client()
        tenant = await run(lambda: client.get_tenant(directory_id))
        if tenant is None:
            raise ApiError(404, f"Directory not found: {directory_id}")
        return {"success": True, "data": tenant.to_dict()}

    @app.get("/api/listings")
    async def listings(
        directory: Optional[str] = Query(None),
        view: Optional[str] = Query(None),
        related: Optional[str] = Query(None),
        limit: Optional[int] = Query(None, ge=1),
    ) -> Dict[str, Any]:
        if not directory:
            raise ApiError(400, "Directory ID is required")
        if view and view not in LISTING_VIEWS:
            raise ApiError(
                400, f"Invalid view: {view}. Valid views are: {', '.join(LISTING_VIEWS)}"
            )
        client = get_client()
        if related:
            listing = await run(lambda: client.get_listing(directory, related))
            if listing is None:
                raise ApiError(404, f"Listing not found: {related}")
            items = await run(lambda: client.related_listings(directory, listing, limit or 3))
        elif view == "featured":
            items = await run(lambda: client.list_featured_listings(directory, limit or 6))
        elif view == "recent":
            items = await run(lambda: client.list_recent_listings(directory, limit or 4))
        else:
            items = await run(lambda: client.list_listings(directory))
            if limit:
                items = items[:limit]
        return {"success": True, "data": [item.to_dict() for item in items]}

    @app.get("/api/search")
    async def search(
        directory: Optional[str] = Query(None),
        q: Optional[str] = Query(None),
    ) -> Dict[str, Any]:
        client = get_client()
        if not directory:
            raise ApiError(400, "Directory ID is required")
        if not q or not q.strip():
            return {"success": True, "results": []}
        items = await run(lambda: client.search_listings(directory, q))
        return {"success": True, "results": [item.to_dict() for item in items]}

    @app.get("/api/render-layout")
    async def render_layout(
        layout: Optional[str] = Query(None),
        directory: Optional[str] = Query(None),
    ) -> Dict[str, Any]:
        if not layout or not directory:
            raise ApiError(400, "Missing required parameters: layout and directory are required")
        if layout not in VALID_LAYOUTS:
            raise ApiError(
                400,
                f"Invalid layout: {layout}. Valid layouts are: {', '.join(VALID_LAYOUTS)}",
            )
        client = get_client()
        tenant = await run(lambda: client.get_tenant(directory))
        if tenant is None:
            raise ApiError(404, f"Directory not found: {directory}")
        items = await run(lambda: client.list_listings(directory))
        return {
            "success": True,
            "data": {
                "layout": layout,
                "listings": [item.to_dict() for item in items],
                "directory": tenant.to_dict(),
                "categories": [category.to_dict() for category in tenant.categories],
            },
        }

    @app.get("/api/resolve")
    async def resolve(
        directory: Optional[str] = Query(None),
        path: str = Query(""),
    ) -> Dict[str, Any]:
        if not directory:
            raise ApiError(400, "Directory ID is required")
        pattern = settings.url.pattern
        try:
            segments = parse_url_to_segments(path, pattern)
        except PatternError as exc:
            raise ApiError(404, f"No page matches {path}", str(exc)) from exc
        breadcrumbs = generate_breadcrumbs(path, pattern, settings.url.segments, directory)
        return {
            "success": True,
            "data": {
                "pageType": determine_page_type(segments, pattern),
                "segments": segments,
                "filters": build_filters_from_segments(segments, settings.url.segments),
                "breadcrumbs": [crumb.to_dict() for crumb in breadcrumbs],
            },
        }

    @app.post("/api/webhook")
    async def webhook(
        request: Request,
        x_webhook_secret: Optional[str] = Header(None),
    ) -> Dict[str, Any]:
        try:
            payload = await request.json()
        except ValueError as exc:
            raise ApiError(400, "Webhook body must be JSON", str(exc)) from exc
        if not isinstance(payload, dict):
            raise ApiError(400, "Webhook body must be a JSON object")
        verify_secret(settings.service.webhook_secret, x_webhook_secret, payload)
        handler = WebhookHandler(get_client(), rebuild, secret=settings.service.webhook_secret)
        return await run(lambda: handler.handle(payload, x_webhook_secret))

    @app.exception_handler(ApiError)
    async def api_error_handler(_: Any, exc: ApiError) -> JSONResponse:
        return _error_response(exc.status, exc.message, exc.error)

    @app.exception_handler(WebhookAuthError)
    async def webhook_auth_handler(_: Any, exc: WebhookAuthError) -> JSONResponse:
        return _error_response(401, "Unauthorized", str(exc))

    @app.exception_handler(BackendError)
    async def backend_error_handler(_: Any, exc: BackendError) -> JSONResponse:
        logger.error("Backend request failed: %s", exc)
        return _error_response(502, "Error fetching data from the backend", str(exc))

    @app.exception_handler(DispatchError)
    async def dispatch_error_handler(_: Any, exc: DispatchError) -> JSONResponse:
        logger.error("Rebuild trigger failed: %s", exc)
        return _error_response(500, "Error processing webhook", str(exc))

    @app.exception_handler(Exception)
    async def unexpected_error_handler(_: Any, exc: Exception) -> JSONResponse:
        logger.exception("Unhandled error while serving request")
        return _error_response(500, "Internal server error", str(exc))

    install_edge(app, router)
    return app


def run_service(
    settings: Settings | None = None,
    *,
    host: Optional[str] = None,
    port: Optional[int] = None,
) -> None:  # pragma: no cover - integration path
    try:
        import uvicorn
    except ModuleNotFoundError as exc:
        raise RuntimeError(
            "uvicorn is required to run the service. Install it with `pip install uvicorn`."
        ) from exc

    settings = settings or load_settings()
    app = create_app(settings)
    uvicorn.run(
        app,
        host=host or settings.service.host,
        port=port or settings.service.port,
    )


def _error_response(status: int, message: str, error: Optional[str] = None) -> JSONResponse:
    content: Dict[str, Any] = {"success": False, "message": message}
    if error:
        content["error"] = error
    return JSONResponse(status_code=status, content=content, headers=CORS_HEADERS)


__all__ = ["ApiError", "HealthResponse", "create_app", "run_service"]
