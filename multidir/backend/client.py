"""NocoDB client returning typed directory, listing and landing page models."""

from __future__ import annotations

import json
import re
from http.client import HTTPException
from typing import Any, Callable, Dict, List, Mapping, Optional, Sequence, Tuple
from urllib.error import HTTPError, URLError
from urllib.parse import quote
from urllib.request import Request, urlopen

from ..config import DEFAULT_TABLES, BackendSettings
from ..logging import get_logger
from ..models import Directory, LandingPage, Listing
from ..stores import CACHE_TTL, TTLCache, cached_call
from .conditions import and_, eq, like, or_
from .schema import (
    Renderer,
    decode_directory,
    decode_landing_page,
    decode_listing,
    render_markdown,
)

Transport = Callable[[str, Mapping[str, str], float], Any]

IDENTIFIER_FIELD = "Identifier"
DIRECTORY_FIELD = "Directory Identifier"
PAGE_SIZE = 100
_UNSAFE_QUERY_CHARS = re.compile(r"['\";]")


class BackendError(RuntimeError):
    """Raised when a NocoDB request fails or returns an unusable body."""

    def __init__(self, message: str, *, status: int | None = None, url: str | None = None) -> None:
        super().__init__(message)
        self.status = status
        self.url = url


class NocoDBClient:
    """Fetches records from NocoDB through a shared :class:`TTLCache`.

    Failed requests raise :class:`BackendError` and are never retried;
    callers decide whether to fall back.
    """

    def __init__(
        self,
        base_url: str,
        token: str,
        cache: TTLCache,
        *,
        tables: Mapping[str, str] | None = None,
        timeout: float = 30.0,
        transport: Transport | None = None,
        renderer: Renderer = render_markdown,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self.cache = cache
        self.tables: Dict[str, str] = dict(DEFAULT_TABLES)
        if tables:
            self.tables.update(tables)
        self.timeout = timeout
        self._headers = {"xc-token": token, "Content-Type": "application/json"}
        self._transport = transport or _urllib_transport
        self._renderer = renderer
        self.logger = get_logger("backend")

    @classmethod
    def from_settings(
        cls,
        settings: BackendSettings,
        cache: TTLCache,
        *,
        transport: Transport | None = None,
    ) -> "NocoDBClient":
        settings.require()
        return cls(
            settings.api_url or "",
            settings.auth_token or "",
            cache,
            tables=settings.tables,
            timeout=settings.timeout,
            transport=transport,
        )

    # ------------------------------------------------------------------
    # Directories

    def list_tenants(self) -> List[Directory]:
        records = self._records("directories", CACHE_TTL["directories"])
        tenants: List[Directory] = []
        for record in records:
            try:
                tenants.append(decode_directory(record))
            except ValueError as exc:
                self.logger.warning("Skipping directory record: %s", exc)
        return tenants

    def get_tenant(self, tenant_id: str) -> Optional[Directory]:
        records = self._records(
            "directories",
            CACHE_TTL["directories"],
            where=eq(IDENTIFIER_FIELD, tenant_id),
            limit=1,
        )
        if not records:
            return None
        return decode_directory(records[0])

    # ------------------------------------------------------------------
    # Listings

    def list_listings(self, tenant_id: str) -> List[Listing]:
        return self._listings(eq(DIRECTORY_FIELD, tenant_id), CACHE_TTL["listings"])

    def list_listings_by_category(self, tenant_id: str, category_id: str) -> List[Listing]:
        where = and_(eq(DIRECTORY_FIELD, tenant_id), eq("Category", category_id))
        return self._listings(where, CACHE_TTL["categories"])

    def get_listing(self, tenant_id: str, slug: str) -> Optional[Listing]:
        where = and_(eq(DIRECTORY_FIELD, tenant_id), eq("Slug", slug))
        listings = self._listings(where, CACHE_TTL["listings"], limit=1)
        return listings[0] if listings else None

    def list_featured_listings(self, tenant_id: str, limit: int = 6) -> List[Listing]:
        where = and_(eq(DIRECTORY_FIELD, tenant_id), eq("Featured", "true"))
        return self._listings(where, CACHE_TTL["listings"])[:limit]

    def list_recent_listings(self, tenant_id: str, limit: int = 4) -> List[Listing]:
        listings = self._listings(
            eq(DIRECTORY_FIELD, tenant_id), CACHE_TTL["listings"], sort="-UpdatedAt"
        )
        return listings[:limit]

    def related_listings(self, tenant_id: str, listing: Listing, limit: int = 3) -> List[Listing]:
        """Rank other listings by shared category (+5) and shared tags (+2 each)."""
        scored: List[Tuple[int, int, Listing]] = []
        for index, other in enumerate(self.list_listings(tenant_id)):
            if other.key == listing.key:
                continue
            score = 5 if other.category and other.category == listing.category else 0
            score += 2 * len(set(other.tags) & set(listing.tags))
            scored.append((-score, index, other))
        scored.sort(key=lambda item: (item[0], item[1]))
        return [item[2] for item in scored[:limit]]

    def search_listings(self, tenant_id: str, query: str) -> List[Listing]:
        """Case-insensitive substring search over title, description, tags and address."""
        if not query or not query.strip():
            return []
        sanitized = _UNSAFE_QUERY_CHARS.sub("", query).strip()
        if not sanitized:
            return []

        where = and_(
            eq(DIRECTORY_FIELD, tenant_id),
            or_(
                like("Title", sanitized),
                like("Description", sanitized),
                like("Content", sanitized),
            ),
        )
        key = self._cache_key("listings", {"where": where, "q": sanitized.lower()})

        def _load() -> List[Listing]:
            results: List[Listing] = []
            seen: set[str] = set()
            for listing in self._decode_listings(self._fetch_all("listings", where=where)):
                if listing.key not in seen:
                    seen.add(listing.key)
                    results.append(listing)
            needle = sanitized.lower()
            for listing in self.list_listings(tenant_id):
                if listing.key not in seen and _listing_matches(listing, needle):
                    seen.add(listing.key)
                    results.append(listing)
            return results

        return cached_call(self.cache, key, CACHE_TTL["search"], _load)

    # ------------------------------------------------------------------
    # Landing pages

    def list_landing_pages(self, tenant_id: str) -> List[LandingPage]:
        where = eq(DIRECTORY_FIELD, tenant_id)
        key = self._cache_key("landing_pages", {"where": where})
        return cached_call(
            self.cache,
            key,
            CACHE_TTL["landing_pages"],
            lambda: [
                decode_landing_page(record, renderer=self._renderer)
                for record in self._fetch_all("landing_pages", where=where)
            ],
        )

    # ------------------------------------------------------------------
    # Cache invalidation

    def invalidate(self, table: str | None = None, tenant_id: str | None = None) -> int:
        """Drop cached responses for one table (optionally one tenant) or everything.

        ``table`` may be a logical name (``"listings"``) or a NocoDB table id.
        Returns the number of cache entries removed.
        """
        if table is None:
            return self.cache.clear()
        table_id = self.tables.get(table, table)
        pattern = re.escape(f"/tables/{_encode(table_id)}/")
        if tenant_id and table_id != self.tables["directories"]:
            pattern += ".*" + re.escape(_encode(f",eq,{tenant_id})"))
        removed = self.cache.clear(pattern)
        self.logger.debug("Invalidated %d cache entries for %s", removed, table_id)
        return removed

    def table_key(self, table_id: str) -> Optional[str]:
        """Map a NocoDB table id (or logical name) back to its logical name."""
        if table_id in self.tables:
            return table_id
        for name, identifier in self.tables.items():
            if identifier == table_id:
                return name
        return None

    # ------------------------------------------------------------------
    # Internal helpers

    def _listings(
        self,
        where: str,
        ttl: int,
        *,
        sort: str | None = None,
        limit: int | None = None,
    ) -> List[Listing]:
        params = _params(where=where, sort=sort, limit=limit)
        key = self._cache_key("listings", params)
        return cached_call(
            self.cache,
            key,
            ttl,
            lambda: self._decode_listings(
                self._fetch_all("listings", where=where, sort=sort, limit=limit)
            ),
        )

    def _decode_listings(self, records: Sequence[Mapping[str, Any]]) -> List[Listing]:
        return [decode_listing(record, renderer=self._renderer) for record in records]

    def _records(
        self,
        table: str,
        ttl: int,
        *,
        where: str | None = None,
        limit: int | None = None,
    ) -> List[Dict[str, Any]]:
        params = _params(where=where, limit=limit)
        key = self._cache_key(table, params)
        return cached_call(
            self.cache, key, ttl, lambda: self._fetch_all(table, where=where, limit=limit)
        )

    def _fetch_all(
        self,
        table: str,
        *,
        where: str | None = None,
        sort: str | None = None,
        limit: int | None = None,
    ) -> List[Dict[str, Any]]:
        """Fetch every page of records matching ``where``."""
        page_size = limit or PAGE_SIZE
        offset = 0
        records: List[Dict[str, Any]] = []
        while True:
            params = _params(where=where, sort=sort, limit=page_size)
            if offset:
                params["offset"] = str(offset)
            url = f"{self._table_url(table)}?{_query_string(params)}"
            self.logger.debug("GET %s", url)
            payload = self._transport(url, self._headers, self.timeout)
            if not isinstance(payload, dict):
                raise BackendError("NocoDB returned an unexpected payload", url=url)
            page = payload.get("list")
            if not isinstance(page, list):
                raise BackendError("NocoDB response has no 'list' field", url=url)
            records.extend(item for item in page if isinstance(item, dict))
            if limit is not None or not _has_more(payload, len(page), page_size):
                return records
            offset += len(page)

    def _table_url(self, table: str) -> str:
        return f"{self.base_url}/tables/{_encode(self.tables.get(table, table))}/records"

    def _cache_key(self, table: str, params: Mapping[str, str]) -> str:
        return f"{self._table_url(table)}?{_query_string(params)}"


def _urllib_transport(url: str, headers: Mapping[str, str], timeout: float) -> Any:
    request = Request(url, headers=dict(headers), method="GET")
    try:
        with urlopen(request, timeout=timeout) as response:  # type: ignore[arg-type]
            raw = response.read()
    except HTTPError as exc:
        raise BackendError(
            f"NocoDB API error: {exc.code} {exc.reason}", status=exc.code, url=url
        ) from exc
    except URLError as exc:
        raise BackendError(f"NocoDB request failed: {exc.reason}", url=url) from exc
    except TimeoutError as exc:
        raise BackendError("NocoDB request timed out", url=url) from exc
    except (OSError, HTTPException) as exc:
        # Dropped connections and truncated bodies surface here, after the request was sent.
        raise BackendError(f"NocoDB connection failed: {exc!r}", url=url) from exc
    try:
        return json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, json.JSONDecodeError) as exc:
        raise BackendError("NocoDB returned invalid JSON", url=url) from exc


def _params(
    *, where: str | None = None, sort: str | None = None, limit: int | None = None
) -> Dict[str, str]:
    params: Dict[str, str] = {}
    if where:
        params["where"] = where
    if sort:
        params["sort"] = sort
    if limit is not None:
        params["limit"] = str(limit)
    return params


def _encode(value: str) -> str:
    return quote(value, safe="()~-_.!*'")


def _query_string(params: Mapping[str, str]) -> str:
    return "&".join(f"{_encode(key)}={_encode(value)}" for key, value in params.items())


def _has_more(payload: Mapping[str, Any], received: int, page_size: int) -> bool:
    page_info = payload.get("pageInfo")
    if isinstance(page_info, dict) and "isLastPage" in page_info:
        return not page_info["isLastPage"] and received > 0
    return received >= page_size


def _listing_matches(listing: Listing, needle: str) -> bool:
    haystacks = [listing.title, listing.description, listing.address or ""]
    haystacks.extend(listing.tags)
    return any(needle in text.lower() for text in haystacks if text)


__all__ = ["BackendError", "NocoDBClient", "Transport"]
