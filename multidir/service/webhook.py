"""Content-change webhook: cache invalidation plus a rebuild trigger."""

from __future__ import annotations

import hmac
import json
import urllib.error
import urllib.request
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Mapping, Optional

from ..backend import NocoDBClient
from ..config import ServiceSettings
from ..logging import get_logger

GITHUB_API = "https://api.github.com"
ALL_TENANTS = "all"

# (url, headers, body, timeout) -> HTTP status
Sender = Callable[[str, Mapping[str, str], bytes, float], int]


class WebhookAuthError(PermissionError):
    """Raised when the shared secret is missing or does not match."""


class DispatchError(RuntimeError):
    """Raised when the repository-dispatch call is rejected."""


@dataclass(frozen=True)
class WebhookEvent:
    tenant_id: str
    operation: str
    table: str

    @property
    def scoped(self) -> bool:
        return self.tenant_id != ALL_TENANTS


def parse_webhook(payload: Mapping[str, Any]) -> WebhookEvent:
    """Extract the affected tenant, operation and table from a NocoDB payload.

    The tenant is ``data.directory`` when present, otherwise the prefix of
    a ``tenant/slug`` style ``data.slug``; anything else affects all tenants.
    """
    tenant = ALL_TENANTS
    data = payload.get("data")
    if isinstance(data, Mapping):
        directory = data.get("directory") or data.get("Directory")
        slug = data.get("slug") or data.get("Slug")
        if directory:
            tenant = str(directory)
        elif isinstance(slug, str) and "/" in slug:
            tenant = slug.split("/", 1)[0] or ALL_TENANTS
    operation = payload.get("event") or payload.get("operation") or "unknown"
    table = payload.get("table") or payload.get("model") or ""
    return WebhookEvent(tenant_id=tenant, operation=str(operation), table=str(table))


def verify_secret(
    expected: Optional[str],
    header_secret: Optional[str],
    payload: Mapping[str, Any],
) -> None:
    """Raise :class:`WebhookAuthError` unless the request carries ``expected``.

    No configured secret means every request is accepted.
    """
    if not expected:
        return
    provided = header_secret or payload.get("secret")
    if not isinstance(provided, str) or not hmac.compare_digest(provided, expected):
        raise WebhookAuthError("Invalid webhook secret")


class RebuildTrigger:
    """Asks GitHub Actions to rebuild through a ``repository_dispatch`` event."""

    def __init__(
        self,
        token: Optional[str],
        repo: Optional[str],
        *,
        event_type: str = "content-update",
        timeout: float = 10.0,
        sender: Sender | None = None,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.token = token
        self.repo = repo
        self.event_type = event_type
        self.timeout = timeout
        self._sender = sender or _urllib_sender
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self.logger = get_logger("service.webhook")

    @classmethod
    def from_settings(cls, settings: ServiceSettings, *, sender: Sender | None = None) -> "RebuildTrigger":
        return cls(
            settings.github_token,
            settings.github_repo,
            event_type=settings.dispatch_event,
            sender=sender,
        )

    @property
    def enabled(self) -> bool:
        return bool(self.token and self.repo)

    def trigger(self, event: WebhookEvent) -> None:
        body = {
            "event_type": self.event_type,
            "client_payload": {
                "directory": event.tenant_id,
                "operation": event.operation,
                "table": event.table,
                "timestamp": self._clock().isoformat().replace("+00:00", "Z"),
            },
        }
        url = f"{GITHUB_API}/repos/{self.repo}/dispatches"
        headers = {
            "Authorization": f"token {self.token}",
            "Accept": "application/vnd.github.v3+json",
            "Content-Type": "application/json",
        }
        status = self._sender(url, headers, json.dumps(body).encode("utf-8"), self.timeout)
        if status >= 300:
            raise DispatchError(f"GitHub API error: {status}")
        self.logger.info("Triggered rebuild for %s", event.tenant_id)


class WebhookHandler:
    """Applies one webhook: verify, invalidate cached reads, trigger a rebuild."""

    def __init__(
        self,
        client: NocoDBClient,
        trigger: RebuildTrigger,
        *,
        secret: Optional[str] = None,
    ) -> None:
        self.client = client
        self.trigger = trigger
        self.secret = secret
        self.logger = get_logger("service.webhook")

    def handle(self, payload: Mapping[str, Any], header_secret: Optional[str] = None) -> Dict[str, Any]:
        verify_secret(self.secret, header_secret, payload)
        event = parse_webhook(payload)
        self.logger.info(
            "Webhook for %s (operation=%s, table=%s)",
            event.tenant_id,
            event.operation,
            event.table or "-",
        )

        removed = self._invalidate(event)
        details = {
            "directory": event.tenant_id,
            "operation": event.operation,
            "table": event.table,
            "invalidated": removed,
        }

        if not self.trigger.enabled:
            self.logger.warning("GITHUB_TOKEN or GITHUB_REPO is not set; skipping rebuild trigger")
            return {
                "success": True,
                "message": f"Webhook received for directory: {event.tenant_id}",
                "warning": "GitHub Action not triggered due to missing token",
                "details": details,
            }

        self.trigger.trigger(event)
        return {
            "success": True,
            "message": f"Rebuild triggered for directory: {event.tenant_id}",
            "details": details,
        }

    # ------------------------------------------------------------------
    # Internal helpers

    def _invalidate(self, event: WebhookEvent) -> int:
        table = self.client.table_key(event.table) if event.table else None
        tenant = event.tenant_id if event.scoped else None
        if table is None:
            # Unknown table: every cached read may be stale.
            return self.client.invalidate(tenant_id=None)
        return self.client.invalidate(table, tenant)


def _urllib_sender(url: str, headers: Mapping[str, str], body: bytes, timeout: float) -> int:
    request = urllib.request.Request(url, data=body, headers=dict(headers), method="POST")
    try:
        with urllib.request.urlopen(request, timeout=timeout) as response:
            return int(response.status)
    except urllib.error.HTTPError as exc:
        detail = exc.read().decode("utf-8", "replace")
        raise DispatchError(f"GitHub API error: {exc.code} {exc.reason} - {detail}") from exc
    except urllib.error.URLError as exc:
        raise DispatchError(f"GitHub API unreachable: {exc.reason}") from exc


__all__ = [
    "ALL_TENANTS",
    "DispatchError",
    "RebuildTrigger",
    "WebhookAuthError",
    "WebhookEvent",
    "WebhookHandler",
    "parse_webhook",
    "verify_secret",
]
