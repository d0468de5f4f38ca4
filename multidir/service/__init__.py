"""HTTP service: runtime API, webhook and static edge routing."""

from .app import ApiError, create_app, run_service
from .edge import SiteRouter, install_edge
from .webhook import RebuildTrigger, WebhookHandler, parse_webhook

__all__ = [
    "ApiError",
    "RebuildTrigger",
    "SiteRouter",
    "WebhookHandler",
    "create_app",
    "install_edge",
    "parse_webhook",
    "run_service",
]
