"""NocoDB backend access."""

from .client import BackendError, NocoDBClient
from .schema import find_dangling_categories, render_markdown

__all__ = ["BackendError", "NocoDBClient", "find_dangling_categories", "render_markdown"]
