"""Logging utilities for multidir commands.

Records emitted inside :func:`tenant_context` carry the tenant id, so the
output of a multi-tenant build can be attributed line by line.
"""

from __future__ import annotations

import logging
from contextlib import contextmanager
from contextvars import ContextVar
from pathlib import Path
from typing import Iterator

_LOGGER_NAME = "multidir"
_NO_TENANT = "-"

_current_tenant: ContextVar[str] = ContextVar("multidir_tenant", default=_NO_TENANT)


class TenantFilter(logging.Filter):
    """Stamp records with ``tenant`` and a ready-made ``tenant_prefix``."""

    def filter(self, record: logging.LogRecord) -> bool:
        tenant = _current_tenant.get()
        record.tenant = tenant
        record.tenant_prefix = "" if tenant == _NO_TENANT else f"[{tenant}] "
        return True


def get_logger(name: str | None = None) -> logging.Logger:
    """Return a module-scoped logger under the multidir hierarchy."""
    full_name = f"{_LOGGER_NAME}.{name}" if name else _LOGGER_NAME
    return logging.getLogger(full_name)


@contextmanager
def tenant_context(tenant_id: str) -> Iterator[None]:
    """Attribute every record logged in this block to ``tenant_id``."""
    token = _current_tenant.set(tenant_id)
    try:
        yield
    finally:
        _current_tenant.reset(token)


def configure_logging(
    *, verbose: bool = False, log_file: Path | None = None
) -> logging.Logger:
    """Configure the multidir logger with console output and optional file sink."""
    level = logging.DEBUG if verbose else logging.INFO
    logger = logging.getLogger(_LOGGER_NAME)
    logger.setLevel(level)
    logger.propagate = False

    # Reset handlers so repeated CLI invocations in one process do not duplicate output.
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()

    stream_handler = logging.StreamHandler()
    stream_handler.setLevel(level)
    stream_handler.addFilter(TenantFilter())
    stream_handler.setFormatter(
        logging.Formatter("[multidir] %(levelname)s %(tenant_prefix)s%(message)s")
    )
    logger.addHandler(stream_handler)

    if log_file is not None:
        log_file.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.FileHandler(log_file, encoding="utf-8")
        file_handler.setLevel(level)
        file_handler.addFilter(TenantFilter())
        file_handler.setFormatter(
            logging.Formatter("%(asctime)s %(levelname)s %(name)s %(tenant)s: %(message)s")
        )
        logger.addHandler(file_handler)

    return logger


__all__ = ["TenantFilter", "configure_logging", "get_logger", "tenant_context"]
