"""Tests for logger configuration and per-tenant log context."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Iterator

import pytest

from multidir.logging import configure_logging, get_logger, tenant_context


@pytest.fixture(autouse=True)
def _reset_logging() -> Iterator[None]:
    yield
    logger = logging.getLogger("multidir")
    for handler in list(logger.handlers):
        logger.removeHandler(handler)
        handler.close()
    logger.propagate = True


def test_get_logger_nests_under_package_logger() -> None:
    assert get_logger().name == "multidir"
    assert get_logger("build").name == "multidir.build"


def test_records_carry_the_active_tenant(
    tmp_path: Path, capsys: pytest.CaptureFixture[str]
) -> None:
    log_file = tmp_path / "logs" / "build.log"
    configure_logging(log_file=log_file)
    logger = get_logger("build")

    with tenant_context("french-desserts"):
        logger.info("Building directory")
        with tenant_context("dog-parks-warsaw"):
            logger.info("Nested build")
        logger.info("Back again")
    logger.info("Summary written")

    lines = log_file.read_text(encoding="utf-8").splitlines()
    assert lines[0].endswith("INFO multidir.build french-desserts: Building directory")
    assert lines[1].endswith("INFO multidir.build dog-parks-warsaw: Nested build")
    assert lines[2].endswith("INFO multidir.build french-desserts: Back again")
    assert lines[3].endswith("INFO multidir.build -: Summary written")

    err = capsys.readouterr().err.splitlines()
    assert err[0] == "[multidir] INFO [french-desserts] Building directory"
    assert err[3] == "[multidir] INFO Summary written"


def test_debug_records_only_when_verbose(tmp_path: Path) -> None:
    log_file = tmp_path / "quiet.log"
    configure_logging(log_file=log_file)
    get_logger("deploy").debug("hidden")

    configure_logging(verbose=True, log_file=log_file)
    get_logger("deploy").debug("shown")

    text = log_file.read_text(encoding="utf-8")
    assert "hidden" not in text
    assert "DEBUG multidir.deploy -: shown" in text
