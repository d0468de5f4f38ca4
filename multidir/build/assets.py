"""Copying of shared ``public/`` assets into tenant output."""

from __future__ import annotations

import shutil
from pathlib import Path
from typing import Iterable, List

from ..logging import get_logger

# Platform rule files are generated per build, never copied from public/.
SKIPPED_NAMES = frozenset({"_headers", "_redirects"})

_LOGGER = get_logger("build.assets")


def copy_shared_assets(
    public_dir: Path | str,
    target_dir: Path | str,
    *,
    skip: Iterable[str] = SKIPPED_NAMES,
) -> List[Path]:
    """Copy ``public_dir`` into ``target_dir`` and return the files written.

    Files the generator already produced are left alone.
    """
    source = Path(public_dir)
    target = Path(target_dir)
    if not source.is_dir():
        _LOGGER.debug("No shared assets at %s", source)
        return []

    skipped = set(skip)
    copied: List[Path] = []
    for path in sorted(source.rglob("*")):
        relative = path.relative_to(source)
        if any(part in skipped for part in relative.parts):
            continue
        destination = target / relative
        if path.is_dir():
            destination.mkdir(parents=True, exist_ok=True)
            continue
        if destination.exists():
            continue
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copy2(path, destination)
        copied.append(destination)
    _LOGGER.debug("Copied %d shared asset(s) into %s", len(copied), target)
    return copied


__all__ = ["SKIPPED_NAMES", "copy_shared_assets"]
