"""Post-build fixes for generator output.

The generator occasionally writes ``dist/<tenant>/<tenant>/`` instead of
``dist/<tenant>/`` and may leave other tenants' folders inside a tenant's
tree. Repair merges the nested folder up one level without overwriting
anything already present, then removes sibling folders named after other
known tenants. Running it twice with the same tenant set is a no-op.
"""

from __future__ import annotations

import shutil
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Sequence

from ..logging import get_logger

# Top-level output folders that never belong to a tenant.
RESERVED_DIRS: Sequence[str] = ("directory-selector", "functions", "_astro")


@dataclass
class RepairReport:
    """What a repair pass changed for one tenant."""

    tenant_id: str
    flattened: bool = False
    moved: List[str] = field(default_factory=list)
    skipped: List[str] = field(default_factory=list)
    removed: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return self.flattened or bool(self.moved or self.removed)


class OutputRepairer:
    """Repairs one tenant's tree inside ``output_dir``."""

    def __init__(self, output_dir: Path | str) -> None:
        self.output_dir = Path(output_dir)
        self.logger = get_logger("build.repair")

    def repair(self, tenant_id: str, known_tenants: Iterable[str]) -> RepairReport:
        report = RepairReport(tenant_id=tenant_id)
        tenant_dir = self.output_dir / tenant_id
        if not tenant_dir.is_dir():
            self._warn(report, f"{tenant_dir} does not exist, skipping repair")
            return report

        nested = tenant_dir / tenant_id
        if nested.is_dir():
            self.logger.info("Flattening nested output %s", nested)
            self._merge(nested, tenant_dir, tenant_dir, report)
            try:
                shutil.rmtree(nested)
                report.flattened = True
            except OSError as exc:
                self._warn(report, f"Could not remove {nested}: {exc}")

        for other in sorted(set(known_tenants)):
            if other == tenant_id:
                continue
            leaked = tenant_dir / other
            if not leaked.is_dir():
                continue
            try:
                shutil.rmtree(leaked)
            except OSError as exc:
                self._warn(report, f"Could not remove {leaked}: {exc}")
                continue
            report.removed.append(other)
            self.logger.info("Removed %s output leaked into %s", other, tenant_id)

        return report

    # ------------------------------------------------------------------
    # Internal helpers

    def _merge(self, source: Path, target: Path, root: Path, report: RepairReport) -> None:
        for item in sorted(source.iterdir()):
            destination = target / item.name
            relative = destination.relative_to(root).as_posix()
            if item.is_dir() and not item.is_symlink():
                if destination.exists() and not destination.is_dir():
                    report.skipped.append(relative)
                    continue
                try:
                    destination.mkdir(exist_ok=True)
                except OSError as exc:
                    self._warn(report, f"Could not create {destination}: {exc}")
                    continue
                self._merge(item, destination, root, report)
                continue
            if destination.exists():
                # Generator output already at the right place wins.
                report.skipped.append(relative)
                continue
            try:
                shutil.move(str(item), str(destination))
            except OSError as exc:
                self._warn(report, f"Could not move {item}: {exc}")
                continue
            report.moved.append(relative)

    def _warn(self, report: RepairReport, message: str) -> None:
        report.warnings.append(message)
        self.logger.warning(message)


def scan_tenant_dirs(output_dir: Path | str, reserved: Sequence[str] = RESERVED_DIRS) -> List[str]:
    """List tenant folder names found at the top of ``output_dir``."""
    root = Path(output_dir)
    if not root.is_dir():
        return []
    return sorted(
        entry.name
        for entry in root.iterdir()
        if entry.is_dir() and not entry.name.startswith(".") and entry.name not in reserved
    )


__all__ = ["OutputRepairer", "RESERVED_DIRS", "RepairReport", "scan_tenant_dirs"]
