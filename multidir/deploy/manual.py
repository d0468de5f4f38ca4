"""Zip archive for manual upload."""

from __future__ import annotations

import zipfile
from pathlib import Path
from typing import Any, Dict, Optional

from ..models import Directory
from .base import Deployer, iter_files


class ManualDeployer(Deployer):
    """Packs ``<output>/<tenant>/`` into ``<output>/<tenant>.zip``."""

    method = "manual"

    def publish(self, tenant: Directory, build_path: Path, config: Dict[str, Any]) -> Optional[str]:
        zip_path = build_path.parent / f"{tenant.id}.zip"
        with zipfile.ZipFile(zip_path, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            for path, relative in iter_files(build_path):
                archive.write(path, relative)
        self.logger.info("Created deployment package: %s", zip_path)
        if tenant.domain:
            self.logger.info("Upload it to your hosting provider for %s", tenant.domain)
        return str(zip_path)


__all__ = ["ManualDeployer"]
