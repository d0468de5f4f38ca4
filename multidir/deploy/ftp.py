"""FTP upload, one file at a time."""

from __future__ import annotations

import ftplib
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Set

from ..models import Directory
from .base import Deployer, DeployError, iter_files, join_remote

FTPFactory = Callable[[str, int, float], ftplib.FTP]


def _connect(host: str, port: int, timeout: float) -> ftplib.FTP:
    ftp = ftplib.FTP(timeout=timeout)
    ftp.connect(host, port)
    return ftp


class FTPDeployer(Deployer):
    """Uploads the tenant tree to ``ftp.path`` on ``ftp.host``.

    Expects ``deployment.ftp`` with ``host``, ``user``, ``path`` and
    ``password`` (or ``FTP_PASSWORD`` in the environment).
    """

    method = "ftp"
    required_keys = ("host", "user")

    def __init__(self, *, connect: FTPFactory | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._connect = connect or _connect

    def publish(self, tenant: Directory, build_path: Path, config: Dict[str, Any]) -> Optional[str]:
        remote_root = str(config.get("path") or "/")
        port = int(config.get("port") or 21)
        password = self._secret(config, "password", "FTP_PASSWORD") or ""
        try:
            ftp = self._connect(str(config["host"]), port, float(config.get("timeout") or 30))
        except (OSError, ftplib.Error) as exc:
            raise DeployError(f"FTP connection error: {exc}") from exc
        try:
            ftp.login(str(config["user"]), password)
            created: Set[str] = set()
            self._ensure_dir(ftp, remote_root, created)
            count = 0
            for path, relative in iter_files(build_path):
                remote = _absolute(join_remote(remote_root, relative), remote_root)
                parent = remote.rsplit("/", 1)[0] if "/" in remote else ""
                if parent:
                    self._ensure_dir(ftp, parent, created)
                with path.open("rb") as handle:
                    ftp.storbinary(f"STOR {remote}", handle)
                count += 1
        except (OSError, ftplib.Error) as exc:
            raise DeployError(f"FTP upload failed: {exc}") from exc
        finally:
            try:
                ftp.quit()
            except (OSError, ftplib.Error):
                ftp.close()
        self.logger.info("Uploaded %d file(s) for %s", count, tenant.id)
        return f"ftp://{config['host']}/{remote_root.strip('/')}"

    def _ensure_dir(self, ftp: ftplib.FTP, remote_dir: str, created: Set[str]) -> None:
        absolute = remote_dir.startswith("/")
        current = ""
        for part in remote_dir.strip("/").split("/"):
            if not part:
                continue
            current = f"{current}/{part}" if current else part
            target = f"/{current}" if absolute else current
            if target in created:
                continue
            try:
                ftp.mkd(target)
            except ftplib.error_perm as exc:
                # 550: already exists
                if not str(exc).startswith("550"):
                    raise
            created.add(target)


def _absolute(remote: str, remote_root: str) -> str:
    if remote_root.startswith("/") and not remote.startswith("/"):
        return f"/{remote}"
    return remote


__all__ = ["FTPDeployer"]
