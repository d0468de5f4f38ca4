"""rsync over SSH."""

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, List, Optional

from ..models import Directory
from .base import Deployer, DeployError

Runner = Callable[..., None]


class SSHDeployer(Deployer):
    """Mirrors the tenant tree to ``user@host:path`` with ``rsync --delete``."""

    method = "ssh"
    required_keys = ("host", "user", "path")

    def __init__(self, *, runner: Runner | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        self._runner = runner or self._default_runner

    def publish(self, tenant: Directory, build_path: Path, config: Dict[str, Any]) -> Optional[str]:
        target = f"{config['user']}@{config['host']}"
        remote_path = str(config["path"])
        ssh = self._ssh_command(config)

        commands: List[List[str]] = [
            [*ssh, target, f"mkdir -p {remote_path}"],
            [
                "rsync",
                "-av",
                "--delete",
                "-e",
                " ".join(ssh),
                f"{build_path}/",
                f"{target}:{remote_path}",
            ],
        ]
        for args in commands:
            try:
                self._runner(args, cwd=build_path)
            except subprocess.CalledProcessError as exc:
                raise DeployError(f"{args[0]} exited with status {exc.returncode}") from exc
            except OSError as exc:
                raise DeployError(f"Could not run {args[0]}: {exc}") from exc
        return f"{target}:{remote_path}"

    def _ssh_command(self, config: Dict[str, Any]) -> List[str]:
        command = ["ssh"]
        key = config.get("private_key") or config.get("privateKey") or self.env.get("SSH_KEY_PATH")
        if key:
            command.extend(["-i", str(Path(str(key)).expanduser())])
        if config.get("port"):
            command.extend(["-p", str(config["port"])])
        return command

    @staticmethod
    def _default_runner(args: Iterable[str], *, cwd: Path) -> None:
        subprocess.run(list(args), cwd=str(cwd), check=True)


__all__ = ["SSHDeployer"]
