"""Invocation of the external static-site generator."""

from __future__ import annotations

import os
import subprocess
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Mapping, Sequence

from ..config import Settings
from ..logging import get_logger

Runner = Callable[..., None]


class SiteGenerator:
    """Runs the generator command with a tenant-scoped environment.

    Command arguments may contain ``{out_dir}`` and ``{tenant}``
    placeholders. The tenant is also exported as ``CURRENT_DIRECTORY``.
    A failing command raises :class:`subprocess.CalledProcessError`.
    """

    def __init__(
        self,
        command: Sequence[str],
        *,
        cwd: Path | str,
        dev_command: Sequence[str] = ("astro", "dev"),
        env: Mapping[str, str] | None = None,
        runner: Runner | None = None,
    ) -> None:
        self.command = list(command)
        self.dev_command = list(dev_command)
        self.cwd = Path(cwd)
        self.env = dict(env or {})
        self._runner = runner or self._default_runner
        self.logger = get_logger("build.generator")

    @classmethod
    def from_settings(cls, settings: Settings, *, runner: Runner | None = None) -> "SiteGenerator":
        env: Dict[str, str] = dict(settings.environment)
        env["SITE_URL"] = settings.build.site_url
        if settings.backend.api_url:
            env["NOCODB_API_URL"] = settings.backend.api_url
        if settings.backend.auth_token:
            env["NOCODB_AUTH_TOKEN"] = settings.backend.auth_token
        return cls(
            settings.build.generator_command,
            cwd=settings.root,
            dev_command=settings.build.dev_command,
            env=env,
            runner=runner,
        )

    def build(self, tenant_id: str, out_dir: Path | str) -> None:
        args = self._expand(self.command, tenant_id=tenant_id, out_dir=str(out_dir))
        self.logger.info("Running generator for %s: %s", tenant_id, " ".join(args))
        self._runner(args, cwd=self.cwd, env=self._environment(tenant_id))

    def dev(self, tenant_id: str) -> None:
        args = self._expand(self.dev_command, tenant_id=tenant_id, out_dir="")
        self.logger.info("Starting dev server for %s", tenant_id)
        env = self._environment(tenant_id)
        env["NODE_ENV"] = "development"
        self._runner(args, cwd=self.cwd, env=env)

    # ------------------------------------------------------------------
    # Internal helpers

    def _environment(self, tenant_id: str) -> Dict[str, str]:
        env = os.environ.copy()
        env.update(self.env)
        env["CURRENT_DIRECTORY"] = tenant_id
        return env

    @staticmethod
    def _expand(command: Iterable[str], *, tenant_id: str, out_dir: str) -> List[str]:
        return [
            part.replace("{out_dir}", out_dir).replace("{tenant}", tenant_id) for part in command
        ]

    @staticmethod
    def _default_runner(args: Iterable[str], *, cwd: Path, env: Mapping[str, str]) -> None:
        subprocess.run(list(args), cwd=str(cwd), env=dict(env), check=True)


__all__ = ["SiteGenerator"]
