"""GitHub Pages publishing through a throwaway git repository."""

from __future__ import annotations

import os
import shutil
import subprocess
import tempfile
from pathlib import Path
from typing import Any, Callable, Dict, Iterable, Optional

from ..models import Directory
from .base import Deployer, DeployError

Runner = Callable[..., str]


class GitHubPagesDeployer(Deployer):
    """Force-pushes the tenant tree to the Pages branch of ``github.repo``.

    The token comes from ``github.token`` or ``GITHUB_TOKEN``. A ``CNAME``
    file is written when the tenant has a domain.
    """

    method = "github"
    required_keys = ("repo",)

    def __init__(
        self,
        *,
        runner: Runner | None = None,
        workdir: Path | str | None = None,
        **kwargs: Any,
    ) -> None:
        super().__init__(**kwargs)
        self._runner = runner or self._default_runner
        self._workdir = Path(workdir) if workdir else None

    def publish(self, tenant: Directory, build_path: Path, config: Dict[str, Any]) -> Optional[str]:
        token = self._secret(config, "token", "GITHUB_TOKEN")
        if not token:
            raise DeployError(f"Missing GITHUB configuration for {tenant.id}: token")
        repo_name = str(config["repo"])
        branch = str(config.get("branch") or "gh-pages")
        user = str(config.get("user") or "multidir")

        if self._workdir is not None:
            self._workdir.mkdir(parents=True, exist_ok=True)
        repo = Path(tempfile.mkdtemp(prefix=f"{tenant.id}-pages-", dir=self._workdir))
        try:
            shutil.copytree(build_path, repo, dirs_exist_ok=True)
            if tenant.domain:
                (repo / "CNAME").write_text(tenant.domain, encoding="utf-8")

            env = os.environ.copy()
            env["GIT_AUTHOR_NAME"] = user
            env["GIT_AUTHOR_EMAIL"] = f"{user}@users.noreply.github.com"
            env["GIT_COMMITTER_NAME"] = env["GIT_AUTHOR_NAME"]
            env["GIT_COMMITTER_EMAIL"] = env["GIT_AUTHOR_EMAIL"]

            remote = f"https://{token}@github.com/{repo_name}.git"
            self._run(["git", "init"], cwd=repo)
            self._run(["git", "remote", "add", "origin", remote], cwd=repo)
            self._run(["git", "add", "--all"], cwd=repo)
            self._run(
                ["git", "commit", "-m", f"Deploy {tenant.id} to GitHub Pages"],
                cwd=repo,
                env=env,
            )
            self._run(["git", "push", "--force", "origin", f"HEAD:{branch}"], cwd=repo)
        finally:
            shutil.rmtree(repo, ignore_errors=True)
        return f"https://github.com/{repo_name}/tree/{branch}"

    # ------------------------------------------------------------------
    # Helpers

    def _run(
        self,
        args: Iterable[str],
        *,
        cwd: Path,
        env: dict[str, str] | None = None,
    ) -> str:
        args = list(args)
        try:
            return self._runner(args, cwd=cwd, env=env)
        except subprocess.CalledProcessError as exc:
            # The remote URL embeds the token; report the subcommand only.
            raise DeployError(f"git {args[1]} exited with status {exc.returncode}") from None
        except OSError as exc:
            raise DeployError(f"Could not run git: {exc}") from exc

    @staticmethod
    def _default_runner(
        args: Iterable[str],
        *,
        cwd: Path,
        env: dict[str, str] | None = None,
    ) -> str:
        completed = subprocess.run(
            list(args),
            cwd=str(cwd),
            env=env,
            check=True,
            text=True,
            capture_output=True,
        )
        return completed.stdout


__all__ = ["GitHubPagesDeployer"]
