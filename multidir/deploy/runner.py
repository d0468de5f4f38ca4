"""Deploy every tenant's output with one driver."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Sequence, Type

from ..logging import get_logger
from ..models import DeployResult, Directory
from .base import Deployer, DeployError
from .ftp import FTPDeployer
from .gcs import GCSDeployer
from .github import GitHubPagesDeployer
from .manual import ManualDeployer
from .s3 import S3Deployer
from .ssh import SSHDeployer

DEPLOYERS: Dict[str, Type[Deployer]] = {
    "manual": ManualDeployer,
    "ftp": FTPDeployer,
    "ssh": SSHDeployer,
    "s3": S3Deployer,
    "gcs": GCSDeployer,
    "github": GitHubPagesDeployer,
}


@dataclass
class DeployReport:
    method: str
    results: List[DeployResult] = field(default_factory=list)

    @property
    def failed(self) -> List[DeployResult]:
        return [result for result in self.results if not result.success]

    @property
    def exit_code(self) -> int:
        return 1 if self.failed else 0


def get_deployer(method: str, **kwargs: Any) -> Deployer:
    try:
        deployer_cls = DEPLOYERS[method]
    except KeyError:
        raise DeployError(
            f"Unknown deployment method: {method}. Available methods: {', '.join(DEPLOYERS)}"
        ) from None
    return deployer_cls(**kwargs)


def deploy_all(
    method: str,
    tenants: Sequence[Directory],
    output_dir: Path | str,
    *,
    deployer: Deployer | None = None,
    defaults: Mapping[str, Any] | None = None,
    env: Mapping[str, str] | None = None,
) -> DeployReport:
    """Publish each tenant in turn; one failure never stops the others."""
    logger = get_logger("deploy")
    deployer = deployer or get_deployer(method, defaults=(defaults or {}).get(method), env=env)
    root = Path(output_dir)
    report = DeployReport(method=method)
    logger.info("Starting deployment using method: %s", method)

    for tenant in tenants:
        build_path = root / tenant.id
        if not build_path.is_dir():
            logger.error("Build directory for %s not found. Run build first.", tenant.id)
            report.results.append(
                DeployResult(
                    tenant_id=tenant.id,
                    method=method,
                    success=False,
                    domain=tenant.domain,
                    error="Build directory not found",
                )
            )
            continue
        try:
            result = deployer.deploy(tenant, build_path)
        except Exception as exc:
            if logger.isEnabledFor(logging.DEBUG):
                logger.exception("Error deploying %s", tenant.id)
            else:
                logger.error("Error deploying %s: %s", tenant.id, exc)
            result = DeployResult(
                tenant_id=tenant.id,
                method=method,
                success=False,
                domain=tenant.domain,
                error=str(exc) or exc.__class__.__name__,
            )
        report.results.append(result)

    logger.info(
        "Deployed %d directories, %d failed",
        len(report.results) - len(report.failed),
        len(report.failed),
    )
    return report


__all__ = ["DEPLOYERS", "DeployReport", "deploy_all", "get_deployer"]
