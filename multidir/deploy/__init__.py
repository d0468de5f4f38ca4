"""Deployment drivers for built tenant sites."""

from .base import CONTENT_TYPES, DeployError, Deployer, content_type_for
from .runner import DEPLOYERS, DeployReport, deploy_all, get_deployer

__all__ = [
    "CONTENT_TYPES",
    "DEPLOYERS",
    "DeployError",
    "DeployReport",
    "Deployer",
    "content_type_for",
    "deploy_all",
    "get_deployer",
]
