"""Per-tenant site builds and their post-processing."""

from .artifacts import ArtifactWriter
from .assets import copy_shared_assets
from .generator import SiteGenerator
from .orchestrator import BuildOrchestrator, BuildReport
from .repair import OutputRepairer, RepairReport, scan_tenant_dirs
from .selective import DependencyMap, DependencyRule
from .tenants import TenantResolver, TenantSet

__all__ = [
    "ArtifactWriter",
    "BuildOrchestrator",
    "BuildReport",
    "DependencyMap",
    "DependencyRule",
    "OutputRepairer",
    "RepairReport",
    "SiteGenerator",
    "TenantResolver",
    "TenantSet",
    "copy_shared_assets",
    "scan_tenant_dirs",
]
