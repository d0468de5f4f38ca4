"""Build coordination across tenants."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Iterable, List, Sequence, Tuple

from ..backend import BackendError, NocoDBClient, find_dangling_categories
from ..config import ConfigError, Settings
from ..logging import get_logger, tenant_context
from ..models import BuildResult, BuildStatus, Directory, LandingPage, Listing
from ..routing import PatternError, require_valid_pattern
from ..stores import TTLCache
from .artifacts import ArtifactWriter
from .assets import copy_shared_assets
from .generator import SiteGenerator
from .repair import OutputRepairer, scan_tenant_dirs
from .selective import DependencyMap
from .tenants import TenantResolver, TenantSet

AssetCopier = Callable[[Path, Path], object]


@dataclass
class BuildReport:
    """Results of one build run."""

    results: List[BuildResult] = field(default_factory=list)
    source: str = ""

    @property
    def failed(self) -> List[BuildResult]:
        return [result for result in self.results if not result.success]

    @property
    def success(self) -> bool:
        return not self.failed

    @property
    def exit_code(self) -> int:
        return 0 if self.success else 1


class BuildOrchestrator:
    """Builds tenants one after another and writes the shared artifacts.

    A failure in one tenant is recorded in its :class:`BuildResult` and
    the remaining tenants are still attempted.
    """

    def __init__(
        self,
        settings: Settings,
        *,
        client: NocoDBClient | None = None,
        generator: SiteGenerator | None = None,
        repairer: OutputRepairer | None = None,
        artifacts: ArtifactWriter | None = None,
        asset_copier: AssetCopier = copy_shared_assets,
        resolver: TenantResolver | None = None,
        dependencies: DependencyMap | None = None,
    ) -> None:
        try:
            require_valid_pattern(settings.url.pattern)
        except PatternError as exc:
            raise ConfigError(str(exc)) from exc
        self.settings = settings
        self.client = client
        self.output_dir = settings.build.output_dir
        self.generator = generator or SiteGenerator.from_settings(settings)
        self.repairer = repairer or OutputRepairer(self.output_dir)
        self.artifacts = artifacts or ArtifactWriter(
            self.output_dir,
            site_url=settings.build.site_url,
            routing=settings.routing,
            url=settings.url,
        )
        self.asset_copier = asset_copier
        self.resolver = resolver or TenantResolver(settings, client)
        self.dependencies = dependencies or DependencyMap.from_mapping(
            settings.build.dependencies
        )
        self.logger = get_logger("build")

    @classmethod
    def from_settings(
        cls,
        settings: Settings,
        cache: TTLCache | None = None,
        **overrides: object,
    ) -> "BuildOrchestrator":
        client = None
        if settings.backend.configured:
            client = NocoDBClient.from_settings(settings.backend, cache or TTLCache())
        else:
            get_logger("build").warning(
                "NOCODB_API_URL/NOCODB_AUTH_TOKEN not set; using fallback tenant list"
            )
        return cls(settings, client=client, **overrides)  # type: ignore[arg-type]

    def build_all(self) -> BuildReport:
        tenant_set = self.resolver.resolve()
        self.logger.info(
            "Building %d directories from %s", len(tenant_set.tenants), tenant_set.source
        )
        return self._run(tenant_set, tenant_set.tenants)

    def build_tenant(self, tenant_id: str) -> BuildReport:
        tenant = self.resolver.get(tenant_id)
        tenant_set = self.resolver.resolve()
        result = self._build_one(tenant, self._known_tenants(tenant_set, [tenant_id]))
        return BuildReport([result], tenant_set.source)

    def selective_build(
        self,
        tenant_id: str | None = None,
        changed_path: str | None = None,
    ) -> BuildReport:
        if tenant_id and tenant_id != "all":
            return self.build_tenant(tenant_id)
        tenant_set = self.resolver.resolve()
        selected = self.dependencies.affected(changed_path, tenant_set.tenants)
        self.logger.info("Will build: %s", ", ".join(selected))
        return self._run(tenant_set, [t for t in tenant_set.tenants if t.id in selected])

    # ------------------------------------------------------------------
    # Internal helpers

    def _run(self, tenant_set: TenantSet, tenants: Sequence[Directory]) -> BuildReport:
        self.output_dir.mkdir(parents=True, exist_ok=True)
        known = self._known_tenants(tenant_set)
        results: List[BuildResult] = []
        for tenant in tenants:
            with tenant_context(tenant.id):
                results.append(self._build_one(tenant, known))
        self.artifacts.write_site(tenant_set.tenants, results)
        report = BuildReport(results, tenant_set.source)
        if report.failed:
            self.logger.error("Failed to build %d directories", len(report.failed))
        return report

    def _build_one(self, tenant: Directory, known_tenants: Iterable[str]) -> BuildResult:
        result = BuildResult(tenant_id=tenant.id, domain=tenant.domain)
        result.status = BuildStatus.BUILDING
        out_dir = self.output_dir / tenant.id
        self.logger.info("Building directory: %s", tenant.id)
        try:
            self.generator.build(tenant.id, out_dir)
            repair = self.repairer.repair(tenant.id, known_tenants)
            if repair.changed:
                self.logger.debug(
                    "Repaired %s: moved %d, removed %s",
                    tenant.id,
                    len(repair.moved),
                    ", ".join(repair.removed) or "nothing",
                )
            self.asset_copier(self.settings.build.public_dir, out_dir)
            listings, pages = self._content(tenant)
            self.artifacts.write_tenant(tenant, listings, pages)
        except Exception as exc:
            result.status = BuildStatus.FAILED
            result.error = str(exc) or exc.__class__.__name__
            self._log_exception(f"Error building {tenant.id}", exc)
            return result
        result.status = BuildStatus.SUCCESS
        self.logger.info("Build complete for %s", tenant.id)
        return result

    def _content(self, tenant: Directory) -> Tuple[List[Listing], List[LandingPage]]:
        if self.client is None:
            return [], []
        try:
            listings = self.client.list_listings(tenant.id)
            pages = self.client.list_landing_pages(tenant.id)
        except BackendError as exc:
            self.logger.warning("Sitemap for %s has no listings: %s", tenant.id, exc)
            return [], []
        for listing in find_dangling_categories(tenant, listings):
            self.logger.warning(
                "Listing %s references unknown category %r", listing.key, listing.category
            )
        return listings, pages

    def _known_tenants(self, tenant_set: TenantSet, extra: Sequence[str] = ()) -> List[str]:
        known = set(tenant_set.ids) | set(extra)
        if tenant_set.source != "backend":
            known.update(
                scan_tenant_dirs(self.output_dir, reserved=self._reserved_dirs())
            )
        return sorted(known)

    def _reserved_dirs(self) -> Tuple[str, ...]:
        prefix = self.settings.routing.asset_prefix.strip("/")
        return (self.settings.routing.selector_dir, "functions", prefix)

    def _log_exception(self, message: str, exc: Exception) -> None:
        if self.logger.isEnabledFor(logging.DEBUG):
            self.logger.exception("%s: %s", message, exc)
        else:
            self.logger.error("%s: %s", message, exc)


__all__ = ["BuildOrchestrator", "BuildReport"]
