"""CLI entrypoints for multidir commands."""

from __future__ import annotations

import argparse
import subprocess
import sys
from pathlib import Path
from typing import List, Optional

from .build import BuildOrchestrator, BuildReport, SiteGenerator, TenantResolver
from .backend import NocoDBClient
from .config import ConfigError, Settings, load_settings
from .deploy import DEPLOYERS, DeployError, DeployReport, deploy_all
from .logging import configure_logging
from .models import Directory
from .stores import TTLCache


def _add_verbose_option(
    parser: argparse.ArgumentParser, *, suppress_default: bool = False
) -> None:
    kwargs: dict[str, object] = {
        "action": "store_true",
        "help": "Increase log verbosity for troubleshooting.",
    }
    if suppress_default:
        kwargs["default"] = argparse.SUPPRESS
    else:
        kwargs["default"] = False
    parser.add_argument(
        "-v",
        "--verbose",
        **kwargs,
    )


def _add_subcommand(
    subparsers: "argparse._SubParsersAction[argparse.ArgumentParser]", name: str, help_text: str
) -> argparse.ArgumentParser:
    command = subparsers.add_parser(name, help=help_text)
    _add_verbose_option(command, suppress_default=True)
    return command


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="multidir",
        description="Build, serve and deploy many directory websites from one NocoDB base.",
    )
    _add_verbose_option(parser)
    parser.add_argument(
        "--root",
        default=".",
        help="Project root containing .multidir.yml (defaults to current directory).",
    )
    parser.add_argument(
        "--log-file",
        type=Path,
        default=None,
        help="Also write detailed logs to this file.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    _add_subcommand(subparsers, "build-all", "Build every directory.")

    build_parser = _add_subcommand(subparsers, "build", "Build a single directory.")
    build_parser.add_argument("tenant_id", help="Directory identifier to build.")

    selective_parser = _add_subcommand(
        subparsers,
        "selective-build",
        "Build only the directories affected by a changed file.",
    )
    selective_parser.add_argument(
        "tenant_id",
        nargs="?",
        default=None,
        help="Build just this directory ('all' consults the changed path).",
    )
    selective_parser.add_argument(
        "--changed-path",
        default=None,
        help="Changed file path (defaults to the CHANGED_PATH environment variable).",
    )

    deploy_parser = _add_subcommand(subparsers, "deploy", "Deploy built directories.")
    deploy_parser.add_argument("method", choices=sorted(DEPLOYERS), help="Deployment method.")
    deploy_parser.add_argument(
        "tenant_id",
        nargs="?",
        default=None,
        help="Deploy only this directory (defaults to all).",
    )

    dev_parser = _add_subcommand(
        subparsers, "dev", "Run the generator's dev server for one directory."
    )
    dev_parser.add_argument(
        "tenant_id",
        nargs="?",
        default=None,
        help="Directory to develop (defaults to CURRENT_DIRECTORY or the first directory).",
    )

    serve_parser = _add_subcommand(subparsers, "serve", "Run the HTTP API and static edge.")
    serve_parser.add_argument("--host", default=None, help="Interface to bind.")
    serve_parser.add_argument("--port", type=int, default=None, help="Port to listen on.")

    _add_subcommand(subparsers, "tenants", "List the directories that would be built.")

    return parser


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint for multidir commands."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    configure_logging(verbose=bool(args.verbose), log_file=args.log_file)

    try:
        settings = load_settings(args.root)
        exit_code = _dispatch(args, settings)
    except ConfigError as exc:
        parser.exit(1, f"multidir: {exc}\n")
    except DeployError as exc:
        parser.exit(1, f"multidir deploy failed: {exc}\n")
    if exit_code:
        parser.exit(exit_code)


def _dispatch(args: argparse.Namespace, settings: Settings) -> int:
    if args.command == "build-all":
        report = BuildOrchestrator.from_settings(settings).build_all()
        return _print_build_report(report)
    if args.command == "build":
        report = BuildOrchestrator.from_settings(settings).build_tenant(args.tenant_id)
        return _print_build_report(report)
    if args.command == "selective-build":
        changed_path = args.changed_path or settings.environment.get("CHANGED_PATH")
        print(f"Changed path: {changed_path or 'None'}")
        report = BuildOrchestrator.from_settings(settings).selective_build(
            args.tenant_id, changed_path
        )
        return _print_build_report(report)
    if args.command == "deploy":
        tenants = _select_tenants(settings, args.tenant_id)
        deploy_report = deploy_all(
            args.method,
            tenants,
            settings.build.output_dir,
            defaults=settings.deploy,
            env=settings.environment,
        )
        return _print_deploy_report(deploy_report)
    if args.command == "dev":
        tenant_id = args.tenant_id or settings.build.current_tenant
        resolver = _resolver(settings)
        tenant = resolver.get(tenant_id) if tenant_id else _first_tenant(resolver)
        print(f"Starting development server for directory: {tenant.id}")
        try:
            SiteGenerator.from_settings(settings).dev(tenant.id)
        except subprocess.CalledProcessError as exc:
            print(f"Dev server exited with status {exc.returncode}", file=sys.stderr)
            return exc.returncode or 1
        return 0
    if args.command == "serve":
        from .service import run_service

        run_service(settings, host=args.host, port=args.port)
        return 0
    if args.command == "tenants":
        tenant_set = _resolver(settings).resolve()
        print(f"Directories (source: {tenant_set.source})")
        for tenant in tenant_set.tenants:
            print(f"  {tenant.id:<28} {tenant.theme:<12} {tenant.domain or '-'}")
        return 0
    raise ConfigError(f"Unknown command: {args.command}")  # pragma: no cover - argparse enforces choices


# ------------------------------------------------------------------
# Internal helpers


def _resolver(settings: Settings) -> TenantResolver:
    client: Optional[NocoDBClient] = None
    if settings.backend.configured:
        client = NocoDBClient.from_settings(settings.backend, TTLCache())
    return TenantResolver(settings, client)


def _first_tenant(resolver: TenantResolver) -> Directory:
    tenants = resolver.resolve().tenants
    if not tenants:
        raise ConfigError("No directories available")
    return tenants[0]


def _select_tenants(settings: Settings, tenant_id: Optional[str]) -> List[Directory]:
    resolver = _resolver(settings)
    if tenant_id:
        return [resolver.get(tenant_id)]
    return list(resolver.resolve().tenants)


def _print_build_report(report: BuildReport) -> int:
    print("\nBuild Summary")
    print("-------------")
    for result in report.results:
        marker = "OK  " if result.success else "FAIL"
        detail = result.error if result.error else (result.domain or "")
        print(f"  [{marker}] {result.tenant_id:<28} {result.status.value:<8} {detail}".rstrip())
    succeeded = len(report.results) - len(report.failed)
    print(f"\nSuccessfully built {succeeded} of {len(report.results)} directories")
    return report.exit_code


def _print_deploy_report(report: DeployReport) -> int:
    print(f"\nDeployment Summary ({report.method})")
    print("------------------")
    for result in report.results:
        marker = "OK  " if result.success else "FAIL"
        detail = result.error if result.error else (result.output or result.domain or "")
        print(f"  [{marker}] {result.tenant_id:<28} {detail}".rstrip())
    succeeded = len(report.results) - len(report.failed)
    print(f"\nSuccessfully deployed {succeeded} of {len(report.results)} directories")
    return report.exit_code


if __name__ == "__main__":
    main(sys.argv[1:])
