"""
CLI for k3sdev - local Kubernetes development environments.

Commands:
    generate    Print manifests for a service
    order       Print the deployment order for services
    deploy      Deploy services and their infrastructure
    delete      Delete the resources of services
    health      Show or wait for service health
    cluster     Manage the local k3d cluster
    validate    Validate services.yaml schema
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

import yaml

from .cluster import ClusterLifecycle
from .config import Settings
from .errors import CatalogError, CommandError, CycleDetected, HealthCheckFailed, HealthTimeout, K3sDevError
from .generators import generate_for
from .health import HealthChecker
from .kubectl import Kubectl
from .orchestrator import Orchestrator
from .resolver import DependencyResolver
from .schema import find_catalog, load_catalog, validate_catalog
from .types import ServiceCatalog, WaitConfig
from .utils import render_manifests


def create_parser() -> argparse.ArgumentParser:
    """Create the argument parser."""
    parser = argparse.ArgumentParser(
        prog="k3sdev",
        description="Deploy development services to a local or remote Kubernetes cluster",
    )
    parser.add_argument(
        "-f", "--file",
        help="Path to services.yaml (default: $K3SDEV_CATALOG or search upwards)",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Enable debug logging",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    gen_parser = subparsers.add_parser("generate", help="Print manifests for a service")
    gen_parser.add_argument("service", help="Service name")
    gen_parser.add_argument(
        "--format",
        choices=["yaml", "json"],
        default="yaml",
        help="Output format (default: yaml)",
    )

    order_parser = subparsers.add_parser("order", help="Print the deployment order")
    order_parser.add_argument("services", nargs="+", help="Service names")

    deploy_parser = subparsers.add_parser("deploy", help="Deploy services")
    deploy_parser.add_argument("services", nargs="+", help="Service names")
    target = deploy_parser.add_mutually_exclusive_group()
    target.add_argument("--cluster", help="Local k3d cluster to create or reuse")
    target.add_argument("--context", help="Existing kubectl context to deploy to")
    deploy_parser.add_argument(
        "--wait",
        action="store_true",
        help="Wait for each service to become healthy",
    )
    deploy_parser.add_argument(
        "--timeout",
        type=float,
        default=300,
        help="Health wait timeout per service in seconds (default: 300)",
    )

    delete_parser = subparsers.add_parser("delete", help="Delete service resources")
    delete_parser.add_argument("services", nargs="+", help="Service names")

    health_parser = subparsers.add_parser("health", help="Show service health")
    health_parser.add_argument("services", nargs="+", help="Service names")
    health_parser.add_argument("-n", "--namespace", help="Namespace (default: from catalog)")
    health_parser.add_argument("--wait", action="store_true", help="Wait until healthy")
    health_parser.add_argument("--timeout", type=float, default=300, help="Wait timeout in seconds")
    health_parser.add_argument("--json", action="store_true", help="Output as JSON")

    cluster_parser = subparsers.add_parser("cluster", help="Manage the local k3d cluster")
    cluster_parser.add_argument("action", choices=["create", "start", "stop", "delete", "status"])
    cluster_parser.add_argument("name", nargs="?", help="Cluster name (default: $K3SDEV_CLUSTER)")

    subparsers.add_parser("validate", help="Validate services.yaml schema")

    return parser


def setup_logging(settings: Settings, verbose: bool) -> None:
    level = logging.DEBUG if verbose else getattr(logging, settings.log_level, logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
    )


def _catalog_path(args: argparse.Namespace, settings: Settings) -> str:
    if args.file:
        return args.file
    found = find_catalog(settings.catalog)
    return str(found) if found else settings.catalog


def _load(args: argparse.Namespace, settings: Settings) -> Optional[ServiceCatalog]:
    path = _catalog_path(args, settings)
    try:
        return load_catalog(path)
    except FileNotFoundError:
        print(f"Error: services.yaml not found at {path}", file=sys.stderr)
    except CatalogError as e:
        print(f"Error: {e}", file=sys.stderr)
    return None


def _kubectl(settings: Settings) -> Kubectl:
    return Kubectl(
        binary=settings.kubectl,
        context=settings.context,
        timeout=settings.command_timeout,
    )


def cmd_generate(args: argparse.Namespace, settings: Settings) -> int:
    """Handle generate command."""
    catalog = _load(args, settings)
    if catalog is None:
        return 1

    if args.service not in catalog:
        print(f"Error: Service '{args.service}' not found in services.yaml", file=sys.stderr)
        print(f"Available services: {', '.join(catalog.names())}", file=sys.stderr)
        return 1

    try:
        manifests = generate_for(catalog, args.service).unwrap()
    except K3sDevError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.format == "json":
        print(json.dumps(manifests, indent=2))
    else:
        print(render_manifests(manifests), end="")
    return 0


def cmd_order(args: argparse.Namespace, settings: Settings) -> int:
    """Handle order command."""
    catalog = _load(args, settings)
    if catalog is None:
        return 1

    try:
        order = DependencyResolver(catalog).order(args.services)
    except CycleDetected as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    for name in order:
        print(name)
    return 0


def cmd_deploy(args: argparse.Namespace, settings: Settings) -> int:
    """Handle deploy command."""
    catalog = _load(args, settings)
    if catalog is None:
        return 1

    kubectl = _kubectl(settings)
    try:
        if args.context:
            ClusterLifecycle(kubectl, binary=settings.k3d).use_remote_context(args.context)
        elif args.cluster:
            ClusterLifecycle(kubectl, binary=settings.k3d, timeout=settings.command_timeout).create(args.cluster)
    except CommandError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    orchestrator = Orchestrator(catalog, kubectl, wait_config=WaitConfig(timeout=args.timeout))
    result = orchestrator.deploy(args.services, wait=args.wait)

    for item in result.items:
        line = f"{item.name:<25} {item.role.value:<6} {item.outcome.value}"
        if item.message:
            line += f"  ({item.message})"
        print(line)
    for warning in result.warnings:
        print(f"Warning: {warning}", file=sys.stderr)
    print(result.summary(), file=sys.stderr)

    return 0 if result.success else 1


def cmd_delete(args: argparse.Namespace, settings: Settings) -> int:
    """Handle delete command."""
    catalog = _load(args, settings)
    if catalog is None:
        return 1

    result = Orchestrator(catalog, _kubectl(settings)).teardown(args.services)
    for item in result.items:
        print(f"{item.name:<25} {item.outcome.value}" + (f"  ({item.message})" if item.message else ""))
    return 0 if result.success else 1


def cmd_health(args: argparse.Namespace, settings: Settings) -> int:
    """Handle health command."""
    catalog = None
    if not args.namespace:
        catalog = _load(args, settings)
        if catalog is None:
            return 1

    def namespace_for(name: str) -> str:
        return args.namespace or catalog.namespace_of(name)

    checker = HealthChecker(_kubectl(settings))
    targets = [(name, namespace_for(name)) for name in args.services]

    if args.wait:
        code = 0
        for service, namespace in targets:
            try:
                checker.wait_until_healthy(service, namespace, WaitConfig(timeout=args.timeout))
                print(f"{service}: healthy")
            except (HealthTimeout, HealthCheckFailed) as e:
                print(f"{service}: {e}", file=sys.stderr)
                code = 1
        return code

    results = checker.check_many(targets)
    if args.json:
        print(json.dumps([h.to_dict() for h in results], indent=2))
    else:
        for health in results:
            print(f"{health.service_name} ({health.namespace}): {health.status.value}")
            for message in health.messages:
                print(f"  {message}")
    return 0 if all(h.healthy for h in results) else 1


def cmd_cluster(args: argparse.Namespace, settings: Settings) -> int:
    """Handle cluster command."""
    name = args.name or settings.cluster
    lifecycle = ClusterLifecycle(_kubectl(settings), binary=settings.k3d, timeout=settings.command_timeout)

    try:
        if args.action == "create":
            lifecycle.create(name)
        elif args.action == "start":
            lifecycle.start(name)
        elif args.action == "stop":
            lifecycle.stop(name)
        elif args.action == "delete":
            lifecycle.delete(name)
        else:
            if not lifecycle.exists(name):
                print(f"{name}: not found")
                return 1
            print(f"{name}: {'running' if lifecycle.is_running(name) else 'stopped'}")
    except CommandError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    return 0


def cmd_validate(args: argparse.Namespace, settings: Settings) -> int:
    """Handle validate command."""
    path = _catalog_path(args, settings)
    try:
        with open(path) as f:
            data = yaml.safe_load(f)
    except FileNotFoundError:
        print(f"Error: services.yaml not found at {path}", file=sys.stderr)
        return 1
    except yaml.YAMLError as e:
        print(f"Error: {path} is not valid YAML: {e}", file=sys.stderr)
        return 1

    errors = validate_catalog(data if data is not None else {})
    if errors:
        print("Validation errors:", file=sys.stderr)
        for error in errors:
            print(f"  - {error}", file=sys.stderr)
        return 1

    catalog = _load(args, settings)
    if catalog is None:
        return 1

    print(f"✓ {path} is valid")
    print(f"  Found {len(catalog.infra_services)} infra services, {len(catalog.app_services)} services")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    try:
        settings = Settings.from_env()
    except K3sDevError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    setup_logging(settings, args.verbose)

    commands = {
        "generate": cmd_generate,
        "order": cmd_order,
        "deploy": cmd_deploy,
        "delete": cmd_delete,
        "health": cmd_health,
        "cluster": cmd_cluster,
        "validate": cmd_validate,
    }

    handler = commands.get(args.command)
    if handler:
        return handler(args, settings)

    parser.print_help()
    return 1


if __name__ == "__main__":
    sys.exit(main())
