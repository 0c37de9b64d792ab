"""
Deployment orchestration.

Creates the tier namespaces, applies the infrastructure services the request
depends on, then applies the requested application services in dependency
order. Every service is applied with a single ``kubectl apply -f -`` call.
"""

import logging
from typing import Iterable, List, Optional, Set

from .errors import (
    CommandError,
    CycleDetected,
    GenerationError,
    HealthCheckFailed,
    HealthTimeout,
    ManifestValidationError,
)
from .generators import generate_for
from .health import HealthChecker
from .kubectl import Kubectl
from .resolver import DependencyResolver
from .results import DeployResult, Outcome, ServiceResult, ServiceRole
from .types import TIER_NAMESPACES, ServiceCatalog, ServiceHealth, ServiceKind, WaitConfig
from .utils import is_valid_namespace, render_manifests

logger = logging.getLogger(__name__)

NAMESPACES = tuple(TIER_NAMESPACES.values())


class Orchestrator:
    """Deploys catalog services to the cluster kubectl points at."""

    def __init__(
        self,
        catalog: ServiceCatalog,
        kubectl: Kubectl,
        resolver: Optional[DependencyResolver] = None,
        health: Optional[HealthChecker] = None,
        wait_config: Optional[WaitConfig] = None,
    ):
        self.catalog = catalog
        self.kubectl = kubectl
        self.resolver = resolver or DependencyResolver(catalog)
        self.health = health or HealthChecker(kubectl)
        self.wait_config = wait_config or WaitConfig()
        self._namespaces: Set[str] = set()

    def create_namespaces(self) -> None:
        """
        Create the core, application and other namespaces.

        Raises:
            CommandError: If any namespace cannot be created.
        """
        for namespace in NAMESPACES:
            self.kubectl.create_namespace(namespace)
            self._namespaces.add(namespace)

    def _ensure_namespace(self, namespace: str) -> bool:
        if namespace in self._namespaces:
            return True
        if not is_valid_namespace(namespace):
            # Generation rejects the service before anything is sent
            return True
        try:
            self.kubectl.create_namespace(namespace)
        except CommandError as e:
            logger.error("Failed to create namespace %s: %s", namespace, e)
            return False
        self._namespaces.add(namespace)
        return True

    def resolve_order(self, names: Iterable[str]) -> List[str]:
        """
        Dependency order for ``names``.

        Raises:
            CycleDetected: If the services depend on each other circularly.
        """
        return self.resolver.order(names)

    def _role(self, name: str) -> ServiceRole:
        return ServiceRole.INFRA if self.catalog.is_infra(name) else ServiceRole.APP

    def apply_service(self, name: str, wait: bool = False) -> ServiceResult:
        """Generate, serialize and apply one service. Never raises for per-service failures."""
        role = self._role(name)
        namespace = self.catalog.namespace_of(name)
        item = ServiceResult(name=name, role=role, outcome=Outcome.FAILED, namespace=namespace)

        try:
            manifests = generate_for(self.catalog, name).unwrap()
        except (GenerationError, ManifestValidationError) as e:
            logger.error("Skipping %s: %s", name, e)
            item.message = str(e)
            return item

        try:
            self.kubectl.apply(render_manifests(manifests))
        except CommandError as e:
            logger.error("Failed to apply %s: %s", name, e)
            item.message = str(e)
            return item

        item.outcome = Outcome.APPLIED
        item.manifest_count = len(manifests)
        logger.info("Applied %s (%d manifests) to %s", name, len(manifests), namespace)

        if wait and self._waitable(name):
            self._wait(item)
        return item

    def _waitable(self, name: str) -> bool:
        app = self.catalog.get_app(name)
        return app is None or app.kind != ServiceKind.JOB

    def _wait(self, item: ServiceResult) -> None:
        try:
            self.health.wait_until_healthy(item.name, item.namespace, self.wait_config)
        except HealthTimeout as e:
            logger.warning("%s", e)
            item.outcome = Outcome.TIMED_OUT
            item.message = str(e)
        except HealthCheckFailed as e:
            logger.error("%s", e)
            item.outcome = Outcome.FAILED
            item.message = str(e)

    def deploy(self, names: Iterable[str], wait: bool = False) -> DeployResult:
        """
        Deploy the requested services and the infrastructure they depend on.

        Namespace bootstrap failure aborts the run. Any other failure is
        recorded on the failing service and the run continues.
        """
        result = DeployResult()
        requested = list(dict.fromkeys(names))

        try:
            self.create_namespaces()
        except CommandError as e:
            logger.error("Namespace creation failed, aborting: %s", e)
            result.aborted = True
            result.errors.append(f"namespace creation failed: {e}")
            return result

        known = []
        for name in requested:
            if name in self.catalog:
                known.append(name)
            else:
                logger.error("Service %s not found in catalog", name)
                result.add(ServiceResult(
                    name=name,
                    role=ServiceRole.APP,
                    outcome=Outcome.NOT_FOUND,
                    message=f"service '{name}' not found in catalog",
                ))

        for missing in sorted(self.resolver.closure(known) - set(self.catalog.names())):
            logger.warning("Dependency %s is not in the catalog and will not be deployed", missing)
            result.warnings.append(f"unknown dependency '{missing}'")

        # Infrastructure: one failure does not stop the others
        for name in self.resolver.infra_closure(known):
            result.order.append(name)
            namespace = self.catalog.namespace_of(name)
            if not self._ensure_namespace(namespace):
                result.add(ServiceResult(
                    name=name,
                    role=ServiceRole.INFRA,
                    outcome=Outcome.FAILED,
                    namespace=namespace,
                    message=f"namespace '{namespace}' could not be created",
                ))
                continue
            result.add(self.apply_service(name, wait=wait))

        apps = [name for name in known if not self.catalog.is_infra(name)]
        try:
            app_order = self.resolver.order(apps)
        except CycleDetected as e:
            logger.warning("%s; deploying in the requested order", e)
            result.warnings.append(str(e))
            app_order = apps

        blocked: Set[str] = set()
        for name in app_order:
            result.order.append(name)
            namespace = self.catalog.namespace_of(name)

            upstream = self.resolver.service_dependencies(name) & blocked
            if upstream:
                blocked.add(name)
                result.add(ServiceResult(
                    name=name,
                    role=ServiceRole.APP,
                    outcome=Outcome.SKIPPED,
                    namespace=namespace,
                    message="depends on " + ", ".join(sorted(upstream)) + " which could not be deployed",
                ))
                continue

            if not self._ensure_namespace(namespace):
                blocked.add(name)
                result.add(ServiceResult(
                    name=name,
                    role=ServiceRole.APP,
                    outcome=Outcome.FAILED,
                    namespace=namespace,
                    message=f"namespace '{namespace}' could not be created",
                ))
                continue

            result.add(self.apply_service(name, wait=wait))

        logger.info("Deployment finished: %s", result.summary())
        return result

    def teardown(self, names: Iterable[str]) -> DeployResult:
        """Delete the resources generated for ``names``, dependents first."""
        result = DeployResult()
        requested = list(dict.fromkeys(names))
        try:
            ordered = list(reversed(self.resolver.order(requested)))
        except CycleDetected as e:
            result.warnings.append(str(e))
            ordered = list(reversed(requested))

        for name in ordered:
            result.order.append(name)
            if name not in self.catalog:
                result.add(ServiceResult(
                    name=name,
                    role=ServiceRole.APP,
                    outcome=Outcome.NOT_FOUND,
                    message=f"service '{name}' not found in catalog",
                ))
                continue

            item = ServiceResult(
                name=name,
                role=self._role(name),
                outcome=Outcome.FAILED,
                namespace=self.catalog.namespace_of(name),
            )
            try:
                manifests = generate_for(self.catalog, name).unwrap()
                self.kubectl.delete(render_manifests(manifests))
            except (GenerationError, ManifestValidationError, CommandError) as e:
                logger.error("Failed to delete %s: %s", name, e)
                item.message = str(e)
            else:
                item.outcome = Outcome.DELETED
                item.manifest_count = len(manifests)
                logger.info("Deleted %s", name)
            result.add(item)
        return result

    def health_of(self, names: Iterable[str]) -> List[ServiceHealth]:
        """Concurrent health snapshot of catalog services."""
        return self.health.check_many(
            (name, self.catalog.namespace_of(name)) for name in names
        )
