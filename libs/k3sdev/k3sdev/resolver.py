"""
Dependency resolution and deployment ordering.

The resolver builds the dependency graph lazily from the catalog and caches
each service's dependency set until ``invalidate`` is called. Besides service
names, a dependency set may contain synthetic references to resources the
service needs: ``configmap:<name>``, ``secret:<name>`` and ``pvc:<name>``.
"""

import logging
from collections import deque
from typing import Deque, Dict, Iterable, List, Optional, Set

from .errors import CycleDetected
from .heuristics import Rule, infer_dependencies, rules_for_catalog
from .types import ServiceCatalog
from .utils import resource_name

logger = logging.getLogger(__name__)

SYNTHETIC_PREFIXES = ("configmap:", "secret:", "pvc:")

_UNVISITED, _VISITING, _DONE = 0, 1, 2


def is_synthetic(dependency: str) -> bool:
    return dependency.startswith(SYNTHETIC_PREFIXES)


class DependencyResolver:
    """Dependency graph over one service catalog."""

    def __init__(self, catalog: ServiceCatalog, rules: Optional[List[Rule]] = None):
        self.catalog = catalog
        if rules is None:
            rules = rules_for_catalog(s.name for s in catalog.infra_services)
        self.rules = rules
        self._graph: Dict[str, Set[str]] = {}
        self._reverse: Dict[str, Set[str]] = {}

    def resolve(self, name: str) -> Set[str]:
        """All dependencies of ``name``: explicit, inferred and synthetic."""
        if name not in self._graph:
            dependencies = self._extract(name)
            self._graph[name] = dependencies
            for dependency in dependencies:
                self._reverse.setdefault(dependency, set()).add(name)
        return set(self._graph[name])

    def _extract(self, name: str) -> Set[str]:
        infra = self.catalog.get_infra(name)
        if infra:
            dependencies = {
                "pvc:" + resource_name(infra.name, "pvc", volume.name)
                for volume in infra.volumes
            }
            logger.debug("Resolved %d storage dependencies for %s", len(dependencies), name)
            return dependencies

        app = self.catalog.get_app(name)
        if app is None:
            logger.warning("No service definition found for %s, assuming no dependencies", name)
            return set()

        dependencies = set(app.dependencies)
        inferred = infer_dependencies(app.env, self.rules) - {name}
        extra = inferred - dependencies
        if extra:
            logger.debug("Inferred dependencies of %s from env: %s", name, ", ".join(sorted(extra)))
        dependencies |= inferred

        for volume in app.volumes:
            if volume.config_map:
                dependencies.add(f"configmap:{volume.config_map}")
            elif volume.secret:
                dependencies.add(f"secret:{volume.secret}")

        logger.debug("Resolved %d dependencies for %s", len(dependencies), name)
        return dependencies

    def service_dependencies(self, name: str) -> Set[str]:
        """Dependencies of ``name`` that are services rather than synthetic references."""
        return {d for d in self.resolve(name) if not is_synthetic(d)}

    def order(self, names: Iterable[str]) -> List[str]:
        """
        Order ``names`` so every service comes after its dependencies.

        Traversal follows service dependencies through the whole catalog, so
        transitive relations between requested services are respected. Loops
        made only of services that were not requested do not affect the
        result.

        Raises:
            CycleDetected: If a requested service depends on itself,
                directly or through other services.
        """
        requested = list(dict.fromkeys(names))
        for name in requested:
            cycle = self.find_cycle(name)
            if cycle:
                raise CycleDetected(cycle)

        wanted = set(requested)
        state: Dict[str, int] = {}
        ordered: List[str] = []

        def visit(node: str) -> None:
            if state.get(node, _UNVISITED) != _UNVISITED:
                return
            state[node] = _VISITING
            for dependency in sorted(self.service_dependencies(node)):
                visit(dependency)
            state[node] = _DONE
            if node in wanted:
                ordered.append(node)

        for name in requested:
            visit(name)

        return ordered

    def find_cycle(self, name: str) -> Optional[List[str]]:
        """Shortest dependency chain leading from ``name`` back to itself, if any."""
        parents: Dict[str, str] = {}
        pending: Deque[str] = deque()
        for dependency in sorted(self.service_dependencies(name)):
            parents[dependency] = name
            pending.append(dependency)

        while pending:
            node = pending.popleft()
            if node == name:
                chain = [name]
                current = parents[name]
                while current != name:
                    chain.append(current)
                    current = parents[current]
                chain.append(name)
                return list(reversed(chain))
            for dependency in sorted(self.service_dependencies(node)):
                if dependency not in parents:
                    parents[dependency] = node
                    pending.append(dependency)
        return None

    def closure(self, names: Iterable[str]) -> Set[str]:
        """Every service reachable from ``names`` through service dependencies."""
        seen: Set[str] = set()
        pending = list(names)
        while pending:
            name = pending.pop()
            for dependency in self.service_dependencies(name):
                if dependency not in seen:
                    seen.add(dependency)
                    pending.append(dependency)
        return seen

    def infra_closure(self, names: Iterable[str]) -> List[str]:
        """Infra services that ``names`` depend on, directly or transitively, in apply order."""
        names = list(names)
        closure = self.closure(names) | set(names)
        infra = [n for n in sorted(closure) if self.catalog.is_infra(n)]
        return self.order(infra)

    def dependents(self, name: str) -> Set[str]:
        """Catalog services whose dependencies include ``name``."""
        for service in self.catalog.names():
            self.resolve(service)
        return set(self._reverse.get(name, set()))

    def has_dependencies(self, name: str) -> bool:
        return bool(self.resolve(name))

    def graph(self) -> Dict[str, Set[str]]:
        """Copy of the dependency sets resolved so far."""
        return {name: set(deps) for name, deps in self._graph.items()}

    def reload(self, catalog: ServiceCatalog, rules: Optional[List[Rule]] = None) -> None:
        """Switch to a changed catalog and drop every cached dependency set."""
        self.catalog = catalog
        if rules is None:
            rules = rules_for_catalog(s.name for s in catalog.infra_services)
        self.rules = rules
        self.invalidate()

    def invalidate(self, name: Optional[str] = None) -> None:
        """Drop cached dependencies for ``name``, or for every service."""
        if name is None:
            self._graph.clear()
            self._reverse.clear()
            return

        self._graph.pop(name, None)
        for dependency in list(self._reverse):
            dependents = self._reverse[dependency]
            dependents.discard(name)
            if not dependents:
                del self._reverse[dependency]
