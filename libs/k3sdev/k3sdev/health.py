"""
Service health checks based on pod and endpoint status from kubectl.
"""

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Callable, Dict, Iterable, List, Optional, Tuple

from .errors import CommandError, HealthCheckFailed, HealthTimeout
from .kubectl import Kubectl
from .types import (
    ContainerHealth,
    EndpointHealth,
    HealthState,
    PodHealth,
    ServiceHealth,
    WaitConfig,
)

logger = logging.getLogger(__name__)

HIGH_RESTART_COUNT = 5


def _container_state(state: Optional[Dict[str, Any]]) -> Tuple[str, Optional[str]]:
    state = state or {}
    if "running" in state:
        return "running", None
    if "terminated" in state:
        return "terminated", (state["terminated"] or {}).get("reason")
    if "waiting" in state:
        return "waiting", (state["waiting"] or {}).get("reason")
    return "waiting", None


def _pod_ready(pod: Dict[str, Any]) -> bool:
    for condition in pod.get("status", {}).get("conditions", []) or []:
        if condition.get("type") == "Ready":
            return condition.get("status") == "True"
    return False


def format_age(created: Optional[str], now: Optional[datetime] = None) -> str:
    """Render a creation timestamp as ``3d4h``, ``2h15m`` or ``7m``."""
    if not created:
        return "unknown"
    try:
        start = datetime.strptime(created, "%Y-%m-%dT%H:%M:%SZ").replace(tzinfo=timezone.utc)
    except ValueError:
        return "unknown"

    now = now or datetime.now(timezone.utc)
    seconds = max(int((now - start).total_seconds()), 0)
    days, seconds = divmod(seconds, 86400)
    hours, seconds = divmod(seconds, 3600)
    minutes = seconds // 60

    if days:
        return f"{days}d{hours}h"
    if hours:
        return f"{hours}h{minutes}m"
    return f"{minutes}m"


def parse_pods(data: Dict[str, Any], now: Optional[datetime] = None) -> List[PodHealth]:
    """Convert ``kubectl get pods -o json`` output into PodHealth records."""
    pods = []
    for item in data.get("items", []) or []:
        status = item.get("status", {}) or {}
        containers = []
        for cs in status.get("containerStatuses", []) or []:
            state, reason = _container_state(cs.get("state"))
            containers.append(ContainerHealth(
                name=cs.get("name", "unknown"),
                ready=bool(cs.get("ready")),
                restart_count=cs.get("restartCount", 0) or 0,
                state=state,
                reason=reason,
            ))
        metadata = item.get("metadata", {}) or {}
        pods.append(PodHealth(
            name=metadata.get("name", "unknown"),
            phase=status.get("phase", "Unknown"),
            ready=_pod_ready(item),
            restarts=sum(c.restart_count for c in containers),
            age=format_age(metadata.get("creationTimestamp"), now),
            containers=containers,
        ))
    return pods


def parse_endpoints(data: Dict[str, Any]) -> List[EndpointHealth]:
    """Convert ``kubectl get endpoints -o json`` output into EndpointHealth records."""
    endpoints = []
    for subset in data.get("subsets", []) or []:
        ports = [p.get("port") for p in subset.get("ports", []) or []] or [None]
        for address in subset.get("addresses", []) or []:
            for port in ports:
                endpoints.append(EndpointHealth(address=address.get("ip", ""), available=True, port=port))
        for address in subset.get("notReadyAddresses", []) or []:
            for port in ports:
                endpoints.append(EndpointHealth(address=address.get("ip", ""), available=False, port=port))
    return endpoints


def derive_status(pods: List[PodHealth], endpoints: List[EndpointHealth]) -> HealthState:
    """
    Classify a service from its pods and endpoints.

    No pods yet is pending. Every pod ready and running with at least one
    available endpoint is healthy. Nothing ready and nothing available is
    unhealthy. Anything in between is pending.
    """
    if not pods:
        return HealthState.PENDING

    ready = [p for p in pods if p.ready and p.phase == "Running"]
    available = [e for e in endpoints if e.available]

    if len(ready) == len(pods) and available:
        return HealthState.HEALTHY
    if ready or available:
        return HealthState.PENDING
    return HealthState.UNHEALTHY


def status_messages(pods: List[PodHealth], endpoints: List[EndpointHealth]) -> List[str]:
    ready = sum(1 for p in pods if p.ready)
    running = sum(1 for p in pods if p.phase == "Running")
    available = sum(1 for e in endpoints if e.available)

    messages = [
        f"Pods: {ready}/{len(pods)} ready, {running}/{len(pods)} running",
        f"Endpoints: {available}/{len(endpoints)} available",
    ]

    failed = [p.name for p in pods if p.phase == "Failed"]
    if failed:
        messages.append("Failed pods: " + ", ".join(failed))

    restarting = [f"{p.name}({p.restarts})" for p in pods if p.restarts > HIGH_RESTART_COUNT]
    if restarting:
        messages.append("High restart count: " + ", ".join(restarting))

    return messages


class HealthChecker:
    """Polls pod and endpoint status for services through kubectl."""

    def __init__(
        self,
        kubectl: Kubectl,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
        max_workers: int = 8,
    ):
        self.kubectl = kubectl
        self.sleep = sleep
        self.clock = clock
        self.max_workers = max_workers

    def _get_pods(self, service: str, namespace: str) -> List[PodHealth]:
        data = self.kubectl.get_json("get", "pods", "-l", f"app={service}", "-n", namespace)
        return parse_pods(data)

    def _get_endpoints(self, service: str, namespace: str) -> List[EndpointHealth]:
        try:
            data = self.kubectl.get_json("get", "endpoints", service, "-n", namespace)
        except CommandError as e:
            # No Service object (or no endpoints yet)
            logger.debug("No endpoints for %s/%s: %s", namespace, service, e.stderr)
            return []
        return parse_endpoints(data)

    def check(self, service: str, namespace: str) -> ServiceHealth:
        """Check one service. kubectl failures produce an ``unknown`` status."""
        health = ServiceHealth(service_name=service, namespace=namespace, status=HealthState.UNKNOWN)
        try:
            health.pods = self._get_pods(service, namespace)
            health.endpoints = self._get_endpoints(service, namespace)
        except CommandError as e:
            logger.error("Health check failed for %s/%s: %s", namespace, service, e)
            health.messages.append(f"Health check failed: {e}")
            return health

        health.status = derive_status(health.pods, health.endpoints)
        health.messages = status_messages(health.pods, health.endpoints)
        logger.debug("Health of %s/%s: %s", namespace, service, health.status.value)
        return health

    def wait_until_healthy(
        self,
        service: str,
        namespace: str,
        config: Optional[WaitConfig] = None,
    ) -> ServiceHealth:
        """
        Poll until ``required_successes`` consecutive healthy checks.

        Raises:
            HealthCheckFailed: After ``allowed_failures`` consecutive
                non-healthy checks.
            HealthTimeout: If the timeout elapses first.
        """
        config = config or WaitConfig()
        start = self.clock()
        successes = 0
        failures = 0

        logger.info("Waiting for %s/%s to become healthy (timeout %ss)", namespace, service, config.timeout)

        while self.clock() - start < config.timeout:
            health = self.check(service, namespace)

            if health.healthy:
                successes += 1
                failures = 0
                if successes >= config.required_successes:
                    logger.info("%s/%s is healthy", namespace, service)
                    return health
            else:
                successes = 0
                failures += 1
                if failures >= config.allowed_failures:
                    raise HealthCheckFailed(service, namespace, health.messages)

            remaining = config.timeout - (self.clock() - start)
            if remaining <= 0:
                break
            self.sleep(min(config.interval, remaining))

        raise HealthTimeout(service, namespace, config.timeout)

    def check_many(self, targets: Iterable[Tuple[str, str]]) -> List[ServiceHealth]:
        """Check several ``(service, namespace)`` pairs concurrently, preserving order."""
        targets = list(targets)
        if not targets:
            return []

        with ThreadPoolExecutor(max_workers=min(self.max_workers, len(targets))) as pool:
            futures = [pool.submit(self.check, service, namespace) for service, namespace in targets]

        results = []
        for (service, namespace), future in zip(targets, futures):
            try:
                results.append(future.result())
            except Exception as e:
                results.append(ServiceHealth(
                    service_name=service,
                    namespace=namespace,
                    status=HealthState.UNKNOWN,
                    messages=[f"Health check failed: {e}"],
                ))
        return results
