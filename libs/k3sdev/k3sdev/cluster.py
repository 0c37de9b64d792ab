"""
Local k3d cluster lifecycle and kubectl context switching.
"""

import json
import logging
import subprocess
import time
from typing import Any, Callable, Dict, List, Optional

from .errors import CommandError
from .kubectl import DEFAULT_TIMEOUT, Kubectl, Runner, run_command

logger = logging.getLogger(__name__)

READY_POLL_INTERVAL = 5
DEFAULT_READY_TIMEOUT = 120


def context_name(cluster: str) -> str:
    """kubectl context created by k3d for ``cluster``."""
    return f"k3d-{cluster}"


def cluster_running(cluster: Dict[str, Any]) -> bool:
    """Interpret one entry of ``k3d cluster list --output json``."""
    if cluster.get("serversRunning", 0) > 0:
        return True

    servers = [n for n in cluster.get("nodes", []) or [] if n.get("role") == "server"]
    if servers:
        return all(
            (n.get("State") or {}).get("Running") is True
            or (n.get("State") or {}).get("Status") == "running"
            for n in servers
        )

    legacy = cluster.get("servers") or []
    if legacy:
        return all(s.get("state") == "running" for s in legacy)

    return False


def nodes_ready(data: Dict[str, Any]) -> bool:
    """True if ``kubectl get nodes -o json`` lists nodes and all are Ready."""
    items = data.get("items", []) or []
    if not items:
        return False
    return all(
        any(
            c.get("type") == "Ready" and c.get("status") == "True"
            for c in (node.get("status", {}) or {}).get("conditions", []) or []
        )
        for node in items
    )


class ClusterLifecycle:
    """Create, start, stop and delete k3d clusters."""

    def __init__(
        self,
        kubectl: Kubectl,
        binary: str = "k3d",
        runner: Runner = subprocess.run,
        timeout: float = DEFAULT_TIMEOUT,
        sleep: Callable[[float], None] = time.sleep,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.kubectl = kubectl
        self.binary = binary
        self.runner = runner
        self.timeout = timeout
        self.sleep = sleep
        self.clock = clock

    def _k3d(self, *args: str, timeout: Optional[float] = None) -> subprocess.CompletedProcess:
        return run_command(self.runner, [self.binary, *args], timeout=timeout or self.timeout)

    def list_clusters(self) -> List[Dict[str, Any]]:
        result = self._k3d("cluster", "list", "--output", "json")
        try:
            return json.loads(result.stdout or "[]")
        except json.JSONDecodeError as e:
            raise CommandError([self.binary, "cluster", "list"], 0, f"invalid JSON output: {e}")

    def _find(self, name: str) -> Optional[Dict[str, Any]]:
        for cluster in self.list_clusters():
            if cluster.get("name") == name:
                return cluster
        return None

    def exists(self, name: str) -> bool:
        return self._find(name) is not None

    def is_running(self, name: str) -> bool:
        cluster = self._find(name)
        return cluster is not None and cluster_running(cluster)

    def create(self, name: str, ready_timeout: float = DEFAULT_READY_TIMEOUT) -> bool:
        """
        Make sure cluster ``name`` exists, runs and is the current context.

        Starts a stopped cluster instead of recreating it. Returns whether the
        nodes reported Ready before ``ready_timeout``.

        Raises:
            CommandError: If k3d fails to create or start the cluster.
        """
        cluster = self._find(name)
        if cluster and cluster_running(cluster):
            logger.info("Cluster %s is already running", name)
        elif cluster:
            logger.info("Starting existing cluster %s", name)
            self.start(name)
        else:
            logger.info("Creating cluster %s", name)
            self._k3d(
                "cluster", "create", name, "--wait", f"--timeout={int(ready_timeout)}s",
                timeout=ready_timeout + 60,
            )

        self.merge_kubeconfig(name)
        ready = self.wait_until_ready(name, ready_timeout)
        if not ready:
            logger.warning("Cluster %s did not report ready within %ss", name, ready_timeout)
        return ready

    def start(self, name: str) -> None:
        self._k3d("cluster", "start", name)

    def stop(self, name: str) -> None:
        if not self.exists(name):
            logger.info("Cluster %s does not exist", name)
            return
        self._k3d("cluster", "stop", name)
        logger.info("Cluster %s stopped", name)

    def delete(self, name: str) -> None:
        """Delete cluster ``name``. Deleting a missing cluster is not an error."""
        if not self.exists(name):
            logger.info("Cluster %s does not exist", name)
            return
        self._k3d("cluster", "delete", name)
        logger.info("Cluster %s deleted", name)

    def merge_kubeconfig(self, name: str) -> None:
        """Merge the cluster's kubeconfig and switch to its context."""
        self._k3d("kubeconfig", "merge", name, "--kubeconfig-merge-default")
        self.kubectl.use_context(context_name(name))

    def use_remote_context(self, context: str) -> None:
        """Target an existing (remote) cluster by kubectl context name."""
        self.kubectl.use_context(context)

    def wait_until_ready(self, name: str, timeout: float = DEFAULT_READY_TIMEOUT) -> bool:
        """Poll until the cluster runs and every node is Ready. False on timeout."""
        start = self.clock()
        attempt = 0
        while self.clock() - start < timeout:
            attempt += 1
            try:
                if self.is_running(name) and nodes_ready(self.kubectl.get_json("get", "nodes")):
                    logger.info("Cluster %s is ready", name)
                    return True
                logger.debug("Cluster %s not ready (attempt %d)", name, attempt)
            except CommandError as e:
                logger.debug("Cluster %s not reachable yet (attempt %d): %s", name, attempt, e)

            remaining = timeout - (self.clock() - start)
            if remaining <= 0:
                break
            self.sleep(min(READY_POLL_INTERVAL, remaining))
        return False
