"""Tests for k3d cluster lifecycle."""

import json

import pytest

from conftest import FakeRunner
from k3sdev.cluster import ClusterLifecycle, cluster_running, context_name, nodes_ready
from k3sdev.errors import CommandError
from k3sdev.kubectl import Kubectl

RUNNING = json.dumps([{"name": "dev", "serversRunning": 1, "serversCount": 1}])
STOPPED = json.dumps([{"name": "dev", "serversRunning": 0, "serversCount": 1}])
READY_NODES = json.dumps({"items": [{"status": {"conditions": [{"type": "Ready", "status": "True"}]}}]})


class CreatingRunner(FakeRunner):
    """Reports the cluster as running once ``k3d cluster create`` was called."""

    def __call__(self, cmd, input=None, **kwargs):
        result = super().__call__(cmd, input, **kwargs)
        if cmd[1:3] == ["cluster", "create"]:
            self.on("k3d", "cluster", "list", stdout=RUNNING)
        return result


def lifecycle(runner, clock):
    return ClusterLifecycle(
        Kubectl(runner=runner), runner=runner, sleep=clock.sleep, clock=clock,
    )


class TestClusterRunning:
    def test_servers_running(self):
        assert cluster_running({"serversRunning": 1})

    def test_server_nodes(self):
        cluster = {"nodes": [
            {"role": "server", "State": {"Running": True}},
            {"role": "agent", "State": {"Running": False}},
        ]}
        assert cluster_running(cluster)

    def test_server_node_stopped(self):
        assert not cluster_running({"nodes": [{"role": "server", "State": {"Running": False, "Status": "exited"}}]})

    def test_legacy_servers(self):
        assert cluster_running({"servers": [{"state": "running"}]})

    def test_nothing(self):
        assert not cluster_running({"name": "dev"})


class TestNodesReady:
    def test_ready(self):
        assert nodes_ready(json.loads(READY_NODES))

    def test_no_nodes(self):
        assert not nodes_ready({"items": []})

    def test_one_not_ready(self):
        data = {"items": [
            {"status": {"conditions": [{"type": "Ready", "status": "True"}]}},
            {"status": {"conditions": [{"type": "Ready", "status": "False"}]}},
        ]}
        assert not nodes_ready(data)


class TestLifecycle:
    def test_context_name(self):
        assert context_name("dev") == "k3d-dev"

    def test_create_new(self, clock):
        runner = CreatingRunner()
        runner.on("k3d", "cluster", "list", stdout="[]")
        runner.on("kubectl", "get", "nodes", stdout=READY_NODES)

        assert lifecycle(runner, clock).create("dev", ready_timeout=60)

        commands = runner.commands
        assert ["k3d", "cluster", "create", "dev", "--wait", "--timeout=60s"] in commands
        assert ["k3d", "kubeconfig", "merge", "dev", "--kubeconfig-merge-default"] in commands
        assert ["kubectl", "config", "use-context", "k3d-dev"] in commands

    def test_create_running_is_noop(self, runner, clock):
        runner.on("k3d", "cluster", "list", stdout=RUNNING)
        runner.on("kubectl", "get", "nodes", stdout=READY_NODES)

        assert lifecycle(runner, clock).create("dev")
        assert not any(cmd[1:3] in (["cluster", "create"], ["cluster", "start"]) for cmd in runner.commands)

    def test_create_starts_stopped_cluster(self, runner, clock):
        runner.on("k3d", "cluster", "list", stdout=STOPPED)
        runner.on("kubectl", "get", "nodes", stdout=READY_NODES)

        ready = lifecycle(runner, clock).create("dev", ready_timeout=10)

        assert ["k3d", "cluster", "start", "dev"] in runner.commands
        assert not ready
        assert clock.sleeps == [5, 5]

    def test_create_failure_raises(self, runner, clock):
        runner.on("k3d", "cluster", "list", stdout="[]")
        runner.on("k3d", "cluster", "create", returncode=1, stderr="port 6443 already allocated")
        with pytest.raises(CommandError, match="already allocated"):
            lifecycle(runner, clock).create("dev")

    def test_merge_failure_propagates(self, runner, clock):
        runner.on("k3d", "cluster", "list", stdout=RUNNING)
        runner.on("k3d", "kubeconfig", returncode=1, stderr="cannot write kubeconfig")
        with pytest.raises(CommandError):
            lifecycle(runner, clock).create("dev")

    def test_wait_until_ready_tolerates_errors(self, runner, clock):
        runner.on("k3d", "cluster", "list", stdout=RUNNING)
        runner.on("kubectl", "get", "nodes", returncode=1, stderr="connection refused")
        assert not lifecycle(runner, clock).wait_until_ready("dev", timeout=12)
        assert clock.sleeps == [5, 5, 2]

    def test_delete_missing_is_noop(self, runner, clock):
        runner.on("k3d", "cluster", "list", stdout="[]")
        lifecycle(runner, clock).delete("dev")
        assert ["k3d", "cluster", "delete", "dev"] not in runner.commands

    def test_delete(self, runner, clock):
        runner.on("k3d", "cluster", "list", stdout=STOPPED)
        lifecycle(runner, clock).delete("dev")
        assert runner.commands[-1] == ["k3d", "cluster", "delete", "dev"]

    def test_stop(self, runner, clock):
        runner.on("k3d", "cluster", "list", stdout=RUNNING)
        lifecycle(runner, clock).stop("dev")
        assert runner.commands[-1] == ["k3d", "cluster", "stop", "dev"]

    def test_list_invalid_json(self, runner, clock):
        runner.on("k3d", "cluster", "list", stdout="oops")
        with pytest.raises(CommandError, match="invalid JSON"):
            lifecycle(runner, clock).list_clusters()

    def test_use_remote_context(self, runner, clock):
        lifecycle(runner, clock).use_remote_context("prod-eu")
        assert runner.commands == [["kubectl", "config", "use-context", "prod-eu"]]
