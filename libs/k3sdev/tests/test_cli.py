"""Tests for the k3sdev command line."""

import json

import pytest
import yaml

from k3sdev import cli
from k3sdev.config import Settings
from k3sdev.errors import K3sDevError
from k3sdev.kubectl import Kubectl


CATALOG = {
    "infra": [
        {
            "name": "redis",
            "namespace": "core-services",
            "image": "redis:7",
            "ports": [{"name": "redis", "port": 6379}],
        },
    ],
    "services": [
        {
            "name": "api",
            "image": "api:1",
            "ports": [{"name": "http", "container_port": 8080}],
            "env": {"REDIS_HOST": "redis"},
        },
        {"name": "web", "image": "web:1", "dependencies": ["api"]},
    ],
}


@pytest.fixture
def catalog_file(tmp_path):
    path = tmp_path / "services.yaml"
    path.write_text(yaml.dump(CATALOG))
    return str(path)


@pytest.fixture
def fake_kubectl(runner, monkeypatch):
    monkeypatch.setattr(cli, "_kubectl", lambda settings: Kubectl(runner=runner))
    return runner


class TestSettings:
    def test_defaults(self):
        settings = Settings.from_env({})
        assert settings.catalog == "services.yaml"
        assert settings.cluster == "k3sdev"
        assert settings.context is None
        assert settings.command_timeout == 120

    def test_overrides(self):
        settings = Settings.from_env({
            "K3SDEV_CLUSTER": "dev",
            "K3SDEV_CONTEXT": "prod",
            "K3SDEV_COMMAND_TIMEOUT": "30",
            "K3SDEV_LOG_LEVEL": "debug",
        })
        assert settings.cluster == "dev"
        assert settings.context == "prod"
        assert settings.command_timeout == 30
        assert settings.log_level == "DEBUG"

    def test_bad_timeout(self):
        with pytest.raises(K3sDevError, match="K3SDEV_COMMAND_TIMEOUT"):
            Settings.from_env({"K3SDEV_COMMAND_TIMEOUT": "soon"})


class TestParser:
    def test_no_command(self, capsys):
        assert cli.main([]) == 0
        assert "usage" in capsys.readouterr().out

    def test_deploy_targets_exclusive(self):
        with pytest.raises(SystemExit):
            cli.create_parser().parse_args(["deploy", "api", "--cluster", "dev", "--context", "prod"])


class TestGenerate:
    def test_yaml(self, catalog_file, capsys):
        assert cli.main(["-f", catalog_file, "generate", "api"]) == 0
        docs = [d for d in yaml.safe_load_all(capsys.readouterr().out) if d]
        assert [d["kind"] for d in docs] == ["ConfigMap", "Deployment", "Service"]

    def test_json(self, catalog_file, capsys):
        assert cli.main(["-f", catalog_file, "generate", "redis", "--format", "json"]) == 0
        manifests = json.loads(capsys.readouterr().out)
        assert manifests[-1]["spec"]["type"] == "NodePort"

    def test_unknown_service(self, catalog_file, capsys):
        assert cli.main(["-f", catalog_file, "generate", "ghost"]) == 1
        err = capsys.readouterr().err
        assert "not found" in err
        assert "redis, api, web" in err

    def test_missing_catalog(self, tmp_path, capsys):
        assert cli.main(["-f", str(tmp_path / "nope.yaml"), "generate", "api"]) == 1
        assert "not found" in capsys.readouterr().err


class TestOrder:
    def test_order(self, catalog_file, capsys):
        assert cli.main(["-f", catalog_file, "order", "web", "api", "redis"]) == 0
        assert capsys.readouterr().out.split() == ["redis", "api", "web"]

    def test_cycle(self, tmp_path, capsys):
        path = tmp_path / "services.yaml"
        path.write_text(yaml.dump({"services": [
            {"name": "a", "dependencies": ["b"]},
            {"name": "b", "dependencies": ["a"]},
        ]}))
        assert cli.main(["-f", str(path), "order", "a", "b"]) == 1
        assert "circular dependency: a -> b -> a" in capsys.readouterr().err


class TestValidate:
    def test_valid(self, catalog_file, capsys):
        assert cli.main(["-f", catalog_file, "validate"]) == 0
        assert "1 infra services, 2 services" in capsys.readouterr().out

    def test_invalid(self, tmp_path, capsys):
        path = tmp_path / "services.yaml"
        path.write_text(yaml.dump({"services": [{"name": "Bad_Name"}]}))
        assert cli.main(["-f", str(path), "validate"]) == 1
        assert "services.0.name" in capsys.readouterr().err


class TestDeploy:
    def test_deploy(self, catalog_file, fake_kubectl, capsys):
        assert cli.main(["-f", catalog_file, "deploy", "web", "api"]) == 0
        out = capsys.readouterr().out.splitlines()
        assert [line.split()[0] for line in out] == ["redis", "api", "web"]
        assert all(line.split()[2] == "applied" for line in out)

    def test_deploy_failure_exit_code(self, catalog_file, fake_kubectl, capsys):
        fake_kubectl.on("kubectl", "create", "namespace", returncode=1, stderr="Unauthorized")
        assert cli.main(["-f", catalog_file, "deploy", "api"]) == 1
        assert "aborted" in capsys.readouterr().err

    def test_delete(self, catalog_file, fake_kubectl, capsys):
        assert cli.main(["-f", catalog_file, "delete", "api"]) == 0
        assert "deleted" in capsys.readouterr().out


class TestHealth:
    def test_json(self, catalog_file, fake_kubectl, capsys):
        assert cli.main(["-f", catalog_file, "health", "api", "--json"]) == 1
        data = json.loads(capsys.readouterr().out)
        assert data[0]["namespace"] == "other-services"
        assert data[0]["status"] == "pending"

    def test_explicit_namespace_skips_catalog(self, fake_kubectl, tmp_path, monkeypatch, capsys):
        monkeypatch.chdir(tmp_path)
        assert cli.main(["health", "api", "-n", "team-x"]) == 1
        assert "api (team-x): pending" in capsys.readouterr().out


class FakeLifecycle:
    def __init__(self, kubectl, **kwargs):
        pass

    def exists(self, name):
        return name == "dev"

    def is_running(self, name):
        return True


class TestCluster:
    def test_status(self, monkeypatch, capsys):
        monkeypatch.setattr(cli, "ClusterLifecycle", FakeLifecycle)
        assert cli.main(["cluster", "status", "dev"]) == 0
        assert capsys.readouterr().out.strip() == "dev: running"

    def test_status_missing(self, monkeypatch, capsys):
        monkeypatch.setattr(cli, "ClusterLifecycle", FakeLifecycle)
        assert cli.main(["cluster", "status", "other"]) == 1
