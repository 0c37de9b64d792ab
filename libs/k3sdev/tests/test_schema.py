"""Tests for services.yaml loading and validation."""

import pytest
import yaml

from k3sdev.errors import CatalogError
from k3sdev.schema import find_catalog, load_catalog, parse_catalog, validate_catalog


VALID_CATALOG = {
    "version": 1,
    "tiers": {"core": ["auth"]},
    "infra": [
        {
            "name": "redis",
            "namespace": "core-services",
            "image": "redis:7",
            "ports": [{"name": "redis", "port": 6379}],
            "volumes": [{"name": "data", "mount_path": "/data", "size": "1Gi"}],
        },
    ],
    "services": [
        {
            "name": "auth",
            "image": "auth:latest",
            "ports": [{"name": "http", "container_port": 8080}],
            "env": {"REDIS_HOST": "redis.core-services", "WORKERS": 4},
            "health_check": {"path": "/health"},
        },
    ],
}


@pytest.fixture
def catalog_file(tmp_path):
    path = tmp_path / "services.yaml"
    path.write_text(yaml.dump(VALID_CATALOG))
    return path


class TestValidateCatalog:
    def test_valid(self):
        assert validate_catalog(VALID_CATALOG) == []

    def test_empty(self):
        assert validate_catalog({}) == []

    def test_invalid_name(self):
        data = {"services": [{"name": "Auth_Service"}]}
        errors = validate_catalog(data)
        assert len(errors) == 1
        assert errors[0].startswith("services.0.name:")

    def test_infra_requires_namespace(self):
        data = {"infra": [{"name": "redis", "image": "redis:7"}]}
        errors = validate_catalog(data)
        assert any("'namespace' is a required property" in e for e in errors)

    def test_volume_backing_exclusive(self):
        data = {"services": [{
            "name": "api",
            "volumes": [{"name": "v", "mount_path": "/v", "config_map": "a", "secret": "b"}],
        }]}
        assert validate_catalog(data)

    def test_unknown_field(self):
        errors = validate_catalog({"services": [{"name": "api", "replica": 2}]})
        assert any("replica" in e for e in errors)

    def test_port_range(self):
        data = {"services": [{"name": "api", "ports": [{"name": "http", "container_port": 70000}]}]}
        assert validate_catalog(data)


class TestLoadCatalog:
    def test_load(self, catalog_file):
        catalog = load_catalog(str(catalog_file))
        assert catalog.names() == ["redis", "auth"]
        assert catalog.get_app("auth").env["WORKERS"] == 4

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            load_catalog(str(tmp_path / "nope.yaml"))

    def test_invalid_raises_catalog_error(self, tmp_path):
        path = tmp_path / "services.yaml"
        path.write_text(yaml.dump({"services": [{"name": "-bad-"}]}))
        with pytest.raises(CatalogError) as exc:
            load_catalog(str(path))
        assert exc.value.errors

    def test_malformed_yaml(self, tmp_path):
        path = tmp_path / "services.yaml"
        path.write_text("services: [unclosed\n")
        with pytest.raises(CatalogError, match="not valid YAML"):
            load_catalog(str(path))

    def test_empty_file(self, tmp_path):
        path = tmp_path / "services.yaml"
        path.write_text("")
        assert load_catalog(str(path)).names() == []

    def test_skip_validation(self):
        catalog = parse_catalog({"services": [{"name": "Upper"}]}, validate=False)
        assert catalog.get_app("Upper") is not None


class TestFindCatalog:
    def test_finds_in_parent(self, catalog_file, monkeypatch):
        nested = catalog_file.parent / "a" / "b"
        nested.mkdir(parents=True)
        monkeypatch.chdir(nested)
        assert find_catalog() == catalog_file

    def test_not_found(self, tmp_path, monkeypatch):
        monkeypatch.chdir(tmp_path)
        assert find_catalog("no-such-catalog-file.yaml") is None
