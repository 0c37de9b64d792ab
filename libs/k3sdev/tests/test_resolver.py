"""Tests for dependency resolution and ordering."""

import pytest

from k3sdev.errors import CycleDetected
from k3sdev.resolver import DependencyResolver, is_synthetic
from k3sdev.types import ServiceCatalog


def make_catalog(services, infra=None):
    return ServiceCatalog.from_dict({"services": services, "infra": infra or []})


@pytest.fixture
def chain():
    """A depends on B, B depends on C."""
    return DependencyResolver(make_catalog([
        {"name": "a", "dependencies": ["b"]},
        {"name": "b", "dependencies": ["c"]},
        {"name": "c"},
    ]))


@pytest.fixture
def platform():
    return make_catalog(
        services=[
            {
                "name": "api",
                "dependencies": ["auth"],
                "env": {"REDIS_HOST": "redis.core-services", "LOG_LEVEL": "info"},
                "volumes": [
                    {"name": "conf", "mount_path": "/conf", "config_map": "api-files"},
                    {"name": "tls", "mount_path": "/tls", "secret": "api-tls"},
                    {"name": "tmp", "mount_path": "/tmp"},
                ],
            },
            {"name": "auth", "env": {"DB_URL": "mysql://mysql:3306/auth"}},
            {"name": "worker", "dependencies": ["api"]},
        ],
        infra=[
            {
                "name": "redis",
                "namespace": "core-services",
                "image": "redis:7",
                "volumes": [{"name": "data", "mount_path": "/data"}],
            },
            {"name": "mysql", "namespace": "core-services", "image": "mysql:8"},
        ],
    )


class TestResolve:
    def test_explicit_inferred_and_synthetic(self, platform):
        resolver = DependencyResolver(platform)
        assert resolver.resolve("api") == {
            "auth",
            "redis",
            "configmap:api-files",
            "secret:api-tls",
        }

    def test_catalog_infra_inferred_from_url(self, platform):
        assert DependencyResolver(platform).resolve("auth") == {"mysql"}

    def test_infra_storage_dependencies(self, platform):
        resolver = DependencyResolver(platform)
        assert resolver.resolve("redis") == {"pvc:redis-data-pvc"}
        assert resolver.service_dependencies("redis") == set()

    def test_unknown_service(self, platform):
        assert DependencyResolver(platform).resolve("ghost") == set()

    def test_is_synthetic(self):
        assert is_synthetic("pvc:x")
        assert is_synthetic("configmap:x")
        assert not is_synthetic("redis")

    def test_self_reference_ignored(self):
        resolver = DependencyResolver(make_catalog([
            {"name": "redis-proxy", "env": {"UPSTREAM_HOST": "redis-proxy.core-services"}},
        ]))
        assert resolver.resolve("redis-proxy") == set()

    def test_returned_set_is_a_copy(self, platform):
        resolver = DependencyResolver(platform)
        resolver.resolve("api").add("bogus")
        assert "bogus" not in resolver.resolve("api")


class TestCache:
    def test_results_cached(self, platform):
        resolver = DependencyResolver(platform)
        resolver.resolve("api")
        assert "api" in resolver.graph()

    def test_invalidate_single(self, platform):
        resolver = DependencyResolver(platform)
        resolver.resolve("api")
        resolver.resolve("auth")
        resolver.invalidate("api")
        graph = resolver.graph()
        assert "api" not in graph
        assert "auth" in graph

    def test_invalidate_all(self, platform):
        resolver = DependencyResolver(platform)
        resolver.resolve("api")
        resolver.invalidate()
        assert resolver.graph() == {}

    def test_reload_picks_up_changes(self):
        resolver = DependencyResolver(make_catalog([{"name": "a"}, {"name": "b"}]))
        assert resolver.resolve("a") == set()
        resolver.reload(make_catalog([{"name": "a", "dependencies": ["b"]}, {"name": "b"}]))
        assert resolver.resolve("a") == {"b"}

    def test_stale_until_invalidated(self):
        resolver = DependencyResolver(make_catalog([{"name": "a"}, {"name": "b"}]))
        resolver.resolve("a")
        resolver.catalog = make_catalog([{"name": "a", "dependencies": ["b"]}, {"name": "b"}])
        assert resolver.resolve("a") == set()
        resolver.invalidate("a")
        assert resolver.resolve("a") == {"b"}


class TestReverseLookup:
    def test_dependents(self, platform):
        resolver = DependencyResolver(platform)
        assert resolver.dependents("auth") == {"api"}
        assert resolver.dependents("api") == {"worker"}
        assert resolver.dependents("worker") == set()

    def test_has_dependencies(self, platform):
        resolver = DependencyResolver(platform)
        assert resolver.has_dependencies("api")
        assert resolver.has_dependencies("worker")
        assert not resolver.has_dependencies("mysql")


class TestOrder:
    def test_chain(self, chain):
        assert chain.order(["a", "b", "c"]) == ["c", "b", "a"]

    def test_respects_requested_subset(self, chain):
        assert chain.order(["a", "c"]) == ["c", "a"]

    def test_duplicates_dropped(self, chain):
        assert chain.order(["c", "c", "b"]) == ["c", "b"]

    def test_independent_keep_request_order(self):
        resolver = DependencyResolver(make_catalog([{"name": "x"}, {"name": "y"}, {"name": "z"}]))
        assert resolver.order(["z", "x", "y"]) == ["z", "x", "y"]

    def test_every_dependency_precedes_dependent(self, platform):
        resolver = DependencyResolver(platform)
        order = resolver.order(["worker", "api", "auth", "mysql", "redis"])
        for service in order:
            for dependency in resolver.service_dependencies(service):
                if dependency in order:
                    assert order.index(dependency) < order.index(service)

    def test_cycle(self):
        resolver = DependencyResolver(make_catalog([
            {"name": "a", "dependencies": ["b"]},
            {"name": "b", "dependencies": ["a"]},
        ]))
        with pytest.raises(CycleDetected) as exc:
            resolver.order(["a", "b"])
        assert set(exc.value.members) == {"a", "b"}
        assert exc.value.path[0] == exc.value.path[-1]
        assert "a -> b -> a" in str(exc.value)

    def test_longer_cycle_reports_chain(self):
        resolver = DependencyResolver(make_catalog([
            {"name": "root", "dependencies": ["a"]},
            {"name": "a", "dependencies": ["b"]},
            {"name": "b", "dependencies": ["c"]},
            {"name": "c", "dependencies": ["a"]},
        ]))
        with pytest.raises(CycleDetected) as exc:
            resolver.order(["root", "a"])
        assert exc.value.path == ["a", "b", "c", "a"]

    def test_loop_outside_request_is_ignored(self):
        resolver = DependencyResolver(make_catalog([
            {"name": "root", "dependencies": ["a"]},
            {"name": "a", "dependencies": ["b"]},
            {"name": "b", "dependencies": ["a"]},
        ]))
        assert resolver.order(["root"]) == ["root"]
        with pytest.raises(CycleDetected) as exc:
            resolver.order(["root", "a", "b"])
        assert set(exc.value.members) == {"a", "b"}

    def test_order_through_unrequested_loop(self):
        resolver = DependencyResolver(make_catalog([
            {"name": "web", "dependencies": ["gateway"]},
            {"name": "gateway", "dependencies": ["sidecar", "api"]},
            {"name": "sidecar", "dependencies": ["gateway"]},
            {"name": "api"},
        ]))
        assert resolver.order(["web", "api"]) == ["api", "web"]

    def test_requested_service_looping_through_others(self):
        resolver = DependencyResolver(make_catalog([
            {"name": "api", "dependencies": ["proxy"]},
            {"name": "proxy", "dependencies": ["api"]},
        ]))
        with pytest.raises(CycleDetected) as exc:
            resolver.order(["api"])
        assert exc.value.path == ["api", "proxy", "api"]

    def test_self_dependency(self):
        resolver = DependencyResolver(make_catalog([{"name": "a", "dependencies": ["a"]}]))
        assert resolver.find_cycle("a") == ["a", "a"]
        with pytest.raises(CycleDetected):
            resolver.order(["a"])

    def test_find_cycle_none(self, chain):
        assert chain.find_cycle("a") is None


class TestInfraClosure:
    def test_transitive(self, platform):
        resolver = DependencyResolver(platform)
        assert resolver.infra_closure(["worker"]) == ["mysql", "redis"]

    def test_requested_infra_included(self, platform):
        assert DependencyResolver(platform).infra_closure(["mysql"]) == ["mysql"]

    def test_none(self, platform):
        assert DependencyResolver(platform).infra_closure(["ghost"]) == []
