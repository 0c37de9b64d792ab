"""
Type definitions for the k3sdev service catalog.

These dataclasses represent services.yaml: infrastructure services (stateful,
single instance, persistent storage) and application services (stateless,
replicated). Use ``from_dict`` to construct them from parsed YAML.

Catalog entries are frozen: fields cannot be reassigned once built. The
lists and dicts they hold are shared with every caller and must be treated
as read-only; generators copy them into fresh manifest documents.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import CatalogError


class Tier(str, Enum):
    """Service tier. Drives default namespace, replicas and resources."""
    CORE = "core"
    APPLICATION = "application"
    OTHER = "other"

    @property
    def namespace(self) -> str:
        return TIER_NAMESPACES[self]


TIER_NAMESPACES = {
    Tier.CORE: "core-services",
    Tier.APPLICATION: "app-services",
    Tier.OTHER: "other-services",
}

# Services reachable from outside the cluster through a NodePort
DEFAULT_EXTERNAL_ACCESS = ("mysql", "redis", "elastic-search")


class ServiceKind(str, Enum):
    """How an application service is built and run."""
    TYPESCRIPT = "typescript"
    JAVASCRIPT = "javascript"
    DENO = "deno"
    RUST = "rust"
    CONTAINER = "container"
    JOB = "job"


class ExposureType(str, Enum):
    """Kubernetes Service type."""
    CLUSTER_IP = "ClusterIP"
    NODE_PORT = "NodePort"
    LOAD_BALANCER = "LoadBalancer"


@dataclass(frozen=True)
class PortConfig:
    """Application port. ``service_port`` is the port exposed by the Service."""
    name: str
    container_port: int
    service_port: Optional[int] = None
    protocol: str = "TCP"

    @property
    def exposed_port(self) -> int:
        return self.service_port or self.container_port

    @classmethod
    def from_dict(cls, data: Dict) -> "PortConfig":
        return cls(
            name=data["name"],
            container_port=data["container_port"],
            service_port=data.get("service_port"),
            protocol=data.get("protocol", "TCP"),
        )


@dataclass(frozen=True)
class VolumeConfig:
    """Application volume.

    Backed by a ConfigMap, a Secret or (when neither is set) an emptyDir.
    """
    name: str
    mount_path: str
    size: Optional[str] = None
    read_only: bool = False
    config_map: Optional[str] = None
    secret: Optional[str] = None

    def __post_init__(self):
        if self.config_map and self.secret:
            raise CatalogError(
                f"volume '{self.name}' sets both config_map and secret"
            )

    @classmethod
    def from_dict(cls, data: Dict) -> "VolumeConfig":
        return cls(
            name=data["name"],
            mount_path=data["mount_path"],
            size=data.get("size"),
            read_only=data.get("read_only", False),
            config_map=data.get("config_map"),
            secret=data.get("secret"),
        )


@dataclass(frozen=True)
class ResourcesConfig:
    """Resource requests and limits, e.g. ``{"memory": "256Mi", "cpu": "100m"}``."""
    requests: Dict[str, str] = field(default_factory=dict)
    limits: Dict[str, str] = field(default_factory=dict)

    def to_k8s(self) -> Dict[str, Dict[str, str]]:
        result = {}
        if self.requests:
            result["requests"] = dict(self.requests)
        if self.limits:
            result["limits"] = dict(self.limits)
        return result

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> Optional["ResourcesConfig"]:
        if not data:
            return None
        return cls(
            requests={k: str(v) for k, v in (data.get("requests") or {}).items()},
            limits={k: str(v) for k, v in (data.get("limits") or {}).items()},
        )


@dataclass(frozen=True)
class HealthCheckConfig:
    """HTTP health endpoint used for liveness and readiness probes."""
    path: str
    port: Optional[int] = None
    initial_delay: Optional[int] = None
    period: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> Optional["HealthCheckConfig"]:
        if not data:
            return None
        return cls(
            path=data["path"],
            port=data.get("port"),
            initial_delay=data.get("initial_delay"),
            period=data.get("period"),
        )


@dataclass(frozen=True)
class TlsConfig:
    secret_name: str
    hosts: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict) -> "TlsConfig":
        return cls(
            secret_name=data["secret_name"],
            hosts=list(data.get("hosts", [])),
        )


@dataclass(frozen=True)
class IngressConfig:
    """Ingress routing for an application service."""
    hosts: List[str] = field(default_factory=list)
    path: str = "/"
    annotations: Dict[str, str] = field(default_factory=dict)
    tls: List[TlsConfig] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> Optional["IngressConfig"]:
        if not data:
            return None
        return cls(
            hosts=list(data.get("hosts", [])),
            path=data.get("path", "/"),
            annotations=dict(data.get("annotations", {})),
            tls=[TlsConfig.from_dict(t) for t in data.get("tls", [])],
        )


@dataclass(frozen=True)
class CommandConfig:
    """Local run command. Carried for completeness; not used by generation."""
    type: str
    run: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> Optional["CommandConfig"]:
        if not data:
            return None
        return cls(type=data["type"], run=list(data.get("run", [])))


@dataclass(frozen=True)
class ServiceDefinition:
    """Application service entry from services.yaml."""
    name: str
    kind: ServiceKind = ServiceKind.CONTAINER
    image: Optional[str] = None
    repository: Optional[str] = None
    command: Optional[CommandConfig] = None
    tier: Optional[Tier] = None
    replicas: Optional[int] = None
    ports: List[PortConfig] = field(default_factory=list)
    volumes: List[VolumeConfig] = field(default_factory=list)
    secrets: Dict[str, Dict[str, str]] = field(default_factory=dict)
    resources: Optional[ResourcesConfig] = None
    env: Dict[str, str] = field(default_factory=dict)
    dependencies: List[str] = field(default_factory=list)
    health_check: Optional[HealthCheckConfig] = None
    ingress: Optional[IngressConfig] = None
    namespace: Optional[str] = None
    service_type: Optional[ExposureType] = None
    labels: Dict[str, str] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data: Dict) -> "ServiceDefinition":
        kind = data.get("kind", "container")
        tier = data.get("tier")
        service_type = data.get("service_type")
        return cls(
            name=data["name"],
            kind=ServiceKind(kind),
            image=data.get("image"),
            repository=data.get("repository"),
            command=CommandConfig.from_dict(data.get("command")),
            tier=Tier(tier) if tier else None,
            replicas=data.get("replicas"),
            ports=[PortConfig.from_dict(p) for p in data.get("ports", [])],
            volumes=[VolumeConfig.from_dict(v) for v in data.get("volumes", [])],
            secrets={
                name: dict(values or {})
                for name, values in (data.get("secrets") or {}).items()
            },
            resources=ResourcesConfig.from_dict(data.get("resources")),
            env=dict(data.get("env") or {}),
            dependencies=list(data.get("dependencies", [])),
            health_check=HealthCheckConfig.from_dict(data.get("health_check")),
            ingress=IngressConfig.from_dict(data.get("ingress")),
            namespace=data.get("namespace"),
            service_type=ExposureType(service_type) if service_type else None,
            labels=dict(data.get("labels") or {}),
        )


@dataclass(frozen=True)
class InfraPortConfig:
    name: Optional[str]
    port: int
    target_port: Optional[int] = None

    @classmethod
    def from_dict(cls, data: Dict) -> "InfraPortConfig":
        return cls(
            name=data.get("name"),
            port=data["port"],
            target_port=data.get("target_port"),
        )


@dataclass(frozen=True)
class InfraVolumeConfig:
    name: str
    mount_path: str
    size: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict) -> "InfraVolumeConfig":
        return cls(
            name=data["name"],
            mount_path=data["mount_path"],
            size=data.get("size"),
        )


@dataclass(frozen=True)
class InfraServiceConfig:
    """Infrastructure service entry (database, cache, broker)."""
    name: str
    namespace: str
    image: str
    ports: List[InfraPortConfig] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)
    secrets: Dict[str, str] = field(default_factory=dict)
    volumes: List[InfraVolumeConfig] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict) -> "InfraServiceConfig":
        return cls(
            name=data["name"],
            namespace=data["namespace"],
            image=data["image"],
            ports=[InfraPortConfig.from_dict(p) for p in data.get("ports", [])],
            env=dict(data.get("env") or {}),
            secrets=dict(data.get("secrets") or {}),
            volumes=[InfraVolumeConfig.from_dict(v) for v in data.get("volumes", [])],
        )


@dataclass(frozen=True)
class ServiceCatalog:
    """Root services.yaml configuration."""
    infra_services: List[InfraServiceConfig] = field(default_factory=list)
    app_services: List[ServiceDefinition] = field(default_factory=list)
    tiers: Dict[str, Tier] = field(default_factory=dict)
    external_access: List[str] = field(default_factory=lambda: list(DEFAULT_EXTERNAL_ACCESS))
    version: int = 1

    def __post_init__(self):
        seen = set()
        duplicates = []
        for name in self.names():
            if name in seen:
                duplicates.append(name)
            seen.add(name)
        if duplicates:
            raise CatalogError("duplicate service names", sorted(set(duplicates)))

    def names(self) -> List[str]:
        return [s.name for s in self.infra_services] + [s.name for s in self.app_services]

    def get_infra(self, name: str) -> Optional[InfraServiceConfig]:
        for service in self.infra_services:
            if service.name == name:
                return service
        return None

    def get_app(self, name: str) -> Optional[ServiceDefinition]:
        for service in self.app_services:
            if service.name == name:
                return service
        return None

    def is_infra(self, name: str) -> bool:
        return self.get_infra(name) is not None

    def __contains__(self, name: str) -> bool:
        return self.get_infra(name) is not None or self.get_app(name) is not None

    def tier_of(self, name: str) -> Tier:
        """Tier for a service: its own ``tier`` field, then the tiers table, then OTHER."""
        app = self.get_app(name)
        if app and app.tier:
            return app.tier
        return self.tiers.get(name, Tier.OTHER)

    def namespace_of(self, name: str) -> str:
        infra = self.get_infra(name)
        if infra:
            return infra.namespace
        app = self.get_app(name)
        if app and app.namespace:
            return app.namespace
        return self.tier_of(name).namespace

    @classmethod
    def from_dict(cls, data: Optional[Dict]) -> "ServiceCatalog":
        data = data or {}
        tiers: Dict[str, Tier] = {}
        for tier_name, members in (data.get("tiers") or {}).items():
            for member in members or []:
                tiers[member] = Tier(tier_name)
        external = data.get("external_access")
        return cls(
            infra_services=[InfraServiceConfig.from_dict(s) for s in data.get("infra", [])],
            app_services=[ServiceDefinition.from_dict(s) for s in data.get("services", [])],
            tiers=tiers,
            external_access=list(external) if external is not None else list(DEFAULT_EXTERNAL_ACCESS),
            version=data.get("version", 1),
        )


# Health records


class HealthState(str, Enum):
    HEALTHY = "healthy"
    PENDING = "pending"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass
class ContainerHealth:
    name: str
    ready: bool
    restart_count: int = 0
    state: str = "unknown"  # running, waiting, terminated
    reason: Optional[str] = None


@dataclass
class PodHealth:
    name: str
    phase: str
    ready: bool
    restarts: int = 0
    age: str = "unknown"
    containers: List[ContainerHealth] = field(default_factory=list)


@dataclass
class EndpointHealth:
    address: str
    available: bool
    port: Optional[int] = None


@dataclass
class ServiceHealth:
    """Point-in-time health of one service."""
    service_name: str
    namespace: str
    status: HealthState
    pods: List[PodHealth] = field(default_factory=list)
    endpoints: List[EndpointHealth] = field(default_factory=list)
    messages: List[str] = field(default_factory=list)
    last_checked: datetime = field(default_factory=datetime.now)

    @property
    def healthy(self) -> bool:
        return self.status == HealthState.HEALTHY

    def to_dict(self) -> Dict[str, Any]:
        return {
            "service": self.service_name,
            "namespace": self.namespace,
            "status": self.status.value,
            "pods": [
                {"name": p.name, "phase": p.phase, "ready": p.ready, "restarts": p.restarts, "age": p.age}
                for p in self.pods
            ],
            "endpoints": [
                {"address": e.address, "available": e.available, "port": e.port}
                for e in self.endpoints
            ],
            "messages": list(self.messages),
            "last_checked": self.last_checked.isoformat(),
        }


@dataclass(frozen=True)
class WaitConfig:
    """Polling parameters for wait-until-healthy (seconds)."""
    timeout: float = 300
    interval: float = 5
    required_successes: int = 2
    allowed_failures: int = 3
