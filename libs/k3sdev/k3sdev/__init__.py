"""
k3sdev - multi-service development environments on k3s

Turns a catalog of service descriptions into Kubernetes manifests, orders
them by dependency and applies them through kubectl.
"""

__version__ = "0.1.0"

from .types import (
    Tier,
    ServiceKind,
    ExposureType,
    HealthState,
    PortConfig,
    VolumeConfig,
    ResourcesConfig,
    HealthCheckConfig,
    IngressConfig,
    ServiceDefinition,
    InfraServiceConfig,
    ServiceCatalog,
    ServiceHealth,
    WaitConfig,
)

from .errors import (
    K3sDevError,
    CatalogError,
    GenerationError,
    ManifestValidationError,
    CycleDetected,
    CommandError,
    HealthCheckFailed,
    HealthTimeout,
)

from .schema import (
    load_catalog,
    validate_catalog,
)

from .generators import (
    generate_infra,
    generate_app,
    generate_for,
)

from .resolver import DependencyResolver
from .health import HealthChecker
from .kubectl import Kubectl
from .cluster import ClusterLifecycle
from .orchestrator import Orchestrator
from .results import DeployResult, GenerationResult, Outcome, ServiceResult

__all__ = [
    # Types
    "Tier",
    "ServiceKind",
    "ExposureType",
    "HealthState",
    "PortConfig",
    "VolumeConfig",
    "ResourcesConfig",
    "HealthCheckConfig",
    "IngressConfig",
    "ServiceDefinition",
    "InfraServiceConfig",
    "ServiceCatalog",
    "ServiceHealth",
    "WaitConfig",
    # Errors
    "K3sDevError",
    "CatalogError",
    "GenerationError",
    "ManifestValidationError",
    "CycleDetected",
    "CommandError",
    "HealthCheckFailed",
    "HealthTimeout",
    # Schema
    "load_catalog",
    "validate_catalog",
    # Generators
    "generate_infra",
    "generate_app",
    "generate_for",
    # Runtime
    "DependencyResolver",
    "HealthChecker",
    "Kubectl",
    "ClusterLifecycle",
    "Orchestrator",
    "DeployResult",
    "GenerationResult",
    "Outcome",
    "ServiceResult",
]
