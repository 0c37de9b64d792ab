"""
Manifest generation entry points.

``generate_infra`` and ``generate_app`` check a catalog entry for predictable
problems, build its manifests and validate every name and namespace before
anything is serialized. Catalog problems come back as GenerationResult errors.
Illegal names raise ManifestValidationError.
"""

import logging
from typing import List, Sequence

from .app_manifests import app_image, generate_app_manifests
from .infra_manifests import generate_infra_manifests
from .results import GenerationResult
from .types import (
    DEFAULT_EXTERNAL_ACCESS,
    InfraServiceConfig,
    ServiceCatalog,
    ServiceDefinition,
    Tier,
)
from .utils import validate_manifests

logger = logging.getLogger(__name__)


def check_infra(config: InfraServiceConfig) -> List[str]:
    """Problems that prevent generating manifests for an infra service."""
    problems = []
    if not config.image:
        problems.append("image is required")
    if not config.namespace:
        problems.append("namespace is required")
    for port in config.ports:
        if not 0 < port.port < 65536:
            problems.append(f"port {port.port} is out of range")
    return problems


def check_app(service: ServiceDefinition) -> List[str]:
    """Problems that prevent generating manifests for an application service."""
    problems = []
    if not app_image(service):
        problems.append(f"image is required for {service.kind.value} services")
    if service.service_type and not service.ports:
        problems.append(
            f"service_type {service.service_type.value} requested but no ports are declared"
        )
    if service.ingress and service.ingress.hosts and not service.ports:
        problems.append("ingress requested but no ports are declared")
    if service.replicas is not None and service.replicas < 0:
        problems.append("replicas must not be negative")
    for port in service.ports:
        if not 0 < port.container_port < 65536:
            problems.append(f"port {port.name} has invalid container_port {port.container_port}")
    return problems


def generate_infra(
    config: InfraServiceConfig,
    external_access: Sequence[str] = DEFAULT_EXTERNAL_ACCESS,
) -> GenerationResult:
    """
    Generate manifests for an infrastructure service.

    Raises:
        ManifestValidationError: If a generated name or namespace is illegal.
    """
    problems = check_infra(config)
    if problems:
        logger.error("Cannot generate %s: %s", config.name, "; ".join(problems))
        return GenerationResult(service=config.name, errors=problems)

    manifests = generate_infra_manifests(config, external_access)
    validate_manifests(manifests)
    return GenerationResult(service=config.name, manifests=manifests)


def generate_app(service: ServiceDefinition, tier: Tier = Tier.OTHER) -> GenerationResult:
    """
    Generate manifests for an application service in the given tier.

    Raises:
        ManifestValidationError: If a generated name or namespace is illegal.
    """
    problems = check_app(service)
    if problems:
        logger.error("Cannot generate %s: %s", service.name, "; ".join(problems))
        return GenerationResult(service=service.name, errors=problems)

    manifests = generate_app_manifests(service, tier)
    validate_manifests(manifests)
    return GenerationResult(service=service.name, manifests=manifests)


def generate_for(catalog: ServiceCatalog, name: str) -> GenerationResult:
    """Generate manifests for any catalog service by name."""
    infra = catalog.get_infra(name)
    if infra:
        return generate_infra(infra, catalog.external_access)

    app = catalog.get_app(name)
    if app:
        return generate_app(app, catalog.tier_of(name))

    return GenerationResult(service=name, errors=[f"service '{name}' not found in catalog"])
