"""
Kubernetes manifest generators for application services.

Generates ConfigMap, Secret, Deployment (or Job), Service and Ingress.
"""

import logging
from typing import Any, Dict, List, Optional

from .types import (
    ExposureType,
    HealthCheckConfig,
    ServiceDefinition,
    ServiceKind,
    Tier,
    VolumeConfig,
)
from .utils import merge_labels, normalize_storage_size, resource_name

logger = logging.getLogger(__name__)

DEFAULT_PROBE_PORT = 8080
LIVENESS_INITIAL_DELAY = 30
READINESS_INITIAL_DELAY = 10
JOB_TTL_SECONDS = 600

TIER_RESOURCES = {
    Tier.CORE: {
        "requests": {"memory": "512Mi", "cpu": "200m"},
        "limits": {"memory": "2Gi", "cpu": "1000m"},
    },
    Tier.APPLICATION: {
        "requests": {"memory": "256Mi", "cpu": "100m"},
        "limits": {"memory": "1Gi", "cpu": "500m"},
    },
    Tier.OTHER: {
        "requests": {"memory": "128Mi", "cpu": "50m"},
        "limits": {"memory": "512Mi", "cpu": "250m"},
    },
}

TIER_REPLICAS = {
    Tier.CORE: 2,
    Tier.APPLICATION: 1,
    Tier.OTHER: 1,
}


def app_namespace(service: ServiceDefinition, tier: Tier) -> str:
    return service.namespace or tier.namespace


def app_image(service: ServiceDefinition) -> Optional[str]:
    """Image for a service. Source-built kinds default to a local ``<name>:latest`` tag."""
    if service.image:
        return service.image
    if service.kind in (ServiceKind.CONTAINER, ServiceKind.JOB):
        return None
    return f"{service.name}:latest"


def _labels(service: ServiceDefinition, tier: Tier) -> Dict[str, str]:
    return merge_labels(
        service.labels,
        {"app": service.name, "type": "application", "tier": tier.value},
    )


def _metadata(service: ServiceDefinition, tier: Tier, name: Optional[str] = None) -> Dict[str, Any]:
    return {
        "name": name or service.name,
        "namespace": app_namespace(service, tier),
        "labels": _labels(service, tier),
    }


def _resources(service: ServiceDefinition, tier: Tier) -> Dict[str, Dict[str, str]]:
    if service.resources:
        return service.resources.to_k8s()
    envelope = TIER_RESOURCES[tier]
    return {
        "requests": dict(envelope["requests"]),
        "limits": dict(envelope["limits"]),
    }


def _build_probes(service: ServiceDefinition, health: HealthCheckConfig) -> Dict[str, Dict[str, Any]]:
    """Liveness and readiness probes; readiness starts earlier than liveness."""
    if health.port:
        port = health.port
    elif service.ports:
        port = service.ports[0].container_port
    else:
        port = DEFAULT_PROBE_PORT

    liveness = {
        "httpGet": {"path": health.path, "port": port},
        "initialDelaySeconds": health.initial_delay or LIVENESS_INITIAL_DELAY,
        "periodSeconds": health.period or 10,
        "timeoutSeconds": 5,
        "failureThreshold": 3,
    }
    readiness = dict(liveness, httpGet=dict(liveness["httpGet"]))
    readiness["initialDelaySeconds"] = min(
        READINESS_INITIAL_DELAY, liveness["initialDelaySeconds"] // 2
    )

    return {"livenessProbe": liveness, "readinessProbe": readiness}


def _build_volume(volume: VolumeConfig) -> Dict[str, Any]:
    if volume.config_map:
        return {"name": volume.name, "configMap": {"name": volume.config_map}}
    if volume.secret:
        return {"name": volume.name, "secret": {"secretName": volume.secret}}
    empty_dir: Dict[str, Any] = {}
    if volume.size:
        empty_dir["sizeLimit"] = normalize_storage_size(volume.size)
    return {"name": volume.name, "emptyDir": empty_dir}


def _build_container(service: ServiceDefinition, tier: Tier) -> Dict[str, Any]:
    container: Dict[str, Any] = {
        "name": service.name,
        "image": app_image(service),
    }

    if service.ports:
        container["ports"] = [
            {"name": port.name, "containerPort": port.container_port, "protocol": port.protocol}
            for port in service.ports
        ]

    env_from = []
    if service.env:
        env_from.append({"configMapRef": {"name": resource_name(service.name, "config")}})
    for secret in service.secrets:
        env_from.append({"secretRef": {"name": resource_name(service.name, secret)}})
    if env_from:
        container["envFrom"] = env_from

    if service.health_check and service.kind != ServiceKind.JOB:
        container.update(_build_probes(service, service.health_check))

    container["resources"] = _resources(service, tier)

    if service.volumes:
        container["volumeMounts"] = [
            {"name": v.name, "mountPath": v.mount_path, "readOnly": v.read_only}
            for v in service.volumes
        ]

    return container


def _build_pod_spec(service: ServiceDefinition, tier: Tier) -> Dict[str, Any]:
    pod_spec: Dict[str, Any] = {"containers": [_build_container(service, tier)]}
    if service.volumes:
        pod_spec["volumes"] = [_build_volume(v) for v in service.volumes]
    return pod_spec


def generate_app_configmap(service: ServiceDefinition, tier: Tier) -> Optional[Dict[str, Any]]:
    if not service.env:
        return None

    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": _metadata(service, tier, resource_name(service.name, "config")),
        "data": dict(service.env),
    }


def generate_app_secrets(service: ServiceDefinition, tier: Tier) -> List[Dict[str, Any]]:
    """One Opaque Secret per entry in ``secrets``, named ``<service>-<secret>``."""
    return [
        {
            "apiVersion": "v1",
            "kind": "Secret",
            "metadata": _metadata(service, tier, resource_name(service.name, secret)),
            "type": "Opaque",
            "stringData": dict(values),
        }
        for secret, values in service.secrets.items()
    ]


def generate_app_deployment(service: ServiceDefinition, tier: Tier) -> Dict[str, Any]:
    """Deployment with RollingUpdate strategy and tier-derived defaults."""
    labels = _labels(service, tier)
    replicas = service.replicas if service.replicas is not None else TIER_REPLICAS[tier]

    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": _metadata(service, tier),
        "spec": {
            "replicas": replicas,
            "strategy": {
                "type": "RollingUpdate",
                "rollingUpdate": {"maxUnavailable": 1, "maxSurge": 1},
            },
            "selector": {"matchLabels": {"app": service.name}},
            "template": {
                "metadata": {"labels": labels},
                "spec": _build_pod_spec(service, tier),
            },
        },
    }


def generate_app_job(service: ServiceDefinition, tier: Tier) -> Dict[str, Any]:
    """One-shot Job for ``kind: job`` services."""
    pod_spec = _build_pod_spec(service, tier)
    pod_spec["restartPolicy"] = "Never"

    return {
        "apiVersion": "batch/v1",
        "kind": "Job",
        "metadata": _metadata(service, tier),
        "spec": {
            "backoffLimit": 3,
            "ttlSecondsAfterFinished": JOB_TTL_SECONDS,
            "template": {
                "metadata": {"labels": _labels(service, tier)},
                "spec": pod_spec,
            },
        },
    }


def generate_app_service(service: ServiceDefinition, tier: Tier) -> Optional[Dict[str, Any]]:
    if not service.ports:
        return None

    exposure = service.service_type or ExposureType.CLUSTER_IP
    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": _metadata(service, tier),
        "spec": {
            "type": exposure.value,
            "selector": {"app": service.name},
            "ports": [
                {
                    "name": port.name or f"port-{port.exposed_port}",
                    "port": port.exposed_port,
                    "targetPort": port.container_port,
                    "protocol": port.protocol,
                }
                for port in service.ports
            ],
        },
    }


def generate_app_ingress(service: ServiceDefinition, tier: Tier) -> Optional[Dict[str, Any]]:
    ingress = service.ingress
    if not ingress or not ingress.hosts or not service.ports:
        return None

    metadata = _metadata(service, tier)
    if ingress.annotations:
        metadata["annotations"] = dict(ingress.annotations)

    backend = {
        "service": {
            "name": service.name,
            "port": {"number": service.ports[0].exposed_port},
        }
    }

    spec: Dict[str, Any] = {
        "rules": [
            {
                "host": host,
                "http": {
                    "paths": [{"path": ingress.path, "pathType": "Prefix", "backend": backend}],
                },
            }
            for host in ingress.hosts
        ],
    }
    if ingress.tls:
        spec["tls"] = [
            {"hosts": list(tls.hosts), "secretName": tls.secret_name}
            for tls in ingress.tls
        ]

    return {
        "apiVersion": "networking.k8s.io/v1",
        "kind": "Ingress",
        "metadata": metadata,
        "spec": spec,
    }


def generate_app_manifests(service: ServiceDefinition, tier: Tier) -> List[Dict[str, Any]]:
    """
    Generate all manifests for an application service.

    Order: ConfigMap, Secrets, Deployment/Job, Service, Ingress.
    """
    manifests: List[Dict[str, Any]] = []

    configmap = generate_app_configmap(service, tier)
    if configmap:
        manifests.append(configmap)

    manifests.extend(generate_app_secrets(service, tier))

    if service.kind == ServiceKind.JOB:
        manifests.append(generate_app_job(service, tier))
        logger.debug("Generated %d manifests for job %s", len(manifests), service.name)
        return manifests

    manifests.append(generate_app_deployment(service, tier))

    svc = generate_app_service(service, tier)
    if svc:
        manifests.append(svc)

    ingress = generate_app_ingress(service, tier)
    if ingress:
        manifests.append(ingress)

    logger.debug("Generated %d manifests for app service %s", len(manifests), service.name)
    return manifests
