"""
Kubernetes manifest generators for infrastructure services.

Infrastructure services (databases, caches, brokers) run as a single
replica with the Recreate strategy and keep their data on a hostPath
PersistentVolume bound to a PersistentVolumeClaim.
"""

import logging
from typing import Any, Dict, List, Optional, Sequence

from .types import DEFAULT_EXTERNAL_ACCESS, InfraServiceConfig, InfraVolumeConfig
from .utils import normalize_storage_size, resource_name

logger = logging.getLogger(__name__)

STORAGE_CLASS = "local-storage"
HOST_DATA_ROOT = "/mnt/data"

NODE_PORT_BASE = 30100
NODE_PORT_RANGE = 32700 - NODE_PORT_BASE

INFRA_RESOURCES = {
    "requests": {"memory": "256Mi", "cpu": "100m"},
    "limits": {"memory": "1Gi", "cpu": "500m"},
}


def _labels(config: InfraServiceConfig) -> Dict[str, str]:
    return {"app": config.name, "type": "infrastructure"}


def _string_hash(value: str) -> int:
    """32-bit ``h * 31 + c`` string hash, as an absolute value."""
    h = 0
    for char in value:
        h = (h * 31 + ord(char)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def external_node_port(service_name: str, port: int, index: int) -> int:
    """Deterministic NodePort for an externally reachable infra port."""
    return NODE_PORT_BASE + _string_hash(f"{service_name}{port}{index}") % NODE_PORT_RANGE


def secret_name(config: InfraServiceConfig) -> str:
    return resource_name(config.name, "secrets")


def config_map_name(config: InfraServiceConfig) -> str:
    return resource_name(config.name, "config")


def claim_name(config: InfraServiceConfig, volume: InfraVolumeConfig) -> str:
    return resource_name(config.name, "pvc", volume.name)


def generate_infra_secret(config: InfraServiceConfig) -> Optional[Dict[str, Any]]:
    """Secret with plain stringData; the API server does the encoding."""
    if not config.secrets:
        return None

    return {
        "apiVersion": "v1",
        "kind": "Secret",
        "metadata": {
            "name": secret_name(config),
            "namespace": config.namespace,
            "labels": _labels(config),
        },
        "type": "Opaque",
        "stringData": dict(config.secrets),
    }


def generate_infra_configmap(config: InfraServiceConfig) -> Optional[Dict[str, Any]]:
    if not config.env:
        return None

    return {
        "apiVersion": "v1",
        "kind": "ConfigMap",
        "metadata": {
            "name": config_map_name(config),
            "namespace": config.namespace,
            "labels": _labels(config),
        },
        "data": dict(config.env),
    }


def generate_storage(config: InfraServiceConfig, volume: InfraVolumeConfig) -> List[Dict[str, Any]]:
    """PersistentVolume + PersistentVolumeClaim pair for one volume."""
    size = normalize_storage_size(volume.size)
    labels = {**_labels(config), "volume": volume.name}

    pv = {
        "apiVersion": "v1",
        "kind": "PersistentVolume",
        # Cluster-scoped: no namespace
        "metadata": {
            "name": resource_name(config.name, "pv", volume.name),
            "labels": labels,
        },
        "spec": {
            "capacity": {"storage": size},
            "accessModes": ["ReadWriteOnce"],
            "persistentVolumeReclaimPolicy": "Retain",
            "storageClassName": STORAGE_CLASS,
            "hostPath": {
                "path": f"{HOST_DATA_ROOT}/{config.name}/{volume.name}",
                "type": "DirectoryOrCreate",
            },
        },
    }

    pvc = {
        "apiVersion": "v1",
        "kind": "PersistentVolumeClaim",
        "metadata": {
            "name": claim_name(config, volume),
            "namespace": config.namespace,
            "labels": dict(labels),
        },
        "spec": {
            "accessModes": ["ReadWriteOnce"],
            "storageClassName": STORAGE_CLASS,
            "resources": {"requests": {"storage": size}},
            "selector": {
                "matchLabels": {"app": config.name, "volume": volume.name},
            },
        },
    }

    return [pv, pvc]


def generate_infra_deployment(config: InfraServiceConfig) -> Dict[str, Any]:
    """Single-replica Deployment with the Recreate strategy."""
    labels = _labels(config)

    container: Dict[str, Any] = {
        "name": config.name,
        "image": config.image,
        "ports": [
            {"containerPort": port.target_port or port.port, "protocol": "TCP"}
            for port in config.ports
        ],
    }

    env_vars = []
    for key in config.secrets:
        env_vars.append({
            "name": key,
            "valueFrom": {"secretKeyRef": {"name": secret_name(config), "key": key}},
        })
    for key in config.env:
        env_vars.append({
            "name": key,
            "valueFrom": {"configMapKeyRef": {"name": config_map_name(config), "key": key}},
        })
    if env_vars:
        container["env"] = env_vars

    if config.volumes:
        container["volumeMounts"] = [
            {"name": f"{volume.name}-storage", "mountPath": volume.mount_path}
            for volume in config.volumes
        ]

    container["resources"] = {
        "requests": dict(INFRA_RESOURCES["requests"]),
        "limits": dict(INFRA_RESOURCES["limits"]),
    }

    pod_spec: Dict[str, Any] = {"containers": [container]}
    if config.volumes:
        pod_spec["volumes"] = [
            {
                "name": f"{volume.name}-storage",
                "persistentVolumeClaim": {"claimName": claim_name(config, volume)},
            }
            for volume in config.volumes
        ]

    return {
        "apiVersion": "apps/v1",
        "kind": "Deployment",
        "metadata": {
            "name": config.name,
            "namespace": config.namespace,
            "labels": labels,
        },
        "spec": {
            "replicas": 1,
            "strategy": {"type": "Recreate"},
            "selector": {"matchLabels": dict(labels)},
            "template": {
                "metadata": {"labels": dict(labels)},
                "spec": pod_spec,
            },
        },
    }


def generate_infra_service(
    config: InfraServiceConfig,
    external_access: Sequence[str] = DEFAULT_EXTERNAL_ACCESS,
) -> Optional[Dict[str, Any]]:
    """ClusterIP Service, or NodePort when the service is on the external allow-list."""
    if not config.ports:
        return None

    labels = _labels(config)
    external = config.name in external_access

    ports = []
    for index, port in enumerate(config.ports):
        entry: Dict[str, Any] = {
            "name": port.name or f"port-{port.port}",
            "port": port.port,
            "targetPort": port.target_port or port.port,
            "protocol": "TCP",
        }
        if external:
            entry["nodePort"] = external_node_port(config.name, port.port, index)
        ports.append(entry)

    return {
        "apiVersion": "v1",
        "kind": "Service",
        "metadata": {
            "name": config.name,
            "namespace": config.namespace,
            "labels": labels,
        },
        "spec": {
            "type": "NodePort" if external else "ClusterIP",
            "selector": dict(labels),
            "ports": ports,
        },
    }


def generate_infra_manifests(
    config: InfraServiceConfig,
    external_access: Sequence[str] = DEFAULT_EXTERNAL_ACCESS,
) -> List[Dict[str, Any]]:
    """
    Generate all manifests for an infrastructure service.

    Order: Secret, ConfigMap, PV/PVC pairs, Deployment, Service.
    """
    manifests: List[Dict[str, Any]] = []

    secret = generate_infra_secret(config)
    if secret:
        manifests.append(secret)

    configmap = generate_infra_configmap(config)
    if configmap:
        manifests.append(configmap)

    for volume in config.volumes:
        manifests.extend(generate_storage(config, volume))

    manifests.append(generate_infra_deployment(config))

    service = generate_infra_service(config, external_access)
    if service:
        manifests.append(service)

    logger.debug("Generated %d manifests for infra service %s", len(manifests), config.name)
    return manifests
