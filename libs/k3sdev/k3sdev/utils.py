"""
Manifest utilities: name legality, storage sizes, labels and serialization.
"""

import copy
import logging
import re
from typing import Any, Dict, Iterable, List, Optional

import yaml

from .errors import ManifestValidationError

logger = logging.getLogger(__name__)

MAX_NAME_LENGTH = 253
MAX_NAMESPACE_LENGTH = 63

NAME_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9.]*[a-z0-9])?$")
NAMESPACE_PATTERN = re.compile(r"^[a-z0-9]([-a-z0-9]*[a-z0-9])?$")
STORAGE_SIZE_PATTERN = re.compile(r"^\d+(\.\d+)?(Ki|Mi|Gi|Ti|Pi|Ei|k|M|G|T|P|E)?$")

DEFAULT_STORAGE_SIZE = "1Gi"

# Manifest kinds whose container env values are stringified before output
WORKLOAD_KINDS = ("Deployment", "StatefulSet", "DaemonSet", "Job")


def is_valid_name(name: Any) -> bool:
    """Check a resource name against the DNS subdomain rule."""
    if not isinstance(name, str) or not name:
        return False
    return len(name) <= MAX_NAME_LENGTH and bool(NAME_PATTERN.match(name))


def is_valid_namespace(namespace: Any) -> bool:
    """Check a namespace against the DNS label rule."""
    if not isinstance(namespace, str) or not namespace:
        return False
    return len(namespace) <= MAX_NAMESPACE_LENGTH and bool(NAMESPACE_PATTERN.match(namespace))


def normalize_storage_size(size: Optional[str]) -> str:
    """
    Normalize a storage quantity such as "10Gi".

    Blank input falls back to the default size. Malformed input falls back
    too, with a warning, instead of failing generation.
    """
    if size is None or not str(size).strip():
        logger.info("No storage size given, using default %s", DEFAULT_STORAGE_SIZE)
        return DEFAULT_STORAGE_SIZE

    value = str(size).strip()
    if not STORAGE_SIZE_PATTERN.match(value):
        logger.warning(
            "Invalid storage size %r, using default %s", size, DEFAULT_STORAGE_SIZE
        )
        return DEFAULT_STORAGE_SIZE

    return value


def merge_labels(*sources: Optional[Dict[str, str]]) -> Dict[str, str]:
    """Merge label maps; later sources override earlier ones."""
    merged: Dict[str, str] = {}
    for source in sources:
        if source:
            merged.update(source)
    return merged


def to_k8s_name(name: str) -> str:
    """Convert name to valid K8s resource name."""
    return name.replace("_", "-").lower()


def resource_name(service: str, resource_type: str, suffix: Optional[str] = None) -> str:
    """Build a resource name such as ``mysql-data-pvc``."""
    parts = [service]
    if suffix:
        parts.append(suffix)
    parts.append(resource_type)
    return "-".join(parts)


def validate_manifest(manifest: Dict[str, Any]) -> None:
    """
    Validate a manifest before it is serialized.

    Raises:
        ManifestValidationError: If a required field is missing or the
            name/namespace would be rejected by the cluster API.
    """
    for key in ("apiVersion", "kind", "metadata"):
        if not manifest.get(key):
            raise ManifestValidationError(f"manifest is missing '{key}'")

    kind = manifest["kind"]
    metadata = manifest["metadata"]
    name = metadata.get("name")
    if not name:
        raise ManifestValidationError(f"{kind} manifest is missing metadata.name")
    if not is_valid_name(name):
        raise ManifestValidationError(
            f"invalid {kind} name '{name}': must be lowercase alphanumeric, '-' or '.', "
            f"start and end with an alphanumeric character and be at most "
            f"{MAX_NAME_LENGTH} characters"
        )

    namespace = metadata.get("namespace")
    if namespace is not None and not is_valid_namespace(namespace):
        raise ManifestValidationError(
            f"invalid namespace '{namespace}' on {kind} '{name}': must be lowercase "
            f"alphanumeric or '-', start and end with an alphanumeric character and be "
            f"at most {MAX_NAMESPACE_LENGTH} characters"
        )


def validate_manifests(manifests: Iterable[Dict[str, Any]]) -> None:
    for manifest in manifests:
        validate_manifest(manifest)


def _to_str(value: Any) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if value is None:
        return ""
    return str(value)


def stringify_manifest(manifest: Dict[str, Any]) -> Dict[str, Any]:
    """
    Return a copy with ConfigMap/Secret values and container env values as strings.

    YAML would otherwise emit numbers and booleans unquoted and the API server
    rejects non-string values in those fields.
    """
    result = copy.deepcopy(manifest)
    kind = result.get("kind")

    if kind == "ConfigMap" and isinstance(result.get("data"), dict):
        result["data"] = {k: _to_str(v) for k, v in result["data"].items()}

    if kind == "Secret":
        for key in ("stringData", "data"):
            if isinstance(result.get(key), dict):
                result[key] = {k: _to_str(v) for k, v in result[key].items()}

    if kind in WORKLOAD_KINDS:
        pod_spec = result.get("spec", {}).get("template", {}).get("spec", {})
        for container in pod_spec.get("containers", []) + pod_spec.get("initContainers", []):
            for env_var in container.get("env", []):
                if "value" in env_var:
                    env_var["value"] = _to_str(env_var["value"])

    return result


def render_manifests(manifests: List[Dict[str, Any]]) -> str:
    """Serialize manifests into one multi-document YAML stream."""
    docs = []
    for m in manifests:
        docs.append(yaml.dump(stringify_manifest(m), default_flow_style=False, sort_keys=False))
    return "---\n" + "---\n".join(docs)
