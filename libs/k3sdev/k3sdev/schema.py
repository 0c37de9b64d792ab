"""
Schema loading and validation for services.yaml.
"""

import json
from pathlib import Path
from typing import Any, Dict, List, Optional

import jsonschema
import yaml

from .errors import CatalogError
from .types import ServiceCatalog

SCHEMA_PATH = Path(__file__).parent / "catalog-schema.json"


def load_schema() -> Dict[str, Any]:
    """Load the JSON schema for services.yaml."""
    with open(SCHEMA_PATH) as f:
        return json.load(f)


def validate_catalog(data: Any) -> List[str]:
    """
    Validate services.yaml data against the JSON schema.

    Returns list of validation errors (empty if valid).
    """
    validator = jsonschema.Draft7Validator(load_schema())
    errors = []
    for error in sorted(validator.iter_errors(data), key=lambda e: list(e.absolute_path)):
        path = ".".join(str(p) for p in error.absolute_path)
        errors.append(f"{path}: {error.message}" if path else error.message)
    return errors


def parse_catalog(data: Any, validate: bool = True) -> ServiceCatalog:
    """
    Build a ServiceCatalog from parsed YAML.

    Raises:
        CatalogError: If the data violates the schema or a catalog rule.
    """
    if data is None:
        data = {}
    if validate:
        errors = validate_catalog(data)
        if errors:
            raise CatalogError("services.yaml validation failed", errors)
    try:
        return ServiceCatalog.from_dict(data)
    except CatalogError:
        raise
    except (KeyError, ValueError) as e:
        raise CatalogError(f"invalid services.yaml: {e}")


def load_catalog(path: str = "services.yaml", validate: bool = True) -> ServiceCatalog:
    """
    Load and parse services.yaml.

    Raises:
        FileNotFoundError: If the file does not exist
        CatalogError: If the YAML is malformed or validation fails
    """
    catalog_path = Path(path)
    if not catalog_path.exists():
        raise FileNotFoundError(f"services.yaml not found at {path}")

    with open(catalog_path) as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise CatalogError(f"{path} is not valid YAML: {e}")

    return parse_catalog(data, validate=validate)


def find_catalog(name: str = "services.yaml") -> Optional[Path]:
    """Find services.yaml by searching up from current directory."""
    current = Path.cwd()
    for parent in [current] + list(current.parents):
        candidate = parent / name
        if candidate.exists():
            return candidate
    return None
