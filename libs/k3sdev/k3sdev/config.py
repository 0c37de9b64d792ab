"""
Runtime settings read from K3SDEV_* environment variables.
"""

import os
from dataclasses import dataclass
from typing import Mapping, Optional

from .errors import K3sDevError


@dataclass
class Settings:
    catalog: str = "services.yaml"
    kubectl: str = "kubectl"
    k3d: str = "k3d"
    cluster: str = "k3sdev"
    context: Optional[str] = None
    command_timeout: float = 120
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        timeout = env.get("K3SDEV_COMMAND_TIMEOUT", "120")
        try:
            command_timeout = float(timeout)
        except ValueError:
            raise K3sDevError(f"K3SDEV_COMMAND_TIMEOUT must be a number, got {timeout!r}")

        return cls(
            catalog=env.get("K3SDEV_CATALOG", "services.yaml"),
            kubectl=env.get("K3SDEV_KUBECTL", "kubectl"),
            k3d=env.get("K3SDEV_K3D", "k3d"),
            cluster=env.get("K3SDEV_CLUSTER", "k3sdev"),
            context=env.get("K3SDEV_CONTEXT") or None,
            command_timeout=command_timeout,
            log_level=env.get("K3SDEV_LOG_LEVEL", "INFO").upper(),
        )
