"""
Exception types raised by k3sdev.

Pure computation problems (catalog, generation, validation, cycles) are raised
immediately. Failures of external tools are raised as CommandError by the
kubectl/k3d wrappers and converted into per-service outcomes by the
orchestrator.
"""

from typing import List, Optional, Sequence


class K3sDevError(Exception):
    """Base class for all k3sdev errors."""


class CatalogError(K3sDevError, ValueError):
    """The service catalog is malformed or violates a schema rule."""

    def __init__(self, message: str, errors: Optional[List[str]] = None):
        self.errors = list(errors or [])
        if self.errors:
            message = message + ":\n" + "\n".join(f"  - {e}" for e in self.errors)
        super().__init__(message)


class ServiceNotFound(K3sDevError, KeyError):
    """A requested service name is not in the catalog."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(name)

    def __str__(self) -> str:
        return f"service '{self.name}' not found in catalog"


class GenerationError(K3sDevError, ValueError):
    """A catalog entry cannot be compiled into manifests."""

    def __init__(self, service: str, problems: Sequence[str]):
        self.service = service
        self.problems = list(problems)
        super().__init__(f"cannot generate manifests for '{service}': " + "; ".join(self.problems))


class ManifestValidationError(K3sDevError, ValueError):
    """A generated manifest would be rejected by the cluster API."""


class CycleDetected(K3sDevError):
    """A circular dependency exists among the requested services.

    ``path`` holds the offending chain, starting and ending with the same name.
    """

    def __init__(self, path: Sequence[str]):
        self.path = list(path)
        super().__init__("circular dependency: " + " -> ".join(self.path))

    @property
    def members(self) -> List[str]:
        """Distinct services taking part in the cycle."""
        return list(dict.fromkeys(self.path))


class CommandError(K3sDevError):
    """An external command (kubectl, k3d) exited with a non-zero status."""

    def __init__(self, command: Sequence[str], returncode: int, stderr: str = ""):
        self.command = list(command)
        self.returncode = returncode
        self.stderr = stderr.strip()
        detail = f": {self.stderr}" if self.stderr else ""
        super().__init__(f"'{' '.join(self.command)}' exited with {returncode}{detail}")


class HealthCheckFailed(K3sDevError):
    """A service kept reporting non-healthy status past the allowed failures."""

    def __init__(self, service: str, namespace: str, messages: Sequence[str] = ()):
        self.service = service
        self.namespace = namespace
        self.messages = list(messages)
        detail = f" ({'; '.join(self.messages)})" if self.messages else ""
        super().__init__(f"{namespace}/{service} is not healthy{detail}")


class HealthTimeout(K3sDevError, TimeoutError):
    """A service did not become healthy before the deadline.

    Distinct from HealthCheckFailed: the resource may still converge later.
    """

    def __init__(self, service: str, namespace: str, timeout: float):
        self.service = service
        self.namespace = namespace
        self.timeout = timeout
        super().__init__(f"{namespace}/{service} did not become healthy within {timeout:g}s")
