"""
Outcome types for manifest generation and deployment.

Generation returns a GenerationResult instead of raising for predictable
catalog problems. Deployment returns a DeployResult with one ServiceResult
per attempted service so callers can tell "skip and continue" from "abort".
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from .errors import GenerationError


@dataclass
class GenerationResult:
    """Manifests generated for one service, or the reasons they could not be."""
    service: str
    manifests: List[Dict[str, Any]] = field(default_factory=list)
    errors: List[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.errors

    def unwrap(self) -> List[Dict[str, Any]]:
        """Return the manifests, raising GenerationError if generation failed."""
        if self.errors:
            raise GenerationError(self.service, self.errors)
        return self.manifests


class Outcome(str, Enum):
    APPLIED = "applied"
    DELETED = "deleted"
    FAILED = "failed"
    SKIPPED = "skipped"
    NOT_FOUND = "not_found"
    TIMED_OUT = "timed_out"


class ServiceRole(str, Enum):
    INFRA = "infra"
    APP = "app"


@dataclass
class ServiceResult:
    """Result of deploying one service."""
    name: str
    role: ServiceRole
    outcome: Outcome
    message: Optional[str] = None
    namespace: Optional[str] = None
    manifest_count: int = 0

    @property
    def success(self) -> bool:
        return self.outcome in (Outcome.APPLIED, Outcome.DELETED)


@dataclass
class DeployResult:
    """Aggregated result of one deploy invocation."""
    items: List[ServiceResult] = field(default_factory=list)
    order: List[str] = field(default_factory=list)
    aborted: bool = False
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return not self.aborted and not self.errors and all(item.success for item in self.items)

    @property
    def failed(self) -> List[ServiceResult]:
        return [item for item in self.items if not item.success]

    @property
    def applied(self) -> List[str]:
        return [item.name for item in self.items if item.success]

    def get(self, name: str) -> Optional[ServiceResult]:
        for item in self.items:
            if item.name == name:
                return item
        return None

    def add(self, item: ServiceResult) -> ServiceResult:
        self.items.append(item)
        return item

    def summary(self) -> str:
        if self.aborted:
            return "deployment aborted: " + "; ".join(self.errors)
        counts: Dict[str, int] = {}
        for item in self.items:
            counts[item.outcome.value] = counts.get(item.outcome.value, 0) + 1
        parts = [f"{count} {outcome}" for outcome, count in counts.items()]
        return ", ".join(parts) if parts else "nothing to deploy"
