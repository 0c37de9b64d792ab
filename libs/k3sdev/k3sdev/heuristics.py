"""
Best-effort dependency inference from environment variables.

Each rule looks at one ``KEY=value`` pair and may name a service the owner
depends on. The rules are deliberately simple and can both miss dependencies
and over-match; the explicit ``dependencies`` list remains authoritative.
"""

import re
from dataclasses import dataclass
from typing import Dict, Iterable, List, Optional, Protocol, Set

HOST_KEY_SUFFIXES = ("HOST", "HOSTS", "DSN", "URL", "URI", "ADDR", "ADDRESS", "ENDPOINT", "SERVER", "SERVERS")


class Rule(Protocol):
    def match(self, key: str, value: str) -> Optional[str]:
        ...


@dataclass(frozen=True)
class HostRule:
    """Key matches ``key_pattern`` and the value mentions ``hint`` (default: the service name)."""
    key_pattern: str
    service: str
    hint: Optional[str] = None

    def match(self, key: str, value: str) -> Optional[str]:
        if not re.search(self.key_pattern, key, re.IGNORECASE):
            return None
        if (self.hint or self.service) in value.lower():
            return self.service
        return None


@dataclass(frozen=True)
class NamespaceHostRule:
    """Value references ``<service>.<namespace>``, e.g. ``redis.core-services:6379``."""
    namespace: str = "core-services"

    def match(self, key: str, value: str) -> Optional[str]:
        found = re.search(r"([a-z0-9-]+)\." + re.escape(self.namespace) + r"\b", value)
        return found.group(1) if found else None


@dataclass(frozen=True)
class CatalogHostRule:
    """Host-like key whose value names a catalog infra service as a whole word."""
    service: str

    def match(self, key: str, value: str) -> Optional[str]:
        suffix = key.upper().rsplit("_", 1)[-1]
        if suffix not in HOST_KEY_SUFFIXES:
            return None
        pattern = r"(?<![a-z0-9-])" + re.escape(self.service) + r"(?![a-z0-9-])"
        if re.search(pattern, value.lower()):
            return self.service
        return None


DEFAULT_HOST_RULES: List[Rule] = [
    HostRule(r"^REDIS_HOST", "redis"),
    HostRule(r"^MYSQL_HOST", "mysql"),
    HostRule(r"^DATABASE_HOST", "mysql"),
    HostRule(r"NATS.*HOST", "nats"),
    HostRule(r"ELASTIC.*HOST", "elastic-search", hint="elastic"),
    HostRule(r"AEROSPIKE.*HOST", "aerospike"),
    NamespaceHostRule("core-services"),
]


def rules_for_catalog(infra_names: Iterable[str]) -> List[Rule]:
    """Default rules plus one generic host rule per catalog infra service."""
    rules: List[Rule] = list(DEFAULT_HOST_RULES)
    rules.extend(CatalogHostRule(name) for name in sorted(set(infra_names)))
    return rules


def infer_dependencies(env: Dict[str, str], rules: Iterable[Rule]) -> Set[str]:
    """Apply every rule to every env entry and collect the named services."""
    rules = list(rules)
    found: Set[str] = set()
    for key, value in env.items():
        text = "" if value is None else str(value)
        for rule in rules:
            service = rule.match(key, text)
            if service:
                found.add(service)
    return found
