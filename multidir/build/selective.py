"""Mapping of changed source paths to the tenants they affect."""

from __future__ import annotations

from dataclasses import dataclass
from fnmatch import fnmatch
from typing import List, Mapping, Optional, Sequence

from ..models import Directory

ALL_TENANTS = "all"


@dataclass(frozen=True)
class DependencyRule:
    """Associates a path pattern with tenant ids, theme names or ``all``."""

    pattern: str
    targets: Sequence[str]

    def matches(self, path: str) -> bool:
        return _pattern_matches(path, self.pattern)


class DependencyMap:
    def __init__(self, rules: Sequence[DependencyRule]) -> None:
        self.rules = list(rules)

    @classmethod
    def from_mapping(cls, mapping: Mapping[str, Sequence[str]]) -> "DependencyMap":
        return cls([DependencyRule(pattern, tuple(targets)) for pattern, targets in mapping.items()])

    def affected(self, changed_path: Optional[str], tenants: Sequence[Directory]) -> List[str]:
        """Return the ids of tenants to rebuild for ``changed_path``.

        Unmatched or empty paths rebuild every tenant.
        """
        every = [tenant.id for tenant in tenants]
        if not changed_path:
            return every
        targets = set()
        for rule in self.rules:
            if rule.matches(changed_path):
                targets.update(rule.targets)
        if not targets or ALL_TENANTS in targets:
            return every
        selected = [
            tenant.id for tenant in tenants if tenant.id in targets or tenant.theme in targets
        ]
        return selected or every


def _pattern_matches(path: str, pattern: str) -> bool:
    normalized = path.replace("\\", "/")
    if pattern.endswith("/"):
        # Directory rules also match absolute or repo-prefixed paths.
        return normalized.startswith(pattern) or f"/{pattern}" in normalized
    if any(ch in pattern for ch in "*?["):
        return fnmatch(normalized, pattern) or fnmatch(normalized, f"*/{pattern}")
    if normalized == pattern:
        return True
    return normalized.endswith(f"/{pattern}")


__all__ = ["ALL_TENANTS", "DependencyMap", "DependencyRule"]
