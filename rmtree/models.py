"""
Shared data model for removal planning.

A LivenessTable maps every candidate dependency to the set of names that
currently prevent its removal. An empty set means the dependency can go.
"""

from dataclasses import dataclass, field
from typing import Any

PackageName = str
BlockingSet = set[str]
LivenessTable = dict[PackageName, BlockingSet]

# Phony blocker recorded for dependencies the caller asked to keep
IGNORED = "ignored"


@dataclass(frozen=True)
class Package:
    """A package as reported by a package index"""

    name: PackageName
    direct_dependencies: tuple[PackageName, ...] = ()
    installed: bool = False
    outdated: bool = False
    full_name: str | None = None

    @property
    def is_present(self) -> bool:
        """Outdated packages are still installed, just not at the latest version."""
        return self.installed or self.outdated


@dataclass
class RemovalPlan:
    """Ordered removal plan for one root package"""

    root: PackageName
    order: list[PackageName] = field(default_factory=list)
    retained: dict[PackageName, BlockingSet] = field(default_factory=dict)

    @property
    def dependencies(self) -> list[PackageName]:
        """Planned dependencies, without the root itself."""
        return [name for name in self.order if name != self.root]

    @property
    def is_empty(self) -> bool:
        return not self.order

    def to_dict(self) -> dict[str, Any]:
        return {
            "root": self.root,
            "order": list(self.order),
            "retained": {name: sorted(users) for name, users in self.retained.items()},
        }


def removable(table: LivenessTable) -> LivenessTable:
    """Entries with no remaining blockers."""
    return {name: users for name, users in table.items() if not users}


def unremovable(table: LivenessTable) -> LivenessTable:
    """Entries still held by at least one blocker."""
    return {name: users for name, users in table.items() if users}
