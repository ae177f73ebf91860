"""
Dependency liveness analysis.

For every installed transitive dependency of a root package, work out which
installed packages outside the removal batch still need it. A dependency
that turns out to be needed stays installed, which in turn keeps its own
dependencies and its users inside the batch alive; that status is
propagated through the closure until nothing changes.
"""

import logging
from collections.abc import Callable, Iterable, Iterator
from concurrent.futures import ThreadPoolExecutor, as_completed

from rmtree.models import IGNORED, LivenessTable, PackageName
from rmtree.package_index import PackageIndex

logger = logging.getLogger(__name__)


class LivenessAnalyzer:
    """
    Computes the LivenessTable of one root package.

    All caches belong to the instance, so an analyzer should live for a
    single planning run: create a new one for the next root, once the
    previous root's removals have changed the installed set.

    Args:
        index: Package index to query
        max_workers: Concurrent reverse-dependency lookups; 1 disables prefetching
        progress_callback: Called as (examined, total) after each dependency
    """

    def __init__(
        self,
        index: PackageIndex,
        max_workers: int = 1,
        progress_callback: Callable[[int, int], None] | None = None,
    ):
        self.index = index
        self.max_workers = max(1, max_workers)
        self.progress_callback = progress_callback
        self._closures: dict[PackageName, tuple[PackageName, ...]] = {}
        self._users: dict[PackageName, frozenset[PackageName]] = {}
        self._direct: dict[PackageName, tuple[PackageName, ...]] = {}

    def closure(self, name: PackageName) -> tuple[PackageName, ...]:
        """Installed transitive dependencies of name, in first-encountered order."""
        if name not in self._closures:
            ordered: list[PackageName] = []
            seen = {name}
            for dep in self.index.transitive_dependencies(name):
                if dep in seen:
                    continue
                seen.add(dep)
                if self.index.is_installed(dep):
                    ordered.append(dep)
            self._closures[name] = tuple(ordered)
        return self._closures[name]

    def users_of(self, name: PackageName) -> frozenset[PackageName]:
        """Installed packages that directly depend on name."""
        if name not in self._users:
            self._users[name] = frozenset(self.index.reverse_dependencies(name))
        return self._users[name]

    def dependencies_of(self, name: PackageName) -> tuple[PackageName, ...]:
        if name not in self._direct:
            self._direct[name] = tuple(self.index.direct_dependencies(name))
        return self._direct[name]

    def analyze(self, root: PackageName, ignore_set: Iterable[PackageName] = ()) -> LivenessTable:
        """
        Decide, for every dependency of root, what keeps it installed.

        Args:
            root: Package being removed
            ignore_set: Dependencies to keep even when nothing uses them

        Returns:
            LivenessTable in closure order; an empty set marks a removable entry

        Raises:
            PackageUnavailable: root or one of its dependencies cannot be resolved
        """
        root = self.index.resolve(root).name
        ignored = set(ignore_set)
        closure = self.closure(root)
        # Names still slated for removal; shrinks as dependencies prove to be needed
        candidates = set(closure)
        table: LivenessTable = {}

        logger.debug(f"Examining {len(closure)} dependencies of {root}")
        if self.max_workers > 1:
            self._prefetch_users(closure)

        for examined, dep in enumerate(closure, start=1):
            blockers = set(self.users_of(dep) - candidates - {root})

            # Keep unused ignored dependencies by saying something phony uses them
            if dep in ignored and not blockers:
                blockers = {IGNORED}

            table[dep] = blockers
            if blockers:
                candidates.discard(dep)
                self._revisit(dep, root, candidates, table)

            if self.progress_callback:
                self.progress_callback(examined, len(closure))

        return table

    def _prefetch_users(self, names: Iterable[PackageName]) -> None:
        missing = [name for name in names if name not in self._users]
        if not missing:
            return
        logger.debug(f"Prefetching users of {len(missing)} packages")
        with ThreadPoolExecutor(max_workers=self.max_workers) as executor:
            futures = {
                executor.submit(self.index.reverse_dependencies, name): name for name in missing
            }
            for future in as_completed(futures):
                self._users[futures[future]] = frozenset(future.result())

    def _neighbours(self, name: PackageName, root: PackageName) -> Iterator[PackageName]:
        """Users of name, then its direct dependencies."""
        yield from sorted(self.users_of(name) - {root})
        yield from self.dependencies_of(name)

    def _revisit(
        self,
        unremovable: PackageName,
        root: PackageName,
        candidates: set[PackageName],
        table: LivenessTable,
    ) -> None:
        """
        Mark the neighbours of an unremovable package as unremovable too.

        Entries examined earlier assumed this package would disappear. Both
        the packages it depends on and its users inside the closure are
        re-marked as blocked by it, and the change spreads depth-first. Only
        entries currently marked removable are touched, which bounds the walk
        by the closure size even on cyclic graphs.
        """
        stack = [(unremovable, self._neighbours(unremovable, root))]
        while stack:
            name, neighbours = stack[-1]
            for neighbour in neighbours:
                if neighbour in table and not table[neighbour]:
                    logger.debug(f"{neighbour} is kept because {name} is kept")
                    table[neighbour].add(name)
                    candidates.discard(neighbour)
                    stack.append((neighbour, self._neighbours(neighbour, root)))
                    break
            else:
                stack.pop()
