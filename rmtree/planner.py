"""
Removal order planning.

The liveness pass judges each dependency in isolation, so a dependency used
only by another dependency of the same batch still looks blocked. The
planner peels such chains off: once everything that uses a dependency has
been scheduled, the dependency itself can be scheduled.
"""

import logging
from collections.abc import Callable, Iterable

from rmtree.errors import BlockedByExternalUsers, PackageNotInstalled
from rmtree.liveness import LivenessAnalyzer
from rmtree.models import LivenessTable, PackageName, RemovalPlan, removable
from rmtree.package_index import PackageIndex

logger = logging.getLogger(__name__)


class RemovalOrderPlanner:
    """Turns a LivenessTable into a safe deletion order"""

    def __init__(self, users_of: Callable[[PackageName], Iterable[PackageName]]):
        self.users_of = users_of

    def plan(self, root: PackageName, liveness: LivenessTable) -> RemovalPlan:
        deleted = {root}
        order = [root]
        pending = list(removable(liveness))

        passes = 0
        changed = True
        while changed:
            changed = False
            passes += 1
            for dep in list(pending):
                if not set(self.users_of(dep)) - deleted:
                    pending.remove(dep)
                    deleted.add(dep)
                    order.append(dep)
                    changed = True
        logger.debug(f"Removal order for {root} settled after {passes} passes")

        retained = {}
        for dep, blockers in liveness.items():
            if dep in deleted:
                continue
            # Entries the sweep could not peel are reported with what still holds them
            retained[dep] = set(blockers) or set(self.users_of(dep)) - deleted

        return RemovalPlan(root=root, order=order, retained=retained)


def build_removal_plan(
    index: PackageIndex,
    root: PackageName,
    force: bool = False,
    ignore_set: Iterable[PackageName] = (),
    max_workers: int = 1,
    progress_callback: Callable[[int, int], None] | None = None,
) -> RemovalPlan:
    """
    Plan the removal of root and its orphaned dependencies.

    Args:
        index: Package index to query
        root: Package to remove
        force: Skip the check for installed packages that depend on root
        ignore_set: Dependencies to keep even when nothing uses them
        max_workers: Concurrent reverse-dependency lookups
        progress_callback: Called as (examined, total) while analyzing

    Raises:
        PackageUnavailable: root cannot be resolved
        PackageNotInstalled: root is not installed
        BlockedByExternalUsers: root has dependents and force is not set
    """
    package = index.resolve(root)

    if not force:
        users = index.reverse_dependencies(package.name)
        if users:
            raise BlockedByExternalUsers(package.name, users)

    if not package.is_present:
        raise PackageNotInstalled(package.name)

    analyzer = LivenessAnalyzer(index, max_workers=max_workers, progress_callback=progress_callback)
    liveness = analyzer.analyze(package.name, ignore_set)
    return RemovalOrderPlanner(analyzer.users_of).plan(package.name, liveness)
