"""
Package index backends for rmtree.

A package index answers the questions removal planning needs: what a
package depends on, which installed packages depend on it, and whether it
is installed. It is also the only component allowed to uninstall anything.

Backends:
- BrewPackageIndex: queries and mutates a Homebrew installation
- InMemoryPackageIndex: a static graph, for tests and embedding
"""

import json
import logging
import subprocess
import threading
from abc import ABC, abstractmethod
from collections.abc import Iterable, Mapping
from dataclasses import replace
from typing import Any

from rmtree.config import RmtreeConfig
from rmtree.errors import PackageIndexError, PackageUnavailable, RemovalFailed
from rmtree.models import Package, PackageName

# Module logger - does not configure global logging when imported
logger = logging.getLogger(__name__)


class PackageIndex(ABC):
    """Read access to the installed package graph plus the remove mutation"""

    @abstractmethod
    def resolve(self, name: PackageName) -> Package:
        """Return the package called name, or raise PackageUnavailable."""

    @abstractmethod
    def transitive_dependencies(self, name: PackageName) -> list[PackageName]:
        """All packages name requires, directly or not, excluding name itself."""

    @abstractmethod
    def reverse_dependencies(self, name: PackageName) -> set[PackageName]:
        """Installed packages whose dependency list includes name."""

    @abstractmethod
    def is_installed(self, name: PackageName) -> bool:
        pass

    @abstractmethod
    def remove(self, name: PackageName) -> None:
        """Uninstall name, raising RemovalFailed. A no-op if already gone."""

    def is_outdated(self, name: PackageName) -> bool:
        try:
            return self.resolve(name).outdated
        except PackageUnavailable:
            return False

    def direct_dependencies(self, name: PackageName) -> tuple[PackageName, ...]:
        return self.resolve(name).direct_dependencies


class BrewPackageIndex(PackageIndex):
    """
    Package index backed by the brew command.

    The installed set and its forward graph come from a single
    ``brew info --json=v2 --installed`` call; reverse dependencies are
    derived from that graph. A successful removal updates the cached graph
    in place; a failed one drops it so the next query reloads from brew.
    """

    def __init__(self, config: RmtreeConfig | None = None):
        self.config = config or RmtreeConfig()
        self._lock = threading.Lock()
        self._packages: dict[str, Package] = {}  # installed name -> package
        self._aliases: dict[str, str] = {}  # full tap name -> short name
        self._reverse_graph: dict[str, set[str]] = {}  # package -> dependents
        self._uninstalled: dict[str, Package] = {}
        self._initialized = False

    def _run_command(self, cmd: list[str], timeout: int | None = None) -> tuple[bool, str, str]:
        """Execute command and return (success, stdout, stderr)"""
        timeout = timeout or self.config.query_timeout
        logger.debug(f"Running: {' '.join(cmd)}")
        try:
            result = subprocess.run(cmd, capture_output=True, text=True, timeout=timeout)
            return (result.returncode == 0, result.stdout, result.stderr)
        except subprocess.TimeoutExpired:
            return (False, "", "Command timed out")
        except FileNotFoundError:
            return (False, "", f"Command not found: {cmd[0]}")
        except OSError as e:
            return (False, "", str(e))

    def _brew(self, *args: str, timeout: int | None = None) -> tuple[bool, str, str]:
        return self._run_command([self.config.brew_executable, *args], timeout=timeout)

    def initialize(self, force_refresh: bool = False) -> None:
        """
        Load installed formulae and their dependencies.

        Raises:
            PackageIndexError: brew failed or its output is unreadable; the
                index stays uninitialized so the next query retries
        """
        with self._lock:
            if self._initialized and not force_refresh:
                return

            logger.info("Building installed formula graph...")
            success, stdout, stderr = self._brew("info", "--json=v2", "--installed")
            if not success:
                raise PackageIndexError(stderr.strip() or "brew info failed")
            try:
                formulae = self._parse_formulae(stdout)
            except ValueError as e:
                raise PackageIndexError(f"unreadable brew info output: {e}") from e

            self._packages = {}
            self._aliases = {}
            self._reverse_graph = {}
            self._uninstalled = {}

            packages = [self._package_from_info(info) for info in formulae]
            for package in packages:
                if package.full_name and package.full_name != package.name:
                    self._aliases[package.full_name] = package.name

            # Tap formulae may be listed as dependencies under their full name
            for package in packages:
                package = self._canonicalized(package)
                self._packages[package.name] = package
                for dep in package.direct_dependencies:
                    self._reverse_graph.setdefault(dep, set()).add(package.name)

            self._initialized = True
            logger.info(f"Formula graph built: {len(self._packages)} installed formulae")

    def invalidate(self) -> None:
        """Drop cached state; the next query reloads it from brew."""
        with self._lock:
            self._initialized = False

    def _parse_formulae(self, stdout: str) -> list[dict[str, Any]]:
        """Formulae of a ``brew info --json=v2`` document; ValueError if unreadable."""
        data = json.loads(stdout or "{}")
        if not isinstance(data, dict):
            raise ValueError("expected a JSON object")
        return data.get("formulae", [])

    def _dependencies_from_info(self, info: dict[str, Any]) -> tuple[str, ...]:
        # "dependencies" leaves out recommended ones, which brew deps includes;
        # optional ones count only when the installed keg was built with them
        names = list(info.get("dependencies", []))
        names += info.get("recommended_dependencies", [])
        kegs = info.get("installed") or []
        if kegs:
            linked = set()
            for dep in kegs[0].get("runtime_dependencies") or []:
                full_name = dep.get("full_name") or ""
                linked.update((full_name, full_name.rsplit("/", 1)[-1]))
            names += [d for d in info.get("optional_dependencies", []) if d in linked]
        return tuple(dict.fromkeys(names))

    def _package_from_info(self, info: dict[str, Any]) -> Package:
        return Package(
            name=info["name"],
            full_name=info.get("full_name") or info["name"],
            direct_dependencies=self._dependencies_from_info(info),
            installed=bool(info.get("installed")),
            outdated=bool(info.get("outdated", False)),
        )

    def _canonical(self, name: str) -> str:
        return self._aliases.get(name, name)

    def _canonicalized(self, package: Package) -> Package:
        return replace(
            package,
            direct_dependencies=tuple(
                dict.fromkeys(self._canonical(d) for d in package.direct_dependencies)
            ),
        )

    def resolve(self, name: PackageName) -> Package:
        self.initialize()
        canonical = self._canonical(name)
        if canonical in self._packages:
            return self._packages[canonical]
        if canonical in self._uninstalled:
            return self._uninstalled[canonical]

        success, stdout, stderr = self._brew("info", "--json=v2", "--formula", name)
        formulae = []
        if success:
            try:
                formulae = self._parse_formulae(stdout)
            except ValueError as e:
                raise PackageUnavailable(name, f"unreadable brew info output: {e}") from e
        if not formulae:
            raise PackageUnavailable(name, stderr.strip())

        package = self._canonicalized(self._package_from_info(formulae[0]))
        self._uninstalled[canonical] = package
        return package

    def transitive_dependencies(self, name: PackageName) -> list[PackageName]:
        self.initialize()
        success, stdout, stderr = self._brew("deps", "--formula", name)
        if not success:
            raise PackageUnavailable(name, stderr.strip())

        dependencies = []
        for line in stdout.split("\n"):
            dep = self._canonical(line.strip())
            if dep and dep != name and dep not in dependencies:
                dependencies.append(dep)
        return dependencies

    def reverse_dependencies(self, name: PackageName) -> set[PackageName]:
        self.initialize()
        return set(self._reverse_graph.get(self._canonical(name), set()))

    def is_installed(self, name: PackageName) -> bool:
        self.initialize()
        return self._canonical(name) in self._packages

    def remove(self, name: PackageName) -> None:
        try:
            installed = self.is_installed(name)
        except PackageIndexError as e:
            raise RemovalFailed(name, str(e)) from e
        if not installed:
            logger.debug(f"{name} is already uninstalled")
            return

        timeout = self.config.remove_timeout
        # Old versions first; a failed cleanup does not stop the uninstall
        success, _, stderr = self._brew("cleanup", name, timeout=timeout)
        if not success:
            logger.warning(f"brew cleanup {name} failed: {stderr.strip()}")

        success, _, stderr = self._brew("uninstall", name, timeout=timeout)
        if not success:
            # The keg may be half removed; reload everything on the next query
            self.invalidate()
            raise RemovalFailed(name, stderr.strip())
        self._forget(name)
        logger.info(f"Uninstalled {name}")

    def _forget(self, name: PackageName) -> None:
        """Drop an uninstalled package from the cached graph."""
        with self._lock:
            package = self._packages.pop(self._canonical(name), None)
            if package is None:
                return
            for dep in package.direct_dependencies:
                self._reverse_graph.get(dep, set()).discard(package.name)


class InMemoryPackageIndex(PackageIndex):
    """
    Package index over a fixed dependency graph.

    Args:
        graph: package name -> direct dependencies, for every known package
        installed: installed names; defaults to every key of graph
        outdated: installed names with a newer version available
        failing: names whose removal raises RemovalFailed
    """

    def __init__(
        self,
        graph: Mapping[str, Iterable[str]],
        installed: Iterable[str] | None = None,
        outdated: Iterable[str] = (),
        failing: Iterable[str] = (),
    ):
        self._graph: dict[str, tuple[str, ...]] = {
            name: tuple(deps) for name, deps in graph.items()
        }
        self.installed: set[str] = set(self._graph if installed is None else installed)
        self.outdated: set[str] = set(outdated)
        self.failing: set[str] = set(failing)
        self.removed: list[str] = []

    def resolve(self, name: PackageName) -> Package:
        if name not in self._graph:
            raise PackageUnavailable(name)
        return Package(
            name=name,
            full_name=name,
            direct_dependencies=self._graph[name],
            installed=name in self.installed,
            outdated=name in self.outdated and name in self.installed,
        )

    def transitive_dependencies(self, name: PackageName) -> list[PackageName]:
        if name not in self._graph:
            raise PackageUnavailable(name)

        ordered: list[str] = []
        seen = {name}
        stack = list(reversed(self._graph[name]))
        while stack:
            dep = stack.pop()
            if dep in seen:
                continue
            seen.add(dep)
            ordered.append(dep)
            stack.extend(reversed(self._graph.get(dep, ())))
        return ordered

    def reverse_dependencies(self, name: PackageName) -> set[PackageName]:
        return {
            pkg for pkg in self.installed if name in self._graph.get(pkg, ()) and pkg != name
        }

    def is_installed(self, name: PackageName) -> bool:
        return name in self.installed

    def remove(self, name: PackageName) -> None:
        if name in self.failing:
            raise RemovalFailed(name, "simulated failure")
        if name not in self.installed:
            return
        self.installed.discard(name)
        self.removed.append(name)
