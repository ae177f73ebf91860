"""
Tests for dependency liveness analysis
"""

import pytest

from rmtree.errors import PackageUnavailable
from rmtree.liveness import LivenessAnalyzer
from rmtree.models import IGNORED, removable, unremovable
from rmtree.package_index import InMemoryPackageIndex


class CountingIndex(InMemoryPackageIndex):
    """Records how often reverse dependencies are looked up."""

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.lookups: list[str] = []

    def reverse_dependencies(self, name):
        self.lookups.append(name)
        return super().reverse_dependencies(name)


def analyze(graph, root="a", ignore_set=(), **kwargs):
    index = InMemoryPackageIndex(graph, **kwargs)
    return LivenessAnalyzer(index).analyze(root, ignore_set)


class TestClosure:
    def test_closure_lists_installed_transitive_dependencies(self):
        index = InMemoryPackageIndex({"a": ["b"], "b": ["c"], "c": []})
        assert LivenessAnalyzer(index).closure("a") == ("b", "c")

    def test_closure_skips_uninstalled_dependencies(self):
        index = InMemoryPackageIndex({"a": ["b", "c"], "b": [], "c": []}, installed={"a", "b"})
        assert LivenessAnalyzer(index).closure("a") == ("b",)

    def test_closure_has_no_duplicates(self):
        index = InMemoryPackageIndex({"a": ["b", "c"], "b": ["c"], "c": []})
        closure = LivenessAnalyzer(index).closure("a")
        assert sorted(closure) == ["b", "c"]

    def test_closure_is_memoized(self):
        index = InMemoryPackageIndex({"a": ["b"], "b": []})
        analyzer = LivenessAnalyzer(index)
        assert analyzer.closure("a") is analyzer.closure("a")

    def test_closure_of_unknown_package(self):
        analyzer = LivenessAnalyzer(InMemoryPackageIndex({}))
        with pytest.raises(PackageUnavailable):
            analyzer.closure("missing")


class TestAnalyze:
    def test_independent_dependencies_are_removable(self):
        table = analyze({"a": ["b", "c"], "b": [], "c": []})
        assert table == {"b": set(), "c": set()}

    def test_dependency_used_elsewhere_is_blocked(self):
        table = analyze({"a": ["b"], "b": [], "d": ["b"]})
        assert table == {"b": {"d"}}

    def test_users_inside_the_batch_do_not_block(self):
        table = analyze({"a": ["b", "c"], "b": ["c"], "c": []})
        assert table == {"b": set(), "c": set()}

    def test_ignored_dependency_gets_phony_blocker(self):
        table = analyze({"a": ["b"], "b": []}, ignore_set={"b"})
        assert table == {"b": {IGNORED}}

    def test_ignored_dependency_keeps_real_blockers(self):
        table = analyze({"a": ["b"], "b": [], "d": ["b"]}, ignore_set={"b"})
        assert table == {"b": {"d"}}

    def test_kept_dependency_keeps_its_own_dependencies(self):
        table = analyze({"a": ["b"], "b": ["c"], "c": [], "x": ["b"]})
        assert table["b"] == {"x"}
        assert table["c"] == {"b"}

    def test_cascade_reaches_dependencies_examined_earlier(self):
        # c is examined before b, so it is first judged removable
        table = analyze({"a": ["c", "b"], "b": ["c"], "c": [], "x": ["b"]})
        assert table["b"] == {"x"}
        assert table["c"] == {"b"}

    def test_cascade_reaches_users_inside_the_batch(self):
        table = analyze({"a": ["b"], "b": ["c"], "c": [], "d": ["c"]})
        assert table["c"] == {"d"}
        assert table["b"] == {"c"}

    def test_cascade_through_long_chain(self):
        graph = {"a": ["p0"], "x": ["p0"]}
        for i in range(50):
            graph[f"p{i}"] = [f"p{i + 1}"]
        graph["p50"] = []

        table = analyze(graph)

        assert table["p0"] == {"x"}
        assert all(table[f"p{i}"] == {f"p{i - 1}"} for i in range(1, 51))

    def test_cycle_terminates(self):
        table = analyze({"a": ["b"], "b": ["c"], "c": ["b"], "x": ["c"]})
        assert table["c"] == {"x"}
        assert table["b"] == {"c"}

    def test_root_is_never_a_blocker(self):
        table = analyze({"a": ["b", "c"], "b": [], "c": ["b"]})
        assert "a" not in set().union(*table.values())

    def test_uninstalled_users_do_not_block(self):
        table = analyze({"a": ["b"], "b": [], "d": ["b"]}, installed={"a", "b"})
        assert table == {"b": set()}

    def test_analysis_is_idempotent(self):
        index = InMemoryPackageIndex({"a": ["b", "c"], "b": ["c"], "c": [], "x": ["c"]})
        first = LivenessAnalyzer(index).analyze("a")
        second = LivenessAnalyzer(index).analyze("a")
        assert first == second

    def test_removable_and_unremovable_partition(self):
        table = analyze({"a": ["b", "c"], "b": [], "c": [], "d": ["c"]})
        assert set(removable(table)) == {"b"}
        assert set(unremovable(table)) == {"c"}


class TestConcurrencyAndProgress:
    GRAPH = {"a": ["b", "c", "d"], "b": ["c"], "c": [], "d": [], "x": ["d"]}

    def test_prefetch_gives_same_table(self):
        serial = LivenessAnalyzer(InMemoryPackageIndex(self.GRAPH)).analyze("a")
        parallel = LivenessAnalyzer(InMemoryPackageIndex(self.GRAPH), max_workers=4).analyze("a")
        assert serial == parallel

    def test_prefetch_looks_up_each_package_once(self):
        index = CountingIndex(self.GRAPH)
        LivenessAnalyzer(index, max_workers=4).analyze("a")
        assert sorted(index.lookups) == sorted(set(index.lookups))

    def test_users_are_cached(self):
        index = CountingIndex(self.GRAPH)
        analyzer = LivenessAnalyzer(index)
        analyzer.users_of("c")
        analyzer.users_of("c")
        assert index.lookups == ["c"]

    def test_progress_callback(self):
        calls = []
        index = InMemoryPackageIndex(self.GRAPH)
        analyzer = LivenessAnalyzer(
            index, progress_callback=lambda done, total: calls.append((done, total))
        )
        analyzer.analyze("a")
        assert calls == [(1, 3), (2, 3), (3, 3)]

    def test_max_workers_floor(self):
        analyzer = LivenessAnalyzer(InMemoryPackageIndex({}), max_workers=0)
        assert analyzer.max_workers == 1
