"""
Tests for user-facing output
"""

import io
from unittest.mock import patch

import pytest
from rich.console import Console

from rmtree.executor import ExecutionReport, RemovalStep, StepStatus
from rmtree.models import RemovalPlan
from rmtree.reporting import Reporter, format_order, format_retained


def make_console(buffer):
    return Console(file=buffer, width=120, color_system=None, highlight=False)


@pytest.fixture
def streams():
    return io.StringIO(), io.StringIO()


@pytest.fixture
def reporter(streams):
    out, err = streams
    return Reporter(
        console=make_console(out),
        error_console=make_console(err),
        prompt_console=make_console(io.StringIO()),
    )


@pytest.fixture
def plan():
    return RemovalPlan(root="a", order=["a", "c"], retained={"b": {"e", "d"}})


class TestFormatting:
    def test_format_retained_is_sorted(self):
        lines = format_retained({"zlib": {"curl"}, "b": {"y", "x"}})
        assert lines == ["b is used by x, y", "zlib is used by curl"]

    def test_format_order_is_numbered(self):
        assert format_order(["a", "b"]) == ["1. a", "2. b"]

    def test_format_empty(self):
        assert format_retained({}) == []
        assert format_order([]) == []


class TestReporter:
    def test_plan(self, reporter, streams, plan):
        reporter.show_plan(plan)
        output = streams[0].getvalue()
        assert "Can safely be removed" in output
        assert "Won't be removed" not in output

    def test_dry_run_plan(self, reporter, streams, plan):
        reporter.show_plan(plan, dry_run=True)
        output = streams[0].getvalue()
        assert "Won't be removed" in output
        assert "b is used by d, e" in output
        assert "Order of operations" in output
        assert "2. c" in output

    def test_blocked(self, reporter, streams):
        reporter.show_blocked("git", {"tig", "gh"})
        output = streams[0].getvalue()
        assert "git can't be removed because other formula depend on it:" in output
        assert "gh, tig" in output

    def test_steps(self, reporter, streams):
        reporter.show_step(RemovalStep(name="a", status=StepStatus.WOULD_REMOVE))
        reporter.show_step(RemovalStep(name="b", status=StepStatus.REMOVED))
        reporter.show_step(RemovalStep(name="c", status=StepStatus.FAILED, error="locked"))

        out, err = streams
        assert "Would have removed a" in out.getvalue()
        assert "Removed b" in out.getvalue()
        assert "Error: Could not remove c: locked" in err.getvalue()

    def test_summary_with_failures(self, reporter, streams):
        report = ExecutionReport(
            root="a",
            dry_run=False,
            steps=[
                RemovalStep(name="a", status=StepStatus.REMOVED),
                RemovalStep(name="b", status=StepStatus.FAILED, error="locked"),
            ],
        )
        reporter.show_summary(report)
        out, err = streams
        assert "Removed 1 package(s)" in out.getvalue()
        assert "1 package(s) could not be removed: b" in err.getvalue()

    def test_summary_skipped_for_dry_run(self, reporter, streams):
        reporter.show_summary(ExecutionReport(root="a", dry_run=True))
        assert streams[0].getvalue() == ""

    def test_markup_in_names_is_escaped(self, reporter, streams):
        reporter.info("[bold]literal[/bold]")
        assert "[bold]literal[/bold]" in streams[0].getvalue()

    def test_ohai(self, reporter, streams):
        reporter.ohai("Examining git")
        assert "==> Examining git" in streams[0].getvalue()

    def test_warning_goes_to_error_console(self, reporter, streams):
        reporter.warning("Unknown option: '-x'")
        assert streams[0].getvalue() == ""
        assert "Warning: Unknown option: '-x'" in streams[1].getvalue()

    def test_confirm(self, reporter):
        with patch("rmtree.reporting.Confirm.ask", return_value=True) as mock_ask:
            assert reporter.confirm("Proceed?") is True
        args, kwargs = mock_ask.call_args
        assert args == ("Proceed?",)
        assert kwargs["default"] is False


class TestQuietReporter:
    def test_quiet_hides_normal_output(self, streams, plan):
        out, err = streams
        reporter = Reporter(console=make_console(out), quiet=True, error_console=make_console(err))
        reporter.ohai("Examining a")
        reporter.show_plan(plan, dry_run=True)
        assert out.getvalue() == ""

    def test_quiet_keeps_errors(self, streams):
        out, err = streams
        reporter = Reporter(console=make_console(out), quiet=True, error_console=make_console(err))
        reporter.error("a is not currently installed")
        assert "a is not currently installed" in err.getvalue()

    def test_quiet_status_accepts_updates(self, streams):
        out, err = streams
        reporter = Reporter(console=make_console(out), quiet=True, error_console=make_console(err))
        with reporter.status("Examining a") as status:
            status.update("Examining a  1 / 2")
        assert out.getvalue() == ""
