"""
User-facing output for rmtree.

Everything the command prints goes through a Reporter, so quiet mode is a
property of the reporter instead of a global switch. Errors and the
confirmation prompt stay visible when quiet.
"""

from collections.abc import Iterator, Mapping
from contextlib import contextmanager

from rich.console import Console
from rich.markup import escape
from rich.prompt import Confirm

from rmtree.executor import ExecutionReport, RemovalStep, StepStatus
from rmtree.models import BlockingSet, PackageName, RemovalPlan


def format_retained(retained: Mapping[PackageName, BlockingSet]) -> list[str]:
    """One "<dep> is used by <users>" line per retained dependency, sorted."""
    return sorted(f"{dep} is used by {', '.join(sorted(users))}" for dep, users in retained.items())


def format_order(order: list[PackageName]) -> list[str]:
    return [f"{i}. {name}" for i, name in enumerate(order, 1)]


class _NullStatus:
    def update(self, *args, **kwargs) -> None:
        pass


class Reporter:
    """Prints progress, plans and results with a configurable verbosity"""

    def __init__(
        self,
        console: Console | None = None,
        quiet: bool = False,
        error_console: Console | None = None,
        prompt_console: Console | None = None,
    ):
        self.quiet = quiet
        self.console = console or Console(quiet=quiet, highlight=False)
        if quiet:
            self.console.quiet = True
        self.error_console = error_console or Console(stderr=True, highlight=False)
        self.prompt_console = prompt_console or Console(highlight=False)

    def ohai(self, message: str) -> None:
        self.console.print(f"[bold blue]==>[/bold blue] [bold]{escape(message)}[/bold]")

    def info(self, message: str) -> None:
        self.console.print(escape(message))

    def warning(self, message: str) -> None:
        self.error_console.print(f"[yellow]Warning:[/yellow] {escape(message)}")

    def error(self, message: str) -> None:
        self.error_console.print(f"[red]Error:[/red] {escape(message)}")

    @contextmanager
    def status(self, message: str) -> Iterator[object]:
        """Spinner shown while work is in progress; silent when quiet."""
        if self.quiet:
            yield _NullStatus()
            return
        with self.console.status(escape(message)) as status:
            yield status

    def _section(self, title: str, lines: list[str]) -> None:
        self.console.print()
        self.console.print(f"[bold]{title}[/bold]")
        self.console.print("-" * (len(title) + 1))
        for line in lines:
            self.console.print(escape(line))

    def show_blocked(self, root: PackageName, users: set[str]) -> None:
        self.console.print(
            f"[yellow]{escape(root)} can't be removed because other formula depend on it:[/yellow]"
        )
        self.console.print(escape(", ".join(sorted(users))))

    def show_plan(self, plan: RemovalPlan, dry_run: bool = False) -> None:
        self._section("Can safely be removed", list(plan.order))
        if dry_run:
            self._section("Won't be removed", format_retained(plan.retained))
            self._section("Order of operations", format_order(plan.order))

    def show_step(self, step: RemovalStep) -> None:
        name = escape(step.name)
        if step.status == StepStatus.WOULD_REMOVE:
            self.console.print(f"Would have removed {name}")
        elif step.status == StepStatus.REMOVED:
            self.console.print(f"[green]✓[/green] Removed {name}")
        elif step.status == StepStatus.FAILED:
            self.error(f"Could not remove {step.name}: {step.error}")

    def show_summary(self, report: ExecutionReport) -> None:
        if report.dry_run:
            return
        self.console.print()
        self.console.print(
            f"[green]Removed {len(report.removed)} package(s)[/green] "
            f"in {report.total_duration:.2f} seconds"
        )
        if report.failed:
            names = ", ".join(s.name for s in report.failed)
            self.error(f"{len(report.failed)} package(s) could not be removed: {names}")

    def confirm(self, prompt: str) -> bool:
        """Ask a yes/no question, defaulting to no."""
        self.prompt_console.print()
        return Confirm.ask(prompt, default=False, console=self.prompt_console)
