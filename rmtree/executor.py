import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from rmtree.errors import RemovalFailed
from rmtree.models import PackageName, RemovalPlan
from rmtree.package_index import PackageIndex

logger = logging.getLogger(__name__)


class StepStatus(Enum):
    PENDING = "pending"
    REMOVED = "removed"
    WOULD_REMOVE = "would_remove"
    FAILED = "failed"


@dataclass
class RemovalStep:
    name: PackageName
    status: StepStatus = StepStatus.PENDING
    error: str = ""
    start_time: float | None = None
    end_time: float | None = None

    def duration(self) -> float | None:
        if self.start_time and self.end_time:
            return self.end_time - self.start_time
        return None


@dataclass
class ExecutionReport:
    root: PackageName
    dry_run: bool
    steps: list[RemovalStep] = field(default_factory=list)
    total_duration: float = 0.0

    @property
    def removed(self) -> list[PackageName]:
        return [s.name for s in self.steps if s.status == StepStatus.REMOVED]

    @property
    def failed(self) -> list[RemovalStep]:
        return [s for s in self.steps if s.status == StepStatus.FAILED]

    @property
    def success(self) -> bool:
        return not self.failed

    def get_summary(self) -> dict[str, Any]:
        return {
            "root": self.root,
            "dry_run": self.dry_run,
            "total_steps": len(self.steps),
            "removed": len(self.removed),
            "failed": len(self.failed),
            "steps": [
                {
                    "name": s.name,
                    "status": s.status.value,
                    "error": s.error,
                    "duration": s.duration(),
                }
                for s in self.steps
            ],
        }


class PlanExecutor:
    """Applies a removal plan in order, one package at a time."""

    def __init__(
        self,
        index: PackageIndex,
        dry_run: bool = False,
        progress_callback: Callable[[int, int, RemovalStep], None] | None = None,
    ):
        self.index = index
        self.dry_run = dry_run
        self.progress_callback = progress_callback

    def _remove(self, step: RemovalStep) -> None:
        step.start_time = time.time()

        if self.dry_run:
            step.status = StepStatus.WOULD_REMOVE
            step.end_time = time.time()
            return

        try:
            self.index.remove(step.name)
            step.status = StepStatus.REMOVED
        except RemovalFailed as e:
            # Keep going: the remaining orphans are still worth removing
            step.status = StepStatus.FAILED
            step.error = e.reason or str(e)
            logger.info(f"Failed to remove {step.name}: {step.error}")
        step.end_time = time.time()

    def execute(self, plan: RemovalPlan) -> ExecutionReport:
        """Remove (or, in dry-run mode, report) every package of the plan in order."""
        start_time = time.time()
        report = ExecutionReport(
            root=plan.root,
            dry_run=self.dry_run,
            steps=[RemovalStep(name=name) for name in plan.order],
        )

        logger.info(f"Executing removal of {plan.root} with {len(report.steps)} steps")

        for i, step in enumerate(report.steps):
            self._remove(step)
            if self.progress_callback:
                self.progress_callback(i + 1, len(report.steps), step)

        report.total_duration = time.time() - start_time
        if report.success:
            logger.info(f"Removal of {plan.root} completed")
        else:
            logger.info(f"Removal of {plan.root} completed with {len(report.failed)} failures")
        return report
