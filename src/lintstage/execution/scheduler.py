from __future__ import annotations

import asyncio
import logging
from collections.abc import Sequence
from dataclasses import dataclass, field
from enum import Enum

from lintstage.execution.runner import CommandRunner, TaskResult, TaskStatus
from lintstage.planner import Task
from lintstage.reporting import ProgressReporter

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ConcurrencyPolicy:
    max_parallel: int = 1

    @classmethod
    def sequential(cls) -> ConcurrencyPolicy:
        return cls(max_parallel=1)

    @classmethod
    def bounded(cls, limit: int) -> ConcurrencyPolicy:
        if limit < 1:
            raise ValueError("Concurrency limit must be at least 1")
        return cls(max_parallel=limit)

    @property
    def is_sequential(self) -> bool:
        return self.max_parallel == 1


class AbortPolicy(str, Enum):
    ABORT_ON_FIRST_ERROR = "abort_on_first_error"
    COLLECT_ALL = "collect_all"


@dataclass(slots=True)
class SchedulerReport:
    results: list[TaskResult] = field(default_factory=list)

    @property
    def has_errors(self) -> bool:
        return any(not result.ok for result in self.results)

    @property
    def failed(self) -> list[TaskResult]:
        return [result for result in self.results if result.status == TaskStatus.FAILED]

    @property
    def executed(self) -> list[TaskResult]:
        return [
            result
            for result in self.results
            if result.status in {TaskStatus.PASSED, TaskStatus.FAILED}
        ]


class ConcurrencyScheduler:
    def __init__(self, runner: CommandRunner, reporter: ProgressReporter | None = None) -> None:
        self.runner = runner
        self.reporter = reporter or ProgressReporter()

    async def _run_task(self, task: Task) -> TaskResult:
        self.reporter.task_started(task)
        result = await self.runner.run(task)
        self.reporter.task_finished(result)
        return result

    async def execute(
        self,
        tasks: Sequence[Task],
        concurrency: ConcurrencyPolicy,
        abort_policy: AbortPolicy,
    ) -> SchedulerReport:
        results: dict[int, TaskResult] = {}
        runnable: list[tuple[int, Task]] = []
        for position, task in enumerate(tasks):
            if task.is_empty:
                reason = f"No staged files match {task.pattern}"
                self.reporter.task_skipped(task, reason)
                results[position] = TaskResult(task=task, status=TaskStatus.SKIPPED)
            else:
                runnable.append((position, task))

        abort_on_error = abort_policy == AbortPolicy.ABORT_ON_FIRST_ERROR
        if concurrency.is_sequential:
            aborted = False
            for position, task in runnable:
                if aborted:
                    results[position] = TaskResult(task=task, status=TaskStatus.CANCELLED)
                    continue
                result = await self._run_task(task)
                results[position] = result
                if not result.ok and abort_on_error:
                    logger.debug("Stopping after failure in %s", task.pattern)
                    aborted = True
        else:
            semaphore = asyncio.Semaphore(concurrency.max_parallel)
            failure_seen = asyncio.Event()

            async def _bounded(position: int, task: Task) -> None:
                async with semaphore:
                    if abort_on_error and failure_seen.is_set():
                        results[position] = TaskResult(task=task, status=TaskStatus.CANCELLED)
                        return
                    result = await self._run_task(task)
                    results[position] = result
                    if not result.ok:
                        failure_seen.set()

            # Nothing may still be running when an error reaches the caller.
            outcomes = await asyncio.gather(
                *(_bounded(position, task) for position, task in runnable),
                return_exceptions=True,
            )
            for outcome in outcomes:
                if isinstance(outcome, BaseException):
                    raise outcome

        report = SchedulerReport(results=[results[position] for position in range(len(tasks))])
        logger.debug(
            "Ran %d task(s), %d failed", len(report.executed), len(report.failed)
        )
        return report
