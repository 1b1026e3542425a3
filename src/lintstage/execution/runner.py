from __future__ import annotations

import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from lintstage.execution.base import CommandError, CommandExecutor
from lintstage.planner import CommandTemplate, Task

logger = logging.getLogger(__name__)


class TaskStatus(str, Enum):
    PASSED = "passed"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"


@dataclass(slots=True)
class TaskResult:
    task: Task
    status: TaskStatus
    errors: list[CommandError] = field(default_factory=list)
    outputs: list[str] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return self.status != TaskStatus.FAILED


def _chunks(items: list[str], size: int) -> list[list[str]]:
    if size <= 0 or len(items) <= size:
        return [items]
    return [items[start : start + size] for start in range(0, len(items), size)]


class CommandRunner:
    """Runs one task's commands in order, stopping at the first failure."""

    def __init__(
        self,
        executor: CommandExecutor,
        repo_root: Path,
        *,
        relative: bool = False,
        chunk_size: int = 0,
    ) -> None:
        self.executor = executor
        self.repo_root = repo_root.resolve()
        self.relative = relative
        self.chunk_size = max(0, int(chunk_size))

    def file_arguments(self, task: Task) -> list[str]:
        if self.relative:
            return list(task.file_list)
        return [str(self.repo_root / name) for name in task.file_list]

    def invocations(self, template: CommandTemplate, files: list[str]) -> list[str | list[str]]:
        if template.per_file:
            return [template.bind([name]) for name in files]
        return [template.bind(chunk) for chunk in _chunks(files, self.chunk_size)]

    async def run(self, task: Task) -> TaskResult:
        if task.is_empty:
            return TaskResult(task=task, status=TaskStatus.SKIPPED)

        files = self.file_arguments(task)
        result = TaskResult(task=task, status=TaskStatus.PASSED)
        for template in task.commands:
            for command in self.invocations(template, files):
                outcome = await self.executor.execute(
                    command, cwd=self.repo_root, shell=template.use_shell
                )
                if outcome.output:
                    result.outputs.append(outcome.output)
                if outcome.ok:
                    continue
                logger.debug(
                    "%s failed for %s with status %s",
                    template.text,
                    task.pattern,
                    outcome.exit_status,
                )
                result.status = TaskStatus.FAILED
                result.errors.append(
                    CommandError(
                        template.text,
                        exit_status=outcome.exit_status,
                        output=outcome.output,
                    )
                )
                return result
        return result
