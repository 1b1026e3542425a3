from lintstage.execution.base import CommandError, CommandExecutor, CommandOutcome
from lintstage.execution.runner import CommandRunner, TaskResult, TaskStatus
from lintstage.execution.scheduler import (
    AbortPolicy,
    ConcurrencyPolicy,
    ConcurrencyScheduler,
    SchedulerReport,
)
from lintstage.execution.shell import SubprocessExecutor

__all__ = [
    "AbortPolicy",
    "CommandError",
    "CommandExecutor",
    "CommandOutcome",
    "CommandRunner",
    "ConcurrencyPolicy",
    "ConcurrencyScheduler",
    "SchedulerReport",
    "SubprocessExecutor",
    "TaskResult",
    "TaskStatus",
]
