from __future__ import annotations

import logging
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field, replace
from enum import Enum
from pathlib import Path

from lintstage.config import InvalidConfigError, LintStageConfig, validate_config
from lintstage.execution.base import CommandError, CommandExecutor
from lintstage.execution.runner import CommandRunner
from lintstage.execution.scheduler import (
    AbortPolicy,
    ConcurrencyPolicy,
    ConcurrencyScheduler,
    SchedulerReport,
)
from lintstage.execution.shell import SubprocessExecutor
from lintstage.git.guard import GitStateGuard
from lintstage.git.repo import (
    GitError,
    GitRepository,
    RestoreConflictError,
    StashError,
    VcsQueryError,
    VcsUnavailableError,
)
from lintstage.git.staged import StagedFile, StagedFileSource
from lintstage.planner import Task, generate_tasks
from lintstage.reporting import ProgressReporter

logger = logging.getLogger(__name__)


class Phase(str, Enum):
    INIT = "init"
    PLAN = "plan"
    DETECT_UNSTAGED = "detect_unstaged"
    STASH = "stash"
    RUN_TASKS = "run_tasks"
    UPDATE_INDEX = "update_index"
    RESTORE_STASH = "restore_stash"
    DONE = "done"
    FAILED = "failed"


TERMINAL_PHASES = frozenset({Phase.DONE, Phase.FAILED})
STASH_PROTECTED_PHASES = frozenset({Phase.RUN_TASKS, Phase.UPDATE_INDEX})

PHASE_TITLES = {
    Phase.STASH: "Stashing changes...",
    Phase.RUN_TASKS: "Running linters...",
    Phase.UPDATE_INDEX: "Updating index...",
    Phase.RESTORE_STASH: "Restoring local changes...",
}


class Outcome(str, Enum):
    SUCCESS = "success"
    WITH_ERRORS = "with_errors"
    NO_TASKS = "no_tasks"
    INVALID_CONFIG = "invalid_config"
    VCS_ERROR = "vcs_error"
    STASH_ERROR = "stash_error"
    RESTORE_CONFLICT = "restore_conflict"

    @property
    def phase(self) -> Phase:
        if self in {Outcome.SUCCESS, Outcome.WITH_ERRORS, Outcome.NO_TASKS}:
            return Phase.DONE
        return Phase.FAILED

    @property
    def exit_code(self) -> int:
        return 0 if self in {Outcome.SUCCESS, Outcome.NO_TASKS} else 1


@dataclass(frozen=True, slots=True)
class WorkflowContext:
    has_stash: bool = False
    has_errors: bool = False
    staged_files: tuple[StagedFile, ...] = ()
    tasks: tuple[Task, ...] = ()
    report: SchedulerReport | None = None
    warnings: tuple[str, ...] = ()
    outcome: Outcome | None = None
    message: str = ""


@dataclass(frozen=True, slots=True)
class WorkflowResult:
    outcome: Outcome
    context: WorkflowContext
    phases: tuple[Phase, ...] = field(default_factory=tuple)

    @property
    def message(self) -> str:
        return self.context.message

    @property
    def exit_code(self) -> int:
        return self.outcome.exit_code

    @property
    def completed(self) -> bool:
        return self.outcome.phase == Phase.DONE

    @property
    def failures(self) -> list[CommandError]:
        if self.context.report is None:
            return []
        return [error for result in self.context.report.failed for error in result.errors]


Transition = tuple[Phase, WorkflowContext]


class WorkflowOrchestrator:
    """Drives one lint run through the phases in ``Phase`` order.

    Each non-terminal phase has exactly one handler. A handler receives the
    current context and returns the next phase with a new context; it never
    re-enters an earlier phase. Once a stash exists the restore phase is always
    reached, whatever the linters reported.
    """

    def __init__(
        self,
        config: LintStageConfig,
        *,
        staged_source: StagedFileSource,
        guard: GitStateGuard,
        scheduler: ConcurrencyScheduler,
        reporter: ProgressReporter | None = None,
    ) -> None:
        self.config = config
        self.staged_source = staged_source
        self.guard = guard
        self.scheduler = scheduler
        self.reporter = reporter or ProgressReporter()
        self.handlers: dict[Phase, Callable[[WorkflowContext], Awaitable[Transition]]] = {
            Phase.INIT: self._init,
            Phase.PLAN: self._plan,
            Phase.DETECT_UNSTAGED: self._detect_unstaged,
            Phase.STASH: self._stash,
            Phase.RUN_TASKS: self._run_tasks,
            Phase.UPDATE_INDEX: self._update_index,
            Phase.RESTORE_STASH: self._restore_stash,
        }

    def _execution_policy(self) -> tuple[ConcurrencyPolicy, AbortPolicy]:
        if self.config.concurrent:
            # Concurrent runs finish every task so errors are reported together.
            return ConcurrencyPolicy.bounded(self.config.max_parallel), AbortPolicy.COLLECT_ALL
        return ConcurrencyPolicy.sequential(), AbortPolicy.ABORT_ON_FIRST_ERROR

    def _fail(self, context: WorkflowContext, outcome: Outcome, message: str) -> Transition:
        return Phase.FAILED, replace(context, outcome=outcome, message=message)

    def _finish(self, context: WorkflowContext) -> Transition:
        if context.has_errors:
            failed = len(context.report.failed) if context.report else 0
            parts = [f"{failed} command(s) failed."] if failed else []
            parts.extend(context.warnings)
            return Phase.DONE, replace(
                context, outcome=Outcome.WITH_ERRORS, message=" ".join(parts)
            )
        return Phase.DONE, replace(context, outcome=Outcome.SUCCESS, message="All checks passed.")

    def _recover(self, phase: Phase, context: WorkflowContext, exc: Exception) -> Transition:
        logger.exception("Unexpected error in %s; restoring local changes", phase.value)
        message = f"Unexpected error in {phase.value}: {exc}"
        self.reporter.phase_failed(phase, message)
        return Phase.RESTORE_STASH, replace(
            context, has_errors=True, warnings=(*context.warnings, message)
        )

    async def run(self) -> WorkflowResult:
        logger.debug("Running all linter scripts")
        context = WorkflowContext()
        phase = Phase.INIT
        visited: list[Phase] = []
        while phase not in TERMINAL_PHASES:
            visited.append(phase)
            try:
                phase, context = await self.handlers[phase](context)
            except Exception as exc:
                if not context.has_stash or phase not in STASH_PROTECTED_PHASES:
                    raise
                phase, context = self._recover(phase, context, exc)
            logger.debug("Entering %s", phase.value)
        visited.append(phase)

        if context.outcome is None:
            raise RuntimeError(f"Workflow reached {phase.value} without an outcome")
        result = WorkflowResult(outcome=context.outcome, context=context, phases=tuple(visited))
        self.reporter.summary(result)
        return result

    async def _init(self, context: WorkflowContext) -> Transition:
        try:
            validate_config(self.config)
        except InvalidConfigError as exc:
            return self._fail(context, Outcome.INVALID_CONFIG, str(exc))
        try:
            staged = self.staged_source.list_staged_files()
        except (VcsUnavailableError, VcsQueryError) as exc:
            return self._fail(context, Outcome.VCS_ERROR, str(exc))
        return Phase.PLAN, replace(context, staged_files=tuple(staged))

    async def _plan(self, context: WorkflowContext) -> Transition:
        filenames = [item.filename for item in context.staged_files]
        try:
            tasks = generate_tasks(self.config, filenames)
        except InvalidConfigError as exc:
            return self._fail(context, Outcome.INVALID_CONFIG, str(exc))
        context = replace(context, tasks=tuple(tasks))

        if not tasks:
            message = "No linters configured. No tasks to run."
        elif not filenames:
            message = "No staged files found."
        elif all(task.is_empty for task in tasks):
            message = "No staged files match any configured pattern."
        else:
            return Phase.DETECT_UNSTAGED, context
        return Phase.DONE, replace(context, outcome=Outcome.NO_TASKS, message=message)

    async def _detect_unstaged(self, context: WorkflowContext) -> Transition:
        try:
            has_unstaged = self.guard.has_unstaged_changes()
        except VcsQueryError as exc:
            return self._fail(context, Outcome.VCS_ERROR, str(exc))
        if not has_unstaged:
            self.reporter.phase_skipped(Phase.STASH, "No unstaged files found...")
            return Phase.RUN_TASKS, replace(context, has_stash=False)
        return Phase.STASH, context

    async def _stash(self, context: WorkflowContext) -> Transition:
        title = PHASE_TITLES[Phase.STASH]
        self.reporter.phase_started(Phase.STASH, title)
        try:
            self.guard.stash_save()
        except StashError as exc:
            message = f"Unable to stash unstaged changes: {exc}"
            self.reporter.phase_failed(Phase.STASH, message)
            return self._fail(context, Outcome.STASH_ERROR, message)
        self.reporter.phase_finished(Phase.STASH, title)
        return Phase.RUN_TASKS, replace(context, has_stash=True)

    async def _run_tasks(self, context: WorkflowContext) -> Transition:
        title = PHASE_TITLES[Phase.RUN_TASKS]
        self.reporter.phase_started(Phase.RUN_TASKS, title)
        concurrency, abort_policy = self._execution_policy()
        report = await self.scheduler.execute(context.tasks, concurrency, abort_policy)
        context = replace(context, report=report, has_errors=report.has_errors)
        if report.has_errors:
            self.reporter.phase_failed(Phase.RUN_TASKS, title)
        else:
            self.reporter.phase_finished(Phase.RUN_TASKS, title)

        if not context.has_stash:
            return self._finish(context)
        if context.has_errors:
            self.reporter.phase_skipped(
                Phase.UPDATE_INDEX, "Skipping index update since there are errors"
            )
            return Phase.RESTORE_STASH, context
        return Phase.UPDATE_INDEX, context

    async def _update_index(self, context: WorkflowContext) -> Transition:
        title = PHASE_TITLES[Phase.UPDATE_INDEX]
        self.reporter.phase_started(Phase.UPDATE_INDEX, title)
        report = context.report or SchedulerReport()
        paths = sorted({name for result in report.executed for name in result.task.file_list})
        try:
            self.guard.fold_fixes_into_stash(paths)
        except GitError as exc:
            message = f"Lint fixes were not kept because the index could not be read: {exc}"
            self.reporter.phase_failed(Phase.UPDATE_INDEX, message)
            return Phase.RESTORE_STASH, replace(
                context, has_errors=True, warnings=(*context.warnings, message)
            )
        self.reporter.phase_finished(Phase.UPDATE_INDEX, title)
        return Phase.RESTORE_STASH, context

    async def _restore_stash(self, context: WorkflowContext) -> Transition:
        title = PHASE_TITLES[Phase.RESTORE_STASH]
        self.reporter.phase_started(Phase.RESTORE_STASH, title)
        try:
            self.guard.stash_pop()
        except (RestoreConflictError, StashError) as exc:
            message = f"Stash restore requires manual intervention. {exc}"
            self.reporter.phase_failed(Phase.RESTORE_STASH, message)
            return self._fail(context, Outcome.RESTORE_CONFLICT, message)
        self.reporter.phase_finished(Phase.RESTORE_STASH, title)
        return self._finish(context)


def build_orchestrator(
    config: LintStageConfig,
    repo: GitRepository,
    *,
    reporter: ProgressReporter | None = None,
    executor: CommandExecutor | None = None,
) -> WorkflowOrchestrator:
    runner = CommandRunner(
        executor or SubprocessExecutor(timeout_seconds=config.command_timeout),
        repo.root,
        relative=config.relative,
        chunk_size=config.chunk_size,
    )
    return WorkflowOrchestrator(
        config,
        staged_source=StagedFileSource(repo),
        guard=GitStateGuard(repo),
        scheduler=ConcurrencyScheduler(runner, reporter),
        reporter=reporter,
    )


async def run_all(
    config: LintStageConfig,
    cwd: Path | None = None,
    *,
    reporter: ProgressReporter | None = None,
    executor: CommandExecutor | None = None,
) -> WorkflowResult:
    repo = GitRepository.discover(cwd)
    orchestrator = build_orchestrator(config, repo, reporter=reporter, executor=executor)
    return await orchestrator.run()
