from __future__ import annotations

from typing import TYPE_CHECKING

import click

from lintstage.config import RendererName

if TYPE_CHECKING:
    from lintstage.execution.runner import TaskResult
    from lintstage.planner import Task
    from lintstage.workflow import WorkflowResult


class ProgressReporter:
    """Receives workflow notifications. Never influences control flow."""

    def phase_started(self, phase: str, title: str) -> None:
        pass

    def phase_finished(self, phase: str, title: str) -> None:
        pass

    def phase_skipped(self, phase: str, reason: str) -> None:
        pass

    def phase_failed(self, phase: str, message: str) -> None:
        pass

    def task_started(self, task: Task) -> None:
        pass

    def task_skipped(self, task: Task, reason: str) -> None:
        pass

    def task_finished(self, result: TaskResult) -> None:
        pass

    def summary(self, result: WorkflowResult) -> None:
        pass


class SilentReporter(ProgressReporter):
    pass


class ConsoleReporter(ProgressReporter):
    def __init__(self, *, verbose: bool = False) -> None:
        self.verbose = verbose

    @staticmethod
    def _line(symbol: str, color: str, text: str, indent: int = 0) -> None:
        click.echo(f"{'  ' * indent}{click.style(symbol, fg=color)} {text}")

    def phase_started(self, phase: str, title: str) -> None:
        if self.verbose:
            self._line(">", "cyan", title)

    def phase_finished(self, phase: str, title: str) -> None:
        self._line("✔", "green", title)

    def phase_skipped(self, phase: str, reason: str) -> None:
        self._line("↓", "yellow", reason)

    def phase_failed(self, phase: str, message: str) -> None:
        self._line("✖", "red", message)

    def task_started(self, task: Task) -> None:
        if self.verbose:
            self._line(">", "cyan", task.title, indent=1)

    def task_skipped(self, task: Task, reason: str) -> None:
        self._line("↓", "yellow", f"{task.title} [skipped: {reason}]", indent=1)

    def task_finished(self, result: TaskResult) -> None:
        if result.ok:
            self._line("✔", "green", result.task.title, indent=1)
            if self.verbose:
                for output in result.outputs:
                    click.echo(click.style(output, dim=True))
            return
        self._line("✖", "red", result.task.title, indent=1)
        for error in result.errors:
            self._line("✖", "red", f"{error.command} (exit {error.exit_status})", indent=2)

    def summary(self, result: WorkflowResult) -> None:
        for failure in result.failures:
            click.echo("")
            click.echo(
                click.style(
                    f"✖ {failure.command} found some errors. "
                    "Please fix them and try committing again.",
                    fg="red",
                )
            )
            if failure.output:
                click.echo(failure.output)
        if result.message and result.completed:
            color = "green" if result.exit_code == 0 else "red"
            click.echo(click.style(result.message, fg=color))


def build_reporter(renderer: RendererName) -> ProgressReporter:
    if renderer == "silent":
        return SilentReporter()
    return ConsoleReporter(verbose=renderer == "verbose")
