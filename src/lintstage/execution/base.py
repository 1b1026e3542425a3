from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from pathlib import Path


class CommandError(RuntimeError):
    """Describes a linter command that exited with a failing status."""

    def __init__(self, command: str, *, exit_status: int, output: str = "") -> None:
        super().__init__(f"{command} exited with status {exit_status}")
        self.command = command
        self.exit_status = exit_status
        self.output = output


@dataclass(slots=True)
class CommandOutcome:
    exit_status: int
    output: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_status == 0


class CommandExecutor(ABC):
    @abstractmethod
    async def execute(
        self,
        command: str | list[str],
        *,
        cwd: Path,
        shell: bool = False,
    ) -> CommandOutcome:
        """Run one command to completion and report its exit status and output."""
