from __future__ import annotations

import asyncio
import logging
import shlex
from pathlib import Path

from lintstage.execution.base import CommandExecutor, CommandOutcome

logger = logging.getLogger(__name__)

EXIT_NOT_EXECUTABLE = 126
EXIT_NOT_FOUND = 127
EXIT_TIMEOUT = 124


class SubprocessExecutor(CommandExecutor):
    def __init__(self, timeout_seconds: float | None = None) -> None:
        self.timeout_seconds = timeout_seconds if timeout_seconds else None

    async def execute(
        self,
        command: str | list[str],
        *,
        cwd: Path,
        shell: bool = False,
    ) -> CommandOutcome:
        display = command if isinstance(command, str) else shlex.join(command)
        logger.debug("Running `%s` in %s", display, cwd)
        try:
            if shell:
                process = await asyncio.create_subprocess_shell(
                    command if isinstance(command, str) else shlex.join(command),
                    cwd=str(cwd),
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.STDOUT,
                )
            else:
                argv = shlex.split(command) if isinstance(command, str) else list(command)
                process = await asyncio.create_subprocess_exec(
                    *argv,
                    cwd=str(cwd),
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.STDOUT,
                )
        except FileNotFoundError as exc:
            return CommandOutcome(
                exit_status=EXIT_NOT_FOUND,
                output=f"Command not found: {exc.filename or display}",
            )
        except PermissionError as exc:
            return CommandOutcome(
                exit_status=EXIT_NOT_EXECUTABLE,
                output=f"Command is not executable: {exc.filename or display}",
            )
        except OSError as exc:
            return CommandOutcome(
                exit_status=EXIT_NOT_EXECUTABLE,
                output=f"Could not start `{display}`: {exc.strerror or exc}",
            )

        try:
            stdout, _ = await asyncio.wait_for(process.communicate(), timeout=self.timeout_seconds)
        except TimeoutError:
            process.kill()
            await process.wait()
            return CommandOutcome(
                exit_status=EXIT_TIMEOUT,
                output=f"Command timed out after {self.timeout_seconds:.1f}s: {display}",
            )

        output = (stdout or b"").decode("utf-8", errors="replace").strip()
        exit_status = process.returncode if process.returncode is not None else 1
        logger.debug("`%s` exited with %s", display, exit_status)
        return CommandOutcome(exit_status=exit_status, output=output)
