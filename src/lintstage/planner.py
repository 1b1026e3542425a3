from __future__ import annotations

import functools
import logging
import re
import shlex
from collections.abc import Iterable, Mapping, Sequence
from dataclasses import dataclass
from typing import Any

from lintstage.config import InvalidConfigError, LintStageConfig

logger = logging.getLogger(__name__)

SHELL_REQUIRED_PATTERN = re.compile(r"(?:\|\||&&|[|;<>`]|[$]\()")
BRACE_PATTERN = re.compile(r"\{([^{}]*,[^{}]*)\}")
FILE_PLACEHOLDER = "{file}"
FILES_PLACEHOLDER = "{files}"


@dataclass(frozen=True, slots=True)
class CommandTemplate:
    text: str
    argv: tuple[str, ...]
    use_shell: bool

    @classmethod
    def parse(cls, text: str) -> CommandTemplate:
        command_text = text.strip()
        if not command_text:
            raise InvalidConfigError(["Command is empty."])
        use_shell = bool(SHELL_REQUIRED_PATTERN.search(command_text))
        try:
            argv = tuple(shlex.split(command_text))
        except ValueError as exc:
            raise InvalidConfigError([f"Cannot parse command '{command_text}': {exc}"]) from exc
        return cls(text=command_text, argv=argv, use_shell=use_shell)

    @property
    def per_file(self) -> bool:
        return FILE_PLACEHOLDER in self.text

    def bind(self, files: Sequence[str]) -> str | list[str]:
        """Return the command line for ``files``: a shell string or an argv list."""
        if self.use_shell:
            if self.per_file:
                return self.text.replace(FILE_PLACEHOLDER, shlex.quote(files[0]))
            if FILES_PLACEHOLDER in self.text:
                return self.text.replace(FILES_PLACEHOLDER, shlex.join(files))
            return f"{self.text} {shlex.join(files)}" if files else self.text

        argv: list[str] = []
        consumed = False
        for token in self.argv:
            if token == FILES_PLACEHOLDER:
                argv.extend(files)
                consumed = True
            elif FILE_PLACEHOLDER in token:
                argv.append(token.replace(FILE_PLACEHOLDER, files[0]))
                consumed = True
            elif FILES_PLACEHOLDER in token:
                argv.append(token.replace(FILES_PLACEHOLDER, " ".join(files)))
                consumed = True
            else:
                argv.append(token)
        if not consumed:
            argv.extend(files)
        return argv


@dataclass(frozen=True, slots=True)
class Task:
    pattern: str
    commands: tuple[CommandTemplate, ...]
    file_list: tuple[str, ...]

    @property
    def title(self) -> str:
        return f"Running tasks for {self.pattern}"

    @property
    def is_empty(self) -> bool:
        return not self.file_list

    def to_dict(self) -> dict[str, Any]:
        return {
            "pattern": self.pattern,
            "commands": [command.text for command in self.commands],
            "files": list(self.file_list),
        }


def expand_braces(pattern: str) -> list[str]:
    match = BRACE_PATTERN.search(pattern)
    if match is None:
        return [pattern]
    head, tail = pattern[: match.start()], pattern[match.end() :]
    expanded: list[str] = []
    for option in match.group(1).split(","):
        expanded.extend(expand_braces(f"{head}{option}{tail}"))
    return expanded


@functools.lru_cache(maxsize=256)
def _glob_to_regex(pattern: str) -> re.Pattern[str]:
    """Translate a glob into a regex over ``/``-separated paths.

    ``*`` and ``?`` stay inside one path segment, ``**/`` matches zero or more
    directories and any other ``**`` matches anything.
    """
    parts: list[str] = []
    index = 0
    while index < len(pattern):
        char = pattern[index]
        if pattern.startswith("**/", index):
            parts.append("(?:[^/]*/)*")
            index += 3
            continue
        if pattern.startswith("**", index):
            parts.append(".*")
            index += 2
            continue
        if char == "*":
            parts.append("[^/]*")
        elif char == "?":
            parts.append("[^/]")
        elif char == "[":
            start = index + 1
            if pattern.startswith("!", start):
                start += 1
            if pattern.startswith("]", start):
                start += 1
            end = pattern.find("]", start)
            if end == -1:
                parts.append(re.escape(char))
            else:
                body = pattern[index + 1 : end]
                for special in ("\\", "[", "]"):
                    body = body.replace(special, "\\" + special)
                if body.startswith("!"):
                    body = "^/" + body[1:]
                elif body.startswith("^"):
                    body = "\\" + body
                parts.append(f"[{body}]")
                index = end
        else:
            parts.append(re.escape(char))
        index += 1
    return re.compile("".join(parts) + r"\Z")


def matches_pattern(path: str, pattern: str, *, match_base: bool = True) -> bool:
    normalized = path.replace("\\", "/")
    basename = normalized.rsplit("/", maxsplit=1)[-1]
    for candidate in expand_braces(pattern):
        target = basename if match_base and "/" not in candidate else normalized
        if _glob_to_regex(candidate).match(target):
            return True
    return False


class TaskPlanner:
    def __init__(self, *, match_base: bool = True, ignore: Iterable[str] = ()) -> None:
        self.match_base = match_base
        self.ignore = list(ignore)

    def _is_ignored(self, path: str) -> bool:
        return any(
            matches_pattern(path, pattern, match_base=self.match_base) for pattern in self.ignore
        )

    def plan(self, linters: Mapping[str, Sequence[str]], filenames: Sequence[str]) -> list[Task]:
        candidates = [name for name in filenames if not self._is_ignored(name)]
        tasks: list[Task] = []
        for pattern, commands in linters.items():
            templates = tuple(CommandTemplate.parse(command) for command in commands)
            if not templates:
                raise InvalidConfigError([f"No commands configured for '{pattern}'"])
            file_list = tuple(
                name
                for name in candidates
                if matches_pattern(name, pattern, match_base=self.match_base)
            )
            tasks.append(Task(pattern=pattern, commands=templates, file_list=file_list))
            logger.debug("Planned %s with %d file(s)", pattern, len(file_list))
        return tasks


def generate_tasks(config: LintStageConfig, filenames: Sequence[str]) -> list[Task]:
    planner = TaskPlanner(match_base=config.match_base, ignore=config.ignore)
    return planner.plan(config.linters, filenames)
