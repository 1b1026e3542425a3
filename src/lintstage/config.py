from __future__ import annotations

import json
import shlex
import tomllib
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Literal

RendererName = Literal["default", "verbose", "silent"]

CONFIG_FILENAME = "lintstage.toml"
RENDERERS = ("default", "verbose", "silent")
OPTION_KEYS = (
    "concurrent",
    "max_parallel",
    "chunk_size",
    "renderer",
    "match_base",
    "relative",
    "ignore",
    "command_timeout",
)


class InvalidConfigError(ValueError):
    """Raised when a configuration cannot be used to run linters."""

    def __init__(self, problems: list[str]) -> None:
        self.problems = list(problems)
        super().__init__("Invalid lintstage config:\n" + "\n".join(f"- {p}" for p in problems))


@dataclass(slots=True)
class LintStageConfig:
    linters: dict[str, list[str]] = field(default_factory=dict)
    concurrent: bool = True
    max_parallel: int = 4
    chunk_size: int = 0
    renderer: RendererName = "default"
    match_base: bool = True
    relative: bool = False
    ignore: list[str] = field(default_factory=list)
    command_timeout: float = 0.0

    @classmethod
    def default(cls) -> LintStageConfig:
        return cls()

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> LintStageConfig:
        if "linters" in data:
            raw_linters = data["linters"]
        else:
            # Plain pattern map: every non-option key is a pattern.
            raw_linters = {
                key: value for key, value in data.items() if key not in OPTION_KEYS
            }
        unknown = [key for key in data if key not in OPTION_KEYS and key != "linters"]
        if "linters" in data and unknown:
            raise InvalidConfigError([f"Unknown option: {key}" for key in unknown])
        if not isinstance(raw_linters, dict):
            raise InvalidConfigError(["'linters' must be a table of pattern = commands"])

        linters: dict[str, list[str]] = {}
        problems: list[str] = []
        for pattern, commands in raw_linters.items():
            if isinstance(commands, str):
                linters[str(pattern)] = [commands]
            elif isinstance(commands, list) and all(isinstance(item, str) for item in commands):
                linters[str(pattern)] = list(commands)
            else:
                problems.append(
                    f"Commands for '{pattern}' must be a string or a list of strings"
                )
        if problems:
            raise InvalidConfigError(problems)

        options = {key: data[key] for key in OPTION_KEYS if key in data}
        return cls(linters=linters, **options)

    def to_dict(self) -> dict[str, Any]:
        return {
            "concurrent": self.concurrent,
            "max_parallel": self.max_parallel,
            "chunk_size": self.chunk_size,
            "renderer": self.renderer,
            "match_base": self.match_base,
            "relative": self.relative,
            "ignore": list(self.ignore),
            "command_timeout": self.command_timeout,
            "linters": {pattern: list(commands) for pattern, commands in self.linters.items()},
        }

    def validate(self) -> list[str]:
        problems: list[str] = []
        if not isinstance(self.concurrent, bool):
            problems.append("'concurrent' must be a boolean")
        if (
            isinstance(self.max_parallel, bool)
            or not isinstance(self.max_parallel, int)
            or self.max_parallel < 1
        ):
            problems.append("'max_parallel' must be a positive integer")
        if (
            isinstance(self.chunk_size, bool)
            or not isinstance(self.chunk_size, int)
            or self.chunk_size < 0
        ):
            problems.append("'chunk_size' must be zero or a positive integer")
        if self.renderer not in RENDERERS:
            problems.append(f"'renderer' must be one of {', '.join(RENDERERS)}")
        if not isinstance(self.match_base, bool):
            problems.append("'match_base' must be a boolean")
        if not isinstance(self.relative, bool):
            problems.append("'relative' must be a boolean")
        if not isinstance(self.ignore, list) or not all(
            isinstance(item, str) for item in self.ignore
        ):
            problems.append("'ignore' must be a list of glob patterns")
        if (
            isinstance(self.command_timeout, bool)
            or not isinstance(self.command_timeout, (int, float))
            or self.command_timeout < 0
        ):
            problems.append("'command_timeout' must be a non-negative number")

        for pattern, commands in self.linters.items():
            if not pattern.strip():
                problems.append("Linter patterns must not be empty")
                continue
            if not commands:
                problems.append(f"No commands configured for '{pattern}'")
            for command in commands:
                if not command.strip():
                    problems.append(f"Empty command configured for '{pattern}'")
                    continue
                try:
                    shlex.split(command)
                except ValueError as exc:
                    problems.append(f"Cannot parse command '{command}' for '{pattern}': {exc}")
        return problems


def validate_config(config: object) -> LintStageConfig:
    if not isinstance(config, LintStageConfig):
        raise InvalidConfigError(
            [f"Expected a LintStageConfig, got {type(config).__name__}. Use load_config."]
        )
    problems = config.validate()
    if problems:
        raise InvalidConfigError(problems)
    return config


def _toml_value(value: object) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        rendered = f"{value:.3f}".rstrip("0").rstrip(".")
        return rendered if rendered else "0"
    if isinstance(value, list):
        return "[" + ", ".join(_toml_value(item) for item in value) + "]"
    return json.dumps(str(value), ensure_ascii=False)


def dumps_toml(config: LintStageConfig) -> str:
    data = config.to_dict()
    linters = data.pop("linters")
    lines: list[str] = []
    for key, value in data.items():
        lines.append(f"{key} = {_toml_value(value)}")
    lines.append("")
    lines.append("[linters]")
    for pattern, commands in linters.items():
        lines.append(f"{json.dumps(pattern, ensure_ascii=False)} = {_toml_value(commands)}")
    return "\n".join(lines).strip() + "\n"


def find_config(repo_root: Path) -> Path | None:
    candidate = repo_root / CONFIG_FILENAME
    if candidate.exists():
        return candidate
    pyproject = repo_root / "pyproject.toml"
    if pyproject.exists():
        try:
            data = tomllib.loads(pyproject.read_text(encoding="utf-8"))
        except tomllib.TOMLDecodeError:
            return None
        if isinstance(data.get("tool"), dict) and "lintstage" in data["tool"]:
            return pyproject
    return None


def load_config(path: Path | None) -> LintStageConfig:
    if path is None or not path.exists():
        return LintStageConfig.default()
    try:
        data = tomllib.loads(path.read_text(encoding="utf-8"))
    except tomllib.TOMLDecodeError as exc:
        raise InvalidConfigError([f"{path.name}: {exc}"]) from exc
    if path.name == "pyproject.toml":
        data = data.get("tool", {}).get("lintstage", {})
        if not isinstance(data, dict):
            raise InvalidConfigError(["[tool.lintstage] must be a table"])
    try:
        config = LintStageConfig.from_dict(data)
    except TypeError as exc:
        raise InvalidConfigError([str(exc)]) from exc
    return validate_config(config)


def save_config(path: Path, config: LintStageConfig) -> None:
    path.write_text(dumps_toml(config), encoding="utf-8")
