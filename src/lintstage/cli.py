from __future__ import annotations

import asyncio
import json
import logging
from dataclasses import dataclass
from pathlib import Path

import click

from lintstage.config import (
    CONFIG_FILENAME,
    InvalidConfigError,
    LintStageConfig,
    find_config,
    load_config,
    save_config,
)
from lintstage.git import GitRepository, StagedFileSource, VcsQueryError, VcsUnavailableError
from lintstage.planner import generate_tasks
from lintstage.reporting import build_reporter
from lintstage.workflow import build_orchestrator

LOG_FORMAT = "%(asctime)s %(levelname)s [%(name)s] %(message)s"

STARTER_LINTERS = {
    "*.py": ["ruff check --fix", "ruff format", "git add"],
    "*.{md,toml,yaml,yml}": ["prettier --write", "git add"],
}


@dataclass(slots=True)
class Runtime:
    repo: GitRepository
    config_path: Path | None
    config: LintStageConfig


def _configure_logging(debug: bool) -> None:
    logging.basicConfig(level=logging.DEBUG if debug else logging.WARNING, format=LOG_FORMAT)


def _config_path_in(repo_root: Path, config_value: str) -> Path:
    config_path = Path(config_value)
    if not config_path.is_absolute():
        config_path = repo_root / config_path
    return config_path.resolve()


def _resolve_config_path(repo_root: Path, config_value: str | None) -> Path | None:
    if config_value is None:
        return find_config(repo_root)
    return _config_path_in(repo_root, config_value)


def _discover_repo() -> GitRepository:
    try:
        return GitRepository.discover(Path.cwd())
    except VcsUnavailableError as exc:
        raise click.ClickException(str(exc)) from exc


def _load_runtime(config_value: str | None) -> Runtime:
    repo = _discover_repo()
    config_path = _resolve_config_path(repo.root, config_value)
    if config_value is not None and (config_path is None or not config_path.exists()):
        raise click.ClickException(f"Config file not found: {config_path}")
    try:
        config = load_config(config_path)
    except InvalidConfigError as exc:
        raise click.ClickException(str(exc)) from exc
    return Runtime(repo=repo, config_path=config_path, config=config)


@click.group()
def cli() -> None:
    """Run linters against staged git files."""


@cli.command("run")
@click.option("--config", "config_value", default=None, help="Path to a lintstage config.")
@click.option("--concurrent/--sequential", "concurrent", default=None)
@click.option("--renderer", type=click.Choice(["default", "verbose", "silent"]), default=None)
@click.option("--debug", is_flag=True, default=False)
@click.pass_context
def run_command(
    ctx: click.Context,
    config_value: str | None,
    concurrent: bool | None,
    renderer: str | None,
    debug: bool,
) -> None:
    _configure_logging(debug)
    runtime = _load_runtime(config_value)
    if concurrent is not None:
        runtime.config.concurrent = concurrent
    if renderer:
        runtime.config.renderer = renderer  # type: ignore[assignment]

    reporter = build_reporter(runtime.config.renderer)
    orchestrator = build_orchestrator(runtime.config, runtime.repo, reporter=reporter)
    try:
        result = asyncio.run(orchestrator.run())
    except KeyboardInterrupt as exc:
        raise click.ClickException(
            "Interrupted. If lintstage was stashing or restoring changes, your unstaged work "
            "may still be in `git stash list` as 'lintstage automatic backup'."
        ) from exc

    if not result.completed:
        raise click.ClickException(result.message)
    ctx.exit(result.exit_code)


@cli.command("plan")
@click.option("--config", "config_value", default=None, help="Path to a lintstage config.")
def plan_command(config_value: str | None) -> None:
    runtime = _load_runtime(config_value)
    try:
        staged = StagedFileSource(runtime.repo).list_staged_files()
        tasks = generate_tasks(runtime.config, [item.filename for item in staged])
    except (VcsQueryError, InvalidConfigError) as exc:
        raise click.ClickException(str(exc)) from exc
    payload = {
        "config": str(runtime.config_path) if runtime.config_path else None,
        "concurrent": runtime.config.concurrent,
        "staged": [{"file": item.filename, "status": item.status.name} for item in staged],
        "tasks": [task.to_dict() for task in tasks],
    }
    click.echo(json.dumps(payload, ensure_ascii=False, indent=2))


@cli.command("init")
@click.option("--config", "config_value", default=CONFIG_FILENAME, show_default=True)
@click.option("--force", is_flag=True, default=False)
def init_command(config_value: str, force: bool) -> None:
    repo = _discover_repo()
    config_path = _config_path_in(repo.root, config_value)
    if config_path.exists() and not force:
        raise click.ClickException(f"{config_path} already exists. Use --force to overwrite.")

    config = LintStageConfig.default()
    config.linters = {pattern: list(commands) for pattern, commands in STARTER_LINTERS.items()}
    save_config(config_path, config)
    click.echo(f"Wrote {config_path}")
    click.echo("Add `lintstage run` to .git/hooks/pre-commit to lint staged files on commit.")
