import tomllib
from pathlib import Path

import pytest

from lintstage import __version__
from lintstage.config import (
    InvalidConfigError,
    LintStageConfig,
    dumps_toml,
    find_config,
    load_config,
    save_config,
    validate_config,
)


def test_config_roundtrip(tmp_path: Path) -> None:
    config_path = tmp_path / "lintstage.toml"
    config = LintStageConfig.default()
    config.linters = {"*.py": ["ruff check --fix", "git add"], "*.{md,txt}": ["prettier --write"]}
    config.concurrent = False
    config.max_parallel = 2
    config.chunk_size = 25
    config.renderer = "verbose"
    config.ignore = ["vendor/**"]
    config.command_timeout = 30.0

    save_config(config_path, config)
    loaded = load_config(config_path)

    assert loaded.linters == config.linters
    assert list(loaded.linters) == ["*.py", "*.{md,txt}"]
    assert loaded.concurrent is False
    assert loaded.max_parallel == 2
    assert loaded.chunk_size == 25
    assert loaded.renderer == "verbose"
    assert loaded.ignore == ["vendor/**"]
    assert loaded.command_timeout == 30.0


def test_toml_dump_contains_linters_section() -> None:
    config = LintStageConfig(linters={"*.js": ["eslint --fix"]})
    rendered = dumps_toml(config)

    assert "concurrent = true" in rendered
    assert "[linters]" in rendered
    assert '"*.js" = ["eslint --fix"]' in rendered


def test_plain_pattern_map_is_read_as_linters(tmp_path: Path) -> None:
    config_path = tmp_path / "lintstage.toml"
    config_path.write_text(
        'concurrent = false\n"*.js" = "eslint"\n"*.css" = ["stylelint", "git add"]\n',
        encoding="utf-8",
    )

    loaded = load_config(config_path)

    assert loaded.concurrent is False
    assert loaded.linters == {"*.js": ["eslint"], "*.css": ["stylelint", "git add"]}


def test_pyproject_tool_table_is_discovered(tmp_path: Path) -> None:
    (tmp_path / "pyproject.toml").write_text(
        '[project]\nname = "demo"\n\n[tool.lintstage.linters]\n"*.py" = "ruff check"\n',
        encoding="utf-8",
    )

    config_path = find_config(tmp_path)

    assert config_path == tmp_path / "pyproject.toml"
    assert load_config(config_path).linters == {"*.py": ["ruff check"]}


def test_missing_config_yields_defaults(tmp_path: Path) -> None:
    assert find_config(tmp_path) is None
    config = load_config(None)

    assert config.linters == {}
    assert config.concurrent is True


def test_invalid_values_are_reported_together(tmp_path: Path) -> None:
    config_path = tmp_path / "lintstage.toml"
    config_path.write_text(
        'max_parallel = 0\nrenderer = "fancy"\n\n[linters]\n"*.py" = []\n"*.js" = ["eslint \'"]\n',
        encoding="utf-8",
    )

    with pytest.raises(InvalidConfigError) as excinfo:
        load_config(config_path)

    problems = "\n".join(excinfo.value.problems)
    assert "max_parallel" in problems
    assert "renderer" in problems
    assert "No commands configured for '*.py'" in problems
    assert "Cannot parse command" in problems


def test_unknown_option_next_to_linters_table_is_rejected() -> None:
    with pytest.raises(InvalidConfigError, match="Unknown option: concurency"):
        LintStageConfig.from_dict({"concurency": True, "linters": {"*.py": "ruff"}})


def test_validate_config_rejects_foreign_objects() -> None:
    with pytest.raises(InvalidConfigError, match="Use load_config"):
        validate_config({"linters": {"*.py": ["ruff"]}})


def test_package_version_constant_matches_pyproject() -> None:
    project_root = Path(__file__).resolve().parents[1]
    pyproject = tomllib.loads((project_root / "pyproject.toml").read_text(encoding="utf-8"))

    assert __version__ == pyproject["project"]["version"]
