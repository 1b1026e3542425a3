import pytest

from lintstage.config import InvalidConfigError, LintStageConfig
from lintstage.planner import (
    CommandTemplate,
    TaskPlanner,
    expand_braces,
    generate_tasks,
    matches_pattern,
)


def test_plan_partitions_files_by_pattern() -> None:
    tasks = TaskPlanner().plan({"*.js": ["eslint --fix"]}, ["a.js", "b.css"])

    assert len(tasks) == 1
    assert tasks[0].pattern == "*.js"
    assert tasks[0].file_list == ("a.js",)
    assert [command.text for command in tasks[0].commands] == ["eslint --fix"]


def test_plan_keeps_declaration_order_and_skips_nothing() -> None:
    linters = {"*.css": ["stylelint"], "*.js": ["eslint"], "*.md": ["prettier"]}
    tasks = TaskPlanner().plan(linters, ["a.js", "b.css"])

    assert [task.pattern for task in tasks] == ["*.css", "*.js", "*.md"]
    assert tasks[2].is_empty
    assert tasks[2].title == "Running tasks for *.md"


def test_plan_with_no_files_yields_empty_tasks() -> None:
    tasks = TaskPlanner().plan({"*.js": ["eslint"], "*.py": ["ruff"]}, [])

    assert len(tasks) == 2
    assert all(task.is_empty for task in tasks)


def test_match_base_matches_nested_files_by_name() -> None:
    assert matches_pattern("src/app/main.py", "*.py")
    assert not matches_pattern("src/app/main.py", "*.py", match_base=False)
    assert matches_pattern("src/app/main.py", "src/**/*.py")
    assert matches_pattern("setup.py", "**/*.py", match_base=False)
    assert not matches_pattern("docs/main.py", "src/*.py")


def test_single_star_stays_within_one_directory() -> None:
    assert matches_pattern("src/a.js", "src/*.js")
    assert not matches_pattern("src/lib/a.js", "src/*.js")
    assert not matches_pattern("src/lib/a.js", "src/?/a.js")
    assert matches_pattern("src/b/a.js", "src/?/a.js")


def test_double_star_slash_matches_zero_or_more_directories() -> None:
    assert matches_pattern("src/a.js", "src/**/*.js")
    assert matches_pattern("src/lib/deep/a.js", "src/**/*.js")
    assert not matches_pattern("lib/a.js", "src/**/*.js")
    assert matches_pattern("vendor/pkg/lib.js", "vendor/**")


def test_character_classes_in_patterns() -> None:
    assert matches_pattern("a1.txt", "a[0-9].txt")
    assert not matches_pattern("ab.txt", "a[0-9].txt")
    assert matches_pattern("ab.txt", "a[!0-9].txt")
    assert not matches_pattern("a/b.txt", "a[!0-9]b.txt", match_base=False)
    assert matches_pattern("a[.txt", "a[.txt")


def test_brace_alternatives_are_expanded() -> None:
    assert expand_braces("*.{js,jsx}") == ["*.js", "*.jsx"]
    assert expand_braces("{src,lib}/*.{ts,tsx}") == [
        "src/*.ts",
        "src/*.tsx",
        "lib/*.ts",
        "lib/*.tsx",
    ]
    assert expand_braces("{single}") == ["{single}"]
    assert matches_pattern("web/app.jsx", "*.{js,jsx}")


def test_ignore_patterns_remove_files_from_every_task() -> None:
    config = LintStageConfig(linters={"*.js": ["eslint"]}, ignore=["vendor/**"])

    tasks = generate_tasks(config, ["app.js", "vendor/lib.js"])

    assert tasks[0].file_list == ("app.js",)


def test_unparseable_command_is_a_config_error_at_plan_time() -> None:
    with pytest.raises(InvalidConfigError):
        TaskPlanner().plan({"*.js": ["eslint 'broken"]}, ["a.js"])
    with pytest.raises(InvalidConfigError):
        TaskPlanner().plan({"*.js": []}, ["a.js"])


def test_command_template_binding_modes() -> None:
    files = ["/repo/a.py", "/repo/b c.py"]

    appended = CommandTemplate.parse("ruff check --fix")
    assert appended.bind(files) == ["ruff", "check", "--fix", "/repo/a.py", "/repo/b c.py"]

    placeholder = CommandTemplate.parse("mypy {files} --strict")
    assert placeholder.bind(files) == ["mypy", "/repo/a.py", "/repo/b c.py", "--strict"]

    per_file = CommandTemplate.parse("black --check {file}")
    assert per_file.per_file
    assert per_file.bind(files[1:]) == ["black", "--check", "/repo/b c.py"]

    shell = CommandTemplate.parse("cat {files} | wc -l")
    assert shell.use_shell
    assert shell.bind(files) == "cat /repo/a.py '/repo/b c.py' | wc -l"
