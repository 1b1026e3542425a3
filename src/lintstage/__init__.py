"""Run linters against staged git files without touching unstaged work."""

__version__ = "0.1.0"
