from __future__ import annotations

import logging
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)


class GitError(RuntimeError):
    """Raised when a git operation fails."""


class VcsUnavailableError(GitError):
    """Raised when the working directory is not inside a git working copy."""


class VcsQueryError(GitError):
    """Raised when a read-only git query fails."""


class StashError(GitError):
    """Raised when unstaged changes cannot be stashed."""


class RestoreConflictError(GitError):
    """Raised when stashed changes cannot be restored cleanly."""

    def __init__(
        self,
        message: str,
        *,
        stash_ref: str | None = None,
        patch_path: Path | None = None,
    ) -> None:
        super().__init__(message)
        self.stash_ref = stash_ref
        self.patch_path = patch_path


class GitRepository:
    def __init__(self, root: Path, git_dir: Path) -> None:
        self.root = root.resolve()
        self.git_dir = git_dir.resolve()

    @classmethod
    def discover(cls, cwd: Path | None = None) -> GitRepository:
        start = (cwd or Path.cwd()).resolve()
        try:
            proc = subprocess.run(
                ["git", "--no-pager", "rev-parse", "--show-toplevel", "--absolute-git-dir"],
                cwd=start,
                text=True,
                capture_output=True,
            )
        except FileNotFoundError as exc:
            raise VcsUnavailableError("git executable not found on PATH.") from exc
        lines = proc.stdout.strip().splitlines()
        if proc.returncode != 0 or len(lines) != 2:
            raise VcsUnavailableError(
                f"Not a git working copy: {start}. Run lintstage from inside a repository."
            )
        repo = cls(Path(lines[0]), Path(lines[1]))
        logger.debug("Resolved git directory to be `%s`", repo.root)
        return repo

    def run_git(
        self,
        args: list[str],
        *,
        check: bool = True,
        error: type[GitError] = VcsQueryError,
    ) -> subprocess.CompletedProcess[str]:
        logger.debug("git %s", " ".join(args))
        # surrogateescape keeps non-UTF-8 paths intact when passed back to git.
        proc = subprocess.run(
            ["git", "--no-pager", *args],
            cwd=self.root,
            encoding="utf-8",
            errors="surrogateescape",
            capture_output=True,
        )
        if check and proc.returncode != 0:
            raise error(proc.stderr.strip() or proc.stdout.strip() or f"git {args[0]} failed")
        return proc

    def run_git_binary(
        self,
        args: list[str],
        *,
        check: bool = True,
        input_data: bytes | None = None,
        error: type[GitError] = VcsQueryError,
    ) -> subprocess.CompletedProcess[bytes]:
        """Run git without decoding; used for patches, which carry file content."""
        logger.debug("git %s", " ".join(args))
        proc = subprocess.run(
            ["git", "--no-pager", *args],
            cwd=self.root,
            capture_output=True,
            input=input_data,
        )
        if check and proc.returncode != 0:
            message = proc.stderr.decode("utf-8", errors="replace").strip()
            raise error(message or f"git {args[0]} failed")
        return proc

    def write_tree(self, *, error: type[GitError] = VcsQueryError) -> str:
        return self.run_git(["write-tree"], error=error).stdout.strip()
