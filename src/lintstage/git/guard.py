from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import NoReturn

from lintstage.git.repo import (
    GitError,
    GitRepository,
    RestoreConflictError,
    StashError,
    VcsQueryError,
)

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class StashSnapshot:
    stash_hash: str
    index_tree: str
    working_tree: str
    formatted_tree: str | None = None
    fixes_patch: bytes = b""


class GitStateGuard:
    """Protects unstaged work while linters run against the index.

    ``stash_save`` records the current index tree and pushes a real stash entry
    with ``--keep-index`` so linters only see staged content. After the linters
    ran, ``fold_fixes_into_stash`` captures what they staged as a patch against
    the recorded index tree. ``stash_pop`` restores the stashed working tree and
    the original index, replays the captured fixes on both, and only then drops
    the stash entry. Any failure while restoring leaves the entry in
    ``git stash list``.
    """

    STASH_MESSAGE = "lintstage automatic backup"
    FIXES_PATCH_NAME = "lintstage-fixes.patch"

    def __init__(self, repo: GitRepository) -> None:
        self.repo = repo
        self._snapshot: StashSnapshot | None = None

    @property
    def snapshot(self) -> StashSnapshot | None:
        return self._snapshot

    def unstaged_files(self) -> list[str]:
        proc = self.repo.run_git(["diff", "--name-only", "-z"], check=False)
        if proc.returncode != 0:
            raise VcsQueryError(
                "Unable to detect unstaged changes: "
                + (proc.stderr.strip() or f"git exited with {proc.returncode}")
            )
        return [name for name in proc.stdout.split("\0") if name]

    def has_unstaged_changes(self) -> bool:
        unstaged = self.unstaged_files()
        logger.debug("Unstaged files: %s", unstaged)
        return bool(unstaged)

    def _stash_top(self) -> str | None:
        proc = self.repo.run_git(["rev-parse", "--verify", "--quiet", "refs/stash"], check=False)
        if proc.returncode != 0:
            return None
        return proc.stdout.strip() or None

    def _stash_ref_for(self, stash_hash: str) -> str | None:
        proc = self.repo.run_git(["stash", "list", "--format=%H"], check=False)
        if proc.returncode != 0:
            return None
        for position, line in enumerate(proc.stdout.splitlines()):
            if line.strip() == stash_hash:
                return f"stash@{{{position}}}"
        return None

    def stash_save(self) -> str:
        if self._snapshot is not None:
            raise StashError("A lintstage backup stash is already active.")
        index_tree = self.repo.write_tree(error=StashError)
        previous_top = self._stash_top()
        self.repo.run_git(
            ["stash", "push", "--keep-index", "--message", self.STASH_MESSAGE],
            error=StashError,
        )
        stash_hash = self._stash_top()
        if stash_hash is None or stash_hash == previous_top:
            raise StashError("git stash did not record any unstaged changes.")
        tree = self.repo.run_git(["rev-parse", f"{stash_hash}^{{tree}}"], check=False)
        if tree.returncode != 0:
            self._undo_stash(stash_hash, index_tree, tree.stderr.strip())
        working_tree = tree.stdout.strip()
        self._snapshot = StashSnapshot(
            stash_hash=stash_hash,
            index_tree=index_tree,
            working_tree=working_tree,
        )
        logger.debug("Stashed unstaged changes as %s (index tree %s)", stash_hash, index_tree)
        return stash_hash

    def _undo_stash(self, stash_hash: str, index_tree: str, reason: str) -> NoReturn:
        """Put the just-stashed changes back and raise ``StashError``."""
        stash_ref = self._stash_ref_for(stash_hash) or stash_hash
        steps = (
            ["read-tree", "--reset", "-u", stash_hash],
            ["read-tree", index_tree],
            ["stash", "drop", "--quiet", stash_ref],
        )
        for args in steps:
            proc = self.repo.run_git(args, check=False)
            if proc.returncode != 0:
                raise StashError(
                    f"Could not read the backup stash ({reason}). Your unstaged changes are "
                    f"kept in {stash_ref}; restore them with "
                    f"`git stash apply --index {stash_ref}`."
                )
        self.repo.run_git(["update-index", "-q", "--refresh"], check=False)
        raise StashError(
            f"Could not read the backup stash ({reason}). Unstaged changes were put back."
        )

    def _require_snapshot(self) -> StashSnapshot:
        if self._snapshot is None:
            raise StashError("No lintstage backup stash is active.")
        return self._snapshot

    def fold_fixes_into_stash(self, paths: list[str]) -> bool:
        """Capture fixes staged for ``paths`` so the restore replays them.

        Returns True when there is something to replay.
        """
        snapshot = self._require_snapshot()
        formatted_tree = self.repo.write_tree(error=GitError)
        snapshot.formatted_tree = formatted_tree
        if formatted_tree == snapshot.index_tree or not paths:
            snapshot.fixes_patch = b""
            return False
        proc = self.repo.run_git_binary(
            [
                "diff",
                "--binary",
                "--full-index",
                snapshot.index_tree,
                formatted_tree,
                "--",
                *[f":(literal){path}" for path in paths],
            ],
            error=GitError,
        )
        snapshot.fixes_patch = proc.stdout
        logger.debug("Captured fixes between %s and %s", snapshot.index_tree, formatted_tree)
        return bool(proc.stdout.strip())

    def stash_pop(self) -> None:
        snapshot = self._require_snapshot()
        stash_ref = self._stash_ref_for(snapshot.stash_hash) or snapshot.stash_hash

        try:
            self.repo.run_git(
                ["read-tree", "--reset", "-u", snapshot.working_tree],
                error=RestoreConflictError,
            )
            self.repo.run_git(["read-tree", snapshot.index_tree], error=RestoreConflictError)
        except RestoreConflictError as exc:
            raise RestoreConflictError(
                f"Could not restore your unstaged changes ({exc}). They are kept in "
                f"{stash_ref}; restore them with `git stash apply --index {stash_ref}` "
                f"and drop the entry once resolved.",
                stash_ref=stash_ref,
            ) from exc
        self.repo.run_git(["update-index", "-q", "--refresh"], check=False)

        if snapshot.fixes_patch.strip():
            self._replay_fixes(snapshot, stash_ref)

        drop = self.repo.run_git(["stash", "drop", "--quiet", stash_ref], check=False)
        if drop.returncode != 0:
            logger.warning(
                "Restored local changes but could not drop %s: %s",
                stash_ref,
                drop.stderr.strip(),
            )
        self._snapshot = None
        logger.debug("Restored local changes from %s", snapshot.stash_hash)

    def _replay_fixes(self, snapshot: StashSnapshot, stash_ref: str) -> None:
        patch = snapshot.fixes_patch
        check = self.repo.run_git_binary(
            ["apply", "--check", "--whitespace=nowarn"], input_data=patch, check=False
        )
        if check.returncode == 0:
            self.repo.run_git_binary(
                ["apply", "--cached", "--whitespace=nowarn"],
                input_data=patch,
                error=RestoreConflictError,
            )
            self.repo.run_git_binary(
                ["apply", "--whitespace=nowarn"], input_data=patch, error=RestoreConflictError
            )
            return

        patch_path = self.repo.git_dir / self.FIXES_PATCH_NAME
        patch_path.write_bytes(patch)
        raise RestoreConflictError(
            "Lint fixes conflict with your unstaged changes. Your working tree and index "
            f"were restored as they were before lintstage ran and the backup is kept in "
            f"{stash_ref}. The fixes were saved to {patch_path}; apply them with "
            f"`git apply --3way {patch_path}`, resolve the conflict, then run "
            f"`git stash drop {stash_ref}`.",
            stash_ref=stash_ref,
            patch_path=patch_path,
        )
