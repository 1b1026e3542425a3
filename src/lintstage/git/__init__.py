from lintstage.git.guard import GitStateGuard, StashSnapshot
from lintstage.git.repo import (
    GitError,
    GitRepository,
    RestoreConflictError,
    StashError,
    VcsQueryError,
    VcsUnavailableError,
)
from lintstage.git.staged import FileStatus, StagedFile, StagedFileSource

__all__ = [
    "FileStatus",
    "GitError",
    "GitRepository",
    "GitStateGuard",
    "RestoreConflictError",
    "StagedFile",
    "StagedFileSource",
    "StashError",
    "StashSnapshot",
    "VcsQueryError",
    "VcsUnavailableError",
]
