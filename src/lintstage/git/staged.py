from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum

from lintstage.git.repo import GitRepository, VcsQueryError

logger = logging.getLogger(__name__)


class FileStatus(str, Enum):
    ADDED = "A"
    COPIED = "C"
    MODIFIED = "M"


@dataclass(frozen=True, slots=True)
class StagedFile:
    filename: str
    status: FileStatus


class StagedFileSource:
    """Lists files staged in the index as Added, Copied or Modified."""

    def __init__(self, repo: GitRepository) -> None:
        self.repo = repo

    def list_staged_files(self) -> list[StagedFile]:
        proc = self.repo.run_git(
            ["diff", "--cached", "--name-status", "-z", "--no-renames", "--diff-filter=ACM"],
            check=False,
        )
        if proc.returncode != 0:
            raise VcsQueryError(
                "Unable to list staged files: "
                + (proc.stderr.strip() or f"git exited with {proc.returncode}")
            )
        files = self.parse_name_status(proc.stdout)
        logger.debug("Loaded list of staged files in git: %s", [item.filename for item in files])
        return files

    @staticmethod
    def parse_name_status(output: str) -> list[StagedFile]:
        tokens = [token for token in output.split("\0") if token]
        files: list[StagedFile] = []
        index = 0
        while index < len(tokens):
            code = tokens[index]
            index += 1
            # Copy and rename records carry a similarity score and two paths.
            path_count = 2 if code[:1] in {"C", "R"} else 1
            paths = tokens[index : index + path_count]
            index += path_count
            if len(paths) != path_count:
                raise VcsQueryError(f"Malformed git status output near '{code}'")
            try:
                status = FileStatus(code[:1])
            except ValueError:
                continue
            files.append(StagedFile(filename=paths[-1], status=status))
        return files
