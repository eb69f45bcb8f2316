#!/usr/bin/env python3
"""
Git access for FixEol.

Wraps the git command line: lists modified files and reads file content as
committed at HEAD. Local file access also goes through the provider so the
driver can be exercised against an in-memory provider.
"""

import io
import logging
import os
import shutil
import subprocess
import tempfile
from typing import BinaryIO, Iterator, List, Optional, Set

logger = logging.getLogger("FixEol.git")


class GitError(RuntimeError):
    """A git command needed to drive FixEol failed."""


class GitProvider:
    """Repository handle owned by one FixEol run."""

    def __init__(self) -> None:
        self.directory: Optional[str] = None
        self.root: Optional[str] = None

    def __enter__(self) -> "GitProvider":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        self.directory = None
        self.root = None

    def _run_git(self, args: List[str], text: bool = True) -> subprocess.CompletedProcess:
        if self.directory is None:
            raise GitError("Repository is not initialized")
        return subprocess.run(
            ["git", *args],
            cwd=self.directory,
            capture_output=True,
            text=text,
            check=False,
        )

    def initialize_repository(self, directory: str) -> None:
        """Open the work tree containing `directory`."""
        self.directory = os.path.realpath(directory)
        try:
            result = self._run_git(["rev-parse", "--show-toplevel"])
        except FileNotFoundError as e:
            self.close()
            raise GitError("git executable not found") from e
        if result.returncode != 0:
            message = result.stderr.strip() or "git rev-parse failed"
            self.close()
            raise GitError(f"{directory} is not a git work tree: {message}")
        self.root = os.path.realpath(result.stdout.strip())
        logger.debug("Opened repository %s", self.root)

    def get_pending_files(self) -> Iterator[str]:
        """
        Yield files modified in the working tree or in the index, once each.

        Paths are relative to the directory the repository was opened from.
        """
        result = self._run_git(["status", "--porcelain=v1", "-z"], text=False)
        if result.returncode != 0:
            raise GitError(os.fsdecode(result.stderr).strip() or "git status failed")

        seen: Set[str] = set()
        # file names are raw bytes; fsdecode keeps undecodable ones usable as paths
        entries = (os.fsdecode(entry) for entry in result.stdout.split(b"\0"))
        for entry in entries:
            if len(entry) < 4:
                continue
            index_state, tree_state, path = entry[0], entry[1], entry[3:]
            if index_state in "RC":
                # the rename source follows as its own entry
                next(entries, None)
            if "M" not in (index_state, tree_state):
                continue
            if path in seen:
                continue
            seen.add(path)
            yield os.path.relpath(os.path.join(self.root, path), self.directory)

    def _repo_path(self, path: str) -> str:
        absolute = os.path.join(self.directory, path)
        return os.path.relpath(absolute, self.root).replace(os.sep, "/")

    def get_tip_stream(self, path: str) -> Optional[BinaryIO]:
        """Return the content of `path` at HEAD, or None when HEAD has no such file."""
        result = self._run_git(["cat-file", "blob", f"HEAD:{self._repo_path(path)}"], text=False)
        if result.returncode != 0:
            logger.debug(
                "No blob for %s at HEAD: %s",
                path,
                result.stderr.decode("utf-8", "replace").strip(),
            )
            return None
        return io.BytesIO(result.stdout)

    def open_local_file(self, path: str, mode: str = "rb") -> BinaryIO:
        """Open a working-tree file in binary `mode`."""
        return open(os.path.join(self.directory, path), mode)  # pylint: disable=unspecified-encoding

    def write_local_file(self, path: str, data: bytes) -> None:
        """
        Replace a working-tree file with `data`.

        The content goes to a temporary file next to the target first, so a
        failed write leaves the original file untouched.
        """
        target = os.path.join(self.directory, path)
        handle, temp_path = tempfile.mkstemp(
            prefix=os.path.basename(target) + ".", suffix=".tmp", dir=os.path.dirname(target)
        )
        try:
            with os.fdopen(handle, "wb") as f:
                f.write(data)
                f.flush()
                os.fsync(f.fileno())
            shutil.copymode(target, temp_path)
            os.replace(temp_path, target)
        except BaseException:
            os.remove(temp_path)
            raise

    def local_file_copy(self, source: str, destination: str) -> None:
        """Copy a working-tree file, refusing to overwrite an existing copy."""
        source = os.path.join(self.directory, source)
        destination = os.path.join(self.directory, destination)
        if os.path.exists(destination):
            raise FileExistsError(f"Backup already exists: {destination}")
        shutil.copy2(source, destination)
