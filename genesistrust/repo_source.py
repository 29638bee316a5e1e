"""
Commit history backends for genesistrust.
"""

import logging
import subprocess
from abc import ABC, abstractmethod
from typing import Dict, List, Optional, Sequence

from .errors import RepoAccessFailure
from .hashing import git_object_id

logger = logging.getLogger(__name__)


class RepoSource(ABC):
    """Read-only access to a commit history."""

    @abstractmethod
    def list_history(self) -> List[str]:
        """
        Commit hashes, most recent first.

        Raises:
            RepoAccessFailure: if the history cannot be read
        """
        pass

    @abstractmethod
    def get_object(self, commit_hash: str) -> bytes:
        """
        Raw commit object bytes.

        Raises:
            RepoAccessFailure: if the object cannot be read
        """
        pass


class GitRepoSource(RepoSource):
    """
    RepoSource backed by the git binary.

    History comes from `git rev-list <revision>` (reverse chronological,
    git's native log order); objects from `git cat-file commit <hash>`.
    """

    def __init__(
        self,
        repo_path: str = ".",
        revision: str = "HEAD",
        git_bin: str = "git",
        timeout: Optional[float] = None
    ):
        self.repo_path = repo_path
        self.revision = revision
        self.git_bin = git_bin
        self.timeout = timeout

    def _git(self, args: List[str], commit_hash: Optional[str] = None) -> bytes:
        cmd = [self.git_bin, "-C", self.repo_path] + args
        logger.debug("Running %s", " ".join(cmd))
        try:
            proc = subprocess.run(cmd, capture_output=True, timeout=self.timeout)
        except FileNotFoundError:
            raise RepoAccessFailure(f"git binary not found: {self.git_bin}", commit_hash=commit_hash)
        except subprocess.TimeoutExpired:
            raise RepoAccessFailure(f"git {args[0]} timed out", commit_hash=commit_hash)

        if proc.returncode != 0:
            stderr = proc.stderr.decode('utf-8', errors='replace').strip()
            raise RepoAccessFailure(
                f"git {args[0]} failed ({proc.returncode}): {stderr}",
                commit_hash=commit_hash
            )
        return proc.stdout

    def list_history(self) -> List[str]:
        if self.revision.startswith("-"):
            raise RepoAccessFailure(f"invalid revision: {self.revision}")
        out = self._git(["rev-list", self.revision, "--"])
        return [line.strip() for line in out.decode('ascii', errors='replace').splitlines() if line.strip()]

    def get_object(self, commit_hash: str) -> bytes:
        return self._git(["cat-file", "commit", commit_hash], commit_hash=commit_hash)


class MemoryRepoSource(RepoSource):
    """
    RepoSource over commit objects held in memory.

    Objects are given oldest first, the order they were created in;
    list_history returns them most recent first like git does.
    """

    def __init__(self, objects: Sequence[bytes] = (), algorithm: str = "sha1"):
        self.algorithm = algorithm
        self._order: List[str] = []
        self._objects: Dict[str, bytes] = {}
        for raw in objects:
            self.add(raw)

    def add(self, raw: bytes) -> str:
        commit_hash = git_object_id(raw, "commit", self.algorithm)
        self._order.append(commit_hash)
        self._objects[commit_hash] = raw
        return commit_hash

    def put(self, commit_hash: str, raw: bytes) -> None:
        """Store raw bytes under an arbitrary hash (corrupt-repository fixtures)."""
        if commit_hash not in self._objects:
            self._order.append(commit_hash)
        self._objects[commit_hash] = raw

    def list_history(self) -> List[str]:
        return list(reversed(self._order))

    def get_object(self, commit_hash: str) -> bytes:
        try:
            return self._objects[commit_hash]
        except KeyError:
            raise RepoAccessFailure("object not found", commit_hash=commit_hash)
