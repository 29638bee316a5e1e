"""
Commit history enumeration.
"""

from typing import List

from .errors import RepoAccessFailure
from .hashing import is_commit_hash
from .repo_source import RepoSource


class CommitWalker:
    """
    Enumerates the commit hash sequence from a RepoSource.

    Order is the backend's native log order (most recent first). Each
    call re-reads the backend, so separate calls over an unchanged
    history return the same sequence.
    """

    def __init__(self, source: RepoSource):
        self.source = source

    def list_history(self) -> List[str]:
        """
        Raises:
            RepoAccessFailure: if the history is unreadable, contains a
                malformed hash, or repeats a hash
        """
        hashes = self.source.list_history()

        seen = set()
        for commit_hash in hashes:
            if not is_commit_hash(commit_hash):
                raise RepoAccessFailure("malformed commit hash in history", commit_hash=str(commit_hash))
            if commit_hash in seen:
                raise RepoAccessFailure("commit appears twice in history", commit_hash=commit_hash)
            seen.add(commit_hash)

        return list(hashes)
