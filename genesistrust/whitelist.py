"""
Operator whitelist of pre-trusted commit hashes.

Membership is exact equality on the full hash. A prefix, a substring or
a superstring of a whitelisted hash is not whitelisted.
"""

import logging
from pathlib import Path
from typing import FrozenSet, Iterable, Iterator, Optional, Union

from .hashing import is_commit_hash

logger = logging.getLogger(__name__)


class WhitelistSet:
    """Immutable set of full commit hashes."""

    def __init__(self, hashes: Iterable[str] = ()):
        accepted = set()
        for entry in hashes:
            value = entry.strip().lower() if isinstance(entry, str) else entry
            if not is_commit_hash(value):
                raise ValueError(f"whitelist entry is not a full commit hash: {entry!r}")
            accepted.add(value)
        self._hashes: FrozenSet[str] = frozenset(accepted)

    def __contains__(self, commit_hash: object) -> bool:
        return isinstance(commit_hash, str) and commit_hash in self._hashes

    def __len__(self) -> int:
        return len(self._hashes)

    def __iter__(self) -> Iterator[str]:
        return iter(sorted(self._hashes))

    def __repr__(self) -> str:
        return f"WhitelistSet({len(self._hashes)} hashes)"

    @classmethod
    def empty(cls) -> 'WhitelistSet':
        return cls()

    @classmethod
    def parse(cls, text: str, source: str = "<whitelist>") -> 'WhitelistSet':
        """
        Parse whitelist text: one hash per line.

        Blank lines and '#' comments are ignored. Malformed entries are
        skipped with a warning since they could never match exactly.
        """
        entries = []
        for lineno, line in enumerate(text.splitlines(), start=1):
            entry = line.split("#", 1)[0].strip().lower()
            if not entry:
                continue
            if not is_commit_hash(entry):
                logger.warning("%s:%d: ignoring malformed whitelist entry %r", source, lineno, entry)
                continue
            entries.append(entry)
        return cls(entries)

    @classmethod
    def load(cls, path: Optional[Union[str, Path]]) -> 'WhitelistSet':
        """
        Load a whitelist file.

        A missing or unreadable file is an empty whitelist, not an error:
        every commit must then verify cryptographically.
        """
        if not path:
            return cls.empty()
        try:
            text = Path(path).read_text(encoding="utf-8")
        except FileNotFoundError:
            logger.info("No whitelist at %s; treating as empty", path)
            return cls.empty()
        except (OSError, UnicodeDecodeError) as e:
            logger.warning("Cannot read whitelist %s (%s); treating as empty", path, e)
            return cls.empty()
        whitelist = cls.parse(text, source=str(path))
        logger.info("Loaded %d whitelisted commits from %s", len(whitelist), path)
        return whitelist
