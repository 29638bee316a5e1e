"""
genesistrust Error Model

Every failure in the trust pipeline is fatal. There is no recoverable
error class: the first error encountered aborts the run and no document
is written.
"""

from enum import Enum
from typing import Optional


class FailureKind(str, Enum):
    """Pipeline-fatal failure kinds."""
    REPO_ACCESS_FAILURE = "RepoAccessFailure"
    MISSING_SIGNATURE = "MissingSignature"
    INVALID_SIGNATURE = "InvalidSignature"
    UNKNOWN_KEY_ID = "UnknownKeyId"
    KEY_EXPORT_FAILURE = "KeyExportFailure"
    KEYRING_FAILURE = "KeyringFailure"
    CANCELLED = "Cancelled"


class TrustChainError(Exception):
    """Base class for all pipeline-fatal conditions."""

    kind: FailureKind = FailureKind.REPO_ACCESS_FAILURE

    def __init__(
        self,
        detail: str = "",
        commit_hash: Optional[str] = None,
        key_id: Optional[str] = None
    ):
        self.detail = detail
        self.commit_hash = commit_hash
        self.key_id = key_id
        super().__init__(self.diagnostic())

    def diagnostic(self) -> str:
        """One-line diagnostic naming the kind, commit and key."""
        parts = [self.kind.value]
        if self.commit_hash:
            parts.append(f"commit={self.commit_hash}")
        if self.key_id:
            parts.append(f"key={self.key_id}")
        line = " ".join(parts)
        if self.detail:
            line += f": {self.detail}"
        return line

    def to_dict(self):
        return {
            "kind": self.kind.value,
            "commit": self.commit_hash,
            "key_id": self.key_id,
            "detail": self.detail,
        }


class RepoAccessFailure(TrustChainError):
    """History or object unreadable, or history is corrupt."""
    kind = FailureKind.REPO_ACCESS_FAILURE


class MissingSignature(TrustChainError):
    """Non-whitelisted commit has no embedded signature block."""
    kind = FailureKind.MISSING_SIGNATURE


class InvalidSignature(TrustChainError):
    """Signature present but fails cryptographic verification."""
    kind = FailureKind.INVALID_SIGNATURE


class UnknownKeyId(TrustChainError):
    """A verified signer's key cannot be found for export."""
    kind = FailureKind.UNKNOWN_KEY_ID


class KeyExportFailure(TrustChainError):
    """The keyring export call errored for a present key."""
    kind = FailureKind.KEY_EXPORT_FAILURE


class KeyringFailure(TrustChainError):
    """The keyring could not be run at all (missing binary, timeout)."""
    kind = FailureKind.KEYRING_FAILURE


class RunCancelled(TrustChainError):
    """Run aborted by deadline or interrupt."""
    kind = FailureKind.CANCELLED


ERROR_TYPES = {
    FailureKind.REPO_ACCESS_FAILURE: RepoAccessFailure,
    FailureKind.MISSING_SIGNATURE: MissingSignature,
    FailureKind.INVALID_SIGNATURE: InvalidSignature,
    FailureKind.UNKNOWN_KEY_ID: UnknownKeyId,
    FailureKind.KEY_EXPORT_FAILURE: KeyExportFailure,
    FailureKind.KEYRING_FAILURE: KeyringFailure,
    FailureKind.CANCELLED: RunCancelled,
}


def error_for(
    kind: FailureKind,
    detail: str = "",
    commit_hash: Optional[str] = None,
    key_id: Optional[str] = None
) -> TrustChainError:
    """Build the exception matching a failure kind."""
    return ERROR_TYPES[kind](detail, commit_hash=commit_hash, key_id=key_id)
