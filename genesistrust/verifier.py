"""
genesistrust Signature Verifier

Per-commit trust decision. Each commit runs one pass of a small state
machine with terminal transitions:

    Fetched -> Whitelisted
    Fetched -> SigPresent -> Verified | Failed
    Fetched -> Failed

Whitelisting is an explicit escape hatch for commits that predate
signing (the genesis commit itself). It requires the operator to list
the exact full hash; no cryptographic work is done for those commits,
but their raw object is still captured for the document.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import Optional

from .commit_object import CommitObject, CommitParseError, algorithm_for_hash
from .errors import FailureKind, KeyringFailure, RepoAccessFailure, TrustChainError, error_for
from .hashing import object_id_matches
from .keystore import KeyStore, KeyStoreError
from .logging_config import audit_log
from .repo_source import RepoSource
from .whitelist import WhitelistSet

logger = logging.getLogger(__name__)


class TrustState(str, Enum):
    """Terminal trust states."""
    WHITELISTED = "Whitelisted"
    VERIFIED = "Verified"
    FAILED = "Failed"


@dataclass(frozen=True)
class CommitRecord:
    """Trust decision for one commit. Set once, never mutated."""
    hash: str
    raw_object: bytes
    trust: TrustState
    signer_key_id: Optional[str] = None
    failure: Optional[FailureKind] = None
    reason: Optional[str] = None

    def passed(self) -> bool:
        return self.trust in (TrustState.WHITELISTED, TrustState.VERIFIED)

    def to_error(self) -> TrustChainError:
        """Pipeline-fatal error for a Failed record."""
        if self.passed():
            raise ValueError(f"commit {self.hash} did not fail")
        return error_for(self.failure, self.reason or "", commit_hash=self.hash)


class SignatureVerifier:
    """
    Decides trust for individual commits.

    Read-only: never mutates the whitelist, the keyring, the repository
    or previously produced records.
    """

    def __init__(self, source: RepoSource, keystore: KeyStore, whitelist: Optional[WhitelistSet] = None):
        self.source = source
        self.keystore = keystore
        self.whitelist = whitelist or WhitelistSet.empty()

    def fetch(self, commit_hash: str) -> bytes:
        """
        Fetch a raw object and check it hashes to its id.

        Raises:
            RepoAccessFailure: unreadable object, or bytes that do not
                match the requested hash
        """
        raw = self.source.get_object(commit_hash)
        if not object_id_matches(commit_hash, raw):
            raise RepoAccessFailure("object content does not match its id", commit_hash=commit_hash)
        return raw

    def verify_commit(self, commit_hash: str) -> CommitRecord:
        """
        Run the trust state machine for one commit.

        Returns:
            CommitRecord in a terminal state. MissingSignature and
            InvalidSignature come back as Failed records.

        Raises:
            RepoAccessFailure: if the object cannot be read or parsed
            KeyringFailure: if the keyring cannot be run
        """
        raw = self.fetch(commit_hash)
        logger.debug("Fetched %s (%d bytes)", commit_hash, len(raw))

        if commit_hash in self.whitelist:
            return self._whitelisted(commit_hash, raw)

        try:
            commit = CommitObject.parse(raw)
        except CommitParseError as e:
            raise RepoAccessFailure(f"corrupt commit object: {e}", commit_hash=commit_hash)

        split = commit.split_signature(algorithm_for_hash(commit_hash))
        if split is None:
            return self._failed(commit_hash, raw, FailureKind.MISSING_SIGNATURE, "no embedded signature")

        try:
            check = self.keystore.verify(split.payload, split.signature)
        except KeyStoreError as e:
            raise KeyringFailure(str(e), commit_hash=commit_hash)

        if not check.ok or not check.signer_key_id:
            return self._failed(
                commit_hash, raw, FailureKind.INVALID_SIGNATURE,
                check.reason or "signer could not be resolved"
            )

        return self._verified(commit_hash, raw, check.signer_key_id)

    def _whitelisted(self, commit_hash: str, raw: bytes) -> CommitRecord:
        audit_log.commit_whitelisted(commit_hash)
        return CommitRecord(hash=commit_hash, raw_object=raw, trust=TrustState.WHITELISTED)

    def _verified(self, commit_hash: str, raw: bytes, key_id: str) -> CommitRecord:
        audit_log.commit_verified(commit_hash, key_id)
        return CommitRecord(
            hash=commit_hash,
            raw_object=raw,
            trust=TrustState.VERIFIED,
            signer_key_id=key_id
        )

    def _failed(self, commit_hash: str, raw: bytes, kind: FailureKind, reason: str) -> CommitRecord:
        audit_log.commit_rejected(commit_hash, kind.value, reason)
        return CommitRecord(
            hash=commit_hash,
            raw_object=raw,
            trust=TrustState.FAILED,
            failure=kind,
            reason=reason
        )
