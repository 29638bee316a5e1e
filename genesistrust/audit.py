"""
genesistrust Document Verification

Lets a third party re-check a trust document after the fact, using only
the document itself (and, optionally, the operator's whitelist). The
operator's keyring is never consulted: signatures are checked against a
keyring built from the document's embedded keys alone.
"""

from contextlib import contextmanager
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, ContextManager, Dict, Iterator, Optional

from .commit_object import CommitObject, CommitParseError, algorithm_for_hash
from .document import TrustDocument
from .hashing import object_id_matches
from .keystore import Ed25519KeyStore, GpgKeyStore, KeyStore, KeyStoreError, is_ed25519_armor
from .whitelist import WhitelistSet


class VerificationOutcome(str, Enum):
    VALID = "VALID"
    INVALID = "INVALID"


@dataclass
class VerificationResult:
    """Result of verifying a trust document."""
    outcome: VerificationOutcome
    reason: Optional[str] = None
    details: Optional[Dict[str, Any]] = None

    def is_valid(self) -> bool:
        return self.outcome == VerificationOutcome.VALID

    @classmethod
    def valid(cls) -> 'VerificationResult':
        return cls(outcome=VerificationOutcome.VALID)

    @classmethod
    def invalid(cls, reason: str, details: Dict[str, Any] = None) -> 'VerificationResult':
        return cls(outcome=VerificationOutcome.INVALID, reason=reason, details=details)


@contextmanager
def document_keystore(keys: Dict[str, str], gpg_bin: str = "gpg") -> Iterator[KeyStore]:
    """
    Keyring holding exactly a document's keys.

    Ed25519 keys load in memory; anything else goes into a throwaway
    gpg home that is deleted on exit.
    """
    armored = list(keys.values())
    if all(is_ed25519_armor(text) for text in armored):
        yield Ed25519KeyStore.from_armored(armored)
        return
    with GpgKeyStore.ephemeral(armored, gpg_bin=gpg_bin) as store:
        yield store


KeystoreFactory = Callable[[Dict[str, str]], ContextManager[KeyStore]]


class DocumentVerifier:
    """
    Re-verifies a trust document.

    Checks, per commit entry:
    1. The object hashes to its declared commit id
    2. "true" entries appear in the whitelist (when one is supplied)
    3. "false" entries carry a signature that verifies against the
       embedded keys, by a signer listed in the key map
    Then checks the key map holds no key that signed nothing.
    """

    def __init__(
        self,
        whitelist: Optional[WhitelistSet] = None,
        keystore_factory: Optional[KeystoreFactory] = None
    ):
        self.whitelist = whitelist
        self.keystore_factory = keystore_factory or document_keystore

    def verify(self, document: TrustDocument) -> VerificationResult:
        try:
            with self.keystore_factory(document.keys) as keystore:
                return self._verify_with(document, keystore)
        except KeyStoreError as e:
            return VerificationResult.invalid(f"Cannot load embedded keys: {e}")

    def _verify_with(self, document: TrustDocument, keystore: KeyStore) -> VerificationResult:
        used_keys = set()

        for entry in document.commits:
            raw = entry.raw_object()

            # Step 1: object id
            if not object_id_matches(entry.hash, raw):
                return VerificationResult.invalid("Object hash mismatch", {"commit": entry.hash})

            # Step 2: whitelist
            if entry.is_whitelisted():
                if self.whitelist is not None and entry.hash not in self.whitelist:
                    return VerificationResult.invalid(
                        "Whitelisted commit not in supplied whitelist",
                        {"commit": entry.hash}
                    )
                continue

            # Step 3: signature
            try:
                split = CommitObject.parse(raw).split_signature(algorithm_for_hash(entry.hash))
            except CommitParseError as e:
                return VerificationResult.invalid(f"Unparseable commit object: {e}", {"commit": entry.hash})
            if split is None:
                return VerificationResult.invalid("Signature missing", {"commit": entry.hash})

            check = keystore.verify(split.payload, split.signature)
            if not check.ok:
                return VerificationResult.invalid(
                    "Signature invalid",
                    {"commit": entry.hash, "reason": check.reason}
                )
            if check.signer_key_id not in document.keys:
                return VerificationResult.invalid(
                    "Signer not in key map",
                    {"commit": entry.hash, "key_id": check.signer_key_id}
                )
            used_keys.add(check.signer_key_id)

        unused = sorted(set(document.keys) - used_keys)
        if unused:
            return VerificationResult.invalid("Key map holds unreferenced keys", {"key_ids": unused})

        return VerificationResult.valid()


def reverify_document(
    document: TrustDocument,
    whitelist: Optional[WhitelistSet] = None,
    keystore_factory: Optional[KeystoreFactory] = None
) -> VerificationResult:
    """Convenience function to re-verify a trust document."""
    return DocumentVerifier(whitelist, keystore_factory).verify(document)
