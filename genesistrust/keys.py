"""
Signer public key resolution.
"""

import threading
from typing import Dict, Iterable, Optional

from .errors import KeyExportFailure, UnknownKeyId
from .keystore import KeyStore, KeyStoreError
from .logging_config import audit_log
from .verifier import CommitRecord, TrustState


class KeyExtractor:
    """
    Resolves signer key ids to armored public keys.

    Keeps a run-scoped cache so a key that signed many commits is
    exported once. Deduplication is by id only; two different key bodies
    claiming the same id are not reconciled.

    Thread-safe.
    """

    def __init__(self, keystore: KeyStore):
        self.keystore = keystore
        self._lock = threading.RLock()
        self._cache: Dict[str, str] = {}

    def resolve(self, key_id: str, commit_hash: Optional[str] = None) -> str:
        """
        Armored public key text for key_id.

        Raises:
            UnknownKeyId: the keyring has no such key
            KeyExportFailure: the export call errored
        """
        with self._lock:
            cached = self._cache.get(key_id)
            if cached is not None:
                return cached

            try:
                armored = self.keystore.export(key_id)
            except KeyStoreError as e:
                raise KeyExportFailure(str(e), commit_hash=commit_hash, key_id=key_id)

            if armored is None:
                raise UnknownKeyId(
                    "verified signer is not exportable from the keyring",
                    commit_hash=commit_hash,
                    key_id=key_id
                )

            self._cache[key_id] = armored
            audit_log.key_exported(key_id)
            return armored

    def extract(self, records: Iterable[CommitRecord]) -> Dict[str, str]:
        """
        Key map for every Verified record.

        Records are walked in order, so the first commit naming a bad key
        is the one reported.
        """
        keys: Dict[str, str] = {}
        for record in records:
            if record.trust != TrustState.VERIFIED:
                continue
            keys[record.signer_key_id] = self.resolve(record.signer_key_id, commit_hash=record.hash)
        return keys
