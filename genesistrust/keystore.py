"""
Keyring backends for genesistrust.

A KeyStore verifies an embedded signature against a signed payload and
exports armored public keys. Both operations are read-only: the
operator's keyring is never imported into or modified.
"""

import logging
import os
import subprocess
import tempfile
from abc import ABC, abstractmethod
from contextlib import contextmanager
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, Iterator, List, Optional, Tuple

from .signing import (
    ArmorError,
    PUBLIC_KEY_LABEL,
    armored_public_key,
    parse_public_key,
    parse_signature,
    verify_signature,
)

logger = logging.getLogger(__name__)


class KeyStoreError(Exception):
    """A keyring call failed to run (as opposed to returning a negative answer)."""


@dataclass(frozen=True)
class SignatureCheck:
    """Outcome of a single signature verification."""
    ok: bool
    signer_key_id: Optional[str] = None
    reason: Optional[str] = None

    @classmethod
    def good(cls, signer_key_id: str) -> 'SignatureCheck':
        return cls(ok=True, signer_key_id=signer_key_id)

    @classmethod
    def bad(cls, reason: str) -> 'SignatureCheck':
        return cls(ok=False, reason=reason)


class KeyStore(ABC):
    """Abstract interface to a local keyring."""

    @abstractmethod
    def verify(self, payload: bytes, signature: bytes) -> SignatureCheck:
        """
        Verify a detached signature over a payload.

        Must return a negative SignatureCheck rather than raise when the
        signature is bad or its signer cannot be resolved.

        Raises:
            KeyStoreError: if the keyring itself cannot be used
        """
        pass

    @abstractmethod
    def export(self, key_id: str) -> Optional[str]:
        """
        Export the armored public key for key_id.

        Returns:
            Armored text, or None when the keyring has no such key

        Raises:
            KeyStoreError: if the export call itself fails
        """
        pass


# ============================================================
# OpenPGP (gpg)
# ============================================================

GPG_STATUS_PREFIX = b"[GNUPG:] "


@dataclass
class GpgStatus:
    """Parsed gpg --status-fd output for one verification."""
    good: bool = False
    valid: bool = False
    fingerprint: Optional[str] = None
    primary_fingerprint: Optional[str] = None
    problems: Tuple[str, ...] = ()

    def reason(self) -> str:
        if self.problems:
            return ", ".join(self.problems)
        if not self.good:
            return "no good signature reported"
        return "signature not valid"


def parse_gpg_status(status: bytes) -> GpgStatus:
    """
    Interpret gpg status lines.

    A signature is accepted only with both GOODSIG and VALIDSIG. The
    signer is the primary key fingerprint (last VALIDSIG field), so a
    signature by a subkey still resolves to the exportable primary key.
    """
    result = GpgStatus()
    problems: List[str] = []

    for line in status.split(b"\n"):
        line = line.strip()
        if not line.startswith(GPG_STATUS_PREFIX):
            continue
        fields = line[len(GPG_STATUS_PREFIX):].decode('utf-8', errors='replace').split()
        if not fields:
            continue
        keyword = fields[0]

        if keyword == "GOODSIG":
            result.good = True
        elif keyword == "VALIDSIG":
            result.valid = True
            if len(fields) > 1:
                result.fingerprint = fields[1]
            # VALIDSIG <fpr> <date> <ts> <expire> <ver> <res> <pkalgo> <hashalgo> <class> <primary-fpr>
            if len(fields) > 10:
                result.primary_fingerprint = fields[10]
        elif keyword in ("BADSIG", "ERRSIG", "EXPSIG", "EXPKEYSIG", "REVKEYSIG", "NO_PUBKEY"):
            problems.append(" ".join(fields[:2]))

    result.problems = tuple(problems)
    if problems:
        result.good = False
    return result


class GpgKeyStore(KeyStore):
    """
    KeyStore backed by the gpg binary.

    Status output is machine-read from --status-fd. The signature is
    written to a file in a temporary directory that is removed when the
    call returns, whatever the outcome.
    """

    def __init__(
        self,
        gpg_bin: str = "gpg",
        homedir: Optional[str] = None,
        timeout: Optional[float] = None
    ):
        self.gpg_bin = gpg_bin
        self.homedir = homedir
        self.timeout = timeout

    def _run(self, args: List[str], stdin: Optional[bytes] = None) -> Tuple[int, bytes, bytes]:
        cmd = [self.gpg_bin, '--batch', '--no-tty', '--no-auto-key-retrieve', '--no-auto-check-trustdb']
        if self.homedir:
            cmd += ['--homedir', self.homedir]
        cmd += args
        logger.debug("Running %s", " ".join(cmd))
        try:
            proc = subprocess.run(
                cmd,
                input=stdin,
                capture_output=True,
                timeout=self.timeout,
            )
        except FileNotFoundError:
            raise KeyStoreError(f"gpg binary not found: {self.gpg_bin}")
        except subprocess.TimeoutExpired:
            raise KeyStoreError("gpg timed out")
        return proc.returncode, proc.stdout, proc.stderr

    def verify(self, payload: bytes, signature: bytes) -> SignatureCheck:
        with tempfile.TemporaryDirectory(prefix="genesistrust-") as td:
            sig_path = os.path.join(td, "commit.sig")
            with open(sig_path, "wb") as f:
                f.write(signature)
            code, out, err = self._run(['--status-fd=1', '--verify', sig_path, '-'], stdin=payload)

        status = parse_gpg_status(out)
        if code != 0 or not (status.good and status.valid):
            return SignatureCheck.bad(status.reason())

        signer = status.primary_fingerprint or status.fingerprint
        if not signer:
            return SignatureCheck.bad("signer fingerprint not reported")
        return SignatureCheck.good(signer)

    def export(self, key_id: str) -> Optional[str]:
        if not key_id or key_id.startswith("-"):
            return None
        code, out, err = self._run(['--armor', '--export', key_id])
        if code != 0:
            raise KeyStoreError(err.decode('utf-8', errors='replace').strip() or f"gpg exited with {code}")
        text = out.decode('ascii', errors='replace')
        if not text.strip():
            return None
        return text

    def import_key(self, armored: str) -> None:
        """Import a key. Only used on ephemeral keyrings."""
        code, out, err = self._run(['--import'], stdin=armored.encode('ascii'))
        if code != 0:
            raise KeyStoreError(err.decode('utf-8', errors='replace').strip() or "gpg import failed")

    @classmethod
    @contextmanager
    def ephemeral(
        cls,
        armored_keys: Iterable[str],
        gpg_bin: str = "gpg",
        timeout: Optional[float] = None
    ) -> Iterator['GpgKeyStore']:
        """
        A throwaway keyring holding exactly the given keys.

        The temporary GNUPGHOME is removed on exit.
        """
        with tempfile.TemporaryDirectory(prefix="genesistrust-gnupg-") as home:
            os.chmod(home, 0o700)
            store = cls(gpg_bin=gpg_bin, homedir=home, timeout=timeout)
            for armored in armored_keys:
                store.import_key(armored)
            yield store


# ============================================================
# Ed25519
# ============================================================

class Ed25519KeyStore(KeyStore):
    """
    KeyStore holding Ed25519 public keys in memory.

    Signatures name their key with a Key-Id armor header; a signature
    naming an unknown key is a failed verification.
    """

    def __init__(self, keys: Optional[Dict[str, bytes]] = None):
        self._keys: Dict[str, bytes] = dict(keys or {})

    def add_public_key(self, armored: str) -> str:
        key_id, verify_key = parse_public_key(armored)
        self._keys[key_id] = verify_key
        return key_id

    def key_ids(self) -> List[str]:
        return sorted(self._keys)

    @classmethod
    def from_armored(cls, armored_keys: Iterable[str]) -> 'Ed25519KeyStore':
        store = cls()
        for armored in armored_keys:
            store.add_public_key(armored)
        return store

    @classmethod
    def from_directory(cls, directory: str) -> 'Ed25519KeyStore':
        """Load every *.pub file in a directory."""
        path = Path(directory)
        if not path.is_dir():
            raise KeyStoreError(f"Ed25519 keyring directory not found: {directory}")
        store = cls()
        for pub in sorted(path.glob("*.pub")):
            try:
                key_id = store.add_public_key(pub.read_text(encoding="utf-8"))
            except (OSError, ArmorError) as e:
                raise KeyStoreError(f"cannot load {pub}: {e}")
            logger.debug("Loaded Ed25519 key %s from %s", key_id, pub)
        return store

    def verify(self, payload: bytes, signature: bytes) -> SignatureCheck:
        try:
            key_id, sig = parse_signature(signature.decode('ascii'))
        except (UnicodeDecodeError, ArmorError) as e:
            return SignatureCheck.bad(f"malformed signature: {e}")

        verify_key = self._keys.get(key_id)
        if verify_key is None:
            return SignatureCheck.bad(f"no public key for {key_id}")

        if not verify_signature(payload, sig, verify_key):
            return SignatureCheck.bad("BADSIG")
        return SignatureCheck.good(key_id)

    def export(self, key_id: str) -> Optional[str]:
        verify_key = self._keys.get(key_id)
        if verify_key is None:
            return None
        return armored_public_key(key_id, verify_key)


def is_ed25519_armor(text: str) -> bool:
    return text.lstrip().startswith(f"-----BEGIN {PUBLIC_KEY_LABEL}-----")
