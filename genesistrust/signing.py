"""
genesistrust Ed25519 Signing

Ed25519 (RFC 8032) key pairs and ASCII-armored signatures for
repositories that sign commits without OpenPGP. A signature is embedded
in the commit's gpgsig header exactly like an OpenPGP signature:

    -----BEGIN GENESISTRUST ED25519 SIGNATURE-----
    Key-Id: 3F2A9C0D11E4B7A8

    <base64 signature>
    -----END GENESISTRUST ED25519 SIGNATURE-----
"""

import base64
import binascii
import hashlib
import json
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Optional, Tuple

from nacl.signing import SigningKey, VerifyKey
from nacl.exceptions import BadSignatureError


SIGNATURE_LABEL = "GENESISTRUST ED25519 SIGNATURE"
PUBLIC_KEY_LABEL = "GENESISTRUST ED25519 PUBLIC KEY"

_ARMOR_LINE_WIDTH = 64


class ArmorError(ValueError):
    """Armored block is malformed."""


def armor(label: str, data: bytes, headers: Optional[Dict[str, str]] = None) -> str:
    """Wrap binary data in an ASCII armor block."""
    lines = [f"-----BEGIN {label}-----"]
    for name, value in (headers or {}).items():
        lines.append(f"{name}: {value}")
    lines.append("")
    encoded = base64.b64encode(data).decode('ascii')
    for i in range(0, len(encoded), _ARMOR_LINE_WIDTH):
        lines.append(encoded[i:i + _ARMOR_LINE_WIDTH])
    lines.append(f"-----END {label}-----")
    return "\n".join(lines) + "\n"


def dearmor(text: str) -> Tuple[str, Dict[str, str], bytes]:
    """
    Parse an ASCII armor block.

    Returns:
        Tuple of (label, headers, data)

    Raises:
        ArmorError: on missing markers, mismatched labels or bad base64
    """
    lines = [line.rstrip("\r") for line in text.strip().split("\n")]
    if len(lines) < 3:
        raise ArmorError("armor block too short")

    begin, end = lines[0], lines[-1]
    if not (begin.startswith("-----BEGIN ") and begin.endswith("-----")):
        raise ArmorError("missing BEGIN marker")
    if not (end.startswith("-----END ") and end.endswith("-----")):
        raise ArmorError("missing END marker")

    label = begin[len("-----BEGIN "):-len("-----")]
    if end[len("-----END "):-len("-----")] != label:
        raise ArmorError("BEGIN and END labels differ")

    headers: Dict[str, str] = {}
    body = lines[1:-1]
    try:
        blank = body.index("")
    except ValueError:
        raise ArmorError("missing blank line after armor headers")

    for line in body[:blank]:
        name, sep, value = line.partition(":")
        if not sep:
            raise ArmorError(f"malformed armor header: {line!r}")
        headers[name.strip()] = value.strip()

    try:
        data = base64.b64decode("".join(body[blank + 1:]), validate=True)
    except (binascii.Error, ValueError) as e:
        raise ArmorError(f"invalid base64 payload: {e}")

    return label, headers, data


def derive_key_id(verify_key: bytes) -> str:
    """Key id: first 16 hex digits of the SHA-256 of the public key."""
    return hashlib.sha256(verify_key).hexdigest()[:16].upper()


@dataclass
class KeyPair:
    """Ed25519 key pair."""
    key_id: str
    signing_key: bytes
    verify_key: bytes

    def public_armor(self) -> str:
        return armored_public_key(self.key_id, self.verify_key)

    def to_private_dict(self) -> Dict[str, str]:
        return {
            "key_id": self.key_id,
            "algorithm": "Ed25519",
            "private_key_b64": base64.b64encode(self.signing_key).decode('ascii'),
        }

    @classmethod
    def from_private_dict(cls, data: Dict[str, str]) -> 'KeyPair':
        signing_key = SigningKey(base64.b64decode(data["private_key_b64"]))
        return cls(
            key_id=data["key_id"],
            signing_key=bytes(signing_key),
            verify_key=bytes(signing_key.verify_key),
        )

    def sign(self, payload: bytes) -> bytes:
        """Armored signature over a commit payload, ready for a gpgsig header."""
        signature = SigningKey(self.signing_key).sign(payload).signature
        return armor(SIGNATURE_LABEL, signature, {"Key-Id": self.key_id}).encode('ascii')


def generate_key_pair(key_id: Optional[str] = None) -> KeyPair:
    """
    Generate a new Ed25519 key pair.

    Args:
        key_id: Key identifier (default: derived from the public key)
    """
    signing_key = SigningKey.generate()
    verify_key = bytes(signing_key.verify_key)
    return KeyPair(
        key_id=key_id or derive_key_id(verify_key),
        signing_key=bytes(signing_key),
        verify_key=verify_key,
    )


def armored_public_key(key_id: str, verify_key: bytes) -> str:
    return armor(PUBLIC_KEY_LABEL, verify_key, {"Key-Id": key_id})


def parse_public_key(text: str) -> Tuple[str, bytes]:
    """
    Parse an armored Ed25519 public key.

    Returns:
        Tuple of (key_id, verify_key_bytes)
    """
    label, headers, data = dearmor(text)
    if label != PUBLIC_KEY_LABEL:
        raise ArmorError(f"not an Ed25519 public key: {label}")
    if len(data) != 32:
        raise ArmorError("Ed25519 public key must be 32 bytes")
    key_id = headers.get("Key-Id") or derive_key_id(data)
    return key_id, data


def parse_signature(text: str) -> Tuple[str, bytes]:
    """
    Parse an armored Ed25519 signature.

    Returns:
        Tuple of (key_id, signature_bytes)
    """
    label, headers, data = dearmor(text)
    if label != SIGNATURE_LABEL:
        raise ArmorError(f"not an Ed25519 signature: {label}")
    key_id = headers.get("Key-Id")
    if not key_id:
        raise ArmorError("signature does not name its key")
    return key_id, data


def verify_signature(data: bytes, signature: bytes, verify_key: bytes) -> bool:
    """Verify Ed25519 signature."""
    try:
        VerifyKey(verify_key).verify(data, signature)
        return True
    except (BadSignatureError, ValueError):
        return False


def save_key_pair(key_pair: KeyPair, directory: Path) -> Tuple[Path, Path]:
    """
    Write <key_id>.key (private, JSON) and <key_id>.pub (armored).

    Returns:
        Tuple of (private_path, public_path)
    """
    directory = Path(directory)
    directory.mkdir(parents=True, exist_ok=True)

    private_path = directory / f"{key_pair.key_id}.key"
    public_path = directory / f"{key_pair.key_id}.pub"

    with open(private_path, "w", encoding="utf-8") as f:
        json.dump(key_pair.to_private_dict(), f, indent=2)
    private_path.chmod(0o600)

    with open(public_path, "w", encoding="utf-8") as f:
        f.write(key_pair.public_armor())

    return private_path, public_path


def load_key_pair(path: Path) -> KeyPair:
    with open(path, "r", encoding="utf-8") as f:
        return KeyPair.from_private_dict(json.load(f))
