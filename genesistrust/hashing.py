"""
genesistrust Hashing

Object ids are recomputed from raw bytes rather than trusted from the
backend, and documents are identified by their SHA-256 digest.
"""

import hashlib
import re
from typing import Union


SHA1_HEX_LENGTH = 40
SHA256_HEX_LENGTH = 64

COMMIT_HASH_PATTERN = re.compile(r'[0-9a-f]{40}|[0-9a-f]{64}')


def sha256_hash(data: Union[bytes, str]) -> str:
    """
    Compute SHA-256 hash.

    Returns:
        Hash string in format "sha256:abcdef..."
    """
    if isinstance(data, str):
        data = data.encode('utf-8')

    digest = hashlib.sha256(data).hexdigest().lower()
    return f"sha256:{digest}"


def is_commit_hash(value: str) -> bool:
    """True for a full, lower-case SHA-1 or SHA-256 object id."""
    return isinstance(value, str) and COMMIT_HASH_PATTERN.fullmatch(value) is not None


def git_object_id(raw: bytes, object_type: str = "commit", algorithm: str = "sha1") -> str:
    """
    Compute the git object id of raw object content.

    git hashes "<type> <length>\\0" followed by the body.
    """
    header = f"{object_type} {len(raw)}\0".encode('ascii')
    h = hashlib.new(algorithm)
    h.update(header)
    h.update(raw)
    return h.hexdigest()


def object_id_matches(commit_hash: str, raw: bytes) -> bool:
    """
    Check that raw bytes hash to the declared commit id.

    The hash length selects the algorithm (40 hex = SHA-1, 64 hex = SHA-256).
    """
    if len(commit_hash) == SHA256_HEX_LENGTH:
        algorithm = "sha256"
    elif len(commit_hash) == SHA1_HEX_LENGTH:
        algorithm = "sha1"
    else:
        return False
    return git_object_id(raw, "commit", algorithm) == commit_hash


def document_hash(document: bytes) -> str:
    """Digest of a serialized trust document."""
    return sha256_hash(document)
