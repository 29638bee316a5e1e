"""
genesistrust Canonical JSON Encoding

Two runs over the same history must produce byte-identical documents,
so every document goes through this encoder.
"""

import json
from typing import Any


def canonicalize(obj: Any) -> bytes:
    """
    Convert an object to canonical JSON bytes.

    Rules:
    - Object keys sorted lexicographically (Unicode code point order)
    - No whitespace between tokens (compact form)
    - ASCII output: every non-ASCII code point is a \\u escape, so raw
      commit bytes carried as surrogate escapes survive the round trip
    - Arrays preserve order
    - Trailing newline

    Returns:
        ASCII-encoded bytes of canonical JSON
    """
    text = json.dumps(obj, sort_keys=True, separators=(',', ':'), ensure_ascii=True)
    return (text + "\n").encode('ascii')


def bytes_to_text(raw: bytes) -> str:
    """
    Decode raw commit bytes for embedding in a document.

    Bytes that are not valid UTF-8 become lone surrogates and are
    recovered exactly by text_to_bytes.
    """
    return raw.decode('utf-8', errors='surrogateescape')


def text_to_bytes(text: str) -> bytes:
    """Inverse of bytes_to_text."""
    return text.encode('utf-8', errors='surrogateescape')
