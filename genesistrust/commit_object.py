"""
genesistrust Commit Object Model

Structured parser for raw git commit objects.

A commit object is a block of header fields followed by a blank line and
the message:

    tree <hex>
    parent <hex>            (zero or more)
    author <ident>
    committer <ident>
    encoding <name>         (optional)
    mergetag object <hex>   (optional, multi-line)
    gpgsig -----BEGIN ...   (optional, multi-line)

    <message>

Multi-line header values continue on lines that start with a single
space. The signed payload is the object with every signature header
removed. It is rebuilt from the exact byte slices of the remaining
fields, so it matches what the committer signed byte for byte.
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple


SIGNATURE_HEADERS = {
    "sha1": "gpgsig",
    "sha256": "gpgsig-sha256",
}


class CommitParseError(ValueError):
    """Raw object is not a well-formed commit."""


@dataclass(frozen=True)
class HeaderField:
    """One header field with its exact on-disk bytes."""
    name: str
    value: bytes
    raw: bytes

    def text(self) -> str:
        return self.value.decode('utf-8', errors='replace')


@dataclass(frozen=True)
class SignedPayload:
    """A commit split into what was signed and the embedded signature."""
    payload: bytes
    signature: bytes
    header: str


@dataclass(frozen=True)
class CommitObject:
    """Parsed commit object."""
    headers: Tuple[HeaderField, ...]
    body: bytes

    @classmethod
    def parse(cls, raw: bytes) -> 'CommitObject':
        """
        Parse raw commit bytes.

        Raises:
            CommitParseError: if a continuation line has no field to
                continue, or a header line has no name
        """
        if not isinstance(raw, (bytes, bytearray)):
            raise CommitParseError("commit object must be bytes")
        raw = bytes(raw)

        end = raw.find(b"\n\n")
        if end == -1:
            header_block, body = raw, b""
        else:
            header_block, body = raw[:end + 1], raw[end + 1:]

        headers: List[HeaderField] = []
        name: Optional[str] = None
        value_lines: List[bytes] = []
        raw_lines: List[bytes] = []

        def flush():
            if name is not None:
                headers.append(HeaderField(
                    name=name,
                    value=b"\n".join(value_lines),
                    raw=b"".join(raw_lines),
                ))

        for line in _split_lines(header_block):
            content = line[:-1] if line.endswith(b"\n") else line
            if content.startswith(b" "):
                if name is None:
                    raise CommitParseError("continuation line before first header")
                value_lines.append(content[1:])
                raw_lines.append(line)
                continue

            flush()
            key, _, value = content.partition(b" ")
            if not key:
                raise CommitParseError("header line without a field name")
            name = key.decode('ascii', errors='surrogateescape')
            value_lines = [value]
            raw_lines = [line]
        flush()

        if not headers:
            raise CommitParseError("commit object has no headers")

        return cls(headers=tuple(headers), body=body)

    def get(self, name: str) -> Optional[HeaderField]:
        """First header with the given name, or None."""
        for field in self.headers:
            if field.name == name:
                return field
        return None

    def get_all(self, name: str) -> List[HeaderField]:
        return [field for field in self.headers if field.name == name]

    @property
    def tree(self) -> Optional[str]:
        field = self.get("tree")
        return field.text() if field else None

    @property
    def parents(self) -> List[str]:
        return [field.text() for field in self.get_all("parent")]

    @property
    def author(self) -> Optional[str]:
        field = self.get("author")
        return field.text() if field else None

    @property
    def committer(self) -> Optional[str]:
        field = self.get("committer")
        return field.text() if field else None

    @property
    def encoding(self) -> Optional[str]:
        field = self.get("encoding")
        return field.text() if field else None

    @property
    def message(self) -> bytes:
        # body starts with the blank separator line
        return self.body[1:] if self.body.startswith(b"\n") else self.body

    def has_signature(self, algorithm: str = "sha1") -> bool:
        return self.get(SIGNATURE_HEADERS[algorithm]) is not None

    def split_signature(self, algorithm: str = "sha1") -> Optional[SignedPayload]:
        """
        Separate the signed payload from the embedded signature.

        All signature headers are dropped from the payload. The signature
        comes from the header belonging to the repository's hash
        algorithm, with the continuation prefix removed.

        Returns:
            SignedPayload, or None when the commit carries no signature
            for this algorithm
        """
        header = SIGNATURE_HEADERS[algorithm]
        field = self.get(header)
        if field is None:
            return None

        signature_names = set(SIGNATURE_HEADERS.values())
        payload = b"".join(
            f.raw for f in self.headers if f.name not in signature_names
        ) + self.body

        signature = field.value
        if not signature.endswith(b"\n"):
            signature += b"\n"

        return SignedPayload(payload=payload, signature=signature, header=header)

    def to_bytes(self) -> bytes:
        """Reassemble the original object."""
        return b"".join(f.raw for f in self.headers) + self.body


def _split_lines(block: bytes) -> List[bytes]:
    """Split on LF only, keeping terminators."""
    lines = []
    start = 0
    while start < len(block):
        nl = block.find(b"\n", start)
        if nl == -1:
            lines.append(block[start:])
            break
        lines.append(block[start:nl + 1])
        start = nl + 1
    return lines


def algorithm_for_hash(commit_hash: str) -> str:
    """Hash algorithm implied by an object id's length."""
    return "sha256" if len(commit_hash) == 64 else "sha1"
