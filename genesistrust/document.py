"""
genesistrust Trust Document

The output artifact:

    {
      "commits": [{"hash": ..., "object": ..., "trusted": "true" | "false"}, ...],
      "keys": {"<key_id>": "<armored public key>", ...}
    }

"trusted" is the string "true" for whitelisted commits and "false" for
commits vouched for by a signature that the embedded key map lets a
reader re-check. Encoding is canonical: two runs over an unchanged
history and whitelist produce byte-identical documents.
"""

from dataclasses import dataclass, field
from typing import Any, Dict, List, Sequence

from .canonicalization import bytes_to_text, canonicalize, text_to_bytes
from .hashing import document_hash
from .verifier import CommitRecord, TrustState


TRUSTED_WHITELISTED = "true"
TRUSTED_VERIFIED = "false"


@dataclass(frozen=True)
class CommitEntry:
    """Projection of a CommitRecord into the document."""
    hash: str
    object: str
    trusted: str

    def raw_object(self) -> bytes:
        return text_to_bytes(self.object)

    def is_whitelisted(self) -> bool:
        return self.trusted == TRUSTED_WHITELISTED

    def to_dict(self) -> Dict[str, str]:
        return {"hash": self.hash, "object": self.object, "trusted": self.trusted}


@dataclass
class TrustDocument:
    """Key map plus ordered commit entries."""
    keys: Dict[str, str] = field(default_factory=dict)
    commits: List[CommitEntry] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "keys": dict(self.keys),
            "commits": [c.to_dict() for c in self.commits],
        }

    def to_bytes(self) -> bytes:
        return canonicalize(self.to_dict())

    def digest(self) -> str:
        return document_hash(self.to_bytes())

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'TrustDocument':
        """Build from a parsed document. Shape validation lives in models."""
        from .models import TrustDocumentModel

        model = TrustDocumentModel.model_validate(data)
        return cls(
            keys=dict(model.keys),
            commits=[CommitEntry(hash=c.hash, object=c.object, trusted=c.trusted) for c in model.commits],
        )


class DocumentBuilder:
    """Assembles the trust document from final commit records and keys."""

    def build(self, records: Sequence[CommitRecord], keys: Dict[str, str]) -> TrustDocument:
        """
        Args:
            records: CommitRecords in walker order, each Whitelisted or
                Verified
            keys: key id -> armored public key

        Raises:
            ValueError: a Failed record, or a Verified record whose
                signer is missing from keys
        """
        entries = []
        for record in records:
            if record.trust == TrustState.WHITELISTED:
                trusted = TRUSTED_WHITELISTED
            elif record.trust == TrustState.VERIFIED:
                if record.signer_key_id not in keys:
                    raise ValueError(f"signer {record.signer_key_id} of {record.hash} missing from key map")
                trusted = TRUSTED_VERIFIED
            else:
                raise ValueError(f"failed commit {record.hash} cannot enter a trust document")

            entries.append(CommitEntry(
                hash=record.hash,
                object=bytes_to_text(record.raw_object),
                trusted=trusted,
            ))

        return TrustDocument(
            keys={key_id: keys[key_id] for key_id in sorted(keys)},
            commits=entries,
        )
