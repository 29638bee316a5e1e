"""
genesistrust

Auditable trust documents for the genesis history of a commit ledger.

Every commit in history is either pre-approved by the operator (an exact
whitelist hash) or carries an embedded signature that verifies against a
known signer. If any commit is neither, the run aborts and no document
exists. Otherwise one self-contained document records each raw commit,
its trust decision and the public keys needed to re-verify it later.

Usage:
    from genesistrust import (
        GitRepoSource,
        GpgKeyStore,
        WhitelistSet,
        TrustChainPipeline,
        reverify_document,
    )

    pipeline = TrustChainPipeline(
        GitRepoSource("path/to/ledger"),
        GpgKeyStore(),
        WhitelistSet.load("genesis_whitelist.txt"),
    )
    document = pipeline.run()          # raises TrustChainError on any failure
    data = document.to_bytes()         # canonical JSON

    # Later, anywhere:
    result = reverify_document(document)
    assert result.is_valid()
"""

__version__ = "1.0.0"
__license__ = "Apache-2.0"

# Errors
from .errors import (
    FailureKind,
    TrustChainError,
    RepoAccessFailure,
    MissingSignature,
    InvalidSignature,
    UnknownKeyId,
    KeyExportFailure,
    KeyringFailure,
    RunCancelled,
)

# Commit objects and hashing
from .commit_object import CommitObject, CommitParseError, HeaderField, SignedPayload
from .canonicalization import canonicalize
from .hashing import sha256_hash, git_object_id, object_id_matches, document_hash

# Collaborators
from .repo_source import RepoSource, GitRepoSource, MemoryRepoSource
from .keystore import (
    KeyStore,
    KeyStoreError,
    SignatureCheck,
    GpgKeyStore,
    Ed25519KeyStore,
)
from .signing import KeyPair, generate_key_pair
from .whitelist import WhitelistSet

# Pipeline
from .walker import CommitWalker
from .verifier import SignatureVerifier, CommitRecord, TrustState
from .keys import KeyExtractor
from .document import DocumentBuilder, TrustDocument, CommitEntry
from .pipeline import TrustChainPipeline, build_trust_document

# Re-verification
from .audit import (
    DocumentVerifier,
    VerificationResult,
    VerificationOutcome,
    reverify_document,
)


__all__ = [
    # Version
    "__version__",

    # Errors
    "FailureKind",
    "TrustChainError",
    "RepoAccessFailure",
    "MissingSignature",
    "InvalidSignature",
    "UnknownKeyId",
    "KeyExportFailure",
    "KeyringFailure",
    "RunCancelled",

    # Commit objects and hashing
    "CommitObject",
    "CommitParseError",
    "HeaderField",
    "SignedPayload",
    "canonicalize",
    "sha256_hash",
    "git_object_id",
    "object_id_matches",
    "document_hash",

    # Collaborators
    "RepoSource",
    "GitRepoSource",
    "MemoryRepoSource",
    "KeyStore",
    "KeyStoreError",
    "SignatureCheck",
    "GpgKeyStore",
    "Ed25519KeyStore",
    "KeyPair",
    "generate_key_pair",
    "WhitelistSet",

    # Pipeline
    "CommitWalker",
    "SignatureVerifier",
    "CommitRecord",
    "TrustState",
    "KeyExtractor",
    "DocumentBuilder",
    "TrustDocument",
    "CommitEntry",
    "TrustChainPipeline",
    "build_trust_document",

    # Re-verification
    "DocumentVerifier",
    "VerificationResult",
    "VerificationOutcome",
    "reverify_document",
]
