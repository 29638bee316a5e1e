#!/usr/bin/env python3
"""
genesistrust Command Line Interface

Usage:
    genesistrust build [--repo <path>] [--revision <rev>] [--whitelist <file>] [--output <file>]
    genesistrust verify --document <file> [--whitelist <file>]
    genesistrust hash --file <file>
    genesistrust keygen [--key-id <id>] [--output-dir <dir>]

build writes exactly one trust document to stdout (or --output) and
exits 0, or writes nothing, prints a diagnostic to stderr and exits 1.
"""

import argparse
import functools
import json
import os
import sys
import tempfile
from pathlib import Path

from pydantic import ValidationError

from . import config
from .errors import RunCancelled, TrustChainError
from .logging_config import audit_log, configure_logging, set_run_id


def load_json(path: str) -> dict:
    """Load JSON from file."""
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def write_atomic(path: str, data: bytes) -> None:
    """Write data so that path either holds the whole document or is untouched."""
    target = Path(path)
    fd, tmp = tempfile.mkstemp(prefix=f".{target.name}.", dir=str(target.parent or Path(".")))
    try:
        with os.fdopen(fd, "wb") as f:
            f.write(data)
        os.replace(tmp, target)
    except BaseException:
        if os.path.exists(tmp):
            os.unlink(tmp)
        raise


def make_keystore(args):
    """Keyring backend selected by --keyring."""
    from .keystore import Ed25519KeyStore, GpgKeyStore

    timeout = config.timeout_or_none(config.SUBPROCESS_TIMEOUT)
    if args.keyring == "ed25519":
        return Ed25519KeyStore.from_directory(args.ed25519_keyring)
    return GpgKeyStore(gpg_bin=config.GPG_BIN, homedir=args.gnupghome, timeout=timeout)


def cmd_build(args):
    """Build the trust document for a repository's history."""
    from .keystore import KeyStoreError
    from .pipeline import TrustChainPipeline
    from .repo_source import GitRepoSource

    whitelist = config.load_whitelist(args.whitelist)
    source = GitRepoSource(
        repo_path=args.repo,
        revision=args.revision,
        git_bin=config.GIT_BIN,
        timeout=config.timeout_or_none(config.SUBPROCESS_TIMEOUT),
    )

    try:
        keystore = make_keystore(args)
    except KeyStoreError as e:
        print(f"error: cannot open keyring: {e}", file=sys.stderr)
        return 1

    pipeline = TrustChainPipeline(
        source,
        keystore,
        whitelist,
        workers=args.workers,
        timeout=config.timeout_or_none(args.timeout),
    )

    try:
        document = pipeline.run()
    except TrustChainError as e:
        print(f"error: {e.diagnostic()}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        pipeline.cancel()
        error = RunCancelled("interrupted")
        audit_log.run_aborted(error.to_dict())
        print(f"error: {error.diagnostic()}", file=sys.stderr)
        return 130

    data = document.to_bytes()
    if args.output:
        try:
            write_atomic(args.output, data)
        except OSError as e:
            print(f"error: cannot write {args.output}: {e}", file=sys.stderr)
            return 1
        print(f"Trust document saved to: {args.output}", file=sys.stderr)
    else:
        sys.stdout.buffer.write(data)
        sys.stdout.buffer.flush()

    print(f"{len(document.commits)} commits, {len(document.keys)} keys, {document.digest()}", file=sys.stderr)
    return 0


def cmd_verify(args):
    """Re-verify a trust document using only its embedded keys."""
    from .audit import DocumentVerifier, document_keystore
    from .document import TrustDocument
    from .whitelist import WhitelistSet

    try:
        document = TrustDocument.from_dict(load_json(args.document))
    except (OSError, ValueError, ValidationError) as e:
        print(f"✗ INVALID: cannot load document: {e}")
        return 1

    whitelist = WhitelistSet.load(args.whitelist) if args.whitelist else None
    verifier = DocumentVerifier(
        whitelist=whitelist,
        keystore_factory=functools.partial(document_keystore, gpg_bin=config.GPG_BIN),
    )
    result = verifier.verify(document)

    if result.is_valid():
        print(f"✓ {result.outcome.value} ({len(document.commits)} commits)")
        return 0
    else:
        print(f"✗ INVALID: {result.reason}")
        if result.details:
            print(json.dumps(result.details, indent=2))
        return 1


def cmd_hash(args):
    """Print the digest of a trust document file."""
    from .hashing import document_hash

    with open(args.file, 'rb') as f:
        print(document_hash(f.read()))
    return 0


def cmd_keygen(args):
    """Generate an Ed25519 commit signing key pair."""
    from .signing import generate_key_pair, save_key_pair

    key_pair = generate_key_pair(args.key_id)
    private_path, public_path = save_key_pair(key_pair, Path(args.output_dir))

    print(key_pair.public_armor(), end="")
    print(f"\nGenerated key: {key_pair.key_id}", file=sys.stderr)
    print(f"Private key: {private_path}", file=sys.stderr)
    print(f"Public key: {public_path}", file=sys.stderr)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="genesistrust",
        description="Trust document builder for genesis commit history",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  genesistrust build --repo ./ledger --whitelist genesis_whitelist.txt > trust.json
  genesistrust build --keyring ed25519 --ed25519-keyring keys/ -o trust.json
  genesistrust verify -d trust.json -w genesis_whitelist.txt
  genesistrust hash -f trust.json
  genesistrust keygen -o keys/
        """
    )
    parser.add_argument("--log-level", default=config.LOG_LEVEL, help="Log level (default: %(default)s)")
    parser.add_argument("--log-text", action="store_true", help="Plain-text logs instead of JSON")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # build
    build_parser_ = subparsers.add_parser("build", help="Build trust document")
    build_parser_.add_argument("-r", "--repo", default=config.REPO_PATH, help="Repository path")
    build_parser_.add_argument("--revision", default=config.REVISION, help="Revision to walk from")
    build_parser_.add_argument("-w", "--whitelist", default=config.WHITELIST_PATH, help="Whitelist file")
    build_parser_.add_argument("-k", "--keyring", choices=config.KEYRING_TYPES, default=config.KEYRING)
    build_parser_.add_argument("--ed25519-keyring", default=config.ED25519_KEYRING,
                               help="Directory of armored Ed25519 public keys")
    build_parser_.add_argument("--gnupghome", default=config.GNUPGHOME, help="gpg home directory")
    build_parser_.add_argument("-j", "--workers", type=int, default=config.WORKERS,
                               help="Verification threads (default: %(default)s)")
    build_parser_.add_argument("-t", "--timeout", type=float, default=config.TIMEOUT,
                               help="Cancel the run after this many seconds (0 = never)")
    build_parser_.add_argument("-o", "--output", help="Output file for the trust document")

    # verify
    verify_parser = subparsers.add_parser("verify", help="Re-verify a trust document")
    verify_parser.add_argument("-d", "--document", required=True, help="Trust document JSON file")
    verify_parser.add_argument("-w", "--whitelist", help="Whitelist the document must agree with")

    # hash
    hash_parser = subparsers.add_parser("hash", help="Digest of a trust document")
    hash_parser.add_argument("-f", "--file", required=True, help="Trust document file")

    # keygen
    keygen_parser = subparsers.add_parser("keygen", help="Generate Ed25519 signing key pair")
    keygen_parser.add_argument("-k", "--key-id", help="Key identifier (default: derived from key)")
    keygen_parser.add_argument("-o", "--output-dir", default=config.ED25519_KEYRING, help="Key directory")

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    configure_logging(
        level="DEBUG" if config.is_debug() else args.log_level,
        json_format=config.LOG_JSON and not args.log_text,
        log_file=config.LOG_FILE,
    )
    set_run_id()

    if args.command == "build":
        return cmd_build(args)
    elif args.command == "verify":
        return cmd_verify(args)
    elif args.command == "hash":
        return cmd_hash(args)
    elif args.command == "keygen":
        return cmd_keygen(args)
    else:
        parser.print_help()
        return 2


if __name__ == "__main__":
    sys.exit(main())
