"""
Configuration module for genesistrust.

Centralizes settings with environment variable support. Command-line
flags override these values.
"""

import os
from typing import Optional

from .whitelist import WhitelistSet


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


# ============================================================
# Environment Configuration
# ============================================================

# Repository
REPO_PATH = os.getenv("GENESISTRUST_REPO", ".")
REVISION = os.getenv("GENESISTRUST_REVISION", "HEAD")
GIT_BIN = os.getenv("GENESISTRUST_GIT_BIN", "git")

# Whitelist (missing file = empty whitelist)
WHITELIST_PATH = os.getenv("GENESISTRUST_WHITELIST", "genesis_whitelist.txt")

# Keyring
KEYRING = os.getenv("GENESISTRUST_KEYRING", "gpg")  # gpg|ed25519
KEYRING_TYPES = ("gpg", "ed25519")
GPG_BIN = os.getenv("GENESISTRUST_GPG_BIN", "gpg")
GNUPGHOME = os.getenv("GENESISTRUST_GNUPGHOME") or None
ED25519_KEYRING = os.getenv("GENESISTRUST_ED25519_KEYRING", "keys")

# Execution
WORKERS = int(os.getenv("GENESISTRUST_WORKERS", "1"))
TIMEOUT = float(os.getenv("GENESISTRUST_TIMEOUT", "0"))  # seconds, 0 = none
SUBPROCESS_TIMEOUT = float(os.getenv("GENESISTRUST_SUBPROCESS_TIMEOUT", "60"))

# Logging
LOG_LEVEL = os.getenv("GENESISTRUST_LOG_LEVEL", "WARNING")
LOG_JSON = _env_bool("GENESISTRUST_LOG_JSON", "true")
LOG_FILE = os.getenv("GENESISTRUST_LOG_FILE") or None


# ============================================================
# Loaders
# ============================================================

def load_whitelist(path: Optional[str] = None) -> WhitelistSet:
    """Load the whitelist, falling back to GENESISTRUST_WHITELIST."""
    return WhitelistSet.load(path if path is not None else WHITELIST_PATH)


def timeout_or_none(value: float) -> Optional[float]:
    return value if value and value > 0 else None


# ============================================================
# Feature Flags
# ============================================================

def is_debug() -> bool:
    """Check if debug mode is enabled."""
    return _env_bool("GENESISTRUST_DEBUG", "")
