"""
Global configuration and environment handling.

This module is responsible for:
- Defining global constants and defaults of the encryption action
- Loading the key-encryption secret from a credentials file or the environment
- Providing normalized, ready-to-use configuration values

Nothing in this file should depend on:
- the resource inventory
- the rollback ledger
- CLI arguments

If something here changes, the *entire tool* behavior changes.
"""

from __future__ import annotations

import os
import hashlib
from pathlib import Path
from typing import Final, Optional

from .errors import ConfigurationError

# ---------------------------------------------------------------------------
# Tool / format versioning
# ---------------------------------------------------------------------------

SUPPORTED_MANIFEST_VERSION: Final[int] = 1
SUPPORTED_LEDGER_VERSION: Final[int] = 1
KEYSET_VERSION: Final[int] = 1
TOOL_VERSION: Final[str] = "0.2.0"

# ---------------------------------------------------------------------------
# Default action parameters
# ---------------------------------------------------------------------------

DEFAULT_ENCRYPTION_FILES: Final[str] = "./encryption"
DEFAULT_ENCRYPTION_METADATA: Final[str] = "./metadata/flat_encryption.json"
DEFAULT_KEK_URI: Final[str] = "local://deposit"
DEFAULT_LEDGER: Final[str] = "./encryption.ledger.yml"
DEFAULT_MANIFEST: Final[str] = "deposit.yml"

# Artifact suffixes inside the encryption folder
BACKUP_SUFFIX: Final[str] = ".orig"
KEYSET_SUFFIX: Final[str] = ".keyset.json"
CIPHERTEXT_SUFFIX: Final[str] = ".enc"

# AES-GCM defaults
AES_KEY_SIZE: Final[int] = 32
AES_NONCE_SIZE: Final[int] = 12
AES_TAG_SIZE: Final[int] = 16

# ---------------------------------------------------------------------------
# Environment variable names
# ---------------------------------------------------------------------------

ENV_ENCRYPTION_KEY: Final[str] = "ENCRYPTION_KEY"

# ---------------------------------------------------------------------------
# Public API
# ---------------------------------------------------------------------------


def load_encryption_key(credentials: Optional[str | Path] = None) -> bytes:
    """
    Load and normalize the key-encryption key.

    The secret is read from the credentials file when one is given,
    otherwise from the environment. The raw value is hashed to ensure
    a fixed-length key suitable for AES-256.

    Raises:
        ConfigurationError: if the credentials file is unreadable or
            no secret is available

    Returns:
        bytes: 32-byte derived key
    """

    if credentials is not None:
        path = Path(credentials)
        try:
            raw = path.read_text(encoding="utf-8").strip()
        except OSError as e:
            raise ConfigurationError(
                f"Could not read encryption credentials {path}: {e}"
            ) from e
        if not raw:
            raise ConfigurationError(f"Encryption credentials file is empty: {path}")
    else:
        raw = os.getenv(ENV_ENCRYPTION_KEY)
        if not raw:
            raise ConfigurationError(
                f"Missing required environment variable: {ENV_ENCRYPTION_KEY}"
            )

    # Normalize key length using SHA-256
    return hashlib.sha256(raw.encode("utf-8")).digest()
