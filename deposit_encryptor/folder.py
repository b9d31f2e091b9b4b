"""
The encryption folder: a per-run staging directory holding backups,
key material and temporary ciphertext.

The folder is an explicit handle passed to whoever needs it. It is
created lazily on first use and removed only once it is empty.
"""

from __future__ import annotations

import errno
import logging
from pathlib import Path

from .config import BACKUP_SUFFIX, CIPHERTEXT_SUFFIX, KEYSET_SUFFIX

logger = logging.getLogger(__name__)


class EncryptionFolder:
    def __init__(self, path: str | Path):
        self.path = Path(path).absolute()

    def __repr__(self) -> str:
        return f"EncryptionFolder({str(self.path)!r})"

    def exists(self) -> bool:
        return self.path.is_dir()

    def ensure(self) -> Path:
        """Create the folder if needed. Safe to call repeatedly."""
        self.path.mkdir(parents=True, exist_ok=True)
        return self.path

    # ------------------------------------------------------------------
    # Artifact layout
    # ------------------------------------------------------------------

    def backup_path(self, resource: Path) -> Path:
        return self.path / f"{resource.name}{BACKUP_SUFFIX}"

    def key_path(self, resource: Path) -> Path:
        return self.path / f"{resource.name}{KEYSET_SUFFIX}"

    def ciphertext_path(self, resource: Path) -> Path:
        return self.path / f"{resource.name}{CIPHERTEXT_SUFFIX}"

    # ------------------------------------------------------------------
    # Removal
    # ------------------------------------------------------------------

    def remove_if_empty(self) -> bool:
        """
        Remove the folder when it holds nothing.

        Returns True if the folder is gone afterwards. A non-empty folder
        is logged and left in place; it is not an error.
        """

        try:
            self.path.rmdir()
        except FileNotFoundError:
            return True
        except OSError as e:
            if e.errno in (errno.ENOTEMPTY, errno.EEXIST):
                logger.error("encryption folder %s is not empty, skipping deletion", self.path)
                return False
            raise

        logger.info("removed encryption folder %s", self.path)
        return True
