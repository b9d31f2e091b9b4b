"""
Forward pass: encrypt marked resources in place.

Each marked resource is encrypted into the encryption folder, backed up,
recorded in the rollback ledger and only then swapped with its
ciphertext. The ordering guarantees that a crash at any point leaves
either an untouched plaintext or a ledger event plus backup from which
the original can be restored.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable, List, Tuple

from .errors import ProviderError, TransformError
from .folder import EncryptionFolder
from .ledger import RESTORE_ORIGINAL, RollbackEvent, RollbackLedger, restore_original
from .manifest import Resource
from .provider import EncryptionProvider
from .utils import copy_with_attributes, delete_if_exists, move_file

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TransformRecord:
    original: Path
    key: Path
    backup: Path
    ciphertext: Path

    @classmethod
    def for_resource(cls, path: Path, folder: EncryptionFolder) -> "TransformRecord":
        return cls(
            original=path,
            key=folder.key_path(path),
            backup=folder.backup_path(path),
            ciphertext=folder.ciphertext_path(path),
        )

    @classmethod
    def from_event(cls, event: RollbackEvent) -> "TransformRecord":
        """
        Rebuild the record from a ``restore-original`` event. The temporary
        ciphertext is not part of the event; it sits next to the key.
        """

        if event.kind != RESTORE_ORIGINAL:
            raise ValueError(f"Not a {RESTORE_ORIGINAL} event: {event.kind}")

        key = Path(event.param("key") or "")
        original = Path(event.param("original") or "")
        return cls(
            original=original,
            key=key,
            backup=Path(event.param("backup") or ""),
            ciphertext=EncryptionFolder(key.parent).ciphertext_path(original),
        )

    def to_event(self) -> RollbackEvent:
        return restore_original(self.key, self.original, self.backup)


@dataclass
class EncryptReport:
    transformed: List[Path] = field(default_factory=list)
    unmarked: List[Path] = field(default_factory=list)
    vanished: List[Path] = field(default_factory=list)
    already_recorded: List[Path] = field(default_factory=list)


class TransformEngine:
    def __init__(
        self,
        provider: EncryptionProvider,
        ledger: RollbackLedger,
        folder: EncryptionFolder,
    ):
        self.provider = provider
        self.ledger = ledger
        self.folder = folder

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def encrypt(self, scanned: Iterable[Tuple[Resource, bool]]) -> EncryptReport:
        """
        Encrypt every marked resource, one at a time, in the given order.

        Raises:
            TransformError: on the first resource that could not be
                encrypted; the caller must run the restore path
        """

        report = EncryptReport()
        recorded = {
            Path(event.param("original") or "").absolute()
            for event in self.ledger
            if event.kind == RESTORE_ORIGINAL
        }

        for resource, marked in scanned:
            if not marked:
                report.unmarked.append(resource.path)
                continue

            if resource.path.absolute() in recorded:
                logger.warning("%s is already encrypted and not yet finalized, skipping", resource.path)
                report.already_recorded.append(resource.path)
                continue

            logger.info("encrypting %s", resource.path)
            if self._transform(TransformRecord.for_resource(resource.path, self.folder)):
                report.transformed.append(resource.path)
                logger.info("encrypted %s", resource.path)
            else:
                report.vanished.append(resource.path)

        return report

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    def _transform(self, record: TransformRecord) -> bool:
        try:
            self.folder.ensure()
        except OSError as e:
            raise TransformError(record.original, f"encryption folder unavailable: {e}") from e

        # never overwrite artifacts that belong to another resource or an unfinished run
        for artifact in (record.backup, record.key, record.ciphertext):
            if artifact.exists():
                raise TransformError(record.original, f"staging artifact {artifact} already exists")

        try:
            self.provider.encrypt(record.original, record.key, record.ciphertext)
        except ProviderError as e:
            self._discard(record.key, record.ciphertext)
            raise TransformError(record.original, f"encryption failed: {e}") from e
        except Exception as e:
            self._discard(record.key, record.ciphertext)
            raise TransformError(record.original, f"encryption provider error: {e}") from e

        recorded = False
        try:
            copy_with_attributes(record.original, record.backup)

            self.ledger.append(record.to_event())
            recorded = True

            record.original.unlink()
            move_file(record.ciphertext, record.original)

            delete_if_exists(record.ciphertext)
        except FileNotFoundError as e:
            logger.warning("%s vanished during encryption, skipping: %s", record.original, e)
            if recorded:
                delete_if_exists(record.ciphertext)
            else:
                self._discard(record.key, record.ciphertext, record.backup)
            return False
        except Exception as e:
            raise TransformError(record.original, f"could not swap in ciphertext: {e}") from e

        return True

    @staticmethod
    def _discard(*paths: Path) -> None:
        for path in paths:
            try:
                delete_if_exists(path)
            except OSError as e:
                logger.error("could not remove partial artifact %s: %s", path, e)
