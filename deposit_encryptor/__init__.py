"""
Deposit Encryptor

Encrypts the resources of an archive deposit that were marked for
encryption, keeps backups and a rollback ledger while the deposit is in
flight, and afterwards either cleans up or restores the originals.
"""

__version__ = "0.2.0"

from .coordinator import CleanupRestoreCoordinator, FinalizeReport
from .errors import ConfigurationError, EncryptorError, ProviderError, TransformError
from .file_scanner import FileScanner
from .folder import EncryptionFolder
from .ledger import RESTORE_ORIGINAL, LedgerStore, RollbackEvent, RollbackLedger
from .manifest import Manifest, Resource, ResourceStatus
from .marks import MarkRegistry, mark_identifier
from .provider import AesGcmEnvelopeProvider, EncryptionProvider
from .transformer import EncryptReport, TransformEngine, TransformRecord

__all__ = [
    "CleanupRestoreCoordinator",
    "FinalizeReport",
    "ConfigurationError",
    "EncryptorError",
    "ProviderError",
    "TransformError",
    "FileScanner",
    "EncryptionFolder",
    "RESTORE_ORIGINAL",
    "LedgerStore",
    "RollbackEvent",
    "RollbackLedger",
    "Manifest",
    "Resource",
    "ResourceStatus",
    "MarkRegistry",
    "mark_identifier",
    "AesGcmEnvelopeProvider",
    "EncryptionProvider",
    "EncryptReport",
    "TransformEngine",
    "TransformRecord",
]
