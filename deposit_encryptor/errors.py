"""
Exception types raised by the encryption action.

Configuration errors are raised before anything on disk is touched.
TransformError is the fatal forward-pass signal: whoever receives it is
expected to run the restore path. Per-file transient problems and
finalization artifact problems are logged, never raised.
"""

from __future__ import annotations


class EncryptorError(RuntimeError):
    """Base class for all errors raised by deposit_encryptor."""


class ConfigurationError(EncryptorError):
    """Unreadable manifest, marked-files document or credentials."""


class ProviderError(EncryptorError):
    """The encryption provider could not encrypt a file."""


class TransformError(EncryptorError):
    """A marked resource could not be encrypted; the run must be rolled back."""

    def __init__(self, path, message: str):
        super().__init__(f"{path}: {message}")
        self.path = path
