"""
Encryption providers.

The rest of the package only relies on EncryptionProvider.encrypt: turn a
plaintext file into a ciphertext file plus a key-material file. The
concrete provider below does envelope encryption with AES-GCM: every
file gets its own data key, which is wrapped by the key-encryption key
and written to the keyset file.
"""

from __future__ import annotations

import abc
import base64
import json
import logging
from pathlib import Path
from typing import Optional

from Crypto.Cipher import AES
from Crypto.Random import get_random_bytes

from .config import (
    AES_KEY_SIZE,
    AES_NONCE_SIZE,
    AES_TAG_SIZE,
    KEYSET_VERSION,
    load_encryption_key,
)
from .errors import ConfigurationError, ProviderError
from .manifest import EncryptionConfig
from .utils import ensure_parent_dir

logger = logging.getLogger(__name__)

KEYSET_ALGORITHM = "AES256-GCM"


class EncryptionProvider(abc.ABC):
    """A capability that encrypts one file into ciphertext plus key material."""

    @abc.abstractmethod
    def encrypt(self, plaintext: Path, key_sink: Path, ciphertext_sink: Path) -> None:
        """
        Encrypt ``plaintext`` into ``ciphertext_sink`` and write the key
        material needed to decrypt it to ``key_sink``.

        Raises:
            ProviderError: if the file could not be encrypted
        """


class AesGcmEnvelopeProvider(EncryptionProvider):
    def __init__(self, kek_uri: str, credentials: Optional[str | Path] = None):
        if not kek_uri:
            raise ConfigurationError("A key-encryption key URI is required")

        logger.debug("connecting encryption provider for KEK %s", kek_uri)
        self.kek_uri = kek_uri
        self._kek = load_encryption_key(credentials)

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def encrypt(self, plaintext: Path, key_sink: Path, ciphertext_sink: Path) -> None:
        try:
            data = plaintext.read_bytes()
        except OSError as e:
            raise ProviderError(f"Could not read {plaintext}: {e}") from e

        data_key = get_random_bytes(AES_KEY_SIZE)

        cipher = AES.new(data_key, AES.MODE_GCM, nonce=get_random_bytes(AES_NONCE_SIZE))
        ciphertext, tag = cipher.encrypt_and_digest(data)

        try:
            ensure_parent_dir(ciphertext_sink)
            ciphertext_sink.write_bytes(cipher.nonce + tag + ciphertext)

            ensure_parent_dir(key_sink)
            key_sink.write_text(json.dumps(self._wrap(data_key), indent=2), encoding="utf-8")
        except OSError as e:
            raise ProviderError(f"Could not write encryption output for {plaintext}: {e}") from e

    def decrypt(self, key_source: Path, ciphertext: Path) -> bytes:
        """
        Decrypt a ciphertext file with its keyset.

        Raises:
            ProviderError: if the keyset does not belong to this KEK or the
                ciphertext fails authentication
        """

        try:
            keyset = json.loads(key_source.read_text(encoding="utf-8"))
            data = ciphertext.read_bytes()
        except (OSError, ValueError) as e:
            raise ProviderError(f"Could not read encryption artifacts: {e}") from e

        data_key = self._unwrap(keyset)

        nonce = data[:AES_NONCE_SIZE]
        tag = data[AES_NONCE_SIZE:AES_NONCE_SIZE + AES_TAG_SIZE]
        body = data[AES_NONCE_SIZE + AES_TAG_SIZE:]

        cipher = AES.new(data_key, AES.MODE_GCM, nonce=nonce)
        try:
            return cipher.decrypt_and_verify(body, tag)
        except ValueError as e:
            raise ProviderError(f"Ciphertext {ciphertext} failed authentication") from e

    # ------------------------------------------------------------------
    # Key wrapping
    # ------------------------------------------------------------------

    def _wrap(self, data_key: bytes) -> dict:
        cipher = AES.new(self._kek, AES.MODE_GCM, nonce=get_random_bytes(AES_NONCE_SIZE))
        cipher.update(self.kek_uri.encode("utf-8"))
        wrapped, tag = cipher.encrypt_and_digest(data_key)

        return {
            "version": KEYSET_VERSION,
            "kek_uri": self.kek_uri,
            "algorithm": KEYSET_ALGORITHM,
            "nonce": _b64(cipher.nonce),
            "tag": _b64(tag),
            "wrapped_key": _b64(wrapped),
        }

    def _unwrap(self, keyset: dict) -> bytes:
        if keyset.get("kek_uri") != self.kek_uri:
            raise ProviderError(
                f"Keyset was wrapped by {keyset.get('kek_uri')!r}, not {self.kek_uri!r}"
            )

        try:
            cipher = AES.new(self._kek, AES.MODE_GCM, nonce=base64.b64decode(keyset["nonce"]))
            cipher.update(self.kek_uri.encode("utf-8"))
            return cipher.decrypt_and_verify(
                base64.b64decode(keyset["wrapped_key"]),
                base64.b64decode(keyset["tag"]),
            )
        except (KeyError, ValueError) as e:
            raise ProviderError("Keyset could not be unwrapped") from e


def _b64(data: bytes) -> str:
    return base64.b64encode(data).decode("ascii")


def open_provider(config: EncryptionConfig) -> AesGcmEnvelopeProvider:
    """Build the provider described by the manifest's encryption section."""
    return AesGcmEnvelopeProvider(config.kek_uri, config.credentials)
