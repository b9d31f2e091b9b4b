"""Shared fixtures: a fake provider and a small deposit on disk."""

from __future__ import annotations

from pathlib import Path
from typing import Dict, List, Tuple

import pytest

from deposit_encryptor.errors import ProviderError
from deposit_encryptor.folder import EncryptionFolder
from deposit_encryptor.ledger import RollbackLedger
from deposit_encryptor.manifest import Resource, ResourceStatus
from deposit_encryptor.marks import MarkRegistry, mark_identifier
from deposit_encryptor.provider import EncryptionProvider


class FakeProvider(EncryptionProvider):
    """Reverses the bytes and prefixes them; refuses names in fail_on."""

    def __init__(self, fail_on=()):
        self.fail_on = set(fail_on)
        self.calls: List[Path] = []

    def encrypt(self, plaintext: Path, key_sink: Path, ciphertext_sink: Path) -> None:
        self.calls.append(plaintext)
        if plaintext.name in self.fail_on:
            # leave a partial artifact behind, like a provider dying mid-write
            ciphertext_sink.write_bytes(b"partial")
            raise ProviderError(f"refused {plaintext.name}")

        data = plaintext.read_bytes()
        ciphertext_sink.write_bytes(fake_ciphertext(data))
        key_sink.write_text('{"key": "fake"}', encoding="utf-8")


def fake_ciphertext(data: bytes) -> bytes:
    return b"ENC:" + data[::-1]


class Deposit:
    """A deposit directory with resources, a staging folder and a ledger."""

    def __init__(self, root: Path):
        self.root = root
        self.data = root / "data"
        self.data.mkdir()
        self.folder = EncryptionFolder(root / "encryption")
        self.ledger = RollbackLedger()
        self.resources: List[Resource] = []

    def add(self, name: str, content: bytes, status: str = "insert") -> Resource:
        path = self.data / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_bytes(content)
        resource = Resource(path=path, status=ResourceStatus(status))
        self.resources.append(resource)
        return resource

    def registry(self, *names: str) -> MarkRegistry:
        return MarkRegistry(frozenset(mark_identifier(name) for name in names))

    def snapshot(self) -> Dict[str, bytes]:
        return {p.name: p.read_bytes() for p in sorted(self.data.iterdir()) if p.is_file()}

    def marked_pairs(self, *names: str) -> List[Tuple[Resource, bool]]:
        registry = self.registry(*names)
        return [(res, registry.is_marked(res.path)) for res in self.resources if res.eligible]


@pytest.fixture
def provider() -> FakeProvider:
    return FakeProvider()


@pytest.fixture
def deposit(tmp_path: Path) -> Deposit:
    return Deposit(tmp_path)
