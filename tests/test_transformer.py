"""Tests for the forward encrypt-and-swap pass."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from deposit_encryptor.errors import TransformError
from deposit_encryptor.ledger import RESTORE_ORIGINAL
from deposit_encryptor.transformer import TransformEngine, TransformRecord

from conftest import FakeProvider, fake_ciphertext


def test_only_marked_eligible_resources_are_transformed(deposit, provider):
    deposit.add("a.txt", b"alpha")
    deposit.add("b.txt", b"bravo")
    deposit.add("c.txt", b"charlie", status="delete")
    deposit.add("d.txt", b"delta", status="unchanged")
    deposit.add("e.txt", b"echo", status="update")
    before = deposit.snapshot()

    engine = TransformEngine(provider, deposit.ledger, deposit.folder)
    report = engine.encrypt(deposit.marked_pairs("a.txt", "c.txt", "d.txt", "e.txt"))

    after = deposit.snapshot()
    assert after["a.txt"] == fake_ciphertext(b"alpha")
    assert after["e.txt"] == fake_ciphertext(b"echo")
    for name in ("b.txt", "c.txt", "d.txt"):
        assert after[name] == before[name]

    assert [p.name for p in report.transformed] == ["a.txt", "e.txt"]
    assert [p.name for p in report.unmarked] == ["b.txt"]
    assert [p.name for p in provider.calls] == ["a.txt", "e.txt"]


def test_scenario_single_marked_file(deposit, provider):
    a = deposit.add("a.txt", b"plain a")
    deposit.add("b.txt", b"plain b")

    TransformEngine(provider, deposit.ledger, deposit.folder).encrypt(deposit.marked_pairs("a.txt"))

    assert a.path.read_bytes() == fake_ciphertext(b"plain a")
    assert (deposit.data / "b.txt").read_bytes() == b"plain b"

    events = deposit.ledger.events()
    assert len(events) == 1
    assert events[0].kind == RESTORE_ORIGINAL
    assert events[0].param("original") == str(a.path)
    assert events[0].param("key") == str(deposit.folder.key_path(a.path))
    assert events[0].param("backup") == str(deposit.folder.backup_path(a.path))

    assert deposit.folder.backup_path(a.path).read_bytes() == b"plain a"
    assert deposit.folder.key_path(a.path).exists()
    assert not deposit.folder.ciphertext_path(a.path).exists()


def test_event_is_recorded_before_original_is_touched(deposit, provider):
    a = deposit.add("a.txt", b"plain a")
    observed = []

    def check(event):
        record = TransformRecord.from_event(event)
        observed.append((record.original.read_bytes(), record.backup.read_bytes()))

    deposit.ledger.subscribe(check)
    TransformEngine(provider, deposit.ledger, deposit.folder).encrypt(deposit.marked_pairs("a.txt"))

    assert observed == [(b"plain a", b"plain a")]
    assert a.path.read_bytes() != b"plain a"


def test_backup_preserves_file_attributes(deposit, provider):
    a = deposit.add("a.txt", b"plain a")
    os.chmod(a.path, 0o640)
    os.utime(a.path, (1_000_000, 1_000_000))

    TransformEngine(provider, deposit.ledger, deposit.folder).encrypt(deposit.marked_pairs("a.txt"))

    stat = deposit.folder.backup_path(a.path).stat()
    assert stat.st_mode & 0o777 == 0o640
    assert int(stat.st_mtime) == 1_000_000


def test_provider_failure_is_fatal_and_leaves_resource_untouched(deposit):
    deposit.add("a.txt", b"plain a")
    c = deposit.add("c.txt", b"plain c")
    deposit.add("d.txt", b"plain d")
    provider = FakeProvider(fail_on={"c.txt"})

    engine = TransformEngine(provider, deposit.ledger, deposit.folder)
    with pytest.raises(TransformError) as excinfo:
        engine.encrypt(deposit.marked_pairs("a.txt", "c.txt", "d.txt"))

    assert excinfo.value.path == c.path
    assert c.path.read_bytes() == b"plain c"
    assert (deposit.data / "d.txt").read_bytes() == b"plain d"
    assert [Path(e.param("original")).name for e in deposit.ledger] == ["a.txt"]
    # no partial ciphertext or key left for the failed resource
    assert sorted(p.name for p in deposit.folder.path.iterdir()) == ["a.txt.keyset.json", "a.txt.orig"]


class VanishingProvider(FakeProvider):
    """Encrypts, then deletes the plaintext as if it vanished right after."""

    def __init__(self, vanish):
        super().__init__()
        self.vanish = set(vanish)

    def encrypt(self, plaintext, key_sink, ciphertext_sink):
        super().encrypt(plaintext, key_sink, ciphertext_sink)
        if plaintext.name in self.vanish:
            plaintext.unlink()


def test_vanished_file_is_skipped_and_batch_continues(deposit):
    deposit.add("a.txt", b"plain a")
    b = deposit.add("b.txt", b"plain b")
    provider = VanishingProvider(vanish={"a.txt"})

    report = TransformEngine(provider, deposit.ledger, deposit.folder).encrypt(
        deposit.marked_pairs("a.txt", "b.txt")
    )

    assert [p.name for p in report.vanished] == ["a.txt"]
    assert report.transformed == [b.path]
    assert b.path.read_bytes() == fake_ciphertext(b"plain b")
    assert len(deposit.ledger) == 1
    assert sorted(p.name for p in deposit.folder.path.iterdir()) == ["b.txt.keyset.json", "b.txt.orig"]


def test_unexpected_error_while_swapping_is_fatal(deposit, provider, monkeypatch):
    deposit.add("a.txt", b"plain a")

    def broken_move(src, dst):
        raise PermissionError("read-only deposit")

    monkeypatch.setattr("deposit_encryptor.transformer.move_file", broken_move)

    with pytest.raises(TransformError):
        TransformEngine(provider, deposit.ledger, deposit.folder).encrypt(deposit.marked_pairs("a.txt"))

    # the event was recorded before the swap so restore can still find the backup
    assert len(deposit.ledger) == 1


def test_record_round_trips_through_event(tmp_path):
    from deposit_encryptor.folder import EncryptionFolder

    folder = EncryptionFolder(tmp_path / "enc")
    record = TransformRecord.for_resource(tmp_path / "data" / "x.wav", folder)

    assert TransformRecord.from_event(record.to_event()) == record


def test_same_name_in_two_directories_does_not_clobber_staging(deposit, provider):
    x = deposit.add("x/a.txt", b"plain X")
    y = deposit.add("y/a.txt", b"plain Y")

    with pytest.raises(TransformError) as excinfo:
        TransformEngine(provider, deposit.ledger, deposit.folder).encrypt(deposit.marked_pairs("a.txt"))

    assert excinfo.value.path == y.path
    assert y.path.read_bytes() == b"plain Y"
    assert x.path.read_bytes() == fake_ciphertext(b"plain X")
    # the first resource's backup is intact
    assert deposit.folder.backup_path(x.path).read_bytes() == b"plain X"
    assert len(deposit.ledger) == 1


def test_resources_already_in_the_ledger_are_not_encrypted_twice(deposit, provider):
    a = deposit.add("a.txt", b"plain a")
    engine = TransformEngine(provider, deposit.ledger, deposit.folder)

    engine.encrypt(deposit.marked_pairs("a.txt"))
    report = engine.encrypt(deposit.marked_pairs("a.txt"))

    assert report.already_recorded == [a.path]
    assert report.transformed == []
    assert len(deposit.ledger) == 1
    assert a.path.read_bytes() == fake_ciphertext(b"plain a")
    assert deposit.folder.backup_path(a.path).read_bytes() == b"plain a"


def test_left_over_artifacts_without_ledger_entry_are_fatal(deposit, provider):
    from deposit_encryptor.ledger import RollbackLedger

    a = deposit.add("a.txt", b"plain a")
    TransformEngine(provider, deposit.ledger, deposit.folder).encrypt(deposit.marked_pairs("a.txt"))

    with pytest.raises(TransformError):
        TransformEngine(provider, RollbackLedger(), deposit.folder).encrypt(deposit.marked_pairs("a.txt"))

    assert deposit.folder.backup_path(a.path).read_bytes() == b"plain a"
    assert deposit.folder.key_path(a.path).read_text(encoding="utf-8") == '{"key": "fake"}'
