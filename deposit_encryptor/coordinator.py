"""
Backward pass: finalize an encryption run once the deposit outcome is known.

On success the recovery state is discarded (cleanup); on failure every
transform is undone, most recent first (restore). Both paths walk the
ledger in reverse and dispatch on the event kind. Neither path raises
for missing artifacts: finalization makes as much progress as it can
and logs what it could not do.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, Iterable, List, Optional

from .folder import EncryptionFolder
from .ledger import RESTORE_ORIGINAL, RollbackEvent, RollbackLedger
from .manifest import Resource
from .transformer import TransformRecord
from .utils import delete_if_exists, move_file

logger = logging.getLogger(__name__)


@dataclass
class FinalizeReport:
    completed: List[Path] = field(default_factory=list)
    missing: List[Path] = field(default_factory=list)
    not_transformed: List[Path] = field(default_factory=list)
    failed: List[RollbackEvent] = field(default_factory=list)
    folder_removed: bool = False


Handler = Callable[[RollbackEvent, FinalizeReport], None]


class CleanupRestoreCoordinator:
    def __init__(
        self,
        ledger: RollbackLedger,
        folder: EncryptionFolder,
        resources: Optional[Iterable[Resource]] = None,
    ):
        """
        Args:
            ledger: events recorded by the forward pass
            folder: the run's encryption folder
            resources: the marked, eligible resources of the run; when
                omitted every event in the ledger is finalized
        """

        self.ledger = ledger
        self.folder = folder
        self.resources = list(resources) if resources is not None else None

        self._restore_handlers: Dict[str, Handler] = {
            RESTORE_ORIGINAL: self._restore_original,
        }
        self._cleanup_handlers: Dict[str, Handler] = {
            RESTORE_ORIGINAL: self._cleanup_original,
        }

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    def finalize(self, success: bool) -> FinalizeReport:
        if success:
            return self.cleanup()
        return self.restore()

    def cleanup(self) -> FinalizeReport:
        """Drop backups and move key material next to the encrypted resources."""
        logger.info("cleanup of encrypted resources started")
        report = self._replay(self._selected(), self._cleanup_handlers)
        logger.info("cleanup finished: %d finalized, %d with missing artifacts",
                    len(report.completed), len(report.missing))
        return report

    def restore(self) -> FinalizeReport:
        """Put every original back, most recently encrypted first."""
        logger.info("restore of encrypted resources started")
        report = self._replay(self._selected(), self._restore_handlers)
        logger.info("restore finished: %d restored, %d with missing artifacts",
                    len(report.completed), len(report.missing))
        return report

    def rollback(self, events: Iterable[RollbackEvent]) -> FinalizeReport:
        """
        Restore from a raw event sequence, as handed back by an enclosing
        pipeline that aborted. Events are given in the order they were
        recorded and undone in reverse.
        """

        logger.info("rollback of encryption started")
        return self._replay(list(events)[::-1], self._restore_handlers)

    # ------------------------------------------------------------------
    # Replay
    # ------------------------------------------------------------------

    def _selected(self) -> List[RollbackEvent]:
        events = list(self.ledger.replay_reversed())
        if self.resources is None:
            return events

        wanted = {res.path.absolute() for res in self.resources}
        return [
            event for event in events
            if event.kind != RESTORE_ORIGINAL
            or Path(event.param("original") or "").absolute() in wanted
        ]

    def _replay(self, events: List[RollbackEvent], handlers: Dict[str, Handler]) -> FinalizeReport:
        report = FinalizeReport()
        seen = set()

        for event in events:
            handler = handlers.get(event.kind)
            if handler is None:
                logger.error("rollback event %s is not supported", event.kind)
                report.failed.append(event)
                continue

            try:
                handler(event, report)
            except (OSError, ValueError) as e:
                logger.exception("finalizing event %s %s failed: %s", event.kind, dict(event.params), e)
                report.failed.append(event)

            original = event.param("original")
            if original:
                seen.add(Path(original).absolute())

        for resource in self.resources or []:
            if resource.path.absolute() not in seen:
                logger.info("no encryption recorded for %s, nothing to finalize", resource.path)
                report.not_transformed.append(resource.path)

        if self.folder.exists():
            report.folder_removed = self.folder.remove_if_empty()
        else:
            report.folder_removed = True

        return report

    # ------------------------------------------------------------------
    # Handlers
    # ------------------------------------------------------------------

    def _restore_original(self, event: RollbackEvent, report: FinalizeReport) -> None:
        record = TransformRecord.from_event(event)

        logger.debug("key=%s exists=%s", record.key, record.key.exists())
        logger.debug("original=%s exists=%s", record.original, record.original.exists())
        logger.debug("backup=%s exists=%s", record.backup, record.backup.exists())

        if not (record.key.exists() and record.original.exists() and record.backup.exists()):
            logger.error(
                "cannot restore %s: key [%s], encrypted file [%s] or backup [%s] is missing",
                record.original, record.key, record.original, record.backup,
            )
            report.missing.append(record.original)
            return

        logger.info("restoring %s from %s", record.original, record.backup)

        delete_if_exists(record.key)
        delete_if_exists(record.original)
        move_file(record.backup, record.original)
        delete_if_exists(record.ciphertext)

        report.completed.append(record.original)

    def _cleanup_original(self, event: RollbackEvent, report: FinalizeReport) -> None:
        record = TransformRecord.from_event(event)
        destination = record.original.parent / record.key.name

        delete_if_exists(record.backup)
        delete_if_exists(record.ciphertext)

        if record.key.exists():
            logger.info("moving key %s to %s", record.key, destination)
            move_file(record.key, destination)
        elif destination.exists():
            logger.debug("key for %s already in place", record.original)
        else:
            logger.error("key for %s is missing from %s", record.original, record.key.parent)
            report.missing.append(record.original)
            return

        report.completed.append(record.original)
