"""
Rollback events and the ledger that orders them.

An event is a tagged record: a kind plus ordered key/value parameters.
Only one kind is produced today (``restore-original``); consumers
dispatch on ``kind`` so more can be added without touching the ledger.

The ledger itself is in-memory sequencing for one run. LedgerStore is
the optional on-disk mirror the command line uses between invocations.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Callable, Dict, Iterator, List, Optional, Tuple

import yaml

from .config import SUPPORTED_LEDGER_VERSION
from .errors import ConfigurationError
from .utils import ensure_parent_dir

logger = logging.getLogger(__name__)

RESTORE_ORIGINAL = "restore-original"


@dataclass(frozen=True)
class RollbackEvent:
    kind: str
    params: Tuple[Tuple[str, str], ...] = ()

    def param(self, name: str) -> Optional[str]:
        for key, value in self.params:
            if key == name:
                return value
        return None

    def to_dict(self) -> Dict[str, Any]:
        return {"kind": self.kind, "params": dict(self.params)}

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "RollbackEvent":
        if not isinstance(data, dict) or "kind" not in data:
            raise ConfigurationError(f"Invalid rollback event: {data!r}")

        params = data.get("params") or {}
        if not isinstance(params, dict):
            raise ConfigurationError(f"Invalid rollback event parameters: {params!r}")

        return cls(
            kind=str(data["kind"]),
            params=tuple((str(k), str(v)) for k, v in params.items()),
        )


def restore_original(key: Path, original: Path, backup: Path) -> RollbackEvent:
    return RollbackEvent(
        kind=RESTORE_ORIGINAL,
        params=(
            ("key", str(key)),
            ("original", str(original)),
            ("backup", str(backup)),
        ),
    )


class RollbackLedger:
    """Append-only, ordered list of rollback events."""

    def __init__(self, events: Optional[List[RollbackEvent]] = None):
        self._events: List[RollbackEvent] = list(events or [])
        self._subscribers: List[Callable[[RollbackEvent], None]] = []

    def subscribe(self, callback: Callable[[RollbackEvent], None]) -> None:
        """Register a callback invoked with every appended event."""
        self._subscribers.append(callback)

    def append(self, event: RollbackEvent) -> None:
        self._events.append(event)
        logger.debug("rollback event %s appended (%d in ledger)", event.kind, len(self._events))

        for callback in self._subscribers:
            callback(event)

    def replay_reversed(self) -> Iterator[RollbackEvent]:
        """Iterate most-recently-appended first without mutating the ledger."""
        return reversed(list(self._events))

    def events(self) -> List[RollbackEvent]:
        return list(self._events)

    def __iter__(self) -> Iterator[RollbackEvent]:
        return iter(list(self._events))

    def __len__(self) -> int:
        return len(self._events)


class LedgerStore:
    """YAML file that mirrors a ledger so later invocations can replay it."""

    def __init__(self, path: str | Path):
        self.path = Path(path)

    def load(self) -> RollbackLedger:
        if not self.path.exists():
            return RollbackLedger()

        try:
            with self.path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Could not read rollback ledger {self.path}: {e}") from e

        if not isinstance(raw, dict):
            raise ConfigurationError(f"Rollback ledger {self.path} must be a mapping")

        version = raw.get("version", SUPPORTED_LEDGER_VERSION)
        if version != SUPPORTED_LEDGER_VERSION:
            raise ConfigurationError(f"Unsupported rollback ledger version: {version}")

        events = [RollbackEvent.from_dict(item) for item in raw.get("events") or []]
        return RollbackLedger(events)

    def save(self, ledger: RollbackLedger) -> None:
        data = {
            "version": SUPPORTED_LEDGER_VERSION,
            "events": [event.to_dict() for event in ledger],
        }

        ensure_parent_dir(self.path)
        tmp = self.path.with_name(self.path.name + ".tmp")
        with tmp.open("w", encoding="utf-8") as fh:
            yaml.safe_dump(data, fh, sort_keys=False)
        tmp.replace(self.path)

    def attach(self, ledger: RollbackLedger) -> None:
        """Persist the ledger again after every append."""
        ledger.subscribe(lambda _event: self.save(ledger))

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
