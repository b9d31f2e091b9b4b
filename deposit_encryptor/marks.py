"""
Marked-files registry.

Given a resource file, this module decides whether it was marked for
encryption. Marks are identifiers derived from the file *name* (MD5 of
its UTF-8 bytes), so a mark survives content changes between deposits.

The registry does NOT perform actions. It only answers membership.
"""

from __future__ import annotations

import json
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, FrozenSet, Iterable, List

import yaml

from .errors import ConfigurationError
from .utils import ensure_parent_dir, md5_hex

logger = logging.getLogger(__name__)


def mark_identifier(name: str) -> str:
    """Return the identifier under which a file name is marked."""
    return md5_hex(name)


@dataclass(frozen=True)
class MarkRegistry:
    marked: FrozenSet[str] = frozenset()

    @classmethod
    def load(cls, source: str | Path) -> "MarkRegistry":
        """
        Load the marked-files document.

        The document is JSON (``{"marked": [...]}`` or a bare list);
        it is parsed with a YAML loader, which accepts JSON as well.
        A missing document means nothing is marked.

        Raises:
            ConfigurationError: if the document exists but is malformed
        """

        source = Path(source)
        if not source.exists():
            logger.info("no marked-files document at %s, nothing is marked", source)
            return cls()

        try:
            with source.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh)
        except (OSError, yaml.YAMLError) as e:
            raise ConfigurationError(f"Could not read marked files {source}: {e}") from e

        marked = _parse_marked(raw, source)
        logger.debug("loaded %d marked identifier(s) from %s", len(marked), source)
        return cls(frozenset(marked))

    def is_marked(self, path: str | Path) -> bool:
        return mark_identifier(Path(path).name) in self.marked

    def __len__(self) -> int:
        return len(self.marked)


def _parse_marked(raw: Any, source: Path) -> List[str]:
    if raw is None:
        return []

    if isinstance(raw, dict):
        raw = raw.get("marked", [])

    if not isinstance(raw, list):
        raise ConfigurationError(
            f"Marked files {source} must be a list or a mapping with a 'marked' list"
        )

    for item in raw:
        if not isinstance(item, str):
            raise ConfigurationError(f"Marked files {source}: invalid identifier {item!r}")

    return [item.strip().lower() for item in raw]


def write_marks(source: str | Path, names: Iterable[str]) -> MarkRegistry:
    """
    Add the identifiers of the given file names to the marked-files
    document, creating it if needed. Returns the updated registry.
    """

    source = Path(source)
    current = MarkRegistry.load(source)

    added = [mark_identifier(Path(name).name) for name in names]
    merged = sorted(current.marked.union(added))

    ensure_parent_dir(source)
    with source.open("w", encoding="utf-8") as fh:
        json.dump({"marked": merged}, fh, indent=2)
        fh.write("\n")

    return MarkRegistry(frozenset(merged))
