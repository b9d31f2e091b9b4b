"""
Deposit manifest loading, validation, and normalization.

This module answers one question:
    "Which resources does this deposit hold, and where do the
    encryption artifacts live?"

Responsibilities:
- Load the deposit manifest YAML file
- Validate structure and version
- Normalize defaults and resolve relative paths
- Expose a clean Python representation

This module does NOT:
- Decide whether a resource is marked
- Encrypt files
- Touch the filesystem beyond reading the manifest
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, List, Optional

import yaml

from .config import (
    SUPPORTED_MANIFEST_VERSION,
    DEFAULT_ENCRYPTION_FILES,
    DEFAULT_ENCRYPTION_METADATA,
    DEFAULT_KEK_URI,
    DEFAULT_LEDGER,
)
from .errors import ConfigurationError


# ---------------------------------------------------------------------------
# Data models
# ---------------------------------------------------------------------------


class ResourceStatus(Enum):
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    UNCHANGED = "unchanged"

    @classmethod
    def parse(cls, value: Any) -> "ResourceStatus":
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            raise ConfigurationError(f"Unknown resource status: {value!r}")


ELIGIBLE_STATUSES = frozenset({ResourceStatus.INSERT, ResourceStatus.UPDATE})


@dataclass(frozen=True)
class Resource:
    path: Path
    status: ResourceStatus

    @property
    def eligible(self) -> bool:
        """Only inserted or updated resources may be encrypted."""
        return self.status in ELIGIBLE_STATUSES


@dataclass
class EncryptionConfig:
    files: Path = Path(DEFAULT_ENCRYPTION_FILES)
    metadata: Path = Path(DEFAULT_ENCRYPTION_METADATA)
    kek_uri: str = DEFAULT_KEK_URI
    credentials: Optional[Path] = None
    ledger: Path = Path(DEFAULT_LEDGER)


@dataclass
class Manifest:
    version: int
    encryption: EncryptionConfig
    resources: List[Resource] = field(default_factory=list)

    # ------------------------------------------------------------------
    # Loading API
    # ------------------------------------------------------------------

    @classmethod
    def load(cls, path: str | Path) -> "Manifest":
        """
        Load and validate a deposit manifest.

        Relative paths inside the manifest are resolved against the
        directory holding the manifest.

        Raises:
            ConfigurationError: if the manifest is missing or invalid
        """

        path = Path(path)
        if not path.exists():
            raise ConfigurationError(f"Manifest file not found: {path}")

        try:
            with path.open("r", encoding="utf-8") as fh:
                raw = yaml.safe_load(fh) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Manifest {path} is not valid YAML: {e}") from e

        if not isinstance(raw, dict):
            raise ConfigurationError(f"Manifest {path} must be a mapping")

        return cls._from_dict(raw, base=path.parent.absolute())

    # ------------------------------------------------------------------
    # Internal helpers
    # ------------------------------------------------------------------

    @classmethod
    def _from_dict(cls, data: Dict[str, Any], base: Optional[Path] = None) -> "Manifest":
        base = base or Path.cwd()

        version = data.get("version")
        if version != SUPPORTED_MANIFEST_VERSION:
            raise ConfigurationError(f"Unsupported manifest version: {version}")

        encryption = data.get("encryption")
        resources = data.get("resources")

        return cls(
            version=version,
            encryption=cls._parse_encryption({} if encryption is None else encryption, base),
            resources=cls._parse_resources([] if resources is None else resources, base),
        )

    @staticmethod
    def _parse_encryption(data: Dict[str, Any], base: Path) -> EncryptionConfig:
        if not isinstance(data, dict):
            raise ConfigurationError("'encryption' section must be a mapping")

        credentials = data.get("credentials")
        return EncryptionConfig(
            files=_resolve(base, data.get("files", DEFAULT_ENCRYPTION_FILES)),
            metadata=_resolve(base, data.get("metadata", DEFAULT_ENCRYPTION_METADATA)),
            kek_uri=str(data.get("kek_uri", DEFAULT_KEK_URI)),
            credentials=_resolve(base, credentials) if credentials else None,
            ledger=_resolve(base, data.get("ledger", DEFAULT_LEDGER)),
        )

    @staticmethod
    def _parse_resources(data: List[Any], base: Path) -> List[Resource]:
        if not isinstance(data, list):
            raise ConfigurationError("'resources' section must be a list")

        resources: List[Resource] = []
        for entry in data:
            if not isinstance(entry, dict) or "path" not in entry:
                raise ConfigurationError(f"Resource entry missing 'path': {entry!r}")

            resources.append(
                Resource(
                    path=_resolve(base, entry["path"]),
                    status=ResourceStatus.parse(entry.get("status", "insert")),
                )
            )

        return resources

    # ------------------------------------------------------------------
    # Public helpers
    # ------------------------------------------------------------------

    def eligible_resources(self) -> List[Resource]:
        return [res for res in self.resources if res.eligible]


def _resolve(base: Path, value: Any) -> Path:
    path = Path(str(value))
    if not path.is_absolute():
        path = base / path
    return path
