"""
Resource selection.

This module is responsible for:
- filtering the deposit's resources down to inserted/updated ones
- applying the marked-files registry to what remains
- yielding resources in inventory order

This module does NOT:
- encrypt or move files
- load the manifest or the marked-files document
"""

from __future__ import annotations

import logging
from typing import Iterable, Iterator, Tuple

from .manifest import Resource
from .marks import MarkRegistry

logger = logging.getLogger(__name__)


class FileScanner:
    def __init__(self, resources: Iterable[Resource], registry: MarkRegistry):
        self.resources = list(resources)
        self.registry = registry

    def scan(self) -> Iterator[Tuple[Resource, bool]]:
        """
        Yield eligible resources together with their marked decision.

        Status filtering happens first; marks are never consulted for
        deleted or unchanged resources.

        Yields:
            (Resource, marked)
        """

        for resource in self.resources:
            if not resource.eligible:
                logger.debug("skipping %s (status=%s)", resource.path, resource.status.value)
                continue

            yield resource, self.registry.is_marked(resource.path)

    def scan_marked(self) -> Iterator[Resource]:
        """
        Yield only the eligible resources that are marked.
        """

        for resource, marked in self.scan():
            if marked:
                yield resource
