"""Mapping between upstream source names and canonical namespace identifiers."""

from __future__ import annotations

import logging
import re
import threading
from collections.abc import Iterable

from .constants import EMPTY_NAMESPACE_ID
from .exceptions import InvalidInputError

logger = logging.getLogger(__name__)

_NON_ALNUM = re.compile(r"[^a-z0-9]")
_REPEATED_SEP = re.compile(r"_+")


def base_identifier(source_name: str) -> str:
    """Return the un-disambiguated identifier for ``source_name``."""
    base = _NON_ALNUM.sub("_", source_name.lower())
    base = _REPEATED_SEP.sub("_", base).strip("_")
    return base or EMPTY_NAMESPACE_ID


class NamespaceResolver:
    """Resolve source names to collision-free namespace ids.

    Assignments are memoized for the lifetime of the resolver and never
    recomputed: the first source name to claim a base identifier keeps it, and
    later names normalizing to the same base receive ``_1``, ``_2``, ...
    suffixes.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._by_source: dict[str, str] = {}
        self._by_id: dict[str, str] = {}
        self._snapshot: tuple[str, ...] = ()

    def resolve(self, source_name: str) -> str:
        if not isinstance(source_name, str):
            raise InvalidInputError(f"Invalid source name: expected string, got {type(source_name).__name__}")

        existing = self._by_source.get(source_name)
        if existing is not None:
            return existing

        with self._lock:
            # Another caller may have assigned it while we waited
            existing = self._by_source.get(source_name)
            if existing is not None:
                return existing

            base = base_identifier(source_name)
            candidate = base
            suffix = 1
            while candidate in self._by_id:
                candidate = f"{base}_{suffix}"
                suffix += 1

            self._by_source[source_name] = candidate
            self._by_id[candidate] = source_name
            if candidate != base:
                logger.debug("Namespace '%s' collides with an existing id; assigned '%s'", source_name, candidate)
            return candidate

    def update_snapshot(self, source_names: Iterable[str]) -> None:
        """Record the latest known catalog of source names and resolve each of them."""
        names = tuple(source_names)
        for name in names:
            self.resolve(name)
        self._snapshot = names

    def reverse_resolve(self, namespace_id: str) -> str:
        """Return the source name for ``namespace_id`` from the latest snapshot.

        When no snapshot entry resolves to the id, the id itself is returned; a
        lossy reverse transformation would corrupt upstream routing.
        """
        for name in self._snapshot:
            if self.resolve(name) == namespace_id:
                return name
        return namespace_id

    def known_ids(self) -> dict[str, str]:
        """Return a copy of the id -> source name assignments."""
        with self._lock:
            return dict(self._by_id)
