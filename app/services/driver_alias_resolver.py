"""
app/services/driver_alias_resolver.py

Maps loosely formatted driver names onto one canonical identity.

The first spelling seen for an alias key becomes the canonical name; later
spellings that normalize to the same key are recorded as aliases of it.
Explicit aliases ("J. Smith" -> "John Smith") are registered through
``add_driver_alias``. Committed trips are never rewritten; queries resolve the
stored name at read time instead.
"""

from __future__ import annotations

import logging
import threading
from app.domain.trip_import import DriverAliasEntry
from app.repositories.base import AliasRegistry
from app.repositories.memory import InMemoryAliasRegistry

logger = logging.getLogger(__name__)


def normalize_driver_name(name: str) -> str:
    """
    Alias key: lowercase, trimmed, inner whitespace collapsed.
    """

    return " ".join(str(name or "").split()).lower()


class DriverAliasResolver:
    """
    Registry front-end serialising every read-modify-write behind one lock.
    """

    def __init__(self, registry: AliasRegistry | None = None) -> None:
        self._registry = registry or InMemoryAliasRegistry()
        self._lock = threading.RLock()

    def resolve(self, raw_name: str) -> str:
        """
        Return the canonical name for ``raw_name``, registering it when unseen.
        """

        display = " ".join(str(raw_name or "").split())
        key = normalize_driver_name(display)
        if not key:
            return display

        with self._lock:
            canonical = self._registry.canonical_for(key)
            if canonical is None:
                self._registry.link(alias_key=key, alias=display, canonical=display)
                logger.debug("Registered new canonical driver name (key=%s)", key)
                return display
            if display not in self._registry.aliases_of(canonical):
                self._registry.link(alias_key=key, alias=display, canonical=canonical)
            return canonical

    def add_driver_alias(self, canonical_name: str, alias: str) -> str:
        """
        Point ``alias`` at ``canonical_name``.

        The canonical side is resolved first so chains collapse onto the
        existing identity. Returns the canonical name the alias now maps to.
        """

        canonical_display = " ".join(str(canonical_name or "").split())
        alias_display = " ".join(str(alias or "").split())
        if not canonical_display or not alias_display:
            raise ValueError("Both canonical name and alias are required.")

        with self._lock:
            canonical = self.resolve(canonical_display)
            alias_key = normalize_driver_name(alias_display)
            previous = self._registry.canonical_for(alias_key)
            if previous is not None and previous != canonical:
                logger.info("Re-pointing driver alias key %s from %s to %s", alias_key, previous, canonical)
                if normalize_driver_name(previous) == alias_key:
                    # alias names a whole cluster; move its members with it
                    self._registry.merge(source=previous, target=canonical)
            self._registry.link(alias_key=alias_key, alias=alias_display, canonical=canonical)
            return canonical

    def get_canonical_driver_name(self, alias: str) -> str:
        """
        Read-only lookup; unknown names resolve to themselves.
        """

        display = " ".join(str(alias or "").split())
        with self._lock:
            canonical = self._registry.canonical_for(normalize_driver_name(display))
        return canonical if canonical is not None else display

    def get_driver_aliases(self, canonical_name: str) -> list[str]:
        """
        Return every spelling recorded for a canonical name.

        Unknown names return ``[canonical_name]``.
        """

        canonical = self.get_canonical_driver_name(canonical_name)
        with self._lock:
            aliases = self._registry.aliases_of(canonical)
        if not aliases:
            return [canonical]
        if canonical not in aliases:
            aliases.insert(0, canonical)
        return aliases

    def get_all_driver_aliases(self) -> list[DriverAliasEntry]:
        with self._lock:
            names = self._registry.canonical_names()
            return [
                DriverAliasEntry(canonical=name, aliases=tuple(self._registry.aliases_of(name)))
                for name in names
            ]
