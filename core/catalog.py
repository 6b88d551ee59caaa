"""Catalog resolvers that turn catalog identifiers into display descriptors."""

from __future__ import annotations

from typing import Callable, Dict, Mapping, Optional, Protocol

from core.records import Descriptor


class CatalogResolver(Protocol):
    def resolve(self, item_id: str) -> Optional[Descriptor]:
        """Return the descriptor for ``item_id`` or ``None`` when unknown."""


class StaticCatalogResolver:
    """Resolve descriptors from an in-memory mapping."""

    def __init__(self, entries: Optional[Mapping[str, Descriptor]] = None) -> None:
        self.entries: Dict[str, Descriptor] = dict(entries or {})

    def resolve(self, item_id: str) -> Optional[Descriptor]:
        return self.entries.get(item_id)


class StoreCatalogResolver:
    """Resolve descriptors from the ``catalog_entries`` table.

    Hits are cached up to ``max_entries`` (oldest evicted first); misses are
    looked up again on every call so entries added later are picked up.
    """

    def __init__(self, session_factory: Callable[[], object], *, max_entries: int = 1024) -> None:
        self.session_factory = session_factory
        self.max_entries = max(1, int(max_entries))
        self._cache: Dict[str, Descriptor] = {}

    def resolve(self, item_id: str) -> Optional[Descriptor]:
        if item_id in self._cache:
            return self._cache[item_id]

        from models.catalog_entry import CatalogEntryRecord

        session = self.session_factory()
        try:
            record = session.get(CatalogEntryRecord, item_id)
            descriptor = record.to_descriptor() if record else None
        finally:
            session.close()
        if descriptor is not None:
            if len(self._cache) >= self.max_entries:
                self._cache.pop(next(iter(self._cache)))
            self._cache[item_id] = descriptor
        return descriptor
