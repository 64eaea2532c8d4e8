"""
Holds one or more capability indexes keyed by catalog key.

The repository is threaded explicitly into the emitter, builder and gate;
there is no process-wide catalog. Boundary events carry the catalog key in
`capabilities_schema_version`, so a repository can resolve an old event
against the catalog it was emitted under.
"""

from __future__ import annotations

from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Tuple, Union

from fence.api.catalog import index as catalog_index
from fence.api.catalog.index import CapabilityIndex
from fence.api.catalog.model import CapabilityDescriptor
from fence.api.errors import DuplicateId, ResourceError, UnknownCapability


class CatalogRepository:
    def __init__(self, indexes: Optional[List[CapabilityIndex]] = None, active: Optional[str] = None):
        self._indexes: Dict[str, CapabilityIndex] = {}
        self._active: Optional[str] = None
        for idx in indexes or []:
            self.register(idx)
        if active is not None:
            self.activate(active)

    @classmethod
    def from_path(cls, path: Optional[Path | str] = None, repo_root: Optional[Path] = None) -> "CatalogRepository":
        return cls([catalog_index.load(path, repo_root=repo_root)])

    def register(self, idx: CapabilityIndex, replace: bool = False) -> None:
        """Register an index; the first one registered becomes active."""
        if idx.key in self._indexes and not replace:
            raise DuplicateId(f"catalog {idx.key} already registered", field="catalog.key")
        self._indexes[idx.key] = idx
        if self._active is None:
            self._active = idx.key

    def activate(self, key: str) -> CapabilityIndex:
        idx = self.get(key)
        if idx is None:
            raise ResourceError(f"catalog {key} is not registered")
        self._active = key
        return idx

    @property
    def active(self) -> CapabilityIndex:
        if self._active is None:
            raise ResourceError("no catalog registered")
        return self._indexes[self._active]

    def get(self, key: str) -> Optional[CapabilityIndex]:
        return self._indexes.get(key)

    def keys(self) -> List[str]:
        return sorted(self._indexes)

    def find_capability(self, key: str, capability_id: str) -> Optional[CapabilityDescriptor]:
        idx = self.get(key)
        if idx is None:
            return None
        return idx.get(capability_id)

    def lookup_context(self, event: Mapping[str, Any]) -> Tuple[CapabilityDescriptor, List[CapabilityDescriptor]]:
        """
        Resolve an event's capability context against the catalog it names.

        Trusts `capabilities_schema_version` in the event; an unknown catalog
        key or capability id raises UnknownCapability.
        """

        key = event.get("capabilities_schema_version")
        context = event.get("capability_context") or {}
        primary_id = (context.get("primary") or {}).get("id") or ""
        idx = self.get(key) if isinstance(key, str) else None
        if idx is None:
            raise UnknownCapability(primary_id, field="capabilities_schema_version", catalog_key=str(key))
        primary = idx.lookup(primary_id)
        secondary = [idx.lookup(snap.get("id") or "") for snap in context.get("secondary") or []]
        return primary, secondary


# Anything that names a catalog for building: a single index, or a repository
# whose active index is used.
Catalog = Union[CapabilityIndex, CatalogRepository]


def active_index(catalog: Catalog) -> CapabilityIndex:
    if isinstance(catalog, CatalogRepository):
        return catalog.active
    return catalog
