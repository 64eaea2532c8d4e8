"""
Capability catalog surface.

Use `load` for a validated `CapabilityIndex`, and `CatalogRepository` when more
than one catalog is in play. Descriptors and snapshots are immutable.
"""

from .defaults import (
    resolve_boundary_schema_path,
    resolve_catalog_path,
    resolve_default_path,
)
from .index import (
    CATALOG_SCHEMA_VERSION,
    CapabilityIndex,
    load,
    load_document,
)
from .model import (
    CapabilityDescriptor,
    CapabilitySnapshot,
    CapabilitySource,
    CatalogMetadata,
    CatalogScope,
)
from .repository import Catalog, CatalogRepository, active_index

__all__ = [
    "CATALOG_SCHEMA_VERSION",
    "CapabilityDescriptor",
    "CapabilityIndex",
    "CapabilitySnapshot",
    "CapabilitySource",
    "Catalog",
    "CatalogMetadata",
    "CatalogRepository",
    "CatalogScope",
    "active_index",
    "load",
    "load_document",
    "resolve_boundary_schema_path",
    "resolve_catalog_path",
    "resolve_default_path",
]
