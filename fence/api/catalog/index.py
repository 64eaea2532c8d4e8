"""
Indexed, validated view of one capability catalog.

`load` is strict: it rejects unknown schema versions, malformed catalog keys,
empty or duplicate capability ids, and categories/layers outside the
catalog's declared scope. The first violation is raised; no partial index is
ever returned.
"""

from __future__ import annotations

import json
import logging
import re
from pathlib import Path
from types import MappingProxyType
from typing import Any, Dict, Iterator, Mapping, Optional, Tuple

from fence.api.catalog import defaults
from fence.api.catalog.model import (
    CapabilityDescriptor,
    CatalogMetadata,
    CatalogScope,
    descriptor_from_dict,
    enumeration_ids,
)
from fence.api.errors import (
    DuplicateId,
    InvalidValue,
    MissingField,
    SchemaError,
    SchemaVersionMismatch,
    UnknownCapability,
    UnknownCategory,
    UnknownLayer,
)

logger = logging.getLogger(__name__)

CATALOG_SCHEMA_VERSION = "sandbox_catalog_v1"
TOKEN_RE = re.compile(r"^[A-Za-z0-9_.-]+$")


class CapabilityIndex:
    """Capability catalog plus an id-keyed lookup table."""

    def __init__(
        self,
        metadata: CatalogMetadata,
        scope: CatalogScope,
        descriptors: Mapping[str, CapabilityDescriptor],
        schema_version: str = CATALOG_SCHEMA_VERSION,
        source: Optional[str] = None,
    ):
        self._metadata = metadata
        self._scope = scope
        self._by_id = MappingProxyType(dict(sorted(descriptors.items())))
        self._schema_version = schema_version
        self._source = source

    @property
    def key(self) -> str:
        return self._metadata.key

    @property
    def metadata(self) -> CatalogMetadata:
        return self._metadata

    @property
    def scope(self) -> CatalogScope:
        return self._scope

    @property
    def schema_version(self) -> str:
        return self._schema_version

    @property
    def source(self) -> Optional[str]:
        return self._source

    def lookup(self, capability_id: str) -> CapabilityDescriptor:
        try:
            return self._by_id[capability_id]
        except KeyError:
            raise UnknownCapability(capability_id, catalog_key=self.key) from None

    def get(self, capability_id: str) -> Optional[CapabilityDescriptor]:
        return self._by_id.get(capability_id)

    def ids(self) -> Tuple[str, ...]:
        return tuple(self._by_id.keys())

    def descriptors(self) -> Iterator[CapabilityDescriptor]:
        return iter(self._by_id.values())

    def __contains__(self, capability_id: object) -> bool:
        return capability_id in self._by_id

    def __len__(self) -> int:
        return len(self._by_id)

    def __repr__(self) -> str:
        return f"CapabilityIndex(key={self.key!r}, capabilities={len(self)})"


def _require_mapping(doc: Mapping[str, Any], key: str, label: str) -> Mapping[str, Any]:
    value = doc.get(key)
    if not isinstance(value, Mapping):
        raise MissingField(f"{label} must be an object", field=label)
    return value


def validate_schema_version(value: Any) -> str:
    if not isinstance(value, str) or not value:
        raise MissingField("schema_version must be a non-empty string", field="schema_version")
    if value != CATALOG_SCHEMA_VERSION:
        raise SchemaVersionMismatch(
            f"schema_version '{value}' does not match expected '{CATALOG_SCHEMA_VERSION}'",
            field="schema_version",
        )
    return value


def validate_catalog_key(value: Any) -> str:
    if not isinstance(value, str) or not value:
        raise MissingField("catalog.key must be a non-empty string", field="catalog.key")
    if not TOKEN_RE.match(value):
        raise InvalidValue(f"catalog.key must match {TOKEN_RE.pattern}, got {value!r}", field="catalog.key")
    return value


def load_document(doc: Any, source: Optional[str] = None) -> CapabilityIndex:
    """Validate an already-parsed catalog document and build its index."""

    if not isinstance(doc, Mapping):
        raise SchemaError("capability catalog must be a JSON object")
    schema_version = validate_schema_version(doc.get("schema_version"))

    catalog_meta = _require_mapping(doc, "catalog", "catalog")
    key = validate_catalog_key(catalog_meta.get("key"))
    labels = catalog_meta.get("labels") or []
    metadata = CatalogMetadata(
        key=key,
        title=str(catalog_meta.get("title") or ""),
        labels=tuple(str(label) for label in labels if isinstance(label, str)),
    )

    scope_doc = _require_mapping(doc, "scope", "scope")
    categories = enumeration_ids(scope_doc.get("categories"))
    if not categories:
        raise MissingField("scope.categories must declare at least one category", field="scope.categories")
    layers = enumeration_ids(scope_doc.get("policy_layers"))
    if not layers:
        raise MissingField("scope.policy_layers must declare at least one layer", field="scope.policy_layers")
    scope = CatalogScope(
        categories=categories,
        policy_layers=layers,
        description=str(scope_doc.get("description") or ""),
    )

    entries = doc.get("capabilities")
    if not isinstance(entries, list) or not entries:
        raise MissingField("capabilities must be a non-empty array", field="capabilities")

    category_set = set(categories)
    layer_set = set(layers)
    by_id: Dict[str, CapabilityDescriptor] = {}
    for position, raw in enumerate(entries):
        label = f"capabilities[{position}]"
        if not isinstance(raw, Mapping):
            raise SchemaError(f"{label} must be an object", field=label)
        descriptor = descriptor_from_dict(raw)
        if not descriptor.id:
            raise MissingField(f"{label} has no id", field=f"{label}.id")
        if descriptor.id in by_id:
            raise DuplicateId(f"duplicate capability id {descriptor.id}", field=f"{label}.id")
        if descriptor.category not in category_set:
            raise UnknownCategory(
                f"capability {descriptor.id} references unknown category '{descriptor.category}'",
                field=f"{label}.category",
            )
        if descriptor.layer not in layer_set:
            raise UnknownLayer(
                f"capability {descriptor.id} references unknown layer '{descriptor.layer}'",
                field=f"{label}.layer",
            )
        by_id[descriptor.id] = descriptor

    return CapabilityIndex(metadata, scope, by_id, schema_version=schema_version, source=source)


def load(path: Optional[Path | str] = None, repo_root: Optional[Path] = None) -> CapabilityIndex:
    """
    Load and validate a catalog from disk.

    With no explicit path, the catalog is resolved through the defaults
    manifest (see `fence.api.catalog.defaults`).
    """

    catalog_path = defaults.resolve_catalog_path(path, repo_root=repo_root)
    try:
        doc = json.loads(Path(catalog_path).read_text())
    except FileNotFoundError:
        raise SchemaError(f"capability catalog not found: {catalog_path}") from None
    except json.JSONDecodeError as exc:
        raise SchemaError(f"capability catalog {catalog_path} is not valid JSON: {exc}") from exc
    index = load_document(doc, source=str(catalog_path))
    logger.debug("loaded catalog %s (%d capabilities) from %s", index.key, len(index), catalog_path)
    return index
