"""
Typed view of a capability catalog document.

These frozen dataclasses mirror the catalog JSON so the index, builder, and
coverage helpers can reason about capability metadata without passing raw
dicts around. Nothing here validates cross-field rules; `index.load` does.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Mapping, Optional, Tuple


@dataclass(frozen=True)
class CapabilitySource:
    doc: str
    section: Optional[str] = None
    url_hint: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {"doc": self.doc}
        if self.section is not None:
            out["section"] = self.section
        if self.url_hint is not None:
            out["url_hint"] = self.url_hint
        return out


@dataclass(frozen=True)
class CapabilitySnapshot:
    """
    Compact capability record embedded in boundary events.

    Snapshots are copied by value at build time so an emitted event stays
    self-describing even if the catalog on disk changes afterwards.
    """

    id: str
    category: str
    layer: str

    def to_dict(self) -> Dict[str, str]:
        return {"id": self.id, "category": self.category, "layer": self.layer}


@dataclass(frozen=True)
class CapabilityDescriptor:
    """One observable policy surface, as declared by the catalog."""

    id: str
    category: str
    layer: str
    description: str = ""
    status: Optional[str] = None
    allow_ops: Tuple[str, ...] = ()
    deny_ops: Tuple[str, ...] = ()
    meta_ops: Tuple[str, ...] = ()
    agent_controls: Tuple[str, ...] = ()
    sources: Tuple[CapabilitySource, ...] = ()
    notes: Optional[str] = None

    def snapshot(self) -> CapabilitySnapshot:
        return CapabilitySnapshot(id=self.id, category=self.category, layer=self.layer)

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "id": self.id,
            "category": self.category,
            "layer": self.layer,
            "description": self.description,
            "operations": {"allow": list(self.allow_ops), "deny": list(self.deny_ops)},
            "meta_ops": list(self.meta_ops),
            "agent_controls": list(self.agent_controls),
            "sources": [src.to_dict() for src in self.sources],
        }
        if self.status is not None:
            out["status"] = self.status
        if self.notes is not None:
            out["notes"] = self.notes
        return out


@dataclass(frozen=True)
class CatalogScope:
    categories: Tuple[str, ...]
    policy_layers: Tuple[str, ...]
    description: str = ""


@dataclass(frozen=True)
class CatalogMetadata:
    key: str
    title: str = ""
    labels: Tuple[str, ...] = field(default_factory=tuple)


def _str_tuple(value: Any) -> Tuple[str, ...]:
    if not isinstance(value, (list, tuple)):
        return ()
    return tuple(str(item) for item in value if isinstance(item, str))


def enumeration_ids(value: Any) -> Tuple[str, ...]:
    """
    Normalize a scope enumeration to a tuple of ids.

    Accepts a list of strings, a list of `{"id": ...}` objects, or a mapping
    keyed by id.
    """

    if isinstance(value, Mapping):
        return tuple(str(key) for key in value.keys())
    if not isinstance(value, (list, tuple)):
        return ()
    ids = []
    for item in value:
        if isinstance(item, str):
            ids.append(item)
        elif isinstance(item, Mapping) and isinstance(item.get("id"), str):
            ids.append(item["id"])
    return tuple(ids)


def descriptor_from_dict(raw: Mapping[str, Any]) -> CapabilityDescriptor:
    operations = raw.get("operations") or {}
    if not isinstance(operations, Mapping):
        operations = {}
    sources = []
    for src in raw.get("sources") or []:
        if isinstance(src, Mapping) and isinstance(src.get("doc"), str):
            sources.append(
                CapabilitySource(
                    doc=src["doc"],
                    section=src.get("section"),
                    url_hint=src.get("url_hint"),
                )
            )
    status = raw.get("status")
    notes = raw.get("notes")
    return CapabilityDescriptor(
        id=str(raw.get("id") or "").strip(),
        category=str(raw.get("category") or ""),
        layer=str(raw.get("layer") or ""),
        description=str(raw.get("description") or ""),
        status=status if isinstance(status, str) else None,
        allow_ops=_str_tuple(operations.get("allow")),
        deny_ops=_str_tuple(operations.get("deny")),
        meta_ops=_str_tuple(raw.get("meta_ops")),
        agent_controls=_str_tuple(raw.get("agent_controls")),
        sources=tuple(sources),
        notes=notes if isinstance(notes, str) else None,
    )
