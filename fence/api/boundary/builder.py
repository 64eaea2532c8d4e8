"""
Validate emitter inputs and assemble a boundary event.

Checks run in a fixed order and the first failure is raised with the
offending field attached:

1. required inputs present and non-empty
2. status enum
3. raw exit code is an integer
4. exactly one payload source
5. payload shape and size
6. operation args form an object and every fragment parses
7. primary and secondary capability ids resolve in the catalog

Nothing is written anywhere; callers hand the resulting event to an
`EventSink`.
"""

from __future__ import annotations

import json
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from fence.api.boundary.inputs import EmitRequest, Fragment, TextSource
from fence.api.boundary.schema import (
    PAYLOAD_MAX_BYTES,
    RESULT_STATUSES,
    BoundaryEvent,
    BoundarySchema,
    CapabilityContext,
    Operation,
    Payload,
    ProbeIdentity,
    Result,
    RunContext,
    clean_snippet,
    payload_size,
    validate_event_document,
)
from fence.api.catalog.index import CapabilityIndex
from fence.api.catalog.repository import Catalog, active_index
from fence.api.catalog.model import CapabilityDescriptor
from fence.api.env import split_list
from fence.api.errors import (
    ConflictingPayloadSource,
    InvalidEnum,
    InvalidValue,
    MissingField,
    MissingPayload,
    PayloadTooLarge,
    UnknownCapability,
)

REQUIRED_INPUTS: Tuple[Tuple[str, str], ...] = (
    ("run_mode", "--run-mode"),
    ("probe_name", "--probe-name"),
    ("probe_version", "--probe-version"),
    ("primary_capability_id", "--primary-capability-id"),
    ("command", "--command"),
    ("category", "--category"),
    ("verb", "--verb"),
    ("target", "--target"),
    ("status", "--status"),
)
PAYLOAD_DOC_KEYS = ("stdout_snippet", "stderr_snippet", "raw")
INT_RE = re.compile(r"^[+-]?[0-9]+$")


@dataclass(frozen=True)
class ValidatedRequest:
    request: EmitRequest
    raw_exit_code: Optional[int]
    payload: Payload
    operation_args: Mapping[str, Any]
    primary: CapabilityDescriptor
    secondary: Tuple[CapabilityDescriptor, ...]


def _non_empty(value: Optional[str]) -> Optional[str]:
    return value if value else None


def _read_json_file(path: str, label: str, field: str) -> Any:
    file_path = Path(path)
    if not file_path.is_file():
        raise InvalidValue(f"{label} file not found: {file_path}", field=field)
    try:
        return json.loads(file_path.read_text(encoding="utf-8", errors="replace"))
    except json.JSONDecodeError as exc:
        raise InvalidValue(f"{label} file {file_path} is not valid JSON: {exc}", field=field) from exc


def _parse_json(text: str, label: str, field: str) -> Any:
    try:
        return json.loads(text)
    except json.JSONDecodeError as exc:
        raise InvalidValue(f"invalid JSON for {label}: {exc}", field=field) from exc


def build_object(fragments: Sequence[Fragment], label: str, field: str) -> Dict[str, Any]:
    """Apply object fragments in flag order; later keys overwrite earlier ones."""
    out: Dict[str, Any] = {}
    for frag in fragments:
        if frag.kind in ("object", "object_file"):
            if frag.kind == "object":
                value = _parse_json(frag.value or "", label, field)
            else:
                value = _read_json_file(frag.value or "", label, field)
            if not isinstance(value, dict):
                raise InvalidValue(f"{label} must be a JSON object ({frag.flag})", field=field)
            out.update(value)
        elif frag.kind == "field":
            out[frag.key] = frag.value
        elif frag.kind == "json":
            out[frag.key] = _parse_json(frag.value or "", f"{label} value {frag.key}", field)
        elif frag.kind == "null":
            out[frag.key] = None
        elif frag.kind == "list":
            out[frag.key] = split_list(frag.value or "")
        else:
            raise InvalidValue(f"unsupported fragment kind {frag.kind}", field=field)
    return out


def _read_text_source(source: Optional[TextSource], field: str) -> Optional[str]:
    if source is None:
        return None
    if source.kind == "file":
        path = Path(source.value)
        if not path.is_file():
            raise InvalidValue(f"snippet file not found: {path}", field=field)
        return clean_snippet(path.read_bytes().decode("utf-8", errors="replace"))
    return clean_snippet(source.value)


def _payload_from_document(doc: Any) -> Payload:
    if not isinstance(doc, dict):
        raise InvalidValue("payload document must be a JSON object", field="payload_file")
    extra = sorted(set(doc) - set(PAYLOAD_DOC_KEYS))
    if extra:
        raise InvalidValue(f"payload document has unexpected keys: {extra}", field="payload_file")
    snippets = {}
    for key in ("stdout_snippet", "stderr_snippet"):
        value = doc.get(key)
        if value is not None and not isinstance(value, str):
            raise InvalidValue(f"payload {key} must be a string or null", field=f"payload.{key}")
        snippets[key] = clean_snippet(value)
    raw = doc.get("raw")
    if not isinstance(raw, dict):
        raise InvalidValue("payload raw must be a JSON object", field="payload.raw")
    return Payload(stdout_snippet=snippets["stdout_snippet"], stderr_snippet=snippets["stderr_snippet"], raw=raw)


def build_payload(request: EmitRequest) -> Payload:
    if request.payload_file is not None and request.has_inline_payload():
        raise ConflictingPayloadSource(
            "--payload-file cannot be combined with inline payload flags",
            field="payload_file",
        )
    if request.payload_file is not None:
        payload = _payload_from_document(_read_json_file(request.payload_file, "payload", "payload_file"))
    elif request.has_inline_payload():
        payload = Payload(
            stdout_snippet=_read_text_source(request.payload_stdout, "payload_stdout"),
            stderr_snippet=_read_text_source(request.payload_stderr, "payload_stderr"),
            raw=build_object(request.payload_raw, "payload raw", "payload_raw"),
        )
    else:
        raise MissingPayload(
            "no payload supplied; pass --payload-file or inline --payload-* flags",
            field="payload",
        )
    size = payload_size(payload.to_dict())
    if size > PAYLOAD_MAX_BYTES:
        raise PayloadTooLarge(f"payload is {size} bytes; limit is {PAYLOAD_MAX_BYTES}", field="payload")
    return payload


def parse_exit_code(value: Optional[str]) -> Optional[int]:
    if value is None or not value.strip():
        return None
    text = value.strip()
    if not INT_RE.match(text):
        raise InvalidValue(f"raw exit code must be an integer, got {value!r}", field="raw_exit_code")
    return int(text)


def _resolve(idx: CapabilityIndex, capability_id: str, field: str) -> CapabilityDescriptor:
    descriptor = idx.get(capability_id)
    if descriptor is None:
        raise UnknownCapability(capability_id, field=field, catalog_key=idx.key)
    return descriptor


def normalize_secondary_ids(raw: Sequence[str]) -> List[str]:
    return sorted({value.strip() for value in raw if value.strip()})


def validate_request(request: EmitRequest, catalog: Catalog) -> ValidatedRequest:
    idx = active_index(catalog)
    for attr, flag in REQUIRED_INPUTS:
        value = getattr(request, attr)
        if value is None or not value.strip():
            raise MissingField(f"missing required flag: {flag}", field=attr)

    if request.status not in RESULT_STATUSES:
        raise InvalidEnum(
            f"unknown status: {request.status} (expected {'|'.join(RESULT_STATUSES)})",
            field="status",
        )
    raw_exit_code = parse_exit_code(request.raw_exit_code)
    payload = build_payload(request)
    operation_args = build_object(request.operation_args, "operation args", "operation_args")

    primary = _resolve(idx, request.primary_capability_id.strip(), "primary_capability_id")
    secondary = tuple(
        _resolve(idx, cap_id, "secondary_capability_id")
        for cap_id in normalize_secondary_ids(request.secondary_capability_ids)
    )
    return ValidatedRequest(
        request=request,
        raw_exit_code=raw_exit_code,
        payload=payload,
        operation_args=operation_args,
        primary=primary,
        secondary=secondary,
    )


def assemble_boundary_event(
    checked: ValidatedRequest,
    catalog: Catalog,
    stack: Mapping[str, Any],
    workspace_root: Optional[str],
    schema: Optional[BoundarySchema] = None,
) -> BoundaryEvent:
    """Turn an already validated request into its event; nothing is re-read."""

    idx = active_index(catalog)
    schema = schema or BoundarySchema.default()
    request = checked.request
    event = BoundaryEvent(
        schema=schema,
        capabilities_schema_version=idx.key,
        stack=dict(stack),
        probe=ProbeIdentity(
            id=request.probe_name,
            version=request.probe_version,
            primary_capability_id=checked.primary.id,
            secondary_capability_ids=tuple(cap.id for cap in checked.secondary),
        ),
        run=RunContext(mode=request.run_mode, workspace_root=workspace_root, command=request.command),
        operation=Operation(
            category=request.category,
            verb=request.verb,
            target=request.target,
            args=checked.operation_args,
        ),
        result=Result(
            observed_result=request.status,
            raw_exit_code=checked.raw_exit_code,
            errno=_non_empty(request.errno),
            message=_non_empty(request.message),
            error_detail=_non_empty(request.error_detail),
        ),
        payload=checked.payload,
        capability_context=CapabilityContext(
            primary=checked.primary.snapshot(),
            secondary=tuple(cap.snapshot() for cap in checked.secondary),
        ),
    )
    validate_event_document(event.to_document(), idx, schema)
    return event


def build_boundary_event(
    request: EmitRequest,
    catalog: Catalog,
    stack: Mapping[str, Any],
    workspace_root: Optional[str],
    schema: Optional[BoundarySchema] = None,
) -> BoundaryEvent:
    """Validate `request` and return the event it describes."""
    checked = validate_request(request, catalog)
    return assemble_boundary_event(checked, catalog, stack, workspace_root, schema)
