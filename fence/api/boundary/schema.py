"""
Boundary event document model.

A boundary event is the single record a probe emits about one attempted
operation. The sub-records below are frozen and the document they serialize
to has a fixed key order, so two builds from the same inputs produce
byte-identical JSON.

Top-level shape (cfbo-v1):

    schema_version, schema_key, capabilities_schema_version,
    stack{}, probe{}, run{}, operation{}, result{}, payload{},
    capability_context{primary{}, secondary[]}
"""

from __future__ import annotations

import copy
import json
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple

from fence.api.catalog.index import CapabilityIndex
from fence.api.catalog.model import CapabilitySnapshot
from fence.api.errors import (
    InvalidEnum,
    InvalidValue,
    MissingField,
    PayloadTooLarge,
    SchemaError,
    SchemaVersionMismatch,
    UnknownCapability,
)

logger = logging.getLogger(__name__)

BOUNDARY_SCHEMA_VERSION = "boundary_event_v1"
BOUNDARY_SCHEMA_KEY = "cfbo-v1"
BOUNDARY_DESCRIPTOR_VERSION = "boundary_schema_v1"

RESULT_STATUSES = ("success", "denied", "partial", "error")

SNIPPET_MAX_CHARS = 400
SNIPPET_ELLIPSIS = "…"
PAYLOAD_MAX_BYTES = 1024 * 1024

TOP_LEVEL_KEYS = (
    "schema_version",
    "schema_key",
    "capabilities_schema_version",
    "stack",
    "probe",
    "run",
    "operation",
    "result",
    "payload",
    "capability_context",
)
BLOCK_KEYS: Dict[str, Tuple[str, ...]] = {
    "probe": ("id", "version", "primary_capability_id", "secondary_capability_ids"),
    "run": ("mode", "workspace_root", "command"),
    "operation": ("category", "verb", "target", "args"),
    "result": ("observed_result", "raw_exit_code", "errno", "message", "error_detail"),
    "payload": ("stdout_snippet", "stderr_snippet", "raw"),
    "capability_context": ("primary", "secondary"),
}
SNAPSHOT_KEYS = ("id", "category", "layer")


@dataclass(frozen=True)
class BoundarySchema:
    """Descriptor naming the document version and schema key to stamp."""

    key: str = BOUNDARY_SCHEMA_KEY
    pattern_version: str = BOUNDARY_SCHEMA_VERSION

    @classmethod
    def default(cls) -> "BoundarySchema":
        return cls()

    @classmethod
    def load(cls, path: Path | str) -> "BoundarySchema":
        path = Path(path)
        try:
            doc = json.loads(path.read_text())
        except FileNotFoundError:
            raise SchemaError(f"boundary schema descriptor not found: {path}") from None
        except json.JSONDecodeError as exc:
            raise SchemaError(f"boundary schema descriptor {path} is not valid JSON: {exc}") from exc
        if not isinstance(doc, Mapping):
            raise SchemaError(f"boundary schema descriptor {path} must be a JSON object")
        version = doc.get("schema_version")
        if version != BOUNDARY_DESCRIPTOR_VERSION:
            raise SchemaVersionMismatch(
                f"boundary descriptor schema_version '{version}' does not match '{BOUNDARY_DESCRIPTOR_VERSION}'",
                field="schema_version",
            )
        key = doc.get("key")
        if not isinstance(key, str) or not key:
            raise MissingField(f"boundary schema descriptor {path} is missing a key", field="key")
        pattern = doc.get("pattern_version")
        if pattern != BOUNDARY_SCHEMA_VERSION:
            raise SchemaVersionMismatch(
                f"boundary descriptor pattern_version '{pattern}' does not match '{BOUNDARY_SCHEMA_VERSION}'",
                field="pattern_version",
            )
        return cls(key=key, pattern_version=pattern)


@dataclass(frozen=True)
class ProbeIdentity:
    id: str
    version: str
    primary_capability_id: str
    secondary_capability_ids: Tuple[str, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "id": self.id,
            "version": self.version,
            "primary_capability_id": self.primary_capability_id,
            "secondary_capability_ids": list(self.secondary_capability_ids),
        }


@dataclass(frozen=True)
class RunContext:
    mode: str
    workspace_root: Optional[str]
    command: str

    def to_dict(self) -> Dict[str, Any]:
        return {"mode": self.mode, "workspace_root": self.workspace_root, "command": self.command}


@dataclass(frozen=True)
class Operation:
    category: str
    verb: str
    target: str
    args: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "category": self.category,
            "verb": self.verb,
            "target": self.target,
            "args": copy.deepcopy(dict(self.args)),
        }


@dataclass(frozen=True)
class Result:
    observed_result: str
    raw_exit_code: Optional[int] = None
    errno: Optional[str] = None
    message: Optional[str] = None
    error_detail: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "observed_result": self.observed_result,
            "raw_exit_code": self.raw_exit_code,
            "errno": self.errno,
            "message": self.message,
            "error_detail": self.error_detail,
        }


@dataclass(frozen=True)
class Payload:
    stdout_snippet: Optional[str]
    stderr_snippet: Optional[str]
    raw: Mapping[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "stdout_snippet": self.stdout_snippet,
            "stderr_snippet": self.stderr_snippet,
            "raw": copy.deepcopy(dict(self.raw)),
        }


@dataclass(frozen=True)
class CapabilityContext:
    primary: CapabilitySnapshot
    secondary: Tuple[CapabilitySnapshot, ...] = ()

    def to_dict(self) -> Dict[str, Any]:
        return {
            "primary": self.primary.to_dict(),
            "secondary": [snap.to_dict() for snap in self.secondary],
        }


@dataclass(frozen=True)
class BoundaryEvent:
    """One immutable probe report. Serialize with `to_document`."""

    schema: BoundarySchema
    capabilities_schema_version: str
    stack: Mapping[str, Any]
    probe: ProbeIdentity
    run: RunContext
    operation: Operation
    result: Result
    payload: Payload
    capability_context: CapabilityContext

    def to_document(self) -> Dict[str, Any]:
        return {
            "schema_version": self.schema.pattern_version,
            "schema_key": self.schema.key,
            "capabilities_schema_version": self.capabilities_schema_version,
            "stack": copy.deepcopy(dict(self.stack)),
            "probe": self.probe.to_dict(),
            "run": self.run.to_dict(),
            "operation": self.operation.to_dict(),
            "result": self.result.to_dict(),
            "payload": self.payload.to_dict(),
            "capability_context": self.capability_context.to_dict(),
        }

    def to_json(self) -> str:
        return json.dumps(self.to_document(), ensure_ascii=False, separators=(",", ":"))


def clean_snippet(text: Optional[str]) -> Optional[str]:
    """Drop NUL bytes and cap the snippet at SNIPPET_MAX_CHARS plus an ellipsis."""
    if text is None:
        return None
    text = text.replace("\0", "")
    if len(text) > SNIPPET_MAX_CHARS:
        return text[:SNIPPET_MAX_CHARS] + SNIPPET_ELLIPSIS
    return text


def payload_size(payload: Mapping[str, Any]) -> int:
    return len(json.dumps(payload, ensure_ascii=False, separators=(",", ":")).encode("utf-8"))


def _expect_keys(block: Any, expected: Tuple[str, ...], label: str) -> Mapping[str, Any]:
    if not isinstance(block, Mapping):
        raise MissingField(f"{label} must be an object", field=label)
    keys = tuple(block.keys())
    if keys != expected:
        raise InvalidValue(f"{label} keys {list(keys)} do not match {list(expected)}", field=label)
    return block


def _expect_text(value: Any, label: str) -> str:
    if not isinstance(value, str) or not value:
        raise MissingField(f"{label} must be a non-empty string", field=label)
    return value


def _expect_optional_text(value: Any, label: str) -> None:
    if value is not None and not isinstance(value, str):
        raise InvalidValue(f"{label} must be a string or null", field=label)


def _check_snapshot(snapshot: Any, idx: CapabilityIndex, label: str) -> str:
    snap = _expect_keys(snapshot, SNAPSHOT_KEYS, label)
    cap_id = _expect_text(snap["id"], f"{label}.id")
    descriptor = idx.get(cap_id)
    if descriptor is None:
        raise UnknownCapability(cap_id, field=f"{label}.id", catalog_key=idx.key)
    if snap["category"] != descriptor.category or snap["layer"] != descriptor.layer:
        raise InvalidValue(f"{label} does not match catalog entry for {cap_id}", field=label)
    return cap_id


def validate_event_document(
    doc: Any,
    idx: CapabilityIndex,
    schema: Optional[BoundarySchema] = None,
) -> None:
    """
    Re-check an already-built document.

    Enforces the fixed key order, the same value rules the builder applies,
    and that the capability context agrees with the probe block and with
    `idx`. Raises on the first problem.
    """

    schema = schema or BoundarySchema.default()
    top = _expect_keys(doc, TOP_LEVEL_KEYS, "document")
    if top["schema_version"] != schema.pattern_version:
        raise SchemaVersionMismatch(
            f"schema_version '{top['schema_version']}' does not match '{schema.pattern_version}'",
            field="schema_version",
        )
    if top["schema_key"] != schema.key:
        raise SchemaVersionMismatch(f"schema_key '{top['schema_key']}' does not match '{schema.key}'", field="schema_key")
    if top["capabilities_schema_version"] != idx.key:
        raise SchemaVersionMismatch(
            f"capabilities_schema_version '{top['capabilities_schema_version']}' does not match catalog '{idx.key}'",
            field="capabilities_schema_version",
        )
    if not isinstance(top["stack"], Mapping):
        raise MissingField("stack must be an object", field="stack")

    blocks = {name: _expect_keys(top[name], keys, name) for name, keys in BLOCK_KEYS.items()}

    probe = blocks["probe"]
    _expect_text(probe["id"], "probe.id")
    _expect_text(probe["version"], "probe.version")
    primary_id = _expect_text(probe["primary_capability_id"], "probe.primary_capability_id")
    secondary_ids = probe["secondary_capability_ids"]
    if (
        not isinstance(secondary_ids, list)
        or not all(isinstance(item, str) for item in secondary_ids)
        or secondary_ids != sorted(set(secondary_ids))
    ):
        raise InvalidValue("probe.secondary_capability_ids must be a sorted list of unique ids", field="probe.secondary_capability_ids")

    run = blocks["run"]
    _expect_text(run["mode"], "run.mode")
    _expect_optional_text(run["workspace_root"], "run.workspace_root")
    _expect_text(run["command"], "run.command")

    operation = blocks["operation"]
    for key in ("category", "verb", "target"):
        _expect_text(operation[key], f"operation.{key}")
    if not isinstance(operation["args"], Mapping):
        raise InvalidValue("operation.args must be an object", field="operation.args")

    result = blocks["result"]
    if result["observed_result"] not in RESULT_STATUSES:
        raise InvalidEnum(
            f"result.observed_result '{result['observed_result']}' not in {list(RESULT_STATUSES)}",
            field="result.observed_result",
        )
    exit_code = result["raw_exit_code"]
    if exit_code is not None and (not isinstance(exit_code, int) or isinstance(exit_code, bool)):
        raise InvalidValue("result.raw_exit_code must be an integer or null", field="result.raw_exit_code")
    for key in ("errno", "message", "error_detail"):
        _expect_optional_text(result[key], f"result.{key}")

    payload = blocks["payload"]
    _expect_optional_text(payload["stdout_snippet"], "payload.stdout_snippet")
    _expect_optional_text(payload["stderr_snippet"], "payload.stderr_snippet")
    if not isinstance(payload["raw"], Mapping):
        raise InvalidValue("payload.raw must be an object", field="payload.raw")
    if payload_size(payload) > PAYLOAD_MAX_BYTES:
        raise PayloadTooLarge(f"payload exceeds {PAYLOAD_MAX_BYTES} bytes", field="payload")

    context = blocks["capability_context"]
    if _check_snapshot(context["primary"], idx, "capability_context.primary") != primary_id:
        raise InvalidValue("capability_context.primary.id does not match probe.primary_capability_id", field="capability_context.primary")
    secondary = context["secondary"]
    if not isinstance(secondary, list):
        raise InvalidValue("capability_context.secondary must be an array", field="capability_context.secondary")
    observed = [_check_snapshot(snap, idx, f"capability_context.secondary[{pos}]") for pos, snap in enumerate(secondary)]
    if observed != secondary_ids:
        raise InvalidValue("capability_context.secondary does not match probe.secondary_capability_ids", field="capability_context.secondary")


def read_boundary_events(lines: Iterable[str]) -> List[Dict[str, Any]]:
    """Parse newline-delimited boundary events, skipping blank lines."""
    events: List[Dict[str, Any]] = []
    for lineno, line in enumerate(lines, start=1):
        text = line.strip()
        if not text:
            continue
        try:
            value = json.loads(text)
        except json.JSONDecodeError as exc:
            raise SchemaError(f"line {lineno}: invalid boundary event JSON: {exc}") from exc
        if not isinstance(value, dict):
            raise SchemaError(f"line {lineno}: boundary event must be a JSON object")
        events.append(value)
    logger.debug("read %d boundary events", len(events))
    return events
