"""
Boundary event schema, builder, and emitter.

`build_boundary_event` turns an `EmitRequest` into an immutable
`BoundaryEvent`; `emit_record.main` is the CLI probes call.
"""

from .builder import build_boundary_event, validate_request
from .inputs import EmitRequest, parse_emit_args
from .schema import (
    BOUNDARY_SCHEMA_KEY,
    BOUNDARY_SCHEMA_VERSION,
    RESULT_STATUSES,
    BoundaryEvent,
    BoundarySchema,
    read_boundary_events,
    validate_event_document,
)
from .sink import EventSink, RecordingSink, StreamSink

__all__ = [
    "BOUNDARY_SCHEMA_KEY",
    "BOUNDARY_SCHEMA_VERSION",
    "RESULT_STATUSES",
    "BoundaryEvent",
    "BoundarySchema",
    "EmitRequest",
    "EventSink",
    "RecordingSink",
    "StreamSink",
    "build_boundary_event",
    "parse_emit_args",
    "read_boundary_events",
    "validate_event_document",
    "validate_request",
]
