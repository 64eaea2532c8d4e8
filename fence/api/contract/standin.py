"""
Instrumented stand-in for bin/emit-record inside a gate shadow root.

Each invocation runs the real emitter validation against the real catalog,
prints nothing on stdout, and appends one JSON line to
`$FENCE_GATE_STATE_DIR/invocations.jsonl`:

    {"argv": [...], "probe_name": ..., "primary_capability_id": ..., "run_mode": ...,
     "status": "PASS"|"FAIL", "violation": ..., "violation_kind": ..., "event": {...}|null}

Exit status mirrors the real emitter: 0 on PASS, 1 on FAIL.
"""

from __future__ import annotations

import json
import logging
import os
import sys
from dataclasses import asdict, dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Optional, Sequence

from fence.api.boundary.emit_record import emit_request
from fence.api.boundary.inputs import os_text, parse_emit_args
from fence.api.boundary.sink import RecordingSink
from fence.api.errors import FenceError

logger = logging.getLogger(__name__)

STATE_DIR_ENV = "FENCE_GATE_STATE_DIR"
CATALOG_ENV = "FENCE_GATE_CATALOG"
INVOCATIONS_FILE = "invocations.jsonl"


@dataclass
class InvocationRecord:
    argv: List[str]
    status: str
    probe_name: Optional[str] = None
    primary_capability_id: Optional[str] = None
    run_mode: Optional[str] = None
    violation: Optional[str] = None
    violation_kind: Optional[str] = None
    event: Optional[Dict[str, Any]] = field(default=None)

    @property
    def passed(self) -> bool:
        return self.status == "PASS"

    @classmethod
    def from_dict(cls, raw: Dict[str, Any]) -> "InvocationRecord":
        return cls(
            argv=list(raw.get("argv") or []),
            status=str(raw.get("status") or "FAIL"),
            probe_name=raw.get("probe_name"),
            primary_capability_id=raw.get("primary_capability_id"),
            run_mode=raw.get("run_mode"),
            violation=raw.get("violation"),
            violation_kind=raw.get("violation_kind"),
            event=raw.get("event"),
        )


def append_invocation(state_dir: Path, record: InvocationRecord) -> None:
    # One write per line keeps concurrent appends from interleaving.
    line = json.dumps(asdict(record), ensure_ascii=False) + "\n"
    with (state_dir / INVOCATIONS_FILE).open("a", encoding="utf-8") as fh:
        fh.write(line)


def read_invocations(state_dir: Path) -> List[InvocationRecord]:
    path = state_dir / INVOCATIONS_FILE
    if not path.exists():
        return []
    records = []
    for line in path.read_text(encoding="utf-8").splitlines():
        if line.strip():
            records.append(InvocationRecord.from_dict(json.loads(line)))
    return records


def record_invocation(argv: Sequence[str], catalog_path: Optional[str] = None) -> InvocationRecord:
    """
    Validate one emitter call the way production would, without printing.

    Every call yields a record. An unexpected error inside validation is
    recorded as a FAIL under its exception type name so it still counts as a
    call.
    """

    record = InvocationRecord(argv=[os_text(arg) for arg in argv], status="FAIL")
    try:
        request = parse_emit_args(argv)
        record.probe_name = request.probe_name
        record.primary_capability_id = request.primary_capability_id
        record.run_mode = request.run_mode
        sink = RecordingSink()
        event = emit_request(request, sink, catalog_path=catalog_path)
        record.event = event.to_document()
        record.status = "PASS"
    except FenceError as exc:
        record.violation = str(exc)
        record.violation_kind = exc.kind
    except Exception as exc:
        logger.exception("emitter validation crashed")
        record.violation = f"{type(exc).__name__}: {exc}"
        record.violation_kind = type(exc).__name__
    return record


def main(argv: Sequence[str] | None = None) -> int:
    args = list(sys.argv[1:] if argv is None else argv)
    state_raw = os.environ.get(STATE_DIR_ENV)
    if not state_raw:
        print(f"error: {STATE_DIR_ENV} is not set", file=sys.stderr)
        return 2
    state_dir = Path(state_raw)
    record = record_invocation(args, catalog_path=os.environ.get(CATALOG_ENV) or None)
    append_invocation(state_dir, record)
    logger.debug("recorded %s invocation for %s", record.status, record.probe_name)
    if not record.passed:
        print(f"error: {record.violation}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
