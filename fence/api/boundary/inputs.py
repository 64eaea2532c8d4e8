"""
Flag parsing for the boundary emitter.

Every flag takes its value(s) verbatim from the next argv slot(s), so snippet
text such as `-rw-r--r--` or `--- FAIL` is never mistaken for another flag.
Parsing only records what was supplied; all value rules live in
`fence.api.boundary.builder` so the gate's stand-in applies the same checks.
"""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence, Tuple

from fence.api.errors import DuplicateFlag, InvalidValue, MissingField

# Single-valued flags: flag -> request attribute. Aliases share an attribute.
SINGLE_FLAGS: Dict[str, str] = {
    "--catalog": "catalog",
    "--boundary": "boundary",
    "--run-mode": "run_mode",
    "--probe-name": "probe_name",
    "--probe-id": "probe_name",
    "--probe-version": "probe_version",
    "--primary-capability-id": "primary_capability_id",
    "--command": "command",
    "--category": "category",
    "--verb": "verb",
    "--target": "target",
    "--status": "status",
    "--errno": "errno",
    "--message": "message",
    "--raw-exit-code": "raw_exit_code",
    "--error-detail": "error_detail",
    "--payload-file": "payload_file",
}

# Snippet flags: flag -> (attribute, source kind).
TEXT_FLAGS: Dict[str, Tuple[str, str]] = {
    "--payload-stdout": ("payload_stdout", "inline"),
    "--payload-stdout-file": ("payload_stdout", "file"),
    "--payload-stderr": ("payload_stderr", "inline"),
    "--payload-stderr-file": ("payload_stderr", "file"),
}

# Object-building flags: flag -> (attribute, fragment kind, value count).
FRAGMENT_FLAGS: Dict[str, Tuple[str, str, int]] = {
    "--payload-raw": ("payload_raw", "object", 1),
    "--payload-raw-file": ("payload_raw", "object_file", 1),
    "--payload-raw-field": ("payload_raw", "field", 2),
    "--payload-raw-field-json": ("payload_raw", "json", 2),
    "--payload-raw-null": ("payload_raw", "null", 1),
    "--payload-raw-list": ("payload_raw", "list", 2),
    "--operation-args": ("operation_args", "object", 1),
    "--operation-args-file": ("operation_args", "object_file", 1),
    "--operation-arg": ("operation_args", "field", 2),
    "--operation-arg-json": ("operation_args", "json", 2),
    "--operation-arg-null": ("operation_args", "null", 1),
    "--operation-arg-list": ("operation_args", "list", 2),
}

HELP_FLAGS = ("-h", "--help")

USAGE = """\
Usage: emit-record --run-mode MODE --probe-name NAME --probe-version VERSION \\
  --primary-capability-id CAP_ID --command COMMAND \\
  --category CATEGORY --verb VERB --target TARGET --status STATUS [options]

Options:
  --errno ERRNO
  --message MESSAGE
  --raw-exit-code CODE
  --error-detail TEXT
  --secondary-capability-id CAP_ID   (repeat for multiple entries)
  --payload-file PATH (JSON object)
  --payload-stdout TEXT | --payload-stdout-file PATH
  --payload-stderr TEXT | --payload-stderr-file PATH
  --payload-raw JSON_OBJECT | --payload-raw-file PATH
  --payload-raw-field KEY VALUE
  --payload-raw-field-json KEY JSON_VALUE
  --payload-raw-null KEY
  --payload-raw-list KEY "a,b,c"
  --operation-args JSON_OBJECT | --operation-args-file PATH
  --operation-arg KEY VALUE
  --operation-arg-json KEY JSON_VALUE
  --operation-arg-null KEY
  --operation-arg-list KEY "a,b,c"
  --catalog PATH
  --boundary PATH
"""


@dataclass(frozen=True)
class TextSource:
    kind: str  # "inline" or "file"
    value: str


@dataclass(frozen=True)
class Fragment:
    """One contribution to a JSON object built up from flags, applied in order."""

    kind: str
    flag: str
    key: Optional[str] = None
    value: Optional[str] = None


@dataclass
class EmitRequest:
    """Raw emitter inputs, exactly as supplied on the command line."""

    catalog: Optional[str] = None
    boundary: Optional[str] = None
    run_mode: Optional[str] = None
    probe_name: Optional[str] = None
    probe_version: Optional[str] = None
    primary_capability_id: Optional[str] = None
    secondary_capability_ids: List[str] = field(default_factory=list)
    command: Optional[str] = None
    category: Optional[str] = None
    verb: Optional[str] = None
    target: Optional[str] = None
    status: Optional[str] = None
    errno: Optional[str] = None
    message: Optional[str] = None
    raw_exit_code: Optional[str] = None
    error_detail: Optional[str] = None
    payload_file: Optional[str] = None
    payload_stdout: Optional[TextSource] = None
    payload_stderr: Optional[TextSource] = None
    payload_raw: List[Fragment] = field(default_factory=list)
    operation_args: List[Fragment] = field(default_factory=list)
    help: bool = False

    def has_inline_payload(self) -> bool:
        return self.payload_stdout is not None or self.payload_stderr is not None or bool(self.payload_raw)


def os_text(value: str) -> str:
    """
    Argument text as valid UTF-8.

    Python decodes undecodable argv bytes to lone surrogates; those bytes come
    back out as `\\xNN` escapes so snippets of binary output stay serializable.
    """

    return os.fsencode(value).decode("utf-8", "backslashreplace")


def _take(argv: Sequence[str], pos: int, count: int, flag: str) -> List[str]:
    values = list(argv[pos : pos + count])
    if len(values) < count:
        raise MissingField(f"missing value for {flag}", field=flag)
    return values


def _set_once(request: EmitRequest, attr: str, flag: str, value: object) -> None:
    if getattr(request, attr) is not None:
        raise DuplicateFlag(f"{flag} provided more than once", field=attr)
    setattr(request, attr, value)


def parse_emit_args(argv: Sequence[str]) -> EmitRequest:
    """
    Scan emitter flags into an EmitRequest.

    Raises DuplicateFlag when a single-valued input is supplied twice
    (including via an alias such as --probe-id / --probe-name), and
    InvalidValue for unknown flags. Missing required inputs are not checked
    here.
    """

    argv = [os_text(arg) for arg in argv]
    request = EmitRequest()
    pos = 0
    while pos < len(argv):
        flag = argv[pos]
        pos += 1
        if flag in HELP_FLAGS:
            request.help = True
        elif flag in SINGLE_FLAGS:
            (value,) = _take(argv, pos, 1, flag)
            pos += 1
            _set_once(request, SINGLE_FLAGS[flag], flag, value)
        elif flag in TEXT_FLAGS:
            attr, kind = TEXT_FLAGS[flag]
            (value,) = _take(argv, pos, 1, flag)
            pos += 1
            _set_once(request, attr, flag, TextSource(kind=kind, value=value))
        elif flag in FRAGMENT_FLAGS:
            attr, kind, count = FRAGMENT_FLAGS[flag]
            values = _take(argv, pos, count, flag)
            pos += count
            if kind in ("object", "object_file"):
                frag = Fragment(kind=kind, flag=flag, value=values[0])
            elif kind == "null":
                frag = Fragment(kind=kind, flag=flag, key=values[0])
            else:
                frag = Fragment(kind=kind, flag=flag, key=values[0], value=values[1])
            getattr(request, attr).append(frag)
        elif flag == "--secondary-capability-id":
            (value,) = _take(argv, pos, 1, flag)
            pos += 1
            request.secondary_capability_ids.append(value)
        else:
            raise InvalidValue(f"unknown flag: {flag}", field=flag)
    return request
