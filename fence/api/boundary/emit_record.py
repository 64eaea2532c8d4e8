"""
Boundary emitter CLI (bin/emit-record).

Probes call this exactly once to report what they attempted and what they
observed. Inputs are validated by `fence.api.boundary.builder`; on success one
JSON line is written to stdout, on failure the error goes to stderr and the
exit status is 1.
"""

from __future__ import annotations

import logging
import sys
from pathlib import Path
from typing import Optional, Sequence

from fence.api import env, path_utils
from fence.api.boundary.builder import assemble_boundary_event, validate_request
from fence.api.boundary.inputs import USAGE, EmitRequest, parse_emit_args
from fence.api.boundary.schema import BoundaryEvent, BoundarySchema
from fence.api.boundary.sink import EventSink, StreamSink
from fence.api.boundary.stack import detect_stack, resolve_workspace_root
from fence.api.catalog import defaults
from fence.api.catalog.repository import CatalogRepository
from fence.api.errors import FenceError

logger = logging.getLogger(__name__)


def load_boundary_schema(explicit: Optional[str], repo_root: Path) -> BoundarySchema:
    path = defaults.resolve_boundary_schema_path(explicit, repo_root=repo_root)
    return BoundarySchema.load(path)


def emit_request(
    request: EmitRequest,
    sink: EventSink,
    repo_root: Optional[Path] = None,
    catalog_path: Optional[str] = None,
    catalogs: Optional[CatalogRepository] = None,
) -> BoundaryEvent:
    """
    Build the event described by `request` and hand it to `sink`.

    The event is built against `catalogs.active` when a repository is given.
    Otherwise one is loaded from `catalog_path`, the request's --catalog, or
    the defaults manifest, in that order.
    """

    root = repo_root or path_utils.find_repo_root(Path(__file__))
    if catalogs is None:
        catalogs = CatalogRepository.from_path(catalog_path or request.catalog, repo_root=root)
    schema = load_boundary_schema(request.boundary, root)
    # Input errors take precedence over stack detection errors.
    checked = validate_request(request, catalogs)
    event = assemble_boundary_event(
        checked,
        catalogs,
        stack=detect_stack(request.run_mode),
        workspace_root=resolve_workspace_root(),
        schema=schema,
    )
    sink.emit(event)
    logger.debug("emitted %s for capability %s", event.probe.id, event.probe.primary_capability_id)
    return event


def main(argv: Sequence[str] | None = None) -> int:
    env.configure_logging()
    args = list(sys.argv[1:] if argv is None else argv)
    try:
        request = parse_emit_args(args)
        if request.help:
            print(USAGE, file=sys.stderr)
            return 0
        emit_request(request, StreamSink(sys.stdout))
    except FenceError as exc:
        print(f"error: {exc}", file=sys.stderr)
        return 1
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
