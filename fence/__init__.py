"""
Probe contract harness.

Probes are small bash scripts that attempt one sandbox-observable operation and
report it through `bin/emit-record`. This package owns the capability catalog,
the boundary-event builder, and the static/dynamic gates that keep probes
honest. See `fence.api` for the stable surfaces.
"""
