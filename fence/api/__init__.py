"""
Stable API surfaces for the probe contract harness.

Subpackages:
- `catalog`: capability catalog loading, lookup, and repository.
- `boundary`: boundary-event schema, builder, sinks, and the emitter CLI.
- `contract`: static linter, dynamic gate, and coverage helpers.
- `runner`: run-mode registry and the `fence-run` mode runner.
"""
