"""Run-mode registry and the mode-runner CLI."""
