"""
Probe authoring contract: static linter (`lint`), dynamic gate (`gate`), and
catalog coverage checks (`coverage`).

Submodules are imported directly; `standin` and `cli` run as `python -m`
entry points.
"""
