"""
Static probe contract linter.

Reads a probe's source without executing it and reports every structural
defect in one pass:

- first line is exactly `#!/usr/bin/env bash`
- an unindented `set` enables errexit, nounset and pipefail
- `bash -n` accepts the script
- the script references bin/emit-record
- `probe_name` is declared and equals the file stem
- `primary_capability_id` is declared and non-empty
"""

from __future__ import annotations

import shlex
import shutil
import subprocess
from pathlib import Path
from typing import List, Optional, Set

from fence.api.contract.declaration import ProbeDeclaration, declaration_from_text
from fence.api.contract.verdict import GateVerdict, Violation

SHEBANG = "#!/usr/bin/env bash"
EMITTER_REFERENCE = "bin/emit-record"
REQUIRED_SHELL_OPTIONS = {"e", "u", "pipefail"}
SYNTAX_CHECK_TIMEOUT_S = 10

_OPTION_NAMES = {"errexit": "e", "nounset": "u", "pipefail": "pipefail"}

CONTRACT = "ContractViolation"


def _first_command(line: str) -> List[str]:
    """Words of the first simple command on `line`, up to `;`, `&&`, `||`, `|` or `&`."""
    lexer = shlex.shlex(line, posix=True, punctuation_chars=True)
    lexer.whitespace_split = True
    words: List[str] = []
    for token in lexer:
        if token and all(ch in lexer.punctuation_chars for ch in token):
            break
        words.append(token)
    return words


def _set_options(line: str) -> Set[str]:
    try:
        tokens = _first_command(line)
    except ValueError:
        return set()
    if not tokens or tokens[0] != "set":
        return set()
    enabled: Set[str] = set()
    expect_name = False
    for token in tokens[1:]:
        if expect_name:
            enabled.add(_OPTION_NAMES.get(token, token))
            expect_name = False
        elif token.startswith("-") and not token.startswith("--"):
            letters = token[1:]
            enabled.update(letter for letter in letters if letter != "o")
            expect_name = "o" in letters
    return enabled


def has_strict_mode(text: str) -> bool:
    enabled: Set[str] = set()
    for line in text.splitlines():
        if line[:1].isspace():
            continue
        enabled |= _set_options(line)
    return REQUIRED_SHELL_OPTIONS <= enabled


def syntax_check(text: str, bash: Optional[str] = None) -> Optional[Violation]:
    bash = bash or shutil.which("bash")
    if bash is None:
        return Violation("ResourceError", "bash not found; cannot run syntax check")
    try:
        proc = subprocess.run(
            [bash, "-n"],
            input=text,
            stdout=subprocess.DEVNULL,
            stderr=subprocess.PIPE,
            text=True,
            timeout=SYNTAX_CHECK_TIMEOUT_S,
        )
    except subprocess.TimeoutExpired:
        return Violation("TimeoutError", "bash -n syntax check timed out")
    except OSError as exc:
        return Violation("ResourceError", f"cannot run bash -n: {exc}")
    if proc.returncode != 0:
        detail = proc.stderr.strip().splitlines()
        suffix = f": {detail[0]}" if detail else ""
        return Violation(CONTRACT, f"bash -n syntax check failed{suffix}")
    return None


def check_declaration(decl: ProbeDeclaration) -> List[Violation]:
    out: List[Violation] = []
    if not decl.declared_name:
        out.append(Violation(CONTRACT, "probe_name is not defined"))
    elif decl.declared_name != decl.probe_id:
        out.append(
            Violation(CONTRACT, f"probe_name '{decl.declared_name}' does not match filename '{decl.probe_id}'")
        )
    if not decl.primary_capability_id:
        out.append(Violation(CONTRACT, "primary_capability_id is not defined"))
    return out


def lint_source(text: str, filename: Path | str, bash: Optional[str] = None) -> GateVerdict:
    path = Path(filename)
    violations: List[Violation] = []

    first_line = text.splitlines()[0] if text else ""
    if first_line.rstrip("\r") != SHEBANG:
        violations.append(Violation(CONTRACT, f"missing {SHEBANG} shebang"))
    if not has_strict_mode(text):
        violations.append(Violation(CONTRACT, "missing top-level 'set -euo pipefail'"))
    syntax = syntax_check(text, bash=bash)
    if syntax is not None:
        violations.append(syntax)
    if EMITTER_REFERENCE not in text:
        violations.append(Violation(CONTRACT, f"no reference to {EMITTER_REFERENCE}"))
    violations.extend(check_declaration(declaration_from_text(text, path)))

    return GateVerdict.from_violations(path.stem, violations)


def lint_path(path: Path, bash: Optional[str] = None) -> GateVerdict:
    try:
        text = Path(path).read_text(encoding="utf-8", errors="replace")
    except OSError as exc:
        return GateVerdict.from_violations(Path(path).stem, [Violation("ResourceError", f"cannot read probe: {exc}")])
    return lint_source(text, path, bash=bash)
