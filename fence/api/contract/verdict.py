"""Verdict types shared by the static linter and the dynamic gate."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Tuple

PASS = "PASS"
FAIL = "FAIL"


@dataclass(frozen=True)
class Violation:
    kind: str
    message: str

    def to_dict(self) -> Dict[str, str]:
        return {"kind": self.kind, "message": self.message}


@dataclass(frozen=True)
class GateVerdict:
    """
    PASS/FAIL for one probe (and, for dynamic runs, one mode).

    `violations` keeps discovery order. `event` holds the document the
    probe emitted when the dynamic gate observed exactly one valid call.
    """

    probe: str
    status: str
    violations: Tuple[Violation, ...] = ()
    mode: Optional[str] = None
    event: Optional[Dict[str, Any]] = field(default=None, compare=False)

    @classmethod
    def from_violations(
        cls,
        probe: str,
        violations: List[Violation],
        mode: Optional[str] = None,
        event: Optional[Dict[str, Any]] = None,
    ) -> "GateVerdict":
        return cls(
            probe=probe,
            status=FAIL if violations else PASS,
            violations=tuple(violations),
            mode=mode,
            event=event,
        )

    @property
    def passed(self) -> bool:
        return self.status == PASS

    @property
    def messages(self) -> List[str]:
        return [v.message for v in self.violations]

    def kinds(self) -> List[str]:
        return [v.kind for v in self.violations]

    def summary_line(self) -> str:
        label = f"{self.probe} ({self.mode})" if self.mode else self.probe
        return f"[{self.status}] {label}"

    def to_dict(self) -> Dict[str, Any]:
        out: Dict[str, Any] = {
            "probe": self.probe,
            "mode": self.mode,
            "status": self.status,
            "violations": [v.to_dict() for v in self.violations],
        }
        if self.event is not None:
            out["event"] = self.event
        return out
