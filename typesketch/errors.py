"""
typesketch/errors.py
════════════════════

Error and diagnostic model for the type sketch solver.

Error Hierarchy
───────────────
::

    TypeSketchError (base)
    ├── MalformedLabel            - invalid Field geometry, rejected at ingestion
    ├── PathTooLong               - DTV path exceeds the configured maximum
    ├── SaturationBudgetExceeded  - work-list ran out of steps or time
    └── WireFormatError           - constraint document does not decode

Ingestion errors (``MalformedLabel``, ``PathTooLong``) abort only the
constraint that carries them; the graph builder turns them into
:class:`Diagnostic` records and moves on.  ``SaturationBudgetExceeded``
aborts the whole solve.  Conflicts found while laying out sketches are never
raised; they are attached to the affected sketch as diagnostics.

Every diagnostic is keyed by the offending DTV or target variable
(``Diagnostic.subject``) so a caller can attribute it.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — DIAGNOSTICS
# ═════════════════════════════════════════════════════════════════════════

class Severity(Enum):
    """How bad a diagnostic is."""
    ERROR = "error"
    WARNING = "warning"
    INFORMATION = "information"


class DiagnosticKind(Enum):
    """Stable identifiers for every condition the solver reports."""
    MALFORMED_LABEL = "malformedLabel"
    PATH_TOO_LONG = "pathTooLong"
    PATH_TRUNCATED = "pathTruncated"
    SATURATION_BUDGET_EXCEEDED = "saturationBudgetExceeded"
    CONFLICTING_FIELD_WIDTH = "conflictingFieldWidth"
    OVERLAPPING_FIELD = "overlappingField"
    MIXED_SHAPE = "mixedShape"
    CONFLICTING_BINDING = "conflictingBinding"
    WIRE_FORMAT = "wireFormat"


@dataclass(frozen=True)
class Diagnostic:
    """
    A single report produced while ingesting constraints or building sketches.

    Attributes
    ----------
    kind     : DiagnosticKind
    message  : Human-readable description
    severity : Severity
    subject  : The offending DTV or Tid (``None`` for whole-set conditions)
    evidence : Machine-readable details for downstream tooling
    """
    kind: DiagnosticKind
    message: str
    severity: Severity = Severity.ERROR
    subject: Any = None
    evidence: Dict[str, Any] = field(default_factory=dict, compare=False)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "severity": self.severity.value,
            "subject": str(self.subject) if self.subject is not None else None,
            "message": self.message,
            "evidence": {k: _jsonable(v) for k, v in self.evidence.items()},
        }

    def to_json_str(self) -> str:
        return json.dumps(self.to_dict())

    def __str__(self) -> str:
        where = f"{self.subject}: " if self.subject is not None else ""
        return f"{where}{self.severity.value}: {self.message} [{self.kind.value}]"


def _jsonable(value: Any) -> Any:
    if isinstance(value, (str, int, float, bool)) or value is None:
        return value
    if isinstance(value, (list, tuple)):
        return [_jsonable(v) for v in value]
    return str(value)


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — EXCEPTIONS
# ═════════════════════════════════════════════════════════════════════════

class TypeSketchError(Exception):
    """
    Base exception for all solver errors.

    Carries the diagnostic kind and the offending subject so that it can be
    turned into a :class:`Diagnostic` when the caller wants to keep going.
    """

    kind: DiagnosticKind = DiagnosticKind.MALFORMED_LABEL
    severity: Severity = Severity.ERROR

    def __init__(
        self,
        message: str,
        subject: Any = None,
        evidence: Optional[Dict[str, Any]] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.subject = subject
        self.evidence = dict(evidence or {})

    @property
    def code(self) -> str:
        return self.kind.value

    def to_diagnostic(self, **extra: Any) -> Diagnostic:
        """Convert to a :class:`Diagnostic` record.

        *extra* is merged into a copy of the evidence; the exception itself
        is left untouched.
        """
        evidence = dict(self.evidence)
        evidence.update(extra)
        return Diagnostic(
            kind=self.kind,
            message=self.message,
            severity=self.severity,
            subject=self.subject,
            evidence=evidence,
        )

    def __str__(self) -> str:
        if self.subject is None:
            return f"{self.message} [{self.code}]"
        return f"{self.subject}: {self.message} [{self.code}]"


class MalformedLabel(TypeSketchError):
    """A Field label with impossible geometry."""

    kind = DiagnosticKind.MALFORMED_LABEL

    def __init__(self, label: Any, reason: str, subject: Any = None) -> None:
        super().__init__(
            f"malformed label {label}: {reason}",
            subject=subject if subject is not None else label,
            evidence={"label": str(label), "reason": reason},
        )
        self.label = label
        self.reason = reason


class PathTooLong(TypeSketchError):
    """A DTV whose path is longer than ``SolverConfig.max_path_length``."""

    kind = DiagnosticKind.PATH_TOO_LONG

    def __init__(self, dtv: Any, length: int, limit: int) -> None:
        super().__init__(
            f"path of length {length} exceeds the limit of {limit}",
            subject=dtv,
            evidence={"length": length, "limit": limit},
        )
        self.length = length
        self.limit = limit


class SaturationBudgetExceeded(TypeSketchError):
    """The saturation work-list did not reach a fixed point within budget."""

    kind = DiagnosticKind.SATURATION_BUDGET_EXCEEDED

    def __init__(self, reason: str, steps: int, pending: int) -> None:
        super().__init__(
            f"saturation aborted after {steps} steps ({pending} edges pending): {reason}",
            evidence={"steps": steps, "pending": pending, "reason": reason},
        )
        self.steps = steps
        self.pending = pending
        self.reason = reason


class WireFormatError(TypeSketchError):
    """A constraint document that does not match the wire schema."""

    kind = DiagnosticKind.WIRE_FORMAT

    def __init__(self, message: str, path: str = "$") -> None:
        super().__init__(message, subject=path, evidence={"path": path})
        self.path = path
