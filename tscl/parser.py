"""
tscl/parser.py
==============

Turns TSCL text into a :class:`~typesketch.constraint_set.ConstraintSet`,
and renders constraints back to TSCL.

Usage::

    from tscl.parser import parse, parse_dtv, format_constraint

    cs = parse('''
        p.load <= x
        target 7: f.out_0 <= s.σ32@0
    ''')
    dtv = parse_dtv("x.load.f32@4")

``format_dtv`` / ``format_tid`` / ``format_constraint`` /
``format_constraint_set`` are the inverse of parsing: their output parses
back to equal values.  A name that is not an identifier is quoted; one
holding a double quote or a line break has no TSCL form and raises
``ValueError``.
"""

from __future__ import annotations

import logging
import re
from pathlib import Path
from typing import List, Optional, Union

from parsimonious.exceptions import IncompleteParseError, ParseError
from parsimonious.grammar import Grammar
from parsimonious.nodes import Node, NodeVisitor

from typesketch.constraint_set import ConstraintSet
from typesketch.schema import (
    LOAD,
    STORE,
    AdditionalConstraint,
    DerivedTypeVariable,
    FieldLabel,
    InParam,
    Label,
    OutParam,
    SubtypingConstraint,
    Tid,
)

from .grammar import TSCL_GRAMMAR

logger = logging.getLogger(__name__)

GRAMMAR = Grammar(TSCL_GRAMMAR)

_IDENTIFIER_RE = re.compile(r"[A-Za-z_$][A-Za-z0-9_$@]*\Z")


# ═══════════════════════════════════════════════════════════════════
#  ERRORS
# ═══════════════════════════════════════════════════════════════════

class TsclSyntaxError(Exception):
    """A TSCL document that does not match the grammar.

    Attributes
    ----------
    line, column : 1-based position of the furthest point the parser reached
    source_line  : the offending line, without its newline
    filename     : where the text came from, if known
    """

    def __init__(self, message: str, line: int, column: int,
                 source_line: str = "", filename: Optional[str] = None) -> None:
        super().__init__(message)
        self.message = message
        self.line = line
        self.column = column
        self.source_line = source_line
        self.filename = filename

    @classmethod
    def from_parse_error(cls, exc: ParseError, filename: Optional[str] = None) -> "TsclSyntaxError":
        lines = exc.text.splitlines()
        line, column = exc.line(), exc.column()
        source_line = lines[line - 1] if 0 < line <= len(lines) else ""
        found = exc.text[exc.pos:exc.pos + 12].split("\n", 1)[0]
        if found:
            message = f"unexpected {found!r}"
        else:
            message = "unexpected end of line"
        return cls(message, line, column, source_line, filename)

    def __str__(self) -> str:
        where = f"{self.filename}:" if self.filename else ""
        head = f"{where}{self.line}:{self.column}: {self.message}"
        if not self.source_line:
            return head
        caret = " " * (self.column - 1) + "^"
        return f"{head}\n    {self.source_line}\n    {caret}"


# ═══════════════════════════════════════════════════════════════════
#  VISITOR
# ═══════════════════════════════════════════════════════════════════

class ConstraintBuilder(NodeVisitor):
    """Builds constraints from the parse tree, in document order."""

    def __init__(self) -> None:
        self.constraints = ConstraintSet()

    def generic_visit(self, node: Node, visited_children: list):
        return visited_children or node

    # ── document ─────────────────────────────────────────────────

    def visit_document(self, node, visited_children):
        return self.constraints

    def visit_statement_line(self, node, visited_children):
        _, statement, _, _, _ = visited_children
        if isinstance(statement, AdditionalConstraint):
            self.constraints.add_additional(statement)
        else:
            self.constraints.add_constraint(statement)
        return statement

    # ── statements ───────────────────────────────────────────────

    def visit_statement(self, node, visited_children):
        return visited_children[0]

    def visit_additional(self, node, visited_children):
        _, _, tid, _, _, _, constraint = visited_children
        return AdditionalConstraint(constraint, tid)

    def visit_subtyping(self, node, visited_children):
        lhs, _, _, _, rhs = visited_children
        return SubtypingConstraint(lhs, rhs)

    def visit_tid(self, node, visited_children):
        return Tid(visited_children[0])

    def visit_integer(self, node, visited_children):
        return int(node.text)

    def visit_quoted(self, node, visited_children):
        return node.text[1:-1]

    # ── DTVs ─────────────────────────────────────────────────────

    def visit_dtv(self, node, visited_children):
        base, suffixes = visited_children
        labels = suffixes if isinstance(suffixes, list) else []
        return DerivedTypeVariable.of(base, *labels)

    def visit_base(self, node, visited_children):
        return visited_children[0]

    def visit_identifier(self, node, visited_children):
        return node.text

    def visit_quoted_name(self, node, visited_children):
        return node.text[1:-1]

    def visit_label_suffix(self, node, visited_children):
        _, label = visited_children
        return label

    def visit_label(self, node, visited_children):
        return visited_children[0]

    def visit_pointer_label(self, node, visited_children):
        return LOAD if node.match.group(1) == "load" else STORE

    def visit_in_label(self, node, visited_children):
        return InParam(int(node.match.group(1)))

    def visit_out_label(self, node, visited_children):
        return OutParam(int(node.match.group(1)))

    def visit_field_label(self, node, visited_children):
        return FieldLabel(
            bit_size=int(node.match.group(1)),
            byte_offset=int(node.match.group(2)),
        )


# ═══════════════════════════════════════════════════════════════════
#  PUBLIC API
# ═══════════════════════════════════════════════════════════════════

def parse(text: str, filename: Optional[str] = None) -> ConstraintSet:
    """Parse a TSCL document.

    Raises
    ------
    TsclSyntaxError
        The text does not match the grammar.
    """
    try:
        tree = GRAMMAR.parse(text)
    except (ParseError, IncompleteParseError) as exc:
        raise TsclSyntaxError.from_parse_error(exc, filename) from exc
    constraints = ConstraintBuilder().visit(tree)
    logger.debug(
        "Parsed %d subtyping and %d additional constraints from %s",
        len(constraints.subtyping), len(constraints.additional), filename or "<string>",
    )
    return constraints


def parse_file(path: Union[str, Path]) -> ConstraintSet:
    path = Path(path)
    return parse(path.read_text(encoding="utf-8"), filename=str(path))


def parse_dtv(text: str) -> DerivedTypeVariable:
    """Parse a single DTV such as ``x.load.σ32@4``."""
    text = text.strip()
    try:
        tree = GRAMMAR["dtv"].parse(text)
    except (ParseError, IncompleteParseError) as exc:
        raise TsclSyntaxError.from_parse_error(exc) from exc
    return ConstraintBuilder().visit(tree)


def format_label(label: Label, ascii_only: bool = False) -> str:
    if ascii_only and isinstance(label, FieldLabel):
        return f"f{label.bit_size}@{label.byte_offset}"
    return str(label)


def _quote(name: str, what: str) -> str:
    if _IDENTIFIER_RE.match(name):
        return name
    if '"' in name or "\n" in name or "\r" in name:
        raise ValueError(f"{what} {name!r} cannot be written in TSCL")
    return f'"{name}"'


def format_dtv(dtv: DerivedTypeVariable, ascii_only: bool = False) -> str:
    """Render *dtv*, quoting a base that is not an identifier.

    Raises ``ValueError`` for a base holding a double quote or a line break.
    """
    if not dtv.base.name:
        raise ValueError("empty base variable cannot be written in TSCL")
    base = _quote(dtv.base.name, "base variable")
    return ".".join([base] + [format_label(lbl, ascii_only) for lbl in dtv.path])


def format_tid(tid: Tid) -> str:
    """Integers bare, strings as identifiers or quoted, so ``7`` and ``"7"`` differ."""
    if isinstance(tid.value, int):
        return str(tid.value)
    return _quote(tid.value, "target")


def format_constraint(
    constraint: Union[SubtypingConstraint, AdditionalConstraint],
    ascii_only: bool = False,
) -> str:
    """Render one statement; ``ascii_only`` uses ``<=`` and ``fN@k``."""
    op = "<=" if ascii_only else "⊑"
    if isinstance(constraint, AdditionalConstraint):
        inner = format_constraint(constraint.constraint, ascii_only)
        return f"target {format_tid(constraint.target_variable)}: {inner}"
    return f"{format_dtv(constraint.lhs, ascii_only)} {op} {format_dtv(constraint.rhs, ascii_only)}"


def format_constraint_set(constraints: ConstraintSet, ascii_only: bool = False) -> str:
    lines: List[str] = [format_constraint(c, ascii_only) for c in constraints.subtyping]
    lines.extend(format_constraint(a, ascii_only) for a in constraints.additional)
    return "\n".join(lines) + ("\n" if lines else "")
