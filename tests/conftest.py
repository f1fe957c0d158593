# tests/conftest.py
"""
Shared fixtures and helpers for the typesketch test-suite.

Provides:
  - Short constructors for DTVs and labels (``v``, ``fld``)
  - Ready-made constraint sets for the recurring scenarios
  - Sample TSCL documents and a matching JSON constraint document
"""

import json

import pytest

from typesketch.config import PathPolicy, SolverConfig
from typesketch.constraint_set import ConstraintSet
from typesketch.schema import (
    LOAD,
    STORE,
    DerivedTypeVariable,
    FieldLabel,
    InParam,
    OutParam,
)


# ═══════════════════════════════════════════════════════════════════
#  CONSTRUCTORS
# ═══════════════════════════════════════════════════════════════════

def v(base, *labels):
    """``v("x", LOAD, fld(32, 4))`` is ``x.load.σ32@4``."""
    return DerivedTypeVariable.of(base, *labels)


def fld(bit_size, byte_offset):
    return FieldLabel(bit_size=bit_size, byte_offset=byte_offset)


def make_set(*pairs, bindings=()):
    """Build a ConstraintSet from ``(lhs, rhs)`` pairs and ``(tid, lhs, rhs)`` bindings."""
    cs = ConstraintSet()
    for lhs, rhs in pairs:
        cs.add(lhs, rhs)
    for tid, lhs, rhs in bindings:
        cs.bind(tid, lhs, rhs)
    return cs


# ═══════════════════════════════════════════════════════════════════
#  SCENARIOS
# ═══════════════════════════════════════════════════════════════════

def pointer_chain_set():
    """x.load ⊑ y, y ⊑ z.load"""
    return make_set(
        (v("x", LOAD), v("y")),
        (v("y"), v("z", LOAD)),
    )


def conflicting_width_set():
    """p read as 32 and as 64 bits at offset 0."""
    return make_set(
        (v("p", fld(32, 0)), v("a")),
        (v("p", fld(64, 0)), v("b")),
        bindings=[(1, v("p"), v("q"))],
    )


def function_return_set():
    """f returns the 32-bit value stored at s+0; f is target 7."""
    return make_set(
        (v("f", OutParam(0)), v("s", fld(32, 0))),
        (v("s", fld(32, 0)), v("f", OutParam(0))),
        bindings=[(7, v("f"), v("sub_401000"))],
    )


def linked_list_set():
    """n points to a struct whose field at 8 has n's type."""
    return make_set(
        (v("n"), v("n", LOAD, fld(64, 8))),
        (v("n", LOAD, fld(64, 8)), v("n")),
        bindings=[(3, v("n"), v("head"))],
    )


# ═══════════════════════════════════════════════════════════════════
#  SOURCES
# ═══════════════════════════════════════════════════════════════════

MINIMAL_TSCL = "x.load <= y\n"

POINTER_CHAIN_TSCL = """\
# scenario: load through x flows into z
x.load <= y
y ⊑ z.load
"""

FUNCTION_TSCL = """\
f.out_0 <= s.σ32@0
s.f32@0 <= f.out_0     # ASCII field alias
target 7: f <= sub_401000
"""

MIXED_TSCL = """\

  # leading blank line and indented comment
g.in_0 <= a
g.in_2 ⊑ b.store
target "main": g <= entry
target handler: b <= c   # identifier target
"""

MALFORMED_TSCL = """\
p.σ0@0 <= q
p.σ32@4 <= r
"""

SAMPLE_WIRE = {
    "subtypingConstraints": [
        {
            "lhs": {"baseVar": "x", "fieldLabels": [{"ptr": "POINTER_LOAD_UNSPECIFIED"}]},
            "rhs": {"baseVar": "y", "fieldLabels": []},
        },
        {
            "lhs": {"baseVar": "p", "fieldLabels": [
                {"ptr": "POINTER_STORE"},
                {"field": {"bitSize": 32, "byteOffset": 4}},
            ]},
            "rhs": {"baseVar": "q"},
        },
    ],
    "additionalConstraints": [
        {
            "subTy": {
                "lhs": {"baseVar": "f", "fieldLabels": [{"outParam": 0}]},
                "rhs": {"baseVar": "r", "fieldLabels": [{"inParam": 1}]},
            },
            "targetVariable": {"id": 7},
        },
    ],
}


# ═══════════════════════════════════════════════════════════════════
#  FIXTURES
# ═══════════════════════════════════════════════════════════════════

@pytest.fixture
def config():
    return SolverConfig()


@pytest.fixture
def reject_config():
    return SolverConfig(max_path_length=2, path_policy=PathPolicy.REJECT)


@pytest.fixture
def tscl_file(tmp_path):
    """Write a TSCL document to a temp file and return its path."""
    def _write(text, name="constraints.tscl"):
        path = tmp_path / name
        path.write_text(text, encoding="utf-8")
        return path
    return _write


@pytest.fixture
def wire_file(tmp_path):
    path = tmp_path / "constraints.json"
    path.write_text(json.dumps(SAMPLE_WIRE), encoding="utf-8")
    return path


__all__ = [
    "v", "fld", "make_set",
    "LOAD", "STORE", "InParam", "OutParam",
    "pointer_chain_set", "conflicting_width_set", "function_return_set",
    "linked_list_set",
    "MINIMAL_TSCL", "POINTER_CHAIN_TSCL", "FUNCTION_TSCL", "MIXED_TSCL",
    "MALFORMED_TSCL", "SAMPLE_WIRE",
]
