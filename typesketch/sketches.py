"""
typesketch.sketches
===================

Type Sketch Builder: turns equivalence classes into finite structural type
descriptions for an external type printer.

Sketch shapes
-------------
A sketch is one of four shapes, each referring to other sketches by id so
that recursive types (a list node pointing to itself) stay finite:

``PointerSketch(to)``
    The class is dereferenced; ``to`` is the pointee.
``StructSketch(fields)``
    The class is accessed at byte offsets; non-overlapping fields.
``FunctionSketch(params, returns)``
    The class is called; parameter and return slots in index order.
``PrimitiveSketch(bit_width)``
    Nothing further is known: an opaque leaf.

Shape selection
---------------
Per class, the first matching rule wins:

1. any ``in_i`` / ``out_i`` edge      → function
2. any ``load`` edge (else ``store``) → pointer to its target
3. any ``σN@k`` edge                  → struct
4. otherwise                          → primitive

A class showing more than one of these families gets a ``mixedShape``
information diagnostic naming what was left out, as does a pointer whose
load and store pointees are different classes.

Struct layout
-------------
Fields are placed in offset order.  Where several widths share an offset
the widest is kept and a ``conflictingFieldWidth`` diagnostic is recorded;
a field overlapping one already placed is dropped with an
``overlappingField`` diagnostic.  Neither stops the build.

Leaf width
----------
The narrowest Field width through which the class is reached, or
``SolverConfig.pointer_width`` when it is never reached through a field.

Sketch ids are class ids, so target variables that resolve to the same
class share a sketch.  Ids past the last class are synthetic leaves used to
fill missing function slots.
"""

from __future__ import annotations

import logging
from collections import deque
from dataclasses import dataclass
from typing import Any, Deque, Dict, List, Optional, Set, Tuple

from .config import DEFAULT_CONFIG, SolverConfig
from .equivalence import EquivalenceClass, Partition
from .errors import Diagnostic, DiagnosticKind, Severity
from .schema import FieldLabel, InParam, OutParam, Pointer, PointerLabel, Tid

logger = logging.getLogger(__name__)

SketchId = int


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — SKETCH SHAPES
# ═════════════════════════════════════════════════════════════════════════

class Sketch:
    """Base class of the closed sketch sum type."""

    __slots__ = ()

    @property
    def kind(self) -> str:
        if isinstance(self, PointerSketch):
            return "pointer"
        if isinstance(self, StructSketch):
            return "struct"
        if isinstance(self, FunctionSketch):
            return "function"
        if isinstance(self, PrimitiveSketch):
            return "primitive"
        raise TypeError(f"unknown sketch kind {type(self).__name__}")

    def references(self) -> Tuple[SketchId, ...]:
        """Ids of the sketches this one points at."""
        if isinstance(self, PointerSketch):
            return (self.to,)
        if isinstance(self, StructSketch):
            return tuple(f.sketch_id for f in self.layout)
        if isinstance(self, FunctionSketch):
            return self.params + self.returns
        if isinstance(self, PrimitiveSketch):
            return ()
        raise TypeError(f"unknown sketch kind {type(self).__name__}")


@dataclass(frozen=True)
class PointerSketch(Sketch):
    to: SketchId


@dataclass(frozen=True)
class StructField:
    byte_offset: int
    bit_size: int
    sketch_id: SketchId


@dataclass(frozen=True)
class StructSketch(Sketch):
    layout: Tuple[StructField, ...]

    @property
    def fields(self) -> Dict[int, SketchId]:
        """``{byte_offset: sketch id}``"""
        return {f.byte_offset: f.sketch_id for f in self.layout}

    @property
    def widths(self) -> Dict[int, int]:
        """``{byte_offset: bit size}``"""
        return {f.byte_offset: f.bit_size for f in self.layout}


@dataclass(frozen=True)
class FunctionSketch(Sketch):
    params: Tuple[SketchId, ...]
    returns: Tuple[SketchId, ...]


@dataclass(frozen=True)
class PrimitiveSketch(Sketch):
    bit_width: int


@dataclass(frozen=True)
class TargetSketch:
    """What the type printer gets for one target variable."""
    target: Tid
    class_id: int
    sketch_id: SketchId
    diagnostics: Tuple[Diagnostic, ...] = ()


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — SKETCH TABLE
# ═════════════════════════════════════════════════════════════════════════

class SketchTable:
    """All sketches of one solve plus the per-target entry points."""

    def __init__(self) -> None:
        self.sketches: Dict[SketchId, Sketch] = {}
        self.targets: Dict[Tid, TargetSketch] = {}
        self.diagnostics: Dict[SketchId, List[Diagnostic]] = {}

    def __getitem__(self, sketch_id: SketchId) -> Sketch:
        return self.sketches[sketch_id]

    def __len__(self) -> int:
        return len(self.sketches)

    def for_target(self, target: Any) -> TargetSketch:
        tid = target if isinstance(target, Tid) else Tid(target)
        return self.targets[tid]

    def sketch_of(self, target: Any) -> Sketch:
        return self.sketches[self.for_target(target).sketch_id]

    def reachable(self, root: SketchId) -> List[SketchId]:
        """Sketch ids reachable from *root*, breadth first, root included."""
        seen: Set[SketchId] = {root}
        order: List[SketchId] = []
        queue: Deque[SketchId] = deque([root])
        while queue:
            sid = queue.popleft()
            order.append(sid)
            for ref in self.sketches[sid].references():
                if ref not in seen:
                    seen.add(ref)
                    queue.append(ref)
        return order

    def all_diagnostics(self) -> List[Diagnostic]:
        out: List[Diagnostic] = []
        for sid in sorted(self.diagnostics):
            out.extend(self.diagnostics[sid])
        return out

    # ----- rendering --------------------------------------------------------

    def render(self, sketch_id: SketchId, depth: int = 3) -> str:
        """Short C-like rendering; revisited or too-deep sketches print as ``#id``."""
        return self._render(sketch_id, depth, frozenset())

    def _render(self, sid: SketchId, depth: int, active: frozenset) -> str:
        sk = self.sketches[sid]
        if isinstance(sk, PrimitiveSketch):
            return _primitive_name(sk.bit_width)
        if sid in active or depth <= 0:
            return f"#{sid}"
        active = active | {sid}
        if isinstance(sk, PointerSketch):
            return self._render(sk.to, depth - 1, active) + "*"
        if isinstance(sk, StructSketch):
            body = "; ".join(
                f"{self._render(f.sketch_id, depth - 1, active)} @{f.byte_offset}:{f.bit_size}"
                for f in sk.layout
            )
            return f"struct#{sid} {{ {body} }}"
        if isinstance(sk, FunctionSketch):
            params = ", ".join(self._render(p, depth - 1, active) for p in sk.params)
            if not sk.returns:
                ret = "void"
            elif len(sk.returns) == 1:
                ret = self._render(sk.returns[0], depth - 1, active)
            else:
                ret = "(" + ", ".join(self._render(r, depth - 1, active) for r in sk.returns) + ")"
            return f"{ret} (*)({params})"
        raise TypeError(f"unknown sketch kind {type(sk).__name__}")

    def to_dict(self) -> Dict[str, Any]:
        """JSON-ready form handed to the type printer.

        ``targets`` is a list; each entry names its target as
        ``{"id": value}`` with the int or str type of the id kept.
        """
        return {
            "sketches": {
                str(sid): sketch_to_dict(sk) for sid, sk in sorted(self.sketches.items())
            },
            "targets": [
                {
                    "targetVariable": {"id": ts.target.value},
                    "class": ts.class_id,
                    "sketch": ts.sketch_id,
                    "diagnostics": [d.to_dict() for d in ts.diagnostics],
                }
                for ts in sorted(self.targets.values(), key=lambda t: t.target.sort_key)
            ],
        }

    def __repr__(self) -> str:
        return f"SketchTable(sketches={len(self.sketches)}, targets={len(self.targets)})"


def _primitive_name(bit_width: int) -> str:
    if bit_width % 8 == 0:
        return f"undefined{bit_width // 8}"
    return f"bits{bit_width}"


def sketch_to_dict(sk: Sketch) -> Dict[str, Any]:
    if isinstance(sk, PointerSketch):
        return {"kind": "pointer", "to": sk.to}
    if isinstance(sk, StructSketch):
        return {
            "kind": "struct",
            "fields": [
                {"byteOffset": f.byte_offset, "bitSize": f.bit_size, "sketch": f.sketch_id}
                for f in sk.layout
            ],
        }
    if isinstance(sk, FunctionSketch):
        return {"kind": "function", "params": list(sk.params), "returns": list(sk.returns)}
    if isinstance(sk, PrimitiveSketch):
        return {"kind": "primitive", "bitWidth": sk.bit_width}
    raise TypeError(f"unknown sketch kind {type(sk).__name__}")


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 — BUILDER
# ═════════════════════════════════════════════════════════════════════════

class SketchBuilder:
    """Builds a :class:`SketchTable` from a :class:`Partition`."""

    def __init__(self, partition: Partition, config: SolverConfig = DEFAULT_CONFIG) -> None:
        self.partition = partition
        self.config = config
        self.table = SketchTable()
        self._next_id = len(partition.classes)
        self._unknown: Optional[SketchId] = None

    def _report(self, cls: EquivalenceClass, kind: DiagnosticKind, message: str,
                severity: Severity, **evidence: Any) -> None:
        evidence["class"] = cls.class_id
        diag = Diagnostic(
            kind=kind,
            message=message,
            severity=severity,
            subject=cls.dtvs[0],
            evidence=evidence,
        )
        self.table.diagnostics.setdefault(cls.class_id, []).append(diag)

    def _unknown_leaf(self) -> SketchId:
        if self._unknown is None:
            self._unknown = self._next_id
            self._next_id += 1
            self.table.sketches[self._unknown] = PrimitiveSketch(self.config.pointer_width)
        return self._unknown

    def _slots(self, by_index: Dict[int, SketchId]) -> Tuple[SketchId, ...]:
        if not by_index:
            return ()
        return tuple(
            by_index[i] if i in by_index else self._unknown_leaf()
            for i in range(max(by_index) + 1)
        )

    def leaf_width(self, cls: EquivalenceClass) -> int:
        widths = [lbl.bit_size for lbl in cls.incoming if isinstance(lbl, FieldLabel)]
        return min(widths) if widths else self.config.pointer_width

    def layout_struct(
        self,
        cls: EquivalenceClass,
        fields: List[Tuple[FieldLabel, SketchId]],
    ) -> StructSketch:
        fields = sorted(fields, key=lambda f: (f[0].byte_offset, -f[0].bit_size))
        placed: List[StructField] = []
        end = 0
        i = 0
        while i < len(fields):
            label, dst = fields[i]
            j = i + 1
            while j < len(fields) and fields[j][0].byte_offset == label.byte_offset:
                j += 1
            if j - i > 1:
                widths = [f[0].bit_size for f in fields[i:j]]
                self._report(
                    cls, DiagnosticKind.CONFLICTING_FIELD_WIDTH,
                    f"fields of {sorted(widths)} bits at byte offset "
                    f"{label.byte_offset}; keeping {label.bit_size} bits",
                    Severity.WARNING,
                    byte_offset=label.byte_offset, widths=sorted(widths),
                    kept=label.bit_size,
                )
            if placed and label.byte_offset < end:
                self._report(
                    cls, DiagnosticKind.OVERLAPPING_FIELD,
                    f"field {label} overlaps the field ending at byte {end}; dropped",
                    Severity.WARNING,
                    field=str(label), overlaps_until=end,
                )
            else:
                placed.append(StructField(label.byte_offset, label.bit_size, dst))
                end = label.end_offset
            i = j
        return StructSketch(tuple(placed))

    def shape(self, cls: EquivalenceClass) -> Sketch:
        params: Dict[int, SketchId] = {}
        returns: Dict[int, SketchId] = {}
        pointers: Dict[Pointer, SketchId] = {}
        fields: List[Tuple[FieldLabel, SketchId]] = []
        for label in cls.labels():
            dst = cls.target_of(label)
            if dst is None:
                continue
            if isinstance(label, InParam):
                params[label.index] = dst
            elif isinstance(label, OutParam):
                returns[label.index] = dst
            elif isinstance(label, PointerLabel):
                pointers[label.direction] = dst
            elif isinstance(label, FieldLabel):
                fields.append((label, dst))
            else:
                raise TypeError(f"unknown label kind {type(label).__name__}")

        families = [
            name for name, present in (
                ("function", bool(params or returns)),
                ("pointer", bool(pointers)),
                ("struct", bool(fields)),
            ) if present
        ]
        if len(families) > 1:
            self._report(
                cls, DiagnosticKind.MIXED_SHAPE,
                f"used as {' and '.join(families)}; shaped as {families[0]}",
                Severity.INFORMATION,
                families=families,
            )
        loaded, stored = pointers.get(Pointer.LOAD), pointers.get(Pointer.STORE)
        if loaded is not None and stored is not None and loaded != stored:
            self._report(
                cls, DiagnosticKind.MIXED_SHAPE,
                "loaded and stored through with different pointees; shaped by load",
                Severity.INFORMATION,
                families=["pointer"], kept=loaded, dropped=stored,
            )

        if params or returns:
            return FunctionSketch(self._slots(params), self._slots(returns))
        if pointers:
            return PointerSketch(pointers.get(Pointer.LOAD, pointers.get(Pointer.STORE)))
        if fields:
            return self.layout_struct(cls, fields)
        return PrimitiveSketch(self.leaf_width(cls))

    def build(self) -> SketchTable:
        for cls in self.partition.classes:
            self.table.sketches[cls.class_id] = self.shape(cls)

        for target, cid in self.partition.target_classes.items():
            diags: List[Diagnostic] = []
            for sid in self.table.reachable(cid):
                diags.extend(self.table.diagnostics.get(sid, ()))
            self.table.targets[target] = TargetSketch(
                target=target, class_id=cid, sketch_id=cid, diagnostics=tuple(diags),
            )

        logger.info(
            "Built %d sketches for %d targets (%d diagnostics)",
            len(self.table.sketches), len(self.table.targets),
            sum(len(d) for d in self.table.diagnostics.values()),
        )
        return self.table


def build_sketches(partition: Partition, config: Optional[SolverConfig] = None) -> SketchTable:
    """Run the :class:`SketchBuilder` over *partition*."""
    return SketchBuilder(partition, config or DEFAULT_CONFIG).build()
