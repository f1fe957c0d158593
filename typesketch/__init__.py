"""
typesketch — Type Sketch Solver for Decompiler Type Recovery
============================================================

Takes subtyping constraints over derived type variables, as emitted by a
binary-analysis front end, and infers the structural shape of every
recovered type: pointer, struct, function or primitive.

Core modules
------------
schema
    Labels, derived type variables and constraint records.
constraint_set
    Ordered, de-duplicating container of constraints.
constraint_graph
    Arena graph of DTV nodes with label and subtype edges.
saturation
    Work-list closure of the subtype relation, budgeted.
equivalence
    Tarjan SCC partition into equivalence classes, target bindings.
sketches
    Shape selection and struct layout; the sketch table.
solver
    The pipeline facade (``solve``, ``solve_many``).
wire
    proto3 JSON and protobuf binary codecs for constraint documents and
    sketch tables.
proto
    Protocol-buffer message classes for the binary encoding.

Quick start
-----------
>>> from typesketch import ConstraintSet, DerivedTypeVariable, LOAD, solve
>>> cs = ConstraintSet()
>>> cs.add(DerivedTypeVariable.of("p", LOAD), DerivedTypeVariable("x"))
True
>>> result = solve(cs)
>>> result.is_subtype(DerivedTypeVariable.of("p", LOAD), DerivedTypeVariable("x"))
True
"""

from __future__ import annotations

import importlib
import logging
import sys
from typing import TYPE_CHECKING, List

# ---------------------------------------------------------------------------
# Package metadata
# ---------------------------------------------------------------------------

__version__ = "0.2.0"
__license__ = "MIT"
__all__: List[str] = []          # populated incrementally below

_log = logging.getLogger(__name__)
_log.addHandler(logging.NullHandler())

# ---------------------------------------------------------------------------
# Internal registry: (module_name, list_of_names_to_import)
# ---------------------------------------------------------------------------

_CORE_MODULES = {
    "errors": [
        "Severity",
        "DiagnosticKind",
        "Diagnostic",
        "TypeSketchError",
        "MalformedLabel",
        "PathTooLong",
        "SaturationBudgetExceeded",
        "WireFormatError",
    ],
    "config": [
        "PathPolicy",
        "SolverConfig",
        "DEFAULT_CONFIG",
    ],
    "schema": [
        "VariableId",
        "Tid",
        "Pointer",
        "Variance",
        "Label",
        "PointerLabel",
        "InParam",
        "OutParam",
        "FieldLabel",
        "LOAD",
        "STORE",
        "DerivedTypeVariable",
        "SubtypingConstraint",
        "AdditionalConstraint",
    ],
    "constraint_set": [
        "ConstraintSet",
        "FrozenConstraintSet",
    ],
    "constraint_graph": [
        "ConstraintGraph",
        "GraphBuilder",
        "build_graph",
    ],
    "saturation": [
        "Saturator",
        "SaturationStats",
        "saturate",
    ],
    "equivalence": [
        "EquivalenceClass",
        "Partition",
        "partition",
    ],
    "sketches": [
        "Sketch",
        "PointerSketch",
        "StructField",
        "StructSketch",
        "FunctionSketch",
        "PrimitiveSketch",
        "TargetSketch",
        "SketchTable",
        "SketchBuilder",
        "build_sketches",
    ],
    "solver": [
        "Solver",
        "SolveResult",
        "solve",
        "solve_many",
    ],
    "proto": [],
    "wire": [
        "load_constraint_set",
        "loads_constraint_set",
        "dump_constraint_set",
        "sketches_to_json",
        "constraint_set_to_bytes",
        "constraint_set_from_bytes",
        "load_constraint_set_binary",
        "dump_constraint_set_binary",
    ],
}


def _import_names(module_rel_name: str, names: List[str]) -> None:
    """Import *names* from a submodule and bind them in the package namespace."""
    fq_name = f"{__name__}.{module_rel_name}"
    try:
        mod = importlib.import_module(fq_name)
    except ImportError as exc:
        raise ImportError(
            f"typesketch: required submodule '{module_rel_name}' "
            f"failed to import: {exc}"
        ) from exc

    current_module = sys.modules[__name__]
    for name in names:
        if not hasattr(mod, name):
            raise AttributeError(f"typesketch.{module_rel_name} does not export '{name}'")
        setattr(current_module, name, getattr(mod, name))
        __all__.append(name)

    setattr(current_module, module_rel_name, mod)
    if module_rel_name not in __all__:
        __all__.append(module_rel_name)


for _mod, _names in _CORE_MODULES.items():
    _import_names(_mod, _names)

del _mod, _names


def list_submodules() -> List[str]:
    """Return the names of all submodules in the package."""
    return sorted(_CORE_MODULES)


__all__ += ["list_submodules", "__version__"]

# ---------------------------------------------------------------------------
# TYPE_CHECKING block — static visibility of the dynamically bound names
# ---------------------------------------------------------------------------

if TYPE_CHECKING:
    from .errors import (
        Severity as Severity,
        DiagnosticKind as DiagnosticKind,
        Diagnostic as Diagnostic,
        TypeSketchError as TypeSketchError,
        MalformedLabel as MalformedLabel,
        PathTooLong as PathTooLong,
        SaturationBudgetExceeded as SaturationBudgetExceeded,
        WireFormatError as WireFormatError,
    )
    from .config import (
        PathPolicy as PathPolicy,
        SolverConfig as SolverConfig,
        DEFAULT_CONFIG as DEFAULT_CONFIG,
    )
    from .schema import (
        VariableId as VariableId,
        Tid as Tid,
        Pointer as Pointer,
        Variance as Variance,
        Label as Label,
        PointerLabel as PointerLabel,
        InParam as InParam,
        OutParam as OutParam,
        FieldLabel as FieldLabel,
        LOAD as LOAD,
        STORE as STORE,
        DerivedTypeVariable as DerivedTypeVariable,
        SubtypingConstraint as SubtypingConstraint,
        AdditionalConstraint as AdditionalConstraint,
    )
    from .constraint_set import (
        ConstraintSet as ConstraintSet,
        FrozenConstraintSet as FrozenConstraintSet,
    )
    from .constraint_graph import (
        ConstraintGraph as ConstraintGraph,
        GraphBuilder as GraphBuilder,
        build_graph as build_graph,
    )
    from .saturation import (
        Saturator as Saturator,
        SaturationStats as SaturationStats,
        saturate as saturate,
    )
    from .equivalence import (
        EquivalenceClass as EquivalenceClass,
        Partition as Partition,
        partition as partition,
    )
    from .sketches import (
        Sketch as Sketch,
        PointerSketch as PointerSketch,
        StructField as StructField,
        StructSketch as StructSketch,
        FunctionSketch as FunctionSketch,
        PrimitiveSketch as PrimitiveSketch,
        TargetSketch as TargetSketch,
        SketchTable as SketchTable,
        SketchBuilder as SketchBuilder,
        build_sketches as build_sketches,
    )
    from .solver import (
        Solver as Solver,
        SolveResult as SolveResult,
        solve as solve,
        solve_many as solve_many,
    )
    from .wire import (
        load_constraint_set as load_constraint_set,
        loads_constraint_set as loads_constraint_set,
        dump_constraint_set as dump_constraint_set,
        sketches_to_json as sketches_to_json,
        constraint_set_to_bytes as constraint_set_to_bytes,
        constraint_set_from_bytes as constraint_set_from_bytes,
        load_constraint_set_binary as load_constraint_set_binary,
        dump_constraint_set_binary as dump_constraint_set_binary,
    )
