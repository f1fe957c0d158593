"""
typesketch.solver
=================

The solver facade: constraint set in, sketches out.

Pipeline
--------
::

    ConstraintSet
        │  GraphBuilder      (validate, reject / truncate, build arena)
        ▼
    ConstraintGraph
        │  Saturator         (work-list closure, budgeted)
        ▼
    saturated graph
        │  partition         (Tarjan SCC → equivalence classes, bindings)
        ▼
    Partition
        │  SketchBuilder     (shape selection, struct layout)
        ▼
    SketchTable

A :class:`Solver` is scoped to one constraint set and shares nothing with
other instances; independent sets can be solved concurrently with
:func:`solve_many`.  A single solve is sequential.
"""

from __future__ import annotations

import logging
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from typing import (
    Iterable,
    List,
    Optional,
    Sequence,
    Union,
)

from .config import DEFAULT_CONFIG, SolverConfig
from .constraint_graph import ConstraintGraph, GraphBuilder
from .constraint_set import ConstraintSet, FrozenConstraintSet, as_frozen
from .equivalence import Partition, partition
from .errors import Diagnostic, Severity, TypeSketchError
from .saturation import SaturationStats, Saturator
from .schema import DerivedTypeVariable, SubtypingConstraint
from .sketches import SketchBuilder, SketchTable

logger = logging.getLogger(__name__)


@dataclass
class SolveResult:
    """Everything one solve produced."""
    graph: ConstraintGraph
    partition: Partition
    sketches: SketchTable
    stats: SaturationStats
    rejected: List[SubtypingConstraint] = field(default_factory=list)
    elapsed_seconds: float = 0.0

    @property
    def reports(self) -> List[Diagnostic]:
        """Ingestion, binding and sketch diagnostics, in that order."""
        return (
            list(self.graph.reports)
            + list(self.partition.reports)
            + self.sketches.all_diagnostics()
        )

    @property
    def has_errors(self) -> bool:
        return any(d.severity is Severity.ERROR for d in self.reports)

    def is_subtype(self, lhs: DerivedTypeVariable, rhs: DerivedTypeVariable) -> bool:
        return self.graph.is_subtype(lhs, rhs)

    def summary(self) -> str:
        lines = [
            "=" * 60,
            "  TYPE SKETCH SOLVE",
            "=" * 60,
            f"  Nodes              : {self.graph.node_count}",
            f"  Subtype edges      : {self.graph.edge_count}",
            f"  Saturation         : {self.stats.summary()}",
            f"  Classes            : {len(self.partition)}",
            f"  Sketches           : {len(self.sketches)}",
            f"  Targets            : {len(self.sketches.targets)}",
            f"  Rejected           : {len(self.rejected)}",
            f"  Diagnostics        : {len(self.reports)}",
            f"  Total time         : {self.elapsed_seconds:.3f}s",
            "=" * 60,
        ]
        return "\n".join(lines)


class Solver:
    """Solves one constraint set.

    Parameters
    ----------
    constraints : ConstraintSet, FrozenConstraintSet or iterable of SubtypingConstraint
        The input.  A mutable set is snapshotted; the caller's object is
        never modified.
    config : SolverConfig, optional
    """

    def __init__(
        self,
        constraints: Union[ConstraintSet, FrozenConstraintSet, Iterable[SubtypingConstraint]],
        config: Optional[SolverConfig] = None,
    ) -> None:
        self.constraints = as_frozen(constraints)
        self.config = config or DEFAULT_CONFIG

    def build_graph(self) -> GraphBuilder:
        builder = GraphBuilder(self.config)
        builder.build(self.constraints)
        return builder

    def solve(self) -> SolveResult:
        """Run the whole pipeline.

        Raises
        ------
        SaturationBudgetExceeded
            The closure did not finish within budget; nothing is returned.
        """
        started = time.monotonic()
        builder = self.build_graph()
        graph = builder.graph
        stats = Saturator(graph, self.config).run()
        parts = partition(graph)
        table = SketchBuilder(parts, self.config).build()
        result = SolveResult(
            graph=graph,
            partition=parts,
            sketches=table,
            stats=stats,
            rejected=list(builder.rejected),
            elapsed_seconds=time.monotonic() - started,
        )
        logger.info(
            "Solved %d constraints: %d classes, %d targets, %d diagnostics",
            len(self.constraints), len(parts), len(table.targets), len(result.reports),
        )
        return result


def solve(
    constraints: Union[ConstraintSet, FrozenConstraintSet, Iterable[SubtypingConstraint]],
    config: Optional[SolverConfig] = None,
) -> SolveResult:
    """Convenience wrapper: ``Solver(constraints, config).solve()``."""
    return Solver(constraints, config).solve()


def _solve_one(
    constraints: Union[ConstraintSet, FrozenConstraintSet],
    config: Optional[SolverConfig],
) -> Union[SolveResult, TypeSketchError]:
    try:
        return Solver(constraints, config).solve()
    except TypeSketchError as exc:
        logger.warning("Solve failed: %s", exc)
        return exc


def solve_many(
    constraint_sets: Sequence[Union[ConstraintSet, FrozenConstraintSet]],
    config: Optional[SolverConfig] = None,
    max_workers: Optional[int] = None,
) -> List[Union[SolveResult, TypeSketchError]]:
    """Solve independent constraint sets concurrently.

    Results come back in input order.  A set whose solve raises a
    :class:`TypeSketchError` (typically ``SaturationBudgetExceeded``) yields
    that exception in its slot; the other sets are unaffected.
    """
    frozen = [as_frozen(cs) for cs in constraint_sets]
    if max_workers == 1 or len(frozen) <= 1:
        return [_solve_one(cs, config) for cs in frozen]
    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        return list(pool.map(lambda cs: _solve_one(cs, config), frozen))
