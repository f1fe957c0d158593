"""
typesketch.saturation
=====================

Closure of a :class:`~typesketch.constraint_graph.ConstraintGraph` under
the subtyping inference rules.

Rules
-----
Applied until no new edge can be derived:

1.  **Transitivity** — ``A ⊑ B`` and ``B ⊑ C`` give ``A ⊑ C``.
2.  **Covariant push** — ``A ⊑ B`` with nodes ``A·ℓ`` and ``B·ℓ`` for a
    covariant ``ℓ`` (load, field, in/out parameter) gives ``A·ℓ ⊑ B·ℓ``.
3.  **Contravariant push** — the same with ``ℓ = store`` gives
    ``B·ℓ ⊑ A·ℓ``.

Algorithm
---------
A FIFO work-list holds edges whose consequences have not been explored yet.
It is seeded with every input edge.  Dequeuing ``A ⊑ B`` joins it with every
known edge into ``A`` and out of ``B`` (rule 1) and with every label shared
by ``A`` and ``B`` (rules 2 and 3).  An edge is enqueued only when
:meth:`ConstraintGraph.add_subtype` reports it as new, so no edge is ever
processed twice.  The node set does not grow during saturation, hence the
edge set is bounded by ``|V|²`` and the loop terminates; subtype cycles
simply stop producing new edges.

Budget
------
Each dequeued edge is one *step*.  Exceeding ``SolverConfig.max_saturation_steps``
or ``SolverConfig.deadline_seconds`` raises
:class:`~typesketch.errors.SaturationBudgetExceeded`; the graph is then
only partially saturated and must not be used.
"""

from __future__ import annotations

import logging
import time
from collections import deque
from dataclasses import dataclass
from typing import Deque, Optional, Tuple

from .config import DEFAULT_CONFIG, SolverConfig
from .constraint_graph import ConstraintGraph, NodeId
from .errors import SaturationBudgetExceeded
from .schema import Variance

logger = logging.getLogger(__name__)


@dataclass
class SaturationStats:
    """Counters from one saturation run."""
    steps: int = 0
    derived: int = 0
    transitive: int = 0
    pushed: int = 0
    initial_edges: int = 0
    final_edges: int = 0
    elapsed_seconds: float = 0.0

    def summary(self) -> str:
        return (
            f"{self.steps} steps, {self.derived} derived "
            f"({self.transitive} transitive, {self.pushed} label-push), "
            f"{self.initial_edges} -> {self.final_edges} edges "
            f"in {self.elapsed_seconds:.3f}s"
        )


class Saturator:
    """Work-list saturation of one constraint graph."""

    def __init__(self, graph: ConstraintGraph, config: SolverConfig = DEFAULT_CONFIG) -> None:
        self.graph = graph
        self.config = config
        self.stats = SaturationStats()
        self._worklist: Deque[Tuple[NodeId, NodeId]] = deque()

    def _derive(self, lhs: NodeId, rhs: NodeId) -> bool:
        if self.graph.add_subtype(lhs, rhs):
            self._worklist.append((lhs, rhs))
            self.stats.derived += 1
            return True
        return False

    def _check_budget(self, started: float) -> None:
        limit = self.config.max_saturation_steps
        if limit is not None and self.stats.steps > limit:
            raise SaturationBudgetExceeded(
                f"step budget of {limit} exhausted",
                self.stats.steps, len(self._worklist),
            )
        deadline = self.config.deadline_seconds
        if (
            deadline is not None
            and self.stats.steps % self.config.deadline_check_interval == 0
            and time.monotonic() - started > deadline
        ):
            raise SaturationBudgetExceeded(
                f"deadline of {deadline}s passed",
                self.stats.steps, len(self._worklist),
            )

    def _process(self, a: NodeId, b: NodeId) -> None:
        graph = self.graph

        # Rule 1, both directions: (A ⊑ B, B ⊑ C) and (Z ⊑ A, A ⊑ B).
        for c in tuple(graph.successors(b)):
            if self._derive(a, c):
                self.stats.transitive += 1
        for z in tuple(graph.predecessors(a)):
            if self._derive(z, b):
                self.stats.transitive += 1

        # Rules 2 and 3.
        kids_b = graph.children_of(b)
        if not kids_b:
            return
        for label, a_child in graph.children_of(a).items():
            b_child = kids_b.get(label)
            if b_child is None:
                continue
            if label.variance is Variance.COVARIANT:
                pushed = self._derive(a_child, b_child)
            else:
                pushed = self._derive(b_child, a_child)
            if pushed:
                self.stats.pushed += 1

    def run(self) -> SaturationStats:
        started = time.monotonic()
        self.stats.initial_edges = self.graph.edge_count
        self._worklist.extend(self.graph.subtype_edges())
        while self._worklist:
            a, b = self._worklist.popleft()
            self.stats.steps += 1
            self._check_budget(started)
            self._process(a, b)
        self.stats.final_edges = self.graph.edge_count
        self.stats.elapsed_seconds = time.monotonic() - started
        logger.info("Saturation finished: %s", self.stats.summary())
        return self.stats


def saturate(
    graph: ConstraintGraph,
    config: Optional[SolverConfig] = None,
) -> SaturationStats:
    """Saturate *graph* in place and return the run's counters."""
    return Saturator(graph, config or DEFAULT_CONFIG).run()
