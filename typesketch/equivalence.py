"""
typesketch.equivalence
======================

Partition of a saturated constraint graph into equivalence classes.

Two DTVs belong to the same class when each is a subtype of the other,
i.e. when they lie on a common subtype cycle.  The classes are the strongly
connected components of the subtype relation, found with Tarjan's
algorithm (iterative, so that deep chains from real binaries do not hit the
interpreter's recursion limit).

Each class then collects

* its outgoing label edges, lifted from members to classes
  (``A ∈ C``, ``A --ℓ--> A·ℓ``, ``A·ℓ ∈ D``  ⟹  ``C --ℓ--> D``);
* the labels by which its members are reached (their last labels);
* the target variables whose binding resolves to it.

Bindings resolve to the class of the bound constraint's ``lhs``.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from typing import (
    Callable,
    Dict,
    Iterable,
    List,
    Optional,
    Set,
    Tuple,
)

from .constraint_graph import ConstraintGraph, NodeId
from .errors import Diagnostic, DiagnosticKind, Severity
from .schema import DerivedTypeVariable, Label, Tid

logger = logging.getLogger(__name__)

ClassId = int


# ===========================================================================
# STRONGLY CONNECTED COMPONENTS
# ===========================================================================

def strongly_connected_components(
    node_count: int,
    successors: Callable[[int], Iterable[int]],
) -> List[List[int]]:
    """Tarjan's SCC algorithm over nodes ``0 .. node_count-1``.

    Returns the components in reverse topological order (sinks first).
    """
    index = [-1] * node_count
    lowlink = [0] * node_count
    on_stack = [False] * node_count
    stack: List[int] = []
    result: List[List[int]] = []
    counter = 0

    for root in range(node_count):
        if index[root] != -1:
            continue
        index[root] = lowlink[root] = counter
        counter += 1
        stack.append(root)
        on_stack[root] = True
        work = [(root, iter(tuple(successors(root))))]

        while work:
            v, it = work[-1]
            descended = False
            for w in it:
                if index[w] == -1:
                    index[w] = lowlink[w] = counter
                    counter += 1
                    stack.append(w)
                    on_stack[w] = True
                    work.append((w, iter(tuple(successors(w)))))
                    descended = True
                    break
                if on_stack[w]:
                    lowlink[v] = min(lowlink[v], index[w])
            if descended:
                continue

            work.pop()
            if work:
                u = work[-1][0]
                lowlink[u] = min(lowlink[u], lowlink[v])
            if lowlink[v] == index[v]:
                scc: List[int] = []
                while True:
                    w = stack.pop()
                    on_stack[w] = False
                    scc.append(w)
                    if w == v:
                        break
                result.append(scc)

    return result


# ===========================================================================
# CLASSES
# ===========================================================================

@dataclass
class EquivalenceClass:
    """A set of mutually-subtyped DTVs: one recovered type."""
    class_id: ClassId
    members: Tuple[NodeId, ...]
    dtvs: Tuple[DerivedTypeVariable, ...]
    edges: Dict[Label, Set[ClassId]] = field(default_factory=dict)
    incoming: Set[Label] = field(default_factory=set)
    targets: List[Tid] = field(default_factory=list)

    @property
    def is_leaf(self) -> bool:
        return not self.edges

    def target_of(self, label: Label) -> Optional[ClassId]:
        """The single class reached through *label*, if any."""
        dsts = self.edges.get(label)
        if not dsts:
            return None
        return min(dsts)

    def labels(self) -> List[Label]:
        return sorted(self.edges, key=lambda lbl: lbl.sort_key)

    def __repr__(self) -> str:
        names = ", ".join(str(d) for d in self.dtvs[:4])
        more = "" if len(self.dtvs) <= 4 else f", … +{len(self.dtvs) - 4}"
        return f"EquivalenceClass(#{self.class_id}: {names}{more})"


class Partition:
    """All equivalence classes of a saturated graph."""

    def __init__(self, graph: ConstraintGraph, classes: List[EquivalenceClass],
                 class_of_node: List[ClassId]) -> None:
        self.graph = graph
        self.classes = classes
        self._class_of_node = class_of_node
        self.target_classes: Dict[Tid, ClassId] = {}
        self.reports: List[Diagnostic] = []

    def class_of_node(self, nid: NodeId) -> EquivalenceClass:
        return self.classes[self._class_of_node[nid]]

    def class_of(self, dtv: DerivedTypeVariable) -> EquivalenceClass:
        nid = self.graph.node_of(dtv)
        if nid is None:
            raise KeyError(dtv)
        return self.class_of_node(nid)

    def same_class(self, a: DerivedTypeVariable, b: DerivedTypeVariable) -> bool:
        return self.class_of(a).class_id == self.class_of(b).class_id

    def for_target(self, target: Tid) -> EquivalenceClass:
        return self.classes[self.target_classes[target]]

    def __len__(self) -> int:
        return len(self.classes)

    def __iter__(self):
        return iter(self.classes)

    def __repr__(self) -> str:
        return f"Partition(classes={len(self.classes)}, targets={len(self.target_classes)})"


def partition(graph: ConstraintGraph) -> Partition:
    """Group the nodes of a saturated *graph* into equivalence classes."""
    components = strongly_connected_components(graph.node_count, graph.successors)
    for comp in components:
        comp.sort()
    components.sort(key=lambda comp: comp[0])

    class_of_node = [0] * graph.node_count
    classes: List[EquivalenceClass] = []
    for cid, comp in enumerate(components):
        for nid in comp:
            class_of_node[nid] = cid
        classes.append(
            EquivalenceClass(
                class_id=cid,
                members=tuple(comp),
                dtvs=tuple(graph.dtv_of(nid) for nid in comp),
            )
        )

    for src, label, dst in graph.label_edges():
        cls = classes[class_of_node[src]]
        cls.edges.setdefault(label, set()).add(class_of_node[dst])
        classes[class_of_node[dst]].incoming.add(label)

    result = Partition(graph, classes, class_of_node)
    by_class: Dict[ClassId, List[Tid]] = defaultdict(list)
    for target, nid in graph.bindings:
        cid = class_of_node[nid]
        previous = result.target_classes.get(target)
        if previous is not None and previous != cid:
            # a target bound twice keeps its first binding
            logger.warning(
                "Target %s is bound to classes #%d and #%d; keeping #%d",
                target, previous, cid, previous,
            )
            result.reports.append(
                Diagnostic(
                    kind=DiagnosticKind.CONFLICTING_BINDING,
                    message=(
                        f"bound to classes #{previous} and #{cid}; "
                        f"keeping #{previous}"
                    ),
                    severity=Severity.WARNING,
                    subject=target,
                    evidence={"kept": previous, "dropped": cid},
                )
            )
            continue
        if previous is None:
            result.target_classes[target] = cid
            by_class[cid].append(target)
    for cid, targets in by_class.items():
        classes[cid].targets = targets

    logger.debug(
        "Partitioned %d nodes into %d classes (%d targets)",
        graph.node_count, len(classes), len(result.target_classes),
    )
    return result
