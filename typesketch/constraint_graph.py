"""
typesketch.constraint_graph
===========================

The directed multigraph the solver saturates.

Nodes are DTVs (and every prefix of every DTV mentioned in a constraint),
stored in an arena and addressed by integer handle.  Three kinds of edge
connect them:

``label``
    From a DTV to its one-label extension, annotated with the label:
    ``A --ℓ--> A·ℓ``.  Stored as ``children[A][ℓ]``.
``prefix``
    The inverse of a label edge, ``A·ℓ --ℓ⁻¹--> A``.  Stored as
    ``parent[A·ℓ] = (A, ℓ)``.
``subtype``
    ``lhs → rhs`` for ``lhs ⊑ rhs``.  Stored in ``succ[lhs]`` and
    ``pred[rhs]``.

Label edges always point from the shorter DTV to the longer one, whatever
the variance of the label; variance is applied only by the saturation rules
(:mod:`typesketch.saturation`) when they push a subtype edge along a label.

Self subtype edges are identities and are never stored.  Cycles of subtype
edges (recursive types) are ordinary adjacency entries; nothing owns
anything, so no cycle needs breaking.

Public API
----------
    ConstraintGraph   - the arena graph
    GraphBuilder      - validating construction from a constraint set
    build_graph       - convenience wrapper around GraphBuilder
"""

from __future__ import annotations

import logging
from typing import (
    Dict,
    Iterable,
    Iterator,
    List,
    Optional,
    Set,
    Tuple,
    Union,
)

from .config import DEFAULT_CONFIG, PathPolicy, SolverConfig
from .constraint_set import ConstraintSet, FrozenConstraintSet, as_frozen
from .errors import (
    Diagnostic,
    DiagnosticKind,
    MalformedLabel,
    PathTooLong,
    Severity,
    TypeSketchError,
)
from .schema import (
    DerivedTypeVariable,
    FieldLabel,
    Label,
    SubtypingConstraint,
    Tid,
)

logger = logging.getLogger(__name__)

NodeId = int


# ===========================================================================
# CONSTRAINT GRAPH
# ===========================================================================

class ConstraintGraph:
    """Arena of DTV nodes with label, prefix and subtype adjacency tables."""

    def __init__(self) -> None:
        self._dtvs: List[DerivedTypeVariable] = []
        self._index: Dict[DerivedTypeVariable, NodeId] = {}
        self._children: List[Dict[Label, NodeId]] = []
        self._parent: List[Optional[Tuple[NodeId, Label]]] = []
        self._succ: List[Set[NodeId]] = []
        self._pred: List[Set[NodeId]] = []
        self._edge_count = 0
        # (target, node of the binding's lhs)
        self.bindings: List[Tuple[Tid, NodeId]] = []
        self.reports: List[Diagnostic] = []

    # ----- node management --------------------------------------------------

    def get_or_create(self, dtv: DerivedTypeVariable) -> NodeId:
        """Return the handle of *dtv*, creating it and all its prefixes."""
        nid = self._index.get(dtv)
        if nid is not None:
            return nid
        parent_dtv = dtv.prefix()
        parent = self.get_or_create(parent_dtv) if parent_dtv is not None else None
        nid = len(self._dtvs)
        self._dtvs.append(dtv)
        self._index[dtv] = nid
        self._children.append({})
        self._succ.append(set())
        self._pred.append(set())
        if parent is not None:
            label = dtv.path[-1]
            self._parent.append((parent, label))
            self._children[parent][label] = nid
        else:
            self._parent.append(None)
        return nid

    def node_of(self, dtv: DerivedTypeVariable) -> Optional[NodeId]:
        return self._index.get(dtv)

    def dtv_of(self, nid: NodeId) -> DerivedTypeVariable:
        return self._dtvs[nid]

    def __contains__(self, dtv: object) -> bool:
        return dtv in self._index

    @property
    def node_count(self) -> int:
        return len(self._dtvs)

    def nodes(self) -> range:
        return range(len(self._dtvs))

    def dtvs(self) -> List[DerivedTypeVariable]:
        return list(self._dtvs)

    # ----- structural edges -------------------------------------------------

    def children_of(self, nid: NodeId) -> Dict[Label, NodeId]:
        """Label edges leaving *nid*: ``{ℓ: handle of nid·ℓ}``."""
        return self._children[nid]

    def child(self, nid: NodeId, label: Label) -> Optional[NodeId]:
        return self._children[nid].get(label)

    def parent_of(self, nid: NodeId) -> Optional[Tuple[NodeId, Label]]:
        """The prefix edge leaving *nid*, or ``None`` for a root."""
        return self._parent[nid]

    def label_edges(self) -> Iterator[Tuple[NodeId, Label, NodeId]]:
        for src, kids in enumerate(self._children):
            for label, dst in kids.items():
                yield src, label, dst

    # ----- subtype edges ----------------------------------------------------

    def add_subtype(self, lhs: NodeId, rhs: NodeId) -> bool:
        """Insert ``lhs ⊑ rhs``; returns ``True`` only if the edge is new."""
        if lhs == rhs:
            return False
        out = self._succ[lhs]
        if rhs in out:
            return False
        out.add(rhs)
        self._pred[rhs].add(lhs)
        self._edge_count += 1
        return True

    def successors(self, nid: NodeId) -> Set[NodeId]:
        """Every known supertype of *nid*."""
        return self._succ[nid]

    def predecessors(self, nid: NodeId) -> Set[NodeId]:
        """Every known subtype of *nid*."""
        return self._pred[nid]

    def has_subtype_edge(self, lhs: NodeId, rhs: NodeId) -> bool:
        return lhs == rhs or rhs in self._succ[lhs]

    def is_subtype(self, lhs: DerivedTypeVariable, rhs: DerivedTypeVariable) -> bool:
        """``lhs ⊑ rhs`` as currently recorded; reflexive by identity."""
        if lhs == rhs:
            return True
        a = self._index.get(lhs)
        b = self._index.get(rhs)
        if a is None or b is None:
            return False
        return b in self._succ[a]

    def subtype_edges(self) -> Iterator[Tuple[NodeId, NodeId]]:
        for src, out in enumerate(self._succ):
            for dst in out:
                yield src, dst

    def subtype_pairs(self) -> Set[Tuple[DerivedTypeVariable, DerivedTypeVariable]]:
        return {(self._dtvs[a], self._dtvs[b]) for a, b in self.subtype_edges()}

    @property
    def edge_count(self) -> int:
        return self._edge_count

    # ----- serialisation ----------------------------------------------------

    def to_dot(self, title: Optional[str] = None) -> str:
        """Return a Graphviz DOT representation."""
        lines = ["digraph ConstraintGraph {"]
        if title:
            lines.append(f'  label="{title}";')
        lines.append('  node [shape=box, fontname="monospace", fontsize=10];')
        for nid, dtv in enumerate(self._dtvs):
            escaped = str(dtv).replace('"', '\\"')
            lines.append(f'  n{nid} [label="{escaped}"];')
        for src, label, dst in self.label_edges():
            lines.append(
                f'  n{src} -> n{dst} [label="{label}", style=dashed, color=gray];'
            )
        for src, dst in sorted(self.subtype_edges()):
            lines.append(f'  n{src} -> n{dst} [label="⊑"];')
        lines.append("}")
        return "\n".join(lines)

    def __repr__(self) -> str:
        return f"ConstraintGraph(nodes={self.node_count}, edges={self.edge_count})"


# ===========================================================================
# CONSTRUCTION
# ===========================================================================

class GraphBuilder:
    """Builds a :class:`ConstraintGraph`, validating each constraint.

    A constraint whose DTVs carry a malformed Field label, or whose path is
    too long under ``PathPolicy.REJECT``, is skipped and reported; the rest
    of the set is still ingested.
    """

    def __init__(self, config: SolverConfig = DEFAULT_CONFIG) -> None:
        self.config = config
        self.graph = ConstraintGraph()
        self.rejected: List[SubtypingConstraint] = []

    def admit(self, dtv: DerivedTypeVariable) -> DerivedTypeVariable:
        """Validate *dtv*; returns it (possibly truncated) or raises."""
        for label in dtv.path:
            if isinstance(label, FieldLabel):
                try:
                    label.validate(self.config)
                except MalformedLabel as exc:
                    raise MalformedLabel(label, exc.reason, subject=dtv) from None
        limit = self.config.max_path_length
        if len(dtv.path) <= limit:
            return dtv
        if self.config.path_policy is PathPolicy.REJECT:
            raise PathTooLong(dtv, len(dtv.path), limit)
        truncated = dtv.truncate(limit)
        logger.warning("Truncating %s to %d labels", dtv, limit)
        self.graph.reports.append(
            Diagnostic(
                kind=DiagnosticKind.PATH_TRUNCATED,
                message=f"path of length {len(dtv.path)} truncated to {limit} labels",
                severity=Severity.WARNING,
                subject=dtv,
                evidence={"length": len(dtv.path), "limit": limit,
                          "truncated": str(truncated)},
            )
        )
        return truncated

    def _ingest(self, constraint: SubtypingConstraint) -> Tuple[NodeId, NodeId]:
        lhs = self.admit(constraint.lhs)
        rhs = self.admit(constraint.rhs)
        a = self.graph.get_or_create(lhs)
        b = self.graph.get_or_create(rhs)
        self.graph.add_subtype(a, b)
        return a, b

    def _reject(self, constraint: SubtypingConstraint, exc: TypeSketchError) -> None:
        logger.warning("Rejecting constraint %s: %s", constraint, exc)
        self.rejected.append(constraint)
        self.graph.reports.append(exc.to_diagnostic(constraint=str(constraint)))

    def add_constraint(self, constraint: SubtypingConstraint) -> Optional[Tuple[NodeId, NodeId]]:
        """Ingest one constraint; returns its endpoint handles or ``None``."""
        try:
            return self._ingest(constraint)
        except TypeSketchError as exc:
            self._reject(constraint, exc)
            return None

    def add_binding(self, target: Tid, constraint: SubtypingConstraint) -> None:
        """Ingest a binding's constraint; a rejection also drops the binding.

        The dropped-binding report is filed against *target* with the kind
        of the error that rejected the constraint.
        """
        try:
            lhs, _ = self._ingest(constraint)
        except TypeSketchError as exc:
            self._reject(constraint, exc)
            self.graph.reports.append(
                Diagnostic(
                    kind=exc.kind,
                    message=f"binding dropped: {exc.message}",
                    severity=Severity.ERROR,
                    subject=target,
                    evidence={"constraint": str(constraint)},
                )
            )
            return
        self.graph.bindings.append((target, lhs))

    def build(
        self,
        constraints: Union[ConstraintSet, FrozenConstraintSet, Iterable[SubtypingConstraint]],
    ) -> ConstraintGraph:
        frozen = as_frozen(constraints)
        for c in frozen.subtyping:
            self.add_constraint(c)
        for a in frozen.additional:
            self.add_binding(a.target_variable, a.constraint)
        logger.debug(
            "Built constraint graph: %d nodes, %d edges, %d rejected",
            self.graph.node_count, self.graph.edge_count, len(self.rejected),
        )
        return self.graph


def build_graph(
    constraints: Union[ConstraintSet, FrozenConstraintSet, Iterable[SubtypingConstraint]],
    config: SolverConfig = DEFAULT_CONFIG,
) -> ConstraintGraph:
    """Build and validate a :class:`ConstraintGraph` in one call."""
    return GraphBuilder(config).build(constraints)
