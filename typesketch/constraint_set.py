"""
typesketch.constraint_set
=========================

The collection a front end builds incrementally and hands to the solver.

A :class:`ConstraintSet` holds subtyping constraints (``lhs ⊑ rhs``) and
*additional* constraints binding a subtyping fact to a target program
artifact.  Duplicates are dropped on insertion; insertion order is kept so
that solves are deterministic.  DTVs are never registered up front: the
graph builder discovers them from the constraints.

Typical usage::

    from typesketch import ConstraintSet, DerivedTypeVariable as DTV, LOAD

    cs = ConstraintSet()
    cs.add(DTV.of("x", LOAD), DTV.of("y"))
    cs.bind(7, DTV.of("f"), DTV.of("sub_401000"))
    frozen = cs.freeze()
"""

from __future__ import annotations

from typing import (
    Dict,
    FrozenSet,
    Iterable,
    Iterator,
    List,
    Optional,
    Set,
    Tuple,
    Union,
)

from .schema import (
    AdditionalConstraint,
    DerivedTypeVariable,
    SubtypingConstraint,
    Tid,
    VariableId,
)


class ConstraintSet:
    """Mutable, deduplicating, insertion-ordered set of constraints."""

    def __init__(
        self,
        constraints: Iterable[SubtypingConstraint] = (),
        additional: Iterable[AdditionalConstraint] = (),
    ) -> None:
        # dicts used as ordered sets
        self._subtyping: Dict[SubtypingConstraint, None] = {}
        self._additional: Dict[AdditionalConstraint, None] = {}
        for c in constraints:
            self.add_constraint(c)
        for a in additional:
            self.add_additional(a)

    # ----- building ---------------------------------------------------------

    def add(self, lhs: DerivedTypeVariable, rhs: DerivedTypeVariable) -> bool:
        """Add ``lhs ⊑ rhs``; returns ``False`` if it was already present."""
        return self.add_constraint(SubtypingConstraint(lhs, rhs))

    def add_constraint(self, constraint: SubtypingConstraint) -> bool:
        if constraint in self._subtyping:
            return False
        self._subtyping[constraint] = None
        return True

    def add_additional(self, constraint: AdditionalConstraint) -> bool:
        if constraint in self._additional:
            return False
        self._additional[constraint] = None
        return True

    def bind(
        self,
        target: Union[Tid, str, int],
        lhs: DerivedTypeVariable,
        rhs: DerivedTypeVariable,
    ) -> AdditionalConstraint:
        """Record ``lhs ⊑ rhs`` as the defining fact of *target*."""
        tid = target if isinstance(target, Tid) else Tid(target)
        additional = AdditionalConstraint(SubtypingConstraint(lhs, rhs), tid)
        self.add_additional(additional)
        return additional

    def update(self, other: "ConstraintSet") -> None:
        for c in other.subtyping:
            self.add_constraint(c)
        for a in other.additional:
            self.add_additional(a)

    # ----- views ------------------------------------------------------------

    @property
    def subtyping(self) -> Tuple[SubtypingConstraint, ...]:
        return tuple(self._subtyping)

    @property
    def additional(self) -> Tuple[AdditionalConstraint, ...]:
        return tuple(self._additional)

    def all_constraints(self) -> Iterator[SubtypingConstraint]:
        """Every subtyping edge, including the ones carried by bindings."""
        yield from self._subtyping
        for a in self._additional:
            yield a.constraint

    def all_dtvs(self) -> Set[DerivedTypeVariable]:
        out: Set[DerivedTypeVariable] = set()
        for c in self.all_constraints():
            out.add(c.lhs)
            out.add(c.rhs)
        return out

    def base_variables(self) -> Set[VariableId]:
        return {dtv.base for dtv in self.all_dtvs()}

    def targets(self) -> List[Tid]:
        seen: Dict[Tid, None] = {}
        for a in self._additional:
            seen.setdefault(a.target_variable, None)
        return list(seen)

    def freeze(self) -> "FrozenConstraintSet":
        return FrozenConstraintSet(self.subtyping, self.additional)

    # ----- container protocol ----------------------------------------------

    def __iter__(self) -> Iterator[SubtypingConstraint]:
        return iter(self._subtyping)

    def __len__(self) -> int:
        return len(self._subtyping) + len(self._additional)

    def __contains__(self, item: object) -> bool:
        return item in self._subtyping or item in self._additional

    def __bool__(self) -> bool:
        return bool(self._subtyping or self._additional)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, ConstraintSet):
            return NotImplemented
        return (
            set(self._subtyping) == set(other._subtyping)
            and set(self._additional) == set(other._additional)
        )

    def __repr__(self) -> str:
        return (
            f"ConstraintSet(subtyping={len(self._subtyping)}, "
            f"additional={len(self._additional)})"
        )

    def pretty(self) -> str:
        lines = [str(c) for c in self._subtyping]
        lines.extend(str(a) for a in self._additional)
        return "\n".join(lines)


class FrozenConstraintSet:
    """Immutable snapshot the solver consumes."""

    __slots__ = ("subtyping", "additional")

    def __init__(
        self,
        subtyping: Tuple[SubtypingConstraint, ...],
        additional: Tuple[AdditionalConstraint, ...],
    ) -> None:
        self.subtyping = subtyping
        self.additional = additional

    def all_constraints(self) -> Iterator[SubtypingConstraint]:
        yield from self.subtyping
        for a in self.additional:
            yield a.constraint

    def targets(self) -> FrozenSet[Tid]:
        return frozenset(a.target_variable for a in self.additional)

    def __len__(self) -> int:
        return len(self.subtyping) + len(self.additional)

    def __repr__(self) -> str:
        return (
            f"FrozenConstraintSet(subtyping={len(self.subtyping)}, "
            f"additional={len(self.additional)})"
        )


def as_frozen(
    constraints: Union[ConstraintSet, FrozenConstraintSet, Iterable[SubtypingConstraint]],
    additional: Optional[Iterable[AdditionalConstraint]] = None,
) -> FrozenConstraintSet:
    """Normalise whatever the caller passed into a :class:`FrozenConstraintSet`."""
    if isinstance(constraints, FrozenConstraintSet):
        return constraints
    if isinstance(constraints, ConstraintSet):
        return constraints.freeze()
    return ConstraintSet(constraints, additional or ()).freeze()
