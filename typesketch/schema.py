"""
typesketch/schema.py
════════════════════

Value types for the constraint language.

Theory
──────
A *derived type variable* (DTV) names a way a program entity is used:
a base variable plus a path of labels, read left to right.  ``x.load.σ32@4``
is "the 32-bit field at byte offset 4 of whatever ``x`` points to".

    ℓ ::= load | store            (pointer dereference, read / write)
        | in_i                    (i-th call parameter)
        | out_i                   (i-th return value)
        | σN@k                    (N-bit field at byte offset k)

A subtyping constraint ``α ⊑ β`` says α may be used wherever β is expected.
Labels carry a *variance*: ``store`` is contravariant (writing through a
pointer constrains the supertype side), every other label is covariant.
The variance of a path is the parity of its contravariant labels.

All types here are immutable and hashable; equality is structural.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import TYPE_CHECKING, Iterator, Tuple, Union

from .errors import MalformedLabel

if TYPE_CHECKING:
    from .config import SolverConfig


# ═════════════════════════════════════════════════════════════════════════
#  PART 1 — OPAQUE IDENTIFIERS
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class VariableId:
    """Identity of a root program entity (register, stack slot, procedure…)."""
    name: str

    def __str__(self) -> str:
        return self.name


@dataclass(frozen=True)
class Tid:
    """Opaque id of a concrete program artifact, owned by the front end."""
    value: Union[str, int]

    @property
    def sort_key(self) -> Tuple[int, str]:
        return (0 if isinstance(self.value, int) else 1, f"{self.value}")

    def __str__(self) -> str:
        return f"{self.value}"


# ═════════════════════════════════════════════════════════════════════════
#  PART 2 — LABELS
# ═════════════════════════════════════════════════════════════════════════

class Pointer(enum.Enum):
    """Direction of a pointer dereference; values match the wire enum."""
    LOAD = 0
    STORE = 1


class Variance(enum.Enum):
    COVARIANT = "⊕"
    CONTRAVARIANT = "⊖"

    def compose(self, other: "Variance") -> "Variance":
        if self is other:
            return Variance.COVARIANT
        return Variance.CONTRAVARIANT

    def flip(self) -> "Variance":
        if self is Variance.COVARIANT:
            return Variance.CONTRAVARIANT
        return Variance.COVARIANT


class Label:
    """Base class of the closed label sum type.

    Subclasses: :class:`PointerLabel`, :class:`InParam`, :class:`OutParam`,
    :class:`FieldLabel`.
    """

    __slots__ = ()

    @property
    def variance(self) -> Variance:
        if isinstance(self, PointerLabel):
            if self.direction is Pointer.STORE:
                return Variance.CONTRAVARIANT
            return Variance.COVARIANT
        if isinstance(self, (InParam, OutParam, FieldLabel)):
            return Variance.COVARIANT
        raise TypeError(f"unknown label kind {type(self).__name__}")

    @property
    def sort_key(self) -> Tuple[int, int, int]:
        if isinstance(self, PointerLabel):
            return (0, self.direction.value, 0)
        if isinstance(self, InParam):
            return (1, self.index, 0)
        if isinstance(self, OutParam):
            return (2, self.index, 0)
        if isinstance(self, FieldLabel):
            return (3, self.byte_offset, self.bit_size)
        raise TypeError(f"unknown label kind {type(self).__name__}")


@dataclass(frozen=True)
class PointerLabel(Label):
    direction: Pointer

    def __str__(self) -> str:
        return "load" if self.direction is Pointer.LOAD else "store"


@dataclass(frozen=True)
class InParam(Label):
    index: int

    def __post_init__(self) -> None:
        if self.index < 0:
            raise ValueError(f"parameter index must be non-negative, got {self.index}")

    def __str__(self) -> str:
        return f"in_{self.index}"


@dataclass(frozen=True)
class OutParam(Label):
    index: int

    def __post_init__(self) -> None:
        if self.index < 0:
            raise ValueError(f"return index must be non-negative, got {self.index}")

    def __str__(self) -> str:
        return f"out_{self.index}"


@dataclass(frozen=True)
class FieldLabel(Label):
    """An access of ``bit_size`` bits at ``byte_offset`` from the base."""
    bit_size: int
    byte_offset: int

    @property
    def byte_size(self) -> int:
        return (self.bit_size + 7) // 8

    @property
    def end_offset(self) -> int:
        """First byte past the access."""
        return self.byte_offset + self.byte_size

    def overlaps(self, other: "FieldLabel") -> bool:
        return self.byte_offset < other.end_offset and other.byte_offset < self.end_offset

    def validate(self, config: "SolverConfig") -> None:
        """Raise :class:`MalformedLabel` if this access cannot exist."""
        if self.bit_size <= 0:
            raise MalformedLabel(self, "bit_size must be positive")
        if self.byte_offset < 0:
            raise MalformedLabel(self, "byte_offset must be non-negative")
        if self.bit_size > config.max_field_bits:
            raise MalformedLabel(
                self, f"bit_size exceeds the maximum word size of {config.max_field_bits} bits"
            )
        if self.end_offset > config.max_field_extent_bytes:
            raise MalformedLabel(
                self,
                f"access ends at byte {self.end_offset}, past the limit of "
                f"{config.max_field_extent_bytes}",
            )

    def __str__(self) -> str:
        return f"σ{self.bit_size}@{self.byte_offset}"


LOAD = PointerLabel(Pointer.LOAD)
STORE = PointerLabel(Pointer.STORE)


# ═════════════════════════════════════════════════════════════════════════
#  PART 3 — DERIVED TYPE VARIABLES AND CONSTRAINTS
# ═════════════════════════════════════════════════════════════════════════

@dataclass(frozen=True)
class DerivedTypeVariable:
    """A base variable plus the label path it is reached through."""

    base: VariableId
    path: Tuple[Label, ...] = ()

    def __post_init__(self) -> None:
        if isinstance(self.base, str):
            object.__setattr__(self, "base", VariableId(self.base))
        if not isinstance(self.path, tuple):
            object.__setattr__(self, "path", tuple(self.path))

    @classmethod
    def of(cls, base: Union[str, VariableId], *labels: Label) -> "DerivedTypeVariable":
        return cls(base if isinstance(base, VariableId) else VariableId(base), tuple(labels))

    # ── Structure ────────────────────────────────────────────────────

    @property
    def is_root(self) -> bool:
        return not self.path

    @property
    def last_label(self) -> Label | None:
        return self.path[-1] if self.path else None

    def prefix(self) -> "DerivedTypeVariable | None":
        """The DTV one label shorter, or ``None`` for a root."""
        if not self.path:
            return None
        return DerivedTypeVariable(self.base, self.path[:-1])

    def prefixes(self) -> Iterator["DerivedTypeVariable"]:
        """Every proper prefix, shortest (the root) first."""
        for n in range(len(self.path)):
            yield DerivedTypeVariable(self.base, self.path[:n])

    def extend(self, label: Label) -> "DerivedTypeVariable":
        return DerivedTypeVariable(self.base, self.path + (label,))

    def truncate(self, length: int) -> "DerivedTypeVariable":
        return DerivedTypeVariable(self.base, self.path[:length])

    def is_prefix_of(self, other: "DerivedTypeVariable") -> bool:
        return (
            self.base == other.base
            and len(self.path) < len(other.path)
            and other.path[: len(self.path)] == self.path
        )

    @property
    def variance(self) -> Variance:
        v = Variance.COVARIANT
        for label in self.path:
            v = v.compose(label.variance)
        return v

    @property
    def sort_key(self) -> Tuple[str, Tuple[Tuple[int, int, int], ...]]:
        return (self.base.name, tuple(label.sort_key for label in self.path))

    def __str__(self) -> str:
        return ".".join([self.base.name] + [str(label) for label in self.path])


@dataclass(frozen=True)
class SubtypingConstraint:
    """``lhs ⊑ rhs``: lhs may be substituted wherever rhs is expected."""
    lhs: DerivedTypeVariable
    rhs: DerivedTypeVariable

    def dtvs(self) -> Tuple[DerivedTypeVariable, DerivedTypeVariable]:
        return (self.lhs, self.rhs)

    def __str__(self) -> str:
        return f"{self.lhs} ⊑ {self.rhs}"


@dataclass(frozen=True)
class AdditionalConstraint:
    """A subtyping fact bound to the program artifact its type belongs to."""
    constraint: SubtypingConstraint
    target_variable: Tid

    def __post_init__(self) -> None:
        if not isinstance(self.target_variable, Tid):
            object.__setattr__(self, "target_variable", Tid(self.target_variable))

    def __str__(self) -> str:
        return f"[{self.target_variable}] {self.constraint}"
