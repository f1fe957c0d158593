"""
typesketch.config
=================

Solver configuration.

A :class:`SolverConfig` is a plain value: every :class:`~typesketch.solver.Solver`
gets its own copy and nothing in it is mutated during a solve.  Configs can
be loaded from JSON documents (``tscl --config FILE``) via
:meth:`SolverConfig.from_dict`.
"""

from __future__ import annotations

import dataclasses
import enum
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Optional


class PathPolicy(enum.Enum):
    """What to do with a DTV whose path is longer than ``max_path_length``."""

    REJECT = "reject"        # drop the constraint, report PathTooLong
    TRUNCATE = "truncate"    # cut the path, report a warning


@dataclass(frozen=True)
class SolverConfig:
    """Configuration for one solve."""

    # Ingestion
    max_path_length: int = 16
    path_policy: PathPolicy = PathPolicy.TRUNCATE
    max_field_bits: int = 512                 # widest legal Field access
    max_field_extent_bytes: int = 1 << 24     # byte_offset + size must stay below

    # Sketches
    pointer_width: int = 64

    # Saturation budget
    max_saturation_steps: Optional[int] = 10_000_000
    deadline_seconds: Optional[float] = None
    deadline_check_interval: int = 4096

    def __post_init__(self) -> None:
        if isinstance(self.path_policy, str):
            object.__setattr__(self, "path_policy", PathPolicy(self.path_policy))
        self.validate()

    def validate(self) -> None:
        """Raise ``ValueError`` on settings that cannot work."""
        if self.max_path_length < 1:
            raise ValueError("max_path_length must be at least 1")
        if self.max_field_bits < 1:
            raise ValueError("max_field_bits must be positive")
        if self.max_field_extent_bytes < 1:
            raise ValueError("max_field_extent_bytes must be positive")
        if self.pointer_width < 1:
            raise ValueError("pointer_width must be positive")
        if self.max_saturation_steps is not None and self.max_saturation_steps < 0:
            raise ValueError("max_saturation_steps must be non-negative")
        if self.deadline_seconds is not None and self.deadline_seconds <= 0:
            raise ValueError("deadline_seconds must be positive")
        if self.deadline_check_interval < 1:
            raise ValueError("deadline_check_interval must be at least 1")

    def replace(self, **changes: Any) -> "SolverConfig":
        return dataclasses.replace(self, **changes)

    @classmethod
    def from_dict(cls, data: Mapping[str, Any]) -> "SolverConfig":
        """Build a config from a JSON-style mapping; unknown keys are an error."""
        known = {f.name for f in dataclasses.fields(cls)}
        unknown = set(data) - known
        if unknown:
            raise ValueError(f"unknown config keys: {', '.join(sorted(unknown))}")
        return cls(**dict(data))

    def to_dict(self) -> Dict[str, Any]:
        out = dataclasses.asdict(self)
        out["path_policy"] = self.path_policy.value
        return out


DEFAULT_CONFIG = SolverConfig()
