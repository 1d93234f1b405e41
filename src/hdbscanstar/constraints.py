"""Instance-level constraints evaluated while the cluster hierarchy is built."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Iterable

from .errors import PreconditionViolationError


class ConstraintType(str, Enum):
    """Kind of pairwise constraint between two points."""

    MUST_LINK = "ml"
    CANNOT_LINK = "cl"

    @classmethod
    def parse(cls, value: "str | ConstraintType") -> "ConstraintType":
        if isinstance(value, ConstraintType):
            return value
        token = str(value).strip().lower().replace("_", "-")
        aliases = {
            "ml": cls.MUST_LINK,
            "must-link": cls.MUST_LINK,
            "cl": cls.CANNOT_LINK,
            "cannot-link": cls.CANNOT_LINK,
        }
        try:
            return aliases[token]
        except KeyError:
            raise ValueError(
                f"Unknown constraint type '{value}'; expected one of: ml, cl, must-link, cannot-link"
            ) from None


@dataclass(frozen=True, slots=True)
class HdbscanConstraint:
    """A must-link or cannot-link constraint between ``point_a`` and ``point_b``."""

    point_a: int
    point_b: int
    constraint_type: ConstraintType

    def __post_init__(self) -> None:
        object.__setattr__(self, "point_a", int(self.point_a))
        object.__setattr__(self, "point_b", int(self.point_b))
        object.__setattr__(self, "constraint_type", ConstraintType.parse(self.constraint_type))

    @property
    def is_must_link(self) -> bool:
        return self.constraint_type is ConstraintType.MUST_LINK

    @property
    def is_cannot_link(self) -> bool:
        return self.constraint_type is ConstraintType.CANNOT_LINK


def validate_constraints(constraints: Iterable[HdbscanConstraint], num_points: int) -> None:
    """Raise if any constraint references a point outside ``[0, num_points)``."""

    for index, constraint in enumerate(constraints):
        for point in (constraint.point_a, constraint.point_b):
            if not 0 <= point < num_points:
                raise PreconditionViolationError(
                    f"Constraint {index} references point {point}, "
                    f"outside the range [0, {num_points})"
                )


__all__ = ["ConstraintType", "HdbscanConstraint", "validate_constraints"]
