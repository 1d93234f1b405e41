"""GLOSH outlier score records."""

from __future__ import annotations

from dataclasses import dataclass


@dataclass(frozen=True, order=True, slots=True)
class OutlierScore:
    """Outlier score of a single point.

    Instances order by ``score``, then ``core_distance``, then ``point_id``,
    which makes sorted score lists deterministic.
    """

    score: float
    core_distance: float
    point_id: int

    def to_record(self) -> dict[str, float | int]:
        return {
            "point_id": self.point_id,
            "score": self.score,
            "core_distance": self.core_distance,
        }


__all__ = ["OutlierScore"]
