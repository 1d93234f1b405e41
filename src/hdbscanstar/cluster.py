"""Cluster tree nodes and the label-addressed arena that owns them."""

from __future__ import annotations

from dataclasses import dataclass, field
import math
from typing import Iterable, Iterator


NOISE_LABEL = 0
ROOT_LABEL = 1


class ClusterStateError(RuntimeError):
    """Raised when a cluster or cluster tree is driven into an invalid state."""


def _inverse(level: float) -> float:
    # IEEE semantics: a zero level is an infinitely dense one.
    if level == 0:
        return math.inf
    return 1.0 / level


@dataclass(slots=True, eq=False)
class Cluster:
    """A node of the HDBSCAN* cluster tree.

    ``parent`` is the label of the parent cluster (``None`` for the root) and
    ``children`` holds the labels of the child clusters; the nodes themselves
    live in a :class:`ClusterTree`.
    """

    label: int
    parent: int | None
    birth_level: float
    num_points: int
    death_level: float = 0.0
    stability: float = 0.0
    propagated_stability: float = 0.0
    propagated_lowest_child_death_level: float = math.inf
    num_constraints_satisfied: int = 0
    virtual_child_constraints_satisfied: int = 0
    propagated_num_constraints_satisfied: int = 0
    hierarchy_offset: int = 0
    children: set[int] = field(default_factory=set)
    propagated_descendants: list[int] = field(default_factory=list)
    virtual_child_cluster: set[int] = field(default_factory=set)

    def __post_init__(self) -> None:
        if self.label == NOISE_LABEL:
            raise ClusterStateError("Label 0 is reserved for noise and cannot name a cluster")
        if self.label < 0:
            raise ClusterStateError(f"Cluster labels must be positive; received {self.label}")
        if self.num_points < 0:
            raise ClusterStateError("A cluster cannot start with a negative number of points")

    @property
    def has_children(self) -> bool:
        return bool(self.children)

    def detach_points(self, num_points: int, level: float) -> None:
        """Remove ``num_points`` points from the cluster at edge weight ``level``.

        Every detached point contributes ``1/level - 1/birth_level`` to the
        cluster's stability.  The death level is set when the last point
        leaves.
        """

        self.num_points -= num_points
        self.stability += num_points * (_inverse(level) - _inverse(self.birth_level))

        if self.num_points == 0:
            self.death_level = level
        elif self.num_points < 0:
            raise ClusterStateError(
                f"Cluster {self.label} cannot have less than 0 points (detached {num_points})"
            )

    def reset_propagation(self) -> None:
        self.propagated_stability = 0.0
        self.propagated_lowest_child_death_level = math.inf
        self.propagated_num_constraints_satisfied = self.virtual_child_constraints_satisfied
        self.propagated_descendants = []

    def propagate(self, parent: "Cluster | None") -> None:
        """Push this cluster's selection, stability and death level to ``parent``.

        The parent receives either this cluster or its propagated descendants,
        whichever satisfies more constraints; on a tie the more stable choice
        wins, and the cluster itself wins a stability tie.
        """

        if self.propagated_lowest_child_death_level == math.inf:
            self.propagated_lowest_child_death_level = self.death_level

        if parent is None:
            return

        if self.propagated_lowest_child_death_level < parent.propagated_lowest_child_death_level:
            parent.propagated_lowest_child_death_level = self.propagated_lowest_child_death_level

        if not self.has_children:
            keep_self = True
        elif self.num_constraints_satisfied != self.propagated_num_constraints_satisfied:
            keep_self = self.num_constraints_satisfied > self.propagated_num_constraints_satisfied
        else:
            keep_self = self.stability >= self.propagated_stability

        if keep_self:
            parent.propagated_num_constraints_satisfied += self.num_constraints_satisfied
            parent.propagated_stability += self.stability
            parent.propagated_descendants.append(self.label)
        else:
            parent.propagated_num_constraints_satisfied += self.propagated_num_constraints_satisfied
            parent.propagated_stability += self.propagated_stability
            parent.propagated_descendants.extend(self.propagated_descendants)

    def add_points_to_virtual_child_cluster(self, points: Iterable[int]) -> None:
        self.virtual_child_cluster.update(int(point) for point in points)

    def virtual_child_cluster_contains_point(self, point: int) -> bool:
        return point in self.virtual_child_cluster

    def add_virtual_child_constraints_satisfied(self, num_constraints: int) -> None:
        self.virtual_child_constraints_satisfied += num_constraints
        self.propagated_num_constraints_satisfied += num_constraints

    def add_constraints_satisfied(self, num_constraints: int) -> None:
        self.num_constraints_satisfied += num_constraints

    def release_virtual_child_cluster(self) -> None:
        self.virtual_child_cluster.clear()

    def to_record(self, num_constraints: int = 0) -> dict[str, object]:
        """Return a JSON-serialisable summary of the cluster.

        Constraint satisfaction is reported as the fraction of the
        ``num_constraints`` constraints credited to the cluster (each
        constraint can be credited twice, hence the factor ``0.5``).
        """

        if num_constraints:
            satisfaction = 0.5 * self.num_constraints_satisfied / num_constraints
            virtual_satisfaction = 0.5 * self.virtual_child_constraints_satisfied / num_constraints
        else:
            satisfaction = 0.0
            virtual_satisfaction = 0.0

        return {
            "label": self.label,
            "parent": self.parent if self.parent is not None else NOISE_LABEL,
            "birth_level": _finite_or_none(self.birth_level),
            "death_level": _finite_or_none(self.death_level),
            "stability": _finite_or_none(self.stability),
            "propagated_stability": _finite_or_none(self.propagated_stability),
            "propagated_lowest_child_death_level": _finite_or_none(
                self.propagated_lowest_child_death_level
            ),
            "constraint_satisfaction": satisfaction,
            "virtual_child_constraint_satisfaction": virtual_satisfaction,
            "hierarchy_offset": self.hierarchy_offset,
        }


def _finite_or_none(value: float) -> float | None:
    if math.isnan(value) or math.isinf(value):
        return None
    return float(value)


class ClusterTree:
    """Arena of clusters addressed by label.

    Slot 0 is the noise sentinel and holds no cluster.  Labels are dense:
    a cluster can only be added under the next free label, so children always
    carry larger labels than their parents.
    """

    __slots__ = ("_clusters",)

    def __init__(self) -> None:
        self._clusters: list[Cluster | None] = [None]

    @classmethod
    def with_root(cls, num_points: int) -> "ClusterTree":
        """Create a tree holding only the root cluster with every point."""

        tree = cls()
        tree.add(Cluster(ROOT_LABEL, None, math.nan, num_points))
        return tree

    @property
    def root(self) -> Cluster:
        if len(self._clusters) <= ROOT_LABEL:
            raise ClusterStateError("Cluster tree has no root cluster")
        return self[ROOT_LABEL]

    @property
    def next_label(self) -> int:
        return len(self._clusters)

    def add(self, cluster: Cluster) -> Cluster:
        if cluster.label != self.next_label:
            raise ClusterStateError(
                f"Expected cluster label {self.next_label}; received {cluster.label}"
            )
        if cluster.parent is not None:
            parent = self[cluster.parent]
            parent.children.add(cluster.label)
        self._clusters.append(cluster)
        return cluster

    def get(self, label: int) -> Cluster | None:
        if 0 <= label < len(self._clusters):
            return self._clusters[label]
        return None

    def parent_of(self, cluster: Cluster) -> Cluster | None:
        if cluster.parent is None:
            return None
        return self[cluster.parent]

    def labels(self) -> list[int]:
        return [cluster.label for cluster in self]

    def __getitem__(self, label: int) -> Cluster:
        cluster = self.get(label)
        if cluster is None:
            raise KeyError(label)
        return cluster

    def __contains__(self, label: object) -> bool:
        return isinstance(label, int) and self.get(label) is not None

    def __iter__(self) -> Iterator[Cluster]:
        return (cluster for cluster in self._clusters if cluster is not None)

    def __len__(self) -> int:
        return len(self._clusters) - 1

    def to_records(self, num_constraints: int = 0) -> list[dict[str, object]]:
        return [cluster.to_record(num_constraints) for cluster in self]

    def to_frame(self, num_constraints: int = 0):
        """Return the tree as a pandas DataFrame, one row per cluster."""

        import pandas as pd

        records = self.to_records(num_constraints)
        if not records:
            return pd.DataFrame(columns=list(Cluster(ROOT_LABEL, None, 0.0, 0).to_record()))
        return pd.DataFrame.from_records(records)


__all__ = [
    "NOISE_LABEL",
    "ROOT_LABEL",
    "Cluster",
    "ClusterStateError",
    "ClusterTree",
]
