"""End-to-end HDBSCAN* runs over raw points or precomputed distances."""

from __future__ import annotations

from dataclasses import dataclass
import logging
from typing import Dict, Sequence

import numpy as np
import pandas as pd

from .algorithm import (
    HierarchyLevel,
    calculate_core_distances,
    calculate_outlier_scores,
    compute_hierarchy_and_cluster_tree,
    construct_mst,
    find_prominent_clusters,
    propagate_tree,
)
from .cluster import NOISE_LABEL, ClusterTree
from .constraints import HdbscanConstraint
from .distances import DISTANCE_FUNCTIONS, DistanceMetric, calculate_distance_matrix
from .errors import PreconditionViolationError
from .graph import UndirectedGraph
from .outliers import OutlierScore


logger = logging.getLogger(__name__)

MetricValue = float | int | str | bool


@dataclass(slots=True)
class HdbscanParameters:
    """Configuration for a complete HDBSCAN* run."""

    min_points: int = 4
    min_cluster_size: int = 4
    metric: DistanceMetric | str = "euclidean"
    compact_hierarchy: bool = False
    self_edges: bool = True

    def validate(self) -> None:
        if self.min_points < 1:
            raise PreconditionViolationError("min_points must be at least 1")
        if self.min_cluster_size < 1:
            raise PreconditionViolationError("min_cluster_size must be at least 1")
        if self.metric not in DISTANCE_FUNCTIONS:
            raise PreconditionViolationError(
                f"Unsupported distance metric '{self.metric}'; expected one of: "
                + ", ".join(sorted(DISTANCE_FUNCTIONS))
            )

    def to_dict(self) -> Dict[str, MetricValue]:
        return {
            "min_points": self.min_points,
            "min_cluster_size": self.min_cluster_size,
            "metric": self.metric,
            "compact_hierarchy": self.compact_hierarchy,
            "self_edges": self.self_edges,
        }


@dataclass(slots=True)
class HdbscanResult:
    """Structured result of an HDBSCAN* run."""

    labels: np.ndarray
    outlier_scores: tuple[OutlierScore, ...]
    clusters: ClusterTree
    hierarchy: tuple[HierarchyLevel, ...]
    core_distances: np.ndarray
    mst: UndirectedGraph
    infinite_stability: bool
    num_constraints: int
    metrics: Dict[str, MetricValue]

    @property
    def num_points(self) -> int:
        return len(self.labels)

    def partition_frame(self) -> pd.DataFrame:
        """Return the flat partition, one row per point (label 0 is noise)."""

        return pd.DataFrame(
            {
                "point_id": np.arange(self.num_points, dtype=np.int64),
                "label": self.labels.astype(np.int64),
            }
        )

    def outlier_frame(self) -> pd.DataFrame:
        """Return outlier scores in ascending score order."""

        if not self.outlier_scores:
            return pd.DataFrame(columns=["point_id", "score", "core_distance"])
        return pd.DataFrame.from_records([score.to_record() for score in self.outlier_scores])

    def tree_frame(self) -> pd.DataFrame:
        return self.clusters.to_frame(self.num_constraints)

    def hierarchy_frame(self) -> pd.DataFrame:
        """Return one row per hierarchy level: its edge weight and every point's label."""

        columns = ["edge_weight"] + [f"point_{index}" for index in range(self.num_points)]
        if not self.hierarchy:
            return pd.DataFrame(columns=columns)
        rows = [[level.edge_weight, *level.labels.tolist()] for level in self.hierarchy]
        frame = pd.DataFrame(rows, columns=columns)
        return frame.astype({column: "int64" for column in columns[1:]})


def run_hdbscan(
    data: np.ndarray | pd.DataFrame,
    params: HdbscanParameters | None = None,
    constraints: Sequence[HdbscanConstraint] | None = None,
) -> HdbscanResult:
    """Cluster raw points (one row per point) with HDBSCAN*."""

    params = params or HdbscanParameters()
    params.validate()
    distances = calculate_distance_matrix(data, params.metric)
    return run_hdbscan_on_distances(distances, params, constraints)


def run_hdbscan_on_distances(
    distances: np.ndarray,
    params: HdbscanParameters | None = None,
    constraints: Sequence[HdbscanConstraint] | None = None,
) -> HdbscanResult:
    """Cluster points given their precomputed pairwise distance matrix."""

    params = params or HdbscanParameters()
    params.validate()
    constraints = list(constraints or ())

    distances = np.asarray(distances, dtype=float)
    num_points = distances.shape[0] if distances.ndim == 2 else 0
    logger.info(
        "Running HDBSCAN* on %d points (min_points=%d, min_cluster_size=%d, %d constraints)",
        num_points,
        params.min_points,
        params.min_cluster_size,
        len(constraints),
    )

    core_distances = calculate_core_distances(distances, params.min_points)
    mst = construct_mst(distances, core_distances, params.self_edges)
    hierarchy = compute_hierarchy_and_cluster_tree(
        mst,
        params.min_cluster_size,
        constraints,
        compact_hierarchy=params.compact_hierarchy,
    )

    infinite_stability = propagate_tree(hierarchy.clusters)
    if infinite_stability:
        logger.warning(
            "The cluster tree contains clusters with infinite stability, usually caused by "
            "duplicate points; the flat partition and outlier scores may be unreliable. "
            "Consider increasing min_points or removing duplicates."
        )

    labels = find_prominent_clusters(hierarchy.clusters, hierarchy.levels, num_points)
    outlier_scores = calculate_outlier_scores(
        hierarchy.clusters,
        hierarchy.point_noise_levels,
        hierarchy.point_last_clusters,
        core_distances,
    )

    num_clusters = len({int(label) for label in labels if label != NOISE_LABEL})
    noise_points = int(np.sum(labels == NOISE_LABEL))
    metrics: Dict[str, MetricValue] = {
        **params.to_dict(),
        "total_points": num_points,
        "num_clusters": num_clusters,
        "noise_points": noise_points,
        "noise_ratio": noise_points / num_points if num_points else 0.0,
        "tree_size": len(hierarchy.clusters),
        "hierarchy_levels": len(hierarchy.levels),
        "num_constraints": len(constraints),
        "infinite_stability": infinite_stability,
    }
    logger.info("Found %d clusters and %d noise points", num_clusters, noise_points)

    return HdbscanResult(
        labels=labels,
        outlier_scores=tuple(outlier_scores),
        clusters=hierarchy.clusters,
        hierarchy=tuple(hierarchy.levels),
        core_distances=core_distances,
        mst=mst,
        infinite_stability=infinite_stability,
        num_constraints=len(constraints),
        metrics=metrics,
    )


__all__ = [
    "HdbscanParameters",
    "HdbscanResult",
    "run_hdbscan",
    "run_hdbscan_on_distances",
]
