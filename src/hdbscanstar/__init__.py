"""Hierarchical density-based clustering (HDBSCAN*) with GLOSH outlier scores."""

from .algorithm import (
    HierarchyLevel,
    HierarchyResult,
    calculate_core_distances,
    calculate_num_constraints_satisfied,
    calculate_outlier_scores,
    compute_hierarchy_and_cluster_tree,
    construct_mst,
    create_new_cluster,
    find_prominent_clusters,
    propagate_tree,
)
from .cluster import NOISE_LABEL, ROOT_LABEL, Cluster, ClusterStateError, ClusterTree
from .constraints import ConstraintType, HdbscanConstraint, validate_constraints
from .distances import DISTANCE_FUNCTIONS, calculate_distance_matrix
from .errors import PreconditionViolationError
from .graph import Edge, UndirectedGraph
from .outliers import OutlierScore
from .runner import HdbscanParameters, HdbscanResult, run_hdbscan, run_hdbscan_on_distances

__all__ = [
    "DISTANCE_FUNCTIONS",
    "NOISE_LABEL",
    "ROOT_LABEL",
    "Cluster",
    "ClusterStateError",
    "ClusterTree",
    "ConstraintType",
    "Edge",
    "HdbscanConstraint",
    "HdbscanParameters",
    "HdbscanResult",
    "HierarchyLevel",
    "HierarchyResult",
    "OutlierScore",
    "PreconditionViolationError",
    "UndirectedGraph",
    "calculate_core_distances",
    "calculate_distance_matrix",
    "calculate_num_constraints_satisfied",
    "calculate_outlier_scores",
    "compute_hierarchy_and_cluster_tree",
    "construct_mst",
    "create_new_cluster",
    "find_prominent_clusters",
    "propagate_tree",
    "run_hdbscan",
    "run_hdbscan_on_distances",
    "validate_constraints",
]
