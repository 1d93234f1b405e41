"""HDBSCAN* primitives: core distances, the mutual reachability MST, the
cluster hierarchy with stability propagation, GLOSH outlier scores and
constraint bookkeeping.

The typical call order is::

    core = calculate_core_distances(distances, min_points)
    mst = construct_mst(distances, core, self_edges=True)
    hierarchy = compute_hierarchy_and_cluster_tree(mst, min_cluster_size, constraints)
    infinite = propagate_tree(hierarchy.clusters)
    labels = find_prominent_clusters(hierarchy.clusters, hierarchy.levels, len(core))
    scores = calculate_outlier_scores(
        hierarchy.clusters, hierarchy.point_noise_levels, hierarchy.point_last_clusters, core
    )
"""

from __future__ import annotations

from collections import deque
from dataclasses import dataclass
import heapq
import logging
import math
from typing import Iterable, MutableSequence, Sequence

import numpy as np

from .cluster import NOISE_LABEL, ROOT_LABEL, Cluster, ClusterStateError, ClusterTree
from .constraints import HdbscanConstraint, validate_constraints
from .errors import PreconditionViolationError
from .graph import UndirectedGraph
from .outliers import OutlierScore


logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True, eq=False)
class HierarchyLevel:
    """Cluster labels of every point just above ``edge_weight``."""

    edge_weight: float
    labels: np.ndarray


@dataclass(slots=True)
class HierarchyResult:
    """Output of :func:`compute_hierarchy_and_cluster_tree`."""

    clusters: ClusterTree
    levels: list[HierarchyLevel]
    point_noise_levels: np.ndarray
    point_last_clusters: np.ndarray


def _as_distance_matrix(distances: Sequence[Sequence[float]] | np.ndarray) -> np.ndarray:
    matrix = np.asarray(distances, dtype=float)
    if matrix.ndim != 2 or matrix.shape[0] != matrix.shape[1]:
        raise PreconditionViolationError(
            f"Distance matrix must be square; received shape {matrix.shape}"
        )
    off_diagonal = ~np.eye(matrix.shape[0], dtype=bool)
    if np.isnan(matrix[off_diagonal]).any():
        raise PreconditionViolationError("Distance matrix contains NaN values")
    if (matrix[off_diagonal] < 0).any():
        raise PreconditionViolationError("Distance matrix contains negative distances")
    return matrix


def calculate_core_distances(
    distances: Sequence[Sequence[float]] | np.ndarray,
    k: int,
) -> np.ndarray:
    """Return the core distance of every point for neighbourhood size ``k``.

    A point counts as the first of its own ``k`` neighbours, so its core
    distance is the distance to its ``(k-1)``-th nearest other point; ``k == 1``
    gives zero for every point.
    """

    matrix = _as_distance_matrix(distances)
    num_points = matrix.shape[0]

    if k < 1:
        raise PreconditionViolationError(f"k must be at least 1; received {k}")
    if k == 1:
        return np.zeros(num_points, dtype=float)
    if k >= num_points:
        raise PreconditionViolationError(
            f"k must be smaller than the number of points ({num_points}); received {k}"
        )

    neighbour_distances = matrix.copy()
    np.fill_diagonal(neighbour_distances, np.inf)
    num_neighbours = k - 1
    kth = np.partition(neighbour_distances, num_neighbours - 1, axis=1)
    return kth[:, num_neighbours - 1].copy()


def construct_mst(
    distances: Sequence[Sequence[float]] | np.ndarray,
    core_distances: Sequence[float] | np.ndarray,
    self_edges: bool = False,
) -> UndirectedGraph:
    """Build the minimum spanning tree under mutual reachability distance.

    Dense Prim's algorithm rooted at the last point.  Edge ``i`` (for every
    point ``i`` except the root) joins ``i`` to the point it was attached
    from; when ``self_edges`` is set, one self-loop per point weighted by its
    core distance follows.
    """

    matrix = _as_distance_matrix(distances)
    num_points = matrix.shape[0]
    core = np.asarray(core_distances, dtype=float)

    if num_points == 0:
        raise PreconditionViolationError("Cannot build a spanning tree over zero points")
    if core.shape != (num_points,):
        raise PreconditionViolationError(
            f"Expected {num_points} core distances; received shape {core.shape}"
        )

    attached = np.zeros(num_points, dtype=bool)
    nearest_distances = np.full(num_points, np.inf)
    nearest_neighbours = np.zeros(num_points, dtype=np.int64)

    current_point = num_points - 1
    attached[current_point] = True

    for _ in range(num_points - 1):
        candidates = np.flatnonzero(~attached)
        reachability = np.maximum(
            matrix[current_point, candidates],
            np.maximum(core[current_point], core[candidates]),
        )

        improved = reachability < nearest_distances[candidates]
        nearest_distances[candidates[improved]] = reachability[improved]
        nearest_neighbours[candidates[improved]] = current_point

        # Ties go to the last candidate in index order.
        frontier = nearest_distances[candidates]
        position = len(frontier) - 1 - int(np.argmin(frontier[::-1]))
        current_point = int(candidates[position])
        attached[current_point] = True

    vertices_a = nearest_neighbours[: num_points - 1]
    vertices_b = np.arange(num_points - 1, dtype=np.int64)
    weights = nearest_distances[: num_points - 1]

    if self_edges:
        every_point = np.arange(num_points, dtype=np.int64)
        vertices_a = np.concatenate([vertices_a, every_point])
        vertices_b = np.concatenate([vertices_b, every_point])
        weights = np.concatenate([weights, core])

    logger.debug(
        "Constructed mutual reachability MST over %d points (%d edges)",
        num_points,
        len(weights),
    )
    return UndirectedGraph(num_points, vertices_a, vertices_b, weights)


def propagate_tree(clusters: ClusterTree) -> bool:
    """Propagate stability, constraint counts and death levels to the root.

    Must be called once the tree is complete and before outlier scores or
    prominent clusters are derived.  Returns ``True`` when any cluster has
    infinite stability.
    """

    for cluster in clusters:
        cluster.reset_propagation()

    # Children always carry larger labels than their parent, so popping the
    # largest queued label processes every child before its parent.
    to_examine: list[int] = []
    queued: set[int] = set()
    for cluster in clusters:
        if not cluster.has_children:
            heapq.heappush(to_examine, -cluster.label)
            queued.add(cluster.label)

    infinite_stability = False
    while to_examine:
        cluster = clusters[-heapq.heappop(to_examine)]
        parent = clusters.parent_of(cluster)
        cluster.propagate(parent)

        if cluster.stability == math.inf:
            infinite_stability = True

        if parent is not None and parent.label not in queued:
            heapq.heappush(to_examine, -parent.label)
            queued.add(parent.label)

    if infinite_stability:
        logger.debug("Cluster tree contains clusters with infinite stability")
    return infinite_stability


def calculate_outlier_scores(
    clusters: ClusterTree,
    point_noise_levels: Sequence[float] | np.ndarray,
    point_last_clusters: Sequence[int] | np.ndarray,
    core_distances: Sequence[float] | np.ndarray,
) -> list[OutlierScore]:
    """Return the GLOSH outlier score of every point, sorted ascending.

    ``score = 1 - epsilon_max / epsilon`` where ``epsilon`` is the level at
    which the point became noise and ``epsilon_max`` the lowest death level
    propagated to the last cluster the point belonged to.  Points with
    ``epsilon == 0`` score 0.
    """

    noise_levels = np.asarray(point_noise_levels, dtype=float)
    last_clusters = np.asarray(point_last_clusters, dtype=np.int64)
    core = np.asarray(core_distances, dtype=float)

    if not (len(noise_levels) == len(last_clusters) == len(core)):
        raise PreconditionViolationError(
            "Noise levels, last clusters and core distances must have equal lengths; received "
            f"{len(noise_levels)}, {len(last_clusters)} and {len(core)}"
        )

    scores: list[OutlierScore] = []
    for point, (epsilon, last_label, core_distance) in enumerate(
        zip(noise_levels.tolist(), last_clusters.tolist(), core.tolist())
    ):
        score = 0.0
        if epsilon != 0:
            last_cluster = clusters.get(last_label)
            if last_cluster is None:
                raise PreconditionViolationError(
                    f"Point {point} references unknown cluster label {last_label}"
                )
            score = 1.0 - (last_cluster.propagated_lowest_child_death_level / epsilon)
        scores.append(OutlierScore(score, core_distance, point))

    scores.sort()
    return scores


def create_new_cluster(
    points: Iterable[int],
    cluster_labels: MutableSequence[int] | np.ndarray,
    parent_cluster: Cluster,
    cluster_label: int,
    edge_weight: float,
) -> Cluster | None:
    """Move ``points`` out of ``parent_cluster`` at ``edge_weight``.

    The points are relabelled ``cluster_label``.  A new child cluster is
    returned for a non-zero label; for the noise label the points are kept in
    the parent's virtual child cluster and ``None`` is returned.
    """

    members = sorted({int(point) for point in points})
    for point in members:
        cluster_labels[point] = cluster_label

    parent_cluster.detach_points(len(members), edge_weight)

    if cluster_label != NOISE_LABEL:
        parent_cluster.children.add(cluster_label)
        return Cluster(cluster_label, parent_cluster.label, edge_weight, len(members))

    parent_cluster.add_points_to_virtual_child_cluster(members)
    return None


def calculate_num_constraints_satisfied(
    new_cluster_labels: Iterable[int],
    clusters: ClusterTree,
    constraints: Sequence[HdbscanConstraint] | None,
    cluster_labels: Sequence[int] | np.ndarray,
) -> None:
    """Credit the constraints satisfied by freshly created clusters.

    Must-link constraints whose points share a new cluster credit it twice;
    satisfied cannot-link constraints credit each endpoint's new cluster once,
    or the virtual child cluster of a new cluster's parent when the endpoint
    is noise.  The parents' virtual child clusters are released afterwards.
    """

    if not constraints:
        return

    validate_constraints(constraints, len(cluster_labels))

    new_labels = {int(label) for label in new_cluster_labels}
    parents: list[Cluster] = []
    for label in sorted(new_labels):
        parent = clusters.parent_of(clusters[label])
        if parent is not None and all(parent is not known for known in parents):
            parents.append(parent)

    try:
        for constraint in constraints:
            label_a = int(cluster_labels[constraint.point_a])
            label_b = int(cluster_labels[constraint.point_b])

            if constraint.is_must_link and label_a == label_b:
                if label_a in new_labels:
                    clusters[label_a].add_constraints_satisfied(2)

            elif constraint.is_cannot_link and (label_a != label_b or label_a == NOISE_LABEL):
                if label_a != NOISE_LABEL and label_a in new_labels:
                    clusters[label_a].add_constraints_satisfied(1)
                if label_b != NOISE_LABEL and label_b in new_labels:
                    clusters[label_b].add_constraints_satisfied(1)
                if label_a == NOISE_LABEL:
                    _credit_virtual_child(parents, constraint.point_a)
                if label_b == NOISE_LABEL:
                    _credit_virtual_child(parents, constraint.point_b)
    finally:
        for parent in parents:
            parent.release_virtual_child_cluster()


def _credit_virtual_child(parents: Sequence[Cluster], point: int) -> None:
    for parent in parents:
        if parent.virtual_child_cluster_contains_point(point):
            parent.add_virtual_child_constraints_satisfied(1)
            break


def compute_hierarchy_and_cluster_tree(
    mst: UndirectedGraph,
    min_cluster_size: int,
    constraints: Sequence[HdbscanConstraint] | None = None,
    *,
    compact_hierarchy: bool = False,
) -> HierarchyResult:
    """Build the cluster hierarchy by removing MST edges from heaviest to lightest.

    All edges tied at a weight are removed together.  Every affected cluster
    is then explored from its affected vertices: components with at least
    ``min_cluster_size`` points and at least one edge are valid, two or more
    valid components split the cluster, and every other component becomes
    noise.  ``mst`` itself is not modified.
    """

    if min_cluster_size < 1:
        raise PreconditionViolationError(
            f"min_cluster_size must be at least 1; received {min_cluster_size}"
        )

    constraints = list(constraints or ())
    num_points = mst.num_vertices
    validate_constraints(constraints, num_points)

    graph = mst.sorted_by_edge_weight()
    edges = [list(graph.edge_list_for_vertex(vertex)) for vertex in range(num_points)]

    current_labels = np.full(num_points, ROOT_LABEL, dtype=np.int64)
    previous_labels = current_labels.copy()
    point_noise_levels = np.zeros(num_points, dtype=float)
    point_last_clusters = np.zeros(num_points, dtype=np.int64)

    clusters = ClusterTree.with_root(num_points)
    calculate_num_constraints_satisfied({ROOT_LABEL}, clusters, constraints, current_labels)

    levels: list[HierarchyLevel] = []
    next_level_significant = True
    edge_index = graph.num_edges - 1

    while edge_index >= 0:
        edge_weight = graph.edge_weight_at(edge_index)
        new_clusters: list[Cluster] = []
        affected_labels: set[int] = set()
        affected_vertices: set[int] = set()

        while edge_index >= 0 and graph.edge_weight_at(edge_index) == edge_weight:
            first_vertex = graph.first_vertex_at(edge_index)
            second_vertex = graph.second_vertex_at(edge_index)
            _remove_edge(edges, first_vertex, second_vertex)
            edge_index -= 1

            if current_labels[first_vertex] == NOISE_LABEL:
                continue

            affected_vertices.update((first_vertex, second_vertex))
            affected_labels.add(int(current_labels[first_vertex]))

        if not affected_labels:
            continue

        while affected_labels:
            examined_label = max(affected_labels)
            affected_labels.remove(examined_label)
            examined_cluster = clusters[examined_label]

            examined_vertices = {
                vertex for vertex in affected_vertices if current_labels[vertex] == examined_label
            }
            affected_vertices -= examined_vertices

            new_clusters.extend(
                _split_cluster(
                    clusters,
                    examined_cluster,
                    examined_vertices,
                    edges,
                    current_labels,
                    point_noise_levels,
                    point_last_clusters,
                    min_cluster_size=min_cluster_size,
                    edge_weight=edge_weight,
                )
            )

        if not compact_hierarchy or next_level_significant or new_clusters:
            levels.append(HierarchyLevel(edge_weight, previous_labels.copy()))

        new_cluster_labels = set()
        for new_cluster in new_clusters:
            # Birth labels are the next recorded level.
            new_cluster.hierarchy_offset = len(levels)
            new_cluster_labels.add(new_cluster.label)
        if new_cluster_labels:
            logger.debug(
                "Level %.6g produced clusters %s", edge_weight, sorted(new_cluster_labels)
            )
            calculate_num_constraints_satisfied(
                new_cluster_labels, clusters, constraints, current_labels
            )

        previous_labels[:] = current_labels
        next_level_significant = bool(new_clusters)

    levels.append(HierarchyLevel(0.0, np.zeros(num_points, dtype=np.int64)))

    logger.debug("Built cluster tree with %d clusters and %d levels", len(clusters), len(levels))
    return HierarchyResult(
        clusters=clusters,
        levels=levels,
        point_noise_levels=point_noise_levels,
        point_last_clusters=point_last_clusters,
    )


def _remove_edge(edges: list[list[int]], first_vertex: int, second_vertex: int) -> None:
    if second_vertex in edges[first_vertex]:
        edges[first_vertex].remove(second_vertex)
    if first_vertex != second_vertex and first_vertex in edges[second_vertex]:
        edges[second_vertex].remove(first_vertex)


def _split_cluster(
    clusters: ClusterTree,
    examined_cluster: Cluster,
    examined_vertices: set[int],
    edges: list[list[int]],
    current_labels: np.ndarray,
    point_noise_levels: np.ndarray,
    point_last_clusters: np.ndarray,
    *,
    min_cluster_size: int,
    edge_weight: float,
) -> list[Cluster]:
    """Explore the components around ``examined_vertices`` and split or shrink the cluster.

    The first valid component is only explored far enough to prove it is
    valid; it is finished (and clustered) only when a second valid component
    shows the cluster really split.
    """

    examined_label = examined_cluster.label
    new_clusters: list[Cluster] = []

    first_child_cluster: set[int] | None = None
    unexplored_first_child_points: deque[int] = deque()
    num_child_clusters = 0

    while examined_vertices:
        constructing_sub_cluster: set[int] = set()
        unexplored_sub_cluster_points: deque[int] = deque()
        any_edges = False
        incremented_child_count = False

        root_vertex = max(examined_vertices)
        examined_vertices.remove(root_vertex)
        constructing_sub_cluster.add(root_vertex)
        unexplored_sub_cluster_points.append(root_vertex)

        while unexplored_sub_cluster_points:
            vertex = unexplored_sub_cluster_points.popleft()
            for neighbour in edges[vertex]:
                any_edges = True
                if neighbour not in constructing_sub_cluster:
                    constructing_sub_cluster.add(neighbour)
                    unexplored_sub_cluster_points.append(neighbour)
                    examined_vertices.discard(neighbour)

            if (
                not incremented_child_count
                and len(constructing_sub_cluster) >= min_cluster_size
                and any_edges
            ):
                incremented_child_count = True
                num_child_clusters += 1

                if first_child_cluster is None:
                    first_child_cluster = constructing_sub_cluster
                    unexplored_first_child_points = unexplored_sub_cluster_points
                    break

        is_valid = len(constructing_sub_cluster) >= min_cluster_size and any_edges
        if num_child_clusters >= 2 and is_valid:
            assert first_child_cluster is not None
            if max(first_child_cluster) in constructing_sub_cluster:
                # Re-explored the unfinished first child component.
                num_child_clusters -= 1
            else:
                new_clusters.append(
                    _spawn_cluster(clusters, constructing_sub_cluster, current_labels, examined_cluster, edge_weight)
                )
        elif not is_valid:
            create_new_cluster(
                constructing_sub_cluster, current_labels, examined_cluster, NOISE_LABEL, edge_weight
            )
            for point in constructing_sub_cluster:
                point_noise_levels[point] = edge_weight
                point_last_clusters[point] = examined_label

    if (
        num_child_clusters >= 2
        and first_child_cluster is not None
        and current_labels[min(first_child_cluster)] == examined_label
    ):
        while unexplored_first_child_points:
            vertex = unexplored_first_child_points.popleft()
            for neighbour in edges[vertex]:
                if neighbour not in first_child_cluster:
                    first_child_cluster.add(neighbour)
                    unexplored_first_child_points.append(neighbour)

        new_clusters.append(
            _spawn_cluster(clusters, first_child_cluster, current_labels, examined_cluster, edge_weight)
        )

    return new_clusters


def _spawn_cluster(
    clusters: ClusterTree,
    points: set[int],
    current_labels: np.ndarray,
    parent: Cluster,
    edge_weight: float,
) -> Cluster:
    new_cluster = create_new_cluster(points, current_labels, parent, clusters.next_label, edge_weight)
    if new_cluster is None:  # pragma: no cover - next_label is never the noise label
        raise ClusterStateError("Failed to create a cluster for a valid component")
    return clusters.add(new_cluster)


def find_prominent_clusters(
    clusters: ClusterTree,
    levels: Sequence[HierarchyLevel],
    num_points: int,
) -> np.ndarray:
    """Return the flat partition selected by :func:`propagate_tree`.

    The selected clusters are the root's propagated descendants; each one
    labels the points it held when it was born.  Unselected points are noise
    (label 0).
    """

    flat_partitioning = np.zeros(num_points, dtype=np.int64)

    for label in clusters.root.propagated_descendants:
        cluster = clusters[label]
        if cluster.hierarchy_offset >= len(levels):
            raise ClusterStateError(
                f"Cluster {label} points past the end of the hierarchy ({cluster.hierarchy_offset})"
            )
        level_labels = levels[cluster.hierarchy_offset].labels
        if len(level_labels) != num_points:
            raise PreconditionViolationError(
                f"Hierarchy level holds {len(level_labels)} labels; expected {num_points}"
            )
        flat_partitioning[level_labels == label] = label

    return flat_partitioning


__all__ = [
    "HierarchyLevel",
    "HierarchyResult",
    "PreconditionViolationError",
    "calculate_core_distances",
    "calculate_num_constraints_satisfied",
    "calculate_outlier_scores",
    "compute_hierarchy_and_cluster_tree",
    "construct_mst",
    "create_new_cluster",
    "find_prominent_clusters",
    "propagate_tree",
]
