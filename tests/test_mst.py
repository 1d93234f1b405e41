from itertools import combinations

import numpy as np
import pytest

from hdbscanstar import PreconditionViolationError, calculate_core_distances, construct_mst

from conftest import line_distances


def _mutual_reachability(distances: np.ndarray, core: np.ndarray) -> np.ndarray:
    return np.maximum(distances, np.maximum(core[:, None], core[None, :]))


def _is_spanning_tree(num_points: int, edges) -> bool:
    parent = list(range(num_points))

    def find(vertex: int) -> int:
        while parent[vertex] != vertex:
            parent[vertex] = parent[parent[vertex]]
            vertex = parent[vertex]
        return vertex

    for vertex_a, vertex_b in edges:
        root_a, root_b = find(vertex_a), find(vertex_b)
        if root_a == root_b:
            return False
        parent[root_a] = root_b
    return len({find(vertex) for vertex in range(num_points)}) == 1


def _brute_force_mst_weight(weights: np.ndarray) -> float:
    num_points = weights.shape[0]
    pairs = list(combinations(range(num_points), 2))
    best = np.inf
    for edges in combinations(pairs, num_points - 1):
        if _is_spanning_tree(num_points, edges):
            best = min(best, sum(weights[a, b] for a, b in edges))
    return best


def test_mst_on_a_line_follows_mutual_reachability():
    distances = line_distances([0, 1, 2, 10])
    core = calculate_core_distances(distances, 2)

    mst = construct_mst(distances, core, self_edges=False)

    assert mst.num_vertices == 4
    assert mst.num_edges == 3
    assert mst.vertices_a.tolist() == [1, 2, 3]
    assert mst.vertices_b.tolist() == [0, 1, 2]
    assert mst.edge_weights.tolist() == [1.0, 1.0, 8.0]
    assert mst.total_weight() == pytest.approx(10.0)


def test_mst_breaks_ties_towards_the_last_point():
    distances = np.ones((3, 3)) - np.eye(3)
    core = calculate_core_distances(distances, 1)

    mst = construct_mst(distances, core)

    # Point 1 is attached first, point 0 keeps the root as its parent.
    assert mst.vertices_a.tolist() == [2, 2]
    assert mst.vertices_b.tolist() == [0, 1]


@pytest.mark.parametrize("seed", range(6))
def test_mst_is_minimal_against_brute_force(seed):
    rng = np.random.default_rng(seed)
    num_points = int(rng.integers(3, 7))
    points = rng.uniform(0, 10, size=(num_points, 2))
    distances = np.linalg.norm(points[:, None, :] - points[None, :, :], axis=2)
    core = calculate_core_distances(distances, 2)

    mst = construct_mst(distances, core)
    weights = _mutual_reachability(distances, core)

    edges = [(edge.vertex_a, edge.vertex_b) for edge in mst]
    assert len(edges) == num_points - 1
    assert _is_spanning_tree(num_points, edges)
    for edge in mst:
        assert edge.weight == pytest.approx(weights[edge.vertex_a, edge.vertex_b])
    assert mst.total_weight() == pytest.approx(_brute_force_mst_weight(weights))


def test_self_edges_are_appended_with_core_distances():
    distances = line_distances([0, 1, 2, 10])
    core = calculate_core_distances(distances, 2)

    mst = construct_mst(distances, core, self_edges=True)

    assert mst.num_edges == 3 + 4
    extra = list(mst)[3:]
    assert [(edge.vertex_a, edge.vertex_b) for edge in extra] == [(0, 0), (1, 1), (2, 2), (3, 3)]
    assert [edge.weight for edge in extra] == core.tolist()
    assert mst.total_weight() == pytest.approx(10.0)
    assert mst.total_weight(include_self_edges=True) == pytest.approx(21.0)


def test_single_point_mst_has_no_edges():
    mst = construct_mst(np.zeros((1, 1)), np.zeros(1))

    assert mst.num_vertices == 1
    assert mst.num_edges == 0


def test_mst_rejects_mismatched_core_distances():
    with pytest.raises(PreconditionViolationError):
        construct_mst(line_distances([0, 1, 2]), np.zeros(2))

    with pytest.raises(PreconditionViolationError):
        construct_mst(np.zeros((0, 0)), np.zeros(0))
