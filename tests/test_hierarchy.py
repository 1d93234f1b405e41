import math

import numpy as np
import pytest

from hdbscanstar import (
    PreconditionViolationError,
    calculate_core_distances,
    compute_hierarchy_and_cluster_tree,
    construct_mst,
    find_prominent_clusters,
    propagate_tree,
)


def _hierarchy(distances, min_points=2, min_cluster_size=2, **kwargs):
    core = calculate_core_distances(distances, min_points)
    mst = construct_mst(distances, core, self_edges=True)
    return core, mst, compute_hierarchy_and_cluster_tree(mst, min_cluster_size, **kwargs)


def test_two_groups_split_into_two_clusters(two_groups):
    _, _, hierarchy = _hierarchy(two_groups)
    clusters = hierarchy.clusters

    assert clusters.labels() == [1, 2, 3]
    assert clusters.root.children == {2, 3}
    assert clusters.root.num_points == 0
    assert clusters.root.death_level == 8.0

    left, right = clusters[2], clusters[3]
    assert left.birth_level == right.birth_level == 8.0
    assert left.death_level == right.death_level == 1.0
    assert left.stability == pytest.approx(3 * (1 - 1 / 8))
    assert right.stability == pytest.approx(3 * (1 - 1 / 8))

    assert hierarchy.point_noise_levels.tolist() == [1.0] * 6
    assert hierarchy.point_last_clusters.tolist() == [2, 2, 2, 3, 3, 3]


def test_hierarchy_levels_record_labels_above_each_weight(two_groups):
    _, _, hierarchy = _hierarchy(two_groups)

    weights = [level.edge_weight for level in hierarchy.levels]
    assert weights == [8.0, 1.0, 0.0]
    assert hierarchy.levels[0].labels.tolist() == [1] * 6
    assert hierarchy.levels[1].labels.tolist() == [2, 2, 2, 3, 3, 3]
    assert hierarchy.levels[2].labels.tolist() == [0] * 6
    assert hierarchy.clusters[2].hierarchy_offset == 1


def test_hierarchy_does_not_modify_the_input_tree(two_groups):
    _, mst, _ = _hierarchy(two_groups)

    assert mst.num_edges == 5 + 6
    assert mst.edge_weights.tolist()[:5] == [1.0, 1.0, 8.0, 1.0, 1.0]


def test_outliers_shrink_the_root_without_splitting(two_groups_with_outliers):
    _, _, hierarchy = _hierarchy(two_groups_with_outliers)

    assert hierarchy.clusters.labels() == [1, 2, 3]
    assert hierarchy.point_noise_levels.tolist()[6:] == [28.0, 40.0]
    assert hierarchy.point_last_clusters.tolist()[6:] == [1, 1]
    assert [level.edge_weight for level in hierarchy.levels] == [40.0, 28.0, 8.0, 1.0, 0.0]
    assert hierarchy.clusters[2].hierarchy_offset == 3


def test_compact_hierarchy_skips_levels_without_new_clusters(two_groups_with_outliers):
    _, _, hierarchy = _hierarchy(two_groups_with_outliers, compact_hierarchy=True)

    assert [level.edge_weight for level in hierarchy.levels] == [40.0, 8.0, 1.0, 0.0]
    assert hierarchy.clusters[2].hierarchy_offset == 2
    assert hierarchy.levels[2].labels.tolist() == [2, 2, 2, 3, 3, 3, 0, 0]


@pytest.mark.parametrize("compact", [False, True])
def test_prominent_clusters_are_the_two_groups(two_groups_with_outliers, compact):
    _, _, hierarchy = _hierarchy(two_groups_with_outliers, compact_hierarchy=compact)
    propagate_tree(hierarchy.clusters)

    labels = find_prominent_clusters(hierarchy.clusters, hierarchy.levels, 8)

    assert labels.tolist() == [2, 2, 2, 3, 3, 3, 0, 0]


def test_tree_without_splits_has_only_noise():
    distances = np.abs(np.subtract.outer(np.arange(5.0), np.arange(5.0)))
    _, _, hierarchy = _hierarchy(distances, min_cluster_size=3)
    propagate_tree(hierarchy.clusters)

    labels = find_prominent_clusters(hierarchy.clusters, hierarchy.levels, 5)

    assert len(hierarchy.clusters) == 1
    assert not labels.any()


def test_duplicate_points_produce_infinite_stability():
    distances = np.abs(np.subtract.outer([0.0, 0, 0, 5, 5, 5], [0.0, 0, 0, 5, 5, 5]))
    _, _, hierarchy = _hierarchy(distances)

    infinite = propagate_tree(hierarchy.clusters)

    assert infinite is True
    assert hierarchy.clusters[2].stability == math.inf
    assert hierarchy.clusters[2].death_level == 0.0
    labels = find_prominent_clusters(hierarchy.clusters, hierarchy.levels, 6)
    assert labels.tolist() == [2, 2, 2, 3, 3, 3]


def test_hierarchy_rejects_invalid_arguments(two_groups):
    core = calculate_core_distances(two_groups, 2)
    mst = construct_mst(two_groups, core)

    with pytest.raises(PreconditionViolationError):
        compute_hierarchy_and_cluster_tree(mst, 0)
