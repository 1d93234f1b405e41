import math

import numpy as np
import pytest

from hdbscanstar import (
    Cluster,
    ClusterTree,
    ConstraintType,
    HdbscanConstraint,
    PreconditionViolationError,
    calculate_core_distances,
    calculate_num_constraints_satisfied,
    compute_hierarchy_and_cluster_tree,
    construct_mst,
    create_new_cluster,
    propagate_tree,
    validate_constraints,
)


def test_constraint_type_accepts_short_and_long_names():
    assert ConstraintType.parse("ml") is ConstraintType.MUST_LINK
    assert ConstraintType.parse("Cannot_Link") is ConstraintType.CANNOT_LINK
    assert HdbscanConstraint("1", 2.0, "must-link").point_a == 1

    with pytest.raises(ValueError):
        ConstraintType.parse("maybe")


def test_out_of_range_constraints_are_rejected():
    with pytest.raises(PreconditionViolationError):
        validate_constraints([HdbscanConstraint(0, 4, "ml")], 4)

    with pytest.raises(PreconditionViolationError):
        validate_constraints([HdbscanConstraint(-1, 2, "cl")], 4)


def test_create_new_cluster_with_noise_label_allocates_nothing():
    parent = Cluster(2, 1, 10.0, 4)
    labels = np.array([2, 2, 2, 2])

    result = create_new_cluster({0, 1}, labels, parent, 0, 5.0)

    assert result is None
    assert labels.tolist() == [0, 0, 2, 2]
    assert parent.num_points == 2
    assert parent.stability == pytest.approx(2 * (1 / 5 - 1 / 10))
    assert parent.virtual_child_cluster == {0, 1}
    assert parent.children == set()


def test_create_new_cluster_builds_a_child():
    parent = Cluster(2, 1, 10.0, 4)
    labels = np.array([2, 2, 2, 2])

    child = create_new_cluster([2, 3], labels, parent, 3, 4.0)

    assert child is not None
    assert (child.label, child.parent, child.birth_level, child.num_points) == (3, 2, 4.0, 2)
    assert labels.tolist() == [2, 2, 3, 3]
    assert parent.children == {3}
    assert parent.stability == pytest.approx(2 * (1 / 4 - 1 / 10))
    assert parent.num_points == 2
    assert parent.death_level == 0.0


def test_empty_constraint_list_changes_nothing():
    tree = ClusterTree.with_root(3)

    calculate_num_constraints_satisfied({1}, tree, [], [1, 1, 1])

    assert tree.root.num_constraints_satisfied == 0


def test_must_link_in_a_new_cluster_counts_twice():
    tree = ClusterTree.with_root(3)
    constraints = [HdbscanConstraint(0, 2, "ml"), HdbscanConstraint(0, 1, "cl")]

    calculate_num_constraints_satisfied({1}, tree, constraints, [1, 1, 1])

    assert tree.root.num_constraints_satisfied == 2


def test_cannot_link_credits_both_new_clusters():
    tree = ClusterTree.with_root(4)
    labels = np.ones(4, dtype=np.int64)
    tree.add(create_new_cluster([0, 1], labels, tree.root, 2, 3.0))
    tree.add(create_new_cluster([2, 3], labels, tree.root, 3, 3.0))

    calculate_num_constraints_satisfied(
        {2, 3}, tree, [HdbscanConstraint(1, 3, "cl")], labels
    )

    assert tree[2].num_constraints_satisfied == 1
    assert tree[3].num_constraints_satisfied == 1


def test_noise_endpoint_credits_the_parents_virtual_child():
    tree = ClusterTree.with_root(4)
    labels = np.ones(4, dtype=np.int64)
    tree.add(create_new_cluster([0, 1], labels, tree.root, 2, 5.0))
    create_new_cluster([3], labels, tree.root, 0, 5.0)

    calculate_num_constraints_satisfied(
        {2}, tree, [HdbscanConstraint(0, 3, "cl")], labels
    )

    assert labels.tolist() == [2, 2, 1, 0]
    assert tree[2].num_constraints_satisfied == 1
    assert tree.root.virtual_child_constraints_satisfied == 1
    assert tree.root.propagated_num_constraints_satisfied == 1
    assert tree.root.virtual_child_cluster == set()


def test_two_noise_endpoints_each_credit_the_virtual_child():
    tree = ClusterTree.with_root(4)
    labels = np.ones(4, dtype=np.int64)
    tree.add(create_new_cluster([0, 1], labels, tree.root, 2, 5.0))
    create_new_cluster([2, 3], labels, tree.root, 0, 5.0)

    calculate_num_constraints_satisfied(
        {2}, tree, [HdbscanConstraint(2, 3, "cl")], labels
    )

    assert tree[2].num_constraints_satisfied == 0
    assert tree.root.virtual_child_constraints_satisfied == 2


def test_invalid_constraints_leave_the_tree_untouched():
    tree = ClusterTree.with_root(4)
    labels = np.ones(4, dtype=np.int64)
    tree.add(create_new_cluster([0, 1], labels, tree.root, 2, 5.0))
    create_new_cluster([3], labels, tree.root, 0, 5.0)

    with pytest.raises(PreconditionViolationError):
        calculate_num_constraints_satisfied(
            {2}, tree, [HdbscanConstraint(0, 9, "cl")], labels
        )

    assert tree.root.virtual_child_cluster == {3}
    assert tree[2].num_constraints_satisfied == 0


def test_hierarchy_counts_constraints_per_cluster(two_groups):
    constraints = [
        HdbscanConstraint(0, 1, "ml"),
        HdbscanConstraint(0, 4, "cl"),
        HdbscanConstraint(2, 3, "cl"),
    ]
    core = calculate_core_distances(two_groups, 2)
    mst = construct_mst(two_groups, core, self_edges=True)

    hierarchy = compute_hierarchy_and_cluster_tree(mst, 2, constraints)
    clusters = hierarchy.clusters
    propagate_tree(clusters)

    assert clusters.root.num_constraints_satisfied == 2
    assert clusters[2].num_constraints_satisfied == 4
    assert clusters[3].num_constraints_satisfied == 2
    assert clusters.root.propagated_num_constraints_satisfied == 6
    assert clusters[2].to_record(len(constraints))["constraint_satisfaction"] == pytest.approx(
        0.5 * 4 / 3
    )
    assert not math.isnan(clusters[3].stability)
