"""Tests for Ward clustering and the silhouette sweep (fzd5.analysis.clustering)."""

import numpy as np
import pandas as pd
import pytest

from fzd5.analysis.clustering import (
    choose_cluster_count,
    cluster_mutations,
    cluster_profiles,
    cut_tree,
    silhouette_sweep,
    ward_linkage,
)

GROUPS = [{"M1", "M2", "M3"}, {"M4", "M5", "M6"}, {"M7", "M8", "M9"}]


class TestClusterMutations:

    def test_recovers_groups(self, group_matrix):
        result = cluster_mutations(group_matrix, {"clustering": {"k_min": 2, "k_max": 6}})
        assert result.k == 3
        assert result.k_source == "silhouette"
        found = [set(g["mutation"]) for _, g in result.assignments.groupby("cluster")]
        assert sorted(found, key=min) == sorted(GROUPS, key=min)

    def test_every_mutation_assigned(self, group_matrix):
        result = cluster_mutations(group_matrix, {})
        assert list(result.assignments["mutation"]) == list(group_matrix.index)
        assert result.assignments["silhouette"].between(-1, 1).all()
        assert result.mean_silhouette > 0.7

    def test_cluster_ids_follow_leaf_order(self, group_matrix):
        result = cluster_mutations(group_matrix, {})
        by_mutation = result.assignments.set_index("mutation")["cluster"]
        ids_in_leaf_order = [by_mutation[m] for m in result.leaf_order]
        assert ids_in_leaf_order[0] == 1
        assert ids_in_leaf_order == sorted(ids_in_leaf_order)
        assert sorted(set(ids_in_leaf_order)) == list(range(1, result.k + 1))

    def test_fixed_k(self, group_matrix):
        result = cluster_mutations(group_matrix, {"clustering": {"k": 2}})
        assert result.k == 2
        assert result.k_source == "config"
        assert result.assignments["cluster"].nunique() == 2

    def test_fixed_k_without_admissible_sweep(self, group_matrix):
        result = cluster_mutations(group_matrix, {"clustering": {"k": 3, "k_min": 5, "k_max": 3}})
        assert result.k == 3
        assert result.sweep.empty
        assert list(result.sweep.columns) == ["k", "mean_silhouette", "n_singletons"]
        assert result.assignments["cluster"].nunique() == 3

    def test_sweep_still_required_without_fixed_k(self, group_matrix):
        with pytest.raises(ValueError, match="Cannot sweep"):
            cluster_mutations(group_matrix, {"clustering": {"k_min": 5, "k_max": 3}})

    @pytest.mark.parametrize("k", [1, 9])
    def test_fixed_k_out_of_range(self, group_matrix, k):
        with pytest.raises(ValueError, match="outside"):
            cluster_mutations(group_matrix, {"clustering": {"k": k}})

    def test_deterministic(self, group_matrix):
        a = cluster_mutations(group_matrix, {})
        b = cluster_mutations(group_matrix, {})
        pd.testing.assert_frame_equal(a.assignments, b.assignments)


class TestSweep:

    def test_k_capped_at_n_minus_one(self, group_matrix):
        sweep = silhouette_sweep(group_matrix, ward_linkage(group_matrix), k_min=2, k_max=20)
        assert sweep["k"].tolist() == list(range(2, len(group_matrix)))
        assert list(sweep.columns) == ["k", "mean_silhouette", "n_singletons"]

    def test_no_admissible_k(self):
        matrix = pd.DataFrame({"a": [0.0, 1.0]}, index=["M1", "M2"])
        with pytest.raises(ValueError, match="Cannot sweep"):
            silhouette_sweep(matrix, ward_linkage(matrix), k_min=2, k_max=5)

    def test_singletons_counted(self, group_matrix):
        sweep = silhouette_sweep(group_matrix, ward_linkage(group_matrix), k_min=8, k_max=8)
        # 8 clusters from 9 points: one pair, seven singletons
        assert sweep["n_singletons"].iloc[0] == 7

    def test_choose_highest(self):
        sweep = pd.DataFrame({"k": [2, 3, 4], "mean_silhouette": [0.4, 0.7, 0.5]})
        assert choose_cluster_count(sweep) == 3

    def test_tie_goes_to_smallest_k(self):
        sweep = pd.DataFrame({"k": [4, 2, 3], "mean_silhouette": [0.6, 0.6, 0.2]})
        assert choose_cluster_count(sweep) == 2

    def test_all_missing_scores(self):
        with pytest.raises(ValueError):
            choose_cluster_count(pd.DataFrame({"k": [2], "mean_silhouette": [np.nan]}))


def test_cut_tree_sizes(group_matrix):
    labels = cut_tree(ward_linkage(group_matrix), 3)
    assert sorted(np.bincount(labels)[1:].tolist()) == [3, 3, 3]


def test_cluster_profiles(group_matrix):
    result = cluster_mutations(group_matrix, {})
    profiles = cluster_profiles(group_matrix, result.assignments)
    assert profiles.shape == (3, 2)
    assert profiles.index.name == "cluster"
    assert profiles.to_numpy().min() >= 0.0
    assert profiles.to_numpy().max() <= 1.0
