"""Tests for sanity checks (fzd5.evaluation.sanity)."""

import numpy as np
import pandas as pd
import pytest

from fzd5.analysis.clustering import cluster_mutations
from fzd5.evaluation.sanity import (
    check_clustering,
    check_observations,
    check_similarity_matrix,
    print_check_report,
)


@pytest.fixture
def obs():
    return pd.DataFrame({
        "dataset_id": ["d"] * 4,
        "mutation": ["WT", "WT", "W73A", "W73A"],
        "assay_type": ["a"] * 4,
        "replicate": ["1", "2", "1", "2"],
        "value": [100.0, 100.0, 50.0, 55.0],
        "value_raw": [1.0, 1.1, 0.5, 0.6],
    })


class TestCheckObservations:

    def test_clean(self, obs):
        passed, issues = check_observations(obs)
        assert passed
        assert issues == []

    def test_missing_column(self, obs):
        passed, issues = check_observations(obs.drop(columns=["value_raw"]))
        assert not passed
        assert "value_raw" in issues[0]

    def test_nulls_and_infinite(self, obs):
        obs.loc[0, "value"] = np.nan
        obs.loc[1, "value"] = np.inf
        passed, issues = check_observations(obs)
        assert not passed
        assert any("nulls" in i for i in issues)
        assert any("infinite" in i for i in issues)

    def test_duplicate_keys(self, obs):
        passed, issues = check_observations(pd.concat([obs, obs.iloc[[0]]]))
        assert not passed
        assert any("duplicate" in i for i in issues)

    def test_assay_without_wild_type(self, obs):
        extra = obs.iloc[[2]].assign(assay_type="b")
        passed, issues = check_observations(pd.concat([obs, extra]))
        assert not passed
        assert any("no WT" in i for i in issues)

    def test_empty(self, obs):
        passed, _ = check_observations(obs.iloc[0:0])
        assert not passed


class TestCheckSimilarityMatrix:

    def test_clean(self, group_matrix):
        assert check_similarity_matrix(group_matrix)[0]

    def test_out_of_range(self, group_matrix):
        group_matrix.iloc[0, 0] = 1.5
        passed, issues = check_similarity_matrix(group_matrix)
        assert not passed
        assert any("[0, 1]" in i for i in issues)

    def test_constant_column(self, group_matrix):
        group_matrix["flat"] = 0.0
        passed, issues = check_similarity_matrix(group_matrix)
        assert not passed
        assert any("flat" in i for i in issues)

    def test_too_small(self, group_matrix):
        assert not check_similarity_matrix(group_matrix.iloc[:2])[0]


def test_check_clustering(group_matrix):
    result = cluster_mutations(group_matrix, {})
    passed, issues = check_clustering(result, group_matrix)
    assert passed, issues


def test_check_clustering_flags_unassigned(group_matrix):
    result = cluster_mutations(group_matrix, {})
    result.assignments = result.assignments.iloc[1:]
    passed, issues = check_clustering(result, group_matrix)
    assert not passed
    assert any("no cluster" in i for i in issues)


def test_check_clustering_flags_foreign_and_repeated_rows(group_matrix):
    result = cluster_mutations(group_matrix, {})
    extra = pd.DataFrame({"mutation": ["X1", "M1"], "cluster": [1, 1], "silhouette": [0.5, 0.5]})
    result.assignments = pd.concat([result.assignments, extra], ignore_index=True)
    passed, issues = check_clustering(result, group_matrix)
    assert not passed
    assert any("not in the matrix" in i for i in issues)
    assert any("more than once" in i for i in issues)


def test_check_clustering_missing_column(group_matrix):
    result = cluster_mutations(group_matrix, {})
    result.assignments = result.assignments.drop(columns="cluster")
    passed, issues = check_clustering(result, group_matrix)
    assert not passed
    assert issues == ["Missing assignment column: cluster"]


def test_print_check_report(group_matrix, obs, caplog):
    with caplog.at_level("INFO"):
        print_check_report({
            "observations": check_observations(obs),
            "similarity_matrix": check_similarity_matrix(group_matrix),
        })
    assert "2 / 2 checks passed" in caplog.text
