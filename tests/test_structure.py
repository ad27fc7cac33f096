"""Tests for structural projection (fzd5.analysis.structure)."""

import re

import numpy as np
import pandas as pd
import pytest

from fzd5.analysis.structure import (
    cluster_colors,
    color_by_value,
    map_to_structure,
    residue_color_table,
    segment_cluster_counts,
)
from fzd5.constants import MISSING_COLOR

HEX = re.compile(r"^#[0-9A-Fa-f]{6}$")


@pytest.fixture
def assignments():
    return pd.DataFrame({
        "mutation": ["WT", "W73A", "D229A", "L231A", "K350A"],
        "cluster": [1, 1, 2, 2, 3],
        "silhouette": [0.8, 0.7, 0.9, 0.85, 0.0],
    })


@pytest.fixture
def annotation():
    annotation = pd.DataFrame({
        "mutation": ["W73A", "D229A", "L231A", "K350A"],
        "bw": ["1.39", "45.50", "5.36", "6.40"],
        "helix": [1, 45, 5, 6],
        "locant": [39, 50, 36, 40],
        "segment": ["TM1", "ECL2", "TM5", "TM6"],
        "residue": [73, 229, 231, 350],
    })
    annotation["residue"] = annotation["residue"].astype("Int64")
    return annotation


def test_cluster_colors_stable():
    colors = cluster_colors([3, 1, 2, 1])
    assert list(colors) == [1, 2, 3]
    assert len(set(colors.values())) == 3
    assert cluster_colors([1])[1] == colors[1]


class TestColorByValue:

    def test_hex_and_missing(self):
        colors = color_by_value(pd.Series([0.0, 5.0, np.nan, 10.0]))
        assert colors.iloc[2] == MISSING_COLOR
        assert all(HEX.match(c) for c in colors)

    def test_extremes_differ(self):
        colors = color_by_value(pd.Series([0.0, 10.0]))
        assert colors.iloc[0] != colors.iloc[1]

    def test_equal_values_share_color(self):
        colors = color_by_value(pd.Series([2.0, 2.0, 7.0]))
        assert colors.iloc[0] == colors.iloc[1]

    def test_clipped_to_range(self):
        colors = color_by_value(pd.Series([-5.0, 0.0, 1.0, 9.0]), vmin=0.0, vmax=1.0)
        assert colors.iloc[0] == colors.iloc[1]
        assert colors.iloc[2] == colors.iloc[3]

    def test_all_missing(self):
        colors = color_by_value(pd.Series([np.nan, np.nan]))
        assert (colors == MISSING_COLOR).all()


class TestMapToStructure:

    def test_join_keeps_unannotated(self, assignments, annotation):
        structure_map = map_to_structure(assignments, annotation)
        assert len(structure_map) == len(assignments)
        assert pd.isna(structure_map.set_index("mutation").loc["WT", "bw"])
        assert structure_map["cluster_color"].notna().all()

    def test_without_annotation(self, assignments):
        structure_map = map_to_structure(assignments, None)
        assert structure_map["segment"].isna().all()

    def test_segment_counts_in_sequence_order(self, assignments, annotation):
        counts = segment_cluster_counts(map_to_structure(assignments, annotation))
        assert list(counts.index) == ["TM1", "ECL2", "TM5", "TM6"]
        assert counts.loc["ECL2", 2] == 1
        assert counts.to_numpy().sum() == 4


class TestResidueColorTable:

    def test_sorted_by_residue(self, assignments, annotation):
        table = residue_color_table(map_to_structure(assignments, annotation))
        assert table["residue"].tolist() == [73, 229, 231, 350]
        assert "value_color" not in table.columns

    def test_colored_by_assay(self, assignments, annotation):
        summary = pd.DataFrame({
            "mutation": ["W73A", "D229A", "L231A"],
            "assay_type": ["TOPFlash"] * 3,
            "mean": [90.0, 10.0, 15.0],
        })
        table = residue_color_table(map_to_structure(assignments, annotation), summary, assay="TOPFlash")
        row = table.set_index("mutation").loc["K350A"]
        assert np.isnan(row["TOPFlash"])
        assert row["value_color"] == MISSING_COLOR

    def test_assay_needs_summary(self, assignments, annotation):
        with pytest.raises(ValueError):
            residue_color_table(map_to_structure(assignments, annotation), assay="TOPFlash")

    def test_unknown_assay(self, assignments, annotation):
        summary = pd.DataFrame({"mutation": ["W73A"], "assay_type": ["x"], "mean": [1.0]})
        with pytest.raises(ValueError, match="No summary values"):
            residue_color_table(map_to_structure(assignments, annotation), summary, assay="TOPFlash")
