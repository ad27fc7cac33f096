"""Shared fixtures: a small synthetic FZD5 assay campaign on disk.

Ten constructs fall into three well-separated response groups (WT-like,
loss-of-function, biased), measured in triplicate across two datasets.
"""

import pandas as pd
import pytest
import yaml


# mutation -> (signal, ec50, gq delta) before replicate jitter
PROFILES = {
    "WT": (100.0, 1.0, 0.50),
    "W73A": (95.0, 1.1, 0.52),
    "R85A": (105.0, 0.9, 0.48),
    "Y126F": (98.0, 1.05, 0.50),
    "D229A": (20.0, 10.0, 0.10),
    "L231A": (25.0, 12.0, 0.12),
    "F235A": (18.0, 9.0, 0.08),
    "K350A": (60.0, 100.0, 0.90),
    "E352A": (62.0, 110.0, 0.95),
    "T354A": (58.0, 95.0, 0.88),
}
GROUPS = {
    "wt_like": {"WT", "W73A", "R85A", "Y126F"},
    "loss": {"D229A", "L231A", "F235A"},
    "biased": {"K350A", "E352A", "T354A"},
}
BW_NUMBERS = {
    "W73A": "1.39",
    "R85A": "12.50",
    "Y126F": "3.40",
    "D229A": "45.50",
    "L231A": "5.36",
    "F235A": "5.40",
    "K350A": "6.40x40",
    "E352A": "6.42x42",
    "T354A": "67.50",
}
REPLICATES = ["1", "2", "3"]
MOCK_DELTA = 0.05


def _jitter(i, r):
    return 1.0 + 0.02 * (((i + r) % 3) - 1)


def make_signaling_frame():
    rows = []
    for i, (mutation, (signal, ec50, _)) in enumerate(PROFILES.items()):
        for r, replicate in enumerate(REPLICATES):
            rows.append({
                "mutation": mutation,
                "replicate": replicate,
                "signal": signal * _jitter(i, r),
                "ec50": ec50 * _jitter(i, r + 1),
            })
    return pd.DataFrame(rows)


def make_gq_frame():
    rows = []
    for i, (mutation, (_, _, delta)) in enumerate(PROFILES.items()):
        for r, replicate in enumerate(REPLICATES):
            rows.append({"mutation": mutation, "replicate": replicate, "delta": delta * _jitter(i, r + 2)})
    for replicate in REPLICATES:
        rows.append({"mutation": "mock", "replicate": replicate, "delta": MOCK_DELTA})
    return pd.DataFrame(rows)


def make_config():
    config = {
        "receptor": "FZD5",
        "wild_type_label": "WT",
        "random_state": 7,
        "datasets": [
            {
                "dataset_id": "signaling",
                "path": "signaling.csv",
                "replicate_col": "replicate",
                "measures": [
                    {"column": "signal", "assay_type": "signal", "normalization": "percent_wt"},
                    {"column": "ec50", "assay_type": "log_EC50", "transform": "log10"},
                ],
            },
            {
                "dataset_id": "gq",
                "path": "gq.tsv",
                "replicate_col": "replicate",
                "control_labels": ["mock"],
                "measures": [
                    {
                        "column": "delta",
                        "assay_type": "Gq",
                        "normalization": "baseline_delta",
                        "baseline_label": "mock",
                    },
                ],
            },
        ],
        "annotation": {"path": "annotation.csv", "mutation_col": "mutation", "bw_col": "bw_number"},
        "matrix": {"assays": None, "include_wild_type": True, "missing": "drop"},
        "clustering": {"k": None, "k_min": 2, "k_max": 6},
        "embedding": {"pca_components": 2, "nmds_components": 2, "nmds_n_init": 2, "nmds_max_iter": 300},
        "statistics": {"alpha": 0.05, "correlation_method": "spearman"},
        "structure": {"color_assay": "signal", "colorscale": "RdBu"},
    }
    return config


@pytest.fixture
def data_dir(tmp_path):
    """Raw CSV/TSV inputs for the synthetic campaign."""
    raw = tmp_path / "data_raw"
    raw.mkdir()
    make_signaling_frame().to_csv(raw / "signaling.csv", index=False)
    make_gq_frame().to_csv(raw / "gq.tsv", sep="\t", index=False)
    pd.DataFrame(
        {"mutation": list(BW_NUMBERS), "bw_number": list(BW_NUMBERS.values())}
    ).to_csv(raw / "annotation.csv", index=False)
    return raw


@pytest.fixture
def config():
    return make_config()


@pytest.fixture
def config_path(tmp_path, config):
    path = tmp_path / "fzd5_test.yaml"
    path.write_text(yaml.safe_dump(config))
    return path


@pytest.fixture
def group_matrix():
    """Rescaled-looking matrix with three obvious groups."""
    return pd.DataFrame(
        {
            "a": [0.0, 0.05, 0.02, 0.95, 1.0, 0.97, 0.5, 0.52, 0.48],
            "b": [1.0, 0.96, 0.98, 0.0, 0.03, 0.05, 0.5, 0.47, 0.51],
        },
        index=pd.Index(["M1", "M2", "M3", "M4", "M5", "M6", "M7", "M8", "M9"], name="mutation"),
    )
