#!/usr/bin/env python3
"""
Hierarchical clustering of mutants on the rescaled assay matrix.

Ensures every mutation in the similarity matrix has:
- cluster: Ward cluster id, numbered 1..k in dendrogram leaf order
- silhouette: its silhouette width at the chosen k

The cluster count comes from a silhouette-width sweep unless the config
fixes ``clustering.k``.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Any, List, Optional

import numpy as np
import pandas as pd
from scipy.cluster.hierarchy import fcluster, leaves_list, linkage
from sklearn.metrics import silhouette_samples, silhouette_score

logger = logging.getLogger(__name__)

SWEEP_COLUMNS = ["k", "mean_silhouette", "n_singletons"]


@dataclass
class ClusteringResult:
    """Output of the clustering phase."""
    linkage: np.ndarray
    k: int
    assignments: pd.DataFrame
    sweep: pd.DataFrame
    leaf_order: List[str] = field(default_factory=list)
    k_source: str = "silhouette"

    @property
    def mean_silhouette(self) -> float:
        return float(self.assignments["silhouette"].mean())


def ward_linkage(matrix: pd.DataFrame) -> np.ndarray:
    """Ward's minimum-variance linkage on Euclidean distances."""
    return linkage(matrix.to_numpy(), method="ward", metric="euclidean")


def cut_tree(linkage_matrix: np.ndarray, k: int) -> np.ndarray:
    """
    Cut the dendrogram into ``k`` clusters.

    Cluster ids are renumbered 1..k in dendrogram leaf order, so cluster 1
    holds the leftmost leaf.
    """
    raw = fcluster(linkage_matrix, t=k, criterion="maxclust")
    renumber: Dict[int, int] = {}
    for leaf in leaves_list(linkage_matrix):
        label = raw[leaf]
        if label not in renumber:
            renumber[label] = len(renumber) + 1
    return np.array([renumber[label] for label in raw])


def silhouette_sweep(
    matrix: pd.DataFrame,
    linkage_matrix: np.ndarray,
    k_min: int = 2,
    k_max: Optional[int] = None,
) -> pd.DataFrame:
    """
    Mean silhouette width for every admissible cluster count.

    Silhouettes are defined for 2 <= k <= n - 1, so ``k_max`` is capped there.

    Returns:
        DataFrame with columns k, mean_silhouette, n_singletons
    """
    n = len(matrix)
    upper = n - 1 if k_max is None else min(k_max, n - 1)
    k_min = max(k_min, 2)
    if upper < k_min:
        raise ValueError(f"Cannot sweep cluster counts: {n} mutations allow no k in [{k_min}, {k_max}]")

    values = matrix.to_numpy()
    records = []
    for k in range(k_min, upper + 1):
        labels = cut_tree(linkage_matrix, k)
        n_found = len(np.unique(labels))
        if n_found < 2:
            score = np.nan
        else:
            score = float(silhouette_score(values, labels, metric="euclidean"))
        sizes = np.bincount(labels)[1:]
        records.append({
            "k": k,
            "mean_silhouette": score,
            "n_singletons": int((sizes == 1).sum()),
        })
        logger.debug(f"  k={k}: mean silhouette={score:.4f}")

    return pd.DataFrame(records, columns=SWEEP_COLUMNS)


def choose_cluster_count(sweep: pd.DataFrame) -> int:
    """k with the highest mean silhouette width; ties go to the smallest k."""
    scored = sweep.dropna(subset=["mean_silhouette"]).sort_values("k")
    if scored.empty:
        raise ValueError("Silhouette sweep produced no scores")
    best = scored["mean_silhouette"].max()
    return int(scored.loc[np.isclose(scored["mean_silhouette"], best), "k"].iloc[0])


def silhouette_widths(matrix: pd.DataFrame, labels: np.ndarray) -> pd.Series:
    """Per-mutation silhouette width."""
    widths = silhouette_samples(matrix.to_numpy(), labels, metric="euclidean")
    return pd.Series(widths, index=matrix.index, name="silhouette")


def cluster_profiles(matrix: pd.DataFrame, assignments: pd.DataFrame) -> pd.DataFrame:
    """Mean rescaled value per cluster and assay."""
    clusters = assignments.set_index("mutation")["cluster"].reindex(matrix.index)
    profiles = matrix.groupby(clusters.values).mean()
    profiles.index.name = "cluster"
    return profiles


def cluster_mutations(matrix: pd.DataFrame, config: Dict[str, Any]) -> ClusteringResult:
    """
    Run Ward clustering, choose k, and assign every mutation.

    Args:
        matrix: Similarity matrix from build_similarity_matrix()
        config: Analysis config; reads the ``clustering`` section

    Returns:
        ClusteringResult
    """
    clustering_cfg = config.get("clustering", {})
    k_min = clustering_cfg.get("k_min", 2)
    k_max = clustering_cfg.get("k_max")
    fixed_k = clustering_cfg.get("k")

    logger.info(f"Clustering {len(matrix)} mutations with Ward linkage")
    linkage_matrix = ward_linkage(matrix)
    if fixed_k is not None:
        if not 2 <= fixed_k <= len(matrix) - 1:
            raise ValueError(f"clustering.k={fixed_k} outside [2, {len(matrix) - 1}]")
        try:
            sweep = silhouette_sweep(matrix, linkage_matrix, k_min=k_min, k_max=k_max)
        except ValueError as e:
            # The sweep only informs figures once k is fixed
            logger.warning(f"Skipping silhouette sweep: {e}")
            sweep = pd.DataFrame(columns=SWEEP_COLUMNS)
        k = int(fixed_k)
        k_source = "config"
        logger.info(f"Using configured cluster count k={k}")
    else:
        sweep = silhouette_sweep(matrix, linkage_matrix, k_min=k_min, k_max=k_max)
        k = choose_cluster_count(sweep)
        k_source = "silhouette"
        best = sweep.loc[sweep["k"] == k, "mean_silhouette"].iloc[0]
        logger.info(f"Silhouette sweep chose k={k} (mean width {best:.4f})")

    labels = cut_tree(linkage_matrix, k)
    widths = silhouette_widths(matrix, labels)

    assignments = pd.DataFrame({
        "mutation": matrix.index,
        "cluster": labels,
        "silhouette": widths.values,
    })
    leaf_order = [matrix.index[i] for i in leaves_list(linkage_matrix)]

    cluster_counts = assignments["cluster"].value_counts().sort_index()
    logger.info(f"Cluster sizes:\n{cluster_counts.to_string()}")

    return ClusteringResult(
        linkage=linkage_matrix,
        k=k,
        assignments=assignments,
        sweep=sweep,
        leaf_order=leaf_order,
        k_source=k_source,
    )
