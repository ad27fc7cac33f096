#!/usr/bin/env python3
"""
Sanity checks and guardrails for FZD5 assay processing.

These checks help catch bad ingestions or degenerate matrices early.
"""

import logging
from typing import Dict, List, Tuple

import numpy as np
import pandas as pd

from fzd5.config import REQUIRED_OBSERVATION_COLUMNS
from fzd5.constants import OBSERVATION_KEY

logger = logging.getLogger(__name__)


def _report(name: str, issues: List[str]) -> Tuple[bool, List[str]]:
    passed = len(issues) == 0
    if passed:
        logger.info(f"✅ {name} checks passed")
    else:
        logger.error(f"❌ {name} checks found {len(issues)} issues:")
        for issue in issues:
            logger.error(f"   - {issue}")
    return passed, issues


def check_observations(
    obs: pd.DataFrame,
    wild_type_label: str = "WT",
) -> Tuple[bool, List[str]]:
    """
    Sanity checks on the long observation table.

    Args:
        obs: Ingested (and optionally normalized) observations
        wild_type_label: Mutation code of the wild type

    Returns:
        (passed: bool, issues: List[str])
    """
    issues = []

    for col in REQUIRED_OBSERVATION_COLUMNS:
        if col not in obs.columns:
            issues.append(f"Missing required column: {col}")
    if issues:
        return _report("observations", issues)

    if obs.empty:
        return _report("observations", ["Observation table is empty"])

    # Check for nulls in critical columns
    for col in ["mutation", "assay_type", "replicate", "value"]:
        if obs[col].isna().any():
            issues.append(f"Column {col} has {obs[col].isna().sum()} nulls")

    if not pd.api.types.is_numeric_dtype(obs["value"]):
        issues.append(f"value should be numeric, got {obs['value'].dtype}")
    else:
        n_infinite = np.isinf(obs["value"]).sum()
        if n_infinite > 0:
            issues.append(f"Found {n_infinite} infinite values in value")

    n_dupes = obs.duplicated(subset=OBSERVATION_KEY).sum()
    if n_dupes:
        issues.append(f"Found {n_dupes} duplicate (mutation, assay_type, replicate) keys")

    # Wild type anchors every assay
    for assay_type, assay_obs in obs.groupby("assay_type"):
        if not (assay_obs["mutation"] == wild_type_label).any():
            issues.append(f"Assay {assay_type} has no {wild_type_label} observations")

    # Single replicates are allowed but worth knowing about
    n_reps = obs.groupby(["mutation", "assay_type"]).size()
    singles = n_reps[n_reps == 1]
    if not singles.empty:
        logger.warning(f"{len(singles)} (mutation, assay) groups have a single replicate")

    return _report("observations", issues)


def check_similarity_matrix(matrix: pd.DataFrame) -> Tuple[bool, List[str]]:
    """Sanity checks on the rescaled mutation x assay matrix."""
    issues = []

    if len(matrix) < 3:
        issues.append(f"Matrix has {len(matrix)} rows; need >= 3 to cluster")

    n_nan = int(matrix.isna().sum().sum())
    if n_nan:
        issues.append(f"Matrix has {n_nan} missing values")

    if matrix.size:
        min_val = float(np.nanmin(matrix.to_numpy()))
        max_val = float(np.nanmax(matrix.to_numpy()))
        if min_val < 0 or max_val > 1:
            issues.append(f"Matrix values should be in [0, 1], got [{min_val:.4f}, {max_val:.4f}]")

    if matrix.index.duplicated().any():
        issues.append("Matrix index has duplicate mutations")

    constant = [c for c in matrix.columns if matrix[c].nunique() <= 1]
    if constant:
        issues.append(f"Constant assay columns carry no information: {constant}")

    return _report("similarity matrix", issues)


def check_clustering(result, matrix: pd.DataFrame) -> Tuple[bool, List[str]]:
    """Sanity checks on a ClusteringResult against its matrix."""
    issues = []
    assignments = result.assignments

    for col in ["mutation", "cluster", "silhouette"]:
        if col not in assignments.columns:
            issues.append(f"Missing assignment column: {col}")
    if issues:
        return _report("clustering", issues)

    if not 2 <= result.k <= len(matrix) - 1:
        issues.append(f"k={result.k} outside [2, {len(matrix) - 1}]")

    missing = set(matrix.index) - set(assignments["mutation"])
    if missing:
        issues.append(f"{len(missing)} mutations have no cluster: {sorted(missing)[:10]}")

    extra = set(assignments["mutation"]) - set(matrix.index)
    if extra:
        issues.append(f"{len(extra)} assigned mutations are not in the matrix: {sorted(extra)[:10]}")

    if assignments["mutation"].duplicated().any():
        issues.append("Some mutations are assigned more than once")

    if assignments["cluster"].isna().any():
        issues.append(f"{assignments['cluster'].isna().sum()} mutations have a null cluster")

    n_clusters = assignments["cluster"].nunique()
    if n_clusters != result.k:
        issues.append(f"Expected {result.k} clusters, found {n_clusters}")

    sizes = assignments["cluster"].value_counts()
    if (sizes == 1).sum() > result.k // 2:
        logger.warning(f"{(sizes == 1).sum()} of {result.k} clusters are singletons")

    return _report("clustering", issues)


def print_check_report(check_results: Dict[str, Tuple[bool, List[str]]]) -> None:
    """
    Log a formatted report of all sanity checks.

    Args:
        check_results: Mapping of check name to (passed, issues)
    """
    passed_checks = sum(1 for passed, _ in check_results.values() if passed)

    logger.info(f"\n{'=' * 60}")
    logger.info("SANITY CHECK REPORT")
    logger.info(f"{'=' * 60}")
    logger.info(f"Overall: {passed_checks} / {len(check_results)} checks passed")

    for check_name, (passed, issues) in check_results.items():
        status = "✅" if passed else "❌"
        logger.info(f"\n{check_name}: {status}")
        for issue in issues:
            logger.info(f"    - {issue}")
