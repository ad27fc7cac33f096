"""
Per-mutant summary statistics.

Aggregates replicates to (mutation, assay_type) mean / SD / SEM, tests each
mutant against the wild type, and correlates assays across mutants.
"""

import logging
from typing import Optional

import numpy as np
import pandas as pd
from scipy import stats

from fzd5.config import validate_dataframe
from fzd5.constants import SUMMARY_COLUMNS

logger = logging.getLogger(__name__)


def summarize_observations(obs: pd.DataFrame) -> pd.DataFrame:
    """
    Aggregate replicates per (mutation, assay_type).

    Args:
        obs: Long observation table with normalized ``value``

    Returns:
        DataFrame with SUMMARY_COLUMNS. ``n`` is always >= 1; ``sd`` and
        ``sem`` are NaN when only one replicate exists.
    """
    validate_dataframe(obs, "observations", required_columns=["mutation", "assay_type", "value"])

    valid = obs.dropna(subset=["value"])
    grouped = valid.groupby(["assay_type", "mutation"], sort=False)["value"]
    summary = grouped.agg(n="count", mean="mean", sd="std").reset_index()
    summary["sem"] = summary["sd"] / np.sqrt(summary["n"])

    n_single = (summary["n"] == 1).sum()
    if n_single:
        logger.info(f"{n_single} (mutation, assay) groups have a single replicate; SD undefined")

    logger.info(
        f"Summarized {len(valid)} observations into {len(summary)} "
        f"(mutation, assay) groups"
    )
    return summary[SUMMARY_COLUMNS]


def compare_to_wild_type(
    obs: pd.DataFrame,
    wild_type_label: str = "WT",
    alpha: float = 0.05,
) -> pd.DataFrame:
    """
    Welch's t-test of every mutant against the wild type, per assay.

    P-values are Benjamini-Hochberg adjusted within each assay. Groups with
    fewer than two replicates on either side are not tested.

    Returns:
        DataFrame: mutation, assay_type, n, n_wt, mean_diff, t_stat, p_value,
        p_adj, significant
    """
    records = []
    for assay_type, assay_obs in obs.dropna(subset=["value"]).groupby("assay_type", sort=False):
        wt_values = assay_obs.loc[assay_obs["mutation"] == wild_type_label, "value"].to_numpy()
        if len(wt_values) == 0:
            logger.warning(f"No wild-type observations for {assay_type}; skipping comparison")
            continue

        for mutation, mut_obs in assay_obs.groupby("mutation", sort=False):
            if mutation == wild_type_label:
                continue
            values = mut_obs["value"].to_numpy()
            record = {
                "mutation": mutation,
                "assay_type": assay_type,
                "n": len(values),
                "n_wt": len(wt_values),
                "mean_diff": values.mean() - wt_values.mean(),
                "t_stat": np.nan,
                "p_value": np.nan,
            }
            if len(values) >= 2 and len(wt_values) >= 2:
                result = stats.ttest_ind(values, wt_values, equal_var=False)
                record["t_stat"] = float(result.statistic)
                record["p_value"] = float(result.pvalue)
            records.append(record)

    columns = [
        "mutation", "assay_type", "n", "n_wt", "mean_diff",
        "t_stat", "p_value", "p_adj", "significant",
    ]
    if not records:
        return pd.DataFrame(columns=columns)

    comparison = pd.DataFrame(records)
    comparison["p_adj"] = np.nan
    for assay_type, idx in comparison.groupby("assay_type").groups.items():
        p_values = comparison.loc[idx, "p_value"]
        tested = p_values.dropna()
        if tested.empty:
            continue
        comparison.loc[tested.index, "p_adj"] = stats.false_discovery_control(tested.to_numpy(), method="bh")

    comparison["significant"] = comparison["p_adj"].lt(alpha)
    logger.info(
        f"Compared {len(comparison)} (mutation, assay) groups to {wild_type_label}: "
        f"{int(comparison['significant'].sum())} significant at FDR {alpha}"
    )
    return comparison[columns]


def assay_correlations(
    summary: pd.DataFrame,
    method: str = "spearman",
    assays: Optional[list] = None,
) -> pd.DataFrame:
    """Assay x assay correlation of per-mutant means (pairwise complete)."""
    wide = summary.pivot(index="mutation", columns="assay_type", values="mean")
    if assays is not None:
        wide = wide[assays]
    return wide.corr(method=method)
