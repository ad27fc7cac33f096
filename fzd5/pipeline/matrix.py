"""
Build the mutation x assay similarity matrix used for clustering and embedding.
"""

import logging
from typing import Iterable, Optional

import pandas as pd
from scipy.spatial.distance import pdist, squareform

from fzd5.config import validate_dataframe
from fzd5.pipeline.normalize import rescale_columns

logger = logging.getLogger(__name__)

MIN_MATRIX_ROWS = 3


def build_similarity_matrix(
    summary: pd.DataFrame,
    assays: Optional[list] = None,
    include_wild_type: bool = True,
    missing: str = "drop",
    wild_type_label: str = "WT",
    exclude: Iterable[str] = (),
) -> pd.DataFrame:
    """
    Pivot per-mutant means to a mutation x assay table rescaled to [0, 1].

    Args:
        summary: Output of summarize_observations()
        assays: Assay columns to keep, in order (default: all, first-seen order)
        include_wild_type: Keep the wild-type row
        missing: 'drop' removes mutations lacking any assay; 'median' imputes
            the column median
        wild_type_label: Mutation code of the wild type
        exclude: Mutation codes to leave out (controls, baselines)

    Returns:
        DataFrame indexed by mutation, one column per assay, values in [0, 1]

    Raises:
        ValueError: On unknown assays, unknown missing policy, or fewer than
            three complete mutations
    """
    validate_dataframe(summary, "summary", required_columns=["mutation", "assay_type", "mean"])

    available = list(dict.fromkeys(summary["assay_type"]))
    if assays is None:
        assays = available
    unknown = [a for a in assays if a not in available]
    if unknown:
        raise ValueError(f"Unknown assay types for similarity matrix: {unknown}; available: {available}")

    mutation_order = list(dict.fromkeys(summary["mutation"]))
    wide = summary.pivot(index="mutation", columns="assay_type", values="mean")
    wide = wide.reindex(index=mutation_order, columns=assays)
    wide.columns.name = None

    excluded = set(exclude)
    if not include_wild_type:
        excluded.add(wild_type_label)
    if excluded:
        wide = wide.drop(index=[m for m in wide.index if m in excluded])

    incomplete = wide.index[wide.isna().any(axis=1)]
    if len(incomplete):
        if missing == "drop":
            logger.warning(
                f"Dropping {len(incomplete)} mutations without data for every assay: "
                f"{list(incomplete)[:10]}"
            )
            wide = wide.drop(index=incomplete)
        elif missing == "median":
            logger.warning(f"Imputing column medians for {len(incomplete)} incomplete mutations")
            wide = wide.fillna(wide.median())
        else:
            raise ValueError(f"Unknown missing-value policy: {missing}; expected 'drop' or 'median'")

    if len(wide) < MIN_MATRIX_ROWS:
        raise ValueError(
            f"Similarity matrix has {len(wide)} complete mutations; "
            f"at least {MIN_MATRIX_ROWS} are needed for clustering"
        )

    matrix = rescale_columns(wide)
    matrix.index.name = "mutation"
    logger.info(f"Built similarity matrix: {matrix.shape[0]} mutations x {matrix.shape[1]} assays")
    return matrix


def pairwise_distances(matrix: pd.DataFrame, metric: str = "euclidean") -> pd.DataFrame:
    """Square distance matrix between mutations, labelled on both axes."""
    distances = squareform(pdist(matrix.to_numpy(), metric=metric))
    return pd.DataFrame(distances, index=matrix.index, columns=matrix.index)
