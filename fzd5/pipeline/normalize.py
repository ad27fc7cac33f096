#!/usr/bin/env python3
"""
FZD5 Normalization Module - Transform and Rescale Assay Values

Applies the per-measure analysis transforms configured for each assay and
provides the [0, 1] rescaling used before distance computation.

Key Responsibilities:
  - Value transforms (log10 for BRET50, neg_log10, ln, identity)
  - Express readouts relative to the wild type (percent of WT)
  - Subtract a baseline construct (empty vector / mock) per replicate
  - Min-max rescale columns to [0, 1]

Normalization methods:
  - percent_wt: 100 * value / mean(WT), WT mean taken from the same replicate
    when WT was measured there, otherwise the dataset-wide WT mean
  - baseline_delta: value - mean(baseline), same replicate rule
  - none: transformed value is used as-is

Usage:
  from fzd5.pipeline.normalize import apply_measure_normalization
  observations = apply_measure_normalization(observations, config)
"""

import logging
from typing import Dict, Any

import numpy as np
import pandas as pd

from fzd5.constants import VALUE_TRANSFORMS, MEASURE_NORMALIZATIONS

logger = logging.getLogger(__name__)


def transform_values(values: pd.Series, method: str = "identity") -> pd.Series:
    """
    Apply a value transform.

    Args:
        values: Raw measurements
        method: 'identity', 'log10', 'neg_log10' or 'ln'

    Returns:
        Transformed Series (same index)

    Raises:
        ValueError: On unknown method or non-positive input to a log transform
    """
    if method not in VALUE_TRANSFORMS:
        raise ValueError(f"Unknown transform: {method}; expected one of {VALUE_TRANSFORMS}")

    if method == "identity":
        return values.astype(float)

    n_nonpositive = (values.dropna() <= 0).sum()
    if n_nonpositive:
        raise ValueError(
            f"{method} transform requires positive values; found {n_nonpositive} values <= 0"
        )

    if method == "log10":
        return np.log10(values.astype(float))
    if method == "neg_log10":
        return -np.log10(values.astype(float))
    return np.log(values.astype(float))


def _reference_means(
    obs: pd.DataFrame,
    assay_type: str,
    reference_label: str,
) -> pd.Series:
    """
    Reference mean for every row of one assay.

    Uses the reference mean of the row's own replicate when available and
    falls back to the reference mean across all replicates.
    """
    assay_mask = obs["assay_type"] == assay_type
    reference = obs.loc[assay_mask & (obs["mutation"] == reference_label)]
    if reference.empty:
        raise ValueError(
            f"No '{reference_label}' observations for {assay_type}; "
            f"cannot normalize without a reference"
        )

    per_replicate = reference.groupby("replicate")["value"].mean()
    overall = reference["value"].mean()

    replicates = obs.loc[assay_mask, "replicate"]
    ref = replicates.map(per_replicate).fillna(overall)

    n_fallback = (~replicates.isin(per_replicate.index)).sum()
    if n_fallback:
        logger.debug(
            f"{assay_type}: {n_fallback} rows use the pooled {reference_label} mean "
            f"({overall:.4f})"
        )
    return ref


def normalize_to_wild_type(
    obs: pd.DataFrame,
    assay_type: str,
    wild_type_label: str = "WT",
    scale: float = 100.0,
) -> pd.DataFrame:
    """
    Express one assay's values as percent of the wild-type mean.

    Returns:
        Copy of ``obs`` with the assay's ``value`` column rescaled
    """
    df = obs.copy()
    ref = _reference_means(df, assay_type, wild_type_label)
    if (ref == 0).any():
        raise ValueError(f"Wild-type mean is 0 for {assay_type}; percent of WT is undefined")

    mask = df["assay_type"] == assay_type
    df.loc[mask, "value"] = scale * df.loc[mask, "value"] / ref
    return df


def subtract_baseline(
    obs: pd.DataFrame,
    assay_type: str,
    baseline_label: str,
) -> pd.DataFrame:
    """
    Subtract the baseline construct's mean from one assay's values.

    Returns:
        Copy of ``obs`` with the assay's ``value`` column shifted
    """
    df = obs.copy()
    ref = _reference_means(df, assay_type, baseline_label)
    mask = df["assay_type"] == assay_type
    df.loc[mask, "value"] = df.loc[mask, "value"] - ref
    return df


def rescale_unit_interval(values: pd.Series) -> pd.Series:
    """
    Min-max rescale to [0, 1].

    A constant series maps to zeros. Missing values stay missing.
    """
    min_val = values.min()
    max_val = values.max()
    if pd.isna(min_val) or max_val == min_val:
        logger.warning(f"Column {values.name!r} is constant; rescaling to 0")
        return values.where(values.isna(), 0.0).astype(float)
    return (values - min_val) / (max_val - min_val)


def rescale_columns(frame: pd.DataFrame) -> pd.DataFrame:
    """Rescale every column of a numeric frame to [0, 1] independently."""
    return frame.apply(rescale_unit_interval, axis=0)


def apply_measure_normalization(
    obs: pd.DataFrame,
    config: Dict[str, Any],
) -> pd.DataFrame:
    """
    Run the configured transform and normalization for every measure.

    Each measure entry may set:
      - transform: one of VALUE_TRANSFORMS (default identity)
      - normalization: one of MEASURE_NORMALIZATIONS (default none)
      - baseline_label: reference construct for baseline_delta

    Args:
        obs: Long observation table from ingest
        config: Analysis config

    Returns:
        Observation table with ``value`` transformed; ``value_raw`` untouched
    """
    df = obs.copy()
    wild_type_label = config.get("wild_type_label", "WT")

    for dataset_cfg in config.get("datasets", []):
        for measure in dataset_cfg.get("measures", []):
            assay_type = measure.get("assay_type", measure["column"])
            transform = measure.get("transform", "identity")
            normalization = measure.get("normalization", "none")

            if normalization not in MEASURE_NORMALIZATIONS:
                raise ValueError(
                    f"Unknown normalization for {assay_type}: {normalization}; "
                    f"expected one of {MEASURE_NORMALIZATIONS}"
                )

            mask = df["assay_type"] == assay_type
            if not mask.any():
                logger.warning(f"No observations for configured assay {assay_type}")
                continue

            logger.info(f"Normalizing {assay_type} with transform={transform}, normalization={normalization}")
            df.loc[mask, "value"] = transform_values(df.loc[mask, "value_raw"], transform)

            if normalization == "percent_wt":
                df = normalize_to_wild_type(df, assay_type, wild_type_label)
            elif normalization == "baseline_delta":
                baseline_label = measure.get("baseline_label")
                if not baseline_label:
                    raise ValueError(f"{assay_type}: baseline_delta requires baseline_label")
                df = subtract_baseline(df, assay_type, baseline_label)

            values = df.loc[mask, "value"]
            logger.info(f"  Value range: [{values.min():.4f}, {values.max():.4f}]")

    return df
