#!/usr/bin/env python3
"""
FZD5 Ingestion Module - Load and Reshape Raw Assay CSVs

Loads the assay exports listed in the analysis config and converts them to
the long observation table used by every downstream phase.

Key Responsibilities:
  - Load raw CSV/TSV assay exports (DEP BRET, DVL shift, TOPFlash, Gq, BRET-zero)
  - Reshape configured measure columns from wide to long
  - Parse mutation codes (W73A, p.Trp73Ala) for residue numbers
  - Parse Ballesteros-Weinstein positions (3.50, 45.50, 6.40x40)
  - Join the structural annotation onto observations
  - Output: one row per (mutation, assay_type, replicate)

Extensibility:
  - New assays only need a dataset entry in config/fzd5.yaml
  - New mutation notations go in parse_mutation()

Usage:
  from fzd5.pipeline.ingest import ingest_all_datasets
  observations = ingest_all_datasets(config, data_dir)
"""

import logging
import re
from pathlib import Path
from typing import Dict, Optional, Any, List

import pandas as pd

from fzd5.config import validate_file_exists, validate_dataframe
from fzd5.constants import (
    AA_THREE_TO_ONE,
    AA_ONE_LETTER,
    BW_HELIX_SEGMENTS,
    BW_LOOP_SEGMENTS,
    OBSERVATION_COLUMNS,
    OBSERVATION_KEY,
)

logger = logging.getLogger(__name__)

_MUTATION_RE = re.compile(r"^([A-Za-z*]+?)(\d+)([A-Za-z*]+)$")
_BW_RE = re.compile(r"^(\d{1,2})\.(\d{2,3})(?:x\d{2,3})?$")


def parse_mutation(code: str, wild_type_label: str = "WT") -> Optional[Dict[str, Any]]:
    """
    Parse a single amino-acid substitution code.

    Handles formats like:
    - W73A (one-letter codes)
    - p.W73A (with 'p.' prefix)
    - p.Trp73Ala / Trp73Ala (three-letter codes)

    The wild-type label parses to an entry with ``is_wild_type=True`` and
    null residue fields.

    Returns:
        Dict with wt_aa, residue, mut_aa, is_wild_type, or None if unparseable
    """
    if not code or not isinstance(code, str):
        return None

    code = code.strip()
    if code == wild_type_label:
        return {"wt_aa": None, "residue": None, "mut_aa": None, "is_wild_type": True}

    if code.startswith("p."):
        code = code[2:]

    match = _MUTATION_RE.match(code)
    if not match:
        return None

    wt_str, pos_str, mut_str = match.groups()
    wt_aa = AA_THREE_TO_ONE.get(wt_str.upper(), wt_str.upper())
    mut_aa = AA_THREE_TO_ONE.get(mut_str.upper(), mut_str.upper())

    # Only accept single residues on both sides
    if wt_aa not in AA_ONE_LETTER or mut_aa not in AA_ONE_LETTER:
        return None

    return {
        "wt_aa": wt_aa,
        "residue": int(pos_str),
        "mut_aa": mut_aa,
        "is_wild_type": False,
    }


def parse_bw_number(text: Any) -> Optional[Dict[str, Any]]:
    """
    Parse a Ballesteros-Weinstein position.

    Examples:
      "3.50"    -> helix 3, locant 50, segment TM3
      "45.50"   -> helix 45, locant 50, segment ECL2
      "6.40x40" -> helix 6, locant 40, segment TM6 (GPCRdb suffix ignored)
    """
    if text is None or (isinstance(text, float) and pd.isna(text)):
        return None

    text = str(text).strip()
    match = _BW_RE.match(text)
    if not match:
        return None

    helix = int(match.group(1))
    locant = int(match.group(2))

    if helix in BW_HELIX_SEGMENTS:
        segment = BW_HELIX_SEGMENTS[helix]
    elif helix in BW_LOOP_SEGMENTS:
        segment = BW_LOOP_SEGMENTS[helix]
    else:
        return None

    return {
        "bw": f"{helix}.{match.group(2)}",
        "helix": helix,
        "locant": locant,
        "segment": segment,
    }


def _read_table(path: Path, **kwargs) -> pd.DataFrame:
    """Read a CSV (comma) or any other suffix as tab-separated."""
    if path.suffix.lower() == ".csv":
        return pd.read_csv(path, **kwargs)
    return pd.read_csv(path, sep="\t", **kwargs)


def load_assay_dataset(
    dataset_cfg: Dict[str, Any],
    data_dir: Path,
    wild_type_label: str = "WT",
) -> pd.DataFrame:
    """
    Load one assay CSV and reshape its measures to the long schema.

    Args:
        dataset_cfg: Dataset entry from the analysis config with keys:
            - dataset_id, path
            - mutation_col (default "mutation")
            - replicate_col (optional; replicates are numbered when absent)
            - measures: list of {column, assay_type, ...}
        data_dir: Directory holding the raw CSVs
        wild_type_label: Mutation code of the wild-type receptor

    Returns:
        DataFrame with OBSERVATION_COLUMNS

    Raises:
        FileNotFoundError: If the CSV does not exist
        ValueError: If configured columns are missing or values are not numeric
    """
    dataset_id = dataset_cfg["dataset_id"]
    raw_path = Path(dataset_cfg["path"])
    if not raw_path.is_absolute():
        raw_path = Path(data_dir) / raw_path

    validate_file_exists(raw_path, f"dataset {dataset_id}")

    mutation_col = dataset_cfg.get("mutation_col", "mutation")
    replicate_col = dataset_cfg.get("replicate_col")
    key_dtypes = {mutation_col: str}
    if replicate_col:
        key_dtypes[replicate_col] = str

    df_raw = _read_table(raw_path, dtype=key_dtypes)
    logger.info(f"Loaded {len(df_raw)} rows for {dataset_id} from {raw_path.name}")

    measures = dataset_cfg.get("measures", [])
    if not measures:
        raise ValueError(f"Dataset {dataset_id} has no measures configured")

    required = [mutation_col] + [m["column"] for m in measures]
    if replicate_col:
        required.append(replicate_col)
    try:
        validate_dataframe(df_raw, dataset_id, required_columns=required)
    except ValueError as e:
        raise ValueError(
            f"{e}\nAvailable columns in {raw_path.name}: {list(df_raw.columns)}"
        ) from e

    key_cols = [mutation_col] + ([replicate_col] if replicate_col else [])
    df = df_raw.dropna(subset=key_cols).copy()
    n_unkeyed = len(df_raw) - len(df)
    if n_unkeyed:
        logger.warning(f"{dataset_id}: dropped {n_unkeyed} rows with no {' or '.join(key_cols)}")

    df[mutation_col] = df[mutation_col].astype(str).str.strip()

    if replicate_col:
        df["replicate"] = df[replicate_col].astype(str).str.strip()
    else:
        # Number replicates in file order within each mutation
        df["replicate"] = (df.groupby(mutation_col).cumcount() + 1).map(lambda i: f"r{i}")

    frames = []
    for measure in measures:
        column = measure["column"]
        assay_type = measure.get("assay_type", column)

        try:
            values = pd.to_numeric(df[column], errors="raise")
        except (ValueError, TypeError) as e:
            raise ValueError(
                f"Non-numeric value in {dataset_id}:{column}: {e}\n"
                f"File: {raw_path}"
            ) from e

        frame = pd.DataFrame({
            "dataset_id": dataset_id,
            "mutation": df[mutation_col].values,
            "assay_type": assay_type,
            "replicate": df["replicate"].values,
            "value": values.astype(float).values,
            "value_raw": values.astype(float).values,
        })
        n_missing = frame["value_raw"].isna().sum()
        frame = frame.dropna(subset=["value_raw"])
        logger.info(f"  {assay_type}: {len(frame)} values ({n_missing} missing dropped)")
        frames.append(frame)

    df_long = pd.concat(frames, ignore_index=True)

    control_labels = set(dataset_cfg.get("control_labels", []))
    codes = df_long["mutation"].drop_duplicates()
    unparseable = [
        c for c in codes
        if c not in control_labels and parse_mutation(c, wild_type_label) is None
    ]
    if unparseable:
        logger.warning(
            f"{dataset_id}: {len(unparseable)} mutation codes are not single substitutions "
            f"and carry no residue number: {unparseable[:10]}"
        )

    return df_long[OBSERVATION_COLUMNS]


def check_unique_keys(obs: pd.DataFrame) -> None:
    """Raise if any (mutation, assay_type, replicate) occurs more than once."""
    dupes = obs[obs.duplicated(subset=OBSERVATION_KEY, keep=False)]
    if not dupes.empty:
        examples = dupes[OBSERVATION_KEY].drop_duplicates().head(5).to_dict("records")
        raise ValueError(
            f"Found {len(dupes)} observations with duplicate (mutation, assay_type, replicate) keys.\n"
            f"Examples: {examples}\n"
            f"Give each replicate a distinct id in the source CSV."
        )


def ingest_all_datasets(
    config: Dict[str, Any],
    data_dir: Path,
) -> pd.DataFrame:
    """
    Ingest every dataset listed in the config.

    Args:
        config: Analysis config from load_analysis_config()
        data_dir: Directory holding the raw CSVs

    Returns:
        Long observation table across all datasets
    """
    datasets: List[Dict[str, Any]] = config.get("datasets", [])
    if not datasets:
        raise ValueError("No datasets in config")

    wild_type_label = config.get("wild_type_label", "WT")

    frames = []
    for dataset_cfg in datasets:
        dataset_id = dataset_cfg.get("dataset_id")
        if not dataset_id:
            logger.warning("Skipping dataset with no dataset_id")
            continue
        logger.info(f"Ingesting {dataset_id}...")
        frames.append(load_assay_dataset(dataset_cfg, data_dir, wild_type_label))

    if not frames:
        raise ValueError("No datasets could be ingested")

    obs = pd.concat(frames, ignore_index=True)
    check_unique_keys(obs)

    logger.info(
        f"Ingested {len(obs)} observations: {obs['mutation'].nunique()} mutations, "
        f"{obs['assay_type'].nunique()} assay types"
    )
    return obs


def load_structure_annotation(
    annotation_cfg: Dict[str, Any],
    data_dir: Path,
    wild_type_label: str = "WT",
) -> pd.DataFrame:
    """
    Load the structural annotation CSV (mutation -> BW position).

    Returns:
        DataFrame with one row per mutation: mutation, bw, helix, locant,
        segment, residue

    Raises:
        ValueError: On unparseable BW numbers or conflicting duplicate rows
    """
    ann_path = Path(annotation_cfg["path"])
    if not ann_path.is_absolute():
        ann_path = Path(data_dir) / ann_path
    validate_file_exists(ann_path, "structural annotation")

    mutation_col = annotation_cfg.get("mutation_col", "mutation")
    bw_col = annotation_cfg.get("bw_col", "bw_number")
    residue_col = annotation_cfg.get("residue_col")

    # BW positions stay text; 3.50 read as a float loses its locant width
    df_raw = _read_table(ann_path, dtype={mutation_col: str, bw_col: str})
    required = [mutation_col, bw_col] + ([residue_col] if residue_col else [])
    validate_dataframe(df_raw, "structure_annotation", required_columns=required)

    records = []
    bad = []
    for _, row in df_raw.iterrows():
        mutation = str(row[mutation_col]).strip()
        parsed_bw = parse_bw_number(row[bw_col])
        if parsed_bw is None:
            bad.append((mutation, row[bw_col]))
            continue

        residue = None
        if residue_col and pd.notna(row[residue_col]):
            residue = int(row[residue_col])
        else:
            parsed_mut = parse_mutation(mutation, wild_type_label)
            if parsed_mut is not None:
                residue = parsed_mut["residue"]

        records.append({"mutation": mutation, **parsed_bw, "residue": residue})

    if bad:
        raise ValueError(
            f"Unparseable Ballesteros-Weinstein numbers in {ann_path.name}: {bad[:10]}\n"
            f"Expected helix.locant, e.g. 3.50 or 45.50"
        )

    annotation = pd.DataFrame(records)
    conflicts = annotation.groupby("mutation")["bw"].nunique()
    conflicts = conflicts[conflicts > 1]
    if not conflicts.empty:
        raise ValueError(
            f"Conflicting BW positions for mutations: {list(conflicts.index)}"
        )

    annotation = annotation.drop_duplicates(subset="mutation").reset_index(drop=True)
    annotation["residue"] = annotation["residue"].astype("Int64")
    logger.info(
        f"Loaded structural annotation for {len(annotation)} mutations across "
        f"{annotation['segment'].nunique()} segments"
    )
    return annotation


def annotate_observations(obs: pd.DataFrame, annotation: Optional[pd.DataFrame]) -> pd.DataFrame:
    """Left-join structural columns onto observations."""
    if annotation is None or annotation.empty:
        return obs.copy()

    annotated = obs.merge(annotation, on="mutation", how="left")
    n_unannotated = annotated.loc[annotated["bw"].isna(), "mutation"].nunique()
    if n_unannotated:
        logger.info(f"{n_unannotated} mutations have no structural annotation")
    return annotated
