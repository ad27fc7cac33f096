"""
Shared configuration for the FZD5 assay analysis pipeline.
Centralizes paths, analysis defaults, and validation logic.
"""

from pathlib import Path
import copy
import logging
import os
import subprocess
from typing import Optional, Dict, Any, Union

import pandas as pd

# Initialize logging once when module is imported
LOGGER_NAME = "fzd5"
_root_logger = logging.getLogger()
if not _root_logger.handlers:
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(levelname)s - %(message)s',
        force=True
    )
logger = logging.getLogger(LOGGER_NAME)


# Core paths - pipeline phases and notebooks import from here
def get_project_root() -> Path:
    """Get the repository root directory."""
    return Path(__file__).resolve().parents[1]


PROJECT_ROOT = get_project_root()
CONFIG_DIR = PROJECT_ROOT / "config"
TEMPLATES_DIR = PROJECT_ROOT / "templates"
DATA_RAW_DIR = Path(os.getenv("FZD5_DATA_DIR", PROJECT_ROOT / "data_raw"))
DATA_PROCESSED_DIR = PROJECT_ROOT / "data_processed"

# Output directories
RESULTS_DIR = DATA_PROCESSED_DIR / "results"
REPORTS_DIR = DATA_PROCESSED_DIR / "reports"
FIGURES_DIR = REPORTS_DIR / "figures"

DEFAULT_CONFIG_NAME = "fzd5"
DEFAULT_CONFIG_PATH = Path(os.getenv("FZD5_CONFIG", CONFIG_DIR / f"{DEFAULT_CONFIG_NAME}.yaml"))


# Provenance tracking
def get_git_sha() -> str:
    """Get current git SHA for provenance tracking."""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "HEAD"],
            capture_output=True,
            text=True,
            cwd=PROJECT_ROOT
        )
        return result.stdout.strip() if result.returncode == 0 else "unknown"
    except OSError:
        return "unknown"


RUN_ID = os.getenv("RUN_ID", get_git_sha())

# Analysis defaults; anything missing from the YAML config is filled from here
DEFAULT_CONFIG: Dict[str, Any] = {
    "wild_type_label": "WT",
    "random_state": 42,
    "datasets": [],
    "annotation": None,
    "matrix": {
        "assays": None,             # None = every assay type, in ingest order
        "include_wild_type": True,
        "missing": "drop",          # drop | median
    },
    "clustering": {
        "k": None,                  # fixed k overrides the silhouette sweep
        "k_min": 2,
        "k_max": 8,
    },
    "embedding": {
        "pca_components": 2,
        "nmds_components": 2,
        "nmds_n_init": 8,
        "nmds_max_iter": 500,
    },
    "statistics": {
        "alpha": 0.05,
        "correlation_method": "spearman",
    },
    "structure": {
        "color_assay": None,        # assay used for the value-coloured diagram
        "colorscale": "RdBu",
    },
}

REQUIRED_CONFIG_KEYS = ["receptor", "datasets"]

# Data contract for the long observation table
REQUIRED_OBSERVATION_COLUMNS = [
    "dataset_id", "mutation", "assay_type", "replicate", "value", "value_raw"
]


def validate_file_exists(path: Path, context: str = "") -> None:
    """Validate that a file exists, raise informative error if not."""
    if not path.exists():
        context_msg = f" ({context})" if context else ""
        raise FileNotFoundError(
            f"Required file missing: {path}{context_msg}\n"
            f"Please ensure the input data or upstream phase output is in place."
        )


def validate_dataframe(df: pd.DataFrame, name: str, required_columns: Optional[list] = None) -> None:
    """Validate dataframe is not empty and has required columns."""
    if df.empty:
        raise ValueError(f"DataFrame '{name}' is empty")

    if required_columns:
        missing_cols = set(required_columns) - set(df.columns)
        if missing_cols:
            raise ValueError(f"DataFrame '{name}' missing required columns: {sorted(missing_cols)}")


def _deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` into a copy of ``base``."""
    merged = copy.deepcopy(base)
    for key, value in override.items():
        if isinstance(value, dict) and isinstance(merged.get(key), dict):
            merged[key] = _deep_merge(merged[key], value)
        else:
            merged[key] = value
    return merged


def resolve_config_path(config: Union[str, Path, None] = None) -> Path:
    """
    Resolve a config argument to a YAML path.

    A bare name (``"fzd5"``) is looked up in ``config/``; anything with a
    suffix or a directory part is treated as a path.
    """
    if config is None:
        return DEFAULT_CONFIG_PATH
    config = Path(config)
    if config.suffix or config.parent != Path("."):
        return config
    return CONFIG_DIR / f"{config.name.lower()}.yaml"


def load_analysis_config(config: Union[str, Path, None] = None) -> Dict[str, Any]:
    """
    Load the analysis configuration from a YAML file.

    Args:
        config: Config name (looked up in ``config/``) or path to a YAML file.
            Defaults to ``$FZD5_CONFIG`` or ``config/fzd5.yaml``.

    Returns:
        Dictionary with every section of ``DEFAULT_CONFIG`` present.

    Raises:
        FileNotFoundError: If the config file does not exist
        ValueError: If the file is not valid YAML or misses required fields
    """
    import yaml

    config_path = resolve_config_path(config)

    if not config_path.exists():
        raise FileNotFoundError(
            f"Analysis configuration not found: {config_path}\n"
            f"Available config directory: {CONFIG_DIR}\n"
            f"Pass --config or set FZD5_CONFIG to point at a YAML file."
        )

    try:
        with open(config_path, 'r') as f:
            loaded = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise ValueError(
            f"Failed to parse YAML config: {e}\n"
            f"Config file: {config_path}"
        ) from e

    if not isinstance(loaded, dict):
        raise ValueError(
            f"Invalid config format: expected mapping, got {type(loaded).__name__}\n"
            f"Config file: {config_path}"
        )

    missing_fields = [f for f in REQUIRED_CONFIG_KEYS if f not in loaded]
    if missing_fields:
        raise ValueError(
            f"Analysis config missing required fields: {missing_fields}\n"
            f"Config file: {config_path}"
        )

    merged = _deep_merge(DEFAULT_CONFIG, loaded)

    env_seed = os.getenv("FZD5_RANDOM_STATE")
    if env_seed is not None:
        merged["random_state"] = int(env_seed)

    merged["config_path"] = str(config_path)
    logger.info(f"Loaded configuration for {merged['receptor']} from {config_path.name}")
    return merged


def validate_config(config: Dict[str, Any]) -> bool:
    """
    Validate dataset entries and analysis parameters.

    Returns:
        True if valid, False otherwise (problems are logged as warnings)
    """
    valid = True

    if not config.get("datasets"):
        logger.warning("No datasets configured")
        return False

    seen_ids = set()
    for dataset_cfg in config["datasets"]:
        dataset_id = dataset_cfg.get("dataset_id")
        missing = [f for f in ("dataset_id", "path", "measures") if not dataset_cfg.get(f)]
        if missing:
            logger.warning(f"Dataset {dataset_id or '<unnamed>'} missing fields: {missing}")
            valid = False
        if dataset_id in seen_ids:
            logger.warning(f"Duplicate dataset_id: {dataset_id}")
            valid = False
        seen_ids.add(dataset_id)

    clustering = config.get("clustering", {})
    k_min = clustering.get("k_min", 2)
    k_max = clustering.get("k_max")
    if k_min < 2:
        logger.warning(f"clustering.k_min must be >= 2, got {k_min}")
        valid = False
    if k_max is not None and k_max < k_min:
        logger.warning(f"clustering.k_max ({k_max}) is below k_min ({k_min})")
        valid = False

    if config.get("matrix", {}).get("missing") not in ("drop", "median"):
        logger.warning(f"matrix.missing must be 'drop' or 'median', got {config['matrix'].get('missing')}")
        valid = False

    return valid
