#!/usr/bin/env python3
"""
Master script to run the FZD5 assay analysis pipeline.

Usage:
    python -m fzd5.run_pipeline --phase all
    python -m fzd5.run_pipeline --phase cluster --config config/fzd5.yaml
    fzd5-pipeline --phase all --check
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, Dict, Optional

import pandas as pd

from fzd5.config import (
    DATA_RAW_DIR,
    FIGURES_DIR,
    REPORTS_DIR,
    RESULTS_DIR,
    RUN_ID,
    load_analysis_config,
    validate_config,
    validate_file_exists,
)
from fzd5.pipeline import ingest, normalize, summarize, matrix as matrix_mod
from fzd5.analysis import clustering, embedding, structure
from fzd5.evaluation import sanity

logger = logging.getLogger(__name__)

PHASES = ["ingest", "summarize", "cluster", "embed", "figures", "report"]
RUN_SUMMARY_FILE = "run_summary.json"


def _banner(title: str) -> None:
    logger.info("\n" + "=" * 70)
    logger.info(title)
    logger.info("=" * 70)


def _write_table(df: pd.DataFrame, results_dir: Path, name: str, index: bool = False) -> Path:
    results_dir.mkdir(parents=True, exist_ok=True)
    path = results_dir / name
    df.to_csv(path, index=index)
    logger.info(f"Wrote {len(df)} rows to {path}")
    return path


def _read_table(results_dir: Path, name: str, **kwargs) -> pd.DataFrame:
    path = results_dir / name
    validate_file_exists(path, "output of an earlier phase; run it first")
    return pd.read_csv(path, **kwargs)


def _read_observations(results_dir: Path) -> pd.DataFrame:
    return _read_table(results_dir, "observations.csv", dtype={"mutation": str, "replicate": str, "bw": str})


def _read_summary(results_dir: Path) -> pd.DataFrame:
    return _read_table(results_dir, "summary.csv", dtype={"mutation": str})


def _read_matrix(results_dir: Path) -> pd.DataFrame:
    return _read_table(results_dir, "similarity_matrix.csv", index_col="mutation", dtype={"mutation": str})


def _read_annotation(results_dir: Path) -> Optional[pd.DataFrame]:
    path = results_dir / "structure_annotation.csv"
    if not path.exists():
        return None
    annotation = pd.read_csv(path, dtype={"mutation": str, "bw": str})
    annotation["residue"] = annotation["residue"].astype("Int64")
    return annotation


def _read_clustering(results_dir: Path, sim_matrix: pd.DataFrame) -> clustering.ClusteringResult:
    """Rebuild the saved clustering from clusters.csv and the k in run_summary.json."""
    assignments = _read_table(results_dir, "clusters.csv", dtype={"mutation": str})
    sweep_path = results_dir / "silhouette_sweep.csv"
    sweep = pd.read_csv(sweep_path) if sweep_path.exists() else pd.DataFrame(columns=clustering.SWEEP_COLUMNS)
    run_summary = load_run_summary(results_dir)
    return clustering.ClusteringResult(
        linkage=clustering.ward_linkage(sim_matrix),
        k=int(run_summary.get("k", 0)),
        assignments=assignments,
        sweep=sweep,
        k_source=run_summary.get("k_source", "silhouette"),
    )


def load_run_summary(results_dir: Path) -> Dict[str, Any]:
    path = results_dir / RUN_SUMMARY_FILE
    if not path.exists():
        return {}
    with path.open(encoding="utf-8") as handle:
        return json.load(handle)


def update_run_summary(results_dir: Path, **fields: Any) -> Dict[str, Any]:
    """Merge headline numbers into run_summary.json."""
    summary = load_run_summary(results_dir)
    summary.update(fields)
    summary["run_id"] = RUN_ID
    results_dir.mkdir(parents=True, exist_ok=True)
    with (results_dir / RUN_SUMMARY_FILE).open("w", encoding="utf-8") as handle:
        json.dump(summary, handle, indent=2)
    return summary


def control_labels(config: Dict[str, Any]) -> list:
    """Every control / baseline construct named in the dataset entries."""
    labels = []
    for dataset_cfg in config.get("datasets", []):
        labels.extend(dataset_cfg.get("control_labels", []))
        for measure in dataset_cfg.get("measures", []):
            if measure.get("baseline_label"):
                labels.append(measure["baseline_label"])
    return list(dict.fromkeys(labels))


def run_phase_ingest(
    config: Dict[str, Any],
    data_dir: Path = DATA_RAW_DIR,
    results_dir: Path = RESULTS_DIR,
) -> pd.DataFrame:
    """Load CSVs, normalize measures, attach structural annotation."""
    _banner("PHASE 1: INGEST")

    obs = ingest.ingest_all_datasets(config, data_dir)
    obs = normalize.apply_measure_normalization(obs, config)

    annotation = None
    if config.get("annotation"):
        annotation = ingest.load_structure_annotation(
            config["annotation"], data_dir, config.get("wild_type_label", "WT")
        )
        _write_table(annotation, results_dir, "structure_annotation.csv")

    sanity.check_observations(obs, config.get("wild_type_label", "WT"))

    _write_table(ingest.annotate_observations(obs, annotation), results_dir, "observations.csv")
    update_run_summary(
        results_dir,
        receptor=config.get("receptor"),
        wild_type_label=config.get("wild_type_label", "WT"),
        n_observations=int(len(obs)),
    )
    return obs


def run_phase_summarize(
    config: Dict[str, Any],
    results_dir: Path = RESULTS_DIR,
    obs: Optional[pd.DataFrame] = None,
) -> Dict[str, pd.DataFrame]:
    """Per-mutant summary statistics, wild-type comparison, assay correlation."""
    _banner("PHASE 2: SUMMARIZE")

    if obs is None:
        obs = _read_observations(results_dir)

    stats_cfg = config.get("statistics", {})
    wild_type_label = config.get("wild_type_label", "WT")

    summary = summarize.summarize_observations(obs)
    comparison = summarize.compare_to_wild_type(obs, wild_type_label, alpha=stats_cfg.get("alpha", 0.05))
    correlations = summarize.assay_correlations(
        summary[~summary["mutation"].isin(control_labels(config))],
        method=stats_cfg.get("correlation_method", "spearman"),
    )

    _write_table(summary, results_dir, "summary.csv")
    _write_table(comparison, results_dir, "wild_type_comparison.csv")
    _write_table(correlations, results_dir, "assay_correlations.csv", index=True)

    return {"summary": summary, "comparison": comparison, "correlations": correlations}


def run_phase_cluster(
    config: Dict[str, Any],
    results_dir: Path = RESULTS_DIR,
    summary: Optional[pd.DataFrame] = None,
) -> Dict[str, Any]:
    """Similarity matrix, Ward clustering, silhouette sweep, structure projection."""
    _banner("PHASE 3: CLUSTER")

    if summary is None:
        summary = _read_summary(results_dir)

    matrix_cfg = config.get("matrix", {})
    wild_type_label = config.get("wild_type_label", "WT")

    sim_matrix = matrix_mod.build_similarity_matrix(
        summary,
        assays=matrix_cfg.get("assays"),
        include_wild_type=matrix_cfg.get("include_wild_type", True),
        missing=matrix_cfg.get("missing", "drop"),
        wild_type_label=wild_type_label,
        exclude=control_labels(config),
    )
    result = clustering.cluster_mutations(sim_matrix, config)
    profiles = clustering.cluster_profiles(sim_matrix, result.assignments)

    annotation = _read_annotation(results_dir)
    structure_map = structure.map_to_structure(result.assignments, annotation)

    structure_cfg = config.get("structure", {})
    residue_colors = structure.residue_color_table(
        structure_map,
        summary,
        assay=structure_cfg.get("color_assay"),
        colorscale=structure_cfg.get("colorscale", "RdBu"),
    )

    _write_table(sim_matrix, results_dir, "similarity_matrix.csv", index=True)
    _write_table(result.sweep, results_dir, "silhouette_sweep.csv")
    _write_table(result.assignments, results_dir, "clusters.csv")
    _write_table(profiles, results_dir, "cluster_profiles.csv", index=True)
    _write_table(structure_map, results_dir, "structure_map.csv")
    _write_table(residue_colors, results_dir, "residue_colors.csv")
    if annotation is not None:
        _write_table(structure.segment_cluster_counts(structure_map), results_dir, "segment_cluster_counts.csv", index=True)

    update_run_summary(
        results_dir,
        k=result.k,
        k_source=result.k_source,
        mean_silhouette=round(result.mean_silhouette, 4),
        n_mutations=int(len(sim_matrix)),
        assays=list(sim_matrix.columns),
    )
    return {
        "matrix": sim_matrix,
        "clustering": result,
        "profiles": profiles,
        "structure_map": structure_map,
        "residue_colors": residue_colors,
    }


def run_phase_embed(
    config: Dict[str, Any],
    results_dir: Path = RESULTS_DIR,
    sim_matrix: Optional[pd.DataFrame] = None,
) -> embedding.EmbeddingResult:
    """PCA and nMDS of the similarity matrix."""
    _banner("PHASE 4: EMBED")

    if sim_matrix is None:
        sim_matrix = _read_matrix(results_dir)

    result = embedding.embed_mutations(sim_matrix, config)

    _write_table(result.pca_scores, results_dir, "pca.csv", index=True)
    _write_table(result.pca_loadings, results_dir, "pca_loadings.csv", index=True)
    _write_table(result.nmds_coords, results_dir, "nmds.csv", index=True)

    update_run_summary(
        results_dir,
        pca_explained={pc: round(float(v), 4) for pc, v in result.pca_explained.items()},
        nmds_stress=round(result.nmds_stress, 4),
    )
    return result


def run_phase_figures(
    config: Dict[str, Any],
    results_dir: Path = RESULTS_DIR,
    figures_dir: Path = FIGURES_DIR,
    reports_dir: Path = REPORTS_DIR,
) -> Dict[str, Any]:
    """Plot every figure from the phase outputs and write the manifest."""
    _banner("PHASE 5: FIGURES")
    from fzd5.reporting.plot_figures import generate_figures_and_manifest

    tables = {
        "summary": _read_summary(results_dir),
        "matrix": _read_matrix(results_dir),
        "clusters": _read_table(results_dir, "clusters.csv", dtype={"mutation": str}),
        "sweep": _read_table(results_dir, "silhouette_sweep.csv"),
        "pca": _read_table(results_dir, "pca.csv", index_col="mutation", dtype={"mutation": str}),
        "nmds": _read_table(results_dir, "nmds.csv", index_col="mutation", dtype={"mutation": str}),
        "structure_map": _read_table(results_dir, "structure_map.csv", dtype={"mutation": str, "bw": str}),
    }
    correlations_path = results_dir / "assay_correlations.csv"
    if correlations_path.exists():
        tables["correlations"] = pd.read_csv(correlations_path, index_col=0)

    run_summary = load_run_summary(results_dir)
    run_summary.setdefault("receptor", config.get("receptor"))
    run_summary["correlation_method"] = config.get("statistics", {}).get("correlation_method", "spearman")

    return generate_figures_and_manifest(tables, run_summary, figures_dir, reports_dir)


def run_phase_report(reports_dir: Path = REPORTS_DIR) -> Path:
    """Render the HTML report from the manifest."""
    _banner("PHASE 6: REPORT")
    from fzd5.reporting.render_report import load_manifest, render_html_report

    manifest = load_manifest(reports_dir)
    return render_html_report(manifest, reports_dir)


def run_sanity_checks(config: Dict[str, Any], results_dir: Path = RESULTS_DIR) -> bool:
    """Run all sanity checks on phase outputs; True when every check passes."""
    _banner("SANITY CHECKS")

    results = {}
    if (results_dir / "observations.csv").exists():
        results["observations"] = sanity.check_observations(
            _read_observations(results_dir), config.get("wild_type_label", "WT")
        )
    if (results_dir / "similarity_matrix.csv").exists():
        sim_matrix = _read_matrix(results_dir)
        results["similarity_matrix"] = sanity.check_similarity_matrix(sim_matrix)
        if (results_dir / "clusters.csv").exists():
            results["clustering"] = sanity.check_clustering(_read_clustering(results_dir, sim_matrix), sim_matrix)

    sanity.print_check_report(results)
    return all(passed for passed, _ in results.values())


def run_all(
    config: Dict[str, Any],
    data_dir: Path = DATA_RAW_DIR,
    results_dir: Path = RESULTS_DIR,
    reports_dir: Path = REPORTS_DIR,
    figures: bool = True,
) -> Dict[str, Any]:
    """Run every phase in order, passing frames in memory."""
    obs = run_phase_ingest(config, data_dir, results_dir)
    summary_results = run_phase_summarize(config, results_dir, obs=obs)
    cluster_results = run_phase_cluster(config, results_dir, summary=summary_results["summary"])
    embed_result = run_phase_embed(config, results_dir, sim_matrix=cluster_results["matrix"])

    outputs: Dict[str, Any] = {
        "observations": obs,
        **summary_results,
        **cluster_results,
        "embedding": embed_result,
    }
    if figures:
        outputs["manifest"] = run_phase_figures(config, results_dir, reports_dir / FIGURES_DIR.name, reports_dir)
        outputs["report"] = run_phase_report(reports_dir)
    return outputs


def main(argv: Optional[list] = None) -> None:
    parser = argparse.ArgumentParser(
        description="Run FZD5 assay analysis pipeline phases"
    )
    parser.add_argument(
        "--phase",
        choices=PHASES + ["all"],
        default="all",
        help="Which phase to run"
    )
    parser.add_argument(
        "--check",
        action="store_true",
        help="Run sanity checks and exit non-zero if any fail"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to analysis config (default: $FZD5_CONFIG or config/fzd5.yaml)"
    )
    parser.add_argument(
        "--data-dir",
        type=Path,
        default=DATA_RAW_DIR,
        help="Directory holding the raw assay CSVs"
    )
    parser.add_argument(
        "--output",
        type=Path,
        default=RESULTS_DIR.parent,
        help="Base output directory (results/ and reports/ are created inside)"
    )

    args = parser.parse_args(argv)

    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    try:
        config = load_analysis_config(args.config)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Configuration error: {e}")
        raise SystemExit(1)

    if not validate_config(config):
        logger.error("Configuration is invalid; see warnings above")
        raise SystemExit(1)

    results_dir = args.output / RESULTS_DIR.name
    reports_dir = args.output / REPORTS_DIR.name
    figures_dir = reports_dir / FIGURES_DIR.name

    logger.info("FZD5 Pipeline")
    logger.info(f"Config: {config['config_path']}")
    logger.info(f"Data: {args.data_dir}")
    logger.info(f"Output: {args.output}")

    try:
        if args.phase in ["ingest", "all"]:
            run_phase_ingest(config, args.data_dir, results_dir)

        if args.phase in ["summarize", "all"]:
            run_phase_summarize(config, results_dir)

        if args.phase in ["cluster", "all"]:
            run_phase_cluster(config, results_dir)

        if args.phase in ["embed", "all"]:
            run_phase_embed(config, results_dir)

        if args.phase in ["figures", "all"]:
            run_phase_figures(config, results_dir, figures_dir, reports_dir)

        if args.phase in ["report", "all"]:
            run_phase_report(reports_dir)
    except (FileNotFoundError, ValueError) as e:
        logger.error(f"Pipeline failed: {e}")
        raise SystemExit(1)

    if args.check and not run_sanity_checks(config, results_dir):
        logger.error("Sanity checks failed")
        sys.exit(1)


if __name__ == "__main__":
    main()
