#!/usr/bin/env python3
"""
FZD5 Mutants – Assay Exploration & Clustering

Load the pipeline outputs, inspect per-mutant summaries, and explore the
Ward clusters on PCA, nMDS and receptor segments.

Run the pipeline first:  fzd5-pipeline --phase all

Run interactively:  marimo edit notebooks/01_fzd5_exploration.py
Run as dashboard:   marimo run notebooks/01_fzd5_exploration.py
Run as script:      python notebooks/01_fzd5_exploration.py
"""

import marimo

__generated_with = "0.17.8"
app = marimo.App()


@app.cell
def _():
    """Import core libraries."""
    import marimo as mo
    import pandas as pd
    from fzd5.config import RESULTS_DIR, load_analysis_config
    from fzd5.analysis import clustering, structure
    from fzd5.reporting import plot_figures
    return (
        RESULTS_DIR,
        clustering,
        load_analysis_config,
        mo,
        pd,
        plot_figures,
        structure,
    )


@app.cell
def _(mo):
    """
    ## FZD5 Mutant Assay Exploration

    Per-mutant summaries, similarity clustering and 2D embeddings.
    """
    mo.md(__doc__)
    return


@app.cell
def _(RESULTS_DIR, load_analysis_config, pd):
    """Load pipeline outputs."""
    config = load_analysis_config()
    summary = pd.read_csv(RESULTS_DIR / "summary.csv", dtype={"mutation": str})
    matrix = pd.read_csv(RESULTS_DIR / "similarity_matrix.csv", index_col="mutation", dtype={"mutation": str})
    comparison = pd.read_csv(RESULTS_DIR / "wild_type_comparison.csv", dtype={"mutation": str})
    return comparison, config, matrix, summary


@app.cell
def _(matrix, mo, summary):
    """Display data overview."""
    mo.md(f"""
    ### Data Overview

    - **Mutants in summary:** {summary['mutation'].nunique()}
    - **Assays:** {', '.join(summary['assay_type'].unique())}
    - **Mutants clustered:** {len(matrix)}
    """)
    return


@app.cell
def _(mo, summary):
    """Per-mutant summary table."""
    mo.ui.table(summary)
    return


@app.cell
def _(comparison, mo):
    """Mutants that differ from WT."""
    _significant = comparison[comparison["significant"]].sort_values("p_adj")
    mo.vstack([
        mo.md(f"### Significant vs WT ({len(_significant)} mutant/assay pairs)"),
        mo.ui.table(_significant),
    ])
    return


@app.cell
def _(config, mo):
    """Cluster count controls."""
    k_override = mo.ui.slider(
        start=2,
        stop=config["clustering"]["k_max"],
        value=config["clustering"]["k_min"],
        label="Fixed k (enable below)",
    )
    use_override = mo.ui.checkbox(label="Override the silhouette choice")
    mo.hstack([k_override, use_override])
    return k_override, use_override


@app.cell
def _(clustering, config, k_override, matrix, use_override):
    """Cluster mutants."""
    _cfg = dict(config)
    _cfg["clustering"] = {**config["clustering"], "k": k_override.value if use_override.value else None}
    result = clustering.cluster_mutations(matrix, _cfg)
    return (result,)


@app.cell
def _(mo, plot_figures, result):
    """Silhouette sweep."""
    mo.vstack([
        mo.md(f"**k = {result.k}** ({result.k_source}), mean silhouette {result.mean_silhouette:.3f}"),
        mo.ui.plotly(plot_figures.make_silhouette_sweep(result.sweep, result.k)),
    ])
    return


@app.cell
def _(matrix, plot_figures, result):
    """Matrix in dendrogram order."""
    plot_figures.make_matrix_heatmap(matrix, result.assignments)
    return


@app.cell
def _(RESULTS_DIR, mo, pd, plot_figures, result):
    """PCA and nMDS embeddings."""
    _pca = pd.read_csv(RESULTS_DIR / "pca.csv", index_col="mutation", dtype={"mutation": str})
    _nmds = pd.read_csv(RESULTS_DIR / "nmds.csv", index_col="mutation", dtype={"mutation": str})
    _fig_pca = plot_figures.make_embedding_scatter(_pca, result.assignments, "PC1", "PC2", "PCA")
    _fig_nmds = plot_figures.make_embedding_scatter(_nmds, result.assignments, "NMDS1", "NMDS2", "nMDS")
    mo.vstack([mo.ui.plotly(_fig_pca), mo.ui.plotly(_fig_nmds)])
    return


@app.cell
def _(RESULTS_DIR, mo, pd, result, structure):
    """Clusters by receptor segment."""
    _annotation_path = RESULTS_DIR / "structure_annotation.csv"
    if _annotation_path.exists():
        _annotation = pd.read_csv(_annotation_path, dtype={"mutation": str, "bw": str})
        _structure_map = structure.map_to_structure(result.assignments, _annotation)
        _counts = structure.segment_cluster_counts(_structure_map)
        _view = mo.ui.table(_counts.reset_index())
    else:
        _view = mo.md("_No structural annotation in results._")
    _view
    return


if __name__ == "__main__":
    app.run()
