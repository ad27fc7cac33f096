#!/usr/bin/env python3
"""
Generate Plotly figures for the FZD5 mutant report.

This module takes the tables written by the pipeline phases and produces a
small set of figures:

- Per-assay mean +/- SD for every mutant
- Silhouette width across cluster counts
- Ward dendrogram and the rescaled matrix in dendrogram order
- PCA and nMDS embeddings coloured by cluster
- Clusters on the receptor's structural segments
- Assay x assay correlation

Outputs (written to ``data_processed/reports/figures``):
- figure1_assay_summary.html / .svg
- figure2_silhouette.html / .svg
- figure3_dendrogram.html / .svg
- figure4_matrix_heatmap.html / .svg
- figure5_pca.html / .svg
- figure6_nmds.html / .svg
- figure7_structure_map.html / .svg
- figure8_assay_correlation.html / .svg
"""

from __future__ import annotations

import json
import logging
from datetime import date
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
import plotly.figure_factory as ff
import plotly.graph_objects as go
import plotly.io as pio
from plotly.subplots import make_subplots
from scipy.cluster.hierarchy import leaves_list, linkage

from ..analysis.clustering import ward_linkage
from ..analysis.structure import cluster_colors
from ..config import FIGURES_DIR, REPORTS_DIR, RUN_ID, validate_dataframe, logger
from ..constants import SEGMENT_ORDER

MANIFEST_NAME = "fzd5_manifest.json"

_AXIS_STYLE = dict(showline=True, linewidth=1.5, linecolor="#333", mirror=True)


def _save_figure(fig: go.Figure, basename: str, figures_dir: Path = FIGURES_DIR) -> Dict[str, str]:
    """Save Plotly figure to HTML and SVG, returning paths relative to the reports directory."""
    figures_dir.mkdir(parents=True, exist_ok=True)

    html_path = figures_dir / f"{basename}.html"
    svg_path = figures_dir / f"{basename}.svg"

    logger.info("Writing figure %s", basename)
    # Interactive HTML
    pio.write_html(fig, file=str(html_path), include_plotlyjs="cdn", full_html=True)

    paths = {"html": f"{figures_dir.name}/{basename}.html"}

    # Static vector export (best effort; kaleido needs a browser runtime)
    try:
        pio.write_image(fig, str(svg_path), format="svg", width=1200, height=800)
        paths["svg"] = f"{figures_dir.name}/{basename}.svg"
    except Exception as exc:  # pragma: no cover - visualization environment dependent
        logger.warning("Could not write SVG for %s: %s", basename, exc)

    return paths


def _cluster_color_map(clusters: pd.DataFrame) -> Dict[int, str]:
    return cluster_colors(clusters["cluster"])


def make_assay_summary(summary: pd.DataFrame, wild_type_label: str = "WT") -> go.Figure:
    """Bar chart of mean +/- SD per mutant, one panel per assay."""
    assays = list(dict.fromkeys(summary["assay_type"]))
    fig = make_subplots(
        rows=len(assays),
        cols=1,
        shared_xaxes=False,
        vertical_spacing=0.35 / max(len(assays), 1),
        subplot_titles=assays,
    )

    for row, assay in enumerate(assays, start=1):
        sub = summary[summary["assay_type"] == assay]
        colors = ["#333333" if m == wild_type_label else "#2D5A3D" for m in sub["mutation"]]
        fig.add_trace(
            go.Bar(
                x=sub["mutation"],
                y=sub["mean"],
                error_y=dict(type="data", array=sub["sd"].fillna(0.0), visible=True),
                marker=dict(color=colors),
                name=assay,
                customdata=sub["n"],
                hovertemplate="%{x}<br>Mean=%{y:.3f}<br>n=%{customdata}<extra></extra>",
                showlegend=False,
            ),
            row=row,
            col=1,
        )
        fig.update_yaxes(title_text="Mean", row=row, col=1, **_AXIS_STYLE)
        fig.update_xaxes(tickangle=-60, row=row, col=1, **_AXIS_STYLE)

    fig.update_layout(
        template="simple_white",
        title="Per-mutant assay summary (mean ± SD)",
        height=320 * len(assays),
        margin=dict(l=80, r=30, t=90, b=80),
    )
    return fig


def make_silhouette_sweep(sweep: pd.DataFrame, k: int) -> go.Figure:
    """Mean silhouette width against cluster count, chosen k marked."""
    fig = go.Figure()
    fig.add_trace(
        go.Scatter(
            x=sweep["k"],
            y=sweep["mean_silhouette"],
            mode="lines+markers",
            line=dict(color="#2D5A3D", width=3),
            name="Mean silhouette",
            hovertemplate="k=%{x}<br>Mean width=%{y:.3f}<extra></extra>",
        )
    )
    fig.add_vline(
        x=k,
        line_dash="dot",
        line_color="#666666",
        annotation_text=f"k = {k}",
        annotation_position="top right",
    )
    fig.update_layout(
        template="simple_white",
        title="Silhouette width by cluster count (Ward linkage)",
        xaxis_title="Number of clusters (k)",
        yaxis_title="Mean silhouette width",
        margin=dict(l=70, r=30, t=80, b=70),
    )
    fig.update_xaxes(dtick=1, **_AXIS_STYLE)
    fig.update_yaxes(**_AXIS_STYLE)
    return fig


def make_dendrogram(matrix: pd.DataFrame) -> go.Figure:
    """Ward dendrogram of mutants."""
    fig = ff.create_dendrogram(
        matrix.to_numpy(),
        labels=list(matrix.index),
        linkagefun=lambda d: linkage(d, method="ward"),
        color_threshold=None,
    )
    fig.update_layout(
        template="simple_white",
        title="Ward clustering of mutants on rescaled assay profiles",
        yaxis_title="Ward distance",
        margin=dict(l=70, r=30, t=80, b=120),
        height=600,
    )
    fig.update_xaxes(tickangle=-60)
    return fig


def make_matrix_heatmap(matrix: pd.DataFrame, clusters: pd.DataFrame) -> go.Figure:
    """Rescaled mutation x assay matrix in dendrogram leaf order."""
    order = [matrix.index[i] for i in leaves_list(ward_linkage(matrix))]
    ordered = matrix.loc[order]
    cluster_of = clusters.set_index("mutation")["cluster"]
    labels = [f"{m} (C{cluster_of.get(m, '?')})" for m in ordered.index]

    fig = go.Figure(
        go.Heatmap(
            z=ordered.to_numpy(),
            x=list(ordered.columns),
            y=labels,
            zmin=0,
            zmax=1,
            colorscale="Greens",
            colorbar=dict(title="Rescaled"),
            hovertemplate="Assay=%{x}<br>Mutant=%{y}<br>Value=%{z:.2f}<extra></extra>",
        )
    )
    fig.update_layout(
        template="simple_white",
        title="Rescaled assay matrix (dendrogram order)",
        height=max(400, 18 * len(ordered)),
        margin=dict(l=140, r=40, t=80, b=100),
    )
    fig.update_yaxes(autorange="reversed")
    return fig


def make_embedding_scatter(
    coords: pd.DataFrame,
    clusters: pd.DataFrame,
    x: str,
    y: str,
    title: str,
    x_title: Optional[str] = None,
    y_title: Optional[str] = None,
) -> go.Figure:
    """Scatter of a 2D embedding with one trace per cluster."""
    df = coords.reset_index().merge(clusters, on="mutation", how="left")
    if y not in df.columns:
        # One-dimensional embedding; points sit on the x axis
        logger.warning("%s not in embedding; plotting %s alone", y, x)
        df[y] = 0.0
        y_title = f"{y} (not computed)"
    colors = _cluster_color_map(clusters)

    fig = go.Figure()
    for cluster_id in sorted(df["cluster"].dropna().unique()):
        sub = df[df["cluster"] == cluster_id]
        fig.add_trace(
            go.Scatter(
                x=sub[x],
                y=sub[y],
                mode="markers+text",
                text=sub["mutation"],
                textposition="top center",
                name=f"Cluster {int(cluster_id)}",
                marker=dict(size=11, color=colors[int(cluster_id)], line=dict(color="white", width=1)),
                hovertemplate="%{text}<br>" + x + "=%{x:.3f}<br>" + y + "=%{y:.3f}<extra></extra>",
            )
        )

    fig.update_layout(
        template="simple_white",
        title=title,
        xaxis_title=x_title or x,
        yaxis_title=y_title or y,
        legend=dict(orientation="h", yanchor="bottom", y=1.02, xanchor="right", x=1.0),
        margin=dict(l=80, r=30, t=100, b=70),
        height=650,
    )
    fig.update_xaxes(zeroline=True, **_AXIS_STYLE)
    fig.update_yaxes(zeroline=True, **_AXIS_STYLE)
    return fig


def make_structure_map(structure_map: pd.DataFrame) -> go.Figure:
    """Clusters placed by BW locant within each structural segment."""
    annotated = structure_map.dropna(subset=["segment"])
    segments = [s for s in SEGMENT_ORDER if s in set(annotated["segment"])]
    colors = cluster_colors(structure_map["cluster"])

    fig = go.Figure()
    for cluster_id in sorted(annotated["cluster"].unique()):
        sub = annotated[annotated["cluster"] == cluster_id]
        fig.add_trace(
            go.Scatter(
                x=sub["locant"],
                y=sub["segment"],
                mode="markers+text",
                text=sub["mutation"],
                textposition="top center",
                name=f"Cluster {int(cluster_id)}",
                marker=dict(size=14, color=colors[int(cluster_id)], line=dict(color="#333", width=1)),
                customdata=sub["bw"],
                hovertemplate="%{text}<br>BW %{customdata}<extra></extra>",
            )
        )

    fig.update_layout(
        template="simple_white",
        title="Mutant clusters on receptor segments (Ballesteros-Weinstein locant)",
        xaxis_title="BW locant (x.50 = most conserved)",
        yaxis_title="Segment",
        margin=dict(l=80, r=30, t=90, b=70),
        height=max(400, 45 * len(segments)),
    )
    fig.update_yaxes(categoryorder="array", categoryarray=segments[::-1], **_AXIS_STYLE)
    fig.update_xaxes(**_AXIS_STYLE)
    fig.add_vline(x=50, line_dash="dot", line_color="#999999")
    return fig


def make_correlation_heatmap(correlations: pd.DataFrame, method: str = "spearman") -> go.Figure:
    """Assay x assay correlation heatmap."""
    fig = go.Figure(
        go.Heatmap(
            z=correlations.to_numpy(),
            x=list(correlations.columns),
            y=list(correlations.index),
            zmin=-1,
            zmax=1,
            colorscale="RdBu",
            colorbar=dict(title=method.capitalize()),
            text=correlations.round(2).to_numpy(),
            texttemplate="%{text}",
            hovertemplate="%{x} vs %{y}<br>r=%{z:.2f}<extra></extra>",
        )
    )
    fig.update_layout(
        template="simple_white",
        title=f"Assay correlation across mutants ({method})",
        margin=dict(l=140, r=40, t=80, b=120),
        height=600,
    )
    return fig


def _cluster_members(clusters: pd.DataFrame) -> List[Dict[str, object]]:
    members = []
    for cluster_id, group in clusters.groupby("cluster"):
        members.append({
            "cluster": int(cluster_id),
            "size": int(len(group)),
            "mean_silhouette": round(float(group["silhouette"].mean()), 4),
            "mutations": group["mutation"].tolist(),
        })
    return members


def generate_figures_and_manifest(
    tables: Dict[str, pd.DataFrame],
    run_summary: Dict[str, object],
    figures_dir: Path = FIGURES_DIR,
    reports_dir: Path = REPORTS_DIR,
) -> Dict[str, object]:
    """
    Generate all figures and write the manifest.

    Args:
        tables: Pipeline tables keyed by name: summary, matrix, clusters,
            sweep, pca, nmds, structure_map and optionally correlations
        run_summary: Headline numbers from the analysis phases (k,
            nmds_stress, pca_explained, receptor, wild_type_label)
        figures_dir: Where figures are written
        reports_dir: Where the manifest is written

    Returns:
        Manifest dict for downstream HTML rendering
    """
    for name in ["summary", "matrix", "clusters", "sweep", "pca", "nmds"]:
        if name not in tables:
            raise ValueError(f"Missing table for figures: {name}")
    validate_dataframe(tables["clusters"], "clusters", required_columns=["mutation", "cluster", "silhouette"])

    k = int(run_summary["k"])
    explained = run_summary.get("pca_explained", {})
    stress = run_summary.get("nmds_stress")
    wild_type_label = run_summary.get("wild_type_label", "WT")

    figures: Dict[str, Dict[str, str]] = {}

    fig1 = make_assay_summary(tables["summary"], wild_type_label)
    figures["figure1_assay_summary"] = _save_figure(fig1, "figure1_assay_summary", figures_dir)

    fig2 = make_silhouette_sweep(tables["sweep"], k)
    figures["figure2_silhouette"] = _save_figure(fig2, "figure2_silhouette", figures_dir)

    fig3 = make_dendrogram(tables["matrix"])
    figures["figure3_dendrogram"] = _save_figure(fig3, "figure3_dendrogram", figures_dir)

    fig4 = make_matrix_heatmap(tables["matrix"], tables["clusters"])
    figures["figure4_matrix_heatmap"] = _save_figure(fig4, "figure4_matrix_heatmap", figures_dir)

    fig5 = make_embedding_scatter(
        tables["pca"],
        tables["clusters"],
        "PC1",
        "PC2",
        "PCA of rescaled assay profiles",
        x_title=f"PC1 ({explained.get('PC1', 0):.1%} variance)",
        y_title=f"PC2 ({explained.get('PC2', 0):.1%} variance)",
    )
    figures["figure5_pca"] = _save_figure(fig5, "figure5_pca", figures_dir)

    stress_text = f" (stress {stress:.3f})" if stress is not None else ""
    fig6 = make_embedding_scatter(
        tables["nmds"],
        tables["clusters"],
        "NMDS1",
        "NMDS2",
        f"Non-metric MDS of mutant distances{stress_text}",
    )
    figures["figure6_nmds"] = _save_figure(fig6, "figure6_nmds", figures_dir)

    structure_map = tables.get("structure_map")
    if structure_map is not None and structure_map["segment"].notna().any():
        fig7 = make_structure_map(structure_map)
        figures["figure7_structure_map"] = _save_figure(fig7, "figure7_structure_map", figures_dir)
    else:
        logger.warning("No structural annotation; skipping structure map figure")

    correlations = tables.get("correlations")
    if correlations is not None and not correlations.empty:
        fig8 = make_correlation_heatmap(correlations, run_summary.get("correlation_method", "spearman"))
        figures["figure8_assay_correlation"] = _save_figure(fig8, "figure8_assay_correlation", figures_dir)

    manifest: Dict[str, object] = {
        "metadata": {
            "date": date.today().isoformat(),
            "receptor": run_summary.get("receptor", "FZD5"),
            "run_id": RUN_ID,
        },
        "n_mutations": int(len(tables["matrix"])),
        "n_assays": int(tables["matrix"].shape[1]),
        "assays": list(tables["matrix"].columns),
        "k": k,
        "k_source": run_summary.get("k_source", "silhouette"),
        "mean_silhouette": round(float(tables["clusters"]["silhouette"].mean()), 4),
        "pca_explained": explained,
        "nmds_stress": stress,
        "clusters": _cluster_members(tables["clusters"]),
        "figures": [paths.get("svg", paths["html"]) for paths in figures.values()],
        "figures_html": [paths["html"] for paths in figures.values()],
    }

    reports_dir.mkdir(parents=True, exist_ok=True)
    manifest_path = reports_dir / MANIFEST_NAME
    with manifest_path.open("w", encoding="utf-8") as handle:
        json.dump(manifest, handle, indent=2)

    logger.info("Wrote manifest to %s", manifest_path)
    return manifest
