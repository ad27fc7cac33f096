"""
Project clusters and assay values onto the receptor's structural segments.

Produces the data behind the colorized receptor diagram: one row per
annotated mutation with its Ballesteros-Weinstein position, segment,
cluster color and value color. Drawing the diagram is left to external
tools; ``residue_colors.csv`` is their input.
"""

import logging
from typing import Dict, Iterable, Optional

import pandas as pd
import plotly.colors as pcolors

from fzd5.constants import MISSING_COLOR, SEGMENT_ORDER

logger = logging.getLogger(__name__)


def _rgb_to_hex(rgb: str) -> str:
    r, g, b = pcolors.unlabel_rgb(rgb)
    return "#{:02X}{:02X}{:02X}".format(int(round(r)), int(round(g)), int(round(b)))


def cluster_colors(cluster_ids: Iterable[int]) -> Dict[int, str]:
    """Stable cluster -> hex color from plotly's qualitative palette."""
    palette = pcolors.qualitative.Plotly
    return {
        int(c): palette[(int(c) - 1) % len(palette)]
        for c in sorted(set(int(c) for c in cluster_ids))
    }


def color_by_value(
    values: pd.Series,
    colorscale: str = "RdBu",
    vmin: Optional[float] = None,
    vmax: Optional[float] = None,
) -> pd.Series:
    """
    Map numeric values to hex colors along a plotly colorscale.

    Values are clipped to [vmin, vmax] (default: data range). Missing values
    get MISSING_COLOR.
    """
    vmin = values.min() if vmin is None else vmin
    vmax = values.max() if vmax is None else vmax

    colors = pd.Series(MISSING_COLOR, index=values.index, name="value_color")
    present = values.dropna()
    if present.empty:
        return colors

    if vmax == vmin:
        fractions = [0.5] * len(present)
    else:
        fractions = ((present.clip(vmin, vmax) - vmin) / (vmax - vmin)).tolist()

    sampled = pcolors.sample_colorscale(colorscale, fractions, colortype="rgb")
    colors.loc[present.index] = [_rgb_to_hex(c) for c in sampled]
    return colors


def map_to_structure(
    assignments: pd.DataFrame,
    annotation: Optional[pd.DataFrame],
) -> pd.DataFrame:
    """
    Join cluster assignments with the structural annotation.

    Mutations without annotation are kept with null structural columns.
    """
    structure_map = assignments.copy()
    if annotation is None or annotation.empty:
        logger.warning("No structural annotation available; structure map has no positions")
        for col in ["bw", "helix", "locant", "segment", "residue"]:
            structure_map[col] = pd.NA
    else:
        structure_map = structure_map.merge(annotation, on="mutation", how="left")
        unannotated = structure_map.loc[structure_map["bw"].isna(), "mutation"].tolist()
        if unannotated:
            logger.info(f"{len(unannotated)} clustered mutations lack a BW position: {unannotated[:10]}")

    colors = cluster_colors(structure_map["cluster"])
    structure_map["cluster_color"] = structure_map["cluster"].map(colors)
    return structure_map


def segment_cluster_counts(structure_map: pd.DataFrame) -> pd.DataFrame:
    """Segment x cluster counts, rows in sequence order of segments."""
    annotated = structure_map.dropna(subset=["segment"])
    counts = pd.crosstab(annotated["segment"], annotated["cluster"])
    present = [s for s in SEGMENT_ORDER if s in counts.index]
    return counts.reindex(present)


def residue_color_table(
    structure_map: pd.DataFrame,
    summary: Optional[pd.DataFrame] = None,
    assay: Optional[str] = None,
    colorscale: str = "RdBu",
) -> pd.DataFrame:
    """
    Colorized structural diagram as a table.

    Args:
        structure_map: Output of map_to_structure()
        summary: Per-mutant summary; required when ``assay`` is given
        assay: Assay whose mean colors each residue
        colorscale: Plotly colorscale for the assay coloring

    Returns:
        DataFrame sorted by residue with cluster_color and, when an assay is
        given, the assay mean and value_color
    """
    columns = ["residue", "bw", "segment", "mutation", "cluster", "cluster_color"]
    table = structure_map.dropna(subset=["bw"])[columns].copy()

    if assay is not None:
        if summary is None:
            raise ValueError("residue_color_table needs the summary to color by assay")
        means = summary.loc[summary["assay_type"] == assay].set_index("mutation")["mean"]
        if means.empty:
            raise ValueError(f"No summary values for assay {assay}")
        table[assay] = table["mutation"].map(means)
        table["value_color"] = color_by_value(table[assay], colorscale=colorscale)

    table = table.sort_values(["residue", "mutation"], na_position="last").reset_index(drop=True)
    logger.info(f"Residue color table: {len(table)} annotated mutations")
    return table
