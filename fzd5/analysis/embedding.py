"""
2D embeddings of the mutant similarity matrix (PCA and non-metric MDS).
"""

import logging
from dataclasses import dataclass
from typing import Dict, Any, Optional

import numpy as np
import pandas as pd
from sklearn.decomposition import PCA
from sklearn.manifold import MDS

from fzd5.pipeline.matrix import pairwise_distances

logger = logging.getLogger(__name__)


@dataclass
class EmbeddingResult:
    """Coordinates and fit statistics for both embeddings."""
    pca_scores: pd.DataFrame
    pca_explained: pd.Series
    pca_loadings: pd.DataFrame
    nmds_coords: pd.DataFrame
    nmds_stress: float


def run_pca(matrix: pd.DataFrame, n_components: int = 2):
    """
    PCA on the rescaled matrix.

    Returns:
        (scores, explained_variance_ratio, loadings) where scores is
        mutation x PC, explained is indexed by PC and loadings is assay x PC
    """
    n_components = min(n_components, matrix.shape[0], matrix.shape[1])
    pca = PCA(n_components=n_components)
    scores = pca.fit_transform(matrix.to_numpy())

    pcs = [f"PC{i + 1}" for i in range(n_components)]
    scores_df = pd.DataFrame(scores, index=matrix.index, columns=pcs)
    scores_df.index.name = "mutation"
    explained = pd.Series(pca.explained_variance_ratio_, index=pcs, name="explained_variance_ratio")
    loadings = pd.DataFrame(pca.components_.T, index=matrix.columns, columns=pcs)

    logger.info(
        "PCA explained variance: "
        + ", ".join(f"{pc}={ratio:.1%}" for pc, ratio in explained.items())
    )
    return scores_df, explained, loadings


def run_nmds(
    matrix: pd.DataFrame,
    n_components: int = 2,
    n_init: int = 8,
    max_iter: int = 500,
    random_state: Optional[int] = 42,
):
    """
    Non-metric MDS on Euclidean distances between mutations.

    Returns:
        (coords, stress) where coords is mutation x NMDS axis and stress is
        the normalized (Kruskal) stress of the best run
    """
    distances = pairwise_distances(matrix)
    mds = MDS(
        n_components=n_components,
        metric=False,
        dissimilarity="precomputed",
        n_init=n_init,
        max_iter=max_iter,
        random_state=random_state,
        normalized_stress="auto",
    )
    coords = mds.fit_transform(distances.to_numpy())

    axes = [f"NMDS{i + 1}" for i in range(n_components)]
    coords_df = pd.DataFrame(coords, index=matrix.index, columns=axes)
    coords_df.index.name = "mutation"
    stress = float(mds.stress_)
    logger.info(f"nMDS stress: {stress:.4f} ({n_init} inits, max_iter={max_iter})")
    return coords_df, stress


def embed_mutations(matrix: pd.DataFrame, config: Dict[str, Any]) -> EmbeddingResult:
    """Run PCA and nMDS with parameters from the ``embedding`` config section."""
    embedding_cfg = config.get("embedding", {})

    scores, explained, loadings = run_pca(
        matrix,
        n_components=embedding_cfg.get("pca_components", 2),
    )
    coords, stress = run_nmds(
        matrix,
        n_components=embedding_cfg.get("nmds_components", 2),
        n_init=embedding_cfg.get("nmds_n_init", 8),
        max_iter=embedding_cfg.get("nmds_max_iter", 500),
        random_state=config.get("random_state", 42),
    )

    if not np.isfinite(stress):
        logger.warning("nMDS stress is not finite; check the distance matrix for duplicates")

    return EmbeddingResult(
        pca_scores=scores,
        pca_explained=explained,
        pca_loadings=loadings,
        nmds_coords=coords,
        nmds_stress=stress,
    )
