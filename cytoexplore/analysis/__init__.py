"""
Analysis modules for cytoexplore.

This package provides tools for:
- Clustering events (k-means, self-organising maps, Gaussian mixtures)
- Embedding events (UMAP, PCA, t-SNE)
- Visualising events, clusters and manifest joins
"""

from cytoexplore.analysis.clustering import (
    ClusteringResult,
    EventClustering,
    cluster_events,
    cluster_profiles,
    compare_to_truth,
    gmm_clustering,
    kmeans_clustering,
    select_gmm_components,
    som_clustering,
)

from cytoexplore.analysis.embedding import (
    EmbeddingConfig,
    EventEmbedder,
    UMAP_AVAILABLE,
    get_umap_embedding,
    reduce_dimensions,
)

from cytoexplore.analysis.visualisation import (
    PlotConfig,
    create_figure_grid,
    plot_biomarker_by_group,
    plot_cluster_heatmap,
    plot_contingency,
    plot_embedding_3d,
    plot_embedding_space,
    plot_gmm_ellipses,
    plot_marker_pairs,
    plot_som_grid,
    save_figure,
)

__all__ = [
    # Clustering
    "ClusteringResult",
    "EventClustering",
    "kmeans_clustering",
    "som_clustering",
    "gmm_clustering",
    "select_gmm_components",
    "cluster_events",
    "cluster_profiles",
    "compare_to_truth",
    # Embedding
    "EmbeddingConfig",
    "EventEmbedder",
    "UMAP_AVAILABLE",
    "reduce_dimensions",
    "get_umap_embedding",
    # Visualisation
    "PlotConfig",
    "plot_embedding_space",
    "plot_embedding_3d",
    "plot_marker_pairs",
    "plot_som_grid",
    "plot_gmm_ellipses",
    "plot_cluster_heatmap",
    "plot_contingency",
    "plot_biomarker_by_group",
    "create_figure_grid",
    "save_figure",
]
