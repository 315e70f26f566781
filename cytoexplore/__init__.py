"""
cytoexplore: exploratory analysis of flow cytometry experiments.

This package provides tools for:
- Building file manifests from acquisition directory trees and joining them with results
- Generating and preprocessing flow-cytometry-like event data
- Clustering events with k-means, self-organising maps and Gaussian mixture models
- Embedding events with UMAP and plotting them in 2D and 3D
"""

__version__ = "0.1.0"

from cytoexplore.data.manifest import (
    Manifest,
    build_manifest,
    join_results,
    load_results,
)
from cytoexplore.data.events import (
    EventTable,
    arcsinh_transform,
    generate_synthetic_events,
    load_events,
)
from cytoexplore.analysis.clustering import (
    ClusteringResult,
    EventClustering,
    compare_to_truth,
    gmm_clustering,
    kmeans_clustering,
    som_clustering,
)
from cytoexplore.utils.config import ExploreConfig, load_config
from cytoexplore.utils.logging import logger, setup_logging

__all__ = [
    # Manifest
    "Manifest",
    "build_manifest",
    "load_results",
    "join_results",
    # Events
    "EventTable",
    "generate_synthetic_events",
    "arcsinh_transform",
    "load_events",
    # Clustering
    "ClusteringResult",
    "EventClustering",
    "kmeans_clustering",
    "som_clustering",
    "gmm_clustering",
    "compare_to_truth",
    # Config
    "ExploreConfig",
    "load_config",
    # Logging
    "logger",
    "setup_logging",
    # Version
    "__version__",
]
