"""
Utility functions and classes for cytoexplore.
"""

from cytoexplore.utils.config import (
    ClusteringConfig,
    EmbeddingSettings,
    ExploreConfig,
    ManifestConfig,
    SyntheticConfig,
    create_default_config,
    load_config,
)
from cytoexplore.utils.io import (
    ensure_dir,
    load_numpy,
    load_table,
    save_numpy,
    save_table,
)
from cytoexplore.utils.logging import get_logger, logger, setup_logging

__all__ = [
    # Config
    "ExploreConfig",
    "ManifestConfig",
    "SyntheticConfig",
    "ClusteringConfig",
    "EmbeddingSettings",
    "load_config",
    "create_default_config",
    # I/O
    "ensure_dir",
    "save_table",
    "load_table",
    "save_numpy",
    "load_numpy",
    # Logging
    "logger",
    "setup_logging",
    "get_logger",
]
