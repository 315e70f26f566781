"""
Configuration management for cytoexplore.

Hierarchical configuration built from dataclasses and YAML files. The
defaults are the parameter values the walkthrough notebooks use, so a run
from the command line reproduces the notebooks unless overridden.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Optional

import yaml
from omegaconf import OmegaConf

# =========================
# Configuration Dataclasses
# =========================

@dataclass
class ManifestConfig:
    """Configuration for building a file manifest."""

    # Discovery
    root: str = "./data"
    pattern: str = "*.fcs"
    recursive: bool = True
    full_names: bool = False

    # Path parsing: <condition>/<tissue>_<subject>.<ext>
    delimiter: str = "_"
    condition_index: int = -2  # Index into the path split on "/"
    tissue_index: int = 0  # Index into the filename stem split on delimiter
    subject_index: int = 1

    # Join
    results_path: Optional[str] = None
    join_how: str = "inner"  # Options: inner, left

@dataclass
class SyntheticConfig:
    """Configuration for the synthetic multi-phenotype dataset."""

    n_events: int = 20000
    cofactor: float = 150.0
    as_raw: bool = False
    random_state: int = 42

@dataclass
class ClusteringConfig:
    """Configuration for the clustering walkthrough."""

    # Shared
    random_state: int = 42
    standardise: bool = True

    # k-means
    kmeans_n_clusters: int = 6
    kmeans_n_init: int = 10
    kmeans_max_iter: int = 300

    # Self-organising map
    som_grid: list[int] = field(default_factory=lambda: [10, 10])
    som_sigma: float = 1.0
    som_learning_rate: float = 0.5
    som_n_iterations: int = 10000
    som_topology: str = "rectangular"  # Options: rectangular, hexagonal
    som_n_metaclusters: Optional[int] = 6

    # Gaussian mixture
    gmm_n_components: int = 6
    gmm_covariance_type: str = "full"  # Options: full, tied, diag, spherical
    gmm_max_iter: int = 200

@dataclass
class EmbeddingSettings:
    """Configuration for the UMAP embedding of events."""

    n_components: int = 2  # 3 gives a 3D plot
    umap_n_neighbors: int = 15
    umap_min_dist: float = 0.1
    umap_metric: str = "euclidean"
    max_events: int = 5000  # UMAP is run on a subsample

@dataclass
class ExploreConfig:
    """Master config for cytoexplore.

    Example:
        >>> config = ExploreConfig()
        >>> config.save("configs/walkthrough.yaml")
        >>>
        >>> config = ExploreConfig.from_yaml("configs/walkthrough.yaml")
        >>> config.clustering.kmeans_n_clusters = 8
    """

    manifest: ManifestConfig = field(default_factory=ManifestConfig)
    synthetic: SyntheticConfig = field(default_factory=SyntheticConfig)
    clustering: ClusteringConfig = field(default_factory=ClusteringConfig)
    embedding: EmbeddingSettings = field(default_factory=EmbeddingSettings)

    output_dir: str = "./outputs"
    experiment_name: str = "default"
    description: str = ""

    def save(self, path: str | Path) -> None:
        """Save the configuration to a YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)

        conf = OmegaConf.structured(self)

        with open(path, "w") as f:
            OmegaConf.save(conf, f)

    @classmethod
    def from_yaml(cls, path: str | Path) -> "ExploreConfig":
        """
        Load configuration from a YAML file, filling unset keys with defaults.

        Args:
            path: Path to the YAML configuration file.

        Returns:
            ExploreConfig instance.
        """
        path = Path(path)

        with open(path) as f:
            raw_config = yaml.safe_load(f) or {}

        return cls.from_dict(raw_config)

    @classmethod
    def from_dict(cls, config_dict: dict[str, Any]) -> "ExploreConfig":
        """Create configuration from a (possibly partial) dictionary."""
        default_conf = OmegaConf.structured(cls())
        loaded_conf = OmegaConf.create(config_dict)
        merged_conf = OmegaConf.merge(default_conf, loaded_conf)

        return OmegaConf.to_object(merged_conf)

    def to_dict(self) -> dict[str, Any]:
        """Convert configuration to dictionary."""
        return OmegaConf.to_container(OmegaConf.structured(self))

    def __repr__(self) -> str:
        return f"ExploreConfig(experiment_name='{self.experiment_name}')"

# =================
# Utility Functions
# =================

def load_config(path: str | Path) -> ExploreConfig:
    """Load configuration from YAML file."""
    return ExploreConfig.from_yaml(path)

def create_default_config(output_path: Optional[str | Path] = None) -> ExploreConfig:
    """
    Create a default configuration, optionally saving to a file.

    Args:
        output_path: If provided, save config to this path.

    Returns:
        Default ExploreConfig instance.
    """
    config = ExploreConfig()

    if output_path:
        config.save(output_path)

    return config
