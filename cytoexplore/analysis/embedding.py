"""
Dimensionality reduction for cytometry events.

PCA, UMAP and t-SNE behind one interface, used to draw 2D/3D maps of
marker space and to cluster in a reduced space.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, Tuple, Union

import numpy as np
from sklearn.decomposition import PCA
from sklearn.manifold import TSNE
from sklearn.preprocessing import StandardScaler

from cytoexplore.utils.logging import logger

try:
    from umap import UMAP
    UMAP_AVAILABLE = True
except ImportError:
    UMAP_AVAILABLE = False


# =============================================================================
# Configuration
# =============================================================================

@dataclass
class EmbeddingConfig:
    """Configuration for event embedding."""

    method: Literal["pca", "umap", "tsne"] = "umap"
    n_components: int = 2

    # PCA settings
    pca_whiten: bool = False

    # UMAP settings
    umap_n_neighbors: int = 15
    umap_min_dist: float = 0.1
    umap_metric: str = "euclidean"

    # t-SNE settings
    tsne_perplexity: float = 30.0
    tsne_learning_rate: Union[float, str] = "auto"
    tsne_max_iter: int = 1000

    # Pre-processing
    standardise: bool = True

    # Reproducibility
    random_state: int = 42


# =============================================================================
# Event Embedder
# =============================================================================

class EventEmbedder:
    """
    Embed events into a low-dimensional space.

    UMAP preserves local neighbourhoods well, so populations appear as
    separated islands, but distances between islands and island sizes are
    not meaningful. PCA is linear and keeps global structure. t-SNE has no
    out-of-sample transform.

    Example:
        >>> embedder = EventEmbedder(method="umap", n_components=2)
        >>> coords = embedder.fit_transform(events.to_numpy())
    """

    def __init__(
        self,
        method: str = "umap",
        n_components: int = 2,
        random_state: int = 42,
        **kwargs,
    ):
        """
        Initialise event embedder.

        Args:
            method: Embedding method ("pca", "umap", "tsne")
            n_components: Number of output dimensions
            random_state: Random seed for reproducibility
            **kwargs: EmbeddingConfig fields (e.g. ``umap_n_neighbors``)
        """
        if method not in ("pca", "umap", "tsne"):
            raise ValueError(f"Unknown embedding method: {method}")

        self.config = EmbeddingConfig(
            method=method,
            n_components=n_components,
            random_state=random_state,
        )

        for key, value in kwargs.items():
            if not hasattr(self.config, key):
                raise TypeError(f"Unknown embedding option: {key}")
            setattr(self.config, key, value)

        self._model = None
        self._scaler = None
        self.is_fitted = False

        if method == "umap" and not UMAP_AVAILABLE:
            raise ImportError(
                "UMAP not available. Install with: pip install umap-learn"
            )

        logger.debug(f"Initialised EventEmbedder: method={method}, n_components={n_components}")

    def _create_model(self):
        config = self.config

        if config.method == "pca":
            return PCA(
                n_components=config.n_components,
                whiten=config.pca_whiten,
                random_state=config.random_state,
            )

        if config.method == "umap":
            return UMAP(
                n_components=config.n_components,
                n_neighbors=config.umap_n_neighbors,
                min_dist=config.umap_min_dist,
                metric=config.umap_metric,
                random_state=config.random_state,
            )

        return TSNE(
            n_components=config.n_components,
            perplexity=config.tsne_perplexity,
            learning_rate=config.tsne_learning_rate,
            max_iter=config.tsne_max_iter,
            random_state=config.random_state,
        )

    def _preprocess(self, X: np.ndarray, fit: bool) -> np.ndarray:
        X = np.nan_to_num(np.asarray(X, dtype=float), nan=0.0)
        if fit:
            self._scaler = StandardScaler() if self.config.standardise else None
            if self._scaler is not None:
                return self._scaler.fit_transform(X)
            return X
        if self._scaler is not None:
            return self._scaler.transform(X)
        return X

    def fit(self, X: np.ndarray) -> "EventEmbedder":
        """
        Fit the embedding model.

        Args:
            X: Event matrix (n_events, n_markers)

        Returns:
            self
        """
        if self.config.method == "tsne":
            raise RuntimeError("t-SNE doesn't support separate fit/transform. Use fit_transform.")

        X = self._preprocess(X, fit=True)
        self._model = self._create_model()
        self._model.fit(X)

        self.is_fitted = True
        logger.info(f"Fitted {self.config.method.upper()} embedder on {X.shape[0]} events")

        return self

    def transform(self, X: np.ndarray) -> np.ndarray:
        """
        Embed new events with the fitted model.

        Args:
            X: Event matrix (n_events, n_markers)

        Returns:
            Coordinates (n_events, n_components)
        """
        if self.config.method == "tsne":
            raise RuntimeError("t-SNE doesn't support transform on new data. Use fit_transform.")

        if not self.is_fitted:
            raise RuntimeError("Embedder must be fitted before transform")

        return self._model.transform(self._preprocess(X, fit=False))

    def fit_transform(self, X: np.ndarray) -> np.ndarray:
        """Fit and transform in one step."""
        X = self._preprocess(X, fit=True)
        self._model = self._create_model()

        embedded = self._model.fit_transform(X)

        self.is_fitted = True
        logger.info(f"Fitted and transformed {X.shape[0]} events with {self.config.method.upper()}")

        return embedded

    @property
    def explained_variance_ratio_(self) -> Optional[np.ndarray]:
        """Explained variance ratio (PCA only)."""
        if self.config.method == "pca" and self.is_fitted:
            return self._model.explained_variance_ratio_
        return None

    def get_loadings(self) -> Optional[np.ndarray]:
        """PCA loadings (n_components, n_markers), or None for other methods."""
        if self.config.method == "pca" and self.is_fitted:
            return self._model.components_
        return None

    def __repr__(self) -> str:
        return f"EventEmbedder(method={self.config.method}, n_components={self.config.n_components})"


# =============================================================================
# Convenience Functions
# =============================================================================

def reduce_dimensions(
    features: np.ndarray,
    n_components: int = 2,
    method: str = "umap",
    **kwargs,
) -> np.ndarray:
    """
    Convenience function to embed an event matrix.

    Args:
        features: Event matrix (n_events, n_markers)
        n_components: Number of output dimensions
        method: Embedding method
        **kwargs: EmbeddingConfig fields

    Returns:
        Coordinates (n_events, n_components)
    """
    embedder = EventEmbedder(method=method, n_components=n_components, **kwargs)
    return embedder.fit_transform(features)


def get_umap_embedding(
    features: np.ndarray,
    n_components: int = 2,
    n_neighbors: int = 15,
    min_dist: float = 0.1,
    return_model: bool = False,
    **kwargs,
) -> Union[np.ndarray, Tuple[np.ndarray, EventEmbedder]]:
    """
    UMAP embedding of events.

    Args:
        features: Event matrix
        n_components: Number of components (2 or 3 for plotting)
        n_neighbors: Size of the local neighbourhood; larger values favour global structure
        min_dist: Minimum distance between embedded points; smaller values pack clusters tighter
        return_model: Whether to return the fitted embedder
        **kwargs: Additional EmbeddingConfig fields

    Returns:
        Coordinates, and optionally the fitted embedder
    """
    embedder = EventEmbedder(
        method="umap",
        n_components=n_components,
        umap_n_neighbors=n_neighbors,
        umap_min_dist=min_dist,
        **kwargs,
    )
    embedded = embedder.fit_transform(features)

    if return_model:
        return embedded, embedder
    return embedded
