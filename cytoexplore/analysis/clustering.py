"""
Clustering of cytometry events.

Thin wrappers around scikit-learn and MiniSom that return a common
``ClusteringResult``: k-means, self-organising maps (optionally
metaclustered, FlowSOM style) and Gaussian mixture models. None of the
algorithms are implemented here; the wrappers standardise inputs, call the
library with the chosen parameters and collect diagnostics.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
from minisom import MiniSom
from scipy.spatial.distance import cdist
from sklearn.cluster import KMeans
from sklearn.metrics import (
    adjusted_rand_score,
    calinski_harabasz_score,
    davies_bouldin_score,
    normalized_mutual_info_score,
    silhouette_score,
)
from sklearn.mixture import GaussianMixture
from sklearn.preprocessing import StandardScaler
from tqdm import tqdm

from cytoexplore.utils.logging import logger

# Silhouette is quadratic in the number of events
SILHOUETTE_SAMPLE_SIZE = 5000


# =============================================================================
# Clustering Result
# =============================================================================

@dataclass
class ClusteringResult:
    """Container for clustering results."""

    # Cluster assignments
    labels: np.ndarray  # Shape: (n_events,)

    # Number of clusters
    n_clusters: int

    # Clustering method used
    method: str

    # Cluster centers in the input space (if applicable)
    centers: Optional[np.ndarray] = None  # Shape: (n_clusters, n_markers)

    # Quality metrics
    silhouette: Optional[float] = None
    calinski_harabasz: Optional[float] = None
    davies_bouldin: Optional[float] = None

    # Sample information
    sample_ids: Optional[List[str]] = None

    # Method-specific diagnostics
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def cluster_sizes(self) -> Dict[int, int]:
        """Get size of each cluster."""
        unique, counts = np.unique(self.labels, return_counts=True)
        return dict(zip(unique.tolist(), counts.tolist()))

    def get_cluster_members(self, cluster_id: int) -> np.ndarray:
        """Get indices of events in a cluster."""
        return np.where(self.labels == cluster_id)[0]

    def get_cluster_member_ids(self, cluster_id: int) -> List[str]:
        """Get sample IDs for a cluster."""
        if self.sample_ids is None:
            return []
        indices = self.get_cluster_members(cluster_id)
        return [self.sample_ids[i] for i in indices]

    def summary(self) -> str:
        """Get summary string."""
        lines = [
            f"Clustering Result ({self.method})",
            f"  N clusters: {self.n_clusters}",
            f"  Cluster sizes: {self.cluster_sizes}",
        ]
        if self.silhouette is not None:
            lines.append(f"  Silhouette score: {self.silhouette:.4f}")
        if self.calinski_harabasz is not None:
            lines.append(f"  Calinski-Harabasz: {self.calinski_harabasz:.2f}")
        if self.davies_bouldin is not None:
            lines.append(f"  Davies-Bouldin: {self.davies_bouldin:.4f}")
        return "\n".join(lines)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (scalar diagnostics only)."""
        scalars = {
            k: v for k, v in self.metadata.items()
            if isinstance(v, (int, float, str, bool, np.integer, np.floating))
        }
        return {
            "labels": self.labels.tolist(),
            "n_clusters": self.n_clusters,
            "method": self.method,
            "cluster_sizes": self.cluster_sizes,
            "silhouette": self.silhouette,
            "calinski_harabasz": self.calinski_harabasz,
            "davies_bouldin": self.davies_bouldin,
            "sample_ids": self.sample_ids,
            "metadata": scalars,
        }


# =============================================================================
# Helpers
# =============================================================================

def _prepare(
    features: np.ndarray,
    standardise: bool,
) -> Tuple[np.ndarray, Optional[StandardScaler]]:
    """Replace NaNs and optionally standardise."""
    features = np.nan_to_num(np.asarray(features, dtype=float), nan=0.0)
    if not standardise:
        return features, None
    scaler = StandardScaler()
    return scaler.fit_transform(features), scaler


def _to_input_space(values: np.ndarray, scaler: Optional[StandardScaler]) -> np.ndarray:
    return scaler.inverse_transform(values) if scaler is not None else values


def _quality_metrics(
    features: np.ndarray,
    labels: np.ndarray,
    random_state: int = 42,
) -> Tuple[Optional[float], Optional[float], Optional[float]]:
    """Silhouette (subsampled), Calinski-Harabasz and Davies-Bouldin."""
    n_found = len(np.unique(labels))
    if n_found < 2 or n_found >= len(labels):
        return None, None, None

    sample_size = min(len(labels), SILHOUETTE_SAMPLE_SIZE)
    silhouette = float(silhouette_score(
        features, labels, sample_size=sample_size, random_state=random_state,
    ))
    calinski = float(calinski_harabasz_score(features, labels))
    davies = float(davies_bouldin_score(features, labels))
    return silhouette, calinski, davies


# =============================================================================
# Clustering Methods
# =============================================================================

def kmeans_clustering(
    features: np.ndarray,
    n_clusters: int = 6,
    n_init: int = 10,
    max_iter: int = 300,
    random_state: int = 42,
    standardise: bool = True,
    sample_ids: Optional[List[str]] = None,
) -> ClusteringResult:
    """
    Perform k-means clustering.

    k-means assumes roughly spherical clusters of similar size. On cytometry
    data it tends to split large populations and merge rare ones into their
    neighbours.

    Args:
        features: Event matrix of shape (n_events, n_markers)
        n_clusters: Number of clusters
        n_init: Number of initialisations
        max_iter: Maximum iterations
        random_state: Random seed
        standardise: Z-score markers before clustering
        sample_ids: Optional event identifiers

    Returns:
        ClusteringResult with cluster assignments
    """
    features_scaled, scaler = _prepare(features, standardise)

    kmeans = KMeans(
        n_clusters=n_clusters,
        n_init=n_init,
        max_iter=max_iter,
        random_state=random_state,
    )
    labels = kmeans.fit_predict(features_scaled)

    silhouette, calinski, davies = _quality_metrics(features_scaled, labels, random_state)

    return ClusteringResult(
        labels=labels,
        n_clusters=n_clusters,
        method="kmeans",
        centers=_to_input_space(kmeans.cluster_centers_, scaler),
        silhouette=silhouette,
        calinski_harabasz=calinski,
        davies_bouldin=davies,
        sample_ids=sample_ids,
        metadata={"inertia": float(kmeans.inertia_), "n_iter": int(kmeans.n_iter_)},
    )


def som_clustering(
    features: np.ndarray,
    grid: Sequence[int] = (10, 10),
    sigma: float = 1.0,
    learning_rate: float = 0.5,
    n_iterations: int = 10000,
    topology: Literal["rectangular", "hexagonal"] = "rectangular",
    n_metaclusters: Optional[int] = None,
    random_state: int = 42,
    standardise: bool = True,
    sample_ids: Optional[List[str]] = None,
) -> ClusteringResult:
    """
    Cluster events with a self-organising map.

    Each event is assigned to its best-matching unit (BMU); node ids are
    ``row * n_cols + col``. With ``n_metaclusters`` the SOM codebook is
    clustered with k-means and events inherit the label of their node, as
    in FlowSOM.

    Args:
        features: Event matrix of shape (n_events, n_markers)
        grid: SOM grid as (n_rows, n_cols)
        sigma: Initial neighbourhood radius
        learning_rate: Initial learning rate
        n_iterations: Number of training iterations (events drawn at random)
        topology: Grid topology
        n_metaclusters: Number of metaclusters (None keeps one cluster per node)
        random_state: Random seed
        standardise: Z-score markers before training
        sample_ids: Optional event identifiers

    Returns:
        ClusteringResult. ``metadata`` holds the codebook, node assignment
        per event, hit counts, U-matrix and quantization/topographic errors.
    """
    n_rows, n_cols = (int(g) for g in grid)
    features_scaled, scaler = _prepare(features, standardise)
    n_markers = features_scaled.shape[1]

    som = MiniSom(
        n_rows,
        n_cols,
        n_markers,
        sigma=sigma,
        learning_rate=learning_rate,
        topology=topology,
        random_seed=random_state,
    )
    som.random_weights_init(features_scaled)
    logger.info(
        f"Training {n_rows}x{n_cols} {topology} SOM for {n_iterations} iterations "
        f"(sigma={sigma}, lr={learning_rate})"
    )
    som.train_random(features_scaled, n_iterations, verbose=False)

    codebook = som.get_weights().reshape(-1, n_markers)
    nodes = np.argmin(cdist(features_scaled, codebook), axis=1)
    hits = np.bincount(nodes, minlength=n_rows * n_cols).reshape(n_rows, n_cols)

    quantization_error = float(som.quantization_error(features_scaled))
    topographic_error = float(som.topographic_error(features_scaled))

    metadata: Dict[str, Any] = {
        "grid": (n_rows, n_cols),
        "topology": topology,
        "codebook": codebook,
        "nodes": nodes,
        "hits": hits,
        "umatrix": som.distance_map(),
        "quantization_error": quantization_error,
        "topographic_error": topographic_error,
        "n_empty_nodes": int((hits == 0).sum()),
    }

    if n_metaclusters is not None:
        meta = KMeans(n_clusters=n_metaclusters, n_init=10, random_state=random_state)
        node_labels = meta.fit_predict(codebook)
        labels = node_labels[nodes]
        n_clusters = n_metaclusters
        centers = _to_input_space(meta.cluster_centers_, scaler)
        metadata["node_labels"] = node_labels
        method = "som_metaclusters"
    else:
        labels = nodes
        n_clusters = n_rows * n_cols
        centers = _to_input_space(codebook, scaler)
        method = "som"

    silhouette, calinski, davies = _quality_metrics(features_scaled, labels, random_state)

    logger.debug(
        f"SOM quantization error={quantization_error:.4f}, "
        f"empty nodes={metadata['n_empty_nodes']}"
    )

    return ClusteringResult(
        labels=labels,
        n_clusters=n_clusters,
        method=method,
        centers=centers,
        silhouette=silhouette,
        calinski_harabasz=calinski,
        davies_bouldin=davies,
        sample_ids=sample_ids,
        metadata=metadata,
    )


def _full_covariances(gmm: GaussianMixture, n_features: int) -> np.ndarray:
    """Expand any covariance type to an array of shape (k, d, d)."""
    k = gmm.n_components
    cov = gmm.covariances_
    if gmm.covariance_type == "full":
        return np.asarray(cov)
    if gmm.covariance_type == "tied":
        return np.repeat(cov[np.newaxis], k, axis=0)
    if gmm.covariance_type == "diag":
        return np.array([np.diag(c) for c in cov])
    # spherical
    return np.array([np.eye(n_features) * c for c in cov])


def gmm_clustering(
    features: np.ndarray,
    n_components: int = 6,
    covariance_type: Literal["full", "tied", "diag", "spherical"] = "full",
    max_iter: int = 200,
    n_init: int = 1,
    random_state: int = 42,
    standardise: bool = True,
    sample_ids: Optional[List[str]] = None,
) -> ClusteringResult:
    """
    Fit a Gaussian mixture model and assign events to their most likely component.

    Unlike k-means, full-covariance components can follow elongated
    populations and give soft (probabilistic) assignments.

    Args:
        features: Event matrix of shape (n_events, n_markers)
        n_components: Number of mixture components
        covariance_type: Covariance parameterisation
        max_iter: Maximum EM iterations
        n_init: Number of initialisations
        random_state: Random seed
        standardise: Z-score markers before fitting
        sample_ids: Optional event identifiers

    Returns:
        ClusteringResult. ``metadata`` holds responsibilities
        (``probabilities``), BIC/AIC, convergence, mixture weights and the
        component means/covariances mapped back to the input space.
    """
    features_scaled, scaler = _prepare(features, standardise)
    n_markers = features_scaled.shape[1]

    gmm = GaussianMixture(
        n_components=n_components,
        covariance_type=covariance_type,
        max_iter=max_iter,
        n_init=n_init,
        random_state=random_state,
    )
    gmm.fit(features_scaled)

    labels = gmm.predict(features_scaled)
    probabilities = gmm.predict_proba(features_scaled)

    covariances = _full_covariances(gmm, n_markers)
    if scaler is not None:
        scale = np.diag(scaler.scale_)
        covariances = np.array([scale @ c @ scale for c in covariances])

    if not gmm.converged_:
        logger.warning(f"GMM did not converge in {max_iter} iterations")

    silhouette, calinski, davies = _quality_metrics(features_scaled, labels, random_state)

    return ClusteringResult(
        labels=labels,
        n_clusters=n_components,
        method=f"gmm_{covariance_type}",
        centers=_to_input_space(gmm.means_, scaler),
        silhouette=silhouette,
        calinski_harabasz=calinski,
        davies_bouldin=davies,
        sample_ids=sample_ids,
        metadata={
            "probabilities": probabilities,
            "bic": float(gmm.bic(features_scaled)),
            "aic": float(gmm.aic(features_scaled)),
            "converged": bool(gmm.converged_),
            "n_iter": int(gmm.n_iter_),
            "weights": gmm.weights_,
            "means": _to_input_space(gmm.means_, scaler),
            "covariances": covariances,
        },
    )


def select_gmm_components(
    features: np.ndarray,
    component_range: Tuple[int, int] = (2, 10),
    covariance_type: str = "full",
    criterion: Literal["bic", "aic"] = "bic",
    random_state: int = 42,
    standardise: bool = True,
    show_progress: bool = False,
) -> Tuple[int, pd.DataFrame]:
    """
    Choose the number of mixture components by information criterion.

    Args:
        features: Event matrix
        component_range: Inclusive range of component counts to try
        covariance_type: Covariance parameterisation
        criterion: "bic" or "aic" (lower is better)
        random_state: Random seed
        standardise: Z-score markers before fitting
        show_progress: Show a progress bar

    Returns:
        Tuple of (best number of components, table of scores per count)
    """
    if criterion not in ("bic", "aic"):
        raise ValueError(f"Unknown criterion: {criterion}")

    features_scaled, _ = _prepare(features, standardise)
    k_min, k_max = component_range

    rows = []
    for k in tqdm(range(k_min, k_max + 1), desc="GMM components", disable=not show_progress):
        gmm = GaussianMixture(
            n_components=k,
            covariance_type=covariance_type,
            random_state=random_state,
        ).fit(features_scaled)
        rows.append({
            "n_components": k,
            "bic": float(gmm.bic(features_scaled)),
            "aic": float(gmm.aic(features_scaled)),
            "converged": bool(gmm.converged_),
        })

    scores = pd.DataFrame(rows)
    best = int(scores.loc[scores[criterion].idxmin(), "n_components"])
    logger.info(f"Optimal GMM components={best} (criterion={criterion})")
    return best, scores


# =============================================================================
# Main Clustering Class
# =============================================================================

class EventClustering:
    """
    High-level interface for clustering cytometry events.

    Example:
        >>> clustering = EventClustering(method="som", grid=(10, 10), n_metaclusters=6)
        >>> result = clustering.fit(events.to_numpy())
        >>>
        >>> profiles = clustering.get_cluster_profiles(events.to_numpy(), events.markers)
    """

    METHODS = ("kmeans", "som", "gmm")

    def __init__(
        self,
        method: Literal["kmeans", "som", "gmm"] = "kmeans",
        **kwargs,
    ):
        """
        Initialise clustering.

        Args:
            method: Clustering method
            **kwargs: Method-specific parameters
        """
        if method not in self.METHODS:
            raise ValueError(f"Unknown method: {method}. Use one of {self.METHODS}")
        self.method = method
        self.kwargs = kwargs
        self.result: Optional[ClusteringResult] = None

    def fit(
        self,
        features: np.ndarray,
        sample_ids: Optional[List[str]] = None,
        **kwargs,
    ) -> ClusteringResult:
        """
        Fit clustering to features.

        Args:
            features: Event matrix
            sample_ids: Optional event identifiers
            **kwargs: Override parameters

        Returns:
            ClusteringResult
        """
        params = {**self.kwargs, **kwargs}

        if self.method == "kmeans":
            self.result = kmeans_clustering(features, sample_ids=sample_ids, **params)
        elif self.method == "som":
            self.result = som_clustering(features, sample_ids=sample_ids, **params)
        else:
            self.result = gmm_clustering(features, sample_ids=sample_ids, **params)

        logger.info(self.result.summary())
        return self.result

    def find_optimal_k(
        self,
        features: np.ndarray,
        k_range: Tuple[int, int] = (2, 12),
        criterion: Literal["silhouette", "calinski", "elbow", "bic", "aic"] = "silhouette",
        random_state: int = 42,
    ) -> int:
        """
        Find the optimal number of clusters.

        k-means scans k on the standardised events; SOM scans the number of
        metaclusters on the fitted codebook (call ``fit`` first); GMM uses an
        information criterion ("bic" unless "aic" is given).

        Args:
            features: Event matrix
            k_range: Inclusive range of k values to try
            criterion: Optimisation criterion
            random_state: Random seed

        Returns:
            Optimal number of clusters
        """
        if self.method == "gmm":
            best_k, _ = select_gmm_components(
                features,
                component_range=k_range,
                covariance_type=self.kwargs.get("covariance_type", "full"),
                criterion="aic" if criterion == "aic" else "bic",
                random_state=random_state,
                standardise=self.kwargs.get("standardise", True),
            )
            return best_k

        if self.method == "som":
            if self.result is None or "codebook" not in self.result.metadata:
                raise RuntimeError("Must fit the SOM before choosing metaclusters")
            data = self.result.metadata["codebook"]
        else:
            data, _ = _prepare(features, self.kwargs.get("standardise", True))

        k_min, k_max = k_range
        scores = []

        for k in range(k_min, k_max + 1):
            kmeans = KMeans(n_clusters=k, random_state=random_state, n_init=10)
            labels = kmeans.fit_predict(data)

            if criterion == "calinski":
                score = calinski_harabasz_score(data, labels)
            elif criterion == "elbow":
                score = -kmeans.inertia_  # Negative because we want to maximise
            else:
                score = silhouette_score(
                    data,
                    labels,
                    sample_size=min(len(labels), SILHOUETTE_SAMPLE_SIZE),
                    random_state=random_state,
                )

            scores.append((k, score))

        best_k = max(scores, key=lambda x: x[1])[0]

        logger.info(f"Optimal k={best_k} (method={self.method}, criterion={criterion})")

        return best_k

    def get_cluster_profiles(
        self,
        features: np.ndarray,
        feature_names: Optional[List[str]] = None,
        statistic: Literal["median", "mean"] = "median",
    ) -> pd.DataFrame:
        """
        Marker expression summary per cluster.

        Args:
            features: Event matrix (untransformed by the clustering)
            feature_names: Marker names
            statistic: "median" (cytometry convention) or "mean"

        Returns:
            DataFrame of shape (n_clusters, n_markers), indexed by cluster id
        """
        if self.result is None:
            raise RuntimeError("Must fit clustering first")

        return cluster_profiles(features, self.result.labels, feature_names, statistic)


def cluster_profiles(
    features: np.ndarray,
    labels: np.ndarray,
    feature_names: Optional[List[str]] = None,
    statistic: Literal["median", "mean"] = "median",
) -> pd.DataFrame:
    """Median (or mean) of each marker per cluster label."""
    if statistic not in ("median", "mean"):
        raise ValueError(f"Unknown statistic: {statistic}")

    if feature_names is None:
        feature_names = [f"feature_{i}" for i in range(features.shape[1])]

    df = pd.DataFrame(features, columns=feature_names)
    df["cluster"] = labels
    return df.groupby("cluster").agg(statistic)


# =============================================================================
# Comparison with Ground Truth
# =============================================================================

def compare_to_truth(
    result: Union[ClusteringResult, np.ndarray],
    truth: np.ndarray,
) -> Dict[str, Any]:
    """
    Compare cluster labels with known population labels.

    Args:
        result: ClusteringResult or label array
        truth: Ground-truth population per event

    Returns:
        Dictionary with adjusted Rand index (``ari``), normalised mutual
        information (``nmi``), ``purity`` and the ``contingency`` table
        (populations x clusters)
    """
    labels = result.labels if isinstance(result, ClusteringResult) else np.asarray(result)
    truth = np.asarray(truth)

    if len(labels) != len(truth):
        raise ValueError(f"Got {len(labels)} cluster labels for {len(truth)} true labels")

    contingency = pd.crosstab(
        pd.Series(truth, name="population"),
        pd.Series(labels, name="cluster"),
    )
    purity = float(contingency.max(axis=0).sum() / contingency.to_numpy().sum())

    return {
        "ari": float(adjusted_rand_score(truth, labels)),
        "nmi": float(normalized_mutual_info_score(truth, labels)),
        "purity": purity,
        "contingency": contingency,
    }


# =============================================================================
# Convenience Functions
# =============================================================================

def cluster_events(
    features: np.ndarray,
    method: str = "kmeans",
    n_clusters: Optional[int] = None,
    sample_ids: Optional[List[str]] = None,
    **kwargs,
) -> ClusteringResult:
    """
    Convenience function to cluster an event matrix.

    ``n_clusters`` maps to the method's own parameter (``n_clusters`` for
    k-means, ``n_metaclusters`` for SOM, ``n_components`` for GMM). When it
    is None, k-means and GMM choose it automatically.

    Args:
        features: Event matrix of shape (n_events, n_markers)
        method: "kmeans", "som" or "gmm"
        n_clusters: Number of clusters
        sample_ids: Optional event identifiers
        **kwargs: Additional method-specific parameters

    Returns:
        ClusteringResult with cluster assignments
    """
    clustering = EventClustering(method=method, **kwargs)

    if n_clusters is None and method in ("kmeans", "gmm"):
        n_clusters = clustering.find_optimal_k(features)

    if n_clusters is not None:
        key = {"kmeans": "n_clusters", "som": "n_metaclusters", "gmm": "n_components"}[method]
        kwargs[key] = n_clusters

    return clustering.fit(features, sample_ids=sample_ids, **kwargs)
