"""
Visualisation utilities for cytoexplore.

Plotting functions for event maps (2D and 3D), biaxial marker plots, SOM
grids, Gaussian mixture components, cluster profiles and the manifest join.
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Literal, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd
import matplotlib.pyplot as plt
from matplotlib.axes import Axes
from matplotlib.figure import Figure
from matplotlib.patches import Ellipse
import seaborn as sns

from cytoexplore.analysis.clustering import ClusteringResult
from cytoexplore.utils.logging import logger


# =============================================================================
# Plot Configuration
# =============================================================================

@dataclass
class PlotConfig:
    """Configuration for plots."""

    # Figure size
    figsize: Tuple[float, float] = (10, 8)
    dpi: int = 100

    # Style
    style: str = "whitegrid"
    context: str = "notebook"
    palette: str = "tab10"

    # Font sizes
    title_size: int = 14
    label_size: int = 12
    tick_size: int = 10
    legend_size: int = 10

    # Colors
    cmap: str = "viridis"
    diverging_cmap: str = "RdBu_r"

    # Scatter
    point_size: float = 4.0
    alpha: float = 0.6

    def apply(self) -> None:
        """Apply configuration to matplotlib/seaborn."""
        sns.set_style(self.style)
        sns.set_context(self.context)
        plt.rcParams["figure.figsize"] = self.figsize
        plt.rcParams["figure.dpi"] = self.dpi
        plt.rcParams["axes.titlesize"] = self.title_size
        plt.rcParams["axes.labelsize"] = self.label_size
        plt.rcParams["xtick.labelsize"] = self.tick_size
        plt.rcParams["ytick.labelsize"] = self.tick_size
        plt.rcParams["legend.fontsize"] = self.legend_size


DEFAULT_CONFIG = PlotConfig()


def _setup_plot(config: Optional[PlotConfig] = None) -> PlotConfig:
    config = config or DEFAULT_CONFIG
    config.apply()
    return config


def _label_text(label) -> str:
    if isinstance(label, (int, np.integer)):
        return f"Cluster {label}"
    return str(label)


def _label_colors(labels: np.ndarray, palette: str) -> Tuple[np.ndarray, list]:
    unique_labels = np.unique(labels)
    colors = sns.color_palette(palette, n_colors=len(unique_labels))
    return unique_labels, colors


# =============================================================================
# Event Maps
# =============================================================================

def plot_embedding_space(
    data: np.ndarray,
    labels: Optional[np.ndarray] = None,
    method: Optional[Literal["umap", "tsne", "pca"]] = None,
    color_by: Optional[np.ndarray] = None,
    title: Optional[str] = None,
    axis_prefix: Optional[str] = None,
    ax: Optional[Axes] = None,
    config: Optional[PlotConfig] = None,
    **kwargs,
) -> Tuple[Figure, Axes]:
    """
    2D scatter of events, coloured by labels or a continuous value.

    Args:
        data: 2D coordinates, or an event matrix when ``method`` is given
        labels: Optional cluster or population labels for colouring
        method: Reduce ``data`` with this method first (None: data are coordinates)
        color_by: Continuous values for colouring (e.g. one marker)
        title: Plot title
        axis_prefix: Axis label prefix (default: method name or "Dim")
        ax: Existing axes to plot on
        config: Plot configuration
        **kwargs: Passed to the reduction method

    Returns:
        Tuple of (Figure, Axes)

    Example:
        >>> fig, ax = plot_embedding_space(coords, labels=events.labels, title="UMAP")
    """
    config = _setup_plot(config)

    if method is not None:
        from cytoexplore.analysis.embedding import reduce_dimensions

        coords = reduce_dimensions(data, n_components=2, method=method, **kwargs)
    else:
        coords = np.asarray(data)

    if coords.ndim != 2 or coords.shape[1] < 2:
        raise ValueError(f"Expected coordinates of shape (n, 2), got {coords.shape}")

    if ax is None:
        fig, ax = plt.subplots(figsize=config.figsize)
    else:
        fig = ax.figure

    if color_by is not None:
        scatter = ax.scatter(
            coords[:, 0],
            coords[:, 1],
            c=color_by,
            cmap=config.cmap,
            alpha=config.alpha,
            s=config.point_size,
        )
        plt.colorbar(scatter, ax=ax)
    elif labels is not None:
        labels = np.asarray(labels)
        unique_labels, colors = _label_colors(labels, config.palette)

        for i, label in enumerate(unique_labels):
            mask = labels == label
            ax.scatter(
                coords[mask, 0],
                coords[mask, 1],
                color=colors[i],
                label=_label_text(label),
                alpha=config.alpha,
                s=config.point_size,
            )
        ax.legend(bbox_to_anchor=(1.05, 1), loc="upper left", markerscale=3)
    else:
        ax.scatter(coords[:, 0], coords[:, 1], alpha=config.alpha, s=config.point_size)

    prefix = axis_prefix or (method.upper() if method else "Dim")
    ax.set_xlabel(f"{prefix} 1")
    ax.set_ylabel(f"{prefix} 2")

    if title:
        ax.set_title(title)

    fig.tight_layout()
    return fig, ax


def plot_embedding_3d(
    coords: np.ndarray,
    labels: Optional[np.ndarray] = None,
    color_by: Optional[np.ndarray] = None,
    axis_labels: Sequence[str] = ("Dim 1", "Dim 2", "Dim 3"),
    title: Optional[str] = None,
    elev: float = 20.0,
    azim: float = 45.0,
    config: Optional[PlotConfig] = None,
) -> Tuple[Figure, Axes]:
    """
    3D scatter of events (3-component embedding or three markers).

    Args:
        coords: Array of shape (n_events, 3)
        labels: Optional labels for colouring
        color_by: Continuous values for colouring
        axis_labels: Labels for the three axes
        title: Plot title
        elev: Camera elevation
        azim: Camera azimuth
        config: Plot configuration

    Returns:
        Tuple of (Figure, Axes3D)
    """
    config = _setup_plot(config)

    coords = np.asarray(coords)
    if coords.ndim != 2 or coords.shape[1] != 3:
        raise ValueError(f"Expected coordinates of shape (n, 3), got {coords.shape}")

    fig = plt.figure(figsize=config.figsize)
    ax = fig.add_subplot(projection="3d")

    if color_by is not None:
        scatter = ax.scatter(
            coords[:, 0], coords[:, 1], coords[:, 2],
            c=color_by, cmap=config.cmap, s=config.point_size, alpha=config.alpha,
        )
        fig.colorbar(scatter, ax=ax, shrink=0.6)
    elif labels is not None:
        labels = np.asarray(labels)
        unique_labels, colors = _label_colors(labels, config.palette)
        for i, label in enumerate(unique_labels):
            mask = labels == label
            ax.scatter(
                coords[mask, 0], coords[mask, 1], coords[mask, 2],
                color=colors[i], label=_label_text(label),
                s=config.point_size, alpha=config.alpha,
            )
        ax.legend(loc="upper left", markerscale=3)
    else:
        ax.scatter(coords[:, 0], coords[:, 1], coords[:, 2], s=config.point_size, alpha=config.alpha)

    ax.set_xlabel(axis_labels[0])
    ax.set_ylabel(axis_labels[1])
    ax.set_zlabel(axis_labels[2])
    ax.view_init(elev=elev, azim=azim)

    if title:
        ax.set_title(title)

    return fig, ax


def plot_marker_pairs(
    events: pd.DataFrame,
    pairs: Sequence[Tuple[str, str]],
    labels: Optional[np.ndarray] = None,
    n_cols: int = 3,
    config: Optional[PlotConfig] = None,
) -> Tuple[Figure, np.ndarray]:
    """
    Biaxial scatter plots for marker pairs (the classic gating view).

    Args:
        events: Event table (markers as columns, transformed scale)
        pairs: Marker pairs to plot, e.g. ``[("CD3", "CD19"), ("CD4", "CD8")]``
        labels: Optional labels for colouring
        n_cols: Panels per row
        config: Plot configuration

    Returns:
        Tuple of (Figure, array of Axes)
    """
    config = _setup_plot(config)

    fig, axes = create_figure_grid(len(pairs), n_cols=n_cols, figsize_per_plot=(4.5, 4))

    for ax, (x, y) in zip(axes, pairs):
        if labels is not None:
            labels = np.asarray(labels)
            unique_labels, colors = _label_colors(labels, config.palette)
            for i, label in enumerate(unique_labels):
                mask = labels == label
                ax.scatter(
                    events.loc[mask, x], events.loc[mask, y],
                    color=colors[i], label=_label_text(label),
                    s=config.point_size / 2, alpha=config.alpha,
                )
        else:
            ax.scatter(events[x], events[y], s=config.point_size / 2, alpha=config.alpha)
        ax.set_xlabel(x)
        ax.set_ylabel(y)

    if labels is not None and len(axes) > 0:
        handles, names = axes[0].get_legend_handles_labels()
        fig.legend(handles, names, loc="center left", bbox_to_anchor=(1.0, 0.5), markerscale=4)

    fig.tight_layout()
    return fig, axes


# =============================================================================
# Clustering Plots
# =============================================================================

def plot_som_grid(
    result: ClusteringResult,
    kind: Literal["hits", "umatrix", "metaclusters"] = "hits",
    title: Optional[str] = None,
    ax: Optional[Axes] = None,
    config: Optional[PlotConfig] = None,
) -> Tuple[Figure, Axes]:
    """
    Draw a SOM grid from a ``som_clustering`` result.

    Args:
        result: Result of ``som_clustering``
        kind: "hits" (events per node), "umatrix" (mean distance to
            neighbouring nodes; ridges separate populations) or
            "metaclusters" (metacluster per node)
        title: Plot title
        ax: Existing axes
        config: Plot configuration

    Returns:
        Tuple of (Figure, Axes)
    """
    config = _setup_plot(config)

    if "grid" not in result.metadata:
        raise ValueError(f"Result of method '{result.method}' has no SOM grid")

    n_rows, n_cols = result.metadata["grid"]

    if kind == "hits":
        grid = result.metadata["hits"]
        cmap, label = config.cmap, "Events"
    elif kind == "umatrix":
        grid = result.metadata["umatrix"]
        cmap, label = "bone_r", "Distance"
    elif kind == "metaclusters":
        if "node_labels" not in result.metadata:
            raise ValueError("SOM was trained without metaclustering")
        grid = result.metadata["node_labels"].reshape(n_rows, n_cols)
        cmap, label = "tab10", "Metacluster"
    else:
        raise ValueError(f"Unknown SOM plot kind: {kind}")

    if ax is None:
        fig, ax = plt.subplots(figsize=(7, 6))
    else:
        fig = ax.figure

    sns.heatmap(
        grid,
        ax=ax,
        cmap=cmap,
        square=True,
        annot=kind == "metaclusters",
        fmt="d" if kind == "metaclusters" else ".2g",
        cbar_kws={"label": label},
        xticklabels=False,
        yticklabels=False,
    )
    ax.set_title(title or f"SOM {kind} ({n_rows}x{n_cols})")

    fig.tight_layout()
    return fig, ax


def plot_gmm_ellipses(
    coords: np.ndarray,
    result: ClusteringResult,
    n_std: float = 2.0,
    title: Optional[str] = None,
    ax: Optional[Axes] = None,
    config: Optional[PlotConfig] = None,
) -> Tuple[Figure, Axes]:
    """
    Scatter 2D points coloured by GMM component, with covariance ellipses.

    The mixture must have been fitted on ``coords`` themselves (two
    dimensions), e.g. a UMAP embedding or a pair of markers.

    Args:
        coords: Array of shape (n_events, 2) the mixture was fitted on
        result: Result of ``gmm_clustering``
        n_std: Ellipse radius in standard deviations
        title: Plot title
        ax: Existing axes
        config: Plot configuration

    Returns:
        Tuple of (Figure, Axes)
    """
    config = _setup_plot(config)

    if "covariances" not in result.metadata:
        raise ValueError(f"Result of method '{result.method}' has no mixture components")

    means = result.metadata["means"]
    covariances = result.metadata["covariances"]
    if means.shape[1] != 2:
        raise ValueError(f"Ellipses need a 2D mixture, got {means.shape[1]} dimensions")

    fig, ax = plot_embedding_space(coords, labels=result.labels, ax=ax, config=config)

    _, colors = _label_colors(np.arange(len(means)), config.palette)
    for k, (mean, cov) in enumerate(zip(means, covariances)):
        eigenvalues, eigenvectors = np.linalg.eigh(cov)
        order = eigenvalues.argsort()[::-1]
        eigenvalues, eigenvectors = eigenvalues[order], eigenvectors[:, order]
        angle = np.degrees(np.arctan2(eigenvectors[1, 0], eigenvectors[0, 0]))
        width, height = 2 * n_std * np.sqrt(np.clip(eigenvalues, 0, None))

        ax.add_patch(Ellipse(
            xy=mean,
            width=width,
            height=height,
            angle=angle,
            fill=False,
            linewidth=2,
            edgecolor=colors[k],
        ))
        ax.plot(*mean, marker="x", color="black", markersize=8)

    if title:
        ax.set_title(title)

    return fig, ax


def plot_cluster_heatmap(
    profiles: pd.DataFrame,
    title: str = "Median Marker Expression per Cluster",
    scale: bool = True,
    figsize: Optional[Tuple[float, float]] = None,
    config: Optional[PlotConfig] = None,
) -> Tuple[Figure, Axes]:
    """
    Heatmap of marker expression per cluster.

    Args:
        profiles: DataFrame (clusters x markers), e.g. from ``cluster_profiles``
        title: Plot title
        scale: Min-max scale each marker to [0, 1] across clusters
        figsize: Figure size
        config: Plot configuration

    Returns:
        Tuple of (Figure, Axes)
    """
    config = _setup_plot(config)

    data = profiles
    if scale:
        span = (profiles.max() - profiles.min()).replace(0, 1.0)
        data = (profiles - profiles.min()) / span

    figsize = figsize or (1.0 * profiles.shape[1] + 3, 0.5 * profiles.shape[0] + 2)
    fig, ax = plt.subplots(figsize=figsize)

    sns.heatmap(
        data,
        ax=ax,
        cmap=config.cmap,
        annot=profiles.round(2) if profiles.size <= 200 else False,
        fmt="",
        cbar_kws={"label": "Scaled expression" if scale else "Expression"},
    )
    ax.set_xlabel("Marker")
    ax.set_ylabel("Cluster")
    ax.set_title(title)

    fig.tight_layout()
    return fig, ax


def plot_contingency(
    contingency: pd.DataFrame,
    normalise: bool = True,
    title: str = "Populations vs Clusters",
    config: Optional[PlotConfig] = None,
) -> Tuple[Figure, Axes]:
    """
    Heatmap of a populations x clusters contingency table.

    Args:
        contingency: Output of ``compare_to_truth(...)["contingency"]``
        normalise: Show the fraction of each population per cluster
        title: Plot title
        config: Plot configuration

    Returns:
        Tuple of (Figure, Axes)
    """
    config = _setup_plot(config)

    data = contingency.div(contingency.sum(axis=1), axis=0) if normalise else contingency

    fig, ax = plt.subplots(figsize=(0.8 * contingency.shape[1] + 4, 0.6 * contingency.shape[0] + 2))
    sns.heatmap(
        data,
        ax=ax,
        cmap="Blues",
        annot=True,
        fmt=".2f" if normalise else "d",
        vmin=0,
        vmax=1 if normalise else None,
    )
    ax.set_title(title)

    fig.tight_layout()
    return fig, ax


# =============================================================================
# Manifest Plots
# =============================================================================

def plot_biomarker_by_group(
    joined: pd.DataFrame,
    group_col: str = "tissue",
    hue_col: Optional[str] = "condition",
    value_col: str = "biomarker",
    title: Optional[str] = None,
    figsize: Tuple[float, float] = (9, 5),
    config: Optional[PlotConfig] = None,
) -> Tuple[Figure, Axes]:
    """
    Box plot with overlaid points of a per-file biomarker by group.

    Args:
        joined: Manifest joined with results
        group_col: Column on the x axis
        hue_col: Column used for colour (None for no split)
        value_col: Numeric column on the y axis
        title: Plot title
        figsize: Figure size
        config: Plot configuration

    Returns:
        Tuple of (Figure, Axes)
    """
    config = _setup_plot(config)

    fig, ax = plt.subplots(figsize=figsize)

    sns.boxplot(data=joined, x=group_col, y=value_col, hue=hue_col, ax=ax, showfliers=False)
    sns.stripplot(
        data=joined, x=group_col, y=value_col, hue=hue_col, ax=ax,
        dodge=hue_col is not None, color="black", size=4, alpha=0.7, legend=False,
    )

    ax.set_xlabel(group_col.capitalize())
    ax.set_ylabel(value_col.capitalize())
    if title:
        ax.set_title(title)

    fig.tight_layout()
    return fig, ax


# =============================================================================
# Utility Functions
# =============================================================================

def create_figure_grid(
    n_plots: int,
    n_cols: int = 3,
    figsize_per_plot: Tuple[float, float] = (4, 4),
) -> Tuple[Figure, np.ndarray]:
    """
    Create a grid of subplots.

    Args:
        n_plots: Number of plots
        n_cols: Number of columns
        figsize_per_plot: Size of each subplot

    Returns:
        Tuple of (Figure, flattened array of Axes containing exactly n_plots axes)
    """
    n_cols = max(1, min(n_cols, n_plots))

    n_rows = max(1, (n_plots + n_cols - 1) // n_cols)
    figsize = (figsize_per_plot[0] * n_cols, figsize_per_plot[1] * n_rows)

    fig, axes = plt.subplots(n_rows, n_cols, figsize=figsize, squeeze=False)
    axes = axes.flatten()

    for ax in axes[n_plots:]:
        ax.set_visible(False)

    return fig, axes[:n_plots]


def save_figure(
    fig: Figure,
    path: Union[str, Path],
    dpi: int = 150,
    transparent: bool = False,
    bbox_inches: str = "tight",
) -> None:
    """
    Save figure to file.

    Args:
        fig: Figure to save
        path: Output path
        dpi: Resolution
        transparent: Transparent background
        bbox_inches: Bounding box setting
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    fig.savefig(
        path,
        dpi=dpi,
        transparent=transparent,
        bbox_inches=bbox_inches,
    )
    logger.info(f"Saved figure to {path}")
