#!/usr/bin/env python
"""
Cluster and embed cytometry events with k-means, SOM, GMM and UMAP.

Usage:
    python scripts/cluster_events.py --output outputs/clustering
    python scripts/cluster_events.py --input events.csv --methods kmeans gmm --output outputs/clustering

Examples:
    # Synthetic multi-phenotype data, all methods
    python scripts/cluster_events.py \\
        --n-events 20000 \\
        --output outputs/clustering

    # Own data (CSV or FCS), arcsinh-transformed before clustering
    python scripts/cluster_events.py \\
        --input data/sample.fcs \\
        --markers CD3 CD4 CD8 CD19 \\
        --cofactor 150 \\
        --methods kmeans som \\
        --output outputs/sample

    # Using installed CLI entry point
    cytoexplore-cluster --config configs/walkthrough.yaml --output outputs/clustering
"""

import argparse
import json
import sys
from pathlib import Path

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from cytoexplore import setup_logging, logger
from cytoexplore.analysis.clustering import (
    ClusteringResult,
    cluster_profiles,
    compare_to_truth,
    gmm_clustering,
    kmeans_clustering,
    som_clustering,
)
from cytoexplore.analysis.embedding import get_umap_embedding
from cytoexplore.analysis.visualisation import (
    plot_cluster_heatmap,
    plot_contingency,
    plot_embedding_3d,
    plot_embedding_space,
    plot_som_grid,
    save_figure,
)
from cytoexplore.data.events import (
    arcsinh_transform,
    generate_synthetic_events,
    load_events,
)
from cytoexplore.utils.config import ExploreConfig, load_config
from cytoexplore.utils.io import ensure_dir, save_numpy, save_table
from cytoexplore.utils.logging import level_from_flags

METHODS = ["kmeans", "som", "gmm", "umap"]


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Cluster and embed cytometry events.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    # Input/Output
    parser.add_argument(
        "--input", "-i",
        default=None,
        help="Event file (.csv, .tsv or .fcs). Synthetic data if omitted",
    )
    parser.add_argument(
        "--output", "-o",
        default=None,
        help="Output directory (default: <output_dir>/<experiment_name> from the config)",
    )
    parser.add_argument(
        "--config", "-c",
        default=None,
        help="YAML configuration file",
    )

    # Data
    parser.add_argument(
        "--markers",
        nargs="+",
        default=None,
        help="Marker columns to use (default: all numeric columns)",
    )
    parser.add_argument(
        "--n-events",
        type=int,
        default=None,
        help="Number of synthetic events (default: config synthetic.n_events)",
    )
    parser.add_argument(
        "--cofactor",
        type=float,
        default=None,
        help="Apply an arcsinh transform with this cofactor before clustering",
    )

    # Methods
    parser.add_argument(
        "--methods", "-m",
        nargs="+",
        default=METHODS,
        choices=METHODS,
        help="Methods to run (default: all)",
    )
    parser.add_argument(
        "--seed",
        type=int,
        default=None,
        help="Random seed (default: config clustering.random_state)",
    )

    # Logging
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable verbose logging",
    )
    parser.add_argument(
        "--quiet", "-q",
        action="store_true",
        help="Only log warnings and errors",
    )
    parser.add_argument(
        "--log-file",
        default=None,
        help="Log file (default: <output>/<experiment_name>.log)",
    )

    return parser.parse_args(argv)


def _save_result(name, result: ClusteringResult, events, output_dir: Path, metrics: dict):
    """Write labels, profiles, figures and truth comparison for one method."""
    save_numpy(result.labels, output_dir / f"{name}_labels.npz")

    profiles = cluster_profiles(events.to_numpy(), result.labels, events.markers)
    save_table(profiles, output_dir / f"{name}_profiles.csv", index=True)

    fig, _ = plot_cluster_heatmap(profiles, title=f"{name}: median marker expression")
    save_figure(fig, output_dir / "figures" / f"{name}_heatmap.png")
    plt.close(fig)

    entry = {
        "n_clusters": result.n_clusters,
        "silhouette": result.silhouette,
        "calinski_harabasz": result.calinski_harabasz,
        "davies_bouldin": result.davies_bouldin,
    }

    if events.labels is not None:
        comparison = compare_to_truth(result, events.labels)
        entry.update({k: comparison[k] for k in ("ari", "nmi", "purity")})
        save_table(comparison["contingency"], output_dir / f"{name}_contingency.csv", index=True)

        fig, _ = plot_contingency(comparison["contingency"], title=f"{name}: populations vs clusters")
        save_figure(fig, output_dir / "figures" / f"{name}_contingency.png")
        plt.close(fig)

        logger.info(f"{name}: ARI={comparison['ari']:.3f}, NMI={comparison['nmi']:.3f}")

    metrics[name] = entry


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)

    log_level = level_from_flags(args.verbose, args.quiet)
    setup_logging(level=log_level)

    if args.config is not None and not Path(args.config).exists():
        logger.error(f"Config file not found: {args.config}")
        sys.exit(1)

    config = load_config(args.config) if args.config else ExploreConfig()
    clustering = config.clustering
    if args.seed is not None:
        clustering.random_state = args.seed
        config.synthetic.random_state = args.seed
    if args.n_events is not None:
        config.synthetic.n_events = args.n_events

    cofactor = args.cofactor

    # Load or generate events
    if args.input is not None:
        input_path = Path(args.input)
        if not input_path.exists():
            logger.error(f"Input file not found: {input_path}")
            sys.exit(1)
        try:
            events = load_events(input_path, markers=args.markers)
        except (ValueError, ImportError) as e:
            logger.error(f"Could not load events from {input_path}: {e}")
            sys.exit(1)
    else:
        events = generate_synthetic_events(
            n_events=config.synthetic.n_events,
            random_state=config.synthetic.random_state,
            markers=args.markers,
            as_raw=config.synthetic.as_raw,
            cofactor=config.synthetic.cofactor,
        )
        # Raw synthetic intensities are transformed back unless a cofactor is given
        if config.synthetic.as_raw and cofactor is None:
            cofactor = config.synthetic.cofactor

    # k-means and GMM need at least one event per cluster
    required = {"kmeans": clustering.kmeans_n_clusters, "gmm": clustering.gmm_n_components}
    n_needed = max((required[m] for m in args.methods if m in required), default=1)
    if events.n_events < n_needed:
        logger.error(
            f"Got {events.n_events} events but the requested methods need at least {n_needed}"
        )
        sys.exit(1)

    if cofactor is not None:
        events = events.with_data(arcsinh_transform(events.data, cofactor=cofactor))

    output_dir = ensure_dir(args.output or Path(config.output_dir) / config.experiment_name)
    log_file = args.log_file or output_dir / f"{config.experiment_name}.log"
    setup_logging(level=log_level, log_file=log_file)
    ensure_dir(output_dir / "figures")
    config.save(output_dir / "config.yaml")

    X = events.to_numpy()
    metrics = {}

    if "kmeans" in args.methods:
        result = kmeans_clustering(
            X,
            n_clusters=clustering.kmeans_n_clusters,
            n_init=clustering.kmeans_n_init,
            max_iter=clustering.kmeans_max_iter,
            random_state=clustering.random_state,
            standardise=clustering.standardise,
        )
        logger.info(result.summary())
        _save_result("kmeans", result, events, output_dir, metrics)

    if "som" in args.methods:
        result = som_clustering(
            X,
            grid=tuple(clustering.som_grid),
            sigma=clustering.som_sigma,
            learning_rate=clustering.som_learning_rate,
            n_iterations=clustering.som_n_iterations,
            topology=clustering.som_topology,
            n_metaclusters=clustering.som_n_metaclusters,
            random_state=clustering.random_state,
            standardise=clustering.standardise,
        )
        logger.info(result.summary())
        _save_result("som", result, events, output_dir, metrics)
        metrics["som"]["quantization_error"] = result.metadata["quantization_error"]
        metrics["som"]["topographic_error"] = result.metadata["topographic_error"]

        for kind in ("hits", "umatrix"):
            fig, _ = plot_som_grid(result, kind=kind)
            save_figure(fig, output_dir / "figures" / f"som_{kind}.png")
            plt.close(fig)

    if "gmm" in args.methods:
        result = gmm_clustering(
            X,
            n_components=clustering.gmm_n_components,
            covariance_type=clustering.gmm_covariance_type,
            max_iter=clustering.gmm_max_iter,
            random_state=clustering.random_state,
            standardise=clustering.standardise,
        )
        logger.info(result.summary())
        _save_result("gmm", result, events, output_dir, metrics)
        metrics["gmm"]["bic"] = result.metadata["bic"]

    if "umap" in args.methods:
        settings = config.embedding
        subset = events.subsample(settings.max_events, random_state=clustering.random_state)
        coords = get_umap_embedding(
            subset.to_numpy(),
            n_components=settings.n_components,
            n_neighbors=settings.umap_n_neighbors,
            min_dist=settings.umap_min_dist,
            umap_metric=settings.umap_metric,
            random_state=clustering.random_state,
        )
        save_numpy(coords, output_dir / "umap_coords.npz")

        title = f"UMAP of {subset.n_events} events"
        if settings.n_components == 3:
            fig, _ = plot_embedding_3d(
                coords,
                labels=subset.labels,
                axis_labels=("UMAP 1", "UMAP 2", "UMAP 3"),
                title=title,
            )
        else:
            fig, _ = plot_embedding_space(
                coords,
                labels=subset.labels,
                axis_prefix="UMAP",
                title=title,
            )
        save_figure(fig, output_dir / "figures" / "umap.png")
        plt.close(fig)

    with open(output_dir / "metrics.json", "w") as f:
        json.dump(metrics, f, indent=2)

    logger.info("Done!")
    logger.info(f"  Events: {events.n_events} x {len(events.markers)} markers")
    logger.info(f"  Methods: {', '.join(args.methods)}")
    logger.info(f"  Output directory: {output_dir}")


if __name__ == "__main__":
    main()
