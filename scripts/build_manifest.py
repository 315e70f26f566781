#!/usr/bin/env python
"""
Build a file manifest from an acquisition directory and join it with results.

Usage:
    python scripts/build_manifest.py --root data/raw --output outputs/manifest
    python scripts/build_manifest.py --root data/raw --results results.csv --output outputs/manifest
    python scripts/build_manifest.py --root data/raw --config configs/pilot.yaml

Examples:
    # Manifest only
    python scripts/build_manifest.py \\
        --root data/raw \\
        --pattern "*.fcs" \\
        --output outputs/manifest

    # Manifest joined with a results table (columns: file, biomarker)
    python scripts/build_manifest.py \\
        --root data/raw \\
        --results data/biomarker_results.csv \\
        --how left \\
        --output outputs/manifest

    # Using installed CLI entry point
    cytoexplore-manifest --root data/raw --results results.csv --output outputs/manifest
"""

import argparse
import sys
from pathlib import Path

import matplotlib
matplotlib.use("Agg")
import matplotlib.pyplot as plt

from cytoexplore import setup_logging, logger
from cytoexplore.analysis.visualisation import plot_biomarker_by_group, save_figure
from cytoexplore.data.manifest import (
    build_manifest,
    join_results,
    load_results,
    summarise_biomarker,
)
from cytoexplore.utils.config import ExploreConfig, load_config
from cytoexplore.utils.io import ensure_dir, save_table
from cytoexplore.utils.logging import level_from_flags


def parse_args(argv=None):
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Build a file manifest and join it with a results table.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=__doc__,
    )

    # Input/Output
    parser.add_argument(
        "--root", "-r",
        default=None,
        help="Directory to search for acquisition files (default: config manifest.root)",
    )
    parser.add_argument(
        "--results",
        default=None,
        help="Results CSV with columns 'file' and 'biomarker'",
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

    # Discovery and parsing
    parser.add_argument(
        "--pattern", "-p",
        default=None,
        help="Glob pattern for acquisition files (default: *.fcs)",
    )
    parser.add_argument(
        "--delimiter",
        default=None,
        help="Delimiter between filename tokens (default: _)",
    )
    parser.add_argument(
        "--no-recursive",
        action="store_true",
        help="Only search the top-level directory",
    )
    parser.add_argument(
        "--how",
        default=None,
        choices=["inner", "left"],
        help="Join type (default: inner)",
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


def main(argv=None):
    """Main entry point."""
    args = parse_args(argv)

    log_level = level_from_flags(args.verbose, args.quiet)
    setup_logging(level=log_level)

    if args.config is not None and not Path(args.config).exists():
        logger.error(f"Config file not found: {args.config}")
        sys.exit(1)

    config = load_config(args.config) if args.config else ExploreConfig()
    settings = config.manifest

    # Command-line flags override the config file
    if args.root is not None:
        settings.root = args.root
    if args.pattern is not None:
        settings.pattern = args.pattern
    if args.delimiter is not None:
        settings.delimiter = args.delimiter
    if args.no_recursive:
        settings.recursive = False
    if args.results is not None:
        settings.results_path = args.results
    if args.how is not None:
        settings.join_how = args.how

    root = Path(settings.root)
    if not root.is_dir():
        logger.error(f"Root directory not found: {root}")
        sys.exit(1)

    output_dir = ensure_dir(args.output or Path(config.output_dir) / config.experiment_name)
    log_file = args.log_file or output_dir / f"{config.experiment_name}.log"
    setup_logging(level=log_level, log_file=log_file)

    manifest = build_manifest(
        root,
        pattern=settings.pattern,
        recursive=settings.recursive,
        full_names=settings.full_names,
        delimiter=settings.delimiter,
        condition_index=settings.condition_index,
        tissue_index=settings.tissue_index,
        subject_index=settings.subject_index,
    )

    if len(manifest) == 0:
        logger.error(f"No files matching '{settings.pattern}' under {root}")
        sys.exit(1)

    manifest.save(output_dir / "manifest.csv")
    logger.info(f"Manifest summary: {manifest.summary()}")

    if settings.results_path is None:
        logger.info("No results table given; done.")
        return

    results_path = Path(settings.results_path)
    if not results_path.exists():
        logger.error(f"Results file not found: {results_path}")
        sys.exit(1)

    try:
        results = load_results(results_path)
    except ValueError as e:
        logger.error(f"Invalid results table {results_path}: {e}")
        sys.exit(1)
    joined = join_results(manifest, results, how=settings.join_how)
    save_table(joined, output_dir / "manifest_results.csv")

    summary = summarise_biomarker(joined)
    save_table(summary, output_dir / "biomarker_summary.csv")

    if joined["biomarker"].notna().any():
        fig, _ = plot_biomarker_by_group(joined, title="Biomarker by tissue and condition")
        save_figure(fig, output_dir / "biomarker_by_group.png")
        plt.close(fig)

    logger.info("Done!")
    logger.info(f"  Files in manifest: {len(manifest)}")
    logger.info(f"  Joined rows: {len(joined)}")
    logger.info(f"  Output directory: {output_dir}")


if __name__ == "__main__":
    main()
