"""
Data handling for cytoexplore.

- File manifests built from acquisition directory trees, joined to results
- Event tables, synthetic multi-phenotype data and cytometry transforms
"""

from cytoexplore.data.manifest import (
    Manifest,
    ManifestRecord,
    ResultRecord,
    build_manifest,
    create_example_tree,
    join_results,
    list_files,
    load_results,
    parse_path,
    results_from_records,
    simulate_results,
    summarise_biomarker,
)
from cytoexplore.data.events import (
    DEFAULT_MARKERS,
    EventTable,
    Population,
    arcsinh_transform,
    compensate,
    default_populations,
    generate_synthetic_events,
    inverse_arcsinh_transform,
    load_events,
)

__all__ = [
    # Manifest
    "Manifest",
    "ManifestRecord",
    "ResultRecord",
    "list_files",
    "parse_path",
    "build_manifest",
    "load_results",
    "results_from_records",
    "join_results",
    "summarise_biomarker",
    "create_example_tree",
    "simulate_results",
    # Events
    "DEFAULT_MARKERS",
    "EventTable",
    "Population",
    "default_populations",
    "generate_synthetic_events",
    "arcsinh_transform",
    "inverse_arcsinh_transform",
    "compensate",
    "load_events",
]
