"""
cytoexplore command-line scripts.

Entry points (available after `pip install -e .`):
    - cytoexplore-manifest: Build a file manifest and join it with results
    - cytoexplore-cluster: Cluster and embed cytometry events

Direct usage:
    python -m scripts.build_manifest --help
    python -m scripts.cluster_events --help
"""

__all__ = [
    "build_manifest",
    "cluster_events",
]
