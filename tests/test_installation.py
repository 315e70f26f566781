# test_installation.py
"""Quick test to verify cytoexplore installation."""

from cytoexplore import (
    ExploreConfig,
    compare_to_truth,
    generate_synthetic_events,
    kmeans_clustering,
)
from cytoexplore.analysis.embedding import UMAP_AVAILABLE

# Test synthetic events
print("Testing synthetic events...")
events = generate_synthetic_events(n_events=2000, random_state=0)
print(f"  ✓ Created events: {events}")
print(f"  ✓ Markers: {', '.join(events.markers)}")
print(f"  ✓ Populations: {events.label_counts().to_dict()}")

# Test clustering
print("\nTesting k-means clustering...")
result = kmeans_clustering(events.to_numpy(), n_clusters=6)
comparison = compare_to_truth(result, events.labels)
print(f"  ✓ Clusters: {result.n_clusters}")
print(f"  ✓ ARI vs populations: {comparison['ari']:.3f}")

# Test Configuration
print("\nTesting Configuration...")
config = ExploreConfig(experiment_name="test")
print(f"  ✓ Created config: {config}")
print(f"  ✓ SOM grid: {config.clustering.som_grid}")
print(f"  ✓ UMAP neighbours: {config.embedding.umap_n_neighbors}")
print(f"  ✓ umap-learn available: {UMAP_AVAILABLE}")

print("\n All tests passed. cytoexplore is installed correctly.")
