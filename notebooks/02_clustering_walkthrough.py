# %% [markdown]
# # 02: Clustering Walkthrough: k-means, SOM, UMAP and GMM
#
# This notebook applies four common techniques to flow-cytometry-like data and looks at where each one works and where it breaks. We use a **synthetic dataset with known populations**, so every clustering can be scored against the truth rather than judged by eye.
#
# ## Learning Objectives
#
# By the end of this notebook, you will be able to:
#
# 1. **Prepare event data** with the arcsinh transform (and compensation, when needed)
# 2. **Run k-means** and recognise its failure modes on unequal and elongated populations
# 3. **Train a self-organising map** and metacluster its nodes (FlowSOM style)
# 4. **Embed events with UMAP** in 2D and 3D, and read those plots correctly
# 5. **Fit Gaussian mixtures**, choose the number of components with BIC, and draw covariance ellipses
# 6. **Compare methods** with ARI, NMI, purity and contingency tables
#
# ---

# %% [markdown]
# ## 1. Introduction
#
# ### The Synthetic Panel
#
# Events are drawn from six Gaussian populations in arcsinh-transformed space over a seven-marker panel:
#
# | Population | Fraction | Defining markers | Why it is there |
# |------------|----------|------------------|-----------------|
# | CD4 T | 35% | CD3+ CD4+ | Large population |
# | CD8 T | 20% | CD3+ CD8+, CD8/CD56 correlated | **Elongated** (grades into CD56) |
# | Classical monocyte | 22% | CD14+ HLA-DR+ | Large population |
# | B | 12% | CD19+ HLA-DR+ | |
# | NK | 8% | CD56+ | Neighbours the CD8 tail |
# | pDC | 3% | HLA-DR+ CD4 dim | **Rare** |
#
# Unequal sizes, one elongated population and one rare population are exactly the situations where k-means' assumptions (spherical clusters of similar size) fail.
#
# ---

# %% [markdown]
# ## 2. Setup

# %%
# Standard library imports
import warnings
from pathlib import Path

# Scientific computing
import numpy as np
import pandas as pd

# Visualisation
import matplotlib.pyplot as plt
import seaborn as sns

# cytoexplore imports
from cytoexplore.data.events import (
    DEFAULT_MARKERS,
    arcsinh_transform,
    compensate,
    default_populations,
    generate_synthetic_events,
)
from cytoexplore.analysis.clustering import (
    EventClustering,
    cluster_profiles,
    compare_to_truth,
    gmm_clustering,
    kmeans_clustering,
    select_gmm_components,
    som_clustering,
)
from cytoexplore.analysis.embedding import (
    EventEmbedder,
    UMAP_AVAILABLE,
    get_umap_embedding,
    reduce_dimensions,
)
from cytoexplore.analysis.visualisation import (
    create_figure_grid,
    plot_cluster_heatmap,
    plot_contingency,
    plot_embedding_3d,
    plot_embedding_space,
    plot_gmm_ellipses,
    plot_marker_pairs,
    plot_som_grid,
    save_figure,
)
from cytoexplore.utils.config import ExploreConfig
from cytoexplore.utils.io import ensure_dir, save_numpy, save_table
from cytoexplore.utils.logging import setup_logging

# Configure plotting
plt.style.use('seaborn-v0_8-whitegrid')
sns.set_palette("husl")
warnings.filterwarnings('ignore', category=FutureWarning)

setup_logging(level="INFO")

# Literal parameters for the whole walkthrough
config = ExploreConfig()
RANDOM_STATE = config.clustering.random_state
N_EVENTS = config.synthetic.n_events
N_CLUSTERS = config.clustering.kmeans_n_clusters

print("cytoexplore Clustering Walkthrough")
print("=" * 50)
print(f"UMAP available: {UMAP_AVAILABLE}")

# %% [markdown]
# ### Define Output Directories

# %%
OUTPUT_DIR = Path("outputs/02_clustering_walkthrough")
FIGURES_DIR = OUTPUT_DIR / "figures"
DATA_DIR = OUTPUT_DIR / "data"

ensure_dir(FIGURES_DIR)
ensure_dir(DATA_DIR)

config.save(OUTPUT_DIR / "config.yaml")
print(f"Output directory: {OUTPUT_DIR}")

# %% [markdown]
# ## 3. Preparing the Data
#
# ### 3.1 Raw Intensities and the Arcsinh Transform
#
# Cytometers record linear-scale intensities spanning several decades, with negative values after compensation. The usual display and analysis scale is `asinh(x / cofactor)`: linear near zero, logarithmic for bright signals. It plays the role of the biexponential ("logicle") transform. A cofactor of 150 is typical for fluorescence flow cytometry, 5 for mass cytometry.
#
# We generate the data on the raw scale first to see why the transform matters.

# %%
raw_events = generate_synthetic_events(
    n_events=N_EVENTS,
    random_state=RANDOM_STATE,
    as_raw=True,
    cofactor=config.synthetic.cofactor,
)

print(raw_events)
print(raw_events.label_counts())
raw_events.data.describe().round(1)

# %%
events = raw_events.with_data(arcsinh_transform(raw_events.data, cofactor=config.synthetic.cofactor))

fig, axes = create_figure_grid(2, n_cols=2, figsize_per_plot=(5, 4))
axes[0].hist(raw_events.data["CD4"], bins=200, color="grey")
axes[0].set_title("CD4, linear scale")
axes[1].hist(events.data["CD4"], bins=200, color="steelblue")
axes[1].set_title("CD4, arcsinh (cofactor 150)")
fig.tight_layout()
save_figure(fig, FIGURES_DIR / "arcsinh_transform.png")
plt.show()

# %% [markdown]
# On the linear scale nearly all events are squashed against zero; after the transform the CD4- and CD4+ populations separate. Every method below uses the transformed data.
#
# ### 3.2 Compensation
#
# Fluorochromes spill into neighbouring detectors. Compensation solves `observed = true @ spillover` for the true signal using the spillover matrix measured with single-stained controls. It is applied on the **linear** scale, before the transform. Our synthetic data have no spillover, so we add some and remove it again to show the round trip.

# %%
spillover = pd.DataFrame(np.eye(len(DEFAULT_MARKERS)), index=DEFAULT_MARKERS, columns=DEFAULT_MARKERS)
spillover.loc["CD4", "CD8"] = 0.12
spillover.loc["CD19", "HLA-DR"] = 0.05

observed = raw_events.data.copy()
observed[DEFAULT_MARKERS] = raw_events.data[DEFAULT_MARKERS].to_numpy() @ spillover.to_numpy()
compensated = compensate(observed, spillover)

print(f"Max error after compensation: {np.abs(compensated - raw_events.data).to_numpy().max():.2e}")

# %% [markdown]
# ### 3.3 The Classic Biaxial View
#
# Before any algorithm, look at the data the way a cytometrist would: pairs of markers.

# %%
fig, axes = plot_marker_pairs(
    events.data,
    pairs=[("CD3", "CD19"), ("CD4", "CD8"), ("CD8", "CD56"), ("CD14", "HLA-DR")],
    labels=events.labels,
    n_cols=2,
)
save_figure(fig, FIGURES_DIR / "marker_pairs.png")
plt.show()

# %% [markdown]
# The CD8 vs CD56 panel shows the elongated CD8 T population stretching towards the NK cells. That shape will matter.

# %%
X = events.to_numpy()
truth = events.labels
scores = {}

# %% [markdown]
# ## 4. k-means
#
# k-means minimises the within-cluster sum of squares. It implicitly assumes **spherical clusters of roughly equal size and variance**. We give it the true number of populations (6), which is more than one gets in practice.

# %%
kmeans_result = kmeans_clustering(
    X,
    n_clusters=N_CLUSTERS,
    n_init=config.clustering.kmeans_n_init,
    random_state=RANDOM_STATE,
)
print(kmeans_result.summary())

kmeans_comparison = compare_to_truth(kmeans_result, truth)
scores["k-means"] = kmeans_comparison
print(f"\nARI: {kmeans_comparison['ari']:.3f}  NMI: {kmeans_comparison['nmi']:.3f}  Purity: {kmeans_comparison['purity']:.3f}")

# %%
fig, ax = plot_contingency(kmeans_comparison["contingency"], title="k-means: populations vs clusters")
save_figure(fig, FIGURES_DIR / "kmeans_contingency.png")
plt.show()

# %% [markdown]
# ### 4.1 Failure Modes
#
# Read the contingency table row by row:
#
# - **Large populations get split.** With a fixed budget of 6 centroids, k-means reduces error most by spending two centroids on a big population (CD4 T or monocytes) and none on a small one.
# - **The rare pDC population is absorbed** by whichever neighbour is closest (usually the B cells, which share HLA-DR).
# - **The elongated CD8 T population is cut across its long axis**, with its CD56-high tail assigned to the NK cluster.
#
# The silhouette score can still look respectable, because it rewards compact, well-separated clusters, not correct ones.

# %% [markdown]
# ### 4.2 Choosing k
#
# Internal criteria can suggest k, but they inherit the same assumptions. Silhouette often prefers fewer, coarser clusters.

# %%
kmeans_clustering_obj = EventClustering(method="kmeans")
subset = events.subsample(5000, random_state=RANDOM_STATE)

k_silhouette = kmeans_clustering_obj.find_optimal_k(subset.to_numpy(), k_range=(2, 10), criterion="silhouette")
k_calinski = kmeans_clustering_obj.find_optimal_k(subset.to_numpy(), k_range=(2, 10), criterion="calinski")

print(f"Optimal k by silhouette: {k_silhouette}")
print(f"Optimal k by Calinski-Harabasz: {k_calinski}")
print(f"True number of populations: {len(default_populations())}")

# %% [markdown]
# ### 4.3 Over-clustering
#
# A common practical fix is to over-cluster (say k = 20) and merge clusters by marker profile afterwards. Purity rises because each cluster now sits inside one population, at the cost of populations being split over several clusters (lower ARI).

# %%
over_result = kmeans_clustering(X, n_clusters=20, random_state=RANDOM_STATE)
over_comparison = compare_to_truth(over_result, truth)
print(f"k=20  ARI: {over_comparison['ari']:.3f}  Purity: {over_comparison['purity']:.3f}")

# %% [markdown]
# ## 5. Self-Organising Maps
#
# A self-organising map (SOM) places a grid of nodes in marker space and pulls each node, and its grid neighbours, towards the events it wins. After training, each event maps to its **best-matching unit (BMU)**. The grid is deliberately larger than the number of populations: the SOM over-clusters, and a second step groups nodes into **metaclusters**. This is the FlowSOM recipe.
#
# ### 5.1 Training the Map

# %%
som_result = som_clustering(
    X,
    grid=tuple(config.clustering.som_grid),
    sigma=config.clustering.som_sigma,
    learning_rate=config.clustering.som_learning_rate,
    n_iterations=config.clustering.som_n_iterations,
    n_metaclusters=config.clustering.som_n_metaclusters,
    random_state=RANDOM_STATE,
)
print(som_result.summary())
print(f"\nQuantization error: {som_result.metadata['quantization_error']:.4f}")
print(f"Topographic error: {som_result.metadata['topographic_error']:.4f}")
print(f"Empty nodes: {som_result.metadata['n_empty_nodes']}")

# %%
fig, axes = create_figure_grid(3, n_cols=3, figsize_per_plot=(6, 5))
for ax, kind in zip(axes, ["hits", "umatrix", "metaclusters"]):
    plot_som_grid(som_result, kind=kind, ax=ax)
fig.tight_layout()
save_figure(fig, FIGURES_DIR / "som_grids.png")
plt.show()

# %% [markdown]
# - **Hits** show how many events each node won. The rare pDC population occupies a handful of nodes of its own, which k-means never gave it.
# - The **U-matrix** shows the mean distance from each node to its neighbours; bright ridges are boundaries between populations.
# - **Metaclusters** group nodes with k-means on the codebook. Because this second k-means runs on ~100 node prototypes rather than 20,000 events, population size matters much less.

# %%
som_comparison = compare_to_truth(som_result, truth)
scores["SOM + metaclusters"] = som_comparison
print(f"ARI: {som_comparison['ari']:.3f}  NMI: {som_comparison['nmi']:.3f}  Purity: {som_comparison['purity']:.3f}")

fig, ax = plot_contingency(som_comparison["contingency"], title="SOM metaclusters: populations vs clusters")
save_figure(fig, FIGURES_DIR / "som_contingency.png")
plt.show()

# %% [markdown]
# ### 5.2 Effect of Grid Size
#
# Too small a grid cannot represent all populations; too large a grid leaves many nodes empty and is slower to train. The metaclustering step is what makes the result robust to this choice.

# %%
grid_rows = []
for grid in [(3, 3), (6, 6), (10, 10), (15, 15)]:
    result = som_clustering(
        X,
        grid=grid,
        n_iterations=config.clustering.som_n_iterations,
        n_metaclusters=N_CLUSTERS,
        random_state=RANDOM_STATE,
    )
    grid_rows.append({
        "grid": f"{grid[0]}x{grid[1]}",
        "quantization_error": result.metadata["quantization_error"],
        "empty_nodes": result.metadata["n_empty_nodes"],
        "ari": compare_to_truth(result, truth)["ari"],
    })

pd.DataFrame(grid_rows)

# %% [markdown]
# ### 5.3 Choosing the Number of Metaclusters
#
# For a SOM, `find_optimal_k` scans the number of metaclusters on the trained codebook, which is fast.

# %%
som_clustering_obj = EventClustering(
    method="som",
    grid=tuple(config.clustering.som_grid),
    n_iterations=config.clustering.som_n_iterations,
    random_state=RANDOM_STATE,
)
som_clustering_obj.fit(X)
best_meta = som_clustering_obj.find_optimal_k(X, k_range=(3, 12), criterion="silhouette")
print(f"Suggested number of metaclusters: {best_meta}")

# %% [markdown]
# ## 6. UMAP
#
# UMAP builds a nearest-neighbour graph in marker space and lays it out in 2 or 3 dimensions. It is **not a clustering method**, but it is the standard way to look at high-dimensional cytometry data.
#
# How to read a UMAP:
#
# - **Local neighbourhoods are preserved**: events close in the embedding are similar.
# - **Distances between islands and island sizes are not meaningful.** A rare population can look as big as a common one.
# - `n_neighbors` trades local detail for global structure; `min_dist` controls how tightly points pack.
#
# UMAP is slow on very large inputs, so we embed a subsample.

# %%
umap_events = events.subsample(config.embedding.max_events, random_state=RANDOM_STATE)
umap_X = umap_events.to_numpy()

if UMAP_AVAILABLE:
    umap_coords, umap_model = get_umap_embedding(
        umap_X,
        n_components=2,
        n_neighbors=config.embedding.umap_n_neighbors,
        min_dist=config.embedding.umap_min_dist,
        random_state=RANDOM_STATE,
        return_model=True,
    )
    embedding_name = "UMAP"
else:
    print("umap-learn not installed; falling back to PCA for the 2D maps")
    umap_coords = reduce_dimensions(umap_X, n_components=2, method="pca")
    embedding_name = "PCA"

save_numpy(umap_coords, DATA_DIR / "embedding_2d.npz")

# %%
fig, ax = plot_embedding_space(
    umap_coords,
    labels=umap_events.labels,
    axis_prefix=embedding_name,
    title=f"{embedding_name} coloured by true population",
)
save_figure(fig, FIGURES_DIR / "umap_truth.png")
plt.show()

# %% [markdown]
# ### 6.1 Colouring by Marker and by Cluster
#
# Colouring by a single marker is how populations are annotated in practice. Colouring by k-means labels on the same map shows where k-means cut populations apart.

# %%
fig, axes = create_figure_grid(2, n_cols=2, figsize_per_plot=(7, 6))
plot_embedding_space(
    umap_coords,
    color_by=umap_events.data["CD56"].to_numpy(),
    axis_prefix=embedding_name,
    title="CD56 expression",
    ax=axes[0],
)
kmeans_on_subset = kmeans_clustering(umap_X, n_clusters=N_CLUSTERS, random_state=RANDOM_STATE)
plot_embedding_space(
    umap_coords,
    labels=kmeans_on_subset.labels,
    axis_prefix=embedding_name,
    title="k-means clusters",
    ax=axes[1],
)
fig.tight_layout()
save_figure(fig, FIGURES_DIR / "umap_marker_and_kmeans.png")
plt.show()

# %% [markdown]
# ### 6.2 Parameter Sensitivity
#
# The same data with different `n_neighbors` can look quite different. Only structure that persists across settings should be interpreted.

# %%
if UMAP_AVAILABLE:
    neighbour_settings = [5, 15, 50]
    fig, axes = create_figure_grid(len(neighbour_settings), n_cols=3, figsize_per_plot=(6, 5))
    for ax, n_neighbors in zip(axes, neighbour_settings):
        coords = get_umap_embedding(umap_X, n_neighbors=n_neighbors, random_state=RANDOM_STATE)
        plot_embedding_space(
            coords,
            labels=umap_events.labels,
            axis_prefix="UMAP",
            title=f"n_neighbors={n_neighbors}",
            ax=ax,
        )
        ax.get_legend().remove()
    fig.tight_layout()
    save_figure(fig, FIGURES_DIR / "umap_n_neighbors.png")
    plt.show()

# %% [markdown]
# ### 6.3 Out-of-Sample Events
#
# A fitted UMAP (or PCA) model can place new events onto an existing map, which t-SNE cannot do.

# %%
if UMAP_AVAILABLE:
    new_events = generate_synthetic_events(n_events=1000, random_state=RANDOM_STATE + 1)
    new_coords = umap_model.transform(new_events.to_numpy())
    print(f"Projected {len(new_coords)} new events onto the existing map")

# %% [markdown]
# ### 6.4 3D Embedding
#
# A third dimension sometimes separates populations that overlap in 2D, at the cost of being harder to read on paper.

# %%
if UMAP_AVAILABLE:
    coords_3d = get_umap_embedding(umap_X, n_components=3, random_state=RANDOM_STATE)
    axis_labels = ("UMAP 1", "UMAP 2", "UMAP 3")
else:
    coords_3d = reduce_dimensions(umap_X, n_components=3, method="pca")
    axis_labels = ("PC 1", "PC 2", "PC 3")

fig, ax = plot_embedding_3d(
    coords_3d,
    labels=umap_events.labels,
    axis_labels=axis_labels,
    title="3D embedding coloured by true population",
)
save_figure(fig, FIGURES_DIR / "embedding_3d.png")
plt.show()

# %%
# Three raw markers as a 3D gating view
fig, ax = plot_embedding_3d(
    umap_events.data[["CD3", "CD8", "CD56"]].to_numpy(),
    labels=umap_events.labels,
    axis_labels=("CD3", "CD8", "CD56"),
    title="CD3 / CD8 / CD56",
)
plt.show()

# %% [markdown]
# ### 6.5 PCA for Comparison
#
# PCA is linear and keeps global structure. It is a useful sanity check on a UMAP: populations that PCA already separates are not UMAP artefacts.

# %%
pca = EventEmbedder(method="pca", n_components=len(events.markers))
pca.fit(X)
print("Explained variance ratio:", np.round(pca.explained_variance_ratio_, 3))

# %% [markdown]
# ## 7. Gaussian Mixture Models
#
# A Gaussian mixture models the data as a weighted sum of Gaussians fitted by expectation maximisation. With **full covariances** each component has its own shape and orientation, so elongated populations are no problem, and each event gets a probability of belonging to each component.
#
# ### 7.1 Fitting a Mixture

# %%
gmm_result = gmm_clustering(
    X,
    n_components=config.clustering.gmm_n_components,
    covariance_type=config.clustering.gmm_covariance_type,
    max_iter=config.clustering.gmm_max_iter,
    random_state=RANDOM_STATE,
)
print(gmm_result.summary())
print(f"\nConverged: {gmm_result.metadata['converged']}  BIC: {gmm_result.metadata['bic']:.0f}")

gmm_comparison = compare_to_truth(gmm_result, truth)
scores["GMM (full)"] = gmm_comparison
print(f"ARI: {gmm_comparison['ari']:.3f}  NMI: {gmm_comparison['nmi']:.3f}  Purity: {gmm_comparison['purity']:.3f}")

# %%
fig, ax = plot_contingency(gmm_comparison["contingency"], title="GMM: populations vs clusters")
save_figure(fig, FIGURES_DIR / "gmm_contingency.png")
plt.show()

# %% [markdown]
# ### 7.2 Soft Assignments
#
# Events between populations get split probabilities. The least certain events sit along the CD8 to NK continuum, where the truth really is ambiguous.

# %%
probabilities = gmm_result.metadata["probabilities"]
confidence = probabilities.max(axis=1)

uncertain = pd.Series(truth[confidence < 0.8]).value_counts()
print(f"Events with max probability < 0.8: {(confidence < 0.8).sum()}")
print(uncertain)

# %% [markdown]
# ### 7.3 Choosing the Number of Components with BIC
#
# The Bayesian information criterion penalises likelihood by the number of parameters; lower is better.

# %%
best_n, bic_scores = select_gmm_components(
    X,
    component_range=(2, 10),
    covariance_type="full",
    criterion="bic",
    random_state=RANDOM_STATE,
    show_progress=True,
)
print(f"BIC-optimal number of components: {best_n}")

fig, ax = plt.subplots(figsize=(7, 4))
ax.plot(bic_scores["n_components"], bic_scores["bic"], marker="o", label="BIC")
ax.plot(bic_scores["n_components"], bic_scores["aic"], marker="s", label="AIC")
ax.axvline(best_n, color="red", linestyle="--", alpha=0.7)
ax.set_xlabel("Number of components")
ax.set_ylabel("Information criterion")
ax.legend()
save_figure(fig, FIGURES_DIR / "gmm_bic.png")
plt.show()

# %% [markdown]
# ### 7.4 Covariance Types
#
# Restricting the covariance (`diag`, `spherical`) makes the model cheaper but reintroduces k-means-like assumptions. `spherical` in particular cannot follow the CD8 population.

# %%
covariance_rows = []
for covariance_type in ["full", "tied", "diag", "spherical"]:
    result = gmm_clustering(
        X,
        n_components=N_CLUSTERS,
        covariance_type=covariance_type,
        random_state=RANDOM_STATE,
    )
    covariance_rows.append({
        "covariance_type": covariance_type,
        "bic": result.metadata["bic"],
        "ari": compare_to_truth(result, truth)["ari"],
    })

pd.DataFrame(covariance_rows)

# %% [markdown]
# ### 7.5 Ellipses in Two Dimensions
#
# Covariance ellipses are easiest to see on a 2D mixture. Fitting on the CD8/CD56 pair shows a full-covariance component tilting to follow the elongated CD8 T cells, while k-means cuts the same cloud in half.

# %%
pair = umap_events.data[["CD8", "CD56"]].to_numpy()
pair_gmm = gmm_clustering(pair, n_components=3, standardise=False, random_state=RANDOM_STATE)
pair_kmeans = kmeans_clustering(pair, n_clusters=3, standardise=False, random_state=RANDOM_STATE)

fig, axes = create_figure_grid(2, n_cols=2, figsize_per_plot=(7, 6))
plot_gmm_ellipses(pair, pair_gmm, n_std=2.0, title="GMM on CD8 / CD56", ax=axes[0])
plot_embedding_space(pair, labels=pair_kmeans.labels, axis_prefix="Marker", title="k-means on CD8 / CD56", ax=axes[1])
for ax in axes:
    ax.set_xlabel("CD8")
    ax.set_ylabel("CD56")
fig.tight_layout()
save_figure(fig, FIGURES_DIR / "gmm_ellipses_markers.png")
plt.show()

# %% [markdown]
# The same can be done on the 2D UMAP embedding. UMAP islands are not Gaussian, so a mixture on an embedding is a visual aid rather than a model of the cells.

# %%
umap_gmm = gmm_clustering(umap_coords, n_components=N_CLUSTERS, standardise=False, random_state=RANDOM_STATE)
fig, ax = plot_gmm_ellipses(umap_coords, umap_gmm, title=f"GMM on the {embedding_name} embedding")
ax.set_xlabel(f"{embedding_name} 1")
ax.set_ylabel(f"{embedding_name} 2")
save_figure(fig, FIGURES_DIR / "gmm_ellipses_embedding.png")
plt.show()

# %% [markdown]
# ## 8. Comparing Methods

# %%
comparison_df = pd.DataFrame([
    {
        "method": name,
        "ari": s["ari"],
        "nmi": s["nmi"],
        "purity": s["purity"],
    }
    for name, s in scores.items()
]).set_index("method")

save_table(comparison_df, DATA_DIR / "method_comparison.csv", index=True)
comparison_df.round(3)

# %%
fig, ax = plt.subplots(figsize=(8, 4))
comparison_df.plot.bar(ax=ax, rot=0)
ax.set_ylim(0, 1)
ax.set_ylabel("Score")
ax.set_title("Agreement with true populations")
save_figure(fig, FIGURES_DIR / "method_comparison.png")
plt.show()

# %% [markdown]
# ### 8.1 Cluster Profiles
#
# With real data there is no truth table. Clusters are annotated by their median marker expression instead.

# %%
profiles = cluster_profiles(X, som_result.labels, events.markers, statistic="median")
save_table(profiles, DATA_DIR / "som_cluster_profiles.csv", index=True)

fig, ax = plot_cluster_heatmap(profiles, title="SOM metaclusters: median marker expression")
save_figure(fig, FIGURES_DIR / "som_cluster_heatmap.png")
plt.show()

# %% [markdown]
# ## 9. Summary & Next Steps
#
# ### Summary
#
# | Method | Strengths | Failure modes |
# |--------|-----------|---------------|
# | **k-means** | Fast, simple, scales to millions of events | Splits large populations, merges rare ones, cuts elongated populations; needs k |
# | **SOM + metaclusters** | Fast, resolves rare populations, U-matrix shows boundaries | Needs grid size and number of metaclusters; metaclustering still uses k-means |
# | **UMAP** | Best visual overview of population structure | Not a clustering; island sizes and distances are not meaningful; parameter-sensitive |
# | **GMM (full)** | Follows elongated populations, soft assignments, BIC for model choice | Slower; sensitive to initialisation; non-Gaussian shapes need extra components |
#
# The same analysis can be run from the command line:
#
# ```bash
# cytoexplore-cluster --n-events 20000 --methods kmeans som gmm umap --output outputs/clustering_cli
# ```
#
# ### Next Steps
#
# - Load your own data with `load_events("sample.fcs")` (requires `pip install 'cytoexplore[fcs]'`), apply `arcsinh_transform`, and rerun the cells above
# - Use **Notebook 01** to build a manifest of your acquisition files and join per-file results
#
# ---
