# %% [markdown]
# # 01: Building a File Manifest
#
# Cytometry experiments produce one acquisition file per sample, and the experimental design usually lives only in the directory layout and the file names. This notebook turns a directory tree into a **manifest** (one row per file, with metadata parsed from its path) and joins it with a table of per-file results.
#
# ## Learning Objectives
#
# By the end of this notebook, you will be able to:
#
# 1. **List acquisition files** under a directory with a fixed glob pattern
# 2. **Parse metadata** (condition, tissue, subject) from path segments
# 3. **Join a results table** to the manifest by exact file match
# 4. **Spot join failures** (unmatched files on either side)
# 5. **Summarise and plot** a biomarker by tissue and condition
#
# ---

# %% [markdown]
# ## 1. The Directory Layout
#
# We assume the common layout where the top-level folder is the condition and the file name encodes tissue and subject:
#
# ```
# data/raw/
# ├── stim/
# │   ├── blood_s01.fcs
# │   ├── spleen_s01.fcs
# │   └── ...
# └── unstim/
#     ├── blood_s01.fcs
#     └── ...
# ```
#
# Fields are taken **positionally**: the condition is the second-to-last path segment, tissue and subject are the first and second `_`-separated tokens of the file name. Nothing checks that a path actually has that many segments; a file sitting directly under the root simply gets no condition.
#
# ---

# %% [markdown]
# ## 2. Setup

# %%
# Standard library imports
import warnings
from pathlib import Path

# Visualisation
import matplotlib.pyplot as plt
import seaborn as sns

# cytoexplore imports
from cytoexplore.data.manifest import (
    Manifest,
    build_manifest,
    create_example_tree,
    join_results,
    list_files,
    load_results,
    parse_path,
    simulate_results,
    summarise_biomarker,
)
from cytoexplore.analysis.visualisation import plot_biomarker_by_group, save_figure
from cytoexplore.utils.config import ExploreConfig
from cytoexplore.utils.io import ensure_dir, save_table
from cytoexplore.utils.logging import setup_logging

# Configure plotting
plt.style.use('seaborn-v0_8-whitegrid')
sns.set_palette("husl")
warnings.filterwarnings('ignore', category=FutureWarning)

setup_logging(level="INFO")

RANDOM_STATE = 42

print("cytoexplore File Manifest Notebook")
print("=" * 50)

# %% [markdown]
# ### Define Output Directories

# %%
OUTPUT_DIR = Path("outputs/01_file_manifest")
FIGURES_DIR = OUTPUT_DIR / "figures"
DATA_DIR = OUTPUT_DIR / "data"

ensure_dir(FIGURES_DIR)
ensure_dir(DATA_DIR)

print(f"Output directory: {OUTPUT_DIR}")

# %% [markdown]
# ## 3. Create an Example Acquisition Tree
#
# If you have your own acquisition folder, point `RAW_DIR` at it and skip the next cell. Otherwise we create an empty tree of `.fcs` files (two conditions, three tissues, four subjects) so the rest of the notebook runs end to end. The files are empty: a manifest only needs names.

# %%
RAW_DIR = DATA_DIR / "raw"

created = create_example_tree(
    RAW_DIR,
    conditions=("unstim", "stim"),
    tissues=("blood", "spleen", "marrow"),
    subjects=("s01", "s02", "s03", "s04"),
)

# A stray file at the root and a non-FCS file, to see how they are handled
(RAW_DIR / "calibration_beads.fcs").touch()
(RAW_DIR / "stim" / "notes.txt").write_text("acquired on instrument 2\n")

print(f"Created {len(created)} acquisition files under {RAW_DIR}")

# %% [markdown]
# ## 4. Listing Files
#
# `list_files` returns sorted POSIX paths relative to the root. Only files matching the pattern are returned, so `notes.txt` is ignored.

# %%
paths = list_files(RAW_DIR, pattern="*.fcs", recursive=True)

print(f"Matched files: {len(paths)}")
for p in paths[:6]:
    print(f"  {p}")
print("  ...")

# %%
# Non-recursive listing only sees the root
print(list_files(RAW_DIR, pattern="*.fcs", recursive=False))

# %% [markdown]
# ## 5. Parsing Paths
#
# `parse_path` splits the path on `/` and the file name stem on the delimiter, then picks fields by position.

# %%
for p in ["stim/spleen_s01.fcs", "unstim/blood_s04.fcs", "calibration_beads.fcs"]:
    record = parse_path(p)
    print(record.model_dump())

# %% [markdown]
# Note the last path: `calibration_beads.fcs` has no directory, so `condition` is `None`, and its "tissue" and "subject" are simply the tokens `calibration` and `beads`. Positional parsing cannot tell a malformed name from a valid one, so it is worth looking at the manifest before trusting it.
#
# Different layouts only need different positions, e.g. `<subject>-<tissue>.fcs`:

# %%
print(parse_path("stim/s01-spleen.fcs", delimiter="-", tissue_index=1, subject_index=0).model_dump())

# %% [markdown]
# ## 6. Building the Manifest

# %%
config = ExploreConfig()
settings = config.manifest

manifest = build_manifest(
    RAW_DIR,
    pattern=settings.pattern,
    recursive=settings.recursive,
    delimiter=settings.delimiter,
    condition_index=settings.condition_index,
    tissue_index=settings.tissue_index,
    subject_index=settings.subject_index,
)

print(manifest)
manifest_df = manifest.to_dataframe()
manifest_df.head(10)

# %%
summary = manifest.summary()
print(f"Files: {summary['n_files']}")
print(f"Conditions: {summary['conditions']}")
print(f"Tissues: {summary['tissues']}")
print(f"Subjects: {summary['n_subjects']}")

# %% [markdown]
# The bead file shows up with a missing condition. Here we drop rows without a condition before joining; in a real experiment you would fix the file location instead.

# %%
manifest = Manifest.from_dataframe(manifest_df[manifest_df["condition"].notna()])
manifest.save(DATA_DIR / "manifest.csv")

print(f"Files kept: {len(manifest)}")

# %% [markdown]
# ## 7. Joining a Results Table
#
# Results usually come from another tool (a gating pipeline, an export from FlowJo) as a table with one row per file and a numeric score. Here we simulate a biomarker that is elevated in stimulated samples, write it to CSV, and load it back as a user would.

# %%
results = simulate_results(
    manifest,
    condition_effects={"stim": 2.0},
    noise=0.5,
    random_state=RANDOM_STATE,
)

# One file is missing from the results and one result has no file
results = results.iloc[1:].reset_index(drop=True)
results.loc[len(results)] = ["stim/thymus_s09.fcs", 6.1]

results_path = save_table(results, DATA_DIR / "biomarker_results.csv")
results = load_results(results_path)
results.head()

# %% [markdown]
# ### 7.1 Inner vs Left Join
#
# The join is an exact string match of `manifest.path` against `results.file`. With an **inner** join unmatched manifest rows are dropped; with a **left** join they are kept with a missing biomarker. In both cases the number of unmatched rows on each side is logged.

# %%
joined_inner = join_results(manifest, results, how="inner")
joined_left = join_results(manifest, results, how="left")

print(f"Inner join rows: {len(joined_inner)}")
print(f"Left join rows:  {len(joined_left)}")
print("\nManifest files without a result:")
print(joined_left.loc[joined_left["biomarker"].isna(), "path"].tolist())

# %% [markdown]
# ### 7.2 Exact Matching Pitfalls
#
# Exact matching means that any difference in how the two tables spell a file breaks the join: absolute vs relative paths, Windows separators, or results keyed by file name only. When results only carry file names, join on `filename` instead (this assumes file names are unique across conditions, which is **not** true here).

# %%
by_name = results.assign(file=results["file"].str.split("/").str[-1])
joined_by_name = join_results(manifest, by_name, how="inner", on="filename")

print(f"Rows when joining on filename: {len(joined_by_name)} (duplicated names multiply rows)")

# %% [markdown]
# ## 8. Summarising and Plotting

# %%
joined = joined_inner
biomarker_summary = summarise_biomarker(joined, by=("condition", "tissue"))
save_table(joined, DATA_DIR / "manifest_results.csv")
save_table(biomarker_summary, DATA_DIR / "biomarker_summary.csv")

biomarker_summary

# %%
fig, ax = plot_biomarker_by_group(
    joined,
    group_col="tissue",
    hue_col="condition",
    title="Biomarker by tissue and condition",
)
save_figure(fig, FIGURES_DIR / "biomarker_by_group.png")
plt.show()

# %%
# Per-subject view: the stimulation effect should be visible within each subject
pivot = joined.pivot_table(index="subject", columns="condition", values="biomarker", aggfunc="mean")
pivot["difference"] = pivot["stim"] - pivot["unstim"]
print(pivot.round(2))
print(f"\nMean stim - unstim difference: {pivot['difference'].mean():.2f}")

# %% [markdown]
# ## 9. Summary & Next Steps
#
# ### Summary
#
# 1. **Listing**: fixed glob pattern, sorted relative paths, non-matching files ignored
# 2. **Parsing**: positional fields from path segments, with missing fields rather than errors for short paths
# 3. **Joining**: exact match on path, inner or left, with unmatched counts logged
# 4. **Summary**: biomarker per condition and tissue
#
# The same pipeline is available from the command line:
#
# ```bash
# cytoexplore-manifest --root outputs/01_file_manifest/data/raw \
#     --results outputs/01_file_manifest/data/biomarker_results.csv \
#     --output outputs/manifest_cli
# ```
#
# ### Next Steps
#
# **Notebook 02 - Clustering Walkthrough**: cluster the events inside these files with k-means, SOMs, UMAP and Gaussian mixtures.
#
# ---
