"""
File manifests for cytometry acquisitions.

A manifest maps every acquisition file under a directory tree to metadata
derived from its location and name. The default layout is::

    <root>/<condition>/<tissue>_<subject>.fcs

Fields are taken positionally from the path; nothing checks that a path has
the expected number of segments, so a short path simply yields missing
fields. A results table (one biomarker value per file) is joined back to the
manifest by exact string match.
"""

from __future__ import annotations

from pathlib import Path, PurePath, PurePosixPath
from typing import Any, Dict, Iterable, List, Optional, Sequence, Union

import numpy as np
import pandas as pd
from pydantic import BaseModel, ConfigDict, field_validator

from cytoexplore.utils.io import load_table, save_table
from cytoexplore.utils.logging import logger

MANIFEST_COLUMNS = ["path", "filename", "condition", "tissue", "subject"]
RESULTS_COLUMNS = ["file", "biomarker"]
JOIN_METHODS = ("inner", "left")


# =============================================================================
# Records
# =============================================================================

class ManifestRecord(BaseModel):
    """
    Metadata for a single acquisition file.

    Attributes:
        path: Path as listed (relative to the manifest root unless full names were requested)
        filename: Final path segment
        condition: Experimental condition (directory name by default)
        tissue: Tissue, first filename token by default
        subject: Subject/donor, second filename token by default
    """

    model_config = ConfigDict(frozen=True)

    path: str
    filename: str
    condition: Optional[str] = None
    tissue: Optional[str] = None
    subject: Optional[str] = None

    def __repr__(self) -> str:
        return f"ManifestRecord(path='{self.path}')"


class ResultRecord(BaseModel):
    """A per-file result: file identifier and a numeric biomarker score."""

    model_config = ConfigDict(frozen=True)

    file: str
    biomarker: float

    @field_validator("file", mode="before")
    @classmethod
    def convert_file(cls, v):
        """Accept path-like identifiers."""
        if isinstance(v, PurePath):
            return v.as_posix()
        return v


# =============================================================================
# Discovery and Parsing
# =============================================================================

def list_files(
    root: Union[str, Path],
    pattern: str = "*.fcs",
    recursive: bool = True,
    full_names: bool = False,
) -> List[str]:
    """
    List files under ``root`` matching a glob pattern.

    Args:
        root: Directory to search
        pattern: Glob pattern matched against file names
        recursive: Whether to descend into subdirectories
        full_names: Return paths including ``root`` instead of relative paths

    Returns:
        Sorted list of POSIX path strings

    Example:
        >>> list_files("data/raw", pattern="*.fcs")
        ['stim/blood_s01.fcs', 'stim/spleen_s01.fcs', 'unstim/blood_s01.fcs']
    """
    root = Path(root)
    if not root.is_dir():
        raise FileNotFoundError(f"Manifest root is not a directory: {root}")

    matches = root.rglob(pattern) if recursive else root.glob(pattern)
    files = sorted(p for p in matches if p.is_file())

    if full_names:
        paths = [p.as_posix() for p in files]
    else:
        paths = [p.relative_to(root).as_posix() for p in files]

    if not paths:
        logger.warning(f"No files matching '{pattern}' under {root}")
    else:
        logger.info(f"Found {len(paths)} files matching '{pattern}' under {root}")

    return paths


def _segment(parts: Sequence[str], index: int) -> Optional[str]:
    """Positional lookup returning None when the position does not exist."""
    if -len(parts) <= index < len(parts):
        return parts[index]
    return None


def parse_path(
    path: str,
    delimiter: str = "_",
    condition_index: int = -2,
    tissue_index: int = 0,
    subject_index: int = 1,
) -> ManifestRecord:
    """
    Derive manifest fields from a path.

    The path is split on ``/``; ``condition`` is taken from that list. The
    filename stem (without its extension) is split on ``delimiter`` and
    supplies ``tissue`` and ``subject``.

    Args:
        path: POSIX path string
        delimiter: Delimiter between filename tokens
        condition_index: Position of the condition in the split path
        tissue_index: Position of the tissue in the split filename stem
        subject_index: Position of the subject in the split filename stem

    Returns:
        ManifestRecord

    Example:
        >>> parse_path("stim/spleen_s01.fcs")
        ManifestRecord(path='stim/spleen_s01.fcs')
    """
    parts = path.split("/")
    filename = parts[-1]
    tokens = PurePosixPath(filename).stem.split(delimiter)

    return ManifestRecord(
        path=path,
        filename=filename,
        condition=_segment(parts, condition_index),
        tissue=_segment(tokens, tissue_index),
        subject=_segment(tokens, subject_index),
    )


# =============================================================================
# Manifest
# =============================================================================

class Manifest:
    """
    Table of acquisition files and their path-derived metadata.

    Attributes:
        root: Directory the manifest was built from (if any)
        pattern: Glob pattern used for discovery (if any)

    Example:
        >>> manifest = build_manifest("data/raw", pattern="*.fcs")
        >>> manifest.to_dataframe().head()
        >>> joined = manifest.join(load_results("results.csv"))
    """

    def __init__(
        self,
        records: Optional[Iterable[ManifestRecord]] = None,
        root: Optional[Union[str, Path]] = None,
        pattern: Optional[str] = None,
    ):
        self._records: List[ManifestRecord] = list(records or [])
        self.root = Path(root) if root is not None else None
        self.pattern = pattern

    @property
    def records(self) -> List[ManifestRecord]:
        return list(self._records)

    @property
    def paths(self) -> List[str]:
        return [r.path for r in self._records]

    def to_dataframe(self) -> pd.DataFrame:
        """One row per file with columns path, filename, condition, tissue, subject."""
        return pd.DataFrame(
            [r.model_dump() for r in self._records],
            columns=MANIFEST_COLUMNS,
        )

    def join(
        self,
        results: pd.DataFrame,
        how: str = "inner",
        on: str = "path",
    ) -> pd.DataFrame:
        """Join a results table onto this manifest (see ``join_results``)."""
        return join_results(self, results, how=how, on=on)

    def summary(self) -> Dict[str, Any]:
        """Counts of files per metadata field."""
        df = self.to_dataframe()
        if df.empty:
            return {"n_files": 0}
        return {
            "n_files": len(df),
            "conditions": df["condition"].value_counts(dropna=False).to_dict(),
            "tissues": df["tissue"].value_counts(dropna=False).to_dict(),
            "n_subjects": int(df["subject"].nunique()),
        }

    def save(self, path: Union[str, Path]) -> Path:
        """Save the manifest as CSV."""
        out = save_table(self.to_dataframe(), path)
        logger.info(f"Saved manifest ({len(self)} files) to {out}")
        return out

    @classmethod
    def from_dataframe(cls, df: pd.DataFrame) -> "Manifest":
        """Rebuild a manifest from a table with the manifest columns."""
        missing = [c for c in MANIFEST_COLUMNS if c not in df.columns]
        if missing:
            raise ValueError(f"Manifest table is missing columns: {missing}")

        clean = df[MANIFEST_COLUMNS].astype(object).where(df[MANIFEST_COLUMNS].notna(), None)
        return cls(ManifestRecord(**row) for row in clean.to_dict(orient="records"))

    def __len__(self) -> int:
        return len(self._records)

    def __iter__(self):
        return iter(self._records)

    def __getitem__(self, idx: int) -> ManifestRecord:
        return self._records[idx]

    def __repr__(self) -> str:
        return f"Manifest(n_files={len(self)}, root='{self.root}')"


def build_manifest(
    root: Union[str, Path],
    pattern: str = "*.fcs",
    recursive: bool = True,
    full_names: bool = False,
    delimiter: str = "_",
    condition_index: int = -2,
    tissue_index: int = 0,
    subject_index: int = 1,
) -> Manifest:
    """
    List matching files under ``root`` and derive one record per file.

    Args:
        root: Directory to search
        pattern: Glob pattern for acquisition files
        recursive: Whether to descend into subdirectories
        full_names: Keep ``root`` in the recorded paths
        delimiter: Delimiter between filename tokens
        condition_index: Position of the condition in the split path
        tissue_index: Position of the tissue in the split filename stem
        subject_index: Position of the subject in the split filename stem

    Returns:
        Manifest
    """
    paths = list_files(root, pattern=pattern, recursive=recursive, full_names=full_names)
    records = [
        parse_path(
            p,
            delimiter=delimiter,
            condition_index=condition_index,
            tissue_index=tissue_index,
            subject_index=subject_index,
        )
        for p in paths
    ]

    n_incomplete = sum(
        1 for r in records if r.condition is None or r.tissue is None or r.subject is None
    )
    if n_incomplete:
        logger.warning(f"{n_incomplete} paths had too few segments for all manifest fields")

    return Manifest(records, root=root, pattern=pattern)


# =============================================================================
# Results and Join
# =============================================================================

def load_results(
    path: Union[str, Path],
    file_column: str = "file",
    biomarker_column: str = "biomarker",
) -> pd.DataFrame:
    """
    Load a results table of per-file biomarker scores.

    Args:
        path: CSV/TSV path
        file_column: Column holding file identifiers
        biomarker_column: Column holding the numeric score

    Returns:
        DataFrame with columns ``file`` and ``biomarker``
    """
    df = load_table(path)

    missing = [c for c in (file_column, biomarker_column) if c not in df.columns]
    if missing:
        raise ValueError(
            f"Results table {path} is missing columns {missing}; found {df.columns.tolist()}"
        )

    results = pd.DataFrame({
        "file": df[file_column].astype(str),
        "biomarker": pd.to_numeric(df[biomarker_column], errors="coerce"),
    })

    n_bad = int(results["biomarker"].isna().sum())
    if n_bad:
        logger.warning(f"{n_bad} biomarker values in {path} are not numeric")

    logger.info(f"Loaded {len(results)} results from {path}")
    return results


def results_from_records(records: Iterable[ResultRecord]) -> pd.DataFrame:
    """Build a results table from ResultRecord objects."""
    return pd.DataFrame([r.model_dump() for r in records], columns=RESULTS_COLUMNS)


def join_results(
    manifest: Union[Manifest, pd.DataFrame],
    results: pd.DataFrame,
    how: str = "inner",
    on: str = "path",
) -> pd.DataFrame:
    """
    Join a results table to a manifest by exact string match.

    ``results.file`` is matched against the manifest's ``path`` column (or
    ``filename`` with ``on="filename"``). No normalisation is applied to
    either side.

    Args:
        manifest: Manifest or manifest DataFrame
        results: Table with ``file`` and ``biomarker`` columns
        how: "inner" drops unmatched manifest rows, "left" keeps them with NaN
        on: Manifest column matched against ``results.file``

    Returns:
        Manifest columns plus ``biomarker``
    """
    if how not in JOIN_METHODS:
        raise ValueError(f"Unknown join method: {how}. Use one of {JOIN_METHODS}")
    if on not in ("path", "filename"):
        raise ValueError(f"Can only join on 'path' or 'filename', got '{on}'")

    manifest_df = manifest.to_dataframe() if isinstance(manifest, Manifest) else manifest
    missing = [c for c in RESULTS_COLUMNS if c not in results.columns]
    if missing:
        raise ValueError(f"Results table is missing columns: {missing}")

    n_unmatched_manifest = int((~manifest_df[on].isin(results["file"])).sum())
    n_unmatched_results = int((~results["file"].isin(manifest_df[on])).sum())
    if n_unmatched_manifest or n_unmatched_results:
        logger.warning(
            f"Join on '{on}': {n_unmatched_manifest} manifest rows and "
            f"{n_unmatched_results} result rows have no match"
        )

    joined = manifest_df.merge(
        results[RESULTS_COLUMNS],
        left_on=on,
        right_on="file",
        how=how,
    ).drop(columns=["file"])

    logger.info(f"Joined {len(joined)} rows ({how} join on '{on}')")
    return joined


def summarise_biomarker(
    joined: pd.DataFrame,
    by: Sequence[str] = ("condition", "tissue"),
) -> pd.DataFrame:
    """
    Summarise biomarker values per group.

    Args:
        joined: Output of ``join_results``
        by: Grouping columns

    Returns:
        DataFrame with count, mean, median and std per group
    """
    return (
        joined.groupby(list(by), dropna=False)["biomarker"]
        .agg(["count", "mean", "median", "std"])
        .reset_index()
    )


# =============================================================================
# Example Data
# =============================================================================

def create_example_tree(
    root: Union[str, Path],
    conditions: Sequence[str] = ("unstim", "stim"),
    tissues: Sequence[str] = ("blood", "spleen", "marrow"),
    subjects: Sequence[str] = ("s01", "s02", "s03", "s04"),
    suffix: str = ".fcs",
) -> List[Path]:
    """
    Create an empty acquisition tree ``<root>/<condition>/<tissue>_<subject><suffix>``.

    Returns:
        List of created file paths
    """
    root = Path(root)
    created = []
    for condition in conditions:
        condition_dir = root / condition
        condition_dir.mkdir(parents=True, exist_ok=True)
        for tissue in tissues:
            for subject in subjects:
                path = condition_dir / f"{tissue}_{subject}{suffix}"
                path.touch()
                created.append(path)

    logger.debug(f"Created {len(created)} example files under {root}")
    return created


def simulate_results(
    manifest: Union[Manifest, pd.DataFrame],
    condition_effects: Optional[Dict[str, float]] = None,
    noise: float = 0.5,
    random_state: int = 42,
) -> pd.DataFrame:
    """
    Simulate a biomarker score for each manifest file.

    Args:
        manifest: Manifest or manifest DataFrame
        condition_effects: Additive shift per condition (default: "stim" +2)
        noise: Standard deviation of Gaussian noise
        random_state: Random seed

    Returns:
        Results table with ``file`` and ``biomarker``
    """
    manifest_df = manifest.to_dataframe() if isinstance(manifest, Manifest) else manifest
    condition_effects = condition_effects if condition_effects is not None else {"stim": 2.0}

    rng = np.random.default_rng(random_state)
    shift = manifest_df["condition"].map(condition_effects).fillna(0.0).to_numpy(dtype=float)
    biomarker = 5.0 + shift + rng.normal(0.0, noise, size=len(manifest_df))

    return pd.DataFrame({"file": manifest_df["path"].to_numpy(), "biomarker": biomarker})
