"""
Event tables for flow-cytometry-like data.

This module provides the event container used throughout the clustering
walkthrough, a synthetic multi-phenotype generator with known population
labels, and the usual cytometry preprocessing (arcsinh transform and
spillover compensation).
"""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional, Sequence, Tuple, Union

import numpy as np
import pandas as pd

from cytoexplore.utils.io import load_table, save_table
from cytoexplore.utils.logging import logger

DEFAULT_MARKERS = ["CD3", "CD4", "CD8", "CD19", "CD14", "CD56", "HLA-DR"]
LABEL_COLUMN = "population"

# Mean expression of a negative marker in arcsinh units
NEGATIVE_LEVEL = 0.3


# =============================================================================
# Populations
# =============================================================================

@dataclass
class Population:
    """
    A Gaussian cell population in arcsinh-transformed marker space.

    Attributes:
        name: Population name (used as the ground-truth label)
        fraction: Relative abundance
        means: Mean expression for markers that differ from the negative level
        spread: Standard deviation, either shared or per marker
        correlations: Pairwise correlations, e.g. ``{("CD8", "CD56"): 0.8}``
    """

    name: str
    fraction: float
    means: Dict[str, float] = field(default_factory=dict)
    spread: Union[float, Dict[str, float]] = 0.35
    correlations: Dict[Tuple[str, str], float] = field(default_factory=dict)

    def mean_vector(self, markers: Sequence[str]) -> np.ndarray:
        return np.array([self.means.get(m, NEGATIVE_LEVEL) for m in markers], dtype=float)

    def covariance(self, markers: Sequence[str]) -> np.ndarray:
        if isinstance(self.spread, dict):
            std = np.array([self.spread.get(m, 0.35) for m in markers], dtype=float)
        else:
            std = np.full(len(markers), float(self.spread))

        corr = np.eye(len(markers))
        index = {m: i for i, m in enumerate(markers)}
        for (a, b), rho in self.correlations.items():
            if a in index and b in index:
                corr[index[a], index[b]] = corr[index[b], index[a]] = rho

        return np.outer(std, std) * corr


def default_populations() -> List[Population]:
    """
    Six immune populations with unequal sizes.

    The panel includes one elongated population (CD8 T cells grading into
    CD56 expression) and one rare population (pDC, 3%), which are the two
    situations where k-means visibly breaks down.
    """
    return [
        Population(
            name="CD4 T",
            fraction=0.35,
            means={"CD3": 3.5, "CD4": 3.2},
        ),
        Population(
            name="CD8 T",
            fraction=0.20,
            means={"CD3": 3.4, "CD8": 3.0, "CD56": 1.2},
            spread={"CD8": 0.8, "CD56": 0.8},
            correlations={("CD8", "CD56"): 0.85},
        ),
        Population(
            name="B",
            fraction=0.12,
            means={"CD19": 3.3, "HLA-DR": 3.0},
        ),
        Population(
            name="NK",
            fraction=0.08,
            means={"CD56": 3.0, "CD8": 1.2},
            spread=0.45,
        ),
        Population(
            name="Classical monocyte",
            fraction=0.22,
            means={"CD14": 3.6, "HLA-DR": 2.8, "CD4": 1.2},
            spread=0.4,
        ),
        Population(
            name="pDC",
            fraction=0.03,
            means={"HLA-DR": 3.5, "CD4": 1.6},
            spread=0.3,
        ),
    ]


# =============================================================================
# Event Table
# =============================================================================

@dataclass
class EventTable:
    """
    Events (rows) by markers (columns), with optional ground-truth labels.

    Example:
        >>> events = generate_synthetic_events(n_events=10000)
        >>> events.markers
        ['CD3', 'CD4', 'CD8', 'CD19', 'CD14', 'CD56', 'HLA-DR']
        >>> X = events.to_numpy()
    """

    data: pd.DataFrame
    labels: Optional[np.ndarray] = None
    name: str = "events"

    def __post_init__(self):
        if self.labels is not None:
            self.labels = np.asarray(self.labels)
            if len(self.labels) != len(self.data):
                raise ValueError(
                    f"Got {len(self.labels)} labels for {len(self.data)} events"
                )

    @property
    def markers(self) -> List[str]:
        return self.data.columns.tolist()

    @property
    def n_events(self) -> int:
        return len(self.data)

    def to_numpy(self, markers: Optional[Sequence[str]] = None) -> np.ndarray:
        """Event matrix of shape (n_events, n_markers)."""
        columns = list(markers) if markers is not None else self.markers
        return self.data[columns].to_numpy(dtype=float)

    def label_counts(self) -> pd.Series:
        """Events per ground-truth population."""
        if self.labels is None:
            return pd.Series(dtype=int)
        return pd.Series(self.labels).value_counts()

    def subsample(self, n: int, random_state: int = 42) -> "EventTable":
        """Uniform random subsample without replacement (all events if n >= n_events)."""
        if n >= self.n_events:
            return self
        rng = np.random.default_rng(random_state)
        idx = np.sort(rng.choice(self.n_events, size=n, replace=False))
        labels = self.labels[idx] if self.labels is not None else None
        return EventTable(
            data=self.data.iloc[idx].reset_index(drop=True),
            labels=labels,
            name=self.name,
        )

    def with_data(self, data: pd.DataFrame) -> "EventTable":
        """Copy with replaced marker data (same events, same labels)."""
        return EventTable(data=data, labels=self.labels, name=self.name)

    def to_dataframe(self, include_labels: bool = True) -> pd.DataFrame:
        df = self.data.copy()
        if include_labels and self.labels is not None:
            df[LABEL_COLUMN] = self.labels
        return df

    def save(self, path: Union[str, Path]) -> Path:
        """Save events (and labels, if present) as CSV."""
        return save_table(self.to_dataframe(), path)

    def __len__(self) -> int:
        return self.n_events

    def __repr__(self) -> str:
        return f"EventTable(name='{self.name}', n_events={self.n_events}, n_markers={len(self.markers)})"


# =============================================================================
# Synthetic Data
# =============================================================================

def _population_counts(fractions: np.ndarray, n_events: int) -> np.ndarray:
    """Split n_events by fraction; rounding remainder goes to the largest population."""
    fractions = fractions / fractions.sum()
    counts = np.floor(fractions * n_events).astype(int)
    counts[np.argmax(fractions)] += n_events - counts.sum()
    return counts


def generate_synthetic_events(
    n_events: int = 20000,
    populations: Optional[Sequence[Population]] = None,
    markers: Optional[Sequence[str]] = None,
    random_state: int = 42,
    as_raw: bool = False,
    cofactor: float = 150.0,
    shuffle: bool = True,
) -> EventTable:
    """
    Sample a multi-phenotype event table with known labels.

    Populations are drawn in arcsinh-transformed space. With ``as_raw=True``
    the inverse transform is applied, giving linear-scale intensities that
    need ``arcsinh_transform`` before clustering.

    Args:
        n_events: Total number of events
        populations: Population definitions (default: ``default_populations()``)
        markers: Marker panel (default: ``DEFAULT_MARKERS``)
        random_state: Random seed
        as_raw: Return linear-scale intensities
        cofactor: Arcsinh cofactor used for ``as_raw``
        shuffle: Shuffle events so populations are interleaved

    Returns:
        EventTable with population labels
    """
    populations = list(populations) if populations is not None else default_populations()
    markers = list(markers) if markers is not None else list(DEFAULT_MARKERS)

    if not populations:
        raise ValueError("At least one population is required")

    rng = np.random.default_rng(random_state)
    counts = _population_counts(np.array([p.fraction for p in populations], dtype=float), n_events)

    blocks = []
    labels = []
    for population, count in zip(populations, counts):
        blocks.append(
            rng.multivariate_normal(
                population.mean_vector(markers),
                population.covariance(markers),
                size=count,
            )
        )
        labels.extend([population.name] * count)

    values = np.vstack(blocks)
    labels = np.array(labels)

    if shuffle:
        order = rng.permutation(len(values))
        values, labels = values[order], labels[order]

    data = pd.DataFrame(values, columns=markers)
    if as_raw:
        data = inverse_arcsinh_transform(data, cofactor=cofactor)

    logger.info(
        f"Generated {n_events} synthetic events: "
        + ", ".join(f"{p.name}={c}" for p, c in zip(populations, counts))
    )
    return EventTable(data=data, labels=labels, name="synthetic")


# =============================================================================
# Transforms
# =============================================================================

def _resolve_markers(df: pd.DataFrame, markers: Optional[Sequence[str]]) -> List[str]:
    if markers is None:
        return df.select_dtypes(include=[np.number]).columns.tolist()
    missing = [m for m in markers if m not in df.columns]
    if missing:
        raise ValueError(f"Markers not found in events: {missing}")
    return list(markers)


def arcsinh_transform(
    df: pd.DataFrame,
    cofactor: float = 150.0,
    markers: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """
    Variance-stabilising arcsinh transform, ``asinh(x / cofactor)``.

    Linear near zero and logarithmic for large values, so it plays the role
    of the biexponential display transform. Cofactor 150 is the usual choice
    for flow cytometry and 5 for mass cytometry.

    Args:
        df: Event table (linear scale)
        cofactor: Transform cofactor
        markers: Columns to transform (default: all numeric columns)

    Returns:
        Transformed copy
    """
    if cofactor <= 0:
        raise ValueError(f"cofactor must be positive, got {cofactor}")

    columns = _resolve_markers(df, markers)
    out = df.copy()
    out[columns] = np.arcsinh(out[columns].to_numpy(dtype=float) / cofactor)
    return out


def inverse_arcsinh_transform(
    df: pd.DataFrame,
    cofactor: float = 150.0,
    markers: Optional[Sequence[str]] = None,
) -> pd.DataFrame:
    """Inverse of ``arcsinh_transform``, ``sinh(x) * cofactor``."""
    if cofactor <= 0:
        raise ValueError(f"cofactor must be positive, got {cofactor}")

    columns = _resolve_markers(df, markers)
    out = df.copy()
    out[columns] = np.sinh(out[columns].to_numpy(dtype=float)) * cofactor
    return out


def compensate(df: pd.DataFrame, spillover: pd.DataFrame) -> pd.DataFrame:
    """
    Remove fluorescence spillover.

    The spillover matrix is square, indexed by fluorochrome on both axes,
    with ``spillover.loc[a, b]`` the fraction of ``a``'s signal detected in
    ``b``'s channel. Observed intensities are ``true @ spillover``; this
    solves for ``true``.

    Args:
        df: Event table (linear scale, uncompensated)
        spillover: Square spillover matrix

    Returns:
        Compensated copy
    """
    if spillover.shape[0] != spillover.shape[1]:
        raise ValueError(f"Spillover matrix must be square, got shape {spillover.shape}")
    if list(spillover.index) != list(spillover.columns):
        raise ValueError("Spillover matrix index and columns must list the same channels")

    channels = _resolve_markers(df, list(spillover.columns))
    observed = df[channels].to_numpy(dtype=float)
    matrix = spillover.to_numpy(dtype=float)

    true = np.linalg.solve(matrix.T, observed.T).T

    out = df.copy()
    out[channels] = true
    logger.debug(f"Compensated {len(channels)} channels")
    return out


# =============================================================================
# Loading
# =============================================================================

def load_events(
    path: Union[str, Path],
    markers: Optional[Sequence[str]] = None,
    label_column: Optional[str] = LABEL_COLUMN,
) -> EventTable:
    """
    Load events from CSV/TSV or FCS.

    Args:
        path: Input file (.csv, .tsv or .fcs)
        markers: Marker columns to keep (default: all numeric columns)
        label_column: Column with ground-truth labels, if present (CSV only)

    Returns:
        EventTable
    """
    path = Path(path)
    suffix = path.suffix.lower()

    if not path.exists():
        raise FileNotFoundError(f"Event file not found: {path}")

    labels = None
    if suffix in (".csv", ".tsv"):
        df = load_table(path)
        if label_column and label_column in df.columns:
            labels = df[label_column].astype(str).to_numpy()
            df = df.drop(columns=[label_column])
    elif suffix == ".fcs":
        try:
            import fcsparser
        except ImportError as exc:
            raise ImportError(
                "Reading FCS files requires fcsparser. "
                "Install with: pip install 'cytoexplore[fcs]'"
            ) from exc
        _, df = fcsparser.parse(str(path), reformat_meta=True)
    else:
        raise ValueError(f"Unsupported event file type: {path.suffix}")

    columns = _resolve_markers(df, markers)
    events = EventTable(
        data=df[columns].reset_index(drop=True),
        labels=labels,
        name=path.stem,
    )

    logger.info(f"Loaded {events.n_events} events x {len(columns)} markers from {path}")
    return events
