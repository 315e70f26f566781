"""
File I/O utilities for cytoexplore.

Helpers for output directories, tables and arrays written by the
notebooks and scripts.
"""

from __future__ import annotations

from pathlib import Path
from typing import Union

import numpy as np
import pandas as pd

from cytoexplore.utils.logging import logger


# =============================================================================
# Path Utilities
# =============================================================================

def ensure_dir(path: Union[str, Path]) -> Path:
    """
    Ensure a directory exists, creating it if necessary.

    Args:
        path: Directory path

    Returns:
        Path object
    """
    path = Path(path)
    path.mkdir(parents=True, exist_ok=True)
    return path


# =============================================================================
# Table I/O
# =============================================================================

def save_table(
    df: pd.DataFrame,
    path: Union[str, Path],
    index: bool = False,
) -> Path:
    """
    Save a DataFrame as CSV (or TSV when the suffix is ``.tsv``).

    Args:
        df: Table to save
        path: Output path
        index: Whether to write the index

    Returns:
        Path written
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    sep = "\t" if path.suffix == ".tsv" else ","
    df.to_csv(path, sep=sep, index=index)

    logger.debug(f"Saved table with shape {df.shape} to {path}")
    return path


def load_table(path: Union[str, Path], **kwargs) -> pd.DataFrame:
    """
    Load a CSV/TSV table.

    Args:
        path: Input path
        **kwargs: Passed to ``pandas.read_csv``

    Returns:
        Loaded DataFrame
    """
    path = Path(path)

    if not path.exists():
        raise FileNotFoundError(f"Table not found: {path}")

    sep = kwargs.pop("sep", "\t" if path.suffix == ".tsv" else ",")
    df = pd.read_csv(path, sep=sep, **kwargs)

    logger.debug(f"Loaded table with shape {df.shape} from {path}")
    return df


# =============================================================================
# Array I/O
# =============================================================================

def save_numpy(
    array: np.ndarray,
    path: Union[str, Path],
    compress: bool = True,
) -> None:
    """
    Save numpy array to file.

    Args:
        array: Numpy array
        path: Output path
        compress: Whether to use compression (``.npz``)
    """
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)

    if compress:
        np.savez_compressed(path, data=array)
    else:
        np.save(path, array)

    logger.debug(f"Saved array with shape {array.shape} to {path}")


def load_numpy(path: Union[str, Path]) -> np.ndarray:
    """Load numpy array saved by ``save_numpy``."""
    path = Path(path)

    if path.suffix == ".npz":
        with np.load(path) as data:
            return data["data"]
    else:
        return np.load(path)


__all__ = [
    "ensure_dir",
    "save_table",
    "load_table",
    "save_numpy",
    "load_numpy",
]
