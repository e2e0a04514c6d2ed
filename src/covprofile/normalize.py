"""Rescale a written profile table

Two independent passes: genome-wide rescaling with the top 1% of scores
clipped, and per-row rescaling by the row maximum.
"""

from pathlib import Path
from typing import Optional
import numpy as np
import pandas as pd
from .table import NAME_COLUMN

def percentile_cutoff(scores: np.ndarray, top_fraction: float = 0.01) -> float:
    """Get the score above which the top fraction of observations lie

    Scores are truncated to integers and counted. Going down from the highest
    value, the cutoff is the first value at which the cumulative count reaches
    `top_fraction` of all observations.

    Args:
        scores: Array of scores, any shape
        top_fraction: Fraction of observations at or above the cutoff

    Returns:
        The cutoff value, or 0 if there are no scores
    """
    values, counts = np.unique(np.trunc(scores).astype(np.int64), return_counts=True)
    if values.shape[0] == 0:
        return 0.0
    needed = top_fraction * scores.size
    cumulative = np.cumsum(counts[::-1])
    idx = np.argmax(cumulative >= needed)
    return float(values[::-1][idx])

def genome_normalize(scores: np.ndarray, target_scale: float, top_fraction: float = 0.01) -> np.ndarray:
    """Rescale all scores so the genome-wide cutoff maps to target_scale

    Scores above the cutoff are clipped to target_scale.

    Args:
        scores: 2D array of loci x bins
        target_scale: Value the cutoff is scaled to
        top_fraction: Fraction of observations treated as outliers

    Returns:
        Rescaled copy of the scores
    """
    cutoff = percentile_cutoff(scores, top_fraction)
    if cutoff <= 0:
        print(f'Warning: genome-wide cutoff is {cutoff:g}, skipping genome normalization', flush=True)
        return scores.copy()
    print(f'Genome normalization cutoff: {cutoff:g}', flush=True)
    return np.minimum(scores * (target_scale / cutoff), target_scale)

def gene_normalize(scores: np.ndarray, target_scale: float) -> np.ndarray:
    """Rescale each row so its maximum equals target_scale

    Rows whose maximum is not positive are left unchanged.
    """
    row_max = scores.max(axis=1, keepdims=True) if scores.shape[1] > 0 else np.zeros((scores.shape[0], 1))
    factor = np.where(row_max > 0, row_max / target_scale, 1.0)
    return scores / factor

def read_profile_table(path: Path) -> pd.DataFrame:
    """Load a profile table, keeping all columns up to the name as metadata

    Names such as 'NA' or 'null' are kept as text, not read as missing.
    """
    table = pd.read_csv(path, sep='\t', dtype=str, na_filter=False)
    if NAME_COLUMN not in table.columns:
        raise ValueError(f"Profile table {path} has no '{NAME_COLUMN}' column")
    cols = score_columns(table)
    table[cols] = table[cols].astype(float)
    return table

def score_columns(table: pd.DataFrame) -> list:
    n_meta = list(table.columns).index(NAME_COLUMN) + 1
    return list(table.columns[n_meta:])

def normalize_table(table: pd.DataFrame, genome_norm: Optional[float] = None, gene_norm: Optional[float] = None) -> pd.DataFrame:
    """Apply genome-wide and then per-row normalization

    Either step is skipped if its target scale is None.
    """
    cols = score_columns(table)
    scores = table[cols].to_numpy(dtype=float)
    if genome_norm is not None:
        scores = genome_normalize(scores, genome_norm)
    if gene_norm is not None:
        scores = gene_normalize(scores, gene_norm)
    table = table.copy()
    table[cols] = scores
    return table

def normalize_file(path: Path, outfile: Path, genome_norm: Optional[float] = None, gene_norm: Optional[float] = None):
    """Normalize a profile table file and write the result to outfile"""
    table = read_profile_table(path)
    table = normalize_table(table, genome_norm, gene_norm)
    table.to_csv(outfile, sep='\t', index=False, float_format='%.2f')
    print(f'Normalized profiles saved to {outfile}', flush=True)
