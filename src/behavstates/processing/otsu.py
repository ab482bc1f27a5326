"""Optimal two-group split of a scalar distribution (Otsu's method).

Unlike 2-means clustering, which converges to a local minimum that depends on its
initialisation, the Otsu split scans every possible division of the sorted values
and always returns the one with the lowest within-group variance.

References:
    Otsu, N. A Threshold Selection Method from Gray-Level Histograms. IEEE
        Transactions on Systems, Man, and Cybernetics 9(1), 62-66 (1979).
        https://doi.org/10.1109/TSMC.1979.4310076.
"""

import os
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from typing import List, Tuple

import numpy as np

from behavstates.core import config

logger = config.get_logger()


@dataclass(frozen=True)
class OtsuResult:
    """Outcome of an Otsu split.

    Attributes:
        groups: Boolean array aligned with the input, True for the high group
            (values above the largest value of the low group).
        threshold: The split point, halfway between the largest value of the low
            group and the smallest value of the high group. Reported only; the
            groups are not derived from it.
        effectiveness: 1 minus the ratio of the weighted within-group variance to
            the total variance. Close to 1 for cleanly bimodal data, close to 0
            when the groups do not separate.
    """

    groups: np.ndarray
    threshold: float
    effectiveness: float


def resolve_n_jobs(n_jobs: int) -> int:
    """Translate an n_jobs argument to a worker count; -1 means every CPU."""
    cpu = max(1, os.cpu_count() or 1)
    if n_jobs == -1:
        return cpu
    if n_jobs < -1:
        return max(1, cpu + 1 + n_jobs)
    return max(1, n_jobs)


def _weighted_variances(
    split_sizes: np.ndarray, cumulative_sum: np.ndarray, cumulative_squares: np.ndarray
) -> np.ndarray:
    """Weighted within-group population variance for each candidate split.

    Args:
        split_sizes: Number of sorted values in the low group, one per candidate.
        cumulative_sum: Running sum of the sorted, centered values.
        cumulative_squares: Running sum of their squares.

    Returns:
        p * Var(low) + (1 - p) * Var(high) for each candidate, with p the fraction
        of values in the low group.
    """
    n = len(cumulative_sum)
    low_count = split_sizes.astype(np.float64)
    high_count = n - low_count

    low_sum = cumulative_sum[split_sizes - 1]
    low_squares = cumulative_squares[split_sizes - 1]
    high_sum = cumulative_sum[-1] - low_sum
    high_squares = cumulative_squares[-1] - low_squares

    low_variance = np.maximum(low_squares / low_count - (low_sum / low_count) ** 2, 0)
    high_variance = np.maximum(
        high_squares / high_count - (high_sum / high_count) ** 2, 0
    )
    return (low_count / n) * low_variance + (high_count / n) * high_variance


def otsu(values: np.ndarray, n_jobs: int = 1) -> OtsuResult:
    """Split a vector of values into a low and a high group.

    For every split of the sorted values into the i lowest and n - i highest
    (i from 1 to n - 1) the weighted within-group population variance is computed,
    and the split with the smallest one is kept. Ties go to the smallest i. The
    candidate scan can be spread over worker threads; the result does not depend
    on the number of workers.

    Args:
        values: 1-D array of finite values. Remove missing values beforehand.
        n_jobs: Number of worker threads for the candidate scan, -1 for all CPUs.

    Returns:
        The groups, threshold and effectiveness metric.

    Raises:
        ValueError: If values is empty, not one dimensional, or holds non-finite
            values.
    """
    values = np.asarray(values, dtype=np.float64)
    if values.ndim != 1:
        raise ValueError("values must be one dimensional, use otsu_columns for matrices")
    if values.size == 0:
        raise ValueError("values must not be empty")
    if not np.isfinite(values).all():
        raise ValueError("values must be finite, remove missing values first")

    n = values.size
    if n == 1:
        return OtsuResult(
            groups=np.zeros(1, dtype=bool), threshold=float(values[0]), effectiveness=0.0
        )

    sorted_values = np.sort(values)
    centered = sorted_values - sorted_values.mean()
    cumulative_sum = np.cumsum(centered)
    cumulative_squares = np.cumsum(centered**2)

    def _scan(split_sizes: np.ndarray) -> Tuple[float, int]:
        variances = _weighted_variances(
            split_sizes, cumulative_sum, cumulative_squares
        )
        best = int(np.argmin(variances))
        return float(variances[best]), int(split_sizes[best])

    workers = min(resolve_n_jobs(n_jobs), n - 1)
    chunks = np.array_split(np.arange(1, n), workers)
    if workers > 1:
        with ThreadPoolExecutor(max_workers=workers) as executor:
            chunk_minima = list(executor.map(_scan, chunks))
    else:
        chunk_minima = [_scan(chunk) for chunk in chunks]
    min_variance, split_size = min(chunk_minima)

    low_max = sorted_values[split_size - 1]
    threshold = float((low_max + sorted_values[split_size]) / 2)
    total_variance = float(np.var(values))
    effectiveness = 0.0 if total_variance == 0 else 1 - min_variance / total_variance

    logger.debug(
        "Otsu split: threshold %s, effectiveness %s.", threshold, effectiveness
    )
    # The midpoint of adjacent doubles can round onto the high value.
    return OtsuResult(
        groups=values > low_max, threshold=threshold, effectiveness=effectiveness
    )


def otsu_columns(matrix: np.ndarray, n_jobs: int = 1) -> List[OtsuResult]:
    """Apply the Otsu split independently to every column of a matrix.

    Args:
        matrix: 2-D array of finite values, one variable per column.
        n_jobs: Number of worker threads for each column's candidate scan.

    Returns:
        One OtsuResult per column.

    Raises:
        ValueError: If matrix is not two dimensional.
    """
    matrix = np.asarray(matrix, dtype=np.float64)
    if matrix.ndim != 2:
        raise ValueError("matrix must be two dimensional")
    return [otsu(column, n_jobs=n_jobs) for column in matrix.T]
