"""This module contains functions to smooth and resample the input signals."""

import numpy as np
from scipy import interpolate, ndimage


def nan_gaussian_smooth(values: np.ndarray, sigma: float) -> np.ndarray:
    """Gaussian smoothing that ignores missing values.

    NaN samples contribute no weight to their neighbours and stay NaN in the
    output, so gaps in the data are never filled in.

    Args:
        values: 1-D array of samples, may contain NaN.
        sigma: Standard deviation of the Gaussian kernel, in samples. A value of 0
            returns a copy of the input.

    Returns:
        The smoothed samples, same shape as the input.

    Raises:
        ValueError: If sigma is negative.
    """
    if sigma < 0:
        raise ValueError("sigma must be non-negative")
    values = np.asarray(values, dtype=np.float64)
    if sigma == 0 or values.size == 0:
        return values.copy()

    valid = np.isfinite(values)
    filled = np.where(valid, values, 0.0)
    numerator = ndimage.gaussian_filter1d(filled, sigma, mode="nearest")
    weights = ndimage.gaussian_filter1d(valid.astype(np.float64), sigma, mode="nearest")

    smoothed = np.full_like(values, np.nan)
    np.divide(numerator, weights, out=smoothed, where=valid & (weights > 0))
    return smoothed


def interpolate_at(
    time: np.ndarray, values: np.ndarray, query: np.ndarray
) -> np.ndarray:
    """Linearly interpolate a sampled signal at arbitrary times.

    Args:
        time: Sorted sample times.
        values: Sample values.
        query: Times at which to evaluate the signal.

    Returns:
        Interpolated values, NaN wherever the query lies outside the sampled range.
    """
    query = np.asarray(query, dtype=np.float64)
    if query.size == 0:
        return np.empty(0, dtype=np.float64)
    if len(time) == 0:
        return np.full(query.shape, np.nan)
    if len(time) == 1:
        return np.where(query == time[0], values[0], np.nan)
    interpolator = interpolate.interp1d(
        time, values, kind="linear", bounds_error=False, fill_value=np.nan
    )
    return interpolator(query)
