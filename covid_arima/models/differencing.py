"""
differencing.py
---------------
Discrete differencing and its inverse.

    difference([x0, x1, ..., xn], 1) -> [x1-x0, ..., xn-x(n-1)]
    integrate(difference(x, d), d, x[:d]) -> x
"""

from __future__ import annotations

import numpy as np

from covid_arima.exceptions import InsufficientLengthError


def difference(series, d: int = 1) -> np.ndarray:
    """
    Apply the lag-1 difference operator `d` times.

    Each pass shrinks the series by one element. Raises InsufficientLengthError
    when the series has `d` or fewer values (nothing would survive).
    """
    if d < 0:
        raise ValueError(f"d must be non-negative, got {d}")
    values = np.asarray(series, dtype=float)
    if len(values) <= d:
        raise InsufficientLengthError(
            f"Cannot difference {d} time(s): series has only {len(values)} values"
        )
    return np.diff(values, n=d) if d > 0 else values.copy()


def integrate(series, d: int, seed_values) -> np.ndarray:
    """
    Undo `d` differences by cumulative summation.

    Args:
        series      : the d-times differenced values
        d           : differencing order
        seed_values : the d original-scale values immediately preceding the
                      first value `series` was differenced from

    Returns:
        Original-scale values, seed included (length len(series) + d).
    """
    if d < 0:
        raise ValueError(f"d must be non-negative, got {d}")
    values = np.asarray(series, dtype=float)
    seed = np.asarray(seed_values, dtype=float).ravel()
    if len(seed) != d:
        raise ValueError(f"integrate needs exactly {d} seed value(s), got {len(seed)}")
    if d == 0:
        return values.copy()

    # Leading element of each intermediate difference level, from the seed.
    anchors = [np.diff(seed, n=k)[0] for k in range(d)]

    out = values
    for k in reversed(range(d)):
        out = np.concatenate([[anchors[k]], anchors[k] + np.cumsum(out)])
    return out
