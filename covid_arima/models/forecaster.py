"""
forecaster.py
-------------
Multi-step ARIMA forecasts with Gaussian (or bootstrapped) prediction intervals.

Point forecasts run the fitted ARMA recursion forward on the differenced series
with every future shock set to zero, then integrate back to the original scale
anchored on the last d observations.

Interval variance at step h is

    sigma2 * (psi_0^2 + psi_1^2 + ... + psi_{h-1}^2)

where psi are the MA(inf) weights of the full operator phi(B)(1 - B)^d over
theta(B). The sum only ever grows, so interval width is non-decreasing in h for
a fixed level.

Confidence levels must lie strictly inside (0, 1). A level of 1.0 would need
infinite-width bounds, so it is rejected up front with
InvalidConfidenceLevelError instead of being clipped.
"""

from __future__ import annotations
import logging
from typing import Iterable, Optional

import numpy as np
import pandas as pd
from scipy import stats

from covid_arima.exceptions import InvalidConfidenceLevelError, InvalidModelError
from covid_arima.models.differencing import integrate
from covid_arima.models.estimator import one_step_errors
from covid_arima.models.types import FittedModel, ForecastResult

logger = logging.getLogger(__name__)


def validate_model(model) -> FittedModel:
    """Raise InvalidModelError unless `model` is a usable FittedModel."""
    if model is None:
        raise InvalidModelError("No fitted model supplied")
    if not isinstance(model, FittedModel):
        raise InvalidModelError(f"Expected FittedModel, got {type(model).__name__}")
    if len(model.phi) != model.order.p or len(model.theta) != model.order.q:
        raise InvalidModelError(
            f"{model.order} carries {len(model.phi)} AR and {len(model.theta)} MA coefficients"
        )
    coefs = np.r_[model.phi, model.theta, model.mean]
    if not np.all(np.isfinite(coefs)):
        raise InvalidModelError(f"{model.order} has non-finite coefficients")
    if not np.isfinite(model.sigma2) or model.sigma2 <= 0:
        raise InvalidModelError(f"{model.order} has invalid noise variance {model.sigma2}")
    if model.series is None or len(model.series) <= model.order.d + model.order.p:
        raise InvalidModelError(f"{model.order} is not attached to a long enough series")
    return model


def validate_levels(confidence_levels: Iterable[float]) -> list[float]:
    levels = []
    for c in confidence_levels:
        c = float(c)
        if not 0.0 < c < 1.0:
            raise InvalidConfidenceLevelError(
                f"Confidence level must be strictly between 0 and 1, got {c}"
            )
        levels.append(c)
    return sorted(set(levels))


def psi_weights(phi, theta, d: int, n: int) -> np.ndarray:
    """First n MA(inf) weights of the ARIMA operator; psi_0 = 1."""
    ar_poly = np.r_[1.0, -np.asarray(phi, dtype=float)]
    for _ in range(d):
        ar_poly = np.convolve(ar_poly, [1.0, -1.0])
    ar_full = -ar_poly[1:]
    theta = np.asarray(theta, dtype=float)

    psi = np.zeros(n)
    if n == 0:
        return psi
    psi[0] = 1.0
    for j in range(1, n):
        acc = theta[j - 1] if j <= len(theta) else 0.0
        for i in range(1, min(j, len(ar_full)) + 1):
            acc += ar_full[i - 1] * psi[j - i]
        psi[j] = acc
    return psi


def _future_dates(dates: Optional[pd.DatetimeIndex], horizon: int) -> Optional[pd.DatetimeIndex]:
    if dates is None or len(dates) < 2:
        return None
    freq = pd.infer_freq(dates) if len(dates) >= 3 else None
    if freq is None:
        step = dates[-1] - dates[-2]
        return pd.DatetimeIndex([dates[-1] + step * (i + 1) for i in range(horizon)])
    return pd.date_range(dates[-1], periods=horizon + 1, freq=freq)[1:]


def _extend(x: np.ndarray, errors: np.ndarray, phi, theta, horizon: int, shocks=None) -> np.ndarray:
    """
    Run the ARMA recursion `horizon` steps past the end of demeaned `x`.

    `shocks` (n_paths, horizon) injects future noise; None means zero shocks.
    Works on a batch of paths at once.
    """
    p, q = len(phi), len(theta)
    n_paths = 1 if shocks is None else shocks.shape[0]
    hist = np.tile(np.r_[x, np.zeros(horizon)], (n_paths, 1))
    errs = np.tile(np.r_[errors, np.zeros(horizon)], (n_paths, 1))
    n = len(x)
    for h in range(horizon):
        t = n + h
        if shocks is not None:
            errs[:, t] = shocks[:, h]
        value = errs[:, t].copy()
        for i in range(p):
            value += phi[i] * hist[:, t - 1 - i]
        for j in range(q):
            value += theta[j] * errs[:, t - 1 - j]
        hist[:, t] = value
    return hist[:, n:]


def forecast(
    model: FittedModel,
    horizon: int,
    confidence_levels: Iterable[float] = (0.80, 0.95),
    bootstrap: bool = False,
    n_paths: int = 1000,
    seed: Optional[int] = None,
) -> ForecastResult:
    """
    Forecast `horizon` steps past the end of the model's series.

    Args:
        model             : FittedModel from fit_arima / grid_search
        horizon           : number of steps (0 returns an empty result)
        confidence_levels : levels in (0, 1), e.g. (0.80, 0.95)
        bootstrap         : draw intervals from simulated futures that
                            resample the model's residuals instead of
                            assuming Gaussian errors; each half-width is a
                            running maximum over steps, so widths never shrink
        n_paths           : simulated paths when bootstrap=True
        seed              : seed for the bootstrap generator

    Returns:
        ForecastResult on the original scale of the series
    """
    model = validate_model(model)
    levels = validate_levels(confidence_levels)
    if int(horizon) != horizon or horizon < 0:
        raise ValueError(f"horizon must be a non-negative integer, got {horizon!r}")
    horizon = int(horizon)

    if horizon == 0:
        empty = np.zeros(0)
        return ForecastResult(0, empty, {c: (empty, empty) for c in levels})

    p, d = model.order.p, model.order.d
    phi, theta = np.asarray(model.phi), np.asarray(model.theta)
    x = model.differenced - model.mean
    errors = np.zeros(len(x))
    errors[p:] = one_step_errors(x, phi, theta)

    seed_values = model.series.values[len(model.series) - d:]

    def to_original(diff_path: np.ndarray) -> np.ndarray:
        return integrate(diff_path + model.mean, d, seed_values)[d:]

    point = to_original(_extend(x, errors, phi, theta, horizon)[0])
    dates = _future_dates(model.series.dates, horizon)

    intervals = {}
    if bootstrap:
        pool = errors[p:]
        rng = np.random.default_rng(seed)
        shocks = rng.choice(pool, size=(n_paths, horizon), replace=True)
        paths = np.array([to_original(path) for path in _extend(x, errors, phi, theta, horizon, shocks)])
        for c in levels:
            tail = (1.0 - c) / 2.0
            # running max of each half-width, so sampling noise cannot narrow a later step
            below = np.maximum.accumulate(np.maximum(point - np.quantile(paths, tail, axis=0), 0.0))
            above = np.maximum.accumulate(np.maximum(np.quantile(paths, 1.0 - tail, axis=0) - point, 0.0))
            intervals[c] = (point - below, point + above)
        method = "bootstrap"
    else:
        psi = psi_weights(phi, theta, d, horizon)
        se = np.sqrt(model.sigma2 * np.cumsum(psi ** 2))
        for c in levels:
            z = stats.norm.ppf(0.5 + c / 2.0)
            intervals[c] = (point - z * se, point + z * se)
        method = "normal"

    logger.info(
        f"{model.order}: {horizon}-step {method} forecast at levels "
        f"{[f'{c:.0%}' for c in levels]}"
    )
    return ForecastResult(horizon, point, intervals, dates=dates, method=method)
