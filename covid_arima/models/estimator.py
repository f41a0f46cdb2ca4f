"""
estimator.py
------------
Gaussian likelihood estimation of ARMA(p, q) on an (already differenced) series.

Model
-----
    (X_t - mu) = sum_i phi_i (X_{t-i} - mu) + e_t + sum_j theta_j e_{t-j},   e_t ~ N(0, sigma2)

mu is fixed at the sample mean; phi and theta are found by BFGS over an
unconstrained vector u. Each block of u is squashed through tanh into partial
autocorrelations in (-1, 1) and expanded with the Durbin-Levinson recursion, so
every iterate is stationary (AR) and invertible (MA) by construction:

    u  --tanh-->  pacf  --levinson-->  phi            (AR block)
    u  --tanh-->  pacf  --levinson-->  -theta         (MA block)

Likelihoods
-----------
    css     conditional sum of squares: condition on the first max(p, ncond)
            values, pre-sample errors = 0. Vectorised via scipy.signal.lfilter.
    ml      exact likelihood from a Kalman filter on the Harvey state-space
            form, sigma2 concentrated out.
    css-ml  css estimates as the starting point for ml.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass

import numpy as np
from scipy import linalg, optimize, signal

from covid_arima.exceptions import (
    InsufficientLengthError,
    NonStationaryFitError,
    NumericalDivergenceError,
)
from covid_arima.models.differencing import difference
from covid_arima.models.types import FittedModel, ModelOrder, TimeSeries

logger = logging.getLogger(__name__)

METHODS = ("css", "ml", "css-ml")

_UNIT_ROOT_TOL = 1e-6
_PACF_CLIP = 0.99
_BAD_OBJECTIVE = 1e20
_REGULARIZATION = 0.1


@dataclass
class _ARMAEstimate:
    phi: np.ndarray
    theta: np.ndarray
    mean: float
    sigma2: float
    loglik: float
    nobs: int


# ── Polynomial helpers ────────────────────────────────────────────────────────

def _levinson(pacf: np.ndarray) -> np.ndarray:
    """Partial autocorrelations -> AR coefficients (Durbin-Levinson)."""
    coefs = np.zeros(0)
    for k, a in enumerate(pacf):
        coefs = np.append(coefs - a * coefs[::-1], a) if k else np.array([a])
    return coefs


def _inverse_levinson(coefs: np.ndarray) -> np.ndarray:
    """AR coefficients -> partial autocorrelations. Assumes a stationary polynomial."""
    coefs = np.asarray(coefs, dtype=float).copy()
    pacf = np.zeros(len(coefs))
    for k in range(len(coefs) - 1, -1, -1):
        a = coefs[k]
        pacf[k] = a
        if k:
            coefs = (coefs[:k] + a * coefs[:k][::-1]) / (1.0 - a * a)
    return pacf


def roots_outside_unit_circle(poly: np.ndarray, tol: float = _UNIT_ROOT_TOL) -> bool:
    """True if every root of poly[0] + poly[1] z + ... lies strictly outside |z| = 1."""
    roots = np.polynomial.polynomial.polyroots(np.asarray(poly, dtype=float))
    return bool(np.all(np.abs(roots) > 1.0 + tol)) if len(roots) else True


def is_stationary(phi) -> bool:
    return roots_outside_unit_circle(np.r_[1.0, -np.asarray(phi, dtype=float)])


def is_invertible(theta) -> bool:
    return roots_outside_unit_circle(np.r_[1.0, np.asarray(theta, dtype=float)])


def _unpack(u: np.ndarray, p: int, q: int) -> tuple[np.ndarray, np.ndarray]:
    phi = _levinson(np.tanh(u[:p]))
    theta = -_levinson(np.tanh(u[p:p + q]))
    return phi, theta


def _pack(phi: np.ndarray, theta: np.ndarray) -> np.ndarray:
    blocks = []
    for coefs in (np.asarray(phi, dtype=float), -np.asarray(theta, dtype=float)):
        pacf = np.clip(_inverse_levinson(coefs), -_PACF_CLIP, _PACF_CLIP)
        blocks.append(np.arctanh(pacf))
    return np.concatenate(blocks)


# ── Residuals and likelihoods ─────────────────────────────────────────────────

def one_step_errors(x: np.ndarray, phi, theta) -> np.ndarray:
    """
    Conditional one-step-ahead errors of a demeaned series.

    The first p observations are conditioned on, so the result has n - p values
    aligned with x[p:]; errors before index p are taken as zero.
    """
    ar_poly = np.r_[1.0, -np.asarray(phi, dtype=float)]
    ma_poly = np.r_[1.0, np.asarray(theta, dtype=float)]
    u = np.convolve(x, ar_poly, mode="valid")
    return signal.lfilter([1.0], ma_poly, u)


def _css_loglik(x: np.ndarray, phi, theta, ncond: int = 0) -> tuple[float, float, int]:
    """
    Conditional log-likelihood scored on x[max(p, ncond):].

    A shared `ncond` puts models with different p on the same sample, which
    keeps their information criteria comparable.
    """
    e = one_step_errors(x, phi, theta)
    e = e[max(ncond - len(phi), 0):]
    n = len(e)
    sigma2 = float(np.dot(e, e) / n)
    if not np.isfinite(sigma2) or sigma2 <= 0:
        return -np.inf, sigma2, n
    return -0.5 * n * (np.log(2.0 * np.pi * sigma2) + 1.0), sigma2, n


def _exact_loglik(x: np.ndarray, phi, theta) -> tuple[float, float, int]:
    """Exact Gaussian log-likelihood via the Kalman filter, sigma2 concentrated."""
    phi = np.asarray(phi, dtype=float)
    theta = np.asarray(theta, dtype=float)
    p, q, n = len(phi), len(theta), len(x)
    r = max(p, q + 1)

    T = np.zeros((r, r))
    T[:p, 0] = phi
    T[:-1, 1:] = np.eye(r - 1)
    R = np.zeros(r)
    R[0] = 1.0
    R[1:q + 1] = theta
    RR = np.outer(R, R)

    try:
        P = linalg.solve(np.eye(r * r) - np.kron(T, T), RR.ravel()).reshape(r, r)
    except linalg.LinAlgError:
        return -np.inf, np.nan, n

    a = np.zeros(r)
    sum_log_f = 0.0
    ssq = 0.0
    steady = False
    for t in range(n):
        f = P[0, 0]
        if f <= 0:
            return -np.inf, np.nan, n
        v = x[t] - a[0]
        if not steady:
            k = T @ P[:, 0] / f
            P_next = T @ P @ T.T + RR - np.outer(k, k) * f
            steady = np.max(np.abs(P_next - P)) < 1e-12
            P = P_next
        sum_log_f += np.log(f)
        ssq += v * v / f
        a = T @ a + k * v

    sigma2 = ssq / n
    if not np.isfinite(sigma2) or sigma2 <= 0:
        return -np.inf, sigma2, n
    loglik = -0.5 * (n * (np.log(2.0 * np.pi * sigma2) + 1.0) + sum_log_f)
    return float(loglik), float(sigma2), n


# ── Starting values ───────────────────────────────────────────────────────────

def _autocovariance(x: np.ndarray, nlags: int) -> np.ndarray:
    n = len(x)
    return np.array([np.dot(x[: n - h], x[h:]) / n for h in range(nlags + 1)])


def yule_walker(x: np.ndarray, p: int) -> np.ndarray:
    """Yule-Walker AR(p) coefficients of a demeaned series."""
    if p == 0:
        return np.zeros(0)
    gamma = _autocovariance(x, p)
    if gamma[0] <= 0:
        return np.zeros(p)
    return linalg.solve_toeplitz(gamma[:p], gamma[1:])


def _start_params(x: np.ndarray, p: int, q: int) -> tuple[np.ndarray, np.ndarray]:
    """Yule-Walker for pure AR, Hannan-Rissanen regression otherwise."""
    if q == 0:
        phi = yule_walker(x, p)
        return (phi if is_stationary(phi) else np.zeros(p)), np.zeros(0)

    n = len(x)
    long_order = max(p + q, min(10, n // 4))
    rows = n - long_order - q
    if long_order < 1 or rows <= p + q:
        return np.zeros(p), np.zeros(q)

    e = np.zeros(n)
    e[long_order:] = one_step_errors(x, yule_walker(x, long_order), [])
    t = np.arange(long_order + q, n)
    design = np.column_stack(
        [x[t - i] for i in range(1, p + 1)] + [e[t - j] for j in range(1, q + 1)]
    )
    beta, *_ = np.linalg.lstsq(design, x[t], rcond=None)
    phi, theta = beta[:p], beta[p:]
    if not is_stationary(phi):
        phi = np.zeros(p)
    if not is_invertible(theta):
        theta = np.zeros(q)
    return phi, theta


# ── Optimisation ──────────────────────────────────────────────────────────────

def _loglik(likelihood: str, x: np.ndarray, phi, theta, ncond: int = 0) -> tuple[float, float, int]:
    if likelihood == "css":
        return _css_loglik(x, phi, theta, ncond)
    return _exact_loglik(x, phi, theta)


def _optimize(x, p, q, likelihood, u0, max_iter, penalty=0.0, ncond=0) -> np.ndarray:
    def objective(u):
        phi, theta = _unpack(u, p, q)
        ll, _, _ = _loglik(likelihood, x, phi, theta, ncond)
        if not np.isfinite(ll):
            return _BAD_OBJECTIVE
        return -ll + penalty * float(np.dot(u, u))

    result = optimize.minimize(objective, u0, method="BFGS", options={"maxiter": max_iter})
    if not np.isfinite(result.fun) or result.fun >= _BAD_OBJECTIVE:
        raise NumericalDivergenceError(
            f"ARMA({p},{q}) {likelihood} likelihood is not finite at the optimum"
        )
    if result.status in (1, 3):
        raise NumericalDivergenceError(
            f"ARMA({p},{q}) {likelihood} optimisation did not converge: {result.message}"
        )
    if not result.success:
        logger.debug(f"ARMA({p},{q}) {likelihood}: accepting optimum ({result.message})")
    return result.x


def _estimate_arma(w: np.ndarray, p: int, q: int, method: str, max_iter: int,
                   ncond: int = 0) -> _ARMAEstimate:
    if method not in METHODS:
        raise ValueError(f"Unknown estimation method {method!r}; expected one of {METHODS}")
    n = len(w)
    # ncond only shifts the css sample; the exact likelihood always uses every point
    ncond = max(p, ncond) if method == "css" else p
    if n < 2 or n - ncond <= p + q:
        raise InsufficientLengthError(
            f"ARMA({p},{q}) needs more than {ncond + p + q} observations, got {n}"
        )

    mean = float(np.mean(w))
    x = w - mean

    if p == 0 and q == 0:
        scored = x[ncond:]
        sigma2 = float(np.mean(scored * scored))
        if sigma2 <= 0:
            raise NumericalDivergenceError("Series has zero variance; likelihood is unbounded")
        loglik = -0.5 * len(scored) * (np.log(2.0 * np.pi * sigma2) + 1.0)
        return _ARMAEstimate(np.zeros(0), np.zeros(0), mean, sigma2, loglik, len(scored))

    if np.var(x) <= 0:
        raise NumericalDivergenceError("Series has zero variance; likelihood is unbounded")

    u0 = _pack(*_start_params(x, p, q))
    stages = ["css", "ml"] if method == "css-ml" else [method]

    for penalty in (0.0, _REGULARIZATION):
        u = u0
        try:
            for likelihood in stages:
                u = _optimize(x, p, q, likelihood, u, max_iter, penalty, ncond)
        except NumericalDivergenceError:
            if penalty:
                raise
            logger.debug(f"ARMA({p},{q}) diverged; retrying with penalty {_REGULARIZATION}")
            continue
        phi, theta = _unpack(u, p, q)
        if is_stationary(phi) and is_invertible(theta):
            break
        logger.debug(f"ARMA({p},{q}) hit the unit circle; retrying with penalty {_REGULARIZATION}")
    else:
        raise NonStationaryFitError(
            f"ARMA({p},{q}) estimates are not stationary/invertible: phi={phi}, theta={theta}"
        )

    loglik, sigma2, nobs = _loglik(stages[-1], x, phi, theta, ncond)
    if not np.isfinite(loglik):
        raise NumericalDivergenceError(f"ARMA({p},{q}) log-likelihood is not finite")
    return _ARMAEstimate(phi, theta, mean, sigma2, loglik, nobs)


# ── Public API ────────────────────────────────────────────────────────────────

def _as_timeseries(series) -> TimeSeries:
    return series if isinstance(series, TimeSeries) else TimeSeries(series)


def fit(series, p: int, q: int, method: str = "css", max_iter: int = 200) -> FittedModel:
    """
    Fit ARMA(p, q) to a series that is already stationary (differenced).

    Args:
        series   : TimeSeries or array-like
        p, q     : AR and MA orders
        method   : "css", "ml" or "css-ml"
        max_iter : BFGS iteration budget per optimisation stage

    Returns:
        FittedModel with order (p, 0, q)
    """
    return fit_arima(series, ModelOrder(p, 0, q), method=method, max_iter=max_iter)


def fit_arima(series, order, method: str = "css", max_iter: int = 200, ncond: int = 0) -> FittedModel:
    """
    Difference `series` order.d times, then fit ARMA(order.p, order.q).

    `ncond` conditions css on at least that many differenced values; the order
    search passes max_p so every candidate is scored on the same sample.
    """
    order = order if isinstance(order, ModelOrder) else ModelOrder(*order)
    ts = _as_timeseries(series)
    w = difference(ts.values, order.d)
    est = _estimate_arma(w, order.p, order.q, method, max_iter, ncond)
    model = FittedModel(
        order=order,
        phi=tuple(float(c) for c in est.phi),
        theta=tuple(float(c) for c in est.theta),
        sigma2=float(est.sigma2),
        loglik=float(est.loglik),
        mean=est.mean,
        series=ts,
        method=method,
        nobs=est.nobs,
    )
    logger.debug(f"Fitted {model}")
    return model
