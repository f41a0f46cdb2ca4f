"""
diagnostics.py
--------------
Residual checks for a fitted ARIMA model.

Residuals that look like white noise (no autocorrelation outside roughly
+/-1.96/sqrt(n), high Ljung-Box p-value) mean the model has captured the
serial structure. These helpers report; they never reject a model.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass
from typing import Optional

import numpy as np
import pandas as pd
from statsmodels.stats.diagnostic import acorr_ljungbox

from covid_arima.models.estimator import one_step_errors
from covid_arima.models.forecaster import validate_model
from covid_arima.models.types import FittedModel, ResidualSeries, TimeSeries

logger = logging.getLogger(__name__)


def residuals(model: FittedModel) -> ResidualSeries:
    """
    One-step-ahead prediction errors on the differenced series.

    The first max(p, q) points lack a full history and are left out.
    """
    model = validate_model(model)
    p, q = model.order.p, model.order.q
    x = model.differenced - model.mean
    errors = one_step_errors(x, model.phi, model.theta)
    start = max(p, q)
    return ResidualSeries(errors[start - p:], start=start, order=model.order)


def fitted_values(model: FittedModel) -> pd.Series:
    """
    One-step-ahead fitted values on the original scale.

    A one-step error on the d-th difference is also the one-step error on the
    original series, so fitted = observed - residual. Points without a full
    history (the first d + max(p, q)) are NaN.
    """
    res = residuals(model)
    observed = model.series.values
    offset = model.order.d + res.start
    fitted = np.full(len(observed), np.nan)
    fitted[offset:] = observed[offset:] - res.values
    index = model.series.dates if model.series.dates is not None else pd.RangeIndex(len(observed))
    return pd.Series(fitted, index=index, name="fitted")


def autocorrelation(series, max_lag: int) -> list[tuple[int, float]]:
    """
    Sample autocorrelation rho(h) = gamma(h) / gamma(0) for h = 0..max_lag.

    gamma uses the biased (divide-by-n) estimator. max_lag is clamped to n - 1.
    Raises ValueError on a constant series, where rho is undefined.
    """
    if isinstance(series, (TimeSeries, ResidualSeries)):
        values = np.asarray(series.values, dtype=float)
    else:
        values = np.asarray(series, dtype=float)
    if max_lag < 0:
        raise ValueError(f"max_lag must be non-negative, got {max_lag}")
    n = len(values)
    if n == 0:
        raise ValueError("Cannot compute autocorrelation of an empty series")

    x = values - values.mean()
    gamma0 = np.dot(x, x) / n
    if gamma0 <= 0:
        raise ValueError("Autocorrelation is undefined for a constant series")

    acf = [(0, 1.0)]
    for h in range(1, min(max_lag, n - 1) + 1):
        acf.append((h, float(np.dot(x[: n - h], x[h:]) / n / gamma0)))
    return acf


def significance_band(n: int, z: float = 1.96) -> float:
    """Approximate white-noise band for the sample ACF."""
    return z / np.sqrt(n)


def ljung_box(values, lags: int, model_df: int = 0) -> tuple[float, float]:
    """Ljung-Box Q statistic and p-value at `lags` (statsmodels)."""
    values = np.asarray(values, dtype=float)
    lags = max(1, min(lags, len(values) - 1))
    table = acorr_ljungbox(values, lags=[lags], model_df=model_df, return_df=True)
    return float(table["lb_stat"].iloc[-1]), float(table["lb_pvalue"].iloc[-1])


@dataclass
class DiagnosticReport:
    order: str
    n: int
    band: float
    acf: list[tuple[int, float]]
    n_outside_band: int
    ljung_box_stat: float
    ljung_box_pvalue: float
    residual_mean: float
    residual_std: float

    def looks_white(self, alpha: float = 0.05) -> bool:
        """Verdict only: Ljung-Box does not reject and at most ~5% of lags leave the band."""
        allowed = max(1, int(np.ceil(0.05 * (len(self.acf) - 1))))
        return (
            (np.isnan(self.ljung_box_pvalue) or self.ljung_box_pvalue > alpha)
            and self.n_outside_band <= allowed
        )

    def to_frame(self) -> pd.DataFrame:
        df = pd.DataFrame(self.acf, columns=["lag", "acf"])
        df["outside_band"] = (df["lag"] > 0) & (df["acf"].abs() > self.band)
        return df

    def summary(self) -> dict:
        return {
            "order": self.order,
            "n": self.n,
            "band": round(self.band, 4),
            "lags_outside_band": self.n_outside_band,
            "ljung_box_stat": round(self.ljung_box_stat, 4),
            "ljung_box_pvalue": round(self.ljung_box_pvalue, 4),
            "residual_mean": round(self.residual_mean, 4),
            "residual_std": round(self.residual_std, 4),
            "looks_white": bool(self.looks_white()),
        }


def check_residuals(model: FittedModel, max_lag: int = 20, lb_lags: Optional[int] = None) -> DiagnosticReport:
    """ACF of the residuals against the +/-1.96/sqrt(n) band, plus Ljung-Box."""
    res = residuals(model)
    n = len(res)
    band = significance_band(n)
    acf = autocorrelation(res, max_lag)
    outside = sum(1 for lag, rho in acf if lag > 0 and abs(rho) > band)

    lb_lags = lb_lags or min(10, n - 1)
    model_df = model.order.p + model.order.q
    if lb_lags > model_df:
        lb_stat, lb_p = ljung_box(res.values, lb_lags, model_df=model_df)
    else:
        lb_stat, lb_p = float("nan"), float("nan")

    report = DiagnosticReport(
        order=str(model.order),
        n=n,
        band=float(band),
        acf=acf,
        n_outside_band=outside,
        ljung_box_stat=lb_stat,
        ljung_box_pvalue=lb_p,
        residual_mean=float(np.mean(res.values)),
        residual_std=float(np.std(res.values)),
    )
    logger.info(
        f"{model.order} residuals: {outside}/{len(acf) - 1} lags outside +/-{band:.3f}, "
        f"Ljung-Box p={lb_p:.3f}"
    )
    return report
