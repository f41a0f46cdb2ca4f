"""
metrics.py
----------
Scores for a held-out stretch of daily case counts.

Point accuracy (MAE, RMSE, MAPE, sMAPE) is computed on the forecast mean;
interval quality on the band at one confidence level:

    coverage : share of held-out days inside [lower, upper]
    width    : average band width, in cases per day

A well-calibrated 95% band has coverage near 0.95 at the narrowest width.
"""

from __future__ import annotations
import numpy as np
import pandas as pd

from covid_arima.models.types import ForecastResult

# Bookkeeping keys in a fold record that are not scores.
FOLD_KEYS = ("fold", "cutoff")


def mae(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """Mean absolute error, in cases per day."""
    return float(np.mean(np.abs(y_true - y_pred)))


def rmse(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    return float(np.sqrt(np.mean((y_true - y_pred) ** 2)))


def mape(y_true: np.ndarray, y_pred: np.ndarray, epsilon: float = 1.0) -> float:
    """
    Mean absolute percentage error.

    Days with zero reported cases (weekends, reporting gaps) would divide by
    zero, so the denominator is floored at `epsilon` cases.
    """
    denom = np.maximum(np.abs(y_true), epsilon)
    return float(100.0 * np.mean(np.abs(y_true - y_pred) / denom))


def smape(y_true: np.ndarray, y_pred: np.ndarray) -> float:
    """Symmetric MAPE in [0, 200]; stays bounded on near-zero case days."""
    denom = (np.abs(y_true) + np.abs(y_pred)) / 2 + 1e-8
    return float(100.0 * np.mean(np.abs(y_true - y_pred) / denom))


def interval_coverage(y_true: np.ndarray, lower: np.ndarray, upper: np.ndarray) -> float:
    """Fraction of held-out days within [lower, upper], bounds inclusive."""
    return float(((y_true >= lower) & (y_true <= upper)).mean())


def mean_interval_width(lower: np.ndarray, upper: np.ndarray) -> float:
    return float(np.mean(upper - lower))


def compute_all_metrics(y_true: np.ndarray, y_pred: np.ndarray) -> dict[str, float]:
    """Point-forecast scores keyed by name."""
    return {
        "mae": mae(y_true, y_pred),
        "rmse": rmse(y_true, y_pred),
        "mape": mape(y_true, y_pred),
        "smape": smape(y_true, y_pred),
    }


def score_forecast(y_true: np.ndarray, result: ForecastResult, level: float) -> dict[str, float]:
    """
    Point scores plus coverage and width of the `level` band.

    Coverage and width are NaN when the forecast carries no band at `level`.
    """
    scores = compute_all_metrics(y_true, result.mean)
    if level in result.intervals:
        lower, upper = result.intervals[level]
        scores["coverage"] = interval_coverage(y_true, lower, upper)
        scores["width"] = mean_interval_width(lower, upper)
    else:
        scores["coverage"] = scores["width"] = float("nan")
    return scores


def metrics_dataframe(folds: list[dict]) -> pd.DataFrame:
    """
    One row per score with its spread across backtest folds.

    Fold bookkeeping (fold number, cutoff) and any non-numeric entries are left out.
    """
    df = pd.DataFrame(folds).drop(columns=list(FOLD_KEYS), errors="ignore")
    df = df.select_dtypes("number")
    return pd.DataFrame({
        "metric": df.columns,
        "mean": df.mean().values,
        "std": df.std().values,
        "min": df.min().values,
        "max": df.max().values,
    })
