"""
backtest.py
-----------
Rolling-origin (expanding-window) backtesting of a single case series.

Train on everything up to cutoff t, forecast t+1 ... t+h, move the cutoff
forward, repeat. Each fold refits from scratch, so the order search sees only
the history available at that cutoff.

                  Fold 1          Fold 2          Fold 3
Train:   [======]                [=========]     [============]
Predict:         [----h----]              [----h----]       [----h----]
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from typing import Callable

import numpy as np
import pandas as pd

from covid_arima.evaluation.metrics import metrics_dataframe, score_forecast
from covid_arima.exceptions import ARIMAError
from covid_arima.models.types import ForecastResult, TimeSeries

logger = logging.getLogger(__name__)


@dataclass
class BacktestResult:
    """Stores per-fold and aggregate backtesting results."""
    model_name: str
    level: float = 0.95
    fold_results: list[dict] = field(default_factory=list)
    predictions: list[pd.DataFrame] = field(default_factory=list)

    @property
    def summary(self) -> pd.DataFrame:
        return metrics_dataframe(self.fold_results)

    def _mean(self, key: str) -> float:
        if not self.fold_results:
            return float("nan")
        return float(np.mean([r[key] for r in self.fold_results]))

    @property
    def mean_mae(self) -> float:
        return self._mean("mae")

    @property
    def mean_rmse(self) -> float:
        return self._mean("rmse")

    @property
    def mean_mape(self) -> float:
        return self._mean("mape")

    @property
    def mean_coverage(self) -> float:
        return self._mean("coverage")

    def __repr__(self) -> str:
        return (
            f"BacktestResult(model={self.model_name}, "
            f"folds={len(self.fold_results)}, "
            f"MAE={self.mean_mae:.3f}, RMSE={self.mean_rmse:.3f}, "
            f"coverage@{self.level:.0%}={self.mean_coverage:.1%})"
        )


def fold_cutoffs(n: int, horizon: int, n_splits: int, min_train_size: int) -> list[int]:
    """Exclusive train-end indices, evenly spaced after `min_train_size`."""
    fold_size = max(1, (n - horizon - min_train_size) // n_splits)
    return [
        min_train_size + (i + 1) * fold_size
        for i in range(n_splits)
        if min_train_size + (i + 1) * fold_size <= n - horizon
    ]


def rolling_origin_backtest(
    series: TimeSeries,
    model_fn: Callable[[TimeSeries, int], ForecastResult],
    model_name: str,
    horizon: int = 14,
    n_splits: int = 3,
    min_train_size: int = 60,
    level: float = 0.95,
    verbose: bool = True,
) -> BacktestResult:
    """
    Run rolling-origin evaluation.

    Args:
        series        : full history
        model_fn      : callable(train_series, horizon) -> ForecastResult
        model_name    : label for reporting
        horizon       : forecast horizon in steps
        n_splits      : number of folds
        min_train_size: observations required before the first cutoff
        level         : confidence level whose interval coverage is scored
        verbose       : log fold progress

    Returns:
        BacktestResult with per-fold metrics and predictions
    """
    n = len(series)
    cutoffs = fold_cutoffs(n, horizon, n_splits, min_train_size)
    if not cutoffs:
        raise ValueError(
            f"Not enough data for {n_splits} folds with min_train_size={min_train_size} "
            f"and horizon={horizon}. Series length: {n}"
        )

    result = BacktestResult(model_name=model_name, level=level)
    for fold_num, cutoff in enumerate(cutoffs, 1):
        dates = series.dates
        train = series.with_values(
            series.values[:cutoff], dates=None if dates is None else dates[:cutoff]
        )
        y_true = series.values[cutoff:cutoff + horizon]

        if verbose:
            logger.info(
                f"[{model_name}] Fold {fold_num}/{len(cutoffs)} | "
                f"Train: {cutoff} obs | Test: {len(y_true)} obs"
            )

        try:
            fc = model_fn(train, horizon)
        except ARIMAError as e:
            logger.error(f"Model failed on fold {fold_num}: {e}")
            continue

        metrics = score_forecast(y_true, fc, level)
        if level in fc.intervals:
            lower, upper = fc.intervals[level]
        else:
            lower = upper = np.full(horizon, np.nan)
        metrics["fold"] = fold_num
        metrics["cutoff"] = cutoff
        result.fold_results.append(metrics)

        pred_df = pd.DataFrame({
            "step": np.arange(1, horizon + 1),
            "actual": y_true,
            "prediction": fc.mean,
            "lower": lower,
            "upper": upper,
        })
        if dates is not None:
            pred_df.insert(1, "date", dates[cutoff:cutoff + horizon])
        pred_df["model"] = model_name
        pred_df["fold"] = fold_num
        result.predictions.append(pred_df)

        if verbose:
            logger.info(
                f"  → MAE={metrics['mae']:.3f} | "
                f"RMSE={metrics['rmse']:.3f} | "
                f"coverage={metrics['coverage']:.1%}"
            )

    return result


def compare_models(results: list[BacktestResult]) -> pd.DataFrame:
    """
    Build a leaderboard DataFrame comparing multiple BacktestResult objects.

    Returns a DataFrame sorted by MAE ascending.
    """
    rows = []
    for r in results:
        rows.append(
            {
                "model": r.model_name,
                "folds": len(r.fold_results),
                "mae": round(r.mean_mae, 4),
                "rmse": round(r.mean_rmse, 4),
                "mape": round(r.mean_mape, 2),
                "coverage": round(r.mean_coverage, 4),
            }
        )
    leaderboard = pd.DataFrame(rows).sort_values("mae").reset_index(drop=True)
    leaderboard.index += 1  # Rank from 1
    return leaderboard
