"""arima_model.py — Auto-ARIMA forecaster: order search, final refit, forecast."""
from __future__ import annotations
import logging
from typing import Iterable, Optional

import numpy as np

from covid_arima.exceptions import ARIMAError
from covid_arima.models.estimator import fit_arima
from covid_arima.models.forecaster import forecast, validate_levels
from covid_arima.models.selection import SelectionResult, grid_search
from covid_arima.models.types import FittedModel, ForecastResult, ModelOrder, TimeSeries

logger = logging.getLogger(__name__)


class ARIMAForecaster:
    """
    Fits ARIMA to one series and forecasts it.

    With `order=None` the order is chosen by grid search (fast `method`
    likelihood), then the winner is refit with `final_method`. A fixed `order`
    skips the search, which is how the naive baselines are built.

    Usage:
        fc = ARIMAForecaster(max_p=3, max_d=2, max_q=3)
        fc.fit(series)
        result = fc.predict(31)
    """

    def __init__(
        self,
        order: Optional[Iterable[int]] = None,
        max_p: int = 3,
        max_d: int = 2,
        max_q: int = 3,
        criterion: str = "aic",
        stationarity_test: str = "kpss",
        alpha: float = 0.05,
        method: str = "css",
        final_method: Optional[str] = "css-ml",
        max_iter: int = 200,
        n_jobs: int = 1,
        time_budget: Optional[float] = None,
        confidence_levels: Iterable[float] = (0.80, 0.95),
        bootstrap: bool = False,
        n_paths: int = 1000,
        seed: Optional[int] = None,
    ) -> None:
        self.order = ModelOrder(*order) if order is not None else None
        self.search_kwargs = dict(
            max_p=max_p, max_d=max_d, max_q=max_q, criterion=criterion,
            stationarity_test=stationarity_test, alpha=alpha, method=method,
            max_iter=max_iter, n_jobs=n_jobs, time_budget=time_budget,
        )
        self.method = method
        self.final_method = final_method
        self.max_iter = max_iter
        self.confidence_levels = tuple(validate_levels(confidence_levels))
        self.bootstrap = bootstrap
        self.n_paths = n_paths
        self.seed = seed
        self.model_: Optional[FittedModel] = None
        self.selection_: Optional[SelectionResult] = None

    @classmethod
    def from_config(cls, config: dict, **overrides) -> "ARIMAForecaster":
        mc, fc = config.get("model", {}), config.get("forecast", {})
        kwargs = dict(
            max_p=mc.get("max_p", 3),
            max_d=mc.get("max_d", 2),
            max_q=mc.get("max_q", 3),
            criterion=mc.get("criterion", "aic"),
            stationarity_test=mc.get("stationarity_test", "kpss"),
            alpha=mc.get("stationarity_alpha", 0.05),
            method=mc.get("method", "css"),
            final_method=mc.get("final_method", "css-ml"),
            max_iter=mc.get("max_iter", 200),
            n_jobs=mc.get("n_jobs", 1),
            time_budget=mc.get("time_budget"),
            confidence_levels=fc.get("confidence_levels", (0.80, 0.95)),
            bootstrap=fc.get("bootstrap", False),
            n_paths=fc.get("n_paths", 1000),
            seed=fc.get("seed"),
        )
        kwargs.update(overrides)
        return cls(**kwargs)

    def fit(self, series) -> "ARIMAForecaster":
        ts = series if isinstance(series, TimeSeries) else TimeSeries(series)
        if self.order is not None:
            self.model_ = fit_arima(ts, self.order, method=self.final_method or self.method,
                                    max_iter=self.max_iter)
            return self

        self.selection_ = grid_search(ts, **self.search_kwargs)
        self.model_ = self.selection_.model
        if self.final_method and self.final_method != self.method:
            try:
                self.model_ = fit_arima(ts, self.selection_.order, method=self.final_method,
                                        max_iter=self.max_iter)
            except ARIMAError as e:
                logger.warning(
                    f"{self.final_method} refit of {self.selection_.order} failed ({e}); "
                    f"keeping the {self.method} estimate"
                )
        logger.info(f"Final model: {self.model_}")
        return self

    def predict(self, horizon: int) -> ForecastResult:
        if self.model_ is None:
            raise RuntimeError("Call .fit() before .predict()")
        return forecast(
            self.model_, horizon, self.confidence_levels,
            bootstrap=self.bootstrap, n_paths=self.n_paths, seed=self.seed,
        )

    def __call__(self, train, horizon: int) -> ForecastResult:
        """Backtest hook: fit on `train`, forecast `horizon` steps."""
        return self.fit(train).predict(horizon)


def build_baselines(config: dict) -> dict[str, ARIMAForecaster]:
    """Fixed-order reference models: historical mean and random walk with drift."""
    return {
        "Mean": ARIMAForecaster.from_config(config, order=(0, 0, 0)),
        "Drift": ARIMAForecaster.from_config(config, order=(0, 1, 0)),
    }


def clip_non_negative(result: ForecastResult) -> ForecastResult:
    """Case counts cannot go below zero; floor the point forecast and bounds at 0."""
    intervals = {
        c: (np.maximum(0, lo), np.maximum(0, hi)) for c, (lo, hi) in result.intervals.items()
    }
    return ForecastResult(
        result.horizon, np.maximum(0, result.mean), intervals,
        dates=result.dates, method=result.method,
    )
