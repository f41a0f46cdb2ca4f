"""
types.py
--------
Immutable value types shared by the estimator, order selector, forecaster and
diagnostics.

    TimeSeries      ordered float observations (+ optional dates, never used
                    arithmetically)
    ModelOrder      (p, d, q)
    FittedModel     coefficients, noise variance and log-likelihood for one
                    order, with a reference to the series it was fit on
    ForecastResult  point forecasts plus one (lower, upper) band per level
    ResidualSeries  one-step-ahead prediction errors
"""

from __future__ import annotations
from dataclasses import dataclass, field
from functools import cached_property
from typing import Iterator, Optional

import numpy as np
import pandas as pd


def _readonly(values) -> np.ndarray:
    arr = np.array(values, dtype=float)
    arr.setflags(write=False)
    return arr


@dataclass(frozen=True, eq=False)
class TimeSeries:
    """A 1-D series of finite observations. Transforms return new instances."""
    values: np.ndarray
    dates: Optional[pd.DatetimeIndex] = None
    name: str = "series"

    def __post_init__(self) -> None:
        values = _readonly(self.values)
        if values.ndim != 1:
            raise ValueError(f"TimeSeries must be 1-D, got shape {values.shape}")
        if not np.all(np.isfinite(values)):
            raise ValueError(f"TimeSeries '{self.name}' contains NaN or inf values")
        object.__setattr__(self, "values", values)

        if self.dates is not None:
            dates = pd.DatetimeIndex(self.dates)
            if len(dates) != len(values):
                raise ValueError(
                    f"dates has {len(dates)} entries but series has {len(values)} values"
                )
            object.__setattr__(self, "dates", dates)

    @classmethod
    def from_series(cls, s: pd.Series, name: Optional[str] = None) -> "TimeSeries":
        dates = s.index if isinstance(s.index, pd.DatetimeIndex) else None
        return cls(s.to_numpy(dtype=float), dates=dates, name=name or str(s.name or "series"))

    def __len__(self) -> int:
        return len(self.values)

    def __iter__(self) -> Iterator[float]:
        return iter(self.values.tolist())

    def to_series(self) -> pd.Series:
        index = self.dates if self.dates is not None else pd.RangeIndex(len(self.values))
        return pd.Series(self.values, index=index, name=self.name)

    def with_values(self, values, dates=None, name: Optional[str] = None) -> "TimeSeries":
        return TimeSeries(values, dates=dates, name=name or self.name)


@dataclass(frozen=True, order=True)
class ModelOrder:
    p: int
    d: int
    q: int

    def __post_init__(self) -> None:
        for label, value in (("p", self.p), ("d", self.d), ("q", self.q)):
            if int(value) != value or value < 0:
                raise ValueError(f"{label} must be a non-negative integer, got {value!r}")
            object.__setattr__(self, label, int(value))

    def __iter__(self) -> Iterator[int]:
        return iter((self.p, self.d, self.q))

    def __str__(self) -> str:
        return f"ARIMA({self.p},{self.d},{self.q})"

    def as_tuple(self) -> tuple[int, int, int]:
        return (self.p, self.d, self.q)


@dataclass(frozen=True, eq=False)
class FittedModel:
    """
    Result of one ARIMA fit.

    `phi` and `theta` follow the sign convention
        (X_t - mu) = sum_i phi_i (X_{t-i} - mu) + e_t + sum_j theta_j e_{t-j}
    on the d-times differenced series. `series` is the original-scale input and
    is referenced, not copied.
    """
    order: ModelOrder
    phi: tuple[float, ...]
    theta: tuple[float, ...]
    sigma2: float
    loglik: float
    mean: float
    series: TimeSeries = field(repr=False)
    method: str = "css"
    nobs: int = 0

    @property
    def p(self) -> int:
        return self.order.p

    @property
    def d(self) -> int:
        return self.order.d

    @property
    def q(self) -> int:
        return self.order.q

    @property
    def n_params(self) -> int:
        # AR + MA coefficients + noise variance
        return self.order.p + self.order.q + 1

    @property
    def aic(self) -> float:
        return -2.0 * self.loglik + 2.0 * self.n_params

    @property
    def aicc(self) -> float:
        k = self.n_params
        denom = self.nobs - k - 1
        if denom <= 0:
            return float("inf")
        return self.aic + 2.0 * k * (k + 1) / denom

    @property
    def bic(self) -> float:
        return -2.0 * self.loglik + self.n_params * np.log(max(self.nobs, 1))

    @cached_property
    def differenced(self) -> np.ndarray:
        """The series the ARMA part was estimated on."""
        from covid_arima.models.differencing import difference

        return _readonly(difference(self.series.values, self.order.d))

    def criterion(self, name: str) -> float:
        name = name.lower()
        if name not in ("aic", "aicc", "bic"):
            raise ValueError(f"Unknown information criterion: {name}")
        return float(getattr(self, name))

    def summary(self) -> dict:
        return {
            "order": list(self.order.as_tuple()),
            "ar": [round(c, 6) for c in self.phi],
            "ma": [round(c, 6) for c in self.theta],
            "mean": round(self.mean, 6),
            "sigma2": round(self.sigma2, 6),
            "loglik": round(self.loglik, 4),
            "aic": round(self.aic, 4),
            "aicc": round(self.aicc, 4),
            "bic": round(self.bic, 4),
            "method": self.method,
            "nobs": self.nobs,
        }

    def __str__(self) -> str:
        ar = ", ".join(f"{c:.4f}" for c in self.phi) or "-"
        ma = ", ".join(f"{c:.4f}" for c in self.theta) or "-"
        return (
            f"{self.order}  ar=[{ar}] ma=[{ma}] mean={self.mean:.4f} "
            f"sigma2={self.sigma2:.4f} loglik={self.loglik:.2f} AIC={self.aic:.2f}"
        )


@dataclass(frozen=True, eq=False)
class ForecastResult:
    """Point forecasts and per-level prediction intervals over `horizon` steps."""
    horizon: int
    mean: np.ndarray
    intervals: dict[float, tuple[np.ndarray, np.ndarray]]
    dates: Optional[pd.DatetimeIndex] = None
    method: str = "normal"

    def __post_init__(self) -> None:
        object.__setattr__(self, "mean", _readonly(self.mean))
        object.__setattr__(
            self,
            "intervals",
            {float(c): (_readonly(lo), _readonly(hi)) for c, (lo, hi) in self.intervals.items()},
        )

    def __len__(self) -> int:
        return self.horizon

    @property
    def levels(self) -> list[float]:
        return sorted(self.intervals)

    def lower(self, level: float) -> np.ndarray:
        return self.intervals[float(level)][0]

    def upper(self, level: float) -> np.ndarray:
        return self.intervals[float(level)][1]

    def width(self, level: float) -> np.ndarray:
        lo, hi = self.intervals[float(level)]
        return hi - lo

    def triples(self, level: float) -> list[tuple[float, float, float]]:
        """(point, lower, upper) for each step at one confidence level."""
        lo, hi = self.intervals[float(level)]
        return list(zip(self.mean.tolist(), lo.tolist(), hi.tolist()))

    def to_frame(self) -> pd.DataFrame:
        df = pd.DataFrame({"step": np.arange(1, self.horizon + 1), "forecast": self.mean})
        if self.dates is not None:
            df.insert(1, "date", self.dates)
        for level in self.levels:
            pct = int(round(level * 100))
            lo, hi = self.intervals[level]
            df[f"lower_{pct}"] = lo
            df[f"upper_{pct}"] = hi
        return df


@dataclass(frozen=True, eq=False)
class ResidualSeries:
    """One-step-ahead errors on the differenced series, from index `start` on."""
    values: np.ndarray
    start: int
    order: ModelOrder

    def __post_init__(self) -> None:
        object.__setattr__(self, "values", _readonly(self.values))

    def __len__(self) -> int:
        return len(self.values)

    def to_series(self) -> pd.Series:
        return pd.Series(self.values, index=np.arange(self.start, self.start + len(self.values)))
