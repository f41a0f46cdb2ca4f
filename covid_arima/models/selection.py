"""
selection.py
------------
Automatic ARIMA order selection by bounded grid search.

For every d in [0, max_d] whose differenced series passes a stationarity check,
every (p, q) in [0, max_p] x [0, max_q] is fit and scored with an information
criterion (AIC by default):

    AIC = -2 * loglik + 2 * (p + q + 1)

With css every candidate for a given d conditions on the first max_p
differenced values, so the log-likelihoods share one sample. The winner is then
refit conditioning only on its own p.

The winner minimises the score; ties go to the smaller p + q, then the smaller
d. Candidates that fail to fit are logged and skipped. Only an exhausted grid is
an error (NoFeasibleOrderError).

Each candidate fit is a pure function of the shared read-only series, so the
grid can be spread over a thread pool (`n_jobs`). `time_budget` stops new
candidates from starting once the wall-clock budget is spent.
"""

from __future__ import annotations
import logging
import time
import warnings
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass, field
from itertools import product
from typing import Optional

import numpy as np
import pandas as pd
from statsmodels.tools.sm_exceptions import InterpolationWarning
from statsmodels.tsa.stattools import kpss

from covid_arima.exceptions import ARIMAError, InsufficientLengthError, NoFeasibleOrderError
from covid_arima.models.differencing import difference
from covid_arima.models.estimator import fit_arima
from covid_arima.models.types import FittedModel, ModelOrder, TimeSeries

logger = logging.getLogger(__name__)

STATIONARITY_TESTS = ("kpss", "variance", "none")


@dataclass
class Candidate:
    order: ModelOrder
    model: Optional[FittedModel] = None
    score: float = float("inf")
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.model is not None

    def sort_key(self) -> tuple:
        return (round(self.score, 8), self.order.p + self.order.q, self.order.d)


@dataclass
class SelectionResult:
    """Winning order and model plus every scored candidate."""
    order: ModelOrder
    model: FittedModel
    criterion: str
    admissible_d: list[int]
    candidates: list[Candidate] = field(default_factory=list)

    @property
    def table(self) -> pd.DataFrame:
        rows = [
            {
                "p": c.order.p,
                "d": c.order.d,
                "q": c.order.q,
                self.criterion: c.score if c.ok else np.nan,
                "loglik": c.model.loglik if c.ok else np.nan,
                "sigma2": c.model.sigma2 if c.ok else np.nan,
                "error": c.error or "",
            }
            for c in sorted(self.candidates, key=Candidate.sort_key)
        ]
        table = pd.DataFrame(rows)
        table.index += 1
        return table


# ── Stationarity ──────────────────────────────────────────────────────────────

def _kpss_passes(values: np.ndarray, alpha: float) -> bool:
    if np.var(values) <= 0:
        return False
    with warnings.catch_warnings():
        warnings.simplefilter("ignore", InterpolationWarning)
        # tuple-return deprecation notice; only the p-value is read
        warnings.simplefilter("ignore", FutureWarning)
        try:
            _, pvalue, _, _ = kpss(values, regression="c", nlags="auto")
        except (ValueError, ZeroDivisionError, np.linalg.LinAlgError) as e:
            logger.warning(f"KPSS test failed on {len(values)} values: {e}")
            return False
    return bool(pvalue > alpha)


def admissible_differences(
    series,
    max_d: int,
    test: str = "kpss",
    alpha: float = 0.05,
) -> list[int]:
    """
    Differencing orders in [0, max_d] whose differenced series looks stationary.

    kpss     : KPSS level-stationarity test does not reject at `alpha`
    variance : d = 0 passes when one difference would not lower the variance;
               d >= 1 passes when its variance is below that of d - 1
    none     : every d that leaves at least two observations

    Falls back to [max_d] (with a warning) when nothing passes.
    """
    if test not in STATIONARITY_TESTS:
        raise ValueError(f"Unknown stationarity test {test!r}; expected one of {STATIONARITY_TESTS}")
    values = series.values if isinstance(series, TimeSeries) else np.asarray(series, dtype=float)

    levels = []
    for d in range(max_d + 2):
        if len(values) - d < 2:
            break
        levels.append(difference(values, d))
    if len(levels) <= max_d:
        raise InsufficientLengthError(
            f"Series of length {len(values)} is too short for max_d={max_d}"
        )

    passed = []
    for d in range(max_d + 1):
        w = levels[d]
        if test == "kpss":
            ok = _kpss_passes(w, alpha)
        elif test == "variance":
            if d == 0:
                ok = len(levels) < 2 or np.var(w) <= np.var(levels[1])
            else:
                ok = np.var(w) < np.var(levels[d - 1])
        else:
            ok = True
        logger.debug(f"d={d}: {test} stationarity check {'passed' if ok else 'failed'}")
        if ok:
            passed.append(d)

    if not passed:
        logger.warning(f"No d in [0, {max_d}] passed the {test} check; using d={max_d}")
        passed = [max_d]
    return passed


# ── Grid search ───────────────────────────────────────────────────────────────

def _evaluate(series, order, method, max_iter, criterion, deadline, ncond=0) -> Candidate:
    if deadline is not None and time.monotonic() > deadline:
        return Candidate(order, error="skipped: time budget exhausted")
    try:
        model = fit_arima(series, order, method=method, max_iter=max_iter, ncond=ncond)
        score = model.criterion(criterion)
    except (ARIMAError, np.linalg.LinAlgError) as e:
        logger.debug(f"{order} skipped: {e}")
        return Candidate(order, error=f"{type(e).__name__}: {e}")
    if not np.isfinite(score):
        return Candidate(order, error=f"non-finite {criterion}")
    return Candidate(order, model=model, score=score)


def grid_search(
    series,
    max_p: int = 3,
    max_d: int = 2,
    max_q: int = 3,
    criterion: str = "aic",
    stationarity_test: str = "kpss",
    alpha: float = 0.05,
    method: str = "css",
    max_iter: int = 200,
    n_jobs: int = 1,
    time_budget: Optional[float] = None,
) -> SelectionResult:
    """
    Score every admissible (p, d, q) and return the best along with the full grid.

    Args:
        series            : TimeSeries or array-like on the original scale
        max_p, max_d, max_q : inclusive grid bounds
        criterion         : "aic", "aicc" or "bic"
        stationarity_test : "kpss", "variance" or "none" (see admissible_differences)
        alpha             : KPSS significance level
        method            : estimator likelihood ("css", "ml", "css-ml")
        max_iter          : optimiser iteration budget per fit
        n_jobs            : worker threads (1 = sequential)
        time_budget       : seconds after which no new candidate is started
    """
    if min(max_p, max_d, max_q) < 0:
        raise ValueError("Grid bounds must be non-negative")
    criterion = criterion.lower()
    ts = series if isinstance(series, TimeSeries) else TimeSeries(series)

    d_values = admissible_differences(ts, max_d, test=stationarity_test, alpha=alpha)
    orders = [
        ModelOrder(p, d, q)
        for d, p, q in product(d_values, range(max_p + 1), range(max_q + 1))
    ]
    logger.info(
        f"Order search over {len(orders)} candidates (d in {d_values}, "
        f"p <= {max_p}, q <= {max_q}, criterion={criterion}, method={method})"
    )

    deadline = time.monotonic() + time_budget if time_budget else None
    args = (method, max_iter, criterion, deadline, max_p)
    if n_jobs > 1:
        with ThreadPoolExecutor(max_workers=n_jobs) as pool:
            candidates = list(pool.map(lambda o: _evaluate(ts, o, *args), orders))
    else:
        candidates = [_evaluate(ts, o, *args) for o in orders]

    feasible = [c for c in candidates if c.ok]
    skipped = len(candidates) - len(feasible)
    if skipped:
        logger.info(f"{skipped}/{len(candidates)} candidates failed or were skipped")
    if not feasible:
        raise NoFeasibleOrderError(
            f"None of {len(candidates)} candidate orders could be fit "
            f"(first error: {candidates[0].error if candidates else 'empty grid'})"
        )

    best = min(feasible, key=Candidate.sort_key)
    logger.info(f"Selected {best.order} with {criterion.upper()}={best.score:.3f}")

    model = best.model
    if method == "css" and max_p > best.order.p:
        # scores used the shared max_p conditioning; refit on the winner's own sample
        try:
            model = fit_arima(ts, best.order, method=method, max_iter=max_iter)
        except ARIMAError as e:
            logger.warning(f"Refit of {best.order} failed ({e}); keeping the search estimate")
    return SelectionResult(
        order=best.order,
        model=model,
        criterion=criterion,
        admissible_d=d_values,
        candidates=candidates,
    )


def select_order(series, max_p: int = 3, max_d: int = 2, max_q: int = 3, **kwargs) -> ModelOrder:
    """Best (p, d, q) for `series`; keyword arguments are passed to grid_search."""
    return grid_search(series, max_p=max_p, max_d=max_d, max_q=max_q, **kwargs).order
