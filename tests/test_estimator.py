"""
test_estimator.py
-----------------
Unit tests for ARMA likelihood estimation.
"""
import numpy as np
import pytest

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from conftest import simulate_arma
from covid_arima.exceptions import InsufficientLengthError, NumericalDivergenceError
from covid_arima.models.estimator import (
    _exact_loglik, _inverse_levinson, _levinson,
    fit, fit_arima, is_invertible, is_stationary, one_step_errors,
)
from covid_arima.models.types import FittedModel, ModelOrder, TimeSeries


class TestWhiteNoiseModel:
    def test_degenerate_fit_returns_sample_variance(self):
        x = simulate_arma(n=200, sigma=2.0, mean=5.0, seed=3)
        model = fit(x, 0, 0)
        assert model.phi == ()
        assert model.theta == ()
        assert model.sigma2 == pytest.approx(np.var(x))
        assert model.mean == pytest.approx(np.mean(x))

    def test_degenerate_loglik(self):
        x = np.array([1.0, 2.0, 3.0, 4.0])
        model = fit(x, 0, 0)
        n, s2 = len(x), np.var(x)
        assert model.loglik == pytest.approx(-0.5 * n * (np.log(2 * np.pi * s2) + 1))
        assert model.aic == pytest.approx(-2 * model.loglik + 2)

    def test_constant_series_raises(self):
        with pytest.raises(NumericalDivergenceError):
            fit(np.full(20, 3.0), 0, 0)


class TestParameterRecovery:
    def test_ar1(self, ar1_series):
        model = fit(ar1_series, 1, 0)
        assert model.phi[0] == pytest.approx(0.6, abs=0.1)
        assert model.sigma2 == pytest.approx(1.0, abs=0.2)

    def test_ma1(self):
        x = simulate_arma(theta=(0.5,), n=600, seed=4)
        model = fit(x, 0, 1)
        assert model.theta[0] == pytest.approx(0.5, abs=0.1)

    @pytest.mark.parametrize("method", ["ml", "css-ml"])
    def test_exact_likelihood_agrees_with_css(self, ar1_series, method):
        css = fit(ar1_series, 1, 0, method="css")
        other = fit(ar1_series, 1, 0, method=method)
        assert other.phi[0] == pytest.approx(css.phi[0], abs=0.05)
        assert other.method == method

    def test_arma11_is_stationary_and_invertible(self):
        x = simulate_arma(phi=(0.5,), theta=(0.3,), n=600, seed=5)
        model = fit(x, 1, 1)
        assert is_stationary(model.phi)
        assert is_invertible(model.theta)

    def test_nested_model_fits_at_least_as_well(self):
        x = simulate_arma(phi=(0.5,), theta=(0.4,), n=500, seed=6)
        ar = fit(x, 1, 0)
        arma = fit(x, 1, 1)
        assert arma.loglik >= ar.loglik - 1e-3

    def test_near_unit_root_stays_stationary(self):
        x = simulate_arma(phi=(0.99,), n=300, seed=7)
        model = fit(x, 1, 0)
        assert is_stationary(model.phi)


class TestLikelihoods:
    def test_exact_ar1_matches_closed_form(self):
        rng = np.random.default_rng(8)
        x = rng.normal(size=50)
        phi = 0.5
        v = x[1:] - phi * x[:-1]
        n = len(x)
        sigma2 = (x[0] ** 2 * (1 - phi ** 2) + np.sum(v ** 2)) / n
        expected = -0.5 * (n * (np.log(2 * np.pi * sigma2) + 1) + np.log(1 / (1 - phi ** 2)))
        loglik, s2, nobs = _exact_loglik(x, [phi], [])
        assert loglik == pytest.approx(expected)
        assert s2 == pytest.approx(sigma2)
        assert nobs == n

    def test_one_step_errors_recover_shocks(self):
        rng = np.random.default_rng(9)
        e = rng.normal(size=100)
        x = np.zeros(100)
        for t in range(100):
            x[t] = e[t] + (0.4 * e[t - 1] if t else 0.0)
        np.testing.assert_allclose(one_step_errors(x, [], [0.4]), e, atol=1e-10)

    def test_shared_conditioning_fixes_the_sample(self):
        x = simulate_arma(n=120, seed=12)
        for p in range(4):
            assert fit(x, p, 0).nobs == 120 - p
            assert fit_arima(x, (p, 0, 0), ncond=3).nobs == 117

    def test_white_noise_conditioning_matches_sample_variance(self):
        x = simulate_arma(n=50, mean=2.0, seed=13)
        model = fit_arima(x, (0, 0, 0), ncond=5)
        tail = x[5:] - np.mean(x)
        assert model.sigma2 == pytest.approx(np.mean(tail ** 2))
        assert model.mean == pytest.approx(np.mean(x))

    def test_one_step_errors_condition_on_first_p(self):
        x = np.arange(10, dtype=float)
        assert len(one_step_errors(x, [0.5, 0.1], [])) == 8


class TestPolynomials:
    def test_levinson_round_trip(self):
        pacf = np.array([0.5, -0.3, 0.2])
        np.testing.assert_allclose(_inverse_levinson(_levinson(pacf)), pacf, atol=1e-12)

    def test_stationarity_checks(self):
        assert is_stationary([0.5])
        assert not is_stationary([1.2])
        assert not is_stationary([1.0])
        assert is_stationary([])
        assert is_invertible([0.5])
        assert not is_invertible([-1.0])


class TestFitArima:
    def test_records_full_order(self, random_walk):
        model = fit_arima(random_walk, (1, 1, 0))
        assert isinstance(model, FittedModel)
        assert model.order == ModelOrder(1, 1, 0)
        assert len(model.differenced) == len(random_walk) - 1
        assert model.nobs == len(random_walk) - 2  # css conditions on the first AR lag

    def test_series_is_referenced_not_copied(self):
        ts = TimeSeries(np.arange(30, dtype=float) ** 1.5)
        model = fit_arima(ts, (0, 1, 0))
        assert model.series is ts

    def test_example_series(self, example_series):
        model = fit_arima(example_series, (1, 1, 0))
        assert len(model.phi) == 1
        assert np.isfinite(model.aic)

    def test_too_short_raises(self):
        with pytest.raises(InsufficientLengthError):
            fit([1.0, 2.0, 3.0], 2, 0)

    def test_unknown_method_raises(self, ar1_series):
        with pytest.raises(ValueError):
            fit(ar1_series, 1, 0, method="yule")

    def test_negative_order_rejected(self):
        with pytest.raises(ValueError):
            ModelOrder(-1, 0, 0)
