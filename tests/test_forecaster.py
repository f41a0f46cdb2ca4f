"""
test_forecaster.py
------------------
Unit tests for point forecasts and prediction intervals.
"""
import numpy as np
import pandas as pd
import pytest
from scipy import stats

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from covid_arima.exceptions import ARIMAError, InvalidConfidenceLevelError, InvalidModelError
from covid_arima.models.estimator import fit_arima
from covid_arima.models.forecaster import forecast, psi_weights
from covid_arima.models.types import FittedModel, ModelOrder, TimeSeries


def make_model(order, phi=(), theta=(), sigma2=1.0, mean=0.0, values=(1.0, 2.0, 3.0, 4.0), dates=None):
    return FittedModel(
        order=ModelOrder(*order), phi=tuple(phi), theta=tuple(theta), sigma2=sigma2,
        loglik=0.0, mean=mean, series=TimeSeries(values, dates=dates),
    )


class TestPointForecasts:
    def test_ar1_decays_to_mean(self):
        model = make_model((1, 0, 0), phi=(0.5,))
        result = forecast(model, 3)
        np.testing.assert_allclose(result.mean, [2.0, 1.0, 0.5])

    def test_ma1_uses_last_shock(self):
        model = make_model((0, 0, 1), theta=(0.5,), values=(0.0, 0.0, 0.0, 2.0))
        result = forecast(model, 2)
        np.testing.assert_allclose(result.mean, [1.0, 0.0])

    def test_drift_model_integrates(self):
        model = make_model((0, 1, 0), mean=1.0, values=(7.0, 8.0, 9.0, 10.0))
        result = forecast(model, 3)
        np.testing.assert_allclose(result.mean, [11.0, 12.0, 13.0])

    def test_white_noise_forecasts_the_mean(self, ar1_series):
        model = fit_arima(ar1_series, (0, 0, 0))
        result = forecast(model, 5)
        np.testing.assert_allclose(result.mean, np.mean(ar1_series))


class TestIntervals:
    def test_ma1_variances(self):
        model = make_model((0, 0, 1), theta=(0.5,), sigma2=2.0, values=(0.0, 0.0, 0.0, 2.0))
        result = forecast(model, 2, confidence_levels=[0.95])
        z = stats.norm.ppf(0.975)
        np.testing.assert_allclose(result.width(0.95) / (2 * z), np.sqrt([2.0, 2.5]))

    def test_random_walk_standard_error(self, random_walk):
        model = fit_arima(random_walk, (0, 1, 0))
        result = forecast(model, 10, confidence_levels=[0.80])
        z = stats.norm.ppf(0.9)
        expected = 2 * z * np.sqrt(model.sigma2 * np.arange(1, 11))
        np.testing.assert_allclose(result.width(0.80), expected)

    @pytest.mark.parametrize("order", [(1, 0, 0), (1, 1, 0), (0, 1, 1), (2, 1, 1)])
    def test_width_never_shrinks(self, random_walk, order):
        model = fit_arima(random_walk, order)
        result = forecast(model, 20)
        for level in result.levels:
            assert np.all(np.diff(result.width(level)) >= -1e-9)

    def test_wider_level_contains_narrower(self, ar1_series):
        result = forecast(fit_arima(ar1_series, (1, 0, 0)), 5)
        assert np.all(result.lower(0.95) <= result.lower(0.80))
        assert np.all(result.upper(0.80) <= result.upper(0.95))

    def test_triples_bracket_the_forecast(self, ar1_series):
        result = forecast(fit_arima(ar1_series, (1, 0, 0)), 4)
        for point, lo, hi in result.triples(0.80):
            assert lo <= point <= hi

    def test_bootstrap_is_reproducible(self, ar1_series):
        model = fit_arima(ar1_series, (1, 0, 0))
        a = forecast(model, 5, bootstrap=True, n_paths=200, seed=3)
        b = forecast(model, 5, bootstrap=True, n_paths=200, seed=3)
        assert a.method == "bootstrap"
        np.testing.assert_array_equal(a.lower(0.95), b.lower(0.95))
        assert np.all(a.lower(0.95) <= a.upper(0.95))

    @pytest.mark.parametrize("order", [(0, 0, 0), (1, 1, 0)])
    def test_bootstrap_width_never_shrinks(self, random_walk, order):
        series = random_walk if order[1] else np.random.default_rng(1).normal(size=200)
        result = forecast(fit_arima(series, order), 20, confidence_levels=[0.80, 0.95],
                          bootstrap=True, n_paths=1000, seed=1)
        for level in result.levels:
            assert np.all(np.diff(result.width(level)) >= 0)
        assert np.all(result.lower(0.95) <= result.lower(0.80))
        assert np.all(result.upper(0.80) <= result.upper(0.95))

    def test_psi_weights_of_random_walk(self):
        np.testing.assert_allclose(psi_weights([], [], 1, 6), np.ones(6))

    def test_psi_weights_of_ar1(self):
        np.testing.assert_allclose(psi_weights([0.5], [], 0, 4), [1.0, 0.5, 0.25, 0.125])


class TestForecastEdges:
    def test_zero_horizon_is_empty(self, ar1_series):
        result = forecast(fit_arima(ar1_series, (1, 0, 0)), 0)
        assert len(result) == 0
        assert len(result.mean) == 0
        assert result.width(0.95).size == 0

    def test_negative_horizon_raises(self, ar1_series):
        with pytest.raises(ValueError):
            forecast(fit_arima(ar1_series, (1, 0, 0)), -1)

    @pytest.mark.parametrize("level", [1.0, 0.0, 1.5, -0.2])
    def test_bad_confidence_level(self, ar1_series, level):
        model = fit_arima(ar1_series, (1, 0, 0))
        with pytest.raises(InvalidConfidenceLevelError):
            forecast(model, 3, confidence_levels=[0.8, level])

    def test_confidence_level_error_is_a_value_error(self):
        assert issubclass(InvalidConfidenceLevelError, ValueError)
        assert issubclass(InvalidConfidenceLevelError, ARIMAError)

    def test_missing_model(self):
        with pytest.raises(InvalidModelError):
            forecast(None, 3)

    def test_coefficient_mismatch(self):
        with pytest.raises(InvalidModelError):
            forecast(make_model((2, 0, 0), phi=(0.5,)), 3)

    def test_non_positive_variance(self):
        with pytest.raises(InvalidModelError):
            forecast(make_model((1, 0, 0), phi=(0.5,), sigma2=0.0), 3)

    def test_dates_continue_daily(self):
        dates = pd.date_range("2021-01-01", periods=4, freq="D")
        result = forecast(make_model((1, 0, 0), phi=(0.5,), dates=dates), 2)
        assert list(result.dates) == [pd.Timestamp("2021-01-05"), pd.Timestamp("2021-01-06")]

    def test_to_frame_columns(self):
        dates = pd.date_range("2021-01-01", periods=4, freq="D")
        frame = forecast(make_model((1, 0, 0), phi=(0.5,), dates=dates), 3).to_frame()
        assert list(frame.columns) == [
            "step", "date", "forecast", "lower_80", "upper_80", "lower_95", "upper_95",
        ]
        assert frame["step"].tolist() == [1, 2, 3]
