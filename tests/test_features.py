"""
test_features.py
----------------
Unit tests for case-count features and data loading.
"""
import numpy as np
import pandas as pd
import pytest
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from covid_arima.features.build_features import (
    build_case_features,
    daily_new_cases,
    rolling_average,
)
from covid_arima.utils.data_loader import load_case_data, to_timeseries
from covid_arima.utils.generate_demo_data import generate_case_data


def make_case_df(confirmed):
    return pd.DataFrame({
        "date": pd.date_range("2020-03-01", periods=len(confirmed), freq="D"),
        "confirmed": confirmed,
    })


class TestNewCases:
    def test_increments(self):
        new = daily_new_cases(pd.Series([0.0, 3.0, 7.0, 7.0, 12.0]))
        assert new.tolist() == [0.0, 3.0, 4.0, 0.0, 5.0]
        assert new.name == "new_cases"

    def test_gaps_are_forward_filled(self):
        new = daily_new_cases(pd.Series([1.0, np.nan, 4.0]))
        assert new.tolist() == [0.0, 0.0, 3.0]

    def test_corrections_kept(self):
        """A downward revision shows up as a negative day."""
        assert daily_new_cases(pd.Series([5.0, 10.0, 8.0])).iloc[-1] == -2.0


class TestRollingAverage:
    def test_window_clamped_at_start(self):
        out = rolling_average(np.arange(1, 9, dtype=float), window=7)
        np.testing.assert_allclose(out.iloc[:3], [1.0, 1.5, 2.0])
        assert out.iloc[6] == pytest.approx(4.0)
        assert out.iloc[7] == pytest.approx(5.0)
        assert out.name == "rolling_mean_7"

    def test_window_one_is_identity(self):
        values = pd.Series([3.0, 1.0, 4.0])
        assert rolling_average(values, 1).tolist() == values.tolist()

    def test_bad_window_raises(self):
        with pytest.raises(ValueError):
            rolling_average([1.0, 2.0], window=0)


class TestBuildFeatures:
    def test_columns_added(self):
        df = make_case_df([0.0, 2.0, 5.0, 9.0])
        out = build_case_features(df, {"features": {"rolling_window": 3}})
        assert {"new_cases", "rolling_mean_3"} <= set(out.columns)
        assert out["new_cases"].tolist() == [0.0, 2.0, 3.0, 4.0]
        assert out["rolling_mean_3"].iloc[-1] == pytest.approx(3.0)

    def test_unsorted_input_is_sorted(self):
        df = make_case_df([0.0, 2.0, 5.0]).iloc[::-1]
        out = build_case_features(df, {"features": {"rolling_window": 7}})
        assert out["date"].is_monotonic_increasing

    def test_to_timeseries_keeps_dates(self):
        out = build_case_features(make_case_df([0.0, 2.0, 5.0]), {"features": {}})
        ts = to_timeseries(out, "new_cases")
        assert ts.name == "new_cases"
        assert len(ts.dates) == 3


class TestDemoData:
    def test_cumulative_counts_never_drop(self):
        df = generate_case_data(n_days=120, seed=0)
        assert len(df) == 120
        assert df["confirmed"].is_monotonic_increasing

    def test_seed_is_reproducible(self):
        a = generate_case_data(n_days=60, seed=5)
        b = generate_case_data(n_days=60, seed=5)
        pd.testing.assert_frame_equal(a, b)

    def test_loader_applies_date_range(self):
        config = {"data": {"source": "demo", "n_demo_days": 60, "seed": 1,
                           "start": "2020-03-01", "end": "2020-03-31"}}
        df = load_case_data(config)
        assert len(df) == 31
        assert df["date"].iloc[-1] == pd.Timestamp("2020-03-31")

    def test_loader_rejects_unknown_source(self):
        with pytest.raises(ValueError):
            load_case_data({"data": {"source": "ftp"}})
