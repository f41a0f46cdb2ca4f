"""
build_features.py
-----------------
Turns cumulative confirmed counts into the series that get modelled.

- new_cases        : first differences of the cumulative count, 0 on day one
- rolling_mean_{w} : trailing w-day mean of new_cases; near the start the
                     window is clamped to the days available, so day i averages
                     days max(0, i - w + 1) .. i
"""

from __future__ import annotations
import logging

import numpy as np
import pandas as pd

logger = logging.getLogger(__name__)


def daily_new_cases(cumulative: pd.Series) -> pd.Series:
    """
    Daily increments of a cumulative count.

    Gaps are forward-filled before differencing. Negative increments (data
    corrections) are kept as reported.
    """
    filled = cumulative.astype(float).ffill().fillna(0.0)
    new = filled.diff()
    new.iloc[:1] = 0.0
    return new.rename("new_cases")


def rolling_average(values, window: int = 7) -> pd.Series:
    """Trailing moving average whose window is clamped at the series start."""
    if window < 1:
        raise ValueError(f"window must be >= 1, got {window}")
    s = values if isinstance(values, pd.Series) else pd.Series(np.asarray(values, dtype=float))
    return s.rolling(window, min_periods=1).mean().rename(f"rolling_mean_{window}")


def build_case_features(df: pd.DataFrame, config: dict) -> pd.DataFrame:
    """
    Add new_cases and the rolling mean to a (date, confirmed) frame.

    Args:
        df     : frame with `date` and cumulative `confirmed` columns
        config : full config; reads features.rolling_window
    """
    window = config.get("features", {}).get("rolling_window", 7)
    logger.info(f"Building case features (rolling window={window})")
    df = df.sort_values("date").reset_index(drop=True).copy()
    df["new_cases"] = daily_new_cases(df["confirmed"]).values
    df[f"rolling_mean_{window}"] = rolling_average(df["new_cases"], window).values
    return df
