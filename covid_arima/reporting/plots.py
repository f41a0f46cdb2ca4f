"""
plots.py
--------
Plotly figures for case series, model fit, residual ACF and forecasts.

Figures are returned, not shown: the pipeline writes them to HTML and the
Streamlit dashboard renders them inline.
"""

from __future__ import annotations
from typing import Optional

import numpy as np
import pandas as pd
import plotly.graph_objects as go

from covid_arima.models.types import ForecastResult

COLORS = {
    "observed": "#4fc3f7",
    "fitted": "#ef5350",
    "forecast": "#ffb74d",
    "band": "rgba(255,183,77,{alpha})",
    "acf": "#81c784",
}


def plot_base(height=420, y_title="Cases"):
    return dict(
        template="plotly_dark", paper_bgcolor="#0e1117", plot_bgcolor="#0e1117",
        height=height, margin=dict(l=20, r=20, t=45, b=20),
        legend=dict(orientation="h", yanchor="bottom", y=1.02),
        xaxis=dict(showgrid=True, gridcolor="#1e2130"),
        yaxis=dict(showgrid=True, gridcolor="#1e2130", title=y_title),
    )


def plot_series(df: pd.DataFrame, columns: list[str], title: str = "Daily cases") -> go.Figure:
    fig = go.Figure()
    for col in columns:
        fig.add_trace(go.Scatter(x=df["date"], y=df[col], mode="lines", name=col))
    fig.update_layout(title=title, **plot_base())
    return fig


def plot_fitted(observed: pd.Series, fitted: pd.Series, title: str = "Observed vs fitted") -> go.Figure:
    fig = go.Figure()
    fig.add_trace(go.Scatter(x=observed.index, y=observed.values, mode="lines", name="observed",
                             line=dict(color=COLORS["observed"], width=2)))
    fig.add_trace(go.Scatter(x=fitted.index, y=fitted.values, mode="lines", name="fitted",
                             line=dict(color=COLORS["fitted"], width=1.5)))
    fig.update_layout(title=title, **plot_base())
    return fig


def plot_acf(acf: list[tuple[int, float]], band: float, title: str = "Residual ACF") -> go.Figure:
    lags = [lag for lag, _ in acf]
    rho = [r for _, r in acf]
    fig = go.Figure()
    fig.add_trace(go.Bar(x=lags, y=rho, marker_color=COLORS["acf"], name="ACF"))
    for y in (band, -band):
        fig.add_hline(y=y, line_dash="dash", line_color="#546e7a")
    fig.update_layout(title=title, **{**plot_base(320, "ρ(h)"),
                                     "xaxis": dict(showgrid=True, gridcolor="#1e2130", title="Lag")})
    return fig


def plot_forecast(
    history: pd.Series,
    result: ForecastResult,
    history_days: Optional[int] = 120,
    title: str = "Forecast",
) -> go.Figure:
    """History line plus a fan of prediction intervals, widest level first."""
    shown = history.tail(history_days) if history_days else history
    if result.dates is not None:
        x = list(result.dates)
    else:
        x = list(np.arange(len(history), len(history) + result.horizon))

    fig = go.Figure()
    fig.add_trace(go.Scatter(x=shown.index, y=shown.values, mode="lines", name="observed",
                             line=dict(color=COLORS["observed"], width=2)))
    for i, level in enumerate(sorted(result.levels, reverse=True)):
        lo, hi = result.intervals[level]
        fig.add_trace(go.Scatter(
            x=x + x[::-1], y=list(hi) + list(lo[::-1]), fill="toself",
            fillcolor=COLORS["band"].format(alpha=0.12 + 0.1 * i),
            line=dict(color="rgba(0,0,0,0)"), hoverinfo="skip",
            name=f"{level:.0%} interval",
        ))
    fig.add_trace(go.Scatter(x=x, y=result.mean, mode="lines+markers", name="forecast",
                             line=dict(color=COLORS["forecast"], width=2.5, dash="dash"),
                             marker=dict(size=4)))
    fig.update_layout(title=title, **plot_base(460))
    return fig
