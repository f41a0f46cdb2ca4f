"""
dashboard.py
------------
Interactive Streamlit dashboard for COVID-19 case forecasting.

Launch:
    streamlit run app/dashboard.py
"""

import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

import pandas as pd
import streamlit as st

from covid_arima.exceptions import ARIMAError
from covid_arima.features.build_features import build_case_features
from covid_arima.models.arima_model import ARIMAForecaster, clip_non_negative
from covid_arima.models.diagnostics import check_residuals, fitted_values
from covid_arima.reporting.plots import plot_acf, plot_fitted, plot_forecast, plot_series
from covid_arima.utils.data_loader import load_case_data, load_config, to_timeseries

# ── Page Config ───────────────────────────────────────────────────────────────
st.set_page_config(
    page_title="COVID-19 ARIMA Forecasts",
    page_icon="🦠",
    layout="wide",
    initial_sidebar_state="expanded",
)


# ── Helper Functions ──────────────────────────────────────────────────────────

@st.cache_data(show_spinner=False)
def load_cases(source: str, region: str, start: str, end: str) -> pd.DataFrame:
    cfg = load_config()
    cfg["data"].update(source=source, region=region, start=start, end=end or None)
    return build_case_features(load_case_data(cfg), cfg)


@st.cache_resource(show_spinner=False)
def fit_model(target: str, values: tuple, dates: tuple, max_p: int, max_d: int, max_q: int,
              criterion: str, levels: tuple):
    cfg = load_config()
    df = pd.DataFrame({"date": pd.to_datetime(list(dates)), target: list(values)})
    forecaster = ARIMAForecaster.from_config(
        cfg, max_p=max_p, max_d=max_d, max_q=max_q, criterion=criterion, confidence_levels=levels,
    )
    return forecaster.fit(to_timeseries(df, target))


# ═══════════════════════════════════════════════════════════════════════════════
# SIDEBAR
# ═══════════════════════════════════════════════════════════════════════════════
cfg = load_config()
with st.sidebar:
    st.markdown("## 🦠 Case Forecasting")
    st.caption("Auto-ARIMA on daily confirmed cases")
    st.markdown("---")
    source = st.selectbox("Data source", ["demo", "csv", "covid19datahub"],
                          index=["demo", "csv", "covid19datahub"].index(cfg["data"]["source"]))
    region = st.text_input("Region (ISO3)", cfg["data"]["region"])
    start = st.text_input("Start date", cfg["data"]["start"] or "")
    end = st.text_input("End date", cfg["data"]["end"] or "")
    target = st.selectbox("Series", cfg["features"]["targets"])
    horizon = st.slider("Horizon (days)", 7, 60, cfg["forecast"]["horizon"])
    levels = st.multiselect("Interval levels", [0.5, 0.8, 0.9, 0.95, 0.99],
                            default=cfg["forecast"]["confidence_levels"])
    st.markdown("---")
    max_p = st.slider("max p", 0, 5, cfg["model"]["max_p"])
    max_d = st.slider("max d", 0, 2, cfg["model"]["max_d"])
    max_q = st.slider("max q", 0, 5, cfg["model"]["max_q"])
    criterion = st.radio("Criterion", ["aic", "aicc", "bic"], horizontal=True)

# ═══════════════════════════════════════════════════════════════════════════════
# MAIN
# ═══════════════════════════════════════════════════════════════════════════════
st.markdown("# COVID-19 Case Forecasts")

try:
    cases = load_cases(source, region, start, end)
except (OSError, ValueError) as e:
    st.error(f"Could not load case data: {e}")
    st.stop()

with st.spinner("Searching ARIMA orders…"):
    try:
        forecaster = fit_model(target, tuple(cases[target]), tuple(cases["date"]),
                               max_p, max_d, max_q, criterion, tuple(levels or [0.95]))
    except ARIMAError as e:
        st.error(f"{type(e).__name__}: {e}")
        st.stop()

model = forecaster.model_
series = to_timeseries(cases, target)
result = clip_non_negative(forecaster.predict(horizon))
report = check_residuals(model, max_lag=cfg["evaluation"]["acf_max_lag"])

k1, k2, k3, k4 = st.columns(4)
k1.metric("Model", str(model.order))
k2.metric(criterion.upper(), f"{model.criterion(criterion):.1f}")
k3.metric("σ²", f"{model.sigma2:.1f}")
k4.metric("Residuals white", "yes" if report.looks_white() else "no")

tab1, tab2, tab3, tab4 = st.tabs(["📈 Forecast", "🔍 Fit", "🎯 Residuals", "📊 Order search"])

with tab1:
    st.plotly_chart(plot_forecast(series.to_series(), result, title=f"{target}: {horizon}-day forecast"),
                    use_container_width=True)
    with st.expander("📄 Forecast table"):
        tbl = result.to_frame()
        tbl["date"] = tbl["date"].dt.strftime("%Y-%m-%d")
        st.dataframe(tbl.round(1), use_container_width=True, hide_index=True)

with tab2:
    st.plotly_chart(plot_fitted(series.to_series(), fitted_values(model)), use_container_width=True)
    st.plotly_chart(plot_series(cases, cfg["features"]["targets"]), use_container_width=True)
    st.json(model.summary())

with tab3:
    st.plotly_chart(plot_acf(report.acf, report.band), use_container_width=True)
    st.json(report.summary())

with tab4:
    st.dataframe(forecaster.selection_.table, use_container_width=True)
