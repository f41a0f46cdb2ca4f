"""
pipeline.py
-----------
Master pipeline: case data → features → order search → diagnostics → forecast → backtest.

For each target series (daily new cases and its rolling mean by default):
  - auto-ARIMA order search, exact-likelihood refit of the winner
  - residual ACF and Ljung-Box check
  - h-step forecast with prediction intervals
  - rolling-origin backtest against mean and drift baselines

Usage:
    covid-arima --config configs/default.yaml
    covid-arima --region BEL --start 2020-03-01 --horizon 31 --levels 0.8 0.95

Exit codes: 0 success, 1 modelling error, 2 bad configuration or input.
"""

from __future__ import annotations
import argparse
import json
import logging
import sys
from pathlib import Path

import pandas as pd
import yaml

from covid_arima.evaluation.backtest import compare_models, rolling_origin_backtest
from covid_arima.exceptions import ARIMAError
from covid_arima.features.build_features import build_case_features
from covid_arima.models.arima_model import ARIMAForecaster, build_baselines, clip_non_negative
from covid_arima.models.diagnostics import check_residuals, fitted_values
from covid_arima.models.types import TimeSeries
from covid_arima.reporting.plots import plot_acf, plot_fitted, plot_forecast, plot_series
from covid_arima.utils.data_loader import load_case_data, load_config, resolve_path, to_timeseries

logger = logging.getLogger(__name__)


def _records(df: pd.DataFrame) -> list[dict]:
    df = df.round(3)
    if "date" in df.columns:
        df["date"] = df["date"].dt.strftime("%Y-%m-%d")
    return df.to_dict(orient="records")


def analyse_target(series: TimeSeries, config: dict, out_dir: Path) -> dict:
    """Select, fit, diagnose, forecast and backtest one series; write its artefacts."""
    fc_cfg = config["forecast"]
    ev_cfg = config["evaluation"]
    horizon = fc_cfg["horizon"]
    name = series.name

    forecaster = ARIMAForecaster.from_config(config).fit(series)
    model = forecaster.model_
    forecaster.selection_.table.to_csv(out_dir / f"{name}_order_search.csv")

    report = check_residuals(model, max_lag=ev_cfg.get("acf_max_lag", 20))

    result = forecaster.predict(horizon)
    if fc_cfg.get("clip_at_zero", True):
        result = clip_non_negative(result)
    result.to_frame().to_csv(out_dir / f"{name}_forecast.csv", index=False)

    observed = series.to_series()
    plot_fitted(observed, fitted_values(model), title=f"{name}: observed vs {model.order}").write_html(
        out_dir / f"{name}_fitted.html")
    plot_acf(report.acf, report.band, title=f"{name}: residual ACF").write_html(
        out_dir / f"{name}_acf.html")
    plot_forecast(observed, result, title=f"{name}: {horizon}-day forecast").write_html(
        out_dir / f"{name}_forecast.html")

    leaderboard = None
    n_splits = ev_cfg.get("backtest_windows", 0)
    if n_splits:
        contenders = {"Auto-ARIMA": ARIMAForecaster.from_config(config), **build_baselines(config)}
        backtests = []
        for label, model_fn in contenders.items():
            logger.info(f"\n▶ Backtesting {label} on {name}")
            try:
                backtests.append(rolling_origin_backtest(
                    series, model_fn, label,
                    horizon=ev_cfg.get("backtest_horizon", horizon),
                    n_splits=n_splits,
                    min_train_size=ev_cfg["min_train_days"],
                    level=max(result.levels) if result.levels else 0.95,
                ))
            except ValueError as e:
                logger.warning(f"Skipping backtest for {label}: {e}")
        if backtests:
            leaderboard = compare_models(backtests)
            leaderboard.to_csv(out_dir / f"{name}_leaderboard.csv", index=False)

    return {
        "model": model.summary(),
        "candidates_tried": len(forecaster.selection_.candidates),
        "admissible_d": forecaster.selection_.admissible_d,
        "diagnostics": report.summary(),
        "forecast": _records(result.to_frame()),
        "leaderboard": None if leaderboard is None else leaderboard.to_dict(orient="records"),
    }


def run_pipeline(config: dict) -> dict:
    out_dir = resolve_path(config["evaluation"]["output_dir"])
    out_dir.mkdir(parents=True, exist_ok=True)

    # ── 1. Data ───────────────────────────────────────────────────────────────
    logger.info("=" * 60)
    logger.info("STEP 1/3 — Loading case data")
    logger.info("=" * 60)
    cases = load_case_data(config)

    # ── 2. Features ───────────────────────────────────────────────────────────
    logger.info("=" * 60)
    logger.info("STEP 2/3 — Feature engineering")
    logger.info("=" * 60)
    featured = build_case_features(cases, config)
    targets = config["features"]["targets"]
    unknown = [t for t in targets if t not in featured.columns]
    if unknown:
        raise ValueError(f"Unknown target column(s) {unknown}; have {list(featured.columns)}")
    plot_series(featured, targets).write_html(out_dir / "series.html")

    # ── 3. Model each target ──────────────────────────────────────────────────
    logger.info("=" * 60)
    logger.info("STEP 3/3 — ARIMA modelling")
    logger.info("=" * 60)
    summary = {"region": config["data"].get("region"), "targets": {}}
    for target in targets:
        logger.info(f"\n▶ {target}")
        summary["targets"][target] = analyse_target(to_timeseries(featured, target), config, out_dir)

    with open(out_dir / "summary.json", "w") as f:
        json.dump(summary, f, indent=2, default=str)
    return summary


def print_summary(summary: dict, out_dir: str) -> None:
    for target, info in summary["targets"].items():
        m = info["model"]
        p, d, q = m["order"]
        print("\n" + "=" * 60)
        print(f"📈  {target}: ARIMA({p},{d},{q})")
        print("=" * 60)
        print(f"AR: {m['ar']}  MA: {m['ma']}  mean: {m['mean']}  sigma2: {m['sigma2']}")
        print(f"loglik: {m['loglik']}  AIC: {m['aic']}  BIC: {m['bic']}  ({m['method']})")
        diag = info["diagnostics"]
        print(f"Residuals white: {diag['looks_white']} "
              f"(Ljung-Box p={diag['ljung_box_pvalue']}, "
              f"{diag['lags_outside_band']} lags outside ±{diag['band']})")
        print(pd.DataFrame(info["forecast"]).to_string(index=False))
        if info["leaderboard"]:
            print("\n🏆  Backtest leaderboard")
            print(pd.DataFrame(info["leaderboard"]).to_string(index=False))
    print(f"\n✅ Outputs → {out_dir}/")


def apply_overrides(config: dict, args: argparse.Namespace) -> dict:
    if args.region:
        config["data"]["region"] = args.region
    if args.start:
        config["data"]["start"] = args.start
    if args.end:
        config["data"]["end"] = args.end
    if args.source:
        config["data"]["source"] = args.source
    if args.horizon is not None:
        config["forecast"]["horizon"] = args.horizon
    if args.levels:
        config["forecast"]["confidence_levels"] = args.levels
    if args.targets:
        config["features"]["targets"] = args.targets
    if args.output_dir:
        config["evaluation"]["output_dir"] = args.output_dir
    return config


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="COVID-19 case forecasting with auto-ARIMA")
    parser.add_argument("--config", default="configs/default.yaml", help="Config YAML path")
    parser.add_argument("--source", choices=["demo", "csv", "covid19datahub"])
    parser.add_argument("--region", help="ISO3 region code, e.g. BEL")
    parser.add_argument("--start", help="First date (YYYY-MM-DD)")
    parser.add_argument("--end", help="Last date (YYYY-MM-DD)")
    parser.add_argument("--horizon", type=int, help="Forecast horizon in days")
    parser.add_argument("--levels", type=float, nargs="+", help="Confidence levels, e.g. 0.8 0.95")
    parser.add_argument("--targets", nargs="+", help="Columns to model, e.g. new_cases rolling_mean_7")
    parser.add_argument("--output-dir", help="Where to write forecasts and figures")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        config = apply_overrides(load_config(args.config), args)
    except (OSError, yaml.YAMLError, KeyError) as e:
        print(f"Bad configuration: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=config.get("logging", {}).get("level", "INFO"),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    try:
        summary = run_pipeline(config)
    except ARIMAError as e:
        logger.error(f"Modelling failed: {type(e).__name__}: {e}")
        return 1
    except (ValueError, KeyError, OSError) as e:
        logger.error(f"Bad input: {e}")
        return 2

    print_summary(summary, config["evaluation"]["output_dir"])
    return 0


if __name__ == "__main__":
    sys.exit(main())
