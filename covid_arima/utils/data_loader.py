"""
data_loader.py — Loads cumulative confirmed case counts for one region.
"""
from __future__ import annotations
import logging
from pathlib import Path
import pandas as pd
import yaml

from covid_arima.models.types import TimeSeries
from covid_arima.utils.generate_demo_data import generate_case_data

logger = logging.getLogger(__name__)

ROOT = Path(__file__).resolve().parent.parent.parent
SOURCES = ("demo", "csv", "covid19datahub")


def resolve_path(path: str) -> Path:
    p = Path(path)
    return p if p.is_absolute() else ROOT / p


def load_config(path: str = "configs/default.yaml") -> dict:
    with open(resolve_path(path)) as f:
        return yaml.safe_load(f)


def load_case_data(config: dict) -> pd.DataFrame:
    """Return a date-sorted frame with `date` and cumulative `confirmed` columns."""
    dc = config["data"]
    source = dc.get("source", "demo")
    if source not in SOURCES:
        raise ValueError(f"Unknown data source {source!r}; expected one of {SOURCES}")

    if source == "demo":
        logger.info("Generating demo epidemic data...")
        df = generate_case_data(
            n_days=dc.get("n_demo_days", 400),
            start=dc.get("start") or "2020-03-01",
            seed=dc.get("seed", 42),
        )
    elif source == "csv":
        path = resolve_path(dc["path"])
        logger.info(f"Loading case counts from {path}...")
        df = pd.read_csv(path, parse_dates=["date"])
    else:
        url = dc["url_template"].format(region=dc["region"])
        logger.info(f"Downloading case counts from {url}...")
        df = pd.read_csv(url, parse_dates=["date"])

    missing = {"date", "confirmed"} - set(df.columns)
    if missing:
        raise ValueError(f"Case data is missing column(s): {sorted(missing)}")

    df = df[["date", "confirmed"]].drop_duplicates("date").sort_values("date")
    if dc.get("start"):
        df = df[df["date"] >= pd.Timestamp(dc["start"])]
    if dc.get("end"):
        df = df[df["date"] <= pd.Timestamp(dc["end"])]
    df = df.reset_index(drop=True)

    if df.empty:
        raise ValueError("No case data left after applying the date range")
    logger.info(f"Loaded {len(df)} days: {df['date'].iloc[0].date()} → {df['date'].iloc[-1].date()}")
    return df


def to_timeseries(df: pd.DataFrame, column: str) -> TimeSeries:
    """Wrap one column of a featured frame as a dated TimeSeries."""
    return TimeSeries(df[column].to_numpy(dtype=float), dates=pd.DatetimeIndex(df["date"]), name=column)
