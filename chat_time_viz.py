"""Charts for the tables written by ``chat_time_summary.py --export-dir``.

Usage:
    python chat_time_viz.py [chat_time]
"""

from __future__ import annotations

import os
import sys

import matplotlib

matplotlib.use("Agg")

import matplotlib.pyplot as plt
import pandas as pd
import seaborn as sns


def load_daily_frame(input_dir: str) -> pd.DataFrame:
    """Read daily_time.csv and fill inactive days with zero minutes.

    Returns:
        DataFrame indexed by calendar day with ``minutes``, ``sessions``
        and the 7-day/28-day rolling averages of minutes.
    """
    df = pd.read_csv(os.path.join(input_dir, "daily_time.csv"), parse_dates=["date"])
    df = df.set_index("date").sort_index()
    if not df.empty:
        full_range = pd.date_range(df.index.min(), df.index.max(), freq="D")
        df = df.reindex(full_range, fill_value=0)
        df.index.name = "date"
    df["minutes_7_day_avg"] = df["minutes"].rolling(window=7, min_periods=1).mean()
    df["minutes_28_day_avg"] = df["minutes"].rolling(window=28, min_periods=1).mean()
    return df


def plot_daily_minutes(df: pd.DataFrame, output_path: str) -> None:
    plt.figure(figsize=(15, 8))
    plt.bar(df.index, df["minutes"], alpha=0.5, color="skyblue", label="Daily Minutes")
    plt.plot(df.index, df["minutes_7_day_avg"], color="red", linewidth=2, label="7-day Average")
    plt.plot(df.index, df["minutes_28_day_avg"], color="green", linewidth=2, label="28-day Average")
    plt.title("Minutes Chatting per Day with Rolling Averages", fontsize=14, pad=20)
    plt.xlabel("Date", fontsize=12)
    plt.ylabel("Minutes", fontsize=12)
    plt.legend()
    plt.xticks(rotation=45)
    plt.tight_layout()
    plt.savefig(output_path, dpi=150, bbox_inches="tight")
    plt.close()


def plot_monthly_minutes(input_dir: str, output_path: str) -> None:
    df = pd.read_csv(os.path.join(input_dir, "monthly_time.csv"), dtype={"month": str})
    plt.figure(figsize=(15, 8))
    sns.barplot(data=df, x="month", y="minutes", color="lightcoral")
    plt.title("Minutes Chatting per Month", fontsize=14, pad=20)
    plt.xlabel("Month", fontsize=12)
    plt.ylabel("Minutes", fontsize=12)
    plt.xticks(rotation=45)
    plt.tight_layout()
    plt.savefig(output_path, dpi=150, bbox_inches="tight")
    plt.close()


def create_charts(input_dir: str = "chat_time") -> list[str]:
    """Render daily and monthly charts next to the CSV tables.

    Returns:
        Paths of the written PNG files.
    """
    sns.set_theme(style="whitegrid")
    daily_path = os.path.join(input_dir, "daily_minutes.png")
    monthly_path = os.path.join(input_dir, "monthly_minutes.png")
    plot_daily_minutes(load_daily_frame(input_dir), daily_path)
    plot_monthly_minutes(input_dir, monthly_path)
    return [daily_path, monthly_path]


if __name__ == "__main__":
    paths = create_charts(sys.argv[1] if len(sys.argv) > 1 else "chat_time")
    print("Visualizations have been saved as " + ", ".join(f"'{p}'" for p in paths))
