"""Core time-spent analytics for WhatsApp chat exports.

Groups parsed messages into conversational sessions, apportions each
session's duration across calendar days, and folds the result into daily,
monthly and overall totals.
Used by both the CLI (chat_time_summary.py) and the web dashboard (app.py).
"""

from __future__ import annotations

import csv
import json
import logging
import os
from dataclasses import dataclass
from datetime import datetime, time, timedelta
from enum import Enum
from typing import Any, Iterable

from chat_parsing import DateOrder, Message, ParsedChat, load_chat_lines, parse_chat

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------
DEFAULT_GAP_MINUTES = 5
_ONE_MS = timedelta(milliseconds=1)
_MS_PER_MINUTE = 60_000


class CountBy(str, Enum):
    """How a session is attributed to day/month counters."""

    START = "start"
    PRESENCE = "presence"


@dataclass(frozen=True)
class ReportConfig:
    gap_minutes: int = DEFAULT_GAP_MINUTES
    date_order: DateOrder | None = None
    count_by: CountBy = CountBy.START


def resolve_gap_minutes(value: object) -> int:
    """Coerce a raw gap setting to a non-negative int.

    Args:
        value: Anything taken from argv or the environment (str, int, None).

    Returns:
        The gap in minutes, or ``DEFAULT_GAP_MINUTES`` when *value* is
        missing, not an integer, or negative.
    """
    if value is None or value == "":
        return DEFAULT_GAP_MINUTES
    try:
        gap = int(str(value).strip())
    except ValueError:
        logger.warning("Invalid gap %r, falling back to %d minutes", value, DEFAULT_GAP_MINUTES)
        return DEFAULT_GAP_MINUTES
    if gap < 0:
        logger.warning("Negative gap %d, falling back to %d minutes", gap, DEFAULT_GAP_MINUTES)
        return DEFAULT_GAP_MINUTES
    return gap


def resolve_count_by(value: object) -> CountBy:
    """Map a raw counting-policy name to ``CountBy``; anything unknown is START."""
    if isinstance(value, CountBy):
        return value
    name = str(value or "").strip().lower()
    if name == CountBy.PRESENCE.value:
        return CountBy.PRESENCE
    if name and name != CountBy.START.value:
        logger.warning("Unknown counting policy %r, using 'start'", value)
    return CountBy.START


def resolve_date_order(value: object) -> DateOrder | None:
    """Map "mdy"/"dmy" (any case) to ``DateOrder``; anything else means auto-detect."""
    if isinstance(value, DateOrder):
        return value
    name = str(value or "").strip().lower()
    if not name or name == "auto":
        return None
    try:
        return DateOrder(name)
    except ValueError:
        logger.warning("Unknown date order %r, detecting it from the file", value)
        return None


# ---------------------------------------------------------------------------
# Sessions
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Session:
    start: datetime
    end: datetime
    message_count: int

    @property
    def duration_ms(self) -> int:
        return (self.end - self.start) // _ONE_MS


@dataclass(frozen=True)
class DaySlice:
    day: str
    duration_ms: int


def group_sessions(messages: list[Message], gap_minutes: int) -> list[Session]:
    """Split time-sorted messages into sessions of continuous activity.

    A message joins the current session when it arrives strictly less than
    *gap_minutes* after the previous message; a gap equal to the threshold
    starts a new session.  With a threshold of 0 only messages sharing the
    exact same timestamp are merged.

    Args:
        messages: Messages sorted ascending by timestamp (as returned by
            ``chat_parsing.parse_chat``).
        gap_minutes: Inactivity threshold in minutes, >= 0.

    Returns:
        Sessions in chronological order.  Empty when *messages* is empty.
    """
    if not messages:
        return []

    threshold = timedelta(minutes=gap_minutes)
    sessions: list[Session] = []
    start = end = messages[0].timestamp
    count = 1
    for prev, msg in zip(messages, messages[1:]):
        delta = msg.timestamp - prev.timestamp
        if delta < threshold or not delta:
            end = msg.timestamp
            count += 1
        else:
            sessions.append(Session(start, end, count))
            start = end = msg.timestamp
            count = 1
    sessions.append(Session(start, end, count))
    return sessions


def day_key(ts: datetime) -> str:
    return ts.date().isoformat()


def month_key(ts: datetime) -> str:
    return ts.date().isoformat()[:7]


def split_session_by_day(session: Session) -> list[DaySlice]:
    """Apportion a session's duration across the calendar days it touches.

    Args:
        session: The session to split.

    Returns:
        One slice per calendar day from the start day to the end day, in
        order.  Slice durations are integer milliseconds summing exactly
        to ``session.end - session.start``.  A zero-length session yields
        a single zero slice on its start day.
    """
    if session.start == session.end:
        return [DaySlice(day_key(session.start), 0)]

    slices: list[DaySlice] = []
    cursor = session.start
    while cursor < session.end:
        next_midnight = datetime.combine(cursor.date() + timedelta(days=1), time())
        slice_end = min(session.end, next_midnight)
        slices.append(DaySlice(day_key(cursor), (slice_end - cursor) // _ONE_MS))
        cursor = slice_end
    return slices


# ---------------------------------------------------------------------------
# Aggregation
# ---------------------------------------------------------------------------

def _init_period_bucket() -> dict:
    """Create a fresh day/month accumulator dict."""
    return {"sessions": 0, "duration_ms": 0}


def _bump(buckets: dict[str, dict], key: str, *, sessions: int = 0, duration_ms: int = 0) -> None:
    if key not in buckets:
        buckets[key] = _init_period_bucket()
    buckets[key]["sessions"] += sessions
    buckets[key]["duration_ms"] += duration_ms


def aggregate_sessions(
    sessions: Iterable[Session],
    count_by: CountBy = CountBy.START,
) -> dict[str, Any]:
    """Fold sessions into day-level and month-level totals.

    Durations are attributed slice by slice regardless of policy.  Session
    counts follow *count_by*: ``START`` counts each session once, on the
    day and month of its first message; ``PRESENCE`` counts it on every
    distinct day it touches and every distinct month those days fall in.

    Args:
        sessions: Sessions from ``group_sessions``.
        count_by: Counting policy for the session counters.

    Returns:
        Dict with keys:
            - daily: dict mapping ``YYYY-MM-DD`` to a bucket with
              ``sessions`` and ``duration_ms``, ordered by key.
            - monthly: same shape keyed by ``YYYY-MM``.
            - total_sessions: number of sessions.
            - total_duration_ms: sum of every session's span.
    """
    daily: dict[str, dict] = {}
    monthly: dict[str, dict] = {}
    total_sessions = 0
    total_ms = 0

    for session in sessions:
        total_sessions += 1
        total_ms += session.duration_ms

        slices = split_session_by_day(session)
        for piece in slices:
            _bump(daily, piece.day, duration_ms=piece.duration_ms)
            _bump(monthly, piece.day[:7], duration_ms=piece.duration_ms)

        if count_by is CountBy.PRESENCE:
            days = sorted({piece.day for piece in slices})
            for day in days:
                _bump(daily, day, sessions=1)
            for month in sorted({day[:7] for day in days}):
                _bump(monthly, month, sessions=1)
        else:
            _bump(daily, day_key(session.start), sessions=1)
            _bump(monthly, month_key(session.start), sessions=1)

    return {
        "daily": dict(sorted(daily.items())),
        "monthly": dict(sorted(monthly.items())),
        "total_sessions": total_sessions,
        "total_duration_ms": total_ms,
    }


# ---------------------------------------------------------------------------
# Presentation helpers
# ---------------------------------------------------------------------------

def ms_to_minutes(ms: int) -> int:
    """Round milliseconds to the nearest whole minute, halves rounding up."""
    return (ms + _MS_PER_MINUTE // 2) // _MS_PER_MINUTE


def format_duration(ms: int) -> str:
    """Format milliseconds as ``"<h>h <m>m"`` after rounding to minutes."""
    hours, minutes = divmod(ms_to_minutes(ms), 60)
    return f"{hours}h {minutes}m"


def _build_period_records(buckets: dict[str, dict], key_name: str) -> list[dict]:
    """Convert accumulated buckets into ordered record dicts.

    Args:
        buckets: Mapping of period key to ``{"sessions", "duration_ms"}``.
        key_name: Name of the key field in the output ("date" or "month").

    Returns:
        List of records ascending by period key, each with the rounded
        ``minutes`` added for display.
    """
    return [
        {
            key_name: key,
            "sessions": bucket["sessions"],
            "duration_ms": bucket["duration_ms"],
            "minutes": ms_to_minutes(bucket["duration_ms"]),
        }
        for key, bucket in sorted(buckets.items())
    ]


def _session_record(session: Session) -> dict:
    return {
        "start": session.start.isoformat(),
        "end": session.end.isoformat(),
        "message_count": session.message_count,
        "duration_ms": session.duration_ms,
        "minutes": ms_to_minutes(session.duration_ms),
    }


def _trailing_mean(values: list[float], window: int) -> list[float]:
    """Mean of the last *window* values at each position.

    The first positions average whatever is available, matching
    ``pandas.Series.rolling(window, min_periods=1).mean()``.
    """
    means: list[float] = []
    total = 0.0
    for i, v in enumerate(values):
        total += v
        if i >= window:
            total -= values[i - window]
        means.append(total / min(i + 1, window))
    return means


def compute_chart_data(daily_records: list[dict]) -> dict[str, Any]:
    """Build the daily-minutes chart series with 7-day and 28-day averages.

    Days without activity between the first and last record are filled
    with zeros so the rolling windows span calendar days, not active days.
    """
    if not daily_records:
        return {"dates": [], "minutes": {"values": [], "avg_7d": [], "avg_28d": []}}

    by_date = {r["date"]: r["minutes"] for r in daily_records}
    first = datetime.fromisoformat(daily_records[0]["date"]).date()
    last = datetime.fromisoformat(daily_records[-1]["date"]).date()

    dates: list[str] = []
    values: list[float] = []
    current = first
    while current <= last:
        key = current.isoformat()
        dates.append(key)
        values.append(by_date.get(key, 0))
        current += timedelta(days=1)

    return {
        "dates": dates,
        "minutes": {
            "values": values,
            "avg_7d": [round(v, 2) for v in _trailing_mean(values, 7)],
            "avg_28d": [round(v, 2) for v in _trailing_mean(values, 28)],
        },
    }


# ---------------------------------------------------------------------------
# Report assembly
# ---------------------------------------------------------------------------

def build_time_report(
    lines: Iterable[str],
    config: ReportConfig = ReportConfig(),
) -> dict[str, Any]:
    """Run the whole pipeline over raw export lines.

    Args:
        lines: Raw lines of the export, newline-normalized.
        config: Gap threshold, optional forced date order and counting
            policy.

    Returns:
        Dict with keys: config, diagnostics (date_order, forced,
        message_count, rejected_count, rejected_examples), daily, monthly,
        totals (sessions, duration_ms, minutes), sessions, chart.
    """
    parsed: ParsedChat = parse_chat(lines, config.date_order)
    sessions = group_sessions(parsed.messages, config.gap_minutes)
    aggregate = aggregate_sessions(sessions, config.count_by)
    daily = _build_period_records(aggregate["daily"], "date")

    logger.info(
        "Parsed %d messages into %d sessions (order=%s, gap=%d, count_by=%s)",
        len(parsed.messages),
        len(sessions),
        parsed.date_order.value,
        config.gap_minutes,
        config.count_by.value,
    )

    return {
        "config": {
            "gap_minutes": config.gap_minutes,
            "count_by": config.count_by.value,
        },
        "diagnostics": {
            "date_order": parsed.date_order.value,
            "forced": parsed.forced,
            "message_count": len(parsed.messages),
            "rejected_count": parsed.rejected_count,
            "rejected_examples": list(parsed.rejected_examples),
        },
        "daily": daily,
        "monthly": _build_period_records(aggregate["monthly"], "month"),
        "totals": {
            "sessions": aggregate["total_sessions"],
            "duration_ms": aggregate["total_duration_ms"],
            "minutes": ms_to_minutes(aggregate["total_duration_ms"]),
        },
        "sessions": [_session_record(s) for s in sessions],
        "chart": compute_chart_data(daily),
    }


def build_report_payload(
    path: str,
    config: ReportConfig = ReportConfig(),
) -> dict[str, Any]:
    """One-call entry point: load the export and compute the full report.

    Args:
        path: Filesystem path to the exported chat ``.txt`` file.
        config: Report configuration.

    Returns:
        The ``build_time_report`` dict plus ``generated_at`` (ISO timestamp)
        and ``file`` (base name of *path*).

    Raises:
        FileNotFoundError: If the chat file does not exist.
        UnicodeDecodeError: If the chat file is not valid UTF-8.
    """
    lines = load_chat_lines(path)
    report = build_time_report(lines, config)
    return {
        "generated_at": datetime.now().isoformat(),
        "file": os.path.basename(path),
        **report,
    }


# ---------------------------------------------------------------------------
# CLI helpers
# ---------------------------------------------------------------------------

_PERIOD_FIELDS = ["sessions", "duration_ms", "minutes"]


def save_report_files(report: dict[str, Any], output_dir: str = "chat_time") -> None:
    """Write CSV/JSON copies of the report tables to *output_dir*.

    Creates the directory if needed and writes daily_time.json/csv,
    monthly_time.json/csv and sessions.json/csv.
    """
    os.makedirs(output_dir, exist_ok=True)

    tables = [
        ("daily_time", report["daily"], ["date"] + _PERIOD_FIELDS),
        ("monthly_time", report["monthly"], ["month"] + _PERIOD_FIELDS),
        ("sessions", report["sessions"], ["start", "end", "message_count", "duration_ms", "minutes"]),
    ]
    for name, rows, fieldnames in tables:
        with open(os.path.join(output_dir, f"{name}.json"), "w", encoding="utf-8") as f:
            json.dump(rows, f, indent=2)
        with open(os.path.join(output_dir, f"{name}.csv"), "w", newline="", encoding="utf-8") as f:
            writer = csv.DictWriter(f, fieldnames=fieldnames)
            writer.writeheader()
            writer.writerows(rows)

    logger.info("Wrote report tables to %s", output_dir)


def render_time_report(
    report: dict[str, Any],
    file_name: str,
    show_sessions: bool = False,
) -> str:
    """Render the console report as text.

    Args:
        report: Dict from ``build_time_report``.
        file_name: Name shown in the header.
        show_sessions: Append one line per session when True.

    Returns:
        The report text, newline-terminated.
    """
    diag = report["diagnostics"]
    cfg = report["config"]
    out: list[str] = []

    out.append("\n=== WhatsApp Chat Time Calculator ===")
    out.append(f"\nFile: {file_name}")
    forced = " (forced)" if diag["forced"] else ""
    out.append(f"Detected date order: {diag['date_order'].upper()}{forced}")
    out.append(f"Gap threshold: {cfg['gap_minutes']} minute(s)")
    out.append(f"Conversation count method: {cfg['count_by']}\n")

    if diag["rejected_count"]:
        out.append(
            f"Note: {diag['rejected_count']} timestamp-like line(s) were rejected "
            "(strict date check). Examples:"
        )
        for example in diag["rejected_examples"]:
            out.append(f"  • {example}")
        out.append("")

    out.append("=== Daily Report ===")
    for rec in report["daily"]:
        out.append(
            f"  {rec['date']}  |  conversations: {rec['sessions']:>3}  |  "
            f"duration: {format_duration(rec['duration_ms'])}  ({rec['minutes']} min)"
        )
    out.append("")

    out.append("=== Monthly Report ===")
    for rec in report["monthly"]:
        out.append(
            f"  {rec['month']}      |  conversations: {rec['sessions']:>3}  |  "
            f"duration: {format_duration(rec['duration_ms'])}  ({rec['minutes']} min)"
        )
    out.append("")

    totals = report["totals"]
    out.append("=== All File Totals ===")
    out.append(f"  conversations: {totals['sessions']}")
    out.append(f"  total duration: {format_duration(totals['duration_ms'])}  ({totals['minutes']} min)")

    if show_sessions:
        out.append("\n=== Sessions ===")
        for i, s in enumerate(report["sessions"], 1):
            out.append(
                f"  #{i}  {s['start']}  ->  {s['end']}  |  "
                f"{format_duration(s['duration_ms'])}  |  {s['message_count']} msg(s)"
            )

    return "\n".join(out) + "\n"


def print_time_report(
    report: dict[str, Any],
    file_name: str,
    show_sessions: bool = False,
) -> None:
    """Print the CLI report to stdout."""
    print(render_time_report(report, file_name, show_sessions), end="")
