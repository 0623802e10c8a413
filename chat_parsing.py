"""Parsing for plain-text WhatsApp chat exports.

Turns the raw lines of an exported ``chat.txt`` into a validated, time-sorted
list of messages.  Handles Arabic-Indic digits, invisible direction marks,
day/month ambiguity and strict calendar validation.
Used by the report builder in analytics.py.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Iterable, Union

logger = logging.getLogger(__name__)

MAX_REJECTED_EXAMPLES = 5


class DateOrder(str, Enum):
    """Which leading numeric field of a timestamp holds the month."""

    MDY = "mdy"
    DMY = "dmy"


# ---------------------------------------------------------------------------
# Text normalization
# ---------------------------------------------------------------------------

_DIGIT_MAP = {
    "٠": "0",
    "١": "1",
    "٢": "2",
    "٣": "3",
    "٤": "4",
    "٥": "5",
    "٦": "6",
    "٧": "7",
    "٨": "8",
    "٩": "9",
    "٫": ".",
    "٬": ",",
}

# LRM, RLM, narrow no-break space, no-break space
_SPACE_MAP = dict.fromkeys("\u200e\u200f\u202f\u00a0", " ")

_NORMALIZE_TABLE = str.maketrans({**_DIGIT_MAP, **_SPACE_MAP})


def normalize_line(line: str) -> str:
    """Canonicalize digits and odd spaces so the timestamp grammar can match.

    Args:
        line: A raw line from the export.

    Returns:
        The line with Arabic-Indic digits mapped to ASCII (and the Arabic
        decimal/group separators to ``.``/``,``), and direction marks or
        non-breaking spaces replaced by a plain space.  Any other
        character passes through unchanged.
    """
    return line.translate(_NORMALIZE_TABLE)


# ---------------------------------------------------------------------------
# Line grammar
# ---------------------------------------------------------------------------

# "9/28/25, 10:20 AM - Name: Text"  or  "28-9-2025 22:43 – Name: Text"
LINE_RE = re.compile(
    r"^([0-9]{1,2})[/\-]([0-9]{1,2})[/\-]([0-9]{2,4}),?\s+"
    r"([0-9]{1,2}):([0-9]{2})(?:\s?(AM|PM))?\s*[-–]\s*(.*)$",
    re.IGNORECASE,
)

# Case-sensitive, unlike LINE_RE
_AMPM_BEFORE_DASH_RE = re.compile(r"\s(?:AM|PM)\s*[-–]\s")


@dataclass(frozen=True, slots=True)
class Message:
    timestamp: datetime
    sender: str | None
    text: str


@dataclass(frozen=True, slots=True)
class NotATimestamp:
    """The line is ordinary content or a continuation of a previous message."""

    line: str


@dataclass(frozen=True, slots=True)
class InvalidTimestamp:
    """The line looks like a timestamped message but the date is impossible."""

    line: str
    reason: str


@dataclass(frozen=True, slots=True)
class ParsedMessage:
    message: Message


LineResult = Union[NotATimestamp, InvalidTimestamp, ParsedMessage]


def _split_sender(rest: str) -> tuple[str | None, str]:
    idx = rest.find(": ")
    if idx == -1:
        return None, rest.strip()
    return rest[:idx].strip(), rest[idx + 2:]


def _to_24_hour(hour: int, ampm: str) -> int:
    if ampm == "AM" and hour == 12:
        return 0
    if ampm == "PM" and hour < 12:
        return hour + 12
    return hour


def parse_line(line: str, date_order: DateOrder) -> LineResult:
    """Parse one normalized line against the timestamp grammar.

    Args:
        line: A line already passed through ``normalize_line``.
        date_order: Whether the first numeric field is the month (MDY)
            or the day (DMY).  Applied as-is, never re-guessed here.

    Returns:
        ``NotATimestamp`` when the grammar does not match,
        ``InvalidTimestamp`` when it matches but a field is out of range
        or the date does not exist (e.g. 31 April), otherwise
        ``ParsedMessage`` wrapping the new ``Message``.
    """
    match = LINE_RE.match(line)
    if match is None:
        return NotATimestamp(line)

    first, second, year_s, hour_s, minute_s, ampm, rest = match.groups()
    year = int(year_s)
    if year < 100:
        year += 2000
    hour = _to_24_hour(int(hour_s), (ampm or "").upper())
    minute = int(minute_s)

    if date_order is DateOrder.MDY:
        month, day = int(first), int(second)
    else:
        day, month = int(first), int(second)

    if not (1 <= month <= 12 and 1 <= day <= 31 and 0 <= hour <= 23 and 0 <= minute <= 59):
        return InvalidTimestamp(line, "field out of range")

    # datetime() refuses to roll over (31 April, 29 Feb in a common year)
    try:
        timestamp = datetime(year, month, day, hour, minute)
    except ValueError as exc:
        return InvalidTimestamp(line, str(exc))

    sender, text = _split_sender(rest or "")
    return ParsedMessage(Message(timestamp=timestamp, sender=sender, text=text))


# ---------------------------------------------------------------------------
# Date order detection
# ---------------------------------------------------------------------------

def detect_date_order(
    lines: Iterable[str],
    forced: DateOrder | None = None,
) -> DateOrder:
    """Decide MDY vs DMY for the whole export by voting.

    A line votes MDY when its second field exceeds 12 while the first does
    not, and DMY in the mirrored case; pairs where both fields are <= 12
    are ambiguous and do not vote.  On a tie the presence of an uppercase
    AM/PM marker right before the dash separator means MDY (12-hour exports
    are overwhelmingly US-style), otherwise DMY.

    Args:
        lines: Normalized lines of the export.
        forced: Explicit order from configuration.  When given it is
            returned unchanged and no line is inspected.

    Returns:
        The resolved ``DateOrder``.
    """
    if forced is not None:
        return forced

    mdy_votes = 0
    dmy_votes = 0
    has_ampm = False
    for line in lines:
        if not has_ampm and _AMPM_BEFORE_DASH_RE.search(line):
            has_ampm = True
        match = LINE_RE.match(line)
        if match is None:
            continue
        a, b = int(match.group(1)), int(match.group(2))
        if b > 12 and a <= 12:
            mdy_votes += 1
        elif a > 12 and b <= 12:
            dmy_votes += 1

    logger.debug("Date order votes: mdy=%d dmy=%d", mdy_votes, dmy_votes)
    if mdy_votes > dmy_votes:
        return DateOrder.MDY
    if dmy_votes > mdy_votes:
        return DateOrder.DMY
    return DateOrder.MDY if has_ampm else DateOrder.DMY


# ---------------------------------------------------------------------------
# Whole-chat parsing
# ---------------------------------------------------------------------------

@dataclass(frozen=True, slots=True)
class ParsedChat:
    messages: list[Message]
    date_order: DateOrder
    forced: bool
    rejected_count: int
    rejected_examples: list[str]


def load_chat_lines(path: str) -> list[str]:
    """Read an exported chat file into a list of lines.

    Args:
        path: Filesystem path to the ``.txt`` export.

    Returns:
        The file's lines with ``\\r\\n`` and ``\\r`` newlines folded to
        ``\\n`` and the line terminators removed.  A trailing newline
        yields a final empty line, which parses as plain content.

    Raises:
        FileNotFoundError: If the file at *path* does not exist.
        UnicodeDecodeError: If the file is not valid UTF-8.
    """
    with open(path, "r", encoding="utf-8-sig", newline="") as f:
        raw = f.read()
    return raw.replace("\r\n", "\n").replace("\r", "\n").split("\n")


def parse_chat(
    lines: Iterable[str],
    forced_order: DateOrder | None = None,
) -> ParsedChat:
    """Parse every line of an export into sorted, validated messages.

    Args:
        lines: Raw lines of the export (not yet normalized).
        forced_order: Date order from configuration, or None to detect it.

    Returns:
        A ``ParsedChat`` with the messages stably sorted by timestamp (ties
        keep file order), the date order used, whether it was forced, and
        the number of rejected timestamp-like lines with up to
        ``MAX_REJECTED_EXAMPLES`` of them as examples.
    """
    normalized = [normalize_line(line) for line in lines]
    date_order = detect_date_order(normalized, forced_order)

    messages: list[Message] = []
    rejected_count = 0
    rejected_examples: list[str] = []
    for line in normalized:
        result = parse_line(line, date_order)
        if isinstance(result, ParsedMessage):
            messages.append(result.message)
        elif isinstance(result, InvalidTimestamp):
            rejected_count += 1
            logger.debug("Rejected timestamp line (%s): %r", result.reason, line)
            if len(rejected_examples) < MAX_REJECTED_EXAMPLES:
                rejected_examples.append(line)

    if normalized and any(line.strip() for line in normalized) and not messages:
        logger.warning(
            "Read %d lines but none carried a valid timestamp. "
            "The export format may not be supported.",
            len(normalized),
        )

    messages.sort(key=lambda m: m.timestamp)
    return ParsedChat(
        messages=messages,
        date_order=date_order,
        forced=forced_order is not None,
        rejected_count=rejected_count,
        rejected_examples=rejected_examples,
    )
