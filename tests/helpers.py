"""Shared test helpers for chat_time tests.

Regular functions (not fixtures) that can be imported by any test module.
"""

from __future__ import annotations

from datetime import datetime, timedelta

from chat_parsing import Message


def make_message(iso: str, text: str = "hi", sender: str | None = "A") -> Message:
    """Build a Message from an ISO timestamp string."""
    return Message(timestamp=datetime.fromisoformat(iso), sender=sender, text=text)


def make_messages(start_iso: str, offsets_minutes: list[int]) -> list[Message]:
    """Build messages at *offsets_minutes* after *start_iso*."""
    base = datetime.fromisoformat(start_iso)
    return [
        Message(timestamp=base + timedelta(minutes=m), sender="A", text=f"msg-{i}")
        for i, m in enumerate(offsets_minutes)
    ]


def make_dmy_lines(start_iso: str, offsets_minutes: list[int], sender: str = "A") -> list[str]:
    """Render export lines in 24-hour day/month/year format.

    Args:
        start_iso: Timestamp of the first line.
        offsets_minutes: Minutes after *start_iso* for each line.
        sender: Sender name written on every line.

    Returns:
        Lines such as ``"28/09/2025, 22:43 - A: msg-0"``.
    """
    base = datetime.fromisoformat(start_iso)
    lines = []
    for i, m in enumerate(offsets_minutes):
        ts = base + timedelta(minutes=m)
        lines.append(f"{ts:%d/%m/%Y, %H:%M} - {sender}: msg-{i}")
    return lines
