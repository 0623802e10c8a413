"""Shared fixtures for chat_time tests."""

from __future__ import annotations

from unittest.mock import patch

import pytest
from fastapi.testclient import TestClient


# ── Minimal report payload for app.py tests ──


def _minimal_report_payload() -> dict:
    """Return a minimal payload matching build_report_payload() shape.

    Keys and structure must exactly match the dict returned by
    ``analytics.build_report_payload``.
    """
    return {
        "generated_at": "2025-01-15T12:00:00",
        "file": "chat.txt",
        "config": {"gap_minutes": 5, "count_by": "start"},
        "diagnostics": {
            "date_order": "dmy",
            "forced": False,
            "message_count": 3,
            "rejected_count": 0,
            "rejected_examples": [],
        },
        "daily": [
            {"date": "2025-01-02", "sessions": 2, "duration_ms": 120000, "minutes": 2},
        ],
        "monthly": [
            {"month": "2025-01", "sessions": 2, "duration_ms": 120000, "minutes": 2},
        ],
        "totals": {"sessions": 2, "duration_ms": 120000, "minutes": 2},
        "sessions": [],
        "chart": {
            "dates": ["2025-01-02"],
            "minutes": {"values": [2], "avg_7d": [2.0], "avg_28d": [2.0]},
        },
    }


@pytest.fixture()
def mock_payload():
    """Return the minimal report payload dict."""
    return _minimal_report_payload()


@pytest.fixture()
def client(mock_payload):
    """TestClient for app.py with mocked report data.

    Patches build_report_payload so no chat file is needed.
    Resets the module-level cache between tests.
    """
    import app as app_module

    with patch.object(
        app_module, "_cache", {"data": None, "built_at": 0.0}
    ):
        with patch(
            "app.build_report_payload", return_value=mock_payload
        ):
            with TestClient(app_module.app) as tc:
                yield tc
