"""FastAPI service for the WhatsApp Chat Time dashboard.

Serves a Chart.js dashboard with cached report data
(1-hour TTL since data only changes on a new chat export).

Deployment: uvicorn app:app --host 127.0.0.1 --port 8204
"""

from __future__ import annotations

import json
import logging
import os
import threading
import time
from pathlib import Path
from typing import Any

from fastapi import FastAPI, HTTPException
from fastapi.responses import HTMLResponse

from analytics import (
    ReportConfig,
    build_report_payload,
    resolve_count_by,
    resolve_date_order,
    resolve_gap_minutes,
)

logger = logging.getLogger(__name__)

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------
CHAT_PATH = Path(os.environ.get("CHAT_TIME_FILE", Path(__file__).parent / "chat.txt"))
TEMPLATE_PATH = Path(__file__).parent / "dashboard_template.html"
CACHE_TTL_SECONDS = 3600  # 1 hour

REPORT_CONFIG = ReportConfig(
    gap_minutes=resolve_gap_minutes(os.environ.get("CHAT_TIME_GAP")),
    date_order=resolve_date_order(os.environ.get("CHAT_TIME_DATE_ORDER")),
    count_by=resolve_count_by(os.environ.get("CHAT_TIME_COUNT_BY")),
)

# ---------------------------------------------------------------------------
# App
# ---------------------------------------------------------------------------
app = FastAPI(
    title="WhatsApp Chat Time Dashboard",
    root_path="/chat_time",
)

# ---------------------------------------------------------------------------
# Thread-safe cache
# ---------------------------------------------------------------------------
_cache_lock = threading.Lock()
_cache: dict[str, Any] = {
    "data": None,
    "built_at": 0.0,
}


def _get_cached_data(force_refresh: bool = False) -> dict[str, Any]:
    """Return cached report data, rebuilding if stale or forced.

    Raises:
        HTTPException: 503 when the chat file is missing, 500 when it
            cannot be decoded.
    """
    now = time.monotonic()
    with _cache_lock:
        if (
            not force_refresh
            and _cache["data"] is not None
            and (now - _cache["built_at"]) < CACHE_TTL_SECONDS
        ):
            return _cache["data"]

    try:
        data = build_report_payload(str(CHAT_PATH), REPORT_CONFIG)
    except FileNotFoundError:
        logger.error("Chat file not found: %s", CHAT_PATH)
        raise HTTPException(status_code=503, detail="Chat file not found")
    except UnicodeDecodeError:
        logger.error("Chat file is not valid UTF-8: %s", CHAT_PATH)
        raise HTTPException(status_code=500, detail="Chat file is not valid UTF-8")

    with _cache_lock:
        _cache["data"] = data
        _cache["built_at"] = time.monotonic()

    return data


# ---------------------------------------------------------------------------
# Routes
# ---------------------------------------------------------------------------
@app.get("/health")
@app.get("/healthz")
def healthz():
    return {"status": "ok"}


@app.get("/", response_class=HTMLResponse)
def dashboard_html():
    """Serve the dashboard HTML with injected data."""
    if not TEMPLATE_PATH.exists():
        raise HTTPException(status_code=500, detail="Template not found")

    data = _get_cached_data()
    template = TEMPLATE_PATH.read_text(encoding="utf-8")
    data_json = json.dumps(data, ensure_ascii=False)
    data_json = data_json.replace("</", r"<\/")
    html = template.replace(
        "const REPORT_DATA = {};",
        f"const REPORT_DATA = {data_json};",
    )
    return HTMLResponse(content=html)


@app.get("/api/data")
def api_data():
    """Return the full report JSON payload."""
    return _get_cached_data()


@app.get("/api/refresh")
def api_refresh():
    """Force a cache rebuild and return fresh data."""
    data = _get_cached_data(force_refresh=True)
    return {
        "status": "refreshed",
        "generated_at": data["generated_at"],
    }
