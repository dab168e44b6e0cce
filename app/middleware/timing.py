"""
Request timing middleware.

Stamps every response with X-Request-Duration-Ms and X-Request-ID, logs
slow and failing requests, and keeps a bounded in-memory window of recent
requests that the health endpoint summarises.
"""

import logging
import time
import uuid
from collections import deque

from flask import Flask, g, request

logger = logging.getLogger(__name__)

# Probes are polled constantly; keep them out of the request log
_QUIET_PATHS = frozenset({"/api/v1/health/ready", "/api/v1/health/live"})

SLOW_THRESHOLD_MS = 1000
_WINDOW_SIZE = 10_000

_recent: deque = deque(maxlen=_WINDOW_SIZE)


def init_request_timing(app: Flask):
    """Register before/after hooks for request timing."""

    @app.before_request
    def _start_timer():
        g.request_start = time.perf_counter()
        g.request_id = request.headers.get("X-Request-ID", uuid.uuid4().hex[:12])

    @app.after_request
    def _finish_timer(response):
        start = getattr(g, "request_start", None)
        if start is None:
            return response

        elapsed_ms = (time.perf_counter() - start) * 1000
        response.headers["X-Request-Duration-Ms"] = f"{elapsed_ms:.1f}"
        response.headers["X-Request-ID"] = g.get("request_id", "")

        tenant_id, map_id = _request_scope()
        _record_metric(
            request.method, request.path, response.status_code, elapsed_ms,
            tenant_id=tenant_id, map_id=map_id,
        )
        if request.path not in _QUIET_PATHS:
            _log_request(response.status_code, elapsed_ms, tenant_id, map_id)
        return response


def _log_request(status: int, elapsed_ms: float, tenant_id, map_id) -> None:
    extra = {
        "method": request.method,
        "path": request.path,
        "status": status,
        "duration_ms": elapsed_ms,
        "remote_addr": request.remote_addr,
        "request_id": g.get("request_id", ""),
        "tenant_id": tenant_id,
        "map_id": map_id,
    }
    args = (request.method, request.path, status, elapsed_ms)
    if elapsed_ms > SLOW_THRESHOLD_MS:
        logger.warning("Slow request: %s %s %d (%.0fms)", *args, extra=extra)
    elif status >= 500:
        logger.error("Server error: %s %s %d (%.0fms)", *args, extra=extra)
    else:
        logger.debug("Request: %s %s %d (%.0fms)", *args, extra=extra)


def _request_scope() -> tuple[int | None, int | None]:
    """(tenant_id, map_id) of the current request, where known."""
    map_id = (request.view_args or {}).get("mid")
    tenant_id = request.args.get("tenant_id", type=int)
    if tenant_id is None and request.is_json:
        payload = request.get_json(silent=True)
        if isinstance(payload, dict):
            tenant_id = payload.get("tenant_id")
    try:
        tenant_id = int(tenant_id) if tenant_id is not None else None
    except (TypeError, ValueError):
        tenant_id = None
    return tenant_id, map_id


# ── Recent-request window ─────────────────────────────────────────────────


def _record_metric(
    method: str,
    path: str,
    status_code: int,
    duration_ms: float,
    *,
    tenant_id: int | None = None,
    map_id: int | None = None,
):
    _recent.append({
        "ts": time.time(),
        "method": method,
        "path": path,
        "status": status_code,
        "ms": round(duration_ms, 1),
        "tenant_id": tenant_id,
        "map_id": map_id,
    })


def get_recent_metrics(seconds: int = 3600) -> list[dict]:
    """Requests recorded in the last ``seconds``."""
    cutoff = time.time() - seconds
    return [m for m in _recent if m["ts"] >= cutoff]


def summarize_recent(seconds: int = 3600) -> dict:
    """Request count, 5xx count and mean latency over the window."""
    recent = get_recent_metrics(seconds)
    if not recent:
        return {"requests": 0, "server_errors": 0, "avg_ms": 0.0}
    return {
        "requests": len(recent),
        "server_errors": sum(1 for m in recent if m["status"] >= 500),
        "avg_ms": round(sum(m["ms"] for m in recent) / len(recent), 1),
    }


def reset_metrics():
    _recent.clear()
