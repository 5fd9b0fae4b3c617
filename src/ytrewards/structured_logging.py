# src/ytrewards/structured_logging.py
from __future__ import annotations

import json
import logging
import os
import sys
import time
import uuid
from typing import Any, Dict, Optional

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

Json = Dict[str, Any]


def _now_ms() -> int:
    return int(time.time() * 1000)


def configure_structured_logging(level_name: Optional[str] = None) -> None:
    """Configure stdlib logging for JSONL output (stderr).

    - Level from the argument, else YTR_LOG_LEVEL (default INFO).
    - Safe to call multiple times.

    Records go to stderr so a dry run can print the artifact on stdout.
    """
    raw = level_name or os.environ.get("YTR_LOG_LEVEL") or "INFO"
    level = getattr(logging, str(raw).strip().upper(), logging.INFO)

    root = logging.getLogger()
    existing = getattr(root, "_ytr_handler", None)
    if existing is not None:
        # sys.stderr may have been swapped since the first call.
        existing.setStream(sys.stderr)
        root.setLevel(level)
        return

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(logging.Formatter("%(message)s"))

    root.handlers = [handler]
    root.setLevel(level)
    setattr(root, "_ytr_handler", handler)


def log_event(logger: logging.Logger, event: str, **fields: Any) -> None:
    """Emit a single JSONL log event."""
    payload: Json = {"ts_ms": _now_ms(), "event": str(event)}
    payload.update(fields)
    try:
        logger.info(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False))
    except (TypeError, ValueError):
        parts = [f"event={event}"] + [f"{k}={fields.get(k)!r}" for k in sorted(fields.keys())]
        logger.info(" ".join(parts))


def log_failure(logger: logging.Logger, event: str, err: Exception) -> None:
    """Emit an ERROR-level JSONL record for a failed run.

    DistributionError subclasses contribute their code, reason and details;
    details values that are not JSON types are rendered with str().
    """
    payload: Json = {"ts_ms": _now_ms(), "event": str(event), "error": type(err).__name__}
    code = getattr(err, "code", None)
    if code is not None:
        payload["code"] = str(code)
        payload["reason"] = str(getattr(err, "reason", ""))
        payload["details"] = getattr(err, "details", {}) or {}
    else:
        payload["message"] = str(err)
    logger.error(json.dumps(payload, sort_keys=True, separators=(",", ":"), ensure_ascii=False, default=str))


class RequestLogMiddleware(BaseHTTPMiddleware):
    """Structured request logging for the claim API.

    YTR_LOG_REQUESTS=0 disables it (default on).
    """

    def __init__(self, app) -> None:
        super().__init__(app)
        raw = (os.environ.get("YTR_LOG_REQUESTS") or "1").strip().lower()
        self._enabled = raw not in {"0", "false", "no", "n", "off"}
        self._logger = logging.getLogger("ytrewards.http")

    async def dispatch(self, request: Request, call_next):
        if not self._enabled:
            return await call_next(request)

        started = time.monotonic()
        request_id = request.headers.get("x-request-id") or uuid.uuid4().hex

        status = 500
        err: Optional[str] = None
        response: Optional[Response] = None

        try:
            response = await call_next(request)
            status = int(getattr(response, "status_code", 200) or 200)
            return response
        except Exception as e:
            err = str(e)
            raise
        finally:
            log_event(
                self._logger,
                "http_request",
                request_id=request_id,
                method=request.method,
                path=str(request.url.path or ""),
                status=status,
                duration_ms=int((time.monotonic() - started) * 1000),
                error=err,
            )
            if response is not None:
                response.headers.setdefault("x-request-id", request_id)
