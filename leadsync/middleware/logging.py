# leadsync/middleware/logging.py
from __future__ import annotations

import time
from typing import Mapping, Optional

from fastapi import Request
from fastapi.responses import Response
from starlette.middleware.base import BaseHTTPMiddleware

from leadsync.core.logging import get_structlog_logger

logger = get_structlog_logger(__name__)

QUIET_PATHS = frozenset({"/health", "/api/health", "/metrics"})

SENSITIVE_HEADERS = (
    "authorization",
    "cookie",
    "x-hub-signature",
    "x-api-key",
    "token",
    "secret",
)

# Meta sends these on the webhook handshake and Graph-style callbacks.
SENSITIVE_PARAMS = frozenset({"hub.verify_token", "access_token", "appsecret_proof"})


class LoggingMiddleware(BaseHTTPMiddleware):
    """Middleware for request/response logging."""

    async def dispatch(self, request: Request, call_next):
        start_time = time.time()
        request_id: Optional[str] = getattr(request.state, "request_id", None)

        self._log_request(request, request_id)

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                "request.exception",
                request_id=request_id,
                method=request.method,
                path=request.url.path,
                response_time_ms=(time.time() - start_time) * 1000,
                exception_type=type(e).__name__,
                exception_message=str(e),
            )
            raise

        response_time = time.time() - start_time
        response.headers["X-Response-Time"] = f"{response_time:.3f}"

        self._log_response(request, response, response_time, request_id)
        return response

    def _log_request(self, request: Request, request_id: Optional[str]) -> None:
        if request.url.path in QUIET_PATHS:
            return

        logger.info(
            "request.received",
            request_id=request_id,
            method=request.method,
            path=request.url.path,
            query_params=self._filter_params(request.query_params) or None,
            client_ip=request.client.host if request.client else "unknown",
            user_agent=request.headers.get("user-agent", "unknown"),
            content_length=request.headers.get("content-length", "0"),
            headers=self._filter_headers(request.headers),
        )

    def _log_response(
        self,
        request: Request,
        response: Response,
        response_time: float,
        request_id: Optional[str],
    ) -> None:
        if request.url.path in QUIET_PATHS:
            return

        status_code = response.status_code
        log_data = {
            "request_id": request_id,
            "method": request.method,
            "path": request.url.path,
            "status_code": status_code,
            "response_time_ms": response_time * 1000,
            "response_size": response.headers.get("content-length", "0"),
        }

        if 400 <= status_code < 500:
            log_data["error_type"] = "client_error"
            logger.warning("response.sent", **log_data)
        elif status_code >= 500:
            log_data["error_type"] = "server_error"
            logger.warning("response.sent", **log_data)
        else:
            logger.info("response.sent", **log_data)

    def _filter_headers(self, headers: Mapping[str, str]) -> dict:
        """Filter sensitive headers from logs."""
        filtered = {}
        for key, value in headers.items():
            if any(sensitive in key.lower() for sensitive in SENSITIVE_HEADERS):
                filtered[key] = "[REDACTED]"
            else:
                filtered[key] = value
        return filtered

    def _filter_params(self, params: Mapping[str, str]) -> dict:
        return {
            key: "[REDACTED]" if key in SENSITIVE_PARAMS else value
            for key, value in params.items()
        }
