"""
HTTP middleware - response hardening and request size limits.

Usage:
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestSizeLimitMiddleware, max_bytes=runtime_config.max_request_bytes)
"""

import logging

from fastapi import Request
from fastapi.responses import JSONResponse
from starlette.middleware.base import BaseHTTPMiddleware

from errors import error_response, ValidationError, ErrorCode

logger = logging.getLogger(__name__)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next):
        response = await call_next(request)
        # Prevent clickjacking
        response.headers["X-Frame-Options"] = "DENY"
        # Prevent MIME type sniffing
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["Referrer-Policy"] = "strict-origin-when-cross-origin"
        return response


class RequestSizeLimitMiddleware(BaseHTTPMiddleware):
    """Reject requests whose declared body exceeds max_bytes with 413."""

    def __init__(self, app, max_bytes: int):
        super().__init__(app)
        self.max_bytes = max_bytes

    async def dispatch(self, request: Request, call_next):
        content_length = request.headers.get("content-length")
        if content_length and content_length.isdigit():
            size = int(content_length)
            if size > self.max_bytes:
                logger.warning(f"Rejected {request.url.path}: body {size} bytes exceeds {self.max_bytes}")
                error = ValidationError(
                    "Request body too large",
                    details=f"{size} bytes, limit {self.max_bytes} bytes",
                    code=ErrorCode.VALIDATION_INVALID_FORMAT,
                    parameter="body",
                )
                return JSONResponse(status_code=413, content=error_response(error))
        return await call_next(request)
