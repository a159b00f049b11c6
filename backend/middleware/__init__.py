"""
Querypilot Middleware - Request processing middleware.

- http: security headers and request body size limits
"""

from .http import SecurityHeadersMiddleware, RequestSizeLimitMiddleware

__all__ = ["SecurityHeadersMiddleware", "RequestSizeLimitMiddleware"]
