"""
api/security.py -- Security response headers (helmet-style) for every response.

Adds a Content-Security-Policy plus the usual hardening headers. setdefault
is used throughout so a route can still override a header deliberately.

The CSP allows inline scripts and eval because the provider management page
uses HTMX attributes and inline handlers; connect-src permits ws/wss for
clients that open sockets to the same origin.
"""

from __future__ import annotations

from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

DEFAULT_CSP = (
    "default-src 'self'; "
    "style-src 'self' 'unsafe-inline' https://fonts.googleapis.com; "
    "font-src 'self' https://fonts.gstatic.com; "
    "script-src 'self' 'unsafe-inline' 'unsafe-eval' https://unpkg.com; "
    "img-src 'self' data: https:; "
    "connect-src 'self' ws: wss:"
)


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    def __init__(self, app, content_security_policy: str = DEFAULT_CSP, hsts: bool = False) -> None:
        super().__init__(app)
        self.content_security_policy = content_security_policy
        self.hsts = hsts

    @staticmethod
    def _is_https_request(request: Request) -> bool:
        forwarded_proto = request.headers.get("x-forwarded-proto", "").split(",")[0].strip().lower()
        if forwarded_proto:
            return forwarded_proto == "https"
        return request.url.scheme == "https"

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        response: Response = await call_next(request)

        if "server" in response.headers:
            del response.headers["server"]
        response.headers.setdefault("Content-Security-Policy", self.content_security_policy)
        response.headers.setdefault("X-Content-Type-Options", "nosniff")
        response.headers.setdefault("X-Frame-Options", "SAMEORIGIN")
        response.headers.setdefault("X-DNS-Prefetch-Control", "off")
        response.headers.setdefault("X-Permitted-Cross-Domain-Policies", "none")
        response.headers.setdefault("Referrer-Policy", "no-referrer")
        response.headers.setdefault("Cross-Origin-Opener-Policy", "same-origin")

        if self.hsts and self._is_https_request(request):
            response.headers.setdefault("Strict-Transport-Security", "max-age=15552000; includeSubDomains")
        return response
