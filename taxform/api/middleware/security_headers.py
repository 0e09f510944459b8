"""Response headers for a JSON API that serves tax data.

Every response gets ``nosniff``, frame denial, ``no-referrer`` and
``no-store`` so rate data never lands in shared caches. JSON responses
also get a deny-all Content-Security-Policy; the interactive docs pages
load scripts and are left without one. HSTS is added outside development.
"""

from collections.abc import Awaitable, Callable
from typing import Final

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.types import ASGIApp

from taxform.api.constants import DEFAULT_HSTS_MAX_AGE, JSON_CONTENT_TYPES

STATIC_HEADERS: Final[dict[str, str]] = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "no-referrer",
    "Cache-Control": "no-store",
}

JSON_CSP: Final[str] = "default-src 'none'; frame-ancestors 'none'"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Attach the security headers to every response.

    Args:
        app: The ASGI application to wrap.
        hsts_enabled: Whether to send Strict-Transport-Security.
        hsts_max_age: Max age for HSTS in seconds.
    """

    def __init__(
        self,
        app: ASGIApp,
        *,
        hsts_enabled: bool = True,
        hsts_max_age: int = DEFAULT_HSTS_MAX_AGE,
    ) -> None:
        super().__init__(app)
        self.hsts_value = (
            f"max-age={hsts_max_age}; includeSubDomains" if hsts_enabled else None
        )

    async def dispatch(
        self,
        request: Request,
        call_next: Callable[[Request], Awaitable[Response]],
    ) -> Response:
        response = await call_next(request)

        response.headers.update(STATIC_HEADERS)

        media_type = response.headers.get("content-type", "").split(";")[0].strip()
        if media_type in JSON_CONTENT_TYPES:
            response.headers["Content-Security-Policy"] = JSON_CSP

        if self.hsts_value:
            response.headers["Strict-Transport-Security"] = self.hsts_value

        return response
