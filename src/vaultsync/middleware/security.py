"""Security headers middleware.

Learn: This service only ever answers with JSON or an event stream,
never HTML, so the browser policy can be as strict as it gets:

- X-Content-Type-Options / Content-Security-Policy: nothing is sniffed,
  executed or loaded from a response
- X-Frame-Options: no response may be framed
- Referrer-Policy: limits referrer info leakage
- Strict-Transport-Security: forces HTTPS (only on HTTPS connections,
  including TLS terminated at a proxy that sets X-Forwarded-Proto)

API responses also default to `Cache-Control: no-store`, since
preferences carry the user's Vault API token. Routes that set their own
Cache-Control (the event stream) keep it.
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

SECURITY_HEADERS = {
    "X-Content-Type-Options": "nosniff",
    "X-Frame-Options": "DENY",
    "Referrer-Policy": "strict-origin-when-cross-origin",
    "Content-Security-Policy": "default-src 'none'; frame-ancestors 'none'",
}

HSTS = "max-age=31536000; includeSubDomains"


def _is_https(request: Request) -> bool:
    if request.url.scheme == "https":
        return True
    return request.headers.get("X-Forwarded-Proto", "").lower() == "https"


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response: Response = await call_next(request)
        response.headers.update(SECURITY_HEADERS)
        response.headers.setdefault("Cache-Control", "no-store")
        if _is_https(request):
            response.headers["Strict-Transport-Security"] = HSTS
        return response
