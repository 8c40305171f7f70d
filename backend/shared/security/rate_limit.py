"""
Rate limiting using slowapi, keyed by client IP.

Protects the anonymous QR endpoint, login and customer writes from abuse.
"""

from fastapi import Request
from fastapi.responses import JSONResponse
from slowapi import Limiter
from slowapi.errors import RateLimitExceeded
from slowapi.util import get_remote_address

from shared.config.constants import ErrorMessages
from shared.config.logging import security_audit_logger
from shared.config.settings import settings

limiter = Limiter(key_func=get_remote_address, enabled=settings.rate_limit_enabled)


def rate_limit_exceeded_handler(request: Request, exc: RateLimitExceeded) -> JSONResponse:
    """Return a JSON 429 with retry information."""
    security_audit_logger.warning(
        "RATE_LIMIT_AUDIT",
        path=request.url.path,
        ip_address=get_remote_address(request),
        limit=str(exc.detail),
    )
    return JSONResponse(
        status_code=429,
        content={
            "detail": ErrorMessages.RATE_LIMIT_EXCEEDED,
            "code": "RATE_LIMITED",
            "retry_after": exc.detail,
        },
        headers={"Retry-After": str(exc.detail)},
    )
