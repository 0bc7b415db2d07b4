"""
Request logging middleware. Session ids are logged only as short hashes.
"""
import hashlib
import logging
import re
import time
from typing import Callable, Optional

from fastapi import Request, Response
from starlette.middleware.base import BaseHTTPMiddleware

logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)

_SESSION_PATH = re.compile(r"^/wizard/([^/]+)")


def hash_identifier(identifier: str) -> str:
    """Hash identifier for logging (no PII)"""
    return hashlib.sha256(identifier.encode()).hexdigest()[:8]


def session_id_from(request: Request) -> Optional[str]:
    """Wizard session id from the URL path, else the X-Session-ID header"""
    match = _SESSION_PATH.match(request.url.path)
    if match:
        return match.group(1)
    return request.headers.get("X-Session-ID")


class RequestLoggingMiddleware(BaseHTTPMiddleware):
    """One log line per request with status, latency and hashed session id"""

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        started = time.perf_counter()
        session_id = session_id_from(request)
        context = {
            "method": request.method,
            "path": request.url.path,
            "hashed_session_id": hash_identifier(session_id) if session_id else None,
            "remote_addr": request.client.host if request.client else None,
        }

        try:
            response = await call_next(request)
        except Exception as e:
            logger.error(
                f"{request.method} {request.url.path} raised {type(e).__name__}",
                extra={**context, "error": str(e), "error_type": type(e).__name__},
                exc_info=True
            )
            raise

        latency_ms = (time.perf_counter() - started) * 1000
        log = logger.warning if response.status_code >= 500 else logger.info
        log(
            f"{request.method} {request.url.path} {response.status_code} {latency_ms:.1f}ms",
            extra={**context, "status_code": response.status_code, "latency_ms": round(latency_ms, 2)}
        )
        response.headers["X-Response-Time-Ms"] = f"{latency_ms:.2f}"
        return response
