# charactergen/middlewares.py

"""
Access logging for the character generation API.

Endpoints and the error handler in `charactergen.main` tag each request on
`request.state`:

- `provider`: the LLM provider that served it (set by `bind_llm_service`)
- `request_type`: the prompt template or character aspect it generated
- `error`: the `CharacterGenError` class name when it failed

`LoggingMiddleware` folds those tags into one structured record per request
on the "charactergen.access" logger, next to the method, path, status,
duration and correlation ID. `request_labels()` exposes the same tags to the
Prometheus middleware so logs and metrics agree on their labels.
"""

import logging
import time
import uuid
from typing import Dict, Optional

from asgi_correlation_id import correlation_id
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

logger = logging.getLogger("charactergen.access")


def request_labels(request: Request) -> Dict[str, Optional[str]]:
    """Provider, request type and error class recorded on `request.state`, if any."""
    state = request.state
    return {
        "provider": getattr(state, "provider", None),
        "request_type": getattr(state, "request_type", None),
        "error": getattr(state, "error", None),
    }


class LoggingMiddleware(BaseHTTPMiddleware):
    """
    Logs one record per request. Failed generations are logged at WARNING
    with the error class; everything else at INFO.
    """

    async def dispatch(self, request: Request, call_next):
        start = time.perf_counter()
        request_id = correlation_id.get() or str(uuid.uuid4())

        try:
            response: Response = await call_next(request)
        except Exception:
            logger.exception(
                "unhandled exception",
                extra=self._fields(request, 500, start, request_id),
            )
            raise

        fields = self._fields(request, response.status_code, start, request_id)
        if fields["error"]:
            logger.warning(f"{fields['request_type'] or request.url.path} failed with {fields['error']}", extra=fields)
        else:
            logger.info("request completed", extra=fields)
        return response

    @staticmethod
    def _fields(request: Request, status: int, start: float, request_id: str) -> Dict[str, object]:
        return {
            "method": request.method,
            "path": request.url.path,
            "status": status,
            "duration_ms": round((time.perf_counter() - start) * 1000, 2),
            "request_id": request_id,
            **request_labels(request),
        }
