"""Request logging middleware with override-code masking."""

from __future__ import annotations

import logging
import re
import time
import uuid
from functools import lru_cache
from typing import Callable

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response

from frameshop.utils.masking import SENSITIVE_KEY_MARKERS, mask_secret, sanitize_log_value

logger = logging.getLogger(__name__)

ACTOR_HEADER = "x-actor-id"
DEFAULT_MASK_FIELDS = frozenset(SENSITIVE_KEY_MARKERS)


@lru_cache(maxsize=128)
def _get_mask_pattern(field: str) -> re.Pattern:
    return re.compile(
        rf'(["\']?{re.escape(field)}["\']?\s*[:=]\s*)["\']?[^"\'\s,}}]*["\']?',
        re.IGNORECASE,
    )


def mask_exception_message(
    message: str,
    mask_fields: frozenset[str],
    secret: str | None = None,
) -> str:
    """Mask ``key=value`` pairs for sensitive keys and any literal secret."""
    masked = mask_secret(message, secret)
    for field in mask_fields:
        masked = _get_mask_pattern(field).sub(r"\1***MASKED***", masked)
    return masked


class RequestLogMiddleware(BaseHTTPMiddleware):
    """Logs method, path, actor, status and duration for every API request."""

    EXEMPT_PATHS = frozenset({"/health"})

    def __init__(
        self,
        app: Callable,
        override_code: str | None = None,
        mask_fields: frozenset[str] = DEFAULT_MASK_FIELDS,
    ) -> None:
        super().__init__(app)
        self._secret = override_code or None
        self._mask_fields = frozenset(f.lower() for f in mask_fields)

    async def dispatch(self, request: Request, call_next: Callable) -> Response:
        if request.url.path in self.EXEMPT_PATHS:
            return await call_next(request)

        request_id = sanitize_log_value(request.headers.get("x-request-id", str(uuid.uuid4())))
        actor = sanitize_log_value(request.headers.get(ACTOR_HEADER) or "system")
        safe_path = sanitize_log_value(request.url.path)
        start_time = time.monotonic()

        error_message: str | None = None
        status_code = 500
        try:
            response = await call_next(request)
            status_code = response.status_code
            return response
        except Exception as e:
            error_message = mask_exception_message(str(e), self._mask_fields, self._secret)
            raise
        finally:
            duration_ms = int((time.monotonic() - start_time) * 1000)
            if error_message:
                logger.error(
                    "REQUEST request_id=%s actor=%s method=%s path=%s status=%s "
                    "duration_ms=%d error=%s",
                    request_id,
                    actor,
                    request.method,
                    safe_path,
                    status_code,
                    duration_ms,
                    sanitize_log_value(error_message),
                )
            else:
                logger.info(
                    "REQUEST request_id=%s actor=%s method=%s path=%s status=%s "
                    "duration_ms=%d",
                    request_id,
                    actor,
                    request.method,
                    safe_path,
                    status_code,
                    duration_ms,
                )
