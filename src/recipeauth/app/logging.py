"""JSON logging for the auth service.

Every record carries the request's trace id and, once the session
middleware has resolved the caller, the caller's user id. Anything shaped
like a JWT is masked before a handler sees it, and repeats of one event
are throttled so a credential-stuffing burst cannot flood the log.
"""

import logging
import re
import sys
import time
from collections import defaultdict, deque
from collections.abc import Callable
from contextvars import ContextVar
from dataclasses import dataclass, replace
from datetime import UTC, datetime
from typing import Any
from uuid import uuid4

from pythonjsonlogger import jsonlogger

from recipeauth.app.config import LoggingConfig, get_settings


@dataclass(frozen=True)
class RequestContext:
    trace_id: str
    user_id: str | None = None


_request_ctx: ContextVar[RequestContext | None] = ContextVar(
    "recipeauth_request", default=None
)


def bind_request(trace_id: str | None = None) -> str:
    """Start a request context, generating a trace id if none was sent."""
    ctx = RequestContext(trace_id=trace_id or uuid4().hex)
    _request_ctx.set(ctx)
    return ctx.trace_id


def bind_user(user_id: str | None) -> None:
    """Attach the resolved caller to the current request context."""
    ctx = _request_ctx.get()
    if ctx is not None:
        _request_ctx.set(replace(ctx, user_id=user_id))


def current_request() -> RequestContext | None:
    return _request_ctx.get()


def unbind_request() -> None:
    _request_ctx.set(None)


_JWT_RE = re.compile(r"eyJ[\w-]+\.[\w-]+\.[\w-]+")
_JWT_MASK = "[redacted-jwt]"
_RECORD_ATTRS = frozenset(
    vars(logging.LogRecord("", 0, "", 0, "", (), None))
) | {"message", "asctime"}


class TokenRedactionFilter(logging.Filter):
    """Mask JWTs in the message and in string extras."""

    def filter(self, record: logging.LogRecord) -> bool:
        message = record.getMessage()
        if _JWT_RE.search(message):
            record.msg = _JWT_RE.sub(_JWT_MASK, message)
            record.args = ()

        for key, value in list(vars(record).items()):
            if key in _RECORD_ATTRS or not isinstance(value, str):
                continue
            if _JWT_RE.search(value):
                setattr(record, key, _JWT_RE.sub(_JWT_MASK, value))
        return True


class EventRateLimitFilter(logging.Filter):
    """Throttle repeats of one event to `per_minute`.

    Records are grouped by their `event` extra, falling back to the call
    site. ERROR and above always pass. The first record dropped in a burst
    is let through once with `rate_limited=True` so the burst stays visible.
    """

    def __init__(
        self, per_minute: int = 100, clock: Callable[[], float] = time.monotonic
    ) -> None:
        super().__init__()
        self._per_minute = per_minute
        self._clock = clock
        self._seen: dict[str, deque[float]] = defaultdict(deque)
        self._throttled: set[str] = set()

    @staticmethod
    def _key(record: logging.LogRecord) -> str:
        event = getattr(record, "event", None)
        return str(event) if event else f"{record.name}:{record.lineno}"

    def filter(self, record: logging.LogRecord) -> bool:
        if record.levelno >= logging.ERROR:
            return True

        key = self._key(record)
        now = self._clock()
        window = self._seen[key]
        while window and now - window[0] >= 60:
            window.popleft()

        if len(window) < self._per_minute:
            self._throttled.discard(key)
            window.append(now)
            return True

        if key in self._throttled:
            return False
        self._throttled.add(key)
        record.rate_limited = True
        return True


class AuthJsonFormatter(jsonlogger.JsonFormatter):
    """JSON lines with service metadata and the request context.

    Explicit `trace_id` / `user_id` extras on a record win over the
    context values.
    """

    def __init__(self, config: LoggingConfig | None = None, **kwargs: Any) -> None:
        super().__init__(**kwargs)
        config = config or get_settings().logging
        self._static = {
            "service": config.service_name,
            "schema_version": config.schema_version,
        }

    def add_fields(
        self,
        log_record: dict[str, Any],
        record: logging.LogRecord,
        message_dict: dict[str, Any],
    ) -> None:
        super().add_fields(log_record, record, message_dict)
        log_record["timestamp"] = datetime.fromtimestamp(record.created, UTC).isoformat()
        log_record["level"] = record.levelname
        log_record["logger"] = record.name
        log_record.update(self._static)

        ctx = _request_ctx.get()
        if ctx is not None:
            if log_record.get("trace_id") is None:
                log_record["trace_id"] = ctx.trace_id
            if log_record.get("user_id") is None and ctx.user_id is not None:
                log_record["user_id"] = ctx.user_id

        if record.exc_info:
            log_record["exception"] = self.formatException(record.exc_info)


def setup_logging(level: int | str | None = None) -> None:
    """Send all logging to stdout as JSON.

    Args:
        level: Root level. If None, uses LOGGING_LEVEL from settings.
    """
    config = get_settings().logging

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(AuthJsonFormatter(config))
    handler.addFilter(TokenRedactionFilter())
    handler.addFilter(EventRateLimitFilter(config.rate_limit_per_minute))

    root = logging.getLogger()
    root.handlers[:] = [handler]
    root.setLevel(level or config.level.upper())

    # LoggingMiddleware writes the access line
    for name in ("uvicorn", "uvicorn.error"):
        uv_logger = logging.getLogger(name)
        uv_logger.handlers[:] = [handler]
        uv_logger.propagate = False
    logging.getLogger("uvicorn.access").disabled = True

    for name in ("httpx", "httpcore", "aiosqlite"):
        logging.getLogger(name).setLevel(logging.WARNING)
