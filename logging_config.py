# ─────────────────────────────────────────────────────────────────
# logging_config.py - Logging Setup & Request Context
#
# Every log line carries a timestamp, severity and logger name.
# Lines written while serving a request also carry its request id:
#   2026-03-01 10:34:22 - INFO - [routes] - [req=9f1c…] 💓 Heartbeat: ...
#
# The request id travels EXPLICITLY: the middleware builds a
# RequestContext, routes receive it through Depends() and pass it
# along as an argument. Nothing looks it up from ambient state.
# ─────────────────────────────────────────────────────────────────

import logging
import uuid
from dataclasses import dataclass

from fastapi import Request

LOG_FORMAT = "%(asctime)s - %(levelname)s - [%(name)s] - %(message)s"

REQUEST_ID_HEADER = "X-Request-ID"


def configure_logging(level: str = "INFO") -> None:
    """Set the global log format. Later calls only change the level."""
    logging.basicConfig(level=level.upper(), format=LOG_FORMAT)
    logging.getLogger().setLevel(level.upper())


class RequestLoggerAdapter(logging.LoggerAdapter):
    """Prefixes every message with the request id it was logged under."""

    def process(self, msg, kwargs):
        return f"[req={self.extra['request_id']}] {msg}", kwargs


def new_request_id() -> str:
    """Random 32-character hex id."""
    return uuid.uuid4().hex


@dataclass(frozen=True)
class RequestContext:
    request_id: str
    logger: logging.LoggerAdapter

    @classmethod
    def create(cls, request_id: str, logger_name: str = "routes") -> "RequestContext":
        logger = RequestLoggerAdapter(
            logging.getLogger(logger_name), {"request_id": request_id}
        )
        return cls(request_id=request_id, logger=logger)


def get_request_context(request: Request) -> RequestContext:
    """
    FastAPI dependency: the context the middleware attached to this request.

    Falls back to a fresh context if the middleware did not run
    (e.g. a router mounted on a bare app in a test).
    """
    context = getattr(request.state, "context", None)
    if context is None:
        incoming = request.headers.get(REQUEST_ID_HEADER) or new_request_id()
        context = RequestContext.create(incoming)
        request.state.context = context
    return context
