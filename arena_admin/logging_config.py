"""Structured logging for the settlement service.

Every log line carries the context it was written in: the HTTP request
(request_id), the acting admin (admin_id) and, inside a bulk pass, the
settlement kind and tournament. Money values are rendered as fixed
two-place strings so JSON logs never show float or repr noise.
"""

import logging
import sys
from contextlib import contextmanager
from decimal import Decimal
from typing import Iterator, Optional

import structlog
from structlog.types import EventDict, Processor

from arena_admin.config import Settings

CENT = Decimal("0.01")

QUIET_LOGGERS = ("uvicorn.access", "sqlalchemy.engine", "httpx", "httpcore")


def render_money(_, __, event_dict: EventDict) -> EventDict:
    """Render Decimal values as "12.50"."""
    for key, value in event_dict.items():
        if isinstance(value, Decimal) and value.is_finite():
            event_dict[key] = str(value.quantize(CENT))
    return event_dict


def configure_logging(settings: Settings) -> None:
    """Route structlog and stdlib logging through one stdout handler.

    Production always logs JSON; elsewhere json_logs picks the renderer.
    """
    use_json = settings.json_logs or settings.app_env == "production"

    shared: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        render_money,
    ]
    if use_json:
        shared.append(structlog.processors.format_exc_info)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        shared.append(structlog.dev.set_exc_info)
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(
        structlog.stdlib.ProcessorFormatter(
            foreign_pre_chain=shared,
            processors=[structlog.stdlib.ProcessorFormatter.remove_processors_meta, renderer],
        )
    )

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, settings.log_level.upper()))

    for name in QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def bind_request(request_id: str) -> None:
    """Start a fresh log context for one HTTP request."""
    structlog.contextvars.clear_contextvars()
    structlog.contextvars.bind_contextvars(request_id=request_id)


def bind_admin(admin_id: str) -> None:
    structlog.contextvars.bind_contextvars(admin_id=admin_id)


@contextmanager
def settlement_context(
    kind: str,
    tournament_id: str,
    admin_id: Optional[str] = None,
) -> Iterator[None]:
    """Tag every log line of one bulk settlement pass.

    Keys bound here are removed again on exit; the request's own
    context is left as it was.
    """
    keys = {"settlement": kind, "tournament_id": tournament_id}
    if admin_id:
        keys["admin_id"] = admin_id
    with structlog.contextvars.bound_contextvars(**keys):
        yield
