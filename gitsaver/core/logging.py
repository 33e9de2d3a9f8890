"""Structured logging via structlog.

Configured once by ``create_app()``. Modules keep using
``logging.getLogger(__name__)``; the root handler renders stdlib records
through structlog's ``ProcessorFormatter`` so both paths produce the same
output.

Renderer selection:
  debug=True : ``ConsoleRenderer`` for local development.
  debug=False: ``JSONRenderer`` for log shipping.

Every line carries ``request_id`` and, for GitHub deliveries,
``delivery_id``, read from the ContextVars populated by
``RequestIdMiddleware``. Values passed via ``extra=`` are merged in as
top-level keys.
"""

from __future__ import annotations

import logging
import sys

import structlog

from gitsaver.core.middleware import get_delivery_id, get_request_id

_HANDLER_NAME = "gitsaver"


def _inject_context_vars(
    logger: logging.Logger,
    method: str,
    event_dict: dict,
) -> dict:
    """Structlog processor: inject request_id and delivery_id from ContextVars."""
    request_id = get_request_id()
    delivery_id = get_delivery_id()
    if request_id:
        event_dict["request_id"] = request_id
    if delivery_id:
        event_dict["delivery_id"] = delivery_id
    return event_dict


def configure_structlog(debug: bool = False) -> None:
    """Configure structlog and the stdlib root logger.

    Safe to call more than once; the root handler installed by a previous
    call is replaced rather than duplicated.
    """
    shared_processors: list = [
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.ExtraAdder(),
        structlog.processors.TimeStamper(fmt="iso"),
        _inject_context_vars,
        structlog.processors.StackInfoRenderer(),
    ]

    if debug:
        final_processors: list = [structlog.dev.ConsoleRenderer()]
    else:
        final_processors = [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer(),
        ]

    structlog.configure(
        processors=shared_processors
        + [structlog.stdlib.ProcessorFormatter.wrap_for_formatter],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            *final_processors,
        ],
    )

    handler = logging.StreamHandler(sys.stdout)
    handler.setFormatter(formatter)
    handler.set_name(_HANDLER_NAME)

    root = logging.getLogger()
    for existing in [h for h in root.handlers if h.get_name() == _HANDLER_NAME]:
        root.removeHandler(existing)
    root.addHandler(handler)
    root.setLevel(logging.DEBUG if debug else logging.INFO)

    # httpx logs every request line at INFO; keep that out of production logs.
    logging.getLogger("httpx").setLevel(logging.DEBUG if debug else logging.WARNING)
