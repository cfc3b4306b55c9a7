# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""structlog + stdlib bridge. Console: ConsoleRenderer, --json-logs: JSONRenderer.

One bridge process serves one conference page, so the target and CDP endpoint
are bound once as process context and appear on every line, uvicorn and
websockets records included. Per-connection fields (the controller address)
are layered on top with ``structlog.contextvars.bound_contextvars``.

Leaf module with no streamswitch imports. Safe to call early in startup.
"""

from __future__ import annotations

import logging
import sys
from collections.abc import Mapping

import structlog

# Third-party loggers that drown out bridge output at INFO.
_QUIET_LOGGERS = ("websockets.server", "websockets.client", "uvicorn.access")


def configure(
    *,
    json_output: bool = False,
    level: str = "INFO",
    context: Mapping[str, object] | None = None,
) -> None:
    """Configure structlog with stdlib bridge.

    Args:
        json_output: True for JSON lines (log shipping), False for human-readable.
        level: Root logger level (default INFO).
        context: Process-wide fields merged into every record. Replaces any
            context bound by a previous call.
    """
    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    renderer = structlog.processors.JSONRenderer() if json_output else structlog.dev.ConsoleRenderer()

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    structlog.contextvars.clear_contextvars()
    if context:
        structlog.contextvars.bind_contextvars(**context)
