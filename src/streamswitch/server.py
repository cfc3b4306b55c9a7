# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Stream Switch bridge server.

Builds one ``StreamEngine`` on top of a CDP tile source and serves the
command bridge with uvicorn. All logging goes to stderr.

Usage:
    streamswitch-server [--port 3333] [--cdp-endpoint http://127.0.0.1:9222] [--target discord.com]
"""

from __future__ import annotations

import logging
import sys

from .bridge import create_app
from .cdp_source import CdpTileSource
from .config import BridgeConfig, parse_args
from .engine import StreamEngine
from .hotkeys import make_attach_hook
from .ordering import OrderBook

logger = logging.getLogger("streamswitch.server")


def build_app(config: BridgeConfig):
    """Wire source → engine → bridge. Exposed for embedding and tests."""
    source = CdpTileSource(
        config.cdp_endpoint,
        target_url_hint=config.target_url_hint,
        selectors=config.selectors,
        eval_timeout=config.eval_timeout,
    )
    engine = StreamEngine(source, order_book=OrderBook(evict_after=config.evict_after))
    if config.hotkeys:
        source.add_attach_hook(make_attach_hook(engine, modifier=config.hotkey_modifier))
    return create_app(
        engine,
        check_target=source.check_target,
        broadcast_interval=config.broadcast_interval,
        error_log_interval=config.error_log_interval,
        on_shutdown=source.close,
    )


def main(argv: list[str] | None = None) -> None:
    """Entry point for the bridge server."""
    config = parse_args(argv if argv is not None else sys.argv[1:])

    # Configure structlog BEFORE any log output
    from .logging_config import configure as configure_logging

    configure_logging(
        json_output=config.json_logs,
        level=config.log_level,
        context={"target": config.target_url_hint, "cdp": config.cdp_endpoint},
    )

    if config.host not in ("127.0.0.1", "::1", "localhost"):
        logger.warning(
            "SECURITY: bridge listening on %s (reachable by anyone on the network).",
            config.host,
        )

    app = build_app(config)
    logger.info(
        "Starting Stream Switch bridge (http://%s:%d, cdp=%s, target=%s, evict_after=%s)",
        config.host,
        config.port,
        config.cdp_endpoint,
        config.target_url_hint,
        config.evict_after,
    )

    import uvicorn

    uvicorn.run(app, host=config.host, port=config.port, log_config=None, log_level=config.log_level.lower())


if __name__ == "__main__":
    main()
