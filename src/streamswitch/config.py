# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Bridge configuration: target-page selectors, CLI flags, env overrides.

Leaf module, stdlib only. Env vars (``STREAMSWITCH_*``) override flags,
matching how the server is usually launched from a macro-pad helper script.
"""

from __future__ import annotations

import argparse
import os
from contextlib import suppress
from dataclasses import dataclass, field

_TRUTHY = ("1", "true", "yes")


@dataclass(frozen=True)
class TileSelectors:
    """DOM structure of the target page. Page-specific constants."""

    tile_attribute: str = "data-selenium-video-tile"
    button_selector: str = '.focusTarget__54e4b[role="button"]'
    grid_like_selector: str = '[class*="grid" i],[class*="gallery" i]'
    media_selector: str = "video, canvas"

    def to_js_args(self) -> dict:
        """Argument object passed to the page-side scan/activate functions."""
        return {
            "tileAttr": self.tile_attribute,
            "buttonSelector": self.button_selector,
            "gridLikeSelector": self.grid_like_selector,
            "mediaSelector": self.media_selector,
        }


@dataclass
class BridgeConfig:
    """Runtime configuration for the bridge process."""

    host: str = "127.0.0.1"
    port: int = 3333
    cdp_endpoint: str = "http://127.0.0.1:9222"
    target_url_hint: str = "discord.com"
    eval_timeout: float = 5.0  # seconds per remote evaluation
    broadcast_interval: float = 10.0  # status push period (seconds)
    error_log_interval: float = 60.0  # min gap between repeated status-check failure logs
    evict_after: int | None = None  # None = slots are never reclaimed
    hotkeys: bool = True
    hotkey_modifier: str = "alt"  # alt | ctrl | ctrl+shift
    json_logs: bool = False
    log_level: str = "INFO"
    selectors: TileSelectors = field(default_factory=TileSelectors)


def _env_flag(name: str) -> bool:
    return os.environ.get(name, "").strip().lower() in _TRUTHY


def parse_args(argv: list[str] | None = None) -> BridgeConfig:
    """Parse CLI args and env vars into a BridgeConfig."""
    defaults = BridgeConfig()
    parser = argparse.ArgumentParser(description="Stream Switch bridge server")
    parser.add_argument("--host", default=defaults.host, help=f"HTTP host (default: {defaults.host})")
    parser.add_argument("--port", type=int, default=defaults.port, help=f"HTTP port (default: {defaults.port})")
    parser.add_argument(
        "--cdp-endpoint",
        default=defaults.cdp_endpoint,
        help="Remote debugging endpoint of the conferencing client",
    )
    parser.add_argument(
        "--target",
        dest="target_url_hint",
        default=defaults.target_url_hint,
        help="Substring of the target page URL (default: discord.com)",
    )
    parser.add_argument(
        "--eval-timeout",
        type=float,
        default=defaults.eval_timeout,
        help="Seconds allowed per remote evaluation (default: 5)",
    )
    parser.add_argument(
        "--broadcast-interval",
        type=float,
        default=defaults.broadcast_interval,
        help="Seconds between status broadcasts (default: 10)",
    )
    parser.add_argument(
        "--evict-after",
        type=int,
        default=None,
        help="Reclaim a stream's slot after N consecutive refreshes without it (default: never)",
    )
    parser.add_argument("--no-hotkeys", action="store_true", default=False, help="Do not install page shortcuts")
    parser.add_argument(
        "--hotkey-modifier",
        choices=["alt", "ctrl", "ctrl+shift"],
        default=defaults.hotkey_modifier,
        help="Modifier for page shortcuts (default: alt)",
    )
    parser.add_argument("--json-logs", action="store_true", default=False, help="Emit JSON log lines")
    parser.add_argument("--log-level", default=defaults.log_level, help="Root log level (default: INFO)")
    args, _ = parser.parse_known_args(argv)

    # Env var overrides
    env_host = os.environ.get("STREAMSWITCH_HOST", "").strip()
    if env_host:
        args.host = env_host

    env_port = os.environ.get("STREAMSWITCH_PORT", "").strip() or os.environ.get("PORT", "").strip()
    if env_port:
        with suppress(ValueError):
            args.port = int(env_port)

    env_cdp = os.environ.get("STREAMSWITCH_CDP_ENDPOINT", "").strip()
    if env_cdp:
        args.cdp_endpoint = env_cdp

    env_target = os.environ.get("STREAMSWITCH_TARGET", "").strip()
    if env_target:
        args.target_url_hint = env_target

    env_timeout = os.environ.get("STREAMSWITCH_EVAL_TIMEOUT", "").strip()
    if env_timeout:
        with suppress(ValueError):
            args.eval_timeout = float(env_timeout)

    env_evict = os.environ.get("STREAMSWITCH_EVICT_AFTER", "").strip()
    if env_evict and args.evict_after is None:
        with suppress(ValueError):
            args.evict_after = int(env_evict)

    if args.evict_after is not None and args.evict_after < 1:
        parser.error("--evict-after must be >= 1")

    return BridgeConfig(
        host=args.host,
        port=args.port,
        cdp_endpoint=args.cdp_endpoint,
        target_url_hint=args.target_url_hint,
        eval_timeout=args.eval_timeout,
        broadcast_interval=args.broadcast_interval,
        evict_after=args.evict_after,
        hotkeys=not (args.no_hotkeys or _env_flag("STREAMSWITCH_NO_HOTKEYS")),
        hotkey_modifier=args.hotkey_modifier,
        json_logs=args.json_logs or _env_flag("STREAMSWITCH_JSON_LOGS"),
        log_level=args.log_level,
    )
