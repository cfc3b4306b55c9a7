# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Remote-evaluation channel to the conferencing client over CDP.

Attaches to an already-running Chromium-based client
(``--remote-debugging-port``) with Playwright's ``connect_over_cdp`` and
implements the engine's ``TileSource`` on top of ``page.evaluate``.

Every evaluation is bounded by ``eval_timeout``. A timeout or a dead
connection fails that call with ``TransportError`` and discards the
connection; the next call reconnects from scratch.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Awaitable, Callable
from contextlib import suppress
from typing import Any

from playwright.async_api import Browser, Page, Playwright, async_playwright
from playwright.async_api import Error as PlaywrightError

from . import TileRecord
from .config import TileSelectors
from .errors import EvaluationError, StreamSwitchError, TargetNotFoundError, TransportError
from .tile_scanner import TILE_SCAN_JS, parse_tile_records

logger = logging.getLogger("streamswitch.cdp_source")

AttachHook = Callable[[Page], Awaitable[None]]

_CONNECTION_DEAD_PATTERNS = (
    "target closed",
    "target page",
    "browser has been closed",
    "connection closed",
    "browser disconnected",
    "execution context was destroyed",
)

# Clicks the focus control of the first tile carrying the id. No selector
# interpolation: the id is compared as an attribute value.
_ACTIVATE_JS = """({cfg, id}) => {
  const tiles = document.querySelectorAll('div[' + cfg.tileAttr + ']');
  for (const tile of tiles) {
    if (tile.getAttribute(cfg.tileAttr) !== id) continue;
    const btn = tile.querySelector(cfg.buttonSelector);
    if (btn) { btn.click(); return true; }
  }
  return false;
}"""

_READY_STATE_JS = "() => document.readyState"


def _is_connection_dead_error(exc: Exception) -> bool:
    msg = str(exc).lower()
    return any(p in msg for p in _CONNECTION_DEAD_PATTERNS)


def find_target_page(browser: Browser, url_hint: str) -> Page | None:
    """First open page whose URL contains ``url_hint`` (any page when empty)."""
    for context in browser.contexts:
        for page in context.pages:
            if page.is_closed():
                continue
            if not url_hint or url_hint in page.url:
                return page
    return None


class CdpTileSource:
    """TileSource backed by a reusable CDP connection to the target page."""

    def __init__(
        self,
        endpoint: str,
        *,
        target_url_hint: str = "",
        selectors: TileSelectors | None = None,
        eval_timeout: float = 5.0,
    ) -> None:
        self.endpoint = endpoint
        self.target_url_hint = target_url_hint
        self.selectors = selectors or TileSelectors()
        self.eval_timeout = eval_timeout
        self._playwright: Playwright | None = None
        self._browser: Browser | None = None
        self._page: Page | None = None
        self._connect_lock = asyncio.Lock()
        self._attach_hooks: list[AttachHook] = []

    def add_attach_hook(self, hook: AttachHook) -> None:
        """Run ``hook(page)`` every time a fresh connection attaches to the target."""
        self._attach_hooks.append(hook)

    @property
    def connected(self) -> bool:
        return (
            self._browser is not None
            and self._browser.is_connected()
            and self._page is not None
            and not self._page.is_closed()
        )

    async def _discard(self) -> None:
        """Drop the current connection. Closing a CDP-attached browser only disconnects."""
        browser = self._browser
        self._browser = None
        self._page = None
        if browser is not None:
            with suppress(Exception):
                await browser.close()
            logger.info("CDP connection discarded (%s)", self.endpoint)

    async def _attach(self) -> Page:
        if self._playwright is None:
            self._playwright = await async_playwright().start()
        try:
            browser = await self._playwright.chromium.connect_over_cdp(
                self.endpoint, timeout=self.eval_timeout * 1000
            )
        except PlaywrightError as exc:
            raise TransportError(f"Chrome remote debugging connection failed: {exc.message}") from exc

        page = find_target_page(browser, self.target_url_hint)
        if page is None:
            with suppress(Exception):
                await browser.close()
            raise TargetNotFoundError(
                f"No page matching '{self.target_url_hint}' at {self.endpoint}",
                hint="Open the conference in the client, then retry.",
            )

        self._browser = browser
        self._page = page
        logger.info("Attached to target page %s via %s", page.url, self.endpoint)
        for hook in self._attach_hooks:
            try:
                await hook(page)
            except PlaywrightError as exc:
                logger.warning("Attach hook %s failed: %s", getattr(hook, "__name__", hook), exc.message)
        return page

    async def _get_page(self) -> Page:
        async with self._connect_lock:
            if self.connected:
                return self._page  # type: ignore[return-value]
            await self._discard()
            return await self._attach()

    async def evaluate(self, expression: str, arg: Any = None) -> Any:
        """Evaluate a page function in the target page and return its JSON value."""
        try:
            async with asyncio.timeout(self.eval_timeout):
                page = await self._get_page()
                return await page.evaluate(expression, arg)
        except TimeoutError as exc:
            await self._discard()
            raise TransportError(f"Remote evaluation timed out after {self.eval_timeout:g}s") from exc
        except StreamSwitchError:
            raise
        except PlaywrightError as exc:
            if _is_connection_dead_error(exc) or not self.connected:
                await self._discard()
                raise TransportError(f"Connection to target page lost: {exc.message}") from exc
            raise EvaluationError(f"Page script error: {exc.message}") from exc

    # ── TileSource ───────────────────────────────────────────────────

    async def scan(self) -> list[TileRecord]:
        raw = await self.evaluate(TILE_SCAN_JS, self.selectors.to_js_args())
        return parse_tile_records(raw)

    async def activate(self, stream_id: str) -> bool:
        clicked = await self.evaluate(_ACTIVATE_JS, {"cfg": self.selectors.to_js_args(), "id": stream_id})
        return bool(clicked)

    async def check_target(self) -> None:
        """Raise TransportError unless the target page answers an evaluation."""
        await self.evaluate(_READY_STATE_JS)

    async def close(self) -> None:
        await self._discard()
        if self._playwright is not None:
            with suppress(Exception):
                await self._playwright.stop()
            self._playwright = None
