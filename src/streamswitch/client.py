# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Controller-side counterpart of the bridge: REST client + status subscriber.

``BridgeClient`` wraps the HTTP API (httpx). ``StatusSubscriber`` follows the
WebSocket broadcast and, when the socket drops, retries on a fixed interval
until it reconnects. At most one reconnect loop runs at a time and it ends
as soon as a connection is established.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Awaitable, Callable
from contextlib import suppress
from typing import Any
from urllib.parse import quote

import httpx
from websockets.asyncio.client import connect as ws_connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from .errors import BridgeApiError

logger = logging.getLogger("streamswitch.client")

DEFAULT_BASE_URL = "http://localhost:3333"


class BridgeClient:
    """Async client for the bridge REST API."""

    def __init__(
        self,
        base_url: str = DEFAULT_BASE_URL,
        *,
        timeout: float = 10.0,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.base_url = base_url.rstrip("/")
        self._http = httpx.AsyncClient(base_url=self.base_url, timeout=timeout, transport=transport)

    async def __aenter__(self) -> BridgeClient:
        return self

    async def __aexit__(self, *args) -> None:
        await self.aclose()

    async def aclose(self) -> None:
        await self._http.aclose()

    async def _call(self, method: str, path: str) -> dict:
        try:
            resp = await self._http.request(method, path)
        except httpx.HTTPError as exc:
            raise BridgeApiError(f"Bridge unreachable at {self.base_url}: {exc}") from exc
        try:
            data = resp.json()
        except ValueError:
            data = {}
        if resp.is_error:
            message = data.get("error") or data.get("message") or f"API call failed ({resp.status_code})"
            raise BridgeApiError(message, status_code=resp.status_code, hint=data.get("hint", ""))
        return data

    async def health(self) -> dict:
        return await self._call("GET", "/health")

    async def target_status(self) -> dict:
        return await self._call("GET", "/api/discord/status")

    async def status(self) -> dict:
        return await self._call("GET", "/api/streams")

    async def refresh(self) -> dict:
        return await self._call("POST", "/api/streams/refresh")

    async def switch_by_id(self, stream_id: str) -> bool:
        path = f"/api/streams/switch-by-id/{quote(stream_id, safe='')}"
        return bool((await self._call("POST", path)).get("success"))

    async def switch_by_index(self, index: int) -> bool:
        return bool((await self._call("POST", f"/api/streams/switch-by-index/{index}")).get("success"))

    async def next(self) -> bool:
        return bool((await self._call("POST", "/api/streams/next")).get("success"))

    async def previous(self) -> bool:
        return bool((await self._call("POST", "/api/streams/previous")).get("success"))

    async def swap(self) -> bool:
        return bool((await self._call("POST", "/api/streams/swap")).get("success"))

    async def press_button(self, button_number: int) -> dict:
        return await self._call("POST", f"/api/stream-deck/button/{button_number}")


StatusCallback = Callable[[dict], Any]
ErrorCallback = Callable[[str], Any]


class StatusSubscriber:
    """Follows ``stream_status`` / ``discord_error`` broadcasts with auto-reconnect."""

    def __init__(
        self,
        ws_url: str,
        *,
        on_status: StatusCallback,
        on_error: ErrorCallback | None = None,
        reconnect_interval: float = 5.0,
        connect: Callable[[str], Awaitable[Any]] | None = None,
    ) -> None:
        self.ws_url = ws_url
        self.on_status = on_status
        self.on_error = on_error
        self.reconnect_interval = reconnect_interval
        self._connect = connect or ws_connect
        self._ws: Any = None
        self._reader: asyncio.Task | None = None
        self._reconnect_task: asyncio.Task | None = None
        self._closed = False

    @property
    def connected(self) -> bool:
        return self._ws is not None

    @property
    def reconnecting(self) -> bool:
        return self._reconnect_task is not None and not self._reconnect_task.done()

    async def start(self) -> None:
        """Connect now, or fall back to the reconnect loop."""
        self._closed = False
        if not await self.connect():
            self.schedule_reconnect()

    async def connect(self) -> bool:
        """One connection attempt. True when subscribed."""
        try:
            ws = await self._connect(self.ws_url)
        except (OSError, TimeoutError, WebSocketException) as exc:
            logger.info("Status channel unavailable (%s): %s", self.ws_url, exc)
            return False
        self._ws = ws
        self._cancel_reconnect()
        self._reader = asyncio.create_task(self._read_loop(ws), name="streamswitch-status-reader")
        logger.info("Status channel connected (%s)", self.ws_url)
        return True

    def schedule_reconnect(self) -> None:
        """Start the fixed-interval reconnect loop unless one is already running."""
        if self._closed or self.reconnecting:
            return
        self._reconnect_task = asyncio.create_task(self._reconnect_loop(), name="streamswitch-reconnect")

    def _cancel_reconnect(self) -> None:
        task = self._reconnect_task
        self._reconnect_task = None
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()

    async def _reconnect_loop(self) -> None:
        while not self._closed:
            await asyncio.sleep(self.reconnect_interval)
            logger.info("Attempting to reconnect status channel...")
            if await self.connect():
                return

    def _dispatch(self, raw: str | bytes) -> None:
        try:
            message = json.loads(raw)
        except ValueError as exc:
            logger.warning("Failed to parse status message: %s", exc)
            return
        if not isinstance(message, dict):
            return
        if message.get("type") == "stream_status":
            self.on_status(message.get("data") or {})
        elif message.get("type") == "discord_error" and self.on_error is not None:
            self.on_error(str(message.get("error", "")))

    async def _read_loop(self, ws: Any) -> None:
        try:
            async for raw in ws:
                self._dispatch(raw)
        except ConnectionClosed as exc:
            logger.info("Status channel closed: %s", exc)
        finally:
            if self._ws is ws:
                self._ws = None
            if not self._closed:
                logger.info("Status channel disconnected")
                self.schedule_reconnect()

    async def close(self) -> None:
        self._closed = True
        self._cancel_reconnect()
        ws = self._ws
        self._ws = None
        if ws is not None:
            with suppress(Exception):
                await ws.close()
        if self._reader is not None:
            self._reader.cancel()
            with suppress(asyncio.CancelledError):
                await self._reader
            self._reader = None
