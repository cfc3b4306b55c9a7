# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Navigation state machine over the stable stream list.

``StreamEngine`` owns the durable books (slot order, partner pairs) and the
current focus index. Its only side effect on the page goes through the
injected ``TileSource.activate`` capability, so it runs the same against a
live page or a fake in tests.

Every public coroutine holds the engine lock for its whole duration: scans
and switches never interleave, even when the bridge handles several
requests at once.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Protocol

from . import EngineStatus, Stream, TileRecord
from .dedupe import dedupe_prefer_individual
from .ordering import OrderBook
from .pairing import PairBook

logger = logging.getLogger("streamswitch.engine")


class TileSource(Protocol):
    """Where tiles come from and how one gets focused."""

    async def scan(self) -> list[TileRecord]:
        """Return the tiles currently rendered (read-only)."""
        ...

    async def activate(self, stream_id: str) -> bool:
        """Click the focus control of ``stream_id``. False when it is not on the page."""
        ...


class StreamEngine:
    """Tracks the stream list and current focus, backed by a single click primitive."""

    def __init__(
        self,
        source: TileSource,
        *,
        order_book: OrderBook | None = None,
        pair_book: PairBook | None = None,
    ) -> None:
        self.source = source
        self.order_book = order_book if order_book is not None else OrderBook()
        self.pair_book = pair_book if pair_book is not None else PairBook()
        self._streams: tuple[Stream, ...] = ()
        self._current_index = 0
        self._lock = asyncio.Lock()

    @property
    def streams(self) -> tuple[Stream, ...]:
        return self._streams

    @property
    def current_index(self) -> int:
        return self._current_index

    # ── Unlocked internals (called with the lock held) ───────────────

    async def _refresh(self) -> tuple[Stream, ...]:
        raw = await self.source.scan()
        unique = dedupe_prefer_individual(raw)
        self.pair_book.learn(unique)
        self._streams = tuple(self.order_book.order(unique))
        if self._current_index >= len(self._streams):
            self._current_index = max(0, len(self._streams) - 1)
        logger.debug("Refreshed streams: raw=%d unique=%d", len(raw), len(self._streams))
        return self._streams

    async def _switch_by_id(self, stream_id: str) -> bool:
        if not await self.source.activate(stream_id):
            logger.info("Stream %s not found on page", stream_id)
            return False
        position = next((i for i, s in enumerate(self._streams) if s.id == stream_id), -1)
        self._current_index = max(0, position)
        logger.info("Switched to stream %s (index=%d)", stream_id, self._current_index)
        return True

    async def _switch_by_index(self, index: int) -> bool:
        if index < 0 or index >= len(self._streams):
            logger.info("Invalid stream index %d (available: %d)", index, len(self._streams))
            return False
        return await self._switch_by_id(self._streams[index].id)

    async def _ensure_streams(self) -> bool:
        if not self._streams:
            await self._refresh()
        return bool(self._streams)

    async def _step(self, delta: int) -> bool:
        if not await self._ensure_streams():
            logger.info("No streams available")
            return False
        self._current_index = (self._current_index + delta) % len(self._streams)
        return await self._switch_by_index(self._current_index)

    # ── Command surface ──────────────────────────────────────────────

    async def refresh_streams(self) -> list[Stream]:
        """Re-scan the page and rebuild the stable stream list. No click."""
        async with self._lock:
            return list(await self._refresh())

    async def switch_to_stream_by_id(self, stream_id: str) -> bool:
        async with self._lock:
            return await self._switch_by_id(stream_id)

    async def switch_to_stream_by_index(self, index: int) -> bool:
        async with self._lock:
            return await self._switch_by_index(index)

    async def switch_to_next_stream(self) -> bool:
        async with self._lock:
            return await self._step(1)

    async def switch_to_previous_stream(self) -> bool:
        async with self._lock:
            return await self._step(-1)

    def get_partner_id(self, stream_id: str) -> str | None:
        return self.pair_book.partner_of(stream_id)

    async def swap_with_partner_by_id(self, stream_id: str) -> bool:
        async with self._lock:
            partner = self.pair_book.partner_of(stream_id)
            if partner is None:
                return False
            return await self._switch_by_id(partner)

    async def swap_current_focused(self) -> bool:
        """Focus the partner of the current stream, if one was learned."""
        async with self._lock:
            if not await self._ensure_streams():
                return False
            current = self._streams[self._current_index].id
            partner = self.pair_book.partner_of(current)
            if partner is None:
                logger.info("Stream %s has no known partner", current)
                return False
            return await self._switch_by_id(partner)

    async def get_status(self) -> EngineStatus:
        async with self._lock:
            return EngineStatus(
                streams=self._streams,
                current_index=self._current_index,
                pairs=self.pair_book.pairs(),
            )
