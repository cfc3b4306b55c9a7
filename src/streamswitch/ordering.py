# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Stable stream ordering across repeated scans.

DOM insertion order is not stable, so a naive re-scan would make button N
jump between participants. ``OrderBook`` remembers a durable slot per tile
id; the ordered view sorts individual tiles by slot and puts grid tiles
last.

Slots are first-fit: a newcomer gets the lowest slot no tracked id holds.
By default a slot is never reclaimed, even when its id disappears for a
while. ``evict_after=N`` drops an id (and frees its slot) after N
consecutive orderings in which it was absent; the id is a newcomer again
if it returns.

NOTE: Not thread-safe. ``StreamEngine`` serializes access with its lock.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from . import Stream, TileKind, TileRecord

logger = logging.getLogger("streamswitch.ordering")


class OrderBook:
    """Durable id → slot mapping with an optional absence-based eviction policy."""

    def __init__(self, *, evict_after: int | None = None) -> None:
        if evict_after is not None and evict_after < 1:
            raise ValueError("evict_after must be >= 1 or None")
        self._evict_after = evict_after
        self._slots: dict[str, int] = {}
        self._absent: dict[str, int] = {}

    @property
    def evict_after(self) -> int | None:
        return self._evict_after

    def __len__(self) -> int:
        return len(self._slots)

    def __contains__(self, stream_id: object) -> bool:
        return stream_id in self._slots

    def slot_of(self, stream_id: str) -> int | None:
        return self._slots.get(stream_id)

    def snapshot(self) -> dict[str, int]:
        """Copy of the current id → slot mapping."""
        return dict(self._slots)

    def _track_absence(self, present: set[str]) -> None:
        if self._evict_after is None:
            return
        for stream_id in list(self._slots):
            if stream_id in present:
                self._absent.pop(stream_id, None)
                continue
            misses = self._absent.get(stream_id, 0) + 1
            if misses >= self._evict_after:
                slot = self._slots.pop(stream_id)
                self._absent.pop(stream_id, None)
                logger.debug("Evicted %s (slot %d) after %d absent refreshes", stream_id, slot, misses)
            else:
                self._absent[stream_id] = misses

    def _next_free_slot(self) -> int:
        used = set(self._slots.values())
        slot = 0
        while slot in used:
            slot += 1
        return slot

    def order(self, records: Sequence[TileRecord]) -> list[Stream]:
        """Assign slots to newcomers and return the stable ordered view.

        ``records`` must already be deduplicated (one record per id).
        """
        self._track_absence({r.id for r in records})

        placed: list[tuple[int, TileRecord]] = []
        newcomers: list[TileRecord] = []
        for rec in records:
            slot = self._slots.get(rec.id)
            if slot is None:
                newcomers.append(rec)
            else:
                placed.append((slot, rec))

        # sorted() is stable: ties keep scan order
        newcomers = sorted(newcomers, key=lambda r: r.kind is not TileKind.INDIVIDUAL)
        for rec in newcomers:
            slot = self._next_free_slot()
            self._slots[rec.id] = slot
            placed.append((slot, rec))

        placed.sort(key=lambda item: (item[1].kind is TileKind.GRID, item[0]))
        return [Stream(id=rec.id, name=rec.name, kind=rec.kind) for _slot, rec in placed]
