# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared builders for engine tests: tile records and a fake tile source."""

from __future__ import annotations

from streamswitch import Rect, TileKind, TileRecord


def tile(tile_id: str, kind: str = "individual", area: float = 100.0, name: str | None = None) -> TileRecord:
    """TileRecord with a 1px-high rect so width == area."""
    k = TileKind(kind)
    return TileRecord(
        id=tile_id,
        name=name or ("GRID" if k is TileKind.GRID else f"Stream {tile_id}"),
        kind=k,
        rect=Rect(x=0.0, y=0.0, width=float(area), height=1.0),
    )


class FakeTileSource:
    """In-memory TileSource: scan returns ``records``, activate clicks ids on the page."""

    def __init__(self, records: list[TileRecord] | None = None) -> None:
        self.records = list(records or [])
        self.clicked: list[str] = []
        self.scans = 0
        self.unclickable: set[str] = set()

    async def scan(self) -> list[TileRecord]:
        self.scans += 1
        return list(self.records)

    async def activate(self, stream_id: str) -> bool:
        if stream_id in self.unclickable or stream_id not in {r.id for r in self.records}:
            return False
        self.clicked.append(stream_id)
        return True
