# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Stream Switch: remote focus control for video-conference tiles.

Attaches to a running conferencing client over CDP and keeps a stable,
deduplicated list of video tiles so a controller button always means the
same participant:
- streams: ordered tile list (individual tiles by durable slot, grid last)
- pairs: inferred big/small partner tiles for one-key swapping
"""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum


class TileKind(StrEnum):
    """Tile flavour reported by the scanner."""

    INDIVIDUAL = "individual"
    GRID = "grid"


@dataclass(frozen=True, slots=True)
class Rect:
    """Tile geometry in CSS pixels. Zeroed when it cannot be read."""

    x: float = 0.0
    y: float = 0.0
    width: float = 0.0
    height: float = 0.0

    @property
    def area(self) -> float:
        return max(0.0, self.width) * max(0.0, self.height)

    def to_dict(self) -> dict:
        return {"x": self.x, "y": self.y, "width": self.width, "height": self.height, "area": self.area}


@dataclass(frozen=True, slots=True)
class TileRecord:
    """One scanned tile. Lives for a single scan cycle."""

    id: str
    name: str
    kind: TileKind
    rect: Rect = field(default_factory=Rect)


@dataclass(frozen=True, slots=True)
class Stream:
    """A logical stream as exposed to controllers (slot stripped)."""

    id: str
    name: str
    kind: TileKind

    def to_dict(self) -> dict:
        return {"id": self.id, "name": self.name, "kind": str(self.kind)}


@dataclass(frozen=True)
class EngineStatus:
    """Snapshot returned by ``StreamEngine.get_status``."""

    streams: tuple[Stream, ...]
    current_index: int
    pairs: list[tuple[str, str]] = field(default_factory=list)

    @property
    def total_streams(self) -> int:
        return len(self.streams)

    def to_dict(self) -> dict:
        """JSON shape shared by the HTTP API and the status broadcast."""
        return {
            "streams": [s.to_dict() for s in self.streams],
            "currentIndex": self.current_index,
            "totalStreams": self.total_streams,
            "pairs": [[a, b] for a, b in self.pairs],
        }
