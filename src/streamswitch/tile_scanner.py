# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tile scanning: page-side enumeration + Python-side normalization.

The page function is read-only and returns plain JSON; everything that
decides identity (kind, name, geometry defaults) happens in
``parse_tile_records`` so it can be tested without a browser.
"""

from __future__ import annotations

import logging
import math

from . import Rect, TileKind, TileRecord

logger = logging.getLogger("streamswitch.tile_scanner")

GRID_NAME = "GRID"

# ---------------------------------------------------------------------------
# Page-side scan: one querySelectorAll, geometry read in a try block
# ---------------------------------------------------------------------------

TILE_SCAN_JS = """(cfg) => {
  const sel = 'div[' + cfg.tileAttr + '] ' + cfg.buttonSelector;
  const buttons = Array.from(document.querySelectorAll(sel));
  const out = [];
  buttons.forEach((btn, index) => {
    const tile = btn.closest('[' + cfg.tileAttr + ']');
    const id = tile ? tile.getAttribute(cfg.tileAttr) : null;
    if (!id) return;
    let rect = {x: 0, y: 0, width: 0, height: 0};
    try {
      const r = tile.getBoundingClientRect();
      rect = {x: r.x, y: r.y, width: r.width, height: r.height};
    } catch (_) {}
    out.push({
      id: id,
      index: index,
      mediaCount: tile.querySelectorAll(cfg.mediaSelector).length,
      gridLike: !!tile.querySelector(cfg.gridLikeSelector),
      rect: rect
    });
  });
  return out;
}"""


def classify_kind(media_count: int, grid_like: bool) -> TileKind:
    """Grid when the tile holds 2+ media surfaces or carries a grid/gallery class."""
    if media_count >= 2 or grid_like:
        return TileKind.GRID
    return TileKind.INDIVIDUAL


def _num(value: object) -> float:
    """Coerce a geometry field; anything unreadable becomes 0."""
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return 0.0
    if not math.isfinite(value):
        return 0.0
    return float(value)


def _parse_rect(raw: object) -> Rect:
    if not isinstance(raw, dict):
        return Rect()
    return Rect(
        x=_num(raw.get("x")),
        y=_num(raw.get("y")),
        width=_num(raw.get("width")),
        height=_num(raw.get("height")),
    )


def parse_tile_records(raw: object) -> list[TileRecord]:
    """Normalize a raw scan payload into TileRecords.

    Accepts the dicts produced by ``TILE_SCAN_JS`` and, for older callers,
    bare id strings. Entries without a usable id are dropped: tiles can be
    mid-transition while the page re-renders.
    """
    if not isinstance(raw, list):
        logger.debug("Scan payload is not a list: %r", type(raw).__name__)
        return []

    records: list[TileRecord] = []
    for pos, item in enumerate(raw):
        if isinstance(item, str):
            if item:
                records.append(TileRecord(id=item, name=f"Stream {pos + 1}", kind=TileKind.INDIVIDUAL))
            continue
        if not isinstance(item, dict):
            continue
        tile_id = item.get("id")
        if not isinstance(tile_id, str) or not tile_id:
            continue
        media_count = item.get("mediaCount", 0)
        if not isinstance(media_count, int) or isinstance(media_count, bool):
            media_count = 0
        kind = classify_kind(media_count, bool(item.get("gridLike", False)))
        index = item.get("index", pos)
        if not isinstance(index, int) or isinstance(index, bool):
            index = pos
        name = GRID_NAME if kind is TileKind.GRID else f"Stream {index + 1}"
        records.append(TileRecord(id=tile_id, name=name, kind=kind, rect=_parse_rect(item.get("rect"))))
    return records
