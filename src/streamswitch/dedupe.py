# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Collapse tiles reported more than once (grid wrapper + standalone tile)."""

from __future__ import annotations

from collections.abc import Iterable

from . import TileKind, TileRecord


def dedupe_prefer_individual(records: Iterable[TileRecord]) -> list[TileRecord]:
    """Keep one record per id, preferring the individual-kind record.

    Individual records carry the precise geometry for a participant, so they
    replace a grid record seen earlier. Between two individual records the
    first in scan order wins.
    """
    best: dict[str, TileRecord] = {}
    for rec in records:
        prev = best.get(rec.id)
        if prev is None:
            best[rec.id] = rec
        elif prev.kind is not TileKind.INDIVIDUAL and rec.kind is TileKind.INDIVIDUAL:
            best[rec.id] = rec
    return list(best.values())
