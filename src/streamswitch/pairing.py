# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Big/small partner inference for two-tile layouts.

When exactly two individual tiles are visible and one is at least twice the
area of the other, the layout is a primary/secondary view and the two ids
become partners. Symmetric two-person layouts (similar areas) never pair.
A learned pair outlives its tiles until a different qualifying pair is
observed for either id.

The mapping is kept symmetric: when an id gets a new partner, its previous
partner loses the back-reference. Overwriting only the two new entries would
leave that previous partner pointing one-way at an id that has moved on.
"""

from __future__ import annotations

import logging
from collections.abc import Sequence

from . import TileKind, TileRecord

logger = logging.getLogger("streamswitch.pairing")

PAIR_AREA_RATIO = 2.0


class PairBook:
    """Symmetric id → partner id mapping, last observed pair wins."""

    def __init__(self) -> None:
        self._partners: dict[str, str] = {}

    def __len__(self) -> int:
        return len(self._partners)

    def partner_of(self, stream_id: str) -> str | None:
        return self._partners.get(stream_id)

    def pairs(self) -> list[tuple[str, str]]:
        """All (id, partner) entries, both directions, in insertion order."""
        return list(self._partners.items())

    def learn(self, records: Sequence[TileRecord]) -> bool:
        """Record a partner pair if the layout qualifies. Returns True when learned."""
        individuals = [r for r in records if r.kind is TileKind.INDIVIDUAL]
        if len(individuals) != 2:
            return False
        a, b = individuals
        area_a, area_b = a.rect.area, b.rect.area
        if area_a <= 0 or area_b <= 0:
            return False
        ratio = max(area_a, area_b) / max(1.0, min(area_a, area_b))
        if ratio < PAIR_AREA_RATIO:
            return False
        big, small = (a, b) if area_a >= area_b else (b, a)
        # Old partners of either id lose their back-reference; the mapping stays symmetric
        for stream_id in (big.id, small.id):
            old = self._partners.pop(stream_id, None)
            if old is not None and self._partners.get(old) == stream_id:
                del self._partners[old]
        self._partners[big.id] = small.id
        self._partners[small.id] = big.id
        logger.debug("Learned partner pair big=%s small=%s ratio=%.2f", big.id, small.id, ratio)
        return True
