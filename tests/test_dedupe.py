# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Tests for duplicate-tile collapsing."""

from __future__ import annotations

from hypothesis import given, settings
from hypothesis import strategies as st

from streamswitch import TileKind
from streamswitch.dedupe import dedupe_prefer_individual
from tests._engine_helpers import tile


class TestDedupe:
    def test_unique_ids_untouched(self):
        recs = [tile("a"), tile("b"), tile("g", "grid")]
        assert dedupe_prefer_individual(recs) == recs

    def test_individual_replaces_grid(self):
        out = dedupe_prefer_individual([tile("a", "grid", 50), tile("a", "individual", 300)])
        assert len(out) == 1
        assert out[0].kind is TileKind.INDIVIDUAL
        assert out[0].rect.area == 300

    def test_grid_does_not_replace_individual(self):
        out = dedupe_prefer_individual([tile("a", "individual", 300), tile("a", "grid", 50)])
        assert len(out) == 1
        assert out[0].kind is TileKind.INDIVIDUAL

    def test_first_individual_wins(self):
        out = dedupe_prefer_individual([tile("a", area=10), tile("a", area=20)])
        assert out[0].rect.area == 10

    def test_two_grids_keep_first(self):
        out = dedupe_prefer_individual([tile("g", "grid", 1), tile("g", "grid", 2)])
        assert out[0].rect.area == 1

    def test_empty(self):
        assert dedupe_prefer_individual([]) == []


_records = st.lists(
    st.builds(
        tile,
        st.sampled_from(["a", "b", "c", "d"]),
        st.sampled_from(["individual", "grid"]),
        st.integers(min_value=0, max_value=1000),
    ),
    max_size=20,
)


class TestDedupeProperties:
    @given(_records)
    @settings(max_examples=200)
    def test_one_record_per_id(self, recs):
        out = dedupe_prefer_individual(recs)
        ids = [r.id for r in out]
        assert len(ids) == len(set(ids))
        assert set(ids) == {r.id for r in recs}

    @given(_records)
    @settings(max_examples=200)
    def test_individual_preferred(self, recs):
        out = {r.id: r for r in dedupe_prefer_individual(recs)}
        for rid in out:
            if any(r.id == rid and r.kind is TileKind.INDIVIDUAL for r in recs):
                assert out[rid].kind is TileKind.INDIVIDUAL
