# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Shared test configuration and fixtures."""

try:
    import streamswitch  # noqa: F401
except ImportError:
    raise ImportError("streamswitch is not installed. Run: pip install -e '.[dev]'") from None

import pytest


@pytest.fixture(autouse=True)
def _block_real_browser(monkeypatch):
    """Safety net: prevent real CDP connections in unit tests.

    Tests that exercise ``CdpTileSource._attach`` patch
    ``streamswitch.cdp_source.async_playwright`` themselves; that patch
    takes priority over this fixture. Anything else that reaches
    Playwright gets a clear error instead of dialing port 9222.
    """

    def _no_real_playwright():
        raise RuntimeError(
            "Test tried to start a real Playwright driver. Patch 'streamswitch.cdp_source.async_playwright'."
        )

    monkeypatch.setattr("streamswitch.cdp_source.async_playwright", _no_real_playwright)
