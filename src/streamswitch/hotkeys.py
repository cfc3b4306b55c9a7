# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Page-side keyboard shortcuts routed back into the engine.

A keydown listener in the target page forwards qualifying keys through a
Playwright binding; ``resolve_hotkey`` decides what the key means and
``dispatch_hotkey`` runs it against the engine.

    modifier+F1..F12     switch to stream 1..12
    modifier+ArrowRight  next stream
    modifier+ArrowLeft   previous stream
    modifier+S           swap with partner
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass

from playwright.async_api import Page

from .engine import StreamEngine
from .errors import StreamSwitchError

logger = logging.getLogger("streamswitch.hotkeys")

BINDING_NAME = "__streamSwitchHotkey"

_FKEY_RE = re.compile(r"^F([1-9]|1[0-2])$")

_MODIFIERS = {
    "alt": {"alt": True, "ctrl": False, "shift": False},
    "ctrl": {"alt": False, "ctrl": True, "shift": False},
    "ctrl+shift": {"alt": False, "ctrl": True, "shift": True},
}


@dataclass(frozen=True, slots=True)
class HotkeyAction:
    command: str  # switch_by_index | next | previous | swap
    index: int | None = None


def resolve_hotkey(key: str, *, alt: bool, ctrl: bool, shift: bool, modifier: str = "alt") -> HotkeyAction | None:
    """Map a keydown to an engine command. None when the key is not a shortcut."""
    wanted = _MODIFIERS.get(modifier)
    if wanted is None:
        raise ValueError(f"Unknown hotkey modifier: {modifier!r}")
    if (alt, ctrl, shift) != (wanted["alt"], wanted["ctrl"], wanted["shift"]):
        return None
    m = _FKEY_RE.match(key)
    if m:
        return HotkeyAction("switch_by_index", int(m.group(1)) - 1)
    if key == "ArrowRight":
        return HotkeyAction("next")
    if key == "ArrowLeft":
        return HotkeyAction("previous")
    if key in ("s", "S"):
        return HotkeyAction("swap")
    return None


async def dispatch_hotkey(engine: StreamEngine, action: HotkeyAction) -> bool:
    if action.command == "switch_by_index" and action.index is not None:
        return await engine.switch_to_stream_by_index(action.index)
    if action.command == "next":
        return await engine.switch_to_next_stream()
    if action.command == "previous":
        return await engine.switch_to_previous_stream()
    if action.command == "swap":
        return await engine.swap_current_focused()
    return False


# Forwards shortcut keys pressed with exactly the configured modifier; every
# other combination (Ctrl+Arrow word jumps, Ctrl+S) stays with the page.
_LISTENER_JS = """({bindingName, alt, ctrl, shift}) => {
  if (window.__streamSwitchHotkeysInstalled) return false;
  window.__streamSwitchHotkeysInstalled = true;
  document.addEventListener('keydown', (e) => {
    if (e.altKey !== alt || e.ctrlKey !== ctrl || e.shiftKey !== shift) return;
    const k = e.key;
    if (/^F([1-9]|1[0-2])$/.test(k) || k === 'ArrowRight' || k === 'ArrowLeft' || k === 's' || k === 'S') {
      e.preventDefault();
      window[bindingName]({key: k, alt: e.altKey, ctrl: e.ctrlKey, shift: e.shiftKey});
    }
  });
  return true;
}"""


def make_attach_hook(engine: StreamEngine, *, modifier: str = "alt"):
    """Build a CdpTileSource attach hook that installs the shortcuts on a page."""
    if modifier not in _MODIFIERS:
        raise ValueError(f"Unknown hotkey modifier: {modifier!r}")

    async def _on_key(_source, event: dict) -> None:
        action = resolve_hotkey(
            str(event.get("key", "")),
            alt=bool(event.get("alt")),
            ctrl=bool(event.get("ctrl")),
            shift=bool(event.get("shift")),
            modifier=modifier,
        )
        if action is None:
            return
        try:
            ok = await dispatch_hotkey(engine, action)
        except StreamSwitchError as exc:
            logger.warning("Hotkey %s -> %s failed: %s", event.get("key"), action.command, exc)
            return
        logger.info("Hotkey %s -> %s (success=%s)", event.get("key"), action.command, ok)

    async def install_hotkeys(page: Page) -> None:
        try:
            await page.expose_binding(BINDING_NAME, _on_key)
        except Exception as exc:
            # Binding survives a reconnect in the same page; re-registering raises
            if "already registered" not in str(exc):
                raise
        installed = await page.evaluate(_LISTENER_JS, {"bindingName": BINDING_NAME, **_MODIFIERS[modifier]})
        logger.info("Hotkeys %s (modifier=%s)", "installed" if installed else "already present", modifier)

    return install_hotkeys
