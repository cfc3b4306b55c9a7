# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Stream Switch exception hierarchy.

All Stream Switch errors inherit from StreamSwitchError. A stream that
cannot be found is not an error: engine operations return False for it.
"""

from __future__ import annotations

DEFAULT_TRANSPORT_HINT = (
    "Ensure the conferencing client is running with --remote-debugging-port=9222 "
    "and the bridge points at that endpoint."
)


class StreamSwitchError(Exception):
    """Base exception for all Stream Switch errors."""


class TransportError(StreamSwitchError):
    """Remote-evaluation channel unreachable, closed, or timed out."""

    def __init__(self, message: str, *, hint: str = DEFAULT_TRANSPORT_HINT) -> None:
        super().__init__(message)
        self.hint = hint


class TargetNotFoundError(TransportError):
    """Connected to the debugging endpoint, but no page matches the target."""


class EvaluationError(StreamSwitchError):
    """An expression raised inside the page context."""


class BridgeApiError(StreamSwitchError):
    """Bridge answered a client request with an error status."""

    def __init__(self, message: str, *, status_code: int = 0, hint: str = "") -> None:
        super().__init__(message)
        self.status_code = status_code
        self.hint = hint


class InvalidButtonError(StreamSwitchError):
    """Controller button number outside the supported range."""

    def __init__(self, message: str, *, button: object = None) -> None:
        super().__init__(message)
        self.button = button
