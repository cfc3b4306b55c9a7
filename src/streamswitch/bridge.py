# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Command bridge: HTTP + WebSocket façade over one ``StreamEngine``.

Routes:
- GET  /health                              liveness
- GET  /api/discord/status                  target page reachable?
- GET  /api/streams                         engine status
- POST /api/streams/refresh                 re-scan, then status
- POST /api/streams/switch-by-id/{id}
- POST /api/streams/switch-by-index/{index}
- POST /api/streams/next | /previous | /swap
- POST /api/stream-deck/button/{n}          macro-pad button n (1-32) → index n-1
- WS   /                                    commands + periodic status broadcast

The engine instance is passed in by the caller; the bridge never builds or
mutates its books directly. Requests are not serialized here: the engine
lock orders operations.
"""

from __future__ import annotations

import asyncio
import json
import logging
import time
from collections.abc import Awaitable, Callable
from contextlib import asynccontextmanager, suppress
from datetime import UTC, datetime

import structlog
from starlette.applications import Starlette
from starlette.middleware import Middleware
from starlette.middleware.cors import CORSMiddleware
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.routing import Route, WebSocketRoute
from starlette.websockets import WebSocket, WebSocketDisconnect, WebSocketState

from .engine import StreamEngine
from .errors import EvaluationError, InvalidButtonError, StreamSwitchError, TransportError

logger = logging.getLogger("streamswitch.bridge")

MAX_BUTTONS = 32

TargetCheck = Callable[[], Awaitable[None]]


def _now_iso() -> str:
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


def button_to_index(raw: str | int) -> int:
    """Map a 1-based controller button to a 0-based stream index."""
    try:
        button = int(raw)
    except (TypeError, ValueError):
        raise InvalidButtonError(f"Button number must be an integer, got {raw!r}", button=raw) from None
    if button < 1 or button > MAX_BUTTONS:
        raise InvalidButtonError(f"Button number must be between 1 and {MAX_BUTTONS}", button=button)
    return button - 1


def _error_body(exc: Exception) -> dict:
    body: dict = {"error": str(exc)}
    if isinstance(exc, TransportError):
        body["hint"] = exc.hint
    return body


def _error_response(context: str, exc: Exception) -> JSONResponse:
    """500 with the error message. Transport errors are expected churn: no traceback."""
    if isinstance(exc, (TransportError, EvaluationError)):
        logger.warning("%s failed: %s", context, exc)
    else:
        logger.error("%s failed: %s", context, exc, exc_info=True)
    return JSONResponse(_error_body(exc), status_code=500)


# ── Status broadcaster ───────────────────────────────────────────────


class StatusBroadcaster:
    """Pushes engine status to every connected WebSocket on a fixed interval."""

    def __init__(
        self,
        engine: StreamEngine,
        *,
        check_target: TargetCheck | None = None,
        interval: float = 10.0,
        error_log_interval: float = 60.0,
    ) -> None:
        self.engine = engine
        self.check_target = check_target
        self.interval = interval
        self.error_log_interval = error_log_interval
        self.clients: set[WebSocket] = set()
        self._last_error_log: float | None = None
        self._task: asyncio.Task | None = None

    async def _send(self, ws: WebSocket, message: dict) -> None:
        if ws.client_state != WebSocketState.CONNECTED:
            return
        try:
            await ws.send_json(message)
        except Exception as exc:
            logger.debug("Dropping subscriber after send failure: %s", exc)
            self.clients.discard(ws)

    async def broadcast(self, message: dict, targets: set[WebSocket] | None = None) -> None:
        for ws in list(targets if targets is not None else self.clients):
            await self._send(ws, message)

    def _log_check_failure(self, exc: Exception) -> None:
        now = time.monotonic()
        if self._last_error_log is None or now - self._last_error_log > self.error_log_interval:
            logger.warning("Target page not ready: %s", exc)
            self._last_error_log = now

    async def send_status(self, targets: set[WebSocket] | None = None) -> None:
        """Check the target, then broadcast status, or a ``discord_error`` message on failure."""
        try:
            if self.check_target is not None:
                await self.check_target()
            status = await self.engine.get_status()
        except StreamSwitchError as exc:
            self._log_check_failure(exc)
            await self.broadcast({"type": "discord_error", "error": str(exc), "timestamp": _now_iso()}, targets)
            return
        await self.broadcast({"type": "stream_status", "data": status.to_dict(), "timestamp": _now_iso()}, targets)

    async def run(self) -> None:
        while True:
            await asyncio.sleep(self.interval)
            if not self.clients:
                continue
            try:
                await self.send_status()
            except Exception:
                logger.exception("Status broadcast tick failed")

    def start(self) -> None:
        if self._task is None or self._task.done():
            self._task = asyncio.create_task(self.run(), name="streamswitch-broadcast")

    async def stop(self) -> None:
        if self._task is not None:
            self._task.cancel()
            with suppress(asyncio.CancelledError):
                await self._task
            self._task = None


# ── App factory ──────────────────────────────────────────────────────


def create_app(
    engine: StreamEngine,
    *,
    check_target: TargetCheck | None = None,
    broadcast_interval: float = 10.0,
    error_log_interval: float = 60.0,
    on_shutdown: Callable[[], Awaitable[None]] | None = None,
) -> Starlette:
    """Build the bridge ASGI app around an existing engine.

    ``check_target`` checks that the target page is reachable; it defaults to
    ``engine.source.check_target`` when the source has one.
    """
    if check_target is None:
        check_target = getattr(engine.source, "check_target", None)
    broadcaster = StatusBroadcaster(
        engine,
        check_target=check_target,
        interval=broadcast_interval,
        error_log_interval=error_log_interval,
    )

    async def health(request: Request) -> JSONResponse:
        return JSONResponse({"status": "ok", "timestamp": _now_iso()})

    async def target_status(request: Request) -> JSONResponse:
        try:
            if check_target is not None:
                await check_target()
        except StreamSwitchError as exc:
            body = {"status": "disconnected", "message": str(exc), "timestamp": _now_iso()}
            if isinstance(exc, TransportError):
                body["hint"] = exc.hint
            return JSONResponse(body, status_code=503)
        return JSONResponse(
            {"status": "connected", "message": "Target page is reachable", "timestamp": _now_iso()}
        )

    async def get_streams(request: Request) -> JSONResponse:
        try:
            status = await engine.get_status()
        except Exception as exc:
            return _error_response("get_streams", exc)
        return JSONResponse(status.to_dict())

    async def refresh(request: Request) -> JSONResponse:
        try:
            await engine.refresh_streams()
            status = await engine.get_status()
        except Exception as exc:
            return _error_response("refresh", exc)
        return JSONResponse(status.to_dict())

    async def switch_by_id(request: Request) -> JSONResponse:
        stream_id = request.path_params["stream_id"]
        try:
            success = await engine.switch_to_stream_by_id(stream_id)
        except Exception as exc:
            return _error_response("switch_by_id", exc)
        return JSONResponse({"success": success, "streamId": stream_id})

    async def switch_by_index(request: Request) -> JSONResponse:
        raw = request.path_params["index"]
        try:
            index = int(raw)
        except ValueError:
            return JSONResponse({"error": f"Index must be an integer, got {raw!r}"}, status_code=400)
        try:
            success = await engine.switch_to_stream_by_index(index)
        except Exception as exc:
            return _error_response("switch_by_index", exc)
        return JSONResponse({"success": success, "index": index})

    def _simple(context: str, op: Callable[[], Awaitable[bool]]):
        async def endpoint(request: Request) -> JSONResponse:
            try:
                success = await op()
            except Exception as exc:
                return _error_response(context, exc)
            return JSONResponse({"success": success})

        return endpoint

    async def stream_deck_button(request: Request) -> JSONResponse:
        raw = request.path_params["button_number"]
        try:
            stream_index = button_to_index(raw)
        except InvalidButtonError as exc:
            return JSONResponse({"error": str(exc)}, status_code=400)
        try:
            success = await engine.switch_to_stream_by_index(stream_index)
        except Exception as exc:
            return _error_response("stream_deck_button", exc)
        return JSONResponse({"success": success, "buttonNumber": stream_index + 1, "streamIndex": stream_index})

    async def handle_command(data: object) -> dict:
        """Dispatch one WebSocket command; mirrors the REST routes."""
        if not isinstance(data, dict):
            raise ValueError("Message must be a JSON object")
        command = data.get("command")
        params = data.get("params") or {}
        if not isinstance(params, dict):
            raise ValueError("params must be a JSON object")
        if command == "get_streams":
            return (await engine.get_status()).to_dict()
        if command == "refresh":
            await engine.refresh_streams()
            return (await engine.get_status()).to_dict()
        if command == "switch_by_id":
            stream_id = str(params.get("streamId", ""))
            return {"success": await engine.switch_to_stream_by_id(stream_id), "streamId": stream_id}
        if command == "switch_by_index":
            index = params.get("index")
            if not isinstance(index, int) or isinstance(index, bool):
                raise ValueError(f"Index must be an integer, got {index!r}")
            return {"success": await engine.switch_to_stream_by_index(index), "index": index}
        if command == "next":
            return {"success": await engine.switch_to_next_stream()}
        if command == "previous":
            return {"success": await engine.switch_to_previous_stream()}
        if command == "swap":
            return {"success": await engine.swap_current_focused()}
        raise ValueError(f"Unknown command: {command}")

    async def ws_endpoint(websocket: WebSocket) -> None:
        peer = websocket.client
        controller = f"{peer.host}:{peer.port}" if peer else "unknown"
        # Every record logged while serving this connection names the controller
        with structlog.contextvars.bound_contextvars(controller=controller):
            await websocket.accept()
            broadcaster.clients.add(websocket)
            logger.info("Controller connected (%d subscribers)", len(broadcaster.clients))
            await broadcaster.send_status({websocket})
            try:
                while True:
                    message = await websocket.receive_text()
                    try:
                        response = await handle_command(json.loads(message))
                    except (ValueError, TypeError, StreamSwitchError) as exc:
                        response = _error_body(exc)
                    await websocket.send_json(response)
            except WebSocketDisconnect:
                pass
            finally:
                broadcaster.clients.discard(websocket)
                logger.info("Controller disconnected (%d subscribers)", len(broadcaster.clients))

    @asynccontextmanager
    async def lifespan(app: Starlette):
        broadcaster.start()
        try:
            yield
        finally:
            await broadcaster.stop()
            if on_shutdown is not None:
                await on_shutdown()

    routes = [
        Route("/health", health, methods=["GET"]),
        Route("/api/discord/status", target_status, methods=["GET"]),
        Route("/api/streams", get_streams, methods=["GET"]),
        Route("/api/streams/refresh", refresh, methods=["POST"]),
        Route("/api/streams/switch-by-id/{stream_id}", switch_by_id, methods=["POST"]),
        Route("/api/streams/switch-by-index/{index}", switch_by_index, methods=["POST"]),
        Route("/api/streams/next", _simple("next", engine.switch_to_next_stream), methods=["POST"]),
        Route("/api/streams/previous", _simple("previous", engine.switch_to_previous_stream), methods=["POST"]),
        Route("/api/streams/swap", _simple("swap", engine.swap_current_focused), methods=["POST"]),
        Route("/api/stream-deck/button/{button_number}", stream_deck_button, methods=["POST"]),
        WebSocketRoute("/", ws_endpoint),
    ]
    app = Starlette(
        routes=routes,
        middleware=[Middleware(CORSMiddleware, allow_origins=["*"], allow_methods=["*"], allow_headers=["*"])],
        lifespan=lifespan,
    )
    app.state.engine = engine
    app.state.broadcaster = broadcaster
    return app
