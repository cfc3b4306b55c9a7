# Copyright (C) 2025-2026 Retio AI
# SPDX-License-Identifier: AGPL-3.0-only

"""Stream Switch CLI: run the bridge or drive it from a terminal / macro pad.

Usage:
    streamswitch serve [server args...]
    streamswitch health | target | status | refresh
    streamswitch next | previous | swap
    streamswitch switch (--index N | --id ID)
    streamswitch button N
    streamswitch watch
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys

from .client import DEFAULT_BASE_URL, BridgeClient, StatusSubscriber
from .errors import BridgeApiError


def _short_id(stream_id: str) -> str:
    if len(stream_id) <= 12:
        return stream_id
    return f"{stream_id[:8]}...{stream_id[-4:]}"


def format_status(status: dict) -> str:
    """Render engine status as a table: F-key label, name, kind, id."""
    from tabulate import tabulate

    streams = status.get("streams") or []
    if not streams:
        return "No streams detected. Check grid view + multistream and turn off camera preview."
    current = status.get("currentIndex", 0)
    rows = []
    for i, s in enumerate(streams):
        rows.append(
            [
                "*" if i == current else "",
                f"F{i + 1}" if i < 12 else "",
                s.get("name", f"Stream {i + 1}"),
                s.get("kind", ""),
                _short_id(str(s.get("id", ""))),
            ]
        )
    table = tabulate(rows, headers=["", "Key", "Name", "Kind", "Id"], tablefmt="simple")
    pairs = status.get("pairs") or []
    if pairs:
        seen = {tuple(sorted(p)) for p in pairs}
        table += "\n\nPartners: " + ", ".join(f"{_short_id(a)} <-> {_short_id(b)}" for a, b in sorted(seen))
    return table


def _ws_url(base_url: str) -> str:
    if base_url.startswith("https://"):
        return "wss://" + base_url[len("https://") :]
    if base_url.startswith("http://"):
        return "ws://" + base_url[len("http://") :]
    return base_url


async def _run_command(args: argparse.Namespace) -> int:
    async with BridgeClient(args.url) as client:
        if args.command == "health":
            print(json.dumps(await client.health(), indent=2))
        elif args.command == "target":
            print(json.dumps(await client.target_status(), indent=2))
        elif args.command == "status":
            status = await client.status()
            print(json.dumps(status, indent=2) if args.json else format_status(status))
        elif args.command == "refresh":
            status = await client.refresh()
            print(json.dumps(status, indent=2) if args.json else format_status(status))
        elif args.command in ("next", "previous", "swap"):
            ok = await getattr(client, args.command)()
            print("OK" if ok else "FAIL")
            return 0 if ok else 1
        elif args.command == "switch":
            if args.id is not None:
                ok = await client.switch_by_id(args.id)
            else:
                ok = await client.switch_by_index(args.index)
            print("OK" if ok else "FAIL")
            return 0 if ok else 1
        elif args.command == "button":
            result = await client.press_button(args.number)
            print(json.dumps(result, indent=2))
            return 0 if result.get("success") else 1
    return 0


async def _watch(url: str) -> None:
    def _on_status(data: dict) -> None:
        print(format_status(data), flush=True)
        print(flush=True)

    def _on_error(error: str) -> None:
        print(f"Target error: {error}", file=sys.stderr, flush=True)

    subscriber = StatusSubscriber(_ws_url(url), on_status=_on_status, on_error=_on_error)
    await subscriber.start()
    try:
        await asyncio.Event().wait()
    finally:
        await subscriber.close()


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = argparse.ArgumentParser(description="Stream Switch CLI", prog="streamswitch")
    parser.add_argument("--url", default=DEFAULT_BASE_URL, help=f"Bridge base URL (default: {DEFAULT_BASE_URL})")
    parser.add_argument("--json", action="store_true", help="Print raw JSON instead of tables")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("serve", help="Start the bridge server (extra args forwarded)", add_help=False)
    subparsers.add_parser("health", help="Bridge liveness")
    subparsers.add_parser("target", help="Is the target page reachable?")
    subparsers.add_parser("status", help="Show the current stream list")
    subparsers.add_parser("refresh", help="Re-scan tiles and show the stream list")
    subparsers.add_parser("next", help="Focus the next stream")
    subparsers.add_parser("previous", help="Focus the previous stream")
    subparsers.add_parser("swap", help="Focus the partner of the current stream")
    p_switch = subparsers.add_parser("switch", help="Focus a stream by index or id")
    target = p_switch.add_mutually_exclusive_group(required=True)
    target.add_argument("--index", type=int, help="0-based stream index")
    target.add_argument("--id", help="Stream id")
    p_button = subparsers.add_parser("button", help="Press macro-pad button N (1-32)")
    p_button.add_argument("number", type=int)
    subparsers.add_parser("watch", help="Follow status broadcasts (reconnects automatically)")

    args, extra = parser.parse_known_args(argv)

    if args.command == "serve":
        from .server import main as server_main

        server_main(extra)
        return
    if extra:
        parser.error(f"unrecognized arguments: {' '.join(extra)}")

    if args.command == "watch":
        try:
            asyncio.run(_watch(args.url))
        except KeyboardInterrupt:
            pass
        return

    try:
        code = asyncio.run(_run_command(args))
    except BridgeApiError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        if exc.hint:
            print(f"Hint: {exc.hint}", file=sys.stderr)
        sys.exit(2)
    sys.exit(code)


if __name__ == "__main__":
    main()
