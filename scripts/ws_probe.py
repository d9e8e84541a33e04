#!/usr/bin/env python3
"""Passive WebSocket probe for star broadcast observation.

Connects to a broadcast endpoint, decodes every inbound envelope with the
library's wire codec and prints the result.  Nothing is ever sent except
keep-alive pings.

Use this to check what an endpoint relays and how often.
"""

from __future__ import annotations

import argparse
import asyncio
import contextlib
import json
import logging
import signal
import sys
import time
from dataclasses import dataclass
from pathlib import Path

# Allow running from repo root without installing the package.
_repo = Path(__file__).resolve().parent.parent
_src = _repo / "src"
if _src.is_dir():
    sys.path.insert(0, str(_src))

from pystarhunt import StarhuntConfig, StarhuntProtocolError, StarhuntTransportError  # noqa: E402
from pystarhunt._redact import redact_for_log  # noqa: E402
from pystarhunt._transport import WebSocketConnector  # noqa: E402
from pystarhunt.ingestion.wire import decode_message  # noqa: E402


@dataclass
class ProbeStats:
    started_at: float
    total_messages: int = 0
    star_updates: int = 0
    ignored: int = 0
    decode_failed: int = 0
    first_message_at: float | None = None
    last_message_at: float | None = None

    def on_message(self, now: float) -> float | None:
        previous = self.last_message_at
        self.total_messages += 1
        if self.first_message_at is None:
            self.first_message_at = now
        self.last_message_at = now
        return None if previous is None else now - previous


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Passive WebSocket probe for the star broadcast.",
    )
    parser.add_argument(
        "--url",
        default="",
        help="Broadcast endpoint (defaults to STARHUNT_WEBSOCKET_URL).",
    )
    parser.add_argument(
        "--duration",
        type=int,
        default=0,
        help="Maximum runtime in seconds (0 = run until Ctrl+C).",
    )
    parser.add_argument(
        "--keepalive",
        type=float,
        default=30.0,
        help="Seconds between keep-alive pings.",
    )
    parser.add_argument(
        "--raw",
        action="store_true",
        help="Print the raw frame text.",
    )
    parser.add_argument(
        "--json",
        action="store_true",
        help="Pretty-print decoded records.",
    )
    parser.add_argument(
        "--show-identities",
        action="store_true",
        help="Do not mask discoveredBy in printed payloads.",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable debug logs.",
    )
    return parser.parse_args()


def _print_summary(stats: ProbeStats) -> None:
    runtime = time.time() - stats.started_at
    print("[probe] Summary")
    print(f"[probe]   runtime_s      : {runtime:.1f}")
    print(f"[probe]   total_messages : {stats.total_messages}")
    print(f"[probe]   star_updates   : {stats.star_updates}")
    print(f"[probe]   ignored        : {stats.ignored}")
    print(f"[probe]   decode_failed  : {stats.decode_failed}")
    if stats.first_message_at is not None:
        first_message = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(stats.first_message_at))
        print(f"[probe]   first_message  : {first_message}")
    if stats.last_message_at is not None:
        last_message = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(stats.last_message_at))
        print(f"[probe]   last_message   : {last_message}")


def _handle_frame(args: argparse.Namespace, stats: ProbeStats, text: str) -> None:
    now = time.time()
    delta = stats.on_message(now)
    ts_text = time.strftime("%Y-%m-%d %H:%M:%S", time.localtime(now))
    gap_text = "first" if delta is None else f"{delta:.1f}s"
    print(f"[probe] msg#{stats.total_messages} at {ts_text} gap={gap_text} chars={len(text)}")

    if args.raw:
        print(f"[probe] raw={text}")

    try:
        message = decode_message(text)
    except StarhuntProtocolError as exc:
        stats.decode_failed += 1
        print(f"[probe] decode_failed: {exc}")
        return

    if message.record is None:
        stats.ignored += 1
        print(f"[probe] type={message.type} (ignored)")
        return

    stats.star_updates += 1
    record = message.record
    print(f"[probe] {record.describe()} active={record.active} health={record.health} miners={record.miners}")
    payload = record.to_wire() if args.show_identities else redact_for_log(record.to_wire())
    if args.json:
        print(json.dumps(payload, indent=2, ensure_ascii=False, sort_keys=True))


async def _probe(args: argparse.Namespace, url: str, stats: ProbeStats) -> int:
    connector = WebSocketConnector()
    try:
        print(f"[probe] Connecting to {url} ...")
        try:
            connection = await connector.open(url)
        except StarhuntTransportError as exc:
            print(f"[probe] Connect failed: {exc}", file=sys.stderr)
            return 2
        print("[probe] Connected.")

        async def _keepalive() -> None:
            while True:
                await asyncio.sleep(args.keepalive)
                await connection.ping()

        async def _read() -> None:
            async for text in connection.messages():
                _handle_frame(args, stats, text)
            print("[probe] Server closed the connection.")

        keepalive = asyncio.create_task(_keepalive())
        reader = asyncio.create_task(_read())
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()
        for sig in (signal.SIGINT, signal.SIGTERM):
            with contextlib.suppress(NotImplementedError):
                loop.add_signal_handler(sig, stop.set)

        waiters = {reader, keepalive, asyncio.create_task(stop.wait())}
        timeout = args.duration if args.duration > 0 else None
        done, pending = await asyncio.wait(waiters, timeout=timeout, return_when=asyncio.FIRST_COMPLETED)
        if not done:
            print(f"[probe] Reached --duration={args.duration}s, stopping.")
        for task in pending:
            task.cancel()
        for task in done:
            exc = task.exception()
            if exc is not None:
                print(f"[probe] Connection error: {exc}", file=sys.stderr)

        await connection.close()
        return 0
    finally:
        await connector.close()


def _main() -> int:
    args = _parse_args()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )

    url = args.url or StarhuntConfig.from_env().websocket_url
    if not url:
        print("[probe] No endpoint: pass --url or set STARHUNT_WEBSOCKET_URL", file=sys.stderr)
        return 2

    stats = ProbeStats(started_at=time.time())
    try:
        code = asyncio.run(_probe(args, url, stats))
    except KeyboardInterrupt:
        code = 0
    _print_summary(stats)
    return code


if __name__ == "__main__":
    raise SystemExit(_main())
