from __future__ import annotations

import argparse
import asyncio
import logging
from datetime import timedelta
from typing import Optional, Sequence

import orjson

from .bootstrap import configure_logging
from .domain import Timeline
from .services import ServiceContext
from .services.http import run_local_server

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Time to Leave command line interface.")
    parser.add_argument("--log-level", default=None, help="Override TIME_TO_LEAVE_LOG_LEVEL.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    refresh_parser = subparsers.add_parser("refresh", help="Fetch upcoming events and recompute leave times.")
    refresh_parser.add_argument("--days", type=int, default=None, help="Lookahead window in days.")
    refresh_parser.add_argument("--force", action="store_true", help="Ignore cached ranges and drive times.")

    timeline_parser = subparsers.add_parser("timeline", help="Print the precomputed display timeline.")
    timeline_parser.add_argument("--json", action="store_true", help="Emit JSON instead of text.")

    subparsers.add_parser("alerts", help="List pending time-to-leave alerts.")

    settings_parser = subparsers.add_parser("settings", help="Show or change buffer and alert settings.")
    settings_parser.add_argument("--buffer", type=int, default=None, help="Buffer minutes added to drive time.")
    settings_parser.add_argument("--alerts", choices=("on", "off"), default=None)

    subparsers.add_parser("watch", help="Refresh periodically and deliver due alerts.")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API for display clients.")
    serve_parser.add_argument("--host", default="127.0.0.1")
    serve_parser.add_argument("--port", type=int, default=8000)

    return parser


def _format_timeline(timeline: Timeline) -> str:
    lines = []
    for entry in timeline.entries:
        label = entry.event.title if entry.event else "-"
        lines.append(f"{entry.timestamp.astimezone():%Y-%m-%d %H:%M}  {entry.state.value:<13} {label}")
    lines.append(f"next refresh: {timeline.refresh_at.astimezone():%Y-%m-%d %H:%M}")
    return "\n".join(lines)


async def _refresh(context: ServiceContext, days: Optional[int], force: bool) -> int:
    if not await asyncio.to_thread(context.sign_in):
        return 1
    lookahead = timedelta(days=days) if days else context.settings.refresh.lookahead
    events = await context.calendar.load_upcoming(lookahead, force_refresh=force)
    state = context.orchestrator.state
    print(f"Fetched {len(events)} events; {state.last_processed_count} saved to the snapshot.")
    if state.last_error is not None:
        print(f"Last error: {state.last_error}")
        return 1
    return 0


async def _alerts(context: ServiceContext) -> int:
    pending = await context.notification_center.pending()
    if not pending:
        print("No pending alerts.")
    for request in pending:
        print(f"{request.fire_at.astimezone():%Y-%m-%d %H:%M}  {request.body.splitlines()[0]}")
    return 0


async def _settings(context: ServiceContext, buffer: Optional[int], alerts: Optional[str]) -> int:
    if buffer is not None:
        await context.orchestrator.update_buffer_time(buffer)
    if alerts == "on" and not await context.orchestrator.enable_alerts():
        print("Notification authorization was denied.")
        return 1
    if alerts == "off":
        await context.orchestrator.disable_alerts()
    print(f"buffer: {context.store.buffer_minutes} min")
    print(f"alerts: {'on' if context.store.alerts_enabled else 'off'}")
    return 0


async def _watch(context: ServiceContext) -> int:
    await asyncio.to_thread(context.sign_in)
    await context.background.run_forever()
    return 0


async def _run(context: ServiceContext, args: argparse.Namespace) -> int:
    try:
        if args.command == "refresh":
            return await _refresh(context, args.days, args.force)
        if args.command == "timeline":
            timeline = context.timeline.generate()
            if args.json:
                print(orjson.dumps(timeline.to_record(), option=orjson.OPT_INDENT_2).decode())
            else:
                print(_format_timeline(timeline))
            return 0
        if args.command == "alerts":
            return await _alerts(context)
        if args.command == "settings":
            return await _settings(context, args.buffer, args.alerts)
        if args.command == "watch":
            return await _watch(context)
        return 2
    finally:
        await context.aclose()


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(level=args.log_level)
    logger.info("Time to Leave CLI starting")

    context = ServiceContext()
    if not context.settings.routing.has_origin:
        logger.warning("No origin configured; drive times will be unavailable")

    if args.command == "serve":
        run_local_server(context, host=args.host, port=args.port)
        return 0
    try:
        return asyncio.run(_run(context, args))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
