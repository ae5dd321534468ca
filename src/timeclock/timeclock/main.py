from __future__ import annotations

import argparse
import asyncio
import getpass
import os
import sys
from datetime import timedelta
from typing import Optional, Sequence

import mysql.connector
from dotenv import load_dotenv

from .common.datetime_utils import format_time, utcnow
from .common.logger import get_logger
from .common.validators import require_latitude, require_longitude
from .container import Container, build_container
from .core.enums import ClockState
from .core.exceptions import AuthenticationError, DomainError, ValidationError
from .database.bootstrap import apply_schema, ensure_demo_user, list_tables
from .database.connection import DatabaseConnection
from .entries.model import Location
from .session.runtime import TimeClockRuntime
from .settings import get_settings_module, load_settings
from .timesheet import derive_status, summarize_session

CONNECTIVITY_PROBE_SECONDS = 15

_ACTION_VERBS = {
    "start": "starting clock-in",
    "pause": "pausing",
    "resume": "resuming",
    "end": "ending clock-in",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="timeclock", description="Clock in and out from the terminal.")
    parser.add_argument("--username", default=os.getenv("TIMECLOCK_USERNAME"), help="defaults to $TIMECLOCK_USERNAME")
    parser.add_argument("-v", "--verbose", action="store_true", help="also log to the console")

    sub = parser.add_subparsers(dest="command", required=True)

    status = sub.add_parser("status", help="show the current session")
    status.add_argument("--remote", action="store_true", help="also summarize the session from the remote log")

    start = sub.add_parser("start", help="clock in")
    start.add_argument("--lat", type=float, default=None)
    start.add_argument("--lng", type=float, default=None)

    sub.add_parser("pause", help="start a break")
    sub.add_parser("resume", help="end the current break")
    sub.add_parser("end", help="clock out")
    sub.add_parser("sync", help="reconcile local state with the remote log now")

    watch = sub.add_parser("watch", help="live elapsed time display")
    watch.add_argument("--seconds", type=float, default=None, help="stop after this many seconds")

    init_db = sub.add_parser("init-db", help="create tables")
    init_db.add_argument("--demo", action="store_true", help="also create a demo company and employee")
    return parser


def _describe(runtime: TimeClockRuntime) -> str:
    state = runtime.state
    if state.clock_state == ClockState.OUT:
        return "OUT"
    lines = [
        f"{state.clock_state.value}  {format_time(state.elapsed_time)}",
        f"  started:     {state.start_time.astimezone().strftime('%Y-%m-%d %H:%M:%S')}",
        f"  paused:      {format_time(state.total_paused_time)}",
    ]
    if state.last_sync_time:
        lines.append(f"  last sync:   {state.last_sync_time.astimezone().strftime('%H:%M:%S')}")
    if state.location:
        lines.append(f"  location:    {state.location.lat:.5f}, {state.location.lng:.5f}")
    return "\n".join(lines)


async def _remote_summary(container: Container) -> str:
    current = await container.identity.get_current_user()
    if current is None or current.company_id is None:
        return "remote: no company context"
    now = utcnow()
    try:
        events = await container.events_repo.list_events(
            current.user_id, current.company_id, since=now - timedelta(days=1)
        )
    except mysql.connector.Error as exc:
        return f"remote: unreachable ({exc})"
    summary = summarize_session(events, now=now)
    if summary is None:
        return "remote: no session in the last 24h"
    status = derive_status(events).value
    return f"remote: {status}, worked {format_time(summary.net)} (breaks {format_time(summary.paused)})"


def _db_reachable(conn: DatabaseConnection) -> bool:
    try:
        conn.connect().close()
    except mysql.connector.Error:
        return False
    return True


async def _watch(container: Container, seconds: Optional[float]) -> int:
    runtime = container.runtime
    async with runtime:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + seconds if seconds is not None else None
        next_probe = loop.time()
        while deadline is None or loop.time() < deadline:
            if loop.time() >= next_probe:
                online = await asyncio.to_thread(_db_reachable, container.conn)
                if online != runtime.is_online:
                    runtime.on_connectivity_change(online)
                next_probe = loop.time() + CONNECTIVITY_PROBE_SECONDS
            state = runtime.state
            suffix = "" if runtime.is_online else "  (offline)"
            sys.stdout.write(f"\r{state.clock_state.value:<8} {format_time(state.elapsed_time)}{suffix}   ")
            sys.stdout.flush()
            await asyncio.sleep(1)
        sys.stdout.write("\n")
    return 0


async def _run(args: argparse.Namespace, container: Container) -> int:
    runtime = container.runtime
    if args.command == "watch":
        return await _watch(container, args.seconds)

    await runtime.mount(background=False)
    try:
        if args.command == "status":
            container.machine.tick()
            print(_describe(runtime))
            if args.remote:
                print(await _remote_summary(container))
            return 0

        if args.command == "sync":
            outcome = await runtime.force_sync()
            print(f"sync: {outcome.value}")
            print(_describe(runtime))
            return 0

        try:
            if args.command == "start":
                location = None
                if (args.lat is None) != (args.lng is None):
                    raise ValidationError("--lat and --lng must be given together")
                if args.lat is not None:
                    location = Location(lat=require_latitude(args.lat), lng=require_longitude(args.lng))
                await runtime.start(location)
            elif args.command == "pause":
                await runtime.pause()
            elif args.command == "resume":
                await runtime.resume()
            elif args.command == "end":
                await runtime.end()
        except DomainError as exc:
            print(f"Error {_ACTION_VERBS[args.command]}: {exc}", file=sys.stderr)
            return 1

        print(_describe(runtime))
        return 0
    finally:
        await runtime.unmount()


def main(argv: Optional[Sequence[str]] = None) -> int:
    load_dotenv(override=False)
    args = build_parser().parse_args(argv)

    settings_module = get_settings_module()
    settings = load_settings(settings_module)
    log = get_logger(
        level=settings.LOG_LEVEL,
        log_dir=settings.LOG_DIR,
        console=settings.LOG_CONSOLE or args.verbose,
    )
    log.debug("settings=%s store=%s", settings_module, settings.LOCAL_STORE_PATH)

    if args.command == "init-db":
        try:
            apply_schema(settings.DB_CONFIG)
            if args.demo:
                ensure_demo_user(settings.DB_CONFIG)
            tables = list_tables(settings.DB_CONFIG)
        except mysql.connector.Error as exc:
            print(f"Error initializing database: {exc}", file=sys.stderr)
            return 1
        print(f"schema ready (tables={len(tables)})")
        return 0

    if settings.AUTO_INIT_DB:
        try:
            apply_schema(settings.DB_CONFIG)
        except mysql.connector.Error as exc:
            log.warning("Skipping schema bootstrap, database unreachable: %s", exc)

    container = build_container(settings=settings)

    username = args.username or input("Username: ")
    password = os.getenv("TIMECLOCK_PASSWORD") or getpass.getpass("Password: ")
    try:
        user = container.auth_service.authenticate(username, password)
    except AuthenticationError as exc:
        print(f"Error signing in: {exc}", file=sys.stderr)
        return 2
    except mysql.connector.Error as exc:
        # The local session stays readable offline; everything else needs the remote store.
        if args.command != "status":
            print(f"Error signing in: time entry store unreachable ({exc})", file=sys.stderr)
            return 2
        log.warning("Showing the local session only, database unreachable: %s", exc)
        print("offline: showing the locally saved session", file=sys.stderr)
    else:
        container.identity.sign_in(user)

    try:
        return asyncio.run(_run(args, container))
    except KeyboardInterrupt:
        return 130
