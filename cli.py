#!/usr/bin/env python3
"""
Command-line interface for the estimate view tracker.

Usage:
    python cli.py [command] [options]

Commands:
    serve           Start the API server
    stats           Show view statistics for a tracking id
    estimates       List tracked estimates
    notifications   Show the in-app notification feed
    test            Run the test suite

Examples:
    python cli.py serve --port 3000
    python cli.py stats ABC123
    python cli.py estimates --data-file ./tracking-data.json
"""

import argparse
import json
import os
import subprocess
import sys
from pathlib import Path
from typing import Optional

from core.config import Settings, configure_logging
from core.data_store import DataStore
from pipeline.queries import QueryService


def _open_queries(settings: Settings) -> QueryService:
    """Load the data file read-only (no writer thread is started)."""
    data_store = DataStore(settings.data_file)
    data_store.load()
    if data_store.last_load_error:
        print(f"Warning: could not read {settings.data_file}: {data_store.last_load_error}", file=sys.stderr)
    return QueryService(data_store, ip_privacy=settings.ip_privacy, ip_salt=settings.ip_salt)


def _print_json(payload) -> None:
    print(json.dumps(payload, indent=2, default=str))


def show_stats(settings: Settings, tracking_id: str) -> None:
    """Print view statistics for one tracking id."""
    stats = _open_queries(settings).get_view_stats(tracking_id)
    _print_json(stats.model_dump(mode="json", by_alias=True))


def show_estimates(settings: Settings) -> None:
    """Print the estimate listing."""
    listing = _open_queries(settings).list_estimates()
    _print_json(listing.model_dump(mode="json"))


def show_notifications(settings: Settings, unread_only: bool) -> None:
    """Print the notification feed."""
    feed = _open_queries(settings).list_notifications()
    print(f"{feed.unread_count} unread")
    for notification in feed.notifications:
        if unread_only and notification.is_read:
            continue
        marker = " " if notification.is_read else "*"
        print(f"{marker} {notification.viewed_at:%Y-%m-%d %H:%M} {notification.message} [{notification.tracking_id}]")


def run_tests(args: list[str]) -> None:
    """Run the test suite."""
    cmd = [sys.executable, "-m", "pytest"] + args
    subprocess.run(cmd)


def run_server(host: str, port: int, reload: bool, data_file: Path) -> None:
    """Start the API server."""
    env = dict(os.environ, TRACKER_DATA_FILE=str(data_file))
    cmd = [sys.executable, "-m", "uvicorn", "api.main:app", f"--host={host}", f"--port={port}"]
    if reload:
        cmd.append("--reload")

    print(f"Starting server at http://{host}:{port}")
    print(f"API docs available at http://{host}:{port}/docs")
    subprocess.run(cmd, env=env)


def main(argv: Optional[list[str]] = None) -> None:
    """Main CLI entry point."""
    settings = Settings.from_env()

    parser = argparse.ArgumentParser(
        description="Estimate View Tracker CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  %(prog)s serve --reload
  %(prog)s stats ABC123
  %(prog)s estimates
  %(prog)s notifications --unread
  %(prog)s test -v
        """,
    )
    parser.add_argument(
        "--data-file",
        default=str(settings.data_file),
        help="Backing JSON file (default: %(default)s)",
    )

    subparsers = parser.add_subparsers(dest="command", help="Command to run")

    # Serve command
    serve_parser = subparsers.add_parser("serve", help="Start the API server")
    serve_parser.add_argument("--host", default=settings.host, help="Host to bind to")
    serve_parser.add_argument("--port", type=int, default=settings.port, help="Port to bind to")
    serve_parser.add_argument("--reload", action="store_true", help="Enable auto-reload")

    # Stats command
    stats_parser = subparsers.add_parser("stats", help="Show view statistics for a tracking id")
    stats_parser.add_argument("tracking_id", help="Tracking id to inspect")

    # Estimates command
    subparsers.add_parser("estimates", help="List tracked estimates")

    # Notifications command
    notifications_parser = subparsers.add_parser("notifications", help="Show the notification feed")
    notifications_parser.add_argument("--unread", action="store_true", help="Only unread notifications")

    # Test command
    test_parser = subparsers.add_parser("test", help="Run the test suite")
    test_parser.add_argument(
        "pytest_args",
        nargs="*",
        default=[],
        help="Arguments to pass to pytest",
    )

    args = parser.parse_args(argv)
    configure_logging(settings.log_level)
    settings = settings.model_copy(update={"data_file": Path(args.data_file)})

    if args.command == "serve":
        run_server(args.host, args.port, args.reload, settings.data_file)
    elif args.command == "stats":
        show_stats(settings, args.tracking_id)
    elif args.command == "estimates":
        show_estimates(settings)
    elif args.command == "notifications":
        show_notifications(settings, args.unread)
    elif args.command == "test":
        run_tests(args.pytest_args)
    else:
        parser.print_help()


if __name__ == "__main__":
    main()
