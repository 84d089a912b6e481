"""Console front end for the dashboard."""
import argparse
import asyncio
import logging
import sys
from collections.abc import Sequence
from typing import TextIO

import httpx

from backend_client import BackendClient
from core.config import Settings, get_settings
from realtime.channel import RealtimeClient
from schemas.bookmark import Bookmark, BookmarkId
from services.exceptions import BackendError

from .app import Dashboard

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_BACKEND_ERROR = 1
EXIT_UNAUTHENTICATED = 2


class ConsoleNavigator:
    """Stands in for a browser redirect: reports where the visitor should go."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream
        self.redirected_to: str | None = None

    def redirect(self, url: str) -> None:
        self.redirected_to = url
        print(f"Not signed in. Continue at: {url}", file=self._stream or sys.stderr)


class ConsoleNotifier:
    """Writes user-visible errors to stderr."""

    def __init__(self, stream: TextIO | None = None) -> None:
        self._stream = stream
        self.messages: list[str] = []

    def notify_error(self, message: str) -> None:
        self.messages.append(message)
        print(f"Error: {message}", file=self._stream or sys.stderr)


def render_bookmarks(bookmarks: Sequence[Bookmark]) -> str:
    """Render the list, newest first."""
    if not bookmarks:
        return "No bookmarks found.\nAdd your first bookmark with: add TITLE URL"
    return "\n".join(f"[{b.id}] {b.title}\n    {b.url}" for b in bookmarks)


def parse_bookmark_id(value: str) -> BookmarkId:
    """Ids are opaque; numeric strings are sent as integers."""
    return int(value) if value.isdigit() else value


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="smart-bookmarks",
        description="Manage your bookmarks with live updates across sessions.",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("list", help="Show your bookmarks")
    add = sub.add_parser("add", help="Add a bookmark")
    add.add_argument("title")
    add.add_argument("url")
    delete = sub.add_parser("delete", help="Delete a bookmark by id")
    delete.add_argument("id")
    sub.add_parser("watch", help="Show bookmarks and follow live changes until interrupted")
    sub.add_parser("logout", help="Sign out")
    return parser


async def run_command(
    args: argparse.Namespace,
    dashboard: Dashboard,
    out: TextIO | None = None,
) -> int:
    """Run one command against a (not yet started) dashboard."""
    out = out or sys.stdout
    async with dashboard:
        if not await dashboard.start(realtime=args.command == "watch"):
            return EXIT_UNAUTHENTICATED
        store = dashboard.store

        if args.command == "add":
            store.draft.title = args.title
            store.draft.url = args.url
            await store.insert_draft()
        elif args.command == "delete":
            await store.delete(parse_bookmark_id(args.id))
        elif args.command == "logout":
            await dashboard.logout()
            return EXIT_OK
        elif args.command == "watch":
            print(render_bookmarks(store.bookmarks), file=out)
            store.add_listener(
                lambda snapshot: print(f"\n{render_bookmarks(snapshot)}", file=out),
            )
            await dashboard.bridge.wait()
            return EXIT_OK

        print(render_bookmarks(store.bookmarks), file=out)
    return EXIT_OK


async def run(args: argparse.Namespace, settings: Settings) -> int:
    """Create the backend clients for one session and run the command."""
    async with httpx.AsyncClient(timeout=settings.api_timeout) as http_client:
        backend = BackendClient(http_client, settings)
        dashboard = Dashboard(
            backend=backend,
            feed=RealtimeClient(settings, backend.access_token),
            navigator=ConsoleNavigator(),
            notifier=ConsoleNotifier(),
            settings=settings,
        )
        return await run_command(args, dashboard)


def main(argv: Sequence[str] | None = None) -> int:
    """Entry point for the console dashboard."""
    args = build_parser().parse_args(argv)
    settings = get_settings()
    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    try:
        return asyncio.run(run(args, settings))
    except KeyboardInterrupt:
        logger.info("dashboard_interrupted")
        return EXIT_OK
    except BackendError as e:
        logger.error("dashboard_failed error=%s", e)
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_BACKEND_ERROR
