#!/usr/bin/env python3
"""
CLI for watching a directory tree.

Usage:
    treewatch watch /path/to/project/src
    treewatch watch /path/to/project/src --once --kinds created,deleted
    treewatch scan /path/to/project/src
"""

import argparse
import dataclasses
import logging
import signal
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .cancellation import CancellationToken
from .config import WatcherConfig
from .dispatcher import DirectoryWatcher
from .exceptions import ConfigError, DispatchError, RegistrationError
from .models import ChangeEvent, OverflowNotice, RegistrationPolicy
from .registrar import TreeRegistrar
from .service import WatchService

logger = logging.getLogger("treewatch.cli")


class GracefulShutdown:
    """Cancel a token on SIGINT/SIGTERM."""

    def __init__(self, token: CancellationToken):
        self.token = token
        signal.signal(signal.SIGINT, self._handler)
        signal.signal(signal.SIGTERM, self._handler)

    def _handler(self, signum, frame):
        logger.info("Received shutdown signal, stopping...")
        self.token.cancel()


def build_config(args) -> WatcherConfig:
    """
    Build the watcher configuration from environment and arguments.

    Command-line options override TREEWATCH_* environment variables.

    Raises:
        ConfigError: If an option is invalid
    """
    overrides = {}
    if args.kinds:
        overrides["event_kinds"] = [k for k in args.kinds.split(",") if k.strip()]
    if args.no_follow_new:
        overrides["follow_new_directories"] = False
    if args.policy:
        overrides["registration_policy"] = args.policy
    if args.timeout is not None:
        overrides["wait_timeout"] = args.timeout
    return dataclasses.replace(WatcherConfig.from_env(), **overrides)


def cmd_watch(args) -> int:
    """Watch a tree and print one line per change."""
    root = Path(args.root).resolve()
    try:
        config = build_config(args)
    except ConfigError as e:
        logger.error(str(e))
        return 2

    token = CancellationToken()
    GracefulShutdown(token)

    def on_change():
        if args.once:
            token.cancel()

    def on_event(event: ChangeEvent):
        suffix = "/" if event.is_directory else ""
        print(f"{event.kind.value:<8} {event.path}{suffix}", flush=True)

    def on_overflow(notice: OverflowNotice):
        print(f"overflow {notice.directory} ({notice.dropped} dropped)", flush=True)

    watcher = DirectoryWatcher(
        root,
        on_change,
        config=config,
        on_overflow=on_overflow,
        on_event=on_event,
    )
    watcher.start_async(token)
    if watcher.is_running:
        logger.info(f"Watching {root} ({len(watcher.watched_directories())} directories)")
        logger.info("Press Ctrl+C to stop")

    while watcher.is_running and not token.wait(timeout=0.5):
        pass
    watcher.stop()

    error = watcher.error
    if isinstance(error, RegistrationError):
        logger.error(str(error))
        return 2
    if isinstance(error, DispatchError):
        logger.error(str(error))
        return 1
    if error is not None:
        logger.error(f"Watcher stopped unexpectedly: {error}")
        return 1
    return 0


def cmd_scan(args) -> int:
    """List the directories a watch on the tree would register."""
    root = Path(args.root).resolve()
    policy = RegistrationPolicy(args.policy) if args.policy else RegistrationPolicy.SKIP_SUBTREE

    with WatchService() as service:
        registrar = TreeRegistrar(service, policy)
        try:
            registry = registrar.register_tree(root)
        except RegistrationError as e:
            logger.error(str(e))
            return 2
        for directory in sorted(registry.directories()):
            print(directory)
        logger.info(f"{len(registry)} directories under {root}")
    return 0


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Watch a directory tree for changes",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Print every change below ./src
  treewatch watch ./src

  # Exit after the first created or deleted entry
  treewatch watch ./src --once --kinds created,deleted

  # List the directories that would be watched
  treewatch scan ./src
        """,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", required=True)

    watch_parser = subparsers.add_parser("watch", help="Watch a directory tree")
    watch_parser.add_argument("root", help="Directory to watch")
    watch_parser.add_argument("--kinds", help="Comma separated event kinds (created,deleted,modified)")
    watch_parser.add_argument("--no-follow-new", action="store_true", help="Do not watch directories created later")
    watch_parser.add_argument("--policy", choices=[p.value for p in RegistrationPolicy], help="Subdirectory registration failure policy")
    watch_parser.add_argument("--timeout", type=float, help="Idle wake-up interval in seconds")
    watch_parser.add_argument("--once", action="store_true", help="Exit after the first change")
    watch_parser.set_defaults(func=cmd_watch)

    scan_parser = subparsers.add_parser("scan", help="List directories that would be watched")
    scan_parser.add_argument("root", help="Directory to scan")
    scan_parser.add_argument("--policy", choices=[p.value for p in RegistrationPolicy], help="Subdirectory registration failure policy")
    scan_parser.set_defaults(func=cmd_scan)

    args = parser.parse_args(argv)

    load_dotenv()
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )

    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
