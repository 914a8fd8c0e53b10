"""
cli.py
======
Command-line entry point for operating the offline core.

Usage:
    pwa-core install
    pwa-core fetch http://localhost:8000/index.html --navigate
    pwa-core sync
    pwa-core status
    pwa-core check

Every command prints one JSON document on stdout.
"""

import argparse
import json
import logging
import sys
from typing import List, Optional

from pwa_core.errors import OfflineCoreError
from pwa_core.logging import setup_logging
from pwa_core.offline.config import load_config
from pwa_core.offline.connection_manager import ConnectionManager
from pwa_core.offline.http import Request
from pwa_core.offline.worker import ServiceWorker

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="pwa-core",
        description="Cache routing and offline form sync for the service-order app"
    )
    parser.add_argument(
        "--config",
        type=str,
        default=None,
        help="Path to a TOML file with a [worker] table"
    )
    parser.add_argument(
        "--verbose",
        action="store_true",
        help="Enable debug logging"
    )

    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("install", help="Populate the current cache and activate it")
    sub.add_parser("activate", help="Evict superseded caches")

    fetch = sub.add_parser("fetch", help="Route one GET request through the worker")
    fetch.add_argument("url", help="Absolute URL to request")
    fetch.add_argument("--navigate", action="store_true", help="Treat as a page navigation")

    sub.add_parser("sync", help="Run one reconciliation pass")
    sub.add_parser("status", help="Show caches and pending forms")
    sub.add_parser("check", help="Check once whether the backend host is reachable")
    return parser


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)
    setup_logging(level=logging.DEBUG if args.verbose else logging.INFO)

    try:
        config = load_config(args.config)
    except OfflineCoreError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    worker = ServiceWorker(config)
    try:
        if args.command == "install":
            report = worker.install()
            _print_json({"bucket": report.bucket, "cached": report.cached, "error": report.error})
            return 0

        if args.command == "activate":
            _print_json({"deleted": worker.activate()})
            return 0

        if args.command == "fetch":
            worker.activate()
            mode = "navigate" if args.navigate else "cors"
            response = worker.dispatch_fetch(Request(args.url, mode=mode))
            if response is None:
                _print_json({"url": args.url, "handled": False})
                return 0
            _print_json({
                "url": args.url,
                "handled": True,
                "status": response.status,
                "size_bytes": len(response.read()),
            })
            return 0

        if args.command == "check":
            connection = ConnectionManager(config)
            connection.check_connection()
            _print_json(connection.get_status_display())
            return 0 if connection.is_online else 1

        if args.command == "sync":
            result = worker.dispatch_sync(config.sync_tag)
            _print_json(result.to_dict())
            return 0 if result.ok else 1

        if args.command == "status":
            status = {
                "cache_version": config.cache_version,
                "caches": worker.storage.get_cache_stats(),
                "sync": worker.reconciler.get_status_display(),
            }
            _print_json(status)
            return 0

    except OfflineCoreError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 1
    finally:
        worker.terminate()
        worker.fetcher.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
