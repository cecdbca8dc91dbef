#!/usr/bin/env python3
"""
Google Photos Sync - read-only sync of a Google Photos library onto local disk.

Run once with --search / --download / --reconcile, or with no mode flag to
stay running and trigger each step on its configured schedule.
"""

import argparse
import logging
import sys
from pathlib import Path

from gphotos_sync.catalog import open_catalog
from gphotos_sync.config import AppConfig
from gphotos_sync.errors import PhotoSyncError
from gphotos_sync.photos import OAuthManager, PhotosClient
from gphotos_sync.scheduling import JobTask, TaskQueue, TaskScheduler, run_task_receiver
from gphotos_sync.sync import SyncDriver

log = logging.getLogger("gphotos_sync")

DEFAULT_CONFIG_PATH = Path("config.json")


def setup_logging(level: int):
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-7s %(name)s: %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def build_driver(config: AppConfig) -> SyncDriver:
    """Wire up the catalog, API client and auth from config."""
    store = open_catalog(Path(config.catalog_path))
    auth = OAuthManager(
        credentials_path=Path(config.credentials_path),
        token_path=Path(config.token_path),
    )
    return SyncDriver(config, store, PhotosClient(), auth)


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Read-only sync of Google Photos onto a local disk"
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=DEFAULT_CONFIG_PATH,
        help="Path to config.json (default: ./config.json)",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "-s", "--search",
        nargs=2,
        type=int,
        metavar=("DAYS_BACK", "LIMIT"),
        help="Search and store media items from the last DAYS_BACK days",
    )
    mode.add_argument(
        "-d", "--download",
        type=int,
        metavar="COUNT",
        help="Download up to COUNT media items",
    )
    mode.add_argument(
        "-r", "--reconcile",
        action="store_true",
        help="Correct downloaded flags against files on disk",
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Debug logging",
    )
    return parser.parse_args(argv)


def run_scheduled(driver: SyncDriver, config: AppConfig):
    """Run forever, executing scheduled triggers one at a time."""
    tasks = TaskQueue()
    scheduler = TaskScheduler(config, tasks)
    scheduler.start()
    log.info("Waiting for scheduled tasks (Ctrl+C to stop)")
    try:
        run_task_receiver(tasks, driver.handle)
    finally:
        scheduler.shutdown()


def main(argv=None) -> int:
    """Entry point."""
    args = parse_args(argv)

    try:
        config = AppConfig.load(args.config)
    except PhotoSyncError as e:
        setup_logging(logging.INFO)
        log.error("%s", e)
        return 1

    setup_logging(logging.DEBUG if args.verbose else config.log_level_value)

    try:
        driver = build_driver(config)

        if args.search:
            days_back, limit = args.search
            ok = driver.handle(JobTask.search(days_back, limit))
        elif args.download is not None:
            ok = driver.handle(JobTask.download(args.download))
        elif args.reconcile:
            ok = driver.handle(JobTask.reconcile())
        else:
            run_scheduled(driver, config)
            ok = True
    except (PhotoSyncError, ValueError) as e:
        log.error("Fatal: %s", e)
        return 1

    return 0 if ok else 1


if __name__ == "__main__":
    try:
        sys.exit(main())
    except KeyboardInterrupt:
        print("\n\nCancelled by user.")
        sys.exit(0)
