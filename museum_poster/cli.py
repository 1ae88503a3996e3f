"""CLI entry point for museum-poster.

Usage:
    museum-poster publish [--md5 MD5] [--attempts N]
    museum-poster add --md5 MD5 --name NAME [--url URL] [--screenshot URL_OR_PATH]
    museum-poster records [--unpublished]
    museum-poster reconcile --md5 MD5 --post-id ID --url URL
    museum-poster release --md5 MD5
    museum-poster status
"""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from museum_poster.config import load_config, PosterConfig
from museum_poster.errors import PublishFailed, RecordingError
from museum_poster.factory import build_notifier, build_publisher, build_store
from museum_poster.publisher import PublishStatus, post_and_notify
from museum_poster.store import ContentRecord, Platform

EXIT_FAILED = 1
EXIT_UNRECORDED = 2


def cmd_publish(cfg: PosterConfig, md5: str | None, attempts: int) -> int:
    publisher = build_publisher(cfg)
    notifier = build_notifier(cfg)
    try:
        report = post_and_notify(publisher, notifier, key=md5, attempts=attempts)
    except PublishFailed as exc:
        print(f"  [FAILED] {exc.stage.value}: {exc.cause}", file=sys.stderr)
        if exc.post_exists:
            print(
                "  The post is public but was not recorded. Run `reconcile` "
                "before publishing again.",
                file=sys.stderr,
            )
            return EXIT_UNRECORDED
        return EXIT_FAILED

    result = report.result
    if result.status == PublishStatus.NOTHING_TO_PUBLISH:
        print("Nothing to publish.")
    else:
        print(f"  [{result.status.value.upper()}] {result.key}: {result.url}")
    if report.notification_error is not None:
        print(f"  [WARNING] notification: {report.notification_error}", file=sys.stderr)
    return 0


def cmd_add(
    cfg: PosterConfig, md5: str, name: str, url: str, screenshot: str,
) -> int:
    store = build_store(cfg)
    try:
        record = ContentRecord(
            md5=md5, file_name=name, canonical_url=url, screenshot_url=screenshot,
        )
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_FAILED
    stored = store.add(record)
    print(f"  {stored.md5}: {stored.file_name} ({stored.canonical_url})")
    return 0


def cmd_records(cfg: PosterConfig, unpublished_only: bool) -> int:
    store = build_store(cfg)
    records = store.unpublished(Platform.BLUESKY) if unpublished_only else store.all_records
    print(f"{'Unpublished' if unpublished_only else 'All records'}: {len(records)}")
    for r in records:
        pub = r.publication(Platform.BLUESKY)
        print(f"  [{pub.status}] {r.md5} {r.file_name}: {pub.url or r.canonical_url}")
    return 0


def cmd_reconcile(cfg: PosterConfig, md5: str, post_id: str, url: str) -> int:
    store = build_store(cfg)
    try:
        store.mark_published(Platform.BLUESKY, md5, post_id, url)
    except RecordingError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_FAILED
    print(f"  [PUBLISHED] {md5}: {url}")
    return 0


def cmd_release(cfg: PosterConfig, md5: str) -> int:
    store = build_store(cfg)
    try:
        released = store.release_pending(Platform.BLUESKY, md5)
    except RecordingError as exc:
        print(str(exc), file=sys.stderr)
        return EXIT_FAILED
    print(f"  {md5}: {'released' if released else 'not pending'}")
    return 0


def cmd_status(cfg: PosterConfig) -> int:
    print(f"Live mode: {cfg.live_mode}")
    print(f"Bluesky:  {cfg.bluesky_handle or 'not configured'}")
    print(f"Discord:  {'configured' if cfg.discord_channel_id else 'not configured'}")
    print(f"Store:    {cfg.store_path}")
    return 0


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="museum-poster", description="Post museum skins to Bluesky")
    parser.add_argument("--config", type=Path, default=None, help="Config YAML file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log each stage")
    sub = parser.add_subparsers(dest="command")

    publish_p = sub.add_parser("publish", help="Post one skin and notify Discord")
    publish_p.add_argument("--md5", default=None, help="Skin to post (default: next unpublished)")
    publish_p.add_argument("--attempts", type=int, default=1,
                           help="Re-run the cycle on retryable failures")

    add_p = sub.add_parser("add", help="Add a skin to the store")
    add_p.add_argument("--md5", required=True)
    add_p.add_argument("--name", required=True, help="Skin file name")
    add_p.add_argument("--url", default="", help="Museum url (default: derived from md5)")
    add_p.add_argument("--screenshot", default="", help="Screenshot url or local path")

    records_p = sub.add_parser("records", help="List skins and their Bluesky status")
    records_p.add_argument("--unpublished", action="store_true")

    reconcile_p = sub.add_parser("reconcile", help="Record a post that was not recorded")
    reconcile_p.add_argument("--md5", required=True)
    reconcile_p.add_argument("--post-id", required=True)
    reconcile_p.add_argument("--url", required=True)

    release_p = sub.add_parser("release", help="Clear a stale pending mark")
    release_p.add_argument("--md5", required=True)

    sub.add_parser("status", help="Show configuration status")

    args = parser.parse_args(argv)
    if not args.command:
        parser.print_help()
        return

    logging.basicConfig(
        level=logging.INFO if args.verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
    cfg = load_config(args.config)

    if args.command == "publish":
        code = cmd_publish(cfg, args.md5, args.attempts)
    elif args.command == "add":
        code = cmd_add(cfg, args.md5, args.name, args.url, args.screenshot)
    elif args.command == "records":
        code = cmd_records(cfg, args.unpublished)
    elif args.command == "reconcile":
        code = cmd_reconcile(cfg, args.md5, args.post_id, args.url)
    elif args.command == "release":
        code = cmd_release(cfg, args.md5)
    else:
        code = cmd_status(cfg)

    if code:
        sys.exit(code)


if __name__ == "__main__":
    main()
