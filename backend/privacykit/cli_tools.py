#!/usr/bin/env python3
"""
CLI tool for managing links.
Usage: privacykit-admin {init-db,create,show} ...
"""

import argparse
import sys
from typing import List, Optional

from .config import Settings, get_settings
from .errors import LinkServiceError
from .services import LinkService
from .shortcode import ShortCodeGenerator
from .store import LinkStore
from .utils import format_short_url, isoformat_millis


def open_service(settings: Settings) -> LinkService:
    store = LinkStore(settings.DATABASE_URL, synchronous=settings.SQLITE_SYNCHRONOUS)
    store.init_schema()
    generator = ShortCodeGenerator(
        store,
        length=settings.SHORT_CODE_LENGTH,
        max_attempts=settings.CODE_MAX_ATTEMPTS,
    )
    return LinkService(
        store,
        generator=generator,
        blocked_domains=settings.BLOCKED_DOMAINS,
    )


def init_db(service: LinkService, settings: Settings) -> None:
    """Schema creation happens when the store is opened."""
    print(f"Database ready: {settings.DATABASE_URL}")


def create_link(service: LinkService, settings: Settings, url: str,
                expiry_hours: Optional[float], max_clicks: Optional[int]) -> None:
    link = service.create_link(url, expiry_hours=expiry_hours, max_clicks=max_clicks)
    print(f"Short URL:  {format_short_url(link.short_code, settings.BASE_URL)}")
    print(f"Code:       {link.short_code}")
    print(f"Expires:    {isoformat_millis(link.expires_at) or 'never'}")
    print(f"Max clicks: {link.max_clicks or 'unlimited'}")


def show_link(service: LinkService, code: str) -> None:
    """Print a link's state without counting a click."""
    record = service.get_link(code)
    limit = record.max_clicks if record.max_clicks is not None else "unlimited"
    print(f"Code:       {record.short_code}")
    print(f"URL:        {record.original_url}")
    print(f"Clicks:     {record.click_count} / {limit}")
    print(f"Active:     {record.active}")
    print(f"Created:    {isoformat_millis(record.created_at)}")
    print(f"Expires:    {isoformat_millis(record.expires_at) or 'never'}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="PrivacyKit link management CLI")
    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("init-db", help="Create the database schema")

    create_parser = subparsers.add_parser("create", help="Create a new short link")
    create_parser.add_argument("url", help="Destination URL")
    create_parser.add_argument("--expiry-hours", "-e", type=float, default=None,
                               help="Hours until the link expires")
    create_parser.add_argument("--max-clicks", "-m", type=int, default=None,
                               help="Redirects allowed before the link is deactivated")

    show_parser = subparsers.add_parser("show", help="Show a link without resolving it")
    show_parser.add_argument("code", help="Short code")

    return parser


def main(argv: Optional[List[str]] = None, settings: Optional[Settings] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    settings = settings or get_settings()

    service = open_service(settings)
    try:
        if args.command == "init-db":
            init_db(service, settings)
        elif args.command == "create":
            create_link(service, settings, args.url, args.expiry_hours, args.max_clicks)
        elif args.command == "show":
            show_link(service, args.code)
    except LinkServiceError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        service.store.close()

    return 0


if __name__ == "__main__":
    sys.exit(main())
