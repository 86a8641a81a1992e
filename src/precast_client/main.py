"""CLI entry point — ties together configuration, login and requests."""

from __future__ import annotations

import argparse
import logging

from precast_client.settings import SettingsError, load_settings


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="precast-client",
        description="Precast API client: authenticated requests with session validation and token refresh",
    )
    parser.add_argument(
        "--config",
        default=None,
        help="Path to settings.yaml (default: config/settings.yaml)",
    )
    parser.add_argument(
        "--verbose", "-v",
        action="store_true",
        help="Enable debug logging",
    )
    sub = parser.add_subparsers(dest="command", required=True)
    sub.add_parser("login", help="Log in and store the token pair")
    sub.add_parser("logout", help="Clear the stored token pair")
    sub.add_parser("status", help="Show the stored token pair's state")

    req = sub.add_parser("request", help="Send one authenticated request")
    req.add_argument("method", help="HTTP method, e.g. GET or POST")
    req.add_argument("url", help="Path relative to the API base URL, or an absolute URL")
    req.add_argument("--json", default=None, help="JSON request body")
    req.add_argument("--form", action="append", metavar="FIELD=VALUE", help="Multipart form field")
    req.add_argument("--file", action="append", metavar="FIELD=PATH", help="Multipart file upload")
    req.add_argument("--header", "-H", action="append", metavar="NAME=VALUE", help="Extra header")
    req.add_argument(
        "--no-session-header",
        action="store_true",
        help="Do not duplicate the credential in the session header",
    )
    return parser


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )

    try:
        settings = load_settings(args.config)
    except SettingsError as exc:
        parser.error(str(exc))

    from precast_client.prompt.cli import run_cli

    run_cli(settings=settings, args=args)


if __name__ == "__main__":
    main()
