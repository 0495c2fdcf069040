"""Command-line entry for icalfeed."""

from __future__ import annotations

import argparse
import sys
from typing import NoReturn, Optional

from . import run_server


def _create_parser() -> argparse.ArgumentParser:
    """Create argument parser for the icalfeed CLI.

    Returns:
        Configured argument parser
    """
    parser = argparse.ArgumentParser(
        prog="icalfeed",
        description="icalfeed - merged, windowed iCalendar feeds over HTTP",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m icalfeed                              # Start with config-default.yml
  python -m icalfeed --config config.yml          # Layer config.yml over the defaults
  python -m icalfeed --host 127.0.0.1 --port 3000
        """,
    )

    parser.add_argument(
        "--config",
        metavar="PATH",
        help="Configuration file layered over the defaults (default: $ICALFEED_CONFIG)",
    )
    parser.add_argument(
        "--host",
        metavar="HOST",
        help="Host to bind the web server to (default: from config or ICALFEED_SERVER_HOST)",
    )
    parser.add_argument(
        "--port",
        type=int,
        metavar="PORT",
        help="Port number for the web server (default: 8080, or from ICALFEED_SERVER_PORT)",
    )

    return parser


def main(argv: Optional[list[str]] = None) -> NoReturn:
    """Run the icalfeed CLI."""
    from icalfeed.core.config_manager import ConfigError

    parser = _create_parser()
    args = parser.parse_args(argv)

    try:
        run_server(args)
    except ConfigError as exc:
        print(f"icalfeed: configuration error: {exc}", file=sys.stderr)
        sys.exit(2)
    sys.exit(0)


if __name__ == "__main__":
    main()
