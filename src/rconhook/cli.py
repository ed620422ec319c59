"""CLI entry point for the webhook service."""

from __future__ import annotations

import argparse
import logging
import sys
from pathlib import Path

from rconhook.client import execute
from rconhook.config import load_config
from rconhook.console import run_console
from rconhook.errors import ConfigError, RconError, describe_error
from rconhook.formatting import strip_formatting
from rconhook.server import serve

log = logging.getLogger(__name__)

_LOG_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


def build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="rconhook",
        description="Trigger RCON commands through HTTP webhooks",
    )
    parser.add_argument(
        "--config",
        type=Path,
        default=None,
        help="Path to the config file (default: $CONFIG_FILE or ./config.toml)",
    )
    parser.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        default=False,
        help="Enable debug logging",
    )
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument(
        "-c",
        "--command",
        help="Execute a single RCON command, print the reply, and exit",
    )
    mode.add_argument(
        "-i",
        "--interactive",
        action="store_true",
        default=False,
        help="Start an interactive RCON console instead of the HTTP server",
    )
    parser.add_argument(
        "--no-color",
        action="store_true",
        default=False,
        help="Strip formatting codes in console output",
    )
    return parser


def configure_logging(*, verbose: bool = False) -> None:
    """Send log records to stderr."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format=_LOG_FORMAT,
        stream=sys.stderr,
    )


def main(argv: list[str] | None = None) -> None:
    """Main entry point for the CLI."""
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(verbose=args.verbose)

    try:
        config = load_config(args.config)
    except ConfigError as e:
        print(f"Error: {describe_error(e)}", file=sys.stderr)
        sys.exit(1)

    if args.command:
        try:
            reply = execute(config.rcon, args.command)
        except RconError as e:
            print(f"Error: {describe_error(e)}", file=sys.stderr)
            sys.exit(1)
        if reply:
            print(strip_formatting(reply) if args.no_color else reply)
        return

    if args.interactive:
        run_console(config, color=not args.no_color)
        return

    try:
        serve(config)
    except KeyboardInterrupt:
        log.info("Shutting down")
    except (ConfigError, OSError) as e:
        print(f"Error: {describe_error(e)}", file=sys.stderr)
        sys.exit(1)
