"""Command-line interface for Email Gateway.

This module provides the main entry point for the CLI application.
"""

from __future__ import annotations

import argparse
import sys

import structlog
import uvicorn

from email_gateway import __version__
from email_gateway.config import get_settings
from email_gateway.utils import configure_logging

logger = structlog.get_logger()


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="email-gateway", description="Email Gateway")
    subparsers = parser.add_subparsers(dest="command", required=True)

    serve_parser = subparsers.add_parser("serve", help="Run the HTTP server")
    serve_parser.add_argument("--host", default="127.0.0.1", help="Bind address (default: 127.0.0.1)")
    serve_parser.add_argument("--port", type=int, default=3000, help="Bind port (default: 3000)")
    serve_parser.add_argument(
        "--reload",
        action="store_true",
        help="Restart the server when source files change (development only)",
    )

    return parser


def _cmd_serve(args: argparse.Namespace) -> int:
    uvicorn.run(
        "email_gateway.app:create_app",
        factory=True,
        host=args.host,
        port=args.port,
        reload=args.reload,
        log_config=None,
    )
    return 0


def main(args: list[str] | None = None) -> int:
    """Main entry point for the Email Gateway CLI.

    Args:
        args: Command-line arguments. If None, uses sys.argv.

    Returns:
        Exit code (0 for success, non-zero for failure).
    """
    if args is None:
        args = sys.argv[1:]

    settings = get_settings()
    configure_logging(settings)

    logger.info(
        "email_gateway_started",
        version=__version__,
        environment=settings.environment,
        debug=settings.debug,
    )

    parser = _build_parser()
    parsed = parser.parse_args(args)

    if parsed.command == "serve":
        return _cmd_serve(parsed)

    logger.error("unknown_command", command=parsed.command)
    return 2


if __name__ == "__main__":
    sys.exit(main())
