"""CLI entry point for switchboard-server.

This module provides the command-line interface for starting the server.
It can be invoked as `switchboard-server` (via the script entry point) or
`python -m switchboard_server`.
"""

import argparse
import logging
import sys

import uvicorn

from switchboard_server import __version__, create_app
from switchboard_server.config import SwitchboardSettings


def main() -> None:
    """Main entry point for the switchboard-server CLI.

    Parses command-line arguments and starts the uvicorn server with the
    FastAPI application.
    """
    parser = argparse.ArgumentParser(
        prog="switchboard-server",
        description="Multi-provider LLM gateway with tool calling",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"switchboard-server {__version__}",
    )

    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind the server to (default: 127.0.0.1, can be set via SWITCHBOARD_HOST)",
    )

    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind the server to (default: 8000, can be set via SWITCHBOARD_PORT)",
    )

    parser.add_argument(
        "--default-provider",
        type=str,
        default=None,
        help="Provider used when a request names none (can be set via SWITCHBOARD_DEFAULT_PROVIDER)",
    )

    parser.add_argument(
        "--capability-provider",
        action="append",
        default=None,
        metavar="MODULE:ATTR",
        help="Register an in-process capability provider (repeatable)",
    )

    parser.add_argument(
        "--tool-server-autostart",
        action="store_true",
        help="Start the tool server helper process at startup",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO, can be set via SWITCHBOARD_LOG_LEVEL)",
    )

    args = parser.parse_args()

    # Build settings, CLI args override environment variables
    settings_kwargs = {}
    if args.host is not None:
        settings_kwargs["host"] = args.host
    if args.port is not None:
        settings_kwargs["port"] = args.port
    if args.default_provider is not None:
        settings_kwargs["default_provider"] = args.default_provider
    if args.capability_provider:
        settings_kwargs["capability_providers"] = args.capability_provider
    if args.tool_server_autostart:
        settings_kwargs["tool_server_autostart"] = True
    if args.log_level is not None:
        settings_kwargs["log_level"] = args.log_level

    settings = SwitchboardSettings(**settings_kwargs)

    logging.basicConfig(
        level=settings.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    app = create_app(settings=settings)

    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
    )


if __name__ == "__main__":
    sys.exit(main())
