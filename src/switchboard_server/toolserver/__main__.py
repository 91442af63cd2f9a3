"""Entry point of the tool server helper process.

Started by the gateway as `python -m switchboard_server.toolserver`; it can
also be run by hand, in which case the gateway adopts it.
"""

import argparse
import sys

import uvicorn

from switchboard_server.tools import load_capability_provider
from switchboard_server.toolserver.app import create_tool_server_app


def main() -> None:
    """Parse arguments and serve the tool server until /shutdown."""
    parser = argparse.ArgumentParser(
        prog="switchboard-toolserver",
        description="Loopback helper hosting capability providers",
    )
    parser.add_argument("--host", type=str, default="127.0.0.1", help="Host to bind to")
    parser.add_argument("--port", type=int, default=3000, help="Port to bind to")
    parser.add_argument(
        "--provider",
        action="append",
        default=[],
        help="Capability provider to host, as 'package.module:attribute' (repeatable)",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="INFO",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level",
    )
    args = parser.parse_args()

    providers = [load_capability_provider(path) for path in args.provider]
    app = create_tool_server_app(providers)

    config = uvicorn.Config(
        app, host=args.host, port=args.port, log_level=args.log_level.lower()
    )
    server = uvicorn.Server(config)
    app.state.server = server
    server.run()


if __name__ == "__main__":
    sys.exit(main())
