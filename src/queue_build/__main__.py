#!/usr/bin/env python3
"""queue-build HTTP server entry point.

Run:
  python -m queue_build                      # serve on 0.0.0.0:8080
  python -m queue_build --port 9000          # serve on another port
  python -m queue_build --check-config       # validate configuration then exit
"""

import argparse
import os
import sys

import uvicorn

from queue_build.errors import SafeError
from queue_build.runtime import initialize_runtime_from_env


def parse_args(argv: list[str]) -> argparse.Namespace:
    """Parse CLI arguments."""
    parser = argparse.ArgumentParser(prog="queue_build", add_help=True)
    parser.add_argument("--host", default="0.0.0.0", help="Interface to bind.")
    parser.add_argument(
        "--port",
        type=int,
        default=int(os.getenv("PORT", "8080")),
        help="Port to bind (defaults to $PORT, then 8080).",
    )
    parser.add_argument(
        "--check-config",
        action="store_true",
        help="Load and validate configuration from the environment, then exit.",
    )
    return parser.parse_args(argv)


def main() -> None:
    """CLI dispatcher for the HTTP server."""
    args = parse_args(sys.argv[1:])
    try:
        # Fail fast on invalid/missing host configuration.
        runtime = initialize_runtime_from_env()
    except SafeError as exc:
        print(f"Startup configuration error: {exc.message}", file=sys.stderr)
        sys.exit(2)

    if args.check_config:
        print(f"Configuration OK (queue {runtime.config.queue.path})", file=sys.stderr)
        return

    try:
        uvicorn.run("queue_build.app:app", host=args.host, port=args.port)
    except KeyboardInterrupt:
        print("\nServer stopped by user", file=sys.stderr)


if __name__ == "__main__":
    main()
