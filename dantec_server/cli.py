"""Command-line interface for Dantec Market MCP Server."""

import argparse
import asyncio
import sys


def main() -> None:
    """Main CLI entry point."""
    parser = argparse.ArgumentParser(
        description="Dantec Market MCP Server - cart, orders and pickup reservations"
    )
    parser.add_argument(
        "--mode",
        choices=["stdio", "http"],
        default="stdio",
        help="Server mode: stdio (for MCP clients) or http (REST API)",
    )
    parser.add_argument(
        "--host",
        default="0.0.0.0",
        help="HTTP server host (only for http mode, default: 0.0.0.0)",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=8000,
        help="HTTP server port (only for http mode, default: 8000)",
    )

    args = parser.parse_args()

    try:
        if args.mode == "http":
            from .http_server import run_http_server

            print(f"Starting Dantec Market HTTP Server on {args.host}:{args.port}", file=sys.stderr)
            run_http_server(host=args.host, port=args.port)
        else:
            from .server import main as server_main

            asyncio.run(server_main())
    except KeyboardInterrupt:
        print("\nShutting down...", file=sys.stderr)
        sys.exit(0)


if __name__ == "__main__":
    main()
