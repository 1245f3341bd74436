"""CLI entry point for toolcall-server.

This module provides the command-line interface for starting the toolcall-server.
It can be invoked as `toolcall-server` (via the script entry point) or
`python -m toolcall_server`.
"""

import argparse
import sys

import uvicorn

from toolcall_server import __version__, create_app
from toolcall_server.config import ToolcallServerSettings


def build_parser() -> argparse.ArgumentParser:
    """Create the argument parser for the CLI."""
    parser = argparse.ArgumentParser(
        prog="toolcall-server",
        description="Tool-call detection, execution and response orchestration for LLM replies",
    )

    parser.add_argument(
        "--version",
        action="version",
        version=f"toolcall-server {__version__}",
    )

    parser.add_argument(
        "--host",
        type=str,
        default=None,
        help="Host to bind the server to (default: 127.0.0.1, can be set via TOOLCALL_HOST)",
    )

    parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port to bind the server to (default: 8000, can be set via TOOLCALL_PORT)",
    )

    parser.add_argument(
        "--ollama-host",
        type=str,
        default=None,
        help="Ollama server URL (default: http://localhost:11434, can be set via TOOLCALL_OLLAMA_HOST)",
    )

    parser.add_argument(
        "--registry-file",
        type=str,
        default=None,
        help="Tool registry JSON file, relative to the data dir "
        "(default: tools/registry.json, can be set via TOOLCALL_REGISTRY_FILE)",
    )

    parser.add_argument(
        "--log-level",
        type=str,
        default=None,
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Logging level (default: INFO, can be set via TOOLCALL_LOG_LEVEL)",
    )

    parser.add_argument(
        "--reload",
        action="store_true",
        help="Enable auto-reload for development (uvicorn --reload)",
    )

    return parser


def settings_from_args(args: argparse.Namespace) -> ToolcallServerSettings:
    """Build settings; CLI arguments override environment variables."""
    settings_kwargs = {}
    if args.host is not None:
        settings_kwargs["host"] = args.host
    if args.port is not None:
        settings_kwargs["port"] = args.port
    if args.ollama_host is not None:
        settings_kwargs["ollama_host"] = args.ollama_host
    if args.registry_file is not None:
        settings_kwargs["registry_file"] = args.registry_file
    if args.log_level is not None:
        settings_kwargs["log_level"] = args.log_level

    return ToolcallServerSettings(**settings_kwargs)


def main() -> None:
    """Main entry point for the toolcall-server CLI.

    Parses command-line arguments and starts the uvicorn server with the
    FastAPI application.
    """
    args = build_parser().parse_args()
    settings = settings_from_args(args)

    # Create the FastAPI app
    app = create_app(settings=settings)

    # Start uvicorn
    uvicorn.run(
        app,
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=args.reload,
    )


if __name__ == "__main__":
    sys.exit(main())
