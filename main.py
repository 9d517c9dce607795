"""Command-line interface for the StageControl user admin service."""

from __future__ import annotations
import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import Sequence

try:
    import httpx  # noqa: F401
except ImportError as exc:  # pragma: no cover - exercised in environments missing deps
    raise SystemExit(
        "The 'httpx' package is required. Execute `pip install -e .` to install dependencies."
    ) from exc

from stagecontrol.config import ConsoleSettings, load_settings
from stagecontrol.database import Database

logger = logging.getLogger("stagecontrol.main")


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="StageControl user admin utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve", config=None)

    common = argparse.ArgumentParser(add_help=False)
    common.add_argument(
        "--config",
        default=None,
        help="Path to a YAML settings file (default: STAGECONTROL_CONFIG)",
    )

    subparsers.add_parser(
        "init-db",
        parents=[common],
        help="Create the user collection if it does not exist",
    )

    serve_parser = subparsers.add_parser(
        "serve", parents=[common], help="Start the /api/users HTTP service"
    )
    serve_parser.add_argument("--host", default=None, help="Bind address for the API")
    serve_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port for the HTTP API (default: 8000)",
    )

    admin_parser = subparsers.add_parser(
        "admin", parents=[common], help="Launch the interactive administration console"
    )
    admin_parser.add_argument(
        "--service-url",
        default=None,
        help="Base URL of a running user service (default: STAGECONTROL_API_URL)",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "admin", "init-db"}

    if not args_list:
        args_list = ["serve"]
    else:
        first = args_list[0]
        if first in ("-h", "--help"):
            return parser.parse_args(args_list)
        if first not in known_commands:
            if any(flag in args_list for flag in ("-h", "--help")):
                return parser.parse_args(args_list)
            args_list = ["serve", *args_list]

    return parser.parse_args(args_list)


def _initialise_database(settings: ConsoleSettings) -> None:
    with Database(settings.database_path) as database:
        database.initialize()
    logger.info("User collection initialised at %s", settings.database_path)


def _serve(*, settings: ConsoleSettings, host: str | None, port: int | None) -> None:
    from stagecontrol.api import create_app
    import uvicorn

    bind_host = host or settings.host
    bind_port = port or settings.port
    logger.info("Starting user API on http://%s:%s", bind_host, bind_port)

    app = create_app(settings=settings)
    uvicorn.run(
        app,
        host=bind_host,
        port=bind_port,
        log_level=settings.log_level.lower(),
    )


def _run_admin_cli(settings: ConsoleSettings, *, service_url: str | None = None) -> None:
    """Provide an interactive user management console for administrators."""

    from stagecontrol.console import run_console

    try:
        asyncio.run(run_console(settings, service_url=service_url))
    except KeyboardInterrupt:
        print("\nExiting administration console.")


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    args = _parse_args(argv)
    settings = load_settings(Path(args.config) if args.config else None)

    logging.basicConfig(
        level=getattr(logging, settings.log_level, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )

    if args.command == "serve":
        _serve(settings=settings, host=args.host, port=args.port)
    elif args.command == "admin":
        _run_admin_cli(settings, service_url=args.service_url)
    elif args.command == "init-db":
        _initialise_database(settings)
        print("Database initialisation complete.")


if __name__ == "__main__":
    main()
