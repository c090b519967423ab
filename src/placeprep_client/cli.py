# src/placeprep_client/cli.py
"""
Command-line front end for the PlacePrep API client.

    placeprep-client login --email ada@example.com
    placeprep-client request GET /dashboard
    placeprep-client request POST /companies --json '{"name": "Acme"}'
    placeprep-client status
    placeprep-client logout
"""

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import replace
from pathlib import Path
from typing import Dict, List, Optional

import colorlog
from dotenv import load_dotenv
from rich.console import Console
from rich.panel import Panel
from rich.prompt import Prompt
from rich.syntax import Syntax

from .client import PlacePrepClient
from .config import ClientConfig
from .error_handler import ApiError, SessionExpiredError, format_detail
from .failure_logger import configure_failure_logger
from .utils.paths import get_default_root, get_logs_dir

console = Console()


def setup_logging(root: Path, verbose: bool = False) -> None:
    """Colored console output plus a plain log file under <root>/logs."""
    log_dir = get_logs_dir(root)
    configure_failure_logger(log_dir)

    console_handler = colorlog.StreamHandler(sys.stderr)
    console_handler.setLevel(logging.DEBUG if verbose else logging.WARNING)
    console_handler.setFormatter(
        colorlog.ColoredFormatter(
            "%(log_color)s%(message)s",
            log_colors={
                "DEBUG": "cyan",
                "INFO": "green",
                "WARNING": "yellow",
                "ERROR": "red",
                "CRITICAL": "red,bg_white",
            },
        )
    )

    file_handler = logging.FileHandler(log_dir / "client.log", encoding="utf-8")
    file_handler.setLevel(logging.INFO)
    file_handler.setFormatter(
        logging.Formatter("%(asctime)s - %(name)s - %(levelname)s - %(message)s")
    )

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)
    root_logger.addHandler(console_handler)
    root_logger.addHandler(file_handler)

    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="placeprep-client", description="PlacePrep API client"
    )
    parser.add_argument("--backend-url", help="Override PLACEPREP_BACKEND_URL.")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging.")
    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="Log in and store credentials.")
    login.add_argument("--email")
    login.add_argument("--password")

    register = sub.add_parser("register", help="Create an account and log in.")
    register.add_argument("--name")
    register.add_argument("--email")
    register.add_argument("--password")

    sub.add_parser("logout", help="Forget stored credentials.")
    sub.add_parser("status", help="Show session status.")

    request = sub.add_parser("request", help="Call an API endpoint.")
    request.add_argument("method", help="HTTP method, e.g. GET")
    request.add_argument("path", help="API path, e.g. /dashboard")
    request.add_argument("--json", dest="body", help="JSON request body.")
    request.add_argument(
        "--param",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Query parameter (repeatable).",
    )
    return parser


def _parse_params(raw: List[str]) -> Optional[Dict[str, str]]:
    params = {}
    for item in raw:
        key, sep, value = item.partition("=")
        if not sep:
            raise ValueError(f"Invalid --param '{item}', expected KEY=VALUE")
        params[key] = value
    return params or None


def _print_response(response) -> None:
    try:
        body = json.dumps(response.json(), indent=2)
        console.print(Syntax(body, "json", theme="ansi_dark"))
    except ValueError:
        console.print(response.text)


async def run(args: argparse.Namespace, config: ClientConfig) -> int:
    async with PlacePrepClient(config) as client:
        client.on_session_expired(
            lambda target: console.print(
                Panel(
                    f"Your session has expired. Run [bold]placeprep-client login[/bold] "
                    f"to sign in again ({target}).",
                    title="Session expired",
                    border_style="red",
                )
            )
        )

        if args.command == "login":
            email = args.email or Prompt.ask("Email")
            password = args.password or Prompt.ask("Password", password=True)
            await client.login(email, password)
            console.print(f"[green]Logged in as {email}[/green]")

        elif args.command == "register":
            name = args.name or Prompt.ask("Name")
            email = args.email or Prompt.ask("Email")
            password = args.password or Prompt.ask("Password", password=True)
            await client.register(name, email, password)
            console.print(f"[green]Account created for {email}[/green]")

        elif args.command == "logout":
            client.logout()
            console.print("Logged out.")

        elif args.command == "status":
            console.print_json(json.dumps(client.get_status()))

        elif args.command == "request":
            body = json.loads(args.body) if args.body else None
            response = await client.request(
                args.method, args.path, json=body, params=_parse_params(args.param)
            )
            _print_response(response)

    return 0


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    root = get_default_root()
    load_dotenv(root / ".env")
    setup_logging(root, args.verbose)

    config = ClientConfig.from_env()
    if args.backend_url:
        config = replace(config, backend_url=args.backend_url)

    try:
        return asyncio.run(run(args, config))
    except SessionExpiredError:
        # The session-expired listener already told the user what to do
        return 2
    except ApiError as e:
        message = format_detail(e.detail) or e.message
        console.print(f"[red]Error:[/red] {message}")
        return 1
    except ValueError as e:
        console.print(f"[red]Error:[/red] {e}")
        return 1


if __name__ == "__main__":
    sys.exit(main())
