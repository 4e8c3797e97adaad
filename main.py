"""Command-line interface for the user directory service."""

from __future__ import annotations
import argparse
import logging
import os
import sys
from pathlib import Path
from typing import Sequence


def _running_in_virtualenv() -> bool:
    """Return ``True`` when the current interpreter is executing inside a venv."""

    base_prefix = getattr(sys, "base_prefix", sys.prefix)
    return sys.prefix != base_prefix


def _bootstrap_virtualenv() -> None:
    """Re-exec the script using the bundled virtualenv interpreter when available."""

    if _running_in_virtualenv():
        return

    root = Path(__file__).resolve().parent
    venv_dir = root / ".venv"
    if not venv_dir.is_dir():
        return

    candidates = (
        venv_dir / "bin" / "python",
        venv_dir / "bin" / "python3",
        venv_dir / "Scripts" / "python.exe",
        venv_dir / "Scripts" / "python",
    )

    script = str(Path(__file__).resolve())
    for candidate in candidates:
        if candidate.exists():
            os.execv(str(candidate), [str(candidate), script, *sys.argv[1:]])


if __name__ == "__main__":
    _bootstrap_virtualenv()

try:
    import httpx
except ImportError as exc:  # pragma: no cover - exercised in environments missing deps
    raise SystemExit(
        "The 'httpx' package is required. Execute `pip install -e .` to install dependencies."
    ) from exc

from dotenv import find_dotenv, load_dotenv

from user_api.config import ConfigurationError, DatabaseSettings, ServiceSettings, parse_port
from user_api.database import Database, DatabaseConnectionError

logger = logging.getLogger("userdirectory.main")


def _default_service_url() -> str:
    settings = ServiceSettings.from_env()
    return f"http://{settings.host}:{settings.port}"


def _parse_args(argv: Sequence[str] | None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="User directory service utilities")
    subparsers = parser.add_subparsers(dest="command")

    parser.set_defaults(command="serve")

    serve_parser = subparsers.add_parser("serve", help="Start the HTTP API")
    serve_parser.add_argument(
        "--host",
        default=None,
        help="Bind address for the API (default: USER_API_HOST or 127.0.0.1)",
    )
    serve_parser.add_argument(
        "--port",
        type=int,
        default=None,
        help="Port for the API (default: USER_API_PORT or 8080)",
    )

    health_parser = subparsers.add_parser(
        "health", help="Query the health endpoint of a running service"
    )
    health_parser.add_argument(
        "--service-url",
        default=None,
        help="Base URL of a running service (default: http://127.0.0.1:8080)",
    )

    users_parser = subparsers.add_parser(
        "users", help="List the users reported by a running service"
    )
    users_parser.add_argument(
        "--service-url",
        default=None,
        help="Base URL of a running service (default: http://127.0.0.1:8080)",
    )

    args_list = list(argv) if argv is not None else sys.argv[1:]
    known_commands = {"serve", "health", "users"}

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


def _initialise_database(settings: DatabaseSettings) -> Database:
    try:
        database = Database.from_settings(settings)
    except ImportError as exc:
        raise SystemExit(f"SQL Server driver is unavailable: {exc}") from exc

    try:
        database.verify_connection()
    except DatabaseConnectionError as exc:
        database.dispose()
        logger.error("%s", exc)
        raise SystemExit("Failed to connect to database") from exc
    return database


def _serve(*, host: str | None, port: int | None) -> None:
    from user_api.service import create_app
    import uvicorn

    try:
        service_settings = ServiceSettings.from_env()
        database_settings = DatabaseSettings.from_env()
        bind_port = (
            parse_port("--port", str(port)) if port is not None else service_settings.port
        )
    except ConfigurationError as exc:
        raise SystemExit(f"Invalid configuration: {exc}") from exc

    logging.getLogger().setLevel(service_settings.logging_level)
    bind_host = host or service_settings.host

    database = _initialise_database(database_settings)

    logger.info("Starting server at http://%s:%s", bind_host, bind_port)

    app = create_app(database=database, owns_database=True)
    uvicorn.run(
        app,
        host=bind_host,
        port=bind_port,
        log_level=service_settings.log_level,
    )


def _fetch_json(base_url: str, path: str) -> tuple[int, object] | None:
    endpoint = base_url.rstrip("/") + path

    try:
        response = httpx.get(endpoint, timeout=10.0)
    except httpx.HTTPError as exc:
        print(f"Failed to contact service: {exc}")
        return None

    try:
        payload = response.json()
    except ValueError:
        print(f"Service responded with {response.status_code}: {response.text.strip()}")
        return None
    return response.status_code, payload


def _show_health(service_url: str | None) -> int:
    base_url = service_url or _default_service_url()
    result = _fetch_json(base_url, "/health")
    if result is None:
        return 1

    status_code, payload = result
    if status_code != 200:
        print(f"Service responded with {status_code}: {payload}")
        return 1

    print(payload)
    return 0


def _list_users(service_url: str | None) -> int:
    base_url = service_url or _default_service_url()
    result = _fetch_json(base_url, "/users")
    if result is None:
        return 1

    status_code, payload = result
    if status_code != 200:
        print(f"Service responded with {status_code}: {payload}")
        return 1
    if not isinstance(payload, list):
        print("Service returned an unexpected response format.")
        return 1

    if not payload:
        print("No users are currently registered.")
        return 0

    print(f"{len(payload)} user(s) found:")
    print(f"{'ID':>4}  {'Username':<20}  {'Email':<32}  Full name")
    print("-" * 80)
    for user in payload:
        user_id = user.get("id", "?")
        username = user.get("username") or "<no username>"
        email = user.get("email") or "<no email>"
        full_name = user.get("full_name") or ""
        print(f"{user_id:>4}  {username:<20}  {email:<32}  {full_name}")
    return 0


def main(argv: Sequence[str] | None = None) -> None:
    """Entry point for CLI usage."""

    logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(levelname)s] %(message)s")
    load_dotenv(find_dotenv(usecwd=True))

    args = _parse_args(argv)

    if args.command == "serve":
        _serve(host=args.host, port=args.port)
    elif args.command == "health":
        sys.exit(_show_health(args.service_url))
    elif args.command == "users":
        sys.exit(_list_users(args.service_url))


if __name__ == "__main__":
    main()
