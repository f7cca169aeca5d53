"""Gatekeeper entry point.

Subcommands:
  serve         Run the OAuth2 API server
  add-client    Register an OAuth2 client (prints the generated secret once)
  add-owner     Register a resource owner
  revoke-owner  Revoke every token issued on behalf of a resource owner
"""

from __future__ import annotations

import argparse
import getpass
import logging
import secrets
import sys
from importlib.metadata import PackageNotFoundError
from importlib.metadata import version as get_version

from rich.console import Console

from gatekeeper.config import get_settings
from gatekeeper.logging_setup import setup_logging

logger = logging.getLogger(__name__)

console = Console()


def _version() -> str:
    try:
        return get_version("gatekeeper")
    except PackageNotFoundError:
        from gatekeeper import __version__

        return __version__


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gatekeeper",
        description="Gatekeeper - OAuth2 authorization server",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  gatekeeper serve                                  Start the API server
  gatekeeper add-client com.example.app --secret    Confidential client, generated secret
  gatekeeper add-client com.example.web --secret --redirect-uri https://example.com/cb
  gatekeeper add-owner alice --scope user --scope notes.read
  gatekeeper revoke-owner alice
""",
    )
    parser.add_argument("--version", "-v", action="version", version=f"%(prog)s {_version()}")
    parser.add_argument(
        "--log-level",
        default=None,
        help="Log level (default: GATEKEEPER_LOG_LEVEL or INFO)",
    )

    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the OAuth2 API server")
    serve.add_argument("--host", default=None, help="Host to bind to (default: from settings)")
    serve.add_argument("--port", type=int, default=None, help="Port (default: from settings)")
    serve.add_argument("--dev", action="store_true", help="Auto-reload on source changes")

    add_client = sub.add_parser("add-client", help="Register an OAuth2 client")
    add_client.add_argument("client_id")
    add_client.add_argument(
        "--secret",
        nargs="?",
        const="",
        default=None,
        help="Make the client confidential; without a value a secret is generated",
    )
    add_client.add_argument("--redirect-uri", default=None)
    add_client.add_argument(
        "--scope",
        action="append",
        dest="scopes",
        default=None,
        help="Allowed scope (repeatable). Without any, the client does not use scopes.",
    )

    add_owner = sub.add_parser("add-owner", help="Register a resource owner")
    add_owner.add_argument("username")
    add_owner.add_argument("--password", default=None, help="Prompted for when omitted")
    add_owner.add_argument(
        "--scope",
        action="append",
        dest="scopes",
        default=None,
        help="Scope the owner may grant (repeatable). Without any, all scopes.",
    )

    revoke = sub.add_parser("revoke-owner", help="Revoke all tokens for a resource owner")
    revoke.add_argument("username")

    return parser


def _add_client(args: argparse.Namespace) -> int:
    from gatekeeper.auth.errors import ClientConfigurationError
    from gatekeeper.auth.provisioning import generate_client
    from gatekeeper.auth.server import get_auth_server

    server = get_auth_server()
    secret = args.secret
    if secret == "":
        secret = secrets.token_urlsafe(24)

    client = generate_client(
        args.client_id,
        secret=secret,
        redirect_uri=args.redirect_uri,
        allowed_scopes=args.scopes,
        hasher=server.hasher,
    )
    try:
        server.add_client(client)
    except ClientConfigurationError as exc:
        console.print(f"[red]Error:[/red] {exc}")
        return 2

    console.print(f"[green]Registered client[/green] {client.id}")
    if args.secret == "":
        console.print(f"Client secret (shown once): [bold]{secret}[/bold]")
    return 0


def _add_owner(args: argparse.Namespace) -> int:
    from gatekeeper.auth.provisioning import generate_resource_owner
    from gatekeeper.auth.server import get_auth_server

    server = get_auth_server()
    storage = server.delegate
    if storage.get_resource_owner(server, args.username) is not None:
        console.print(f"[red]Error:[/red] resource owner {args.username!r} already exists")
        return 2

    password = args.password
    if password is None:
        password = getpass.getpass(f"Password for {args.username}: ")
    if not password:
        console.print("[red]Error:[/red] password must not be empty")
        return 2

    owner = generate_resource_owner(
        storage.next_owner_id(),
        args.username,
        password,
        allowed_scopes=args.scopes,
        hasher=server.hasher,
    )
    storage.add_resource_owner(owner)
    logger.info("Registered resource owner %s (id %s)", owner.username, owner.id)
    console.print(f"[green]Registered resource owner[/green] {owner.username} (id {owner.id})")
    return 0


def _revoke_owner(args: argparse.Namespace) -> int:
    from gatekeeper.auth.server import get_auth_server

    server = get_auth_server()
    owner = server.delegate.get_resource_owner(server, args.username)
    if owner is None:
        console.print(f"[red]Error:[/red] unknown resource owner {args.username!r}")
        return 2

    server.revoke_all_grants_for_resource_owner(owner.id)
    console.print(f"Revoked all tokens for {owner.username}")
    return 0


def main(argv: list[str] | None = None) -> int:
    """Main entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    settings = get_settings()
    setup_logging(level=args.log_level or settings.log_level)

    if args.command == "serve":
        from gatekeeper.api.serve import run_api_server

        try:
            run_api_server(
                host=args.host or settings.host,
                port=args.port or settings.port,
                dev=args.dev,
            )
        except KeyboardInterrupt:
            logger.info("Gatekeeper stopped.")
        return 0
    if args.command == "add-client":
        return _add_client(args)
    if args.command == "add-owner":
        return _add_owner(args)
    if args.command == "revoke-owner":
        return _revoke_owner(args)

    parser.error(f"unknown command {args.command!r}")
    return 2


if __name__ == "__main__":
    sys.exit(main())
