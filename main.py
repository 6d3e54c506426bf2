#!/usr/bin/env python3
"""
Plate console — session and resource-tree client for the Plate admin backend.

Usage:
  python main.py login --username admin
  python main.py login --username admin --password secret --remember
  python main.py status
  python main.py menus
  python main.py menus --endpoint me --tenant 0
  python main.py menus --format json
  python main.py menus --format rows --no-color
  python main.py menus --collapsed --param status=1
  python main.py logout

Environment variables (or .env):
  API_BASE_URL          Backend root (default http://localhost:8080).
  TOKEN_STORE           sql (default), memory or null.
  TOKEN_STORE_URL       SQLAlchemy URL of the session store.
  RESOLVE_MAX_ATTEMPTS  Attempts per child fetch (default 3).
"""

import argparse
import asyncio
import getpass
import logging
import sys
from typing import Optional

from auth.client import AuthClient
from auth.httpauth import SessionAuth
from auth.models import Credentials
from auth.session import SessionManager
from auth.store import build_token_store
from core.config import get_settings
from core.errors import FetchError, Unauthenticated
from core.fetcher import DEFAULT_RESOURCE, HttpResourceFetcher, build_client
from core.formatter import disable_color, print_tree, render_rows, to_json
from core.pipeline import load_tree
from core.tree import expand_all

logger = logging.getLogger("plate.cli")


def _configure_logging(verbose: bool) -> None:
    settings = get_settings()
    level = logging.DEBUG if verbose or settings.debug else getattr(logging, settings.log_level.upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-5s %(name)s %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stderr,
    )
    # httpx logs every request at INFO; keep that for -v only.
    logging.getLogger("httpx").setLevel(logging.DEBUG if verbose else logging.WARNING)


def _param(text: str) -> tuple[str, str]:
    key, sep, value = text.partition("=")
    if not sep or not key:
        raise argparse.ArgumentTypeError(f"expected KEY=VALUE, got {text!r}")
    return key, value


async def _run(args: argparse.Namespace) -> int:
    settings = get_settings()
    store = build_token_store(settings)
    session = SessionManager(store)
    try:
        async with build_client(settings, auth=SessionAuth(session)) as client:
            auth_client = AuthClient(client, session, store)

            if args.command == "login":
                password: Optional[str] = args.password or getpass.getpass("Password: ")
                authentication = await auth_client.login(Credentials(args.username, password), remember=args.remember)
                print(f"Logged in. Session valid for {authentication.expires}s of inactivity.")
                return 0

            if args.command == "logout":
                await auth_client.logout()
                print("Logged out.")
                return 0

            if args.command == "status":
                if session.is_logged():
                    print("Logged in.")
                    return 0
                print(f"Not logged in. Log in first ({session.login_url}).")
                return 1

            # menus
            if await auth_client.auto_login() is None:
                raise Unauthenticated(login_url=session.login_url)
            fetcher = HttpResourceFetcher(client, args.resource, endpoint=args.endpoint)
            view = await load_tree(fetcher, tenant_code=args.tenant, pcode=args.pcode, params=dict(args.param))
            if not args.collapsed:
                for rows in view.rows.values():
                    expand_all(rows)
            if args.format == "json":
                print(to_json(view))
            elif args.format == "rows":
                print(render_rows(view.all_rows()))
            else:
                print_tree(view)
            return 0 if view.report.complete else 2
    except Unauthenticated as e:
        print(f"  [!] {e} Log in with: python main.py login --username <name>  ({e.login_url})")
        return 1
    except FetchError as e:
        print(f"  [!] Request failed: {e}")
        return 1
    finally:
        close = getattr(store, "close", None)
        if close is not None:
            close()


def main() -> None:
    parser = argparse.ArgumentParser(
        prog="plate-console",
        description="Session-aware client for the Plate admin backend.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging, including every HTTP request")
    parser.add_argument("--no-color", action="store_true", help="Disable ANSI color codes in terminal output")
    sub = parser.add_subparsers(dest="command", required=True)

    login = sub.add_parser("login", help="Log in and store the session")
    login.add_argument("--username", required=True)
    login.add_argument("--password", help="Prompted for when omitted")
    login.add_argument("--remember", action="store_true", help="Remember credentials for automatic re-login")

    sub.add_parser("logout", help="End the session and forget remembered credentials")
    sub.add_parser("status", help="Report whether a valid session exists")

    menus = sub.add_parser("menus", help="Resolve and print the resource tree")
    menus.add_argument("--resource", default=DEFAULT_RESOURCE, help=f"Resource collection (default: {DEFAULT_RESOURCE})")
    menus.add_argument(
        "--endpoint",
        choices=["search", "me"],
        default="search",
        help="search: every record of the tenant; me: records visible to the logged-in user",
    )
    menus.add_argument("--tenant", default="0", metavar="CODE", help="Tenant code (default: 0)")
    menus.add_argument("--pcode", default="0", metavar="CODE", help="Parent code of the roots (default: 0)")
    menus.add_argument(
        "--param",
        action="append",
        default=[],
        type=_param,
        metavar="KEY=VALUE",
        help="Extra query filter sent with every fetch (repeatable)",
    )
    menus.add_argument("--collapsed", action="store_true", help="Show root rows only in terminal and rows output")
    menus.add_argument(
        "--format",
        choices=["terminal", "rows", "json"],
        default="terminal",
        help="terminal (default), rows (indented list only) or json (nested tree)",
    )
    args = parser.parse_args()

    if args.no_color:
        disable_color()
    _configure_logging(args.verbose)

    sys.exit(asyncio.run(_run(args)))


if __name__ == "__main__":
    main()
