"""Handshake CLI entry point."""

import argparse
import asyncio
import logging
import sys
from contextlib import asynccontextmanager
from pathlib import Path
from typing import AsyncIterator, Awaitable, Callable

from dotenv import load_dotenv

env_file = Path(__file__).parent.parent / ".env"
load_dotenv(env_file)

from handshake import __version__
from handshake.config import Settings, get_settings
from handshake.ledger import (
    BetLedger,
    BetView,
    LedgerError,
    NotFound,
    SupabaseBetStore,
    SupabaseUserDirectory,
)
from handshake.ledger.views import filter_view, outcome_for_caller, result_for_user
from handshake.services.supabase import SupabaseAPIError, SupabaseClient
from handshake.storage import (
    clear_session,
    load_pending,
    load_session,
    save_pending,
    save_session,
)

# Configure logging
logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    datefmt="%Y-%m-%d %H:%M:%S",
)

logger = logging.getLogger(__name__)

CONFIG_TEMPLATE = """# Handshake Configuration
# Supabase URL/key and the Logfire token belong in .env, not here.

ledger:
  persist_pending_updates: true

slider:
  mode: hold
  travel: 110.0
  threshold: 0.9
  reset_delay_seconds: 1.0

api:
  host: 0.0.0.0
  port: 8000
  allowed_origins:
    - http://localhost:3000
"""


def _init_logfire() -> None:
    """Initialize Logfire if available, without failing commands."""
    try:
        from handshake.observability import initialize_logfire

        initialize_logfire(get_settings())
    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")


@asynccontextmanager
async def open_client(settings: Settings) -> AsyncIterator[SupabaseClient]:
    """Supabase client with the saved session restored (and refreshed)."""
    session = load_session(settings.data_dir)
    async with SupabaseClient(settings.supabase_config(), session=session) as client:
        if session is not None and session.is_expired and session.refresh_token:
            logger.info("Saved session expired, refreshing")
            save_session(await client.refresh_session(), settings.data_dir)
        yield client


@asynccontextmanager
async def open_ledger(settings: Settings) -> AsyncIterator[tuple[SupabaseClient, BetLedger]]:
    async with open_client(settings) as client:
        ledger = BetLedger(SupabaseBetStore(client), SupabaseUserDirectory(client))
        # Signed out: nothing to reconcile, and no owner to file updates under.
        owner = client.current_user_id
        persist = settings.ledger.persist_pending_updates and owner is not None
        if persist:
            ledger.load_pending_record_updates(load_pending(owner, settings.data_dir))
        try:
            yield client, ledger
        finally:
            if persist:
                save_pending(ledger.pending_record_updates, owner, settings.data_dir)


def _run(action: Callable[[], Awaitable[int]]) -> int:
    try:
        return asyncio.run(action())
    except (LedgerError, SupabaseAPIError) as e:
        print(f"\n❌ {e}\n")
        return 1


def _require_user(client: SupabaseClient) -> str:
    user_id = client.current_user_id
    if user_id is None:
        print("\nNot signed in. Run 'python -m handshake signin' first.\n")
        raise SystemExit(1)
    return user_id


def _print_view(view: BetView) -> None:
    bet = view.bet
    role = "you → " + view.counterparty_name if view.is_creator else view.counterparty_name + " → you"
    print(f"  [{bet.id}] {bet.description}")
    print(f"      {role} | {bet.pride_wagered} Pride | {view.status_display}")
    result = result_for_user(bet, view.viewer_id)
    if result:
        print(f"      Result: {result}")


# ============================================================================
# Commands
# ============================================================================


def cmd_init(args: argparse.Namespace) -> int:
    """Create the data directory and a config template."""
    settings = get_settings()
    data_dir = settings.data_dir
    try:
        data_dir.mkdir(parents=True, exist_ok=True)
        config_path = data_dir / "config.yaml"
        if not config_path.exists():
            config_path.write_text(CONFIG_TEMPLATE)
            logger.info(f"Created config template: {config_path}")
        print(f"\n✓ Data directory initialized at {data_dir}")
        print("\nNext steps:")
        print("1. Put SUPABASE_URL and SUPABASE_ANON_KEY in .env")
        print("2. Run 'python -m handshake signup' or 'python -m handshake signin'\n")
        return 0
    except OSError as e:
        logger.error(f"Failed to initialize: {e}")
        print(f"\n❌ Initialization failed: {e}\n")
        return 1


def cmd_config(args: argparse.Namespace) -> int:
    """Display merged configuration."""
    settings = get_settings()

    print("\n=== Handshake Configuration ===\n")
    print(f"Data Directory: {settings.data_dir}\n")

    print("Supabase:")
    print(f"  URL: {settings.supabase_url or '✗ Not set'}")
    print(f"  Anon Key: {'✓ Set' if settings.supabase_anon_key else '✗ Not set'}\n")

    print("Ledger:")
    print(f"  Persist Pending Updates: {settings.ledger.persist_pending_updates}\n")

    print("Slider:")
    print(f"  Mode: {settings.slider.mode}")
    print(f"  Threshold: {settings.slider.threshold:.0%}")
    print(f"  Reset Delay: {settings.slider.reset_delay_seconds}s\n")

    print(f"Logfire: {'✓ Set' if settings.logfire_token else '✗ Not set'}\n")
    return 0


def cmd_signup(args: argparse.Namespace) -> int:
    settings = get_settings()

    async def action() -> int:
        async with open_client(settings) as client:
            session = await client.sign_up(args.email, args.password, args.name)
        if session is None:
            print("\n✓ Account created. Confirm your email, then run 'signin'.\n")
            return 0
        save_session(session, settings.data_dir)
        print(f"\n✓ Signed up and signed in as {session.user.label}\n")
        return 0

    return _run(action)


def cmd_signin(args: argparse.Namespace) -> int:
    settings = get_settings()

    async def action() -> int:
        async with open_client(settings) as client:
            session = await client.sign_in(args.email, args.password)
            name = client.current_display_name
        save_session(session, settings.data_dir)
        print(f"\n✓ Signed in as {name}\n")
        return 0

    return _run(action)


def cmd_signout(args: argparse.Namespace) -> int:
    settings = get_settings()

    async def action() -> int:
        try:
            async with open_client(settings) as client:
                await client.sign_out()
        finally:
            clear_session(settings.data_dir)
        print("\n✓ Signed out\n")
        return 0

    return _run(action)


def cmd_whoami(args: argparse.Namespace) -> int:
    session = load_session(get_settings().data_dir)
    if session is None:
        print("\nNot signed in.\n")
        return 1
    print(f"\n{session.user.label} ({session.user.id})\n")
    return 0


def cmd_users(args: argparse.Namespace) -> int:
    settings = get_settings()

    async def action() -> int:
        async with open_ledger(settings) as (client, ledger):
            users = await ledger.list_opponents(_require_user(client))
        print(f"\n=== Opponents ({len(users)}) ===\n")
        for user in users:
            record = user.record
            print(f"  {user.display_name:<24} {record.formatted:>9}  "
                  f"{record.pride_balance:>6} Pride  [{user.id}]")
        print()
        return 0

    return _run(action)


def cmd_bets(args: argparse.Namespace) -> int:
    settings = get_settings()

    async def action() -> int:
        async with open_ledger(settings) as (client, ledger):
            views = await ledger.list_bets_for_user(_require_user(client))
        shown = filter_view(views, args.view)
        print(f"\n=== Bets: {args.view} ({len(shown)}) ===\n")
        for view in shown:
            _print_view(view)
        print()
        return 0

    return _run(action)


def cmd_create(args: argparse.Namespace) -> int:
    settings = get_settings()

    async def action() -> int:
        async with open_ledger(settings) as (client, ledger):
            me = _require_user(client)
            if not args.yes:
                answer = input(
                    f"Shake on '{args.description}' for {args.pride} Pride? [y/N] "
                )
                if answer.strip().lower() not in ("y", "yes"):
                    print("\nCancelled.\n")
                    return 1
            bet = await ledger.create_bet(me, args.opponent, args.description, args.pride)
        print(f"\n✓ Bet created [{bet.id}] - waiting for response\n")
        return 0

    return _run(action)


def _cmd_respond(args: argparse.Namespace, accept: bool) -> int:
    settings = get_settings()

    async def action() -> int:
        async with open_ledger(settings) as (client, ledger):
            bet = await ledger.respond_to_bet(args.bet_id, _require_user(client), accept)
        print(f"\n✓ Bet {bet.id} {bet.status.value}\n")
        return 0

    return _run(action)


def cmd_accept(args: argparse.Namespace) -> int:
    return _cmd_respond(args, accept=True)


def cmd_reject(args: argparse.Namespace) -> int:
    return _cmd_respond(args, accept=False)


def cmd_settle(args: argparse.Namespace) -> int:
    settings = get_settings()

    async def action() -> int:
        async with open_ledger(settings) as (client, ledger):
            me = _require_user(client)
            views = await ledger.list_bets_for_user(me)
            view = next((v for v in views if v.id == args.bet_id), None)
            if view is None:
                raise NotFound(f"Bet {args.bet_id} not found")
            outcome = outcome_for_caller(args.outcome, view)
            bet = await ledger.settle_bet(args.bet_id, me, outcome)
            pending = len(ledger.pending_record_updates)
        print(f"\n✓ Bet {bet.id} completed ({outcome.value})")
        if pending:
            print(f"  ⚠ {pending} record update(s) pending - run 'reconcile'")
        print()
        return 0

    return _run(action)


def cmd_record(args: argparse.Namespace) -> int:
    settings = get_settings()

    async def action() -> int:
        async with open_ledger(settings) as (client, ledger):
            user_id = args.user_id or _require_user(client)
            record = await ledger.get_record(user_id)
        print(f"\nRecord (W-D-L): {record.formatted}")
        print(f"  Wins: {record.wins}  Draws: {record.draws}  Losses: {record.losses}")
        print(f"  Pride: {record.pride_balance}\n")
        return 0

    return _run(action)


def cmd_reconcile(args: argparse.Namespace) -> int:
    settings = get_settings()

    async def action() -> int:
        async with open_ledger(settings) as (client, ledger):
            queued = len(ledger.pending_record_updates)
            applied = await ledger.retry_pending_record_updates()
            remaining = len(ledger.pending_record_updates)
        print(f"\n✓ Applied {applied}/{queued} pending record update(s)")
        if remaining:
            print(f"  ⚠ {remaining} still pending")
        print()
        return 0 if remaining == 0 else 1

    return _run(action)


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    settings = get_settings()
    uvicorn.run(
        "handshake.api.server:create_app",
        factory=True,
        host=settings.api.host,
        port=args.port or settings.api.port,
        log_level=settings.log_level.lower(),
    )
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="handshake",
        description="Handshake - peer-to-peer side bets settled in Pride",
    )
    parser.add_argument("--version", action="version", version=f"handshake {__version__}")
    parser.add_argument("-v", "--verbose", action="store_true", help="Verbose logging")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("init", help="Create data directory and config").set_defaults(func=cmd_init)
    subparsers.add_parser("config", help="Show configuration").set_defaults(func=cmd_config)

    signup = subparsers.add_parser("signup", help="Create an account")
    signup.add_argument("--email", required=True)
    signup.add_argument("--password", required=True)
    signup.add_argument("--name", required=True, help="Display name")
    signup.set_defaults(func=cmd_signup)

    signin = subparsers.add_parser("signin", help="Sign in")
    signin.add_argument("--email", required=True)
    signin.add_argument("--password", required=True)
    signin.set_defaults(func=cmd_signin)

    subparsers.add_parser("signout", help="Sign out").set_defaults(func=cmd_signout)
    subparsers.add_parser("whoami", help="Show signed-in user").set_defaults(func=cmd_whoami)
    subparsers.add_parser("users", help="List opponents and records").set_defaults(func=cmd_users)

    bets = subparsers.add_parser("bets", help="List your bets")
    bets.add_argument("--view", choices=["all", "active", "records"], default="active")
    bets.set_defaults(func=cmd_bets)

    create = subparsers.add_parser("create", help="Offer a bet")
    create.add_argument("--opponent", required=True, help="Opponent user id")
    create.add_argument("--description", required=True)
    create.add_argument("--pride", type=int, required=True, help="Pride wagered")
    create.add_argument("-y", "--yes", action="store_true", help="Skip confirmation")
    create.set_defaults(func=cmd_create)

    for name, func in (("accept", cmd_accept), ("reject", cmd_reject)):
        respond = subparsers.add_parser(name, help=f"{name.capitalize()} a pending bet")
        respond.add_argument("bet_id")
        respond.set_defaults(func=func)

    settle = subparsers.add_parser("settle", help="Declare the outcome of an accepted bet")
    settle.add_argument("bet_id")
    settle.add_argument("--outcome", choices=["i_won", "they_won", "draw"], required=True)
    settle.set_defaults(func=cmd_settle)

    record = subparsers.add_parser("record", help="Show a win/draw/loss record")
    record.add_argument("user_id", nargs="?")
    record.set_defaults(func=cmd_record)

    subparsers.add_parser(
        "reconcile", help="Retry record updates left over from settlements"
    ).set_defaults(func=cmd_reconcile)

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--port", type=int)
    serve.set_defaults(func=cmd_serve)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.verbose:
        logging.getLogger().setLevel(logging.INFO)

    _init_logfire()
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
