"""FastAPI surface over BetLedger.

Callers authenticate with their Supabase access token
(``Authorization: Bearer ...``); each request gets its own client bound to
that token, so no backend state is shared between users.
"""

import logging
from dataclasses import dataclass
from typing import AsyncIterator, Dict, List, Literal, Optional

from fastapi import Depends, FastAPI, Header, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from handshake import __version__
from handshake.config import Settings, get_settings
from handshake.ledger import (
    Bet,
    BetLedger,
    InvalidInput,
    InvalidTransition,
    LedgerError,
    NotAuthenticated,
    NotFound,
    Record,
    SettlementOutcome,
    StoreUnavailable,
    SupabaseBetStore,
    SupabaseUserDirectory,
    User,
)
from handshake.ledger.views import filter_view
from handshake.services.supabase import (
    AuthSession,
    SupabaseAPIError,
    SupabaseAuthError,
    SupabaseClient,
)
from handshake.storage import load_pending, save_pending

logger = logging.getLogger(__name__)

ERROR_STATUS = {
    NotAuthenticated: 401,
    NotFound: 404,
    InvalidTransition: 409,
    InvalidInput: 422,
    StoreUnavailable: 503,
}


# ============================================================================
# Schemas
# ============================================================================


class CreateBetRequest(BaseModel):
    participant_id: str
    description: str
    pride_wagered: int


class RespondRequest(BaseModel):
    accept: bool


class SettleRequest(BaseModel):
    outcome: SettlementOutcome


class BetResponse(BaseModel):
    bet: Bet
    is_creator: bool
    status_display: str
    counterparty_id: str
    counterparty_name: str


class ReconcileResponse(BaseModel):
    applied: int
    pending: int


@dataclass
class CallerContext:
    user_id: str
    ledger: BetLedger


# ============================================================================
# Dependencies
# ============================================================================


def get_supabase_client(settings: Settings = Depends(get_settings)) -> SupabaseClient:
    """Fresh, unauthenticated client for one request."""
    return SupabaseClient(settings.supabase_config())


async def get_caller(
    authorization: Optional[str] = Header(default=None),
    settings: Settings = Depends(get_settings),
    client: SupabaseClient = Depends(get_supabase_client),
) -> AsyncIterator[CallerContext]:
    """
    Resolve the bearer token to a user and a ledger bound to them.

    Record updates the ledger could not apply are loaded from and saved back
    to the caller's pending queue, so a later request can reconcile them.
    """
    if not authorization or not authorization.lower().startswith("bearer "):
        raise NotAuthenticated("Missing bearer token")
    token = authorization.split(" ", 1)[1].strip()

    if not client.config.is_configured:
        raise StoreUnavailable("Supabase is not configured")

    async with client:
        client.restore_session(
            AuthSession(access_token=token, user={"id": "", "email": ""})
        )
        try:
            user = await client.get_user()
        except SupabaseAuthError as e:
            raise NotAuthenticated(str(e)) from e
        except SupabaseAPIError as e:
            raise StoreUnavailable(str(e)) from e
        client.restore_session(AuthSession(access_token=token, user=user))

        ledger = BetLedger(SupabaseBetStore(client), SupabaseUserDirectory(client))
        persist = settings.ledger.persist_pending_updates
        if persist:
            ledger.load_pending_record_updates(load_pending(user.id, settings.data_dir))
        try:
            yield CallerContext(user_id=user.id, ledger=ledger)
        finally:
            if persist:
                save_pending(ledger.pending_record_updates, user.id, settings.data_dir)


# ============================================================================
# App
# ============================================================================


def create_app() -> FastAPI:
    settings = get_settings()

    app = FastAPI(
        title="Handshake API",
        description="Peer-to-peer side bets settled in Pride",
        version=__version__,
    )
    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.api.allowed_origins,
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    @app.exception_handler(LedgerError)
    async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
        status_code = ERROR_STATUS.get(type(exc), 500)
        if status_code >= 500:
            logger.error(f"{request.method} {request.url.path}: {exc}")
        return JSONResponse(status_code=status_code, content={"detail": str(exc)})

    @app.get("/health", tags=["Health"])
    async def health_check() -> Dict[str, str]:
        return {
            "status": "healthy",
            "service": "handshake-api",
            "version": __version__,
            "supabase": "configured" if settings.supabase_config().is_configured else "unset",
        }

    @app.get("/api/users", response_model=List[User])
    async def list_users(caller: CallerContext = Depends(get_caller)):
        return await caller.ledger.list_opponents(caller.user_id)

    @app.get("/api/bets", response_model=List[BetResponse])
    async def list_bets(
        view: Literal["all", "active", "records"] = "all",
        caller: CallerContext = Depends(get_caller),
    ):
        views = await caller.ledger.list_bets_for_user(caller.user_id)
        return [
            BetResponse(
                bet=v.bet,
                is_creator=v.is_creator,
                status_display=v.status_display,
                counterparty_id=v.counterparty_id,
                counterparty_name=v.counterparty_name,
            )
            for v in filter_view(views, view)
        ]

    @app.post("/api/bets", response_model=Bet, status_code=201)
    async def create_bet(
        body: CreateBetRequest, caller: CallerContext = Depends(get_caller)
    ):
        return await caller.ledger.create_bet(
            caller.user_id, body.participant_id, body.description, body.pride_wagered
        )

    @app.post("/api/bets/{bet_id}/respond", response_model=Bet)
    async def respond_to_bet(
        bet_id: str, body: RespondRequest, caller: CallerContext = Depends(get_caller)
    ):
        return await caller.ledger.respond_to_bet(bet_id, caller.user_id, body.accept)

    @app.post("/api/bets/{bet_id}/settle", response_model=Bet)
    async def settle_bet(
        bet_id: str, body: SettleRequest, caller: CallerContext = Depends(get_caller)
    ):
        return await caller.ledger.settle_bet(bet_id, caller.user_id, body.outcome)

    @app.get("/api/records/{user_id}", response_model=Record)
    async def get_record(user_id: str, caller: CallerContext = Depends(get_caller)):
        return await caller.ledger.get_record(user_id)

    @app.post("/api/reconcile", response_model=ReconcileResponse)
    async def reconcile(caller: CallerContext = Depends(get_caller)):
        applied = await caller.ledger.retry_pending_record_updates()
        return ReconcileResponse(
            applied=applied, pending=len(caller.ledger.pending_record_updates)
        )

    try:
        from handshake.observability import initialize_logfire

        initialize_logfire(settings, app=app)
    except Exception as e:
        logger.warning(f"Failed to initialize Logfire: {e}")

    return app
