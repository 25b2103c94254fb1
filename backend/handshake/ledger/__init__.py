"""Bet lifecycle ledger and its storage collaborators."""

from .errors import (
    InvalidInput,
    InvalidTransition,
    LedgerError,
    NotAuthenticated,
    NotFound,
    StoreUnavailable,
)
from .interfaces import BetStore, UserDirectory
from .memory import InMemoryBetStore, InMemoryUserDirectory
from .models import (
    Bet,
    BetStatus,
    BetView,
    NewBet,
    PendingRecordUpdate,
    Record,
    RecordDelta,
    SettlementOutcome,
    User,
    status_label,
)
from .service import BetLedger
from .supabase import SupabaseBetStore, SupabaseUserDirectory

__all__ = [
    "BetLedger",
    "BetStore",
    "UserDirectory",
    "InMemoryBetStore",
    "InMemoryUserDirectory",
    "SupabaseBetStore",
    "SupabaseUserDirectory",
    "Bet",
    "BetStatus",
    "BetView",
    "NewBet",
    "PendingRecordUpdate",
    "Record",
    "RecordDelta",
    "SettlementOutcome",
    "User",
    "status_label",
    "LedgerError",
    "NotAuthenticated",
    "InvalidInput",
    "NotFound",
    "InvalidTransition",
    "StoreUnavailable",
]
