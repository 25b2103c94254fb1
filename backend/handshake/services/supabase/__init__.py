from .client import SupabaseClient, any_of, eq, neq
from .config import SupabaseConfig
from .exceptions import (
    SupabaseAPIError,
    SupabaseAuthError,
    SupabaseConflictError,
    SupabaseNotFoundError,
    SupabaseRateLimitError,
)
from .models import AuthSession, BetRow, SupabaseUser, UserRecordRow, UserRow

__all__ = [
    "SupabaseClient",
    "eq",
    "neq",
    "any_of",
    "SupabaseConfig",
    "SupabaseAPIError",
    "SupabaseAuthError",
    "SupabaseConflictError",
    "SupabaseNotFoundError",
    "SupabaseRateLimitError",
    "AuthSession",
    "BetRow",
    "SupabaseUser",
    "UserRecordRow",
    "UserRow",
]
