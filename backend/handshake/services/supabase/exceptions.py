"""Custom exceptions for the Supabase client."""


class SupabaseAPIError(Exception):
    """Base exception for Supabase API errors."""

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class SupabaseAuthError(SupabaseAPIError):
    """Authentication failed or session missing (401/403)."""

    pass


class SupabaseNotFoundError(SupabaseAPIError):
    """Resource not found (404)."""

    pass


class SupabaseConflictError(SupabaseAPIError):
    """Unique or foreign key constraint violated (409)."""

    pass


class SupabaseRateLimitError(SupabaseAPIError):
    """Rate limit exceeded (429)."""

    pass
