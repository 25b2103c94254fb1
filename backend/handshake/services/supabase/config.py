"""Configuration for the Supabase client."""

from pydantic import BaseModel


class SupabaseConfig(BaseModel):
    """Configuration for Supabase auth and PostgREST access."""

    url: str = ""
    anon_key: str = ""
    timeout_seconds: float = 30.0
    max_connections: int = 20
    max_keepalive_connections: int = 10
    # Applies to reads only; writes are never resent.
    max_retries: int = 3

    @property
    def base_url(self) -> str:
        return self.url.rstrip("/")

    @property
    def is_configured(self) -> bool:
        return bool(self.url and self.anon_key)
