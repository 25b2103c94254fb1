from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from .config import SupabaseConfig
from .exceptions import (
    SupabaseAPIError,
    SupabaseAuthError,
    SupabaseConflictError,
    SupabaseNotFoundError,
    SupabaseRateLimitError,
)
from .models import AuthSession, SupabaseUser

logger = logging.getLogger(__name__)

REST_PREFIX = "/rest/v1"
AUTH_PREFIX = "/auth/v1"


def eq(value: Any) -> str:
    return f"eq.{value}"


def neq(value: Any) -> str:
    return f"neq.{value}"


def any_of(**conditions: str) -> str:
    """Build a PostgREST ``or`` filter, e.g. any_of(a=eq(1), b=eq(1))."""
    parts = [f"{column}.{condition}" for column, condition in conditions.items()]
    return f"({','.join(parts)})"


def _error_message(response: httpx.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        return response.text or f"HTTP {response.status_code}"
    if isinstance(body, dict):
        for key in ("message", "msg", "error_description", "error"):
            if body.get(key):
                return str(body[key])
    return str(body)


class SupabaseClient:
    def __init__(
        self,
        config: SupabaseConfig | None = None,
        session: AuthSession | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.config = config or SupabaseConfig()
        self._session = session
        self._transport = transport
        self._client: httpx.AsyncClient | None = None

        logger.info(
            f"Initialized SupabaseClient (url={self.config.base_url or 'unset'}, "
            f"session={'restored' if session else 'none'})"
        )

    async def __aenter__(self) -> SupabaseClient:
        if not self.config.is_configured:
            raise SupabaseAPIError(
                "Supabase is not configured. Set SUPABASE_URL and SUPABASE_ANON_KEY."
            )
        limits = httpx.Limits(
            max_connections=self.config.max_connections,
            max_keepalive_connections=self.config.max_keepalive_connections,
        )
        self._client = httpx.AsyncClient(
            base_url=self.config.base_url,
            timeout=self.config.timeout_seconds,
            limits=limits,
            transport=self._transport,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type | None,
        exc_val: Exception | None,
        exc_tb: Any,
    ) -> None:
        if self._client:
            await self._client.aclose()
            self._client = None
            logger.info("Closed SupabaseClient")

    @property
    def client(self) -> httpx.AsyncClient:
        if self._client is None:
            raise RuntimeError(
                "SupabaseClient must be used as async context manager"
            )
        return self._client

    # ------------------------------------------------------------------
    # Session state
    # ------------------------------------------------------------------

    @property
    def session(self) -> AuthSession | None:
        return self._session

    def restore_session(self, session: AuthSession | None) -> None:
        self._session = session

    @property
    def current_user_id(self) -> str | None:
        return self._session.user.id if self._session else None

    @property
    def current_display_name(self) -> str | None:
        if self._session is None:
            return None
        return self._session.user.label or None

    def _headers(self, auth_required: bool) -> dict[str, str]:
        if auth_required and self._session is None:
            raise SupabaseAuthError("Not signed in")
        token = self._session.access_token if self._session else self.config.anon_key
        return {
            "apikey": self.config.anon_key,
            "Authorization": f"Bearer {token}",
        }

    # ------------------------------------------------------------------
    # Transport
    # ------------------------------------------------------------------

    def _raise_for_status(self, response: httpx.Response, path: str) -> None:
        status = response.status_code
        if status < 400:
            return
        message = _error_message(response)
        if status in (401, 403):
            raise SupabaseAuthError(message, status_code=status)
        if status == 404:
            raise SupabaseNotFoundError(
                f"Resource not found: {path} ({message})", status_code=status
            )
        if status == 409:
            raise SupabaseConflictError(message, status_code=status)
        if status == 429:
            raise SupabaseRateLimitError(message, status_code=status)
        raise SupabaseAPIError(message, status_code=status)

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_data: Any = None,
        headers: dict[str, str] | None = None,
        auth_required: bool = False,
    ) -> Any:
        request_headers = self._headers(auth_required)
        if headers:
            request_headers.update(headers)

        # Writes go out exactly once; only reads are retried.
        attempts = self.config.max_retries if method == "GET" else 1
        attempts = max(attempts, 1)
        last_error: Exception | None = None

        for attempt in range(attempts):
            try:
                response = await self.client.request(
                    method=method,
                    url=path,
                    params=params,
                    json=json_data,
                    headers=request_headers,
                )
            except httpx.TimeoutException as e:
                last_error = e
                if attempt + 1 < attempts:
                    logger.warning(f"Timeout on {method} {path}, retrying ({attempt + 1})...")
                    await asyncio.sleep(2 ** attempt)
                continue
            except httpx.RequestError as e:
                logger.error(f"Network error on {method} {path}: {e}")
                raise SupabaseAPIError(f"Network error: {e}") from e

            retryable = response.status_code == 429 or response.status_code >= 500
            if retryable and attempt + 1 < attempts:
                wait_time = 2 ** attempt
                logger.warning(
                    f"Supabase returned {response.status_code} on {path}, "
                    f"retrying in {wait_time}s..."
                )
                await asyncio.sleep(wait_time)
                continue

            self._raise_for_status(response, path)
            if response.status_code == 204 or not response.content:
                return None
            return response.json()

        raise SupabaseAPIError(
            f"Request failed after {attempts} attempts: {last_error}"
        )

    # ------------------------------------------------------------------
    # Auth (GoTrue)
    # ------------------------------------------------------------------

    async def sign_up(
        self, email: str, password: str, display_name: str
    ) -> AuthSession | None:
        """Register a user; returns a session when the project auto-confirms."""
        data = await self._request(
            "POST",
            f"{AUTH_PREFIX}/signup",
            json_data={
                "email": email,
                "password": password,
                "data": {"display_name": display_name},
            },
        )
        logger.info(f"Signed up {email}")
        if data and data.get("access_token"):
            self._session = AuthSession.from_api(data)
            return self._session
        return None

    async def sign_in(self, email: str, password: str) -> AuthSession:
        data = await self._request(
            "POST",
            f"{AUTH_PREFIX}/token",
            params={"grant_type": "password"},
            json_data={"email": email, "password": password},
        )
        self._session = AuthSession.from_api(data or {})
        logger.info(f"Signed in as {self._session.user.id}")
        return self._session

    async def refresh_session(self) -> AuthSession:
        if self._session is None or not self._session.refresh_token:
            raise SupabaseAuthError("No refresh token available")
        data = await self._request(
            "POST",
            f"{AUTH_PREFIX}/token",
            params={"grant_type": "refresh_token"},
            json_data={"refresh_token": self._session.refresh_token},
        )
        self._session = AuthSession.from_api(data or {})
        return self._session

    async def sign_out(self) -> None:
        if self._session is None:
            return
        try:
            await self._request("POST", f"{AUTH_PREFIX}/logout", auth_required=True)
        finally:
            self._session = None
        logger.info("Signed out")

    async def get_user(self) -> SupabaseUser:
        data = await self._request("GET", f"{AUTH_PREFIX}/user", auth_required=True)
        return SupabaseUser.from_api(data or {})

    # ------------------------------------------------------------------
    # Rows (PostgREST)
    # ------------------------------------------------------------------

    async def select(
        self,
        table: str,
        filters: dict[str, str] | None = None,
        columns: str = "*",
    ) -> list[dict[str, Any]]:
        params: dict[str, Any] = {"select": columns}
        if filters:
            params.update(filters)
        rows = await self._request(
            "GET", f"{REST_PREFIX}/{table}", params=params, auth_required=True
        )
        return rows or []

    async def insert(
        self,
        table: str,
        row: dict[str, Any],
        on_conflict: str | None = None,
        ignore_duplicates: bool = False,
    ) -> list[dict[str, Any]]:
        prefer = ["return=representation"]
        params: dict[str, Any] = {}
        if on_conflict:
            params["on_conflict"] = on_conflict
            prefer.append(
                "resolution=ignore-duplicates"
                if ignore_duplicates
                else "resolution=merge-duplicates"
            )
        rows = await self._request(
            "POST",
            f"{REST_PREFIX}/{table}",
            params=params or None,
            json_data=row,
            headers={"Prefer": ",".join(prefer)},
            auth_required=True,
        )
        return rows or []

    async def update(
        self,
        table: str,
        values: dict[str, Any],
        filters: dict[str, str],
    ) -> list[dict[str, Any]]:
        """PATCH matching rows; an empty list means no row matched."""
        if not filters:
            raise ValueError("Refusing to update without filters")
        rows = await self._request(
            "PATCH",
            f"{REST_PREFIX}/{table}",
            params=filters,
            json_data=values,
            headers={"Prefer": "return=representation"},
            auth_required=True,
        )
        return rows or []
