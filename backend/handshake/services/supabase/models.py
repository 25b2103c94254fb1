from __future__ import annotations

from datetime import datetime, timedelta, timezone
from typing import Any

from pydantic import BaseModel, field_validator


def _parse_timestamp(v: Any) -> datetime | None:
    if v is None or v == "":
        return None
    if isinstance(v, datetime):
        return v
    try:
        return datetime.fromisoformat(v.replace("Z", "+00:00"))
    except (ValueError, AttributeError):
        return None


class SupabaseUser(BaseModel):
    id: str
    email: str = ""
    display_name: str = ""

    @property
    def label(self) -> str:
        return self.display_name or self.email

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> SupabaseUser:
        metadata = data.get("user_metadata") or {}
        return cls(
            id=data.get("id", ""),
            email=data.get("email") or "",
            display_name=metadata.get("display_name") or "",
        )


class AuthSession(BaseModel):
    access_token: str
    refresh_token: str = ""
    token_type: str = "bearer"
    expires_at: datetime | None = None
    user: SupabaseUser

    @field_validator("expires_at", mode="before")
    @classmethod
    def parse_expires_at(cls, v: Any) -> datetime | None:
        if isinstance(v, (int, float)):
            return datetime.fromtimestamp(v, tz=timezone.utc)
        return _parse_timestamp(v)

    @property
    def is_expired(self) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= datetime.now(timezone.utc)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> AuthSession:
        expires_at = data.get("expires_at")
        if expires_at is None and data.get("expires_in"):
            expires_at = datetime.now(timezone.utc) + timedelta(
                seconds=int(data["expires_in"])
            )
        return cls(
            access_token=data.get("access_token", ""),
            refresh_token=data.get("refresh_token") or "",
            token_type=data.get("token_type") or "bearer",
            expires_at=expires_at,
            user=SupabaseUser.from_api(data.get("user") or {}),
        )


class UserRow(BaseModel):
    """Row of the public ``users`` table."""

    id: str
    email: str = ""
    display_name: str = ""

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> UserRow:
        return cls(
            id=data.get("id", ""),
            email=data.get("email") or "",
            display_name=data.get("display_name") or "",
        )


class UserRecordRow(BaseModel):
    """Row of the ``user_records`` table."""

    id: str
    user_id: str
    wins: int = 0
    draws: int = 0
    losses: int = 0
    pride_balance: int = 0
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def parse_time(cls, v: Any) -> datetime | None:
        return _parse_timestamp(v)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> UserRecordRow:
        return cls(
            id=str(data.get("id", "")),
            user_id=data.get("user_id", ""),
            wins=data.get("wins") or 0,
            draws=data.get("draws") or 0,
            losses=data.get("losses") or 0,
            pride_balance=data.get("pride_balance") or 0,
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )


class BetRow(BaseModel):
    """Row of the ``bets`` table, status kept as the raw string."""

    id: str
    creator_id: str
    participant_id: str
    description: str
    pride_wagered: int
    status: str
    winner_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @field_validator("created_at", "updated_at", mode="before")
    @classmethod
    def parse_time(cls, v: Any) -> datetime | None:
        return _parse_timestamp(v)

    @classmethod
    def from_api(cls, data: dict[str, Any]) -> BetRow:
        return cls(
            id=str(data.get("id", "")),
            creator_id=data.get("creator_id", ""),
            participant_id=data.get("participant_id", ""),
            description=data.get("description", ""),
            pride_wagered=data.get("pride_wagered", 0),
            status=data.get("status", ""),
            winner_id=data.get("winner_id"),
            created_at=data.get("created_at"),
            updated_at=data.get("updated_at"),
        )
