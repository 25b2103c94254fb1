"""Ledger domain models."""

from __future__ import annotations

from datetime import datetime, timezone
from enum import Enum

from pydantic import BaseModel, Field, model_validator


class BetStatus(str, Enum):
    """Bet lifecycle state."""

    PENDING = "pending"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    COMPLETED = "completed"

    @property
    def is_terminal(self) -> bool:
        return self in (BetStatus.REJECTED, BetStatus.COMPLETED)


class SettlementOutcome(str, Enum):
    """Outcome declared by the creator when settling."""

    CREATOR_WON = "creator_won"
    PARTICIPANT_WON = "participant_won"
    DRAW = "draw"


def status_label(status: BetStatus, is_creator: bool) -> str:
    """Display label for a status as seen by the creator or the participant."""
    if status is BetStatus.PENDING:
        return "Waiting for Response" if is_creator else "Needs Your Response"
    if status is BetStatus.ACCEPTED:
        return "In Progress"
    if status is BetStatus.REJECTED:
        return "Rejected"
    if status is BetStatus.COMPLETED:
        return "Completed"
    raise ValueError(f"Unknown bet status: {status!r}")


class RecordDelta(BaseModel):
    """Increment applied to a user's record by one settlement."""

    wins: int = 0
    draws: int = 0
    losses: int = 0
    pride: int = 0

    @classmethod
    def win(cls, stake: int) -> RecordDelta:
        return cls(wins=1, pride=stake)

    @classmethod
    def loss(cls, stake: int) -> RecordDelta:
        return cls(losses=1, pride=-stake)

    @classmethod
    def draw(cls) -> RecordDelta:
        return cls(draws=1)


class Record(BaseModel):
    """A user's aggregate wins, draws, losses and Pride balance."""

    user_id: str
    wins: int = 0
    draws: int = 0
    losses: int = 0
    # No floor: balances may go negative.
    pride_balance: int = 0

    @property
    def formatted(self) -> str:
        return f"{self.wins}-{self.draws}-{self.losses}"

    def apply(self, delta: RecordDelta) -> Record:
        return self.model_copy(
            update={
                "wins": self.wins + delta.wins,
                "draws": self.draws + delta.draws,
                "losses": self.losses + delta.losses,
                "pride_balance": self.pride_balance + delta.pride,
            }
        )


class User(BaseModel):
    id: str
    display_name: str
    record: Record | None = None


class NewBet(BaseModel):
    """Bet fields supplied on creation; storage assigns id and timestamps."""

    creator_id: str
    participant_id: str
    description: str
    pride_wagered: int
    status: BetStatus = BetStatus.PENDING


class Bet(BaseModel):
    id: str
    creator_id: str
    participant_id: str
    description: str
    pride_wagered: int
    status: BetStatus
    winner_id: str | None = None
    created_at: datetime | None = None
    updated_at: datetime | None = None

    @model_validator(mode="after")
    def check_winner(self) -> Bet:
        if self.winner_id is None:
            return self
        if self.status is not BetStatus.COMPLETED:
            raise ValueError("winner_id is only set on completed bets")
        if self.winner_id not in (self.creator_id, self.participant_id):
            raise ValueError("winner_id must be the creator or the participant")
        return self

    @property
    def is_draw(self) -> bool:
        return self.status is BetStatus.COMPLETED and self.winner_id is None

    def involves(self, user_id: str) -> bool:
        return user_id in (self.creator_id, self.participant_id)

    def counterparty_of(self, user_id: str) -> str:
        if user_id == self.creator_id:
            return self.participant_id
        if user_id == self.participant_id:
            return self.creator_id
        raise ValueError(f"User {user_id} is not part of bet {self.id}")


class BetView(BaseModel):
    """A bet as seen by one of its two parties."""

    bet: Bet
    viewer_id: str
    is_creator: bool
    status_display: str
    counterparty_id: str
    counterparty_name: str = "Unknown User"

    @property
    def id(self) -> str:
        return self.bet.id

    @property
    def status(self) -> BetStatus:
        return self.bet.status

    @property
    def created_at(self) -> datetime | None:
        return self.bet.created_at

    @classmethod
    def for_viewer(
        cls, bet: Bet, viewer_id: str, counterparty_name: str | None = None
    ) -> BetView:
        is_creator = bet.creator_id == viewer_id
        return cls(
            bet=bet,
            viewer_id=viewer_id,
            is_creator=is_creator,
            status_display=status_label(bet.status, is_creator),
            counterparty_id=bet.counterparty_of(viewer_id),
            counterparty_name=counterparty_name or "Unknown User",
        )


class PendingRecordUpdate(BaseModel):
    """A record increment that failed after its bet was already completed."""

    bet_id: str
    user_id: str
    delta: RecordDelta
    error: str = ""
    failed_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
