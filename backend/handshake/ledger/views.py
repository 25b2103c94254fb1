"""Client-side filters over ``BetLedger.list_bets_for_user`` results."""

from typing import Iterable, Literal, Optional

from handshake.ledger.models import Bet, BetStatus, BetView, SettlementOutcome

ViewName = Literal["all", "active", "records"]
CallerChoice = Literal["i_won", "they_won", "draw"]


def active_bets(views: Iterable[BetView]) -> list[BetView]:
    """Bets still in play: pending or accepted."""
    return [v for v in views if not v.status.is_terminal]


def completed_bets(views: Iterable[BetView]) -> list[BetView]:
    """Settled bets, newest first."""
    done = [v for v in views if v.status is BetStatus.COMPLETED]
    return sorted(done, key=lambda v: v.created_at.timestamp() if v.created_at else 0.0, reverse=True)


def filter_view(views: Iterable[BetView], view: ViewName) -> list[BetView]:
    if view == "active":
        return active_bets(views)
    if view == "records":
        return completed_bets(views)
    return list(views)


def outcome_for_caller(choice: CallerChoice, view: BetView) -> SettlementOutcome:
    """Translate a first-person choice ("i_won") into a settlement outcome."""
    if choice == "draw":
        return SettlementOutcome.DRAW
    caller_won = choice == "i_won"
    if caller_won == view.is_creator:
        return SettlementOutcome.CREATOR_WON
    return SettlementOutcome.PARTICIPANT_WON


def result_for_user(bet: Bet, user_id: str) -> Optional[str]:
    """Return "won", "lost" or "draw" for a completed bet, else None."""
    if bet.status is not BetStatus.COMPLETED:
        return None
    if bet.is_draw:
        return "draw"
    return "won" if bet.winner_id == user_id else "lost"
