"""Bet lifecycle and record bookkeeping."""

import logging
from contextlib import contextmanager
from typing import Iterator, Optional

from handshake.ledger.errors import (
    InvalidInput,
    InvalidTransition,
    LedgerError,
    NotAuthenticated,
    NotFound,
    StoreUnavailable,
)
from handshake.ledger.interfaces import BetStore, UserDirectory
from handshake.ledger.models import (
    Bet,
    BetStatus,
    BetView,
    NewBet,
    PendingRecordUpdate,
    Record,
    RecordDelta,
    SettlementOutcome,
    User,
)

logger = logging.getLogger(__name__)


@contextmanager
def _store_call(action: str) -> Iterator[None]:
    """Surface any collaborator failure as StoreUnavailable."""
    try:
        yield
    except LedgerError:
        raise
    except Exception as e:
        logger.error(f"{action} failed: {e}")
        raise StoreUnavailable(f"{action} failed: {e}") from e


class BetLedger:
    """
    Enforces the bet state machine and applies settlement results to records.

    pending -> accepted | rejected   (participant only)
    accepted -> completed            (creator only)

    Every transition is a conditional write against freshly stored state, so
    two racing settlements cannot both succeed. Record updates that fail
    after a bet is completed are kept on ``pending_record_updates`` for
    ``retry_pending_record_updates``.
    """

    def __init__(self, store: BetStore, directory: UserDirectory):
        self.store = store
        self.directory = directory
        self._pending: list[PendingRecordUpdate] = []

    @property
    def pending_record_updates(self) -> list[PendingRecordUpdate]:
        return list(self._pending)

    def load_pending_record_updates(self, updates: list[PendingRecordUpdate]) -> None:
        self._pending.extend(updates)

    def _require_caller(self, claimed_id: str) -> str:
        current = self.directory.get_current_user_id()
        if current is None:
            raise NotAuthenticated("Not signed in")
        if claimed_id != current:
            raise InvalidInput(f"User {claimed_id} is not the signed-in user")
        return current

    async def _load_bet(self, bet_id: str) -> Bet:
        with _store_call(f"Fetch bet {bet_id}"):
            bet = await self.store.get_by_id(bet_id)
        if bet is None:
            raise NotFound(f"Bet {bet_id} not found")
        return bet

    # ------------------------------------------------------------------
    # Operations
    # ------------------------------------------------------------------

    async def create_bet(
        self,
        creator_id: str,
        participant_id: str,
        description: str,
        pride_wagered: int,
    ) -> Bet:
        self._require_caller(creator_id)

        description = (description or "").strip()
        if not participant_id:
            raise InvalidInput("A participant is required")
        if participant_id == creator_id:
            raise InvalidInput("You cannot bet against yourself")
        if not description:
            raise InvalidInput("Description must not be empty")
        if isinstance(pride_wagered, bool) or not isinstance(pride_wagered, int):
            raise InvalidInput("Pride wagered must be a whole number")
        if pride_wagered <= 0:
            raise InvalidInput("Pride wagered must be positive")

        new_bet = NewBet(
            creator_id=creator_id,
            participant_id=participant_id,
            description=description,
            pride_wagered=pride_wagered,
        )
        with _store_call("Create bet"):
            bet = await self.store.insert(new_bet)

        logger.info(
            f"Created bet {bet.id}: {creator_id} vs {participant_id} "
            f"for {pride_wagered} Pride"
        )
        return bet

    async def list_bets_for_user(self, user_id: str) -> list[BetView]:
        with _store_call(f"List bets for {user_id}"):
            bets = await self.store.list_for_user(user_id)

        names: dict[str, Optional[str]] = {}
        for bet in bets:
            other_id = bet.counterparty_of(user_id)
            if other_id in names:
                continue
            try:
                other = await self.directory.get_user(other_id)
            except Exception as e:
                # Unresolved users are listed as "Unknown User".
                logger.warning(f"Could not resolve user {other_id}: {e}")
                other = None
            names[other_id] = other.display_name if other else None

        return [
            BetView.for_viewer(bet, user_id, names.get(bet.counterparty_of(user_id)))
            for bet in bets
        ]

    async def respond_to_bet(self, bet_id: str, caller_id: str, accept: bool) -> Bet:
        self._require_caller(caller_id)
        bet = await self._load_bet(bet_id)

        if bet.status is not BetStatus.PENDING:
            raise InvalidTransition(
                f"Bet {bet_id} is {bet.status.value}; only pending bets can be answered"
            )
        if caller_id != bet.participant_id:
            raise InvalidTransition("Only the invited participant can respond to this bet")

        new_status = BetStatus.ACCEPTED if accept else BetStatus.REJECTED
        updated = await self._transition(
            bet_id, {"status": new_status}, caller_id, BetStatus.PENDING
        )
        logger.info(f"Bet {bet_id} {new_status.value} by {caller_id}")
        return updated

    async def settle_bet(
        self, bet_id: str, caller_id: str, outcome: SettlementOutcome
    ) -> Bet:
        self._require_caller(caller_id)
        try:
            outcome = SettlementOutcome(outcome)
        except ValueError as e:
            raise InvalidInput(f"Unknown outcome: {outcome}") from e

        bet = await self._load_bet(bet_id)
        if bet.status is not BetStatus.ACCEPTED:
            raise InvalidTransition(
                f"Bet {bet_id} is {bet.status.value}; only accepted bets can be settled"
            )
        if caller_id != bet.creator_id:
            raise InvalidTransition("Only the creator can settle this bet")

        if outcome is SettlementOutcome.CREATOR_WON:
            winner_id: Optional[str] = bet.creator_id
        elif outcome is SettlementOutcome.PARTICIPANT_WON:
            winner_id = bet.participant_id
        else:
            winner_id = None

        settled = await self._transition(
            bet_id,
            {"status": BetStatus.COMPLETED, "winner_id": winner_id},
            caller_id,
            BetStatus.ACCEPTED,
        )
        logger.info(f"Bet {bet_id} settled as {outcome.value} by {caller_id}")

        if winner_id is None:
            deltas = [
                (settled.creator_id, RecordDelta.draw()),
                (settled.participant_id, RecordDelta.draw()),
            ]
        else:
            deltas = [
                (winner_id, RecordDelta.win(settled.pride_wagered)),
                (settled.counterparty_of(winner_id), RecordDelta.loss(settled.pride_wagered)),
            ]
        for user_id, delta in deltas:
            await self._apply_record_update(settled.id, user_id, delta)

        return settled

    async def _transition(
        self,
        bet_id: str,
        fields: dict,
        caller_id: str,
        expected_status: BetStatus,
    ) -> Bet:
        with _store_call(f"Update bet {bet_id}"):
            updated = await self.store.update(bet_id, fields, caller_id, expected_status)
        if updated is not None:
            return updated

        # Lost the race or the row changed under us; report what is there now.
        current = await self._load_bet(bet_id)
        raise InvalidTransition(
            f"Bet {bet_id} is {current.status.value}, expected {expected_status.value}"
        )

    async def _apply_record_update(
        self, bet_id: str, user_id: str, delta: RecordDelta
    ) -> bool:
        try:
            await self.directory.upsert_record(user_id, delta)
            return True
        except Exception as e:
            logger.warning(
                f"Record update for {user_id} after bet {bet_id} failed; "
                f"queued for retry: {e}"
            )
            self._pending.append(
                PendingRecordUpdate(bet_id=bet_id, user_id=user_id, delta=delta, error=str(e))
            )
            return False

    async def retry_pending_record_updates(self) -> int:
        """Re-apply queued record updates. Returns how many succeeded."""
        queued, self._pending = self._pending, []
        applied = 0
        for update in queued:
            if await self._apply_record_update(update.bet_id, update.user_id, update.delta):
                applied += 1
        if queued:
            logger.info(
                f"Reconciled {applied}/{len(queued)} record updates "
                f"({len(self._pending)} still pending)"
            )
        return applied

    async def get_record(self, user_id: str) -> Record:
        with _store_call(f"Fetch record for {user_id}"):
            record = await self.directory.get_record(user_id)
        return record or Record(user_id=user_id)

    async def list_opponents(self, caller_id: str) -> list[User]:
        self._require_caller(caller_id)
        with _store_call("List users"):
            users = await self.directory.list_other_users(caller_id)
        return [
            user if user.record else user.model_copy(update={"record": Record(user_id=user.id)})
            for user in users
        ]
