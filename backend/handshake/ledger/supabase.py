"""Supabase-backed BetStore and UserDirectory."""

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, List, Optional

from pydantic import ValidationError

from handshake.ledger.errors import NotAuthenticated, StoreUnavailable
from handshake.ledger.interfaces import BetStore, UserDirectory
from handshake.ledger.models import Bet, BetStatus, NewBet, Record, RecordDelta, User
from handshake.services.supabase import (
    BetRow,
    SupabaseAPIError,
    SupabaseAuthError,
    SupabaseClient,
    UserRecordRow,
    UserRow,
    any_of,
    eq,
    neq,
)

logger = logging.getLogger(__name__)

BETS_TABLE = "bets"
USERS_TABLE = "users"
RECORDS_TABLE = "user_records"
USER_COLUMNS = "id,email,display_name"
RECORD_UPDATE_ATTEMPTS = 5


@contextmanager
def _translate_errors(action: str) -> Iterator[None]:
    try:
        yield
    except SupabaseAuthError as e:
        logger.warning(f"{action}: not authenticated ({e})")
        raise NotAuthenticated(str(e)) from e
    except SupabaseAPIError as e:
        logger.error(f"{action} failed: {e}")
        raise StoreUnavailable(str(e)) from e
    except ValidationError as e:
        logger.error(f"{action} returned a malformed row: {e}")
        raise StoreUnavailable(f"Malformed row from {action}: {e}") from e


def _bet_from_row(data: Dict[str, Any]) -> Bet:
    row = BetRow.from_api(data)
    return Bet(**row.model_dump())


def _record_from_row(row: UserRecordRow) -> Record:
    return Record(
        user_id=row.user_id,
        wins=row.wins,
        draws=row.draws,
        losses=row.losses,
        pride_balance=row.pride_balance,
    )


def _serialize(fields: Dict[str, Any]) -> Dict[str, Any]:
    return {
        key: value.value if isinstance(value, BetStatus) else value
        for key, value in fields.items()
    }


class SupabaseBetStore(BetStore):
    def __init__(self, client: SupabaseClient):
        self.client = client

    async def insert(self, bet: NewBet) -> Bet:
        with _translate_errors("insert bet"):
            rows = await self.client.insert(BETS_TABLE, _serialize(bet.model_dump()))
            if not rows:
                raise StoreUnavailable("Insert into bets returned no row")
            return _bet_from_row(rows[0])

    async def get_by_id(self, bet_id: str) -> Optional[Bet]:
        with _translate_errors(f"fetch bet {bet_id}"):
            rows = await self.client.select(BETS_TABLE, {"id": eq(bet_id)})
            return _bet_from_row(rows[0]) if rows else None

    async def list_for_user(self, user_id: str) -> List[Bet]:
        with _translate_errors(f"list bets for {user_id}"):
            rows = await self.client.select(
                BETS_TABLE,
                {
                    "or": any_of(creator_id=eq(user_id), participant_id=eq(user_id)),
                    "order": "created_at.asc",
                },
            )
            return [_bet_from_row(row) for row in rows]

    async def update(
        self,
        bet_id: str,
        fields: Dict[str, Any],
        caller_id: str,
        expected_status: BetStatus,
    ) -> Optional[Bet]:
        filters = {
            "id": eq(bet_id),
            "status": eq(expected_status.value),
            "or": any_of(creator_id=eq(caller_id), participant_id=eq(caller_id)),
        }
        with _translate_errors(f"update bet {bet_id}"):
            rows = await self.client.update(BETS_TABLE, _serialize(fields), filters)
            return _bet_from_row(rows[0]) if rows else None


class SupabaseUserDirectory(UserDirectory):
    def __init__(self, client: SupabaseClient):
        self.client = client

    def get_current_user_id(self) -> Optional[str]:
        return self.client.current_user_id

    async def get_user(self, user_id: str) -> Optional[User]:
        with _translate_errors(f"fetch user {user_id}"):
            rows = await self.client.select(
                USERS_TABLE, {"id": eq(user_id)}, columns=USER_COLUMNS
            )
        if not rows:
            return None
        row = UserRow.from_api(rows[0])
        return User(
            id=row.id,
            display_name=row.display_name or row.email,
            record=await self.get_record(user_id),
        )

    async def list_other_users(self, excluding_id: str) -> List[User]:
        with _translate_errors("list users"):
            user_rows = await self.client.select(
                USERS_TABLE, {"id": neq(excluding_id)}, columns=USER_COLUMNS
            )
            record_rows = await self.client.select(RECORDS_TABLE)

        records = {
            row.user_id: _record_from_row(row)
            for row in (UserRecordRow.from_api(r) for r in record_rows)
        }
        users = []
        for data in user_rows:
            row = UserRow.from_api(data)
            users.append(
                User(
                    id=row.id,
                    display_name=row.display_name or row.email,
                    record=records.get(row.id),
                )
            )
        return users

    async def _fetch_record_row(self, user_id: str) -> Optional[UserRecordRow]:
        rows = await self.client.select(RECORDS_TABLE, {"user_id": eq(user_id)})
        return UserRecordRow.from_api(rows[0]) if rows else None

    async def get_record(self, user_id: str) -> Optional[Record]:
        with _translate_errors(f"fetch record for {user_id}"):
            row = await self._fetch_record_row(user_id)
        return _record_from_row(row) if row else None

    async def _create_record_row(self, user_id: str) -> UserRecordRow:
        logger.info(f"No record for {user_id}, creating one")
        inserted = await self.client.insert(
            RECORDS_TABLE,
            {
                "user_id": user_id,
                "wins": 0,
                "draws": 0,
                "losses": 0,
                "pride_balance": 0,
            },
            on_conflict="user_id",
            ignore_duplicates=True,
        )
        # A concurrent insert wins the conflict and returns nothing.
        row = UserRecordRow.from_api(inserted[0]) if inserted else await self._fetch_record_row(user_id)
        if row is None:
            raise StoreUnavailable(f"Could not create record for {user_id}")
        return row

    async def upsert_record(self, user_id: str, delta: RecordDelta) -> Record:
        """
        Apply delta with a compare-and-swap on the record's current counts.

        The PATCH only matches while the row still holds the values that were
        read; a concurrent writer makes it match nothing, and the increment is
        recomputed from a fresh read.
        """
        with _translate_errors(f"upsert record for {user_id}"):
            for attempt in range(RECORD_UPDATE_ATTEMPTS):
                row = await self._fetch_record_row(user_id)
                if row is None:
                    row = await self._create_record_row(user_id)

                updated = _record_from_row(row).apply(delta)
                rows = await self.client.update(
                    RECORDS_TABLE,
                    {
                        "wins": updated.wins,
                        "draws": updated.draws,
                        "losses": updated.losses,
                        "pride_balance": updated.pride_balance,
                    },
                    {
                        "id": eq(row.id),
                        "wins": eq(row.wins),
                        "draws": eq(row.draws),
                        "losses": eq(row.losses),
                        "pride_balance": eq(row.pride_balance),
                    },
                )
                if rows:
                    return _record_from_row(UserRecordRow.from_api(rows[0]))
                logger.info(
                    f"Record for {user_id} changed during update, "
                    f"retrying ({attempt + 1}/{RECORD_UPDATE_ATTEMPTS})"
                )

        raise StoreUnavailable(
            f"Record for {user_id} kept changing; gave up after "
            f"{RECORD_UPDATE_ATTEMPTS} attempts"
        )
