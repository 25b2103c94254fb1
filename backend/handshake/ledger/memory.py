"""In-process BetStore and UserDirectory.

Used as the fake backend in tests and for local demos. Both share nothing
with Supabase but honour the same conditional-update contract.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional
from uuid import uuid4

from handshake.ledger.interfaces import BetStore, UserDirectory
from handshake.ledger.models import Bet, BetStatus, NewBet, Record, RecordDelta, User

logger = logging.getLogger(__name__)


class InMemoryBetStore(BetStore):
    def __init__(self) -> None:
        self._bets: Dict[str, Bet] = {}

    async def insert(self, bet: NewBet) -> Bet:
        now = datetime.now(timezone.utc)
        stored = Bet(
            id=uuid4().hex,
            created_at=now,
            updated_at=now,
            **bet.model_dump(),
        )
        self._bets[stored.id] = stored
        return stored

    async def get_by_id(self, bet_id: str) -> Optional[Bet]:
        return self._bets.get(bet_id)

    async def list_for_user(self, user_id: str) -> List[Bet]:
        bets = [bet for bet in self._bets.values() if bet.involves(user_id)]
        return sorted(bets, key=lambda b: b.created_at or datetime.min.replace(tzinfo=timezone.utc))

    async def update(
        self,
        bet_id: str,
        fields: Dict[str, Any],
        caller_id: str,
        expected_status: BetStatus,
    ) -> Optional[Bet]:
        bet = self._bets.get(bet_id)
        if bet is None or bet.status is not expected_status or not bet.involves(caller_id):
            return None
        data = bet.model_dump()
        data.update(fields)
        data["updated_at"] = datetime.now(timezone.utc)
        updated = Bet(**data)
        self._bets[bet_id] = updated
        return updated


class InMemoryUserDirectory(UserDirectory):
    def __init__(self, current_user_id: Optional[str] = None) -> None:
        self._users: Dict[str, User] = {}
        self._records: Dict[str, Record] = {}
        self.current_user_id = current_user_id

    def add_user(self, user_id: str, display_name: str) -> User:
        user = User(id=user_id, display_name=display_name)
        self._users[user_id] = user
        return user

    def sign_in(self, user_id: Optional[str]) -> None:
        self.current_user_id = user_id

    def get_current_user_id(self) -> Optional[str]:
        return self.current_user_id

    async def get_user(self, user_id: str) -> Optional[User]:
        user = self._users.get(user_id)
        if user is None:
            return None
        return user.model_copy(update={"record": self._records.get(user_id)})

    async def list_other_users(self, excluding_id: str) -> List[User]:
        return [
            user.model_copy(update={"record": self._records.get(user.id)})
            for user in self._users.values()
            if user.id != excluding_id
        ]

    async def get_record(self, user_id: str) -> Optional[Record]:
        return self._records.get(user_id)

    async def upsert_record(self, user_id: str, delta: RecordDelta) -> Record:
        current = self._records.get(user_id) or Record(user_id=user_id)
        updated = current.apply(delta)
        self._records[user_id] = updated
        logger.debug(f"Record for {user_id} is now {updated.formatted}")
        return updated
