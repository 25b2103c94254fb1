from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

from handshake.ledger.models import Bet, BetStatus, NewBet, Record, RecordDelta, User


class BetStore(ABC):
    """Durable bet storage. Shared with other writers."""

    @abstractmethod
    async def insert(self, bet: NewBet) -> Bet:
        """Insert a bet and return it with its storage-assigned id."""
        pass

    @abstractmethod
    async def get_by_id(self, bet_id: str) -> Optional[Bet]:
        """Fetch a bet, or None when it does not exist."""
        pass

    @abstractmethod
    async def list_for_user(self, user_id: str) -> List[Bet]:
        """All bets where user_id is the creator OR the participant."""
        pass

    @abstractmethod
    async def update(
        self,
        bet_id: str,
        fields: Dict[str, Any],
        caller_id: str,
        expected_status: BetStatus,
    ) -> Optional[Bet]:
        """
        Conditionally update a bet.

        Writes only if the row still has expected_status and caller_id is its
        creator or participant. Returns the updated bet, or None when no row
        matched.
        """
        pass


class UserDirectory(ABC):
    """Identity and aggregate records."""

    @abstractmethod
    def get_current_user_id(self) -> Optional[str]:
        """Id of the signed-in caller, or None."""
        pass

    @abstractmethod
    async def get_user(self, user_id: str) -> Optional[User]:
        pass

    @abstractmethod
    async def list_other_users(self, excluding_id: str) -> List[User]:
        """All users except excluding_id, with their records when present."""
        pass

    @abstractmethod
    async def get_record(self, user_id: str) -> Optional[Record]:
        pass

    @abstractmethod
    async def upsert_record(self, user_id: str, delta: RecordDelta) -> Record:
        """
        Apply delta to the user's record, creating a zeroed record first if
        none exists. Creation is keyed on user_id so a retry never
        duplicates the record.
        """
        pass
