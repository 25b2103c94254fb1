#!/usr/bin/env python3
"""Tests for the bet lifecycle and record bookkeeping."""

import asyncio
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from handshake.ledger import (
    BetLedger,
    BetStatus,
    InMemoryBetStore,
    InMemoryUserDirectory,
    InvalidInput,
    InvalidTransition,
    NotAuthenticated,
    NotFound,
    Record,
    RecordDelta,
    SettlementOutcome,
    StoreUnavailable,
)


def make_ledger() -> tuple[BetLedger, InMemoryBetStore, InMemoryUserDirectory]:
    store = InMemoryBetStore()
    directory = InMemoryUserDirectory()
    directory.add_user("A", "Alice")
    directory.add_user("B", "Bob")
    directory.add_user("C", "Carol")
    return BetLedger(store, directory), store, directory


async def accepted_bet(ledger: BetLedger, directory: InMemoryUserDirectory, stake: int = 10):
    directory.sign_in("A")
    bet = await ledger.create_bet("A", "B", "Coin flip", stake)
    directory.sign_in("B")
    await ledger.respond_to_bet(bet.id, "B", accept=True)
    directory.sign_in("A")
    return bet


class FlakyDirectory(InMemoryUserDirectory):
    """Directory whose record writes fail until told otherwise."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_records = True

    async def upsert_record(self, user_id, delta):
        if self.fail_records:
            raise ConnectionError("records table unreachable")
        return await super().upsert_record(user_id, delta)


class BrokenStore(InMemoryBetStore):
    async def insert(self, bet):
        raise ConnectionError("connection reset by peer")


def test_create_bet_starts_pending_without_winner() -> None:
    ledger, _, directory = make_ledger()
    directory.sign_in("A")

    bet = asyncio.run(ledger.create_bet("A", "B", "Coin flip", 10))

    assert bet.status is BetStatus.PENDING
    assert bet.winner_id is None
    assert bet.creator_id == "A"
    assert bet.participant_id == "B"
    assert bet.pride_wagered == 10
    assert bet.id


@pytest.mark.parametrize(
    "participant, description, stake",
    [
        ("A", "Coin flip", 10),
        ("B", "   ", 10),
        ("B", "", 10),
        ("B", "Coin flip", 0),
        ("B", "Coin flip", -5),
        ("", "Coin flip", 10),
    ],
)
def test_create_bet_rejects_invalid_input(participant, description, stake) -> None:
    ledger, store, directory = make_ledger()
    directory.sign_in("A")

    with pytest.raises(InvalidInput):
        asyncio.run(ledger.create_bet("A", participant, description, stake))
    assert asyncio.run(store.list_for_user("A")) == []


def test_create_bet_requires_signed_in_creator() -> None:
    ledger, _, directory = make_ledger()

    with pytest.raises(NotAuthenticated):
        asyncio.run(ledger.create_bet("A", "B", "Coin flip", 10))

    directory.sign_in("C")
    with pytest.raises(InvalidInput):
        asyncio.run(ledger.create_bet("A", "B", "Coin flip", 10))


def test_store_failure_surfaces_as_store_unavailable() -> None:
    directory = InMemoryUserDirectory(current_user_id="A")
    ledger = BetLedger(BrokenStore(), directory)

    with pytest.raises(StoreUnavailable, match="connection reset by peer"):
        asyncio.run(ledger.create_bet("A", "B", "Coin flip", 10))


def test_new_bet_listed_once_for_both_parties() -> None:
    ledger, _, directory = make_ledger()
    directory.sign_in("A")
    bet = asyncio.run(ledger.create_bet("A", "B", "Coin flip", 10))

    for_a = asyncio.run(ledger.list_bets_for_user("A"))
    for_b = asyncio.run(ledger.list_bets_for_user("B"))
    for_c = asyncio.run(ledger.list_bets_for_user("C"))

    assert [v.id for v in for_a] == [bet.id]
    assert [v.id for v in for_b] == [bet.id]
    assert for_c == []
    assert for_a[0].is_creator is True
    assert for_b[0].is_creator is False
    assert for_a[0].status_display == "Waiting for Response"
    assert for_b[0].status_display == "Needs Your Response"
    assert for_a[0].counterparty_name == "Bob"
    assert for_b[0].counterparty_name == "Alice"


def test_unknown_counterparty_is_labelled() -> None:
    ledger, _, directory = make_ledger()
    directory.sign_in("A")
    asyncio.run(ledger.create_bet("A", "ghost", "Coin flip", 10))

    views = asyncio.run(ledger.list_bets_for_user("A"))

    assert views[0].counterparty_id == "ghost"
    assert views[0].counterparty_name == "Unknown User"


def test_participant_accepts_pending_bet() -> None:
    ledger, _, directory = make_ledger()
    directory.sign_in("A")
    bet = asyncio.run(ledger.create_bet("A", "B", "Coin flip", 10))

    directory.sign_in("B")
    accepted = asyncio.run(ledger.respond_to_bet(bet.id, "B", accept=True))

    assert accepted.status is BetStatus.ACCEPTED
    assert accepted.winner_id is None
    views = asyncio.run(ledger.list_bets_for_user("A"))
    assert views[0].status_display == "In Progress"
    # No bookkeeping happens on acceptance.
    assert asyncio.run(directory.get_record("A")) is None
    assert asyncio.run(directory.get_record("B")) is None


def test_creator_cannot_respond_to_own_bet() -> None:
    ledger, store, directory = make_ledger()
    directory.sign_in("A")
    bet = asyncio.run(ledger.create_bet("A", "B", "Coin flip", 10))

    with pytest.raises(InvalidTransition):
        asyncio.run(ledger.respond_to_bet(bet.id, "A", accept=True))

    assert asyncio.run(store.get_by_id(bet.id)).status is BetStatus.PENDING


def test_outsider_cannot_respond_to_bet() -> None:
    ledger, store, directory = make_ledger()
    directory.sign_in("A")
    bet = asyncio.run(ledger.create_bet("A", "B", "Coin flip", 10))

    directory.sign_in("C")
    with pytest.raises(InvalidTransition):
        asyncio.run(ledger.respond_to_bet(bet.id, "C", accept=True))

    assert asyncio.run(store.get_by_id(bet.id)) == bet


def test_respond_requires_pending_status() -> None:
    ledger, store, directory = make_ledger()
    bet = asyncio.run(accepted_bet(ledger, directory))

    directory.sign_in("B")
    with pytest.raises(InvalidTransition):
        asyncio.run(ledger.respond_to_bet(bet.id, "B", accept=False))

    assert asyncio.run(store.get_by_id(bet.id)).status is BetStatus.ACCEPTED


def test_respond_to_missing_bet() -> None:
    ledger, _, directory = make_ledger()
    directory.sign_in("B")

    with pytest.raises(NotFound):
        asyncio.run(ledger.respond_to_bet("nope", "B", accept=True))


def test_creator_won_scenario() -> None:
    ledger, _, directory = make_ledger()
    bet = asyncio.run(accepted_bet(ledger, directory, stake=10))

    settled = asyncio.run(ledger.settle_bet(bet.id, "A", SettlementOutcome.CREATOR_WON))

    assert settled.status is BetStatus.COMPLETED
    assert settled.winner_id == "A"
    record_a = asyncio.run(ledger.get_record("A"))
    record_b = asyncio.run(ledger.get_record("B"))
    assert (record_a.wins, record_a.draws, record_a.losses) == (1, 0, 0)
    assert (record_b.wins, record_b.draws, record_b.losses) == (0, 0, 1)
    assert record_a.pride_balance == 10
    assert record_b.pride_balance == -10
    assert ledger.pending_record_updates == []


def test_participant_won_moves_pride_to_participant() -> None:
    ledger, _, directory = make_ledger()
    bet = asyncio.run(accepted_bet(ledger, directory, stake=25))

    settled = asyncio.run(ledger.settle_bet(bet.id, "A", "participant_won"))

    assert settled.winner_id == "B"
    assert asyncio.run(ledger.get_record("B")).pride_balance == 25
    assert asyncio.run(ledger.get_record("A")).pride_balance == -25
    assert asyncio.run(ledger.get_record("A")).formatted == "0-0-1"


def test_draw_counts_for_both_without_pride_change() -> None:
    ledger, _, directory = make_ledger()
    directory._records["A"] = Record(user_id="A", wins=2, pride_balance=40)
    bet = asyncio.run(accepted_bet(ledger, directory))

    settled = asyncio.run(ledger.settle_bet(bet.id, "A", SettlementOutcome.DRAW))

    assert settled.status is BetStatus.COMPLETED
    assert settled.winner_id is None
    assert settled.is_draw
    record_a = asyncio.run(ledger.get_record("A"))
    record_b = asyncio.run(ledger.get_record("B"))
    assert (record_a.wins, record_a.draws, record_a.pride_balance) == (2, 1, 40)
    assert (record_b.draws, record_b.pride_balance) == (1, 0)


def test_only_creator_settles() -> None:
    ledger, store, directory = make_ledger()
    bet = asyncio.run(accepted_bet(ledger, directory))

    directory.sign_in("B")
    with pytest.raises(InvalidTransition):
        asyncio.run(ledger.settle_bet(bet.id, "B", SettlementOutcome.PARTICIPANT_WON))

    assert asyncio.run(store.get_by_id(bet.id)).status is BetStatus.ACCEPTED
    assert asyncio.run(directory.get_record("B")) is None


def test_pending_bet_cannot_be_settled() -> None:
    ledger, _, directory = make_ledger()
    directory.sign_in("A")
    bet = asyncio.run(ledger.create_bet("A", "B", "Coin flip", 10))

    with pytest.raises(InvalidTransition):
        asyncio.run(ledger.settle_bet(bet.id, "A", SettlementOutcome.CREATOR_WON))


def test_second_settlement_fails_and_does_not_double_apply() -> None:
    ledger, _, directory = make_ledger()
    bet = asyncio.run(accepted_bet(ledger, directory, stake=10))
    asyncio.run(ledger.settle_bet(bet.id, "A", SettlementOutcome.CREATOR_WON))

    with pytest.raises(InvalidTransition):
        asyncio.run(ledger.settle_bet(bet.id, "A", SettlementOutcome.CREATOR_WON))

    record_a = asyncio.run(ledger.get_record("A"))
    assert record_a.wins == 1
    assert record_a.pride_balance == 10


def test_concurrent_settlements_apply_once() -> None:
    ledger, _, directory = make_ledger()
    bet = asyncio.run(accepted_bet(ledger, directory, stake=10))

    async def race():
        return await asyncio.gather(
            ledger.settle_bet(bet.id, "A", SettlementOutcome.CREATOR_WON),
            ledger.settle_bet(bet.id, "A", SettlementOutcome.CREATOR_WON),
            return_exceptions=True,
        )

    results = asyncio.run(race())

    assert sum(isinstance(r, InvalidTransition) for r in results) == 1
    record_a = asyncio.run(ledger.get_record("A"))
    record_b = asyncio.run(ledger.get_record("B"))
    assert (record_a.wins, record_a.pride_balance) == (1, 10)
    assert (record_b.losses, record_b.pride_balance) == (1, -10)


def test_rejected_bet_cannot_be_settled() -> None:
    ledger, store, directory = make_ledger()
    directory.sign_in("A")
    bet = asyncio.run(ledger.create_bet("A", "B", "Coin flip", 10))

    directory.sign_in("B")
    rejected = asyncio.run(ledger.respond_to_bet(bet.id, "B", accept=False))
    assert rejected.status is BetStatus.REJECTED

    directory.sign_in("A")
    with pytest.raises(InvalidTransition):
        asyncio.run(ledger.settle_bet(bet.id, "A", SettlementOutcome.CREATOR_WON))
    assert asyncio.run(store.get_by_id(bet.id)).status is BetStatus.REJECTED


def test_unknown_outcome_is_invalid_input() -> None:
    ledger, _, directory = make_ledger()
    bet = asyncio.run(accepted_bet(ledger, directory))

    with pytest.raises(InvalidInput):
        asyncio.run(ledger.settle_bet(bet.id, "A", "i_won"))


def test_failed_record_update_keeps_bet_completed_and_queues_retry() -> None:
    store = InMemoryBetStore()
    directory = FlakyDirectory()
    ledger = BetLedger(store, directory)
    bet = asyncio.run(accepted_bet(ledger, directory, stake=10))

    settled = asyncio.run(ledger.settle_bet(bet.id, "A", SettlementOutcome.CREATOR_WON))

    assert settled.status is BetStatus.COMPLETED
    pending = ledger.pending_record_updates
    assert [(p.user_id, p.delta) for p in pending] == [
        ("A", RecordDelta.win(10)),
        ("B", RecordDelta.loss(10)),
    ]
    assert "records table unreachable" in pending[0].error

    assert asyncio.run(ledger.retry_pending_record_updates()) == 0
    assert len(ledger.pending_record_updates) == 2

    directory.fail_records = False
    assert asyncio.run(ledger.retry_pending_record_updates()) == 2
    assert ledger.pending_record_updates == []
    assert asyncio.run(ledger.get_record("A")).pride_balance == 10
    assert asyncio.run(ledger.get_record("B")).pride_balance == -10


def test_get_record_defaults_to_zero() -> None:
    ledger, _, _ = make_ledger()

    record = asyncio.run(ledger.get_record("C"))

    assert record == Record(user_id="C")
    assert record.formatted == "0-0-0"


def test_list_opponents_excludes_caller_and_fills_records() -> None:
    ledger, _, directory = make_ledger()
    bet = asyncio.run(accepted_bet(ledger, directory, stake=5))
    asyncio.run(ledger.settle_bet(bet.id, "A", SettlementOutcome.CREATOR_WON))

    opponents = {u.id: u for u in asyncio.run(ledger.list_opponents("A"))}

    assert set(opponents) == {"B", "C"}
    assert opponents["B"].record.losses == 1
    assert opponents["C"].record == Record(user_id="C")
