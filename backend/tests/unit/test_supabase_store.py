#!/usr/bin/env python3
"""Tests for the Supabase-backed BetStore and UserDirectory."""

import asyncio
import json
import sys
from pathlib import Path

import httpx
import pytest

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from handshake.ledger import (
    BetStatus,
    NewBet,
    NotAuthenticated,
    RecordDelta,
    StoreUnavailable,
    SupabaseBetStore,
    SupabaseUserDirectory,
)
from handshake.services.supabase import AuthSession, SupabaseClient, SupabaseConfig, SupabaseUser

CONFIG = SupabaseConfig(url="https://demo.supabase.co", anon_key="anon-key", max_retries=1)

BET_ROW = {
    "id": "bet-1",
    "creator_id": "A",
    "participant_id": "B",
    "description": "Coin flip",
    "pride_wagered": 10,
    "status": "pending",
    "winner_id": None,
    "created_at": "2024-05-01T12:00:00Z",
    "updated_at": "2024-05-01T12:00:00Z",
}


def run_with_client(handler, body):
    """Run body(client) inside a client signed in as user A."""
    session = AuthSession(access_token="token-a", user=SupabaseUser(id="A"))
    client = SupabaseClient(CONFIG, session=session, transport=httpx.MockTransport(handler))

    async def run():
        async with client:
            return await body(client)

    return asyncio.run(run())


def test_insert_serializes_status_and_parses_row() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(json.loads(request.content))
        return httpx.Response(201, json=[BET_ROW])

    new_bet = NewBet(creator_id="A", participant_id="B", description="Coin flip", pride_wagered=10)
    bet = run_with_client(handler, lambda c: SupabaseBetStore(c).insert(new_bet))

    assert seen[0]["status"] == "pending"
    assert bet.id == "bet-1"
    assert bet.status is BetStatus.PENDING
    assert bet.created_at.year == 2024


def test_list_for_user_filters_on_either_party() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[BET_ROW])

    bets = run_with_client(handler, lambda c: SupabaseBetStore(c).list_for_user("A"))

    assert [b.id for b in bets] == ["bet-1"]
    params = seen[0].url.params
    assert params["or"] == "(creator_id.eq.A,participant_id.eq.A)"
    assert params["order"] == "created_at.asc"


def test_update_is_conditional_on_status_and_party() -> None:
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json=[])

    result = run_with_client(
        handler,
        lambda c: SupabaseBetStore(c).update(
            "bet-1", {"status": BetStatus.ACCEPTED}, "B", BetStatus.PENDING
        ),
    )

    assert result is None
    request = seen[0]
    assert request.method == "PATCH"
    assert request.url.params["id"] == "eq.bet-1"
    assert request.url.params["status"] == "eq.pending"
    assert request.url.params["or"] == "(creator_id.eq.B,participant_id.eq.B)"
    assert json.loads(request.content) == {"status": "accepted"}


def test_get_by_id_missing_returns_none() -> None:
    result = run_with_client(
        lambda r: httpx.Response(200, json=[]),
        lambda c: SupabaseBetStore(c).get_by_id("nope"),
    )
    assert result is None


def test_auth_failure_becomes_not_authenticated() -> None:
    with pytest.raises(NotAuthenticated):
        run_with_client(
            lambda r: httpx.Response(401, json={"message": "JWT expired"}),
            lambda c: SupabaseBetStore(c).get_by_id("bet-1"),
        )


def test_server_failure_becomes_store_unavailable() -> None:
    with pytest.raises(StoreUnavailable):
        run_with_client(
            lambda r: httpx.Response(500, json={"message": "boom"}),
            lambda c: SupabaseBetStore(c).list_for_user("A"),
        )


def test_malformed_row_becomes_store_unavailable() -> None:
    row = dict(BET_ROW, status="settled")
    with pytest.raises(StoreUnavailable):
        run_with_client(
            lambda r: httpx.Response(200, json=[row]),
            lambda c: SupabaseBetStore(c).get_by_id("bet-1"),
        )


def test_upsert_record_creates_missing_record_then_applies_delta() -> None:
    calls = []

    def handler(request: httpx.Request) -> httpx.Response:
        calls.append((request.method, dict(request.url.params)))
        if request.method == "GET":
            return httpx.Response(200, json=[])
        if request.method == "POST":
            body = json.loads(request.content)
            return httpx.Response(201, json=[dict(body, id="rec-1")])
        body = json.loads(request.content)
        return httpx.Response(200, json=[dict(body, id="rec-1", user_id="B")])

    record = run_with_client(
        handler, lambda c: SupabaseUserDirectory(c).upsert_record("B", RecordDelta.loss(10))
    )

    assert [method for method, _ in calls] == ["GET", "POST", "PATCH"]
    assert calls[0][1]["user_id"] == "eq.B"
    assert calls[1][1]["on_conflict"] == "user_id"
    assert calls[2][1]["id"] == "eq.rec-1"
    assert (record.losses, record.pride_balance) == (1, -10)


def test_upsert_record_refetches_after_lost_insert_race() -> None:
    existing = {"id": "rec-9", "user_id": "A", "wins": 3, "draws": 0, "losses": 1, "pride_balance": 20}
    reads = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "GET":
            reads.append(request)
            return httpx.Response(200, json=[] if len(reads) == 1 else [existing])
        if request.method == "POST":
            return httpx.Response(201, json=[])
        body = json.loads(request.content)
        return httpx.Response(200, json=[dict(existing, **body)])

    record = run_with_client(
        handler, lambda c: SupabaseUserDirectory(c).upsert_record("A", RecordDelta.win(5))
    )

    assert len(reads) == 2
    assert (record.wins, record.pride_balance) == (4, 25)


def test_list_other_users_joins_records() -> None:
    def handler(request: httpx.Request) -> httpx.Response:
        if request.url.path.endswith("/users"):
            assert request.url.params["id"] == "neq.A"
            return httpx.Response(
                200,
                json=[
                    {"id": "B", "email": "bob@example.com", "display_name": "Bob"},
                    {"id": "C", "email": "carol@example.com", "display_name": ""},
                ],
            )
        return httpx.Response(
            200, json=[{"id": "rec-2", "user_id": "B", "wins": 1, "draws": 0, "losses": 0, "pride_balance": 10}]
        )

    users = run_with_client(handler, lambda c: SupabaseUserDirectory(c).list_other_users("A"))

    by_id = {u.id: u for u in users}
    assert by_id["B"].display_name == "Bob"
    assert by_id["B"].record.formatted == "1-0-0"
    assert by_id["C"].display_name == "carol@example.com"
    assert by_id["C"].record is None


def test_current_user_comes_from_session() -> None:
    session = AuthSession(access_token="t", user=SupabaseUser(id="A"))
    directory = SupabaseUserDirectory(SupabaseClient(CONFIG, session=session))

    assert directory.get_current_user_id() == "A"


class FakeRecordsTable:
    """A ``user_records`` table that honours eq filters, with some latency."""

    def __init__(self, rows) -> None:
        self.rows = rows

    async def __call__(self, request: httpx.Request) -> httpx.Response:
        await asyncio.sleep(0.01)
        filters = {
            key: value.removeprefix("eq.")
            for key, value in request.url.params.items()
            if key != "select"
        }
        matches = [
            row for row in self.rows
            if all(str(row[key]) == value for key, value in filters.items())
        ]
        if request.method == "PATCH":
            for row in matches:
                row.update(json.loads(request.content))
        return httpx.Response(200, json=[dict(row) for row in matches])


def test_concurrent_upserts_keep_both_increments() -> None:
    table = FakeRecordsTable(
        [{"id": "rec-1", "user_id": "A", "wins": 0, "draws": 0, "losses": 0, "pride_balance": 0}]
    )

    async def settle_twice(client):
        directory = SupabaseUserDirectory(client)
        return await asyncio.gather(
            directory.upsert_record("A", RecordDelta.win(10)),
            directory.upsert_record("A", RecordDelta.win(5)),
        )

    run_with_client(table, settle_twice)

    row = table.rows[0]
    assert (row["wins"], row["pride_balance"]) == (2, 15)


def test_upsert_record_gives_up_when_row_keeps_changing() -> None:
    existing = {"id": "rec-1", "user_id": "A", "wins": 0, "draws": 0, "losses": 0, "pride_balance": 0}
    patches = []

    def handler(request: httpx.Request) -> httpx.Response:
        if request.method == "PATCH":
            patches.append(request)
            return httpx.Response(200, json=[])
        return httpx.Response(200, json=[existing])

    with pytest.raises(StoreUnavailable, match="kept changing"):
        run_with_client(
            handler, lambda c: SupabaseUserDirectory(c).upsert_record("A", RecordDelta.draw())
        )

    assert len(patches) == 5
    assert patches[0].url.params["wins"] == "eq.0"
    assert patches[0].url.params["pride_balance"] == "eq.0"
