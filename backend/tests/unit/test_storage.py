#!/usr/bin/env python3
"""Tests for session and pending-update persistence."""

import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent.parent))

from handshake.ledger import PendingRecordUpdate, RecordDelta
from handshake.services.supabase import AuthSession, SupabaseUser
from handshake.storage import (
    clear_session,
    load_pending,
    load_session,
    save_pending,
    save_session,
)


def test_session_round_trip_and_clear(tmp_path: Path) -> None:
    session = AuthSession(
        access_token="access",
        refresh_token="refresh",
        expires_at=1_900_000_000,
        user=SupabaseUser(id="A", email="alice@example.com", display_name="Alice"),
    )

    assert load_session(tmp_path) is None
    save_session(session, tmp_path)

    restored = load_session(tmp_path)
    assert restored == session
    assert (tmp_path / "session.yaml").stat().st_mode & 0o777 == 0o600

    clear_session(tmp_path)
    assert load_session(tmp_path) is None
    clear_session(tmp_path)


def test_invalid_saved_session_is_ignored(tmp_path: Path) -> None:
    (tmp_path / "session.yaml").write_text("user: nobody\n")

    assert load_session(tmp_path) is None


def test_pending_updates_persist_until_drained(tmp_path: Path) -> None:
    updates = [
        PendingRecordUpdate(bet_id="bet-1", user_id="A", delta=RecordDelta.win(10), error="timeout"),
        PendingRecordUpdate(bet_id="bet-1", user_id="B", delta=RecordDelta.loss(10)),
    ]

    save_pending(updates, "A", tmp_path)
    loaded = load_pending("A", tmp_path)

    assert [(u.user_id, u.delta) for u in loaded] == [
        ("A", RecordDelta.win(10)),
        ("B", RecordDelta.loss(10)),
    ]
    assert loaded[0].error == "timeout"

    save_pending([], "A", tmp_path)
    assert not (tmp_path / "pending" / "A.yaml").exists()
    assert load_pending("A", tmp_path) == []


def test_pending_updates_are_kept_per_user(tmp_path: Path) -> None:
    save_pending(
        [PendingRecordUpdate(bet_id="bet-1", user_id="A", delta=RecordDelta.draw())],
        "alice",
        tmp_path,
    )

    assert load_pending("bob", tmp_path) == []
    assert len(load_pending("alice", tmp_path)) == 1
