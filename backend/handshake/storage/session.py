"""Signed-in session persisted to data/session.yaml between CLI runs."""

import logging
from pathlib import Path

from pydantic import ValidationError

from handshake.services.supabase import AuthSession
from handshake.storage.base import get_data_dir, load_yaml, save_yaml

logger = logging.getLogger(__name__)

SESSION_FILE = "session.yaml"


def _session_path(data_dir: Path | None = None) -> Path:
    return get_data_dir(data_dir) / SESSION_FILE


def load_session(data_dir: Path | None = None) -> AuthSession | None:
    """Return the saved session, or None when signed out or unreadable."""
    raw = load_yaml(_session_path(data_dir))
    if not raw:
        return None
    try:
        return AuthSession(**raw)
    except ValidationError as e:
        logger.warning(f"Ignoring invalid saved session: {e}")
        return None


def save_session(session: AuthSession, data_dir: Path | None = None) -> None:
    path = _session_path(data_dir)
    save_yaml(path, session.model_dump(mode="json"))
    path.chmod(0o600)
    logger.debug(f"Saved session for {session.user.id}")


def clear_session(data_dir: Path | None = None) -> None:
    _session_path(data_dir).unlink(missing_ok=True)
