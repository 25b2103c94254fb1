"""Record updates that could not be applied, kept per user in data/pending/."""

import logging
from pathlib import Path

from handshake.ledger.models import PendingRecordUpdate
from handshake.storage.base import get_data_dir, load_yaml, save_yaml

logger = logging.getLogger(__name__)

PENDING_DIR = "pending"


def _pending_path(user_id: str, data_dir: Path | None = None) -> Path:
    # Each queue is replayed under its owner's token only.
    pending_dir = get_data_dir(data_dir) / PENDING_DIR
    pending_dir.mkdir(parents=True, exist_ok=True)
    return pending_dir / f"{user_id}.yaml"


def load_pending(user_id: str, data_dir: Path | None = None) -> list[PendingRecordUpdate]:
    raw = load_yaml(_pending_path(user_id, data_dir)) or []
    return [PendingRecordUpdate(**item) for item in raw]


def save_pending(
    updates: list[PendingRecordUpdate],
    user_id: str,
    data_dir: Path | None = None,
) -> None:
    """Replace the user's stored queue; an empty queue removes the file."""
    path = _pending_path(user_id, data_dir)
    if not updates:
        path.unlink(missing_ok=True)
        return
    save_yaml(path, [u.model_dump(mode="json") for u in updates])
    logger.info(f"{len(updates)} record update(s) pending reconciliation for {user_id}")
