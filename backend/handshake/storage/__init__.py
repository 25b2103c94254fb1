"""Local persistence for the Handshake client.

- Session: the signed-in Supabase session (data/session.yaml)
- Pending: record updates awaiting reconciliation (data/pending/<user_id>.yaml)

Both use atomic tempfile-then-rename writes.
"""

from .base import get_data_dir, load_yaml, save_yaml
from .pending import load_pending, save_pending
from .session import clear_session, load_session, save_session

__all__ = [
    "get_data_dir",
    "load_yaml",
    "save_yaml",
    "load_pending",
    "save_pending",
    "load_session",
    "save_session",
    "clear_session",
]
