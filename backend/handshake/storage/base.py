"""Atomic YAML persistence under the data directory."""

import logging
import shutil
import tempfile
from pathlib import Path
from typing import Any

import yaml

from handshake.config import get_settings

logger = logging.getLogger(__name__)


def get_data_dir(data_dir: Path | None = None) -> Path:
    """Data directory from settings (or the override), created on demand."""
    path = data_dir if data_dir is not None else get_settings().data_dir
    path.mkdir(parents=True, exist_ok=True)
    return path


def load_yaml(path: Path) -> Any:
    """Load a YAML file, returning None if it is missing or empty."""
    if not path.exists():
        return None
    try:
        with open(path, "r", encoding="utf-8") as f:
            return yaml.safe_load(f)
    except yaml.YAMLError as e:
        logger.error(f"Corrupted YAML in {path}: {e}")
        raise


def save_yaml(path: Path, data: Any) -> None:
    """Atomically write data to path.

    Writes a temp file in the same directory and renames it over the target,
    so a crash mid-write leaves the previous file intact.
    """
    temp_path: Path | None = None
    try:
        with tempfile.NamedTemporaryFile(
            mode="w",
            dir=path.parent,
            delete=False,
            suffix=".yaml",
            encoding="utf-8",
        ) as temp_file:
            yaml.dump(
                data,
                temp_file,
                default_flow_style=False,
                allow_unicode=True,
                sort_keys=False,
            )
            temp_path = Path(temp_file.name)

        shutil.move(str(temp_path), str(path))
        logger.debug(f"Saved {path}")

    except Exception as e:
        if temp_path is not None:
            temp_path.unlink(missing_ok=True)
        logger.error(f"Failed to save {path}: {e}")
        raise
