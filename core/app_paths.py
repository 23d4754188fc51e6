"""Where the habit server keeps its SQLite file and other persistent data."""
from __future__ import annotations

import logging
import os
from pathlib import Path

logger = logging.getLogger(__name__)

DATA_DIR_ENV = "HABITS_DATA_DIR"


def resolve_data_path(*parts: str | os.PathLike[str], create_parents: bool = False) -> Path:
    """Resolve a path under ``$HABITS_DATA_DIR`` or the repo's ``data/`` folder.

    Absolute parts win over the data root, as with ``Path.joinpath``.
    """
    env_value = os.getenv(DATA_DIR_ENV)
    base = Path(env_value).expanduser() if env_value else Path(__file__).resolve().parent.parent / "data"
    path = base.joinpath(*parts)
    if create_parents:
        path.parent.mkdir(parents=True, exist_ok=True)
        logger.debug("Using habit data path: %s", path)
    return path
