"""Demo user seeding for development deployments.

Loads user records from the bundled ``demo_users.json`` into the user
directory so the HTTP API can be exercised without an external identity
provider.  Runs once at application startup when
``CIVICTRACK_SEED_DEMO_USERS`` is enabled.
"""

from __future__ import annotations

import json
from pathlib import Path
from typing import TYPE_CHECKING

import structlog
from pydantic import ValidationError

from src.models.user import User

if TYPE_CHECKING:
    from src.services.user_directory import InMemoryUserDirectory

logger = structlog.get_logger(__name__)

# ---------------------------------------------------------------------------
# Paths
# ---------------------------------------------------------------------------

_DATA_DIR: Path = Path(__file__).resolve().parent / "users"
_DEMO_USERS_PATH: Path = _DATA_DIR / "demo_users.json"


# ---------------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------------


def load_users(path: Path | None = None) -> list[User]:
    """Load user records from a JSON file.

    Parameters
    ----------
    path:
        Path to the JSON file.  Defaults to the bundled ``demo_users.json``.

    Returns
    -------
    list[User]
        Parsed users; malformed entries are logged and skipped.

    Raises
    ------
    FileNotFoundError
        If the JSON file does not exist.
    json.JSONDecodeError
        If the JSON is malformed.
    """
    file_path = path or _DEMO_USERS_PATH

    if not file_path.exists():
        raise FileNotFoundError(f"User data file not found: {file_path}")

    with file_path.open("r", encoding="utf-8") as f:
        raw_users: list[dict] = json.load(f)

    users: list[User] = []
    for raw in raw_users:
        try:
            users.append(User.model_validate(raw))
        except ValidationError:
            logger.warning("seed.parse_error", user_id=raw.get("user_id", "unknown"), exc_info=True)

    logger.info("seed.loaded_users", count=len(users), source=str(file_path))
    return users


def seed_demo_users(directory: InMemoryUserDirectory, path: Path | None = None) -> list[User]:
    """Load demo users and register them in *directory*."""
    users = load_users(path)
    for user in users:
        directory.add(user)

    logger.info("seed.complete", registered=len(users))
    return users
