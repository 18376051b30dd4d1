"""
Database connection settings for the rooms and recordings store.

USE_LOCAL_DB switches between the deployed database (DB_*) and a developer
database (LOCAL_DB_*, defaulting to localhost:5432/voice_rooms_local).

Every connection also carries:
    DB_APPLICATION_NAME  shown in pg_stat_activity (default: voice-rooms)
    DB_SSLMODE           libpq sslmode, omitted when unset
    DB_SCHEMA            first entry on the search_path (see schema_constants)
"""

import os
import logging
from typing import Any, Dict

from dotenv import load_dotenv

from db.schema_constants import SCHEMA

load_dotenv()

logger = logging.getLogger(__name__)

REQUIRED_KEYS = ("host", "database", "user", "password")


def is_local_db() -> bool:
    """True if USE_LOCAL_DB is set to 'true', '1', or 'yes'."""
    return os.getenv("USE_LOCAL_DB", "false").lower() in ("true", "1", "yes")


def _env_prefix() -> str:
    return "LOCAL_DB_" if is_local_db() else "DB_"


def _connection_target() -> Dict[str, Any]:
    prefix = _env_prefix()
    if is_local_db():
        defaults = {"host": "localhost", "database": "voice_rooms_local", "user": "postgres", "password": "postgres"}
    else:
        defaults = {}

    return {
        "host": os.getenv(f"{prefix}HOST", defaults.get("host")),
        "port": int(os.getenv(f"{prefix}PORT", "5432")),
        "database": os.getenv(f"{prefix}NAME", defaults.get("database")),
        "user": os.getenv(f"{prefix}USER", defaults.get("user")),
        "password": os.getenv(f"{prefix}PASSWORD", defaults.get("password")),
    }


def get_db_config() -> Dict[str, Any]:
    """
    Keyword arguments for psycopg2.connect / ThreadedConnectionPool.

    The result is compared by value in the pool manager, so it must be
    rebuilt identically for an unchanged environment.
    """
    config = _connection_target()
    config["application_name"] = os.getenv("DB_APPLICATION_NAME", "voice-rooms")
    config["options"] = f"-c search_path={SCHEMA},public"

    sslmode = os.getenv("DB_SSLMODE")
    if sslmode:
        config["sslmode"] = sslmode

    logger.debug(
        "Using %s database: %s:%s/%s (schema %s)",
        "LOCAL" if is_local_db() else "PRODUCTION",
        config["host"],
        config["port"],
        config["database"],
        SCHEMA,
    )
    return config


def validate_db_config() -> tuple[bool, str]:
    """
    Check that the active target has host, database, user and password.

    Returns:
        Tuple of (is_valid, error_message)
    """
    config = _connection_target()
    missing = [f"{_env_prefix()}{key.upper()}" for key in REQUIRED_KEYS if not config.get(key)]
    if missing:
        return False, f"Database config missing: {', '.join(missing)}"
    return True, ""
