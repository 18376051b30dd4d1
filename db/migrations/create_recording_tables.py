"""
Database Migration: Create rooms, room_participants and recordings tables

Usage:
    python db/migrations/create_recording_tables.py

Safety:
    - CREATE SCHEMA/TABLE/INDEX IF NOT EXISTS (idempotent)
    - Runs in a single transaction; rolled back on error

Constraints created here are what the orchestrator relies on for mutual
exclusion:
    - rooms_owner_reserved_key_uniq: one reserved room (e.g. demo) per owner
    - room_participants primary key: one membership row per (room, identity)
    - recordings_live_participant_uniq: one starting/recording row per
      (room, participant)
    - recordings_egress_id_uniq: egress ids map to exactly one row
"""

import logging
import sys
from pathlib import Path

# Add project root to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent.parent))

import psycopg2
from dotenv import load_dotenv

from db.db_config import get_db_config, validate_db_config
from db.schema_constants import (
    PARTICIPANTS_FULL,
    RECORDINGS_FULL,
    RECORDINGS_LIVE_INDEX,
    ROOMS_FULL,
    ROOMS_RESERVED_INDEX,
    SCHEMA,
)

load_dotenv()

logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


STATEMENTS = [
    f"CREATE SCHEMA IF NOT EXISTS {SCHEMA}",
    f"""
    CREATE TABLE IF NOT EXISTS {ROOMS_FULL} (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        name VARCHAR(200) NOT NULL,
        owner_id TEXT NOT NULL,
        reserved_key VARCHAR(64),
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW()
    )
    """,
    f"""
    CREATE UNIQUE INDEX IF NOT EXISTS {ROOMS_RESERVED_INDEX}
    ON {ROOMS_FULL} (owner_id, reserved_key)
    WHERE reserved_key IS NOT NULL
    """,
    f"""
    CREATE INDEX IF NOT EXISTS rooms_owner_created_idx
    ON {ROOMS_FULL} (owner_id, created_at DESC)
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {PARTICIPANTS_FULL} (
        room_id UUID NOT NULL REFERENCES {ROOMS_FULL}(id) ON DELETE CASCADE,
        identity TEXT NOT NULL,
        display_name TEXT,
        joined_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
        PRIMARY KEY (room_id, identity)
    )
    """,
    f"""
    CREATE TABLE IF NOT EXISTS {RECORDINGS_FULL} (
        id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
        room_id UUID NOT NULL REFERENCES {ROOMS_FULL}(id) ON DELETE CASCADE,
        participant_identity TEXT NOT NULL,
        storage_path TEXT NOT NULL,
        egress_id TEXT,
        status VARCHAR(16) NOT NULL
            CHECK (status IN ('starting', 'recording', 'completed', 'failed')),
        size_bytes BIGINT,
        duration_seconds DOUBLE PRECISION,
        error TEXT,
        created_by TEXT NOT NULL,
        created_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
        updated_at TIMESTAMP WITH TIME ZONE NOT NULL DEFAULT NOW(),
        ended_at TIMESTAMP WITH TIME ZONE
    )
    """,
    f"""
    CREATE UNIQUE INDEX IF NOT EXISTS {RECORDINGS_LIVE_INDEX}
    ON {RECORDINGS_FULL} (room_id, participant_identity)
    WHERE status IN ('starting', 'recording')
    """,
    f"""
    CREATE UNIQUE INDEX IF NOT EXISTS recordings_egress_id_uniq
    ON {RECORDINGS_FULL} (egress_id)
    WHERE egress_id IS NOT NULL
    """,
    f"""
    CREATE INDEX IF NOT EXISTS recordings_room_created_idx
    ON {RECORDINGS_FULL} (room_id, created_at DESC)
    """,
]


def create_recording_tables() -> bool:
    """Create all tables and indexes. Safe to run multiple times."""
    is_valid, error_message = validate_db_config()
    if not is_valid:
        logger.error("✗ %s", error_message)
        return False

    conn = None
    try:
        conn = psycopg2.connect(**get_db_config())
        with conn.cursor() as cur:
            for statement in STATEMENTS:
                cur.execute(statement)
        conn.commit()
        logger.info("✓ Migration completed in schema %s", SCHEMA)
        logger.info("  Tables: %s, %s, %s", ROOMS_FULL, PARTICIPANTS_FULL, RECORDINGS_FULL)
        return True
    except psycopg2.Error as exc:
        logger.error("✗ Migration failed: %s", exc, exc_info=True)
        if conn:
            conn.rollback()
        return False
    finally:
        if conn:
            conn.close()


if __name__ == "__main__":
    sys.exit(0 if create_recording_tables() else 1)
