"""
Schema constants for room, participant and recording tables.

The schema name is configurable via the DB_SCHEMA env variable so staging and
production can share one Postgres instance.
"""

import os
from dotenv import load_dotenv

# Load environment variables BEFORE reading DB_SCHEMA
load_dotenv()

SCHEMA = os.getenv("DB_SCHEMA", "voice_rooms")


# =============================================================================
# ROOMS
# =============================================================================

ROOMS_TABLE = "rooms"
ROOMS_FULL = f"{SCHEMA}.{ROOMS_TABLE}"

# Unique index backing per-owner reserved rooms (demo room dedup)
ROOMS_RESERVED_INDEX = "rooms_owner_reserved_key_uniq"


# =============================================================================
# PARTICIPANTS
# =============================================================================

PARTICIPANTS_TABLE = "room_participants"
PARTICIPANTS_FULL = f"{SCHEMA}.{PARTICIPANTS_TABLE}"


# =============================================================================
# RECORDINGS
# =============================================================================

RECORDINGS_TABLE = "recordings"
RECORDINGS_FULL = f"{SCHEMA}.{RECORDINGS_TABLE}"

# Partial unique index: one live (starting/recording) row per participant per room
RECORDINGS_LIVE_INDEX = "recordings_live_participant_uniq"

RECORDING_COLUMNS = (
    "id, room_id, participant_identity, storage_path, egress_id, status, "
    "size_bytes, duration_seconds, error, created_by, created_at, updated_at, ended_at"
)
