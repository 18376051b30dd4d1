"""
Object paths for participant recordings.

A recording for participant P in room R is always written to
``{R}/{P}.{ext}``, so a later recording of the same participant overwrites
the earlier object.
"""

import os
import re

from rooms.registry import parse_room_id
from utils.errors import InvalidReference

DEFAULT_FILE_EXTENSION = os.getenv("RECORDING_FILE_EXTENSION", "ogg")

IDENTITY_PATTERN = re.compile(r"^[A-Za-z0-9_@+\-][A-Za-z0-9_.@+\-]{0,127}$")
EXTENSION_PATTERN = re.compile(r"^[a-z0-9]{1,8}$")


def validate_identity(identity: str) -> str:
    if not isinstance(identity, str) or not IDENTITY_PATTERN.match(identity) or ".." in identity:
        raise InvalidReference(f"Invalid participant identity: {identity!r}", {"identity": identity})
    return identity


def build_storage_path(room_id: str, identity: str, extension: str = DEFAULT_FILE_EXTENSION) -> str:
    return f"{parse_room_id(room_id)}/{validate_identity(identity)}.{extension}"


def parse_storage_path(path: str) -> tuple[str, str, str]:
    """
    Split ``{room_id}/{identity}.{ext}`` into its parts.

    Only canonical, already-normalized paths are accepted: no leading slash,
    no extra segments, no traversal.

    Raises:
        InvalidReference: the path does not have that shape
    """
    if not isinstance(path, str) or not path or "\\" in path:
        raise InvalidReference("Invalid recording path", {"path": path})

    segments = path.split("/")
    if len(segments) != 2:
        raise InvalidReference("Recording path must be {room_id}/{identity}.{ext}", {"path": path})

    room_segment, filename = segments
    try:
        room_id = parse_room_id(room_segment)
    except InvalidReference as exc:
        raise InvalidReference("Invalid room id in recording path", {"path": path}) from exc
    if room_id != room_segment:
        raise InvalidReference("Room id in recording path must be lowercase canonical", {"path": path})

    identity, dot, extension = filename.rpartition(".")
    if not dot or not EXTENSION_PATTERN.match(extension):
        raise InvalidReference("Invalid recording file extension", {"path": path})
    try:
        validate_identity(identity)
    except InvalidReference as exc:
        raise InvalidReference("Invalid participant identity in recording path", {"path": path}) from exc

    return room_id, identity, extension


__all__ = [
    "DEFAULT_FILE_EXTENSION",
    "build_storage_path",
    "parse_storage_path",
    "validate_identity",
]
