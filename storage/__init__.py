"""
Cloud storage module.

Contains:
- gcs: Google Cloud Storage object store for recording artifacts
"""

from storage.gcs import GCSStorageManager, MAX_SIGNED_URL_TTL_SECONDS

__all__ = [
    "GCSStorageManager",
    "MAX_SIGNED_URL_TTL_SECONDS",
]
