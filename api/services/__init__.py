"""
API Services Module.

Contains the orchestrator wiring used by route handlers.
"""

from .orchestrator import (
    Orchestrator,
    build_orchestrator,
    get_orchestrator,
    reset_orchestrator,
)
from .auth import get_caller


__all__ = [
    "Orchestrator",
    "build_orchestrator",
    "get_orchestrator",
    "reset_orchestrator",
    "get_caller",
]
