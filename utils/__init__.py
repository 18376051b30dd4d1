"""
Shared utilities module.

Contains:
- logger_config: Non-blocking logging configuration
- errors: Orchestrator error taxonomy
- identity: CallerContext and identity token decoding
"""

from utils.logger_config import (
    configure_non_blocking_logging,
    get_log_listener,
    stop_logging,
    is_logging_configured,
    DEFAULT_LOG_FORMAT,
)

from utils.errors import (
    OrchestratorError,
    UpstreamUnavailable,
)

from utils.identity import (
    CallerContext,
    decode_identity_token,
)

__all__ = [
    # Logger
    "configure_non_blocking_logging",
    "get_log_listener",
    "stop_logging",
    "is_logging_configured",
    "DEFAULT_LOG_FORMAT",
    # Errors
    "OrchestratorError",
    "UpstreamUnavailable",
    # Identity
    "CallerContext",
    "decode_identity_token",
]
