from proxyrelay.observability.metrics import (
    ACCEPT_FAILURES,
    ACTIVE_SESSIONS,
    BYTES_TRANSFERRED,
    SESSION_FAILURES,
    SESSIONS,
    SESSIONS_ESTABLISHED,
    generate_metrics,
    get_content_type,
)

__all__ = [
    "SESSIONS",
    "SESSIONS_ESTABLISHED",
    "SESSION_FAILURES",
    "ACCEPT_FAILURES",
    "BYTES_TRANSFERRED",
    "ACTIVE_SESSIONS",
    "generate_metrics",
    "get_content_type",
]
