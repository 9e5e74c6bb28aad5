from prometheus_client import CONTENT_TYPE_LATEST, Counter, Gauge, generate_latest

SESSIONS = Counter(
    "proxyrelay_sessions_total",
    "Total accepted client sessions",
)

SESSIONS_ESTABLISHED = Counter(
    "proxyrelay_sessions_established_total",
    "Sessions that reached the relay phase",
    ["intent"],  # tunnel/passthrough
)

SESSION_FAILURES = Counter(
    "proxyrelay_session_failures_total",
    "Sessions terminated by an error",
    ["reason"],
)

ACCEPT_FAILURES = Counter(
    "proxyrelay_accept_failures_total",
    "Inbound connections dropped before a session was created",
)

BYTES_TRANSFERRED = Counter(
    "proxyrelay_bytes_total",
    "Bytes relayed between client and destination",
    ["direction"],  # upstream: client -> destination, downstream: destination -> client
)

ACTIVE_SESSIONS = Gauge(
    "proxyrelay_active_sessions",
    "Sessions currently held in the registry",
)


def generate_metrics() -> bytes:
    return generate_latest()


def get_content_type() -> str:
    return CONTENT_TYPE_LATEST
