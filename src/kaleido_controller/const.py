import os

from kaleido_controller import __version__

__all__ = [
    "ACK_REPLY",
    "DEFAULT_MAX_BUFFER_BYTES",
    "DEFAULT_PORT",
    "DEFAULT_RESPONSE_TIMEOUT",
    "HOST_SESSION_SUFFIX",
    "KALEIDO_DEBUG",
    "KALEIDO_ENABLE_METRICS",
    "KALEIDO_HOST",
    "KALEIDO_LOG_FORMAT",
    "KALEIDO_LOG_HUMAN_OUTPUT",
    "KALEIDO_LOG_JSON_FILE",
    "KALEIDO_MAX_BUFFER_BYTES",
    "KALEIDO_METRICS_PORT",
    "KALEIDO_PORT",
    "KALEIDO_RESPONSE_TIMEOUT",
    "KALEIDO_VERSION",
    "NACK_REPLY",
    "UNKNOWN_LAYOUT",
    "YES_ANSWER",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", "on")

KALEIDO_VERSION: str = __version__

# Wire protocol
DEFAULT_PORT: int = 13000
HOST_SESSION_SUFFIX: str = "_0_4_0_0"
ACK_REPLY: str = "<ack/>"
NACK_REPLY: str = "<nack/>"
UNKNOWN_LAYOUT: str = "unknown"
DEFAULT_RESPONSE_TIMEOUT: float = 5.0
DEFAULT_MAX_BUFFER_BYTES: int = 64 * 1024


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError:
        return default


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name, "")
    if not raw:
        return default
    try:
        return float(raw)
    except ValueError:
        return default


KALEIDO_HOST: str | None = os.environ.get("KALEIDO_HOST") or None
KALEIDO_PORT: int = _env_int("KALEIDO_PORT", DEFAULT_PORT)
KALEIDO_DEBUG: bool = os.environ.get("KALEIDO_DEBUG", "0").casefold() in YES_ANSWER
KALEIDO_RESPONSE_TIMEOUT: float = _env_float("KALEIDO_RESPONSE_TIMEOUT", DEFAULT_RESPONSE_TIMEOUT)
KALEIDO_MAX_BUFFER_BYTES: int = _env_int("KALEIDO_MAX_BUFFER_BYTES", DEFAULT_MAX_BUFFER_BYTES)

# Logging
KALEIDO_LOG_FORMAT: str = os.environ.get("KALEIDO_LOG_FORMAT", "human").casefold()
KALEIDO_LOG_JSON_FILE: str | None = os.environ.get("KALEIDO_LOG_JSON_FILE") or None
KALEIDO_LOG_HUMAN_OUTPUT: str = os.environ.get("KALEIDO_LOG_HUMAN_OUTPUT", "stdout")

# Prometheus exporter
KALEIDO_METRICS_PORT: int = _env_int("KALEIDO_METRICS_PORT", 9400)
KALEIDO_ENABLE_METRICS: bool = os.environ.get("KALEIDO_ENABLE_METRICS", "0").casefold() in YES_ANSWER
