import os
import logging
from typing import Optional

logger = logging.getLogger(__name__)


def parse_int(name: str, raw: Optional[str], default: int) -> int:
    """
    Parse an integer setting, falling back to the default on malformed input.

    E.g., parse_int("BATCH_SIZE", "abc", 1000) -> 1000 (and a warning is logged)
    """
    if raw is None or raw.strip() == "":
        return default
    try:
        return int(raw.strip())
    except ValueError:
        logger.warning("Malformed %s=%r, using default %s", name, raw, default)
        return default


def parse_float(name: str, raw: Optional[str], default: float) -> float:
    if raw is None or raw.strip() == "":
        return default
    try:
        return float(raw.strip())
    except ValueError:
        logger.warning("Malformed %s=%r, using default %s", name, raw, default)
        return default


def parse_bool(name: str, raw: Optional[str], default: bool) -> bool:
    if raw is None or raw.strip() == "":
        return default
    value = raw.strip().lower()
    if value in ("1", "true", "yes", "on"):
        return True
    if value in ("0", "false", "no", "off"):
        return False
    logger.warning("Malformed %s=%r, using default %s", name, raw, default)
    return default


def parse_runtime_ms(raw: Optional[str], default: int) -> Optional[int]:
    """MAX_RUNTIME_MS of 0 (or below) means no bound, like an unset value."""
    value = parse_int("MAX_RUNTIME_MS", raw, default)
    return value if value > 0 else None


# Attempts per tick
BATCH_SIZE: int = parse_int("BATCH_SIZE", os.environ.get("BATCH_SIZE"), 1000)

# Tick period
INTERVAL_MS: int = parse_int("INTERVAL_MS", os.environ.get("INTERVAL_MS"), 1000)

# Total run bound, None runs until a signal arrives
MAX_RUNTIME_MS: Optional[int] = parse_runtime_ms(os.environ.get("MAX_RUNTIME_MS"), 60000)

EMF_NAMESPACE: str = os.environ.get("EMF_NAMESPACE", "EcommerceMetrics")

# Sink kind is one of stdout, tcp, http
EMF_SINK: str = os.environ.get("EMF_SINK", "stdout").strip().lower()

# host:port (or tcp://host:port) of the CloudWatch agent for the tcp sink, a URL
# for the http sink
EMF_ENDPOINT: str = os.environ.get("EMF_ENDPOINT", "127.0.0.1:25888")

# Per-document budget for a tcp or http send; past it the attempt fails
EMF_SEND_TIMEOUT_SEC: float = parse_float(
    "EMF_SEND_TIMEOUT_SEC", os.environ.get("EMF_SEND_TIMEOUT_SEC"), 5.0
)

# Fire ticks even while the previous batch is still in flight
ALLOW_OVERLAP: bool = parse_bool("ALLOW_OVERLAP", os.environ.get("ALLOW_OVERLAP"), True)

# How long shutdown (signal or time bound) waits for in-flight batches
SHUTDOWN_GRACE_MS: int = parse_int(
    "SHUTDOWN_GRACE_MS", os.environ.get("SHUTDOWN_GRACE_MS"), 5000
)

# Prometheus exposition port, 0 disables it
METRICS_PORT: int = parse_int("METRICS_PORT", os.environ.get("METRICS_PORT"), 0)

# Optional GELF log shipping
GRAYLOG_HOST: Optional[str] = os.environ.get("GRAYLOG_HOST") or None
GRAYLOG_PORT: int = parse_int("GRAYLOG_PORT", os.environ.get("GRAYLOG_PORT"), 12201)


__all__ = [
    "parse_int",
    "parse_float",
    "parse_bool",
    "parse_runtime_ms",
    "BATCH_SIZE",
    "INTERVAL_MS",
    "MAX_RUNTIME_MS",
    "EMF_NAMESPACE",
    "EMF_SINK",
    "EMF_ENDPOINT",
    "EMF_SEND_TIMEOUT_SEC",
    "ALLOW_OVERLAP",
    "SHUTDOWN_GRACE_MS",
    "METRICS_PORT",
    "GRAYLOG_HOST",
    "GRAYLOG_PORT",
]
