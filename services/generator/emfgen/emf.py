"""
EMF loggers on top of aws-embedded-metrics

The library owns the logger (namespace, dimensions, metrics, properties,
timestamp), its validation and the EMF serialization. Two flush paths:

- stdout: the library's own flush through the "Local" environment, one JSON
  line per document on stdout.
- transport: TransportMetricsLogger serializes with the library's
  LogSerializer and awaits an async transport (sinks.TcpSink / HttpSink), so a
  slow or stalled backend is bounded per attempt instead of blocking the
  event loop inside the library's synchronous socket sink.
"""

from __future__ import annotations

import logging
from typing import Callable, Optional

from aws_embedded_metrics.config import get_config
from aws_embedded_metrics.environment.environment_detector import resolve_environment
from aws_embedded_metrics.logger.metrics_context import MetricsContext
from aws_embedded_metrics.logger.metrics_logger import MetricsLogger
from aws_embedded_metrics.logger.metrics_logger_factory import create_metrics_logger
from aws_embedded_metrics.serializers.log_serializer import LogSerializer

logger = logging.getLogger(__name__)

LOCAL_ENVIRONMENT = "Local"


def configure(namespace: str, agent_endpoint: Optional[str] = None, environment: str = LOCAL_ENVIRONMENT):
    """Point the library's global config at this process' settings."""
    config = get_config()
    config.namespace = namespace
    config.environment = environment
    if agent_endpoint:
        config.agent_endpoint = agent_endpoint
    logger.debug(
        "EMF config: namespace=%s environment=%s agent_endpoint=%s",
        config.namespace,
        config.environment,
        config.agent_endpoint,
    )
    return config


class TransportMetricsLogger(MetricsLogger):
    """A library MetricsLogger whose flush awaits an async transport."""

    def __init__(self, transport, context: Optional[MetricsContext] = None) -> None:
        super().__init__(resolve_environment, context or MetricsContext.empty())
        self.transport = transport
        self.line_serializer = LogSerializer()

    async def flush(self) -> None:
        for line in self.line_serializer.serialize(self.context):
            if line:
                await self.transport.accept(line)


def logger_factory(transport=None) -> Callable[[], MetricsLogger]:
    """Per-attempt logger constructor: the library's stdout path when transport is None."""
    if transport is None:
        return create_metrics_logger
    return lambda: TransportMetricsLogger(transport)
