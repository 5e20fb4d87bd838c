"""
EMF Traffic Generator

Fabricates random e-commerce events (orders, payments, inventory changes, user
sessions) and emits them as CloudWatch Embedded Metric Format documents, in
batches on a fixed interval, for a bounded or unbounded duration. Meant to push
realistic-shaped traffic through a metrics pipeline.

What it does
------------
- Every INTERVAL_MS fires BATCH_SIZE concurrent emission attempts.
- Each attempt samples one event, writes it into an aws-embedded-metrics logger
  and flushes it to the configured sink (stdout, tcp or http). Failed flushes are logged and counted,
  never fatal.
- Stops after MAX_RUNTIME_MS, or on SIGINT / SIGTERM (in-flight batches get up
  to SHUTDOWN_GRACE_MS to finish).

Environment variables
---------------------
- BATCH_SIZE (int): attempts per tick, default 1000.
- INTERVAL_MS (int): tick period, default 1000.
- MAX_RUNTIME_MS (int): total run bound, default 60000. 0 runs until signaled.
- EMF_NAMESPACE (str): metric namespace, default "EcommerceMetrics".
- EMF_SINK (str): stdout | tcp | http, default "stdout".
- EMF_ENDPOINT (str): host:port (tcp) or URL (http), default "127.0.0.1:25888".
- EMF_SEND_TIMEOUT_SEC (float): per-document tcp/http send budget, default 5.0.
- ALLOW_OVERLAP (bool): fire ticks while a batch is in flight, default true.
- SHUTDOWN_GRACE_MS (int): drain budget on signal or time bound, default 5000.
- METRICS_PORT (int): Prometheus port, default 0 (disabled).
- GRAYLOG_HOST / GRAYLOG_PORT: ship logs over GELF UDP when set.

Malformed numeric values fall back to their defaults with a warning.
"""

import asyncio
import logging
import signal
import sys
from typing import Optional

from graypy import GELFUDPHandler
from prometheus_client import start_http_server

from .constants import (
    BATCH_SIZE,
    INTERVAL_MS,
    MAX_RUNTIME_MS,
    EMF_NAMESPACE,
    EMF_SINK,
    EMF_ENDPOINT,
    EMF_SEND_TIMEOUT_SEC,
    ALLOW_OVERLAP,
    SHUTDOWN_GRACE_MS,
    METRICS_PORT,
    GRAYLOG_HOST,
    GRAYLOG_PORT,
)
from .emf import configure, logger_factory
from .emitter import BatchEmitter, BatchRun
from .sinks import create_sink

logger = logging.getLogger(__name__)


def configure_graylog(host: Optional[str], port: int) -> Optional[GELFUDPHandler]:
    if not host:
        return None
    handler = GELFUDPHandler(host, port)
    logging.getLogger().addHandler(handler)
    logger.info("Shipping logs to Graylog at %s:%d", host, port)
    return handler


def handle_signal(emitter: BatchEmitter, sig: signal.Signals) -> None:
    logger.info("Received %s. Shutting down...", sig.name)
    emitter.stop()


def install_signal_handlers(emitter: BatchEmitter) -> None:
    loop = asyncio.get_running_loop()
    for sig in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(sig, handle_signal, emitter, sig)


async def serve(emitter: BatchEmitter, sink=None, grace_ms: int = SHUTDOWN_GRACE_MS) -> BatchRun:
    """Run the emitter to completion, drain on early stop, always close the sink."""
    try:
        run_state = await emitter.run()
        if emitter.in_flight:
            pending = await emitter.drain(grace_ms / 1000.0)
            if pending:
                logger.warning("Exiting with %d batch(es) not drained", pending)
        return run_state
    finally:
        if sink is not None:
            await sink.close()


async def amain() -> BatchRun:
    config = configure(EMF_NAMESPACE, agent_endpoint=EMF_ENDPOINT if EMF_SINK == "tcp" else None)
    endpoint = config.agent_endpoint if EMF_SINK == "tcp" else EMF_ENDPOINT
    sink = create_sink(EMF_SINK, endpoint, EMF_SEND_TIMEOUT_SEC)
    emitter = BatchEmitter(
        logger_factory(sink),
        batch_size=BATCH_SIZE,
        interval_ms=INTERVAL_MS,
        max_runtime_ms=MAX_RUNTIME_MS,
        namespace=EMF_NAMESPACE,
        allow_overlap=ALLOW_OVERLAP,
        drain_timeout_ms=SHUTDOWN_GRACE_MS,
    )
    install_signal_handlers(emitter)
    logger.info("Sink: %s %s", EMF_SINK, endpoint if sink is not None else "")
    return await serve(emitter, sink)


def main() -> None:
    configure_graylog(GRAYLOG_HOST, GRAYLOG_PORT)
    if METRICS_PORT:
        start_http_server(METRICS_PORT)
        logger.info("Prometheus metrics on :%d", METRICS_PORT)
    try:
        run_state = asyncio.run(amain())
    except Exception:
        logger.exception("Fatal error in main execution")
        sys.exit(1)
    logger.info("Done. Total emitted: %d", run_state.total_emitted)


if __name__ == "__main__":
    main()
