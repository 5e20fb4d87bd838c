"""
BatchEmitter

Fixed-interval, bounded-duration batch emission of synthetic EMF events.

Every interval_ms the emitter fires a batch of batch_size emission attempts
concurrently (one attempt = sample an event, write it into a fresh metrics
logger, flush it to the sink) and joins them with a settle-all gather, so one
failing flush never cancels its siblings or the batch.

States
------
- IDLE:     constructed, run() not called yet.
- RUNNING:  ticking. Tick k is due at start + k * interval (the first batch
            fires one interval after start). At each boundary, if
            max_runtime_ms is set and already elapsed, the emitter stops
            without firing.
- STOPPED:  terminal. Reached on the time bound or on stop().

Design notes
-----------
- Overlap: ticks are wall-clock scheduled. With allow_overlap=True (default) a
  tick fires even if earlier batches are still in flight, so a sink slower than
  the interval grows concurrency without bound. With allow_overlap=False such
  a tick is skipped and counted in skipped_ticks.
- Totals: total_emitted grows by exactly batch_size per completed tick, failed
  attempts included. A tick whose join itself raises adds nothing.
- Logging: a failed attempt logs at DEBUG; the per-batch summary carries the
  WARNING so a dead backend does not produce batch_size lines per tick.
- Shutdown: stop() wakes the scheduler immediately. In-flight batches are not
  awaited by run() after stop(); call drain() for that. On the time bound run()
  drains for up to drain_timeout_ms before returning, so the reported total is
  final unless a batch is still stuck past that budget.
- Single event-loop thread: run_state is only mutated from loop callbacks.
"""

from __future__ import annotations

import asyncio
import logging
import random
import time
from collections import deque
from dataclasses import dataclass, field
from enum import Enum
from typing import Callable, Deque, Iterable, List, Optional, Set

from aws_embedded_metrics.logger.metrics_logger import MetricsLogger
from prometheus_client import Counter, Gauge

from .events import sample

logger = logging.getLogger(__name__)

ATTEMPT_SUCCESS = Counter("emfgen_attempt_success_total", "Total successful emission attempts")
ATTEMPT_FAILURE = Counter("emfgen_attempt_failure_total", "Total failed emission attempts")
TICKS_COMPLETED = Counter("emfgen_ticks_completed_total", "Total completed ticks")
TICKS_SKIPPED = Counter("emfgen_ticks_skipped_total", "Ticks skipped while a batch was in flight")
JOIN_FAILURES = Counter("emfgen_join_failures_total", "Batches whose join raised")
IN_FLIGHT = Gauge("emfgen_batches_in_flight", "Batches currently in flight")

RECENT_BATCHES = 100


class EmitterState(str, Enum):
    IDLE = "idle"
    RUNNING = "running"
    STOPPED = "stopped"


@dataclass
class AttemptResult:
    ok: bool
    error: Optional[BaseException] = None


@dataclass
class BatchResult:
    tick: int
    offset_ms: float  # fire time, relative to run start
    attempted: int
    succeeded: int
    failed: int
    duration_ms: float


@dataclass
class BatchRun:
    batch_size: int
    interval_ms: int
    max_runtime_ms: Optional[int]
    start_time: Optional[float] = None
    total_emitted: int = 0
    ticks: int = 0
    skipped_ticks: int = 0
    failed_attempts: int = 0
    join_failures: int = 0
    batches: Deque[BatchResult] = field(default_factory=lambda: deque(maxlen=RECENT_BATCHES))

    @property
    def last_batch(self) -> Optional[BatchResult]:
        return self.batches[-1] if self.batches else None


class BatchEmitter:
    def __init__(
        self,
        logger_factory: Callable[[], MetricsLogger],
        batch_size: int = 1000,
        interval_ms: int = 1000,
        max_runtime_ms: Optional[int] = None,
        *,
        namespace: str = "EcommerceMetrics",
        rng: Optional[random.Random] = None,
        allow_overlap: bool = True,
        drain_timeout_ms: Optional[int] = 5000,
    ) -> None:
        if batch_size < 0:
            raise ValueError("batch_size must be >= 0")
        if interval_ms <= 0:
            raise ValueError("interval_ms must be > 0")
        if max_runtime_ms is not None and max_runtime_ms < 0:
            raise ValueError("max_runtime_ms must be >= 0")
        if drain_timeout_ms is not None and drain_timeout_ms < 0:
            raise ValueError("drain_timeout_ms must be >= 0")

        self.logger_factory = logger_factory
        self.batch_size = batch_size
        self.interval_ms = interval_ms
        self.max_runtime_ms = max_runtime_ms
        self.namespace = namespace
        self.rng = rng or random.Random()
        self.allow_overlap = allow_overlap
        self.drain_timeout_ms = drain_timeout_ms

        self.state: EmitterState = EmitterState.IDLE
        self.run_state = BatchRun(batch_size, interval_ms, max_runtime_ms)
        self.in_flight: Set[asyncio.Task] = set()
        self.stop_event = asyncio.Event()
        self.started_at: float = 0.0
        self.fired: int = 0

    @property
    def total_emitted(self) -> int:
        return self.run_state.total_emitted

    def stop(self) -> None:
        """Stop scheduling ticks. In-flight batches keep running."""
        if self.state != EmitterState.STOPPED:
            logger.info("Stop requested, total emitted so far: %d", self.total_emitted)
        self.stop_event.set()

    async def run(self) -> BatchRun:
        if self.state != EmitterState.IDLE:
            raise RuntimeError(f"emitter already {self.state.value}")
        loop = asyncio.get_running_loop()
        interval_s = self.interval_ms / 1000.0

        self.state = EmitterState.RUNNING
        self.started_at = loop.time()
        self.run_state.start_time = time.time()
        logger.info(
            "Starting EMF emission with batch size: %d, interval: %dms, max runtime: %s",
            self.batch_size,
            self.interval_ms,
            f"{self.max_runtime_ms}ms" if self.max_runtime_ms is not None else "unbounded",
        )

        boundary = 0
        time_bound_hit = False
        while not self.stop_event.is_set():
            boundary += 1
            deadline = self.started_at + boundary * interval_s
            behind = loop.time() - deadline
            if behind >= interval_s:
                # the loop was starved; skip boundaries instead of bursting
                missed = int(behind // interval_s)
                boundary += missed
                deadline += missed * interval_s
                logger.debug("Scheduler fell behind, skipped %d boundaries", missed)

            if await self.wait_for_stop(deadline - loop.time()):
                break

            elapsed_ms = (loop.time() - self.started_at) * 1000
            if self.max_runtime_ms is not None and elapsed_ms >= self.max_runtime_ms:
                time_bound_hit = True
                break
            self.fire(elapsed_ms)

        self.state = EmitterState.STOPPED
        self.stop_event.set()
        if time_bound_hit:
            timeout = self.drain_timeout_ms / 1000.0 if self.drain_timeout_ms is not None else None
            await self.drain(timeout)
        logger.info(
            "Finished emitting. Total emitted: %d over %d ticks (%d failed attempts)",
            self.run_state.total_emitted,
            self.run_state.ticks,
            self.run_state.failed_attempts,
        )
        return self.run_state

    async def wait_for_stop(self, timeout: float) -> bool:
        """Sleep until timeout elapses or stop() is called; True means stopped."""
        if timeout <= 0:
            return self.stop_event.is_set()
        try:
            await asyncio.wait_for(self.stop_event.wait(), timeout)
            return True
        except asyncio.TimeoutError:
            return False

    def fire(self, offset_ms: float) -> None:
        if not self.allow_overlap and self.in_flight:
            self.run_state.skipped_ticks += 1
            TICKS_SKIPPED.inc()
            logger.warning(
                "Skipping tick at %.0fms, %d batch(es) still in flight",
                offset_ms,
                len(self.in_flight),
            )
            return
        self.fired += 1
        task = asyncio.create_task(self.tick(self.fired, offset_ms))
        self.in_flight.add(task)
        IN_FLIGHT.inc()
        task.add_done_callback(self.batch_done)

    def batch_done(self, task: asyncio.Task) -> None:
        self.in_flight.discard(task)
        IN_FLIGHT.dec()

    async def drain(self, timeout: Optional[float] = None) -> int:
        """Wait for in-flight batches; returns how many were still pending."""
        if not self.in_flight:
            return 0
        _, pending = await asyncio.wait(set(self.in_flight), timeout=timeout)
        if pending:
            logger.warning("%d batch(es) still in flight after drain", len(pending))
        return len(pending)

    async def tick(self, tick: int, offset_ms: float) -> Optional[BatchResult]:
        loop = asyncio.get_running_loop()
        t0 = loop.time()
        try:
            results = await self.settle(self.emit_one() for _ in range(self.batch_size))
        except Exception:
            self.run_state.join_failures += 1
            JOIN_FAILURES.inc()
            logger.exception("Batch %d failed to settle, not counted", tick)
            return None

        failed = sum(1 for r in results if not r.ok)
        batch = BatchResult(
            tick=tick,
            offset_ms=offset_ms,
            attempted=len(results),
            succeeded=len(results) - failed,
            failed=failed,
            duration_ms=(loop.time() - t0) * 1000,
        )
        self.run_state.total_emitted += self.batch_size
        self.run_state.ticks += 1
        self.run_state.failed_attempts += failed
        self.run_state.batches.append(batch)
        TICKS_COMPLETED.inc()

        if failed:
            logger.warning("Batch %d: %d of %d attempts failed", tick, failed, batch.attempted)
        logger.info(
            "Emitted batch of %d metrics in %.1fms. Total: %d",
            self.batch_size,
            batch.duration_ms,
            self.run_state.total_emitted,
        )
        return batch

    async def settle(self, attempts: Iterable) -> List[AttemptResult]:
        """Join all attempts; an attempt that raised becomes a failed result."""
        raw = await asyncio.gather(*attempts, return_exceptions=True)
        return [
            r if isinstance(r, AttemptResult) else AttemptResult(ok=False, error=r)
            for r in raw
        ]

    async def emit_one(self) -> AttemptResult:
        try:
            event = sample(self.rng)
            metrics = event.apply_to(self.logger_factory(), self.namespace)
            await metrics.flush()
        except Exception as e:
            ATTEMPT_FAILURE.inc()
            logger.debug("Error emitting metrics: %r", e)
            return AttemptResult(ok=False, error=e)
        ATTEMPT_SUCCESS.inc()
        return AttemptResult(ok=True)

    def snapshot(self) -> dict:
        return {
            "state": self.state.value,
            "batch_size": self.batch_size,
            "interval_ms": self.interval_ms,
            "max_runtime_ms": self.max_runtime_ms,
            "allow_overlap": self.allow_overlap,
            "total_emitted": self.run_state.total_emitted,
            "ticks": self.run_state.ticks,
            "skipped_ticks": self.run_state.skipped_ticks,
            "failed_attempts": self.run_state.failed_attempts,
            "join_failures": self.run_state.join_failures,
            "in_flight": len(self.in_flight),
        }
