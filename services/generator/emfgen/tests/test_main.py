import asyncio
import logging
import signal

import pytest

from emfgen.emf import TransportMetricsLogger
from emfgen.emitter import BatchEmitter, EmitterState
from emfgen.main import configure_graylog, handle_signal, serve


class SlowSink:
    def __init__(self, delay):
        self.delay = delay
        self.accepted = 0
        self.closed = False

    async def accept(self, line):
        await asyncio.sleep(self.delay)
        self.accepted += 1

    async def close(self):
        self.closed = True


@pytest.mark.asyncio
async def test_serve_bounded_run_closes_sink():
    sink = SlowSink(0)
    emitter = BatchEmitter(lambda: TransportMetricsLogger(sink), batch_size=3, interval_ms=30, max_runtime_ms=75)

    run = await asyncio.wait_for(serve(emitter, sink), timeout=2.0)

    assert run.total_emitted == 6
    assert sink.accepted == 6
    assert sink.closed


@pytest.mark.asyncio
async def test_signal_drains_in_flight_batch():
    sink = SlowSink(0.1)
    emitter = BatchEmitter(lambda: TransportMetricsLogger(sink), batch_size=2, interval_ms=20)
    asyncio.get_running_loop().call_later(0.03, handle_signal, emitter, signal.SIGTERM)

    run = await asyncio.wait_for(serve(emitter, sink, grace_ms=1000), timeout=2.0)

    assert emitter.state == EmitterState.STOPPED
    assert not emitter.in_flight
    assert run.ticks >= 1
    assert run.total_emitted == run.ticks * 2
    assert sink.closed


@pytest.mark.asyncio
async def test_sink_closed_when_run_fails():
    sink = SlowSink(0)
    emitter = BatchEmitter(lambda: TransportMetricsLogger(sink), batch_size=1, interval_ms=10, max_runtime_ms=0)
    await emitter.run()

    with pytest.raises(RuntimeError):
        await serve(emitter, sink)
    assert sink.closed


def test_graylog_disabled_without_host():
    assert configure_graylog(None, 12201) is None


def test_graylog_handler_attached():
    handler = configure_graylog("127.0.0.1", 12201)
    try:
        assert handler in logging.getLogger().handlers
    finally:
        logging.getLogger().removeHandler(handler)
