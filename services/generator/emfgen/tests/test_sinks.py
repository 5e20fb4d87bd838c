import asyncio
import json

import httpx
import pytest

from emfgen.sinks import HttpSink, TcpSink, create_sink, parse_host_port


@pytest.mark.asyncio
async def test_http_sink_posts_json():
    seen = []

    def handler(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    sink = HttpSink("http://collector:9880/emf", client=client)
    await sink.accept('{"PageViews":3}')
    await sink.close()

    assert len(seen) == 1
    assert seen[0].method == "POST"
    assert str(seen[0].url) == "http://collector:9880/emf"
    assert seen[0].headers["content-type"] == "application/json"
    assert json.loads(seen[0].content) == {"PageViews": 3}


@pytest.mark.asyncio
async def test_http_sink_raises_on_error_status():
    client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(503)))
    sink = HttpSink("http://collector:9880/emf", client=client)
    with pytest.raises(httpx.HTTPStatusError):
        await sink.accept("{}")
    await sink.close()


@pytest.mark.asyncio
async def test_tcp_sink_newline_delimited():
    received = []
    done = asyncio.Event()

    async def handle(reader, writer):
        while len(received) < 2:
            line = await reader.readline()
            if not line:
                break
            received.append(line)
        done.set()
        writer.close()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    sink = TcpSink("127.0.0.1", port)
    try:
        await asyncio.gather(sink.accept('{"a":1}'), sink.accept('{"b":2}'))
        await asyncio.wait_for(done.wait(), timeout=2.0)
    finally:
        await sink.close()
        server.close()
        await server.wait_closed()

    assert sorted(received) == [b'{"a":1}\n', b'{"b":2}\n']


@pytest.mark.asyncio
async def test_tcp_sink_connection_refused_propagates():
    server = await asyncio.start_server(lambda r, w: None, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    server.close()
    await server.wait_closed()

    sink = TcpSink("127.0.0.1", port)
    with pytest.raises(OSError):
        await sink.accept("{}")
    assert sink.writer is None


@pytest.mark.asyncio
async def test_tcp_sink_times_out_on_peer_that_never_reads():
    release = asyncio.Event()

    async def handle(reader, writer):
        # accept, then never read
        await release.wait()
        writer.transport.abort()

    server = await asyncio.start_server(handle, "127.0.0.1", 0)
    port = server.sockets[0].getsockname()[1]
    sink = TcpSink("127.0.0.1", port, timeout=0.2)
    # larger than any loopback socket buffer
    line = "x" * (16 * 1024 * 1024)
    try:
        with pytest.raises(asyncio.TimeoutError):
            await asyncio.wait_for(sink.accept(line), timeout=3.0)
        assert sink.writer is None
        assert not sink.lock.locked()
    finally:
        await sink.close()
        release.set()
        server.close()
        await server.wait_closed()


def test_parse_host_port():
    assert parse_host_port("127.0.0.1:25888") == ("127.0.0.1", 25888)
    assert parse_host_port("tcp://fluent-bit:5170") == ("fluent-bit", 5170)
    with pytest.raises(ValueError):
        parse_host_port("fluent-bit")


def test_create_sink():
    # stdout is printed by the library itself
    assert create_sink("stdout") is None
    tcp = create_sink("tcp", "tcp://cloudwatch-agent:25888", timeout=1.5)
    assert isinstance(tcp, TcpSink)
    assert (tcp.host, tcp.port, tcp.timeout) == ("cloudwatch-agent", 25888, 1.5)
    assert isinstance(create_sink("http", "http://fluent-bit:9880/emf"), HttpSink)


def test_create_sink_rejects_bad_config():
    with pytest.raises(ValueError):
        create_sink("kafka")
    with pytest.raises(ValueError):
        create_sink("http", "fluent-bit:9880")
