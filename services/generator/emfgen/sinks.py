"""
EMF transports

Each transport takes one serialized EMF document per accept() call and ships
it to a backend. Errors are raised to the caller; the emitter isolates them
per attempt. stdout needs no transport: the aws-embedded-metrics "Local"
environment prints the documents itself.

- TcpSink:  newline-delimited JSON over one TCP connection, the framing the
            CloudWatch agent or a Fluent Bit `tcp` input expects. Connect,
            lock wait and write are bounded by `timeout` per document.
- HttpSink: one JSON POST per document via httpx, e.g. to a Fluent Bit
            `http` input.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import httpx

logger = logging.getLogger(__name__)


class TcpSink:
    def __init__(self, host: str, port: int, timeout: float = 5.0) -> None:
        self.host = host
        self.port = port
        self.timeout = timeout
        self.writer: Optional[asyncio.StreamWriter] = None
        self.lock = asyncio.Lock()

    async def connect(self) -> asyncio.StreamWriter:
        _, writer = await asyncio.open_connection(self.host, self.port)
        logger.info("Connected to %s:%d", self.host, self.port)
        return writer

    async def accept(self, line: str) -> None:
        # a peer that accepts but never reads must not park the attempt forever
        await asyncio.wait_for(self.send(line), self.timeout)

    async def send(self, line: str) -> None:
        async with self.lock:
            try:
                if self.writer is None:
                    self.writer = await self.connect()
                self.writer.write(line.encode("utf-8") + b"\n")
                await self.writer.drain()
            except BaseException:
                # timeout, cancellation or a broken pipe: next send() reconnects
                self.reset()
                raise

    def reset(self) -> None:
        if self.writer is not None:
            # drop unsent bytes, a stalled peer would hold a graceful close open
            self.writer.transport.abort()
            self.writer = None

    async def close(self) -> None:
        async with self.lock:
            if self.writer is None:
                return
            self.writer.close()
            try:
                await asyncio.wait_for(self.writer.wait_closed(), self.timeout)
            except (ConnectionError, OSError, asyncio.TimeoutError) as e:
                logger.debug("Error closing %s:%d: %r", self.host, self.port, e)
                self.writer.transport.abort()
            self.writer = None


class HttpSink:
    def __init__(
        self,
        url: str,
        timeout: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.url = url
        self.client = client or httpx.AsyncClient(timeout=timeout)

    async def accept(self, line: str) -> None:
        response = await self.client.post(
            self.url,
            content=line,
            headers={"Content-Type": "application/json"},
        )
        response.raise_for_status()

    async def close(self) -> None:
        await self.client.aclose()


def parse_host_port(endpoint: str):
    """
    Parse 'host:port' (an optional tcp:// prefix is tolerated).

    E.g., "tcp://127.0.0.1:25888" -> ("127.0.0.1", 25888)
    """
    if endpoint.startswith("tcp://"):
        endpoint = endpoint[len("tcp://"):]
    if ":" not in endpoint:
        raise ValueError(f"Invalid endpoint, : not present in {endpoint}")
    host, port = endpoint.rsplit(":", 1)
    return host, int(port)


def create_sink(kind: str, endpoint: str = "", timeout: float = 5.0):
    """Build the transport for `kind`; None means the library prints to stdout."""
    if kind == "stdout":
        return None
    if kind == "tcp":
        host, port = parse_host_port(endpoint)
        return TcpSink(host, port, timeout=timeout)
    if kind == "http":
        if not endpoint.startswith(("http://", "https://")):
            raise ValueError(f"http sink needs a URL endpoint, got {endpoint!r}")
        return HttpSink(endpoint, timeout=timeout)
    raise ValueError(f"Unknown sink type: {kind}")
