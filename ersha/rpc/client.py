"""Client side of the dispatcher RPC protocol."""

from __future__ import annotations

import argparse
import asyncio
import logging
from typing import TypeVar

from ersha.models import (
    BatchUploadRequest,
    BatchUploadResponse,
    DispatcherId,
    H3Cell,
    HelloRequest,
    HelloResponse,
)
from ersha.rpc.connection import RpcConnection, RpcError
from ersha.rpc.message import Ping, Pong, WireError, WireMessage

logger = logging.getLogger(__name__)

DEFAULT_TIMEOUT = 5.0
DEFAULT_BUFFER = 1024
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 19080

T = TypeVar("T")


class ClientError(Exception):
    """A request failed; RPC failures are chained as the cause."""


class UnexpectedResponse(ClientError):
    """The server answered with a message of the wrong type."""


class ErrorResponse(ClientError):
    """The server answered with an error message."""

    def __init__(self, error: WireError) -> None:
        super().__init__(f"error response: {error!r}")
        self.error = error


class Client:
    """Sends requests over one connection and waits for their replies."""

    def __init__(
        self,
        reader,
        writer,
        buffer: int = DEFAULT_BUFFER,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> None:
        if timeout <= 0:
            raise ValueError("timeout must be positive")
        self._rpc = RpcConnection(reader, writer, buffer)
        self.timeout = timeout

    @classmethod
    async def connect(
        cls,
        host: str,
        port: int,
        buffer: int = DEFAULT_BUFFER,
        timeout: float = DEFAULT_TIMEOUT,
    ) -> Client:
        """Open a TCP connection and wrap it in a client."""
        reader, writer = await asyncio.open_connection(host, port)
        return cls(reader, writer, buffer, timeout)

    async def __aenter__(self) -> Client:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _call(self, payload: WireMessage, expected: type[T]) -> T:
        try:
            response = await self._rpc.call(payload, self.timeout)
        except RpcError as exc:
            raise ClientError(f"rpc error: {exc}") from exc
        result = response.payload
        if isinstance(result, expected):
            return result
        if isinstance(result, WireError):
            raise ErrorResponse(result)
        raise UnexpectedResponse("unexpected response type")

    async def ping(self) -> None:
        """Check that the server is alive."""
        await self._call(Ping(), Pong)

    async def hello(self, request: HelloRequest) -> HelloResponse:
        """Introduce this dispatcher to the server."""
        return await self._call(request, HelloResponse)

    async def batch_upload(self, request: BatchUploadRequest) -> BatchUploadResponse:
        """Upload a batch of readings and statuses."""
        return await self._call(request, BatchUploadResponse)

    async def close(self) -> None:
        """Close the underlying connection."""
        await self._rpc.close()


async def _run(host: str, port: int) -> int:
    address = f"{host}:{port}"
    logger.info("connecting to server at %s", address)
    try:
        client = await Client.connect(host, port)
    except OSError as exc:
        logger.error("failed to connect to server: %s", exc)
        return 1
    logger.info("connected to server")

    async with client:
        logger.info("sending ping...")
        try:
            await client.ping()
        except ClientError as exc:
            logger.error("ping failed: %s", exc)
            return 1
        logger.info("ping successful!")

        logger.info("sending hello request...")
        request = HelloRequest(DispatcherId.new(), H3Cell(0x8A2A1072B59FFFF))
        try:
            response = await client.hello(request)
        except ClientError as exc:
            logger.error("hello request failed: %s", exc)
            return 1
        logger.info("hello response received: dispatcher_id = %s", response.dispatcher_id)

    logger.info("client operations completed successfully")
    return 0


def main(argv=None) -> int:
    """Ping a server and introduce a freshly made dispatcher to it."""
    parser = argparse.ArgumentParser(description="Talk to a dispatcher RPC server.")
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    return asyncio.run(_run(args.host, args.port))