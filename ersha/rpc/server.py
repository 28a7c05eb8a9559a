"""Server side of the dispatcher RPC protocol."""

from __future__ import annotations

import argparse
import asyncio
import inspect
import logging
from contextlib import suppress
from typing import Any, Awaitable, Callable, Optional, Union

from ersha.models import (
    BatchUploadRequest,
    BatchUploadResponse,
    HelloRequest,
    HelloResponse,
)
from ersha.rpc.connection import RpcConnection, RpcError
from ersha.rpc.message import MessageId, Ping, Pong, WireError, WireMessage

logger = logging.getLogger(__name__)

DEFAULT_BUFFER = 1024
DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 19080

PingHandler = Callable[[MessageId, RpcConnection], Union[None, Awaitable[None]]]
HelloHandler = Callable[
    [HelloRequest, MessageId, RpcConnection], Union[HelloResponse, Awaitable[HelloResponse]]
]
BatchUploadHandler = Callable[
    [BatchUploadRequest, MessageId, RpcConnection],
    Union[BatchUploadResponse, Awaitable[BatchUploadResponse]],
]


async def _resolve(result: Any) -> Any:
    if inspect.isawaitable(result):
        return await result
    return result


class Server:
    """Accepts connections and answers requests with registered handlers.

    Handlers may be plain functions or coroutine functions.  Pings are always
    answered with a pong; hello and batch-upload requests are answered only
    when a handler for them is registered.
    """

    def __init__(self, buffer_size: int = DEFAULT_BUFFER) -> None:
        if buffer_size < 1:
            raise ValueError("buffer_size must be at least 1")
        self.buffer_size = buffer_size
        self._on_ping: Optional[PingHandler] = None
        self._on_hello: Optional[HelloHandler] = None
        self._on_batch_upload: Optional[BatchUploadHandler] = None

    def on_ping(self, handler: PingHandler) -> Server:
        """Register a handler called as ``handler(msg_id, rpc)`` before each pong."""
        self._on_ping = handler
        return self

    def on_hello(self, handler: HelloHandler) -> Server:
        """Register a handler called as ``handler(request, msg_id, rpc)``."""
        self._on_hello = handler
        return self

    def on_batch_upload(self, handler: BatchUploadHandler) -> Server:
        """Register a handler called as ``handler(request, msg_id, rpc)``."""
        self._on_batch_upload = handler
        return self

    async def _reply(self, rpc: RpcConnection, msg_id: MessageId, payload: WireMessage) -> None:
        with suppress(RpcError):
            await rpc.reply(msg_id, payload)

    async def _dispatch(self, rpc: RpcConnection, msg_id: MessageId, payload: WireMessage) -> None:
        match payload:
            case Ping():
                if self._on_ping is not None:
                    await _resolve(self._on_ping(msg_id, rpc))
                await self._reply(rpc, msg_id, Pong())
            case HelloRequest():
                if self._on_hello is None:
                    logger.warning("received Hello but no handler registered")
                    return
                response = await _resolve(self._on_hello(payload, msg_id, rpc))
                await self._reply(rpc, msg_id, response)
            case BatchUploadRequest():
                if self._on_batch_upload is None:
                    logger.warning("received BatchUploadRequest but no handler registered")
                    return
                response = await _resolve(self._on_batch_upload(payload, msg_id, rpc))
                await self._reply(rpc, msg_id, response)
            case Pong():
                logger.debug("received Pong (unexpected on server)")
            case HelloResponse():
                logger.debug("received HelloResponse (unexpected on server): %r", payload)
            case BatchUploadResponse():
                logger.debug("received BatchUploadResponse (unexpected on server): %r", payload)
            case WireError():
                logger.warning("received error: %r", payload)

    async def handle_connection(self, reader, writer) -> None:
        """Serve one connection until the peer closes it."""
        rpc = RpcConnection(reader, writer, self.buffer_size)
        try:
            while True:
                envelope = await rpc.recv()
                if envelope is None:
                    logger.debug("connection closed")
                    break
                await self._dispatch(rpc, envelope.msg_id, envelope.payload)
        finally:
            await rpc.close()

    async def start(self, host: str, port: int) -> asyncio.AbstractServer:
        """Bind and start accepting connections; return the listening server."""
        return await asyncio.start_server(self.handle_connection, host, port)

    async def serve(self, host: str, port: int) -> None:
        """Bind and accept connections until cancelled."""
        listener = await self.start(host, port)
        logger.info("server listening on %s:%s", host, port)
        async with listener:
            await listener.serve_forever()


def _log_ping(msg_id: MessageId, rpc: RpcConnection) -> None:
    logger.info("received ping, responding with pong")


def _log_hello(request: HelloRequest, msg_id: MessageId, rpc: RpcConnection) -> HelloResponse:
    logger.info(
        "received hello request from dispatcher %s at location %r",
        request.dispatcher_id,
        request.location,
    )
    return HelloResponse(request.dispatcher_id)


def _log_batch(
    request: BatchUploadRequest, msg_id: MessageId, rpc: RpcConnection
) -> BatchUploadResponse:
    logger.info(
        "received batch upload request: batch_id = %s, dispatcher_id = %s, "
        "readings = %d, statuses = %d",
        request.id,
        request.dispatcher_id,
        len(request.readings),
        len(request.statuses),
    )
    return BatchUploadResponse(request.id)


def main(argv=None) -> int:
    """Run a server that logs and acknowledges every request."""
    parser = argparse.ArgumentParser(description="Run a dispatcher RPC server.")
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    args = parser.parse_args(argv)
    logging.basicConfig(level=logging.INFO, format="%(asctime)s %(levelname)s %(name)s: %(message)s")

    server = Server().on_ping(_log_ping).on_hello(_log_hello).on_batch_upload(_log_batch)
    logger.info("starting server on %s:%s", args.host, args.port)
    try:
        asyncio.run(server.serve(args.host, args.port))
    except OSError as exc:
        logger.error("failed to bind to %s:%s: %s", args.host, args.port, exc)
        return 1
    except KeyboardInterrupt:
        logger.info("server stopped")
    return 0