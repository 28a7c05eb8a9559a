"""Request/response messaging over one stream connection."""

from __future__ import annotations

import asyncio
import logging
from contextlib import suppress

from ersha.rpc.frame import FrameError, read_frame, write_frame
from ersha.rpc.message import Envelope, MessageId, WireMessage

logger = logging.getLogger(__name__)

_STOP = object()
_EOF = object()
_FLUSH_TIMEOUT = 1.0


class RpcError(Exception):
    """A message could not be sent or answered."""


class ChannelClosed(RpcError):
    """The connection closed before a reply arrived."""


class RpcTimeout(RpcError, TimeoutError):
    """No reply arrived within the allowed time."""


class RpcConnection:
    """Runs background reader and writer tasks over a stream pair.

    Replies are routed to the call waiting for them; every other incoming
    envelope is queued for ``recv``.
    """

    def __init__(self, reader, writer, buffer: int = 1024) -> None:
        if buffer < 1:
            raise ValueError("buffer must be at least 1")
        self._reader = reader
        self._writer = writer
        self._outgoing: asyncio.Queue = asyncio.Queue(maxsize=buffer)
        self._incoming: asyncio.Queue = asyncio.Queue(maxsize=buffer)
        self._pending: dict[MessageId, asyncio.Future] = {}
        self._closed = False
        self._writer_task = asyncio.create_task(self._write_loop())
        self._reader_task = asyncio.create_task(self._read_loop())

    async def __aenter__(self) -> RpcConnection:
        return self

    async def __aexit__(self, *exc_info) -> None:
        await self.close()

    async def _write_loop(self) -> None:
        try:
            while True:
                envelope = await self._outgoing.get()
                if envelope is _STOP:
                    break
                try:
                    await write_frame(self._writer, envelope)
                except FrameError as exc:
                    logger.error("writer error: %s", exc)
                    break
                logger.info("wrote message: %r", envelope)
        finally:
            while not self._outgoing.empty():
                self._outgoing.get_nowait()

    async def _read_loop(self) -> None:
        try:
            while True:
                try:
                    envelope = await read_frame(self._reader)
                except FrameError as exc:
                    logger.error("reader error: %s", exc)
                    break
                logger.info("read message: %r", envelope)

                if envelope.reply_to is not None:
                    waiter = self._pending.pop(envelope.reply_to, None)
                    if waiter is not None:
                        if not waiter.done():
                            waiter.set_result(envelope)
                        continue
                    logger.warning("no waiter found for reply")

                await self._incoming.put(envelope)
        finally:
            self._fail_pending()
            with suppress(asyncio.QueueFull):
                self._incoming.put_nowait(_EOF)

    def _fail_pending(self) -> None:
        pending, self._pending = self._pending, {}
        for waiter in pending.values():
            if not waiter.done():
                waiter.set_exception(ChannelClosed("response channel closed"))

    async def _enqueue(self, envelope: Envelope) -> None:
        if self._closed or self._writer_task.done():
            raise RpcError("send error: connection closed")
        await self._outgoing.put(envelope)

    async def send(self, payload: WireMessage) -> MessageId:
        """Send a message that expects no reply; return its id."""
        msg_id = MessageId.new()
        await self._enqueue(Envelope(msg_id, None, payload))
        return msg_id

    async def recv(self) -> Envelope | None:
        """Return the next incoming non-reply envelope, or None once the stream has ended."""
        if self._incoming.empty() and self._reader_task.done():
            return None
        item = await self._incoming.get()
        if item is _EOF:
            return None
        return item

    async def call(self, payload: WireMessage, timeout: float) -> Envelope:
        """Send a message and wait up to ``timeout`` seconds for its reply."""
        msg_id = MessageId.new()
        waiter = asyncio.get_running_loop().create_future()
        self._pending[msg_id] = waiter
        try:
            await self._enqueue(Envelope(msg_id, None, payload))
        except RpcError:
            self._pending.pop(msg_id, None)
            raise
        try:
            return await asyncio.wait_for(waiter, timeout)
        except asyncio.TimeoutError as exc:
            self._pending.pop(msg_id, None)
            raise RpcTimeout(f"timeout: no reply within {timeout}s") from exc

    async def reply(self, request_msg_id: MessageId, payload: WireMessage) -> MessageId:
        """Send a reply to the message with ``request_msg_id``; return the reply's id."""
        msg_id = MessageId.new()
        await self._enqueue(Envelope(msg_id, request_msg_id, payload))
        return msg_id

    async def close(self) -> None:
        """Flush queued messages, stop the background tasks and close the stream."""
        if self._closed:
            return
        self._closed = True
        if not self._writer_task.done():
            with suppress(asyncio.TimeoutError):
                await asyncio.wait_for(self._outgoing.put(_STOP), _FLUSH_TIMEOUT)
            await asyncio.wait({self._writer_task}, timeout=_FLUSH_TIMEOUT)
        tasks = (self._writer_task, self._reader_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._writer.close()
        with suppress(OSError):
            await self._writer.wait_closed()
        self._fail_pending()