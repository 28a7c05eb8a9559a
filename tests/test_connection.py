import asyncio
import socket

import pytest

from ersha.models import DispatcherId, H3Cell, HelloRequest, HelloResponse
from ersha.rpc.connection import ChannelClosed, RpcConnection, RpcError, RpcTimeout
from ersha.rpc.message import MessageId, Ping, Pong


async def _pair(buffer=16):
    left, right = socket.socketpair()
    r1, w1 = await asyncio.open_connection(sock=left)
    r2, w2 = await asyncio.open_connection(sock=right)
    return RpcConnection(r1, w1, buffer), RpcConnection(r2, w2, buffer)


async def _close(*connections):
    for connection in connections:
        await connection.close()


@pytest.mark.asyncio
async def test_send_arrives_at_peer():
    a, b = await _pair()
    try:
        msg_id = await a.send(Ping())
        received = await asyncio.wait_for(b.recv(), 2)
        assert received.msg_id == msg_id
        assert received.reply_to is None
        assert received.payload == Ping()
    finally:
        await _close(a, b)


@pytest.mark.asyncio
async def test_call_receives_reply():
    a, b = await _pair()
    try:
        async def answer():
            request = await b.recv()
            await b.reply(request.msg_id, HelloResponse(request.payload.dispatcher_id))
            return request

        responder = asyncio.create_task(answer())
        hello = HelloRequest(DispatcherId.new(), H3Cell(0x8A2A1072B59FFFF))
        response = await a.call(hello, 2)
        request = await responder
        assert response.reply_to == request.msg_id
        assert response.payload == HelloResponse(hello.dispatcher_id)
    finally:
        await _close(a, b)


@pytest.mark.asyncio
async def test_call_times_out_and_late_reply_goes_to_recv():
    a, b = await _pair()
    try:
        with pytest.raises(RpcTimeout):
            await a.call(Ping(), 0.05)
        request = await asyncio.wait_for(b.recv(), 2)
        await b.reply(request.msg_id, Pong())
        late = await asyncio.wait_for(a.recv(), 2)
        assert late.reply_to == request.msg_id
        assert late.payload == Pong()
    finally:
        await _close(a, b)


@pytest.mark.asyncio
async def test_timeout_is_a_timeout_error():
    a, b = await _pair()
    try:
        with pytest.raises(TimeoutError):
            await a.call(Ping(), 0.01)
    finally:
        await _close(a, b)


@pytest.mark.asyncio
async def test_reply_without_waiter_is_queued():
    a, b = await _pair()
    try:
        unknown = MessageId.new()
        await b.reply(unknown, Pong())
        received = await asyncio.wait_for(a.recv(), 2)
        assert received.reply_to == unknown
    finally:
        await _close(a, b)


@pytest.mark.asyncio
async def test_recv_returns_none_after_peer_closes():
    a, b = await _pair()
    try:
        await b.close()
        assert await asyncio.wait_for(a.recv(), 2) is None
        assert await asyncio.wait_for(a.recv(), 2) is None
    finally:
        await _close(a, b)


@pytest.mark.asyncio
async def test_queued_messages_are_delivered_before_close():
    a, b = await _pair()
    try:
        sent = [await a.send(Ping()) for _ in range(3)]
        await a.close()
        received = [await asyncio.wait_for(b.recv(), 2) for _ in range(3)]
        assert [env.msg_id for env in received] == sent
        assert await asyncio.wait_for(b.recv(), 2) is None
    finally:
        await _close(a, b)


@pytest.mark.asyncio
async def test_pending_call_fails_when_peer_closes():
    a, b = await _pair()
    try:
        call = asyncio.create_task(a.call(Ping(), 5))
        request = await asyncio.wait_for(b.recv(), 2)
        assert request.payload == Ping()
        await b.close()
        with pytest.raises(ChannelClosed):
            await asyncio.wait_for(call, 2)
        assert await asyncio.wait_for(a.recv(), 2) is None
    finally:
        await _close(a, b)


@pytest.mark.asyncio
async def test_send_after_close_raises():
    a, b = await _pair()
    try:
        await a.close()
        with pytest.raises(RpcError):
            await a.send(Ping())
        with pytest.raises(RpcError):
            await a.reply(MessageId.new(), Pong())
    finally:
        await _close(a, b)


@pytest.mark.asyncio
async def test_recv_after_own_close_returns_none():
    a, b = await _pair()
    try:
        await a.close()
        assert await asyncio.wait_for(a.recv(), 2) is None
    finally:
        await _close(a, b)


@pytest.mark.asyncio
async def test_context_manager_closes_connection():
    a, b = await _pair()
    try:
        async with a:
            await a.send(Ping())
        with pytest.raises(RpcError):
            await a.send(Ping())
    finally:
        await _close(a, b)


@pytest.mark.asyncio
async def test_zero_buffer_is_rejected():
    with pytest.raises(ValueError):
        RpcConnection(asyncio.StreamReader(), None, 0)