# ersha

Building blocks for a field-telemetry platform: edge devices carry sensors,
dispatchers collect their readings and status reports, and a central service
receives them in batches.

The package needs nothing beyond the Python standard library (3.10 or later).

## What is in it

- `ersha.ulid` – `Ulid`, a 128-bit sortable identifier with `Ulid.new()`,
  `Ulid.from_str()`, `Ulid.from_bytes()`, `to_bytes()` and a 26-character
  text form.
- `ersha.models` – the shared data model, as frozen dataclasses and enums:
  identifiers (`DeviceId`, `DispatcherId`, `ReadingId`, `StatusId`, `BatchId`,
  `SensorId`, each with `.new()`), `H3Cell`, `Percentage`, `SensorMetric`
  (with `soil_moisture`, `soil_temp`, `air_temp`, `humidity`, `rainfall`
  constructors and `unit()`), `Sensor`, `SensorStatus`, `SensorReading`,
  `DeviceStatus`, `DeviceError`, `Device`, `Dispatcher`, and the request and
  response types `HelloRequest`, `HelloResponse`, `BatchUploadRequest`,
  `BatchUploadResponse`. Values are checked on construction; timestamps must
  be timezone-aware and are kept in UTC.
- `ersha.jsoncodec` – `dumps(value)` and `loads(cls, text)` to turn domain
  values into compact JSON and back; failures raise `CodecError`.
- `ersha.rpc` – the messaging layer:
  - `ersha.rpc.message`: `MessageId`, `Envelope`, the payloads `Ping`, `Pong`
    and `WireError` (with `WireErrorCode`), alongside the model request and
    response types.
  - `ersha.rpc.wire`: `encode_envelope` / `decode_envelope`, a compact binary
    encoding (`DecodeError` on bad input).
  - `ersha.rpc.frame`: `write_frame` / `read_frame` on asyncio streams, each
    frame prefixed with a 4-byte big-endian length and limited to
    `MAX_FRAME_BYTES` (2,000,000); oversize frames raise `FrameTooLarge`,
    other failures `FrameError`.
  - `ersha.rpc.connection`: `RpcConnection`, which runs reader and writer
    tasks over a stream pair, routes replies to the waiting `call`, and queues
    other messages for `recv`. Errors are `RpcError`, `ChannelClosed` and
    `RpcTimeout`.
  - `ersha.rpc.client`: `Client`, and `ersha.rpc.server`: `Server`.
- `ersha.dispatch` – event storage for a dispatcher: the abstract `Storage`
  interface, `StorageStats`, `CleanupStats`, `StorageState`, and
  `MemoryStorage`, a thread-safe in-memory backend.
- `ersha.prime` – registries for the central service: `DeviceFilter`,
  `DispatcherFilter`, `DeviceSortBy`, `DispatcherSortBy`, `SortOrder`,
  `OffsetPagination`, `CursorPagination`, `QueryOptions`, `paginate`, the
  abstract `DeviceRegistry` and `DispatcherRegistry`, and the in-memory
  `InMemoryDeviceRegistry` and `InMemoryDispatcherRegistry` (which raise
  `NotFoundError` for unknown ids where a lookup is required).

## Installation

```
pip install .
```

## Trying the RPC layer

Start the example server, which logs each request and acknowledges it:

```
ersha-rpc-server
```

In another terminal, run the example client, which pings the server and sends
a hello request for a freshly made dispatcher id:

```
ersha-rpc-client
```

Both commands listen on or connect to `127.0.0.1:19080` by default; pass
`--host` and `--port` to change that.

## Using the client from code

```python
import asyncio

from ersha.models import DispatcherId, H3Cell, HelloRequest
from ersha.rpc.client import Client


async def run():
    async with await Client.connect("127.0.0.1", 19080) as client:
        await client.ping()
        response = await client.hello(
            HelloRequest(dispatcher_id=DispatcherId.new(), location=H3Cell(0x8A2A1072B59FFFF))
        )
        print(response.dispatcher_id)


asyncio.run(run())
```

Each call waits up to `timeout` seconds (5 by default). A failed call raises
`ClientError`: `ErrorResponse` when the server answers with a `WireError`
(available as `.error`), `UnexpectedResponse` when it answers with the wrong
kind of message, and a plain `ClientError` chained to the underlying
`RpcError` (for example `RpcTimeout`) when no answer arrives.

## Serving requests

`Server` dispatches incoming messages to the handlers registered with
`on_ping`, `on_hello` and `on_batch_upload`; handlers may be plain functions
or coroutine functions. A ping is always answered with a pong; hello and
batch-upload requests are answered only when a handler is registered.
`start(host, port)` returns the listening asyncio server, `serve(host, port)`
runs until cancelled.

```python
from ersha.models import HelloResponse
from ersha.rpc.server import Server

server = Server().on_hello(lambda request, msg_id, rpc: HelloResponse(request.dispatcher_id))
```

## Dispatcher storage

Readings and statuses are stored as pending, fetched for upload, marked as
uploaded, and removed with `cleanup_uploaded`. `get_stats` reports pending,
uploaded and total counts.

```python
from datetime import timedelta

from ersha.dispatch.memory import MemoryStorage

storage = MemoryStorage()
# storage.store_sensor_reading(reading) ...
pending = storage.fetch_pending_sensor_readings()
storage.mark_sensor_readings_uploaded(r.id for r in pending)
print(storage.cleanup_uploaded(timedelta(0)))
```

`MemoryStorage` does not record upload times, so `cleanup_uploaded` removes
every uploaded event whatever duration it is given.

## What the package does not do

- There is no persistent storage backend: `MemoryStorage` is the only
  implementation of `Storage`, and everything it holds is lost when the
  process ends. There are no schema migrations and no database files.
- The registries in `ersha.prime` are in memory only.
- There is no web dashboard or HTTP interface; the only network interface is
  the RPC server.

## Running the tests

```
pip install ".[test]"
pytest
```