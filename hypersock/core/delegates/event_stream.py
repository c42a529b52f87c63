from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import TYPE_CHECKING, Any, TypeVar

from .connection_delegate import DatagramDelegate, ListenerDelegate

if TYPE_CHECKING:
    from hypersock.core.connection import Connection
    from hypersock.core.datagram import DatagramSocket
    from hypersock.core.errors import SocketError
    from hypersock.core.listener import Listener


@dataclass(slots=True)
class ConnectEvent:
    connection: Connection

@dataclass(slots=True)
class DataEvent:
    connection: Connection
    data: bytes
    tag: Any

@dataclass(slots=True)
class WriteCompleteEvent:
    connection: Connection
    tag: Any

@dataclass(slots=True)
class TLSEstablishedEvent:
    connection: Connection

@dataclass(slots=True)
class DisconnectEvent:
    connection: Connection
    error: SocketError | None

@dataclass(slots=True)
class AcceptEvent:
    listener: Listener
    connection: Connection

@dataclass(slots=True)
class ListenerClosedEvent:
    listener: Listener
    error: SocketError | None

@dataclass(slots=True)
class DatagramEvent:
    sock: DatagramSocket
    data: bytes
    address: tuple[str, int]

@dataclass(slots=True)
class SendCompleteEvent:
    sock: DatagramSocket
    tag: Any

@dataclass(slots=True)
class SendErrorEvent:
    sock: DatagramSocket
    tag: Any
    error: SocketError

@dataclass(slots=True)
class ReceiveErrorEvent:
    sock: DatagramSocket
    error: SocketError

@dataclass(slots=True)
class SocketClosedEvent:
    sock: DatagramSocket
    error: SocketError | None


Event = (
    ConnectEvent
    | DataEvent
    | WriteCompleteEvent
    | TLSEstablishedEvent
    | DisconnectEvent
    | AcceptEvent
    | ListenerClosedEvent
    | DatagramEvent
    | SendCompleteEvent
    | SendErrorEvent
    | ReceiveErrorEvent
    | SocketClosedEvent
)

E = TypeVar('E')


class UnexpectedEventError(Exception):

    def __init__(self, expected: type, event: Any):
        self.expected = expected
        self.event = event

        super().__init__(
            f"Expected {expected.__name__} - got {type(event).__name__}"
        )


class EventStream(ListenerDelegate, DatagramDelegate):
    """
    Delegate that turns callbacks into events on an asyncio queue.

    The stream belongs to the loop it was created on (or first awaited
    on). Callbacks arriving from another thread are handed over to that
    loop. The queue is unbounded so no event, terminal ones included,
    is ever dropped.
    """

    def __init__(self):
        self._queue: asyncio.Queue[Event] = asyncio.Queue()

        try:
            self._loop: asyncio.AbstractEventLoop | None = asyncio.get_running_loop()

        except RuntimeError:
            self._loop = None

    def __aiter__(self):
        return self

    async def __anext__(self) -> Event:
        return await self.next()

    def qsize(self):
        return self._queue.qsize()

    def empty(self):
        return self._queue.empty()

    async def next(self, timeout: float | None = None) -> Event:
        if self._loop is None:
            self._loop = asyncio.get_running_loop()

        return await asyncio.wait_for(self._queue.get(), timeout)

    async def expect(self, event_type: type[E], timeout: float | None = None) -> E:
        event = await self.next(timeout)

        if not isinstance(event, event_type):
            raise UnexpectedEventError(event_type, event)

        return event

    def _put(self, event: Event):
        try:
            running = asyncio.get_running_loop()

        except RuntimeError:
            running = None

        if self._loop is None or running is self._loop:
            self._queue.put_nowait(event)

        else:
            self._loop.call_soon_threadsafe(self._queue.put_nowait, event)

    def on_connect(self, connection):
        self._put(ConnectEvent(connection))

    def on_data(self, connection, data, tag):
        self._put(DataEvent(connection, data, tag))

    def on_write_complete(self, connection, tag):
        self._put(WriteCompleteEvent(connection, tag))

    def on_tls_established(self, connection):
        self._put(TLSEstablishedEvent(connection))

    def on_disconnect(self, connection, error):
        self._put(DisconnectEvent(connection, error))

    def on_accept(self, listener, connection):
        self._put(AcceptEvent(listener, connection))

    def on_listener_closed(self, listener, error):
        self._put(ListenerClosedEvent(listener, error))

    def on_datagram(self, sock, data, address):
        self._put(DatagramEvent(sock, data, address))

    def on_send_complete(self, sock, tag):
        self._put(SendCompleteEvent(sock, tag))

    def on_send_error(self, sock, tag, error):
        self._put(SendErrorEvent(sock, tag, error))

    def on_receive_error(self, sock, error):
        self._put(ReceiveErrorEvent(sock, error))

    def on_socket_closed(self, sock, error):
        self._put(SocketClosedEvent(sock, error))
