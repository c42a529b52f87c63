import asyncio
from typing import AsyncGenerator, Callable

import pytest

from hypersock.core.connection import Connection, TCPProtocol
from hypersock.core.delegates import DelegateQueue, EventStream
from hypersock.env import Env
from hypersock.logging import Logger


class FakeTransport:
    """
    Stands in for a socket transport. ``capacity`` caps how many bytes
    each write hands to the "kernel"; the rest stays buffered until
    ``flush()``.
    """

    def __init__(self, protocol: TCPProtocol, capacity: int | None = None):
        self.protocol = protocol
        self.capacity = capacity
        self.sent = bytearray()
        self.pending = bytearray()
        self.reading = True
        self.closed = False
        self.aborted = False

    def set_write_buffer_limits(self, high=None, low=None):
        pass

    def get_extra_info(self, name, default=None):
        return {
            'sockname': ('127.0.0.1', 50000),
            'peername': ('127.0.0.1', 9000),
        }.get(name, default)

    def write(self, data: bytes):
        accepted = len(data) if self.capacity is None else min(len(data), self.capacity)
        self.sent += data[:accepted]
        self.pending += data[accepted:]

    def get_write_buffer_size(self):
        return len(self.pending)

    def flush(self):
        self.sent += self.pending
        self.pending.clear()
        self.protocol.resume_writing()

    def pause_reading(self):
        self.reading = False

    def resume_reading(self):
        self.reading = True

    def is_closing(self):
        return self.closed or self.aborted

    def close(self):
        self.closed = True

    def abort(self):
        self.aborted = True
        self.pending.clear()


class FakeDemultiplexer:
    """Runs submitted calls inline on the test's own loop."""

    def __init__(self, env: Env, delegate_queue: DelegateQueue):
        self.env = env
        self.delegate_queue = delegate_queue
        self.logger = Logger()
        self.owners = set()

    @property
    def loop(self):
        return asyncio.get_running_loop()

    def start(self):
        pass

    def in_thread(self):
        return True

    def submit(self, fn, *args):
        fn(*args)

    def register(self, owner):
        self.owners.add(owner)

    def unregister(self, owner):
        self.owners.discard(owner)


@pytest.fixture
async def fake_demultiplexer(
    env: Env,
    delegate_queue: DelegateQueue,
) -> AsyncGenerator[FakeDemultiplexer, None]:
    demultiplexer = FakeDemultiplexer(env, delegate_queue)

    yield demultiplexer

    await demultiplexer.logger.close()


@pytest.fixture
def accept_connection(
    fake_demultiplexer: FakeDemultiplexer,
    events: EventStream,
) -> Callable[..., tuple[Connection, FakeTransport]]:

    def accept(capacity: int | None = None, env: Env | None = None):
        connection = Connection(
            events,
            demultiplexer=fake_demultiplexer,
            delegate_queue=fake_demultiplexer.delegate_queue,
            env=env,
        )

        protocol = connection._prepare_accepted(None, lambda accepted: None)
        transport = FakeTransport(protocol, capacity=capacity)
        protocol.connection_made(transport)

        return connection, transport

    return accept


