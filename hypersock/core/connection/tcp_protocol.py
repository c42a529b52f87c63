from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .connection import Connection


class TCPProtocol(asyncio.Protocol):
    """
    Forwards transport events to the owning connection. Events from a
    protocol whose connection attempt has since ended are ignored.
    """

    def __init__(self, owner: Connection, generation: int):
        super().__init__()
        self.owner = owner
        self.generation = generation
        self.transport: asyncio.Transport | None = None

    @property
    def current(self) -> bool:
        return self.owner.generation == self.generation

    def connection_made(self, transport: asyncio.Transport):
        self.transport = transport

        if self.current:
            self.owner._connection_made(transport, self)

        else:
            transport.abort()

    def data_received(self, data: bytes):
        if self.current:
            self.owner._data_received(data)

    def eof_received(self) -> bool | None:
        if self.current:
            return self.owner._eof_received()

        return None

    def connection_lost(self, exc: Exception | None):
        if self.current:
            self.owner._connection_lost(exc)

        self.transport = None

    def pause_writing(self):
        pass

    def resume_writing(self):
        if self.current:
            self.owner._write_drained()
