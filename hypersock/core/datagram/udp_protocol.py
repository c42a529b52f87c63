from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .datagram_socket import DatagramSocket


class UDPProtocol(asyncio.DatagramProtocol):

    def __init__(self, owner: DatagramSocket):
        super().__init__()
        self.owner = owner
        self.transport: asyncio.DatagramTransport | None = None

    def connection_made(self, transport: asyncio.DatagramTransport):
        self.transport = transport

    def datagram_received(self, data: bytes, addr: tuple[str, int]):
        self.owner._datagram_received(data, addr)

    def error_received(self, exc: Exception):
        self.owner._error_received(exc)

    def connection_lost(self, exc: Exception | None):
        self.owner._connection_lost(exc)
        self.transport = None
