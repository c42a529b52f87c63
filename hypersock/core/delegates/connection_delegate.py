from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from hypersock.core.connection import Connection
    from hypersock.core.datagram import DatagramSocket
    from hypersock.core.errors import SocketError
    from hypersock.core.listener import Listener


class ConnectionDelegate:
    """
    Callbacks may be plain methods or coroutines. Each runs on the
    connection's delegate queue, one at a time, in the order the events
    happened. ``on_disconnect`` is always the last callback of a
    connection attempt.
    """

    def on_connect(self, connection: Connection):
        pass

    def on_data(self, connection: Connection, data: bytes, tag: Any):
        pass

    def on_write_complete(self, connection: Connection, tag: Any):
        pass

    def on_tls_established(self, connection: Connection):
        pass

    def on_disconnect(self, connection: Connection, error: SocketError | None):
        pass


class ListenerDelegate(ConnectionDelegate):

    def on_accept(self, listener: Listener, connection: Connection):
        pass

    def on_listener_closed(self, listener: Listener, error: SocketError | None):
        pass


class DatagramDelegate:

    def on_datagram(
        self,
        sock: DatagramSocket,
        data: bytes,
        address: tuple[str, int],
    ):
        pass

    def on_send_complete(self, sock: DatagramSocket, tag: Any):
        pass

    def on_send_error(self, sock: DatagramSocket, tag: Any, error: SocketError):
        pass

    def on_receive_error(self, sock: DatagramSocket, error: SocketError):
        pass

    def on_socket_closed(self, sock: DatagramSocket, error: SocketError | None):
        pass
