from __future__ import annotations

import asyncio
import socket
import ssl
from typing import Any

from hypersock.core.connection import Connection
from hypersock.core.delegates import CallbackSink, DelegateQueue
from hypersock.core.demultiplexer import Demultiplexer, get_default_pool
from hypersock.core.errors import Cancelled, ConnectionIOError, SocketBindError, SocketError
from hypersock.env import Env
from hypersock.logging.hypersock_logging_models import ListenerError, ListenerInfo


class Listener:
    """
    Accepts TCP connections. Every accepted socket becomes a connected
    ``Connection`` sharing the listener's demultiplexer, delegate queue
    and delegate. ``on_accept`` reaches the delegate before any event of
    the new connection, and may replace that connection's delegate.
    """

    def __init__(
        self,
        delegate: Any,
        demultiplexer: Demultiplexer | None = None,
        delegate_queue: DelegateQueue | None = None,
        env: Env | None = None,
    ) -> None:
        if demultiplexer is None:
            demultiplexer = get_default_pool().next()

        if delegate_queue is None:
            demultiplexer.start()
            delegate_queue = demultiplexer.delegate_queue

        self.demultiplexer = demultiplexer
        self.delegate_queue = delegate_queue
        self.env = env or demultiplexer.env

        self.address: tuple[str, int] | None = None
        self.accepted = 0
        self.closed = False

        self._sink = CallbackSink(self, delegate, delegate_queue)
        self._socket: socket.socket | None = None
        self._server: asyncio.Server | None = None
        self._serve_task: asyncio.Task | None = None
        self._tls: ssl.SSLContext | None = None
        self._connections: set[Connection] = set()

    @property
    def delegate(self):
        return self._sink.delegate

    @delegate.setter
    def delegate(self, delegate: Any):
        self._sink.delegate = delegate

    @property
    def connections(self):
        return set(self._connections)

    def accept(
        self,
        port: int = 0,
        interface: str | None = None,
        tls: ssl.SSLContext | None = None,
        backlog: int | None = None,
    ) -> tuple[str, int]:
        """
        Bind and listen now, raising ``SocketBindError`` on failure, then
        start accepting on the demultiplexer thread. Returns the bound
        address, so port 0 reveals the ephemeral port chosen.
        """
        if self._socket is not None or self.closed:
            raise RuntimeError("Listener is already accepting or closed")

        if tls is not None and not isinstance(tls, ssl.SSLContext):
            raise TypeError("tls must be an ssl.SSLContext")

        if backlog is None:
            backlog = self.env.HYPERSOCK_LISTEN_BACKLOG

        host = interface or "0.0.0.0"

        try:
            family, kind, proto, _, sockaddr = socket.getaddrinfo(
                host,
                port,
                type=socket.SOCK_STREAM,
                flags=socket.AI_PASSIVE,
            )[0]

        except socket.gaierror as err:
            raise SocketBindError(host, port, cause=err) from err

        sock = socket.socket(family, kind, proto)

        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
            sock.bind(sockaddr)
            sock.listen(backlog)
            sock.setblocking(False)

        except OSError as err:
            sock.close()
            raise SocketBindError(host, port, cause=err) from err

        self._socket = sock
        self._tls = tls
        self.address = sock.getsockname()[:2]

        self.demultiplexer.submit(self._start_serving)

        return self.address

    def close(self, close_connections: bool = False):
        self.demultiplexer.submit(self._close, close_connections)

    def _log_info(self, message: str):
        host, port = self.address or ("", 0)
        self.demultiplexer.logger.schedule(
            ListenerInfo(
                message=message,
                host=host,
                port=port,
                accepted=self.accepted,
                with_tls=self._tls is not None,
            ),
            stacklevel=2,
        )

    def _start_serving(self):
        if self.closed:
            return

        self.demultiplexer.register(self)
        self._serve_task = self.demultiplexer.loop.create_task(self._serve())

    async def _serve(self):
        options: dict[str, Any] = {}
        if self._tls is not None:
            options.update(
                ssl=self._tls,
                ssl_handshake_timeout=self.env.tls_handshake_timeout,
            )

        try:
            self._server = await self.demultiplexer.loop.create_server(
                self._create_protocol,
                sock=self._socket,
                **options,
            )

        except asyncio.CancelledError:
            raise

        except Exception as err:
            self._serve_task = None
            self._finish(ConnectionIOError("Listener could not start serving", cause=err))
            return

        self._serve_task = None
        self._log_info("Listening")

    def _create_protocol(self):
        connection = Connection(
            self._sink.delegate,
            demultiplexer=self.demultiplexer,
            delegate_queue=self.delegate_queue,
            env=self.env,
        )

        return connection._prepare_accepted(self, self._accepted)

    def _accepted(self, connection: Connection):
        self.accepted += 1
        self._connections.add(connection)

        if self.closed:
            connection._abort(Cancelled(message="Listener closed"))
            return

        self._sink.dispatch('on_accept', connection)

    def _connection_closed(self, connection: Connection):
        self._connections.discard(connection)

    def _close(self, close_connections: bool = False):
        if self.closed:
            return

        if close_connections:
            for connection in list(self._connections):
                connection._close(graceful=True)

        self._finish(None)

    def _finish(self, error: SocketError | None):
        self.closed = True

        if self._serve_task is not None:
            self._serve_task.cancel()
            self._serve_task = None

        if self._server is not None:
            self._server.close()
            self._server = None

        elif self._socket is not None:
            self._socket.close()

        self._socket = None
        self.demultiplexer.unregister(self)

        if error is None:
            self._log_info("Closed")

        else:
            host, port = self.address or ("", 0)
            self.demultiplexer.logger.schedule(
                ListenerError(
                    message="Closed",
                    host=host,
                    port=port,
                    accepted=self.accepted,
                    error=str(error),
                )
            )

        self._sink.terminate('on_listener_closed', error)

    def _shutdown(self, error: SocketError | None):
        if self.closed is False:
            self._finish(error or Cancelled(message="Demultiplexer stopped"))

    def _route_error(self, exc: Exception):
        self._finish(ConnectionIOError("Listener failed", cause=exc))
