from __future__ import annotations

import asyncio
import socket
import struct
from collections import deque
from typing import Any

from hypersock.core.delegates import CallbackSink, DelegateQueue
from hypersock.core.demultiplexer import Demultiplexer, get_default_pool
from hypersock.core.errors import (
    Cancelled,
    ConnectionIOError,
    SendTimeoutError,
    SocketBindError,
    SocketError,
)
from hypersock.env import Env
from hypersock.logging.hypersock_logging_models import DatagramDebug, DatagramError

from .send_request import SendRequest
from .udp_protocol import UDPProtocol


class DatagramSocket:
    """
    A UDP socket driven by a demultiplexer thread.

    Binding and socket options apply immediately on the calling thread.
    Sends are queued and go out one at a time in order. Incoming
    datagrams are delivered only between ``begin_receiving()`` and
    ``pause_receiving()``; anything arriving otherwise is dropped and
    counted in ``dropped_datagrams``.
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

        self.local_address: tuple[str, int] | None = None
        self.dropped_datagrams = 0
        self.closed = False

        self._sink = CallbackSink(self, delegate, delegate_queue)
        self._socket: socket.socket | None = None
        self._transport: asyncio.DatagramTransport | None = None
        self._open_task: asyncio.Task | None = None
        self._send_task: asyncio.Task | None = None
        self._sends: deque[SendRequest] = deque()
        self._sending: SendRequest | None = None
        self._send_error: Exception | None = None
        self._receiving = False
        self._broadcast = False
        self._closing = False
        self._close_after_sending = False

    @property
    def delegate(self):
        return self._sink.delegate

    @delegate.setter
    def delegate(self, delegate: Any):
        self._sink.delegate = delegate

    @property
    def is_bound(self):
        return self._socket is not None

    @property
    def is_receiving(self):
        return self._receiving

    @property
    def pending_sends(self):
        return len(self._sends) + (1 if self._sending else 0)

    def bind(
        self,
        port: int = 0,
        interface: str | None = None,
        reuse_port: bool = False,
        broadcast: bool = False,
    ) -> tuple[str, int]:
        if self.closed or self._closing:
            raise RuntimeError("Datagram socket is closed")

        if self._socket is not None:
            raise RuntimeError("Datagram socket is already bound")

        host = interface or "0.0.0.0"

        try:
            family, kind, proto, _, sockaddr = socket.getaddrinfo(
                host,
                port,
                type=socket.SOCK_DGRAM,
                flags=socket.AI_PASSIVE,
            )[0]

        except socket.gaierror as err:
            raise SocketBindError(host, port, cause=err) from err

        sock = socket.socket(family, kind, proto)

        try:
            sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)

            if reuse_port:
                if not hasattr(socket, "SO_REUSEPORT"):
                    raise OSError("SO_REUSEPORT is not supported on this platform")

                sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEPORT, 1)

            if broadcast or self._broadcast:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
                self._broadcast = True

            sock.bind(sockaddr)
            sock.setblocking(False)

        except OSError as err:
            sock.close()
            raise SocketBindError(host, port, cause=err) from err

        self._socket = sock
        self.local_address = sock.getsockname()[:2]

        self.demultiplexer.submit(self._open)

        return self.local_address

    def enable_broadcast(self, enabled: bool = True):
        self._broadcast = enabled

        if self._socket is not None:
            self._socket.setsockopt(
                socket.SOL_SOCKET,
                socket.SO_BROADCAST,
                1 if enabled else 0,
            )

    def join_multicast(self, group: str, interface: str | None = None):
        self._set_membership(socket.IP_ADD_MEMBERSHIP, group, interface)

    def leave_multicast(self, group: str, interface: str | None = None):
        self._set_membership(socket.IP_DROP_MEMBERSHIP, group, interface)

    def _set_membership(
        self,
        option: int,
        group: str,
        interface: str | None,
    ):
        if self._socket is None:
            raise RuntimeError("Datagram socket must be bound before changing multicast membership")

        try:
            membership = struct.pack(
                '=4s4s',
                socket.inet_aton(socket.gethostbyname(group)),
                socket.inet_aton(socket.gethostbyname(interface or "0.0.0.0")),
            )

            self._socket.setsockopt(socket.IPPROTO_IP, option, membership)

        except OSError as err:
            raise SocketBindError(group, self.local_address[1], cause=err) from err

    def begin_receiving(self):
        self._receiving = True

    def pause_receiving(self):
        self._receiving = False

    def send(
        self,
        data: bytes | bytearray | memoryview,
        host: str,
        port: int,
        timeout: float | None = None,
        tag: Any = None,
    ):
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise TypeError(f"Datagram payload must be bytes-like - got {type(data).__name__}")

        if timeout is not None and timeout < 0:
            raise ValueError(f"Timeout must not be negative - got {timeout}")

        payload = bytes(data)
        if len(payload) > self.env.HYPERSOCK_MAX_DATAGRAM_SIZE:
            raise ValueError(
                f"Datagram of {len(payload)} bytes exceeds the maximum of "
                f"{self.env.HYPERSOCK_MAX_DATAGRAM_SIZE}"
            )

        if self._socket is None and self.closed is False and self._closing is False:
            self.bind()

        self.demultiplexer.submit(
            self._enqueue_send,
            SendRequest(payload, host, port, timeout=timeout, tag=tag),
        )

    def close(self):
        """Close now. Sends still queued are cancelled."""
        self._closing = True
        self.demultiplexer.submit(self._close)

    def close_after_sending(self):
        """Close once every send queued so far has completed or failed."""
        self._closing = True
        self.demultiplexer.submit(self._close_when_drained)

    def _log_debug(self, message: str):
        host, port = self.local_address or ("", 0)
        self.demultiplexer.logger.schedule(
            DatagramDebug(
                message=message,
                host=host,
                port=port,
                pending_sends=self.pending_sends,
            ),
            stacklevel=2,
        )

    def _log_error(self, message: str, error: BaseException):
        host, port = self.local_address or ("", 0)
        self.demultiplexer.logger.schedule(
            DatagramError(
                message=message,
                host=host,
                port=port,
                pending_sends=self.pending_sends,
                error=str(error),
            ),
            stacklevel=2,
        )

    def _open(self):
        if self.closed:
            return

        self.demultiplexer.register(self)
        self._open_task = self.demultiplexer.loop.create_task(self._open_endpoint())

    async def _open_endpoint(self):
        try:
            transport, _ = await self.demultiplexer.loop.create_datagram_endpoint(
                lambda: UDPProtocol(self),
                sock=self._socket,
            )

        except asyncio.CancelledError:
            raise

        except Exception as err:
            self._open_task = None
            self._finish(ConnectionIOError("Datagram endpoint could not open", cause=err))
            return

        self._open_task = None

        if self.closed:
            transport.abort()
            return

        self._transport = transport
        self._log_debug("Bound")
        self._service_sends()

    def _enqueue_send(self, request: SendRequest):
        if self.closed or self._close_after_sending:
            self._log_debug("Send ignored - socket is closed")
            return

        self._sends.append(request)
        self._service_sends()

    def _service_sends(self):
        if (
            self._transport is None
            or self._sending is not None
            or not self._sends
        ):
            if self._close_after_sending and self._sending is None and not self._sends:
                self._finish(None)

            return

        request = self._sends.popleft()
        self._sending = request
        self._send_task = self.demultiplexer.loop.create_task(self._send(request))

    async def _send(self, request: SendRequest):
        try:
            address = await asyncio.wait_for(
                self._resolve(request.host, request.port),
                request.timeout,
            )

        except asyncio.CancelledError:
            raise

        except TimeoutError:
            self._send_finished(request, SendTimeoutError(request.timeout, request.tag))
            return

        except OSError as err:
            self._send_finished(
                request,
                ConnectionIOError(f"Could not resolve {request.host}", cause=err),
            )
            return

        if self._transport is None or self.closed:
            return

        self._send_error = None
        self._transport.sendto(request.data, address)

        error = self._send_error
        self._send_error = None

        if error is not None:
            self._send_finished(
                request,
                ConnectionIOError("Send failed", cause=error, errno=getattr(error, 'errno', None)),
            )
            return

        self._send_finished(request, None)

    async def _resolve(self, host: str, port: int):
        infos = await self.demultiplexer.loop.getaddrinfo(
            host,
            port,
            family=self._socket.family,
            type=socket.SOCK_DGRAM,
        )

        return infos[0][4]

    def _send_finished(self, request: SendRequest, error: SocketError | None):
        if request is not self._sending:
            return

        self._sending = None
        self._send_task = None

        if error is None:
            self._sink.dispatch('on_send_complete', request.tag)

        else:
            self._log_error("Send failed", error)
            self._sink.dispatch('on_send_error', request.tag, error)

        self._service_sends()

    def _datagram_received(self, data: bytes, addr: tuple[str, int]):
        if self.closed:
            return

        if self._receiving is False:
            self.dropped_datagrams += 1
            return

        self._sink.dispatch('on_datagram', data, addr[:2])

    def _error_received(self, exc: Exception):
        if self._sending is not None and self._send_task is asyncio.current_task():
            self._send_error = exc
            return

        self._log_error("Receive error", exc)
        self._sink.dispatch(
            'on_receive_error',
            ConnectionIOError("Receive error", cause=exc, errno=getattr(exc, 'errno', None)),
        )

    def _connection_lost(self, exc: Exception | None):
        self._transport = None

        if self.closed:
            return

        self._finish(
            ConnectionIOError("Datagram transport lost", cause=exc) if exc else None
        )

    def _route_error(self, exc: Exception):
        self._finish(ConnectionIOError("Datagram transport failed", cause=exc))

    def _close_when_drained(self):
        self._close_after_sending = True

        if self._socket is None:
            self._finish(None)
            return

        self._service_sends()

    def _close(self):
        self._finish(self._cancelled())

    def _cancelled(self, always: bool = False) -> Cancelled | None:
        pending = self.pending_sends
        if pending or always:
            return Cancelled(writes=pending)

        return None

    def _finish(self, error: SocketError | None):
        if self.closed:
            return

        self.closed = True
        self._receiving = False

        for task in (self._open_task, self._send_task):
            if task is not None and task is not asyncio.current_task():
                task.cancel()

        self._open_task = None
        self._send_task = None
        self._sending = None
        self._sends.clear()

        if self._transport is not None:
            self._transport.close()
            self._transport = None

        elif self._socket is not None:
            self._socket.close()

        self.demultiplexer.unregister(self)

        if error is None:
            self._log_debug("Closed")

        else:
            self._log_error("Closed", error)

        self._sink.terminate('on_socket_closed', error)

    def _shutdown(self, error: SocketError | None):
        if self.closed is False:
            self._finish(error or self._cancelled(always=True))
