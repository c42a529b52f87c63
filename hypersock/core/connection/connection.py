from __future__ import annotations

import asyncio
import itertools
import ssl
from collections import deque
from typing import TYPE_CHECKING, Any, Callable

from hypersock.core.delegates import CallbackSink, DelegateQueue
from hypersock.core.demultiplexer import Demultiplexer, get_default_pool
from hypersock.core.errors import (
    Cancelled,
    ConnectError,
    ConnectErrorReason,
    ConnectionIOError,
    ProtocolViolation,
    ReadMaxedOutError,
    ReadTimeoutError,
    RemoteClosedError,
    SocketError,
    WriteTimeoutError,
)
from hypersock.core.retry import RetryPolicy, retry_with_backoff
from hypersock.env import Env
from hypersock.logging.hypersock_logging_models import (
    ConnectionDebug,
    ConnectionError as ConnectionErrorEntry,
    ConnectionInfo,
    ConnectionTrace,
)

from .connection_state import ConnectionState
from .read_request import (
    ReadAvailable,
    ReadDelimiter,
    ReadLength,
    ReadOutcome,
    ReadPolicy,
    ReadRequest,
    ReadToClose,
)
from .receive_buffer import ReceiveBuffer
from .tcp_protocol import TCPProtocol
from .write_request import TLSRequest, WriteRequest

if TYPE_CHECKING:
    from hypersock.core.listener import Listener


READ_POLICIES = (ReadLength, ReadDelimiter, ReadToClose, ReadAvailable)


def _check_timeout(timeout: float | None):
    if timeout is not None and timeout < 0:
        raise ValueError(f"Timeout must not be negative - got {timeout}")


def _to_address(address: Any) -> tuple[str, int] | None:
    if isinstance(address, (tuple, list)) and len(address) >= 2:
        return (address[0], address[1])

    return None


class Connection:
    """
    A TCP connection driven by a demultiplexer thread.

    ``connect``, ``read``, ``write``, ``start_tls`` and ``close`` never
    block and may be called from any thread. Each hands its request to
    the demultiplexer, which owns the connection's buffers and queues.
    Results arrive as delegate callbacks: reads and writes complete in
    the order they were queued, and ``on_disconnect`` is the last
    callback of every connection attempt.
    """

    _ids = itertools.count(1)

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

        self.connection_id = next(Connection._ids)
        self.generation = 0
        self.state = ConnectionState.DISCONNECTED
        self.local_address: tuple[str, int] | None = None
        self.remote_address: tuple[str, int] | None = None
        self.is_secure = False

        self._sink = CallbackSink(self, delegate, delegate_queue)
        self._retry_policy = RetryPolicy.from_config(
            self.env.get_connect_retry_config()
        )

        self._host: str | None = None
        self._transport: asyncio.Transport | None = None
        self._protocol: TCPProtocol | None = None
        self._buffer = ReceiveBuffer()
        self._reads: deque[ReadRequest | TLSRequest] = deque()
        self._writes: deque[WriteRequest | TLSRequest] = deque()
        self._write_in_flight: WriteRequest | None = None
        self._reading_paused = False

        self._eof = False
        self._transport_lost = False
        self._lost_while_connecting: tuple[Exception | None] | None = None
        self._cancelled_reads = 0
        self._cancelled_writes = 0
        self._close_error: SocketError | None = None
        self._close_timer: asyncio.TimerHandle | None = None

        self._connect_task: asyncio.Task | None = None
        self._tls_task: asyncio.Task | None = None
        self._listener: Listener | None = None
        self._on_accepted: Callable[[Connection], None] | None = None

    def __repr__(self) -> str:
        return (
            f"Connection(id={self.connection_id}, "
            f"state={self.state.value}, "
            f"remote={self.remote_address})"
        )

    @property
    def delegate(self):
        return self._sink.delegate

    @delegate.setter
    def delegate(self, delegate: Any):
        self._sink.delegate = delegate

    @property
    def is_connected(self):
        return self.state == ConnectionState.CONNECTED

    @property
    def pending_reads(self):
        return len(self._reads)

    @property
    def pending_writes(self):
        return len(self._writes) + (1 if self._write_in_flight else 0)

    @property
    def buffered(self):
        return len(self._buffer)

    @property
    def _loop(self) -> asyncio.AbstractEventLoop:
        return self.demultiplexer.loop

    def connect(
        self,
        host: str,
        port: int,
        timeout: float | None = None,
        tls: ssl.SSLContext | None = None,
        server_hostname: str | None = None,
        interface: str | None = None,
    ):
        _check_timeout(timeout)

        if tls is not None and not isinstance(tls, ssl.SSLContext):
            raise TypeError("tls must be an ssl.SSLContext")

        if timeout is None:
            timeout = self.env.connect_timeout

        self.demultiplexer.submit(
            self._connect,
            host,
            port,
            timeout,
            tls,
            server_hostname,
            interface,
        )

    def read(
        self,
        policy: ReadPolicy,
        tag: Any = None,
        timeout: float | None = None,
    ):
        if not isinstance(policy, READ_POLICIES):
            raise TypeError(f"Unsupported read policy - {policy!r}")

        _check_timeout(timeout)

        self.demultiplexer.submit(
            self._enqueue_read,
            ReadRequest(policy, tag=tag, timeout=timeout),
        )

    def write(
        self,
        data: bytes | bytearray | memoryview,
        tag: Any = None,
        timeout: float | None = None,
    ):
        if not isinstance(data, (bytes, bytearray, memoryview)):
            raise TypeError(f"Write payload must be bytes-like - got {type(data).__name__}")

        _check_timeout(timeout)

        payload = bytes(data)
        if len(payload) == 0:
            return

        self.demultiplexer.submit(
            self._enqueue_write,
            WriteRequest(payload, tag=tag, timeout=timeout),
        )

    def start_tls(
        self,
        context: ssl.SSLContext,
        server_side: bool = False,
        server_hostname: str | None = None,
    ):
        if not isinstance(context, ssl.SSLContext):
            raise TypeError("context must be an ssl.SSLContext")

        self.demultiplexer.submit(
            self._enqueue_tls,
            TLSRequest(
                context,
                server_side=server_side,
                server_hostname=server_hostname,
            ),
        )

    def close(self, graceful: bool = True):
        """
        A graceful close cancels pending reads and flushes every queued
        write before disconnecting. Otherwise the transport is aborted and
        anything not yet handed to the kernel is dropped.
        """
        self.demultiplexer.submit(self._close, graceful)

    def _log(self, model: type, message: str, **fields: Any):
        host, port = self.remote_address or (self._host or "", 0)

        self.demultiplexer.logger.schedule(
            model(
                message=message,
                connection_id=self.connection_id,
                host=str(host),
                port=port,
                state=self.state.value,
                **fields,
            ),
            stacklevel=2,
        )

    def _set_state(self, state: ConnectionState):
        if not self.state.can_transition(state):
            raise RuntimeError(
                f"Invalid connection state transition {self.state.value} -> {state.value}"
            )

        self.state = state
        self._log(ConnectionTrace, f"State changed to {state.value}")

    def _begin_attempt(self):
        self.generation += 1
        self._sink.reset()

        self.is_secure = False
        self._eof = False
        self._transport_lost = False
        self._lost_while_connecting = None
        self._cancelled_reads = 0
        self._cancelled_writes = 0
        self._close_error = None
        self._reading_paused = False

    def _connect(
        self,
        host: str,
        port: int,
        timeout: float,
        tls: ssl.SSLContext | None,
        server_hostname: str | None,
        interface: str | None,
    ):
        if self.state != ConnectionState.DISCONNECTED:
            self._log(ConnectionDebug, "Connect ignored - connection is not disconnected")
            return

        self._begin_attempt()
        self._host = host
        self.remote_address = (host, port)
        self._set_state(ConnectionState.CONNECTING)
        self.demultiplexer.register(self)

        self._connect_task = self._loop.create_task(
            self._run_connect(
                host,
                port,
                timeout,
                tls,
                server_hostname,
                interface,
            )
        )

    async def _run_connect(
        self,
        host: str,
        port: int,
        timeout: float,
        tls: ssl.SSLContext | None,
        server_hostname: str | None,
        interface: str | None,
    ):
        generation = self.generation

        try:
            await asyncio.wait_for(
                retry_with_backoff(
                    lambda: self._open_connection(
                        host,
                        port,
                        tls,
                        server_hostname,
                        interface,
                        generation,
                    ),
                    policy=self._retry_policy,
                ),
                timeout,
            )

        except asyncio.CancelledError:
            raise

        except Exception as err:
            if self.generation == generation:
                self._connect_task = None
                self._abort(self._to_connect_error(err, host, port, tls))

            return

        if self.generation != generation:
            return

        self._connect_task = None
        self._set_state(ConnectionState.CONNECTED)
        self._log(ConnectionInfo, "Connected")
        self._sink.dispatch('on_connect')

        if self._lost_while_connecting is not None:
            (exc,) = self._lost_while_connecting
            self._connection_lost(exc)
            return

        self._service()

    async def _open_connection(
        self,
        host: str,
        port: int,
        tls: ssl.SSLContext | None,
        server_hostname: str | None,
        interface: str | None,
        generation: int,
    ):
        options: dict[str, Any] = {}

        if tls is not None:
            options.update(
                ssl=tls,
                server_hostname=server_hostname,
                ssl_handshake_timeout=self.env.tls_handshake_timeout,
            )

        if interface:
            options['local_addr'] = (interface, 0)

        return await self._loop.create_connection(
            lambda: TCPProtocol(self, generation),
            host,
            port,
            **options,
        )

    def _to_connect_error(
        self,
        err: Exception,
        host: str,
        port: int,
        tls: ssl.SSLContext | None,
    ) -> ConnectError:
        if isinstance(err, TimeoutError):
            reason = ConnectErrorReason.TIMEOUT

        elif isinstance(err, ssl.SSLError):
            reason = ConnectErrorReason.TLS_HANDSHAKE

        elif tls is not None and isinstance(err, ConnectionAbortedError):
            reason = ConnectErrorReason.TLS_HANDSHAKE

        elif isinstance(err, ConnectionRefusedError):
            reason = ConnectErrorReason.REFUSED

        else:
            reason = ConnectErrorReason.UNREACHABLE

        return ConnectError(reason, (host, port), cause=err)

    def _to_io_error(self, exc: BaseException) -> SocketError:
        if isinstance(exc, SocketError):
            return exc

        if isinstance(exc, ssl.SSLError) and self.is_secure:
            return ProtocolViolation(
                "Malformed TLS record",
                cause=exc,
            )

        return ConnectionIOError(
            f"Connection lost - {type(exc).__name__}",
            cause=exc,
            errno=getattr(exc, 'errno', None),
        )

    def _prepare_accepted(
        self,
        listener: Listener | None,
        on_accepted: Callable[[Connection], None],
    ) -> TCPProtocol:
        self._begin_attempt()
        self._listener = listener
        self._on_accepted = on_accepted
        self._set_state(ConnectionState.CONNECTING)

        return TCPProtocol(self, self.generation)

    def _connection_made(
        self,
        transport: asyncio.Transport,
        protocol: TCPProtocol,
    ):
        self._transport = transport
        self._protocol = protocol
        transport.set_write_buffer_limits(high=0)

        self.local_address = _to_address(transport.get_extra_info('sockname'))
        if peer := _to_address(transport.get_extra_info('peername')):
            self.remote_address = peer

        self.is_secure = transport.get_extra_info('ssl_object') is not None

        if self._on_accepted is None:
            return

        on_accepted, self._on_accepted = self._on_accepted, None

        self.demultiplexer.register(self)
        self._set_state(ConnectionState.CONNECTED)
        self._log(ConnectionInfo, "Accepted")

        on_accepted(self)
        self._service()

    def _data_received(self, data: bytes):
        self._buffer += data
        self._service()

    def _eof_received(self) -> bool:
        self._eof = True
        self._service()

        return not self.is_secure

    def _connection_lost(self, exc: Exception | None):
        self._transport_lost = True

        if self.state == ConnectionState.CONNECTING:
            self._lost_while_connecting = (exc,)
            return

        if self.state == ConnectionState.DISCONNECTED:
            return

        self._transport = None

        if exc is None:
            self._eof = True
            self._service()
            return

        self._log(ConnectionErrorEntry, "Transport lost", error=repr(exc))
        self._teardown(self._to_io_error(exc))

    def _route_error(self, exc: Exception):
        self._abort(self._to_io_error(exc))

    def _write_drained(self):
        if (
            self._write_in_flight is not None
            and self._transport is not None
            and self._transport.get_write_buffer_size() == 0
        ):
            self._complete_write()

        self._service()

    def _enqueue_read(self, request: ReadRequest):
        if self.state == ConnectionState.CLOSING:
            self._log(ConnectionDebug, "Read ignored - connection is closing")
            return

        self._reads.append(request)
        self._service()

    def _enqueue_write(self, request: WriteRequest):
        if self.state == ConnectionState.CLOSING:
            self._log(ConnectionDebug, "Write ignored - connection is closing")
            return

        self._writes.append(request)
        self._service()

    def _enqueue_tls(self, request: TLSRequest):
        if self.state == ConnectionState.CLOSING:
            self._log(ConnectionDebug, "TLS upgrade ignored - connection is closing")
            return

        self._reads.append(request)
        self._writes.append(request)
        self._service()

    def _service(self):
        if self.state not in (ConnectionState.CONNECTED, ConnectionState.CLOSING):
            return

        self._service_writes()

        if self.state == ConnectionState.CONNECTED:
            self._service_reads()

        if self.state == ConnectionState.CONNECTED:
            self._maybe_start_tls()

        if self.state == ConnectionState.CONNECTED and self._eof:
            self._settle_eof()

        self._update_reading()
        self._maybe_finish_close()

    def _service_writes(self):
        while (
            self._write_in_flight is None
            and self._writes
            and self._transport is not None
        ):
            if isinstance(self._writes[0], TLSRequest):
                return

            request = self._writes.popleft()
            self._write_in_flight = request
            self._transport.write(request.payload)

            if self._transport.get_write_buffer_size() == 0:
                self._complete_write()

            elif request.timeout is not None:
                request.timer = self._loop.call_later(
                    request.timeout,
                    self._write_timed_out,
                    request,
                )

    def _complete_write(self):
        request = self._write_in_flight
        self._write_in_flight = None

        request.cancel_timer()
        self._sink.dispatch('on_write_complete', request.tag)

    def _write_timed_out(self, request: WriteRequest):
        if request is self._write_in_flight:
            self._abort(WriteTimeoutError(request.timeout, request.tag))

    def _service_reads(self):
        while self._reads:
            head = self._reads[0]
            if isinstance(head, TLSRequest):
                return

            if head.timeout is not None and head.timer is None:
                head.timer = self._loop.call_later(
                    head.timeout,
                    self._read_timed_out,
                    head,
                )

            outcome, data = head.policy.consume(self._buffer)
            if outcome == ReadOutcome.PENDING:
                return

            self._reads.popleft()
            head.cancel_timer()

            if outcome == ReadOutcome.MAXED_OUT:
                self._abort(ReadMaxedOutError(head.policy.max_length, head.tag))
                return

            self._sink.dispatch('on_data', data, head.tag)

    def _read_timed_out(self, request: ReadRequest):
        if self._reads and self._reads[0] is request:
            self._abort(ReadTimeoutError(request.timeout, request.tag))

    def _settle_eof(self):
        if not self._reads:
            if self._buffer and not self._transport_lost:
                return

            self._begin_closing(None)
            return

        head = self._reads[0]
        if isinstance(head, ReadRequest):
            data = head.policy.partial(self._buffer)

            if data is not None:
                self._reads.popleft()
                head.cancel_timer()
                self._sink.dispatch('on_data', data, head.tag)

        pending = len(self._reads)
        error = RemoteClosedError(pending, len(self._buffer)) if pending else None

        self._cancel_reads()
        self._begin_closing(error)

    def _cancel_reads(self) -> int:
        count = len(self._reads)

        for request in self._reads:
            if isinstance(request, ReadRequest):
                request.cancel_timer()

        self._reads.clear()

        # Writes queued behind an upgrade must never reach the plaintext transport.
        kept: deque[WriteRequest | TLSRequest] = deque()
        while self._writes:
            request = self._writes.popleft()
            if isinstance(request, TLSRequest):
                self._cancelled_writes += sum(
                    1 for queued in self._writes
                    if isinstance(queued, WriteRequest)
                )

                for queued in self._writes:
                    if isinstance(queued, WriteRequest):
                        queued.cancel_timer()

                self._writes.clear()
                break

            kept.append(request)

        self._writes = kept

        return count

    def _cancelled(self, always: bool = False) -> Cancelled | None:
        reads = self._cancelled_reads + len(self._reads)
        writes = self._cancelled_writes + sum(
            1 for request in self._writes
            if isinstance(request, WriteRequest)
        )

        if self._write_in_flight is not None:
            writes += 1

        if reads or writes or always:
            return Cancelled(reads=reads, writes=writes)

        return None

    def _maybe_start_tls(self):
        if self._tls_task is not None or not self._reads or not self._writes:
            return

        request = self._reads[0]
        if (
            not isinstance(request, TLSRequest)
            or self._writes[0] is not request
            or self._write_in_flight is not None
            or self._transport is None
        ):
            return

        self._reads.popleft()
        self._writes.popleft()

        if self._buffer:
            self._abort(
                ConnectError(
                    ConnectErrorReason.TLS_HANDSHAKE,
                    self.remote_address,
                    unread=len(self._buffer),
                )
            )
            return

        self._pause_reading()
        self._tls_task = self._loop.create_task(self._run_tls(request))

    async def _run_tls(self, request: TLSRequest):
        generation = self.generation

        server_hostname = request.server_hostname
        if server_hostname is None and request.server_side is False:
            server_hostname = self._host

        try:
            transport = await self._loop.start_tls(
                self._transport,
                self._protocol,
                request.context,
                server_side=request.server_side,
                server_hostname=server_hostname,
                ssl_handshake_timeout=self.env.tls_handshake_timeout,
            )

        except asyncio.CancelledError:
            raise

        except Exception as err:
            if self.generation == generation:
                self._tls_task = None
                self._abort(
                    ConnectError(
                        ConnectErrorReason.TLS_HANDSHAKE,
                        self.remote_address,
                        cause=err,
                    )
                )

            return

        if self.generation != generation:
            transport.abort()
            return

        self._tls_task = None
        self._transport = transport
        transport.set_write_buffer_limits(high=0)

        self._reading_paused = False
        self.is_secure = True

        self._log(ConnectionInfo, "TLS established")
        self._sink.dispatch('on_tls_established')
        self._service()

    def _pause_reading(self):
        if self._transport is not None and self._reading_paused is False:
            self._transport.pause_reading()
            self._reading_paused = True

    def _update_reading(self):
        if self._transport is None or self._tls_task is not None:
            return

        should_pause = (
            self.state != ConnectionState.CONNECTED
            or (
                not self._reads
                and len(self._buffer) >= self.env.HYPERSOCK_READ_BUFFER_HIGH_WATER
            )
            or (self._reads and isinstance(self._reads[0], TLSRequest))
        )

        if should_pause:
            self._pause_reading()

        elif self._reading_paused:
            self._transport.resume_reading()
            self._reading_paused = False

    def _close(self, graceful: bool = True):
        if self.state == ConnectionState.DISCONNECTED:
            return

        if self.state == ConnectionState.CONNECTING or self._tls_task is not None:
            self._abort(self._cancelled())
            return

        if self.state == ConnectionState.CLOSING:
            if graceful is False:
                self._abort(self._cancelled())

            return

        head = self._reads[0] if self._reads else None
        if (
            isinstance(head, ReadRequest)
            and getattr(head.policy, 'deliver_partial', False)
            and self._buffer
        ):
            self._reads.popleft()
            head.cancel_timer()
            self._sink.dispatch('on_data', head.policy.partial(self._buffer), head.tag)

        self._cancelled_reads = self._cancel_reads()

        if graceful is False:
            self._abort(self._cancelled())
            return

        self._begin_closing(None)
        self._service()

    def _begin_closing(self, error: SocketError | None):
        self._close_error = error
        self._set_state(ConnectionState.CLOSING)
        self._pause_reading()

        if self.pending_writes and self._transport is not None:
            self._close_timer = self._loop.call_later(
                self.env.close_timeout,
                self._close_timed_out,
            )

    def _close_timed_out(self):
        self._close_timer = None

        if self.state == ConnectionState.CLOSING:
            self._log(ConnectionDebug, "Graceful close timed out - aborting")
            self._abort(self._cancelled())

    def _maybe_finish_close(self):
        if self.state != ConnectionState.CLOSING:
            return

        remaining = self.pending_writes
        if remaining and self._transport is not None:
            return

        error = self._close_error
        if remaining or self._cancelled_reads:
            error = Cancelled(
                reads=self._cancelled_reads,
                writes=remaining + self._cancelled_writes,
            )

        if self._transport is not None:
            self._transport.close()

        self._teardown(error)

    def _abort(self, error: SocketError | None):
        if self._transport is not None:
            self._transport.abort()

        self._teardown(error)

    def _shutdown(self, error: SocketError | None):
        self._abort(error or self._cancelled(always=True))

    def _teardown(self, error: SocketError | None):
        if self.state == ConnectionState.DISCONNECTED:
            return

        self.generation += 1

        for request in self._reads:
            if isinstance(request, ReadRequest):
                request.cancel_timer()

        if self._write_in_flight is not None:
            self._write_in_flight.cancel_timer()

        self._reads.clear()
        self._writes.clear()
        self._write_in_flight = None

        if self._close_timer is not None:
            self._close_timer.cancel()
            self._close_timer = None

        current = asyncio.current_task(self._loop)
        for task in (self._connect_task, self._tls_task):
            if task is not None and task is not current:
                task.cancel()

        self._connect_task = None
        self._tls_task = None

        self._buffer.clear()
        self._transport = None
        self._protocol = None
        self._on_accepted = None
        self._reading_paused = False

        self._set_state(ConnectionState.DISCONNECTED)
        self.demultiplexer.unregister(self)

        if self._listener is not None:
            self._listener._connection_closed(self)

        if error is None:
            self._log(ConnectionDebug, "Disconnected")

        else:
            self._log(ConnectionErrorEntry, "Disconnected", error=str(error))

        self._sink.terminate('on_disconnect', error)
