import pytest

from hypersock.core.connection import (
    Connection,
    ReadDelimiter,
    create_client_ssl_context,
)
from hypersock.core.delegates import (
    AcceptEvent,
    ConnectEvent,
    DataEvent,
    DelegateQueue,
    DisconnectEvent,
    EventStream,
    ListenerClosedEvent,
    WriteCompleteEvent,
)
from hypersock.core.demultiplexer import Demultiplexer
from hypersock.core.errors import ConnectError, ConnectErrorReason
from hypersock.core.listener import Listener
from hypersock.env import Env


def describe(event) -> tuple:
    if isinstance(event, DataEvent):
        return ('data', event.tag, event.data)

    if isinstance(event, WriteCompleteEvent):
        return ('written', event.tag)

    return (type(event).__name__,)


class TestTLSConnect:
    @pytest.mark.asyncio
    async def test_connect_with_tls(
        self,
        demultiplexer: Demultiplexer,
        delegate_queue: DelegateQueue,
        server_ssl_context,
        client_ssl_context,
    ):
        server_events = EventStream()
        client_events = EventStream()

        listener = Listener(server_events, demultiplexer, delegate_queue)
        host, port = listener.accept(interface="127.0.0.1", tls=server_ssl_context)

        client = Connection(client_events, demultiplexer, delegate_queue)
        client.connect(
            host,
            port,
            tls=client_ssl_context,
            server_hostname="localhost",
        )

        accepted = await server_events.expect(AcceptEvent, timeout=5)
        await client_events.expect(ConnectEvent, timeout=5)

        assert client.is_secure
        assert accepted.connection.is_secure

        accepted.connection.read(ReadDelimiter(b"\n"), tag="request")
        client.write(b"encrypted hello\n")

        received = await server_events.expect(DataEvent, timeout=5)

        assert received.data == b"encrypted hello\n"

        client.close()
        await client_events.expect(WriteCompleteEvent, timeout=5)
        disconnected = await client_events.expect(DisconnectEvent, timeout=5)

        assert disconnected.error is None

        listener.close(close_connections=True)
        await server_events.expect(DisconnectEvent, timeout=5)
        await server_events.expect(ListenerClosedEvent, timeout=5)

    @pytest.mark.asyncio
    async def test_untrusted_certificate_fails_handshake(
        self,
        demultiplexer: Demultiplexer,
        delegate_queue: DelegateQueue,
        events: EventStream,
        server_ssl_context,
        env: Env,
    ):
        server_events = EventStream()

        listener = Listener(server_events, demultiplexer, delegate_queue)
        host, port = listener.accept(interface="127.0.0.1", tls=server_ssl_context)

        client = Connection(events, demultiplexer, delegate_queue)
        client.connect(
            host,
            port,
            tls=create_client_ssl_context(verify="REQUIRED", env=env),
            server_hostname="localhost",
        )

        disconnected = await events.expect(DisconnectEvent, timeout=5)

        assert isinstance(disconnected.error, ConnectError)
        assert disconnected.error.reason == ConnectErrorReason.TLS_HANDSHAKE
        assert server_events.empty()

        listener.close()
        await server_events.expect(ListenerClosedEvent, timeout=5)

    @pytest.mark.asyncio
    async def test_rejects_non_ssl_context(
        self,
        demultiplexer: Demultiplexer,
        delegate_queue: DelegateQueue,
        events: EventStream,
    ):
        client = Connection(events, demultiplexer, delegate_queue)

        with pytest.raises(TypeError):
            client.connect("127.0.0.1", 443, tls=True)


class TestStartTLS:
    @pytest.mark.asyncio
    async def test_upgrade_after_plaintext_exchange(
        self,
        demultiplexer: Demultiplexer,
        delegate_queue: DelegateQueue,
        server_ssl_context,
        client_ssl_context,
    ):
        server_events = EventStream()
        client_events = EventStream()

        listener = Listener(server_events, demultiplexer, delegate_queue)
        host, port = listener.accept(interface="127.0.0.1")

        client = Connection(client_events, demultiplexer, delegate_queue)
        client.connect(host, port)

        server = (await server_events.expect(AcceptEvent, timeout=5)).connection
        await client_events.expect(ConnectEvent, timeout=5)

        server.read(ReadDelimiter(b"\n"), tag="command")
        server.write(b"OK\n", tag="ready")
        server.start_tls(server_ssl_context, server_side=True)
        server.read(ReadDelimiter(b"\n"), tag="secret")

        client.write(b"STARTTLS\n", tag="command")
        client.read(ReadDelimiter(b"\n"), tag="ready")
        client.start_tls(client_ssl_context, server_hostname="localhost")
        client.write(b"secret\n", tag="secret")

        client_seen = [describe(await client_events.next(timeout=5)) for _ in range(4)]
        server_seen = [describe(await server_events.next(timeout=5)) for _ in range(4)]

        assert client_seen == [
            ('written', "command"),
            ('data', "ready", b"OK\n"),
            ('TLSEstablishedEvent',),
            ('written', "secret"),
        ]
        assert server_seen == [
            ('written', "ready"),
            ('data', "command", b"STARTTLS\n"),
            ('TLSEstablishedEvent',),
            ('data', "secret", b"secret\n"),
        ]
        assert client.is_secure
        assert server.is_secure

        client.close()
        await client_events.expect(DisconnectEvent, timeout=5)

        listener.close(close_connections=True)

        server_closed = [await server_events.next(timeout=5) for _ in range(2)]

        assert {type(event) for event in server_closed} == {
            DisconnectEvent,
            ListenerClosedEvent,
        }
