import asyncio
import datetime
import ipaddress
from typing import AsyncGenerator, Generator

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import ec
from cryptography.x509.oid import NameOID

from hypersock.core.connection import (
    create_client_ssl_context,
    create_server_ssl_context,
)
from hypersock.core.delegates import DelegateQueue, EventStream
from hypersock.core.demultiplexer import Demultiplexer
from hypersock.env import Env
from hypersock.logging import LoggingConfig


@pytest.fixture(autouse=True)
def configure_log_level():
    config = LoggingConfig()
    config.update(log_level="error")
    yield


@pytest.fixture
def env() -> Env:
    return Env(
        HYPERSOCK_CONNECT_TIMEOUT="5s",
        HYPERSOCK_CONNECT_RETRIES=1,
        HYPERSOCK_CLOSE_TIMEOUT="5s",
        HYPERSOCK_TLS_HANDSHAKE_TIMEOUT="5s",
        HYPERSOCK_LOG_LEVEL="error",
    )


@pytest.fixture
def demultiplexer(env: Env) -> Generator[Demultiplexer, None, None]:
    demultiplexer = Demultiplexer(name="test-demultiplexer", env=env)
    demultiplexer.start()

    yield demultiplexer

    demultiplexer.stop(timeout=5)


@pytest.fixture
async def delegate_queue() -> AsyncGenerator[DelegateQueue, None]:
    queue = DelegateQueue(
        loop=asyncio.get_running_loop(),
        name="test-delegates",
    )

    yield queue

    await queue.shutdown()


@pytest.fixture
async def events() -> EventStream:
    return EventStream()


@pytest.fixture
async def echo_server() -> AsyncGenerator[int, None]:
    async def echo(reader: asyncio.StreamReader, writer: asyncio.StreamWriter):
        try:
            while data := await reader.read(65536):
                writer.write(data)
                await writer.drain()

        except ConnectionError:
            pass

        finally:
            writer.close()

    server = await asyncio.start_server(echo, "127.0.0.1", 0)

    yield server.sockets[0].getsockname()[1]

    server.close()


@pytest.fixture(scope="session")
def tls_files(tmp_path_factory) -> tuple[str, str]:
    key = ec.generate_private_key(ec.SECP256R1())
    name = x509.Name([
        x509.NameAttribute(NameOID.COMMON_NAME, "localhost"),
    ])

    now = datetime.datetime.now(datetime.timezone.utc)
    certificate = (
        x509.CertificateBuilder()
        .subject_name(name)
        .issuer_name(name)
        .public_key(key.public_key())
        .serial_number(x509.random_serial_number())
        .not_valid_before(now - datetime.timedelta(minutes=5))
        .not_valid_after(now + datetime.timedelta(days=1))
        .add_extension(
            x509.SubjectAlternativeName([
                x509.DNSName("localhost"),
                x509.IPAddress(ipaddress.ip_address("127.0.0.1")),
            ]),
            critical=False,
        )
        .add_extension(
            x509.BasicConstraints(ca=True, path_length=None),
            critical=True,
        )
        .add_extension(
            x509.SubjectKeyIdentifier.from_public_key(key.public_key()),
            critical=False,
        )
        .add_extension(
            x509.AuthorityKeyIdentifier.from_issuer_public_key(key.public_key()),
            critical=False,
        )
        .sign(key, hashes.SHA256())
    )

    directory = tmp_path_factory.mktemp("tls")
    certfile = directory / "cert.pem"
    keyfile = directory / "key.pem"

    certfile.write_bytes(certificate.public_bytes(serialization.Encoding.PEM))
    keyfile.write_bytes(
        key.private_bytes(
            serialization.Encoding.PEM,
            serialization.PrivateFormat.PKCS8,
            serialization.NoEncryption(),
        )
    )

    return str(certfile), str(keyfile)


@pytest.fixture
def server_ssl_context(tls_files):
    certfile, keyfile = tls_files
    return create_server_ssl_context(certfile, keyfile=keyfile)


@pytest.fixture
def client_ssl_context(tls_files, env: Env):
    certfile, _ = tls_files
    return create_client_ssl_context(cafile=certfile, verify="REQUIRED", env=env)
