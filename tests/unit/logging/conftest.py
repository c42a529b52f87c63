import asyncio
from typing import AsyncGenerator
from unittest.mock import AsyncMock, MagicMock

import pytest

from hypersock.logging.streams.logger_stream import LoggerStream


def create_mock_stream_writer() -> MagicMock:
    mock_writer = MagicMock(spec=asyncio.StreamWriter)
    mock_writer.write = MagicMock()
    mock_writer.drain = AsyncMock()
    mock_writer.close = MagicMock()
    mock_writer.is_closing = MagicMock(return_value=False)
    return mock_writer


@pytest.fixture
def stdout_writer() -> MagicMock:
    return create_mock_stream_writer()


@pytest.fixture
def stderr_writer() -> MagicMock:
    return create_mock_stream_writer()


@pytest.fixture
async def console_logger_stream(
    stdout_writer: MagicMock,
    stderr_writer: MagicMock,
) -> AsyncGenerator[LoggerStream, None]:
    stream = LoggerStream(
        name="console",
        template="{level} - {message}",
    )

    await stream.initialize(
        stdout_writer=stdout_writer,
        stderr_writer=stderr_writer,
    )

    yield stream

    await stream.close()


@pytest.fixture
async def json_logger_stream(tmp_path) -> AsyncGenerator[LoggerStream, None]:
    stream = LoggerStream(
        name="json",
        filename="test.json",
        directory=str(tmp_path),
    )

    yield stream

    await stream.close()
