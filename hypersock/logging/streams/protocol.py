import asyncio


class LoggerProtocol(asyncio.streams.FlowControlMixin, asyncio.Protocol):
    """
    Write-only protocol for stdout/stderr pipes. The flow control mixin
    supplies the drain helper ``asyncio.StreamWriter`` waits on.
    """

    def __init__(self, loop: asyncio.AbstractEventLoop | None = None) -> None:
        super().__init__(loop=loop)
        self.transport: asyncio.WriteTransport | None = None

    def connection_made(self, transport: asyncio.WriteTransport) -> None:
        self.transport = transport

    def connection_lost(self, exc: Exception | None) -> None:
        super().connection_lost(exc)
        self.transport = None
