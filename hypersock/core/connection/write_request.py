import asyncio
import ssl
from dataclasses import dataclass, field
from typing import Any


@dataclass(slots=True)
class WriteRequest:
    payload: bytes
    tag: Any = None
    timeout: float | None = None
    timer: asyncio.TimerHandle | None = field(default=None, repr=False)

    def cancel_timer(self):
        if self.timer:
            self.timer.cancel()
            self.timer = None


@dataclass(slots=True, eq=False)
class TLSRequest:
    """
    Sits in both the read and write queues. The upgrade starts once it
    heads both and no write is in flight.
    """

    context: ssl.SSLContext
    server_side: bool = False
    server_hostname: str | None = None
