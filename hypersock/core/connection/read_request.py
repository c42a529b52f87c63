from __future__ import annotations

import asyncio
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .receive_buffer import ReceiveBuffer


class ReadOutcome(Enum):
    PENDING = "pending"
    COMPLETE = "complete"
    MAXED_OUT = "maxed_out"


@dataclass(slots=True, frozen=True)
class ReadLength:
    """Completes with exactly ``length`` bytes."""

    length: int
    deliver_partial: bool = False

    def __post_init__(self):
        if self.length <= 0:
            raise ValueError(f"Read length must be positive - got {self.length}")

    def consume(self, buffer: ReceiveBuffer) -> tuple[ReadOutcome, bytes | None]:
        if len(buffer) >= self.length:
            return ReadOutcome.COMPLETE, buffer.extract(self.length)

        return ReadOutcome.PENDING, None

    def partial(self, buffer: ReceiveBuffer) -> bytes | None:
        if self.deliver_partial and buffer:
            return buffer.extract(min(len(buffer), self.length))

        return None


@dataclass(slots=True, frozen=True)
class ReadDelimiter:
    """
    Completes with every byte up to and including the first occurrence
    of ``delimiter``. Bytes after it stay buffered for the next read.
    """

    delimiter: bytes
    max_length: int | None = None
    deliver_partial: bool = False

    def __post_init__(self):
        if not isinstance(self.delimiter, (bytes, bytearray)):
            raise TypeError("Delimiter must be bytes")

        if len(self.delimiter) == 0:
            raise ValueError("Delimiter must not be empty")

        if self.max_length is not None and self.max_length < len(self.delimiter):
            raise ValueError("Max length must fit the delimiter")

    def consume(self, buffer: ReceiveBuffer) -> tuple[ReadOutcome, bytes | None]:
        end = buffer.find(bytes(self.delimiter))

        if end != -1:
            if self.max_length is not None and end > self.max_length:
                return ReadOutcome.MAXED_OUT, None

            return ReadOutcome.COMPLETE, buffer.extract(end)

        if self.max_length is not None and len(buffer) >= self.max_length:
            return ReadOutcome.MAXED_OUT, None

        return ReadOutcome.PENDING, None

    def partial(self, buffer: ReceiveBuffer) -> bytes | None:
        if self.deliver_partial and buffer:
            return buffer.extract_all()

        return None


@dataclass(slots=True, frozen=True)
class ReadToClose:
    """Completes with everything received once the peer closes."""

    max_length: int | None = None

    def __post_init__(self):
        if self.max_length is not None and self.max_length <= 0:
            raise ValueError(f"Max length must be positive - got {self.max_length}")

    def consume(self, buffer: ReceiveBuffer) -> tuple[ReadOutcome, bytes | None]:
        if self.max_length is not None and len(buffer) > self.max_length:
            return ReadOutcome.MAXED_OUT, None

        return ReadOutcome.PENDING, None

    def partial(self, buffer: ReceiveBuffer) -> bytes | None:
        return buffer.extract_all()


@dataclass(slots=True, frozen=True)
class ReadAvailable:
    """Completes with whatever is buffered once at least one byte is."""

    max_length: int | None = None

    def __post_init__(self):
        if self.max_length is not None and self.max_length <= 0:
            raise ValueError(f"Max length must be positive - got {self.max_length}")

    def consume(self, buffer: ReceiveBuffer) -> tuple[ReadOutcome, bytes | None]:
        if not buffer:
            return ReadOutcome.PENDING, None

        count = len(buffer)
        if self.max_length is not None:
            count = min(count, self.max_length)

        return ReadOutcome.COMPLETE, buffer.extract(count)

    def partial(self, buffer: ReceiveBuffer) -> bytes | None:
        return None


ReadPolicy = ReadLength | ReadDelimiter | ReadToClose | ReadAvailable


@dataclass(slots=True)
class ReadRequest:
    policy: ReadPolicy
    tag: Any = None
    timeout: float | None = None
    timer: asyncio.TimerHandle | None = field(default=None, repr=False)

    def cancel_timer(self):
        if self.timer:
            self.timer.cancel()
            self.timer = None
