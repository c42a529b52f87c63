from dataclasses import dataclass
from typing import Any


@dataclass(slots=True)
class SendRequest:
    data: bytes
    host: str
    port: int
    timeout: float | None = None
    tag: Any = None
