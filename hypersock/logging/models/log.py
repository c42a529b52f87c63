import msgspec
import threading
import datetime
from typing import Generic, TypeVar
from .entry import Entry


T = TypeVar('T')


class Log(msgspec.Struct, Generic[T], kw_only=True):
    entry: Entry
    filename: str
    function_name: str
    line_number: int
    thread_id: int = msgspec.field(
        default_factory=threading.get_native_id,
    )
    thread_name: str = msgspec.field(
        default_factory=lambda: threading.current_thread().name,
    )
    timestamp: str = msgspec.field(
        default_factory=lambda: datetime.datetime.now(datetime.UTC).isoformat()
    )

    def to_template(self, template: str) -> str:
        return self.entry.to_template(
            template,
            context={
                "filename": self.filename,
                "function_name": self.function_name,
                "line_number": self.line_number,
                "thread_id": self.thread_id,
                "thread_name": self.thread_name,
                "timestamp": self.timestamp,
            },
        )
