from __future__ import annotations


class ReceiveBuffer:
    def __init__(self) -> None:
        self.buffer = bytearray()
        self._search_delimiter: bytes | None = None
        self._next_search = 0

    def __iadd__(self, byteslike: bytes | bytearray) -> "ReceiveBuffer":
        self.buffer += byteslike
        return self

    def __bool__(self) -> bool:
        return bool(len(self))

    def __len__(self) -> int:
        return len(self.buffer)

    def __bytes__(self) -> bytes:
        return bytes(self.buffer)

    def extract(self, count: int) -> bytes:
        out = bytes(self.buffer[:count])
        del self.buffer[:count]

        self._next_search = 0

        return out

    def extract_all(self) -> bytes:
        return self.extract(len(self.buffer))

    def find(self, delimiter: bytes) -> int:
        """
        Return the index just past the first occurrence of the delimiter,
        or -1. Repeated searches for the same delimiter only scan bytes
        appended since the last miss.
        """
        if delimiter != self._search_delimiter:
            self._search_delimiter = delimiter
            self._next_search = 0

        search_start_index = max(0, self._next_search - len(delimiter) + 1)
        idx = self.buffer.find(delimiter, search_start_index)

        if idx == -1:
            self._next_search = len(self.buffer)
            return -1

        return idx + len(delimiter)

    def clear(self):
        self.buffer.clear()
        self._search_delimiter = None
        self._next_search = 0
