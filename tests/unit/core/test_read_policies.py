import pytest

from hypersock.core.connection import (
    ConnectionState,
    ReadAvailable,
    ReadDelimiter,
    ReadLength,
    ReadOutcome,
    ReadToClose,
    ReceiveBuffer,
)


def make_buffer(data: bytes) -> ReceiveBuffer:
    buffer = ReceiveBuffer()
    buffer += data
    return buffer


class TestReceiveBuffer:
    def test_extract_removes_from_front(self):
        buffer = make_buffer(b"abcdef")

        assert buffer.extract(2) == b"ab"
        assert bytes(buffer) == b"cdef"
        assert len(buffer) == 4

    def test_find_returns_index_past_delimiter(self):
        buffer = make_buffer(b"one\r\ntwo")

        assert buffer.find(b"\r\n") == 5

    def test_find_spans_appended_chunks(self):
        buffer = make_buffer(b"one\r")

        assert buffer.find(b"\r\n") == -1

        buffer += b"\ntwo"

        assert buffer.find(b"\r\n") == 5

    def test_find_restarts_after_extract(self):
        buffer = make_buffer(b"a\nb\n")

        assert buffer.find(b"\n") == 2
        buffer.extract(2)

        assert buffer.find(b"\n") == 2

    def test_clear_empties_buffer(self):
        buffer = make_buffer(b"abc")
        buffer.clear()

        assert not buffer
        assert buffer.find(b"a") == -1


class TestReadLength:
    def test_pending_until_length_buffered(self):
        buffer = make_buffer(b"abc")

        outcome, data = ReadLength(4).consume(buffer)

        assert outcome == ReadOutcome.PENDING
        assert data is None
        assert len(buffer) == 3

    def test_completes_with_exact_length(self):
        buffer = make_buffer(b"abcdef")

        outcome, data = ReadLength(4).consume(buffer)

        assert outcome == ReadOutcome.COMPLETE
        assert data == b"abcd"
        assert bytes(buffer) == b"ef"

    def test_partial_only_when_requested(self):
        assert ReadLength(4).partial(make_buffer(b"ab")) is None
        assert ReadLength(4, deliver_partial=True).partial(make_buffer(b"ab")) == b"ab"

    @pytest.mark.parametrize("length", [0, -1])
    def test_rejects_non_positive_length(self, length: int):
        with pytest.raises(ValueError):
            ReadLength(length)


class TestReadDelimiter:
    def test_completes_through_delimiter(self):
        buffer = make_buffer(b"GET /\r\nHost")

        outcome, data = ReadDelimiter(b"\r\n").consume(buffer)

        assert outcome == ReadOutcome.COMPLETE
        assert data == b"GET /\r\n"
        assert bytes(buffer) == b"Host"

    def test_pending_without_delimiter(self):
        outcome, _ = ReadDelimiter(b"\n").consume(make_buffer(b"partial"))

        assert outcome == ReadOutcome.PENDING

    def test_maxed_out_without_delimiter(self):
        outcome, data = ReadDelimiter(b"\n", max_length=4).consume(
            make_buffer(b"abcdef")
        )

        assert outcome == ReadOutcome.MAXED_OUT
        assert data is None

    def test_maxed_out_when_delimiter_past_limit(self):
        outcome, _ = ReadDelimiter(b"\n", max_length=4).consume(
            make_buffer(b"abcdef\n")
        )

        assert outcome == ReadOutcome.MAXED_OUT

    def test_delimiter_at_limit_completes(self):
        outcome, data = ReadDelimiter(b"\n", max_length=4).consume(
            make_buffer(b"abc\nd")
        )

        assert outcome == ReadOutcome.COMPLETE
        assert data == b"abc\n"

    def test_rejects_empty_delimiter(self):
        with pytest.raises(ValueError):
            ReadDelimiter(b"")

    def test_rejects_max_length_shorter_than_delimiter(self):
        with pytest.raises(ValueError):
            ReadDelimiter(b"\r\n", max_length=1)


class TestReadToClose:
    def test_never_completes_before_close(self):
        outcome, _ = ReadToClose().consume(make_buffer(b"abc"))

        assert outcome == ReadOutcome.PENDING

    def test_partial_returns_everything(self):
        buffer = make_buffer(b"abc")

        assert ReadToClose().partial(buffer) == b"abc"
        assert not buffer

    def test_maxed_out_past_limit(self):
        outcome, _ = ReadToClose(max_length=2).consume(make_buffer(b"abc"))

        assert outcome == ReadOutcome.MAXED_OUT


class TestReadAvailable:
    def test_pending_when_empty(self):
        outcome, _ = ReadAvailable().consume(ReceiveBuffer())

        assert outcome == ReadOutcome.PENDING

    def test_returns_everything_buffered(self):
        outcome, data = ReadAvailable().consume(make_buffer(b"abc"))

        assert outcome == ReadOutcome.COMPLETE
        assert data == b"abc"

    def test_respects_max_length(self):
        buffer = make_buffer(b"abcdef")

        _, data = ReadAvailable(max_length=4).consume(buffer)

        assert data == b"abcd"
        assert bytes(buffer) == b"ef"


class TestConnectionState:
    @pytest.mark.parametrize(
        "current,target",
        [
            (ConnectionState.DISCONNECTED, ConnectionState.CONNECTING),
            (ConnectionState.CONNECTING, ConnectionState.CONNECTED),
            (ConnectionState.CONNECTING, ConnectionState.DISCONNECTED),
            (ConnectionState.CONNECTED, ConnectionState.CLOSING),
            (ConnectionState.CONNECTED, ConnectionState.DISCONNECTED),
            (ConnectionState.CLOSING, ConnectionState.DISCONNECTED),
        ],
    )
    def test_allowed_transitions(
        self,
        current: ConnectionState,
        target: ConnectionState,
    ):
        assert current.can_transition(target)

    @pytest.mark.parametrize(
        "current,target",
        [
            (ConnectionState.DISCONNECTED, ConnectionState.CONNECTED),
            (ConnectionState.DISCONNECTED, ConnectionState.CLOSING),
            (ConnectionState.CONNECTED, ConnectionState.CONNECTING),
            (ConnectionState.CLOSING, ConnectionState.CONNECTED),
        ],
    )
    def test_rejected_transitions(
        self,
        current: ConnectionState,
        target: ConnectionState,
    ):
        assert current.can_transition(target) is False
