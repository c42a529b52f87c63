from enum import Enum


class ConnectionState(Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    CLOSING = "closing"

    def can_transition(self, state: "ConnectionState") -> bool:
        return state in _TRANSITIONS[self]


_TRANSITIONS: dict[ConnectionState, frozenset[ConnectionState]] = {
    ConnectionState.DISCONNECTED: frozenset({
        ConnectionState.CONNECTING,
    }),
    ConnectionState.CONNECTING: frozenset({
        ConnectionState.CONNECTED,
        ConnectionState.DISCONNECTED,
    }),
    ConnectionState.CONNECTED: frozenset({
        ConnectionState.CLOSING,
        ConnectionState.DISCONNECTED,
    }),
    ConnectionState.CLOSING: frozenset({
        ConnectionState.DISCONNECTED,
    }),
}
