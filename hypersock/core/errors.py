"""
Socket error hierarchy.

Every error delivered through a disconnect, send-error or listener-closed
callback derives from ``SocketError`` and is classified by:
- Category: what kind of error (network, tls, protocol, cancelled, internal)
- Severity: whether retrying the operation could succeed (transient, fatal)

Errors are values handed to delegates. Only binding (``Listener.accept``,
``DatagramSocket.bind``) and demultiplexer submission raise them directly.
"""

import traceback
from dataclasses import dataclass, field
from enum import Enum, auto
from typing import Any


class ErrorSeverity(Enum):
    """How serious is this error?"""

    TRANSIENT = auto()
    """Retrying the operation is likely to succeed."""

    FATAL = auto()
    """The connection or socket cannot continue."""


class ErrorCategory(Enum):
    """What kind of error is this?"""

    NETWORK = auto()
    """Timeouts, refused or unreachable peers, resets, broken pipes."""

    TLS = auto()
    """Handshake failures."""

    PROTOCOL = auto()
    """Malformed TLS framing, reads exceeding their limits."""

    CANCELLED = auto()
    """Requests discarded by close() or shutdown."""

    INTERNAL = auto()
    """Demultiplexer failures and unexpected exceptions."""


class ConnectErrorReason(Enum):
    TIMEOUT = "timeout"
    REFUSED = "refused"
    UNREACHABLE = "unreachable"
    TLS_HANDSHAKE = "tls_handshake"


@dataclass(eq=False)
class SocketError(Exception):
    """
    Base exception for socket errors.

    All socket errors carry:
    - message: Human-readable description
    - category: What kind of error
    - severity: How serious
    - context: Additional debugging info
    - cause: Original exception if wrapping
    """

    message: str
    category: ErrorCategory
    severity: ErrorSeverity
    context: dict[str, Any] = field(default_factory=dict)
    cause: BaseException | None = None

    def __post_init__(self):
        self._traceback = traceback.format_stack()[:-1]

    def __str__(self) -> str:
        ctx = f" {self.context}" if self.context else ""
        cause = ""
        if self.cause:
            cause_str = str(self.cause)
            cause_type = type(self.cause).__name__
            if cause_str:
                cause = f" (caused by {cause_type}: {cause_str})"
            else:
                cause = f" (caused by {cause_type})"
        return f"[{self.category.name}/{self.severity.name}] {self.message}{ctx}{cause}"

    def __repr__(self) -> str:
        return (
            f"{self.__class__.__name__}("
            f"message={self.message!r}, "
            f"category={self.category}, "
            f"severity={self.severity}, "
            f"context={self.context})"
        )

    def with_context(self, **kwargs: Any) -> 'SocketError':
        self.context.update(kwargs)
        return self

    def get_traceback(self) -> str:
        return ''.join(self._traceback)

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for structured logging."""
        return {
            'error_type': self.__class__.__name__,
            'message': self.message,
            'category': self.category.name,
            'severity': self.severity.name,
            'context': self.context,
            'cause': str(self.cause) if self.cause else None,
        }


class ConnectError(SocketError):
    """An outbound connect, or the TLS handshake following it, failed."""

    def __init__(
        self,
        reason: ConnectErrorReason,
        address: tuple[str, int] | None = None,
        cause: BaseException | None = None,
        **context: Any,
    ):
        self.reason = reason
        self.address = address

        target = f"{address[0]}:{address[1]}" if address else "peer"
        super().__init__(
            message=f"Connect to {target} failed - {reason.value}",
            category=(
                ErrorCategory.TLS
                if reason == ConnectErrorReason.TLS_HANDSHAKE
                else ErrorCategory.NETWORK
            ),
            severity=ErrorSeverity.FATAL,
            context={'address': address, **context},
            cause=cause,
        )


class ConnectionIOError(SocketError):
    """Reset, broken pipe or descriptor error on an established connection."""

    def __init__(
        self,
        message: str,
        severity: ErrorSeverity = ErrorSeverity.FATAL,
        cause: BaseException | None = None,
        **context: Any,
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.NETWORK,
            severity=severity,
            context=context,
            cause=cause,
        )


class RemoteClosedError(ConnectionIOError):
    """The peer closed its write side while reads were still pending."""

    def __init__(self, pending_reads: int, buffered: int = 0):
        self.pending_reads = pending_reads
        self.buffered = buffered

        super().__init__(
            message=f"Remote closed with {pending_reads} read(s) pending",
            pending_reads=pending_reads,
            buffered=buffered,
        )


class ProtocolViolation(SocketError):
    """Malformed TLS framing on an established connection."""

    def __init__(
        self,
        message: str,
        cause: BaseException | None = None,
        **context: Any,
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.PROTOCOL,
            severity=ErrorSeverity.FATAL,
            context=context,
            cause=cause,
        )


class Cancelled(SocketError):
    """close() or shutdown discarded pending requests."""

    def __init__(
        self,
        reads: int = 0,
        writes: int = 0,
        message: str | None = None,
        **context: Any,
    ):
        self.reads = reads
        self.writes = writes

        super().__init__(
            message=message or f"Cancelled {reads} read(s) and {writes} write(s)",
            category=ErrorCategory.CANCELLED,
            severity=ErrorSeverity.FATAL,
            context={'reads': reads, 'writes': writes, **context},
        )


class ReadTimeoutError(SocketError):

    def __init__(self, timeout: float, tag: Any = None):
        self.timeout = timeout
        self.tag = tag

        super().__init__(
            message=f"Read timed out after {timeout:.2f}s",
            category=ErrorCategory.NETWORK,
            severity=ErrorSeverity.TRANSIENT,
            context={'timeout': timeout, 'tag': tag},
        )


class WriteTimeoutError(SocketError):

    def __init__(self, timeout: float, tag: Any = None):
        self.timeout = timeout
        self.tag = tag

        super().__init__(
            message=f"Write timed out after {timeout:.2f}s",
            category=ErrorCategory.NETWORK,
            severity=ErrorSeverity.TRANSIENT,
            context={'timeout': timeout, 'tag': tag},
        )


class ReadMaxedOutError(SocketError):
    """A delimiter or read-to-close request exceeded its max length."""

    def __init__(self, max_length: int, tag: Any = None):
        self.max_length = max_length
        self.tag = tag

        super().__init__(
            message=f"Read exceeded max length of {max_length} bytes",
            category=ErrorCategory.PROTOCOL,
            severity=ErrorSeverity.FATAL,
            context={'max_length': max_length, 'tag': tag},
        )


class SendTimeoutError(SocketError):
    """A datagram send did not complete within its timeout."""

    def __init__(self, timeout: float, tag: Any = None):
        self.timeout = timeout
        self.tag = tag

        super().__init__(
            message=f"Send timed out after {timeout:.2f}s",
            category=ErrorCategory.NETWORK,
            severity=ErrorSeverity.TRANSIENT,
            context={'timeout': timeout, 'tag': tag},
        )


class SocketBindError(SocketError):

    def __init__(
        self,
        host: str | None,
        port: int,
        cause: BaseException | None = None,
    ):
        self.host = host
        self.port = port

        super().__init__(
            message=f"Could not bind {host or '*'}:{port}",
            category=ErrorCategory.NETWORK,
            severity=ErrorSeverity.FATAL,
            context={'host': host, 'port': port},
            cause=cause,
        )


class DemultiplexerError(SocketError):

    def __init__(
        self,
        message: str,
        cause: BaseException | None = None,
        **context: Any,
    ):
        super().__init__(
            message=message,
            category=ErrorCategory.INTERNAL,
            severity=ErrorSeverity.FATAL,
            context=context,
            cause=cause,
        )
