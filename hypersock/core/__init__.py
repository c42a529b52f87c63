from .errors import (
    Cancelled as Cancelled,
    ConnectError as ConnectError,
    ConnectErrorReason as ConnectErrorReason,
    ConnectionIOError as ConnectionIOError,
    DemultiplexerError as DemultiplexerError,
    ErrorCategory as ErrorCategory,
    ErrorSeverity as ErrorSeverity,
    ProtocolViolation as ProtocolViolation,
    ReadMaxedOutError as ReadMaxedOutError,
    ReadTimeoutError as ReadTimeoutError,
    RemoteClosedError as RemoteClosedError,
    SendTimeoutError as SendTimeoutError,
    SocketBindError as SocketBindError,
    SocketError as SocketError,
    WriteTimeoutError as WriteTimeoutError,
)
from .retry import (
    RetryPolicy as RetryPolicy,
    retry_with_backoff as retry_with_backoff,
)
from .delegates import (
    ConnectionDelegate as ConnectionDelegate,
    DatagramDelegate as DatagramDelegate,
    DelegateQueue as DelegateQueue,
    EventStream as EventStream,
    ListenerDelegate as ListenerDelegate,
)
from .demultiplexer import (
    Demultiplexer as Demultiplexer,
    DemultiplexerPool as DemultiplexerPool,
    DemultiplexerState as DemultiplexerState,
    get_default_pool as get_default_pool,
)
from .connection import (
    Connection as Connection,
    ConnectionState as ConnectionState,
    ReadAvailable as ReadAvailable,
    ReadDelimiter as ReadDelimiter,
    ReadLength as ReadLength,
    ReadToClose as ReadToClose,
    create_client_ssl_context as create_client_ssl_context,
    create_server_ssl_context as create_server_ssl_context,
)
from .listener import Listener as Listener
from .datagram import DatagramSocket as DatagramSocket
