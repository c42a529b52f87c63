from .core import (
    Cancelled as Cancelled,
    ConnectError as ConnectError,
    ConnectErrorReason as ConnectErrorReason,
    Connection as Connection,
    ConnectionDelegate as ConnectionDelegate,
    ConnectionIOError as ConnectionIOError,
    ConnectionState as ConnectionState,
    DatagramDelegate as DatagramDelegate,
    DatagramSocket as DatagramSocket,
    DelegateQueue as DelegateQueue,
    Demultiplexer as Demultiplexer,
    DemultiplexerError as DemultiplexerError,
    DemultiplexerPool as DemultiplexerPool,
    EventStream as EventStream,
    Listener as Listener,
    ListenerDelegate as ListenerDelegate,
    ProtocolViolation as ProtocolViolation,
    ReadAvailable as ReadAvailable,
    ReadDelimiter as ReadDelimiter,
    ReadLength as ReadLength,
    ReadMaxedOutError as ReadMaxedOutError,
    ReadTimeoutError as ReadTimeoutError,
    ReadToClose as ReadToClose,
    RemoteClosedError as RemoteClosedError,
    SendTimeoutError as SendTimeoutError,
    SocketBindError as SocketBindError,
    SocketError as SocketError,
    WriteTimeoutError as WriteTimeoutError,
    create_client_ssl_context as create_client_ssl_context,
    create_server_ssl_context as create_server_ssl_context,
    get_default_pool as get_default_pool,
)
from .env import Env as Env, load_env as load_env
