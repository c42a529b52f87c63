from .connection import Connection as Connection
from .connection_state import ConnectionState as ConnectionState
from .read_request import (
    ReadAvailable as ReadAvailable,
    ReadDelimiter as ReadDelimiter,
    ReadLength as ReadLength,
    ReadOutcome as ReadOutcome,
    ReadPolicy as ReadPolicy,
    ReadRequest as ReadRequest,
    ReadToClose as ReadToClose,
)
from .receive_buffer import ReceiveBuffer as ReceiveBuffer
from .tcp_protocol import TCPProtocol as TCPProtocol
from .tls import (
    create_client_ssl_context as create_client_ssl_context,
    create_server_ssl_context as create_server_ssl_context,
)
from .write_request import (
    TLSRequest as TLSRequest,
    WriteRequest as WriteRequest,
)
