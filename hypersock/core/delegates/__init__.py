from .callback_sink import CallbackSink as CallbackSink
from .connection_delegate import (
    ConnectionDelegate as ConnectionDelegate,
    DatagramDelegate as DatagramDelegate,
    ListenerDelegate as ListenerDelegate,
)
from .delegate_queue import DelegateQueue as DelegateQueue
from .event_stream import (
    AcceptEvent as AcceptEvent,
    ConnectEvent as ConnectEvent,
    DatagramEvent as DatagramEvent,
    DataEvent as DataEvent,
    DisconnectEvent as DisconnectEvent,
    Event as Event,
    EventStream as EventStream,
    ListenerClosedEvent as ListenerClosedEvent,
    ReceiveErrorEvent as ReceiveErrorEvent,
    SendCompleteEvent as SendCompleteEvent,
    SendErrorEvent as SendErrorEvent,
    SocketClosedEvent as SocketClosedEvent,
    TLSEstablishedEvent as TLSEstablishedEvent,
    UnexpectedEventError as UnexpectedEventError,
    WriteCompleteEvent as WriteCompleteEvent,
)
