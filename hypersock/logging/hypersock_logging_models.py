from .models import Entry, LogLevel


class ConnectionTrace(Entry, kw_only=True):
    connection_id: int
    host: str
    port: int
    state: str
    level: LogLevel = LogLevel.TRACE

class ConnectionDebug(Entry, kw_only=True):
    connection_id: int
    host: str
    port: int
    state: str
    level: LogLevel = LogLevel.DEBUG

class ConnectionInfo(Entry, kw_only=True):
    connection_id: int
    host: str
    port: int
    state: str
    level: LogLevel = LogLevel.INFO

class ConnectionError(Entry, kw_only=True):
    connection_id: int
    host: str
    port: int
    state: str
    error: str
    level: LogLevel = LogLevel.ERROR

class DemultiplexerDebug(Entry, kw_only=True):
    demultiplexer: str
    registered: int
    level: LogLevel = LogLevel.DEBUG

class DemultiplexerInfo(Entry, kw_only=True):
    demultiplexer: str
    registered: int
    level: LogLevel = LogLevel.INFO

class DemultiplexerError(Entry, kw_only=True):
    demultiplexer: str
    registered: int
    error: str
    level: LogLevel = LogLevel.ERROR

class DemultiplexerFatal(Entry, kw_only=True):
    demultiplexer: str
    registered: int
    error: str
    level: LogLevel = LogLevel.FATAL

class ListenerInfo(Entry, kw_only=True):
    host: str
    port: int
    accepted: int
    with_tls: bool
    level: LogLevel = LogLevel.INFO

class ListenerError(Entry, kw_only=True):
    host: str
    port: int
    accepted: int
    error: str
    level: LogLevel = LogLevel.ERROR

class DatagramDebug(Entry, kw_only=True):
    host: str
    port: int
    pending_sends: int
    level: LogLevel = LogLevel.DEBUG

class DatagramError(Entry, kw_only=True):
    host: str
    port: int
    pending_sends: int
    error: str
    level: LogLevel = LogLevel.ERROR

class DelegateError(Entry, kw_only=True):
    queue: str
    callback: str
    error: str
    level: LogLevel = LogLevel.ERROR
