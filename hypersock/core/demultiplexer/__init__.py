from .demultiplexer import Demultiplexer as Demultiplexer
from .demultiplexer_pool import (
    DemultiplexerPool as DemultiplexerPool,
    get_default_pool as get_default_pool,
)
from .demultiplexer_state import DemultiplexerState as DemultiplexerState
