import atexit
import itertools
import threading

from hypersock.env import Env, load_env

from .demultiplexer import Demultiplexer


class DemultiplexerPool:
    """
    Fixed set of demultiplexers. Each owner is assigned one at creation,
    so every demultiplexer drives a disjoint subset of connections.
    """

    def __init__(
        self,
        size: int | None = None,
        env: Env | None = None,
        name: str = "hypersock",
    ) -> None:
        self.env = env or load_env(Env)

        if size is None:
            size = self.env.HYPERSOCK_DEMULTIPLEXER_THREADS

        if size < 1:
            raise ValueError(f"Pool size must be at least 1 - got {size}")

        self.demultiplexers = [
            Demultiplexer(
                name=f"{name}-demultiplexer-{idx}",
                env=self.env,
            ) for idx in range(size)
        ]

        self._cycle = itertools.cycle(self.demultiplexers)
        self._lock = threading.Lock()

    def __len__(self):
        return len(self.demultiplexers)

    def next(self) -> Demultiplexer:
        with self._lock:
            return next(self._cycle)

    def start(self):
        for demultiplexer in self.demultiplexers:
            demultiplexer.start()

    def stop(self, timeout: float | None = None):
        for demultiplexer in self.demultiplexers:
            demultiplexer.stop(timeout=timeout)


_default_pool: DemultiplexerPool | None = None
_default_pool_lock = threading.Lock()


def get_default_pool() -> DemultiplexerPool:
    global _default_pool

    with _default_pool_lock:
        if _default_pool is None:
            _default_pool = DemultiplexerPool()
            atexit.register(_default_pool.stop, 5)

        return _default_pool
