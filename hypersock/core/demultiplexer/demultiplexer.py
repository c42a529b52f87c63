from __future__ import annotations

import asyncio
import contextvars
import itertools
import queue
import threading
from typing import Any, Callable, Protocol

from hypersock.core.delegates import DelegateQueue
from hypersock.core.errors import DemultiplexerError, SocketError
from hypersock.env import Env, load_env
from hypersock.logging import Logger, LoggingConfig
from hypersock.logging.hypersock_logging_models import (
    DemultiplexerDebug,
    DemultiplexerError as DemultiplexerErrorEntry,
    DemultiplexerFatal,
    DemultiplexerInfo,
)

from .demultiplexer_state import DemultiplexerState


class Owner(Protocol):
    """Anything registered with a demultiplexer: connections, listeners, datagram sockets."""

    def _shutdown(self, error: SocketError | None) -> None:
        ...

    def _route_error(self, error: Exception) -> None:
        ...


class Demultiplexer:
    """
    Runs an asyncio event loop, the readiness poller, on a dedicated
    thread. Every transport, timer and buffer of a registered owner is
    touched only from that thread; other threads hand work over with
    ``submit()``.
    """

    _ids = itertools.count()

    def __init__(
        self,
        name: str | None = None,
        env: Env | None = None,
    ) -> None:
        self.name = name or f"hypersock-demultiplexer-{next(Demultiplexer._ids)}"
        self.env = env or load_env(Env)
        self.state = DemultiplexerState.IDLE
        self.error: DemultiplexerError | None = None

        self.logger = Logger()
        self.delegate_queue: DelegateQueue | None = None

        self._loop: asyncio.AbstractEventLoop | None = None
        self._thread: threading.Thread | None = None
        self._handoff: queue.SimpleQueue[tuple[Callable[..., Any], tuple[Any, ...]]] = queue.SimpleQueue()
        self._owners: set[Owner] = set()
        self._lock = threading.RLock()
        self._started = threading.Event()

    @property
    def loop(self) -> asyncio.AbstractEventLoop:
        if self._loop is None:
            self.start()

        return self._loop

    @property
    def owners(self):
        return len(self._owners)

    def in_thread(self) -> bool:
        return threading.current_thread() is self._thread

    def start(self):
        with self._lock:
            if self.state == DemultiplexerState.RUNNING:
                return

            if self.state != DemultiplexerState.IDLE:
                raise DemultiplexerError(
                    f"Demultiplexer {self.name} cannot restart",
                    state=self.state.value,
                )

            self._loop = asyncio.new_event_loop()
            self._loop.set_exception_handler(self._handle_exception)
            self.delegate_queue = DelegateQueue(
                loop=self._loop,
                name=f"{self.name}-delegates",
                logger=self.logger,
            )

            context = contextvars.copy_context()
            self._thread = threading.Thread(
                target=context.run,
                args=(self._run,),
                name=self.name,
                daemon=True,
            )

            self.state = DemultiplexerState.RUNNING
            self._thread.start()

        self._started.wait()

    def _run(self):
        asyncio.set_event_loop(self._loop)

        LoggingConfig().update(
            log_directory=self.env.HYPERSOCK_LOGS_DIRECTORY,
            log_level=self.env.HYPERSOCK_LOG_LEVEL,
        )

        self._loop.call_soon(self._started.set)
        self._loop.call_soon(self._log_started)

        try:
            self._loop.run_forever()

        except BaseException as err:
            self._fail(err)

        finally:
            self._close_loop()

    def _log_started(self):
        self.logger.schedule(
            DemultiplexerInfo(
                message="Demultiplexer started",
                demultiplexer=self.name,
                registered=len(self._owners),
            )
        )

    def _fail(self, err: BaseException):
        self.error = DemultiplexerError(
            f"Demultiplexer {self.name} poll loop failed",
            cause=err,
        )

        with self._lock:
            self.state = DemultiplexerState.FAILED

        self._started.set()

        try:
            self._loop.run_until_complete(
                self._shutdown_failed(err)
            )

        except Exception as shutdown_err:
            self.error.with_context(shutdown_error=repr(shutdown_err))

    async def _shutdown_failed(self, err: BaseException):
        self.logger.schedule(
            DemultiplexerFatal(
                message="Poll loop failed",
                demultiplexer=self.name,
                registered=len(self._owners),
                error=str(err),
            )
        )

        await self._shutdown(self.error)

    def _close_loop(self):
        tasks = asyncio.all_tasks(self._loop)
        for task in tasks:
            task.cancel()

        if tasks:
            self._loop.run_until_complete(
                asyncio.gather(*tasks, return_exceptions=True)
            )

        self._loop.run_until_complete(self._loop.shutdown_asyncgens())
        self._loop.close()

    def submit(self, fn: Callable[..., Any], *args: Any):
        """
        Run ``fn(*args)`` on the demultiplexer thread. Submissions run in
        the order they were made, from whichever thread made them.
        """
        if self.state == DemultiplexerState.IDLE:
            self.start()

        if self.state != DemultiplexerState.RUNNING:
            raise DemultiplexerError(
                f"Demultiplexer {self.name} is not running",
                state=self.state.value,
            ) from self.error

        self._handoff.put((fn, args))

        try:
            self._loop.call_soon_threadsafe(self._drain_handoff)

        except RuntimeError as err:
            raise DemultiplexerError(
                f"Demultiplexer {self.name} loop is closed",
                cause=err,
            ) from err

    def _drain_handoff(self):
        while True:
            try:
                fn, args = self._handoff.get_nowait()

            except queue.Empty:
                return

            try:
                fn(*args)

            except Exception as err:
                self.logger.schedule(
                    DemultiplexerErrorEntry(
                        message=f"Submitted call {getattr(fn, '__qualname__', fn)} raised",
                        demultiplexer=self.name,
                        registered=len(self._owners),
                        error=repr(err),
                    )
                )

    def register(self, owner: Owner):
        self._owners.add(owner)

    def unregister(self, owner: Owner):
        self._owners.discard(owner)

    def _handle_exception(
        self,
        loop: asyncio.AbstractEventLoop,
        context: dict[str, Any],
    ):
        exception = context.get('exception')
        owner = getattr(context.get('protocol'), 'owner', None)

        if exception is not None and owner in self._owners:
            owner._route_error(exception)
            return

        self.logger.schedule(
            DemultiplexerErrorEntry(
                message=context.get('message', 'Unhandled exception in event loop'),
                demultiplexer=self.name,
                registered=len(self._owners),
                error=repr(exception),
            )
        )

    def stop(self, timeout: float | None = None):
        """
        Abort every registered owner with ``Cancelled``, run the callbacks
        still queued, then stop the loop and join the thread.
        """
        if self.in_thread():
            raise DemultiplexerError(
                f"Demultiplexer {self.name} cannot be stopped from its own thread"
            )

        with self._lock:
            if self.state == DemultiplexerState.IDLE:
                self.state = DemultiplexerState.STOPPED
                return

            if self.state in (DemultiplexerState.STOPPING, DemultiplexerState.STOPPED):
                return

            failed = self.state == DemultiplexerState.FAILED
            if failed is False:
                self.state = DemultiplexerState.STOPPING

        if failed is False:
            future = asyncio.run_coroutine_threadsafe(
                self._shutdown(None),
                self._loop,
            )

            try:
                future.result(timeout)

            except TimeoutError as err:
                self.error = DemultiplexerError(
                    f"Demultiplexer {self.name} shutdown timed out",
                    cause=err,
                )

            finally:
                self._loop.call_soon_threadsafe(self._loop.stop)

        self._thread.join(timeout)

        with self._lock:
            if failed is False:
                self.state = DemultiplexerState.STOPPED

    async def _shutdown(self, error: SocketError | None):
        owners = list(self._owners)

        self.logger.schedule(
            DemultiplexerDebug(
                message="Shutting down",
                demultiplexer=self.name,
                registered=len(owners),
            )
        )

        for owner in owners:
            owner._shutdown(error)

        self._owners.clear()

        await self.delegate_queue.shutdown()
        await self.logger.close()
