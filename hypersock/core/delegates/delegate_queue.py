from __future__ import annotations

import asyncio
import contextvars
import inspect
import itertools
import threading
from typing import Any, Callable

from hypersock.logging import Logger
from hypersock.logging.hypersock_logging_models import DelegateError


class DelegateQueue:
    """
    Serial execution context for delegate callbacks.

    Bound to an existing event loop when one is given, otherwise runs its
    own loop on a dedicated thread. Callbacks run one at a time in the
    order they were dispatched, from any thread. A coroutine returned by a
    callback is awaited before the next callback starts. Exceptions raised
    by callbacks are logged and do not stop the queue.
    """

    _ids = itertools.count()

    def __init__(
        self,
        loop: asyncio.AbstractEventLoop | None = None,
        name: str | None = None,
        logger: Logger | None = None,
    ) -> None:
        self.name = name or f"hypersock-delegates-{next(DelegateQueue._ids)}"
        self.owns_loop = loop is None
        self.dropped = 0

        self._closed = False
        self._owns_logger = logger is None
        self._logger = logger or Logger()
        self._queue: asyncio.Queue[tuple[Callable[..., Any], tuple[Any, ...], str | None]] = asyncio.Queue()
        self._consumer: asyncio.Task | None = None
        self._thread: threading.Thread | None = None

        if loop is None:
            loop = asyncio.new_event_loop()
            context = contextvars.copy_context()

            self._thread = threading.Thread(
                target=context.run,
                args=(self._run,),
                name=self.name,
                daemon=True,
            )

        self._loop = loop
        self._loop.call_soon_threadsafe(self._start)

        if self._thread:
            self._thread.start()

    @property
    def loop(self):
        return self._loop

    @property
    def closed(self):
        return self._closed

    def _run(self):
        asyncio.set_event_loop(self._loop)

        try:
            self._loop.run_forever()

        finally:
            self._loop.run_until_complete(
                self._loop.shutdown_asyncgens()
            )
            self._loop.close()

    def _start(self):
        if self._consumer is None and self._closed is False:
            self._consumer = self._loop.create_task(self._consume())

    def dispatch(
        self,
        fn: Callable[..., Any],
        *args: Any,
        name: str | None = None,
    ):
        if self._closed:
            self.dropped += 1
            return

        try:
            self._loop.call_soon_threadsafe(
                self._queue.put_nowait,
                (fn, args, name),
            )

        except RuntimeError:
            # The loop has already been closed.
            self.dropped += 1

    async def _consume(self):
        while True:
            fn, args, name = await self._queue.get()

            try:
                result = fn(*args)
                if inspect.isawaitable(result):
                    await result

            except Exception as err:
                self._logger.schedule(
                    DelegateError(
                        message=f"Delegate callback raised {type(err).__name__}",
                        queue=self.name,
                        callback=name or getattr(fn, '__qualname__', repr(fn)),
                        error=str(err),
                    )
                )

            finally:
                self._queue.task_done()

    async def drain(self):
        """Wait until every callback dispatched so far has run."""
        if self._on_own_loop():
            await self._queue.join()
            return

        await asyncio.wrap_future(
            asyncio.run_coroutine_threadsafe(
                self._queue.join(),
                self._loop,
            )
        )

    async def shutdown(self):
        """
        Run every queued callback, then stop consuming. Must be awaited on
        the queue's own loop.
        """
        await self._queue.join()
        self._closed = True

        if self._consumer:
            self._consumer.cancel()
            await asyncio.gather(self._consumer, return_exceptions=True)
            self._consumer = None

        if self._owns_logger:
            await self._logger.close()

    def close(self, timeout: float | None = None):
        """
        Stop the queue from another thread. An owned loop is drained,
        stopped and its thread joined.
        """
        if self._on_own_loop():
            raise RuntimeError("close() blocks - await shutdown() from the queue's loop")

        if self._thread is None:
            self._closed = True
            self._loop.call_soon_threadsafe(self._cancel_consumer)
            return

        if self._loop.is_closed():
            return

        future = asyncio.run_coroutine_threadsafe(self.shutdown(), self._loop)
        try:
            future.result(timeout)

        finally:
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(timeout)

    def _cancel_consumer(self):
        if self._consumer:
            self._consumer.cancel()
            self._consumer = None

    def _on_own_loop(self):
        try:
            return asyncio.get_running_loop() is self._loop

        except RuntimeError:
            return False
