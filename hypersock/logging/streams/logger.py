from __future__ import annotations

import asyncio
import pathlib
import sys
from typing import (
    Any,
    Callable,
    Dict,
    TypeVar,
)

from hypersock.logging.config.logging_config import LoggingConfig
from hypersock.logging.models import Entry, Log

from .logger_context import LoggerContext

T = TypeVar('T', bound=Entry)


def _split_path(path: str | None):
    if path is None:
        return None, None

    logfile_path = pathlib.Path(path)
    is_logfile = len(logfile_path.suffix) > 0

    filename = logfile_path.name if is_logfile else None
    directory = str(logfile_path.parent.absolute()) if is_logfile else str(logfile_path.absolute())

    return filename, directory


class Logger:
    def __init__(self) -> None:
        self._contexts: Dict[str, LoggerContext] = {}
        self._config = LoggingConfig()

    def __getitem__(self, name: str):
        if self._contexts.get(name) is None:
            self._contexts[name] = LoggerContext(name=name)

        return self._contexts[name]

    def get_stream(
        self,
        name: str | None = None,
        template: str | None = None,
        path: str | None = None,
        models: dict[
            str,
            tuple[
                type[T],
                dict[str, Any],
            ]
        ] | None = None,
    ):
        self.configure(
            name=name,
            template=template,
            path=path,
            models=models,
        )

        return self._contexts[name or 'default'].stream

    def configure(
        self,
        name: str | None = None,
        template: str | None = None,
        path: str | None = None,
        models: dict[
            str,
            tuple[
                type[T],
                dict[str, Any],
            ]
        ] | None = None,
    ):
        if name is None:
            name = 'default'

        filename, directory = _split_path(path)

        self._contexts[name] = LoggerContext(
            name=name,
            template=template,
            filename=filename,
            directory=directory,
            models=models,
        )

    def context(
        self,
        name: str | None = None,
        template: str | None = None,
        path: str | None = None,
        nested: bool = False,
        models: dict[
            str,
            tuple[
                type[T],
                dict[str, Any],
            ]
        ] | None = None,
    ):
        if name is None:
            name = 'default'

        if self._contexts.get(name) is None:
            filename, directory = _split_path(path)

            self._contexts[name] = LoggerContext(
                name=name,
                template=template,
                filename=filename,
                directory=directory,
                nested=nested,
                models=models,
            )

        return self._contexts[name]

    async def log(
        self,
        entry: T,
        name: str | None = None,
        template: str | None = None,
        path: str | None = None,
        filter: Callable[[T], bool] | None = None,
    ):
        if name is None:
            name = 'default'

        frame = sys._getframe(1)
        code = frame.f_code

        async with self.context(
            name=name,
            nested=True,
        ) as ctx:
            await ctx.log(
                Log(
                    entry=entry,
                    filename=code.co_filename,
                    function_name=code.co_name,
                    line_number=frame.f_lineno,
                ),
                template=template,
                path=path,
                filter=filter,
            )

    def schedule(
        self,
        entry: T,
        name: str | None = None,
        template: str | None = None,
        path: str | None = None,
        filter: Callable[[T], bool] | None = None,
        stacklevel: int = 1,
    ):
        """
        Log from synchronous code running on an event loop, e.g. protocol
        callbacks. The caller's location is captured now, and the write
        runs as a task tracked until ``close()``. Pass ``stacklevel=2`` from a
        logging helper so the entry names the helper's caller.
        """
        if name is None:
            name = 'default'

        if self._config.enabled(name, entry.level) is False:
            return

        frame = sys._getframe(stacklevel)
        code = frame.f_code

        self.context(
            name=name,
            nested=True,
        ).stream.schedule(
            Log(
                entry=entry,
                filename=code.co_filename,
                function_name=code.co_name,
                line_number=frame.f_lineno,
            ),
            template=template,
            path=path,
            filter=filter,
        )

    async def close(self):
        await asyncio.gather(
            *[context.stream.close() for context in self._contexts.values()],
            return_exceptions=True,
        )

    def abort(self):
        for context in self._contexts.values():
            context.stream.abort()
