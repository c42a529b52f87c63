import asyncio
import datetime
import functools
import io
import os
import pathlib
import sys
import threading
from collections import defaultdict
from typing import (
    Any,
    Callable,
    Dict,
    TextIO,
    TypeVar,
)

import msgspec

from hypersock.logging.config.logging_config import LoggingConfig
from hypersock.logging.config.stream_type import StreamType
from hypersock.logging.models import Entry, Log, LogLevel

from .protocol import LoggerProtocol

T = TypeVar('T', bound=Entry)


DEFAULT_TEMPLATE = (
    "{timestamp} - {level} - {thread_name}:{thread_id} - "
    "{filename}:{function_name}.{line_number} - {message}"
)


class LoggerStream:
    def __init__(
        self,
        name: str | None = None,
        template: str | None = None,
        filename: str | None = None,
        directory: str | None = None,
        models: dict[
            str,
            tuple[
                type[T],
                dict[str, Any],
            ]
        ] | None = None,
    ) -> None:
        if name is None:
            name = "default"

        self._name = name
        self._default_template = template or DEFAULT_TEMPLATE
        self._default_logfile = filename
        self._default_log_directory = directory

        self._init_lock: asyncio.Lock | None = None
        self._loop: asyncio.AbstractEventLoop | None = None
        self._stream_writers: Dict[StreamType, asyncio.StreamWriter] = {}
        self._fallback_streams: Dict[StreamType, TextIO] = {}

        self._files: Dict[str, io.BufferedRandom] = {}
        self._file_locks: Dict[str, asyncio.Lock] = defaultdict(asyncio.Lock)
        self._default_logfile_path: str | None = None

        self._config = LoggingConfig()
        self._initialized: bool = False
        self._closed = False
        self._pending: set[asyncio.Future] = set()

        self._models: Dict[str, tuple[type[Entry], dict[str, Any]]] = {}
        for model_name, config in (models or {}).items():
            model, defaults = config
            self._models[model_name] = (model, defaults)

        self._models.setdefault(
            'default',
            (
                Entry,
                {
                    'level': LogLevel.INFO,
                },
            ),
        )

    @property
    def name(self):
        return self._name

    @property
    def pending(self):
        return len(self._pending)

    async def initialize(
        self,
        stdout_writer: asyncio.StreamWriter | None = None,
        stderr_writer: asyncio.StreamWriter | None = None,
    ):
        if self._init_lock is None:
            self._init_lock = asyncio.Lock()

        async with self._init_lock:
            if self._initialized:
                return

            self._loop = asyncio.get_running_loop()

            if stdout_writer is not None:
                self._stream_writers[StreamType.STDOUT] = stdout_writer

            if stderr_writer is not None:
                self._stream_writers[StreamType.STDERR] = stderr_writer

            for stream_type, source in (
                (StreamType.STDOUT, sys.stdout),
                (StreamType.STDERR, sys.stderr),
            ):
                if self._stream_writers.get(stream_type) or self._fallback_streams.get(stream_type):
                    continue

                duplicate: TextIO | None = None

                try:
                    duplicate = await self._dup_stream(source)
                    transport, protocol = await self._loop.connect_write_pipe(
                        lambda: LoggerProtocol(loop=self._loop),
                        duplicate,
                    )

                except (OSError, ValueError, AttributeError):
                    if duplicate is not None:
                        duplicate.close()

                    # Captured or redirected streams (regular files, StringIO)
                    # cannot back a pipe transport.
                    self._fallback_streams[stream_type] = source
                    continue

                self._stream_writers[stream_type] = asyncio.StreamWriter(
                    transport,
                    protocol,
                    None,
                    self._loop,
                )

            self._initialized = True

    async def _dup_stream(self, source: TextIO) -> TextIO:
        fileno = await self._loop.run_in_executor(None, source.fileno)
        duplicate_fileno = await self._loop.run_in_executor(None, os.dup, fileno)

        return await self._loop.run_in_executor(
            None,
            functools.partial(
                os.fdopen,
                duplicate_fileno,
                mode='w',
            )
        )

    async def open_file(
        self,
        filename: str,
        directory: str | None = None,
        is_default: bool = False,
    ):
        if self._loop is None:
            self._loop = asyncio.get_running_loop()

        logfile_path = self._to_logfile_path(filename, directory=directory)

        async with self._file_locks[logfile_path]:
            if self._files.get(logfile_path) is None or self._files[logfile_path].closed:
                await self._loop.run_in_executor(
                    None,
                    self._open_file,
                    logfile_path,
                )

        if is_default:
            self._default_logfile_path = logfile_path

        return logfile_path

    def _open_file(self, logfile_path: str):
        resolved_path = pathlib.Path(logfile_path).absolute().resolve()
        resolved_path.parent.mkdir(parents=True, exist_ok=True)

        self._files[logfile_path] = open(str(resolved_path), "ab+")

    def _to_logfile_path(
        self,
        filename: str,
        directory: str | None = None,
    ):
        filename_path = pathlib.Path(filename)

        if filename_path.suffix != ".json":
            raise ValueError(f"Log files must be JSON files - got {filename!r}")

        if directory is None:
            directory = self._config.directory or os.getcwd()

        return os.path.join(directory, filename_path)

    def schedule(
        self,
        entry: T | Log[T],
        template: str | None = None,
        path: str | None = None,
        filter: Callable[[T], bool] | None = None,
    ):
        if self._closed:
            return

        task = asyncio.ensure_future(
            self.log(
                entry,
                template=template,
                path=path,
                filter=filter,
            )
        )

        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def log(
        self,
        entry: T | Log[T],
        template: str | None = None,
        path: str | None = None,
        filter: Callable[[T], bool] | None = None,
    ):
        filename: str | None = None
        directory: str | None = None

        if path:
            logfile_path = pathlib.Path(path)
            is_logfile = len(logfile_path.suffix) > 0

            filename = logfile_path.name if is_logfile else None
            directory = str(logfile_path.parent.absolute()) if is_logfile else str(logfile_path.absolute())

        if filename is None:
            filename = self._default_logfile

        if directory is None:
            directory = self._default_log_directory or self._config.directory

        if not isinstance(entry, Log):
            log_file, line_number, function_name = self._find_caller()
            entry = Log(
                entry=entry,
                filename=log_file,
                function_name=function_name,
                line_number=line_number,
            )

        if filename or directory:
            await self._log_to_file(
                entry,
                filename=filename or "hypersock.json",
                directory=directory,
                filter=filter,
            )

        else:
            await self._log(
                entry,
                template=template or self._default_template,
                filter=filter,
            )

    def to_entry(
        self,
        message: str,
        name: str = 'default',
    ):
        model, defaults = self._models.get(
            name,
            self._models['default'],
        )

        return model(
            message=message,
            **defaults
        )

    async def _log(
        self,
        log: Log[T],
        template: str,
        filter: Callable[[T], bool] | None = None,
    ):
        if self._config.enabled(self._name, log.entry.level) is False:
            return

        if filter and filter(log.entry) is False:
            return

        if self._initialized is False:
            await self.initialize()

        line = log.to_template(template) + "\n"
        output = self._config.output

        if fallback := self._fallback_streams.get(output):
            await self._loop.run_in_executor(
                None,
                self._write_to_stream,
                fallback,
                line,
            )

            return

        stream_writer = self._stream_writers[output]
        if stream_writer.is_closing():
            return

        stream_writer.write(line.encode())
        await stream_writer.drain()

    def _write_to_stream(self, stream: TextIO, line: str):
        if stream.closed is False:
            stream.write(line)
            stream.flush()

    async def _log_to_file(
        self,
        log: Log[T],
        filename: str,
        directory: str | None = None,
        filter: Callable[[T], bool] | None = None,
    ):
        if self._config.enabled(self._name, log.entry.level) is False:
            return

        if filter and filter(log.entry) is False:
            return

        if self._loop is None:
            self._loop = asyncio.get_running_loop()

        logfile_path = self._default_logfile_path
        if logfile_path is None or directory:
            logfile_path = self._to_logfile_path(filename, directory=directory)

        if self._files.get(logfile_path) is None or self._files[logfile_path].closed:
            await self.open_file(filename, directory=directory)

        async with self._file_locks[logfile_path]:
            await self._loop.run_in_executor(
                None,
                self._write_to_file,
                log,
                logfile_path,
            )

    def _write_to_file(
        self,
        log: Log,
        logfile_path: str,
    ):
        if (
            logfile := self._files.get(logfile_path)
        ) and (
            logfile.closed is False
        ):
            logfile.write(msgspec.json.encode(log) + b"\n")
            logfile.flush()

    def _find_caller(self):
        """
        Find the stack frame of the caller so that we can note the source
        file name, line number and function name.
        """
        frame = sys._getframe(2)
        code = frame.f_code

        return (
            code.co_filename,
            frame.f_lineno,
            code.co_name,
        )

    async def close(self):
        self._closed = True

        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

        for writer in self._stream_writers.values():
            if writer.is_closing() is False:
                await writer.drain()
                writer.close()

        self._stream_writers.clear()
        self._fallback_streams.clear()

        if self._loop and self._files:
            await self._loop.run_in_executor(None, self._close_files)

        self._initialized = False

    def _close_files(self):
        for logfile in self._files.values():
            if logfile.closed is False:
                logfile.close()

        self._files.clear()

    def abort(self):
        self._closed = True

        for task in list(self._pending):
            task.cancel()

        for writer in self._stream_writers.values():
            writer.transport.abort()

        self._stream_writers.clear()
        self._close_files()
        self._initialized = False
