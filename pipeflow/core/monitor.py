"""
Progress monitor: reads the build tool's side channel in a background thread.

The side channel carries JSON objects, each terminated by the ASCII record
separator (0x1E). Every decoded record is rendered into a short status line
and written to a sink (stderr by default). Malformed records are logged and
skipped; a read error stops the monitor but never the supervised run.
"""

from __future__ import annotations

import logging
import os
import sys
import threading
from typing import IO, Iterator, Optional

from pydantic import ValidationError

from .configuration import RECORD_SEPARATOR
from .errors import ProgressDecodeError
from .models import ProgressWrapper
from .progress import render_wrapper

logger = logging.getLogger(__name__)


def split_records(stream: IO[bytes], separator: bytes = RECORD_SEPARATOR, chunk_size: int = 4096) -> Iterator[bytes]:
    """Yield separator-delimited frames from a byte stream.

    Bytes left over when the stream ends are yielded as a final frame.
    """
    buf = bytearray()
    eof = False
    while True:
        idx = buf.find(separator)
        if idx >= 0:
            frame = bytes(buf[:idx])
            del buf[:idx + len(separator)]
            yield frame
            continue
        if eof:
            if buf:
                yield bytes(buf)
            return
        chunk = stream.read(chunk_size)
        if not chunk:
            eof = True
        else:
            buf.extend(chunk)


def decode_record(frame: bytes) -> ProgressWrapper:
    try:
        return ProgressWrapper.model_validate_json(frame)
    except ValidationError as exc:
        raise ProgressDecodeError(f"Error decoding JSON: {exc}") from exc


class ProgressMonitor(threading.Thread):
    """Daemon thread rendering progress records from a pipe read end.

    The thread owns `read_fd` and closes it once the stream ends. It is not
    joined by the supervisor: closing every write end of the pipe makes it
    see end-of-stream and exit on its own.
    """

    def __init__(
        self,
        read_fd: int,
        sink: Optional[IO[str]] = None,
        prefix: str = "",
        chunk_size: int = 4096,
    ):
        super().__init__(name=f"progress-monitor-{read_fd}", daemon=True)
        self.read_fd = read_fd
        self.sink = sink
        self.prefix = prefix
        self.chunk_size = chunk_size
        self.records = 0
        self.skipped = 0
        self.sink_failed = False

    def run(self) -> None:
        try:
            with os.fdopen(self.read_fd, "rb", buffering=0) as pipe:
                self.consume(pipe)
        except (OSError, ValueError) as ex:
            logger.error(f"Error reading JSON progress: {ex}")
        logger.debug(f"Progress monitor finished: records={self.records} skipped={self.skipped}")

    def consume(self, stream: IO[bytes]) -> None:
        """Render every record of `stream` until it ends."""
        for frame in split_records(stream, chunk_size=self.chunk_size):
            if not frame:
                continue
            try:
                wrapper = decode_record(frame)
            except ProgressDecodeError as ex:
                self.skipped += 1
                logger.warning(str(ex))
                continue
            try:
                line = render_wrapper(wrapper)
            except ArithmeticError as ex:
                self.skipped += 1
                logger.warning(f"Error rendering progress: {ex}")
                continue
            self.records += 1
            self._emit(line)

    def _emit(self, line: str) -> None:
        # a broken sink only silences the monitor; the pipe keeps being read
        if self.sink_failed:
            return
        sink = self.sink if self.sink is not None else sys.stderr
        try:
            sink.write(f"{self.prefix}{line}\n")
            flush = getattr(sink, "flush", None)
            if flush is not None:
                flush()
        except (OSError, ValueError, TypeError) as ex:
            self.sink_failed = True
            logger.error(f"Error writing progress, further updates dropped: {ex}")
