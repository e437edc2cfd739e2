"""
Incremental Log Tailer.

Follows one append-only JSONL file and hands every complete, well-formed line
to a callback as a LogRecord.

How it works:
    1. start() records the current file length, so only bytes appended
       afterwards are processed, and subscribes a watchdog Observer to the
       file's parent directory.
    2. Change events for the file arrive on the observer thread and are
       handed to the event loop with call_soon_threadsafe(), which schedules
       a read pass. Events that arrive while a pass is running mark it dirty
       and the pass repeats once. A slow rescan every ``poll_interval_s``
       compares the file size with the cursor and covers missed events.
    3. poll() reads from the cursor to EOF in a worker thread, prefixes the
       pending fragment from the previous read, and splits on newlines.
       Complete lines are parsed and delivered in file order. The trailing
       fragment (a line the writer has not finished yet) is kept for the
       next read. The cursor advances to the EOF position observed by the
       read.

Malformed lines are logged, counted and skipped; the cursor still moves past
them. If the file shrinks below the cursor (truncation or rotation), the
cursor resets to 0 and the file is read again from the start.
"""
from __future__ import annotations

import asyncio
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, List, Optional, Tuple

from watchdog.events import FileSystemEvent, FileSystemEventHandler
from watchdog.observers import Observer

from log_narrator.core.config import Defaults
from log_narrator.core.errors import FilesystemError, ParseError
from log_narrator.core.logging import debug, error, get_logger, info, verbose, warn
from log_narrator.core.metrics import metrics
from log_narrator.watch.records import LogRecord, parse_record

_LOG = get_logger("log-narrator.tailer")


@dataclass
class LogCursor:
    """
    Read position in the tailed file.

    Attributes:
        file_path: File being followed.
        byte_offset: Bytes consumed so far; only moves backwards on truncation.
        pending_fragment: Incomplete trailing line carried to the next read.
    """
    file_path: Path
    byte_offset: int = 0
    pending_fragment: bytes = b""


class _ChangeHandler(FileSystemEventHandler):
    """
    Forwards writes to one file name from the observer thread to the loop.

    Open and close events are ignored; the tailer's own reads produce them.
    """

    def __init__(self, name: str, loop: asyncio.AbstractEventLoop, notify: Callable[[], None]):
        self.name = name
        self.loop = loop
        self.notify = notify

    def on_modified(self, event: FileSystemEvent) -> None:
        self._handle(event, event.src_path)

    def on_created(self, event: FileSystemEvent) -> None:
        self._handle(event, event.src_path)

    def on_moved(self, event: FileSystemEvent) -> None:
        self._handle(event, event.dest_path)

    def _handle(self, event: FileSystemEvent, path) -> None:
        if event.is_directory or Path(os.fsdecode(path)).name != self.name:
            return
        try:
            self.loop.call_soon_threadsafe(self.notify)
        except RuntimeError:
            debug(_LOG, "tail_event_after_loop_closed", event=event.event_type)


class LogTailer:
    """
    Watches one file for appended JSON lines.

    Usage:
        tailer = LogTailer(path, on_record=handle_record)
        tailer.start()      # inside a running event loop
        ...
        tailer.stop()
    """

    def __init__(
        self,
        path: str | Path,
        on_record: Callable[[LogRecord], None],
        poll_interval_s: float = Defaults.TAIL_POLL_INTERVAL_S,
        on_parse_error: Optional[Callable[[ParseError], None]] = None,
    ):
        self.cursor = LogCursor(file_path=Path(path))
        self.poll_interval_s = poll_interval_s
        self._on_record = on_record
        self._on_parse_error = on_parse_error
        self._observer: Optional[Observer] = None
        self._rescan_task: Optional[asyncio.Task] = None
        self._poll_task: Optional[asyncio.Task] = None
        self._dirty = False
        self._read_lock = asyncio.Lock()

    @property
    def path(self) -> Path:
        return self.cursor.file_path

    @property
    def running(self) -> bool:
        return self._observer is not None

    def start(self) -> None:
        """
        Begin following the file from its current end.

        Must be called from a running event loop.

        Raises:
            FilesystemError: The file does not exist or cannot be read.
        """
        if self.running:
            return

        size = self._stat_size()
        if size is None:
            raise FilesystemError(f"log file not accessible: {self.path}", path=str(self.path))
        if not os.access(self.path, os.R_OK):
            raise FilesystemError(f"log file not readable: {self.path}", path=str(self.path))

        self.cursor.byte_offset = size
        self.cursor.pending_fragment = b""

        loop = asyncio.get_running_loop()
        handler = _ChangeHandler(self.path.name, loop, self._request_poll)
        observer = Observer()
        try:
            observer.schedule(handler, str(self.path.parent), recursive=False)
            observer.start()
        except OSError as e:
            raise FilesystemError(f"cannot watch log directory: {e}", path=str(self.path.parent)) from e

        self._observer = observer
        self._rescan_task = loop.create_task(self._rescan())
        info(_LOG, "tail_started", path=str(self.path), offset=size)

    def stop(self) -> None:
        """Unsubscribe from change events and cancel pending reads. Safe to call more than once."""
        if self._observer is None:
            return
        observer, self._observer = self._observer, None
        for task in (self._rescan_task, self._poll_task):
            if task is not None:
                task.cancel()
        self._rescan_task = None
        self._poll_task = None
        observer.stop()
        observer.join()
        info(_LOG, "tail_stopped", path=str(self.path), offset=self.cursor.byte_offset)

    async def poll(self) -> List[LogRecord]:
        """
        Read everything appended since the last read and deliver it.

        Returns:
            Records delivered by this pass, in file order.

        Raises:
            FilesystemError: The file vanished or could not be read.
        """
        async with self._read_lock:
            start, data, truncated = await asyncio.to_thread(self._read_appended, self.cursor.byte_offset)

            if truncated:
                warn(_LOG, "log_truncated", path=str(self.path), offset=self.cursor.byte_offset)
                metrics.record_truncation()
                self.cursor.pending_fragment = b""

            buffer = self.cursor.pending_fragment + data
            lines = buffer.split(b"\n")
            self.cursor.pending_fragment = lines.pop()
            self.cursor.byte_offset = start + len(data)

            if data:
                verbose(
                    _LOG, "tail_read",
                    bytes=len(data),
                    lines=len(lines),
                    pending=len(self.cursor.pending_fragment),
                    offset=self.cursor.byte_offset,
                )

            return self._deliver(lines)

    def _deliver(self, lines: List[bytes]) -> List[LogRecord]:
        delivered: List[LogRecord] = []
        for number, raw in enumerate(lines, start=1):
            line = raw.strip()
            if not line:
                continue

            try:
                record = parse_record(line, line_number=number)
            except ParseError as e:
                metrics.record_log_line(parsed=False)
                warn(_LOG, "log_line_skipped", error=e.message, line=number)
                if self._on_parse_error is not None:
                    try:
                        self._on_parse_error(e)
                    except Exception as hook_error:
                        error(_LOG, "parse_error_handler_failed", exc_info=True, error=repr(hook_error))
                continue

            metrics.record_log_line(parsed=True)
            delivered.append(record)
            try:
                self._on_record(record)
            except Exception as e:
                error(_LOG, "record_handler_failed", exc_info=True, error=repr(e), record_type=record.type)
        return delivered

    def _request_poll(self) -> None:
        """Schedule a read pass. Runs on the event loop."""
        if not self.running:
            return
        if self._poll_task is not None and not self._poll_task.done():
            self._dirty = True
            return
        self._poll_task = asyncio.get_running_loop().create_task(self._drain())

    async def _drain(self) -> None:
        while True:
            self._dirty = False
            try:
                await self.poll()
            except FilesystemError as e:
                warn(_LOG, "tail_read_failed", error=e.message)
            except Exception as e:
                error(_LOG, "tail_read_failed", exc_info=True, error=repr(e))
            if not self._dirty:
                return

    async def _rescan(self) -> None:
        while True:
            await asyncio.sleep(self.poll_interval_s)
            size = self._stat_size()
            if size is None:
                debug(_LOG, "tail_file_missing", path=str(self.path))
                continue
            if size != self.cursor.byte_offset:
                verbose(_LOG, "tail_rescan_found_data", size=size, offset=self.cursor.byte_offset)
                self._request_poll()

    def _stat_size(self) -> Optional[int]:
        try:
            stat = self.path.stat()
        except OSError:
            return None
        if not self.path.is_file():
            return None
        return stat.st_size

    def _read_appended(self, offset: int) -> Tuple[int, bytes, bool]:
        """Runs in a worker thread. Returns (start offset, bytes read, truncated)."""
        try:
            with self.path.open("rb") as f:
                size = os.fstat(f.fileno()).st_size
                truncated = size < offset
                start = 0 if truncated else offset
                f.seek(start)
                data = f.read()
        except OSError as e:
            raise FilesystemError(f"cannot read log file: {e}", path=str(self.path)) from e
        return start, data, truncated
