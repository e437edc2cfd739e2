"""
Tests for the incremental log tailer.

Tests cover:
- start() on missing files and the initial offset
- Complete vs. partial lines across reads
- Malformed lines are skipped without stopping delivery
- Truncation resets the cursor
- Change notifications pick up appends on their own
- Hook failures and undecodable lines never stop the watcher
"""
import asyncio

import pytest

from conftest import assistant_line
from log_narrator.core.errors import FilesystemError, ParseError
from log_narrator.watch.records import parse_record
from log_narrator.watch.tailer import LogTailer


def _append(path, data: bytes) -> None:
    with path.open("ab") as f:
        f.write(data)


class TestStart:
    """start() validates the file and skips existing content."""

    def test_missing_file(self, tmp_path):
        tailer = LogTailer(tmp_path / "missing.jsonl", on_record=lambda r: None)

        async def main():
            tailer.start()

        with pytest.raises(FilesystemError) as exc:
            asyncio.run(main())
        assert exc.value.path == str(tmp_path / "missing.jsonl")
        assert not tailer.running

    def test_directory_is_rejected(self, tmp_path):
        tailer = LogTailer(tmp_path, on_record=lambda r: None)

        async def main():
            tailer.start()

        with pytest.raises(FilesystemError):
            asyncio.run(main())

    def test_existing_content_not_replayed(self, tmp_path):
        path = tmp_path / "session.jsonl"
        path.write_bytes(assistant_line("Old reply.", uuid="old"))
        seen = []
        tailer = LogTailer(path, on_record=seen.append, poll_interval_s=60)

        async def main():
            tailer.start()
            assert tailer.running
            assert tailer.cursor.byte_offset == path.stat().st_size
            _append(path, assistant_line("New reply.", uuid="new"))
            records = await tailer.poll()
            tailer.stop()
            return records

        records = asyncio.run(main())
        assert [r.uuid for r in records] == ["new"]
        assert [r.uuid for r in seen] == ["new"]

    def test_stop_is_idempotent(self, tmp_path):
        path = tmp_path / "session.jsonl"
        path.write_bytes(b"")
        tailer = LogTailer(path, on_record=lambda r: None, poll_interval_s=60)

        async def main():
            tailer.start()
            tailer.stop()
            tailer.stop()
            return tailer.running

        assert asyncio.run(main()) is False


class TestPoll:
    """poll() reads, splits and delivers appended lines."""

    def test_partial_line_waits_for_newline(self, tmp_path):
        path = tmp_path / "session.jsonl"
        path.write_bytes(b"")
        seen = []
        tailer = LogTailer(path, on_record=seen.append)
        line = assistant_line("Split across writes.", uuid="split")

        async def main():
            _append(path, line[:25])
            first = await tailer.poll()
            pending = tailer.cursor.pending_fragment
            _append(path, line[25:])
            second = await tailer.poll()
            return first, pending, second

        first, pending, second = asyncio.run(main())
        assert first == []
        assert pending == line[:25]
        assert [r.uuid for r in second] == ["split"]
        assert tailer.cursor.pending_fragment == b""
        assert tailer.cursor.byte_offset == len(line)

    def test_lines_delivered_in_order(self, tmp_path):
        path = tmp_path / "session.jsonl"
        path.write_bytes(b"".join(assistant_line(f"Reply {i}.", uuid=str(i)) for i in range(5)))
        seen = []
        tailer = LogTailer(path, on_record=seen.append)

        asyncio.run(tailer.poll())
        assert [r.uuid for r in seen] == ["0", "1", "2", "3", "4"]

    def test_malformed_line_skipped(self, tmp_path):
        path = tmp_path / "session.jsonl"
        path.write_bytes(
            assistant_line("Before.", uuid="a")
            + b'{"type": "assistant", broken\n'
            + b"[1, 2]\n"
            + assistant_line("After.", uuid="b")
        )
        seen, errors = [], []
        tailer = LogTailer(path, on_record=seen.append, on_parse_error=errors.append)

        asyncio.run(tailer.poll())

        assert [r.uuid for r in seen] == ["a", "b"]
        assert len(errors) == 2
        assert all(isinstance(e, ParseError) for e in errors)
        assert tailer.cursor.byte_offset == path.stat().st_size

    def test_blank_and_crlf_lines(self, tmp_path):
        path = tmp_path / "session.jsonl"
        path.write_bytes(b"\n\r\n" + assistant_line("Windows.", uuid="w").replace(b"\n", b"\r\n") + b"   \n")
        seen = []
        tailer = LogTailer(path, on_record=seen.append)

        asyncio.run(tailer.poll())
        assert [r.uuid for r in seen] == ["w"]

    def test_handler_error_does_not_stop_delivery(self, tmp_path):
        path = tmp_path / "session.jsonl"
        path.write_bytes(assistant_line("One.", uuid="1") + assistant_line("Two.", uuid="2"))
        seen = []

        def handler(record):
            seen.append(record.uuid)
            if record.uuid == "1":
                raise RuntimeError("handler bug")

        tailer = LogTailer(path, on_record=handler)
        asyncio.run(tailer.poll())
        assert seen == ["1", "2"]

    def test_no_new_data(self, tmp_path):
        path = tmp_path / "session.jsonl"
        path.write_bytes(assistant_line("Once.", uuid="once"))
        tailer = LogTailer(path, on_record=lambda r: None)

        async def main():
            await tailer.poll()
            return await tailer.poll()

        assert asyncio.run(main()) == []

    def test_vanished_file(self, tmp_path):
        path = tmp_path / "session.jsonl"
        tailer = LogTailer(path, on_record=lambda r: None)
        with pytest.raises(FilesystemError):
            asyncio.run(tailer.poll())


class TestTruncation:
    """A file shorter than the cursor is read again from the start."""

    def test_reset_to_start(self, tmp_path):
        path = tmp_path / "session.jsonl"
        path.write_bytes(assistant_line("A fairly long first reply.", uuid="old") + b'{"partial')
        seen = []
        tailer = LogTailer(path, on_record=seen.append)

        async def main():
            await tailer.poll()
            path.write_bytes(assistant_line("Hi.", uuid="fresh"))
            return await tailer.poll()

        records = asyncio.run(main())

        assert [r.uuid for r in records] == ["fresh"]
        assert [r.uuid for r in seen] == ["old", "fresh"]
        assert tailer.cursor.pending_fragment == b""
        assert tailer.cursor.byte_offset == path.stat().st_size


class TestUndecodableLines:
    """Lines json rejects with something other than a decode error."""

    @pytest.mark.parametrize("line", [
        b'{"type": 1' + b"1" * 5000 + b"}",
        b"[" * 200000,
    ])
    def test_parse_record_raises_parse_error(self, line):
        with pytest.raises(ParseError):
            parse_record(line, line_number=3)

    def test_poll_skips_them(self, tmp_path):
        path = tmp_path / "session.jsonl"
        path.write_bytes(
            b'{"type": 1' + b"1" * 5000 + b"}\n"
            + b"[" * 200000 + b"\n"
            + assistant_line("Still here.", uuid="ok")
        )
        seen, errors = [], []
        tailer = LogTailer(path, on_record=seen.append, on_parse_error=errors.append)

        asyncio.run(tailer.poll())

        assert [r.uuid for r in seen] == ["ok"]
        assert len(errors) == 2

    def test_failing_parse_error_hook(self, tmp_path):
        path = tmp_path / "session.jsonl"
        path.write_bytes(b"not json\n" + assistant_line("Valid.", uuid="v"))
        seen = []

        def hook(err):
            raise RuntimeError("hook bug")

        tailer = LogTailer(path, on_record=seen.append, on_parse_error=hook)
        records = asyncio.run(tailer.poll())

        assert [r.uuid for r in records] == ["v"]
        assert [r.uuid for r in seen] == ["v"]


class TestWatchLoop:
    """The observer notices appends without explicit poll() calls."""

    def _follow(self, path, writes, expected, **kwargs):
        async def main():
            loop = asyncio.get_running_loop()
            got = loop.create_future()
            seen = []

            def on_record(record):
                seen.append(record)
                if len(seen) == expected and not got.done():
                    got.set_result(None)

            # A long rescan interval leaves change events as the only trigger.
            tailer = LogTailer(path, on_record=on_record, poll_interval_s=60, **kwargs)
            tailer.start()
            for data in writes:
                _append(path, data)
            try:
                await asyncio.wait_for(got, timeout=5)
                return seen, tailer.running
            finally:
                tailer.stop()

        return asyncio.run(main())

    def test_appends_picked_up(self, tmp_path):
        path = tmp_path / "session.jsonl"
        path.write_bytes(b"")
        seen, running = self._follow(path, [assistant_line("Picked up.", uuid="bg")], 1)
        assert [r.uuid for r in seen] == ["bg"]
        assert running

    def test_keeps_running_after_undecodable_line(self, tmp_path):
        path = tmp_path / "session.jsonl"
        path.write_bytes(b"")
        writes = [
            b'{"type": 1' + b"1" * 5000 + b"}\n",
            assistant_line("After the bad line.", uuid="after"),
        ]
        seen, running = self._follow(path, writes, 1)
        assert [r.uuid for r in seen] == ["after"]
        assert running

    def test_keeps_running_after_hook_failure(self, tmp_path):
        path = tmp_path / "session.jsonl"
        path.write_bytes(b"")

        def hook(err):
            raise RuntimeError("hook bug")

        writes = [b"not json\n", assistant_line("Next.", uuid="next")]
        seen, running = self._follow(path, writes, 1, on_parse_error=hook)
        assert [r.uuid for r in seen] == ["next"]
        assert running

    def test_rescan_covers_missed_events(self, tmp_path):
        path = tmp_path / "session.jsonl"
        path.write_bytes(b"")

        async def main():
            loop = asyncio.get_running_loop()
            got = loop.create_future()
            tailer = LogTailer(
                path,
                on_record=lambda r: got.done() or got.set_result(r),
                poll_interval_s=0.05,
            )
            tailer.start()
            # Drop change events so only the rescan can find the data.
            tailer._observer.unschedule_all()
            _append(path, assistant_line("Found by rescan.", uuid="rescan"))
            try:
                return await asyncio.wait_for(got, timeout=5)
            finally:
                tailer.stop()

        assert asyncio.run(main()).uuid == "rescan"
