"""Tests for the error taxonomy and subscriber lists."""
import pytest

from log_narrator.core.errors import (
    BackendError,
    ErrorCode,
    FilesystemError,
    InvalidInputError,
    NarratorError,
    ParseError,
    PlaybackError,
)
from log_narrator.core.events import Subscribers, TaskOutcome, TaskSettled


class TestErrorPayloads:
    """to_dict() is the payload shared by the CLI and the API."""

    def test_base_error(self):
        err = NarratorError("boom")
        assert err.to_dict() == {"ok": False, "error": "INTERNAL_ERROR", "message": "boom"}
        assert str(err) == "boom"

    def test_backend_error_details(self):
        err = BackendError("bad status", status=503, body="busy")
        assert err.code == ErrorCode.BACKEND_ERROR
        assert err.to_dict()["details"] == {"status": 503, "body": "busy"}

    def test_transport_failure_has_no_details(self):
        assert "details" not in BackendError("refused").to_dict()

    def test_filesystem_error_path(self):
        err = FilesystemError("missing", path="/tmp/x.jsonl")
        assert err.to_dict()["details"] == {"path": "/tmp/x.jsonl"}

    def test_parse_error_line(self):
        err = ParseError("bad json", line_number=4, details={"column": 2})
        assert err.details == {"column": 2, "line": 4}

    @pytest.mark.parametrize("exc,code", [
        (ParseError("x"), ErrorCode.PARSE_ERROR),
        (PlaybackError("x"), ErrorCode.PLAYBACK_ERROR),
        (InvalidInputError("x"), ErrorCode.INVALID_INPUT),
        (FilesystemError("x"), ErrorCode.FILESYSTEM_ERROR),
    ])
    def test_codes(self, exc, code):
        assert isinstance(exc, NarratorError)
        assert exc.code == code


class TestSubscribers:
    """Ordered, failure-isolated callbacks."""

    def _event(self, task_id=1):
        return TaskSettled(task_id=task_id, outcome=TaskOutcome.COMPLETED)

    def test_registration_order(self):
        subs = Subscribers("test")
        calls = []
        subs.subscribe(lambda e: calls.append(("a", e.task_id)))
        subs.subscribe(lambda e: calls.append(("b", e.task_id)))
        subs.publish(self._event(5))
        assert calls == [("a", 5), ("b", 5)]
        assert len(subs) == 2

    def test_failing_callback_does_not_stop_others(self):
        subs = Subscribers("test")
        calls = []

        def broken(event):
            raise RuntimeError("subscriber bug")

        subs.subscribe(broken)
        subs.subscribe(calls.append)
        subs.publish(self._event())
        assert len(calls) == 1

    def test_unsubscribe(self):
        subs = Subscribers("test")
        calls = []
        unsubscribe = subs.subscribe(calls.append)
        unsubscribe()
        unsubscribe()
        subs.publish(self._event())
        assert calls == []

    def test_outcome_values(self):
        assert [o.value for o in TaskOutcome] == ["completed", "preempted", "cancelled"]
        assert TaskOutcome("preempted") is TaskOutcome.PREEMPTED
